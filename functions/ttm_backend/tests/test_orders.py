import time
import unittest

from ttm_backend.config import Settings
from ttm_backend.db import InMemoryDbClient
from ttm_backend.errors import ConflictError, NotFoundError, ValidationFailed
from ttm_backend.jobs import JobKind
from ttm_backend.queue import InMemoryJobQueue
from ttm_backend.services import catalog, orders, patients, promptpay, recommendations

SHIPPING = {
    "shipping_address": "99 Sukhumvit Rd",
    "shipping_city": "Bangkok",
    "shipping_postal_code": "10110",
    "shipping_phone": "0812345678",
}


class CheckoutTests(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()
        self.queue = InMemoryJobQueue()
        self.settings = Settings(_env_file=None, default_commission_rate=0.1)
        self.herb = catalog.create_herb(
            self.db,
            {"name": "Turmeric", "retail_price": 100.0, "stock_quantity": 10, "commission_rate": 0.2},
        )
        self.patient = patients.create_patient(
            self.db, "prac-1", {"full_name": "Malee", "email": "malee@example.com"}
        )

    def _recommend(self, quantity=3, unit_price=100.0):
        return recommendations.create_recommendation(
            self.db,
            "prac-1",
            {"patient_id": self.patient["id"], "title": "Digestive support"},
            [{"herb_id": self.herb["id"], "quantity": quantity, "unit_price": unit_price}],
        )

    def _link(self, recommendation):
        return recommendations.generate_checkout_link(self.db, self.settings, recommendation["id"])

    def test_checkout_creates_order_and_takes_stock(self):
        recommendation = self._recommend()
        self.assertEqual(recommendation["total_cost"], 300.0)
        link = self._link(recommendation)

        order = orders.checkout(self.db, self.settings, link["token"], SHIPPING, "promptpay")

        self.assertEqual(order["total_amount"], 300.0)
        self.assertEqual(order["status"], "pending")
        self.assertEqual(order["items"][0]["herb_name"], "Turmeric")
        self.assertEqual(catalog.get_herb(self.db, self.herb["id"])["stock_quantity"], 7)
        self.assertEqual(
            recommendations.get_recommendation(self.db, recommendation["id"])["status"], "completed"
        )

        commission = orders.list_commissions(self.db, "prac-1")[0]
        self.assertEqual(commission["commission_rate"], 0.2)
        self.assertEqual(commission["commission_amount"], 60.0)
        self.assertEqual(commission["commission_status"], "pending")

        patient = patients.get_patient(self.db, self.patient["id"])
        self.assertEqual(patient["default_shipping_city"], "Bangkok")

    def test_checkout_link_is_single_use(self):
        link = self._link(self._recommend())
        orders.checkout(self.db, self.settings, link["token"], SHIPPING)
        with self.assertRaises(ConflictError):
            orders.checkout(self.db, self.settings, link["token"], SHIPPING)

    def test_expired_and_unknown_links(self):
        link = self._link(self._recommend())
        with self.assertRaises(ValidationFailed):
            recommendations.resolve_link(self.db, link["token"], now=time.time() + 73 * 3600)
        with self.assertRaises(NotFoundError):
            recommendations.resolve_link(self.db, "nope")

    def test_insufficient_stock_rejects_whole_checkout(self):
        link = self._link(self._recommend(quantity=11))
        with self.assertRaises(ConflictError) as ctx:
            orders.checkout(self.db, self.settings, link["token"], SHIPPING)
        self.assertIn("Available: 10, Requested: 11", str(ctx.exception))
        self.assertEqual(orders.list_orders(self.db), [])
        self.assertEqual(catalog.get_herb(self.db, self.herb["id"])["stock_quantity"], 10)

    def test_repeated_herb_lines_share_stock(self):
        recommendation = recommendations.create_recommendation(
            self.db,
            "prac-1",
            {"patient_id": self.patient["id"], "title": "Two courses"},
            [
                {"herb_id": self.herb["id"], "quantity": 6, "unit_price": 100.0},
                {"herb_id": self.herb["id"], "quantity": 6, "unit_price": 100.0},
            ],
        )
        link = self._link(recommendation)
        with self.assertRaises(ConflictError) as ctx:
            orders.checkout(self.db, self.settings, link["token"], SHIPPING)
        self.assertIn("Available: 10, Requested: 12", str(ctx.exception))

        self.assertEqual(orders.list_orders(self.db), [])
        self.assertEqual(orders.list_commissions(self.db), [])
        self.assertEqual(catalog.get_herb(self.db, self.herb["id"])["stock_quantity"], 10)
        self.assertEqual(recommendations.resolve_link(self.db, link["token"])["id"], link["id"])

    def test_commission_uses_each_herbs_rate(self):
        ginger = catalog.create_herb(
            self.db,
            {"name": "Ginger", "retail_price": 100.0, "stock_quantity": 5, "commission_rate": 0.3},
        )
        recommendation = recommendations.create_recommendation(
            self.db,
            "prac-1",
            {"patient_id": self.patient["id"], "title": "Mixed"},
            [
                {"herb_id": self.herb["id"], "quantity": 1, "unit_price": 100.0},
                {"herb_id": ginger["id"], "quantity": 1, "unit_price": 100.0},
            ],
        )
        catalog.update_herb(self.db, self.herb["id"], {"commission_rate": 0.1})
        orders.checkout(self.db, self.settings, self._link(recommendation)["token"], SHIPPING)

        commission = orders.list_commissions(self.db, "prac-1")[0]
        self.assertEqual(commission["commission_amount"], 40.0)
        self.assertEqual(commission["commission_rate"], 0.2)

    def test_default_rate_fills_herbs_without_one(self):
        plain = catalog.create_herb(self.db, {"name": "Galangal", "stock_quantity": 5})
        recommendation = recommendations.create_recommendation(
            self.db,
            "prac-1",
            {"patient_id": self.patient["id"], "title": "Mixed"},
            [
                {"herb_id": self.herb["id"], "quantity": 1, "unit_price": 100.0},
                {"herb_id": plain["id"], "quantity": 2, "unit_price": 50.0},
            ],
        )
        amount, rate = orders.commission_for(
            self.db,
            self.settings,
            "prac-1",
            recommendations.list_items(self.db, recommendation["id"]),
        )
        self.assertEqual(amount, 30.0)
        self.assertEqual(rate, 0.15)

    def test_commission_override_wins(self):
        orders.set_commission_override(self.db, "prac-1", 0.35)
        link = self._link(self._recommend(quantity=1))
        orders.checkout(self.db, self.settings, link["token"], SHIPPING)
        self.assertEqual(orders.list_commissions(self.db, "prac-1")[0]["commission_amount"], 35.0)

    def test_shipping_requires_tracking_and_notifies(self):
        link = self._link(self._recommend())
        order = orders.checkout(self.db, self.settings, link["token"], SHIPPING)
        orders.update_status(self.db, self.queue, order["id"], "processing")

        with self.assertRaises(ValidationFailed):
            orders.update_status(self.db, self.queue, order["id"], "shipped")

        shipped = orders.update_status(
            self.db,
            self.queue,
            order["id"],
            "shipped",
            courier_name="Kerry Express",
            tracking_number="KEX123",
        )
        self.assertEqual(
            shipped["courier_tracking_url"], "https://th.kerryexpress.com/en/track/?track=KEX123"
        )
        self.assertGreater(shipped["estimated_delivery_date"], time.time())

        jobs = self.db.select("notification_jobs")
        self.assertEqual({job["kind"] for job in jobs}, {JobKind.ORDER_STATUS_UPDATE.value})
        self.assertEqual(len(self.queue.items), 2)

    def test_invalid_transition_conflicts(self):
        link = self._link(self._recommend())
        order = orders.checkout(self.db, self.settings, link["token"], SHIPPING)
        with self.assertRaises(ConflictError):
            orders.update_status(self.db, self.queue, order["id"], "delivered")

    def test_cancel_cancels_pending_commission(self):
        link = self._link(self._recommend())
        order = orders.checkout(self.db, self.settings, link["token"], SHIPPING)
        orders.update_status(self.db, self.queue, order["id"], "cancelled")
        commission = orders.list_commissions(self.db, "prac-1")[0]
        self.assertEqual(commission["commission_status"], "cancelled")
        with self.assertRaises(ConflictError):
            orders.mark_commission_paid(self.db, commission["id"])

    def test_order_stats_use_paid_revenue(self):
        for quantity in (1, 3):
            link = self._link(self._recommend(quantity=quantity))
            orders.checkout(self.db, self.settings, link["token"], SHIPPING)
        paid = orders.list_orders(self.db)[0]
        orders.set_payment_status(self.db, paid["id"], "paid")

        stats = orders.order_stats(self.db, "prac-1")
        self.assertEqual(stats["total_orders"], 2)
        self.assertEqual(stats["pending_orders"], 2)
        self.assertEqual(stats["total_revenue"], paid["total_amount"])
        self.assertEqual(stats["average_order_value"], round(paid["total_amount"] / 2, 2))
        self.assertEqual(stats["commission_earned"], 80.0)

    def test_csv_export_escapes_and_formats(self):
        link = self._link(self._recommend())
        orders.checkout(self.db, self.settings, link["token"], {**SHIPPING, "shipping_city": "Bang, Na"})
        text = orders.export_orders_csv(orders.list_orders(self.db))
        header, row = text.split("\r\n")[:2]
        self.assertEqual(header.split(",")[0], "id")
        self.assertIn('"Bang, Na"', row)
        self.assertIn("Turmeric x3", row)
        self.assertIn("300.00", row)

    def test_send_recommendation_validates_link_domain(self):
        recommendation = self._recommend()
        with self.assertRaises(ValidationFailed):
            recommendations.send_recommendation(
                self.db,
                self.queue,
                self.settings,
                recommendation["id"],
                checkout_url="https://evil.example/checkout",
            )
        with self.assertRaises(ValidationFailed):
            recommendations.send_recommendation(
                self.db,
                self.queue,
                self.settings,
                recommendation["id"],
                checkout_url="https://shop.xcherbs.com/checkout/abc",
                channels=("line",),
            )

        sent = recommendations.send_recommendation(
            self.db,
            self.queue,
            self.settings,
            recommendation["id"],
            checkout_url="https://shop.xcherbs.com/checkout/abc",
            practitioner_name="Dr. Niran",
        )
        self.assertEqual(sent["status"], "sent")
        job = self.db.select("notification_jobs")[0]
        self.assertEqual(job["kind"], JobKind.RECOMMENDATION_EMAIL.value)
        self.assertEqual(job["payload"]["practitioner_name"], "Dr. Niran")


class PromptPayTests(unittest.TestCase):
    def test_crc_check_value(self):
        self.assertEqual(promptpay.crc16_ccitt("123456789"), "29B1")

    def test_static_phone_payload(self):
        payload = promptpay.build_payload("081-234-5678")
        self.assertTrue(payload.startswith("000201010211"))
        self.assertIn("0016A000000677010111", payload)
        self.assertIn("01130066812345678", payload)
        self.assertIn("5802TH5303764", payload)
        self.assertNotIn("5406", payload[:-4])
        self.assertEqual(payload[-8:-4], "6304")
        self.assertEqual(payload[-4:], promptpay.crc16_ccitt(payload[:-4]))

    def test_dynamic_payload_carries_amount(self):
        payload = promptpay.build_payload("1234567890123", 300)
        self.assertTrue(payload.startswith("000201010212"))
        self.assertIn("02131234567890123", payload)
        self.assertIn("5406300.00", payload)

    def test_rejects_unknown_target(self):
        with self.assertRaises(ValidationFailed):
            promptpay.normalize_target("12345")

    def test_checkout_qr(self):
        db = InMemoryDbClient()
        settings = Settings(_env_file=None)
        herb = catalog.create_herb(db, {"name": "Ginger", "stock_quantity": 5})
        patient = patients.create_patient(db, "prac-1", {"full_name": "Malee"})
        recommendation = recommendations.create_recommendation(
            db,
            "prac-1",
            {"patient_id": patient["id"], "title": "Warmth"},
            [{"herb_id": herb["id"], "quantity": 2, "unit_price": 45.5}],
        )
        link = recommendations.generate_checkout_link(db, settings, recommendation["id"])

        with self.assertRaises(ValidationFailed):
            promptpay.generate_checkout_qr(db, None, link["token"])

        qr = promptpay.generate_checkout_qr(db, "0812345678", link["token"])
        self.assertEqual(qr["amount"], 91.0)
        self.assertEqual(qr["currency"], "THB")
        self.assertIn("540591.00", qr["payload"])
        self.assertTrue(qr["qr_code_png_base64"].startswith("iVBORw0KGgo"))


if __name__ == "__main__":
    unittest.main()
