import time
import unittest

from ttm_backend.db import InMemoryDbClient, PostgresDbClient
from ttm_backend.errors import ConflictError, ValidationFailed
from ttm_backend.jobs import JobStatus


class SqlDbClientTests(unittest.TestCase):
    """Exercises the SQLAlchemy client against SQLite."""

    def setUp(self):
        self.db = PostgresDbClient("sqlite+pysqlite:///:memory:")

    def test_insert_fills_id_and_timestamps(self):
        row = self.db.insert("product_categories", {"name": "Digestive"})
        self.assertEqual(len(row["id"]), 32)
        self.assertIsInstance(row["created_at"], float)
        self.assertEqual(row["created_at"], row["updated_at"])

    def test_select_filters_orders_and_limits(self):
        for name, stock in (("Ginger", 0), ("Turmeric", 5), ("Galangal", 2)):
            self.db.insert("herbs", {"name": name, "stock_quantity": stock})
        names = [h["name"] for h in self.db.select("herbs", order_by="name", limit=2)]
        self.assertEqual(names, ["Galangal", "Ginger"])

        listed = self.db.select("herbs", where={"name": ["Ginger", "Turmeric"]}, order_by="name")
        self.assertEqual([h["name"] for h in listed], ["Ginger", "Turmeric"])
        self.assertEqual(self.db.count("herbs", where={"stock_quantity": 0}), 1)

    def test_check_constraint_maps_to_validation_error(self):
        herb = self.db.insert("herbs", {"name": "Ginger", "stock_quantity": 1})
        with self.assertRaises(ValidationFailed):
            self.db.update("herbs", herb["id"], {"stock_quantity": -1})

    def test_unique_constraint_maps_to_conflict(self):
        self.db.insert("product_categories", {"name": "Digestive"})
        with self.assertRaises(ConflictError):
            self.db.insert("product_categories", {"name": "Digestive"})

    def test_adjust_stock_is_guarded(self):
        herb = self.db.insert("herbs", {"name": "Ginger", "stock_quantity": 3})
        self.assertTrue(self.db.adjust_stock(herb["id"], -3))
        self.assertFalse(self.db.adjust_stock(herb["id"], -1))
        self.assertTrue(self.db.adjust_stock(herb["id"], 5))
        self.assertEqual(self.db.get("herbs", herb["id"])["stock_quantity"], 5)
        self.assertFalse(self.db.adjust_stock("missing", 1))

    def _order_fixture(self, second_stock):
        ginger = self.db.insert("herbs", {"name": "Ginger", "stock_quantity": 5})
        galangal = self.db.insert("herbs", {"name": "Galangal", "stock_quantity": second_stock})
        link = self.db.insert(
            "recommendation_links",
            {"recommendation_id": "rec-1", "token": "tok", "expires_at": time.time() + 60},
        )
        order = {"patient_id": "pat-1", "total_amount": 120.0, "items": []}
        commission = {"sale_amount": 120.0, "commission_rate": 0.1, "commission_amount": 12.0}
        quantities = {ginger["id"]: 2, galangal["id"]: 4}
        return ginger, galangal, link, order, quantities, commission

    def test_place_order_writes_everything_together(self):
        ginger, galangal, link, order, quantities, commission = self._order_fixture(4)
        placed = self.db.place_order(order, quantities, link["id"], commission)

        self.assertEqual(placed["status"], "pending")
        self.assertEqual(self.db.get("herbs", ginger["id"])["stock_quantity"], 3)
        self.assertEqual(self.db.get("herbs", galangal["id"])["stock_quantity"], 0)
        self.assertIsNotNone(self.db.get("recommendation_links", link["id"])["used_at"])
        sale = self.db.select("sales_analytics")[0]
        self.assertEqual(sale["order_id"], placed["id"])

        self.assertIsNone(self.db.place_order(order, {ginger["id"]: 1}, link["id"], commission))
        self.assertEqual(self.db.count("orders"), 1)
        self.assertEqual(self.db.get("herbs", ginger["id"])["stock_quantity"], 3)

    def test_place_order_rolls_back_when_a_herb_is_short(self):
        ginger, galangal, link, order, quantities, commission = self._order_fixture(3)
        self.assertIsNone(self.db.place_order(order, quantities, link["id"], commission))

        self.assertEqual(self.db.count("orders"), 0)
        self.assertEqual(self.db.count("sales_analytics"), 0)
        self.assertEqual(self.db.get("herbs", ginger["id"])["stock_quantity"], 5)
        self.assertIsNone(self.db.get("recommendation_links", link["id"])["used_at"])

    def test_search_herbs_matches_any_name(self):
        self.db.insert("herbs", {"name": "Turmeric", "thai_name": "ขมิ้นชัน", "stock_quantity": 1})
        self.db.insert(
            "herbs",
            {"name": "Kariyat", "scientific_name": "Andrographis paniculata", "stock_quantity": 0},
        )
        self.assertEqual([h["name"] for h in self.db.search_herbs(query="ขมิ้น")], ["Turmeric"])
        self.assertEqual([h["name"] for h in self.db.search_herbs(query="PANICULATA")], ["Kariyat"])
        self.assertEqual(self.db.search_herbs(query="paniculata", in_stock_only=True), [])

    def test_recent_contact_submissions_match_email_or_ip(self):
        now = time.time()
        base = {"name": "A", "subject": "S", "message": "M"}
        self.db.insert("contact_submissions", {**base, "email": "a@x.co", "ip_address": "1.1.1.1"})
        self.db.insert(
            "contact_submissions",
            {**base, "email": "b@x.co", "ip_address": "2.2.2.2", "created_at": now - 7200},
        )
        self.assertEqual(self.db.count_recent_contact_submissions("a@x.co", "9.9.9.9", now - 3600), 1)
        self.assertEqual(self.db.count_recent_contact_submissions("z@x.co", "1.1.1.1", now - 3600), 1)
        self.assertEqual(self.db.count_recent_contact_submissions("b@x.co", "2.2.2.2", now - 3600), 0)

    def test_claim_and_requeue_jobs(self):
        job = self.db.insert(
            "notification_jobs",
            {"kind": "contact_notification", "payload": {}, "status": JobStatus.WAITING.value},
        )
        claimed = self.db.claim_next_waiting_job()
        self.assertEqual(claimed["id"], job["id"])
        self.assertEqual(claimed["status"], JobStatus.SENDING.value)
        self.assertEqual(claimed["attempts"], 1)
        self.assertIsNone(self.db.claim_next_waiting_job())

        self.db.update("notification_jobs", job["id"], {"locked_at": time.time() - 3600})
        self.assertEqual(self.db.requeue_stale_jobs(lock_timeout_seconds=600), 1)
        self.assertEqual(self.db.get("notification_jobs", job["id"])["status"], JobStatus.WAITING.value)

    def test_delete_where_requires_condition(self):
        with self.assertRaises(ValueError):
            self.db.delete_where("herbs", {})

    def test_in_memory_reset(self):
        db = InMemoryDbClient()
        db.insert("product_categories", {"name": "Digestive"})
        db.reset()
        self.assertEqual(db.count("product_categories"), 0)


if __name__ == "__main__":
    unittest.main()
