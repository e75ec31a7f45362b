import unittest
from unittest.mock import patch

from ttm_backend.config import Settings
from ttm_backend.db import InMemoryDbClient
from ttm_backend.jobs import JobKind, JobStatus, enqueue_job
from ttm_backend.notifications import InMemoryEmailSender, InMemoryLineMessenger
from ttm_backend.queue import InMemoryJobQueue
from ttm_backend.services import catalog, contact, orders, patients, recommendations
from ttm_backend.worker import process_next

CONTACT_FORM = {
    "name": "Somchai <b>",
    "email": "somchai@example.com",
    "subject": "Wholesale",
    "message": "Do you sell in bulk?",
}


class WorkerTests(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()
        self.queue = InMemoryJobQueue()
        self.email = InMemoryEmailSender()
        self.line = InMemoryLineMessenger()
        self.settings = Settings(_env_file=None, admin_email="admin@example.com")

    def _process(self):
        return process_next(
            db=self.db, queue=self.queue, email=self.email, line=self.line, block=False
        )

    def _job(self, job_id):
        return self.db.get("notification_jobs", job_id)

    @patch("ttm_backend.worker.get_settings")
    def test_contact_notification_goes_to_admin(self, mock_settings):
        mock_settings.return_value = self.settings
        submission = contact.submit(self.db, self.queue, self.settings, CONTACT_FORM)

        self.assertTrue(self._process())
        self.assertEqual(len(self.email.sent), 1)
        sent = self.email.sent[0]
        self.assertEqual(sent["to"], ["admin@example.com"])
        self.assertEqual(sent["reply_to"], "somchai@example.com")
        self.assertEqual(sent["subject"], "New Contact Form: Wholesale")
        self.assertIn("Somchai &lt;b&gt;", sent["html"])
        self.assertIn(submission["id"], sent["html"])

        job = self.db.select("notification_jobs")[0]
        self.assertEqual(job["status"], JobStatus.SUCCESS.value)
        self.assertEqual(job["attempts"], 1)

    def test_order_update_uses_email_and_line(self):
        herb = catalog.create_herb(self.db, {"name": "Turmeric", "stock_quantity": 5})
        patient = patients.create_patient(
            self.db,
            "prac-1",
            {"full_name": "Malee", "email": "malee@example.com", "line_user_id": "U123"},
        )
        recommendation = recommendations.create_recommendation(
            self.db,
            "prac-1",
            {"patient_id": patient["id"], "title": "Support"},
            [{"herb_id": herb["id"], "quantity": 1, "unit_price": 50.0}],
        )
        link = recommendations.generate_checkout_link(self.db, self.settings, recommendation["id"])
        order = orders.checkout(
            self.db,
            self.settings,
            link["token"],
            {
                "shipping_address": "1 Rama IV",
                "shipping_city": "Bangkok",
                "shipping_postal_code": "10500",
                "shipping_phone": "0812345678",
            },
        )
        orders.update_status(self.db, self.queue, order["id"], "processing")

        self.assertTrue(self._process())
        self.assertEqual(self.email.sent[0]["to"], ["malee@example.com"])
        self.assertEqual(self.email.sent[0]["subject"], "Order Update - Processing")
        self.assertEqual(self.line.pushed[0]["to"], "U123")
        self.assertIn("Status: Processing", self.line.pushed[0]["messages"][0]["text"])

    def test_recommendation_line_without_account_records_error(self):
        patient = patients.create_patient(self.db, "prac-1", {"full_name": "Malee"})
        herb = catalog.create_herb(self.db, {"name": "Ginger", "stock_quantity": 5})
        recommendation = recommendations.create_recommendation(
            self.db,
            "prac-1",
            {"patient_id": patient["id"], "title": "Warmth"},
            [{"herb_id": herb["id"], "quantity": 1, "unit_price": 30.0}],
        )
        job = enqueue_job(
            self.db,
            self.queue,
            JobKind.RECOMMENDATION_LINE,
            {
                "recommendation_id": recommendation["id"],
                "checkout_url": "https://xcherbs.com/checkout/x",
                "optional_message": "",
                "practitioner_name": "Dr. Niran",
            },
        )

        self.assertTrue(self._process())
        stored = self._job(job["id"])
        self.assertEqual(stored["status"], JobStatus.ERROR.value)
        self.assertEqual(stored["last_error"], "Patient LINE user ID not found")
        self.assertEqual(self.line.pushed, [])

    def test_waiting_job_missing_from_queue_is_still_processed(self):
        patient = patients.create_patient(
            self.db, "prac-1", {"full_name": "Malee", "line_user_id": "U9"}
        )
        herb = catalog.create_herb(self.db, {"name": "Ginger", "stock_quantity": 5})
        recommendation = recommendations.create_recommendation(
            self.db,
            "prac-1",
            {"patient_id": patient["id"], "title": "Warmth"},
            [{"herb_id": herb["id"], "quantity": 2, "unit_price": 30.0}],
        )
        job = enqueue_job(
            self.db,
            None,
            JobKind.RECOMMENDATION_LINE,
            {
                "recommendation_id": recommendation["id"],
                "checkout_url": "https://xcherbs.com/checkout/x",
                "optional_message": "Take after meals",
                "practitioner_name": "Dr. Niran",
            },
        )

        self.assertTrue(self._process())
        self.assertEqual(self._job(job["id"])["status"], JobStatus.SUCCESS.value)
        text = self.line.pushed[0]["messages"][0]["text"]
        self.assertIn("https://xcherbs.com/checkout/x", text)

    def test_no_jobs(self):
        self.assertFalse(self._process())


if __name__ == "__main__":
    unittest.main()
