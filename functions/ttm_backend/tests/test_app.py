import unittest

from fastapi.testclient import TestClient

from ttm_backend.app import create_app
from ttm_backend.db import InMemoryDbClient
from ttm_backend.dependencies import get_db_client, get_queue_client, get_storage_client
from ttm_backend.queue import InMemoryJobQueue

ADMIN = {"X-User-Id": "admin-1", "X-User-Role": "admin"}
PRACTITIONER = {"X-User-Id": "prac-1", "X-User-Role": "practitioner"}
PATIENT = {"X-User-Id": "user-9", "X-User-Role": "patient"}

CONTACT_FORM = {
    "name": "Somchai",
    "email": "Somchai@Example.com",
    "subject": "Question about herbs",
    "message": "Do you ship to Chiang Mai?",
}


class BackendApiTests(unittest.TestCase):
    def setUp(self):
        self.client = TestClient(create_app())
        db = get_db_client()
        if isinstance(db, InMemoryDbClient):
            db.reset()
        queue = get_queue_client()
        if isinstance(queue, InMemoryJobQueue):
            queue.items.clear()

    def _create_herb(self, **overrides):
        body = {"name": "Turmeric", "retail_price": 250.0, "stock_quantity": 20}
        body.update(overrides)
        response = self.client.post("/api/herbs", json=body, headers=ADMIN)
        self.assertEqual(response.status_code, 201)
        return response.json()

    def test_health(self):
        response = self.client.get("/health")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"status": "ok"})

    def test_contact_submission_is_stored_and_queued(self):
        response = self.client.post("/api/contact", json=CONTACT_FORM)
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertTrue(payload["success"])
        self.assertTrue(payload["id"])

        submissions = self.client.get("/api/contact/submissions", headers=ADMIN).json()
        self.assertEqual(len(submissions), 1)
        self.assertEqual(submissions[0]["email"], "somchai@example.com")
        self.assertEqual(submissions[0]["status"], "new")
        self.assertEqual(len(get_queue_client().items), 1)

    def test_contact_rate_limit_returns_429(self):
        for _ in range(3):
            self.assertEqual(self.client.post("/api/contact", json=CONTACT_FORM).status_code, 200)
        response = self.client.post("/api/contact", json=CONTACT_FORM)
        self.assertEqual(response.status_code, 429)
        self.assertEqual(response.json()["detail"], "Too many submissions. Please try again later.")

    def test_contact_rejects_blank_fields(self):
        response = self.client.post("/api/contact", json={**CONTACT_FORM, "subject": "   "})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["detail"], "All fields are required")

        response = self.client.post("/api/contact", json={**CONTACT_FORM, "email": "not-an-email"})
        self.assertEqual(response.status_code, 400)

    def test_contact_inbox_requires_admin(self):
        response = self.client.get("/api/contact/submissions", headers=PRACTITIONER)
        self.assertEqual(response.status_code, 403)

    def test_herb_search_and_subscription_price(self):
        self._create_herb(
            name="Andrographis",
            thai_name="ฟ้าทะลายโจร",
            subscription_enabled=True,
            subscription_discount_percentage=10,
        )
        self._create_herb(name="Ginger", stock_quantity=0)

        results = self.client.get("/api/herbs", params={"q": "andro"}).json()
        self.assertEqual([h["name"] for h in results], ["Andrographis"])
        self.assertEqual(results[0]["subscription_price"], 225.0)

        in_stock = self.client.get("/api/herbs", params={"in_stock_only": True}).json()
        self.assertNotIn("Ginger", [h["name"] for h in in_stock])

    def test_only_admin_manages_catalog(self):
        response = self.client.post("/api/herbs", json={"name": "Galangal"}, headers=PRACTITIONER)
        self.assertEqual(response.status_code, 403)

    def test_herb_rejects_two_primary_images(self):
        images = [
            {"url": "https://cdn.test/a.png", "is_primary": True},
            {"url": "https://cdn.test/b.png", "is_primary": True},
        ]
        response = self.client.post(
            "/api/herbs", json={"name": "Galangal", "images": images}, headers=ADMIN
        )
        self.assertEqual(response.status_code, 422)

    def test_duplicate_review_conflicts(self):
        herb = self._create_herb()
        review = {"rating": 5, "title": "Great", "review_text": "Helped my digestion a lot."}

        first = self.client.post(f"/api/herbs/{herb['id']}/reviews", json=review, headers=PATIENT)
        self.assertEqual(first.status_code, 201)
        second = self.client.post(f"/api/herbs/{herb['id']}/reviews", json=review, headers=PATIENT)
        self.assertEqual(second.status_code, 409)
        self.assertEqual(second.json()["detail"], "You have already reviewed this product")

        summary = self.client.get(f"/api/herbs/{herb['id']}/reviews").json()["summary"]
        self.assertEqual(summary["count"], 1)
        self.assertEqual(summary["average"], 5.0)

    def test_review_rating_must_be_whole_star(self):
        herb = self._create_herb()
        response = self.client.post(
            f"/api/herbs/{herb['id']}/reviews",
            json={"rating": 4.5, "title": "Good", "review_text": "Tastes fine, works okay."},
            headers=PATIENT,
        )
        self.assertEqual(response.status_code, 422)

    def test_stock_cannot_go_negative(self):
        herb = self._create_herb(stock_quantity=2)
        response = self.client.post(
            f"/api/herbs/{herb['id']}/stock", json={"delta": -5}, headers=ADMIN
        )
        self.assertEqual(response.status_code, 400)

    def test_image_upload_and_herb_delete_cleans_storage(self):
        herb = self._create_herb()
        response = self.client.post(
            f"/api/herbs/{herb['id']}/images",
            files={"file": ("front view.png", b"\x89PNG fake", "image/png")},
            headers=ADMIN,
        )
        self.assertEqual(response.status_code, 201)
        image = response.json()["images"][0]
        self.assertTrue(image["is_primary"])
        self.assertTrue(image["path"].startswith(f"herbs/{herb['id']}/"))
        self.assertTrue(image["path"].endswith("front_view.png"))

        storage = get_storage_client()
        self.assertIn(image["path"], storage.objects)
        response = self.client.delete(f"/api/herbs/{herb['id']}", headers=ADMIN)
        self.assertEqual(response.status_code, 204)
        self.assertNotIn(image["path"], storage.objects)

    def test_missing_herb_is_404(self):
        response = self.client.get("/api/herbs/does-not-exist")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["detail"], "Herb not found")

    def test_orders_csv_export(self):
        response = self.client.get("/api/orders/export", headers=PRACTITIONER)
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.headers["content-type"].startswith("text/csv"))
        self.assertTrue(response.text.startswith("id,created_at,patient_id"))

    def test_chat_session_offline_model(self):
        session = self.client.post("/api/chat/sessions", json={"language": "th"}).json()
        self.assertEqual(session["messages"][0]["id"], "welcome")

        response = self.client.post(
            f"/api/chat/sessions/{session['id']}/messages", json={"content": "สวัสดี"}
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["products"], [])

    def test_course_builder_requires_practitioner(self):
        response = self.client.post("/api/courses", json={"title": "Thai Massage"}, headers=PATIENT)
        self.assertEqual(response.status_code, 403)

    def _create_patient(self):
        response = self.client.post("/api/patients", json={"full_name": "Malee"}, headers=PRACTITIONER)
        self.assertEqual(response.status_code, 201)
        return response.json()

    def test_patient_connection_link_flow(self):
        patient = self._create_patient()
        path = f"/api/patients/{patient['id']}/connection-links"
        body = {"connection_type": "account_signup"}
        other = {"X-User-Id": "prac-2", "X-User-Role": "practitioner"}
        self.assertEqual(self.client.post(path, json=body, headers=other).status_code, 403)

        response = self.client.post(path, json=body, headers=PRACTITIONER)
        self.assertEqual(response.status_code, 201)
        link = response.json()
        self.assertIn("/patient-connect/signup/", link["connection_url"])

        verified = self.client.get(f"/api/patient-connect/{link['token']}")
        self.assertEqual(verified.status_code, 200)
        self.assertEqual(verified.json()["patient"]["id"], patient["id"])

        account = f"/api/patient-connect/{link['token']}/account"
        self.assertEqual(self.client.post(account).status_code, 401)
        response = self.client.post(account, headers=PATIENT)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["patient_id"], patient["id"])

        again = self.client.get(f"/api/patient-connect/{link['token']}")
        self.assertEqual(again.status_code, 400)
        self.assertEqual(again.json()["detail"], "Token has already been used")

    def test_adherence_schedule_check_in_and_missed_scan(self):
        patient = self._create_patient()
        schedule = {
            "patient_id": patient["id"],
            "medication_name": "Turmeric capsules",
            "dosage": "2 capsules",
            "frequency": "once_daily",
            "times_of_day": ["8:00"],
            "start_date": "2025-01-01",
        }
        response = self.client.post("/api/adherence/schedules", json=schedule, headers=PRACTITIONER)
        self.assertEqual(response.status_code, 422)
        schedule["times_of_day"] = ["08:00"]
        response = self.client.post("/api/adherence/schedules", json=schedule, headers=PRACTITIONER)
        self.assertEqual(response.status_code, 201)
        schedule_id = response.json()["id"]

        check_in = {
            "patient_id": patient["id"],
            "treatment_schedule_id": schedule_id,
            "status": "taken",
        }
        response = self.client.post("/api/adherence/check-ins", json=check_in, headers=PATIENT)
        self.assertEqual(response.status_code, 201)

        summary = self.client.get(
            f"/api/adherence/patients/{patient['id']}/summary", headers=PATIENT
        ).json()
        self.assertEqual(summary["adherence_rate"], 100)
        self.assertEqual(summary["current_streak"], 1)

        scan = "/api/adherence/missed-doses/run"
        self.assertEqual(self.client.post(scan, headers=PATIENT).status_code, 403)
        response = self.client.post(scan, headers=ADMIN)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["missed_count"], 1)


if __name__ == "__main__":
    unittest.main()
