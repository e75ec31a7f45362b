import time
import unittest

from ttm_backend.config import Settings
from ttm_backend.db import InMemoryDbClient
from ttm_backend.errors import ConflictError, NotFoundError, PermissionDenied, ValidationFailed
from ttm_backend.services import patients

DAY = 24 * 3600


class ConnectionLinkTests(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()
        self.settings = Settings(_env_file=None)
        self.patient = patients.create_patient(
            self.db, "prac-1", {"full_name": "Malee", "email": "malee@example.com"}
        )

    def _link(self, connection_type="account_signup", **kwargs):
        return patients.generate_connection_link(
            self.db, self.settings, self.patient["id"], connection_type, **kwargs
        )

    def test_signup_link_lasts_a_week(self):
        link = self._link(created_by="prac-1", practitioner_id="prac-1")
        self.assertEqual(
            link["connection_url"],
            f"https://xcherbs.com/patient-connect/signup/{link['token']}",
        )
        self.assertAlmostEqual(link["expires_at"], time.time() + 7 * DAY, delta=60)
        self.assertEqual(link["created_by"], "prac-1")

    def test_line_link_lasts_a_day(self):
        link = self._link("line_connect")
        self.assertIn("/patient-connect/line/", link["connection_url"])
        self.assertAlmostEqual(link["expires_at"], time.time() + DAY, delta=60)

    def test_only_owning_practitioner_can_issue(self):
        with self.assertRaises(PermissionDenied):
            self._link(practitioner_id="prac-2")
        with self.assertRaises(ValidationFailed):
            self._link("email_invite")
        with self.assertRaises(NotFoundError):
            patients.generate_connection_link(self.db, self.settings, "missing", "line_connect")

    def test_verify_describes_patient(self):
        link = self._link()
        verified = patients.verify_connection_token(self.db, link["token"])
        self.assertTrue(verified["valid"])
        self.assertEqual(verified["connection_type"], "account_signup")
        self.assertEqual(verified["patient"]["full_name"], "Malee")
        self.assertEqual(verified["patient"]["email"], "malee@example.com")

        with self.assertRaises(NotFoundError):
            patients.verify_connection_token(self.db, "not-a-token")
        with self.assertRaises(ValidationFailed) as ctx:
            patients.verify_connection_token(self.db, link["token"], now=time.time() + 8 * DAY)
        self.assertEqual(ctx.exception.message, "Token has expired")

    def test_account_connection_is_single_use(self):
        link = self._link()
        connected = patients.connect_patient_account(self.db, link["token"], "user-9")
        self.assertEqual(connected["user_id"], "user-9")

        with self.assertRaises(ValidationFailed) as ctx:
            patients.connect_patient_account(self.db, link["token"], "user-10")
        self.assertEqual(ctx.exception.message, "Token has already been used")

        fresh = self._link()
        with self.assertRaises(ValidationFailed) as ctx:
            patients.verify_connection_token(self.db, fresh["token"])
        self.assertEqual(ctx.exception.message, "Patient account already connected")

    def test_account_cannot_claim_two_patients(self):
        patients.create_patient(self.db, "prac-1", {"full_name": "Somchai", "user_id": "user-9"})
        link = self._link()
        with self.assertRaises(ConflictError):
            patients.connect_patient_account(self.db, link["token"], "user-9")
        self.assertIsNone(self.db.get("patient_connection_links", link["id"])["used_at"])

    def test_tokens_only_connect_their_own_kind(self):
        signup = self._link()
        line = self._link("line_connect")
        with self.assertRaises(ValidationFailed):
            patients.connect_line_with_token(self.db, signup["token"], "U123")
        with self.assertRaises(ValidationFailed):
            patients.connect_patient_account(self.db, line["token"], "user-9")

        connected = patients.connect_line_with_token(self.db, line["token"], " U123 ")
        self.assertEqual(connected["line_user_id"], "U123")
        with self.assertRaises(ValidationFailed):
            patients.verify_connection_token(self.db, self._link("line_connect")["token"])


if __name__ == "__main__":
    unittest.main()
