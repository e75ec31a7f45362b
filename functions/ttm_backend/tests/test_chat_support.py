import json
import unittest
from unittest.mock import MagicMock

from ttm_backend.db import InMemoryDbClient
from ttm_backend.errors import ExternalServiceError, NotFoundError, ValidationFailed
from ttm_backend.services import catalog, chat_support, patients
from ttm_models import prompts
from ttm_models.chat import ChatReply, OfflineChatModel


class ChatSupportTests(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()
        self.herb = catalog.create_herb(
            self.db,
            {
                "name": "Andrographis",
                "thai_name": "ฟ้าทะลายโจร",
                "retail_price": 180.0,
                "stock_quantity": 4,
            },
        )
        self.session = chat_support.create_session(self.db, "user-1", "en")

    def _model(self, reply):
        model = MagicMock()
        model.reply.return_value = reply
        return model

    def test_session_starts_with_welcome(self):
        messages = self.session["messages"]
        self.assertEqual(len(messages), 1)
        self.assertEqual(messages[0]["id"], "welcome")
        self.assertEqual(messages[0]["role"], "assistant")

    def test_unknown_language_falls_back_to_english(self):
        session = chat_support.create_session(self.db, None, "fr")
        self.assertEqual(session["language"], "en")

    def test_reply_keeps_only_catalog_products(self):
        model = self._model(
            ChatReply(
                message="Try this one.",
                product_ids=[self.herb["id"], "made-up", self.herb["id"]],
            )
        )
        result = chat_support.post_message(
            self.db, model, self.session["id"], "Something for a sore throat?", "user-1"
        )
        self.assertEqual(result["message"]["product_ids"], [self.herb["id"]])
        self.assertEqual([p["name"] for p in result["products"]], ["Andrographis"])

        system_prompt, history = model.reply.call_args[0]
        self.assertIn(f"[id: {self.herb['id']}]", system_prompt)
        self.assertEqual(history, [{"role": "user", "content": "Something for a sore throat?"}])

        stored = chat_support.get_session(self.db, self.session["id"], "user-1")["messages"]
        self.assertEqual([m["role"] for m in stored], ["assistant", "user", "assistant"])

    def test_empty_reply_uses_fallback_text(self):
        with_products = self._model(ChatReply(message="", product_ids=[self.herb["id"]]))
        result = chat_support.post_message(self.db, with_products, self.session["id"], "Show me", "user-1")
        self.assertEqual(result["message"]["content"], chat_support.PRODUCT_CARDS_FALLBACK)

        without = self._model(ChatReply(message="  "))
        result = chat_support.post_message(self.db, without, self.session["id"], "Hmm", "user-1")
        self.assertEqual(result["message"]["content"], chat_support.EMPTY_REPLY_FALLBACK)

    def test_model_failure_is_external_error(self):
        model = MagicMock()
        model.reply.side_effect = RuntimeError("quota")
        with self.assertRaises(ExternalServiceError):
            chat_support.post_message(self.db, model, self.session["id"], "Hello", "user-1")
        with self.assertRaises(ExternalServiceError):
            chat_support.post_message(self.db, self._model(None), self.session["id"], "Hello", "user-1")

    def test_offline_model_replies(self):
        result = chat_support.post_message(
            self.db, OfflineChatModel(), self.session["id"], "Hello", "user-1"
        )
        self.assertIn("offline", result["message"]["content"])

    def test_sessions_are_private(self):
        with self.assertRaises(NotFoundError):
            chat_support.get_session(self.db, self.session["id"], "someone-else")

    def test_clear_session_resets_to_welcome(self):
        chat_support.post_message(
            self.db, self._model(ChatReply(message="Hi")), self.session["id"], "Hello", "user-1"
        )
        cleared = chat_support.clear_session(self.db, self.session["id"], "user-1")
        self.assertEqual([m["id"] for m in cleared["messages"]], ["welcome"])

    def test_escalation_for_patient_appends_transcript(self):
        patient = patients.create_patient(
            self.db, "prac-1", {"full_name": "Malee", "user_id": "user-1"}
        )
        chat_support.post_message(
            self.db, self._model(ChatReply(message="Hi there")), self.session["id"], "Hello", "user-1"
        )
        result = chat_support.escalate(
            self.db,
            "user-1",
            {
                "email": "malee@example.com",
                "subject": "Need a human",
                "message_body": "Please call me back about dosage.",
            },
            session_id=self.session["id"],
        )
        self.assertTrue(result["success"])
        self.assertEqual(result["ticket_type"], "patient")

        message = self.db.get("patient_messages", result["ticket_id"])
        self.assertEqual(message["patient_id"], patient["id"])
        self.assertEqual(message["recipient_type"], "support")
        body, transcript = message["message_body"].split("\n\n--- AI Chat History ---\n")
        self.assertEqual(body, "Please call me back about dosage.")
        self.assertEqual(
            [m["content"] for m in json.loads(transcript)], ["Hello", "Hi there"]
        )

    def test_escalation_for_guest_creates_ticket(self):
        result = chat_support.escalate(
            self.db,
            None,
            {
                "email": "Guest@Example.com",
                "subject": "Order question",
                "message_body": "Where is my parcel going?",
                "chat_history": [{"role": "user", "content": "hi"}],
            },
        )
        self.assertEqual(result["ticket_type"], "guest")
        ticket = self.db.get("guest_support_messages", result["ticket_id"])
        self.assertEqual(ticket["email"], "guest@example.com")
        self.assertEqual(ticket["status"], "open")
        self.assertEqual(ticket["chat_history"], [{"role": "user", "content": "hi"}])

    def test_escalation_validates_lengths(self):
        request = {"email": "a@b.co", "subject": "Hey", "message_body": "Long enough message"}
        with self.assertRaises(ValidationFailed):
            chat_support.escalate(self.db, None, request)
        with self.assertRaises(ValidationFailed):
            chat_support.escalate(self.db, None, {**request, "subject": "Valid subject", "message_body": "short"})


class PromptTests(unittest.TestCase):
    def test_herb_context_lists_stock_and_price(self):
        herb = {
            "id": "h1",
            "name": "Ginger",
            "thai_name": "ขิง",
            "retail_price": 120.0,
            "price_currency": "THB",
            "stock_quantity": 0,
            "category_id": "c1",
        }
        context = prompts.make_herb_context([herb], {"c1": "Digestive"})
        self.assertIn("- [id: h1] Ginger (ขิง)", context)
        self.assertIn("(Digestive)", context)
        self.assertIn("฿", context)

    def test_support_prompt_names_language(self):
        prompt = prompts.make_support_prompt("th", "- [id: h1] Ginger")
        self.assertIn("Thai", prompt)
        self.assertIn("- [id: h1] Ginger", prompt)


if __name__ == "__main__":
    unittest.main()
