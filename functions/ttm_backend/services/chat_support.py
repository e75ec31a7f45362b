"""
AI chat support: server-side sessions, model replies with product cards, and
escalation to a human support ticket.
"""

from __future__ import annotations

import json
import logging
import time
from typing import Optional

from ttm_backend.db import DbClient, Row, rows_by_id
from ttm_backend.errors import ExternalServiceError, NotFoundError, ValidationFailed
from ttm_backend.sanitize import is_valid_email, validate_input
from ttm_backend.services import messaging, patients
from ttm_models import prompts
from ttm_models.chat import ChatModel

logger = logging.getLogger(__name__)

LANGUAGES = ("en", "th", "zh")
CATALOG_CONTEXT_LIMIT = 50
MAX_USER_MESSAGE_LENGTH = 2000

WELCOME_MESSAGES = {
    "en": "Hello! I'm your Traditional Thai Medicine support assistant. How can I help you today?",
    "th": "สวัสดีค่ะ! ฉันเป็นผู้ช่วยด้านการแพทย์แผนไทย มีอะไรให้ช่วยไหมคะ?",
    "zh": "您好！我是泰国传统医学支持助手。今天有什么可以帮您？",
}
PRODUCT_CARDS_FALLBACK = "Here are the products you asked about:"
EMPTY_REPLY_FALLBACK = "I'm here to help. Could you rephrase your question or specify the product?"
ESCALATION_CONFIRMATION = (
    "Support request submitted successfully. You will receive a response via email within 24 hours."
)


def _language(language: Optional[str]) -> str:
    return language if language in LANGUAGES else "en"


def _message(role: str, content: str, product_ids: Optional[list[str]] = None) -> dict:
    message = {"role": role, "content": content, "timestamp": time.time()}
    if product_ids:
        message["product_ids"] = product_ids
    return message


def _welcome(language: str) -> dict:
    return {**_message("assistant", WELCOME_MESSAGES[language]), "id": "welcome"}


def create_session(db: DbClient, user_id: Optional[str], language: str = "en") -> Row:
    language = _language(language)
    return db.insert(
        "chat_sessions",
        {"user_id": user_id, "language": language, "messages": [_welcome(language)]},
    )


def get_session(db: DbClient, session_id: str, user_id: Optional[str] = None) -> Row:
    session = db.get("chat_sessions", session_id)
    if not session or (session["user_id"] and session["user_id"] != user_id):
        raise NotFoundError("Chat session not found")
    return session


def clear_session(db: DbClient, session_id: str, user_id: Optional[str] = None) -> Row:
    session = get_session(db, session_id, user_id)
    return db.update(
        "chat_sessions", session_id, {"messages": [_welcome(session["language"])]}
    )


def set_language(db: DbClient, session_id: str, language: str, user_id: Optional[str] = None) -> Row:
    get_session(db, session_id, user_id)
    return db.update("chat_sessions", session_id, {"language": _language(language)})


def _catalog(db: DbClient) -> list[Row]:
    return db.select("herbs", order_by="name", limit=CATALOG_CONTEXT_LIMIT)


def build_system_prompt(db: DbClient, language: str, herbs: Optional[list[Row]] = None) -> str:
    herbs = _catalog(db) if herbs is None else herbs
    categories = {c["id"]: c["name"] for c in db.select("product_categories")}
    return prompts.make_support_prompt(language, prompts.make_herb_context(herbs, categories))


def conversation_history(messages: list[dict]) -> list[dict]:
    """Messages sent to the model: everything but the welcome message."""
    return [
        {"role": m["role"], "content": m["content"]}
        for m in messages
        if m.get("id") != "welcome" and m["role"] in ("user", "assistant")
    ]


def post_message(
    db: DbClient,
    model: ChatModel,
    session_id: str,
    content: str,
    user_id: Optional[str] = None,
) -> dict:
    """
    Appends the user's message, asks the model for a reply and stores it.

    Returns:
        dict: The assistant message ("content", "product_ids") and the
        products it refers to.
    """
    session = get_session(db, session_id, user_id)
    content = validate_input(content, MAX_USER_MESSAGE_LENGTH)
    if not content:
        raise ValidationFailed("Message is required")

    messages = list(session["messages"]) + [_message("user", content)]
    herbs = _catalog(db)
    system_prompt = build_system_prompt(db, session["language"], herbs)

    try:
        reply = model.reply(system_prompt, conversation_history(messages))
    except Exception as exc:
        logger.exception("Chat model call failed for session %s", session_id)
        raise ExternalServiceError("AI service temporarily unavailable. Please try again later.") from exc
    if reply is None:
        raise ExternalServiceError("AI service temporarily unavailable. Please try again later.")

    catalog = rows_by_id(herbs)
    product_ids = []
    for product_id in reply.product_ids:
        if product_id in catalog and product_id not in product_ids:
            product_ids.append(product_id)
        elif product_id not in catalog:
            logger.debug("Dropping unknown product id %s from chat reply", product_id)

    text = (reply.message or "").strip()
    if not text:
        text = PRODUCT_CARDS_FALLBACK if product_ids else EMPTY_REPLY_FALLBACK

    assistant = _message("assistant", text, product_ids)
    messages.append(assistant)
    db.update("chat_sessions", session_id, {"messages": messages})
    return {
        "message": assistant,
        "products": [catalog[pid] for pid in product_ids],
    }


def escalate(
    db: DbClient,
    user_id: Optional[str],
    request: dict,
    session_id: Optional[str] = None,
) -> dict:
    """
    Hands the conversation to human support.

    Known patients get a support message on their own thread with the chat
    transcript appended; everyone else gets a guest ticket with the transcript
    stored alongside.
    """
    email = (request.get("email") or "").strip().lower()
    subject = validate_input(request.get("subject"), 200)
    body = validate_input(request.get("message_body"), 2000)
    if not email or not subject or not body:
        raise ValidationFailed("Email, subject, and message are required")
    if not is_valid_email(email):
        raise ValidationFailed("Invalid email address")
    if len(subject) < 5:
        raise ValidationFailed("Subject must be at least 5 characters")
    if len(body) < 10:
        raise ValidationFailed("Message must be at least 10 characters")
    full_name = validate_input(request.get("full_name"), 100) or None

    history = None
    if request.get("include_chat_history", True):
        if session_id:
            history = conversation_history(get_session(db, session_id, user_id)["messages"])
        elif request.get("chat_history"):
            history = request["chat_history"]

    patient = patients.find_patient_for_user(db, user_id)
    if patient:
        transcript = (
            "\n\n--- AI Chat History ---\n" + json.dumps(history, indent=2, ensure_ascii=False)
            if history
            else ""
        )
        ticket = messaging.send_message(
            db,
            user_id,
            {
                "patient_id": patient["id"],
                "recipient_type": "support",
                "subject": subject,
                "message_body": body + transcript,
            },
        )
        ticket_type = "patient"
    else:
        ticket = messaging.create_guest_message(
            db,
            {
                "user_id": user_id,
                "email": email,
                "full_name": full_name,
                "subject": subject,
                "message_body": body,
                "chat_history": history,
            },
        )
        ticket_type = "guest"
    logger.info("Created %s support ticket %s", ticket_type, ticket["id"])
    return {
        "success": True,
        "ticket_id": ticket["id"],
        "ticket_type": ticket_type,
        "message": ESCALATION_CONFIRMATION,
    }
