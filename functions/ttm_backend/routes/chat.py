"""
AI support assistant routes: sessions, messages and escalation to humans.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from ttm_backend.db import DbClient
from ttm_backend.dependencies import Actor, get_actor, get_chat_model, get_db_client
from ttm_backend.schemas import (
    ChatLanguageUpdate,
    ChatMessageRequest,
    ChatSessionCreate,
    EscalationRequest,
    EscalationResponse,
)
from ttm_backend.services import chat_support
from ttm_models.chat import ChatModel

router = APIRouter(prefix="/chat", tags=["chat"])


@router.post("/sessions", status_code=201)
def create_session(
    payload: ChatSessionCreate,
    actor: Actor = Depends(get_actor),
    db: DbClient = Depends(get_db_client),
):
    return chat_support.create_session(db, actor.user_id, payload.language)


@router.get("/sessions/{session_id}")
def get_session(session_id: str, actor: Actor = Depends(get_actor), db: DbClient = Depends(get_db_client)):
    return chat_support.get_session(db, session_id, actor.user_id)


@router.post("/sessions/{session_id}/messages")
def post_message(
    session_id: str,
    payload: ChatMessageRequest,
    actor: Actor = Depends(get_actor),
    db: DbClient = Depends(get_db_client),
    model: ChatModel = Depends(get_chat_model),
):
    return chat_support.post_message(db, model, session_id, payload.content, actor.user_id)


@router.post("/sessions/{session_id}/clear")
def clear_session(session_id: str, actor: Actor = Depends(get_actor), db: DbClient = Depends(get_db_client)):
    return chat_support.clear_session(db, session_id, actor.user_id)


@router.put("/sessions/{session_id}/language")
def set_language(
    session_id: str,
    payload: ChatLanguageUpdate,
    actor: Actor = Depends(get_actor),
    db: DbClient = Depends(get_db_client),
):
    return chat_support.set_language(db, session_id, payload.language, actor.user_id)


@router.post("/escalate", status_code=201, response_model=EscalationResponse)
def escalate(
    payload: EscalationRequest,
    actor: Actor = Depends(get_actor),
    db: DbClient = Depends(get_db_client),
):
    return chat_support.escalate(
        db, actor.user_id, payload.model_dump(exclude={"session_id"}), payload.session_id
    )
