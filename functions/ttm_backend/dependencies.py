"""
Dependency wiring for the FastAPI app.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import Header

from ttm_backend.config import get_settings
from ttm_backend.db import DbClient, InMemoryDbClient, PostgresDbClient
from ttm_backend.notifications import (
    EmailSender,
    InMemoryEmailSender,
    InMemoryLineMessenger,
    LineMessagingClient,
    LineMessenger,
    ResendEmailSender,
)
from ttm_backend.queue import InMemoryJobQueue, JobQueue, RedisJobQueue
from ttm_backend.storage import InMemoryStorageClient, S3StorageClient, StorageClient
from ttm_models.chat import ChatModel, GeminiChatModel, OfflineChatModel

_db_client: DbClient | None = None
_storage_client: StorageClient | None = None
_queue_client: JobQueue | None = None
_email_sender: EmailSender | None = None
_line_messenger: LineMessenger | None = None
_chat_model: ChatModel | None = None


def get_db_client() -> DbClient:
    """
    Return a singleton DB client so state persists across requests.
    """
    global _db_client
    if _db_client:
        return _db_client

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.database_url:
        _db_client = InMemoryDbClient()
    else:
        _db_client = PostgresDbClient(settings.database_url)
    return _db_client


def get_storage_client() -> StorageClient:
    global _storage_client
    if _storage_client:
        return _storage_client

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.storage_bucket:
        _storage_client = InMemoryStorageClient()
    else:
        _storage_client = S3StorageClient(
            bucket=settings.storage_bucket,
            region=settings.storage_region or "",
            endpoint=settings.storage_endpoint or "",
            access_key_id=settings.aws_access_key_id or "",
            secret_access_key=settings.aws_secret_access_key or "",
        )
    return _storage_client


def get_queue_client() -> JobQueue:
    """
    Return a singleton queue client for dispatching notification jobs.
    """
    global _queue_client
    if _queue_client:
        return _queue_client

    settings = get_settings()
    if settings.redis_url and not settings.use_in_memory_backends:
        _queue_client = RedisJobQueue(
            url=settings.redis_url,
            queue_key=settings.redis_queue_key,
        )
    else:
        _queue_client = InMemoryJobQueue()
    return _queue_client


def get_email_sender() -> EmailSender:
    global _email_sender
    if _email_sender:
        return _email_sender

    settings = get_settings()
    if settings.resend_api_key and not settings.use_in_memory_backends:
        _email_sender = ResendEmailSender(
            api_key=settings.resend_api_key, default_sender=settings.email_from
        )
    else:
        _email_sender = InMemoryEmailSender(default_sender=settings.email_from)
    return _email_sender


def get_line_messenger() -> LineMessenger:
    global _line_messenger
    if _line_messenger:
        return _line_messenger

    settings = get_settings()
    if settings.line_channel_access_token and not settings.use_in_memory_backends:
        _line_messenger = LineMessagingClient(settings.line_channel_access_token)
    else:
        _line_messenger = InMemoryLineMessenger()
    return _line_messenger


def get_chat_model() -> ChatModel:
    global _chat_model
    if _chat_model:
        return _chat_model

    settings = get_settings()
    if settings.gemini_api_key and not settings.use_in_memory_backends:
        _chat_model = GeminiChatModel(
            api_key=settings.gemini_api_key, model=settings.chat_model
        )
    else:
        _chat_model = OfflineChatModel()
    return _chat_model


@dataclass
class Actor:
    """Caller identity as forwarded by the identity gateway."""

    user_id: Optional[str]
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def get_actor(
    x_user_id: Optional[str] = Header(default=None),
    x_user_role: Optional[str] = Header(default=None),
) -> Actor:
    return Actor(user_id=x_user_id, role=(x_user_role or "guest").lower())
