"""
Shared helpers for route modules: role gates and request metadata.
"""

from __future__ import annotations

from fastapi import Depends, HTTPException, Request

from ttm_backend.dependencies import Actor, get_actor


def require_role(*roles: str):
    """Dependency that admits callers whose forwarded role is in `roles` (admins always pass)."""

    def dependency(actor: Actor = Depends(get_actor)) -> Actor:
        if actor.is_admin or actor.role in roles:
            return actor
        raise HTTPException(status_code=403, detail="Insufficient permissions")

    return dependency


def require_user(actor: Actor = Depends(get_actor)) -> Actor:
    if not actor.user_id:
        raise HTTPException(status_code=401, detail="Sign-in required")
    return actor


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.headers.get("x-real-ip") or (
        request.client.host if request.client else "unknown"
    )
