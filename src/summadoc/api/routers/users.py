"""Caller account endpoints."""

from __future__ import annotations

from fastapi import APIRouter

from summadoc.api.deps import DocumentService
from summadoc.core.model import Membership
from summadoc.security.deps import CurrentUserId

router = APIRouter(prefix="/users", tags=["Users"])


@router.get("/me/membership")
async def get_membership(user_id: CurrentUserId, service: DocumentService) -> Membership:
    """When the caller registered and how many whole days ago."""
    return await service.get_membership(user_id)
