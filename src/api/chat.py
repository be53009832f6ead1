"""Chat API routes — client tokens and the caller's conversations."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from src.api.deps import Services, get_services
from src.chat.conversations import list_conversations
from src.security.auth import current_user
from src.store.models import User

router = APIRouter(prefix="/chat", tags=["chat"])


@router.post("/token")
def chat_token(
    user: User = Depends(current_user),
    services: Services = Depends(get_services),
):
    """Issue a Stream client token for the caller."""
    return {"user_id": user.id, "token": services.messaging.create_token(user.id)}


@router.get("/conversations")
def conversations(
    user: User = Depends(current_user),
    services: Services = Depends(get_services),
):
    """Conversations for the caller's accepted proposals, newest first."""
    return list_conversations(services.store, user)
