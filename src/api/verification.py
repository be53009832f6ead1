"""Identity verification API route."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from src.api.deps import Services, get_services
from src.security.auth import current_user
from src.store.models import User

router = APIRouter(prefix="/verify", tags=["identity"])


@router.post("/start")
def start_verification(
    user: User = Depends(current_user),
    services: Services = Depends(get_services),
):
    """Open a Didit session for the caller and mark them pending."""
    session = services.verification.start(user)
    return {"verification_url": session.verification_url, "session_id": session.session_id}
