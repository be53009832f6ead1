"""Proposal status route.

Saving the status goes through ``RecordStore.update``; when the new status
is accepted the store's after-update hook provisions the chat channel. The
status write is committed before the hook runs, so a provisioning failure
(502) leaves the acceptance in place and re-saving retries it.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from src.api.deps import Services, get_services
from src.errors import NotFound, PermissionDenied, PersistenceFailure, ValidationFailed
from src.security.auth import current_user
from src.store.base import RecordNotFound, StoreError
from src.store.models import PROPOSALS, Proposal, ProposalStatus, User

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/proposals", tags=["proposals"])


class ProposalStatusBody(BaseModel):
    status: str


@router.patch("/{proposal_id}")
def update_proposal_status(
    proposal_id: str,
    body: ProposalStatusBody,
    user: User = Depends(current_user),
    services: Services = Depends(get_services),
):
    """Set a proposal's status; only the owning client may do this."""
    try:
        status = ProposalStatus(body.status.strip().lower())
    except ValueError as e:
        raise ValidationFailed("status must be one of sent, accepted, rejected") from e

    store = services.store
    try:
        proposal = Proposal.from_record(store.get(PROPOSALS, proposal_id))
    except RecordNotFound as e:
        raise NotFound("proposal not found") from e
    except StoreError as e:
        raise PersistenceFailure("failed to load proposal") from e

    if proposal.is_deleted:
        raise NotFound("proposal not found")
    if proposal.client_id != user.id:
        raise PermissionDenied("only the project's client can change this proposal")

    try:
        record = store.update(PROPOSALS, proposal.id, {"status": status.value})
    except StoreError as e:
        raise PersistenceFailure("failed to save proposal") from e

    logger.info("Proposal %s set to %s by %s", proposal.id, status.value, user.id)
    return {"id": record["id"], "status": record["status"]}
