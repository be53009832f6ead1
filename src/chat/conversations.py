"""Conversation listing for the chat UI."""

from __future__ import annotations

import logging
from typing import Any

from src.errors import PersistenceFailure
from src.store.base import RecordStore, StoreError
from src.store.models import (
    CONVERSATIONS,
    PROJECTS,
    PROPOSALS,
    USERS,
    Conversation,
    Project,
    Proposal,
    ProposalStatus,
    User,
)

logger = logging.getLogger(__name__)

_MAX_PROPOSALS = 200


def list_conversations(store: RecordStore, user: User) -> list[dict[str, Any]]:
    """Conversations for every accepted, live proposal the user is party to.

    Newest proposal first. Proposals accepted but not yet provisioned are
    skipped.
    """
    try:
        proposals = {
            r["id"]: Proposal.from_record(r)
            for side in ("client_id", "freelancer_id")
            for r in store.find_all(
                PROPOSALS,
                sort="-created",
                limit=_MAX_PROPOSALS,
                status=ProposalStatus.ACCEPTED.value,
                is_deleted=False,
                **{side: user.id},
            )
        }
        ordered = sorted(proposals.values(), key=lambda p: p.created, reverse=True)[:_MAX_PROPOSALS]

        response = []
        for proposal in ordered:
            record = store.find_first(CONVERSATIONS, proposal_id=proposal.id, is_deleted=False)
            if record is None:
                continue
            conversation = Conversation.from_record(record)
            project = Project.from_record(store.get(PROJECTS, proposal.project_id))
            counterpart_id = proposal.client_id if proposal.freelancer_id == user.id else proposal.freelancer_id
            counterpart = User.from_record(store.get(USERS, counterpart_id))
            response.append({
                "conversation_id": conversation.id,
                "stream_channel_id": conversation.stream_channel_id,
                "proposal_id": proposal.id,
                "project": {"id": project.id, "title": project.title, "status": project.status},
                "counterpart": {"id": counterpart.id, "name": counterpart.name, "role": counterpart.role},
            })
    except StoreError as e:
        raise PersistenceFailure("failed to load conversations") from e
    return response
