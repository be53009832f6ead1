"""Proposal-acceptance orchestrator — at most one channel per accepted proposal.

Driven by the record store's after-update hook on proposals:

    proposal record committed
      -> proposal_accepted_from_record()   (trigger: live AND status == accepted)
      -> ProposalAccepted event
      -> ProposalAcceptanceOrchestrator.handle()

handle() holds a per-proposal lock around the whole check-then-act:
1. live conversation exists for the proposal? -> already provisioned, done
2. resolve the project
3. derive channel id from the project id
4. upsert client + freelancer with Stream
5. create the channel with both as members
6. persist the Conversation mapping (last, so failure leaves nothing partial)

Any failure propagates to the hook caller. Re-saving the accepted proposal
re-fires the hook and is the retry path. The store's unique constraint on
live conversations per proposal backs the lock across processes.
"""

from __future__ import annotations

import logging
from contextlib import nullcontext
from dataclasses import dataclass
from enum import Enum
from typing import Any

from src.chat.stream_client import MessagingProviderError, channel_id_for_project
from src.errors import Conflict, NotFound, PersistenceFailure, UpstreamFailure
from src.locks import LockTimeout, LockUnavailable
from src.store.base import DuplicateRecord, RecordNotFound, RecordStore, StoreError
from src.store.models import (
    CONVERSATIONS,
    PROJECTS,
    PROPOSALS,
    Conversation,
    Project,
    Proposal,
    ProposalStatus,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProposalAccepted:
    """Published after a proposal update commits with status accepted."""

    proposal_id: str
    project_id: str
    client_id: str
    freelancer_id: str


class Outcome(str, Enum):
    PROVISIONED = "provisioned"
    ALREADY_PROVISIONED = "already_provisioned"


def proposal_accepted_from_record(record: dict[str, Any] | None) -> ProposalAccepted | None:
    """The trigger condition: a live proposal whose status now reads accepted."""
    if not record:
        return None
    proposal = Proposal.from_record(record)
    if proposal.is_deleted or proposal.status != ProposalStatus.ACCEPTED.value:
        return None
    return ProposalAccepted(
        proposal_id=proposal.id,
        project_id=proposal.project_id,
        client_id=proposal.client_id,
        freelancer_id=proposal.freelancer_id,
    )


class ProposalAcceptanceOrchestrator:
    """Provisions a Stream channel and a Conversation record exactly once."""

    def __init__(self, store: RecordStore, messaging, locks=None):
        self._store = store
        self._messaging = messaging
        self._locks = locks

    def on_proposal_updated(self, record: dict[str, Any]) -> Outcome | None:
        """After-update hook entry point; ignores anything but an acceptance."""
        event = proposal_accepted_from_record(record)
        if event is None:
            return None
        return self.handle(event)

    def handle(self, event: ProposalAccepted) -> Outcome:
        guard = self._locks.hold(f"proposal:{event.proposal_id}") if self._locks else nullcontext()
        try:
            with guard:
                return self._provision(event)
        except LockTimeout as e:
            raise Conflict(f"proposal {event.proposal_id} is being provisioned") from e
        except LockUnavailable as e:
            raise PersistenceFailure("proposal lock unavailable") from e

    def existing_conversation(self, proposal_id: str) -> Conversation | None:
        try:
            record = self._store.find_first(CONVERSATIONS, proposal_id=proposal_id, is_deleted=False)
        except StoreError as e:
            raise PersistenceFailure("failed to load conversation") from e
        return Conversation.from_record(record) if record else None

    def _provision(self, event: ProposalAccepted) -> Outcome:
        if self.existing_conversation(event.proposal_id) is not None:
            logger.info("Proposal %s already has a conversation, skipping", event.proposal_id)
            return Outcome.ALREADY_PROVISIONED

        try:
            project = Project.from_record(self._store.get(PROJECTS, event.project_id))
        except RecordNotFound as e:
            raise NotFound("project not found") from e
        except StoreError as e:
            raise PersistenceFailure("failed to load project") from e

        channel_id = channel_id_for_project(project.id)
        try:
            self._messaging.upsert_users(event.client_id, event.freelancer_id)
            self._messaging.create_channel(
                channel_id,
                created_by=event.client_id,
                members=[event.client_id, event.freelancer_id],
            )
        except MessagingProviderError as e:
            raise UpstreamFailure("failed to provision chat channel") from e

        conversation = Conversation(
            project_id=project.id,
            proposal_id=event.proposal_id,
            stream_channel_id=channel_id,
        )
        data = conversation.to_record()
        data.pop("id")
        try:
            self._store.insert(CONVERSATIONS, data)
        except DuplicateRecord:
            logger.warning("Proposal %s: conversation created concurrently", event.proposal_id)
            return Outcome.ALREADY_PROVISIONED
        except StoreError as e:
            raise PersistenceFailure("failed to save conversation") from e

        logger.info(
            "Proposal %s accepted: channel %s provisioned for project %s",
            event.proposal_id,
            channel_id,
            project.id,
        )
        return Outcome.PROVISIONED


def register_acceptance_hook(store: RecordStore, orchestrator: ProposalAcceptanceOrchestrator) -> None:
    """Subscribe the orchestrator to committed proposal updates."""
    store.on_after_update(PROPOSALS, orchestrator.on_proposal_updated)
