"""Stream Chat provider wrapper.

The orchestrator needs three calls: upsert both participants, create a
channel with both as members, and issue client tokens. SDK exceptions are
wrapped in MessagingProviderError so callers never import stream_chat.
"""

from __future__ import annotations

import logging

from stream_chat import StreamChat
from stream_chat.base.exceptions import StreamAPIException

logger = logging.getLogger(__name__)

CHANNEL_TYPE = "messaging"


class MessagingProviderError(Exception):
    """A Stream API call failed."""


def channel_id_for_project(project_id: str) -> str:
    """Deterministic channel id: one channel per project."""
    return f"project_{project_id}"


class StreamMessaging:
    """Server-side Stream Chat operations."""

    def __init__(self, client: StreamChat):
        self._client = client

    @classmethod
    def from_settings(cls, settings) -> StreamMessaging:
        client = StreamChat(
            api_key=settings.stream_api_key,
            api_secret=settings.stream_api_secret,
            timeout=settings.provider_timeout_seconds,
        )
        return cls(client)

    def upsert_users(self, *user_ids: str) -> None:
        try:
            self._client.upsert_users([{"id": uid} for uid in user_ids])
        except (StreamAPIException, OSError) as e:
            raise MessagingProviderError(f"stream upsert_users failed: {e}") from e

    def create_channel(self, channel_id: str, created_by: str, members: list[str]) -> None:
        channel = self._client.channel(CHANNEL_TYPE, channel_id, data={"members": members})
        try:
            channel.create(created_by)
        except (StreamAPIException, OSError) as e:
            raise MessagingProviderError(f"stream create channel {channel_id} failed: {e}") from e
        logger.info("Stream channel ready: %s (members=%d)", channel_id, len(members))

    def create_token(self, user_id: str) -> str:
        return self._client.create_token(user_id)
