"""Session wiring for the MentorLink engines.

A :class:`MentorshipSession` owns every piece of session-scoped state (the
decryption cache and the inbox lists) so their lifetime ends with the session
object rather than with the process.
"""

from __future__ import annotations

from mentorlink.core.settings import Settings, settings
from mentorlink.services.api_client import MentorshipApiClient, get_api_client
from mentorlink.services.connections import ConnectionService
from mentorlink.services.counterparts import CounterpartResolver
from mentorlink.services.inbox import RequestInboxAggregator
from mentorlink.services.profile_decryptor import DecryptionCache, ProfileDecryptor


class MentorshipSession:
    """Per-viewer bundle of the decryptor, inbox and connection service."""

    def __init__(
        self,
        viewer_id: str | None = None,
        client: MentorshipApiClient | None = None,
        config: Settings | None = None,
    ) -> None:
        self.viewer_id = viewer_id
        self.client = client or get_api_client()
        self.cache = DecryptionCache()
        self.decryptor = ProfileDecryptor(self.client, self.cache)
        self.counterparts = CounterpartResolver(self.decryptor, config or settings)
        self.inbox = RequestInboxAggregator(self.client, self.counterparts, viewer_id=viewer_id)
        self.connections = ConnectionService(self.client)

    async def close(self) -> None:
        """Release the HTTP client."""
        await self.client.close()

    async def __aenter__(self) -> MentorshipSession:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()
