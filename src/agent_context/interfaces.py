"""
Collaborator interfaces for context assembly.

Protocols keep the assembler independent of any concrete platform adapter.
Optional capabilities are separate protocols so that their presence can be
checked at runtime.
"""

from typing import Protocol, runtime_checkable

from .models import PlatformEmoji, PlatformMessage


@runtime_checkable
class MessageFetcher(Protocol):
    """Recent message fetching, implemented by every platform adapter"""

    async def fetch_recent_messages(
        self,
        channel_id: str,
        limit: int,
    ) -> list[PlatformMessage]:
        """
        Fetch recent messages from a channel

        Args:
            channel_id: Channel identifier
            limit: Maximum number of messages

        Returns:
            Messages in chronological order (oldest first), at most ``limit``
        """
        ...


@runtime_checkable
class RelatedMessageSearcher(Protocol):
    """Optional search for messages related to a query within a guild"""

    async def search_related_messages(
        self,
        guild_id: str,
        channel_id: str,
        query: str,
        limit: int,
    ) -> list[PlatformMessage]:
        ...


@runtime_checkable
class EmojiFetcher(Protocol):
    """Optional listing of custom emojis"""

    async def fetch_emojis(self) -> list[PlatformEmoji]:
        ...


@runtime_checkable
class TokenEstimator(Protocol):
    """Approximate text cost: deterministic, never negative"""

    def count(self, text: str) -> int:
        ...
