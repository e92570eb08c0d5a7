"""Small Discord HTTP client used by the whitelist service.

The adapter uses :mod:`httpx` to talk to Discord's HTTP API, which keeps the
membership lookups usable (and testable) without a gateway connection.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from .base import MemberSource

log = logging.getLogger("whitelist.discord")

MAX_CONCURRENCY = 5
MAX_RETRIES = 3


class DiscordAdapter(MemberSource):
    """Adapter that sends requests directly to the Discord HTTP API."""

    api_base = "https://discord.com/api/v10"

    def __init__(
        self,
        token: str,
        guild_id: str,
        client: httpx.AsyncClient | None = None,
        concurrency: int = MAX_CONCURRENCY,
        max_retries: int = MAX_RETRIES,
        retry_delay: float = 1.0,
    ) -> None:
        """Store authentication ``token``, the guild and optional ``client``."""
        self.token = token
        self.guild_id = str(guild_id)
        self.client = client or httpx.AsyncClient()
        self.concurrency = concurrency
        self.max_retries = max_retries
        self.retry_delay = retry_delay

    @property
    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bot {self.token}"}

    # ------------------------------------------------------------------
    async def send_message(
        self, channel_id: str, content: str, embed: dict[str, Any] | None = None
    ) -> None:
        """Send a message to a channel.

        Parameters
        ----------
        channel_id:
            Identifier of the Discord channel.
        content:
            Message body to send.
        embed:
            Optional embed payload in Discord's JSON shape.

        """
        url = f"{self.api_base}/channels/{channel_id}/messages"
        payload: dict[str, Any] = {
            "content": content,
            "allowed_mentions": {"parse": []},
        }
        if embed:
            payload["embeds"] = [embed]
        response = await self.client.post(url, json=payload, headers=self._headers)
        response.raise_for_status()

    async def _get(self, url: str) -> httpx.Response:
        """GET ``url``, waiting out rate limits and retrying server errors."""
        for attempt in range(self.max_retries + 1):
            response = await self.client.get(url, headers=self._headers)
            if attempt == self.max_retries:
                break
            if response.status_code == 429:
                delay = _retry_after(response)
                log.warning("Rate limited on %s, retrying in %.2fs", url, delay)
            elif response.status_code >= 500:
                delay = self.retry_delay * 2**attempt
                log.warning("%s answered %d, retrying", url, response.status_code)
            else:
                break
            await asyncio.sleep(delay)
        return response

    async def fetch_member(self, user_id: str) -> dict[str, Any] | None:
        """Return the guild member object for ``user_id`` or ``None``."""
        url = f"{self.api_base}/guilds/{self.guild_id}/members/{user_id}"
        response = await self._get(url)
        if response.status_code == 404:
            return None
        response.raise_for_status()
        return response.json()

    async def fetch_members(self, user_ids: list[str]) -> dict[str, set[str]]:
        """Return ``user id -> role ids`` for the members that still exist.

        At most ``concurrency`` lookups are in flight at a time.
        """
        limit = asyncio.Semaphore(self.concurrency)

        async def fetch(uid: str) -> dict[str, Any] | None:
            async with limit:
                return await self.fetch_member(uid)

        members = await asyncio.gather(*(fetch(uid) for uid in user_ids))
        return {
            str(uid): {str(role) for role in member.get("roles", [])}
            for uid, member in zip(user_ids, members)
            if member is not None
        }

    async def close(self) -> None:
        """Close the underlying :class:`httpx.AsyncClient`."""
        await self.client.aclose()


def _retry_after(response: httpx.Response) -> float:
    try:
        return float(response.json()["retry_after"])
    except (ValueError, KeyError, TypeError):
        return float(response.headers.get("Retry-After", 1))
