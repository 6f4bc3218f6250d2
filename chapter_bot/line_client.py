"""Thin wrapper around the LINE Messaging API push and reply endpoints."""

from __future__ import annotations

from typing import Any, Mapping, Sequence

import httpx

from chapter_bot.config import DEFAULT_LINE_API_BASE

DEFAULT_TIMEOUT = 10.0

Message = Mapping[str, Any]


class LineApiError(Exception):
    """Raised when the LINE API rejects a call or cannot be reached."""

    def __init__(self, message: str, *, status_code: int | None = None, body: str | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


def _as_list(messages: Message | Sequence[Message]) -> list[Message]:
    if isinstance(messages, Mapping):
        return [messages]
    return list(messages)


class LineClient:
    """Encapsulate LINE API interactions for one channel access token.

    A client built from an access token owns its connection pool and releases
    it on ``close()`` or when used as a context manager. An injected
    ``httpx.Client`` is left to its owner.
    """

    def __init__(
        self,
        *,
        access_token: str | None = None,
        client: httpx.Client | None = None,
        base_url: str = DEFAULT_LINE_API_BASE,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        if client is None and access_token is None:
            raise ValueError("Either an instantiated client or an access token must be provided.")

        self._owns_client = client is None
        self._client = client or httpx.Client(
            base_url=base_url,
            timeout=timeout,
            headers={"Authorization": f"Bearer {access_token}"},
            transport=transport,
        )

    @property
    def client(self) -> httpx.Client:
        """Expose the underlying HTTP client for advanced use cases."""

        return self._client

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> LineClient:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _request(self, method: str, endpoint: str, payload: Mapping[str, Any] | None = None) -> dict:
        try:
            response = self._client.request(method, endpoint, json=payload)
        except httpx.HTTPError as exc:
            raise LineApiError(f"LINE API request failed: {exc}") from exc

        if response.is_error:
            raise LineApiError(
                f"LINE API error ({response.status_code})",
                status_code=response.status_code,
                body=response.text,
            )

        if response.status_code == 204 or not response.content:
            return {}
        return response.json()

    def push(self, user_id: str, messages: Message | Sequence[Message]) -> dict:
        """Send *messages* to *user_id* outside of any inbound event."""

        return self._request("POST", "/bot/message/push", {"to": user_id, "messages": _as_list(messages)})

    def reply(self, reply_token: str, messages: Message | Sequence[Message]) -> dict:
        """Answer an inbound event using its one-time reply token."""

        return self._request(
            "POST",
            "/bot/message/reply",
            {"replyToken": reply_token, "messages": _as_list(messages)},
        )

    def get_bot_info(self) -> dict:
        return self._request("GET", "/bot/info")
