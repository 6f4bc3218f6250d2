"""Short-lived per-user conversation state for multi-turn chat flows."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Callable, Dict, Protocol

STEP_AWAITING_LEAVE_REASON = "awaiting_leave_reason"
DEFAULT_TIMEOUT = timedelta(minutes=5)


@dataclass(frozen=True)
class ConversationState:
    tenant_id: str
    user_id: str
    step: str
    action: str
    payload: Dict[str, Any] = field(default_factory=dict)
    expires_at: float = 0.0


class ConversationStore(Protocol):
    """One conversation slot per (tenant, user)."""

    def start(
        self,
        tenant_id: str,
        user_id: str,
        *,
        step: str,
        action: str,
        payload: Dict[str, Any] | None = None,
    ) -> ConversationState: ...

    def get(self, tenant_id: str, user_id: str) -> ConversationState | None: ...

    def clear(self, tenant_id: str, user_id: str) -> None: ...


def _key(tenant_id: str, user_id: str) -> str:
    return f"{tenant_id}:{user_id}"


class InMemoryConversationStore:
    """Process-local store guarded by a lock.

    State lives only as long as the process. Running more than one instance
    needs a shared store with TTL support behind the same interface.
    """

    def __init__(
        self,
        *,
        timeout: timedelta = DEFAULT_TIMEOUT,
        timer: Callable[[], float] | None = None,
    ) -> None:
        if timeout.total_seconds() <= 0:
            raise ValueError("Conversation timeout must be greater than zero seconds.")

        self._timeout = timeout
        self._timer = timer or time.monotonic
        self._lock = threading.Lock()
        self._states: Dict[str, ConversationState] = {}

    @property
    def timeout(self) -> timedelta:
        return self._timeout

    def start(
        self,
        tenant_id: str,
        user_id: str,
        *,
        step: str,
        action: str,
        payload: Dict[str, Any] | None = None,
    ) -> ConversationState:
        """Open (or overwrite) the conversation for *user_id* in *tenant_id*."""

        state = ConversationState(
            tenant_id=tenant_id,
            user_id=user_id,
            step=step,
            action=action,
            payload=dict(payload or {}),
            expires_at=self._timer() + self._timeout.total_seconds(),
        )
        with self._lock:
            self._states[_key(tenant_id, user_id)] = state
        return state

    def get(self, tenant_id: str, user_id: str) -> ConversationState | None:
        """Return the live state, dropping it first if it has expired."""

        key = _key(tenant_id, user_id)
        now = self._timer()
        with self._lock:
            state = self._states.get(key)
            if state is None:
                return None
            if now > state.expires_at:
                del self._states[key]
                return None
            return state

    def clear(self, tenant_id: str, user_id: str) -> None:
        with self._lock:
            self._states.pop(_key(tenant_id, user_id), None)

    def purge_expired(self) -> int:
        """Drop every expired entry and return how many were removed."""

        now = self._timer()
        with self._lock:
            expired = [key for key, state in self._states.items() if now > state.expires_at]
            for key in expired:
                del self._states[key]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._states)
