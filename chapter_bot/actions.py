"""Postback action names and helpers for encoding/decoding their payloads."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Mapping
from urllib.parse import parse_qs, urlencode

RSVP_CONFIRM_ACTION = "rsvp_confirm"
RSVP_SUBSTITUTE_ACTION = "rsvp_substitute"
RSVP_LEAVE_ACTION = "rsvp_leave"
APPLY_MEMBER_ACTION = "apply_member"
SKIP_APPLY_ACTION = "skip_apply"
APPROVE_MEMBER_ACTION = "approve_member"
REJECT_MEMBER_ACTION = "reject_member"

MAX_POSTBACK_DATA_LENGTH = 300


@dataclass(frozen=True)
class PostbackAction:
    """Parsed ``action=...&key=value`` postback payload."""

    action: str
    params: Dict[str, str] = field(default_factory=dict)

    def require(self, name: str) -> str:
        value = self.params.get(name, "").strip()
        if not value:
            raise ValueError(f"Postback is missing '{name}'.")
        return value


def build_postback_data(action: str, **params: str) -> str:
    """Encode *action* and its identifying params as a query string."""

    payload = urlencode({"action": action, **params})
    if len(payload) > MAX_POSTBACK_DATA_LENGTH:
        raise ValueError("Postback data exceeds the LINE size limit.")
    return payload


def parse_postback_data(raw: str | None) -> PostbackAction:
    """Parse postback data into a structured action."""

    if not raw:
        raise ValueError("Invalid postback payload.")

    parsed: Mapping[str, list[str]] = parse_qs(raw, keep_blank_values=True)
    action = (parsed.get("action") or [""])[0].strip()
    if not action:
        raise ValueError("Invalid postback payload.")

    params = {key: values[0] for key, values in parsed.items() if key != "action" and values}
    return PostbackAction(action=action, params=params)
