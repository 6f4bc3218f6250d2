"""Shared building blocks for LINE message payloads."""

from __future__ import annotations

from datetime import date, time
from typing import Any, Dict

MSG_PARTICIPANT_NOT_FOUND = "ไม่พบข้อมูลของคุณในระบบ กรุณาติดต่อผู้ดูแล"
MSG_MEETING_NOT_FOUND = "ไม่พบข้อมูล Meeting นี้"
MSG_GENERIC_ERROR = "เกิดข้อผิดพลาด กรุณาลองใหม่"
MSG_NOT_AUTHORIZED = "คุณไม่มีสิทธิ์ดำเนินการนี้"
MSG_IDENTITY_MISMATCH = "ไม่สามารถดำเนินการได้ กรุณาติดต่อผู้ดูแลระบบ"
MSG_APPLICANT_NOT_FOUND = "ไม่พบข้อมูลผู้สมัครในระบบ"
MSG_ALREADY_PROCESSED = "คำขอนี้ได้รับการดำเนินการแล้ว"

_WEEKDAYS = ("จันทร์", "อังคาร", "พุธ", "พฤหัสบดี", "ศุกร์", "เสาร์", "อาทิตย์")
_WEEKDAYS_SHORT = ("จ.", "อ.", "พ.", "พฤ.", "ศ.", "ส.", "อา.")
_MONTHS = (
    "มกราคม",
    "กุมภาพันธ์",
    "มีนาคม",
    "เมษายน",
    "พฤษภาคม",
    "มิถุนายน",
    "กรกฎาคม",
    "สิงหาคม",
    "กันยายน",
    "ตุลาคม",
    "พฤศจิกายน",
    "ธันวาคม",
)
_MONTHS_SHORT = (
    "ม.ค.",
    "ก.พ.",
    "มี.ค.",
    "เม.ย.",
    "พ.ค.",
    "มิ.ย.",
    "ก.ค.",
    "ส.ค.",
    "ก.ย.",
    "ต.ค.",
    "พ.ย.",
    "ธ.ค.",
)
BUDDHIST_ERA_OFFSET = 543


def format_thai_date(value: date | None) -> str:
    """Long Thai date, e.g. ``วันพฤหัสบดีที่ 22 ตุลาคม 2569``."""

    if value is None:
        return "-"
    weekday = _WEEKDAYS[value.weekday()]
    month = _MONTHS[value.month - 1]
    return f"วัน{weekday}ที่ {value.day} {month} {value.year + BUDDHIST_ERA_OFFSET}"


def format_thai_short_date(value: date | None) -> str:
    """Short Thai date, e.g. ``พฤ. 22 ต.ค.``."""

    if value is None:
        return "N/A"
    return f"{_WEEKDAYS_SHORT[value.weekday()]} {value.day} {_MONTHS_SHORT[value.month - 1]}"


def format_meeting_time(value: time | None) -> str:
    if value is None:
        return "ตามกำหนด"
    return value.strftime("%H:%M") + " น."


def text_message(text: str) -> Dict[str, Any]:
    return {"type": "text", "text": text}


def text_block(text: str, **style: Any) -> Dict[str, Any]:
    block: Dict[str, Any] = {"type": "text", "text": text}
    block.update(style)
    return block


def postback_button(label: str, data: str, *, style: str = "secondary", **extra: Any) -> Dict[str, Any]:
    action: Dict[str, Any] = {"type": "postback", "label": label, "data": data}
    display_text = extra.pop("display_text", None)
    if display_text:
        action["displayText"] = display_text
    button: Dict[str, Any] = {"type": "button", "style": style, "action": action}
    button.update(extra)
    return button


def uri_button(label: str, uri: str, *, style: str = "primary", **extra: Any) -> Dict[str, Any]:
    button: Dict[str, Any] = {"type": "button", "style": style, "action": {"type": "uri", "label": label, "uri": uri}}
    button.update(extra)
    return button


def flex_message(alt_text: str, bubble: Dict[str, Any]) -> Dict[str, Any]:
    return {"type": "flex", "altText": alt_text, "contents": bubble}
