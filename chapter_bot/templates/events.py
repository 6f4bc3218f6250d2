"""Builders for meeting reminder and RSVP messages."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, time
from typing import Any, Dict, List, Literal

from chapter_bot.actions import (
    RSVP_CONFIRM_ACTION,
    RSVP_LEAVE_ACTION,
    RSVP_SUBSTITUTE_ACTION,
    build_postback_data,
)

from .common import (
    flex_message,
    format_meeting_time,
    format_thai_date,
    format_thai_short_date,
    postback_button,
    text_block,
    text_message,
    uri_button,
)

NotificationType = Literal["7_days", "1_day", "2_hours", "manual"]
RsvpOutcome = Literal["confirmed", "substitute", "leave"]

DEFAULT_THEME = "ประชุมประจำสัปดาห์"
LEAVE_REASON_SUGGESTIONS = ("ติดประชุมงาน", "ธุระส่วนตัว", "ไม่สบาย", "เดินทางต่างจังหวัด")


@dataclass(frozen=True)
class UrgencyStyle:
    title: str
    badge: str
    primary: str
    secondary: str
    badge_background: str


_URGENCY: Dict[str, UrgencyStyle] = {
    "2_hours": UrgencyStyle("Meeting เริ่มเร็วๆ นี้", "อีก 2 ชม.", "#E74C3C", "#C0392B", "#FADBD8"),
    "1_day": UrgencyStyle("Meeting พรุ่งนี้", "พรุ่งนี้", "#F39C12", "#D68910", "#FCF3CF"),
    "7_days": UrgencyStyle("Meeting สัปดาห์หน้า", "อีก 7 วัน", "#27AE60", "#1E8449", "#D5F5E3"),
    "manual": UrgencyStyle("แจ้งเตือน Meeting", "", "#8E44AD", "#6C3483", "#E8DAEF"),
}


def urgency_for(notification_type: str) -> UrgencyStyle:
    return _URGENCY.get(notification_type, _URGENCY["7_days"])


def _detail_row(icon: str, label: str, value: str, color: str) -> Dict[str, Any]:
    return {
        "type": "box",
        "layout": "horizontal",
        "spacing": "md",
        "margin": "md",
        "contents": [
            {
                "type": "box",
                "layout": "vertical",
                "width": "32px",
                "height": "32px",
                "cornerRadius": "16px",
                "backgroundColor": "#F0F4F8",
                "justifyContent": "center",
                "alignItems": "center",
                "contents": [text_block(icon, color=color, weight="bold", size="sm")],
            },
            {
                "type": "box",
                "layout": "vertical",
                "contents": [
                    text_block(label, color="#888888", size="xs"),
                    text_block(value, size="sm", weight="bold", wrap=True),
                ],
            },
        ],
    }


def _progress_section(confirmed_count: int, total_members: int, color: str) -> List[Dict[str, Any]]:
    if total_members <= 0:
        return []

    percent = round(confirmed_count / total_members * 100)
    return [
        {
            "type": "box",
            "layout": "vertical",
            "margin": "xl",
            "contents": [
                {
                    "type": "box",
                    "layout": "horizontal",
                    "contents": [
                        text_block("ยืนยันเข้าร่วมแล้ว", size="xs", color="#888888"),
                        text_block(f"{confirmed_count}/{total_members} คน", size="xs", color=color, align="end"),
                    ],
                },
                {
                    "type": "box",
                    "layout": "vertical",
                    "margin": "sm",
                    "height": "6px",
                    "backgroundColor": "#E8E8E8",
                    "cornerRadius": "3px",
                    "contents": [
                        {
                            "type": "box",
                            "layout": "vertical",
                            "width": f"{max(percent, 1)}%",
                            "height": "6px",
                            "backgroundColor": color,
                            "cornerRadius": "3px",
                            "contents": [],
                        }
                    ],
                },
            ],
        }
    ]


def build_event_reminder(
    *,
    meeting_id: str,
    meeting_date: date,
    meeting_time: time | None,
    chapter_name: str,
    member_name: str,
    notification_type: NotificationType,
    theme: str | None = None,
    venue: str | None = None,
    confirmed_count: int = 0,
    total_members: int = 0,
) -> Dict[str, Any]:
    """Build the meeting reminder card with RSVP buttons for one member."""

    style = urgency_for(notification_type)
    header_contents: List[Dict[str, Any]] = [
        text_block(style.title, color="#FFFFFF", weight="bold", size="lg"),
        text_block(chapter_name, color="#FFFFFF", size="xs"),
    ]
    if style.badge:
        header_contents.append(
            {
                "type": "box",
                "layout": "vertical",
                "margin": "md",
                "paddingAll": "4px",
                "cornerRadius": "12px",
                "backgroundColor": style.badge_background,
                "width": "96px",
                "contents": [text_block(style.badge, color=style.secondary, size="xs", weight="bold", align="center")],
            }
        )

    body_contents: List[Dict[str, Any]] = [
        text_block(f"สวัสดีครับ คุณ{member_name}", size="md", weight="bold", color="#333333", wrap=True),
        {"type": "separator", "margin": "md", "color": "#EEEEEE"},
        _detail_row("T", "หัวข้อ", theme or DEFAULT_THEME, style.primary),
        _detail_row("D", "วันที่", format_thai_date(meeting_date), style.primary),
        _detail_row("C", "เวลา", format_meeting_time(meeting_time), style.primary),
        _detail_row("P", "สถานที่", venue or "TBA", style.primary),
        *_progress_section(confirmed_count, total_members, style.primary),
    ]

    footer_contents: List[Dict[str, Any]] = [
        postback_button(
            "ยืนยันเข้าร่วม",
            build_postback_data(RSVP_CONFIRM_ACTION, meeting_id=meeting_id),
            style="primary",
            color=style.primary,
            display_text="ยืนยันเข้าร่วม Meeting",
        ),
        {
            "type": "box",
            "layout": "horizontal",
            "spacing": "sm",
            "margin": "md",
            "contents": [
                postback_button(
                    "หาตัวแทน",
                    build_postback_data(RSVP_SUBSTITUTE_ACTION, meeting_id=meeting_id),
                    height="sm",
                    flex=1,
                    display_text="ขอหาตัวแทน",
                ),
                postback_button(
                    "ขอลา",
                    build_postback_data(RSVP_LEAVE_ACTION, meeting_id=meeting_id),
                    height="sm",
                    flex=1,
                    display_text="ขอลา",
                ),
            ],
        },
    ]

    bubble = {
        "type": "bubble",
        "header": {
            "type": "box",
            "layout": "vertical",
            "paddingAll": "20px",
            "backgroundColor": style.primary,
            "contents": header_contents,
        },
        "body": {"type": "box", "layout": "vertical", "paddingAll": "20px", "contents": body_contents},
        "footer": {
            "type": "box",
            "layout": "vertical",
            "spacing": "md",
            "paddingAll": "20px",
            "backgroundColor": "#FAFAFA",
            "contents": footer_contents,
        },
    }
    return flex_message(f"{style.title}: {theme or DEFAULT_THEME}", bubble)


_RSVP_CONTENT: Dict[str, Dict[str, str]] = {
    "confirmed": {"icon": "O", "color": "#27AE60", "title": "ยืนยันเข้าร่วมแล้ว", "footer": "แล้วพบกันนะครับ"},
    "substitute": {"icon": "S", "color": "#F39C12", "title": "บันทึกตัวแทนแล้ว", "footer": ""},
    "leave": {"icon": "L", "color": "#E74C3C", "title": "บันทึกการลาแล้ว", "footer": "ได้แจ้งผู้ดูแลแล้ว"},
}


def _rsvp_body_text(
    outcome: RsvpOutcome,
    meeting_date: date | None,
    *,
    leave_reason: str | None,
    substitute_name: str | None,
    substitute_phone: str | None,
) -> str:
    short_date = format_thai_short_date(meeting_date)
    if outcome == "confirmed":
        return f"ขอบคุณที่ยืนยันเข้าร่วม Meeting\nวันที่ {short_date}"
    if outcome == "substitute":
        if substitute_name:
            return f"ชื่อตัวแทน: {substitute_name}\nเบอร์โทร: {substitute_phone or '-'}"
        return "กำลังเปิดหน้าลงทะเบียนตัวแทน..."
    lines = [f"Meeting วันที่ {short_date}"]
    if leave_reason:
        lines.append(f"เหตุผล: {leave_reason}")
    return "\n".join(lines)


def build_rsvp_confirmation(
    *,
    outcome: RsvpOutcome,
    meeting_date: date | None,
    member_name: str,
    theme: str | None = None,
    leave_reason: str | None = None,
    substitute_name: str | None = None,
    substitute_phone: str | None = None,
) -> Dict[str, Any]:
    """Build the reply acknowledging an RSVP outcome."""

    if outcome not in _RSVP_CONTENT:
        raise ValueError(f"Unsupported RSVP outcome '{outcome}'")

    content = _RSVP_CONTENT[outcome]
    footer = content["footer"]
    if outcome == "substitute" and substitute_name:
        footer = "ระบบได้บันทึกข้อมูลแล้ว"

    details: List[Dict[str, Any]] = [
        text_block(
            _rsvp_body_text(
                outcome,
                meeting_date,
                leave_reason=leave_reason,
                substitute_name=substitute_name,
                substitute_phone=substitute_phone,
            ),
            size="sm",
            color="#555555",
            wrap=True,
            align="center",
        )
    ]
    if theme:
        details.append(text_block(theme, size="xs", color="#888888", margin="sm", align="center", wrap=True))
    if footer:
        details.append(text_block(footer, size="xs", color="#888888", margin="lg", align="center"))

    bubble = {
        "type": "bubble",
        "size": "kilo",
        "body": {
            "type": "box",
            "layout": "vertical",
            "paddingAll": "24px",
            "contents": [
                {
                    "type": "box",
                    "layout": "vertical",
                    "alignItems": "center",
                    "contents": [
                        {
                            "type": "box",
                            "layout": "vertical",
                            "width": "56px",
                            "height": "56px",
                            "backgroundColor": content["color"],
                            "cornerRadius": "28px",
                            "justifyContent": "center",
                            "alignItems": "center",
                            "contents": [text_block(content["icon"], color="#FFFFFF", size="xl", weight="bold")],
                        },
                        text_block(
                            content["title"],
                            size="lg",
                            weight="bold",
                            color=content["color"],
                            margin="lg",
                            align="center",
                        ),
                        text_block(f"คุณ{member_name}", size="sm", color="#333333", margin="sm", align="center"),
                    ],
                },
                {"type": "separator", "margin": "xl", "color": "#EEEEEE"},
                {"type": "box", "layout": "vertical", "margin": "xl", "contents": details},
            ],
        },
    }
    return flex_message(content["title"], bubble)


def build_substitute_link(substitute_url: str) -> Dict[str, Any]:
    """Reply carrying the deep link to the substitute registration page."""

    bubble = {
        "type": "bubble",
        "size": "kilo",
        "header": {
            "type": "box",
            "layout": "vertical",
            "backgroundColor": "#FFB347",
            "paddingAll": "12px",
            "contents": [text_block("ลงทะเบียนตัวแทน", color="#FFFFFF", size="md", weight="bold", align="center")],
        },
        "body": {
            "type": "box",
            "layout": "vertical",
            "paddingAll": "15px",
            "contents": [text_block("กรุณากรอกข้อมูลตัวแทนของคุณ", size="sm", wrap=True, align="center")],
        },
        "footer": {
            "type": "box",
            "layout": "vertical",
            "paddingAll": "12px",
            "contents": [uri_button("กรอกข้อมูลตัวแทน", substitute_url, color="#FFB347")],
        },
    }
    return flex_message("ลงทะเบียนตัวแทน", bubble)


def build_leave_reason_prompt(timeout_minutes: int = 5) -> Dict[str, Any]:
    """Ask for a leave reason, offering canned answers as quick replies."""

    examples = "\n".join(f"- {reason}" for reason in LEAVE_REASON_SUGGESTIONS[:3])
    message = text_message(
        f"กรุณาพิมพ์เหตุผลในการลา\n\nตัวอย่าง:\n{examples}\n\n(หมดเวลาใน {timeout_minutes} นาที)"
    )
    message["quickReply"] = {
        "items": [
            {"type": "action", "action": {"type": "message", "label": reason, "text": reason}}
            for reason in LEAVE_REASON_SUGGESTIONS
        ]
    }
    return message


def build_leave_notice_for_admins(*, member_name: str, meeting_date: date | None, reason: str) -> Dict[str, Any]:
    return text_message(
        f"แจ้งลา Meeting\n\nสมาชิก: {member_name}\nวันที่: {format_thai_short_date(meeting_date)}\nเหตุผล: {reason}"
    )
