"""Trial expiry and downgrade notices sent to tenant admins."""

from __future__ import annotations

from typing import Any, Dict

from .common import flex_message, text_block, uri_button

EXPIRED_COLOR = "#6b7280"
_URGENCY_COLORS = {1: "#dc2626", 3: "#ea580c", 7: "#0284c7"}


def trial_urgency_color(days_remaining: int) -> str:
    return _URGENCY_COLORS.get(days_remaining, _URGENCY_COLORS[7])


def billing_url(app_base_url: str) -> str:
    return f"{app_base_url.rstrip('/')}/admin/billing"


def _notice(*, alt_text: str, title: str, color: str, body: list, button_label: str, uri: str) -> Dict[str, Any]:
    bubble = {
        "type": "bubble",
        "header": {
            "type": "box",
            "layout": "vertical",
            "backgroundColor": color,
            "paddingAll": "15px",
            "contents": [text_block(title, color="#ffffff", weight="bold", size="md")],
        },
        "body": {"type": "box", "layout": "vertical", "spacing": "md", "paddingAll": "15px", "contents": body},
        "footer": {
            "type": "box",
            "layout": "vertical",
            "contents": [uri_button(button_label, uri, color=color)],
        },
    }
    return flex_message(alt_text, bubble)


def build_trial_expiring_message(*, tenant_name: str, days_remaining: int, app_base_url: str) -> Dict[str, Any]:
    """Notice whose colour escalates as the trial end approaches."""

    color = trial_urgency_color(days_remaining)
    if days_remaining == 1:
        urgency = "พรุ่งนี้จะหมดอายุ!"
        alt_text = "[Meetdup] ทดลองใช้งานจะหมดอายุพรุ่งนี้"
    else:
        urgency = f"อีก {days_remaining} วันจะหมดอายุ"
        alt_text = f"[Meetdup] ทดลองใช้งานจะหมดอายุใน {days_remaining} วัน"

    return _notice(
        alt_text=alt_text,
        title="แจ้งเตือนการทดลองใช้",
        color=color,
        body=[
            text_block(tenant_name, weight="bold", size="lg", wrap=True),
            text_block(urgency, weight="bold", size="md", color=color),
            text_block("เพื่อใช้งานต่อเนื่อง กรุณาอัปเกรดแพ็กเกจใน Billing Settings", size="sm", color="#666666", wrap=True),
        ],
        button_label="อัปเกรดเลย",
        uri=billing_url(app_base_url),
    )


def build_trial_expired_message(*, tenant_name: str, app_base_url: str) -> Dict[str, Any]:
    return _notice(
        alt_text="[Meetdup] ช่วงทดลองใช้หมดอายุแล้ว",
        title="ช่วงทดลองใช้หมดอายุ",
        color=EXPIRED_COLOR,
        body=[
            text_block(tenant_name, weight="bold", size="lg", wrap=True),
            text_block("บัญชีของคุณได้ถูกปรับเป็นแพ็กเกจ Free แล้ว", size="sm", color="#666666", wrap=True),
            text_block(
                "คุณยังคงใช้งานได้ตามปกติ แต่มีข้อจำกัดบางอย่าง หากต้องการใช้งานเต็มรูปแบบ กรุณาอัปเกรดแพ็กเกจ",
                size="xs",
                color="#999999",
                wrap=True,
            ),
        ],
        button_label="ดูแพ็กเกจทั้งหมด",
        uri=billing_url(app_base_url),
    )
