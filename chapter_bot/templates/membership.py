"""Admin-facing application card and applicant notices."""

from __future__ import annotations

from typing import Any, Dict, List

from chapter_bot.actions import APPROVE_MEMBER_ACTION, REJECT_MEMBER_ACTION, build_postback_data

from .common import flex_message, postback_button, text_block, text_message

APPROVE_COLOR = "#1DB446"
REJECTION_TEXT = "ขออภัย คำขอสมัครสมาชิกของคุณไม่ได้รับการอนุมัติ\n\nหากมีข้อสงสัย กรุณาติดต่อผู้ดูแลระบบ"
MEMBER_BENEFITS = ("เช็คอินเข้าประชุม", "ส่งตัวแทนเข้าประชุม", "รับการแจ้งเตือนต่างๆ")


def build_application_card(
    *,
    participant_id: str,
    tenant_id: str,
    full_name: str,
    tenant_name: str,
    nickname: str | None = None,
    phone: str | None = None,
    company: str | None = None,
) -> Dict[str, Any]:
    """Card asking an admin to approve or reject a membership application.

    Both buttons carry the participant and tenant ids so the resulting
    postback can be handled without any stored session.
    """

    details: List[Dict[str, Any]] = []
    if nickname:
        details.append(text_block(f"ชื่อเล่น: {nickname}", size="sm", color="#666666"))
    if phone:
        details.append(text_block(f"เบอร์โทร: {phone}", size="sm", color="#666666"))
    if company:
        details.append(text_block(f"บริษัท: {company}", size="sm", color="#666666", wrap=True))

    body_contents: List[Dict[str, Any]] = [
        text_block(full_name, weight="bold", size="lg", wrap=True),
    ]
    if details:
        body_contents.append(
            {"type": "box", "layout": "vertical", "margin": "md", "spacing": "sm", "contents": details}
        )
    body_contents.append(text_block(tenant_name, size="xs", color="#AAAAAA", margin="lg"))

    ids = {"participant_id": participant_id, "tenant_id": tenant_id}
    bubble = {
        "type": "bubble",
        "header": {
            "type": "box",
            "layout": "vertical",
            "backgroundColor": APPROVE_COLOR,
            "paddingAll": "15px",
            "contents": [text_block("คำขอสมัครสมาชิกใหม่", color="#FFFFFF", weight="bold", size="md")],
        },
        "body": {"type": "box", "layout": "vertical", "paddingAll": "15px", "contents": body_contents},
        "footer": {
            "type": "box",
            "layout": "horizontal",
            "spacing": "sm",
            "contents": [
                postback_button(
                    "อนุมัติ",
                    build_postback_data(APPROVE_MEMBER_ACTION, **ids),
                    style="primary",
                    color=APPROVE_COLOR,
                    display_text=f"อนุมัติ {full_name}",
                ),
                postback_button(
                    "ปฏิเสธ",
                    build_postback_data(REJECT_MEMBER_ACTION, **ids),
                    display_text=f"ปฏิเสธ {full_name}",
                ),
            ],
        },
    }
    return flex_message(f"คำขอสมัครสมาชิกใหม่: {full_name}", bubble)


def build_welcome_message(*, tenant_name: str) -> Dict[str, Any]:
    benefits = [text_block(f"• {item}", size="sm", color="#666666") for item in MEMBER_BENEFITS]
    bubble = {
        "type": "bubble",
        "body": {
            "type": "box",
            "layout": "vertical",
            "paddingAll": "20px",
            "contents": [
                text_block("ยินดีต้อนรับ!", weight="bold", size="xl", color=APPROVE_COLOR),
                text_block("คุณได้รับการอนุมัติเป็นสมาชิกแล้ว", size="md", margin="md", wrap=True),
                text_block(tenant_name, size="sm", color="#AAAAAA", margin="sm"),
                {"type": "separator", "margin": "lg"},
                text_block("ตอนนี้คุณสามารถ:", size="sm", color="#666666", margin="lg"),
                {"type": "box", "layout": "vertical", "margin": "sm", "spacing": "xs", "contents": benefits},
            ],
        },
    }
    return flex_message("ยินดีต้อนรับเข้าเป็นสมาชิก!", bubble)


def build_rejection_message() -> Dict[str, Any]:
    return text_message(REJECTION_TEXT)
