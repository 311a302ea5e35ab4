from __future__ import annotations

from typing import Any, Final

# Canonical replies. The confirmation card makes LINE send these back verbatim,
# so they must match the comparison in intake.py byte for byte.
APPROVE_PHRASE: Final[str] = "はい、大丈夫です"
DECLINE_PHRASE: Final[str] = "いいえ、結構です"

APPROVAL_ACK_TEXT: Final[str] = (
    "ありがとうございます。\n専門スタッフよりご連絡させていただきます。\nしばらくお待ちください。"
)
DECLINE_ACK_TEXT: Final[str] = (
    "承知いたしました！気になる点がありましたら、いつでもお気軽にお問合せください"
)
INVALID_PHONE_TEXT: Final[str] = (
    "申し訳ありません。電話番号の形式が正しくないようです。\n\n"
    "以下のような形式で電話番号を入力してください：\n"
    "・携帯電話の場合：090-1234-5678\n"
    "・固定電話の場合：03-1234-5678"
)

CONFIRMATION_ALT_TEXT: Final[str] = "お電話の確認"
CONFIRMATION_TITLE: Final[str] = "専門スタッフからご連絡"
CONFIRMATION_BODY: Final[str] = (
    "最短当日または翌営業日、専門スタッフからご連絡してもよろしいでしょうか？"
)
CONFIRMATION_HERO_URL: Final[str] = (
    "https://card-type-message.line-scdn.net/card-type-message-image-2025/615pknlz/"
    "1758084766925-ZVJy1VTRpibNyrARw3Ru45O9F30zTqUwhWEO6uM8q0J8yMWuHB"
)
BUTTON_COLOR: Final[str] = "#4488ff"


def text_message(text: str) -> dict[str, Any]:
    return {"type": "text", "text": text}


def _reply_button(phrase: str) -> dict[str, Any]:
    return {
        "type": "box",
        "layout": "vertical",
        "action": {"type": "message", "label": phrase, "text": phrase},
        "contents": [
            {"type": "text", "text": phrase, "color": BUTTON_COLOR, "align": "center"},
        ],
        "paddingAll": "md",
    }


def confirmation_card() -> dict[str, Any]:
    """
    Flex bubble asking whether staff may call the user back.

    Each button is a message action, so tapping it sends the canonical phrase
    as an ordinary text message from the user.
    """
    return {
        "type": "flex",
        "altText": CONFIRMATION_ALT_TEXT,
        "contents": {
            "type": "bubble",
            "hero": {
                "type": "image",
                "url": CONFIRMATION_HERO_URL,
                "size": "full",
                "aspectRatio": "1.51:1",
                "aspectMode": "cover",
            },
            "body": {
                "type": "box",
                "layout": "vertical",
                "spacing": "xl",
                "contents": [
                    {
                        "type": "text",
                        "text": CONFIRMATION_TITLE,
                        "weight": "bold",
                        "size": "xl",
                        "align": "start",
                    },
                    {
                        "type": "text",
                        "text": CONFIRMATION_BODY,
                        "wrap": True,
                        "align": "start",
                        "margin": "md",
                    },
                    {
                        "type": "box",
                        "layout": "vertical",
                        "spacing": "sm",
                        "margin": "xxl",
                        "contents": [
                            _reply_button(APPROVE_PHRASE),
                            _reply_button(DECLINE_PHRASE),
                        ],
                    },
                ],
                "paddingAll": "xl",
            },
        },
    }


def approval_ack() -> dict[str, Any]:
    return text_message(APPROVAL_ACK_TEXT)


def decline_ack() -> dict[str, Any]:
    return text_message(DECLINE_ACK_TEXT)


def invalid_phone_notice() -> dict[str, Any]:
    return text_message(INVALID_PHONE_TEXT)
