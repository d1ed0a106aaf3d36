"""
WhatsApp Cloud API payload builders.

Each builder returns the request body for POST /{phone_number_id}/messages.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

from src.messaging.domain.exceptions import InvalidMessageContentError

MAX_REPLY_BUTTONS = 3


def _base(to: str, type_: str) -> Dict[str, Any]:
    return {
        "messaging_product": "whatsapp",
        "recipient_type": "individual",
        "to": to,
        "type": type_,
    }


def build_text_payload(*, to: str, text: str, preview_url: bool = False) -> Dict[str, Any]:
    if not text:
        raise InvalidMessageContentError("text must not be empty")
    payload = _base(to, "text")
    payload["text"] = {"preview_url": preview_url, "body": text}
    return payload


def build_template_payload(
    *,
    to: str,
    name: str,
    language: str,
    body_params: Optional[Sequence[str]] = None,
    header_params: Optional[Sequence[Dict[str, Any]]] = None,
) -> Dict[str, Any]:
    components: List[Dict[str, Any]] = []
    if body_params:
        components.append({
            "type": "body",
            "parameters": [{"type": "text", "text": v} for v in body_params],
        })
    if header_params:
        params: List[Dict[str, Any]] = []
        for p in header_params:
            if p.get("type") == "image":
                params.append({"type": "image", "image": {"link": p.get("url")}})
            else:
                params.append({"type": "text", "text": p.get("text")})
        components.append({"type": "header", "parameters": params})

    payload = _base(to, "template")
    payload["template"] = {"name": name, "language": {"code": language}, "components": components}
    return payload


def build_interactive_payload(*, to: str, body: str, buttons: Sequence[Dict[str, str]]) -> Dict[str, Any]:
    """Reply-button message; WhatsApp accepts at most three buttons."""
    if not buttons:
        raise InvalidMessageContentError("at least one button is required")
    if len(buttons) > MAX_REPLY_BUTTONS:
        raise InvalidMessageContentError(f"at most {MAX_REPLY_BUTTONS} buttons are allowed")
    payload = _base(to, "interactive")
    payload["interactive"] = {
        "type": "button",
        "body": {"text": body},
        "action": {
            "buttons": [
                {"type": "reply", "reply": {"id": b["id"], "title": b["title"]}}
                for b in buttons
            ]
        },
    }
    return payload


def build_list_payload(
    *,
    to: str,
    body: str,
    button_text: str,
    sections: Sequence[Dict[str, Any]],
) -> Dict[str, Any]:
    if not sections:
        raise InvalidMessageContentError("at least one section is required")
    payload = _base(to, "interactive")
    payload["interactive"] = {
        "type": "list",
        "body": {"text": body},
        "action": {"button": button_text, "sections": list(sections)},
    }
    return payload
