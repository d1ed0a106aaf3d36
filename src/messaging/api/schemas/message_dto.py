"""Message DTOs using Pydantic v2."""

import re
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

E164 = re.compile(r"^\+[1-9]\d{1,14}$")


class OutboundMessageRequest(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    to: str = Field(..., description="Recipient phone number in E.164 format")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Opaque caller metadata stored with the message")

    @field_validator("to")
    @classmethod
    def validate_phone(cls, v: str) -> str:
        if not E164.match(v):
            raise ValueError("Invalid phone number format. Use E.164 format")
        return v


class TextMessageRequest(OutboundMessageRequest):
    text: str = Field(..., min_length=1, max_length=4096)
    preview_url: bool = False


class HeaderParam(BaseModel):
    type: Literal["text", "image"] = "text"
    text: Optional[str] = None
    url: Optional[str] = None


class TemplateComponents(BaseModel):
    body: List[str] = Field(default_factory=list)
    header: List[HeaderParam] = Field(default_factory=list)


class TemplateMessageRequest(OutboundMessageRequest):
    name: str = Field(..., min_length=1, max_length=512)
    language: str = Field(..., min_length=2, max_length=10)
    components: TemplateComponents = Field(default_factory=TemplateComponents)


class ReplyButton(BaseModel):
    id: str = Field(..., min_length=1, max_length=256)
    title: str = Field(..., min_length=1, max_length=20)


class InteractiveMessageRequest(OutboundMessageRequest):
    body: str = Field(..., min_length=1, max_length=1024)
    buttons: List[ReplyButton] = Field(..., min_length=1, max_length=3)


class ListRow(BaseModel):
    id: str = Field(..., min_length=1, max_length=200)
    title: str = Field(..., min_length=1, max_length=24)
    description: Optional[str] = Field(None, max_length=72)


class ListSection(BaseModel):
    title: Optional[str] = Field(None, max_length=24)
    rows: List[ListRow] = Field(..., min_length=1, max_length=10)


class ListMessageRequest(OutboundMessageRequest):
    body: str = Field(..., min_length=1, max_length=4096)
    button: str = Field(..., min_length=1, max_length=20, description="Text of the button that opens the list")
    sections: List[ListSection] = Field(..., min_length=1, max_length=10)


class MessageAccepted(BaseModel):
    message_id: str
    state: str


class MessageView(BaseModel):
    id: str
    tenant_id: str
    direction: str
    channel: str
    type: Optional[str] = None
    state: str
    provider_id: Optional[str] = None
    error: Optional[str] = None
    attempts: int
    metadata: Dict[str, Any]
    created_at: str
    updated_at: str
