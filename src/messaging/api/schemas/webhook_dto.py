"""Partner webhook DTOs."""
from typing import List

from pydantic import BaseModel, ConfigDict, Field


class PartnerWebhookCreate(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    url: str = Field(..., min_length=1, max_length=2048)
    events: List[str] = Field(..., min_length=1)
    secret: str = Field(..., min_length=1, max_length=256)


class PartnerWebhookView(BaseModel):
    id: str
    url: str
    events: List[str]
    active: bool
    created_at: str


class PartnerWebhookList(BaseModel):
    items: List[PartnerWebhookView]
