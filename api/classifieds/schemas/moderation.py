from datetime import datetime
from typing import Literal

from pydantic import AliasChoices, BaseModel, Field

ModerationDecision = Literal["approved", "rejected"]


class ApproveRequest(BaseModel):
    ad_id: str | None = Field(default=None, validation_alias=AliasChoices("adId", "ad_id"))


class RejectRequest(BaseModel):
    ad_id: str | None = Field(default=None, validation_alias=AliasChoices("adId", "ad_id"))
    reason: str | None = None


class ModerationRecordOut(BaseModel):
    id: str
    ad_id: str
    moderator_id: str
    moderator_name: str | None = None
    status: ModerationDecision
    reason: str | None = None
    created_at: datetime


class ModerationResultOut(BaseModel):
    message: str
    record: ModerationRecordOut
