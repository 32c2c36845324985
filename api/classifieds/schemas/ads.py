from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

AdStatus = Literal["pending", "approved", "rejected"]


class AdLocation(BaseModel):
    city: str
    country: str


class NamedRef(BaseModel):
    id: str
    name: str


class OwnerRef(BaseModel):
    id: str
    name: str
    email: str | None = None


class AdOut(BaseModel):
    id: str
    title: str
    description: str
    price: float
    location: AdLocation
    category: NamedRef | None = None
    subcategory: NamedRef | None = None
    owner: OwnerRef
    images: list[str] = Field(default_factory=list)
    status: AdStatus
    rejection_reason: str | None = None
    created_at: datetime
    updated_at: datetime


class AdCreatedOut(BaseModel):
    message: str
    id: str


class AdUpdatedOut(BaseModel):
    message: str
    ad: AdOut
