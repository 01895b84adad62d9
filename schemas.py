"""
HouseHunt Schemas (MongoDB via Pydantic)
Each stored model = one collection (lowercased name)
- Property -> property
- Shortlist -> shortlist
The remaining models are request bodies and response views.
"""

from pydantic import BaseModel, Field, field_validator
from typing import List, Optional, Literal
from datetime import datetime

MediaKind = Literal["image", "video"]
Availability = Literal["available", "taken"]
Category = Literal[
    "Bedsitter", "1Bedroom", "2Bedroom", "3Bedroom", "4Bedroom",
    "Maisonette", "Bungalow", "Townhouse", "Duplex", "Penthouse", "Villa",
]

DEFAULT_SHORTLIST_NAME = "Anonymous Client"


class MediaItem(BaseModel):
    url: str
    host_id: Optional[str] = None
    original_name: Optional[str] = None
    byte_size: Optional[int] = Field(None, ge=0)
    width: Optional[int] = None
    height: Optional[int] = None
    duration_seconds: Optional[float] = None
    kind: MediaKind = "image"


class Property(BaseModel):
    id: Optional[str] = None
    title: str = ""
    address: str = ""
    price: float = 0
    category: str = "2Bedroom"
    availability: Availability = "available"
    landlord_contact: str = ""
    notes: str = ""
    photos: List[str] = Field(default_factory=list)
    videos: List[str] = Field(default_factory=list)
    media: List[MediaItem] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class PropertyCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    address: str = Field(..., min_length=1, max_length=300)
    price: float = Field(..., ge=0)
    category: Category = "2Bedroom"
    availability: Availability = "available"
    landlord_contact: str = Field("", max_length=255)
    notes: str = Field("", max_length=5000)
    media: List[MediaItem] = Field(..., min_length=1)

    @field_validator("title", "address")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be blank")
        return v.strip()


class PropertyUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    address: Optional[str] = Field(None, min_length=1, max_length=300)
    price: Optional[float] = Field(None, ge=0)
    category: Optional[Category] = None
    availability: Optional[Availability] = None
    landlord_contact: Optional[str] = Field(None, max_length=255)
    notes: Optional[str] = Field(None, max_length=5000)
    media: Optional[List[MediaItem]] = None


class PropertyFilter(BaseModel):
    q: Optional[str] = None
    location: Optional[str] = None
    category: Optional[str] = None
    availability: Optional[str] = None
    min_price: Optional[float] = None
    max_price: Optional[float] = None


class BulkDeleteRequest(BaseModel):
    ids: List[str] = Field(..., min_length=1)


class MediaDeleteRequest(BaseModel):
    identifier: str = Field(..., min_length=1)
    resourceKind: MediaKind = "image"


class Shortlist(BaseModel):
    id: Optional[str] = None
    client_id: str
    client_name: str = DEFAULT_SHORTLIST_NAME
    property_ids: List[str] = Field(default_factory=list)
    share_token: str
    is_active: bool = True
    created_at: Optional[datetime] = None


class ShortlistCreate(BaseModel):
    property_ids: List[str] = Field(..., min_length=1)
    client_id: Optional[str] = None
    client_name: Optional[str] = None


class PublicProperty(BaseModel):
    id: str
    title: str
    area: str
    price: float
    category: str
    availability: str
    notes: str = ""
    photos: List[str] = Field(default_factory=list)
    videos: List[str] = Field(default_factory=list)


class ShortlistView(BaseModel):
    id: str
    client_name: str
    share_token: str
    created_at: Optional[datetime] = None
    properties: List[Property] = Field(default_factory=list)


class PublicShortlistView(BaseModel):
    client_name: str
    share_token: str
    created_at: Optional[datetime] = None
    properties: List[PublicProperty] = Field(default_factory=list)
