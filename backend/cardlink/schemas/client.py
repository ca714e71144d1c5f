"""
CardLink Backend — Client Request/Response Schemas
====================================================

What:  Pydantic models defining the client API contract.
Why:   The mutable field set is an explicit whitelist. Unknown keys in a
       request body are dropped at this boundary and never reach the database.
How:   ClientCreate and ClientUpdate share one field declaration; the
       response models project the ORM row into admin, public and list views.

Design Decision:
    Required-ness is NOT declared here. Which fields Create insists on is
    configuration (REQUIRED_CLIENT_FIELDS), checked by ClientService so the
    error message names the missing fields in the standard envelope.
"""

import re
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from cardlink.schemas.audit import AuditLogResponse

EMAIL_PATTERN = re.compile(r"^[\w.+-]+@([\w-]+\.)+[\w-]{2,}$")

CONTACT_FIELDS = ("phone1", "phone2", "phone3", "email1", "email2", "email3")


# ══════════════════════════════════════════════════════════════════════════
# Structured sub-objects (fixed schema, partial population allowed)
# ══════════════════════════════════════════════════════════════════════════


class SocialLinks(BaseModel):
    """Up to six social-platform profile URLs."""
    model_config = ConfigDict(extra="ignore")

    facebook: Optional[str] = None
    instagram: Optional[str] = None
    x: Optional[str] = None
    linkedin: Optional[str] = None
    tiktok: Optional[str] = None
    youtube: Optional[str] = None


class WorkingHours(BaseModel):
    """Opening hours as named day-range fields, free-form time strings."""
    model_config = ConfigDict(extra="ignore")

    mon_fri_start: Optional[str] = None
    mon_fri_end: Optional[str] = None
    sat_start: Optional[str] = None
    sat_end: Optional[str] = None
    sun_start: Optional[str] = None
    sun_end: Optional[str] = None


# ══════════════════════════════════════════════════════════════════════════
# Request Models
# ══════════════════════════════════════════════════════════════════════════


class ClientFields(BaseModel):
    """
    Every client field a caller may set.

    Strings are trimmed and blank strings become null so "" never
    overwrites stored data with an empty value by accident.
    """
    model_config = ConfigDict(extra="ignore")

    full_name: Optional[str] = Field(default=None, max_length=255)
    title: Optional[str] = Field(default=None, max_length=255)
    phone1: Optional[str] = Field(default=None, max_length=50)
    phone2: Optional[str] = Field(default=None, max_length=50)
    phone3: Optional[str] = Field(default=None, max_length=50)
    email1: Optional[str] = Field(default=None, max_length=255)
    email2: Optional[str] = Field(default=None, max_length=255)
    email3: Optional[str] = Field(default=None, max_length=255)
    company: Optional[str] = Field(default=None, max_length=255)
    bio: Optional[str] = Field(default=None, max_length=5000)
    address: Optional[str] = Field(default=None, max_length=1000)
    business_website: Optional[str] = Field(default=None, max_length=500)
    portfolio_website: Optional[str] = Field(default=None, max_length=500)
    location_map: Optional[str] = Field(default=None, max_length=1000)
    social_links: Optional[SocialLinks] = None
    working_hours: Optional[WorkingHours] = None

    @field_validator(
        "full_name", "title", "phone1", "phone2", "phone3", "company", "bio", "address",
        "business_website", "portfolio_website", "location_map",
        mode="before",
    )
    @classmethod
    def strip_blank(cls, v: Any) -> Any:
        if isinstance(v, str):
            v = v.strip()
            return v or None
        return v

    @field_validator("email1", "email2", "email3", mode="before")
    @classmethod
    def normalize_email(cls, v: Any) -> Any:
        """Lowercases and checks the address shape; blank means absent."""
        if not isinstance(v, str):
            return v
        v = v.strip().lower()
        if not v:
            return None
        if not EMAIL_PATTERN.match(v):
            raise ValueError("Invalid email format")
        return v


class ClientCreate(ClientFields):
    """Body of the public submission form (POST /api/clients)."""


class ClientUpdate(ClientFields):
    """
    Admin patch (PUT /api/clients/{id}).

    Only fields present in the request are applied; sub-objects are merged
    key-by-key with the stored values.
    """
    photo_url: Optional[str] = Field(default=None, max_length=1000)


class StatusChangeRequest(BaseModel):
    """Body for status changes and soft-delete; notes are mandatory."""
    notes: Optional[str] = Field(default=None, description="Reason for the change (min length enforced)")


# ══════════════════════════════════════════════════════════════════════════
# Response Models
# ══════════════════════════════════════════════════════════════════════════


class HistoryEntry(BaseModel):
    action: str
    notes: Optional[str] = None
    actor: str
    timestamp: datetime


class ClientResponse(BaseModel):
    """Full admin view of a client, history included."""
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    slug: str
    full_name: str
    title: Optional[str] = None
    phone1: Optional[str] = None
    phone2: Optional[str] = None
    phone3: Optional[str] = None
    email1: Optional[str] = None
    email2: Optional[str] = None
    email3: Optional[str] = None
    company: Optional[str] = None
    bio: Optional[str] = None
    address: Optional[str] = None
    business_website: Optional[str] = None
    portfolio_website: Optional[str] = None
    location_map: Optional[str] = None
    social_links: Dict[str, Any] = Field(default_factory=dict)
    working_hours: Dict[str, Any] = Field(default_factory=dict)
    photo_url: Optional[str] = None
    pdf_url: Optional[str] = None
    vcard_url: Optional[str] = None
    qr_code_url: Optional[str] = None
    status: str
    history: List[HistoryEntry] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class ClientListItem(BaseModel):
    """Compact admin listing row."""
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    slug: str
    full_name: str
    title: Optional[str] = None
    company: Optional[str] = None
    email1: Optional[str] = None
    phone1: Optional[str] = None
    photo_url: Optional[str] = None
    pdf_url: Optional[str] = None
    vcard_url: Optional[str] = None
    qr_code_url: Optional[str] = None
    status: str
    created_at: datetime
    updated_at: datetime


class ClientPublicListItem(BaseModel):
    """Lightweight public dashboard row."""
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    full_name: str
    company: Optional[str] = None
    email1: Optional[str] = None
    phone1: Optional[str] = None
    status: str
    photo_url: Optional[str] = None
    created_at: datetime
    vcard_created_date: str = Field(description="Creation date (YYYY-MM-DD)")


class ClientPublicProfile(BaseModel):
    """Public-safe projection: no history, no status, no internal URLs."""
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    slug: str
    full_name: str
    title: Optional[str] = None
    company: Optional[str] = None
    phone1: Optional[str] = None
    phone2: Optional[str] = None
    phone3: Optional[str] = None
    email1: Optional[str] = None
    email2: Optional[str] = None
    email3: Optional[str] = None
    bio: Optional[str] = None
    address: Optional[str] = None
    business_website: Optional[str] = None
    portfolio_website: Optional[str] = None
    location_map: Optional[str] = None
    social_links: Dict[str, Any] = Field(default_factory=dict)
    working_hours: Dict[str, Any] = Field(default_factory=dict)
    photo_url: Optional[str] = None
    vcard_url: Optional[str] = None
    qr_code_url: Optional[str] = None


class ClientCreated(BaseModel):
    id: uuid.UUID
    slug: str
    status: str
    warnings: List[str] = Field(default_factory=list)


class VCardResult(BaseModel):
    """
    Outcome of artifact generation.

    The primary outcome (URLs, status) is separate from side-effect
    failures: a failed email is listed in `warnings` and reported in
    `email_status`, never turned into an error.
    """
    vcard_url: str
    qr_code_url: str
    status: str
    email_status: str = Field(description="sent, failed or skipped")
    warnings: List[str] = Field(default_factory=list)


class PhotoUploadResult(BaseModel):
    photo_url: str


class ClientDetail(ClientResponse):
    """Admin detail view: the client plus its most recent audit entries."""
    logs: List[AuditLogResponse] = Field(default_factory=list)
