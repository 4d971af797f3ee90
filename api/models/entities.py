# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Core entity models for the RescueConnect platform.
"""

import re
from datetime import datetime
from typing import List, Optional, Dict, Any, Tuple
from pydantic import BaseModel, Field, field_validator
from .base import BaseEntity, DocumentModel
from .enums import (
    AnimalType,
    AnimalCondition,
    CaseStatus,
    UrgencyLevel,
    HealthCondition,
    StatusUpdateKind,
    UserType,
    VerificationStatus,
    MessageType,
    MessagePriority,
    HELPER_TYPES
)

MIN_STATUS_UPDATE_PHOTOS = 2
MIN_SERVICE_RADIUS_KM = 1
MAX_SERVICE_RADIUS_KM = 100


def normalize_phone(value: str) -> str:
    """Keep the last 10 digits of a phone number."""
    digits = re.sub(r"\D", "", value or "")
    return digits[-10:]


class GeoPoint(DocumentModel):
    """GeoJSON point stored as [longitude, latitude]."""

    type: str = Field(default="Point", description="GeoJSON type")
    coordinates: List[float] = Field(..., description="[longitude, latitude]")

    @field_validator('type')
    @classmethod
    def validate_type(cls, v):
        if v != "Point":
            raise ValueError('Only GeoJSON Point locations are supported')
        return v

    @field_validator('coordinates')
    @classmethod
    def validate_coordinates(cls, v):
        """Validate coordinate pair and ranges."""
        if len(v) != 2:
            raise ValueError('Coordinates must be [longitude, latitude]')
        lng, lat = v
        if not -180 <= lng <= 180:
            raise ValueError('Longitude must be between -180 and 180')
        if not -90 <= lat <= 90:
            raise ValueError('Latitude must be between -90 and 90')
        return [float(lng), float(lat)]

    @property
    def lng(self) -> float:
        return self.coordinates[0]

    @property
    def lat(self) -> float:
        return self.coordinates[1]

    def as_tuple(self) -> Tuple[float, float]:
        return self.coordinates[0], self.coordinates[1]


class CaseLocation(GeoPoint):
    """Where the animal was found."""

    address: Optional[str] = Field(None, description="Street address")
    landmarks: Optional[str] = Field(None, max_length=500, description="Nearby landmarks")
    description: Optional[str] = Field(None, max_length=1000, description="Free-text location notes")
    is_approximate: bool = Field(default=False, description="Whether the pin is approximate")
    nearest_known_place: Optional[str] = Field(None, max_length=200)
    directions: Optional[str] = Field(None, max_length=500)


class ContactInfo(DocumentModel):
    """Reporter contact details captured with the case."""

    phone: str = Field(..., description="Phone number (last 10 digits)")
    email: Optional[str] = Field(None, description="Email address")
    name: Optional[str] = Field(None, max_length=200, description="Contact name")

    @field_validator('phone')
    @classmethod
    def validate_phone(cls, v):
        phone = normalize_phone(v)
        if len(phone) < 10:
            raise ValueError('Phone number must contain at least 10 digits')
        return phone

    @field_validator('email')
    @classmethod
    def validate_email(cls, v):
        if v is None:
            return v
        v = v.strip().lower()
        if not re.match(r'^[a-z0-9._%+-]+@[a-z0-9.-]+\.[a-z]{2,}$', v):
            raise ValueError('Invalid email format')
        return v


class Case(BaseEntity):
    """Animal rescue case tracked from report to closure."""

    reporter_id: Optional[str] = Field(None, description="Reporter user ID (None for anonymous reports)")
    animal_type: AnimalType = Field(..., description="Kind of animal")
    condition: AnimalCondition = Field(..., description="Condition at report time")
    description: str = Field(..., min_length=1, description="Case description")
    location: CaseLocation = Field(..., description="Case location")
    photos: List[str] = Field(default_factory=list, description="Photo references")
    contact_info: ContactInfo = Field(..., description="Reporter contact details")
    status: CaseStatus = Field(default=CaseStatus.OPEN, description="Lifecycle status")
    assigned_helpers: List[str] = Field(default_factory=list, description="Assigned helper IDs")
    urgency_level: UrgencyLevel = Field(default=UrgencyLevel.MEDIUM, description="Urgency level")
    last_status_update: datetime = Field(default_factory=datetime.utcnow)
    next_reminder_due: Optional[datetime] = Field(None, description="When the next progress reminder is due")
    reminder_sent: bool = Field(default=False)
    resolved_at: Optional[datetime] = Field(None)
    requires_reporter_approval: bool = Field(default=True)
    pending_reporter_approval: bool = Field(default=False)
    version: int = Field(default=0, ge=0, description="Optimistic concurrency token")

    @field_validator('assigned_helpers')
    @classmethod
    def validate_assigned_helpers(cls, v):
        """Keep first occurrence of each helper."""
        return list(dict.fromkeys(v))

    def is_assigned_to(self, user_id: Optional[str]) -> bool:
        return bool(user_id) and user_id in self.assigned_helpers


class StatusUpdate(BaseEntity):
    """Photo-evidenced progress report tied to one case."""

    case_id: str = Field(..., description="Owning case ID")
    author_id: str = Field(..., description="User who submitted the update")
    kind: StatusUpdateKind = Field(default=StatusUpdateKind.PROGRESS)
    previous_status: CaseStatus = Field(...)
    new_status: CaseStatus = Field(...)
    condition: HealthCondition = Field(...)
    description: str = Field(..., min_length=50, max_length=2000)
    photos: List[str] = Field(..., min_length=MIN_STATUS_UPDATE_PHOTOS, description="At least two photo references")
    treatment_provided: Optional[str] = Field(None, max_length=1000)
    next_steps: Optional[str] = Field(None, max_length=1000)
    notes: Optional[str] = Field(None, max_length=1000)
    location: Optional[GeoPoint] = Field(None)
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class ServiceArea(BaseEntity):
    """Helper-declared coverage circle."""

    helper_id: str = Field(..., description="Owning helper ID")
    location: GeoPoint = Field(..., description="Center of the coverage circle")
    radius: float = Field(..., ge=MIN_SERVICE_RADIUS_KM, le=MAX_SERVICE_RADIUS_KM, description="Radius in km")
    city: str = Field(..., min_length=2, max_length=100)
    state: str = Field(..., min_length=2, max_length=100)
    is_active: bool = Field(default=True)

    @field_validator('city', 'state')
    @classmethod
    def strip_names(cls, v):
        return v.strip()


class InlineServiceArea(DocumentModel):
    """Small home-coverage area embedded in a helper profile."""

    location: GeoPoint
    radius: float = Field(..., ge=MIN_SERVICE_RADIUS_KM, le=MAX_SERVICE_RADIUS_KM)
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    is_active: bool = Field(default=True)


class Verification(DocumentModel):
    """Helper verification state."""

    status: VerificationStatus = Field(default=VerificationStatus.NOT_SUBMITTED)
    verified_at: Optional[datetime] = None


class HelperProfile(DocumentModel):
    """Profile fields relevant to helpers."""

    organization: Optional[str] = Field(None, max_length=200)
    animal_types: List[AnimalType] = Field(default_factory=list)
    verification: Verification = Field(default_factory=Verification)
    service_areas: List[InlineServiceArea] = Field(default_factory=list)


class User(BaseEntity):
    """Platform account (reporter, volunteer, NGO or admin)."""

    name: str = Field(..., min_length=2, max_length=100)
    email: str = Field(..., description="Email address")
    phone: Optional[str] = Field(None, description="Phone number (last 10 digits)")
    user_type: UserType = Field(default=UserType.REPORTER)
    is_active: bool = Field(default=True)
    location: Optional[GeoPoint] = Field(None, description="Last known location")
    location_updated_at: Optional[datetime] = Field(None, description="When the location was last reported")
    profile: HelperProfile = Field(default_factory=HelperProfile)

    @field_validator('email')
    @classmethod
    def validate_email(cls, v):
        return v.strip().lower()

    @field_validator('phone')
    @classmethod
    def validate_phone(cls, v):
        return normalize_phone(v) if v else v

    @property
    def is_helper(self) -> bool:
        return self.user_type in HELPER_TYPES

    @property
    def is_verified(self) -> bool:
        return self.profile.verification.status == VerificationStatus.APPROVED

    def to_public_dict(self) -> Dict[str, Any]:
        data = super().to_public_dict()
        data.pop("profile", None)
        data["organization"] = self.profile.organization
        data["verificationStatus"] = self.profile.verification.status
        return data


class CaseMessage(BaseEntity):
    """Message attached to a case timeline."""

    case_id: str = Field(...)
    sender_id: Optional[str] = Field(None, description="None for system messages")
    content: str = Field(..., min_length=1, max_length=2000)
    message_type: MessageType = Field(default=MessageType.TEXT)
    priority: MessagePriority = Field(default=MessagePriority.NORMAL)
    image_url: Optional[str] = Field(None)
    read_by: List[str] = Field(default_factory=list, description="Users who have read the message")


class UserContext(BaseModel):
    """Resolved request identity."""

    user_id: str = Field(..., description="Current user ID")
    email: Optional[str] = Field(None, description="User email")
    phone: Optional[str] = Field(None, description="User phone")
    name: Optional[str] = Field(None, description="User name")
    user_type: Optional[str] = Field(None, description="Account type")
    token_payload: Dict[str, Any] = Field(default_factory=dict, description="Decoded JWT payload")
    ip_address: Optional[str] = Field(None, description="Client IP address")
    user_agent: Optional[str] = Field(None, description="Client user agent")
