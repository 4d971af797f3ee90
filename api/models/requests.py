# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Request models for API endpoints.

Bodies and query strings accept camelCase (mobile clients) or snake_case keys.
"""

from typing import List, Optional, Union, Dict, Any
from pydantic import BaseModel, Field, ConfigDict, field_validator
from pydantic.alias_generators import to_camel

from .entities import ContactInfo, GeoPoint, MIN_STATUS_UPDATE_PHOTOS, MIN_SERVICE_RADIUS_KM, MAX_SERVICE_RADIUS_KM
from .enums import (
    AnimalType, AnimalCondition, CaseStatus, HealthCondition, MessagePriority, MessageType,
    UrgencyLevel, UserType, VerificationStatus
)

# Values sent by older mobile builds
ANIMAL_TYPE_ALIASES = {"cow": AnimalType.CATTLE.value}
CONDITION_ALIASES = {
    "lost": AnimalCondition.ABANDONED.value,
    "starving": AnimalCondition.OTHER.value
}

STATUS_UPDATE_TARGETS = (
    CaseStatus.ASSIGNED,
    CaseStatus.IN_PROGRESS,
    CaseStatus.RESOLVED,
    CaseStatus.CLOSED
)


class RequestModel(BaseModel):
    """Base request model accepting camelCase or snake_case keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=True,
        validate_default=True
    )


def split_csv(v):
    """Split a comma-separated query value into a list."""
    if isinstance(v, str):
        return [item.strip() for item in v.split(',') if item.strip()]
    return v


class CasePath(BaseModel):
    """Path parameters for case endpoints."""

    case_id: str = Field(..., description="Case ID")


class ServiceAreaPath(BaseModel):
    """Path parameters for service area endpoints."""

    area_id: str = Field(..., description="Service area ID")


class CaseLocationInput(RequestModel):
    """Location submitted with a new case."""

    coordinates: List[float] = Field(..., description="[longitude, latitude]")
    address: str = Field(..., min_length=1, description="Street address")
    landmarks: Optional[str] = Field(None, min_length=5, max_length=500)
    description: Optional[str] = Field(None, max_length=1000)
    is_approximate: bool = Field(default=True)
    nearest_known_place: Optional[str] = Field(None, max_length=200)
    directions: Optional[str] = Field(None, max_length=500)

    @field_validator('coordinates')
    @classmethod
    def validate_coordinates(cls, v):
        if len(v) != 2:
            raise ValueError('Coordinates must be [longitude, latitude]')
        lng, lat = v
        if not (-180 <= lng <= 180 and -90 <= lat <= 90):
            raise ValueError('Invalid coordinate values')
        return [float(lng), float(lat)]


class CreateCaseRequest(RequestModel):
    """Report a new animal rescue case."""

    animal_type: AnimalType = Field(..., description="Kind of animal")
    condition: AnimalCondition = Field(..., description="Condition of the animal")
    description: str = Field(..., min_length=10, max_length=2000)
    location: CaseLocationInput
    photos: List[str] = Field(default_factory=list, description="Photo references")
    contact_info: ContactInfo
    requires_reporter_approval: bool = Field(default=True)

    @field_validator('animal_type', mode='before')
    @classmethod
    def map_animal_type(cls, v):
        if isinstance(v, str):
            return ANIMAL_TYPE_ALIASES.get(v.lower(), v.lower())
        return v

    @field_validator('condition', mode='before')
    @classmethod
    def map_condition(cls, v):
        if isinstance(v, str):
            return CONDITION_ALIASES.get(v.lower(), v.lower())
        return v

    @field_validator('photos', mode='before')
    @classmethod
    def extract_photo_uris(cls, v):
        """Accept plain references or ``{"uri": ...}`` objects."""
        if not isinstance(v, list):
            return v
        uris = []
        for photo in v:
            uri = photo.get('uri') if isinstance(photo, dict) else photo
            if uri:
                uris.append(uri)
        return uris

    @field_validator('description')
    @classmethod
    def strip_description(cls, v):
        return v.strip()


class StatusUpdateRequest(RequestModel):
    """Photo-evidenced progress report submitted by a helper."""

    new_status: CaseStatus = Field(..., description="Target case status")
    condition: HealthCondition = Field(..., description="Animal condition")
    description: str = Field(..., min_length=50, max_length=2000)
    photos: List[str] = Field(..., min_length=MIN_STATUS_UPDATE_PHOTOS)
    treatment_provided: Optional[str] = Field(None, max_length=1000)
    next_steps: Optional[str] = Field(None, max_length=1000)
    notes: Optional[str] = Field(None, max_length=1000)
    location: Optional[GeoPoint] = None

    @field_validator('new_status')
    @classmethod
    def validate_new_status(cls, v):
        if v not in [status.value for status in STATUS_UPDATE_TARGETS]:
            raise ValueError('Status update target must be assigned, in_progress, resolved or closed')
        return v


class TransferCaseRequest(RequestModel):
    """Re-broadcast a case to a wider helper pool."""

    reason: str = Field(..., min_length=1, max_length=500)

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, v):
        if not v.strip():
            raise ValueError('Transfer reason cannot be empty')
        return v.strip()


class ReporterRejectRequest(RequestModel):
    """Reporter rejects a claimed resolution."""

    reason: Optional[str] = Field(None, max_length=500)


class PaginationParams(RequestModel):
    """Pagination parameters."""

    page: int = Field(default=1, ge=1, description="Page number")
    page_size: int = Field(default=20, ge=1, le=100, description="Items per page")


class CaseListQuery(PaginationParams):
    """Case list filters."""

    status: Optional[List[CaseStatus]] = Field(None, description="Comma-separated statuses")
    animal_type: Optional[AnimalType] = None
    urgency_level: Optional[UrgencyLevel] = None
    mine: bool = Field(default=False, description="Only cases assigned to the caller")
    reported_by_me: bool = Field(default=False, description="Only cases reported by the caller")

    @field_validator('status', mode='before')
    @classmethod
    def split_status(cls, v):
        return split_csv(v)


class NearbyQuery(RequestModel):
    """Proximity query around a point."""

    lng: float = Field(..., ge=-180, le=180)
    lat: float = Field(..., ge=-90, le=90)
    radius: float = Field(default=10, gt=0, le=MAX_SERVICE_RADIUS_KM, description="Radius in km")
    limit: int = Field(default=50, ge=1, le=200)


class NearbyHelpersQuery(NearbyQuery):
    """Helper proximity filters."""

    user_type: Optional[UserType] = None
    verification_status: Optional[VerificationStatus] = Field(default=VerificationStatus.APPROVED)
    active_only: bool = Field(default=True)

    @field_validator('user_type')
    @classmethod
    def validate_helper_type(cls, v):
        if v is not None and v not in (UserType.VOLUNTEER.value, UserType.NGO.value):
            raise ValueError('user_type must be volunteer or ngo')
        return v


class NearbyCasesQuery(NearbyQuery):
    """Case proximity filters."""

    status: Optional[List[CaseStatus]] = Field(None, description="Comma-separated statuses")

    @field_validator('status', mode='before')
    @classmethod
    def split_status(cls, v):
        return split_csv(v)


class CoveringHelpersQuery(RequestModel):
    """Point to test against helper service areas."""

    lng: float = Field(..., ge=-180, le=180)
    lat: float = Field(..., ge=-90, le=90)
    animal_type: Optional[AnimalType] = None


class OverdueCasesQuery(RequestModel):
    """Threshold for overdue cases."""

    hours: int = Field(default=24, ge=1, le=24 * 30)


class CreateServiceAreaRequest(RequestModel):
    """Declare a new coverage circle."""

    location: GeoPoint
    radius: float = Field(..., ge=MIN_SERVICE_RADIUS_KM, le=MAX_SERVICE_RADIUS_KM)
    city: str = Field(..., min_length=2, max_length=100)
    state: str = Field(..., min_length=2, max_length=100)


class UpdateServiceAreaRequest(RequestModel):
    """Edit a coverage circle."""

    radius: Optional[float] = Field(None, ge=MIN_SERVICE_RADIUS_KM, le=MAX_SERVICE_RADIUS_KM)
    city: Optional[str] = Field(None, min_length=2, max_length=100)
    state: Optional[str] = Field(None, min_length=2, max_length=100)

    def changes(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class MessageListQuery(RequestModel):
    """Window over a case conversation, counted from the newest message."""

    limit: int = Field(default=50, ge=1, le=100)
    skip: int = Field(default=0, ge=0)


class PostMessageRequest(RequestModel):
    """User-authored message in a case conversation."""

    content: str = Field(..., min_length=1, max_length=2000)
    message_type: MessageType = Field(default=MessageType.TEXT)
    priority: MessagePriority = Field(default=MessagePriority.NORMAL)
    image_url: Optional[str] = Field(None, max_length=500)

    @field_validator('content')
    @classmethod
    def validate_content(cls, v):
        if not v.strip():
            raise ValueError('Message content is required')
        return v

    @field_validator('message_type')
    @classmethod
    def validate_message_type(cls, v):
        if v == MessageType.SYSTEM:
            raise ValueError('System messages cannot be posted by users')
        return v


class UpdateLocationRequest(RequestModel):
    """Caller's current position as [longitude, latitude]."""

    coordinates: List[float]

    @field_validator('coordinates')
    @classmethod
    def validate_coordinates(cls, v):
        if len(v) != 2:
            raise ValueError('Coordinates must be [longitude, latitude]')
        lng, lat = v
        if not (-180 <= lng <= 180 and -90 <= lat <= 90):
            raise ValueError('Invalid coordinate values')
        return [float(lng), float(lat)]
