# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Models package - Pydantic schemas and data models for the RescueConnect platform.
"""

# Base models
from .base import BaseEntity, DocumentModel

# Enumerations
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
    MessagePriority
)

# Core entities
from .entities import (
    GeoPoint,
    CaseLocation,
    ContactInfo,
    Case,
    StatusUpdate,
    ServiceArea,
    User,
    CaseMessage,
    UserContext
)

# Request models
from .requests import (
    CreateCaseRequest,
    StatusUpdateRequest,
    TransferCaseRequest,
    ReporterRejectRequest,
    CaseListQuery,
    NearbyHelpersQuery,
    NearbyCasesQuery,
    CoveringHelpersQuery,
    CreateServiceAreaRequest,
    UpdateServiceAreaRequest
)

# Response models
from .responses import HalLink, ErrorResponse
