# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Enumeration types for the RescueConnect platform.
"""

from enum import Enum


class AnimalType(str, Enum):
    """Kind of animal reported in a case."""
    DOG = "dog"
    CAT = "cat"
    BIRD = "bird"
    CATTLE = "cattle"
    WILDLIFE = "wildlife"
    OTHER = "other"


class AnimalCondition(str, Enum):
    """Condition of the animal at report time."""
    INJURED = "injured"
    SICK = "sick"
    TRAPPED = "trapped"
    ABANDONED = "abandoned"
    AGGRESSIVE = "aggressive"
    OTHER = "other"


class CaseStatus(str, Enum):
    """Case lifecycle status."""
    OPEN = "open"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    CLOSED = "closed"


class UrgencyLevel(str, Enum):
    """Case urgency levels."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class HealthCondition(str, Enum):
    """Animal condition reported in a status update."""
    IMPROVING = "improving"
    STABLE = "stable"
    DETERIORATING = "deteriorating"
    CRITICAL = "critical"
    RECOVERED = "recovered"


class StatusUpdateKind(str, Enum):
    """Origin of a status update record."""
    PROGRESS = "progress"
    REPORTER_APPROVAL = "reporter_approval"
    REPORTER_REJECTION = "reporter_rejection"


class UserType(str, Enum):
    """Account types."""
    REPORTER = "reporter"
    VOLUNTEER = "volunteer"
    NGO = "ngo"
    ADMIN = "admin"


class VerificationStatus(str, Enum):
    """Helper verification workflow status."""
    NOT_SUBMITTED = "not_submitted"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class MessageType(str, Enum):
    """Case message types."""
    TEXT = "text"
    STATUS_UPDATE = "status_update"
    SYSTEM = "system"
    IMAGE = "image"


class MessagePriority(str, Enum):
    """Case message priority."""
    NORMAL = "normal"
    URGENT = "urgent"


HELPER_TYPES = (UserType.VOLUNTEER, UserType.NGO)
ACTIVE_STATUSES = (CaseStatus.ASSIGNED, CaseStatus.IN_PROGRESS)
