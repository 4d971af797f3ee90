# SPDX-License-Identifier: Apache-2.0

"""
Status update domain logic.

No progress claim is accepted without visual evidence: every status update
carries at least two photos, including the audit records written when a
reporter signs off a case.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from models.entities import Case, StatusUpdate, MIN_STATUS_UPDATE_PHOTOS
from models.enums import CaseStatus, HealthCondition, StatusUpdateKind
from models.requests import StatusUpdateRequest, STATUS_UPDATE_TARGETS

MIN_DESCRIPTION_LENGTH = 50
MAX_DESCRIPTION_LENGTH = 2000

APPROVAL_DESCRIPTION = "Reporter approved the case resolution and closed the case."
REJECTION_DESCRIPTION = "Reporter rejected the case resolution. Case has been reopened for further action."


@dataclass
class ValidationResult:
    """Result of status update validation."""
    is_valid: bool
    errors: List[str] = field(default_factory=list)


def validate_status_update(
    description: str,
    photos: List[str],
    condition: str,
    new_status: str
) -> ValidationResult:
    """
    Validate a status update before anything is written.

    Args:
        description: Progress description
        photos: Photo references
        condition: Reported animal condition
        new_status: Target case status

    Returns:
        ValidationResult with all errors found
    """
    errors = []

    length = len((description or "").strip())
    if length < MIN_DESCRIPTION_LENGTH:
        errors.append(f"Description must be at least {MIN_DESCRIPTION_LENGTH} characters")
    elif length > MAX_DESCRIPTION_LENGTH:
        errors.append(f"Description cannot exceed {MAX_DESCRIPTION_LENGTH} characters")

    if len([photo for photo in photos or [] if photo]) < MIN_STATUS_UPDATE_PHOTOS:
        errors.append(f"At least {MIN_STATUS_UPDATE_PHOTOS} photos are required")

    if condition not in [c.value for c in HealthCondition]:
        errors.append(f"Invalid condition: {condition}")

    if new_status not in [s.value for s in STATUS_UPDATE_TARGETS]:
        errors.append(f"Invalid target status: {new_status}")

    return ValidationResult(is_valid=not errors, errors=errors)


def build_status_update(
    case: Case,
    author_id: str,
    request: StatusUpdateRequest,
    now: Optional[datetime] = None
) -> StatusUpdate:
    """Create the record for a helper's progress report."""
    now = now or datetime.utcnow()
    return StatusUpdate(
        case_id=case.id,
        author_id=author_id,
        kind=StatusUpdateKind.PROGRESS.value,
        previous_status=case.status,
        new_status=request.new_status,
        condition=request.condition,
        description=request.description.strip(),
        photos=[photo for photo in request.photos if photo],
        treatment_provided=request.treatment_provided,
        next_steps=request.next_steps,
        notes=request.notes,
        location=request.location,
        timestamp=now,
        created_at=now,
        updated_at=now,
        created_by=author_id
    )


def build_reporter_audit_update(
    case: Case,
    author_id: str,
    kind: str,
    previous_status: str,
    photos: List[str],
    reason: Optional[str] = None,
    now: Optional[datetime] = None
) -> StatusUpdate:
    """
    Create the audit record for a reporter approval or rejection.

    The photos are taken from the helper's latest evidence; fewer than two
    makes the record invalid and the caller skips it.

    Raises:
        pydantic.ValidationError: If the audit record would break the photo rule
    """
    now = now or datetime.utcnow()

    if kind == StatusUpdateKind.REPORTER_APPROVAL:
        new_status = CaseStatus.CLOSED.value
        condition = HealthCondition.RECOVERED.value
        description = APPROVAL_DESCRIPTION
        notes = "Case closed by reporter approval"
    else:
        new_status = CaseStatus.IN_PROGRESS.value
        condition = HealthCondition.STABLE.value
        description = REJECTION_DESCRIPTION
        if reason:
            description = f"{description} Reason: {reason}"
        notes = "Case rejected by reporter - needs more work"

    return StatusUpdate(
        case_id=case.id,
        author_id=author_id,
        kind=kind,
        previous_status=previous_status,
        new_status=new_status,
        condition=condition,
        description=description[:MAX_DESCRIPTION_LENGTH],
        photos=list(photos),
        notes=notes,
        timestamp=now,
        created_at=now,
        updated_at=now,
        created_by=author_id
    )
