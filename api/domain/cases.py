# SPDX-License-Identifier: Apache-2.0

"""
Case lifecycle domain logic.

Every case mutation is expressed as a transition request and resolved by
``plan_transition`` into the exact set of field changes to persist. Assignment,
status updates, transfer, resolution and reporter sign-off all share this one
rule set.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from models.entities import Case, CaseMessage, ContactInfo, StatusUpdate, User, normalize_phone
from models.enums import (
    AnimalCondition, CaseStatus, UrgencyLevel, ACTIVE_STATUSES
)
from models.requests import CreateCaseRequest

REMINDER_INTERVAL = timedelta(hours=24)
TRANSFER_NOTE = "\n\n[TRANSFERRED] Reason: {reason}"
HIGH_URGENCY_CONDITIONS = (AnimalCondition.INJURED, AnimalCondition.TRAPPED)


@dataclass(frozen=True)
class AssignHelper:
    """Add a helper to the case."""
    helper_id: str


@dataclass(frozen=True)
class ApplyStatus:
    """Move the case towards a target status."""
    new_status: str


@dataclass(frozen=True)
class TransferCase:
    """Reopen the case as critical for a wider helper pool."""
    reason: str


@dataclass(frozen=True)
class ReporterApproval:
    """Reporter confirms the resolution."""


@dataclass(frozen=True)
class ReporterRejection:
    """Reporter rejects the resolution."""
    reason: Optional[str] = None


TransitionRequest = Union[AssignHelper, ApplyStatus, TransferCase, ReporterApproval, ReporterRejection]


def mark_resolved() -> ApplyStatus:
    """Resolution request; the stored outcome depends on the approval gate."""
    return ApplyStatus(CaseStatus.RESOLVED.value)


@dataclass
class TransitionOutcome:
    """Field changes produced by a transition."""
    changes: Dict[str, Any] = field(default_factory=dict)
    add_helper: Optional[str] = None

    def apply(self, case: Case) -> Case:
        """Return a new case with the changes applied."""
        data = case.model_dump()
        data.update(self.changes)
        if self.add_helper and self.add_helper not in data["assigned_helpers"]:
            data["assigned_helpers"] = data["assigned_helpers"] + [self.add_helper]
        return Case.model_validate(data)


def _schedule_reminder(now: datetime) -> Dict[str, Any]:
    return {
        "next_reminder_due": now + REMINDER_INTERVAL,
        "reminder_sent": False
    }


def _status_changes(case: Case, new_status: str, now: datetime) -> Dict[str, Any]:
    """Central status rule."""
    changes: Dict[str, Any] = {"last_status_update": now}

    if new_status in (CaseStatus.ASSIGNED, CaseStatus.IN_PROGRESS):
        # A new progress report withdraws any pending resolution claim
        changes.update(
            status=new_status,
            pending_reporter_approval=False,
            resolved_at=None,
            **_schedule_reminder(now)
        )

    elif new_status == CaseStatus.RESOLVED:
        if case.requires_reporter_approval:
            changes.update(
                status=CaseStatus.IN_PROGRESS.value,
                pending_reporter_approval=True,
                resolved_at=now,
                next_reminder_due=None
            )
        else:
            changes.update(
                status=CaseStatus.CLOSED.value,
                pending_reporter_approval=False,
                resolved_at=now,
                next_reminder_due=None
            )

    elif new_status == CaseStatus.CLOSED:
        changes.update(
            status=CaseStatus.CLOSED.value,
            resolved_at=now,
            next_reminder_due=None,
            pending_reporter_approval=False
        )

    elif new_status == CaseStatus.OPEN:
        changes.update(
            status=CaseStatus.OPEN.value,
            next_reminder_due=None,
            pending_reporter_approval=False
        )

    else:
        raise ValueError(f"Unknown case status: {new_status}")

    return changes


def plan_transition(case: Case, request: TransitionRequest, now: Optional[datetime] = None) -> TransitionOutcome:
    """
    Compute the field changes a transition request produces.

    Args:
        case: Current case state
        request: Transition request
        now: Transition time (defaults to current UTC time)

    Returns:
        TransitionOutcome with snake_case field changes
    """
    now = now or datetime.utcnow()

    if isinstance(request, AssignHelper):
        outcome = TransitionOutcome(
            changes={"last_status_update": now},
            add_helper=request.helper_id
        )
        if case.status == CaseStatus.OPEN:
            outcome.changes.update(_status_changes(case, CaseStatus.ASSIGNED.value, now))
        return outcome

    if isinstance(request, ApplyStatus):
        return TransitionOutcome(changes=_status_changes(case, request.new_status, now))

    if isinstance(request, TransferCase):
        return TransitionOutcome(changes={
            "status": CaseStatus.OPEN.value,
            "urgency_level": UrgencyLevel.CRITICAL.value,
            "description": case.description + TRANSFER_NOTE.format(reason=request.reason),
            "next_reminder_due": None,
            "reminder_sent": False,
            "pending_reporter_approval": False,
            "resolved_at": None,
            "last_status_update": now
        })

    if isinstance(request, ReporterApproval):
        return TransitionOutcome(changes={
            "status": CaseStatus.CLOSED.value,
            "pending_reporter_approval": False,
            "next_reminder_due": None,
            "resolved_at": case.resolved_at or now,
            "last_status_update": now
        })

    if isinstance(request, ReporterRejection):
        return TransitionOutcome(changes={
            "status": CaseStatus.IN_PROGRESS.value,
            "pending_reporter_approval": False,
            "resolved_at": None,
            "last_status_update": now,
            **_schedule_reminder(now)
        })

    raise TypeError(f"Unsupported transition request: {type(request).__name__}")


def check_invariants(case: Case) -> List[str]:
    """Return violations of the stored-state rules (empty when consistent)."""
    violations = []

    if case.next_reminder_due is not None and case.status not in ACTIVE_STATUSES:
        violations.append("nextReminderDue set outside assigned/in_progress")

    if case.pending_reporter_approval and case.status != CaseStatus.IN_PROGRESS:
        violations.append("pendingReporterApproval set outside in_progress")

    if case.status == CaseStatus.RESOLVED and case.requires_reporter_approval:
        violations.append("resolved stored while reporter approval is required")

    if len(set(case.assigned_helpers)) != len(case.assigned_helpers):
        violations.append("duplicate assigned helpers")

    return violations


# Reporter authorization

class ReporterMatch(str, Enum):
    """How the acting identity was matched to the case reporter."""
    REFERENCE = "reference"
    CONTACT = "contact"
    NONE = "none"


@dataclass
class AuthorizationResult:
    """Result of a reporter authorization check."""
    allowed: bool
    strategy: ReporterMatch
    reason: Optional[str] = None


def authorize_reporter(
    case: Case,
    user_id: Optional[str],
    phone: Optional[str] = None,
    email: Optional[str] = None
) -> AuthorizationResult:
    """
    Decide whether an identity may approve or reject a case resolution.

    Primary strategy: the identity is the stored reporter reference.
    Secondary strategy, only for cases reported anonymously: the identity's
    phone or email equals the contact info captured with the report. Contact
    details can coincide across accounts, so this fallback is weaker than the
    reference match.

    Args:
        case: Case being signed off
        user_id: Acting user ID (None when unauthenticated)
        phone: Acting user's phone number, if known
        email: Acting user's email, if known

    Returns:
        AuthorizationResult with the matching strategy
    """
    if not user_id:
        return AuthorizationResult(False, ReporterMatch.NONE, "Authentication required")

    if case.reporter_id:
        if case.reporter_id == user_id:
            return AuthorizationResult(True, ReporterMatch.REFERENCE)
        return AuthorizationResult(False, ReporterMatch.NONE, "Only the reporter can sign off this case")

    contact = case.contact_info
    if phone and contact.phone and normalize_phone(phone) == contact.phone:
        return AuthorizationResult(True, ReporterMatch.CONTACT)
    if email and contact.email and email.strip().lower() == contact.email:
        return AuthorizationResult(True, ReporterMatch.CONTACT)

    return AuthorizationResult(False, ReporterMatch.NONE, "Only the reporter can sign off this case")


# Creation

def derive_urgency(condition: str) -> str:
    """High urgency for injured or trapped animals, medium otherwise."""
    if condition in HIGH_URGENCY_CONDITIONS:
        return UrgencyLevel.HIGH.value
    return UrgencyLevel.MEDIUM.value


def build_case(request: CreateCaseRequest, reporter_id: Optional[str] = None) -> Case:
    """Create an open case from a validated report."""
    location = request.location.model_dump()
    location["landmarks"] = location.get("landmarks") or location["address"]

    return Case(
        reporter_id=reporter_id,
        animal_type=request.animal_type,
        condition=request.condition,
        description=request.description,
        location=location,
        photos=request.photos,
        contact_info=request.contact_info,
        status=CaseStatus.OPEN.value,
        urgency_level=derive_urgency(request.condition),
        requires_reporter_approval=request.requires_reporter_approval,
        created_by=reporter_id
    )


def reporter_filter(user_id: str, phone: Optional[str] = None, email: Optional[str] = None) -> Dict[str, Any]:
    """MongoDB filter for cases reported by a user, including anonymous ones matching their contact."""
    clauses: List[Dict[str, Any]] = [{"reporterId": user_id}]
    if phone:
        clauses.append({"reporterId": None, "contactInfo.phone": normalize_phone(phone)})
    if email:
        clauses.append({"reporterId": None, "contactInfo.email": email.strip().lower()})
    return {"$or": clauses} if len(clauses) > 1 else clauses[0]


# Timeline

def build_case_timeline(
    case: Case,
    status_updates: List[StatusUpdate],
    helpers: Dict[str, User],
    messages: Optional[List[CaseMessage]] = None
) -> List[Dict[str, Any]]:
    """
    Assemble the case history, newest first.

    Args:
        case: Case whose history is built
        status_updates: Status updates recorded for the case
        helpers: Assigned helper accounts keyed by ID
        messages: System messages posted to the case

    Returns:
        List of timeline event dictionaries
    """
    timeline = [{
        "type": "created",
        "timestamp": case.created_at,
        "status": CaseStatus.OPEN.value,
        "title": "Case Reported",
        "description": f"{case.animal_type.capitalize()} in {case.condition} condition reported",
        "details": {
            "animalType": case.animal_type,
            "condition": case.condition,
            "urgencyLevel": case.urgency_level,
            "location": case.location.address or case.location.landmarks,
            "reporter": {"name": case.contact_info.name or "Anonymous"}
        },
        "photos": list(case.photos)
    }]

    for helper_id in case.assigned_helpers:
        helper = helpers.get(helper_id)
        timeline.append({
            "type": "assigned",
            "timestamp": case.last_status_update,
            "status": CaseStatus.ASSIGNED.value,
            "title": "Helper Assigned",
            "description": f"{helper.name if helper else 'A helper'} accepted the case",
            "details": {
                "helper": {
                    "id": helper_id,
                    "name": helper.name if helper else None,
                    "userType": helper.user_type if helper else None,
                    "organization": helper.profile.organization if helper else None
                }
            }
        })

    for update in status_updates:
        timeline.append({
            "type": "status_update",
            "timestamp": update.timestamp,
            "status": update.new_status,
            "title": "Status Update",
            "description": update.description,
            "details": {
                "kind": update.kind,
                "condition": update.condition,
                "previousStatus": update.previous_status,
                "newStatus": update.new_status,
                "notes": update.notes,
                "updatedBy": update.author_id
            },
            "photos": list(update.photos)
        })

    for message in messages or []:
        timeline.append({
            "type": "message",
            "timestamp": message.created_at,
            "status": case.status,
            "title": "System Message",
            "description": message.content,
            "details": {"priority": message.priority}
        })

    if case.resolved_at:
        hours = int((case.resolved_at - case.created_at).total_seconds() // 3600)
        timeline.append({
            "type": "resolved",
            "timestamp": case.resolved_at,
            "status": CaseStatus.RESOLVED.value,
            "title": "Case Resolved",
            "description": "Animal rescue case successfully resolved",
            "details": {"duration": f"{hours} hours"}
        })

    timeline.sort(key=lambda event: event["timestamp"], reverse=True)
    return timeline
