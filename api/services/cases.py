# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Case service: orchestrates the case lifecycle against storage.

All case writes are compare-and-set on the case ``version`` and are retried a
bounded number of times when another writer got there first. Status updates
are written as a two-step saga: the update record is inserted, then the case
is mutated; if the case write fails the update record is deleted again.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode
from pydantic import ValidationError
from pydantic.alias_generators import to_camel
from pymongo import ASCENDING, DESCENDING

from domain.cases import (
    AssignHelper, ApplyStatus, TransferCase, ReporterApproval, ReporterRejection,
    TransitionRequest, AuthorizationResult, ReporterMatch,
    mark_resolved, plan_transition, check_invariants, authorize_reporter,
    build_case, reporter_filter, build_case_timeline
)
from domain.status_updates import (
    validate_status_update, build_status_update, build_reporter_audit_update
)
from middleware.error_handler import (
    AuthenticationException, AuthorizationException, ConflictException,
    NotFoundException, ValidationException
)
from models.entities import Case, StatusUpdate, User, UserContext, MIN_STATUS_UPDATE_PHOTOS
from models.enums import (
    CaseStatus, MessagePriority, StatusUpdateKind, UserType, ACTIVE_STATUSES
)
from models.requests import CaseListQuery, CreateCaseRequest, StatusUpdateRequest
from .amqp import AMQPService, CASE_CREATED, CASE_TRANSFERRED
from .matching import GeoMatcherService
from .messages import CaseMessageService
from .mongodb import MongoDBService, PaginationResult, VersionConflictError, load_entities

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

CASES = "cases"
STATUS_UPDATES = "status_updates"
USERS = "users"


class CaseService:
    """Case lifecycle operations backed by MongoDB."""

    def __init__(
        self,
        mongo_service: MongoDBService,
        matcher: GeoMatcherService,
        message_service: CaseMessageService,
        amqp_service: Optional[AMQPService] = None,
        max_attempts: int = 3,
        match_radius_km: float = 10,
        transfer_radius_km: float = 25
    ):
        self.mongo_service = mongo_service
        self.matcher = matcher
        self.message_service = message_service
        self.amqp_service = amqp_service
        self.max_attempts = max(1, max_attempts)
        self.match_radius_km = match_radius_km
        self.transfer_radius_km = transfer_radius_km

    # Reads

    def get_case(self, case_id: str) -> Case:
        """
        Load a case.

        Raises:
            NotFoundException: If the case does not exist
        """
        document = self.mongo_service.find_one(CASES, case_id)
        if not document:
            raise NotFoundException(f"Case {case_id} not found")
        return Case.from_document(document)

    def get_user(self, user_id: Optional[str]) -> Optional[User]:
        if not user_id:
            return None
        document = self.mongo_service.find_one(USERS, user_id)
        users = load_entities(User, [document]) if document else []
        return users[0] if users else None

    def list_cases(
        self,
        query: CaseListQuery,
        user_context: Optional[UserContext] = None
    ) -> Tuple[List[Case], PaginationResult]:
        """
        List cases with filters, newest first.

        Raises:
            AuthenticationException: If ``mine`` or ``reported_by_me`` is requested anonymously
        """
        with tracer.start_as_current_span("cases.list") as span:
            filters: Dict[str, Any] = {}
            if query.status:
                filters["status"] = {"$in": list(query.status)}
            if query.animal_type:
                filters["animalType"] = query.animal_type
            if query.urgency_level:
                filters["urgencyLevel"] = query.urgency_level

            if query.mine or query.reported_by_me:
                if not user_context:
                    raise AuthenticationException("Authentication required to filter your own cases")
                if query.mine:
                    filters["assignedHelpers"] = user_context.user_id
                if query.reported_by_me:
                    _, phone, email = self._acting_identity(user_context)
                    filters.update(reporter_filter(user_context.user_id, phone, email))

            result = self.mongo_service.paginate(
                CASES,
                page=query.page,
                page_size=query.page_size,
                filters=filters
            )
            span.set_attributes({
                "cases.total": result.total,
                "cases.page": query.page
            })
            return load_entities(Case, result.items), result

    def find_nearby_cases(
        self,
        point: Tuple[float, float],
        radius_km: float,
        statuses: Optional[List[str]] = None,
        limit: int = 50
    ) -> List[Tuple[Case, float]]:
        """Cases around a point; open cases by default."""
        return self.matcher.find_nearby_cases(
            point, radius_km, statuses or [CaseStatus.OPEN.value], limit
        )

    def find_overdue_cases(self, hours: int = 24, limit: int = 100, now: Optional[datetime] = None) -> List[Case]:
        """Active cases with no progress for more than ``hours``, stalest first."""
        now = now or datetime.utcnow()
        documents = self.mongo_service.find(
            CASES,
            {
                "status": {"$in": [status.value for status in ACTIVE_STATUSES]},
                "lastStatusUpdate": {"$lt": now - timedelta(hours=hours)}
            },
            sort=[("lastStatusUpdate", ASCENDING)],
            limit=limit
        )
        return load_entities(Case, documents)

    def list_status_updates(self, case_id: str, page: int = 1, page_size: int = 20) -> Tuple[List[StatusUpdate], PaginationResult]:
        """Status updates of a case, newest first."""
        self.get_case(case_id)
        result = self.mongo_service.paginate(
            STATUS_UPDATES,
            page=page,
            page_size=page_size,
            filters={"caseId": case_id},
            sort_by="timestamp",
            sort_order=DESCENDING
        )
        return load_entities(StatusUpdate, result.items), result

    def get_timeline(self, case_id: str) -> Tuple[Case, List[Dict[str, Any]]]:
        """Case history events, newest first."""
        with tracer.start_as_current_span("cases.timeline") as span:
            span.set_attribute("case.id", case_id)
            case = self.get_case(case_id)

            updates = load_entities(StatusUpdate, self.mongo_service.find(
                STATUS_UPDATES, {"caseId": case_id}, sort=[("timestamp", DESCENDING)]
            ))
            helpers = {
                helper.id: helper
                for helper in load_entities(User, self.mongo_service.find_by_ids(USERS, case.assigned_helpers))
            }
            messages = self.message_service.list_for_case(case_id)

            return case, build_case_timeline(case, updates, helpers, messages)

    # Creation

    def create_case(self, request: CreateCaseRequest, user_context: Optional[UserContext] = None) -> Case:
        """Insert a new open case and alert candidate helpers."""
        with tracer.start_as_current_span("cases.create") as span:
            reporter_id = user_context.user_id if user_context else None
            case = build_case(request, reporter_id)

            self.mongo_service.create(CASES, case.to_document(), reporter_id)

            span.set_attributes({
                "case.id": case.id,
                "case.animal_type": case.animal_type,
                "case.urgency_level": case.urgency_level,
                "case.anonymous": reporter_id is None
            })
            logger.info(
                "Case created",
                extra={
                    "case_id": case.id,
                    "reporter_id": reporter_id,
                    "animal_type": case.animal_type,
                    "urgency_level": case.urgency_level
                }
            )

            self._dispatch(CASE_CREATED, case, self.match_radius_km)
            return case

    # Lifecycle

    def assign_helper(self, case_id: str, helper_id: str) -> Case:
        """Add a helper to a case (idempotent per helper)."""
        with tracer.start_as_current_span("cases.assign_helper") as span:
            span.set_attributes({"case.id": case_id, "helper.id": helper_id})

            before, case = self._mutate(case_id, lambda current: AssignHelper(helper_id))

            if helper_id not in before.assigned_helpers:
                helper = self.get_user(helper_id)
                if helper:
                    self.message_service.post_system_message(
                        case_id, f"{helper.name} has been assigned to help with this case"
                    )

            span.set_attribute("case.status", case.status)
            return case

    def apply_status(self, case_id: str, new_status: str) -> Case:
        """Apply the central status rule directly."""
        _, case = self._mutate(case_id, lambda current: ApplyStatus(new_status))
        return case

    def mark_resolved(self, case_id: str, user_context: Optional[UserContext] = None) -> Case:
        """Resolve a case; closes it or waits for reporter sign-off."""
        with tracer.start_as_current_span("cases.mark_resolved") as span:
            span.set_attribute("case.id", case_id)
            _, case = self._mutate(case_id, lambda current: mark_resolved())

            span.set_attributes({
                "case.status": case.status,
                "case.pending_reporter_approval": case.pending_reporter_approval
            })
            logger.info(
                "Case marked resolved",
                extra={
                    "case_id": case_id,
                    "status": case.status,
                    "pending_reporter_approval": case.pending_reporter_approval,
                    "user_id": user_context.user_id if user_context else None
                }
            )
            return case

    def transfer(self, case_id: str, reason: str) -> Case:
        """Reopen a case as critical and re-broadcast it to a wider pool."""
        with tracer.start_as_current_span("cases.transfer") as span:
            span.set_attribute("case.id", case_id)
            _, case = self._mutate(case_id, lambda current: TransferCase(reason))

            logger.info("Case transferred", extra={"case_id": case_id, "reason": reason})

            self.message_service.post_system_message(
                case_id, f"Case transferred: {reason}", MessagePriority.URGENT.value
            )
            self._dispatch(
                CASE_TRANSFERRED, case, self.transfer_radius_km,
                reason=reason, nearby_user_type=UserType.NGO.value
            )
            return case

    def submit_status_update(
        self,
        case_id: str,
        author_id: str,
        request: StatusUpdateRequest
    ) -> Tuple[StatusUpdate, Case]:
        """
        Record a photo-evidenced update and apply its target status.

        The update is inserted before the case write. A failed case write
        deletes the inserted update; version conflicts are retried.

        Raises:
            ValidationException: Before any write, if the update is invalid
            NotFoundException: If the case does not exist
            ConflictException: If the case keeps changing underneath
        """
        with tracer.start_as_current_span("cases.submit_status_update") as span:
            span.set_attributes({
                "case.id": case_id,
                "status_update.new_status": request.new_status,
                "status_update.photos": len(request.photos)
            })

            validation = validate_status_update(
                request.description, request.photos, request.condition, request.new_status
            )
            if not validation.is_valid:
                span.set_status(Status(StatusCode.ERROR, "validation failed"))
                raise ValidationException(
                    "Status update validation failed",
                    [{"field": "statusUpdate", "message": error, "type": "value_error"} for error in validation.errors]
                )

            for attempt in range(1, self.max_attempts + 1):
                current = self.get_case(case_id)
                update = build_status_update(current, author_id, request)
                update_id = self.mongo_service.create(STATUS_UPDATES, update.to_document(), author_id)

                try:
                    case = self._write_transition(current, ApplyStatus(request.new_status))
                except VersionConflictError:
                    self._compensate(update_id, case_id)
                    logger.warning(
                        "Case changed during status update, retrying",
                        extra={"case_id": case_id, "attempt": attempt}
                    )
                    continue
                except Exception as e:
                    span.record_exception(e)
                    self._compensate(update_id, case_id)
                    raise

                span.set_attribute("case.status", case.status)
                logger.info(
                    "Status update recorded",
                    extra={
                        "case_id": case_id,
                        "status_update_id": update_id,
                        "previous_status": update.previous_status,
                        "new_status": update.new_status,
                        "stored_status": case.status
                    }
                )
                return update, case

            span.set_status(Status(StatusCode.ERROR, "version conflict"))
            raise ConflictException(f"Case {case_id} was modified concurrently, please retry")

    def reporter_approve(self, case_id: str, user_context: Optional[UserContext]) -> Case:
        """Reporter confirms the resolution and closes the case."""
        with tracer.start_as_current_span("cases.reporter_approve") as span:
            span.set_attribute("case.id", case_id)
            user_id, phone, email = self._acting_identity(user_context)

            def request_for(current: Case) -> TransitionRequest:
                self._authorize(current, user_id, phone, email, span)
                return ReporterApproval()

            before, case = self._mutate(case_id, request_for)

            self._record_reporter_audit(before, user_id, StatusUpdateKind.REPORTER_APPROVAL.value)
            logger.info("Reporter approved resolution", extra={"case_id": case_id, "user_id": user_id})
            return case

    def reporter_reject(self, case_id: str, user_context: Optional[UserContext], reason: Optional[str] = None) -> Case:
        """Reporter rejects the resolution and reopens work on the case."""
        with tracer.start_as_current_span("cases.reporter_reject") as span:
            span.set_attribute("case.id", case_id)
            user_id, phone, email = self._acting_identity(user_context)

            def request_for(current: Case) -> TransitionRequest:
                self._authorize(current, user_id, phone, email, span)
                return ReporterRejection(reason)

            before, case = self._mutate(case_id, request_for)

            self._record_reporter_audit(before, user_id, StatusUpdateKind.REPORTER_REJECTION.value, reason)
            suffix = f": {reason}" if reason else ""
            self.message_service.post_system_message(
                case_id,
                f"Reporter rejected the resolution{suffix}. Case has been reopened.",
                MessagePriority.URGENT.value
            )
            logger.info("Reporter rejected resolution", extra={"case_id": case_id, "user_id": user_id})
            return case

    # Internals

    def _mutate(self, case_id: str, request_for: Callable[[Case], TransitionRequest]) -> Tuple[Case, Case]:
        """
        Read-plan-write loop with optimistic concurrency.

        Args:
            case_id: Case to mutate
            request_for: Builds the transition request from the freshly read case

        Returns:
            (case as read, case as written)
        """
        for attempt in range(1, self.max_attempts + 1):
            current = self.get_case(case_id)
            request = request_for(current)
            try:
                return current, self._write_transition(current, request)
            except VersionConflictError:
                logger.warning(
                    "Case version conflict, retrying",
                    extra={"case_id": case_id, "attempt": attempt, "request": type(request).__name__}
                )

        raise ConflictException(f"Case {case_id} was modified concurrently, please retry")

    def _write_transition(self, case: Case, request: TransitionRequest) -> Case:
        """
        Plan a transition and persist it guarded by the case version.

        Raises:
            VersionConflictError: If the case changed since it was read
            ConflictException: If the planned state breaks a stored-state rule
        """
        outcome = plan_transition(case, request)
        updated = outcome.apply(case)

        violations = check_invariants(updated)
        if violations:
            logger.error(
                "Transition would leave case inconsistent",
                extra={"case_id": case.id, "request": type(request).__name__, "violations": violations}
            )
            raise ConflictException(f"Case {case.id} cannot be updated: {'; '.join(violations)}")

        set_fields = {to_camel(name): getattr(updated, name) for name in outcome.changes}
        add_to_set = {"assignedHelpers": outcome.add_helper} if outcome.add_helper else None

        version = self.mongo_service.update_versioned(CASES, case.id, case.version, set_fields, add_to_set)
        return updated.model_copy(update={"version": version})

    def _compensate(self, update_id: str, case_id: str) -> None:
        """Delete a status update whose case write did not happen."""
        try:
            self.mongo_service.delete_one(STATUS_UPDATES, update_id)
        except Exception as e:
            logger.error(
                "Failed to delete orphaned status update",
                extra={"case_id": case_id, "status_update_id": update_id, "error": str(e)},
                exc_info=True
            )

    def _acting_identity(self, user_context: Optional[UserContext]) -> Tuple[Optional[str], Optional[str], Optional[str]]:
        """User ID plus phone/email from the account, falling back to token claims."""
        if not user_context:
            return None, None, None

        phone, email = user_context.phone, user_context.email
        account = self.get_user(user_context.user_id)
        if account:
            phone = account.phone or phone
            email = account.email or email
        return user_context.user_id, phone, email

    def _authorize(self, case: Case, user_id, phone, email, span) -> AuthorizationResult:
        result = authorize_reporter(case, user_id, phone, email)
        span.set_attribute("auth.reporter_match", result.strategy.value)

        if result.allowed:
            if result.strategy == ReporterMatch.CONTACT:
                logger.warning(
                    "Reporter matched by contact info",
                    extra={"case_id": case.id, "user_id": user_id}
                )
            return result

        logger.warning(
            "Reporter sign-off denied",
            extra={"case_id": case.id, "user_id": user_id}
        )
        raise AuthorizationException(result.reason)

    def _latest_evidence(self, case_id: str) -> List[str]:
        """Photos of the most recent update carrying enough evidence."""
        documents = self.mongo_service.find(
            STATUS_UPDATES,
            {"caseId": case_id, f"photos.{MIN_STATUS_UPDATE_PHOTOS - 1}": {"$exists": True}},
            sort=[("timestamp", DESCENDING)],
            limit=1
        )
        return list(documents[0].get("photos", [])) if documents else []

    def _record_reporter_audit(self, before: Case, user_id: str, kind: str, reason: Optional[str] = None) -> None:
        """Write the audit status update for a sign-off; failures are logged only."""
        try:
            audit = build_reporter_audit_update(
                before, user_id, kind, before.status, self._latest_evidence(before.id), reason
            )
            self.mongo_service.create(STATUS_UPDATES, audit.to_document(), user_id)
        except ValidationError as e:
            logger.warning(
                "Skipping reporter audit update without photo evidence",
                extra={"case_id": before.id, "kind": kind, "error": str(e)}
            )
        except Exception as e:
            logger.error(
                "Failed to record reporter audit update",
                extra={"case_id": before.id, "kind": kind, "error": str(e)},
                exc_info=True
            )

    def _dispatch(
        self,
        event: str,
        case: Case,
        radius_km: float,
        reason: Optional[str] = None,
        nearby_user_type: Optional[str] = None
    ) -> List[User]:
        """Find candidate helpers and publish the alert; failures are logged only."""
        with tracer.start_as_current_span("cases.dispatch") as span:
            span.set_attributes({"case.id": case.id, "notification.event": event})
            try:
                helpers = self.matcher.candidate_helpers(
                    case.location.coordinates, radius_km, case.animal_type, nearby_user_type
                )
            except Exception as e:
                span.record_exception(e)
                logger.error(
                    "Failed to find helpers for case alert",
                    extra={"case_id": case.id, "event": event, "error": str(e)},
                    exc_info=True
                )
                return []

            span.set_attribute("notification.recipients", len(helpers))

            if self.amqp_service is None:
                logger.info(
                    "Notification dispatch disabled",
                    extra={"case_id": case.id, "event": event, "helpers": len(helpers)}
                )
                return helpers

            result = self.amqp_service.publish_case_alert(event, case, helpers, reason)
            if not result.success:
                logger.warning(
                    "Case alert was not published",
                    extra={"case_id": case.id, "event": event, "error": result.error}
                )
            return helpers
