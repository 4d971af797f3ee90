# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Reminder service: claims cases whose progress reminder is due.

Selection and flagging happen in one conditional update keyed on
``reminderSent=false``, so overlapping trigger runs never claim the same case.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional
from opentelemetry import trace
from pymongo import ASCENDING

from models.entities import Case
from models.enums import ACTIVE_STATUSES
from .amqp import AMQPService
from .mongodb import MongoDBService, load_entities

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


@dataclass
class ReminderRun:
    """Outcome of one reminder pass."""
    claimed: int = 0
    published: int = 0
    failed_case_ids: List[str] = field(default_factory=list)


class ReminderService:
    """Due-reminder selection and dispatch."""

    def __init__(self, mongo_service: MongoDBService, amqp_service: Optional[AMQPService] = None):
        self.mongo_service = mongo_service
        self.amqp_service = amqp_service

    def due_filter(self, now: datetime) -> dict:
        return {
            "status": {"$in": [status.value for status in ACTIVE_STATUSES]},
            "nextReminderDue": {"$ne": None, "$lte": now},
            "reminderSent": False
        }

    def claim_due_reminders(self, now: Optional[datetime] = None, limit: int = 100) -> List[Case]:
        """
        Atomically claim up to ``limit`` due cases, flagging each as reminded.

        Args:
            now: Reference time (defaults to current UTC time)
            limit: Maximum number of cases to claim

        Returns:
            Claimed cases, earliest due first
        """
        now = now or datetime.utcnow()

        with tracer.start_as_current_span("reminders.claim_due") as span:
            documents = []
            while len(documents) < limit:
                document = self.mongo_service.claim_one(
                    "cases",
                    self.due_filter(now),
                    {"reminderSent": True},
                    sort=[("nextReminderDue", ASCENDING)]
                )
                if document is None:
                    break
                documents.append(document)

            span.set_attribute("reminders.claimed", len(documents))
            if documents:
                logger.info(f"Claimed {len(documents)} due reminders")
            return load_entities(Case, documents)

    def dispatch_due_reminders(self, now: Optional[datetime] = None, limit: int = 100) -> ReminderRun:
        """Claim due reminders and publish one event per case."""
        run = ReminderRun()
        cases = self.claim_due_reminders(now, limit)
        run.claimed = len(cases)

        for case in cases:
            if self.amqp_service is None:
                logger.info("Reminder due", extra={"case_id": case.id, "helpers": case.assigned_helpers})
                continue

            result = self.amqp_service.publish_reminder(case)
            if result.success:
                run.published += 1
            else:
                run.failed_case_ids.append(case.id)
                logger.warning(
                    "Reminder was not published",
                    extra={"case_id": case.id, "error": result.error}
                )
                self.release_claim(case.id)

        return run

    def release_claim(self, case_id: str) -> bool:
        """
        Clear the reminder flag of a claimed case so a later pass retries it.

        Only a case still flagged is touched; a status update that already
        rescheduled the reminder wins.
        """
        released = self.mongo_service.update_one(
            "cases", case_id, {"reminderSent": False}, filters={"reminderSent": True}
        )
        if released:
            logger.info("Reminder claim released", extra={"case_id": case_id})
        return released
