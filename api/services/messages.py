# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Case conversations: system-authored timeline entries with OpenTelemetry
correlation, plus user messages with per-user read tracking.
"""

import logging
from typing import List, Optional
from opentelemetry import trace
from pymongo import ASCENDING, DESCENDING

from .mongodb import MongoDBService, load_entities
from middleware.error_handler import NotFoundException
from models.entities import CaseMessage, UserContext
from models.enums import MessagePriority, MessageType
from models.requests import PostMessageRequest

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class CaseMessageService:
    """Messages attached to cases; system messages are written best effort."""

    def __init__(self, mongo_service: MongoDBService):
        """Initialize message service with MongoDB dependency."""
        self.mongo_service = mongo_service
        self.collection_name = "messages"
        logger.info("Case message service initialized")

    def post_system_message(
        self,
        case_id: str,
        content: str,
        priority: str = MessagePriority.NORMAL.value
    ) -> Optional[str]:
        """
        Post a system message to a case timeline.

        Failures are logged and swallowed; a missing message never fails the
        case operation that triggered it.

        Args:
            case_id: Case the message belongs to
            content: Message text
            priority: normal or urgent

        Returns:
            ID of the created message, or None if it could not be written
        """
        with tracer.start_as_current_span("messages.post_system_message") as span:
            span.set_attributes({
                "case.id": case_id,
                "message.priority": str(priority)
            })

            try:
                message = CaseMessage(
                    case_id=case_id,
                    sender_id=None,
                    content=content[:2000],
                    message_type=MessageType.SYSTEM.value,
                    priority=priority
                )

                document = message.to_document()
                span_context = span.get_span_context()
                if span_context.is_valid:
                    document["traceId"] = format(span_context.trace_id, "032x")

                message_id = self.mongo_service.create(self.collection_name, document)

                logger.info(
                    "System message posted",
                    extra={
                        "message_id": message_id,
                        "case_id": case_id,
                        "priority": str(priority),
                        "trace_id": document.get("traceId")
                    }
                )
                return message_id

            except Exception as e:
                span.record_exception(e)
                span.set_status(trace.Status(trace.StatusCode.ERROR, str(e)))
                logger.error(
                    "Failed to post system message",
                    extra={"case_id": case_id, "error": str(e)},
                    exc_info=True
                )
                return None

    def list_for_case(self, case_id: str) -> List[CaseMessage]:
        """System messages for a case, oldest first."""
        with tracer.start_as_current_span("messages.list_for_case") as span:
            span.set_attribute("case.id", case_id)
            documents = self.mongo_service.find(
                self.collection_name,
                {"caseId": case_id, "messageType": MessageType.SYSTEM.value},
                sort=[("createdAt", ASCENDING)]
            )
            return [CaseMessage.from_document(doc) for doc in documents]

    # Case conversation

    def list_messages(self, case_id: str, limit: int = 50, skip: int = 0) -> List[CaseMessage]:
        """
        Conversation window for a case, in reading order.

        The window is taken from the newest end: ``skip`` drops that many of
        the most recent messages and ``limit`` bounds what is returned. The
        window itself is returned oldest first.

        Raises:
            NotFoundException: If the case does not exist
        """
        with tracer.start_as_current_span("messages.list_messages") as span:
            span.set_attributes({"case.id": case_id, "messages.limit": limit, "messages.skip": skip})
            self._require_case(case_id)

            documents = self.mongo_service.find(
                self.collection_name,
                {"caseId": case_id},
                sort=[("createdAt", DESCENDING)],
                limit=limit,
                skip=skip
            )
            messages = load_entities(CaseMessage, documents)
            messages.reverse()

            span.set_attribute("messages.count", len(messages))
            return messages

    def post_message(
        self,
        case_id: str,
        request: PostMessageRequest,
        user_context: Optional[UserContext] = None
    ) -> CaseMessage:
        """
        Add a user-authored message to a case conversation.

        Anonymous callers may post; their messages carry no sender. The
        sender has read their own message.

        Raises:
            NotFoundException: If the case does not exist
        """
        with tracer.start_as_current_span("messages.post_message") as span:
            sender_id = user_context.user_id if user_context else None
            span.set_attributes({
                "case.id": case_id,
                "message.type": str(request.message_type),
                "message.priority": str(request.priority),
                "user.authenticated": sender_id is not None
            })
            self._require_case(case_id)

            message = CaseMessage(
                case_id=case_id,
                sender_id=sender_id,
                content=request.content,
                message_type=request.message_type,
                priority=request.priority,
                image_url=request.image_url,
                read_by=[sender_id] if sender_id else [],
                created_by=sender_id
            )
            self.mongo_service.create(self.collection_name, message.to_document(), sender_id)

            logger.info(
                "Case message posted",
                extra={
                    "message_id": message.id,
                    "case_id": case_id,
                    "sender_id": sender_id,
                    "priority": str(message.priority)
                }
            )
            return message

    def mark_all_read(self, case_id: str, user_id: str) -> int:
        """Mark every message in a case that others wrote as read by ``user_id``."""
        with tracer.start_as_current_span("messages.mark_all_read") as span:
            span.set_attributes({"case.id": case_id, "user.id": user_id})

            marked = self.mongo_service.update_many(
                self.collection_name,
                self._unread_filter(case_id, user_id),
                add_to_set={"readBy": user_id}
            )
            span.set_attribute("messages.marked", marked)
            logger.debug("Messages marked as read", extra={"case_id": case_id, "user_id": user_id, "count": marked})
            return marked

    def unread_count(self, case_id: str, user_id: Optional[str]) -> int:
        """Messages in a case that ``user_id`` did not write and has not read; 0 for anonymous callers."""
        if not user_id:
            return 0
        return self.mongo_service.count(self.collection_name, self._unread_filter(case_id, user_id))

    def _unread_filter(self, case_id: str, user_id: str) -> dict:
        return {
            "caseId": case_id,
            "readBy": {"$ne": user_id},
            "senderId": {"$ne": user_id}
        }

    def _require_case(self, case_id: str) -> None:
        if not self.mongo_service.find_one("cases", case_id):
            raise NotFoundException(f"Case {case_id} not found")
