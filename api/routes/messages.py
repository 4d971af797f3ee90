# SPDX-License-Identifier: Apache-2.0

"""
Case conversation endpoints.

Anyone can read a case conversation or post to it; read tracking needs a
signed-in caller.
"""

from flask import jsonify, current_app
from flask_openapi3 import APIBlueprint, Tag
import logging

from middleware.auth import require_jwt, optional_jwt, current_user
from middleware.validation import validate_json, validate_query
from models.requests import CasePath, MessageListQuery, PostMessageRequest

logger = logging.getLogger(__name__)

messages_tag = Tag(name="Messages", description="Case conversations")
messages_bp = APIBlueprint(
    'messages',
    __name__,
    url_prefix='/api/messages',
    abp_tags=[messages_tag]
)


@messages_bp.get('/<case_id>')
@optional_jwt
@validate_query(MessageListQuery)
def list_messages(params: MessageListQuery, path: CasePath):
    """Latest messages of a case, oldest first within the window."""
    messages = current_app.message_service.list_messages(path.case_id, params.limit, params.skip)
    return jsonify(current_app.hal_formatter.format_message_list(path.case_id, messages, current_user()))


@messages_bp.post('/<case_id>')
@optional_jwt
@validate_json(PostMessageRequest)
def post_message(payload: PostMessageRequest, path: CasePath):
    message = current_app.message_service.post_message(path.case_id, payload, current_user())
    return jsonify(current_app.hal_formatter.format_message(message)), 201


@messages_bp.post('/<case_id>/mark-read')
@require_jwt
def mark_messages_read(path: CasePath):
    marked = current_app.message_service.mark_all_read(path.case_id, current_user().user_id)

    links = {'messages': current_app.hal_formatter.builder.link_builder.build_collection_link(
        f"/api/messages/{path.case_id}"
    )}
    return jsonify(current_app.hal_formatter.builder.with_links({"caseId": path.case_id, "marked": marked}, links))


@messages_bp.get('/<case_id>/unread-count')
@optional_jwt
def unread_message_count(path: CasePath):
    """Unread messages for the caller; anonymous callers always see 0."""
    user_context = current_user()
    count = current_app.message_service.unread_count(path.case_id, user_context.user_id if user_context else None)

    links = {'self': current_app.hal_formatter.builder.link_builder.build_self_link(
        f"/api/messages/{path.case_id}/unread-count"
    )}
    return jsonify(current_app.hal_formatter.builder.with_links({"caseId": path.case_id, "count": count}, links))
