"""
Agent payloads: build/validate request bodies, extract the answer payload from
responses, and decide whether a response asks for a follow-up query.

Responsibility: Pure functions over JSON-like dicts. No HTTP here.
"""

import logging
from typing import Any

from agent_relay.core.config import MAX_FOLLOW_UP_DEPTH
from agent_relay.core.errors import PayloadValidationError

logger = logging.getLogger(__name__)

# /agents/trigger requires message.role and message.content; role has a default
TRIGGER_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["agent_id", "message"],
    "properties": {
        "agent_id": {"type": "string"},
        "message": {
            "type": "object",
            "required": ["role", "content"],
            "properties": {
                "role": {"type": "string", "default": "user"},
                "content": {"type": "string"},
            },
        },
    },
}

# Nested locations of the answer payload, most specific first
_PAYLOAD_PATHS: tuple[tuple[str, ...], ...] = (
    ("data", "output", "transformed", "payload"),
    ("data", "output", "payload"),
    ("data", "output", "answer"),
    ("payload",),
)


def _dig(obj: Any, path: tuple[str, ...]) -> Any:
    """Follow path through nested dicts; None if any hop is missing."""
    for key in path:
        if not isinstance(obj, dict):
            return None
        obj = obj.get(key)
    return obj


def fill_required_fields(payload: dict[str, Any], schema: dict[str, Any]) -> dict[str, Any]:
    """
    Walk schema["required"] recursively. Missing fields with a schema default are
    filled in; missing fields without one raise PayloadValidationError.
    """
    required = schema.get("required")
    if not required:
        return payload
    if not isinstance(payload, dict):
        raise PayloadValidationError("Payload must be an object")
    properties = schema.get("properties") or {}
    for key in required:
        prop = properties.get(key) or {}
        if key not in payload:
            if "default" not in prop:
                raise PayloadValidationError(f"Missing required property: {key!r}", field=key)
            payload[key] = prop["default"]
            logger.warning("[payload:fill_required_fields] auto-filled %r with default %r", key, prop["default"])
        if prop.get("type") == "object" and isinstance(payload[key], dict):
            payload[key] = fill_required_fields(payload[key], prop)
    return payload


def build_agent_request_payload(
    agent_id: str,
    conversation_id: str,
    query: str,
    user_id: str | None = None,
    role: str = "user",
) -> dict[str, Any]:
    """Build the /agents/trigger request body for one query."""
    if not agent_id or not isinstance(agent_id, str):
        raise PayloadValidationError("agent_id is required and must be a string", field="agent_id")
    if not conversation_id or not isinstance(conversation_id, str):
        raise PayloadValidationError(
            "conversation_id is required and must be a string", field="conversation_id"
        )
    if not query or not isinstance(query, str):
        raise PayloadValidationError("query must be a non-empty string", field="message.content")

    message: dict[str, Any] = {"content": query}
    if role:
        message["role"] = role
    payload: dict[str, Any] = {
        "agent_id": agent_id,
        "conversation_id": conversation_id,
        "message": message,
    }
    if user_id:
        payload["user_id"] = user_id
    return fill_required_fields(payload, TRIGGER_SCHEMA)


def validate_agent_request_payload(payload: Any) -> None:
    """Raise PayloadValidationError unless payload is a sendable trigger body."""
    if not isinstance(payload, dict):
        raise PayloadValidationError("Payload must be an object")
    if not payload.get("agent_id") or not isinstance(payload["agent_id"], str):
        raise PayloadValidationError("Missing required property 'agent_id'", field="agent_id")
    message = payload.get("message")
    if not isinstance(message, dict):
        raise PayloadValidationError("Missing required property 'message'", field="message")
    for key in ("role", "content"):
        if not message.get(key) or not isinstance(message[key], str):
            raise PayloadValidationError(f"Missing required property 'message.{key}'", field=f"message.{key}")


def validate_http_response(status: int, body: Any, endpoint: str) -> str | None:
    """Return an error message for an unusable response, or None when it is fine."""
    message = body.get("message") if isinstance(body, dict) else None
    if status == 422:
        field_errors = (body.get("errors") if isinstance(body, dict) else None) or []
        detail = None
        if field_errors and isinstance(field_errors[0], dict):
            detail = field_errors[0].get("message")
        detail = detail or message or "Validation error"
        return f"[422] Validation Error: {detail}. Check request payload for missing or invalid fields."
    if status == 400:
        return f"[400] Bad Request: {message or 'Invalid request'}"
    if status in (401, 403):
        return f"[{status}] Authentication Error: Check API credentials"
    if status == 404:
        return f"[404] Not Found: Endpoint {endpoint} does not exist"
    if status >= 500:
        return f"[{status}] Server Error: {message or 'Internal server error'}. Please retry."
    if status >= 400:
        return f"[{status}] Request Error: {message or 'Unknown error'}"
    if not isinstance(body, dict):
        return "Invalid response format: expected JSON object"
    return None


def extract_payload(body: Any) -> Any:
    """
    Return the answer payload nested in an agent response body.

    Tries data.output.transformed.payload, data.output.payload, data.output.answer
    and top-level payload; the first present value wins. Falls back to the body
    itself. Never raises.
    """
    for path in _PAYLOAD_PATHS:
        value = _dig(body, path)
        if value is not None:
            return value
    return body


def _has_more(payload: dict[str, Any]) -> bool:
    return payload.get("has_more_results") is True or _dig(payload, ("data", "has_more")) is True


def _incomplete(payload: dict[str, Any]) -> bool:
    return _dig(payload, ("data", "incomplete")) is True


def should_follow_up(payload: Any) -> bool:
    """True when the payload flags itself as needing a follow-up, incomplete, or paginated."""
    if not isinstance(payload, dict):
        return False
    if payload.get("requires_follow_up") is True:
        return True
    return _incomplete(payload) or _has_more(payload)


def generate_follow_up_query(
    original_query: str,
    payload: Any,
    depth: int = 0,
    max_depth: int = MAX_FOLLOW_UP_DEPTH,
) -> str | None:
    """
    Produce the single next query for a response, or None.

    Pagination is checked before incompleteness. No query is generated once
    depth exceeds max_depth.
    """
    if depth > max_depth:
        return None
    if not isinstance(payload, dict):
        return None
    if _has_more(payload):
        page = _dig(payload, ("data", "page"))
        next_page = (page if isinstance(page, int) and not isinstance(page, bool) else 0) + 1
        return f"{original_query} (page {next_page})"
    if _incomplete(payload):
        return f"{original_query} (continue with more details)"
    return None
