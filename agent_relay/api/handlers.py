"""
API handlers: call the agent service and map its errors to HTTP.

Responsibility: Bridge HTTP types and services. Exception-to-HTTP mapping lives
here so services stay free of FastAPI/HTTP types.
"""

import logging

from fastapi import HTTPException, Request

from agent_relay.core.errors import (
    AgentServiceError,
    ConfigurationError,
    PayloadValidationError,
    QueryTimeoutError,
)
from agent_relay.schemas.query import QueryRequest, QueryResult, RecursiveQueryResponse
from agent_relay.services.agent_service import AgentCommunicationService

logger = logging.getLogger(__name__)


def get_agent_service(request: Request) -> AgentCommunicationService:
    """FastAPI dependency: the service instance created with the app."""
    return request.app.state.agent_service


def _http_status_for(error: AgentServiceError) -> int:
    if isinstance(error, ConfigurationError):
        return 503
    if isinstance(error, PayloadValidationError):
        return 400
    if isinstance(error, QueryTimeoutError):
        return 504
    return 502


def to_http_exception(error: AgentServiceError) -> HTTPException:
    return HTTPException(status_code=_http_status_for(error), detail=error.to_dict())


async def handle_query(service: AgentCommunicationService, body: QueryRequest) -> QueryResult:
    try:
        return await service.execute_query(body.query, body.conversation_id)
    except AgentServiceError as e:
        raise to_http_exception(e) from e


async def handle_recursive_query(
    service: AgentCommunicationService, body: QueryRequest
) -> RecursiveQueryResponse:
    try:
        results = await service.execute_recursive_queries(body.query, body.conversation_id)
    except AgentServiceError as e:
        raise to_http_exception(e) from e
    return RecursiveQueryResponse(
        results=results,
        total=len(results),
        max_depth=max((r.depth for r in results), default=0),
    )
