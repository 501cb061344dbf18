"""
API route aggregator: register endpoints; no logic — only delegate to handlers.
"""

import logging

from fastapi import APIRouter, Depends

from agent_relay.api.handlers import get_agent_service, handle_query, handle_recursive_query
from agent_relay.schemas.query import QueryRequest, QueryResult, RecursiveQueryResponse
from agent_relay.services.agent_service import AgentCommunicationService

logger = logging.getLogger(__name__)
router = APIRouter()


# --- System ---

@router.get("/", tags=["system"])
def root():
    return {"status": "Agent relay running"}


@router.get("/health", tags=["system"], summary="Service health: config validity, load, cache and query stats")
def health(service: AgentCommunicationService = Depends(get_agent_service)) -> dict:
    return service.get_health()


@router.get("/stats", tags=["system"], summary="Recursive query statistics and service summary")
def stats(service: AgentCommunicationService = Depends(get_agent_service)) -> dict:
    return {"queries": service.get_query_stats(), "summary": service.get_summary()}


# --- Cache ---

@router.get("/cache/stats", tags=["cache"], summary="Response cache statistics")
def cache_stats(service: AgentCommunicationService = Depends(get_agent_service)) -> dict:
    return service.get_cache_stats()


@router.delete("/cache", tags=["cache"], summary="Clear the response cache")
def clear_cache(service: AgentCommunicationService = Depends(get_agent_service)) -> dict:
    service.clear_cache()
    return {"cleared": True}


# --- Query ---

@router.post(
    "/query",
    response_model=QueryResult,
    tags=["query"],
    summary="Ask the agent one question",
    description="Returns the agent response and at most one suggested follow-up query. 400 on invalid payload, 502 on agent failure, 503 on missing config, 504 on timeout.",
)
async def post_query(
    body: QueryRequest, service: AgentCommunicationService = Depends(get_agent_service)
) -> QueryResult:
    logger.info("[api:post_query] IN  query=%r conversation_id=%s", body.query[:100], body.conversation_id)
    return await handle_query(service, body)


@router.post(
    "/query/recursive",
    response_model=RecursiveQueryResponse,
    tags=["query"],
    summary="Ask the agent and follow up until the answer is complete",
    description="Runs the query and its follow-up chain sequentially; any failing step fails the whole request.",
)
async def post_recursive_query(
    body: QueryRequest, service: AgentCommunicationService = Depends(get_agent_service)
) -> RecursiveQueryResponse:
    logger.info("[api:post_recursive_query] IN  query=%r conversation_id=%s", body.query[:100], body.conversation_id)
    return await handle_recursive_query(service, body)
