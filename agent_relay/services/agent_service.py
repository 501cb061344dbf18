"""
Agent communication service: the high-level API for asking the agent.

Responsibility: Check the response cache, bound concurrent in-flight requests,
retry transient failures around the transport call, and drive recursive
follow-up chains. Called by the API and the CLI; no FastAPI here.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any

from agent_relay.core.cache import ResponseCache, cache_key
from agent_relay.core.clock import now_ms
from agent_relay.core.config import AgentConfig
from agent_relay.core.errors import AgentError, ConfigurationError, QueryTimeoutError
from agent_relay.schemas.query import AgentResponse, QueryResult
from agent_relay.services.payload import (
    build_agent_request_payload,
    generate_follow_up_query,
    should_follow_up,
    validate_agent_request_payload,
    validate_http_response,
)
from agent_relay.services.recursive_query import RecursiveQueryManager
from agent_relay.services.retry import RetryPolicy, execute_with_retry
from agent_relay.services.transport import HttpxTransport, Transport, create_auth_header

logger = logging.getLogger(__name__)


class AgentCommunicationService:
    def __init__(
        self,
        config: AgentConfig,
        transport: Transport | None = None,
        clock: Callable[[], int] = now_ms,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> None:
        self.config = config
        self._transport = transport or HttpxTransport()
        self._clock = clock
        self._sleep = sleep

        self.enable_recursive_queries = config.enable_recursive_queries
        self.max_concurrent_requests = config.max_concurrent_requests
        # asyncio.Semaphore binds to one event loop; rebuilt per running loop
        self._admission: asyncio.Semaphore | None = None
        self._admission_loop: asyncio.AbstractEventLoop | None = None
        self._in_flight = 0

        self.cache = ResponseCache(
            ttl_ms=config.cache_ttl_ms,
            max_size=config.max_cache_size,
            enabled=config.enable_caching,
            clock=clock,
        )
        self.query_manager = RecursiveQueryManager(
            max_depth=config.max_query_depth,
            max_queue_size=config.max_queue_size,
            enable_auto_follow=config.enable_auto_follow and config.enable_recursive_queries,
            max_follow_up_depth=config.max_follow_up_depth,
        )
        self.retry_policy = RetryPolicy(
            max_attempts=max(1, config.max_retries),
            initial_delay_ms=max(1, config.retry_delay_ms),
            max_delay_ms=max(config.query_timeout_ms, config.retry_delay_ms, 1),
        )
        logger.info(
            "[agent_service] initialized api_base=%s agent_id=%s recursive=%s",
            config.api_base_url,
            config.agent_id,
            self.enable_recursive_queries,
        )

    @property
    def in_flight(self) -> int:
        return self._in_flight

    async def execute_query(self, query: str, conversation_id: str | None = None) -> QueryResult:
        """
        Run one query. A cache hit returns immediately with cached=True; otherwise
        the agent is called (with admission and retry) and at most one follow-up
        query is suggested in follow_up_queries. The follow-up is not executed.
        """
        cid = conversation_id or self.config.conversation_id
        key = cache_key(query, cid)

        entry = self.cache.get(key)
        if entry is not None:
            logger.debug("[agent_service:execute_query] cache hit key=%r", key[:100])
            return QueryResult(
                query=query,
                response=AgentResponse(status=200, data=entry.data, timestamp=entry.timestamp),
                depth=0,
                cached=True,
            )

        try:
            response = await execute_with_retry(
                lambda: self._admitted_request(query, cid),
                self.retry_policy,
                logger,
                sleep=self._sleep,
            )
        except Exception as e:
            logger.error("[agent_service:execute_query] failed query=%r: %s", query[:100], e)
            raise

        self.cache.set(key, response.data, timestamp=response.timestamp)

        follow_up_queries: list[str] = []
        if self.enable_recursive_queries and should_follow_up(response.data):
            follow_up = generate_follow_up_query(
                query, response.data, max_depth=self.config.max_follow_up_depth
            )
            if follow_up:
                follow_up_queries = [follow_up]

        logger.info(
            "[agent_service:execute_query] OUT query=%r status=%d follow_up=%s",
            query[:100],
            response.status,
            bool(follow_up_queries),
        )
        return QueryResult(
            query=query,
            response=response,
            depth=0,
            cached=False,
            follow_up_queries=follow_up_queries,
        )

    async def execute_recursive_queries(
        self, query: str, conversation_id: str | None = None
    ) -> list[QueryResult]:
        """
        Run query and its follow-up chain. Every step goes through execute_query,
        so each is cached, admitted and retried on its own. A failing step aborts
        the chain; partial results are not returned.
        """
        cid = conversation_id or self.config.conversation_id
        if not self.enable_recursive_queries:
            return [await self.execute_query(query, cid)]

        async def run_step(step_query: str, depth: int) -> QueryResult:
            result = await self.execute_query(step_query, cid)
            return result.model_copy(update={"depth": depth})

        try:
            results = await self.query_manager.execute_recursive_queries(query, run_step)
        except Exception as e:
            logger.error("[agent_service:execute_recursive_queries] chain failed query=%r: %s", query[:100], e)
            raise

        logger.info(
            "[agent_service:execute_recursive_queries] OUT query=%r total=%d depth=%d",
            query[:100],
            len(results),
            max((r.depth for r in results), default=0),
        )
        return results

    def _admission_gate(self) -> asyncio.Semaphore:
        loop = asyncio.get_running_loop()
        if self._admission is None or self._admission_loop is not loop:
            self._admission = asyncio.Semaphore(self.max_concurrent_requests)
            self._admission_loop = loop
        return self._admission

    async def _admitted_request(self, query: str, conversation_id: str) -> AgentResponse:
        """Hold an admission slot for the duration of one network call."""
        async with self._admission_gate():
            self._in_flight += 1
            try:
                return await self._execute_agent_request(query, conversation_id)
            finally:
                self._in_flight -= 1

    async def _execute_agent_request(self, query: str, conversation_id: str) -> AgentResponse:
        missing = self.config.missing_credentials()
        if missing:
            raise ConfigurationError(f"Missing required credentials: {', '.join(missing)}")

        payload = build_agent_request_payload(
            self.config.agent_id,
            conversation_id,
            query,
            user_id=self.config.user_id or None,
        )
        validate_agent_request_payload(payload)

        endpoint = self.config.trigger_endpoint
        headers = {
            "Content-Type": "application/json",
            "Authorization": create_auth_header(self.config.project_id, self.config.api_key),
        }
        timeout_ms = self.config.query_timeout_ms
        logger.debug("[agent_service:request] endpoint=%s query=%r", endpoint, query[:100])

        started = time.monotonic()
        try:
            raw = await asyncio.wait_for(
                self._transport.send(endpoint, payload, headers, timeout_ms),
                timeout=timeout_ms / 1000,
            )
        except asyncio.TimeoutError as e:
            elapsed = int((time.monotonic() - started) * 1000)
            raise QueryTimeoutError(
                f"Query timeout after {elapsed}ms", duration_ms=elapsed, endpoint=endpoint
            ) from e

        request_id = raw.headers.get("x-request-id")
        error = validate_http_response(raw.status, raw.body, endpoint)
        if error:
            raise AgentError(
                error,
                raw.status,
                endpoint=endpoint,
                request_id=request_id,
                retryable=raw.status >= 500 or raw.status in (408, 429),
            )
        return AgentResponse(status=raw.status, data=raw.body, timestamp=self._clock(), request_id=request_id)

    def clear_cache(self) -> None:
        self.cache.clear()
        logger.info("[agent_service] cache cleared")

    def get_cache_stats(self) -> dict[str, Any]:
        stats = self.cache.stats()
        return {
            "size": stats["size"],
            "max_size": stats["max_size"],
            "enabled": self.cache.enabled,
            "ttl": stats["ttl"],
        }

    def get_query_stats(self) -> dict[str, Any]:
        return self.query_manager.get_stats()

    def get_health(self) -> dict[str, Any]:
        config_errors = self.config.validate()
        return {
            "healthy": not config_errors and self._in_flight < self.max_concurrent_requests,
            "config": {"valid": not config_errors, "errors": config_errors},
            "requests": {"active": self._in_flight, "max_concurrent": self.max_concurrent_requests},
            "cache": self.get_cache_stats(),
            "queries": self.get_query_stats(),
        }

    def get_summary(self) -> dict[str, Any]:
        return {
            "agent": {"id": self.config.agent_id, "version": self.config.agent_version},
            "recursive_queries_enabled": self.enable_recursive_queries,
            "max_concurrent_requests": self.max_concurrent_requests,
            "cache": self.get_cache_stats(),
            "queries": self.get_query_stats(),
            "config": self.config.summary(),
        }
