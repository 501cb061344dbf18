"""
Recursive query manager: drive a linear chain of query -> follow-up steps.

Each step yields at most one follow-up, so a chain is a sequence, not a tree.
The caller-supplied executor performs the network call for a step (cache,
admission and retry live there); the manager only decides whether to continue.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from agent_relay.core.config import MAX_FOLLOW_UP_DEPTH
from agent_relay.schemas.query import QueryResult
from agent_relay.services.payload import generate_follow_up_query, should_follow_up

logger = logging.getLogger(__name__)

QueryExecutor = Callable[[str, int], Awaitable[QueryResult]]


@dataclass
class RecursionState:
    """Mutable state of one chain. A fresh instance is created per call."""

    depth: int = 0
    queue: list[str] = field(default_factory=list)
    results: list[QueryResult] = field(default_factory=list)
    stop_reason: str = ""


class RecursiveQueryManager:
    def __init__(
        self,
        max_depth: int = 5,
        max_queue_size: int = 20,
        enable_auto_follow: bool = True,
        max_follow_up_depth: int = MAX_FOLLOW_UP_DEPTH,
    ) -> None:
        self.max_depth = max_depth
        self.max_queue_size = max_queue_size
        self.enable_auto_follow = enable_auto_follow
        self.max_follow_up_depth = max_follow_up_depth

        # Aggregate counters only; no per-chain state survives a call
        self._chains = 0
        self._queries = 0
        self._depth_sum = 0
        self._max_depth_reached = 0
        self._last_chain_length = 0
        self._stop_reasons: dict[str, int] = {}

    async def execute_recursive_queries(
        self, initial_query: str, executor: QueryExecutor
    ) -> list[QueryResult]:
        """
        Run initial_query, then its follow-ups, until no follow-up is produced,
        max_depth is reached, or the follow-up queue reaches max_queue_size.

        Results are in execution order; result i carries depth i. An executor
        failure propagates and discards the chain.
        """
        state = RecursionState()
        current: str | None = initial_query
        logger.info("[recursive_query] IN  query=%r max_depth=%d", initial_query[:100], self.max_depth)

        while current is not None:
            if state.depth > 0 and len(state.queue) >= self.max_queue_size:
                state.stop_reason = "queue_full"
                logger.warning("[recursive_query] follow-up queue full (max %d)", self.max_queue_size)
                break

            result = await executor(current, state.depth)
            if result.depth != state.depth:
                result = result.model_copy(update={"depth": state.depth})
            state.results.append(result)

            if state.depth >= self.max_depth:
                state.stop_reason = "max_depth"
                break
            if not self.enable_auto_follow:
                state.stop_reason = "auto_follow_disabled"
                break

            current = self._next_query(initial_query, result, state.depth)
            if current is None:
                state.stop_reason = "complete"
                break
            state.queue.append(current)
            state.depth += 1
            logger.info("[recursive_query] follow-up depth=%d query=%r", state.depth, current[:100])

        self._record(state)
        logger.info(
            "[recursive_query] OUT results=%d depth=%d stop=%s",
            len(state.results),
            state.depth,
            state.stop_reason,
        )
        return state.results

    def _next_query(self, query: str, result: QueryResult, depth: int) -> str | None:
        data = result.response.data
        if not should_follow_up(data):
            return None
        return generate_follow_up_query(query, data, depth, max_depth=self.max_follow_up_depth)

    def _record(self, state: RecursionState) -> None:
        self._chains += 1
        self._queries += len(state.results)
        self._depth_sum += sum(r.depth for r in state.results)
        deepest = max((r.depth for r in state.results), default=0)
        self._max_depth_reached = max(self._max_depth_reached, deepest)
        self._last_chain_length = len(state.results)
        self._stop_reasons[state.stop_reason] = self._stop_reasons.get(state.stop_reason, 0) + 1

    def get_stats(self) -> dict:
        return {
            "chains": self._chains,
            "queries": self._queries,
            "average_depth": self._depth_sum / self._queries if self._queries else 0,
            "max_depth_reached": self._max_depth_reached,
            "last_chain_length": self._last_chain_length,
            "stop_reasons": dict(self._stop_reasons),
        }
