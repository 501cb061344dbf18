"""
Tests for AgentCommunicationService with an in-process transport.
"""

import asyncio
import base64

import pytest

from agent_relay.core.errors import AgentError, ConfigurationError, QueryTimeoutError, TransportError
from agent_relay.services.transport import TransportResponse
from tests.fakes import FakeTransport, ok


def test_execute_query_sends_trigger_payload(build_service) -> None:
    transport = FakeTransport(ok({"data": {"output": {"answer": "42"}}}, request_id="req-1"))
    service = build_service(transport, user_id="u1")
    result = asyncio.run(service.execute_query("meaning of life"))

    assert result.cached is False
    assert result.depth == 0
    assert result.follow_up_queries == []
    assert result.response.status == 200
    assert result.response.request_id == "req-1"

    call = transport.calls[0]
    assert call["endpoint"] == "https://api-test.stack.tryrelevance.com/latest/agents/trigger"
    assert call["payload"] == {
        "agent_id": "agent-1",
        "conversation_id": "conv-default",
        "message": {"role": "user", "content": "meaning of life"},
        "user_id": "u1",
    }
    expected = base64.b64encode(b"proj:secret").decode()
    assert call["headers"]["Authorization"] == f"Basic {expected}"
    assert call["timeout_ms"] == 5000


def test_cache_short_circuits_second_call(build_service) -> None:
    transport = FakeTransport(ok({"answer": 1}))
    service = build_service(transport)

    first = asyncio.run(service.execute_query("sales", "c1"))
    second = asyncio.run(service.execute_query("sales", "c1"))

    assert len(transport.calls) == 1
    assert first.cached is False
    assert second.cached is True
    assert second.depth == 0
    assert second.response.data == {"answer": 1}
    assert second.follow_up_queries == []


def test_cache_is_scoped_by_conversation(build_service) -> None:
    transport = FakeTransport()
    service = build_service(transport)
    asyncio.run(service.execute_query("sales", "c1"))
    asyncio.run(service.execute_query("sales", "c2"))
    assert len(transport.calls) == 2


def test_cache_expires_after_ttl(build_service, clock) -> None:
    transport = FakeTransport()
    service = build_service(transport, cache_ttl_ms=1000)
    asyncio.run(service.execute_query("sales"))
    clock.advance(1001)
    result = asyncio.run(service.execute_query("sales"))
    assert result.cached is False
    assert len(transport.calls) == 2


def test_caching_disabled_always_calls_transport(build_service) -> None:
    transport = FakeTransport()
    service = build_service(transport, enable_caching=False)
    asyncio.run(service.execute_query("sales"))
    asyncio.run(service.execute_query("sales"))
    assert len(transport.calls) == 2
    assert service.get_cache_stats()["size"] == 0


def test_single_query_suggests_but_does_not_run_follow_up(build_service) -> None:
    transport = FakeTransport(ok({"has_more_results": True, "data": {"page": 1}}))
    service = build_service(transport)
    result = asyncio.run(service.execute_query("sales"))
    assert result.follow_up_queries == ["sales (page 2)"]
    assert len(transport.calls) == 1


def test_no_follow_up_when_recursion_disabled(build_service) -> None:
    transport = FakeTransport(ok({"has_more_results": True}))
    service = build_service(transport, enable_recursive_queries=False)
    result = asyncio.run(service.execute_query("sales"))
    assert result.follow_up_queries == []


def test_retries_transient_status_then_succeeds(build_service, sleep) -> None:
    transport = FakeTransport(
        TransportResponse(status=503, body={"message": "busy"}),
        TransportError("connection reset"),
        ok({"answer": "fine"}),
    )
    service = build_service(transport, max_retries=3, retry_delay_ms=100)
    result = asyncio.run(service.execute_query("q"))
    assert result.response.data == {"answer": "fine"}
    assert len(transport.calls) == 3
    assert sleep.delays == [0.1, 0.2]


def test_non_retryable_status_fails_immediately(build_service) -> None:
    transport = FakeTransport(
        TransportResponse(status=401, body={}, headers={"x-request-id": "r-9"}),
    )
    service = build_service(transport)
    with pytest.raises(AgentError) as exc_info:
        asyncio.run(service.execute_query("q"))
    err = exc_info.value
    assert err.status_code == 401
    assert err.request_id == "r-9"
    assert err.endpoint.endswith("/agents/trigger")
    assert err.retryable is False
    assert len(transport.calls) == 1


def test_exhausted_retries_propagate_last_error(build_service) -> None:
    transport = FakeTransport()
    transport.default = TransportResponse(status=502, body={"message": "bad gateway"})
    service = build_service(transport, max_retries=2)
    with pytest.raises(AgentError) as exc_info:
        asyncio.run(service.execute_query("q"))
    assert exc_info.value.status_code == 502
    assert len(transport.calls) == 2
    assert service.get_cache_stats()["size"] == 0


def test_missing_credentials_fail_before_network(build_service) -> None:
    transport = FakeTransport()
    service = build_service(transport, api_key="")
    with pytest.raises(ConfigurationError) as exc_info:
        asyncio.run(service.execute_query("q"))
    assert "api_key" in exc_info.value.message
    assert transport.calls == []


def test_timeout_surfaces_query_timeout_error(build_service) -> None:
    class SlowTransport:
        calls = 0

        async def send(self, endpoint, payload, headers, timeout_ms):
            SlowTransport.calls += 1
            await asyncio.sleep(1)

    service = build_service(SlowTransport(), query_timeout_ms=100, max_retries=1)
    with pytest.raises(QueryTimeoutError) as exc_info:
        asyncio.run(service.execute_query("q"))
    assert exc_info.value.status_code == 408
    assert exc_info.value.duration_ms >= 0
    assert SlowTransport.calls == 1


def test_recursive_chain_runs_each_step_through_execute_query(build_service) -> None:
    transport = FakeTransport()

    def paged(payload):
        content = payload["message"]["content"]
        page = 1 if content == "sales" else int(content.split("page ")[1].rstrip(")"))
        return ok({"has_more_results": page < 3, "data": {"page": page}})

    transport.default = paged
    service = build_service(transport)
    results = asyncio.run(service.execute_recursive_queries("sales", "c1"))

    assert [(r.query, r.depth) for r in results] == [
        ("sales", 0),
        ("sales (page 2)", 1),
        ("sales (page 3)", 2),
    ]
    assert all(not r.cached for r in results)
    assert len(transport.calls) == 3
    assert service.get_cache_stats()["size"] == 3

    again = asyncio.run(service.execute_recursive_queries("sales", "c1"))
    assert [r.cached for r in again] == [True, True, True]
    assert len(transport.calls) == 3


def test_recursive_chain_respects_max_depth(build_service) -> None:
    transport = FakeTransport()
    transport.default = ok({"data": {"has_more": True}})
    service = build_service(transport, max_query_depth=2, enable_caching=False)
    results = asyncio.run(service.execute_recursive_queries("q"))
    assert [r.depth for r in results] == [0, 1, 2]


def test_recursive_chain_aborts_on_failed_step(build_service) -> None:
    transport = FakeTransport(
        ok({"has_more_results": True}),
        TransportResponse(status=404, body={}),
    )
    service = build_service(transport)
    with pytest.raises(AgentError):
        asyncio.run(service.execute_recursive_queries("q"))
    assert len(transport.calls) == 2


def test_recursive_disabled_runs_single_query(build_service) -> None:
    transport = FakeTransport()
    transport.default = ok({"has_more_results": True})
    service = build_service(transport, enable_recursive_queries=False)
    results = asyncio.run(service.execute_recursive_queries("q"))
    assert len(results) == 1
    assert len(transport.calls) == 1


def test_cached_data_survives_caller_mutation(build_service) -> None:
    transport = FakeTransport(ok({"rows": [1, 2]}))
    service = build_service(transport)

    first = asyncio.run(service.execute_query("sales", "c1"))
    first.response.data["rows"].append("MUTATED")

    second = asyncio.run(service.execute_query("sales", "c1"))
    assert second.cached is True
    assert second.response.data == {"rows": [1, 2]}

    second.response.data["rows"].clear()
    third = asyncio.run(service.execute_query("sales", "c1"))
    assert third.response.data == {"rows": [1, 2]}
    assert len(transport.calls) == 1


def test_admission_gate_bounds_in_flight_requests(build_service) -> None:
    peak = 0

    class GatedTransport:
        async def send(self, endpoint, payload, headers, timeout_ms):
            nonlocal peak
            peak = max(peak, service.in_flight)
            await asyncio.sleep(0.01)
            return ok({"answer": payload["message"]["content"]})

    service = build_service(GatedTransport(), max_concurrent_requests=2, enable_caching=False)

    async def fan_out():
        return await asyncio.gather(*(service.execute_query(f"q{i}") for i in range(6)))

    results = asyncio.run(fan_out())
    assert len(results) == 6
    assert peak == 2
    assert service.in_flight == 0


def test_service_reused_across_event_loops_under_contention(build_service) -> None:
    class SlowTransport:
        async def send(self, endpoint, payload, headers, timeout_ms):
            await asyncio.sleep(0.01)
            return ok({"answer": payload["message"]["content"]})

    service = build_service(SlowTransport(), max_concurrent_requests=1, enable_caching=False)

    async def fan_out():
        return await asyncio.gather(*(service.execute_query(f"q{i}") for i in range(3)))

    for _ in range(2):
        results = asyncio.run(fan_out())
        assert [r.response.data["answer"] for r in results] == ["q0", "q1", "q2"]
    assert service.in_flight == 0


def test_health_and_stats(build_service) -> None:
    service = build_service(FakeTransport())
    asyncio.run(service.execute_recursive_queries("q"))
    health = service.get_health()
    assert health["healthy"] is True
    assert health["config"] == {"valid": True, "errors": []}
    assert health["requests"] == {"active": 0, "max_concurrent": 5}
    assert health["cache"] == {"size": 1, "max_size": 100, "enabled": True, "ttl": 300000}
    assert health["queries"]["chains"] == 1
    summary = service.get_summary()
    assert summary["agent"]["id"] == "agent-1"
    assert summary["recursive_queries_enabled"] is True
    assert summary["config"]["agent"]["api_key"] == "***REDACTED***"
    assert "secret" not in repr(summary["config"])


def test_health_reports_invalid_config(build_service) -> None:
    service = build_service(FakeTransport(), agent_id="")
    health = service.get_health()
    assert health["healthy"] is False
    assert any("agent_id" in e for e in health["config"]["errors"])


def test_clear_cache(build_service) -> None:
    service = build_service(FakeTransport())
    asyncio.run(service.execute_query("q"))
    service.clear_cache()
    assert service.get_cache_stats()["size"] == 0
