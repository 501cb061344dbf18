"""Shared fixtures. No test touches the network or waits on real time."""

from typing import Any

import pytest

from agent_relay.services.agent_service import AgentCommunicationService
from tests.fakes import FakeClock, FakeTransport, SleepRecorder, make_config


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleep() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def build_service(clock: FakeClock, sleep: SleepRecorder):
    def _build(transport: FakeTransport, **config_overrides: Any) -> AgentCommunicationService:
        return AgentCommunicationService(
            make_config(**config_overrides), transport=transport, clock=clock, sleep=sleep
        )

    return _build
