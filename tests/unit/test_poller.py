"""Tests for idiamant2mqtt._poller — periodic status polling.

Test Techniques Used:
    - Specification-based Testing: one frame per module per cycle
    - Concurrency Testing: overlapping cycles are skipped
    - Fault Isolation: one failing location does not block another
    - Mock-based Isolation: FakeNetatmoApi + RecordingEventSink
"""

from __future__ import annotations

import asyncio

import pytest

from idiamant2mqtt._context import EngineContext
from idiamant2mqtt._errors import FatalAuthError, RequestError
from idiamant2mqtt._models import Location
from idiamant2mqtt._poller import PollingScheduler
from idiamant2mqtt._registry import DeviceRegistry
from idiamant2mqtt.testing import FakeNetatmoApi, RecordingEventSink
from tests.fixtures.topology import BLIND_ID, GATEWAY_ID, HOME_ID, SHUTTER_ID


@pytest.fixture
async def registry(
    engine_context: EngineContext,
    seeded_api: FakeNetatmoApi,
    recording_sink: RecordingEventSink,
) -> DeviceRegistry:
    """Registry already populated from the seeded account."""
    registry = DeviceRegistry(engine_context)
    await registry.discover()
    recording_sink.reset()
    seeded_api.calls.clear()
    return registry


@pytest.fixture
async def poller(engine_context: EngineContext, registry: DeviceRegistry):
    poller = PollingScheduler(engine_context, registry)
    yield poller
    await poller.stop()


class TestPollCycle:
    """poll_now() and poll_location().

    Technique: Specification-based Testing.
    """

    async def test_one_frame_per_module_in_order(
        self,
        poller: PollingScheduler,
        recording_sink: RecordingEventSink,
    ) -> None:
        assert await poller.poll_now() is True
        assert [f.id for f in recording_sink.frames] == [
            GATEWAY_ID,
            SHUTTER_ID,
            BLIND_ID,
        ]

    async def test_frames_are_normalized(
        self,
        poller: PollingScheduler,
        recording_sink: RecordingEventSink,
    ) -> None:
        """The sparse blind record yields a sparse frame."""
        await poller.poll_now()
        assert recording_sink.frames_for(BLIND_ID)[0].to_dict() == {
            "id": BLIND_ID,
            "reachable": 0,
            "battery": 80,
            "gateway": GATEWAY_ID,
        }

    async def test_unknown_module_reported_as_info(
        self,
        poller: PollingScheduler,
        seeded_api: FakeNetatmoApi,
        recording_sink: RecordingEventSink,
    ) -> None:
        """A module added after discovery is announced, then skipped."""
        seeded_api.statuses[HOME_ID]["modules"].insert(
            0,
            {"id": "new-module", "type": "NBR", "reachable": True},
        )

        await poller.poll_now()

        assert recording_sink.infos == ["new-module is unknown, please make refresh"]
        assert len(recording_sink.frames) == 3

    async def test_request_error_published(
        self,
        poller: PollingScheduler,
        seeded_api: FakeNetatmoApi,
        recording_sink: RecordingEventSink,
    ) -> None:
        error = RequestError("boom")
        seeded_api.failures[HOME_ID] = error

        assert await poller.poll_now() is True

        assert recording_sink.errors == [(error, None, None)]
        assert recording_sink.frames == []

    async def test_auth_failure_invokes_callback(
        self,
        engine_context: EngineContext,
        registry: DeviceRegistry,
        seeded_api: FakeNetatmoApi,
        recording_sink: RecordingEventSink,
    ) -> None:
        """Fatal auth errors are handed to the engine, not published."""
        seen: list[FatalAuthError] = []

        async def on_auth_failure(exc: FatalAuthError) -> None:
            seen.append(exc)

        error = FatalAuthError("rejected")
        seeded_api.failures[HOME_ID] = error
        poller = PollingScheduler(
            engine_context,
            registry,
            on_auth_failure=on_auth_failure,
        )

        await poller.poll_now()

        assert seen == [error]
        assert recording_sink.errors == []

    async def test_missing_modules_list(
        self,
        poller: PollingScheduler,
        seeded_api: FakeNetatmoApi,
        recording_sink: RecordingEventSink,
    ) -> None:
        seeded_api.statuses[HOME_ID] = None
        await poller.poll_now()
        assert recording_sink.events == []

    async def test_failing_location_does_not_block_others(
        self,
        engine_context: EngineContext,
        registry: DeviceRegistry,
        seeded_api: FakeNetatmoApi,
        recording_sink: RecordingEventSink,
    ) -> None:
        """Locations are polled independently."""
        seeded_api.homes.append(
            {
                "id": "h3",
                "name": "Chalet",
                "modules": [{"id": "s3", "type": "NBO", "name": "Porte"}],
            },
        )
        seeded_api.statuses["h3"] = {
            "modules": [{"id": "s3", "type": "NBO", "reachable": True}],
        }
        await registry.discover()
        recording_sink.reset()
        seeded_api.failures[HOME_ID] = RequestError("down")
        poller = PollingScheduler(engine_context, registry)

        await poller.poll_now()

        assert [f.id for f in recording_sink.frames] == ["s3"]
        assert len(recording_sink.errors) == 1

    async def test_poll_single_location(
        self,
        poller: PollingScheduler,
        seeded_api: FakeNetatmoApi,
        recording_sink: RecordingEventSink,
    ) -> None:
        await poller.poll_location(Location(HOME_ID, "Maison"))
        assert seeded_api.calls == [("homestatus", HOME_ID)]
        assert len(recording_sink.frames) == 3


class TestReentrancy:
    """Overlapping cycles.

    Technique: Concurrency Testing.
    """

    async def test_overlapping_poll_is_skipped(
        self,
        poller: PollingScheduler,
        seeded_api: FakeNetatmoApi,
        recording_sink: RecordingEventSink,
    ) -> None:
        """A second request while a cycle runs is dropped, not queued."""
        seeded_api.status_delay = 0.05
        first = asyncio.create_task(poller.poll_now())
        await asyncio.sleep(0)

        assert poller.in_progress
        assert await poller.poll_now() is False
        assert await first is True

        assert seeded_api.count("homestatus") == 1
        assert len(recording_sink.frames) == 3
        assert not poller.in_progress

    async def test_cancelled_caller_does_not_abort_cycle(
        self,
        poller: PollingScheduler,
        seeded_api: FakeNetatmoApi,
        recording_sink: RecordingEventSink,
    ) -> None:
        """Frames of a cycle in flight are still emitted."""
        seeded_api.status_delay = 0.02
        caller = asyncio.create_task(poller.poll_now())
        await asyncio.sleep(0)
        caller.cancel()

        await poller.stop()

        assert len(recording_sink.frames) == 3


class TestSchedule:
    """start() / stop() lifecycle.

    Technique: State-based Testing.
    """

    async def test_ticks_until_stopped(
        self,
        poller: PollingScheduler,
        recording_sink: RecordingEventSink,
    ) -> None:
        poller.start(0.01)
        assert poller.running
        await asyncio.sleep(0.05)

        await poller.stop()
        emitted = len(recording_sink.frames)
        await asyncio.sleep(0.03)

        assert emitted >= 3
        assert len(recording_sink.frames) == emitted
        assert not poller.running

    async def test_start_is_idempotent(
        self,
        poller: PollingScheduler,
        seeded_api: FakeNetatmoApi,
    ) -> None:
        """A second start does not double the poll rate."""
        poller.start(0.02)
        poller.start(0.02)
        await asyncio.sleep(0.03)
        await poller.stop()

        assert seeded_api.count("homestatus") == 1

    async def test_stop_when_not_running(self, poller: PollingScheduler) -> None:
        await poller.stop()
        assert not poller.running

    async def test_crashing_cycle_keeps_loop_alive(
        self,
        poller: PollingScheduler,
        seeded_api: FakeNetatmoApi,
    ) -> None:
        """An unexpected exception is logged and the next tick still runs."""
        seeded_api.failures[HOME_ID] = RuntimeError("unexpected")
        poller.start(0.01)
        await asyncio.sleep(0.05)

        assert poller.running
        assert seeded_api.count("homestatus") >= 2
