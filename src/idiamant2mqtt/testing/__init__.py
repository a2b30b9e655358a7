"""Public test-support utilities for idiamant2mqtt.

Re-exports test doubles and factories so that test suites can import
everything from a single ``idiamant2mqtt.testing`` namespace instead of
reaching into private modules.

Provided symbols:

- :class:`BridgeHarness`: Bridge wrapped with pre-configured doubles.
- :class:`MockMqttClient`: in-memory MQTT double that records calls.
- :class:`NullMqttClient`: silent no-op MQTT adapter.
- :class:`FakeClock`: deterministic wall clock.
- :class:`RecordingEventSink`: records every engine event.
- :class:`FakeNetatmoApi`: canned Netatmo answers.
- :class:`StaticGrant`: canned refresh-token grant.
- :func:`make_settings`: ``Settings`` without ``.env`` files.
"""

from idiamant2mqtt._mqtt import MockMqttClient, NullMqttClient
from idiamant2mqtt.testing._clock import FakeClock
from idiamant2mqtt.testing._doubles import (
    FakeNetatmoApi,
    RecordingEventSink,
    StaticGrant,
)
from idiamant2mqtt.testing._harness import BridgeHarness
from idiamant2mqtt.testing._settings import make_settings

__all__ = [
    "BridgeHarness",
    "FakeClock",
    "FakeNetatmoApi",
    "MockMqttClient",
    "NullMqttClient",
    "RecordingEventSink",
    "StaticGrant",
    "make_settings",
]
