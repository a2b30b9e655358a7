"""Pytest configuration and shared fixtures."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import pytest

from tests.fixtures.topology import HOME_ID, build_home_status, build_homes

if TYPE_CHECKING:
    from idiamant2mqtt.testing import FakeNetatmoApi

# The idiamant2mqtt testing plugin is registered via a ``pytest11``
# entry point (pyproject.toml).  In our own test suite we disable it
# (``-p no:idiamant2mqtt``) and load it explicitly here instead, so the
# package import chain happens after ``pytest-cov`` starts tracing.
pytest_plugins = ["idiamant2mqtt.testing._plugin"]


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "unit: Unit tests (fast, no external dependencies)"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests (may require external services)"
    )


@pytest.fixture
def homes() -> list[dict[str, Any]]:
    """homesdata payload: one Bubendorff home and one thermostat-only home."""
    return build_homes()


@pytest.fixture
def home_status() -> dict[str, Any]:
    """homestatus ``home`` object matching :func:`homes`."""
    return build_home_status()


@pytest.fixture
def seeded_api(
    fake_api: FakeNetatmoApi,
    homes: list[dict[str, Any]],
    home_status: dict[str, Any],
) -> FakeNetatmoApi:
    """FakeNetatmoApi serving :func:`homes` and :func:`home_status`."""
    fake_api.homes = homes
    fake_api.statuses = {HOME_ID: home_status}
    return fake_api
