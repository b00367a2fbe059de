"""Shared pytest fixtures and configuration."""

import logging

import pytest
from prometheus_client import REGISTRY


def _unregister_collectors() -> None:
    for collector in list(REGISTRY._collector_to_names.keys()):
        try:
            REGISTRY.unregister(collector)
        except KeyError:
            pass  # Already unregistered


@pytest.fixture(autouse=True)
def reset_prometheus_registry():
    """Reset Prometheus registry before each test to avoid duplicate metric errors."""
    _unregister_collectors()
    yield
    _unregister_collectors()


@pytest.fixture(autouse=True)
def reset_switchyard_logger():
    """Drop handlers installed by RouterLogger so later tests do not write to closed streams."""
    yield
    logger = logging.getLogger("switchyard")
    logger.handlers.clear()
    logger.setLevel(logging.NOTSET)
    logger.propagate = True
