from __future__ import annotations

import asyncio

import pytest

# Import fixtures from testing/ so they are known by pytest
# and can be used with
from testing.relay_server import relay_server  # noqa: F401


def pytest_addoption(parser):
    """Add custom command line options for tests."""
    parser.addoption(
        '--use-uvloop',
        action='store_true',
        default=False,
        help='Use uvloop as the default event loop for asyncio tests',
    )


@pytest.fixture(scope='session')
def use_uvloop(request) -> bool:
    """Fixture that returns if uvloop should be used in this session."""
    return request.config.getoption('--use-uvloop')


@pytest.fixture(scope='session')
def event_loop_policy(use_uvloop: bool) -> asyncio.AbstractEventLoopPolicy:
    """Get the session-wide event loop policy.

    This enables us to toggle between uvloop and asyncio.
    """
    if use_uvloop:  # pragma: no cover
        import uvloop

        return uvloop.EventLoopPolicy()
    return asyncio.DefaultEventLoopPolicy()
