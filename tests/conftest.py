"""Shared test fixtures for the screenguide test suite.

Provides solid-color frames, a controllable clock, a mock AI gateway,
and a session engine wired to all three.
"""

from __future__ import annotations

from unittest.mock import AsyncMock

import numpy as np
import pytest

from helpers import BLUE, RED, FakeClock, solid_image, to_png_base64
from screenguide.gateway.base import AIGateway
from screenguide.session.engine import SessionEngine
from screenguide.session.store import SessionStore
from screenguide.vision.throttle import ThrottleGate


# ---------------------------------------------------------------------------
# Frame Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def blue_image() -> np.ndarray:
    return solid_image(BLUE)


@pytest.fixture
def red_image() -> np.ndarray:
    return solid_image(RED)


@pytest.fixture
def blue_frame(blue_image: np.ndarray) -> str:
    """A 100x100 blue PNG as a data URI."""
    return to_png_base64(blue_image, data_uri=True)


@pytest.fixture
def red_frame(red_image: np.ndarray) -> str:
    """A 100x100 red PNG as raw base64."""
    return to_png_base64(red_image)


# ---------------------------------------------------------------------------
# Engine Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def mock_gateway() -> AsyncMock:
    """A mock AIGateway that always answers with the same guidance."""
    mock = AsyncMock(spec=AIGateway)
    mock.provider = "mock"
    mock.model = "mock-model"
    mock.complete.return_value = "Click the Deploy button in the top right."
    return mock


@pytest.fixture
def store(clock: FakeClock) -> SessionStore:
    return SessionStore(clock=clock)


@pytest.fixture
def engine(store: SessionStore, mock_gateway: AsyncMock, clock: FakeClock) -> SessionEngine:
    return SessionEngine(
        store=store,
        gateway=mock_gateway,
        throttle=ThrottleGate(min_interval_ms=1000),
        gateway_timeout=5.0,
        clock=clock,
    )
