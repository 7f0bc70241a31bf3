"""Shared test fixtures.

Fixtures:
    settings           - Settings bound to tmp_path with zero reply delays.
    store              - ProgressStore writing to tmp_path.
    scheduler          - ReplyScheduler in manual mode (run_pending()).
    rng                - Seeded random.Random.
    catalogue          - The packaged puzzle catalogue.
    enable_validation  - Sets CHESS_ARENA_VALIDATE=1 for schema validation.
"""

from __future__ import annotations

import os
import random

import pytest

from arena.config import Settings
from arena.progress import ProgressStore
from arena.puzzles import PuzzleCatalogue
from arena.scheduler import ReplyScheduler


@pytest.fixture()
def settings(tmp_path) -> Settings:
    return Settings(data_dir=tmp_path, delay_scale=0.0)


@pytest.fixture()
def store(settings) -> ProgressStore:
    return ProgressStore(settings.state_path)


@pytest.fixture()
def scheduler():
    """Manual scheduler; pending tasks are cancelled after the test."""
    sched = ReplyScheduler(autorun=False)
    yield sched
    sched.cancel_all()


@pytest.fixture()
def rng() -> random.Random:
    return random.Random(7)


@pytest.fixture()
def catalogue() -> PuzzleCatalogue:
    return PuzzleCatalogue.load()


# ---------------------------------------------------------------------------
# Schema validation fixture
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def enable_validation():
    """Set CHESS_ARENA_VALIDATE=1 for the test session.

    Restores the original env var value after the test.
    """
    original = os.environ.get("CHESS_ARENA_VALIDATE")
    os.environ["CHESS_ARENA_VALIDATE"] = "1"
    yield
    if original is None:
        os.environ.pop("CHESS_ARENA_VALIDATE", None)
    else:
        os.environ["CHESS_ARENA_VALIDATE"] = original
