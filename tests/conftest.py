"""Shared fixtures: temporary SQLite store and fake collaborators."""
import random

import pytest
import pytest_asyncio

from creator_lens.config import Tuning
from creator_lens.core import CreatorLens
from creator_lens.storage.store import SQLiteStore


class FakeGenerator:
    """ContentGenerator double. ``fail_on`` holds 1-based hook call numbers that return None."""

    def __init__(self, fail_on=(), raise_on=(), summary=None):
        self.fail_on = set(fail_on)
        self.raise_on = set(raise_on)
        self.summary = summary
        self.hook_requests = []
        self.summary_requests = []

    def generate_hook(self, request):
        self.hook_requests.append(request)
        n = len(self.hook_requests)
        if n in self.raise_on:
            raise RuntimeError("generator exploded")
        if n in self.fail_on:
            return None
        return f"Hook {n}: {request.tone.value} {request.format.value} for {request.platform.value}"

    def generate_summary(self, request):
        self.summary_requests.append(request)
        return self.summary


class FakeEntitlements:
    def __init__(self, personalization=True, limit=10, insights=True):
        self.personalization = personalization
        self.limit = limit
        self.insights = insights

    def personalization_enabled(self, user_id):
        return self.personalization

    def daily_suggestion_limit(self, user_id):
        return self.limit

    def weekly_insights_enabled(self, user_id):
        return self.insights


@pytest.fixture
def tuning():
    return Tuning()


@pytest.fixture
def generator():
    return FakeGenerator()


@pytest.fixture
def entitlements():
    return FakeEntitlements()


@pytest_asyncio.fixture
async def store(tmp_path):
    s = SQLiteStore(str(tmp_path / "creator_lens.db"))
    await s.init()
    return s


@pytest_asyncio.fixture
async def lens(store, generator, entitlements, tuning):
    return CreatorLens(store, generator, entitlements, tuning, strict=True, rng=random.Random(42))
