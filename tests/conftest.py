"""Shared test fixtures."""

import asyncio

import pytest

from nova.db.database import init_db, close_db
from tests.fakes import ManualScheduler, FakeRecognizer


@pytest.fixture
def database_url(tmp_path):
    return f"sqlite+aiosqlite:///{tmp_path / 'nova.db'}"


@pytest.fixture
def run_db(database_url):
    """Run a coroutine function against a fresh SQLite database."""

    def run(coro_fn):
        async def wrapper():
            await init_db(database_url)
            try:
                return await coro_fn()
            finally:
                await close_db()

        return asyncio.run(wrapper())

    return run


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def recognizer():
    return FakeRecognizer()
