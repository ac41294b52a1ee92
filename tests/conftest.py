"""Shared pytest fixtures — async test client, fake DB session, fake Redis and MQTT."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from types import SimpleNamespace
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import aiomqtt
import pytest
from httpx import ASGITransport, AsyncClient

from app.database import get_db
from app.main import app
from app.messaging.channel import MessageChannel


class FakeAsyncSession:
	def __init__(self) -> None:
		self.commit = AsyncMock()
		self.rollback = AsyncMock()
		self.close = AsyncMock()
		self.execute = AsyncMock()
		self.flush = AsyncMock()
		self.refresh = AsyncMock()
		self.get = AsyncMock(return_value=None)
		self.add = MagicMock()
		self.added: list[Any] = []
		self.add.side_effect = self.added.append

	async def __aenter__(self) -> FakeAsyncSession:
		return self

	async def __aexit__(self, exc_type: object, exc: object, tb: object) -> bool:
		return False


class FakeMessageStream:
	"""Async iterator over queued MQTT messages; waits when the queue is empty."""

	def __init__(self, queue: asyncio.Queue[Any]) -> None:
		self.queue = queue

	def __aiter__(self) -> FakeMessageStream:
		return self

	async def __anext__(self) -> Any:
		return await self.queue.get()


class FakeMqttClient:
	def __init__(self) -> None:
		self.publish = AsyncMock()
		self.subscribe = AsyncMock()
		self.unsubscribe = AsyncMock()
		self.entered = 0
		self.exited = 0
		self.queue: asyncio.Queue[Any] = asyncio.Queue()

	async def __aenter__(self) -> FakeMqttClient:
		self.entered += 1
		return self

	async def __aexit__(self, exc_type: object, exc: object, tb: object) -> None:
		self.exited += 1

	@property
	def messages(self) -> FakeMessageStream:
		return FakeMessageStream(self.queue)

	def deliver(self, topic: str, payload: bytes) -> None:
		self.queue.put_nowait(SimpleNamespace(topic=aiomqtt.Topic(topic), payload=payload))


class FakeRedis:
	def __init__(self, receivers: int = 1) -> None:
		self.publish = AsyncMock(return_value=receivers)
		self.get = AsyncMock(return_value=None)
		self.set = AsyncMock(return_value=True)
		self.delete = AsyncMock(return_value=1)
		self.ping = AsyncMock(return_value=True)
		self.aclose = AsyncMock()


def scalar_result(value: Any) -> MagicMock:
	"""Mimic the ``Result`` returned by ``AsyncSession.execute``."""
	result = MagicMock()
	result.scalar_one_or_none.return_value = value
	result.scalars.return_value.first.return_value = value
	result.scalars.return_value.all.return_value = value if isinstance(value, list) else [value]
	return result


@pytest.fixture
def fake_db_session() -> FakeAsyncSession:
	"""A lightweight async-session stub for dependency overrides and service tests."""
	return FakeAsyncSession()


@pytest.fixture
def fake_redis() -> FakeRedis:
	"""Reusable fake Redis client for the cache, live feed and notifications."""
	return FakeRedis()


@pytest.fixture
def fake_mqtt() -> FakeMqttClient:
	return FakeMqttClient()


@pytest.fixture
async def channel(fake_mqtt: FakeMqttClient) -> MessageChannel:
	channel = MessageChannel(fake_mqtt, poll_timeout=0.01)
	await channel.connect()
	return channel


@pytest.fixture
async def client(fake_db_session: FakeAsyncSession) -> AsyncGenerator[AsyncClient, None]:
	"""HTTPX async client with lifespan disabled and DB dependency mocked."""

	async def override_get_db() -> AsyncGenerator[Any, None]:
		yield fake_db_session

	app.dependency_overrides[get_db] = override_get_db
	original_lifespan = app.router.lifespan_context

	@asynccontextmanager
	async def noop_lifespan(_: Any) -> AsyncGenerator[None, None]:
		yield

	app.router.lifespan_context = noop_lifespan

	transport = ASGITransport(app=app)
	async with AsyncClient(transport=transport, base_url="http://test") as test_client:
		yield test_client

	app.router.lifespan_context = original_lifespan
	app.dependency_overrides.clear()


@pytest.fixture
def now_utc() -> datetime:
	return datetime.now(UTC)
