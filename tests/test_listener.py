from __future__ import annotations

import asyncio
import json
import uuid
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import aiomqtt
import pytest

from app.messaging.channel import MessageChannel
from app.messaging.listener import ChannelListener
from app.models.enums import DeviceStatusEnum, DeviceTypeEnum
from app.schemas.telemetry import IngestOutcome
from app.services.device_registry import DeviceRegistry
from app.services.telemetry_service import TelemetryService
from tests.conftest import FakeAsyncSession, FakeMqttClient


def _listener(channel: MessageChannel, session: FakeAsyncSession, **kwargs: object) -> ChannelListener:
    factory = MagicMock(return_value=session)
    return ChannelListener(channel, factory, **kwargs)


@pytest.mark.asyncio
async def test_process_commits_the_unit_of_work(
    channel: MessageChannel,
    fake_db_session: FakeAsyncSession,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    device = SimpleNamespace(
        id=uuid.uuid4(),
        farm_id=uuid.uuid4(),
        hardware_id="node-a1",
        device_type=DeviceTypeEnum.soil_sensor,
        status=DeviceStatusEnum.active,
        last_seen_at=None,
        battery_level=None,
    )
    monkeypatch.setattr(DeviceRegistry, "resolve", AsyncMock(return_value=device))
    listener = _listener(channel, fake_db_session)

    outcome = await listener.process("farm/f-1/status/node-a1", json.dumps({"status": "online"}))

    assert outcome is not None
    assert outcome.action == "status_updated"
    assert fake_db_session.commit.await_count >= 1
    fake_db_session.rollback.assert_not_awaited()


@pytest.mark.asyncio
async def test_process_rolls_back_and_never_raises(
    channel: MessageChannel,
    fake_db_session: FakeAsyncSession,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setattr(DeviceRegistry, "resolve", AsyncMock(side_effect=RuntimeError("db went away")))
    listener = _listener(channel, fake_db_session)

    outcome = await listener.process("farm/f-1/sensor/node-a1", json.dumps({"soilMoisture": 10}))

    assert outcome is None
    fake_db_session.rollback.assert_awaited_once()


@pytest.mark.asyncio
async def test_dispatched_messages_are_processed_concurrently(
    channel: MessageChannel,
    fake_db_session: FakeAsyncSession,
) -> None:
    listener = _listener(channel, fake_db_session)
    gate = asyncio.Event()
    seen: list[str] = []

    async def _process(topic: str, _payload: bytes) -> None:
        await gate.wait()
        seen.append(topic)

    listener.process = _process  # type: ignore[method-assign]
    await listener.dispatch("farm/a/sensor/x", b"{}")
    await listener.dispatch("farm/b/sensor/y", b"{}")
    assert listener.pending == 2

    gate.set()
    await listener.stop()

    assert sorted(seen) == ["farm/a/sensor/x", "farm/b/sensor/y"]
    assert listener.pending == 0



def _device() -> SimpleNamespace:
    return SimpleNamespace(
        id=uuid.uuid4(),
        farm_id=uuid.uuid4(),
        hardware_id="node-a1",
        device_type=DeviceTypeEnum.soil_sensor,
        status=DeviceStatusEnum.active,
        last_seen_at=None,
        battery_level=None,
    )


@pytest.mark.asyncio
async def test_undecodable_payload_is_dropped_and_listener_keeps_consuming(
    channel: MessageChannel,
    fake_mqtt: FakeMqttClient,
    fake_db_session: FakeAsyncSession,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    resolve = AsyncMock(return_value=_device())
    ingest = AsyncMock(return_value=IngestOutcome(topic="farm/f-1/sensor/node-a1", action="stored"))
    monkeypatch.setattr(DeviceRegistry, "resolve", resolve)
    monkeypatch.setattr(TelemetryService, "ingest_telemetry", ingest)
    listener = _listener(channel, fake_db_session, namespace="farm")
    task = asyncio.create_task(listener.run())

    fake_mqtt.deliver("farm/f-1/sensor/node-a1", b"\xff\xfe{bad")
    fake_mqtt.deliver("farm/f-1/sensor/node-a1", b'{"soilMoisture": 10}')

    async def _stored() -> None:
        while not ingest.await_count:
            await asyncio.sleep(0.01)

    await asyncio.wait_for(_stored(), timeout=2)
    assert not task.done()
    await listener.stop()
    await asyncio.wait_for(task, timeout=2)

    resolve.assert_awaited_once_with("node-a1")
    ingest.assert_awaited_once()
    assert ingest.await_args.args[-1] == {"soilMoisture": 10}
    fake_db_session.rollback.assert_not_awaited()


@pytest.mark.asyncio
async def test_process_drops_non_utf8_payload(channel: MessageChannel, fake_db_session: FakeAsyncSession) -> None:
    listener = _listener(channel, fake_db_session)

    outcome = await listener.process("farm/f-1/sensor/node-a1", b"\xff\xfe{bad")

    assert outcome is not None
    assert outcome.action == "dropped"
    assert outcome.reason == "payload is not a JSON object"


@pytest.mark.asyncio
async def test_run_retries_after_broker_error(fake_db_session: FakeAsyncSession) -> None:
    channel = MessageChannel(FakeMqttClient())
    listener = _listener(channel, fake_db_session, namespace="farm", retry_delay_seconds=0.01)
    attempts: list[list[str]] = []

    async def _listen(filters: list[str], _handler: object, stop: asyncio.Event) -> None:
        attempts.append(filters)
        if len(attempts) == 1:
            raise aiomqtt.MqttError("connection reset")
        stop.set()

    channel.listen = _listen  # type: ignore[method-assign]

    await asyncio.wait_for(listener.run(), timeout=2)

    assert len(attempts) == 2
    assert attempts[0] == ["farm/+/sensor/#", "farm/+/status/+", "farm/+/irrigation/+/ack"]
    assert channel.connected


@pytest.mark.asyncio
async def test_run_survives_unexpected_errors_from_the_subscription(fake_db_session: FakeAsyncSession) -> None:
    channel = MessageChannel(FakeMqttClient())
    listener = _listener(channel, fake_db_session, retry_delay_seconds=0.01)
    attempts = 0

    async def _listen(_filters: list[str], _handler: object, stop: asyncio.Event) -> None:
        nonlocal attempts
        attempts += 1
        if attempts == 1:
            raise UnicodeDecodeError("utf-8", b"\xff", 0, 1, "invalid start byte")
        stop.set()

    channel.listen = _listen  # type: ignore[method-assign]

    await asyncio.wait_for(listener.run(), timeout=2)

    assert attempts == 2
