from __future__ import annotations

import json
import uuid

import pytest

from app.messaging.channel import MessageChannel, PublishStatus
from app.services.dispatch_service import CommandDispatcher, parse_ack
from tests.conftest import FakeMqttClient


@pytest.mark.asyncio
async def test_command_goes_to_device_command_topic(channel: MessageChannel, fake_mqtt: FakeMqttClient) -> None:
    farm_id = uuid.uuid4()
    dispatcher = CommandDispatcher(channel, namespace="farm")

    result = await dispatcher.publish(farm_id, "valve-7", "stop", {"reason": "manual"})

    assert result.status == PublishStatus.delivered
    assert result.topic == f"farm/{farm_id}/device/valve-7/command"
    (topic,) = fake_mqtt.publish.await_args.args
    assert topic == result.topic
    assert fake_mqtt.publish.await_args.kwargs["qos"] == 1
    assert json.loads(fake_mqtt.publish.await_args.kwargs["payload"]) == {"command": "stop", "reason": "manual"}


@pytest.mark.asyncio
async def test_command_on_disconnected_channel_fails(fake_mqtt: FakeMqttClient) -> None:
    channel = MessageChannel(fake_mqtt)

    result = await CommandDispatcher(channel, namespace="orchard").publish(uuid.uuid4(), "valve-1", "start")

    assert result.status == PublishStatus.failed
    fake_mqtt.publish.assert_not_awaited()
    assert result.topic.startswith("orchard/")


def test_parse_ack_accepts_camel_and_snake_case() -> None:
    schedule_id = uuid.uuid4()

    camel = parse_ack({"scheduleId": str(schedule_id), "status": "completed", "actualVolumeLiters": 310.5})
    snake = parse_ack({"schedule_id": str(schedule_id), "status": "failed", "firmware": "2.1"})

    assert camel is not None and snake is not None
    assert camel.schedule_id == schedule_id
    assert camel.actual_volume_liters == 310.5
    assert snake.status == "failed"
    assert snake.actual_volume_liters is None


@pytest.mark.parametrize(
    "payload",
    [
        {},
        {"scheduleId": "not-a-uuid", "status": "completed"},
        {"scheduleId": str(uuid.uuid4()), "status": "in_progress"},
        {"scheduleId": str(uuid.uuid4()), "status": "completed", "actualVolumeLiters": -3},
    ],
)
def test_parse_ack_rejects_malformed(payload: dict[str, object]) -> None:
    assert parse_ack(payload) is None
