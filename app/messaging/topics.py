"""Topic naming for the device MQTT channel.

Devices in the field are flashed with these exact topic strings, so the
layout below is a wire contract:

    <ns>/<farm_id>/sensor/<hardware_id>[/<subpath>]      telemetry
    <ns>/<farm_id>/status/<hardware_id>                  device status
    <ns>/<farm_id>/device/<hardware_id>/command          outbound commands
    <ns>/<farm_id>/irrigation/<hardware_id>/ack          irrigation acks
"""

from __future__ import annotations

from dataclasses import dataclass

SENSOR_CATEGORY = "sensor"
STATUS_CATEGORY = "status"
COMMAND_CATEGORY = "device"
IRRIGATION_CATEGORY = "irrigation"
ACK_SUBPATH = "ack"


class TopicError(ValueError):
	"""Raised when a topic does not follow the channel layout."""


@dataclass(frozen=True, slots=True)
class TopicAddress:
	namespace: str
	farm_id: str
	category: str
	hardware_id: str
	subpath: tuple[str, ...] = ()

	@property
	def is_telemetry(self) -> bool:
		return self.category == SENSOR_CATEGORY

	@property
	def is_status(self) -> bool:
		return self.category == STATUS_CATEGORY

	@property
	def is_ack(self) -> bool:
		return self.category == IRRIGATION_CATEGORY and self.subpath[-1:] == (ACK_SUBPATH,)


def parse_topic(topic: str, namespace: str) -> TopicAddress:
	parts = topic.split("/")
	if len(parts) < 4:
		raise TopicError(f"topic has {len(parts)} segments, expected at least 4: {topic!r}")
	if parts[0] != namespace:
		raise TopicError(f"topic namespace {parts[0]!r} does not match {namespace!r}")
	if not all(parts[1:4]):
		raise TopicError(f"topic has empty segments: {topic!r}")
	return TopicAddress(
		namespace=parts[0],
		farm_id=parts[1],
		category=parts[2],
		hardware_id=parts[3],
		subpath=tuple(parts[4:]),
	)


def command_topic(namespace: str, farm_id: str, hardware_id: str) -> str:
	return f"{namespace}/{farm_id}/{COMMAND_CATEGORY}/{hardware_id}/command"


def subscription_filters(namespace: str) -> list[str]:
	"""MQTT filters for the inbound topic families.

	Each filter pins the category segment, so no topic matches more than one
	of them and the broker delivers every message once.
	"""
	return [
		f"{namespace}/+/{SENSOR_CATEGORY}/#",
		f"{namespace}/+/{STATUS_CATEGORY}/+",
		f"{namespace}/+/{IRRIGATION_CATEGORY}/+/{ACK_SUBPATH}",
	]


def live_feed_channel(farm_id: object) -> str:
	return f"farm:{farm_id}:live"


def notification_channel(farmer_id: object) -> str:
	return f"notifications:{farmer_id}"
