"""MQTT client core for the mesh bridge.

Owns the aiomqtt connection lifecycle: connect, announce the bridge as online, subscribe
to ``<base_topic>/#`` and hand every inbound message to the command router in its own
task and correlation scope. The connection is re-established after a configurable delay.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any
from urllib.parse import urlsplit

import aiomqtt

from meshbridge.const import MESHBRIDGE_MQTT_CONN_DELAY
from meshbridge.correlation import correlation_context
from meshbridge.logging_abstraction import get_logger
from meshbridge.settings import BridgeSettings

if TYPE_CHECKING:
    from meshbridge.mqtt.command_routing import CommandRouter

__all__ = ["BRIDGE_OFFLINE", "BRIDGE_ONLINE", "MQTTClient"]

logger = get_logger(__name__)

BRIDGE_ONLINE = b"online"
BRIDGE_OFFLINE = b"offline"


class MQTTClient:
    """aiomqtt wrapper publishing state and feeding inbound messages to the router."""

    lp: str = "mqtt:"

    def __init__(self, settings: BridgeSettings, conn_delay: int = MESHBRIDGE_MQTT_CONN_DELAY) -> None:
        self.settings: BridgeSettings = settings
        self.topic: str = settings.base_topic
        self.conn_delay: int = conn_delay
        self.client: aiomqtt.Client | None = None
        self.command_router: CommandRouter | None = None
        self.start_task: asyncio.Task[None] | None = None
        self._connected: bool = False
        self._tasks: set[asyncio.Task[None]] = set()

        mqtt = settings.mqtt
        self.broker_host, self.broker_port = self._split_server(mqtt.server, mqtt.port)
        self.broker_username: str | None = mqtt.user
        self.broker_password: str | None = mqtt.password
        self.broker_client_id: str = mqtt.client_id or f"meshbridge_{self.topic}"

    @staticmethod
    def _split_server(server: str, default_port: int) -> tuple[str, int]:
        """Accept ``host``, ``host:port`` or ``mqtt://host:port``."""
        if "://" not in server:
            server = f"mqtt://{server}"
        parts = urlsplit(server)
        return parts.hostname or "localhost", parts.port or default_port

    @property
    def is_connected(self) -> bool:
        """Check if MQTT client is connected to the broker."""
        return self._connected

    def set_connected(self, connected: bool) -> None:
        self._connected = connected

    @property
    def bridge_state_topic(self) -> str:
        return f"{self.topic}/bridge/state"

    def _get_connection_delay(self, lp: str) -> int:
        if self.conn_delay <= 0:
            logger.debug("%s MQTT connection delay is %s, using 5 seconds instead", lp, self.conn_delay)
            return 5
        return self.conn_delay

    async def start(self) -> None:
        lp = f"{self.lp}start:"
        while True:
            if await self.connect():
                try:
                    await self._start_receiver(lp)
                except aiomqtt.MqttError as e:
                    logger.warning("%s connection lost: %s", lp, e)
                    self._connected = False
            delay = self._get_connection_delay(lp)
            logger.info("%s (re)connecting to MQTT broker in %s seconds...", lp, delay)
            await asyncio.sleep(delay)

    async def connect(self) -> bool:
        lp = f"{self.lp}connect:"
        self._connected = False
        logger.debug("%s Connecting to MQTT broker %s:%s...", lp, self.broker_host, self.broker_port)
        self.client = aiomqtt.Client(
            hostname=self.broker_host,
            port=self.broker_port,
            username=self.broker_username,
            password=self.broker_password,
            identifier=self.broker_client_id,
            keepalive=self.settings.mqtt.keepalive,
            will=aiomqtt.Will(topic=self.bridge_state_topic, payload=BRIDGE_OFFLINE, retain=True),
        )
        try:
            _ = await self.client.__aenter__()
        except aiomqtt.MqttError as e:
            logger.error("%s Connection failed [MqttError] -> %s", lp, e)
            return False

        self._connected = True
        logger.info("%s Connected to MQTT broker: %s port: %s", lp, self.broker_host, self.broker_port)
        try:
            await self.client.publish(self.bridge_state_topic, BRIDGE_ONLINE, qos=0, retain=True)
        except aiomqtt.MqttError as e:
            logger.warning("%s could not publish bridge state: %s", lp, e)
        return True

    async def _start_receiver(self, lp: str) -> None:
        assert self.client is not None, "client must be initialized"
        subscription = f"{self.topic}/#"
        await self.client.subscribe(subscription, qos=0)
        logger.info("%s Subscribed to %s, waiting for messages...", lp, subscription)
        async for message in self.client.messages:
            payload = message.payload
            if payload is None or payload == b"":
                continue
            if isinstance(payload, (int, float)):
                payload = str(payload)
            self.spawn(self.handle_message(message.topic.value, payload))

    def spawn(self, coro: Any) -> asyncio.Task[None]:
        """Run ``coro`` as an independent task; messages never wait on each other."""
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def handle_message(self, topic: str, payload: str | bytes | bytearray) -> None:
        lp = f"{self.lp}rcv:"
        if self.command_router is None:
            logger.warning("%s no command router attached, dropping message on %s", lp, topic)
            return
        with correlation_context():
            try:
                _ = await self.command_router.handle_message(topic, payload)
            except Exception:
                logger.exception("%s unhandled error processing message on %s", lp, topic)

    async def stop(self) -> None:
        lp = f"{self.lp}stop:"
        for task in list(self._tasks):
            if not task.done():
                _ = task.cancel()
        if self.client is None:
            return
        try:
            if self._connected:
                await self.client.publish(self.bridge_state_topic, BRIDGE_OFFLINE, qos=0, retain=True)
            logger.debug("%s Disconnecting from broker...", lp)
            await self.client.__aexit__(None, None, None)
        except aiomqtt.MqttError as e:
            logger.warning("%s MQTT disconnect failed: %s", lp, e)
        else:
            logger.info("%s Disconnected from MQTT broker", lp)
        finally:
            self._connected = False
            if self.start_task and not self.start_task.done():
                _ = self.start_task.cancel()

    async def publish(self, topic: str, msg_data: bytes) -> bool:
        """Publish a message to the MQTT broker."""
        lp = f"{self.lp}publish:"
        if not self._connected or self.client is None:
            return False
        try:
            await self.client.publish(topic, msg_data, qos=0, retain=False)
        except aiomqtt.MqttError as mqtt_err:
            logger.warning("%s [MqttError] -> %s", lp, mqtt_err)
            self._connected = False
        else:
            return True
        return False

    async def publish_json_msg(self, topic: str, msg_data: Mapping[str, Any]) -> bool:
        return await self.publish(topic, json.dumps(dict(msg_data)).encode())
