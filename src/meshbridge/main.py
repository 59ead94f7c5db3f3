from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path

import uvloop

from meshbridge.const import LOG_FORMATTER, MESHBRIDGE_CONFIG_FILE_PATH, MESHBRIDGE_DEBUG, MESHBRIDGE_VERSION
from meshbridge.correlation import correlation_context
from meshbridge.devices.endpoint import MeshFrame
from meshbridge.devices.resolver import EntityEvent, EntityRegistry
from meshbridge.exceptions import ConfigError
from meshbridge.logging_abstraction import get_logger
from meshbridge.mqtt.client import MQTTClient
from meshbridge.mqtt.command_routing import CommandRouter
from meshbridge.mqtt.state_updates import StateUpdateHelper
from meshbridge.scheduler import ReadScheduler
from meshbridge.settings import BridgeSettings, load_settings
from meshbridge.state import StateStore

logger = get_logger(__name__)

# aiomqtt logs through the "mqtt" logger; keep it quiet and on our format
mqtt_handler = logging.StreamHandler(sys.stdout)
mqtt_handler.setFormatter(LOG_FORMATTER)
mqtt_logger = logging.getLogger("mqtt")
mqtt_logger.setLevel(logging.ERROR)
mqtt_logger.propagate = False
mqtt_logger.addHandler(mqtt_handler)

OUTBOUND_QUEUE_SIZE = 256


class MeshBridge:
    """Wires settings, registry, state, router and MQTT client together."""

    lp: str = "MeshBridge:"

    def __init__(self, settings: BridgeSettings) -> None:
        self.settings: BridgeSettings = settings
        self.outbound: asyncio.Queue[MeshFrame] = asyncio.Queue(maxsize=OUTBOUND_QUEUE_SIZE)
        self.registry: EntityRegistry = EntityRegistry.from_settings(settings, self.outbound)
        self.state_store: StateStore = StateStore()
        self.scheduler: ReadScheduler = ReadScheduler()
        self.mqtt_client: MQTTClient = MQTTClient(settings)
        self.publisher: StateUpdateHelper = StateUpdateHelper(
            self.mqtt_client,
            self.state_store,
            self.registry,
            settings.base_topic,
        )
        self.router: CommandRouter = CommandRouter(
            settings,
            self.registry,
            self.state_store,
            self.publisher,
            self.scheduler,
        )
        self.mqtt_client.command_router = self.router
        self.registry.subscribe(self.scheduler.on_entity_event)
        self.registry.subscribe(self._on_entity_event)

    def _on_entity_event(self, entity_id: str, event: EntityEvent) -> None:
        if event is EntityEvent.REMOVED:
            self.state_store.forget(entity_id)

    async def drain_frames(self) -> None:
        """Hand outbound frames to the mesh transport.

        The radio transport is a separate process; until it attaches, frames are logged.
        """
        lp = f"{self.lp}drain_frames:"
        while True:
            frame = await self.outbound.get()
            try:
                logger.debug("%s -> %s", lp, frame)
            finally:
                self.outbound.task_done()

    async def start(self) -> None:
        lp = f"{self.lp}start:"
        logger.info("%s starting MQTT client and frame sink", lp, extra={"version": MESHBRIDGE_VERSION})
        self.mqtt_client.start_task = asyncio.create_task(self.mqtt_client.start(), name="mqtt_client_start")
        sink = asyncio.create_task(self.drain_frames(), name="frame_sink")
        try:
            _ = await asyncio.gather(self.mqtt_client.start_task, sink)
        finally:
            sink.cancel()
            await self.stop()

    async def stop(self) -> None:
        logger.info("%s shutting down...", self.lp)
        self.scheduler.cancel_all()
        await self.mqtt_client.stop()


def parse_cli(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="MQTT to mesh network command bridge")
    _ = parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=Path(MESHBRIDGE_CONFIG_FILE_PATH),
        help="Path to the YAML settings file",
    )
    _ = parser.add_argument("-D", "--debug", action="store_true", help="Enable debug mode")
    return parser.parse_args(argv)


def _enable_debug() -> None:
    # every module logger sets its own level, so each one has to be lowered
    for name, module_logger in logging.root.manager.loggerDict.items():
        if not name.startswith("meshbridge") or not isinstance(module_logger, logging.Logger):
            continue
        module_logger.setLevel(logging.DEBUG)
        for handler in module_logger.handlers:
            handler.setLevel(logging.DEBUG)


async def _run(bridge: MeshBridge) -> None:
    loop = asyncio.get_running_loop()
    main_task = asyncio.current_task()
    assert main_task is not None

    def _on_signal(signum: signal.Signals) -> None:
        logger.info("Intercepted signal: %s (%s)", signum.name, int(signum))
        _ = main_task.cancel()

    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, _on_signal, signum)
    try:
        await bridge.start()
    except asyncio.CancelledError:
        logger.info("Mesh bridge cancelled, shutting down...")


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the mesh bridge."""
    with correlation_context():
        logger.info("Starting mesh bridge", extra={"version": MESHBRIDGE_VERSION})
        args = parse_cli(argv)
        if args.debug or MESHBRIDGE_DEBUG:
            _enable_debug()
            logger.info("Debug logging enabled")

        config_path = args.config.expanduser().resolve()
        try:
            settings = load_settings(config_path)
        except ConfigError as e:
            logger.error("%s", e)
            return 1

        try:
            uvloop.run(_run(MeshBridge(settings)))
        except Exception as e:
            logger.exception("Fatal error in main loop", extra={"error": str(e)})
            return 1
        logger.info("Mesh bridge shutdown complete")
        return 0


if __name__ == "__main__":
    sys.exit(main())
