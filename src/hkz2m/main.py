from __future__ import annotations

import argparse
import sys
from collections.abc import Sequence
from pathlib import Path

import dotenv
import uvloop

from hkz2m.config import BridgeSettings, load_settings
from hkz2m.const import HKZ2M_VERSION
from hkz2m.context import build_context
from hkz2m.correlation import correlation_context
from hkz2m.exceptions import ConfigError
from hkz2m.logging_abstraction import configure_output, configure_third_party_loggers, get_logger, set_debug
from hkz2m.metrics import start_metrics_server
from hkz2m.mqtt.handlers import register_bridge_topics
from hkz2m.reconciler import InventoryReconciler
from hkz2m.supervisor import ConnectionSupervisor
from hkz2m.utils import ensure_persist_dir

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_FATAL = 1
EXIT_CONFIG = 2


def parse_cli(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="hkz2m", description="Zigbee2MQTT to HomeKit bridge")
    parser.add_argument("-D", "--debug", action="store_true", help="Enable debug mode")
    parser.add_argument("--env", help="Path to the environment file", default=None, type=Path)
    parser.add_argument("--config", help="Path to a YAML settings file", default=None, type=Path)
    parser.add_argument("--version", action="version", version=f"%(prog)s {HKZ2M_VERSION}")
    return parser.parse_args(argv)


def load_env_file(env_file: Path) -> bool:
    """Load a dotenv file into the environment, overriding existing values."""
    env_path = env_file.expanduser().resolve()
    if not env_path.exists():
        logger.error("Environment file not found", extra={"path": str(env_path)})
        return False
    loaded_any = dotenv.load_dotenv(env_path, override=True)
    if loaded_any:
        logger.info(" Environment variables loaded", extra={"source": str(env_path)})
    else:
        logger.warning("No environment variables loaded from file", extra={"path": str(env_path)})
    return loaded_any


async def run_bridge(settings: BridgeSettings) -> int:
    """Wire the components together and run until stopped."""
    ctx = build_context(settings)
    reconciler = InventoryReconciler(ctx)
    register_bridge_topics(ctx, reconciler)
    supervisor = ConnectionSupervisor(ctx, reconciler)
    supervisor.install_signal_handlers()
    return await supervisor.run()


def main(argv: Sequence[str] | None = None) -> int:
    """Main entry point for the bridge."""
    with correlation_context():
        args = parse_cli(argv)
        configure_third_party_loggers()
        if args.debug:
            set_debug(True)
            logger.info("Debug mode enabled via CLI argument")

        logger.info("Starting hkz2m", extra={"version": HKZ2M_VERSION})

        if args.env and load_env_file(args.env):
            output = configure_output()
            logger.info(" Log output reconfigured", extra={"format": output.log_format, "json_file": output.json_file})

        try:
            settings = load_settings(args.config)
        except ConfigError as e:
            logger.error("Configuration error: %s", e)
            return EXIT_CONFIG

        if settings.debug or args.debug:
            set_debug(True)

        ensure_persist_dir(settings.persist_dir)

        if settings.metrics_port > 0:
            start_metrics_server(settings.metrics_port)
            logger.info(" Metrics exporter listening", extra={"port": settings.metrics_port})

        logger.info(
            " Configuration loaded",
            extra={
                "mqtt": f"{settings.mqtt_host}:{settings.mqtt_port}",
                "base_topic": settings.base_topic,
                "hap_port": settings.hap_port,
                "persist_file": str(settings.persist_file),
            },
        )

        try:
            exit_code = uvloop.run(run_bridge(settings))
        except KeyboardInterrupt:
            logger.info("Keyboard interrupt received, shutting down...")
            exit_code = EXIT_OK
        except Exception as e:
            logger.exception(" Fatal error in main loop", extra={"error": str(e)})
            exit_code = EXIT_FATAL

        logger.info("hkz2m shutdown complete", extra={"exit_code": exit_code})
        return exit_code


if __name__ == "__main__":
    sys.exit(main())
