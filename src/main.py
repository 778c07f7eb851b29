"""
main.py
Entry point for QuickServer Shield.

Reads the configuration from the environment, stages OCI credentials, wires
the engine and runs it until SIGINT/SIGTERM.
"""

import logging
import os
import signal
import sys
import threading
from typing import Optional

import oci

from api_server import create_app, serve_in_background
from firewall import OciNsgFirewall
from oci_credentials import CredentialsError, setup_oci_credentials
from quickshield import build_engine
from settings import ConfigurationError, load_settings


def setup_logging(level: str = "INFO", log_file: Optional[str] = None) -> None:
    """Configure logging."""
    handlers = [logging.StreamHandler()]
    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format='%(asctime)s - %(levelname)s - %(message)s',
        handlers=handlers,
    )


def main() -> int:
    """Initialize and run the shield. Returns the process exit status."""
    setup_logging(os.environ.get("LOG_LEVEL", "INFO").upper(), os.environ.get("LOG_FILE"))
    logger = logging.getLogger("main")
    logger.info("Starting TF2 QuickServer Shield...")

    try:
        settings = load_settings()
    except ConfigurationError as e:
        logger.error(f"Invalid configuration: {e}")
        return 1
    logging.getLogger().setLevel(getattr(logging, settings.log_level, logging.INFO))

    logger.info(f"Monitoring interface: {settings.interface}")
    logger.info(f"Max bytes per interval: {settings.max_bytes}")

    # Setup Dependencies
    try:
        setup_oci_credentials()
    except CredentialsError as e:
        logger.warning(f"{e}; falling back to the existing OCI config file")

    try:
        oci_config = oci.config.from_file()
        nsg_client = oci.core.VirtualNetworkClient(oci_config)
    except oci.exceptions.ClientError as e:
        logger.error(f"Failed to create NSG client: {e}")
        return 1
    logger.info("NSG client created.")

    firewall = OciNsgFirewall(nsg_client, settings.oracle, settings.game_ports)
    engine = build_engine(settings, firewall)

    stop_event = threading.Event()

    def graceful_shutdown(signum, frame):
        logger.info(f"Received signal {signum}, shutting down...")
        stop_event.set()

    signal.signal(signal.SIGINT, graceful_shutdown)
    signal.signal(signal.SIGTERM, graceful_shutdown)

    if settings.status_api_port:
        serve_in_background(create_app(engine), settings.status_api_host,
                            settings.status_api_port)
        logger.info(f"Status API on {settings.status_api_host}:{settings.status_api_port}")

    engine.start(stop_event)
    engine.stop()
    engine.shield.join_rollback()
    logger.info("Shield stopped. Exiting.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
