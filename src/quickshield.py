"""
quickshield.py
Core engine wiring traffic detection to the mitigation controller.

    sample source -> ThresholdDetector -> Shield -> player directory / firewall

The detector loop runs on the caller's thread until the stop event is set.
Each mitigation episode adds one rollback timer thread next to it.
"""

import logging
import threading
from functools import partial
from typing import Optional

from colorama import init, Fore, Style
from scapy.all import get_if_list

import remote_console
from firewall import FirewallRuleTransition
from incident_log import IncidentLog
from remote_console import RconDial
from sample_source import SampleSourceFactory, default_sample_source_factory
from settings import ShieldSettings
from shield import Shield
from threshold_detector import ThresholdDetector

# Initialize colorama
init(autoreset=True)


class QuickShield:
    """
    Main engine coordinating the detector and the shield.

    Exposes a start/stop control: start() blocks until the stop event is set,
    stop() sets it from any thread (signal handler, API, tests).
    """

    def __init__(self, settings: ShieldSettings, detector: ThresholdDetector,
                 shield: Shield, incidents: IncidentLog):
        self.settings = settings
        self.detector = detector
        self.shield = shield
        self.incidents = incidents
        self.logger = logging.getLogger("QuickShield")
        self.stop_event: Optional[threading.Event] = None
        self.is_running = False

    def _validate_interface(self) -> None:
        """Warn when the monitored interface is unknown to the host."""
        interface = self.settings.interface
        try:
            available = get_if_list()
        except OSError as e:
            self.logger.warning(f"Could not list interfaces: {e}")
            return

        if interface not in available:
            self.logger.warning(f"Interface '{interface}' not found")
            self.logger.info(f"Available: {available}")

        self.logger.info(f"Target interface: {interface}")

    def start(self, stop_event: Optional[threading.Event] = None) -> None:
        """Run the detection loop until stop_event is set."""
        self.stop_event = stop_event or threading.Event()
        self.is_running = True

        self._validate_interface()

        settings = self.settings
        print(f"\n{Fore.GREEN}{'='*60}")
        print(f"{Fore.GREEN}QuickServer Shield")
        print(f"{'='*60}{Style.RESET_ALL}")
        print(f"Interface: {settings.interface}")
        print(f"Max bytes per interval: {settings.max_bytes}")
        print(f"Sustained for: {settings.threshold_seconds:g}s")
        print(f"Poll interval: {settings.poll_interval_seconds:g}s")
        print(f"Shield duration: {settings.shield_duration_seconds:g}s")
        print(f"Game server: {settings.srcds.address}")
        print(f"NSG: {settings.oracle.nsg_name}")
        print(f"\nPress Ctrl+C to stop\n")

        try:
            self.detector.start_monitoring(self.stop_event)
        finally:
            self.is_running = False

    def stop(self) -> None:
        """Signal the detection loop to exit and print session statistics."""
        if self.stop_event is not None:
            self.stop_event.set()

        print(f"\n{Fore.CYAN}{'='*60}")
        print(f"Session Statistics")
        print(f"{'='*60}{Style.RESET_ALL}")
        for section, stats in self.get_statistics().items():
            print(f"{section}:")
            for key, value in stats.items():
                print(f"  {key}: {value}")

        if self.shield.is_active:
            print(f"\n{Fore.YELLOW}Shield still active, waiting for rollback...{Style.RESET_ALL}")
        print(f"\n{Fore.GREEN}QuickServer Shield stopped{Style.RESET_ALL}\n")

    def get_statistics(self) -> dict:
        return {
            "detector": self.detector.get_statistics(),
            "shield": self.shield.get_statistics(),
            "incidents": self.incidents.counts(),
        }


def build_engine(settings: ShieldSettings, firewall: FirewallRuleTransition,
                 rcon_dial: Optional[RconDial] = None,
                 sample_source_factory: Optional[SampleSourceFactory] = None,
                 incidents: Optional[IncidentLog] = None) -> QuickShield:
    """Wire detector -> shield for the given settings."""
    incidents = incidents or IncidentLog()
    if rcon_dial is None:
        rcon_dial = partial(remote_console.dial, timeout=settings.rcon_timeout_seconds)

    shield = Shield(
        rcon_dial=rcon_dial,
        srcds=settings.srcds,
        firewall=firewall,
        shield_duration=settings.shield_duration_seconds,
        incidents=incidents,
    )
    detector = ThresholdDetector(
        interface=settings.interface,
        sample_source_factory=sample_source_factory or default_sample_source_factory,
        max_bytes=settings.max_bytes,
        threshold_time=settings.threshold_seconds,
        on_attack=shield.on_attack_detected,
        poll_interval=settings.poll_interval_seconds,
    )
    return QuickShield(settings, detector, shield, incidents)
