"""
shield.py
Mitigation controller: restricts ingress to connected players during an attack.

Lifecycle of one episode:
    Idle --(attack detected)--> Active --(shield duration elapsed)--> Idle

Activation runs inline on the detector's thread: announce the incident in
chat, collect player addresses, restrict the firewall, announce activation,
then arm a one-shot rollback timer. Any failure before the firewall change
aborts the episode and leaves the shield Idle so the next detection retries.

Rollback runs on the timer's own thread. If the firewall cannot be restored
the shield stays Active and needs an operator.
"""

import logging
import threading
import time
from typing import Callable, Optional

from firewall import FirewallError, FirewallRuleTransition
from incident_log import IncidentKind, IncidentLog
from player_directory import get_player_ips
from remote_console import RconDial, RemoteConsoleError, say_command
from settings import SrcdsSettings

TimerFactory = Callable[[float, Callable[[], None]], threading.Timer]


class ShieldFlag:
    """Boolean whose check-and-update happens under a lock."""

    def __init__(self, value: bool = False):
        self._value = value
        self._lock = threading.Lock()

    def compare_and_set(self, expected: bool, new: bool) -> bool:
        """Set to new only if currently expected. Returns True when it did."""
        with self._lock:
            if self._value != expected:
                return False
            self._value = new
            return True

    def set(self, value: bool) -> None:
        with self._lock:
            self._value = value

    def is_set(self) -> bool:
        with self._lock:
            return self._value


class Shield:
    """
    Owns the single "shield active" state.

    on_attack_detected is safe to call from several threads; only the caller
    that flips the flag from Idle runs the activation, everyone else returns
    without touching the game server or the firewall.
    """

    def __init__(self, rcon_dial: RconDial, srcds: SrcdsSettings,
                 firewall: FirewallRuleTransition, shield_duration: float,
                 incidents: Optional[IncidentLog] = None,
                 timer_factory: TimerFactory = threading.Timer):
        """
        Args:
            rcon_dial: Opens a remote console session (host, port, password)
            srcds: Game server console address and password
            firewall: Applies and lifts the ingress restriction
            shield_duration: Seconds the restriction stays in place
            incidents: Journal receiving episode events
            timer_factory: Builds the one-shot rollback timer
        """
        self.srcds = srcds
        self.firewall = firewall
        self.shield_duration = shield_duration
        self.incidents = incidents or IncidentLog(console=False)
        self.logger = logging.getLogger("Shield")

        self._rcon_dial = rcon_dial
        self._timer_factory = timer_factory
        self._active = ShieldFlag()
        self._rollback_timer: Optional[threading.Timer] = None
        # Guards the counters, the episode timestamps and the rollback timer
        self.lock = threading.Lock()

        # Stats
        self.activations = 0
        self.aborted_activations = 0
        self.deactivations = 0
        self.failed_restores = 0
        self.activated_at: Optional[float] = None
        self.rollback_deadline: Optional[float] = None

    @property
    def is_active(self) -> bool:
        return self._active.is_set()

    # ── Idle -> Active ────────────────────────────────────────────────────────
    def on_attack_detected(self, iface: str, observed_bytes: int) -> None:
        """Detector callback: start an episode unless one is already running."""
        if not self._active.compare_and_set(False, True):
            self.logger.debug(f"Shield already active, ignoring detection on {iface}")
            return

        activated = False
        try:
            activated = self._activate(iface, observed_bytes)
        finally:
            if not activated:
                with self.lock:
                    self.aborted_activations += 1
                self._active.set(False)

    def _activate(self, iface: str, observed_bytes: int) -> bool:
        self.incidents.record(
            IncidentKind.ATTACK_DETECTED,
            f"Attack detected on interface {iface} with {observed_bytes} bytes",
            interface=iface, observed_bytes=observed_bytes,
        )

        try:
            session = self._rcon_dial(self.srcds.ip, self.srcds.port, self.srcds.password)
        except RemoteConsoleError as e:
            self._abort(f"Failed to connect to RCON: {e}")
            return False

        with session:
            try:
                session.execute(say_command(
                    f"[Shield] Attack detected on {iface} ({observed_bytes} bytes). "
                    f"Enabling protection..."
                ))
            except RemoteConsoleError as e:
                self._abort(f"Failed to send warning message: {e}")
                return False

            try:
                player_ips = get_player_ips(session.execute)
            except RemoteConsoleError as e:
                self._abort(f"Failed to get player IPs: {e}")
                return False

            if not player_ips:
                self._abort("No player IPs found, nothing to protect")
                return False

            try:
                self.firewall.restrict_ingress_to(player_ips)
            except FirewallError as e:
                self._abort(f"Failed to enable firewall restriction: {e}")
                return False

            try:
                session.execute(say_command(
                    f"[Shield] Protection enabled for {len(player_ips)} players "
                    f"for {self._format_duration()}."
                ))
            except RemoteConsoleError as e:
                self.incidents.record(
                    IncidentKind.ANNOUNCE_FAILED,
                    f"Firewall restricted but activation notice failed: {e}",
                )

        with self.lock:
            self.activations += 1
            self.activated_at = time.time()
            self.rollback_deadline = self.activated_at + self.shield_duration
        self.incidents.record(
            IncidentKind.SHIELD_ACTIVATED,
            f"Shield active for {len(player_ips)} addresses, "
            f"rollback in {self.shield_duration:g}s",
            player_ips=list(player_ips),
        )
        self._arm_rollback()
        return True

    def _abort(self, reason: str) -> None:
        self.incidents.record(IncidentKind.ACTIVATION_ABORTED, reason)

    def _arm_rollback(self) -> None:
        timer = self._timer_factory(self.shield_duration, self._on_rollback_timer)
        # Shutdown waits for an outstanding rollback so the firewall is restored.
        timer.daemon = False
        timer.name = "ShieldRollback"
        with self.lock:
            self._rollback_timer = timer
        timer.start()

    # ── Active -> Idle ────────────────────────────────────────────────────────
    def _on_rollback_timer(self) -> None:
        self._deactivate()

    def _deactivate(self) -> None:
        try:
            self.firewall.restore_default_ingress()
        except FirewallError as e:
            with self.lock:
                self.failed_restores += 1
                self._rollback_timer = None
            self.incidents.record(
                IncidentKind.RESTORE_FAILED,
                f"Failed to disable firewall restriction, shield stays active: {e}",
            )
            return

        # Firewall restored: the state resets even if the notice fails.
        try:
            self._announce_deactivation()
        finally:
            with self.lock:
                self.deactivations += 1
                self.activated_at = None
                self.rollback_deadline = None
                self._rollback_timer = None
                self._active.set(False)
            self.incidents.record(IncidentKind.SHIELD_DEACTIVATED, "Shield deactivated")

    def _announce_deactivation(self) -> None:
        try:
            with self._rcon_dial(self.srcds.ip, self.srcds.port, self.srcds.password) as session:
                session.execute(say_command("[Shield] Protection disabled."))
        except RemoteConsoleError as e:
            self.logger.warning(f"Failed to announce shield deactivation: {e}")

    def _format_duration(self) -> str:
        minutes, seconds = divmod(int(self.shield_duration), 60)
        if minutes and not seconds:
            return f"{minutes} minute{'s' if minutes != 1 else ''}"
        if minutes:
            return f"{minutes}m{seconds:02d}s"
        return f"{self.shield_duration:g} seconds"

    def join_rollback(self, timeout: Optional[float] = None) -> None:
        """Wait for the outstanding rollback timer, if any."""
        with self.lock:
            timer = self._rollback_timer
        if timer is not None and timer is not threading.current_thread():
            timer.join(timeout)

    def get_statistics(self) -> dict:
        """Return controller statistics."""
        with self.lock:
            stats = {
                "activations": self.activations,
                "aborted_activations": self.aborted_activations,
                "deactivations": self.deactivations,
                "failed_restores": self.failed_restores,
                "activated_at": self.activated_at,
                "rollback_deadline": self.rollback_deadline,
            }
        remaining = None
        if stats["rollback_deadline"] is not None:
            remaining = max(0.0, stats["rollback_deadline"] - time.time())
        return {
            "active": self.is_active,
            "shield_duration_seconds": self.shield_duration,
            **stats,
            "rollback_remaining_seconds": remaining,
        }
