"""
incident_log.py
In-memory journal of shield incidents.

Operators follow incidents in the game chat; this journal keeps the same
story for the console and the status API. It lives only as long as the
process (nothing is written to disk).
"""

import logging
import threading
from collections import Counter, deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from colorama import Fore, Style


class IncidentKind(Enum):
    """What happened during a mitigation episode."""
    ATTACK_DETECTED = "attack_detected"
    SHIELD_ACTIVATED = "shield_activated"
    ACTIVATION_ABORTED = "activation_aborted"
    ANNOUNCE_FAILED = "announce_failed"
    SHIELD_DEACTIVATED = "shield_deactivated"
    RESTORE_FAILED = "restore_failed"


_COLORS = {
    IncidentKind.ATTACK_DETECTED: f"{Fore.RED}{Style.BRIGHT}",
    IncidentKind.SHIELD_ACTIVATED: Fore.YELLOW,
    IncidentKind.ACTIVATION_ABORTED: Fore.MAGENTA,
    IncidentKind.ANNOUNCE_FAILED: Fore.MAGENTA,
    IncidentKind.SHIELD_DEACTIVATED: Fore.GREEN,
    IncidentKind.RESTORE_FAILED: f"{Fore.RED}{Style.BRIGHT}",
}

_LEVELS = {
    IncidentKind.ATTACK_DETECTED: logging.WARNING,
    IncidentKind.SHIELD_ACTIVATED: logging.WARNING,
    IncidentKind.ACTIVATION_ABORTED: logging.ERROR,
    IncidentKind.ANNOUNCE_FAILED: logging.WARNING,
    IncidentKind.SHIELD_DEACTIVATED: logging.INFO,
    IncidentKind.RESTORE_FAILED: logging.ERROR,
}


@dataclass
class Incident:
    """A single journal entry."""
    kind: IncidentKind
    message: str
    timestamp: datetime = field(default_factory=datetime.now)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
            "metadata": self.metadata,
        }

    def __str__(self) -> str:
        color = _COLORS.get(self.kind, Fore.WHITE)
        return f"{color}[{self.kind.name}] {self.message}{Style.RESET_ALL}"


class IncidentLog:
    """Thread-safe, bounded incident journal."""

    def __init__(self, max_entries: int = 200, console: bool = True):
        self.max_entries = max_entries
        self.console = console
        self.lock = threading.Lock()
        self.logger = logging.getLogger("IncidentLog")
        self._entries: deque = deque(maxlen=max_entries)
        self._counts: Counter = Counter()

    def record(self, kind: IncidentKind, message: str, **metadata) -> Incident:
        """Append an incident, log it, and echo it to the console."""
        incident = Incident(kind=kind, message=message, metadata=metadata)
        with self.lock:
            self._entries.append(incident)
            self._counts[kind] += 1

        self.logger.log(_LEVELS.get(kind, logging.INFO), f"[{kind.name}] {message}")
        if self.console:
            print(incident, flush=True)
        return incident

    def latest(self, limit: int = 50, kind: Optional[IncidentKind] = None) -> List[Incident]:
        """Most recent incidents first."""
        with self.lock:
            entries = list(self._entries)
        entries.reverse()
        if kind is not None:
            entries = [e for e in entries if e.kind is kind]
        return entries[:limit]

    def counts(self) -> Dict[str, int]:
        """Totals per kind since start (not limited by max_entries)."""
        with self.lock:
            return {kind.value: self._counts[kind] for kind in IncidentKind}

    def clear(self) -> None:
        with self.lock:
            self._entries.clear()
            self._counts.clear()

    def __len__(self) -> int:
        with self.lock:
            return len(self._entries)
