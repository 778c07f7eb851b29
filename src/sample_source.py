"""
sample_source.py
Per-interface received-byte counters.

The detector only needs the cumulative number of bytes received on each
interface; psutil reads them from the kernel on every supported platform.
"""

from abc import ABC, abstractmethod
from typing import Callable, Dict, List

import psutil


class SampleSourceError(Exception):
    """Raised when interface counters cannot be read."""


class SampleSource(ABC):
    """Contract for anything able to report cumulative received bytes."""

    @abstractmethod
    def fetch_all(self) -> Dict[str, int]:
        """
        Return the current counters.

        Returns:
            Mapping of interface name to cumulative received bytes

        Raises:
            SampleSourceError: counters could not be read
        """
        pass


class PsutilSampleSource(SampleSource):
    """Reads counters with psutil.net_io_counters(pernic=True)."""

    def fetch_all(self) -> Dict[str, int]:
        try:
            counters = psutil.net_io_counters(pernic=True)
        except (psutil.Error, OSError) as e:
            raise SampleSourceError(f"failed to read interface counters: {e}") from e
        return {name: stats.bytes_recv for name, stats in counters.items()}


SampleSourceFactory = Callable[[], SampleSource]


def default_sample_source_factory() -> SampleSource:
    return PsutilSampleSource()


def detect_interfaces() -> List[str]:
    """Names of interfaces that are up and are not loopback, in reported order."""
    interfaces = []
    for name, stats in psutil.net_if_stats().items():
        if not stats.isup:
            continue
        flags = getattr(stats, "flags", "")
        if "loopback" in flags.split(",") or name == "lo":
            continue
        interfaces.append(name)
    return interfaces
