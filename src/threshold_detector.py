"""
threshold_detector.py
Detects sustained inbound traffic surges on a single network interface.

The detector polls cumulative received-byte counters at a fixed interval and
compares the per-interval delta against a byte limit. A surge only counts as
an attack once it has stayed above the limit for the configured sustained
duration; a single quiet interval resets the excursion.

Detection is level-triggered once the sustained duration has elapsed: the
callback runs on every tick the surge keeps going. Suppressing repeated
events is the callback's job (the shield ignores detections while active).
"""

import logging
import threading
import time
from typing import Callable, Optional

from sample_source import SampleSource, SampleSourceError, SampleSourceFactory

# Counters are unsigned 64-bit in the kernel; a counter reset wraps around
# into a huge delta instead of going negative.
COUNTER_MODULUS = 2 ** 64

AttackCallback = Callable[[str, int], None]


class ThresholdDetector:
    """
    Turns a stream of byte-counter samples into debounced attack events.

    State kept between ticks:
    - last_sample: previous cumulative count (0 means no baseline yet)
    - above_threshold / above_threshold_since: current excursion, if any
    """

    def __init__(self, interface: str, sample_source_factory: SampleSourceFactory,
                 max_bytes: int, threshold_time: float, on_attack: AttackCallback,
                 poll_interval: float, clock: Callable[[], float] = time.monotonic):
        """
        Args:
            interface: Interface name to watch (e.g. "eth0")
            sample_source_factory: Builds the counter source on first use
            max_bytes: Largest per-interval delta considered normal
            threshold_time: Seconds the delta must stay above max_bytes
            on_attack: Called with (interface, delta) when an attack is detected
            poll_interval: Seconds between ticks
            clock: Monotonic time source in seconds
        """
        self.interface = interface
        self.max_bytes = max_bytes
        self.threshold_time = threshold_time
        self.poll_interval = poll_interval
        self.logger = logging.getLogger("ThresholdDetector")

        self._sample_source_factory = sample_source_factory
        self._on_attack = on_attack
        self._clock = clock
        self._source: Optional[SampleSource] = None

        self.last_sample = 0
        self.above_threshold = False
        self.above_threshold_since: Optional[float] = None

        # Stats
        self.polls = 0
        self.fetch_failures = 0
        self.detections = 0
        self.last_delta: Optional[int] = None

    def _get_source(self) -> SampleSource:
        if self._source is None:
            try:
                self._source = self._sample_source_factory()
            except SampleSourceError:
                raise
            except Exception as e:
                raise SampleSourceError(f"failed to open sample source: {e}") from e
        return self._source

    def poll(self) -> None:
        """Run a single tick: fetch the counters and evaluate the delta."""
        self.polls += 1
        try:
            samples = self._get_source().fetch_all()
        except SampleSourceError as e:
            self.fetch_failures += 1
            self.logger.warning(f"Failed to read net dev stats: {e}")
            return

        current = samples.get(self.interface)
        if current is None:
            return

        self._evaluate(current)

    def _evaluate(self, current: int) -> None:
        if self.last_sample == 0:
            self.last_sample = current
            return

        delta = (current - self.last_sample) % COUNTER_MODULUS
        self.last_delta = delta

        if delta > self.max_bytes:
            now = self._clock()
            if not self.above_threshold:
                self.above_threshold = True
                self.above_threshold_since = now
                self.logger.info(
                    f"Traffic on {self.interface} above threshold: "
                    f"{delta} bytes (limit {self.max_bytes})"
                )
            elif now - self.above_threshold_since >= self.threshold_time:
                self.logger.warning(
                    f"Potential attack detected on {self.interface}: "
                    f"{delta} bytes in the last interval"
                )
                self._fire(delta)
        else:
            if self.above_threshold:
                self.logger.info(f"Traffic on {self.interface} back below threshold")
            self.above_threshold = False
            self.above_threshold_since = None

        self.last_sample = current

    def _fire(self, delta: int) -> None:
        self.detections += 1
        try:
            self._on_attack(self.interface, delta)
        except Exception as e:
            self.logger.exception(f"Attack handler failed: {e}")

    def start_monitoring(self, stop_event: threading.Event) -> None:
        """Poll until stop_event is set. Blocks the calling thread."""
        self.logger.info(
            f"Monitoring {self.interface} every {self.poll_interval}s "
            f"(limit {self.max_bytes} bytes, sustained {self.threshold_time}s)"
        )
        while not stop_event.is_set():
            self.poll()
            stop_event.wait(self.poll_interval)
        self.logger.info("Stopping monitoring due to cancellation")

    def get_statistics(self) -> dict:
        """Return monitoring statistics."""
        return {
            "interface": self.interface,
            "max_bytes": self.max_bytes,
            "threshold_seconds": self.threshold_time,
            "poll_interval_seconds": self.poll_interval,
            "polls": self.polls,
            "fetch_failures": self.fetch_failures,
            "detections": self.detections,
            "last_delta": self.last_delta,
            "above_threshold": self.above_threshold,
        }
