"""Pytest fixtures and fakes for quickserver-shield tests."""

import threading
from typing import Dict, List, Optional, Union

import pytest

from remote_console import RemoteConsoleError
from firewall import FirewallError
from sample_source import SampleSource, SampleSourceError
from settings import OracleParameters, ShieldSettings, SrcdsSettings


STATUS_OUTPUT = """hostname: TF2-QuickServer | Virginia @ Sonikro Solutions
version : 9543365/24 9543365 secure
udp/ip  : 169.254.173.35:13768  (local: 0.0.0.0:27015)  (public IP from Steam: 44.200.128.3)
steamid : [A:1:1871475725:44792] (90264374594008077)
account : not logged in  (No account specified)
map     : cp_badlands at: 0 x, 0 y, 0 z
tags    : cp
sourcetv:  169.254.173.35:13769, delay 30.0s  (local: 0.0.0.0:27020)
players : 1 humans, 1 bots (25 max)
edicts  : 426 used of 2048 max
# userid name                uniqueid            connected ping loss state  adr
#      2 "TF2-QuickServer TV | Virginia @" BOT                       active
#      3 "player1"           [U:1:111111]      00:20       60    0 active 169.254.249.16:18930
#      3 "player2"           [U:1:232232]      00:20       60    0 active 169.254.249.130:18930"""

TV_CLIENTS_OUTPUT = """SourceTV client list:
ID, Name, Connected, Address
ID 2, "spectator1", 00:05:12, 169.254.100.50:27020, rate 80000
ID 3, "spectator2", 00:02:01, 169.254.100.51:27020, rate 80000"""


Response = Union[str, Exception]


class FakeSession:
    """Remote console session answering from a command -> response table."""

    def __init__(self, responses: Optional[Dict[str, Response]] = None,
                 say_error: Optional[Exception] = None):
        self.responses = responses or {}
        self.say_error = say_error
        self.executed: List[str] = []
        self.close_count = 0

    def execute(self, command: str) -> str:
        self.executed.append(command)
        if command.startswith("say "):
            if self.say_error is not None:
                raise self.say_error
            return ""
        response = self.responses.get(command, "")
        if isinstance(response, Exception):
            raise response
        return response

    def close(self) -> None:
        self.close_count += 1

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    @property
    def said(self) -> List[str]:
        return [c for c in self.executed if c.startswith("say ")]


class FakeDial:
    """RconDial handing out FakeSessions (or failing)."""

    def __init__(self, responses: Optional[Dict[str, Response]] = None):
        self.responses = responses if responses is not None else {
            "status": STATUS_OUTPUT,
            "tv_clients": TV_CLIENTS_OUTPUT,
        }
        self.error: Optional[Exception] = None
        self.say_error: Optional[Exception] = None
        self.calls: List[tuple] = []
        self.sessions: List[FakeSession] = []

    def __call__(self, host: str, port: int, password: str) -> FakeSession:
        self.calls.append((host, port, password))
        if self.error is not None:
            raise self.error
        session = FakeSession(self.responses, self.say_error)
        self.sessions.append(session)
        return session


class FakeFirewall:
    """FirewallRuleTransition recording calls."""

    def __init__(self):
        self.restrict_calls: List[List[str]] = []
        self.restore_calls = 0
        self.restrict_error: Optional[Exception] = None
        self.restore_error: Optional[Exception] = None

    def restrict_ingress_to(self, ips) -> None:
        self.restrict_calls.append(list(ips))
        if self.restrict_error is not None:
            raise self.restrict_error

    def restore_default_ingress(self) -> None:
        self.restore_calls += 1
        if self.restore_error is not None:
            raise self.restore_error


class ManualTimer:
    """threading.Timer stand-in that only fires when told to."""

    def __init__(self, interval: float, function):
        self.interval = interval
        self.function = function
        self.daemon = True
        self.name = "ManualTimer"
        self.started = False
        self.fired = False

    def start(self) -> None:
        self.started = True

    def fire(self) -> None:
        self.fired = True
        self.function()

    def join(self, timeout=None) -> None:
        pass


class ManualTimerFactory:
    def __init__(self):
        self.timers: List[ManualTimer] = []

    def __call__(self, interval: float, function) -> ManualTimer:
        timer = ManualTimer(interval, function)
        self.timers.append(timer)
        return timer


class SequenceSampleSource(SampleSource):
    """
    Returns the given counter values for one interface, one per fetch.

    Once the values run out, the counter keeps growing by `step` per fetch.
    """

    def __init__(self, values: List[int], interface: str = "eth0", step: int = 0):
        self.values = list(values)
        self.interface = interface
        self.step = step
        self.fetches = 0
        self._last = self.values[-1] if self.values else 0
        self._lock = threading.Lock()

    def fetch_all(self) -> Dict[str, int]:
        with self._lock:
            if self.fetches < len(self.values):
                value = self.values[self.fetches]
            else:
                self._last += self.step
                value = self._last
            self.fetches += 1
        return {self.interface: value}


class FailingSampleSource(SampleSource):
    def fetch_all(self) -> Dict[str, int]:
        raise SampleSourceError("permission denied")


class FakeClock:
    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def status_output() -> str:
    return STATUS_OUTPUT


@pytest.fixture
def tv_clients_output() -> str:
    return TV_CLIENTS_OUTPUT


@pytest.fixture
def fake_dial() -> FakeDial:
    return FakeDial()


@pytest.fixture
def fake_firewall() -> FakeFirewall:
    return FakeFirewall()


@pytest.fixture
def timer_factory() -> ManualTimerFactory:
    return ManualTimerFactory()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def srcds_settings() -> SrcdsSettings:
    return SrcdsSettings(ip="127.0.0.1", port=27015, password="rcon-secret")


@pytest.fixture
def shield_settings(srcds_settings) -> ShieldSettings:
    return ShieldSettings(
        interface="eth0",
        max_bytes=100,
        threshold_seconds=0.02,
        poll_interval_seconds=0.01,
        shield_duration_seconds=180.0,
        srcds=srcds_settings,
        oracle=OracleParameters(nsg_name="server-1", compartment_id="compartment",
                                vcn_id="vcn"),
    )


@pytest.fixture
def console_error() -> RemoteConsoleError:
    return RemoteConsoleError("connection refused")


@pytest.fixture
def firewall_error() -> FirewallError:
    return FirewallError("NSG not found")
