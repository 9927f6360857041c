"""Pytest configuration for leakprobe."""
import asyncio
import os
from typing import Callable, List

import pytest

from leakprobe.base.config import CollectorConfig, LeakProbeConfig, LookupConfig, SinkConfig, StorageConfig, set_config


def pytest_configure():
    # Keep tests off the real home directory.
    os.environ.setdefault("LEAKPROBE_DATA_DIR", os.path.join(os.getcwd(), ".pytest_leakprobe"))


class FakePeer:
    """In-memory stand-in for a real-time connection object."""

    def __init__(self, candidates=(), fail_offer=False, gather_delay=0.0, fail_close=False, gathered=()):
        self.candidates = list(candidates)
        # Held by the backend but not yet delivered when the window closes
        self.gathered = list(gathered)
        self.flushed = False
        self.fail_offer = fail_offer
        self.gather_delay = gather_delay
        self.fail_close = fail_close
        self.listeners: List[Callable[[str], None]] = []
        self.channels: List[str] = []
        self.closed = False
        self.listeners_at_close = None

    def add_candidate_listener(self, handler):
        self.listeners.append(handler)

        def remove():
            if handler in self.listeners:
                self.listeners.remove(handler)
        return remove

    def create_data_channel(self, label):
        self.channels.append(label)
        return label

    async def create_offer(self):
        if self.fail_offer:
            raise RuntimeError("offer failed")
        return "offer"

    async def set_local_description(self, description):
        if self.gather_delay:
            await asyncio.sleep(self.gather_delay)
        for candidate in self.candidates:
            await asyncio.sleep(0)
            self.emit(candidate)

    def flush(self):
        self.flushed = True
        for candidate in self.gathered:
            self.emit(candidate)

    async def close(self):
        self.listeners_at_close = len(self.listeners)
        self.closed = True
        if self.fail_close:
            raise RuntimeError("close failed")

    def emit(self, candidate):
        for handler in list(self.listeners):
            handler(candidate)


@pytest.fixture
def fake_peer():
    return FakePeer


@pytest.fixture
def probe_config(tmp_path):
    return LeakProbeConfig(
        collector=CollectorConfig(ice_servers=("stun:stun.test:3478",), window_seconds=0.05),
        lookup=LookupConfig(
            public_ip_url="https://public.test/?format=json",
            geo_url_template="https://geo.test/api/json/{ip}",
            request_timeout=1.0,
            user_agent="leakprobe-test/1.0",
        ),
        sink=SinkConfig(url="https://sink.test/log"),
        storage=StorageConfig(base_dir=tmp_path),
    )


@pytest.fixture(autouse=True)
def reset_global_config():
    yield
    set_config(None)
