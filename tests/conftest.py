"""Shared fakes for the storage backend and the messaging channel."""

import asyncio
import json
from typing import Dict, List, Optional, Union

import pytest

from quake_tracker.errors import ObjectNotFound, StorageUnavailable
from quake_tracker.ingestors import IngestionOrchestrator
from quake_tracker.settings import Settings

BUCKET = "earthquake-sensor"


class FakeObjectStore:
    """
    In-memory bucket. Values are bytes, JSON-able objects (encoded on fetch),
    or exceptions raised when that key is fetched.
    """

    def __init__(self, objects: Optional[Dict[str, object]] = None, delay: float = 0.0):
        self.objects: Dict[str, object] = dict(objects or {})
        self.list_error: Optional[Exception] = None
        self.delay = delay
        self.listed: List[Optional[str]] = []
        self.fetched: List[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def list_keys(self, bucket: str, prefix: Optional[str] = None) -> List[str]:
        self.listed.append(prefix)
        if self.list_error:
            raise self.list_error
        return [k for k in self.objects if not prefix or k.startswith(prefix)]

    async def fetch(self, bucket: str, key: str) -> bytes:
        self.fetched.append(key)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if key not in self.objects:
                raise ObjectNotFound(bucket, key)
            value = self.objects[key]
            if isinstance(value, Exception):
                raise value
            if isinstance(value, bytes):
                return value
            return json.dumps(value).encode("utf-8")
        finally:
            self.in_flight -= 1


class RecordingNotifier:
    def __init__(self, result: Union[bool, Exception] = True):
        self.calls: List[str] = []
        self.result = result

    async def notify(self, message: str, recipient: Optional[str] = None) -> bool:
        self.calls.append(message)
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


@pytest.fixture
def settings():
    return Settings(bucket_name=BUCKET, alert_phone_number="+15550100", fetch_timeout_secs=1.0)


@pytest.fixture
def store():
    return FakeObjectStore()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def orchestrator(settings, store, notifier):
    return IngestionOrchestrator.from_settings(settings, store, notifier)


@pytest.fixture
def unavailable():
    return StorageUnavailable(BUCKET, reason="access denied")
