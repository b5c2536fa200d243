import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Type

from pydantic import BaseModel, ValidationError

from .errors import IngestionError, ParseError, StorageUnavailable
from .models import DetectionRecord, DirectDetectionRecord
from .settings import Settings
from .storage import decode_body, parse_document

logger = logging.getLogger(__name__)

Listener = Callable[[str, "RecordCollection"], Awaitable[None]]

def _now():
    return datetime.now(timezone.utc)


# =========================
# Sweeps
# =========================

@dataclass(frozen=True)
class Sweep:
    name: str
    record_model: Type[BaseModel]
    prefix: Optional[str] = None
    suffix: Optional[str] = None
    notify: bool = False

    def matches(self, key: str) -> bool:
        if self.prefix and not key.startswith(self.prefix):
            return False
        if self.suffix and not key.endswith(self.suffix):
            return False
        return True


def detections_sweep(settings: Settings) -> Sweep:
    return Sweep(
        name="detections",
        record_model=DetectionRecord,
        prefix=settings.detections_prefix,
        notify=True,
    )

def direct_sweep(settings: Settings) -> Sweep:
    return Sweep(
        name="direct",
        record_model=DirectDetectionRecord,
        suffix=settings.direct_suffix,
    )


@dataclass
class SweepResult:
    sweep: str
    completed: bool
    records: int = 0
    keys: int = 0
    skipped: List[str] = field(default_factory=list)
    notified: bool = False
    error: Optional[str] = None


def flatten_document(doc: Any) -> List[Dict[str, Any]]:
    """An array document yields one record per element; an object yields itself."""
    if isinstance(doc, dict):
        return [doc]
    if isinstance(doc, list):
        if not all(isinstance(item, dict) for item in doc):
            raise TypeError("array elements must be JSON objects")
        return list(doc)
    raise TypeError(f"expected a JSON object or array, got {type(doc).__name__}")


# =========================
# Collections
# =========================

class RecordCollection:
    """Last successfully loaded records for one sweep. Replaced whole, never appended."""

    def __init__(self, name: str):
        self.name = name
        self.records: Tuple[BaseModel, ...] = ()
        self.updated_at: Optional[datetime] = None

    def replace(self, records: List[BaseModel]) -> None:
        self.records = tuple(records)
        self.updated_at = _now()

    def __len__(self) -> int:
        return len(self.records)

    def __iter__(self):
        return iter(self.records)


# =========================
# Orchestrator
# =========================

class IngestionOrchestrator:
    def __init__(self,
                 store,
                 notifier,
                 bucket: str,
                 detections: Sweep,
                 direct: Sweep,
                 alert_message: str,
                 fetch_concurrency: int = 16,
                 fetch_timeout_secs: float = 10.0):
        self.store = store
        self.notifier = notifier
        self.bucket = bucket
        self.detections = detections
        self.direct = direct
        self.alert_message = alert_message
        self.fetch_timeout_secs = fetch_timeout_secs
        self._sem = asyncio.Semaphore(max(1, fetch_concurrency))
        self.collections: Dict[str, RecordCollection] = {
            detections.name: RecordCollection(detections.name),
            direct.name: RecordCollection(direct.name),
        }
        self._listeners: List[Listener] = []

    @classmethod
    def from_settings(cls, settings: Settings, store, notifier) -> "IngestionOrchestrator":
        return cls(
            store=store,
            notifier=notifier,
            bucket=settings.bucket_name,
            detections=detections_sweep(settings),
            direct=direct_sweep(settings),
            alert_message=settings.alert_message,
            fetch_concurrency=settings.fetch_concurrency,
            fetch_timeout_secs=settings.fetch_timeout_secs,
        )

    def subscribe(self, listener: Listener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    # ---- per key ----
    async def _load_key(self, sweep: Sweep, key: str) -> List[BaseModel]:
        async with self._sem:
            try:
                data = await asyncio.wait_for(self.store.fetch(self.bucket, key), self.fetch_timeout_secs)
            except asyncio.TimeoutError as e:
                raise StorageUnavailable(self.bucket, key, f"timed out after {self.fetch_timeout_secs}s") from e
        doc = parse_document(self.bucket, key, decode_body(self.bucket, key, data))
        try:
            return [sweep.record_model.model_validate(item) for item in flatten_document(doc)]
        except (TypeError, ValidationError) as e:
            raise ParseError(self.bucket, key, str(e)) from e

    # ---- one sweep ----
    async def run_sweep(self, sweep: Sweep) -> SweepResult:
        """
        List, fetch and parse every matching key, then replace the sweep's
        collection in one step. A bad object is skipped and logged; a failed
        listing leaves the previous collection untouched.
        """
        try:
            listed = await self.store.list_keys(self.bucket, sweep.prefix)
        except Exception as e:
            logger.error(f"[Sweep][ERROR] {sweep.name}: listing failed, keeping last data: {e!r}")
            return SweepResult(sweep=sweep.name, completed=False, error=str(e) or repr(e))

        keys = [k for k in listed if sweep.matches(k)]
        results = await asyncio.gather(
            *(self._load_key(sweep, k) for k in keys), return_exceptions=True
        )

        records: List[BaseModel] = []
        skipped: List[str] = []
        for key, res in zip(keys, results):
            if isinstance(res, IngestionError):
                logger.warning(f"[Sweep] {sweep.name}: skipping {key}: {res}")
                skipped.append(key)
            elif isinstance(res, Exception):
                logger.error(f"[Sweep][ERROR] {sweep.name}: skipping {key}, unexpected error: {res!r}")
                skipped.append(key)
            elif isinstance(res, BaseException):
                raise res
            else:
                records.extend(res)

        collection = self.collections[sweep.name]
        collection.replace(records)
        logger.info(f"[Sweep] {sweep.name}: {len(records)} record(s) from {len(keys)} key(s), {len(skipped)} skipped")

        # listeners (the render path) go first; the alert must never hold them back
        await self._publish(sweep.name, collection)

        notified = False
        if sweep.notify and records:
            notified = await self._notify()

        return SweepResult(
            sweep=sweep.name,
            completed=True,
            records=len(records),
            keys=len(keys),
            skipped=skipped,
            notified=notified,
        )

    async def _notify(self) -> bool:
        try:
            return bool(await self.notifier.notify(self.alert_message))
        except Exception as e:
            logger.error(f"[SNS][ERROR] notifier raised: {e}")
            return False

    async def _publish(self, name: str, collection: RecordCollection) -> None:
        for listener in list(self._listeners):
            try:
                await listener(name, collection)
            except Exception as e:
                logger.error(f"[Sweep][ERROR] listener failed for {name}: {e}")

    # ---- both sweeps ----
    async def run_all(self) -> List[SweepResult]:
        return list(await asyncio.gather(
            self.run_sweep(self.detections),
            self.run_sweep(self.direct),
        ))

    async def poll_forever(self, poll_secs: int) -> None:
        while True:
            try:
                await self.run_all()
            except Exception as e:
                logger.error(f"[Sweep][ERROR] poll iteration failed: {e!r}")
            await asyncio.sleep(poll_secs)

    @property
    def detection_records(self) -> Tuple[BaseModel, ...]:
        return self.collections[self.detections.name].records

    @property
    def direct_records(self) -> Tuple[BaseModel, ...]:
        return self.collections[self.direct.name].records
