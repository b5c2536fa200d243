import asyncio
import json
import logging
from pathlib import Path
from typing import Any, List, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from .errors import DecodeError, ObjectNotFound, ParseError, StorageUnavailable
from .settings import Settings

logger = logging.getLogger(__name__)

_NOT_FOUND_CODES = {"NoSuchKey", "404", "NotFound"}


def build_s3_client(settings: Settings):
    """One S3 client per process; credentials come from the default boto3 chain."""
    cfg = Config(
        region_name=settings.aws_region,
        connect_timeout=settings.fetch_timeout_secs,
        read_timeout=settings.fetch_timeout_secs,
        retries={"max_attempts": 2},
    )
    return boto3.client("s3", config=cfg)


# =========================
# S3
# =========================

class S3ObjectStore:
    def __init__(self, client):
        self.client = client

    def _list_keys_sync(self, bucket: str, prefix: Optional[str]) -> List[str]:
        params = {"Bucket": bucket}
        if prefix:
            params["Prefix"] = prefix
        keys: List[str] = []
        for page in self.client.get_paginator("list_objects_v2").paginate(**params):
            for obj in page.get("Contents", []):
                keys.append(obj["Key"])
        return keys

    def _fetch_sync(self, bucket: str, key: str) -> bytes:
        obj = self.client.get_object(Bucket=bucket, Key=key)
        return obj["Body"].read()

    async def list_keys(self, bucket: str, prefix: Optional[str] = None) -> List[str]:
        try:
            return await asyncio.to_thread(self._list_keys_sync, bucket, prefix)
        except (ClientError, BotoCoreError) as e:
            raise StorageUnavailable(bucket, reason=str(e)) from e

    async def fetch(self, bucket: str, key: str) -> bytes:
        try:
            return await asyncio.to_thread(self._fetch_sync, bucket, key)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "")
            if code in _NOT_FOUND_CODES:
                raise ObjectNotFound(bucket, key) from e
            raise StorageUnavailable(bucket, key, str(e)) from e
        except BotoCoreError as e:
            raise StorageUnavailable(bucket, key, str(e)) from e


# =========================
# Local directory (dev runs without AWS)
# =========================

class DirectoryObjectStore:
    """
    Treats `root/<bucket>/` as a bucket. Keys are POSIX paths relative to it,
    listed in sorted order, so `detections/1.json` maps to
    `root/<bucket>/detections/1.json`.
    """

    def __init__(self, root: str):
        self.root = Path(root)

    def _bucket_dir(self, bucket: str) -> Path:
        d = self.root / bucket
        if not d.is_dir():
            raise StorageUnavailable(bucket, reason=f"no such directory: {d}")
        return d

    def _list_keys_sync(self, bucket: str, prefix: Optional[str]) -> List[str]:
        d = self._bucket_dir(bucket)
        keys = sorted(p.relative_to(d).as_posix() for p in d.rglob("*") if p.is_file())
        if prefix:
            keys = [k for k in keys if k.startswith(prefix)]
        return keys

    async def list_keys(self, bucket: str, prefix: Optional[str] = None) -> List[str]:
        try:
            return await asyncio.to_thread(self._list_keys_sync, bucket, prefix)
        except OSError as e:
            raise StorageUnavailable(bucket, reason=str(e)) from e

    def _fetch_sync(self, bucket: str, key: str) -> bytes:
        return (self._bucket_dir(bucket) / key).read_bytes()

    async def fetch(self, bucket: str, key: str) -> bytes:
        try:
            return await asyncio.to_thread(self._fetch_sync, bucket, key)
        except FileNotFoundError as e:
            raise ObjectNotFound(bucket, key) from e
        except OSError as e:
            raise StorageUnavailable(bucket, key, str(e)) from e


def build_object_store(settings: Settings):
    if settings.local_store_dir:
        logger.info(f"[Store] using local directory {settings.local_store_dir}")
        return DirectoryObjectStore(settings.local_store_dir)
    logger.info(f"[Store] using S3 region={settings.aws_region}")
    return S3ObjectStore(build_s3_client(settings))


# =========================
# Body handling
# =========================

def decode_body(bucket: str, key: str, data: bytes) -> str:
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as e:
        raise DecodeError(bucket, key, str(e)) from e

def parse_document(bucket: str, key: str, text: str) -> Any:
    try:
        return json.loads(text)
    except (ValueError, RecursionError) as e:
        # RecursionError: nesting deeper than the parser allows
        raise ParseError(bucket, key, str(e)) from e
