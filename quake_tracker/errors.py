from typing import Optional


class IngestionError(Exception):
    """Base class for everything that can go wrong while loading or alerting."""


class StorageUnavailable(IngestionError):
    """The storage backend could not be reached, timed out, or denied access."""

    def __init__(self, bucket: str, key: Optional[str] = None, reason: str = ""):
        self.bucket = bucket
        self.key = key
        self.reason = reason
        where = f"{bucket}/{key}" if key else bucket
        super().__init__(f"storage unavailable for {where}: {reason}")


class ObjectNotFound(IngestionError):
    """A key disappeared between listing and fetching."""

    def __init__(self, bucket: str, key: str):
        self.bucket = bucket
        self.key = key
        super().__init__(f"object not found: {bucket}/{key}")


class DecodeError(IngestionError):
    """Object bytes are not valid UTF-8 text."""

    def __init__(self, bucket: str, key: str, reason: str = ""):
        self.bucket = bucket
        self.key = key
        self.reason = reason
        super().__init__(f"cannot decode {bucket}/{key}: {reason}")


class ParseError(IngestionError):
    """Object text is not a JSON object or array of objects."""

    def __init__(self, bucket: str, key: str, reason: str = ""):
        self.bucket = bucket
        self.key = key
        self.reason = reason
        super().__init__(f"cannot parse {bucket}/{key}: {reason}")


class NotifyFailure(IngestionError):
    """The messaging channel rejected or failed to send an alert."""

    def __init__(self, recipient: Optional[str], reason: str = ""):
        self.recipient = recipient
        self.reason = reason
        super().__init__(f"notification to {recipient} failed: {reason}")
