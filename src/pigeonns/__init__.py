"""PigeonNS: a local-only mDNS resolver for `.local` hostnames."""

from .errors import (
    AlreadyRunningError,
    NotRunningError,
    ResolverError,
    ResolveTimeoutError,
    StoppedError,
    TransportError,
    UnsupportedRecordTypeError,
)
from .records import AnswerRecord, MdnsResponse
from .resolver import MdnsResolver

__all__ = [
    "AlreadyRunningError",
    "AnswerRecord",
    "MdnsResolver",
    "MdnsResponse",
    "NotRunningError",
    "ResolveTimeoutError",
    "ResolverError",
    "StoppedError",
    "TransportError",
    "UnsupportedRecordTypeError",
]
