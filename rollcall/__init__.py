from .core.exceptions import (
    AttendanceError,
    DecodeError,
    DimensionMismatch,
    FetchFailure,
    StoreError,
    ValidationError,
)
from .core.types import AttendanceRecord, AttendanceStatus, EnrolledIdentity, MatchResult
from .services.codec import decode, encode
from .services.matcher import DescriptorMatcher
from .services.reconciler import AttendanceReconciler, ReconcilerState
from .ws.manager import EventFeed, Subscription

__version__ = "1.0.0"

__all__ = [
    "AttendanceError",
    "AttendanceReconciler",
    "AttendanceRecord",
    "AttendanceStatus",
    "DecodeError",
    "DescriptorMatcher",
    "DimensionMismatch",
    "EnrolledIdentity",
    "EventFeed",
    "FetchFailure",
    "MatchResult",
    "ReconcilerState",
    "StoreError",
    "Subscription",
    "ValidationError",
    "decode",
    "encode",
]
