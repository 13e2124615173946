import posixpath
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional

MB = 1024 * 1024

# Upper bounds (inclusive) of the size buckets reported by file stats
SIZE_RANGES = (
    ("0-1MB", MB),
    ("1-5MB", 5 * MB),
    ("5-10MB", 10 * MB),
    ("10MB+", None),
)


def object_key(collection: str, sub_path: str = "", filename: str = "") -> str:
    """`{collection}/{subPath}/{fileName}` with empty segments collapsed"""
    parts = [collection, *(sub_path or "").split("/"), filename]
    return "/".join(part.strip() for part in parts if part and part.strip())


def base_name(filename: str) -> str:
    return posixpath.basename((filename or "").replace("\\", "/"))


def size_range(size: int) -> str:
    for label, upper in SIZE_RANGES:
        if upper is None or size <= upper:
            return label
    return SIZE_RANGES[-1][0]


@dataclass
class FileObject:
    path: str
    name: str
    size: int
    content_type: Optional[str] = None
    custom_metadata: Dict[str, str] = field(default_factory=dict)
    time_created: Optional[datetime] = None
    url: Optional[str] = None

    @property
    def is_public(self) -> bool:
        return self.custom_metadata.get("is_public") == "true"

    @property
    def record_id(self) -> Optional[str]:
        return self.custom_metadata.get("record_id")


@dataclass
class UploadResult:
    url: str
    path: str
    name: str
    size: int
    type: Optional[str]
    metadata: Dict[str, str] = field(default_factory=dict)


@dataclass
class FilePage:
    files: List[FileObject] = field(default_factory=list)
    next_page_token: Optional[str] = None


class ProgressTracker:
    """Turns boto3 transfer callbacks into percent-complete reports.

    boto3 calls back from its transfer threads with byte increments; the
    reported percentage never goes down and the last report is 100.
    """

    def __init__(self, total: int, on_progress: Optional[Callable[[float], None]] = None):
        self.total = total
        self.on_progress = on_progress
        self.transferred = 0
        self.last_percent = 0.0
        self._lock = threading.Lock()

    def _report(self, percent: float) -> None:
        if percent < self.last_percent:
            return
        self.last_percent = percent
        if self.on_progress is not None:
            self.on_progress(percent)

    def __call__(self, bytes_amount: int) -> None:
        with self._lock:
            self.transferred += bytes_amount
            if self.total <= 0:
                return
            self._report(min(100.0, self.transferred * 100.0 / self.total))

    def complete(self) -> None:
        with self._lock:
            if self.last_percent < 100.0:
                self._report(100.0)
