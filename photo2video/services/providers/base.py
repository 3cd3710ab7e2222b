"""
Video provider contract.

Every adapter exposes the same create / poll / fetch / cancel surface and
reports outcomes as ProviderResult values instead of raising, so the worker
can branch on `result.ok` and `result.error.kind`.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, Generic, Optional, TypeVar

T = TypeVar("T")


class NormalizedStatus(str, Enum):
    """Status vocabulary the worker reasons over, independent of any provider."""
    PENDING = "pending"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    UNKNOWN = "unknown"


# Upstream status strings → normalized status
STATUS_MAP: Dict[str, NormalizedStatus] = {
    "pending": NormalizedStatus.PENDING,
    "queued": NormalizedStatus.PENDING,
    "submitted": NormalizedStatus.PENDING,
    "processing": NormalizedStatus.PROCESSING,
    "running": NormalizedStatus.PROCESSING,
    "completed": NormalizedStatus.SUCCEEDED,
    "succeeded": NormalizedStatus.SUCCEEDED,
    "succeed": NormalizedStatus.SUCCEEDED,
    "failed": NormalizedStatus.FAILED,
    "error": NormalizedStatus.FAILED,
    "canceled": NormalizedStatus.FAILED,
    "cancelled": NormalizedStatus.FAILED,
}


def normalize_status(raw_status: Any, mapping: Optional[Dict[str, NormalizedStatus]] = None) -> NormalizedStatus:
    """Map a provider status string onto NormalizedStatus; never raises."""
    if not isinstance(raw_status, str):
        return NormalizedStatus.UNKNOWN
    return (mapping or STATUS_MAP).get(raw_status.strip().lower(), NormalizedStatus.UNKNOWN)


class ErrorKind(str, Enum):
    DISABLED = "disabled"  # Missing credentials or enable flag
    TRANSPORT = "transport"  # Network failure or timeout
    UPSTREAM = "upstream"  # Non-2xx status, error payload or malformed JSON
    INVALID_REQUEST = "invalid_request"  # Payload rejected before any network call
    NOT_READY = "not_ready"  # Result fetched before the task succeeded
    MISSING_ASSET = "missing_asset"  # Backup provider has no sample video


@dataclass(frozen=True)
class ProviderError:
    kind: ErrorKind
    message: str

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}"


class ProviderRequestError(Exception):
    """Internal signal inside an adapter; converted to ProviderResult at the method boundary."""

    def __init__(self, kind: ErrorKind, message: str):
        self.error = ProviderError(kind, message)
        super().__init__(message)


@dataclass
class TaskCreated:
    provider_task_id: str
    status: str
    raw: Dict[str, Any] = field(default_factory=dict)


@dataclass
class TaskStatus:
    status: NormalizedStatus
    progress: int = 0
    message: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)


@dataclass
class VideoAsset:
    video_url: str
    thumbnail_url: Optional[str] = None
    duration: Optional[float] = None
    width: Optional[int] = None
    height: Optional[int] = None
    raw: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ProviderResult(Generic[T]):
    """Either a value or a ProviderError, never both."""
    value: Optional[T] = None
    error: Optional[ProviderError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> "ProviderResult[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, kind: ErrorKind, message: str) -> "ProviderResult[T]":
        return cls(error=ProviderError(kind, message))

    def to_dict(self) -> Dict[str, Any]:
        """Serializable form stored in generation_jobs.result_data"""
        if not self.ok:
            return {
                "success": False,
                "error": self.error.kind.value,
                "message": self.error.message,
            }
        data = asdict(self.value) if self.value is not None else {}
        if isinstance(data.get("status"), NormalizedStatus):
            data["status"] = data["status"].value
        data["success"] = True
        return data


SUPPORTED_FORMATS: Dict[str, str] = {
    "16:9": "Landscape (1920x1080)",
    "9:16": "Portrait (1080x1920)",
    "1:1": "Square (1080x1080)",
}

SUPPORTED_PRESETS: Dict[str, str] = {
    "default": "Default Animation",
    "smooth": "Smooth Motion",
    "cinematic": "Cinematic",
    "fast": "Fast Motion",
    "slow": "Slow Motion",
}


class VideoProvider(ABC):
    """Uniform interface to a video-generation backend."""

    name: str = ""
    display_name: str = ""

    @abstractmethod
    def is_enabled(self) -> bool:
        ...

    @abstractmethod
    async def create_task(self, payload: Dict[str, Any]) -> ProviderResult[TaskCreated]:
        """Submit a new generation request (image_url, format, preset)."""

    @abstractmethod
    async def poll_status(self, task_id: str) -> ProviderResult[TaskStatus]:
        """Read-only status check."""

    @abstractmethod
    async def fetch_result(self, task_id: str) -> ProviderResult[VideoAsset]:
        """Final asset; NOT_READY error until the task has succeeded."""

    @abstractmethod
    async def cancel_task(self, task_id: str) -> bool:
        ...

    def supported_formats(self) -> Dict[str, str]:
        return dict(SUPPORTED_FORMATS)

    def supported_presets(self) -> Dict[str, str]:
        return dict(SUPPORTED_PRESETS)

    def owns_task(self, task_id: Optional[str]) -> bool:
        """Adapters prefix their task ids with their own name"""
        return bool(task_id) and task_id.startswith(f"{self.name}_")

    def describe(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "display_name": self.display_name,
            "enabled": self.is_enabled(),
            "formats": self.supported_formats(),
            "presets": self.supported_presets(),
        }
