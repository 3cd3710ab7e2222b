# Video generation providers
from photo2video.services.providers.base import (
    ErrorKind,
    NormalizedStatus,
    ProviderError,
    ProviderResult,
    TaskCreated,
    TaskStatus,
    VideoAsset,
    VideoProvider,
    normalize_status,
)
from photo2video.services.providers.backup import BackupAdapter
from photo2video.services.providers.kling import KlingAdapter
from photo2video.services.providers.registry import NoProviderAvailableError, ProviderRegistry

__all__ = [
    "ErrorKind",
    "NormalizedStatus",
    "ProviderError",
    "ProviderResult",
    "TaskCreated",
    "TaskStatus",
    "VideoAsset",
    "VideoProvider",
    "normalize_status",
    "BackupAdapter",
    "KlingAdapter",
    "NoProviderAvailableError",
    "ProviderRegistry",
]
