# Database models package
from photo2video.models.user import User
from photo2video.models.video import Video, VideoStatus
from photo2video.models.generation_job import GenerationJob, JobStatus
from photo2video.models.credit_ledger import CreditLedgerEntry, LedgerEntryType

__all__ = [
    "User",
    "Video",
    "VideoStatus",
    "GenerationJob",
    "JobStatus",
    "CreditLedgerEntry",
    "LedgerEntryType",
]
