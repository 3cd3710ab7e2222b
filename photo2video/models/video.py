from enum import Enum

from sqlalchemy import Column, Integer, String, DateTime, Float, ForeignKey
from datetime import datetime
from photo2video.database import Base


class VideoStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class Video(Base):
    """
    A user's photo-to-video record.
    status/result_video/thumbnail/duration mirror the latest generation job.
    """
    __tablename__ = "videos"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    original_image = Column(String(500), nullable=False)
    format = Column(String(10), nullable=False, default="16:9")  # 16:9 | 9:16 | 1:1
    preset = Column(String(50), nullable=False, default="default")
    title = Column(String(200), nullable=True)

    status = Column(String(20), nullable=False, default=VideoStatus.PENDING.value, index=True)
    result_video = Column(String(500), nullable=True)
    thumbnail = Column(String(500), nullable=True)
    duration = Column(Float, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
