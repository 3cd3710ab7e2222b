from sqlalchemy import Column, Integer, String, DateTime, Boolean, BigInteger
from datetime import datetime
from photo2video.database import Base

class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(100), nullable=False)

    # Running balance; must equal the sum of credit_ledger deltas for this user
    credits = Column(Integer, nullable=False, default=0)

    # Telegram notifications
    telegram_chat_id = Column(BigInteger, nullable=True)
    telegram_notifications = Column(Boolean, nullable=False, default=True)

    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
