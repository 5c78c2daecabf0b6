from sqlalchemy import Column, String, Text, DateTime
from datetime import datetime
from db import Base

class StorageEntry(Base):
    """Satu dokumen JSON per key (pengganti localStorage browser)."""
    __tablename__ = "storage"
    key = Column(String, primary_key=True)
    value = Column(Text, nullable=False, default="")
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
