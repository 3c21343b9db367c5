"""
Storage tables backing the key-value entity store and the hangout pool
"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, Text, DateTime

from app.core.db import Base

class StoredEntity(Base):
    __tablename__ = "stored_entities"

    collection = Column(String(50), primary_key=True)
    entity_id = Column(String(255), primary_key=True)
    data = Column(Text, nullable=False)  # JSON record
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class FarmedHangout(Base):
    __tablename__ = "farmed_hangouts"

    # autoincrement id gives the FIFO order
    id = Column(Integer, primary_key=True, index=True)
    url = Column(String(1024), nullable=False)
    queued_at = Column(DateTime, default=datetime.utcnow)
