"""Tracking snapshot model: the single durable slot for the in-flight session."""

from sqlalchemy import Column, Integer, String, DateTime, Text
from models.database.base import Base

ACTIVE_SESSION_SLOT = "active_session"


class TrackingSnapshot(Base):
    """
    Serialized session state used to recover after the process is killed.

    Only one row is expected, keyed by ACTIVE_SESSION_SLOT. The payload is
    the JSON produced by SessionSnapshot.to_dict().
    """

    __tablename__ = "tracking_snapshots"

    slot = Column(String(50), primary_key=True)
    payload = Column(Text, nullable=False)
    schema_version = Column(Integer, nullable=False, default=1)
    saved_at = Column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return f"<TrackingSnapshot(slot='{self.slot}', saved_at='{self.saved_at}')>"
