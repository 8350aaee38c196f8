from __future__ import annotations

import uuid

from sqlalchemy import Column, DateTime, String, Text, Uuid
from sqlalchemy.sql import func

from models.base import Base


class SchedulingWarning(Base):
    __tablename__ = "scheduling_warnings"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    severity = Column(String(10), nullable=False, default="WARN")
    context = Column(Text, nullable=False)
    message = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
