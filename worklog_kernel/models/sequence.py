"""
Module: worklog_kernel.models.sequence
Responsibility: Named counter rows backing SequenceService.
"""

from sqlalchemy import Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from worklog_kernel.db.base import Base


class SequenceCounter(Base):
    """One row per named sequence; locked while a value is allocated."""

    __tablename__ = "sequence_counters"

    name: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    current_value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
