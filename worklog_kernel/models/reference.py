"""
Module: worklog_kernel.models.reference
Responsibility: ORM mapping of the reference tables the pipeline reads:
    staff, students, caseload assignments, and the activity catalog.
Architecture position: Kernel > Models.  May import from db/base.py only.

These tables are maintained by external collaborators (rostering and
catalog administration).  The kernel only reads them through
selectors/reference_selector.py.
"""

from __future__ import annotations

from datetime import date
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, Date, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from worklog_kernel.db.base import Base

if TYPE_CHECKING:
    from worklog_kernel.domain.types import (
        ActivityDefinition,
        CaseloadAssignment,
        StaffMember,
        Student,
    )


class StaffMemberModel(Base):
    __tablename__ = "staff_members"

    __table_args__ = (
        UniqueConstraint("staff_id", name="uq_staff_id"),
        Index("idx_staff_email", "email"),
    )

    staff_id: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(100), nullable=False)
    building: Mapped[str | None] = mapped_column(String(100), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def to_dto(self) -> StaffMember:
        from worklog_kernel.domain.types import StaffMember

        return StaffMember(
            staff_id=self.staff_id,
            email=self.email,
            display_name=self.display_name,
            role=self.role,
            building=self.building,
            is_active=bool(self.is_active),
        )


class StudentModel(Base):
    __tablename__ = "students"

    __table_args__ = (UniqueConstraint("student_id", name="uq_student_id"),)

    student_id: Mapped[str] = mapped_column(String(255), nullable=False)
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    building: Mapped[str | None] = mapped_column(String(100), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def to_dto(self) -> Student:
        from worklog_kernel.domain.types import Student

        return Student(
            student_id=self.student_id,
            display_name=self.display_name,
            building=self.building,
            is_active=bool(self.is_active),
        )


class CaseloadAssignmentModel(Base):
    """Effective-dated actor/subject link; end_date NULL means still in effect."""

    __tablename__ = "caseload_assignments"

    __table_args__ = (
        Index("idx_caseload_actor_subject", "actor_id", "subject_id"),
    )

    actor_id: Mapped[str] = mapped_column(String(255), nullable=False)
    subject_id: Mapped[str] = mapped_column(String(255), nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    def to_dto(self) -> CaseloadAssignment:
        from worklog_kernel.domain.types import CaseloadAssignment

        return CaseloadAssignment(
            actor_id=self.actor_id,
            subject_id=self.subject_id,
            start_date=self.start_date,
            end_date=self.end_date,
        )


class ActivityDefinitionModel(Base):
    __tablename__ = "activity_definitions"

    __table_args__ = (UniqueConstraint("code", name="uq_activity_code"),)

    code: Mapped[str] = mapped_column(String(50), nullable=False)
    label: Mapped[str] = mapped_column(String(255), nullable=False)
    # NULL: catalog is silent (permitted, never billable)
    allowable: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    funding_category: Mapped[str | None] = mapped_column(String(50), nullable=True)

    def to_dto(self) -> ActivityDefinition:
        from worklog_kernel.domain.types import ActivityDefinition

        return ActivityDefinition(
            code=self.code,
            label=self.label,
            allowable=self.allowable,
            funding_category=self.funding_category,
        )
