"""
Module: worklog_kernel.selectors.reference_selector
Responsibility: Point lookups and range scans over the externally maintained
    reference tables (staff, students, caseload, activity catalog).
"""

from collections.abc import Iterable

from sqlalchemy import func, or_, select

from worklog_kernel.domain.classification import ActivityCatalog
from worklog_kernel.domain.types import (
    ActivityDefinition,
    CaseloadAssignment,
    StaffMember,
    Student,
)
from worklog_kernel.models.reference import (
    ActivityDefinitionModel,
    CaseloadAssignmentModel,
    StaffMemberModel,
    StudentModel,
)
from worklog_kernel.selectors.base import BaseSelector


class ReferenceSelector(BaseSelector):

    def resolve_staff(self, actor_ref: str) -> StaffMember | None:
        """Find a staff record by staff id or email, case-insensitively.

        An exact staff-id match wins over an email match.
        """
        ref = (actor_ref or "").strip().lower()
        if not ref:
            return None
        stmt = select(StaffMemberModel).where(
            or_(
                func.lower(StaffMemberModel.staff_id) == ref,
                func.lower(StaffMemberModel.email) == ref,
            )
        )
        rows = self._guarded(
            StaffMemberModel.__tablename__,
            lambda: self.session.scalars(stmt).all(),
        )
        if not rows:
            return None
        rows = sorted(rows, key=lambda r: r.staff_id.lower() != ref)
        return rows[0].to_dto()

    def get_student(self, student_id: str) -> Student | None:
        ref = (student_id or "").strip().lower()
        if not ref:
            return None
        stmt = select(StudentModel).where(func.lower(StudentModel.student_id) == ref)
        row = self._guarded(
            StudentModel.__tablename__,
            lambda: self.session.scalars(stmt).first(),
        )
        return row.to_dto() if row is not None else None

    def assignments_for(
        self, actor_id: str, subject_id: str | None = None
    ) -> list[CaseloadAssignment]:
        stmt = select(CaseloadAssignmentModel).where(
            func.lower(CaseloadAssignmentModel.actor_id) == actor_id.lower()
        )
        if subject_id is not None:
            stmt = stmt.where(
                func.lower(CaseloadAssignmentModel.subject_id) == subject_id.lower()
            )
        stmt = stmt.order_by(CaseloadAssignmentModel.start_date)
        rows = self._guarded(
            CaseloadAssignmentModel.__tablename__,
            lambda: self.session.scalars(stmt).all(),
        )
        return [row.to_dto() for row in rows]

    def list_activities(self) -> list[ActivityDefinition]:
        stmt = select(ActivityDefinitionModel).order_by(ActivityDefinitionModel.code)
        rows = self._guarded(
            ActivityDefinitionModel.__tablename__,
            lambda: self.session.scalars(stmt).all(),
        )
        return [row.to_dto() for row in rows]

    def load_catalog(
        self, reserved_out_of_grant_codes: Iterable[str] | None = None
    ) -> ActivityCatalog:
        """Activity catalog snapshot.

        Raises:
            DataIntegrityError: if the catalog table is missing.  Callers
                decide whether to degrade to ``ActivityCatalog.unavailable()``.
        """
        return ActivityCatalog.from_definitions(
            self.list_activities(), reserved_out_of_grant_codes
        )
