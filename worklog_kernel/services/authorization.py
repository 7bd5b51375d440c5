"""
AuthorizationContext -- resolves who is acting and what they are linked to.

Read-only: builds the ``ActorSnapshot`` the pure validation rules consume,
so the rules themselves never touch the database.
"""

from sqlalchemy.orm import Session

from worklog_kernel.domain.types import StaffMember
from worklog_kernel.domain.validation import ActorSnapshot
from worklog_kernel.exceptions import AuthorizationError
from worklog_kernel.logging_config import get_logger
from worklog_kernel.selectors.reference_selector import ReferenceSelector

logger = get_logger("services.authorization")


class AuthorizationContext:

    def __init__(self, session: Session):
        self._references = ReferenceSelector(session)

    def resolve_actor(self, actor_ref: str) -> StaffMember | None:
        """Staff record for a staff id or email, or None."""
        return self._references.resolve_staff(actor_ref)

    def require_active_actor(self, actor_ref: str) -> StaffMember:
        """
        Raises:
            AuthorizationError: if the actor does not resolve or is inactive.
        """
        staff = self.resolve_actor(actor_ref)
        if staff is None:
            raise AuthorizationError(actor_ref, "not a registered staff member")
        if not staff.is_active:
            raise AuthorizationError(staff.staff_id, "staff record is inactive")
        return staff

    def snapshot(self, actor_ref: str, subject_id: str | None = None) -> ActorSnapshot:
        """Resolve actor, requested subject and the actor's caseload for that subject."""
        staff = self.resolve_actor(actor_ref)
        subject_ref = (str(subject_id).strip() if subject_id is not None else "") or None

        subject = None
        assignments = ()
        if subject_ref is not None:
            subject = self._references.get_student(subject_ref)
            if staff is not None and subject is not None:
                assignments = tuple(
                    self._references.assignments_for(staff.staff_id, subject.student_id)
                )

        logger.debug(
            "actor_resolved",
            extra={
                "actor_ref": actor_ref,
                "resolved": staff is not None,
                "subject_ref": subject_ref,
                "assignment_count": len(assignments),
            },
        )
        return ActorSnapshot(
            actor_ref=actor_ref,
            staff=staff,
            subject_requested=subject_ref,
            subject=subject,
            assignments=assignments,
        )
