"""Enrollment roster lookups."""
from typing import Set

from attendkaro import db
from attendkaro.models.course import Enrollment


class RosterService:
    """Read-only view of class enrollments."""

    def enrolled_students(self, class_id: int) -> Set[int]:
        rows = db.session.query(Enrollment.student_id).filter(
            Enrollment.class_id == class_id
        ).all()
        return {student_id for (student_id,) in rows}

    def is_enrolled(self, class_id: int, student_id: int) -> bool:
        return db.session.query(
            Enrollment.query.filter_by(class_id=class_id, student_id=student_id).exists()
        ).scalar()
