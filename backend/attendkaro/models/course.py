"""Class (course section) and enrollment roster."""
from attendkaro import db
from attendkaro.models.base import BaseModel


class Course(BaseModel):
    """A class taught by one faculty member."""

    __tablename__ = 'classes'

    subject = db.Column(db.String(255), nullable=False)
    department = db.Column(db.String(100), nullable=True)
    semester = db.Column(db.Integer, nullable=True)
    section = db.Column(db.String(10), nullable=True)
    faculty_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)

    faculty = db.relationship('User', backref=db.backref('classes', lazy='dynamic'))
    enrollments = db.relationship('Enrollment', backref='course', lazy='dynamic')

    @property
    def class_info(self) -> str:
        return f"{self.department} • Sem {self.semester} • Sec {self.section}"

    def __repr__(self):
        return f'<Course {self.subject}>'


class Enrollment(BaseModel):
    """Roster row: one student enrolled in one class."""

    __tablename__ = 'class_enrollments'
    __table_args__ = (
        db.UniqueConstraint('class_id', 'student_id', name='uq_enrollment_class_student'),
    )

    class_id = db.Column(db.Integer, db.ForeignKey('classes.id'), nullable=False, index=True)
    student_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
