"""Shared fixtures: app on in-memory SQLite, a controllable clock and seed data."""
from datetime import datetime, timedelta

import pytest
from flask_jwt_extended import create_access_token

from attendkaro import create_app, db
from attendkaro.models.course import Course, Enrollment
from attendkaro.models.user import Student, User, UserRole
from attendkaro.services.engine import get_engine

CLASSROOM = (12.9716, 77.5946)


class FakeClock:
    """Callable clock the tests move by hand."""

    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 1, 15, 9, 0, 0))


@pytest.fixture
def app(clock):
    """Create test app."""
    app = create_app('testing', clock=clock)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture
def engine(app):
    return get_engine()


def make_user(username, role, name=None, password='password123', roll_number=None):
    user = User(
        username=username,
        email=f'{username}@example.com',
        name=name or username.title(),
        department='CSE',
        role=role
    )
    user.set_password(password)
    db.session.add(user)
    db.session.flush()
    if role == UserRole.STUDENT:
        db.session.add(Student(user_id=user.id, roll_number=roll_number or str(100 + user.id)))
    db.session.commit()
    return user


@pytest.fixture
def faculty(app):
    return make_user('faculty', UserRole.FACULTY, name='Dr. Rao')


@pytest.fixture
def other_faculty(app):
    return make_user('faculty2', UserRole.FACULTY, name='Dr. Iyer')


@pytest.fixture
def admin(app):
    return make_user('admin', UserRole.ADMIN, name='Administrator')


@pytest.fixture
def student(app):
    return make_user('student', UserRole.STUDENT, name='Asha', roll_number='101')


@pytest.fixture
def second_student(app):
    return make_user('student2', UserRole.STUDENT, name='Ravi', roll_number='102')


@pytest.fixture
def outsider(app):
    """Student with a profile but no enrollment."""
    return make_user('outsider', UserRole.STUDENT, name='Meera', roll_number='199')


@pytest.fixture
def course(app, faculty, student, second_student):
    course = Course(subject='Operating Systems', department='CSE', semester=5,
                    section='A', faculty_id=faculty.id)
    db.session.add(course)
    db.session.flush()
    db.session.add(Enrollment(class_id=course.id, student_id=student.id))
    db.session.add(Enrollment(class_id=course.id, student_id=second_student.id))
    db.session.commit()
    return course


@pytest.fixture
def active_session(engine, faculty, course):
    """Session anchored at the classroom with a 30 m fence."""
    return engine.sessions.open_session(faculty.id, course.id, *CLASSROOM, radius=30)


def auth_headers(user):
    token = create_access_token(identity=str(user.id))
    return {'Authorization': f'Bearer {token}'}
