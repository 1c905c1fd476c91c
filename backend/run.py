"""Application entry point."""
import os
import click
from flask.cli import with_appcontext
from dotenv import load_dotenv

# Load environment variables before the config classes read them
load_dotenv()

from attendkaro import create_app, db  # noqa: E402

# Create Flask app
app = create_app(os.getenv('FLASK_ENV', 'development'))


@app.cli.command('create-db')
@with_appcontext
def create_db():
    """Create database tables."""
    db.create_all()
    click.echo('Database tables created.')


@app.cli.command('drop-db')
@with_appcontext
def drop_db():
    """Drop all database tables."""
    if click.confirm('Are you sure you want to drop all tables?'):
        db.drop_all()
        click.echo('Database tables dropped.')


@app.cli.command('init-db')
@with_appcontext
def init_db():
    """Create tables and seed an admin, a faculty member, a class and a student."""
    from attendkaro.models import Course, Enrollment, Student, User, UserRole

    db.create_all()

    def ensure_user(username, name, role, password):
        user = User.query.filter_by(username=username).first()
        if not user:
            user = User(username=username, name=name, role=role, department='CSE')
            user.set_password(password)
            db.session.add(user)
            db.session.flush()
        return user

    ensure_user('admin', 'System Administrator', UserRole.ADMIN, 'admin123456')
    faculty = ensure_user('faculty', 'Dr. Meera Rao', UserRole.FACULTY, 'faculty123')
    student = ensure_user('student', 'Arjun Patel', UserRole.STUDENT, 'student123')
    if not student.student_profile:
        db.session.add(Student(user_id=student.id, roll_number='101'))

    course = Course.query.filter_by(subject='Operating Systems', faculty_id=faculty.id).first()
    if not course:
        course = Course(subject='Operating Systems', department='CSE', semester=5,
                        section='A', faculty_id=faculty.id)
        db.session.add(course)
        db.session.flush()
    if not Enrollment.query.filter_by(class_id=course.id, student_id=student.id).first():
        db.session.add(Enrollment(class_id=course.id, student_id=student.id))

    db.session.commit()

    click.echo('Sample data created.')
    click.echo('Admin: admin / admin123456')
    click.echo('Faculty: faculty / faculty123')
    click.echo('Student: student / student123')


if __name__ == '__main__':
    # Development server
    port = int(os.environ.get('PORT', 5000))
    host = os.environ.get('HOST', '127.0.0.1')
    debug = os.environ.get('FLASK_ENV') == 'development'

    app.run(host=host, port=port, debug=debug)
