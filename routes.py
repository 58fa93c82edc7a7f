from flask import Blueprint, jsonify, current_app
from flask_login import current_user
from models import db, Student, Lesson
from utils import login_required_api
from limiter import limiter
from datetime import datetime, timezone
from sqlalchemy import desc, text
from sqlalchemy.exc import SQLAlchemyError

main_bp = Blueprint('main', __name__)

@main_bp.route('/')
def index():
    """Service info"""
    return jsonify({
        'name': 'Avidato',
        'description': 'AI-assisted lesson plans for language tutors',
        'authenticated': current_user.is_authenticated
    })

@main_bp.route('/dashboard')
@login_required_api
def dashboard():
    """Counts and most recent students for the current tutor"""
    active_students = Student.query.filter_by(tutor_id=current_user.id, archived=False)

    student_count = active_students.count()

    lesson_count = Lesson.query.join(Student)\
        .filter(Student.tutor_id == current_user.id, Student.archived.is_(False))\
        .count()

    recent_students = active_students.order_by(desc(Student.created_at), desc(Student.id)).limit(5).all()

    return jsonify({
        'student_count': student_count,
        'lesson_count': lesson_count,
        'recent_students': [student.to_dict() for student in recent_students]
    })

@main_bp.route('/health')
@limiter.exempt
def health_check():
    """Health check endpoint for monitoring"""
    try:
        db.session.execute(text('SELECT 1'))
        database = 'connected'
        status_code = 200
    except SQLAlchemyError as e:
        current_app.logger.error(f'Health check database error: {e}')
        db.session.rollback()
        database = 'unavailable'
        status_code = 503

    return jsonify({
        'status': 'healthy' if status_code == 200 else 'degraded',
        'timestamp': datetime.now(timezone.utc).isoformat(),
        'database': database
    }), status_code
