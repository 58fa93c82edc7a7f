from flask import Blueprint, request, jsonify, current_app
from flask_login import current_user
from models import db, Student, Lesson
from schemas import StudentSchema, LessonRequestSchema, GrammarLessonRequestSchema, parse_payload
from services.generation_service import generation_service, NotFound
from utils import login_required_api, get_json_body
from logging_config import log_audit_event
from limiter import rate_limiter, get_client_identifier
from sqlalchemy import func

students_api_bp = Blueprint('students_api', __name__)

SORT_FIELDS = {
    'name': Student.name,
    'created_at': Student.created_at,
    'updated_at': Student.updated_at,
    'level': Student.level,
    'target_language': Student.target_language,
}


def get_student_or_none(student_id):
    """Student owned by the current tutor"""
    return Student.query.filter_by(id=student_id, tutor_id=current_user.id).first()


def student_not_found():
    return jsonify({'error': 'Student not found'}), 404


@students_api_bp.route('/', methods=['GET'])
@login_required_api
def get_students():
    """List the tutor's students with filtering, sorting and pagination"""
    page = request.args.get('page', 1, type=int)
    per_page = min(
        request.args.get('per_page', current_app.config.get('STUDENTS_PER_PAGE', 25), type=int),
        100
    )

    search = request.args.get('search', '').strip()
    target_language = request.args.get('target_language')
    level = request.args.get('level')
    age_group = request.args.get('age_group')
    archived = request.args.get('archived', 'false').lower() == 'true'
    sort_by = request.args.get('sort_by', 'created_at')
    sort_order = request.args.get('sort_order', 'desc')

    query = Student.query.filter_by(tutor_id=current_user.id, archived=archived)

    if search:
        search_term = f'%{search}%'
        query = query.filter(
            (Student.name.ilike(search_term)) |
            (Student.end_goals.ilike(search_term)) |
            (Student.occupation.ilike(search_term))
        )

    if target_language:
        query = query.filter(Student.target_language == target_language)

    if level:
        if level not in current_app.config['LEVELS']:
            return jsonify({'error': 'Invalid level filter'}), 400
        query = query.filter(Student.level == level)

    if age_group:
        if age_group not in current_app.config['AGE_GROUPS']:
            return jsonify({'error': 'Invalid age group filter'}), 400
        query = query.filter(Student.age_group == age_group)

    column = SORT_FIELDS.get(sort_by)
    if column is None:
        return jsonify({'error': f'Invalid sort field: {sort_by}'}), 400
    query = query.order_by(column.asc() if sort_order == 'asc' else column.desc(), Student.id.desc())

    students = query.paginate(page=page, per_page=per_page, error_out=False)

    student_ids = [student.id for student in students.items]
    lesson_counts = dict(
        db.session.query(Lesson.student_id, func.count(Lesson.id))
        .filter(Lesson.student_id.in_(student_ids))
        .group_by(Lesson.student_id)
        .all()
    ) if student_ids else {}

    return jsonify({
        'students': [s.to_dict(lesson_count=lesson_counts.get(s.id, 0)) for s in students.items],
        'pagination': {
            'page': students.page,
            'pages': students.pages,
            'per_page': students.per_page,
            'total': students.total,
            'has_next': students.has_next,
            'has_prev': students.has_prev
        }
    })


@students_api_bp.route('/', methods=['POST'])
@login_required_api
def create_student():
    payload, error = parse_payload(StudentSchema, get_json_body())
    if error:
        return error

    student = Student(tutor_id=current_user.id, **payload.model_dump())
    db.session.add(student)
    db.session.commit()

    log_audit_event(
        'CREATE', current_user.id, 'Student', student.id,
        new_value=student.summary(),
        ip_address=get_client_identifier()
    )
    current_app.logger.info(f'Tutor {current_user.id} created student {student.id}')

    return jsonify({'message': 'Student created successfully', 'student': student.to_dict(lesson_count=0)}), 201


@students_api_bp.route('/<int:student_id>', methods=['GET'])
@login_required_api
def get_student(student_id):
    student = get_student_or_none(student_id)
    if not student:
        return student_not_found()

    lesson_count = Lesson.query.filter_by(student_id=student.id).count()
    return jsonify({'student': student.to_dict(lesson_count=lesson_count)})


@students_api_bp.route('/<int:student_id>', methods=['PUT'])
@login_required_api
def update_student(student_id):
    student = get_student_or_none(student_id)
    if not student:
        return student_not_found()

    payload, error = parse_payload(StudentSchema, get_json_body())
    if error:
        return error

    old_value = student.profile()
    for field, value in payload.model_dump().items():
        setattr(student, field, value)
    db.session.commit()

    log_audit_event(
        'UPDATE', current_user.id, 'Student', student.id,
        old_value=old_value,
        new_value=student.profile(),
        ip_address=get_client_identifier()
    )
    return jsonify({'message': 'Student updated successfully', 'student': student.to_dict()})


@students_api_bp.route('/<int:student_id>', methods=['DELETE'])
@login_required_api
def delete_student(student_id):
    """Delete a student together with their plans and lessons"""
    student = get_student_or_none(student_id)
    if not student:
        return student_not_found()

    old_value = student.summary()
    db.session.delete(student)
    db.session.commit()

    log_audit_event(
        'DELETE', current_user.id, 'Student', student_id,
        old_value=old_value,
        ip_address=get_client_identifier()
    )
    return jsonify({'message': 'Student deleted successfully'})


@students_api_bp.route('/<int:student_id>/archive', methods=['POST'])
@login_required_api
def toggle_archive(student_id):
    """Archive or restore a student; toggles when `archived` is not given"""
    student = get_student_or_none(student_id)
    if not student:
        return student_not_found()

    archived = get_json_body().get('archived')
    if archived is None:
        archived = not student.archived
    elif not isinstance(archived, bool):
        return jsonify({'error': 'archived must be a boolean'}), 400

    student.archived = archived
    db.session.commit()

    log_audit_event(
        'ARCHIVE' if archived else 'RESTORE', current_user.id, 'Student', student.id,
        ip_address=get_client_identifier()
    )
    return jsonify({
        'message': 'Student archived' if archived else 'Student restored',
        'student': student.to_dict()
    })


@students_api_bp.route('/<int:student_id>/lessons', methods=['GET'])
@login_required_api
def get_student_lessons(student_id):
    student = get_student_or_none(student_id)
    if not student or student.archived:
        return student_not_found()

    lessons = Lesson.query.filter_by(student_id=student.id)\
        .order_by(Lesson.created_at.desc(), Lesson.id.desc()).all()

    return jsonify({
        'student': student.summary(),
        'lessons': [lesson.summary() for lesson in lessons]
    })


@students_api_bp.route('/<int:student_id>/learning-plan', methods=['GET'])
@login_required_api
def get_learning_plan(student_id):
    student = get_student_or_none(student_id)
    if not student:
        return student_not_found()

    plan = generation_service.get_latest_plan(student)
    if not plan:
        return jsonify({'error': 'No learning plan found for this student'}), 404

    return jsonify({'learning_plan': plan.to_dict()})


@students_api_bp.route('/<int:student_id>/learning-plan', methods=['POST'])
@login_required_api
@rate_limiter.limit('API_LESSON_GENERATION')
def create_learning_plan(student_id):
    """Generate a new ten-topic plan; counts against the daily quota"""
    student = get_student_or_none(student_id)
    if not student or student.archived:
        return student_not_found()

    plan = generation_service.generate_learning_plan(current_user, student)

    log_audit_event(
        'CREATE', current_user.id, 'LearningPlan', plan.id,
        new_value={'student_id': student.id, 'methodology': plan.selected_methodology},
        ip_address=get_client_identifier()
    )
    return jsonify({
        'learning_plan': plan.to_dict(),
        'generation_stats': generation_service.get_stats(current_user)
    }), 201


@students_api_bp.route('/<int:student_id>/lessons', methods=['POST'])
@login_required_api
@rate_limiter.limit('API_LESSON_GENERATION')
def create_lesson(student_id):
    """Generate a lesson from a topic or from the latest plan"""
    student = get_student_or_none(student_id)
    if not student or student.archived:
        return student_not_found()

    payload, error = parse_payload(LessonRequestSchema, get_json_body())
    if error:
        return error

    try:
        topic = generation_service.resolve_topic(
            student,
            topic=payload.topic.model_dump() if payload.topic else None,
            lesson_number=payload.lesson_number
        )
    except NotFound as e:
        return jsonify({'error': e.message}), 404

    lesson = generation_service.generate_lesson(current_user, student, topic, payload.duration)

    log_audit_event(
        'CREATE', current_user.id, 'Lesson', lesson.id,
        new_value={'student_id': student.id, 'title': lesson.title},
        ip_address=get_client_identifier()
    )
    return jsonify({
        'lesson': lesson.to_dict(),
        'generation_stats': generation_service.get_stats(current_user)
    }), 201


@students_api_bp.route('/<int:student_id>/grammar-lessons', methods=['POST'])
@login_required_api
@rate_limiter.limit('API_LESSON_GENERATION')
def create_grammar_lesson(student_id):
    """Generate a grammar lesson on a requested topic, using the student's profile for examples"""
    student = get_student_or_none(student_id)
    if not student or student.archived:
        return student_not_found()

    payload, error = parse_payload(GrammarLessonRequestSchema, get_json_body())
    if error:
        return error

    lesson = generation_service.generate_grammar_lesson(current_user, student, payload.topic)

    log_audit_event(
        'CREATE', current_user.id, 'Lesson', lesson.id,
        new_value={'student_id': student.id, 'title': lesson.title, 'grammar_topic': payload.topic},
        ip_address=get_client_identifier()
    )
    return jsonify({
        'lesson': lesson.to_dict(),
        'generation_stats': generation_service.get_stats(current_user)
    }), 201
