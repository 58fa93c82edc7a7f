from flask import Blueprint, request, jsonify, make_response
from flask_login import current_user
from models import db, Lesson, Student
from utils import login_required_api
from logging_config import log_audit_event
from limiter import get_client_identifier

lessons_api_bp = Blueprint('lessons_api', __name__)

LESSON_CACHE_CONTROL = 'private, max-age=300, must-revalidate'


def get_lesson_or_none(lesson_id):
    """Lesson belonging to one of the current tutor's students"""
    return Lesson.query.join(Student).filter(
        Lesson.id == lesson_id,
        Student.tutor_id == current_user.id
    ).first()


def lesson_not_found():
    return jsonify({'error': 'Lesson not found'}), 404


@lessons_api_bp.route('/<int:lesson_id>', methods=['GET'])
@login_required_api
def get_lesson(lesson_id):
    """Lesson detail; answers 304 when the client's ETag is current"""
    lesson = get_lesson_or_none(lesson_id)
    if not lesson:
        return lesson_not_found()

    etag = lesson.etag.strip('"')
    if request.if_none_match.contains(etag):
        response = make_response('', 304)
    else:
        response = make_response(jsonify({'lesson': lesson.to_dict()}))

    response.set_etag(etag)
    response.headers['Cache-Control'] = LESSON_CACHE_CONTROL
    return response


@lessons_api_bp.route('/<int:lesson_id>', methods=['DELETE'])
@login_required_api
def delete_lesson(lesson_id):
    lesson = get_lesson_or_none(lesson_id)
    if not lesson:
        return lesson_not_found()

    old_value = {'title': lesson.title, 'student_id': lesson.student_id}
    db.session.delete(lesson)
    db.session.commit()

    log_audit_event(
        'DELETE', current_user.id, 'Lesson', lesson_id,
        old_value=old_value,
        ip_address=get_client_identifier()
    )
    return jsonify({'message': 'Lesson deleted successfully'})


@lessons_api_bp.route('/<int:lesson_id>/share', methods=['POST'])
@login_required_api
def share_lesson(lesson_id):
    """Enable the public link for a lesson"""
    lesson = get_lesson_or_none(lesson_id)
    if not lesson:
        return lesson_not_found()

    lesson.share()
    db.session.commit()

    log_audit_event(
        'SHARE', current_user.id, 'Lesson', lesson.id,
        new_value={'share_id': lesson.share_id},
        ip_address=get_client_identifier()
    )
    return jsonify({
        'message': 'Lesson shared',
        'share_id': lesson.share_id,
        'shared_at': lesson.shared_at.isoformat()
    })


@lessons_api_bp.route('/<int:lesson_id>/share', methods=['DELETE'])
@login_required_api
def unshare_lesson(lesson_id):
    lesson = get_lesson_or_none(lesson_id)
    if not lesson:
        return lesson_not_found()

    lesson.unshare()
    db.session.commit()

    log_audit_event('UNSHARE', current_user.id, 'Lesson', lesson.id, ip_address=get_client_identifier())
    return jsonify({'message': 'Lesson is no longer shared'})


@lessons_api_bp.route('/shared/<share_id>', methods=['GET'])
def get_shared_lesson(share_id):
    """Public view of a shared lesson; no login required"""
    lesson = Lesson.query.filter_by(share_id=share_id).first()
    if not lesson or not lesson.is_shared:
        return lesson_not_found()

    return jsonify({'lesson': lesson.to_public_dict()})
