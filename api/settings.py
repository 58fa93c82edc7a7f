from flask import Blueprint, request, jsonify, current_app
from flask_login import current_user
from sqlalchemy.exc import IntegrityError
from models import db, User
from schemas import UpdateProfileSchema, ChangePasswordSchema, parse_payload
from utils import login_required_api, get_json_body
from logging_config import log_security_event, log_audit_event
from limiter import get_client_identifier
import re

settings_api_bp = Blueprint('settings_api', __name__)

USERNAME_PATTERN = re.compile(r'^[a-zA-Z0-9_-]{3,30}$')


def username_taken(username, exclude_user_id=None):
    query = User.query.filter(User.username == username)
    if exclude_user_id is not None:
        query = query.filter(User.id != exclude_user_id)
    return query.first() is not None


@settings_api_bp.route('/profile', methods=['GET'])
@login_required_api
def get_profile():
    return jsonify({'profile': current_user.to_dict()})


@settings_api_bp.route('/profile', methods=['PUT'])
@login_required_api
def update_profile():
    """Update name, username and bio"""
    payload, error = parse_payload(UpdateProfileSchema, get_json_body())
    if error:
        return error

    if payload.username and username_taken(payload.username, exclude_user_id=current_user.id):
        return jsonify({'error': 'Username is already taken'}), 400

    old_value = {'name': current_user.name, 'username': current_user.username, 'bio': current_user.bio}

    current_user.name = payload.name
    current_user.username = payload.username
    current_user.bio = payload.bio or None

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return jsonify({'error': 'Username is already taken'}), 400

    log_audit_event(
        'UPDATE', current_user.id, 'User', current_user.id,
        old_value=old_value,
        new_value={'name': current_user.name, 'username': current_user.username, 'bio': current_user.bio},
        ip_address=get_client_identifier()
    )
    return jsonify({'message': 'Profile updated successfully', 'profile': current_user.to_dict()})


@settings_api_bp.route('/username-available', methods=['GET'])
@login_required_api
def username_available():
    username = request.args.get('username', '').strip()
    if not USERNAME_PATTERN.match(username):
        return jsonify({'available': False, 'error': 'Invalid username format'}), 400

    return jsonify({
        'available': not username_taken(username, exclude_user_id=current_user.id)
    })


@settings_api_bp.route('/password', methods=['POST'])
@login_required_api
def change_password():
    payload, error = parse_payload(ChangePasswordSchema, get_json_body())
    if error:
        return error

    ip_address = get_client_identifier()

    if not current_user.has_password:
        return jsonify({'error': 'This account does not have a password set'}), 400

    if not current_user.check_password(payload.current_password):
        log_security_event(
            'password_change_failed',
            user_id=current_user.id,
            email=current_user.email,
            ip_address=ip_address,
            details='Incorrect current password'
        )
        return jsonify({'error': 'Current password is incorrect'}), 400

    if payload.current_password == payload.new_password:
        return jsonify({'error': 'New password must be different from current password'}), 400

    current_user.set_password(payload.new_password)
    db.session.commit()

    log_security_event('password_changed', user_id=current_user.id, email=current_user.email, ip_address=ip_address)
    current_app.logger.info(f'User {current_user.email} changed their password')
    return jsonify({'message': 'Password changed successfully'})


@settings_api_bp.route('/security', methods=['GET'])
@login_required_api
def security_info():
    return jsonify({
        'has_password': current_user.has_password,
        'email_verified': current_user.email_verified,
        'email_verified_at': current_user.email_verified_at.isoformat() if current_user.email_verified_at else None
    })
