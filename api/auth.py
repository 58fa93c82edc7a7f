from flask import Blueprint, jsonify, current_app
from flask_login import login_user, logout_user, current_user
from sqlalchemy.exc import IntegrityError
from models import db, User, VerificationToken, utcnow
from schemas import (
    SignupSchema, LoginSchema, EmailSchema, VerifyTokenSchema, ResetPasswordSchema, parse_payload
)
from services.token_service import token_service
from services.email_service import send_verification_email, send_password_reset_email
from utils import login_required_api, get_json_body, build_app_url
from logging_config import log_security_event
from limiter import rate_limiter, get_client_identifier

auth_api_bp = Blueprint('auth_api', __name__)

RESET_REQUESTED_MESSAGE = 'If an account with this email exists, a password reset link has been sent.'
VERIFICATION_REQUESTED_MESSAGE = 'If an account with this email exists, a verification link has been sent.'


def send_verification_link(user):
    """Issue a verification token for `user` and email the link"""
    issued = token_service.issue(user.email, VerificationToken.PURPOSE_EMAIL_VERIFICATION, user_id=user.id)
    url = build_app_url('/auth/verify-email', email=user.email, token=issued.token)
    return send_verification_email(user, url)


@auth_api_bp.route('/signup', methods=['POST'])
@rate_limiter.limit(
    'AUTH_SIGNUP',
    error='Too many signup attempts',
    message='Please wait before creating another account'
)
def signup():
    """Create an account"""
    payload, error = parse_payload(SignupSchema, get_json_body())
    if error:
        return error

    if User.query.filter_by(email=payload.email).first():
        return jsonify({'error': 'User with this email already exists'}), 400

    user = User(
        name=payload.name,
        email=payload.email,
        daily_limit=current_app.config.get('DEFAULT_DAILY_GENERATION_LIMIT', 10)
    )
    user.set_password(payload.password)

    try:
        db.session.add(user)
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return jsonify({'error': 'User with this email already exists'}), 400

    log_security_event('signup', user_id=user.id, email=user.email, ip_address=get_client_identifier())
    current_app.logger.info(f'New user registered: {user.email}')

    if not send_verification_link(user):
        current_app.logger.warning(f'Verification email could not be sent to {user.email}')

    return jsonify({
        'message': 'User created successfully',
        'user': user.to_dict()
    }), 201


@auth_api_bp.route('/login', methods=['POST'])
@rate_limiter.limit(
    'AUTH_LOGIN',
    error='Too many login attempts',
    message='Please wait before trying to log in again'
)
def login():
    payload, error = parse_payload(LoginSchema, get_json_body())
    if error:
        return error

    ip_address = get_client_identifier()
    user = User.query.filter_by(email=payload.email).first()

    if user and user.check_password(payload.password):
        login_user(user, remember=payload.remember_me)
        log_security_event(
            'login_success',
            user_id=user.id,
            email=user.email,
            ip_address=ip_address,
            details=f'Remember me: {payload.remember_me}'
        )
        current_app.logger.info(f'User {user.email} logged in from IP {ip_address}')
        return jsonify({'message': 'Login successful', 'user': user.to_dict()})

    log_security_event('login_failed', email=payload.email, ip_address=ip_address, details='Invalid credentials')
    current_app.logger.warning(f'Failed login attempt for {payload.email} from IP {ip_address}')
    return jsonify({'error': 'Invalid email or password'}), 401


@auth_api_bp.route('/logout', methods=['POST'])
@login_required_api
def logout():
    log_security_event('logout', user_id=current_user.id, email=current_user.email, ip_address=get_client_identifier())
    logout_user()
    return jsonify({'message': 'Logged out successfully'})


@auth_api_bp.route('/me', methods=['GET'])
@login_required_api
def me():
    return jsonify({'user': current_user.to_dict()})


@auth_api_bp.route('/verify-email/request', methods=['POST'])
def request_verification():
    """Send a new verification link

    Unknown addresses get the same answer as known ones.
    """
    payload, error = parse_payload(EmailSchema, get_json_body())
    if error:
        return error

    user = User.query.filter_by(email=payload.email).first()
    if not user:
        return jsonify({'message': VERIFICATION_REQUESTED_MESSAGE})

    if user.email_verified:
        return jsonify({'message': 'Email is already verified.'})

    if not send_verification_link(user):
        current_app.logger.error(f'Failed to send verification email to {user.email}')

    log_security_event('verification_requested', user_id=user.id, email=user.email, ip_address=get_client_identifier())
    return jsonify({'message': VERIFICATION_REQUESTED_MESSAGE})


@auth_api_bp.route('/verify-email', methods=['POST'])
def verify_email():
    payload, error = parse_payload(VerifyTokenSchema, get_json_body())
    if error:
        return error

    purpose = VerificationToken.PURPOSE_EMAIL_VERIFICATION
    status = token_service.validate(payload.email, payload.token, purpose)
    if status.expired:
        return jsonify({'error': 'Verification link has expired. Please request a new one.'}), 400
    if not status.valid:
        return jsonify({'error': 'Invalid verification link.'}), 400

    user = User.query.filter_by(email=payload.email).first()
    if not user:
        return jsonify({'error': 'Invalid verification link.'}), 400

    if not token_service.consume(payload.email, payload.token, purpose):
        db.session.rollback()
        return jsonify({'error': 'Invalid verification link.'}), 400

    if not user.email_verified:
        user.email_verified_at = utcnow()
    db.session.commit()

    log_security_event('email_verified', user_id=user.id, email=user.email, ip_address=get_client_identifier())
    return jsonify({'message': 'Email verified successfully.', 'user': user.to_dict()})


@auth_api_bp.route('/forgot-password', methods=['POST'])
@rate_limiter.limit(
    'AUTH_PASSWORD_RESET',
    error='Too many password reset attempts',
    message='Please wait before requesting another reset link'
)
def forgot_password():
    """Email a password reset link

    The response is identical whether or not the account exists.
    """
    payload, error = parse_payload(EmailSchema, get_json_body())
    if error:
        return error

    ip_address = get_client_identifier()
    user = User.query.filter_by(email=payload.email).first()

    if user:
        issued = token_service.issue(user.email, VerificationToken.PURPOSE_PASSWORD_RESET, user_id=user.id)
        reset_url = build_app_url('/auth/reset-password', email=user.email, token=issued.token)
        if not send_password_reset_email(user, reset_url):
            current_app.logger.error(f'Failed to send password reset email to {user.email}')
        log_security_event('password_reset_requested', user_id=user.id, email=user.email, ip_address=ip_address)
    else:
        log_security_event(
            'password_reset_requested',
            email=payload.email,
            ip_address=ip_address,
            details='Unknown email'
        )

    return jsonify({'message': RESET_REQUESTED_MESSAGE})


@auth_api_bp.route('/reset-password', methods=['POST'])
def reset_password():
    payload, error = parse_payload(ResetPasswordSchema, get_json_body())
    if error:
        return error

    purpose = VerificationToken.PURPOSE_PASSWORD_RESET
    status = token_service.validate(payload.email, payload.token, purpose)
    if status.expired:
        return jsonify({'error': 'Reset link has expired. Please request a new one.'}), 400
    if not status.valid:
        return jsonify({'error': 'Invalid reset link.'}), 400

    user = User.query.filter_by(email=payload.email).first()
    if not user:
        return jsonify({'error': 'Invalid reset link.'}), 400

    if not token_service.consume(payload.email, payload.token, purpose, all_for_email=True):
        db.session.rollback()
        return jsonify({'error': 'Invalid reset link.'}), 400

    user.set_password(payload.password)
    db.session.commit()

    log_security_event('password_reset_completed', user_id=user.id, email=user.email, ip_address=get_client_identifier())
    current_app.logger.info(f'Password reset for {user.email}')
    return jsonify({'message': 'Password has been reset successfully. You can now log in.'})
