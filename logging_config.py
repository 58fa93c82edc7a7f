"""
Logging configuration for Avidato
All logs go to stdout/stderr so the hosting platform can collect them
"""
import logging
from datetime import datetime, timezone


def setup_logging(app):
    """
    Configure application logging

    Args:
        app: Flask application instance
    """
    if app.config.get('DEBUG'):
        log_level = logging.DEBUG
    else:
        log_level = logging.INFO

    detailed_formatter = logging.Formatter(
        '[%(asctime)s] %(levelname)s [%(name)s] in %(module)s (%(pathname)s:%(lineno)d): %(message)s'
    )

    simple_formatter = logging.Formatter(
        '[%(asctime)s] %(levelname)s [%(name)s]: %(message)s'
    )

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(detailed_formatter)
    console_handler.setLevel(log_level)

    # Errors are duplicated to a dedicated handler so they can be filtered separately
    error_handler = logging.StreamHandler()
    error_handler.setFormatter(detailed_formatter)
    error_handler.setLevel(logging.ERROR)

    app.logger.setLevel(log_level)
    app.logger.handlers.clear()
    app.logger.addHandler(console_handler)
    app.logger.addHandler(error_handler)

    event_handler = logging.StreamHandler()
    event_handler.setFormatter(simple_formatter)

    # Service modules log under their own names (services.*, api.*); log_error uses 'avidato'
    for name in ('services', 'api', 'avidato'):
        module_logger = logging.getLogger(name)
        module_logger.setLevel(log_level)
        if not module_logger.handlers:
            module_logger.addHandler(console_handler)

    for name in ('security', 'audit'):
        event_logger = logging.getLogger(name)
        event_logger.setLevel(logging.INFO)
        if not event_logger.handlers:
            event_logger.addHandler(event_handler)

    db_uri = app.config.get('SQLALCHEMY_DATABASE_URI') or ''

    app.logger.info('=' * 80)
    app.logger.info('Avidato Lessons Starting')
    app.logger.info(f'Debug Mode: {app.config.get("DEBUG", False)}')
    app.logger.info(f'Database: {db_uri.split("://")[0] if db_uri else "unknown"}')
    app.logger.info('=' * 80)

    security_logger = logging.getLogger('security')
    security_logger.info('Security configuration loaded')
    security_logger.info(f'Rate limit storage: {app.config.get("RATELIMIT_STORAGE_URI", "memory://").split("://")[0]}')

    return app.logger


def log_security_event(event_type, user_id=None, email=None, ip_address=None, details=None):
    """
    Log security-related events (signup, login, failed attempts, token use, etc.)

    Args:
        event_type: Type of security event (login_success, login_failed, ...)
        user_id: User ID if applicable
        email: Account email if applicable
        ip_address: Client identifier of the request
        details: Additional details about the event
    """
    security_logger = logging.getLogger('security')

    log_parts = [f'Event: {event_type}']
    if email:
        log_parts.append(f'Email: {email}')
    if user_id:
        log_parts.append(f'UserID: {user_id}')
    if ip_address:
        log_parts.append(f'IP: {ip_address}')
    if details:
        log_parts.append(f'Details: {details}')

    security_logger.info(' | '.join(log_parts))


def log_audit_event(action, user_id, entity_type, entity_id,
                    old_value=None, new_value=None, ip_address=None):
    """
    Log audit trail for tutor data changes

    Args:
        action: Action performed (CREATE, UPDATE, DELETE, SHARE)
        user_id: Tutor performing the action
        entity_type: Type of entity (Student, Lesson, LearningPlan)
        entity_id: ID of the entity
        old_value: Previous value (for updates/deletes)
        new_value: New value (for creates/updates)
        ip_address: Client identifier of the request
    """
    audit_logger = logging.getLogger('audit')

    log_data = {
        'timestamp': datetime.now(timezone.utc).isoformat(),
        'action': action,
        'user_id': user_id,
        'entity_type': entity_type,
        'entity_id': entity_id,
        'ip_address': ip_address
    }

    if old_value:
        log_data['old_value'] = str(old_value)
    if new_value:
        log_data['new_value'] = str(new_value)

    log_parts = [f'{k}={v}' for k, v in log_data.items() if v is not None]
    audit_logger.info(' | '.join(log_parts))


def log_error(error, context=None, user_id=None):
    """
    Log application errors with context

    Args:
        error: Exception or error message
        context: Additional context about where/why error occurred
        user_id: User ID if applicable
    """
    logger = logging.getLogger('avidato')

    error_msg = f'Error: {str(error)}'
    if context:
        error_msg += f' | Context: {context}'
    if user_id:
        error_msg += f' | UserID: {user_id}'

    if isinstance(error, Exception):
        logger.exception(error_msg)
    else:
        logger.error(error_msg)
