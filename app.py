from flask import Flask, request, jsonify
from flask_login import LoginManager, current_user
from flask_mail import Mail
from flask_talisman import Talisman
from models import db, User
from config import config
from logging_config import setup_logging, log_error
from limiter import limiter, rate_limiter, blanket_limit_result
import os

# Initialize Flask-Mail
mail = Mail()

def create_app(config_name=None):
    """Application factory"""
    if config_name is None:
        config_name = os.environ.get('FLASK_ENV', 'development')

    app = Flask(__name__)
    app.config.from_object(config[config_name])

    # Initialize extensions
    db.init_app(app)
    mail.init_app(app)

    # Setup logging
    setup_logging(app)

    # Setup rate limiting: blanket default plus named limits
    limiter.init_app(app)
    rate_limiter.init_app(app)

    # Setup Flask-Login
    login_manager = LoginManager()
    login_manager.init_app(app)

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(User, int(user_id))

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({'error': 'Unauthorized'}), 401

    # Register blueprints
    from routes import main_bp
    from api.auth import auth_api_bp
    from api.settings import settings_api_bp
    from api.students import students_api_bp
    from api.lessons import lessons_api_bp
    from api.generation import generation_api_bp
    from api.vocabulary import vocabulary_api_bp

    app.register_blueprint(main_bp)
    app.register_blueprint(auth_api_bp, url_prefix='/api/auth')
    app.register_blueprint(settings_api_bp, url_prefix='/api/settings')
    app.register_blueprint(students_api_bp, url_prefix='/api/students')
    app.register_blueprint(lessons_api_bp, url_prefix='/api/lessons')
    app.register_blueprint(generation_api_bp, url_prefix='/api/generation')
    app.register_blueprint(vocabulary_api_bp, url_prefix='/api/vocabulary')

    # Enable HTTPS enforcement in production
    if config_name == 'production':
        Talisman(app,
                force_https=True,
                strict_transport_security=True,
                strict_transport_security_max_age=31536000,
                content_security_policy={
                    'default-src': "'self'",
                    'img-src': ["'self'", 'data:', 'https:'],
                    'media-src': ["'self'"]
                })

    register_error_handlers(app)

    # Add security headers
    @app.after_request
    def set_security_headers(response):
        """Add security headers to all responses"""
        response.headers['X-Content-Type-Options'] = 'nosniff'
        response.headers['X-Frame-Options'] = 'SAMEORIGIN'
        response.headers['X-XSS-Protection'] = '1; mode=block'
        # Only set HSTS if in production (with HTTPS)
        if config_name == 'production':
            response.headers['Strict-Transport-Security'] = 'max-age=31536000; includeSubDomains'
        return response

    # Create tables on first run (development only)
    # In production, use the init-db CLI command instead
    if config_name == 'development':
        with app.app_context():
            try:
                db.create_all()
            except Exception as e:
                app.logger.warning(f'Could not create tables: {e}')

    return app

def register_error_handlers(app):
    """JSON error responses for the API"""
    from services.generation_service import ServiceError, QuotaExceeded, generation_service

    @app.errorhandler(ServiceError)
    def service_error(error):
        body = {'error': error.message}
        if isinstance(error, QuotaExceeded) and current_user.is_authenticated:
            body['generation_stats'] = generation_service.get_stats(current_user)
        return jsonify(body), error.status_code

    @app.errorhandler(400)
    def bad_request_error(error):
        return jsonify({'error': 'Bad request'}), 400

    @app.errorhandler(401)
    def unauthorized_error(error):
        return jsonify({'error': 'Unauthorized'}), 401

    @app.errorhandler(403)
    def forbidden_error(error):
        user = current_user.email if current_user.is_authenticated else 'Anonymous'
        app.logger.warning(f'403 error: User {user} attempted to access {request.url} from IP {request.remote_addr}')
        return jsonify({'error': 'Forbidden'}), 403

    @app.errorhandler(404)
    def not_found_error(error):
        app.logger.warning(f'404 error: {request.url} from IP {request.remote_addr}')
        return jsonify({'error': 'Not found'}), 404

    @app.errorhandler(405)
    def method_not_allowed_error(error):
        return jsonify({'error': 'Method not allowed'}), 405

    @app.errorhandler(429)
    def ratelimit_handler(error):
        """Handle Flask-Limiter's blanket limit"""
        app.logger.warning(f'Rate limit exceeded: {request.url} from IP {request.remote_addr}')
        result = blanket_limit_result(error)
        body = {
            'error': 'Too many requests',
            'message': 'Please wait before trying again'
        }
        if result is None:
            return jsonify(body), 429

        body['retryAfter'] = result.retry_after
        return jsonify(body), 429, result.headers()

    @app.errorhandler(500)
    def internal_error(error):
        log_error(getattr(error, 'original_exception', None) or error, context=f'{request.method} {request.path}')
        db.session.rollback()
        return jsonify({'error': 'Internal server error'}), 500

# Create the Flask app
app = create_app()

# CLI commands
@app.cli.command()
def init_db():
    """Initialize the database."""
    from database.init_db import init_db
    init_db(app)
    app.logger.info('Database initialized via CLI command')
    print('Database initialized.')

@app.cli.command()
def cleanup_tokens():
    """Delete expired verification and password reset tokens."""
    from services.token_service import token_service
    with app.app_context():
        deleted = token_service.cleanup_expired()
    print(f'Deleted {deleted} expired tokens.')

@app.cli.command()
def reset_quota():
    """Reset today's generation count for a user."""
    from services.generation_service import generation_service, NotFound
    email = input('User email: ').strip().lower()

    with app.app_context():
        user = User.query.filter_by(email=email).first()
        if not user:
            print(f'No user with email {email}.')
            return
        try:
            generation_service.reset_user_quota(user.id)
        except NotFound as e:
            print(e.message)
            return
    print(f'Generation quota reset for {email}.')

@app.cli.command()
def create_user():
    """Create a tutor account with a verified email."""
    from models import utcnow
    from utils import validate_email, validate_password_strength

    name = input('Name: ').strip()
    email = input('Email: ').strip().lower()
    password = input('Password: ')

    if not validate_email(email):
        print('Invalid email address.')
        return
    is_valid, message = validate_password_strength(password)
    if not is_valid:
        print(message)
        return

    with app.app_context():
        user = User(
            name=name,
            email=email,
            email_verified_at=utcnow(),
            daily_limit=app.config['DEFAULT_DAILY_GENERATION_LIMIT']
        )
        user.set_password(password)

        try:
            db.session.add(user)
            db.session.commit()
            app.logger.info(f'User "{email}" created via CLI command')
            print(f'User "{email}" created successfully.')
        except Exception as e:
            app.logger.error(f'Error creating user: {e}')
            print(f'Error creating user: {e}')
            db.session.rollback()

if __name__ == '__main__':
    # For development only
    debug_mode = os.environ.get('FLASK_ENV') == 'development'
    app.run(debug=debug_mode, host='0.0.0.0', port=int(os.environ.get('PORT', 5000)))
