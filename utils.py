from functools import wraps
from urllib.parse import urlencode
from flask import current_app, jsonify, request
from flask_login import current_user
import re

SUSPICIOUS_PATTERN = re.compile(r'<script|javascript:|on\w+\s*=', re.IGNORECASE)
HTML_TAG_PATTERN = re.compile(r'<[^>]*>')

def validate_email(email):
    """Validate email format"""
    pattern = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'
    return re.match(pattern, email or '') is not None

def normalize_email(email):
    return (email or '').strip().lower()

def validate_password_strength(password):
    """
    Validate password strength.
    Returns (is_valid, error_message)

    Requirements:
    - At least 8 characters
    - At least one uppercase letter, one lowercase letter and one digit
    """
    if not password:
        return False, "Password is required"

    if len(password) < 8:
        return False, "Password must be at least 8 characters long"

    has_uppercase = bool(re.search(r'[A-Z]', password))
    has_lowercase = bool(re.search(r'[a-z]', password))
    has_digit = bool(re.search(r'\d', password))

    if not (has_uppercase and has_lowercase and has_digit):
        return False, "Password must contain uppercase, lowercase, and numbers"

    return True, ""

def strip_html(value):
    """Remove all HTML tags from a string"""
    if value is None:
        return value
    return HTML_TAG_PATTERN.sub('', value)

def contains_suspicious_content(*values):
    """Basic XSS screen for free-text fields"""
    return any(value and SUSPICIOUS_PATTERN.search(value) for value in values)

def build_app_url(path, **params):
    """Absolute link into the front end, used in emails"""
    base = current_app.config.get('APP_URL', '').rstrip('/')
    url = f"{base}{path}"
    if params:
        url = f"{url}?{urlencode(params)}"
    return url

def get_json_body():
    """Request JSON as a dict; empty dict for missing or malformed bodies"""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}

def login_required_api(f):
    """Decorator for API endpoints that require authentication"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not current_user.is_authenticated:
            return jsonify({'error': 'Unauthorized'}), 401
        return f(*args, **kwargs)
    return decorated_function
