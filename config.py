import os
from dotenv import load_dotenv

load_dotenv()

class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY')
    if not SECRET_KEY:
        raise ValueError("SECRET_KEY environment variable must be set")

    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or 'sqlite:///avidato.db'
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Connection pool settings; apply to all environments that use a pooled engine
    SQLALCHEMY_ENGINE_OPTIONS = {
        'pool_size': 10,
        'pool_recycle': 3600,
        'pool_pre_ping': True,
        'max_overflow': 20
    }

    # Flask-Login settings
    REMEMBER_COOKIE_DURATION = 60 * 60 * 24 * 7  # 7 days
    REMEMBER_COOKIE_SECURE = True
    REMEMBER_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SECURE = True
    SESSION_COOKIE_HTTPONLY = True

    # Public base URL used in emailed links
    APP_URL = os.environ.get('APP_URL', 'http://localhost:5000')

    # Rate limiting. Memory storage is per process and resets on restart;
    # point RATELIMIT_STORAGE_URI at redis://host:port to share counters.
    RATELIMIT_STORAGE_URI = os.environ.get('RATELIMIT_STORAGE_URI', 'memory://')
    # Named limits set their own X-RateLimit-* headers; the blanket 429 handler adds them for rejections
    RATELIMIT_HEADERS_ENABLED = False

    # Named per-endpoint limits: window in seconds, max requests per window
    RATE_LIMITS = {
        'AUTH_LOGIN': {'interval': 15 * 60, 'max_requests': 5},
        'AUTH_SIGNUP': {'interval': 60 * 60, 'max_requests': 3},
        'AUTH_PASSWORD_RESET': {'interval': 60 * 60, 'max_requests': 3},
        'API_VOCABULARY_AUDIO': {'interval': 60, 'max_requests': 10},
        'API_LESSON_GENERATION': {'interval': 60 * 60, 'max_requests': 10},
        'API_DEFAULT': {'interval': 60, 'max_requests': 30},
    }

    # Blanket Flask-Limiter limit, API_DEFAULT unless overridden
    RATELIMIT_DEFAULT = os.environ.get('RATELIMIT_DEFAULT') or \
        '{max_requests} per {interval} seconds'.format(**RATE_LIMITS['API_DEFAULT'])

    # Read the client address from X-Forwarded-For / X-Real-IP. Only enable
    # behind a reverse proxy that overwrites these headers.
    TRUST_PROXY_HEADERS = os.environ.get('TRUST_PROXY_HEADERS', 'false').lower() in ['true', 'on', '1']

    # Token lifetimes
    EMAIL_VERIFICATION_TOKEN_HOURS = 24
    PASSWORD_RESET_TOKEN_HOURS = 1

    # Email configuration (Flask-Mail)
    MAIL_SERVER = os.environ.get('MAIL_SERVER', 'smtp.gmail.com')
    MAIL_PORT = int(os.environ.get('MAIL_PORT', 587))
    MAIL_USE_TLS = os.environ.get('MAIL_USE_TLS', 'true').lower() in ['true', 'on', '1']
    MAIL_USE_SSL = os.environ.get('MAIL_USE_SSL', 'false').lower() in ['true', 'on', '1']
    MAIL_USERNAME = os.environ.get('MAIL_USERNAME')
    MAIL_PASSWORD = os.environ.get('MAIL_PASSWORD')
    MAIL_DEFAULT_SENDER = os.environ.get('MAIL_DEFAULT_SENDER', 'noreply@avidato.com')
    MAIL_SEND_ASYNC = True

    # Google Generative Language API
    GOOGLE_API_KEY = os.environ.get('GOOGLE_API_KEY')
    GEMINI_API_URL = 'https://generativelanguage.googleapis.com/v1beta/models'
    # Tried in order until one returns a usable response
    GEMINI_MODELS = [
        m.strip() for m in os.environ.get(
            'GEMINI_MODELS',
            'gemini-2.5-flash,gemini-2.5-pro,gemini-2.0-flash,gemini-2.0-flash-lite'
        ).split(',') if m.strip()
    ]
    GEMINI_TIMEOUT = int(os.environ.get('GEMINI_TIMEOUT', 60))

    # ElevenLabs text-to-speech
    ELEVENLABS_API_KEY = os.environ.get('ELEVENLABS_API_KEY')
    ELEVENLABS_API_URL = 'https://api.elevenlabs.io/v1/text-to-speech'
    ELEVENLABS_VOICE_ID = os.environ.get('ELEVENLABS_VOICE_ID', 'EXAVITQu4vr4xnSDxMaL')
    ELEVENLABS_MODEL_ID = 'eleven_turbo_v2_5'
    ELEVENLABS_TIMEOUT = 20

    AUDIO_FOLDER = os.environ.get('AUDIO_FOLDER', 'audio')

    # AI generation quota per tutor per day
    DEFAULT_DAILY_GENERATION_LIMIT = int(os.environ.get('DEFAULT_DAILY_GENERATION_LIMIT', 10))

    # Student form options
    LANGUAGES = [
        'English', 'Spanish', 'German', 'Polish', 'French', 'Italian', 'Arabic',
        'Russian', 'Ukrainian', 'Chinese', 'Japanese', 'Portuguese', 'Korean',
    ]

    # Common European Framework of Reference levels
    LEVELS = {
        'A1': 'Beginner',
        'A2': 'Elementary',
        'B1': 'Intermediate',
        'B2': 'Upper Intermediate',
        'C1': 'Advanced',
        'C2': 'Proficient',
    }

    AGE_GROUPS = {
        'child': 'Child (6-12 years)',
        'teenager': 'Teenager (13-17 years)',
        'adult-18-39': 'Adult (18-39 years)',
        'adult-40-59': 'Adult (40-59 years)',
        'senior': 'Senior (60+ years)',
    }

    LESSON_DURATIONS = [25, 50]

    # Pagination
    STUDENTS_PER_PAGE = 25

class DevelopmentConfig(Config):
    # Allow fallback SECRET_KEY for development only
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'dev-secret-key-only-for-development-do-not-use-in-production'

    DEBUG = True
    SQLALCHEMY_DATABASE_URI = os.environ.get('DEV_DATABASE_URL') or 'sqlite:///avidato_dev.db'
    SQLALCHEMY_ENGINE_OPTIONS = {'pool_pre_ping': True}
    REMEMBER_COOKIE_SECURE = False
    SESSION_COOKIE_SECURE = False

class ProductionConfig(Config):
    DEBUG = False

    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL')

    if not SQLALCHEMY_DATABASE_URI:
        import sys
        print("WARNING: DATABASE_URL not set. Application will fail when connecting to database.", file=sys.stderr)

    REMEMBER_COOKIE_SECURE = True
    SESSION_COOKIE_SECURE = True

class TestingConfig(Config):
    # Allow fallback SECRET_KEY for testing only
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'test-secret-key-only-for-testing'

    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    SQLALCHEMY_ENGINE_OPTIONS = {}
    REMEMBER_COOKIE_SECURE = False
    SESSION_COOKIE_SECURE = False

    # The blanket Flask-Limiter limit is off; named limits stay active
    RATELIMIT_ENABLED = False
    TRUST_PROXY_HEADERS = True

    APP_URL = 'http://localhost'
    MAIL_SUPPRESS_SEND = True
    MAIL_SEND_ASYNC = False

    GOOGLE_API_KEY = 'test-google-key'
    GEMINI_MODELS = ['gemini-test-primary', 'gemini-test-fallback']
    ELEVENLABS_API_KEY = 'test-elevenlabs-key'
    DEFAULT_DAILY_GENERATION_LIMIT = 3

config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}
