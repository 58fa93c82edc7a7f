"""
Request schemas.

Bodies are validated with pydantic; failures are flattened into
``{field: [messages]}`` for the 400 response.
"""
from typing import Annotated, List, Literal, Optional

from flask import jsonify
from pydantic import BaseModel, ConfigDict, Field, StringConstraints, ValidationError, field_validator, ValidationInfo

from config import Config
from utils import contains_suspicious_content, normalize_email, strip_html, validate_email, validate_password_strength

Methodology = Literal['CLT', 'TBLT', 'PPP', 'TTT']

Stripped = Annotated[str, StringConstraints(strip_whitespace=True)]


class RequestSchema(BaseModel):
    model_config = ConfigDict(extra='ignore')


def _email(value):
    value = normalize_email(value)
    if not validate_email(value):
        raise ValueError('Invalid email address')
    return value


def _strong_password(value):
    is_valid, message = validate_password_strength(value)
    if not is_valid:
        raise ValueError(message)
    return value


class SignupSchema(RequestSchema):
    name: Stripped
    email: Stripped
    password: str

    @field_validator('name')
    @classmethod
    def clean_name(cls, value):
        value = strip_html(value).strip()
        if len(value) < 2 or len(value) > 100:
            raise ValueError('Name must be between 2 and 100 characters')
        return value

    @field_validator('email')
    @classmethod
    def check_email(cls, value):
        return _email(value)

    @field_validator('password')
    @classmethod
    def check_password(cls, value):
        return _strong_password(value)


class LoginSchema(RequestSchema):
    email: Stripped
    password: str = Field(min_length=1)
    remember_me: bool = False

    @field_validator('email')
    @classmethod
    def lower_email(cls, value):
        if not value:
            raise ValueError('Email is required')
        return normalize_email(value)


class EmailSchema(RequestSchema):
    email: Stripped

    @field_validator('email')
    @classmethod
    def check_email(cls, value):
        return _email(value)


class VerifyTokenSchema(RequestSchema):
    email: Stripped
    token: Stripped = Field(min_length=1)

    @field_validator('email')
    @classmethod
    def check_email(cls, value):
        return _email(value)


class ResetPasswordSchema(VerifyTokenSchema):
    password: str
    confirm_password: Optional[str] = None

    @field_validator('password')
    @classmethod
    def check_password(cls, value):
        return _strong_password(value)

    @field_validator('confirm_password')
    @classmethod
    def passwords_match(cls, value, info: ValidationInfo):
        if value is not None and 'password' in info.data and value != info.data['password']:
            raise ValueError("Passwords don't match")
        return value


class UpdateProfileSchema(RequestSchema):
    name: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=100)]
    username: Optional[Annotated[str, StringConstraints(strip_whitespace=True, max_length=30)]] = None
    bio: Optional[Annotated[str, StringConstraints(max_length=500)]] = None

    @field_validator('username')
    @classmethod
    def check_username(cls, value):
        if not value:
            return None
        if len(value) < 3:
            raise ValueError('Username must be at least 3 characters')
        if not all(c.isascii() and (c.isalnum() or c in '_-') for c in value):
            raise ValueError('Username can only contain letters, numbers, underscores, and hyphens')
        return value

    @field_validator('name', 'bio')
    @classmethod
    def no_markup(cls, value):
        return strip_html(value) if value else value


class ChangePasswordSchema(RequestSchema):
    current_password: str = Field(min_length=1)
    new_password: str
    confirm_password: str = Field(min_length=1)

    @field_validator('new_password')
    @classmethod
    def check_new_password(cls, value):
        return _strong_password(value)

    @field_validator('confirm_password')
    @classmethod
    def passwords_match(cls, value, info: ValidationInfo):
        if 'new_password' in info.data and value != info.data['new_password']:
            raise ValueError("Passwords don't match")
        return value


class StudentSchema(RequestSchema):
    name: Annotated[str, StringConstraints(strip_whitespace=True, min_length=2, max_length=100)]
    target_language: Stripped
    native_language: Stripped
    age_group: Stripped
    level: Stripped
    end_goals: Annotated[str, StringConstraints(strip_whitespace=True, min_length=10, max_length=1000)]
    occupation: Optional[Annotated[str, StringConstraints(strip_whitespace=True, max_length=100)]] = None
    weaknesses: Optional[Annotated[str, StringConstraints(strip_whitespace=True, max_length=500)]] = None
    interests: Optional[Annotated[str, StringConstraints(strip_whitespace=True, max_length=500)]] = None

    @field_validator('name')
    @classmethod
    def check_name(cls, value):
        if not all(c.isalpha() or c in " -'." for c in value):
            raise ValueError('Student name contains invalid characters. Only letters, spaces, hyphens, and apostrophes are allowed.')
        return value

    @field_validator('target_language', 'native_language')
    @classmethod
    def check_language(cls, value):
        if value not in Config.LANGUAGES:
            raise ValueError('Invalid language selected')
        return value

    @field_validator('level')
    @classmethod
    def check_level(cls, value):
        if value not in Config.LEVELS:
            raise ValueError('Invalid language level selected')
        return value

    @field_validator('age_group')
    @classmethod
    def check_age_group(cls, value):
        if value not in Config.AGE_GROUPS:
            raise ValueError('Invalid age group selected')
        return value

    @field_validator('occupation', 'weaknesses', 'interests')
    @classmethod
    def empty_to_none(cls, value):
        return value or None

    @field_validator('end_goals', 'occupation', 'weaknesses', 'interests')
    @classmethod
    def check_markup(cls, value):
        if contains_suspicious_content(value):
            raise ValueError('Invalid characters detected in input fields')
        return value

    @field_validator('native_language')
    @classmethod
    def languages_differ(cls, value, info: ValidationInfo):
        if info.data.get('target_language') == value:
            raise ValueError('Target language must be different from native language')
        return value


class LearningTopicSchema(RequestSchema):
    lesson_number: int = Field(ge=1)
    title: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=255)]
    objective: Stripped
    vocabulary: List[str] = Field(default_factory=list)
    grammar_focus: Optional[str] = None
    skills: List[str] = Field(default_factory=list)
    context: str = ''
    methodology: Methodology = 'CLT'


class LessonRequestSchema(RequestSchema):
    """Either an explicit topic or the number of a topic in the latest plan"""
    topic: Optional[LearningTopicSchema] = None
    lesson_number: Optional[int] = Field(default=None, ge=1)
    duration: int = 50

    @field_validator('duration')
    @classmethod
    def check_duration(cls, value):
        if value not in Config.LESSON_DURATIONS:
            raise ValueError('Duration must be 25 or 50 minutes')
        return value


class GrammarLessonRequestSchema(RequestSchema):
    topic: Annotated[str, StringConstraints(strip_whitespace=True, min_length=2, max_length=200)]

    @field_validator('topic')
    @classmethod
    def check_markup(cls, value):
        if contains_suspicious_content(value):
            raise ValueError('Invalid characters detected in grammar topic')
        return value


def flatten_errors(error: ValidationError):
    """Map pydantic errors to {field: [messages]}"""
    errors = {}
    for item in error.errors():
        field = '.'.join(str(part) for part in item.get('loc', ())) or 'non_field_errors'
        message = item.get('msg', 'Invalid value')
        if message.startswith('Value error, '):
            message = message[len('Value error, '):]
        errors.setdefault(field, []).append(message)
    return errors


def parse_payload(schema, data):
    """Validate `data` against `schema`

    Returns:
        (instance, None) on success, (None, (response, 400)) on failure
    """
    try:
        return schema.model_validate(data or {}), None
    except ValidationError as e:
        errors = flatten_errors(e)
        first_message = next(iter(errors.values()))[0]
        response = jsonify({
            'error': 'Invalid input data',
            'message': first_message,
            'errors': errors
        })
        return None, (response, 400)
