from flask_sqlalchemy import SQLAlchemy
from flask_login import UserMixin
from werkzeug.security import generate_password_hash, check_password_hash
from datetime import datetime, timezone
import secrets
import uuid

db = SQLAlchemy()


def utcnow():
    """Naive UTC timestamp, as stored in the database"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class User(UserMixin, db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    username = db.Column(db.String(30), unique=True, nullable=True)
    bio = db.Column(db.String(500))
    password_hash = db.Column(db.String(255), nullable=True)
    email_verified_at = db.Column(db.DateTime, nullable=True)

    # AI generation quota
    daily_limit = db.Column(db.Integer, nullable=False, default=10)
    daily_generation_count = db.Column(db.Integer, nullable=False, default=0)
    last_generation_date = db.Column(db.Date, nullable=True)

    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    students = db.relationship('Student', backref='tutor', lazy=True, cascade='all, delete-orphan')

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        if not self.password_hash:
            return False
        return check_password_hash(self.password_hash, password)

    @property
    def has_password(self):
        return bool(self.password_hash)

    @property
    def email_verified(self):
        return self.email_verified_at is not None

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'email': self.email,
            'username': self.username,
            'bio': self.bio,
            'email_verified': self.email_verified,
            'daily_limit': self.daily_limit,
            'created_at': self.created_at.isoformat() if self.created_at else None
        }

    def __repr__(self):
        return f'<User {self.email}>'

class Student(db.Model):
    """A learner managed by a tutor"""
    id = db.Column(db.Integer, primary_key=True)
    tutor_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)

    name = db.Column(db.String(100), nullable=False)
    target_language = db.Column(db.String(50), nullable=False)
    native_language = db.Column(db.String(50), nullable=False)
    age_group = db.Column(db.String(20), nullable=False)
    level = db.Column(db.String(2), nullable=False)  # CEFR A1..C2
    end_goals = db.Column(db.Text, nullable=False)

    # Optional fields
    occupation = db.Column(db.String(100))
    weaknesses = db.Column(db.String(500))
    interests = db.Column(db.String(500))

    archived = db.Column(db.Boolean, default=False, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    lessons = db.relationship('Lesson', backref='student', lazy=True, cascade='all, delete-orphan')
    learning_plans = db.relationship('LearningPlan', backref='student', lazy=True, cascade='all, delete-orphan')

    def profile(self):
        """Fields used to build generation prompts"""
        return {
            'name': self.name,
            'target_language': self.target_language,
            'native_language': self.native_language,
            'age_group': self.age_group,
            'level': self.level,
            'end_goals': self.end_goals,
            'occupation': self.occupation,
            'weaknesses': self.weaknesses,
            'interests': self.interests,
        }

    def summary(self):
        return {
            'id': self.id,
            'name': self.name,
            'target_language': self.target_language,
            'level': self.level,
        }

    def to_dict(self, lesson_count=None):
        data = {
            'id': self.id,
            **self.profile(),
            'archived': self.archived,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }
        if lesson_count is not None:
            data['lesson_count'] = lesson_count
        return data

    def __repr__(self):
        return f'<Student {self.name} ({self.target_language} {self.level})>'

class LearningPlan(db.Model):
    """A ten-topic plan generated for a student"""
    id = db.Column(db.Integer, primary_key=True)
    student_id = db.Column(db.Integer, db.ForeignKey('student.id'), nullable=False, index=True)

    selected_methodology = db.Column(db.String(10), nullable=False)  # CLT, TBLT, PPP, TTT
    methodology_reasoning = db.Column(db.Text, nullable=False)
    topics = db.Column(db.JSON, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'student_id': self.student_id,
            'selected_methodology': self.selected_methodology,
            'methodology_reasoning': self.methodology_reasoning,
            'topics': self.topics,
            'created_at': self.created_at.isoformat() if self.created_at else None
        }

    def __repr__(self):
        return f'<LearningPlan {self.selected_methodology} for Student:{self.student_id}>'

class Lesson(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    student_id = db.Column(db.Integer, db.ForeignKey('student.id'), nullable=False, index=True)

    title = db.Column(db.String(255), nullable=False)
    overview = db.Column(db.Text)
    content = db.Column(db.JSON, nullable=False)
    is_refined = db.Column(db.Boolean, default=False)

    # Public sharing
    share_id = db.Column(db.String(32), unique=True, nullable=True)
    shared_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    @property
    def is_shared(self):
        return self.share_id is not None

    @property
    def is_grammar_lesson(self):
        return isinstance(self.content, dict) and bool(self.content.get('isGrammarLesson'))

    @property
    def etag(self):
        stamp = int((self.updated_at or self.created_at).timestamp() * 1000)
        return f'"{self.id}-{stamp}"'

    def share(self):
        """Enable the public link, keeping an existing share id"""
        if not self.share_id:
            self.share_id = uuid.uuid4().hex
        self.shared_at = utcnow()

    def unshare(self):
        self.share_id = None
        self.shared_at = None

    def summary(self):
        return {
            'id': self.id,
            'title': self.title,
            'overview': self.overview,
            'is_grammar_lesson': self.is_grammar_lesson,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'shared_at': self.shared_at.isoformat() if self.shared_at else None
        }

    def to_dict(self):
        return {
            **self.summary(),
            'is_refined': self.is_refined,
            'content': self.content,
            'share_id': self.share_id,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
            'student_id': self.student_id,
            'student': self.student.summary() if self.student else None
        }

    def to_public_dict(self):
        """Shared view: lesson content and the student's first name only"""
        student = self.student
        return {
            'title': self.title,
            'overview': self.overview,
            'content': self.content,
            'shared_at': self.shared_at.isoformat() if self.shared_at else None,
            'student': {
                'name': student.name.split()[0] if student and student.name else None,
                'target_language': student.target_language if student else None,
                'level': student.level if student else None
            }
        }

    def __repr__(self):
        return f'<Lesson {self.title}>'

class VocabularyAudio(db.Model):
    """Cached pronunciation audio for a vocabulary word"""
    id = db.Column(db.Integer, primary_key=True)
    word = db.Column(db.String(100), unique=True, nullable=False)
    language = db.Column(db.String(10), nullable=False, default='en')
    storage_key = db.Column(db.String(255), nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)

    def __repr__(self):
        return f'<VocabularyAudio {self.word}>'

class VerificationToken(db.Model):
    """Single-use tokens for email verification and password reset"""
    PURPOSE_EMAIL_VERIFICATION = 'email_verification'
    PURPOSE_PASSWORD_RESET = 'password_reset'
    PURPOSES = (PURPOSE_EMAIL_VERIFICATION, PURPOSE_PASSWORD_RESET)

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True)
    token = db.Column(db.String(64), unique=True, nullable=False)
    purpose = db.Column(db.String(32), nullable=False)
    expires_at = db.Column(db.DateTime, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)

    # Relationships
    user = db.relationship('User', backref=db.backref('verification_tokens', lazy=True, cascade='all, delete-orphan'))

    __table_args__ = (db.Index('ix_verification_token_email_purpose', 'email', 'purpose'),)

    def __repr__(self):
        return f'<VerificationToken {self.purpose} {self.email} Expires:{self.expires_at}>'

    @staticmethod
    def generate_token():
        """Generate a secure random token (32 bytes, hex encoded)"""
        return secrets.token_hex(32)

    def is_expired(self, now=None):
        return (now or utcnow()) > self.expires_at
