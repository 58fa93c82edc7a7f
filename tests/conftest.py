"""
Pytest configuration and fixtures for testing
"""
import pytest
import os

# Set test environment before importing app
os.environ['FLASK_ENV'] = 'testing'
os.environ['SECRET_KEY'] = 'test-secret-key-for-testing-only'

from app import create_app, mail
from models import db, User, Student, Lesson, LearningPlan, utcnow
from limiter import rate_limiter

TEST_PASSWORD = 'TestPass123'


@pytest.fixture(scope='session')
def app():
    """Create and configure a test app instance"""
    app = create_app('testing')

    # Ensure we're using testing config
    assert app.config['TESTING'] is True
    assert 'memory' in app.config['SQLALCHEMY_DATABASE_URI']

    yield app


@pytest.fixture(autouse=True)
def reset_rate_limits():
    """Start every test with empty rate limit counters"""
    rate_limiter.reset()
    yield
    rate_limiter.reset()


@pytest.fixture(scope='function')
def client(app):
    """Create a test client for the app"""
    return app.test_client()


@pytest.fixture(scope='function')
def runner(app):
    """Create a test CLI runner"""
    return app.test_cli_runner()


@pytest.fixture(scope='function')
def db_session(app):
    """
    Create a new database for a test.
    Drop all tables after the test.
    """
    with app.app_context():
        db.create_all()
        yield db
        db.session.remove()
        db.drop_all()


@pytest.fixture
def outbox(app):
    """Emails sent during the test"""
    with mail.record_messages() as messages:
        yield messages


@pytest.fixture
def audio_folder(app, tmp_path, monkeypatch):
    monkeypatch.setitem(app.config, 'AUDIO_FOLDER', str(tmp_path))
    return tmp_path


@pytest.fixture
def test_user(db_session):
    """Create a verified test user"""
    user = User(
        name='Test Tutor',
        email='test@example.com',
        email_verified_at=utcnow(),
        daily_limit=3
    )
    user.set_password(TEST_PASSWORD)
    db_session.session.add(user)
    db_session.session.commit()
    return user


@pytest.fixture
def second_user(db_session):
    """Create a second test user for isolation tests"""
    user = User(
        name='Other Tutor',
        email='test2@example.com',
        daily_limit=3
    )
    user.set_password('OtherPass456')
    db_session.session.add(user)
    db_session.session.commit()
    return user


@pytest.fixture
def authenticated_client(client, test_user):
    """Create an authenticated test client"""
    with client.session_transaction() as sess:
        sess['_user_id'] = str(test_user.id)
    return client


@pytest.fixture
def student_data():
    """Valid student payload"""
    return {
        'name': 'Maria Lopez',
        'target_language': 'English',
        'native_language': 'Spanish',
        'age_group': 'adult-18-39',
        'level': 'B1',
        'end_goals': 'Improve speaking for travel and everyday conversation',
        'occupation': '',
        'weaknesses': 'Past tenses',
        'interests': 'Cooking, football'
    }


@pytest.fixture
def test_student(db_session, test_user):
    """Create a test student"""
    student = Student(
        tutor_id=test_user.id,
        name='Maria Lopez',
        target_language='English',
        native_language='Spanish',
        age_group='adult-18-39',
        level='B1',
        end_goals='Improve speaking for travel and everyday conversation',
        weaknesses='Past tenses',
        interests='Cooking, football'
    )
    db_session.session.add(student)
    db_session.session.commit()
    return student


@pytest.fixture
def other_student(db_session, second_user):
    """A student belonging to the second user"""
    student = Student(
        tutor_id=second_user.id,
        name='Jan Kowalski',
        target_language='German',
        native_language='Polish',
        age_group='adult-40-59',
        level='A2',
        end_goals='Pass a workplace language exam next year'
    )
    db_session.session.add(student)
    db_session.session.commit()
    return student


@pytest.fixture
def sample_topic():
    return {
        'lesson_number': 1,
        'title': 'Ordering at a restaurant',
        'objective': 'Order food and ask about the menu',
        'vocabulary': ['menu', 'starter', 'bill'],
        'grammar_focus': 'Polite requests with would like',
        'skills': ['speaking', 'listening'],
        'context': 'A dinner out while travelling',
        'methodology': 'CLT'
    }


@pytest.fixture
def test_plan(db_session, test_student, sample_topic):
    plan = LearningPlan(
        student_id=test_student.id,
        selected_methodology='CLT',
        methodology_reasoning='Communication focused goals',
        topics=[sample_topic, {**sample_topic, 'lesson_number': 2, 'title': 'At the hotel'}]
    )
    db_session.session.add(plan)
    db_session.session.commit()
    return plan


@pytest.fixture
def test_lesson(db_session, test_student):
    """Create a test lesson"""
    lesson = Lesson(
        student_id=test_student.id,
        title='Ordering at a restaurant',
        overview='Order food | Skills: speaking | Type: conversation',
        content={'title': 'Ordering at a restaurant', 'exercises': []},
        is_refined=True
    )
    db_session.session.add(lesson)
    db_session.session.commit()
    return lesson


# Helper functions for tests

def login(client, email='test@example.com', password=TEST_PASSWORD):
    """Helper to login a user"""
    return client.post('/api/auth/login', json={
        'email': email,
        'password': password
    })


def create_test_user(db_session, name='Helper User', email='helper@example.com', password=TEST_PASSWORD):
    """Helper to create a test user"""
    user = User(name=name, email=email)
    user.set_password(password)
    db_session.session.add(user)
    db_session.session.commit()
    return user
