from flask import Flask
from models import db, User, VerificationToken
from config import config
import os

def init_db(app=None):
    """Initialize the database with all tables"""
    if app is None:
        app = Flask(__name__)
        env = os.environ.get('FLASK_ENV', 'development')
        app.config.from_object(config[env])
        db.init_app(app)

    with app.app_context():
        # Create all tables
        db.create_all()
        print("Database tables created successfully!")

        # Backfill quota defaults for accounts created before the limit was configurable
        updated = User.query.filter(User.daily_limit.is_(None)).update(
            {User.daily_limit: app.config['DEFAULT_DAILY_GENERATION_LIMIT']},
            synchronize_session=False
        )
        if updated:
            print(f"Set default generation limit for {updated} users")

        removed = purge_expired_tokens()
        if removed:
            print(f"Removed {removed} expired tokens")

        db.session.commit()
        print("Database initialization completed!")

def purge_expired_tokens():
    """Delete tokens whose expiry has passed"""
    from models import utcnow
    return VerificationToken.query.filter(
        VerificationToken.expires_at < utcnow()
    ).delete(synchronize_session=False)

def drop_all_tables(app=None):
    """Drop all database tables - use with caution!"""
    if app is None:
        app = Flask(__name__)
        env = os.environ.get('FLASK_ENV', 'development')
        app.config.from_object(config[env])
        db.init_app(app)

    with app.app_context():
        db.drop_all()
        print("All tables dropped!")

if __name__ == '__main__':
    init_db()
