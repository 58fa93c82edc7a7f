"""
Tests for the verification token service
"""
from datetime import timedelta

import pytest

from models import db, VerificationToken, utcnow
from services.token_service import token_service

VERIFY = VerificationToken.PURPOSE_EMAIL_VERIFICATION
RESET = VerificationToken.PURPOSE_PASSWORD_RESET


def expire(token):
    record = VerificationToken.query.filter_by(token=token).first()
    record.expires_at = utcnow() - timedelta(minutes=1)
    db.session.commit()


@pytest.mark.unit
@pytest.mark.security
class TestTokenIssue:

    def test_token_is_64_hex_chars(self, db_session, test_user):
        issued = token_service.issue(test_user.email, VERIFY, user_id=test_user.id)

        assert len(issued.token) == 64
        int(issued.token, 16)

    def test_verification_ttl_is_24_hours(self, db_session, test_user):
        issued = token_service.issue(test_user.email, VERIFY)

        delta = issued.expires_at - utcnow()
        assert timedelta(hours=23, minutes=59) < delta <= timedelta(hours=24)

    def test_reset_ttl_is_1_hour(self, db_session, test_user):
        issued = token_service.issue(test_user.email, RESET)

        delta = issued.expires_at - utcnow()
        assert timedelta(minutes=59) < delta <= timedelta(hours=1)

    def test_new_token_replaces_previous_for_same_purpose(self, db_session, test_user):
        first = token_service.issue(test_user.email, RESET)
        second = token_service.issue(test_user.email, RESET)

        assert token_service.validate(test_user.email, first.token, RESET).valid is False
        assert token_service.validate(test_user.email, second.token, RESET).valid is True

    def test_tokens_of_other_purpose_are_kept(self, db_session, test_user):
        verify = token_service.issue(test_user.email, VERIFY)
        token_service.issue(test_user.email, RESET)

        assert token_service.validate(test_user.email, verify.token, VERIFY).valid is True

    def test_unknown_purpose(self, db_session):
        with pytest.raises(ValueError):
            token_service.issue('a@example.com', 'magic_link')


@pytest.mark.unit
@pytest.mark.security
class TestTokenValidation:

    def test_valid_token(self, db_session, test_user):
        issued = token_service.issue(test_user.email, VERIFY)

        status = token_service.validate(test_user.email, issued.token, VERIFY)

        assert status.valid is True
        assert status.expired is False

    def test_wrong_email(self, db_session, test_user):
        issued = token_service.issue(test_user.email, VERIFY)

        status = token_service.validate('someone@example.com', issued.token, VERIFY)

        assert (status.valid, status.expired) == (False, False)

    def test_wrong_token(self, db_session, test_user):
        token_service.issue(test_user.email, VERIFY)

        status = token_service.validate(test_user.email, 'f' * 64, VERIFY)

        assert (status.valid, status.expired) == (False, False)

    def test_missing_input(self, db_session):
        status = token_service.validate('', '', VERIFY)
        assert (status.valid, status.expired) == (False, False)

    def test_token_never_validates_for_other_purpose(self, db_session, test_user):
        issued = token_service.issue(test_user.email, VERIFY)

        status = token_service.validate(test_user.email, issued.token, RESET)

        assert status.valid is False

    def test_expired_token_is_reported_and_deleted(self, db_session, test_user):
        issued = token_service.issue(test_user.email, RESET)
        expire(issued.token)

        status = token_service.validate(test_user.email, issued.token, RESET)

        assert status.valid is False
        assert status.expired is True
        assert VerificationToken.query.filter_by(token=issued.token).first() is None

        # Once deleted it is simply unknown
        again = token_service.validate(test_user.email, issued.token, RESET)
        assert (again.valid, again.expired) == (False, False)


@pytest.mark.unit
@pytest.mark.security
class TestTokenConsumption:

    def test_consume_once(self, db_session, test_user):
        issued = token_service.issue(test_user.email, VERIFY)

        assert token_service.consume(test_user.email, issued.token, VERIFY) is True
        db.session.commit()
        assert token_service.consume(test_user.email, issued.token, VERIFY) is False

    def test_consume_expired_token_fails(self, db_session, test_user):
        issued = token_service.issue(test_user.email, VERIFY)
        expire(issued.token)

        assert token_service.consume(test_user.email, issued.token, VERIFY) is False

    def test_consume_all_for_email(self, db_session, test_user):
        issued = token_service.issue(test_user.email, RESET)
        db.session.add(VerificationToken(
            email=test_user.email,
            token=VerificationToken.generate_token(),
            purpose=RESET,
            expires_at=utcnow() + timedelta(hours=1)
        ))
        db.session.commit()

        assert token_service.consume(test_user.email, issued.token, RESET, all_for_email=True) is True
        db.session.commit()

        assert VerificationToken.query.filter_by(email=test_user.email, purpose=RESET).count() == 0

    def test_cleanup_expired(self, db_session, test_user, second_user):
        old = token_service.issue(test_user.email, VERIFY)
        current = token_service.issue(second_user.email, VERIFY)
        expire(old.token)

        assert token_service.cleanup_expired() == 1
        assert VerificationToken.query.filter_by(token=current.token).first() is not None
