"""
Verification token flow for email verification and password reset
"""
from dataclasses import dataclass
from datetime import timedelta

from flask import current_app

from models import db, VerificationToken, utcnow
import logging

logger = logging.getLogger(__name__)

# Fallback lifetimes when the app config does not set them
DEFAULT_TTL_HOURS = {
    VerificationToken.PURPOSE_EMAIL_VERIFICATION: 24,
    VerificationToken.PURPOSE_PASSWORD_RESET: 1,
}

TTL_CONFIG_KEYS = {
    VerificationToken.PURPOSE_EMAIL_VERIFICATION: 'EMAIL_VERIFICATION_TOKEN_HOURS',
    VerificationToken.PURPOSE_PASSWORD_RESET: 'PASSWORD_RESET_TOKEN_HOURS',
}


@dataclass(frozen=True)
class IssuedToken:
    token: str
    expires_at: object


@dataclass(frozen=True)
class TokenStatus:
    valid: bool
    expired: bool


class TokenService:
    """Issue, validate and consume single-use tokens.

    A token is valid only for the email and purpose it was issued for, only
    before its expiry, and only until it is consumed.
    """

    @staticmethod
    def _check_purpose(purpose):
        if purpose not in VerificationToken.PURPOSES:
            raise ValueError(f"Unknown token purpose: {purpose}")

    @staticmethod
    def ttl_for(purpose):
        TokenService._check_purpose(purpose)
        hours = current_app.config.get(TTL_CONFIG_KEYS[purpose], DEFAULT_TTL_HOURS[purpose])
        return timedelta(hours=hours)

    @staticmethod
    def _find(email, token, purpose):
        return VerificationToken.query.filter_by(
            email=email,
            token=token,
            purpose=purpose
        ).first()

    @staticmethod
    def issue(email, purpose, user_id=None):
        """Create a token for `email`, replacing earlier tokens of the same purpose"""
        TokenService._check_purpose(purpose)

        VerificationToken.query.filter_by(email=email, purpose=purpose).delete()

        record = VerificationToken(
            email=email,
            user_id=user_id,
            token=VerificationToken.generate_token(),
            purpose=purpose,
            expires_at=utcnow() + TokenService.ttl_for(purpose)
        )
        db.session.add(record)
        db.session.commit()

        logger.info(f"Issued {purpose} token for {email} (expires {record.expires_at.isoformat()})")
        return IssuedToken(token=record.token, expires_at=record.expires_at)

    @staticmethod
    def validate(email, token, purpose):
        """Check a token without consuming it

        Expired tokens are deleted when found.
        """
        TokenService._check_purpose(purpose)

        if not email or not token:
            return TokenStatus(valid=False, expired=False)

        record = TokenService._find(email, token, purpose)
        if not record:
            return TokenStatus(valid=False, expired=False)

        if record.is_expired():
            db.session.delete(record)
            db.session.commit()
            logger.info(f"Rejected expired {purpose} token for {email}")
            return TokenStatus(valid=False, expired=True)

        return TokenStatus(valid=True, expired=False)

    @staticmethod
    def consume(email, token, purpose, all_for_email=False):
        """Delete a valid token so it cannot be used again

        The delete is a single statement; only the caller whose delete removed
        the row gets True. With `all_for_email`, every token of this purpose
        for the email is invalidated as well. The caller commits.

        Returns:
            bool: True if the token was valid and is now consumed
        """
        TokenService._check_purpose(purpose)

        deleted = VerificationToken.query.filter(
            VerificationToken.email == email,
            VerificationToken.token == token,
            VerificationToken.purpose == purpose,
            VerificationToken.expires_at >= utcnow()
        ).delete(synchronize_session=False)

        if deleted != 1:
            return False

        if all_for_email:
            VerificationToken.query.filter_by(email=email, purpose=purpose).delete(synchronize_session=False)

        logger.info(f"Consumed {purpose} token for {email}")
        return True

    @staticmethod
    def cleanup_expired():
        """Delete every expired token

        Returns:
            int: number of tokens deleted
        """
        deleted = VerificationToken.query.filter(
            VerificationToken.expires_at < utcnow()
        ).delete(synchronize_session=False)
        db.session.commit()

        logger.info(f"Deleted {deleted} expired tokens")
        return deleted


token_service = TokenService()
