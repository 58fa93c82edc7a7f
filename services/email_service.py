"""
Email service for sending transactional emails via Flask-Mail
"""
from flask import current_app
from flask_mail import Message
from threading import Thread
import logging

logger = logging.getLogger(__name__)

EMAIL_STYLE = """
            body {
                font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
                line-height: 1.6;
                color: #333;
                max-width: 600px;
                margin: 0 auto;
                padding: 20px;
            }
            .button {
                display: inline-block;
                background: #4f46e5;
                color: white;
                padding: 12px 30px;
                text-decoration: none;
                border-radius: 5px;
                margin: 20px 0;
            }
            .notice {
                background: #fef3c7;
                border-left: 4px solid #f59e0b;
                padding: 15px;
                margin: 20px 0;
            }
"""


def _deliver(app, msg):
    """Send a message inside an application context"""
    with app.app_context():
        try:
            from app import mail
            mail.send(msg)
            app.logger.info(f'Email sent successfully to {msg.recipients}: {msg.subject}')
            return True
        except Exception as e:
            app.logger.error(f'Failed to send email to {msg.recipients}: {str(e)}', exc_info=True)
            return False


def mail_configured():
    config = current_app.config
    return bool(config.get('MAIL_SUPPRESS_SEND') or (config.get('MAIL_USERNAME') and config.get('MAIL_SERVER')))


def send_email(to, subject, html_body, text_body=None):
    """
    Send an email, on a background thread unless MAIL_SEND_ASYNC is off

    Args:
        to: Recipient email address (string or list)
        subject: Email subject
        html_body: HTML content of the email
        text_body: Plain text fallback (optional)

    Returns:
        bool: True if sent (or queued) successfully, False otherwise
    """
    if not mail_configured():
        logger.warning(
            f'Email not configured - skipping "{subject}" for {to}. '
            f'Set MAIL_USERNAME and MAIL_SERVER in .env to enable emails.'
        )
        return False

    msg = Message(
        subject=subject,
        recipients=[to] if isinstance(to, str) else to,
        html=html_body,
        body=text_body or html_body,
        sender=current_app.config.get('MAIL_DEFAULT_SENDER')
    )

    app = current_app._get_current_object()

    if not app.config.get('MAIL_SEND_ASYNC', True):
        return _deliver(app, msg)

    thread = Thread(target=_deliver, args=(app, msg))
    thread.daemon = True
    thread.start()
    logger.info(f"Email queued for sending to {to}: {subject}")
    return True


def send_verification_email(user, verification_url):
    """
    Send email verification link (valid 24 hours)

    Args:
        user: User object
        verification_url: Verification URL with email and token

    Returns:
        bool: True if sent successfully
    """
    subject = "Verify your email - Avidato"
    name = user.name or 'there'

    html_body = f"""
    <!DOCTYPE html>
    <html>
    <head>
        <meta charset="UTF-8">
        <style>{EMAIL_STYLE}</style>
    </head>
    <body>
        <h2>Verify your email address</h2>

        <p>Hi {name},</p>

        <p>Thanks for signing up for Avidato. Please confirm your email address by clicking the button below:</p>

        <div style="text-align: center;">
            <a href="{verification_url}" class="button">Verify Email</a>
        </div>

        <p>Or copy and paste this link into your browser:</p>
        <p style="background: #f3f4f6; padding: 10px; word-break: break-all;">{verification_url}</p>

        <div class="notice">
            This link expires in 24 hours. If you didn't create an account, you can ignore this email.
        </div>

        <p>Best regards,<br>The Avidato Team</p>
    </body>
    </html>
    """

    text_body = f"""
    Verify your email address

    Hi {name},

    Thanks for signing up for Avidato. Confirm your email address by opening the link below:

    {verification_url}

    This link expires in 24 hours. If you didn't create an account, you can ignore this email.

    Best regards,
    The Avidato Team
    """

    return send_email(user.email, subject, html_body, text_body)


def send_password_reset_email(user, reset_url):
    """
    Send password reset email (link valid 1 hour)

    Args:
        user: User object
        reset_url: Password reset URL with email and token

    Returns:
        bool: True if sent successfully
    """
    subject = "Reset your Avidato password"
    name = user.name or 'there'

    html_body = f"""
    <!DOCTYPE html>
    <html>
    <head>
        <meta charset="UTF-8">
        <style>{EMAIL_STYLE}</style>
    </head>
    <body>
        <h2>Password Reset Request</h2>

        <p>Hi {name},</p>

        <p>We received a request to reset your password. Click the button below to create a new password:</p>

        <div style="text-align: center;">
            <a href="{reset_url}" class="button">Reset Password</a>
        </div>

        <p>Or copy and paste this link into your browser:</p>
        <p style="background: #f3f4f6; padding: 10px; word-break: break-all;">{reset_url}</p>

        <div class="notice">
            <strong>Security Notice:</strong>
            <ul style="margin: 5px 0;">
                <li>This link expires in 1 hour</li>
                <li>If you didn't request this, please ignore this email</li>
                <li>Your password won't change until you create a new one</li>
            </ul>
        </div>

        <p>Best regards,<br>The Avidato Team</p>
    </body>
    </html>
    """

    text_body = f"""
    Password Reset Request

    Hi {name},

    We received a request to reset your password. Open the link below to create a new password:

    {reset_url}

    This link expires in 1 hour.

    If you didn't request this, please ignore this email. Your password won't change until you create a new one.

    Best regards,
    The Avidato Team
    """

    return send_email(user.email, subject, html_body, text_body)
