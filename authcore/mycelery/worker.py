import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from authcore.core.config import settings
from authcore.logging import get_logger
from authcore.mycelery.app import celery_app

logger = get_logger("auth.mail")


def _send_html(email: str, subject: str, body: str) -> dict:
    msg = MIMEMultipart()
    msg["From"] = f"{settings.APP_NAME} <{settings.SMTP_FROM_EMAIL}>"
    msg["To"] = email
    msg["Subject"] = subject
    msg.attach(MIMEText(body, "html"))

    server = smtplib.SMTP(settings.SMTP_SERVER, settings.SMTP_PORT)
    try:
        if settings.SMTP_USERNAME and settings.SMTP_PASSWORD:
            server.starttls()
            server.login(settings.SMTP_USERNAME, settings.SMTP_PASSWORD)
        server.sendmail(settings.SMTP_FROM_EMAIL, email, msg.as_string())
    finally:
        server.quit()
    return {"sent": True, "email": email}


def _deliver(kind: str, email: str, subject: str, body: str) -> dict:
    """Failures are logged and reported in the result, never retried."""
    try:
        logger.info("Sending email", kind=kind, email=email)
        return _send_html(email, subject, body)
    except Exception as e:
        logger.error("Email delivery failed", exc_info=False, kind=kind, email=email, error=str(e))
        return {"sent": False, "error": str(e)}


def verification_email(first_name: str, token: str) -> tuple:
    link = f"{settings.FRONTEND_URL}/verify-email?token={token}"
    body = f"""
    <html>
        <body>
            <h2>Welcome to {settings.APP_NAME}, {first_name}!</h2>
            <p>Please confirm your email address to activate your account.</p>
            <p><a href="{link}">Verify email</a></p>
            <p>This link expires in 24 hours.</p>
            <hr>
            <p><small>If you did not create an account, ignore this email.</small></p>
        </body>
    </html>
    """
    return f"Verify your email - {settings.APP_NAME}", body


def password_reset_email(first_name: str, token: str) -> tuple:
    link = f"{settings.FRONTEND_URL}/reset-password?token={token}"
    body = f"""
    <html>
        <body>
            <h2>Password reset</h2>
            <p>Hi {first_name}, you asked to reset your password.</p>
            <p><a href="{link}">Choose a new password</a></p>
            <p>This link expires in 1 hour.</p>
            <hr>
            <p><small>If you did not request this, ignore this email. Your password stays unchanged.</small></p>
        </body>
    </html>
    """
    return f"Reset your password - {settings.APP_NAME}", body


def welcome_email(first_name: str) -> tuple:
    body = f"""
    <html>
        <body>
            <h2>You're all set, {first_name}!</h2>
            <p>Your {settings.APP_NAME} profile is complete.</p>
            <p><a href="{settings.FRONTEND_URL}/login">Sign in</a></p>
        </body>
    </html>
    """
    return f"Welcome to {settings.APP_NAME}", body


@celery_app.task(name="send_verification_email")
def send_verification_email(email: str, first_name: str, token: str):
    subject, body = verification_email(first_name, token)
    return _deliver("verification", email, subject, body)


@celery_app.task(name="send_password_reset_email")
def send_password_reset_email(email: str, first_name: str, token: str):
    subject, body = password_reset_email(first_name, token)
    return _deliver("password_reset", email, subject, body)


@celery_app.task(name="send_welcome_email")
def send_welcome_email(email: str, first_name: str):
    subject, body = welcome_email(first_name)
    return _deliver("welcome", email, subject, body)


# Development variants: log instead of sending

@celery_app.task(name="send_verification_email_local")
def send_verification_email_local(email: str, first_name: str, token: str):
    logger.info("Simulated verification email", email=email, link=f"{settings.FRONTEND_URL}/verify-email?token={token}")
    return {"sent": True}


@celery_app.task(name="send_password_reset_email_local")
def send_password_reset_email_local(email: str, first_name: str, token: str):
    logger.info("Simulated password reset email", email=email, link=f"{settings.FRONTEND_URL}/reset-password?token={token}")
    return {"sent": True}


@celery_app.task(name="send_welcome_email_local")
def send_welcome_email_local(email: str, first_name: str):
    logger.info("Simulated welcome email", email=email)
    return {"sent": True}
