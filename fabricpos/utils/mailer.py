"""
Outgoing email over SMTP.

Every send is best effort: callers get True/False and the request that
triggered the email never fails because of it.
"""
import logging
import smtplib
from email.message import EmailMessage
from email.utils import make_msgid

from fabricpos.config import settings
from fabricpos.models import Invitation, Organization, User
from fabricpos.templating import render

logger = logging.getLogger(__name__)


class EmailService:
    def __init__(self, host: str = None, port: int = None, user: str = None, password: str = None,
                 sender: str = None, use_tls: bool = None):
        self.host = settings.SMTP_HOST if host is None else host
        self.port = settings.SMTP_PORT if port is None else port
        self.user = settings.SMTP_USER if user is None else user
        self.password = settings.SMTP_PASSWORD if password is None else password
        self.sender = settings.SMTP_FROM if sender is None else sender
        self.use_tls = settings.SMTP_USE_TLS if use_tls is None else use_tls

    @property
    def configured(self) -> bool:
        return bool(self.host)

    def _connect(self) -> smtplib.SMTP:
        server = smtplib.SMTP(self.host, self.port, timeout=15)
        if self.use_tls:
            server.starttls()
        if self.user:
            server.login(self.user, self.password)
        return server

    def verify_connection(self) -> bool:
        if not self.configured:
            logger.warning("SMTP is not configured")
            return False
        try:
            server = self._connect()
            server.noop()
            server.quit()
        except (smtplib.SMTPException, OSError) as exc:
            logger.error(f"SMTP connection check failed: {exc}")
            return False
        return True

    def send(self, to: str, subject: str, html: str, text: str = None) -> bool:
        if not self.configured:
            logger.info(f"SMTP not configured, skipping email '{subject}' to {to}")
            return False

        message = EmailMessage()
        message["Subject"] = subject
        message["From"] = self.sender
        message["To"] = to
        message["Message-ID"] = make_msgid(domain="fabricpos")
        message.set_content(text or "Open this message in an HTML capable client.")
        message.add_alternative(html, subtype="html")

        try:
            server = self._connect()
            server.send_message(message)
            server.quit()
        except (smtplib.SMTPException, OSError) as exc:
            logger.error(f"Failed to send '{subject}' to {to}: {exc}")
            return False
        logger.info(f"Email '{subject}' sent to {to}")
        return True

    # --- Templates ---
    def send_invitation_email(self, invitation: Invitation, organization: Organization,
                              inviter: User, link: str) -> bool:
        html = render(
            "email/invitation.html",
            app_name=settings.PROJECT_NAME,
            inviter_name=inviter.full_name,
            organization_name=organization.name,
            role=invitation.role.value,
            link=link,
            expires_at=invitation.expires_at,
        )
        text = f"{inviter.full_name} invited you to join {organization.name}: {link}"
        return self.send(invitation.email, f"You're invited to join {organization.name}", html, text)

    def send_welcome_email(self, user: User, organization: Organization) -> bool:
        link = f"{settings.FRONTEND_URL}/dashboard"
        html = render(
            "email/welcome.html",
            app_name=settings.PROJECT_NAME,
            first_name=user.first_name,
            organization_name=organization.name,
            link=link,
        )
        return self.send(user.email, f"Welcome to {settings.PROJECT_NAME}", html, f"Welcome! Get started at {link}")

    def send_password_reset_email(self, user: User, link: str) -> bool:
        html = render(
            "email/password_reset.html",
            app_name=settings.PROJECT_NAME,
            first_name=user.first_name,
            link=link,
            valid_hours=settings.PASSWORD_RESET_EXPIRE_HOURS,
        )
        return self.send(user.email, "Reset your password", html, f"Reset your password: {link}")


email_service = EmailService()
