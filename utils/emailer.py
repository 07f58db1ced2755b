import smtplib
from email.message import EmailMessage
from typing import Optional, Protocol

from security.errors import DeliveryError
from utils.logging import get_logger

logger = get_logger(__name__)


class Mailer(Protocol):
    def send_verification_code(self, to_email: str, code: str, ttl_minutes: int = 5) -> None: ...


def verification_email_body(code: str, ttl_minutes: int) -> str:
    return (
        "Hello,\n\n"
        "Use the following verification code to finish signing in:\n\n"
        f"    {code}\n\n"
        f"The code expires in {ttl_minutes} minutes and can be used only once.\n"
        "Never share this code with anyone. If you did not try to sign in, "
        "you can ignore this email.\n"
    )


class SmtpMailer:
    """
    Sends verification codes over SMTP. Any failure, including missing
    configuration, raises ``DeliveryError``; callers decide whether to retry.
    """

    def __init__(self, host: Optional[str], port: int = 587, username: Optional[str] = None,
                 password: Optional[str] = None, from_email: Optional[str] = None,
                 use_tls: bool = True, timeout: int = 10):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.from_email = from_email or username
        self.use_tls = use_tls
        self.timeout = timeout

    @classmethod
    def from_config(cls, config):
        return cls(
            host=config.get("SMTP_HOST"),
            port=config.get("SMTP_PORT", 587),
            username=config.get("SMTP_USERNAME"),
            password=config.get("SMTP_PASSWORD"),
            from_email=config.get("SMTP_FROM_EMAIL"),
            use_tls=config.get("SMTP_USE_TLS", True),
            timeout=config.get("SMTP_TIMEOUT_SECONDS", 10),
        )

    def send_email(self, to_email: str, subject: str, body: str) -> None:
        if not self.host or not self.from_email:
            raise DeliveryError("Email not configured")

        msg = EmailMessage()
        msg["From"] = self.from_email
        msg["To"] = to_email
        msg["Subject"] = subject
        msg.set_content(body)

        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                if self.use_tls:
                    server.starttls()
                if self.username and self.password:
                    server.login(self.username, self.password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("smtp_send_failed", error=str(exc))
            raise DeliveryError() from exc

    def send_verification_code(self, to_email: str, code: str, ttl_minutes: int = 5) -> None:
        self.send_email(to_email, "Your sign-in verification code",
                        verification_email_body(code, ttl_minutes))
