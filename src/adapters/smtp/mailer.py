"""
SMTP email sender adapter - Implements EmailSender protocol.

Delivers verification codes through an SMTP relay configured by host,
port, secure flag and credentials. Every send opens its own connection
with a bounded timeout; any transport error or timeout is reported as
DeliveryFailure so registration never "succeeds" without a sent code.
"""

import logging
import smtplib
import ssl
from email.message import EmailMessage
from email.utils import formataddr

from src.domain.exceptions import DeliveryFailure

logger = logging.getLogger(__name__)

SUBJECT = "Código de verificación"

_HTML_TEMPLATE = """\
<div style="font-family:system-ui;padding:16px">
  <h2>Verificación de cuenta</h2>
  <p>Tu código:</p>
  <div style="font-size:22px;font-weight:700;letter-spacing:3px">{code}</div>
  <p style="color:#666">Válido por {minutes} minutos.</p>
</div>
"""


class SmtpEmailSender:
    """
    Implements EmailSender protocol via smtplib.

    Uses structural subtyping - no explicit inheritance from Protocol.
    With secure=True the connection uses implicit TLS (SMTPS, port 465);
    otherwise a plain connection is upgraded with STARTTLS when offered.
    """

    def __init__(
        self,
        host: str,
        port: int,
        secure: bool,
        username: str,
        password: str,
        from_name: str = "Registro",
        timeout: float = 5.0,
        ttl_seconds: int = 300,
    ) -> None:
        self.host = host
        self.port = port
        self.secure = secure
        self.username = username
        self._password = password
        self.from_name = from_name
        self.timeout = timeout
        self.ttl_seconds = ttl_seconds

    def build_message(self, email: str, code: str) -> EmailMessage:
        """Build the plain-text + HTML verification email."""
        minutes = max(1, self.ttl_seconds // 60)
        message = EmailMessage()
        message["Subject"] = SUBJECT
        message["From"] = formataddr((self.from_name, self.username))
        message["To"] = email
        message.set_content(f"Tu código es: {code}. Expira en {minutes} minutos.")
        message.add_alternative(_HTML_TEMPLATE.format(code=code, minutes=minutes), subtype="html")
        return message

    def send_verification_code(self, email: str, code: str) -> None:
        """
        Send the verification code to an email address.

        Args:
            email: Recipient email address
            code: Numeric verification code

        Raises:
            DeliveryFailure: On SMTP rejection, connection error, timeout or any
                other failure while talking to the relay
        """
        message = self.build_message(email, code)
        try:
            with self._connect() as server:
                if self.username:
                    server.login(self.username, self._password)
                server.send_message(message)
        except Exception as exc:  # smtplib also raises UnicodeError/ValueError on bad input
            logger.error(
                "Verification email to %s failed: %s", email, exc.__class__.__name__
            )
            raise DeliveryFailure() from exc

        logger.info("Verification email sent to %s", email)

    def _connect(self) -> smtplib.SMTP:
        context = ssl.create_default_context()
        if self.secure:
            return smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout, context=context)
        server = smtplib.SMTP(self.host, self.port, timeout=self.timeout)
        try:
            server.ehlo()
            if server.has_extn("starttls"):
                server.starttls(context=context)
                server.ehlo()
        except (smtplib.SMTPException, OSError):
            server.close()
            raise
        return server
