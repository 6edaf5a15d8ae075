"""
Console email sender adapter - Implements EmailSender protocol.

This module provides a console-based implementation of the domain's
email sender port, logging verification codes for local development
(EMAIL_BACKEND=console). Never enable it in production: codes end up
in the logs.
"""

import logging

logger = logging.getLogger(__name__)


class ConsoleEmailSender:
    """
    Development delivery backend, picked by build_email_sender when
    EMAIL_BACKEND=console. Registration proceeds exactly as with SMTP, but
    the code is written to the log instead of a mailbox.

    Uses structural subtyping - no explicit inheritance from Protocol.
    """

    def send_verification_code(self, email: str, code: str) -> None:
        """
        Log verification code (simulates email delivery).

        Args:
            email: Recipient email address (normalized by domain layer)
            code: Numeric verification code
        """
        logger.info("[VERIFICATION] Email: %s Code: %s", email, code)
