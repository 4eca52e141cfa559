"""
Operator notification by email.

Config (``notify:`` section)::

    notify:
      enabled: true
      host: smtp.example.gov
      port: 587
      starttls: true
      sender: feedmover@example.gov
      recipients: [hydro-ops@example.gov]
      credential: smtp_relay        # optional, looked up in the credential store
      subject_prefix: "[feedmover]"
      timeout_s: 30
"""

from __future__ import annotations

import smtplib
import socket
from email.message import EmailMessage
from typing import Any

from feedmover.exceptions import CredentialNotFoundError
from feedmover.integrations.credentials import CredentialStore
from feedmover.utils.logging import get_logger

logger = get_logger("feedmover.integrations.notify")


class Notifier:
    def __init__(self, config: dict[str, Any], credentials: CredentialStore | None = None):
        self.enabled = bool(config.get("enabled", False))
        self.host = str(config.get("host", ""))
        self.port = int(config.get("port", 25))
        self.starttls = bool(config.get("starttls", False))
        self.sender = str(config.get("sender", ""))
        self.recipients = list(config.get("recipients") or [])
        self.credential_key = config.get("credential")
        self.subject_prefix = str(config.get("subject_prefix", "[feedmover]"))
        self.timeout_s = float(config.get("timeout_s", 30))
        self.credentials = credentials or CredentialStore({})

    def build_message(self, subject: str, body: str) -> EmailMessage:
        msg = EmailMessage()
        msg["Subject"] = f"{self.subject_prefix} {subject}".strip()
        msg["From"] = self.sender
        msg["To"] = ", ".join(self.recipients)
        msg.set_content(body)
        return msg

    def notify(self, subject: str, body: str) -> bool:
        """Send a notification; returns False (and logs) instead of raising."""
        if not self.enabled:
            logger.debug(f"Notifications disabled; not sending '{subject}'")
            return False
        if not self.host or not self.sender or not self.recipients:
            logger.warning("Notifications enabled but notify.host/sender/recipients incomplete")
            return False

        msg = self.build_message(subject, body)
        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout_s) as smtp:
                if self.starttls:
                    smtp.starttls()
                if self.credential_key:
                    credential = self.credentials.lookup(self.credential_key)
                    smtp.login(credential.user_id, credential.password)
                smtp.send_message(msg)
        except (smtplib.SMTPException, OSError, socket.timeout, CredentialNotFoundError) as e:
            logger.error(f"Failed to send notification '{subject}': {e}")
            return False
        logger.info(f"Notification sent: {subject}")
        return True
