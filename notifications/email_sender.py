"""
SMTP email sender for PowerWatch alert actions.

Handles:
  - SMTP connection with TLS
  - MIME multipart construction (HTML + plaintext fallback)
  - Credential management (env vars > config file)

No external dependencies beyond Python stdlib (email, smtplib, ssl).
"""
import os
import ssl
import smtplib
import logging
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr, formatdate

logger = logging.getLogger("powerwatch.notifications.email_sender")


class EmailSender:
    """
    SMTP email sender.

    Credential resolution order:
      1. Environment variables: POWERWATCH_SMTP_USER, POWERWATCH_SMTP_PASS
      2. Config file: config.email.smtp_username, config.email.smtp_password
    """

    def __init__(self, config: dict):
        email_config = config.get("email", {})
        self.smtp_host = email_config.get("smtp_host", "smtp.gmail.com")
        self.smtp_port = email_config.get("smtp_port", 587)
        self.use_tls = email_config.get("use_tls", True)
        self.timeout = email_config.get("timeout_seconds", 30)
        self.from_address = email_config.get("from_address", "")
        self.to_address = email_config.get("to_address", "")
        self.from_name = email_config.get("from_name", "PowerWatch")

        self.username = os.environ.get(
            "POWERWATCH_SMTP_USER",
            email_config.get("smtp_username", ""),
        )
        self.password = os.environ.get(
            "POWERWATCH_SMTP_PASS",
            email_config.get("smtp_password", ""),
        )

    def is_configured(self) -> bool:
        """Check if all required SMTP fields are present."""
        return all([self.smtp_host, self.from_address, self.to_address,
                    self.username, self.password])

    def send_alert(
        self,
        alert_name: str,
        message: str,
        metric: str = "",
        actual_value: float = None,
        threshold: float = None,
    ) -> bool:
        """Send a single alert email."""
        if not self.is_configured():
            return False

        subject = f"[ALERT] PowerWatch: {alert_name}"
        reading = ""
        if actual_value is not None:
            reading = f"{metric} = {actual_value} (threshold {threshold})"

        html = f"""
        <div style="font-family: system-ui, sans-serif; max-width: 500px; margin: 0 auto;
                    padding: 20px; background: #FFFFFF; color: #1E272E; border-radius: 12px;">
            <h2 style="color: #E67E22; margin-top: 0;">Power Alert</h2>
            <div style="background: #F0F1F6; padding: 16px; border-radius: 8px;
                        border-left: 4px solid #FF1744;">
                <h3 style="margin-top: 0; color: #FF1744;">{alert_name}</h3>
                <p>{message}</p>
                <p style="color: #888;">{reading}</p>
            </div>
            <p style="color: #636E72; font-size: 12px; margin-top: 16px;">
                PowerWatch &mdash; automated alert
            </p>
        </div>
        """

        msg = MIMEMultipart("alternative")
        msg["From"] = formataddr((self.from_name, self.from_address))
        msg["To"] = self.to_address
        msg["Subject"] = subject
        msg["Date"] = formatdate(localtime=True)
        msg.attach(MIMEText(f"{alert_name}\n{message}\n{reading}".strip(), "plain"))
        msg.attach(MIMEText(html, "html", "utf-8"))

        return self._send(msg)

    def _send(self, msg: MIMEMultipart) -> bool:
        """Internal: send a constructed MIME message via SMTP."""
        try:
            context = ssl.create_default_context()
            with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=self.timeout) as server:
                server.ehlo()
                if self.use_tls:
                    server.starttls(context=context)
                    server.ehlo()
                server.login(self.username, self.password)
                server.send_message(msg)
            logger.info(f"Email sent to {self.to_address}: {msg['Subject']}")
            return True
        except smtplib.SMTPAuthenticationError:
            logger.error("SMTP authentication failed. Check username/password.")
            return False
        except smtplib.SMTPRecipientsRefused:
            logger.error(f"Recipient refused: {self.to_address}")
            return False
        except Exception as e:
            logger.error(f"Email send failed: {e}")
            return False
