import os
import smtplib
import httpx
from email.mime.application import MIMEApplication
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from typing import Optional, List
import logging

logger = logging.getLogger(__name__)


class EmailService:
    """Email service for sending bill emails via SMTP."""

    def __init__(
        self,
        smtp_host: str = "smtp.gmail.com",
        smtp_port: int = 587,
        smtp_user: str = "",
        smtp_password: str = "",
        from_email: str = "",
        from_name: str = "RentBill",
        use_tls: bool = True,
    ):
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_user = smtp_user
        self.smtp_password = smtp_password
        self.from_email = from_email or smtp_user
        self.from_name = from_name
        self.use_tls = use_tls

    @property
    def is_configured(self) -> bool:
        return bool(self.smtp_user and self.smtp_password)

    def send_email(
        self,
        to_email: str,
        subject: str,
        html_content: str,
        text_content: Optional[str] = None,
        attachments: Optional[List[str]] = None,
    ) -> bool:
        """
        Send an email over SMTP.

        Args:
            to_email: Recipient email address
            subject: Email subject
            html_content: HTML body of the email
            text_content: Plain text body (optional fallback)
            attachments: Paths of files to attach

        Returns:
            True if email sent successfully, False otherwise
        """
        if not self.is_configured:
            logger.warning("Email not configured. SMTP credentials missing.")
            return False

        try:
            msg = MIMEMultipart('mixed')
            msg['Subject'] = subject
            msg['From'] = f"{self.from_name} <{self.from_email}>"
            msg['To'] = to_email

            body = MIMEMultipart('alternative')
            if text_content:
                body.attach(MIMEText(text_content, 'plain'))
            body.attach(MIMEText(html_content, 'html'))
            msg.attach(body)

            for path in attachments or []:
                with open(path, "rb") as f:
                    part = MIMEApplication(f.read(), _subtype="pdf")
                part.add_header("Content-Disposition", "attachment", filename=os.path.basename(path))
                msg.attach(part)

            with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=10) as server:
                if self.use_tls:
                    server.starttls()
                server.login(self.smtp_user, self.smtp_password)
                server.sendmail(self.from_email, to_email, msg.as_string())

            logger.info(f"Email sent successfully to {to_email}")
            return True

        except smtplib.SMTPAuthenticationError:
            logger.error("SMTP Authentication failed. Check email credentials.")
            return False
        except smtplib.SMTPException as e:
            logger.error(f"SMTP error: {e}")
            return False
        except TimeoutError:
            logger.error("SMTP connection timed out")
            return False
        except OSError as e:
            logger.error(f"Network error sending email: {e}")
            return False


class WhatsAppService:
    """WhatsApp messages through the Twilio REST API."""

    def __init__(
        self,
        account_sid: str = "",
        auth_token: str = "",
        from_number: str = "",
        api_url: str = "https://api.twilio.com/2010-04-01",
        default_country_prefix: str = "+91",
    ):
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self.api_url = api_url.rstrip("/")
        self.default_country_prefix = default_country_prefix

    @property
    def is_configured(self) -> bool:
        return bool(self.account_sid and self.auth_token and self.from_number)

    def normalize_phone(self, phone: str) -> str:
        """E.164 number; local numbers get the default country prefix."""
        phone = phone.strip().replace(" ", "").replace("-", "")
        if not phone.startswith("+"):
            phone = f"{self.default_country_prefix}{phone}"
        return phone

    async def send_message(self, phone: str, body: str) -> bool:
        """
        Send a WhatsApp message.

        Args:
            phone: Recipient phone, local or E.164
            body: Message text

        Returns:
            True if the provider accepted the message
        """
        if not self.is_configured:
            logger.warning("Twilio WhatsApp not configured, skipping message")
            return False

        to_number = self.normalize_phone(phone)
        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    f"{self.api_url}/Accounts/{self.account_sid}/Messages.json",
                    data={
                        "From": f"whatsapp:{self.from_number}",
                        "To": f"whatsapp:{to_number}",
                        "Body": body,
                    },
                    auth=(self.account_sid, self.auth_token),
                    timeout=10.0,
                )

                if response.status_code in (200, 201):
                    logger.info(f"WhatsApp sent to {to_number}. SID: {response.json().get('sid')}")
                    return True
                else:
                    logger.error(f"WhatsApp failed: {response.text}")
                    return False

        except httpx.HTTPError as e:
            logger.error(f"Failed to send WhatsApp to {to_number}: {e}")
            return False


def get_email_service() -> EmailService:
    """Get configured email service instance."""
    from rentbill.config import settings

    return EmailService(
        smtp_host=settings.SMTP_HOST,
        smtp_port=settings.SMTP_PORT,
        smtp_user=settings.SMTP_USER,
        smtp_password=settings.SMTP_PASSWORD,
        from_email=settings.SMTP_FROM_EMAIL,
        from_name=settings.SMTP_FROM_NAME,
        use_tls=settings.SMTP_USE_TLS,
    )


def get_whatsapp_service() -> WhatsAppService:
    """Get configured WhatsApp service instance."""
    from rentbill.config import settings

    return WhatsAppService(
        account_sid=settings.TWILIO_ACCOUNT_SID,
        auth_token=settings.TWILIO_AUTH_TOKEN,
        from_number=settings.TWILIO_WHATSAPP_FROM,
        api_url=settings.TWILIO_API_URL,
        default_country_prefix=settings.DEFAULT_COUNTRY_PREFIX,
    )
