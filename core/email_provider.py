# core/email_provider.py
"""
Outbound transactional email providers
Resend HTTP API (default) or plain SMTP via aiosmtplib
"""

import asyncio
import uuid
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional
from dataclasses import dataclass, asdict, field
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formatdate, parseaddr

import aiosmtplib
import requests

logger = logging.getLogger(__name__)

# Key value used by build environments where email is not set up
PLACEHOLDER_API_KEY = 're_placeholder_key_for_build'
RESEND_API_URL = 'https://api.resend.com/emails'
DEFAULT_FROM = 'FocusOS <noreply@yourdomain.com>'


class EmailProviderError(Exception):
    """Provider rejected the message or could not be reached"""

    def __init__(self, message: str, status_code: Optional[int] = None, retryable: bool = False):
        super().__init__(message)
        self.status_code = status_code
        self.retryable = retryable


@dataclass
class EmailMessage:
    """One outgoing message"""
    to: List[str]
    subject: str
    html: str
    text: str = ''
    from_address: str = DEFAULT_FROM
    reply_to: Optional[str] = None
    tags: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'EmailMessage':
        return cls(**data)


@dataclass
class EmailResult:
    """Result of a send operation"""
    success: bool
    provider: str
    message_id: Optional[str]
    sent_at: str
    response: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def is_api_key_configured(api_key: Optional[str]) -> bool:
    return bool(api_key) and api_key != PLACEHOLDER_API_KEY


class EmailProvider:
    """Interface shared by the providers"""

    name = 'base'

    @property
    def configured(self) -> bool:
        return False

    def send(self, message: EmailMessage) -> EmailResult:
        raise NotImplementedError


class ResendProvider(EmailProvider):
    """
    Resend HTTP API

    Args:
        api_key: Resend API key
        timeout: request timeout in seconds
    """

    name = 'resend'

    def __init__(self, api_key: Optional[str], timeout: float = 10.0, api_url: str = RESEND_API_URL):
        self.api_key = api_key
        self.timeout = timeout
        self.api_url = api_url

    @property
    def configured(self) -> bool:
        return is_api_key_configured(self.api_key)

    def send(self, message: EmailMessage) -> EmailResult:
        if not self.configured:
            raise EmailProviderError("Resend API key is not configured")

        payload = {
            'from': message.from_address,
            'to': message.to,
            'subject': message.subject,
            'html': message.html,
        }
        if message.text:
            payload['text'] = message.text
        if message.reply_to:
            payload['reply_to'] = message.reply_to
        if message.tags:
            payload['tags'] = [{'name': k, 'value': v} for k, v in message.tags.items()]

        headers = {
            'Authorization': f'Bearer {self.api_key}',
            'Content-Type': 'application/json'
        }

        try:
            response = requests.post(self.api_url, headers=headers, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error(f"Resend request failed: {str(e)}")
            raise EmailProviderError(f"Resend request failed: {str(e)}", retryable=True) from e

        if response.status_code >= 400:
            logger.error(f"Resend error: {response.status_code} - {response.text}")
            raise EmailProviderError(
                f"Resend rejected the message ({response.status_code})",
                status_code=response.status_code,
                retryable=response.status_code == 429 or response.status_code >= 500
            )

        data = response.json() if response.content else {}
        logger.info(f"Resend accepted message {data.get('id')} to {len(message.to)} recipient(s)")
        return EmailResult(
            success=True,
            provider=self.name,
            message_id=data.get('id'),
            sent_at=datetime.utcnow().isoformat(),
            response=data
        )


class SMTPProvider(EmailProvider):
    """
    SMTP delivery

    Port 465 uses implicit TLS, port 587 upgrades with STARTTLS.
    """

    name = 'smtp'

    def __init__(self, smtp_config: Dict[str, Any]):
        self.smtp_config = smtp_config

    @property
    def configured(self) -> bool:
        return bool(self.smtp_config.get('host'))

    def build_mime(self, message: EmailMessage) -> MIMEMultipart:
        msg = MIMEMultipart('alternative')
        msg['Subject'] = message.subject
        msg['From'] = message.from_address
        msg['To'] = ', '.join(message.to)
        msg['Date'] = formatdate(localtime=True)
        domain = parseaddr(message.from_address)[1].rpartition('@')[2] or 'localhost'
        msg['Message-ID'] = f"<{uuid.uuid4()}@{domain}>"
        if message.reply_to:
            msg['Reply-To'] = message.reply_to
        msg['X-Mailer'] = 'FocusOS'

        if message.text:
            msg.attach(MIMEText(message.text, 'plain', 'utf-8'))
        msg.attach(MIMEText(message.html, 'html', 'utf-8'))
        return msg

    def send(self, message: EmailMessage) -> EmailResult:
        if not self.configured:
            raise EmailProviderError("SMTP host is not configured")
        msg = self.build_mime(message)
        result = asyncio.run(_async_send_smtp(msg, self.smtp_config))
        if not result['success']:
            logger.error(f"SMTP send failed: {result['response']}")
            code = result.get('code')
            raise EmailProviderError(
                f"SMTP error: {result['response']}",
                status_code=code,
                retryable=code is None or 400 <= code < 500
            )
        logger.info(f"SMTP accepted message {result['message_id']}")
        return EmailResult(
            success=True,
            provider=self.name,
            message_id=result['message_id'],
            sent_at=datetime.utcnow().isoformat(),
            response={'smtp': result['response']}
        )


async def _async_send_smtp(msg: MIMEMultipart, smtp_config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Async SMTP sending; failures are reported in the result, not raised
    """
    port = smtp_config.get('port', 587)
    try:
        # Port 465 is implicit TLS, 587 upgrades with STARTTLS during connect
        async with aiosmtplib.SMTP(
            hostname=smtp_config['host'],
            port=port,
            timeout=smtp_config.get('timeout', 60),
            use_tls=port == 465,
            start_tls=port == 587,
            validate_certs=smtp_config.get('validate_certs', True)
        ) as smtp:
            if smtp_config.get('username') and smtp_config.get('password'):
                await smtp.login(smtp_config['username'], smtp_config['password'])

            await smtp.send_message(msg)

        return {
            'success': True,
            'response': '250 Message accepted',
            'message_id': msg['Message-ID']
        }

    except aiosmtplib.SMTPResponseException as e:
        return {
            'success': False,
            'code': e.code,
            'response': f"{e.code} {e.message}",
        }
    except (aiosmtplib.SMTPException, OSError) as e:
        return {
            'success': False,
            'code': None,
            'response': str(e),
        }


def create_email_provider(config: Dict[str, Any]) -> EmailProvider:
    """Provider named by EMAIL_PROVIDER (resend or smtp)"""
    provider = (config.get('EMAIL_PROVIDER') or 'resend').lower()
    if provider == 'resend':
        return ResendProvider(config.get('RESEND_API_KEY'), timeout=config.get('EMAIL_TIMEOUT', 10.0))
    if provider == 'smtp':
        return SMTPProvider({
            'host': config.get('SMTP_HOST'),
            'port': config.get('SMTP_PORT', 587),
            'username': config.get('SMTP_USERNAME'),
            'password': config.get('SMTP_PASSWORD'),
            'timeout': config.get('EMAIL_TIMEOUT', 60),
            'validate_certs': config.get('SMTP_VALIDATE_CERTS', True),
        })
    raise ValueError(f"Unknown email provider: {provider}")
