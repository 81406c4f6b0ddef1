import asyncio
import logging
from typing import Optional
import boto3
from botocore.exceptions import BotoCoreError, ClientError
from seminar_api.config import settings

logger = logging.getLogger(__name__)


def get_ses_client():
    """Get AWS SES client"""
    return boto3.client(
        'ses',
        region_name=settings.aws_region,
        aws_access_key_id=settings.aws_access_key_id,
        aws_secret_access_key=settings.aws_secret_access_key
    )


def is_configured() -> bool:
    return bool(settings.aws_ses_from_email and settings.aws_region)


def _send_email_sync(to_email: str, subject: str, text_body: str, html_body: Optional[str]) -> str:
    client = get_ses_client()

    message = {
        'Subject': {'Data': subject, 'Charset': 'UTF-8'},
        'Body': {
            'Text': {'Data': text_body, 'Charset': 'UTF-8'}
        }
    }

    if html_body:
        message['Body']['Html'] = {'Data': html_body, 'Charset': 'UTF-8'}

    response = client.send_email(
        Source=f"{settings.aws_ses_from_name} <{settings.aws_ses_from_email}>",
        Destination={'ToAddresses': [to_email]},
        Message=message
    )
    return response['MessageId']


async def send_email(
    to_email: str,
    subject: str,
    text_body: str,
    html_body: Optional[str] = None
) -> bool:
    """Send email via AWS SES"""
    if not is_configured():
        logger.warning(f"SES not configured, skipping email to {to_email}: {subject}")
        return False

    try:
        message_id = await asyncio.to_thread(_send_email_sync, to_email, subject, text_body, html_body)
        logger.info(f"Email sent to {to_email}: {message_id}")
        return True

    except ClientError as e:
        logger.error(f"Failed to send email to {to_email}: {e}")
        return False
    except BotoCoreError as e:
        logger.error(f"Error sending email: {e}")
        return False
