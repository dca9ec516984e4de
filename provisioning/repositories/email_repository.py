"""
Email Repository for notification delivery.
Sends plain-text emails through Amazon SES.
"""
import boto3
from botocore.exceptions import BotoCoreError, ClientError
from provisioning.core import config
from provisioning.core.exceptions import NotificationException


class EmailRepository:
    """Repository for SES email operations."""

    def __init__(self):
        self.ses_client = boto3.client('ses', region_name=config.settings.aws_region)
        self.sender = config.settings.ses_sender_email

    def send_email(self, recipient: str, subject: str, body: str) -> str:
        """
        Send a plain-text email.

        Args:
            recipient: Destination address
            subject: Subject line
            body: Plain-text body

        Returns:
            str: SES message id

        Raises:
            NotificationException: If delivery fails
        """
        try:
            response = self.ses_client.send_email(
                Source=self.sender,
                Destination={'ToAddresses': [recipient]},
                Message={
                    'Subject': {'Data': subject, 'Charset': 'UTF-8'},
                    'Body': {'Text': {'Data': body, 'Charset': 'UTF-8'}}
                }
            )
            return response['MessageId']
        except ClientError as e:
            raise NotificationException(f"Failed to send email to {recipient}: {str(e)}") from e
        except BotoCoreError as e:
            raise NotificationException(f"Unexpected error sending email to {recipient}: {str(e)}") from e
