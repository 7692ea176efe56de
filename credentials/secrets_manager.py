"""AWS Secrets Manager store for Google OAuth credentials."""
import json
import logging
from typing import Optional

import boto3
from botocore.exceptions import ClientError

from provider.google_calendar import GoogleOAuthCredentials
from reconciler.errors import MissingParameter

logger = logging.getLogger(__name__)


class SecretsManagerCredentialStore:
    """Loads calendar API credentials from AWS Secrets Manager."""

    REQUIRED_KEYS = ("client_id", "client_secret", "refresh_token")

    def __init__(self, region_name: Optional[str] = None):
        """
        Initialize the Secrets Manager client.

        Args:
            region_name: AWS region; defaults to the Lambda's configured region
        """
        self.client = boto3.client('secretsmanager', region_name=region_name)

    def get_google_credentials(self, secret_id: str) -> GoogleOAuthCredentials:
        """
        Read Google OAuth credentials stored as a JSON secret.

        The secret holds ``client_id``, ``client_secret`` and
        ``refresh_token``; a nested ``installed`` or ``web`` object as
        downloaded from the Google console is accepted too.

        Args:
            secret_id: Secret name or ARN

        Returns:
            GoogleOAuthCredentials

        Raises:
            ClientError: If the secret cannot be read
            MissingParameter: If the secret is not JSON or lacks a key
        """
        logger.info(f"Loading Google credentials from secret: {secret_id}")

        try:
            response = self.client.get_secret_value(SecretId=secret_id)
        except ClientError as e:
            logger.error(f"Error reading secret {secret_id}: {e}")
            raise

        try:
            payload = json.loads(response['SecretString'])
        except (KeyError, ValueError) as e:
            raise MissingParameter(f"Secret {secret_id} does not hold a JSON string") from e

        values = {}
        for key in self.REQUIRED_KEYS:
            value = payload.get(key)
            if not value:
                for wrapper in ('installed', 'web'):
                    nested = payload.get(wrapper)
                    if isinstance(nested, dict) and nested.get(key):
                        value = nested[key]
                        break
            if not value:
                raise MissingParameter(f"Secret {secret_id} is missing {key}")
            values[key] = value

        return GoogleOAuthCredentials(**values)
