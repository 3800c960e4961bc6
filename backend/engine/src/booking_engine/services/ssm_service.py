"""Secret lookup backed by AWS SSM Parameter Store.

Stripe credentials live under ``/booking-engine/{environment}/stripe/``.
For local runs, an environment variable can stand in for any parameter
(see ``SECRET_ENV_OVERRIDES``); SSM is consulted only when it is unset.
"""

import os
from functools import lru_cache

import boto3
from botocore.exceptions import ClientError

from booking_engine.utils.logging import get_logger

logger = get_logger(__name__)

# Parameter name suffix -> environment variable that overrides it
SECRET_ENV_OVERRIDES: dict[str, str] = {
    "stripe/secret_key": "STRIPE_SECRET_KEY",
    "stripe/webhook_secret": "STRIPE_WEBHOOK_SECRET",
}


class SSMServiceError(Exception):
    """Raised when a secret cannot be retrieved."""


class SSMService:
    """Retrieves and caches SecureString parameters for one environment.

    Usage:
        secrets = SSMService(environment="dev")
        stripe_key = secrets.get_secret("stripe/secret_key")
    """

    def __init__(self, environment: str | None = None) -> None:
        self.environment = environment or os.environ.get("ENVIRONMENT", "dev")
        self._client = None
        self._cache: dict[str, str] = {}

    def parameter_path(self, suffix: str) -> str:
        """Full SSM path for a parameter suffix."""
        return f"/booking-engine/{self.environment}/{suffix}"

    def _get_client(self):
        if self._client is None:
            self._client = boto3.client("ssm")
        return self._client

    def get_secret(self, suffix: str, *, use_cache: bool = True) -> str:
        """Return a secret by suffix, e.g. ``stripe/secret_key``.

        Raises:
            SSMServiceError: If the secret is neither overridden nor in SSM.
        """
        env_name = SECRET_ENV_OVERRIDES.get(suffix)
        if env_name and os.environ.get(env_name):
            return os.environ[env_name]

        return self.get_parameter(self.parameter_path(suffix), use_cache=use_cache)

    def get_parameter(self, name: str, *, use_cache: bool = True) -> str:
        """Retrieve a decrypted parameter value from SSM Parameter Store.

        Args:
            name: Full parameter path
            use_cache: Whether to use cached value if available (default: True)

        Raises:
            SSMServiceError: If parameter cannot be retrieved.
        """
        if use_cache and name in self._cache:
            return self._cache[name]

        try:
            logger.info("Fetching SSM parameter: %s", name)
            response = self._get_client().get_parameter(Name=name, WithDecryption=True)
        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "Unknown")
            if error_code == "ParameterNotFound":
                raise SSMServiceError(f"SSM parameter not found: {name}") from e
            if error_code == "AccessDeniedException":
                raise SSMServiceError(
                    f"Access denied to SSM parameter: {name}. "
                    "Check IAM permissions for ssm:GetParameter."
                ) from e
            raise SSMServiceError(f"Failed to retrieve SSM parameter {name}: {e}") from e

        value: str = response["Parameter"]["Value"]
        self._cache[name] = value
        return value

    def clear_cache(self) -> None:
        self._cache.clear()


@lru_cache(maxsize=1)
def get_ssm_service() -> SSMService:
    """Get the shared SSMService instance."""
    return SSMService()
