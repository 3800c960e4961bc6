"""Stripe payment service for checkout sessions, refunds and reconciliation.

Provides integration with Stripe using the v8+ StripeClient pattern.
Every call is synchronous with a bounded HTTP timeout and a single SDK
retry; failures surface as StripeServiceError carrying a retryable flag.
Credentials come from SSM Parameter Store.
"""

import json
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any

import stripe
from stripe import StripeClient

from booking_engine.config import get_settings
from booking_engine.models.errors import is_stripe_error_retryable
from booking_engine.utils.logging import get_logger, log_payment_operation

from .ssm_service import SSMService, SSMServiceError, get_ssm_service

logger = get_logger(__name__)


class StripeServiceError(Exception):
    """Raised when a Stripe operation fails."""

    def __init__(
        self,
        message: str,
        stripe_error_code: str | None = None,
        retryable: bool = False,
    ) -> None:
        """Initialize with message and optional Stripe error code.

        Args:
            message: Human-readable error message.
            stripe_error_code: Stripe-specific error code if available.
            retryable: Whether a later retry may succeed.
        """
        super().__init__(message)
        self.stripe_error_code = stripe_error_code
        self.retryable = retryable


class WebhookSignatureError(StripeServiceError):
    """Raised when a webhook payload fails signature verification."""


def _translate_stripe_error(e: stripe.StripeError, action: str) -> StripeServiceError:
    error_code = getattr(e, "code", None)
    retryable = is_stripe_error_retryable(error_code) or isinstance(
        e, (stripe.APIConnectionError, stripe.RateLimitError)
    )
    logger.error(
        "Stripe %s failed: %s (code: %s, retryable: %s)",
        action,
        str(e),
        error_code,
        retryable,
    )
    return StripeServiceError(
        f"Failed to {action}: {e.user_message or e.__class__.__name__}",
        stripe_error_code=error_code,
        retryable=retryable,
    )


class StripeService:
    """Service for Stripe payment operations.

    Handles:
    - Checkout session creation and expiry
    - Webhook signature validation
    - Refund processing
    - PaymentIntent lookup for reconciliation

    Usage:
        stripe_svc = get_stripe_service()
        session = stripe_svc.create_checkout_session(
            booking_id="BKG-2026-ABC123",
            amount_cents=112500,
            ...
        )
    """

    def __init__(
        self,
        environment: str | None = None,
        secrets: SSMService | None = None,
        timeout_seconds: int | None = None,
        client: StripeClient | None = None,
    ) -> None:
        """Initialize Stripe service.

        Args:
            environment: Environment name (dev, prod). Defaults to ENVIRONMENT env var.
            secrets: Secret source. Defaults to the shared SSMService.
            timeout_seconds: HTTP timeout per Stripe request.
            client: Preconfigured StripeClient (tests).
        """
        settings = get_settings()
        self._environment = environment or settings.environment
        self._secrets = secrets or get_ssm_service()
        self._timeout = timeout_seconds or settings.stripe_timeout_seconds
        self._client = client
        self._webhook_secret: str | None = None

    def _get_client(self) -> StripeClient:
        """Get or create the Stripe client (lazy initialization).

        Raises:
            StripeServiceError: If credentials cannot be retrieved.
        """
        if self._client is None:
            try:
                secret_key = self._secrets.get_secret("stripe/secret_key")
            except SSMServiceError as e:
                raise StripeServiceError(f"Failed to initialize Stripe client: {e}") from e
            self._client = StripeClient(
                secret_key,
                max_network_retries=1,
                http_client=stripe.RequestsClient(timeout=self._timeout),
            )
            logger.info("Stripe client initialized for environment: %s", self._environment)
        return self._client

    def _get_webhook_secret(self) -> str:
        """Get the webhook signing secret.

        Raises:
            StripeServiceError: If secret cannot be retrieved.
        """
        if self._webhook_secret is None:
            try:
                self._webhook_secret = self._secrets.get_secret("stripe/webhook_secret")
            except SSMServiceError as e:
                raise StripeServiceError(f"Failed to get webhook secret: {e}") from e
        return self._webhook_secret

    def create_checkout_session(
        self,
        *,
        booking_id: str,
        amount_cents: int,
        currency: str,
        description: str,
        success_url: str,
        cancel_url: str,
        expires_at: datetime,
        customer_email: str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        """Create a Stripe Checkout session for the booking total.

        Metadata is attached to both the session and its PaymentIntent so
        that every later event can be correlated back to the booking.

        Args:
            booking_id: Booking ID (used as idempotency key).
            amount_cents: Total in minor units.
            currency: Lowercase ISO currency code.
            description: Line item description.
            success_url: URL to redirect on success (supports {CHECKOUT_SESSION_ID}).
            cancel_url: URL to redirect on cancel.
            expires_at: When the session should expire.
            customer_email: Optional customer email for Stripe receipt.
            metadata: Additional metadata to include.

        Returns:
            Dict with session_id, checkout_url, expires_at and payment_intent_id.

        Raises:
            StripeServiceError: If session creation fails.
        """
        client = self._get_client()

        session_metadata = {"booking_id": booking_id}
        if metadata:
            session_metadata.update(metadata)

        params: dict[str, Any] = {
            "mode": "payment",
            "payment_method_types": ["card"],
            "client_reference_id": booking_id,
            "line_items": [
                {
                    "price_data": {
                        "currency": currency.lower(),
                        "unit_amount": amount_cents,
                        "product_data": {
                            "name": "Booking",
                            "description": description,
                        },
                    },
                    "quantity": 1,
                }
            ],
            "success_url": success_url,
            "cancel_url": cancel_url,
            "metadata": session_metadata,
            "payment_intent_data": {"metadata": session_metadata},
            "expires_at": int(expires_at.timestamp()),
        }
        if customer_email:
            params["customer_email"] = customer_email

        try:
            session = client.checkout.sessions.create(
                params=params,
                options={"idempotency_key": f"checkout_{booking_id}"},
            )
        except stripe.StripeError as e:
            raise _translate_stripe_error(e, "create checkout session") from e

        log_payment_operation(
            logger,
            "create_checkout_session",
            booking_id=booking_id,
            amount_cents=amount_cents,
            session_id=session.id,
        )

        return {
            "session_id": session.id,
            "checkout_url": session.url,
            "expires_at": datetime.fromtimestamp(session.expires_at, tz=timezone.utc),
            "payment_intent_id": session.payment_intent,
        }

    def expire_checkout_session(self, session_id: str) -> None:
        """Expire an open Checkout session so it can no longer be paid.

        Raises:
            StripeServiceError: If Stripe rejects the request.
        """
        client = self._get_client()
        try:
            client.checkout.sessions.expire(session_id)
        except stripe.StripeError as e:
            raise _translate_stripe_error(e, "expire checkout session") from e
        logger.info("Checkout session %s expired", session_id)

    def verify_webhook_signature(self, payload: bytes, signature: str) -> dict[str, Any]:
        """Verify a webhook signature and parse the event.

        Args:
            payload: Raw request body bytes.
            signature: Stripe-Signature header value.

        Returns:
            Parsed event as a plain dictionary.

        Raises:
            WebhookSignatureError: If the signature or payload is invalid.
            StripeServiceError: If the signing secret is unavailable.
        """
        webhook_secret = self._get_webhook_secret()

        try:
            event = stripe.Webhook.construct_event(payload, signature, webhook_secret)
        except stripe.SignatureVerificationError as e:
            logger.warning("Invalid webhook signature: %s", str(e))
            raise WebhookSignatureError("Invalid signature") from e
        except ValueError as e:
            logger.warning("Malformed webhook payload: %s", str(e))
            raise WebhookSignatureError("Invalid payload") from e

        logger.info("Webhook signature verified for event: %s", event["id"])
        return json.loads(payload)

    def create_refund(
        self,
        *,
        payment_intent_id: str,
        amount_cents: int,
        reason: str,
        idempotency_key: str,
        metadata: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        """Create a refund for a payment.

        Args:
            payment_intent_id: Stripe PaymentIntent ID (pi_xxx).
            amount_cents: Refund amount in minor units.
            reason: One of duplicate, fraudulent, requested_by_customer.
            idempotency_key: Key that makes client retries safe.
            metadata: Extra context stored on the refund.

        Returns:
            Dict with refund_id, amount and status.

        Raises:
            StripeServiceError: If refund creation fails.
        """
        client = self._get_client()

        params: dict[str, Any] = {
            "payment_intent": payment_intent_id,
            "amount": amount_cents,
            "reason": reason,
        }
        if metadata:
            params["metadata"] = metadata

        try:
            refund = client.refunds.create(
                params=params,
                options={"idempotency_key": idempotency_key},
            )
        except stripe.StripeError as e:
            raise _translate_stripe_error(e, "create refund") from e

        log_payment_operation(
            logger,
            "create_refund",
            amount_cents=refund.amount,
            status=refund.status,
            refund_id=refund.id,
            payment_intent_id=payment_intent_id,
        )

        return {
            "refund_id": refund.id,
            "amount": refund.amount,
            "status": refund.status,
        }

    def retrieve_payment_intent(self, payment_intent_id: str) -> dict[str, Any]:
        """Fetch a PaymentIntent with its latest charge's refunded total.

        Raises:
            StripeServiceError: With stripe_error_code "resource_missing" if unknown.
        """
        client = self._get_client()
        try:
            intent = client.payment_intents.retrieve(
                payment_intent_id,
                params={"expand": ["latest_charge"]},
            )
        except stripe.StripeError as e:
            raise _translate_stripe_error(e, "retrieve payment intent") from e

        charge = intent.latest_charge
        amount_refunded = 0
        if charge is not None and not isinstance(charge, str):
            amount_refunded = charge.amount_refunded or 0

        return {
            "id": intent.id,
            "amount": intent.amount,
            "currency": intent.currency,
            "status": intent.status,
            "amount_refunded": amount_refunded,
        }


@lru_cache(maxsize=1)
def get_stripe_service() -> StripeService:
    """Get the shared StripeService instance (singleton pattern)."""
    return StripeService()
