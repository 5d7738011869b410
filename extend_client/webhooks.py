"""
Webhook signature verification and event parsing.

Extend signs every webhook delivery with HMAC-SHA256 over
``v0:{timestamp}:{raw body}``, keyed by the endpoint's signing secret
(``wss_...``), and sends the timestamp and hex digest in the
``x-extend-request-timestamp`` and ``x-extend-request-signature`` headers.

Example (aiohttp handler)::

    webhooks = Webhooks()

    async def handle(request):
        try:
            event = webhooks.verify_and_parse(
                await request.read(), request.headers, SIGNING_SECRET
            )
        except WebhookSignatureVerificationError:
            return web.Response(status=401, text="Invalid signature")
        if event.event_type == WebhookEventType.workflow_run_completed:
            ...
        return web.Response(text="OK")

Large payloads may be delivered through a signed URL instead of inline. Those
are rejected unless ``allow_signed_url=True`` is passed, in which case the
caller resolves them with ``fetch_signed_payload``.
"""

import asyncio
import hashlib
import hmac
import json
import time
from typing import Any, Mapping, Optional, Union

import aiohttp
from loguru import logger
from pydantic import ValidationError

from extend_client.errors import (
    SignedUrlNotAllowedError,
    WebhookPayloadFetchError,
    WebhookSignatureVerificationError,
)
from extend_client.models import (
    SignedDataUrlPayload,
    VerifyAndParseOptions,
    VerifyOptions,
    WebhookEvent,
)

TIMESTAMP_HEADER = "x-extend-request-timestamp"
SIGNATURE_HEADER = "x-extend-request-signature"

# Tolerated clock skew for timestamps ahead of the local clock
MAX_FUTURE_SKEW_SECONDS = 60

Body = Union[str, bytes]


def _decode_body(body: Body) -> str:
    if isinstance(body, bytes):
        return body.decode("utf-8")
    return body


def _decode_received_body(body: Body) -> str:
    try:
        return _decode_body(body)
    except UnicodeDecodeError as e:
        raise WebhookSignatureVerificationError(
            "Failed to parse webhook body: not valid UTF-8"
        ) from e


def compute_signature(body: Body, timestamp: Union[str, int], signing_secret: str) -> str:
    """Returns the hex HMAC-SHA256 signature Extend sends for a body and timestamp"""
    message = f"v0:{timestamp}:{_decode_body(body)}"
    return hmac.new(
        signing_secret.encode("utf-8"), message.encode("utf-8"), hashlib.sha256
    ).hexdigest()


def get_header(headers: Mapping[str, Any], name: str) -> Optional[str]:
    """Case-insensitive header lookup; list values yield their first element"""
    value = headers.get(name)
    if value is None:
        value = headers.get(name.lower())
    if value is None:
        for key, candidate in headers.items():
            if key.lower() == name.lower():
                value = candidate
                break
    if isinstance(value, (list, tuple)):
        return value[0] if value else None
    return value


class Webhooks:
    def __init__(self):
        self.logger = logger

    def verify_and_parse(
        self,
        body: Body,
        headers: Mapping[str, Any],
        signing_secret: str,
        options: Optional[VerifyAndParseOptions] = None,
    ) -> WebhookEvent:
        """
        Verifies the signature of a webhook delivery and parses the event.

        Args:
            body: The raw request body, exactly as received
            headers: The request headers
            signing_secret: The endpoint's signing secret (starts with wss_)
            options: max_age_seconds (0 disables the freshness check) and
                allow_signed_url

        Raises:
            WebhookSignatureVerificationError: headers, timestamp, signature or
                body are invalid
            SignedUrlNotAllowedError: the payload is a signed URL and
                allow_signed_url is not set
        """
        options = options or VerifyAndParseOptions()
        text = _decode_received_body(body)

        self._verify_signature(text, headers, signing_secret, options)

        try:
            event = WebhookEvent.model_validate(json.loads(text))
        except (ValueError, ValidationError) as e:
            self.logger.warning("Webhook body failed to parse after signature check")
            raise WebhookSignatureVerificationError(
                "Failed to parse webhook body as JSON"
            ) from e

        if self.is_signed_url_event(event) and not options.allow_signed_url:
            raise SignedUrlNotAllowedError()

        return event

    def verify(
        self,
        body: Body,
        headers: Mapping[str, Any],
        signing_secret: str,
        options: Optional[VerifyOptions] = None,
    ) -> bool:
        """Checks the signature and timestamp without parsing the body"""
        try:
            self._verify_signature(
                _decode_received_body(body), headers, signing_secret, options or VerifyOptions()
            )
        except WebhookSignatureVerificationError:
            return False
        return True

    def parse(self, body: Body) -> WebhookEvent:
        """Parses an event without verification; use only after verify() succeeded"""
        return WebhookEvent.model_validate(json.loads(_decode_body(body)))

    def is_signed_url_event(self, event: WebhookEvent) -> bool:
        return isinstance(event.payload, SignedDataUrlPayload)

    async def fetch_signed_payload(
        self,
        event: WebhookEvent,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> WebhookEvent:
        """Downloads the full payload behind a signed URL event"""
        if not isinstance(event.payload, SignedDataUrlPayload):
            raise WebhookPayloadFetchError(
                "Failed to fetch signed payload: event does not carry a signed URL payload"
            )

        url = event.payload.data
        try:
            if session is None:
                async with aiohttp.ClientSession() as own_session:
                    full_payload = await self._fetch_json(own_session, url)
            else:
                full_payload = await self._fetch_json(session, url)

            return WebhookEvent(
                event_id=event.event_id,
                event_type=event.event_type,
                payload=full_payload,
            )
        except aiohttp.ClientResponseError as e:
            self.logger.error(f"HTTP error {e.status} fetching signed payload: {e.message}")
            raise WebhookPayloadFetchError(
                f"Failed to fetch signed payload: {e.status} {e.message}"
            ) from e
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            self.logger.error(f"Error fetching signed payload: {e}")
            raise WebhookPayloadFetchError(
                f"Failed to fetch signed payload: {str(e) or type(e).__name__}"
            ) from e

    async def _fetch_json(self, session: aiohttp.ClientSession, url: str) -> Any:
        async with session.get(url) as response:
            response.raise_for_status()
            # Signed storage URLs do not always send a JSON content type
            return json.loads(await response.text())

    def _verify_signature(
        self,
        body: str,
        headers: Mapping[str, Any],
        signing_secret: str,
        options: VerifyOptions,
    ) -> None:
        try:
            self._check_signature(body, headers, signing_secret, options)
        except WebhookSignatureVerificationError as e:
            self.logger.warning(f"Webhook verification failed: {e}")
            raise

    def _check_signature(
        self,
        body: str,
        headers: Mapping[str, Any],
        signing_secret: str,
        options: VerifyOptions,
    ) -> None:
        timestamp = get_header(headers, TIMESTAMP_HEADER)
        signature = get_header(headers, SIGNATURE_HEADER)

        if not timestamp:
            raise WebhookSignatureVerificationError(f"Missing {TIMESTAMP_HEADER} header")

        if not signature:
            raise WebhookSignatureVerificationError(f"Missing {SIGNATURE_HEADER} header")

        if not signing_secret:
            raise WebhookSignatureVerificationError("Missing signing secret")

        # Replay protection
        if options.max_age_seconds > 0:
            try:
                request_time = int(timestamp)
            except ValueError as e:
                raise WebhookSignatureVerificationError("Invalid timestamp format") from e

            age = int(time.time()) - request_time
            if age > options.max_age_seconds:
                raise WebhookSignatureVerificationError(
                    f"Request timestamp too old ({age}s > {options.max_age_seconds}s)"
                )
            if age < -MAX_FUTURE_SKEW_SECONDS:
                raise WebhookSignatureVerificationError("Request timestamp in the future")

        expected = compute_signature(body, timestamp, signing_secret).encode("utf-8")
        received = signature.encode("utf-8")

        # Length is not secret; compare_digest covers the content
        if len(received) != len(expected) or not hmac.compare_digest(received, expected):
            raise WebhookSignatureVerificationError("Invalid signature")
