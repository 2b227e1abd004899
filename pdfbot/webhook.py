"""Signed webhook notifications for completed jobs."""

import hashlib
import hmac
import json
import logging
import uuid
from datetime import datetime
from typing import Any, Dict, Optional, Union

import httpx
from pydantic import BaseModel, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from .errors import ConfigurationError, DeliveryError
from .models import TRANSPORT_ERROR, Job, Ping, utcnow

logger = logging.getLogger(__name__)

DEFAULT_HEADER_NAMESPACE = "X-PDF-"
DEFAULT_TIMEOUT = 10.0  # seconds
REQUEST_OPTION_KEYS = {"headers", "params", "cookies", "timeout", "follow_redirects"}


class WebhookConfig(BaseModel):
    """Where and how to notify consumers about finished jobs."""
    url: str
    method: str = "POST"
    secret: Optional[str] = None
    header_namespace: str = DEFAULT_HEADER_NAMESPACE
    request_options: Dict[str, Any] = Field(default_factory=dict)
    timeout: float = DEFAULT_TIMEOUT

    @field_validator("url")
    @classmethod
    def _check_url(cls, value: str) -> str:
        if not value.startswith(("http://", "https://")):
            raise ValueError("webhook url must start with http:// or https://")
        return value

    @field_validator("method")
    @classmethod
    def _upper_method(cls, value: str) -> str:
        return value.upper()

    @field_validator("request_options")
    @classmethod
    def _check_request_options(cls, value: Dict[str, Any]) -> Dict[str, Any]:
        unknown = set(value) - REQUEST_OPTION_KEYS
        if unknown:
            raise ValueError(f"unsupported request options: {', '.join(sorted(unknown))}")
        headers = value.get("headers", {})
        if not isinstance(headers, dict):
            raise ValueError("request option headers must be an object")
        for name, header in headers.items():
            if not isinstance(name, str) or not isinstance(header, str):
                raise ValueError(f"header {name!r} must be a string")
            if not (name.isascii() and header.isascii()):
                raise ValueError(f"header {name!r} must only contain ASCII characters")
        return value


def coerce_webhook_config(config: Union[WebhookConfig, Dict[str, Any], None]) -> WebhookConfig:
    if isinstance(config, WebhookConfig):
        return config
    if not config or not config.get("url"):
        raise ConfigurationError("No webhook is configured")
    try:
        return WebhookConfig(**config)
    except PydanticValidationError as e:
        raise ConfigurationError(f"Invalid webhook configuration: {e}") from e


def sign(body: bytes, secret: str) -> str:
    """Hex HMAC-SHA256 of ``body``."""
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def verify_signature(body: bytes, signature: str, secret: str) -> bool:
    """Recompute the signature of ``body`` and compare it in constant time."""
    return hmac.compare_digest(sign(body, secret), signature)


def build_payload(job: Job, timestamp: Optional[datetime] = None) -> Dict[str, Any]:
    generation = job.successful_generation
    return {
        "id": job.id,
        "url": job.url,
        "meta": job.meta,
        "location": generation.location if generation else None,
        "timestamp": (timestamp or utcnow()).isoformat(),
    }


def encode_body(payload: Dict[str, Any]) -> bytes:
    return json.dumps(payload, separators=(",", ":"), sort_keys=True).encode("utf-8")


class WebhookDispatcher:
    """Sends one signed request per call. Retrying is left to the queue."""

    def __init__(self, config: Union[WebhookConfig, Dict[str, Any], None],
                 client: Optional[httpx.Client] = None):
        self.config = coerce_webhook_config(config)
        self._client = client

    def build_headers(self, ping_id: str, body: bytes, timestamp: str) -> Dict[str, str]:
        ns = self.config.header_namespace
        headers = dict(self.config.request_options.get("headers", {}))
        headers.update({
            "Content-Type": "application/json",
            f"{ns}Transaction": ping_id,
            f"{ns}Timestamp": timestamp,
        })
        if self.config.secret:
            headers[f"{ns}Signature"] = sign(body, self.config.secret)
        return headers

    def send(self, job: Job, sent_at: Optional[datetime] = None) -> Ping:
        """Deliver the notification for ``job`` and describe the attempt as a Ping.

        Never raises: a request that cannot be built or sent is recorded as a
        ``transport-error`` ping.
        """
        sent_at = sent_at or utcnow()
        ping_id = str(uuid.uuid4())
        payload = build_payload(job, sent_at)
        ping = Ping(
            id=ping_id,
            url=self.config.url,
            method=self.config.method,
            status=TRANSPORT_ERROR,
            sent_at=sent_at,
            payload=payload,
            error=True,
        )

        client = self._client or httpx.Client()
        try:
            body = encode_body(payload)
            headers = self.build_headers(ping_id, body, payload["timestamp"])
            options = {k: v for k, v in self.config.request_options.items() if k != "headers"}
            options.setdefault("timeout", self.config.timeout)
            response = client.request(
                self.config.method,
                self.config.url,
                content=body,
                headers=headers,
                **options,
            )
        except Exception as e:
            logger.warning("Webhook delivery for job %s to %s failed: %s", job.id, self.config.url, e)
            ping.response = {"error": f"{type(e).__name__}: {e}"}
            return ping
        finally:
            if self._client is None:
                client.close()

        ping.status = response.status_code
        ping.error = not response.is_success
        ping.response = _response_body(response)
        if ping.error:
            logger.warning("Webhook for job %s answered HTTP %s", job.id, response.status_code)
        else:
            logger.info("Webhook for job %s delivered (HTTP %s)", job.id, response.status_code)
        return ping


def ping_error(ping: Ping) -> DeliveryError:
    if ping.status == TRANSPORT_ERROR:
        return DeliveryError(f"Webhook request to {ping.url} failed: {ping.response}")
    return DeliveryError(f"Webhook at {ping.url} answered HTTP {ping.status}")


def _response_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text
