"""Email provider clients and the links embedded in opportunity emails."""

import logging
from abc import ABC, abstractmethod
from typing import Optional
from urllib.parse import urlencode
from uuid import UUID

import httpx
from pydantic import BaseModel

from yoma_opportunity.config import EmailSettings
from yoma_opportunity.email.models import EmailRecipient, EmailType

logger = logging.getLogger(__name__)


class EmailProviderClient(ABC):
    """Delivers a templated email of the given type to a list of recipients."""

    @abstractmethod
    def send(self, email_type: EmailType, recipients: list[EmailRecipient], data: BaseModel) -> None:
        pass


class HttpEmailProviderClient(EmailProviderClient):
    """Posts email requests as JSON to the provider's send endpoint."""

    def __init__(self, settings: EmailSettings, client: Optional[httpx.Client] = None):
        if not settings.provider_url:
            raise ValueError("Email provider_url is required")
        self._settings = settings
        headers = {"User-Agent": "yoma-opportunity/0.1"}
        if settings.api_key:
            headers["Authorization"] = f"Bearer {settings.api_key}"
        self._client = client or httpx.Client(
            base_url=settings.provider_url,
            timeout=settings.timeout_seconds,
            headers=headers,
        )

    def send(self, email_type: EmailType, recipients: list[EmailRecipient], data: BaseModel) -> None:
        if not recipients:
            raise ValueError("At least one recipient is required")
        payload = {
            "type": email_type.value,
            "sender": self._settings.sender,
            "recipients": [r.model_dump(mode="json") for r in recipients],
            "data": data.model_dump(mode="json"),
        }
        resp = self._client.post("/send", json=payload)
        resp.raise_for_status()
        logger.debug("Email '%s' accepted for %d recipient(s)", email_type.value, len(recipients))


class LoggingEmailProviderClient(EmailProviderClient):
    """Logs emails instead of delivering them; used when no provider is configured."""

    def send(self, email_type: EmailType, recipients: list[EmailRecipient], data: BaseModel) -> None:
        logger.info(
            "Email '%s' to %s: %s",
            email_type.value,
            ", ".join(r.email for r in recipients),
            data.model_dump_json(),
        )


def build_email_client(settings: EmailSettings) -> EmailProviderClient:
    if settings.provider_url:
        return HttpEmailProviderClient(settings)
    return LoggingEmailProviderClient()


class EmailURLFactory:
    """Links back into the web app for each email type."""

    def __init__(self, app_base_url: str):
        self._base = app_base_url.strip().rstrip("/")

    def opportunity_item_url(self, email_type: EmailType, opportunity_id: UUID, organization_id: UUID) -> str:
        info = f"{self._base}/organisations/{organization_id}/opportunities/{opportunity_id}/info"
        if email_type == EmailType.OPPORTUNITY_POSTED_ADMIN:
            return f"{info}?{urlencode({'returnUrl': '/admin/opportunities'})}"
        raise ValueError(f"Email type '{email_type.value}' not supported")
