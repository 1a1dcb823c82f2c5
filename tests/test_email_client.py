"""Unit tests for email provider clients and URLs."""

import json
import uuid
from datetime import datetime, timezone

import httpx
import pytest

from yoma_opportunity.config import EmailSettings
from yoma_opportunity.email.client import (
    EmailURLFactory,
    HttpEmailProviderClient,
    LoggingEmailProviderClient,
    build_email_client,
)
from yoma_opportunity.email.models import (
    EmailOpportunityExpiration,
    EmailOpportunityItem,
    EmailRecipient,
    EmailType,
)


def _payload() -> EmailOpportunityExpiration:
    return EmailOpportunityExpiration(
        within_next_days=3,
        opportunities=[
            EmailOpportunityItem(
                title="Beach clean-up",
                date_start=datetime(2024, 1, 1, tzinfo=timezone.utc),
                url="https://app.yoma.test/opportunities/1",
            )
        ],
    )


class TestHttpEmailProviderClient:
    """Tests for HttpEmailProviderClient."""

    def test_send_posts_json(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Type, sender, recipients and data are posted to /send with the bearer key."""
        monkeypatch.setenv("YOMA_EMAIL_API_KEY", "k123")
        captured: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            captured.append(request)
            return httpx.Response(202)

        settings = EmailSettings(provider_url="https://mail.example.com")
        transport_client = httpx.Client(
            base_url=settings.provider_url,
            transport=httpx.MockTransport(handler),
            headers={"Authorization": f"Bearer {settings.api_key}"},
        )
        client = HttpEmailProviderClient(settings, client=transport_client)
        client.send(
            EmailType.OPPORTUNITY_EXPIRATION_EXPIRED,
            [EmailRecipient(email="a@acme.test", display_name="A")],
            _payload(),
        )

        assert len(captured) == 1
        request = captured[0]
        assert request.url.path == "/send"
        assert request.headers["Authorization"] == "Bearer k123"
        body = json.loads(request.content)
        assert body["type"] == "Opportunity_Expiration_Expired"
        assert body["sender"] == settings.sender
        assert body["recipients"] == [{"email": "a@acme.test", "display_name": "A"}]
        assert body["data"]["within_next_days"] == 3
        assert body["data"]["opportunities"][0]["title"] == "Beach clean-up"

    def test_send_raises_on_http_error(self) -> None:
        settings = EmailSettings(provider_url="https://mail.example.com")
        transport_client = httpx.Client(
            base_url=settings.provider_url,
            transport=httpx.MockTransport(lambda request: httpx.Response(500)),
        )
        client = HttpEmailProviderClient(settings, client=transport_client)
        with pytest.raises(httpx.HTTPStatusError):
            client.send(EmailType.OPPORTUNITY_POSTED_ADMIN, [EmailRecipient(email="a@acme.test")], _payload())

    def test_send_requires_recipients(self) -> None:
        client = HttpEmailProviderClient(
            EmailSettings(provider_url="https://mail.example.com"),
            client=httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(200))),
        )
        with pytest.raises(ValueError):
            client.send(EmailType.OPPORTUNITY_POSTED_ADMIN, [], _payload())

    def test_requires_provider_url(self) -> None:
        with pytest.raises(ValueError):
            HttpEmailProviderClient(EmailSettings())


class TestBuildEmailClient:
    """Tests for build_email_client."""

    def test_without_provider_logs_only(self) -> None:
        assert isinstance(build_email_client(EmailSettings()), LoggingEmailProviderClient)

    def test_with_provider_uses_http(self) -> None:
        client = build_email_client(EmailSettings(provider_url="https://mail.example.com"))
        assert isinstance(client, HttpEmailProviderClient)


class TestEmailURLFactory:
    """Tests for links embedded in emails."""

    def test_posted_admin_link_has_return_url(self) -> None:
        opp_id, org_id = uuid.uuid4(), uuid.uuid4()
        url = EmailURLFactory("https://app.yoma.test/").opportunity_item_url(
            EmailType.OPPORTUNITY_POSTED_ADMIN, opp_id, org_id
        )
        assert url == (
            f"https://app.yoma.test/organisations/{org_id}/opportunities/{opp_id}/info"
            "?returnUrl=%2Fadmin%2Fopportunities"
        )

    def test_expiration_types_rejected(self) -> None:
        with pytest.raises(ValueError, match="not supported"):
            EmailURLFactory("https://app.yoma.test").opportunity_item_url(
                EmailType.OPPORTUNITY_EXPIRATION_EXPIRED, uuid.uuid4(), uuid.uuid4()
            )
