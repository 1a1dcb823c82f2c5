"""Outbound email: provider clients, payloads and links."""

from yoma_opportunity.email.client import (
    EmailProviderClient,
    EmailURLFactory,
    HttpEmailProviderClient,
    LoggingEmailProviderClient,
    build_email_client,
)
from yoma_opportunity.email.models import (
    EmailOpportunityAnnounced,
    EmailOpportunityExpiration,
    EmailOpportunityItem,
    EmailRecipient,
    EmailType,
)

__all__ = [
    "EmailOpportunityAnnounced",
    "EmailOpportunityExpiration",
    "EmailOpportunityItem",
    "EmailProviderClient",
    "EmailRecipient",
    "EmailType",
    "EmailURLFactory",
    "HttpEmailProviderClient",
    "LoggingEmailProviderClient",
    "build_email_client",
]
