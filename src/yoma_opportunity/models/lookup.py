"""Reference data: enumerated lookups and generic lookup items."""

from enum import Enum
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class Status(str, Enum):
    """Opportunity lifecycle status."""

    ACTIVE = "Active"
    INACTIVE = "Inactive"
    EXPIRED = "Expired"
    DELETED = "Deleted"


class OrganizationStatus(str, Enum):
    ACTIVE = "Active"
    INACTIVE = "Inactive"
    DECLINED = "Declined"
    DELETED = "Deleted"


class PublishedState(str, Enum):
    """Public visibility derived from status, start date and organization status."""

    NOT_STARTED = "NotStarted"
    ACTIVE = "Active"
    EXPIRED = "Expired"


class TimeIntervalOption(str, Enum):
    MINUTE = "Minute"
    HOUR = "Hour"
    DAY = "Day"
    WEEK = "Week"
    MONTH = "Month"


class VerificationMethod(str, Enum):
    MANUAL = "Manual"
    AUTOMATIC = "Automatic"


class VerificationType(str, Enum):
    FILE_UPLOAD = "FileUpload"
    PICTURE = "Picture"
    LOCATION = "Location"
    VOICE_NOTE = "VoiceNote"


class MyOpportunityAction(str, Enum):
    VIEWED = "Viewed"
    SAVED = "Saved"
    VERIFICATION = "Verification"


class VerificationStatus(str, Enum):
    PENDING = "Pending"
    REJECTED = "Rejected"
    COMPLETED = "Completed"


class LookupKind(str, Enum):
    """Reference tables stored in the lookups table."""

    OPPORTUNITY_STATUS = "opportunity_status"
    ORGANIZATION_STATUS = "organization_status"
    OPPORTUNITY_TYPE = "opportunity_type"
    OPPORTUNITY_CATEGORY = "opportunity_category"
    OPPORTUNITY_DIFFICULTY = "opportunity_difficulty"
    ENGAGEMENT_TYPE = "engagement_type"
    VERIFICATION_TYPE = "verification_type"
    TIME_INTERVAL = "time_interval"
    COUNTRY = "country"
    LANGUAGE = "language"
    SKILL = "skill"
    MY_OPPORTUNITY_ACTION = "my_opportunity_action"
    VERIFICATION_STATUS = "verification_status"


# Seeded on schema creation; other kinds are reference data loaded via the CLI
ENUM_LOOKUPS: dict[LookupKind, type[Enum]] = {
    LookupKind.OPPORTUNITY_STATUS: Status,
    LookupKind.ORGANIZATION_STATUS: OrganizationStatus,
    LookupKind.TIME_INTERVAL: TimeIntervalOption,
    LookupKind.VERIFICATION_TYPE: VerificationType,
    LookupKind.MY_OPPORTUNITY_ACTION: MyOpportunityAction,
    LookupKind.VERIFICATION_STATUS: VerificationStatus,
}

COUNTRY_WORLDWIDE = "Worldwide"
CATEGORY_OTHER = "Other"


class LookupItem(BaseModel):
    """Row of a reference table. Extra attributes (codes, descriptions) live in data."""

    id: UUID
    name: str
    data: dict[str, Any] = Field(default_factory=dict)

    @property
    def code(self) -> Optional[str]:
        return self.data.get("code")
