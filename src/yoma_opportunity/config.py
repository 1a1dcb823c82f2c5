"""Application settings loaded from YAML."""

import os
from pathlib import Path
from typing import Optional

try:
    import yaml
except ModuleNotFoundError as e:
    raise ModuleNotFoundError(
        "PyYAML is required for settings loading. Run: pip install -e ."
    ) from e
from pydantic import BaseModel, Field


class ScheduleJobOptions(BaseModel):
    """Batch sizes and windows for the opportunity background jobs."""

    opportunity_expiration_batch_size: int = Field(default=1000, gt=0)
    opportunity_expiration_notification_interval_in_days: int = Field(default=3, ge=0)
    opportunity_deletion_batch_size: int = Field(default=1000, gt=0)
    opportunity_deletion_interval_in_days: int = Field(default=90, ge=0)


class EmailSettings(BaseModel):
    """Email provider endpoint. Without provider_url, emails are only logged."""

    provider_url: Optional[str] = None
    api_key_env_var: str = "YOMA_EMAIL_API_KEY"
    sender: str = "noreply@yoma.world"
    timeout_seconds: float = 30.0

    @property
    def api_key(self) -> Optional[str]:
        return os.environ.get(self.api_key_env_var)


class BlobSettings(BaseModel):
    """Public base URL per blob storage type."""

    base_urls: dict[str, str] = Field(
        default_factory=lambda: {"Public": "https://storage.yoma.world/public"},
    )


class AppSettings(BaseModel):
    """Top-level settings."""

    app_base_url: str = "http://localhost:3000"
    database_path: str = "yoma_opportunity.db"
    log_level: str = "INFO"
    schedule_jobs: ScheduleJobOptions = Field(default_factory=ScheduleJobOptions)
    email: EmailSettings = Field(default_factory=EmailSettings)
    blob: BlobSettings = Field(default_factory=BlobSettings)

    @classmethod
    def from_yaml(cls, path: str | Path) -> "AppSettings":
        """Load settings from YAML file. Missing sections fall back to defaults."""
        data = yaml.safe_load(Path(path).read_text()) or {}
        # tolerate the camel-cased section name used by the API host
        if "schedule_jobs" not in data and "ScheduleJobOptions" in data:
            data["schedule_jobs"] = data.pop("ScheduleJobOptions")
        return cls.model_validate(data)
