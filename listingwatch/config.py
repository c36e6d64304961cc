"""Application configuration.

Loaded once at process start from a JSON file (``config.json`` by default)
and passed explicitly to whatever needs it. Telegram credentials can come
from the file or, preferably, from the environment / a ``.env`` file.
"""

import json
import logging
import os
import re
from pathlib import Path
from typing import Dict, List, Literal, Optional, Tuple, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv
from pydantic import (
    BaseModel, ConfigDict, Field, ValidationError, ValidationInfo, field_validator,
)

from listingwatch.api.schemas import LAST_UPDATED_KEY
from listingwatch.db.store import DEFAULT_DATA_FILE, DEFAULT_RETENTION_CAP
from listingwatch.pipeline.extractor import DEFAULT_ITEM_PATTERN, compile_pattern
from listingwatch.resilience.observation_guard import MIN_SIGNIFICANT_SIZE

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = os.environ.get("LISTINGWATCH_CONFIG", "config.json")
DEFAULT_TIMEZONE = "Asia/Jerusalem"
PEAK_HOURS = [9, 13, 18, 22]

# Tried in order; the first selector that yields listing links wins
DEFAULT_LINK_SELECTORS = [
    'a[href*="/vehicles/item/"]',
    'a[href*="/item/"]',
    'a[href*="vehicle"]',
    '[data-testid*="item"] a',
    '[data-testid*="listing"] a',
    ".feeditem a",
    ".listing a",
]


class ConfigError(Exception):
    """Configuration is missing or invalid."""


class ProjectConfig(BaseModel):
    """One monitored search: a topic name and the results page to scrape."""
    topic: str
    url: str
    disabled: bool = False

    @field_validator("topic")
    @classmethod
    def _check_topic(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("topic must not be empty")
        if value == LAST_UPDATED_KEY:
            raise ValueError(f"'{LAST_UPDATED_KEY}' is reserved and can't be a topic name")
        return value


class Credentials(BaseModel):
    api_token: Optional[str] = None
    chat_id: Optional[str] = None

    @property
    def complete(self) -> bool:
        return bool(self.api_token and self.chat_id)


class NotificationWindow(BaseModel):
    """When a cycle may send notifications.

    ``peak_hours`` allows only the listed hours; ``continuous`` allows every
    hour from ``start_hour`` to ``end_hour`` inclusive, wrapping past
    midnight when ``start_hour > end_hour``.
    """
    mode: Literal["peak_hours", "continuous"] = "peak_hours"
    peak_hours: List[int] = PEAK_HOURS
    start_hour: int = Field(8, ge=0, le=23)
    end_hour: int = Field(23, ge=0, le=23)
    timezone: str = DEFAULT_TIMEZONE

    @field_validator("peak_hours")
    @classmethod
    def _check_hours(cls, value: List[int]) -> List[int]:
        bad = [h for h in value if not 0 <= h <= 23]
        if bad:
            raise ValueError(f"hours must be between 0 and 23, got {bad}")
        return value

    @field_validator("timezone")
    @classmethod
    def _check_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError, OSError) as e:
            raise ValueError(f"unknown timezone {value!r}") from e
        return value


class DetectionPolicy(BaseModel):
    item_pattern: str = DEFAULT_ITEM_PATTERN
    min_significant_size: int = Field(MIN_SIGNIFICANT_SIZE, ge=0)
    retention_cap: Optional[int] = Field(DEFAULT_RETENTION_CAP, ge=0)

    @field_validator("item_pattern")
    @classmethod
    def _check_pattern(cls, value: str) -> str:
        try:
            compiled = compile_pattern(value)
        except re.error as e:
            raise ValueError(f"invalid item pattern {value!r}: {e}") from e
        if compiled.groups < 1:
            raise ValueError(f"item pattern {value!r} needs a capture group for the listing ID")
        return value


# Placeholders each template is formatted with
TEMPLATE_FIELDS: Dict[str, Tuple[str, ...]] = {
    "new_listing": ("topic", "url"),
    "remainder": ("topic", "count"),
    "nothing_new": ("topic",),
    "failure": ("topic", "error"),
}


class MessageTemplates(BaseModel):
    new_listing: str = "New listing for {topic}: {url}"
    remainder: str = "{count} more new listings for {topic}"
    nothing_new: str = "Scan of {topic}: no new listings"
    failure: str = "Scanner failed for {topic}: {error}"

    @field_validator("new_listing", "remainder", "nothing_new", "failure")
    @classmethod
    def _check_placeholders(cls, value: str, info: ValidationInfo) -> str:
        sample = {name: 0 if name == "count" else "x" for name in TEMPLATE_FIELDS[info.field_name]}
        try:
            value.format(**sample)
        except (KeyError, IndexError, ValueError) as e:
            allowed = ", ".join("{%s}" % name for name in sample)
            raise ValueError(f"bad placeholder in template {value!r}: {e} (allowed: {allowed})") from e
        return value


class DeliveryPolicy(BaseModel):
    max_per_cycle: int = Field(10, ge=0)
    message_delay_seconds: float = Field(0.5, ge=0)
    templates: MessageTemplates = Field(default_factory=MessageTemplates)


class AcquisitionConfig(BaseModel):
    base_delay: float = Field(2.0, ge=0)
    timeout: float = Field(60.0, gt=0)
    user_agent: str = (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    )
    allowed_host: Optional[str] = "yad2.co.il"
    link_selectors: List[str] = DEFAULT_LINK_SELECTORS
    fallback_path: Optional[str] = "/vehicles/"


class StorageConfig(BaseModel):
    backend: Literal["json", "sqlite"] = "json"
    path: str = DEFAULT_DATA_FILE


class AppConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    projects: List[ProjectConfig] = []
    api_token: Optional[str] = Field(None, alias="telegramApiToken")
    chat_id: Optional[Union[str, int]] = Field(None, alias="chatId")
    notification_window: NotificationWindow = Field(default_factory=NotificationWindow)
    detection: DetectionPolicy = Field(default_factory=DetectionPolicy)
    delivery: DeliveryPolicy = Field(default_factory=DeliveryPolicy)
    acquisition: AcquisitionConfig = Field(default_factory=AcquisitionConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)

    @field_validator("projects")
    @classmethod
    def _unique_topics(cls, value: List[ProjectConfig]) -> List[ProjectConfig]:
        topics = [p.topic for p in value]
        duplicates = sorted({t for t in topics if topics.count(t) > 1})
        if duplicates:
            raise ValueError(f"duplicate topics: {duplicates}")
        return value

    @property
    def enabled_projects(self) -> List[ProjectConfig]:
        return [p for p in self.projects if not p.disabled]

    @property
    def credentials(self) -> Credentials:
        """Credentials with environment variables taking precedence."""
        chat_id = os.environ.get("CHAT_ID") or self.chat_id
        return Credentials(
            api_token=os.environ.get("TELEGRAM_API_TOKEN") or self.api_token,
            chat_id=str(chat_id) if chat_id is not None else None,
        )


def load_config(path: Union[str, Path, None] = None) -> AppConfig:
    """Load and validate the configuration file.

    Raises ConfigError if the file is missing, isn't JSON, or doesn't validate.
    """
    load_dotenv()
    config_path = Path(path or DEFAULT_CONFIG_PATH)

    if not config_path.exists():
        raise ConfigError(f"Config file not found at {config_path}. Please create config.json")

    try:
        with open(config_path, encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        raise ConfigError(f"Could not read {config_path}: {e}") from e

    try:
        config = AppConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid config in {config_path}: {e}") from e

    logger.info(
        "Loaded %d projects (%d enabled) from %s",
        len(config.projects), len(config.enabled_projects), config_path,
    )
    return config


def manual_override_from_env() -> bool:
    """A manually dispatched CI run always notifies."""
    return os.environ.get("GITHUB_EVENT_NAME") == "workflow_dispatch"
