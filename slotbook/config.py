"""
Configuration management using Pydantic models loaded from YAML.
"""

from pathlib import Path
from typing import Dict, List, Optional

import pendulum
import yaml
from pydantic import BaseModel, Field, field_validator

from .domain.exceptions import ConfigError
from .domain.settings import AvailabilitySettings

MAX_FEEDS_PER_PAGE = 5


class FetchConfig(BaseModel):
    """Feed download limits."""
    timeout_seconds: float = 5.0
    max_redirects: int = 5
    max_bytes: int = 5 * 1024 * 1024
    user_agent: str = "slotbook/1.0"

    @field_validator("timeout_seconds")
    @classmethod
    def validate_timeout(cls, value: float) -> float:
        if not 0 < value <= 30:
            raise ValueError("timeout_seconds must be between 0 and 30")
        return value

    @field_validator("max_redirects", "max_bytes")
    @classmethod
    def validate_non_negative(cls, value: int) -> int:
        if value < 0:
            raise ValueError("value must not be negative")
        return value


class WorkflowConfig(BaseModel):
    """Confirmation workflow settings."""
    ttl_minutes: int = 60
    purge_interval_minutes: int = 5
    database_path: Optional[Path] = None  # None keeps requests in memory

    @field_validator("ttl_minutes", "purge_interval_minutes")
    @classmethod
    def validate_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("value must be greater than zero")
        return value


class PageConfig(BaseModel):
    """A published scheduling page."""
    ref: str
    owner_name: str
    owner_email: str = ""
    feed_urls: List[str] = Field(default_factory=list)
    availability: AvailabilitySettings = Field(default_factory=AvailabilitySettings)
    mock_feeds: Dict[str, Path] = Field(default_factory=dict)  # feed URL -> local .ics

    @field_validator("ref")
    @classmethod
    def validate_ref(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Page ref must not be empty")
        return value

    @field_validator("feed_urls")
    @classmethod
    def dedupe_feed_urls(cls, value: List[str]) -> List[str]:
        """Preserve order while removing duplicates; at most five feeds."""
        seen: set[str] = set()
        deduped: List[str] = []
        for url in value:
            url = url.strip()
            if url and url not in seen:
                deduped.append(url)
                seen.add(url)
        if len(deduped) > MAX_FEEDS_PER_PAGE:
            raise ValueError(
                f"A page may list at most {MAX_FEEDS_PER_PAGE} feed URLs, got {len(deduped)}"
            )
        return deduped


class AppConfig(BaseModel):
    """Application configuration."""
    timezone: str = "UTC"
    fetch: FetchConfig = Field(default_factory=FetchConfig)
    workflow: WorkflowConfig = Field(default_factory=WorkflowConfig)
    pages: List[PageConfig] = Field(default_factory=list)

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        """Reject names pendulum cannot resolve."""
        try:
            pendulum.timezone(value)
        except Exception as exc:
            raise ValueError(f"Unknown timezone: {value}") from exc
        return value

    @field_validator("pages")
    @classmethod
    def validate_pages(cls, value: List[PageConfig]) -> List[PageConfig]:
        """Ensure page refs are unique."""
        seen: set[str] = set()
        for page in value:
            key = page.ref.lower()
            if key in seen:
                raise ValueError(f"Duplicate page ref detected: {page.ref}")
            seen.add(key)
        return value

    @classmethod
    def load_from_yaml(cls, config_path: Path) -> "AppConfig":
        """
        Load configuration from YAML file.

        Args:
            config_path: Path to the YAML config file

        Returns:
            AppConfig instance

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If config is invalid
        """
        if not config_path.exists():
            raise FileNotFoundError(
                f"Config file not found: {config_path}\n"
                f"Please create a config.yaml file. See config.example.yaml for reference."
            )

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML in {config_path}: {exc}") from exc

        if not isinstance(data, dict):
            raise ValueError("Config file must contain a mapping at the root level.")

        config = cls(**data)
        return config.with_paths_relative_to(config_path.parent)

    def with_paths_relative_to(self, base: Path) -> "AppConfig":
        """Resolve relative mock feed and database paths against ``base``."""
        pages = []
        for page in self.pages:
            mock_feeds = {
                url: path if path.is_absolute() else base / path
                for url, path in page.mock_feeds.items()
            }
            pages.append(page.model_copy(update={"mock_feeds": mock_feeds}))

        workflow = self.workflow
        if workflow.database_path is not None and not workflow.database_path.is_absolute():
            workflow = workflow.model_copy(update={"database_path": base / workflow.database_path})

        return self.model_copy(update={"pages": pages, "workflow": workflow})

    def find_page(self, ref: str) -> PageConfig | None:
        """Find a page by its ref (case-insensitive)."""
        for page in self.pages:
            if page.ref.lower() == ref.lower():
                return page
        return None

    def get_page(self, ref: str) -> PageConfig:
        """
        Look up a page by ref.

        Raises:
            ConfigError: If no page has that ref
        """
        page = self.find_page(ref)
        if page is None:
            raise ConfigError(f"Unknown page: '{ref}'")
        return page


def get_default_config_path() -> Path:
    """Get the default configuration file path."""
    # Look for config.yaml in current directory
    current_dir = Path.cwd()
    config_path = current_dir / "config.yaml"

    if not config_path.exists():
        # Try in the project root (parent of the package)
        project_root = Path(__file__).parent.parent
        config_path = project_root / "config.yaml"

    return config_path
