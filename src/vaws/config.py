"""Dashboard configuration models and loader."""

import tomllib
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .common.exceptions import ConfigurationError
from .common.logging import get_logger
from .common.utils import parse_tag_filter

logger = get_logger(__name__)

DEFAULT_JUMP_HOST_TAGS: tuple[str, ...] = (
    "vaws:jump-host=true",
    "Name=bastion",
    "Name=jump-host",
)
DEFAULT_JUMP_HOST_NAMES: tuple[str, ...] = ("bastion", "jump-host", "jumphost")


class JumpHostDefaults(BaseModel):
    """Process-wide jump host heuristics, shared by every profile."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    jump_host_tags: tuple[str, ...] = Field(
        default=DEFAULT_JUMP_HOST_TAGS, description="Tag filters, highest priority first"
    )
    jump_host_names: tuple[str, ...] = Field(
        default=DEFAULT_JUMP_HOST_NAMES, description="Host names, highest priority first"
    )

    @field_validator("jump_host_tags")
    @classmethod
    def validate_tags(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        """Validate every tag is ``Key`` or ``Key=Value``."""
        for tag in v:
            parse_tag_filter(tag)
        return v

    @field_validator("jump_host_names")
    @classmethod
    def validate_names(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        """Drop blank names."""
        return tuple(name.strip() for name in v if name.strip())


class ProfileConfig(BaseModel):
    """Per-profile overrides."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    jump_host: str | None = Field(
        default=None, description="Instance ID or name of the jump host to always use"
    )
    jump_host_tag: str | None = Field(
        default=None, description="Tag filter (Key=Value) identifying jump hosts"
    )
    vpc_endpoint_id: str | None = Field(
        default=None, description="Private endpoint to route through (cross-account)"
    )

    @field_validator("jump_host_tag")
    @classmethod
    def validate_tag(cls, v: str | None) -> str | None:
        if v:
            parse_tag_filter(v)
        return v or None


class DashboardConfig(BaseModel):
    """Configuration for the loader and the tunnel orchestrator."""

    model_config = ConfigDict(validate_assignment=True, extra="forbid")

    concurrency_limit: int = Field(
        default=10, ge=1, le=200, description="Maximum concurrent detail fetches"
    )
    page_size: int = Field(default=25, ge=1, le=1000, description="Listing page size")
    call_timeout: float = Field(
        default=30.0, gt=0, description="Deadline for a single remote call, seconds"
    )
    load_timeout: float = Field(
        default=60.0, gt=0, description="Deadline for a whole paginated load, seconds"
    )
    jump_host_timeout: float = Field(
        default=60.0, gt=0, description="Deadline for jump host discovery, seconds"
    )
    session_timeout: float = Field(
        default=30.0, gt=0, description="Deadline for session establishment, seconds"
    )
    max_tunnels: int = Field(default=20, ge=1, le=100, description="Maximum active tunnels")
    stream_buffer: int = Field(
        default=10, ge=1, description="Batches buffered before a stream producer blocks"
    )
    defaults: JumpHostDefaults = Field(default_factory=JumpHostDefaults)
    profiles: dict[str, ProfileConfig] = Field(default_factory=dict)

    def profile(self, name: str | None) -> ProfileConfig:
        """Return the overrides for ``name``, or an empty profile."""
        if name and name in self.profiles:
            return self.profiles[name]
        return ProfileConfig()

    def get_jump_host(self, profile: str | None) -> str | None:
        return self.profile(profile).jump_host

    def get_jump_host_tag(self, profile: str | None) -> str | None:
        return self.profile(profile).jump_host_tag

    def get_vpc_endpoint_id(self, profile: str | None) -> str | None:
        return self.profile(profile).vpc_endpoint_id


def load_config(path: str | Path | None) -> DashboardConfig:
    """Load a DashboardConfig from a TOML file.

    A missing file yields the defaults.

    Args:
        path: Path to the TOML file, or None

    Returns:
        Validated configuration

    Raises:
        ConfigurationError: If the file cannot be parsed or fails validation
    """
    if path is None or not Path(path).exists():
        logger.debug("No configuration file, using defaults", path=str(path))
        return DashboardConfig()

    try:
        with open(path, "rb") as f:
            raw: dict[str, Any] = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise ConfigurationError(f"Cannot read configuration {path}: {e}") from e

    try:
        config = DashboardConfig.model_validate(raw)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration {path}: {e}") from e

    logger.info("Loaded configuration", path=str(path), profiles=len(config.profiles))
    return config
