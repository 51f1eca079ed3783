"""Configuration models.

Frozen Pydantic models for every configuration section. The root
``RegistryConfig`` is injected into registry components at construction.
"""

import re
from enum import StrEnum
from typing import ClassVar

from pydantic import BaseModel, ConfigDict, Field, field_validator

_SHOULDER_RE = re.compile(r"^[0-9]{2}\.[0-9]{4,}/?$")
_PROTOCOL_RE = re.compile(r"^https?://", re.IGNORECASE)


def _as_base_url(value: str) -> str:
    url = value.strip()
    if not _PROTOCOL_RE.match(url):
        url = f"https://{url}"
    return url if url.endswith("/") else f"{url}/"


class LogLevel(StrEnum):
    """Log level threshold values.

    Values are ordered from most verbose (debug) to least verbose (error).
    """

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class LogFormat(StrEnum):
    """Log output format values."""

    JSON = "json"
    TEXT = "text"


class LoggingConfig(BaseModel):
    """Logging configuration section.

    Attributes:
        level: Log level threshold.
        format: Log output format.
        file: Path to log file (empty writes to stderr).
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True, extra="ignore")

    level: LogLevel = LogLevel.INFO
    format: LogFormat = LogFormat.JSON
    file: str = ""


class IdentifierConfig(BaseModel):
    """Identifier configuration section.

    Attributes:
        base_url: Base URL of public DMP IDs (e.g. ``https://doi.org/``).
        shoulder: DOI prefix new identifiers are minted under.
        api_base_url: Base URL of the registry API, used in version links.
        landing_page_url: Base URL of the human-readable landing pages.
        max_mint_attempts: Candidate identifiers tried before giving up.
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True, extra="ignore")

    base_url: str = "https://doi.org/"
    shoulder: str = "10.80030/"
    api_base_url: str = "https://api.dmphub.example.org/"
    landing_page_url: str = "https://dmphub.example.org/dmps/"
    max_mint_attempts: int = Field(default=10, ge=1, le=10)

    @field_validator("base_url", "api_base_url", "landing_page_url")
    @classmethod
    def _normalize_url(cls, value: str) -> str:
        if not value.strip():
            msg = "URL must not be empty"
            raise ValueError(msg)
        return _as_base_url(value)

    @field_validator("shoulder")
    @classmethod
    def _check_shoulder(cls, value: str) -> str:
        shoulder = value.strip()
        if not _SHOULDER_RE.match(shoulder):
            msg = "shoulder must look like a DOI prefix such as 10.80030/"
            raise ValueError(msg)
        return shoulder if shoulder.endswith("/") else f"{shoulder}/"


class VersioningConfig(BaseModel):
    """Versioning configuration section.

    Attributes:
        quiescence_window: Seconds during which repeated owner edits
            coalesce into the latest record instead of producing a snapshot.
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True, extra="ignore")

    quiescence_window: int = Field(default=3600, ge=0)


class PaginationConfig(BaseModel):
    """Pagination configuration section."""

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True, extra="ignore")

    default_per_page: int = Field(default=25, ge=1)
    max_per_page: int = Field(default=250, ge=1)


class StorageConfig(BaseModel):
    """Storage configuration section.

    Attributes:
        database: Path to the SQLite database file.
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True, extra="ignore")

    database: str = "dmpid.db"


class EventsConfig(BaseModel):
    """Change event configuration section.

    Attributes:
        endpoint: URL events are POSTed to (empty disables publication).
        source: Default event source name.
        timeout: HTTP timeout in seconds.
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True, extra="ignore")

    endpoint: str = ""
    source: str = "dmpid"
    timeout: float = Field(default=10.0, gt=0)


class ProvenanceClient(BaseModel):
    """Maps an authenticated client to a registered provenance name."""

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True, extra="ignore")

    issuer: str = Field(min_length=1)
    client_id: str = Field(min_length=1)
    name: str = Field(min_length=1)


class ProvenanceConfig(BaseModel):
    """Provenance configuration section."""

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True, extra="ignore")

    clients: tuple[ProvenanceClient, ...] = ()


class RegistryConfig(BaseModel):
    """Root configuration for the DMP ID registry."""

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True, extra="ignore")

    identifiers: IdentifierConfig = IdentifierConfig()
    versioning: VersioningConfig = VersioningConfig()
    pagination: PaginationConfig = PaginationConfig()
    storage: StorageConfig = StorageConfig()
    events: EventsConfig = EventsConfig()
    provenance: ProvenanceConfig = ProvenanceConfig()
    logging: LoggingConfig = LoggingConfig()


class RegistryConfigStrict(RegistryConfig):
    """Root configuration schema that rejects unknown top-level keys."""

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True, extra="forbid")
