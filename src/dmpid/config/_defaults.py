"""Default configuration values.

DEFAULT_CONFIG is a plain dict so it can be fed to deep_merge; the merge
functions copy it.
"""

from typing import Any

DEFAULT_CONFIG: dict[str, Any] = {  # pyright: ignore[reportExplicitAny]
    "identifiers": {
        "base_url": "https://doi.org/",
        "shoulder": "10.80030/",
        "api_base_url": "https://api.dmphub.example.org/",
        "landing_page_url": "https://dmphub.example.org/dmps/",
        "max_mint_attempts": 10,
    },
    "versioning": {
        "quiescence_window": 3600,
    },
    "pagination": {
        "default_per_page": 25,
        "max_per_page": 250,
    },
    "storage": {
        "database": "dmpid.db",
    },
    "events": {
        "endpoint": "",
        "source": "dmpid",
        "timeout": 10.0,
    },
    "provenance": {
        "clients": [],
    },
    "logging": {
        "level": "info",
        "format": "json",
        "file": "",
    },
}

ENV_PREFIX = "DMPID_"
