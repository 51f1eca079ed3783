"""Identifier helpers for DMP IDs.

Pure functions that map between the public, DOI-shaped DMP ID and the
partition/sort keys used to address records in the key-value store.

Key formats:
    Partition key: ``DMP#<base-domain>/<doi>`` (e.g. ``DMP#doi.org/10.80030/AB12CD34``)
    Sort key: ``VERSION#latest``, ``VERSION#tombstone`` or ``VERSION#<RFC3339>``
    Provenance key: ``PROVENANCE#<name>``
"""

import re
from typing import Final
from urllib.parse import unquote

import pendulum

from dmpid.exceptions import InvalidIdentifierError

PK_PREFIX: Final = "DMP#"
SK_PREFIX: Final = "VERSION#"
PROVENANCE_PREFIX: Final = "PROVENANCE#"

LATEST: Final = "latest"
TOMBSTONE: Final = "tombstone"
SK_LATEST: Final = f"{SK_PREFIX}{LATEST}"
SK_TOMBSTONE: Final = f"{SK_PREFIX}{TOMBSTONE}"

# Related works a harvester found for the record, awaiting the owner's review
SK_HARVESTER_MODS: Final = "HARVESTER_MODS"

DOI_PATTERN: Final = re.compile(r"[0-9]{2}\.[0-9]{4,}/[A-Za-z0-9/_.-]+")

# Optional host in front of the DOI, e.g. "doi.org/" or "dmphub.example.org/"
_IDENTIFIER_RE: Final = re.compile(
    r"^(?:[A-Za-z0-9-]+(?:\.[A-Za-z0-9-]+)+/)?(?P<doi>"
    + DOI_PATTERN.pattern
    + r")$"
)
_PROTOCOL_RE: Final = re.compile(r"^https?://", re.IGNORECASE)


def base_domain(base_url: str) -> str:
    """Return the base URL without protocol and with a trailing slash.

    Examples:
        >>> base_domain("https://doi.org")
        'doi.org/'
    """
    domain = _PROTOCOL_RE.sub("", base_url.strip())
    return domain if domain.endswith("/") else f"{domain}/"


def _normalize_base_url(base_url: str) -> str:
    url = base_url.strip()
    if not _PROTOCOL_RE.match(url):
        url = f"https://{url}"
    return url if url.endswith("/") else f"{url}/"


def extract_doi(identifier: str) -> str:
    """Extract the bare DOI from any accepted identifier spelling.

    Accepts ``DMP#`` partition keys, URLs with or without protocol,
    ``doi:`` prefixed values and bare DOIs. URL-encoded values are decoded.

    Args:
        identifier: The identifier to parse.

    Returns:
        The bare DOI, e.g. ``10.80030/AB12CD34``.

    Raises:
        InvalidIdentifierError: If the value does not have the DOI shape.
    """
    if not isinstance(identifier, str) or not identifier.strip():  # pyright: ignore[reportUnnecessaryIsInstance]
        msg = "Invalid DMP ID format."
        raise InvalidIdentifierError(msg, identifier=str(identifier))

    value = unquote(identifier.strip())
    value = value.removeprefix(PK_PREFIX)
    value = _PROTOCOL_RE.sub("", value)
    if value[:4].lower() == "doi:":
        value = value[4:]
    value = value.lstrip("/")

    match = _IDENTIFIER_RE.match(value)
    if match is None:
        msg = f"Invalid DMP ID format: {identifier!r}"
        raise InvalidIdentifierError(msg, identifier=identifier)
    return match.group("doi")


def is_valid_identifier(identifier: str) -> bool:
    """Check whether a value can be converted into a partition key."""
    try:
        _ = extract_doi(identifier)
    except InvalidIdentifierError:
        return False
    return True


def to_partition_key(identifier: str, *, base_url: str) -> str:
    """Convert a public DMP ID into its partition key.

    The partition key always uses the configured base domain, so every
    spelling of the same DOI addresses the same record.

    Args:
        identifier: A DMP ID in any accepted spelling.
        base_url: The configured DMP ID base URL (e.g. ``https://doi.org/``).

    Returns:
        The partition key.

    Raises:
        InvalidIdentifierError: If the value does not have the DOI shape.

    Examples:
        >>> to_partition_key("https://doi.org/10.80030/ab12cd34", base_url="https://doi.org/")
        'DMP#doi.org/10.80030/ab12cd34'
        >>> to_partition_key("doi:10.80030/ab12cd34", base_url="https://doi.org/")
        'DMP#doi.org/10.80030/ab12cd34'
    """
    return f"{PK_PREFIX}{base_domain(base_url)}{extract_doi(identifier)}"


def from_partition_key(partition_key: str, *, base_url: str) -> str:
    """Convert a partition key into the public DMP ID URL.

    Args:
        partition_key: A ``DMP#`` partition key.
        base_url: The configured DMP ID base URL.

    Returns:
        The public identifier with protocol.

    Raises:
        InvalidIdentifierError: If the key is not a DMP partition key.

    Examples:
        >>> from_partition_key("DMP#doi.org/10.80030/ab12cd34", base_url="https://doi.org/")
        'https://doi.org/10.80030/ab12cd34'
    """
    if not isinstance(partition_key, str) or not partition_key.startswith(PK_PREFIX):  # pyright: ignore[reportUnnecessaryIsInstance]
        msg = f"Not a DMP partition key: {partition_key!r}"
        raise InvalidIdentifierError(msg, identifier=str(partition_key))
    return f"{_normalize_base_url(base_url)}{extract_doi(partition_key)}"


def strip_partition_prefix(partition_key: str) -> str:
    """Return the partition key without its ``DMP#`` prefix."""
    return partition_key.removeprefix(PK_PREFIX)


def to_dmp_id(partition_key: str, *, base_url: str) -> dict[str, str]:
    """Build the ``dmp_id`` object stored on a record."""
    return {
        "type": "doi",
        "identifier": from_partition_key(partition_key, base_url=base_url),
    }


def to_sort_key(label: str) -> str:
    """Convert a version label into a sort key.

    Args:
        label: ``latest``, ``tombstone`` or an RFC3339 timestamp. Values that
            already carry the ``VERSION#`` prefix are accepted.

    Returns:
        The sort key.

    Raises:
        InvalidIdentifierError: If the label is not one of the accepted forms.

    Examples:
        >>> to_sort_key("latest")
        'VERSION#latest'
        >>> to_sort_key("2024-01-02T03:04:05+00:00")
        'VERSION#2024-01-02T03:04:05+00:00'
    """
    if not isinstance(label, str) or not label.strip():  # pyright: ignore[reportUnnecessaryIsInstance]
        msg = "Invalid version label."
        raise InvalidIdentifierError(msg, identifier=str(label))

    value = label.strip().removeprefix(SK_PREFIX)
    if value in (LATEST, TOMBSTONE):
        return f"{SK_PREFIX}{value}"

    try:
        _ = pendulum.parse(value)
    except ValueError as e:
        msg = f"Invalid version label: {label!r}"
        raise InvalidIdentifierError(msg, identifier=label) from e
    return f"{SK_PREFIX}{value}"


def from_sort_key(sort_key: str) -> str:
    """Convert a sort key back into its version label.

    Raises:
        InvalidIdentifierError: If the value is not a ``VERSION#`` sort key.
    """
    if not isinstance(sort_key, str) or not sort_key.startswith(SK_PREFIX):  # pyright: ignore[reportUnnecessaryIsInstance]
        msg = f"Not a version sort key: {sort_key!r}"
        raise InvalidIdentifierError(msg, identifier=str(sort_key))
    return sort_key.removeprefix(SK_PREFIX)


def is_snapshot_key(sort_key: str) -> bool:
    """Return True for historical ``VERSION#<timestamp>`` sort keys."""
    return sort_key.startswith(SK_PREFIX) and sort_key not in (SK_LATEST, SK_TOMBSTONE)


def provenance_key(name: str) -> str:
    """Return the partition key of a provenance record."""
    return f"{PROVENANCE_PREFIX}{name.removeprefix(PROVENANCE_PREFIX)}"


def provenance_name(key: str) -> str:
    """Return the provenance name from its partition key."""
    return key.removeprefix(PROVENANCE_PREFIX)


def format_provenance_identifier(
    value: str,
    *,
    name: str,
    homepage: str | None = None,
    callback_uri: str | None = None,
) -> str:
    """Format a provenance system's local identifier for a record.

    DOI URLs are returned unchanged. Anything else is reduced to the
    system-local part and prefixed with the provenance name.

    Args:
        value: The identifier the provenance system uses for the record.
        name: The provenance name.
        homepage: The provenance homepage, stripped from URL values.
        callback_uri: The provenance callback URI, stripped from URL values.

    Returns:
        The formatted identifier.

    Examples:
        >>> format_provenance_identifier("12345", name="example")
        'example#12345'
        >>> format_provenance_identifier(
        ...     "https://example.com/callback/12345",
        ...     name="example",
        ...     callback_uri="https://example.com/callback",
        ... )
        'example#12345'
    """
    if DOI_PATTERN.search(value) and _PROTOCOL_RE.match(value):
        return value

    local = value.lower()
    for prefix in (callback_uri, homepage):
        if prefix:
            local = local.replace(prefix.lower(), "")
    local = _PROTOCOL_RE.sub("", local).removeprefix("/")
    return f"{provenance_name(name)}#{local}"
