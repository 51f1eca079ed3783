# pyright: reportAny=false, reportExplicitAny=false
"""Record-level helpers shared by the read and write paths.

A stored DMP record is a plain JSON-compatible dict. The registry keeps its
bookkeeping on the record itself in a closed set of internal fields; callers
never see them. ``project_public`` is the single place that removes them.
"""

import copy
import hashlib
import re
from collections import Counter
from typing import Any, Final

type Record = dict[str, Any]

RELATED_IDENTIFIERS: Final = "dmproadmap_related_identifiers"
VERSIONS: Final = "dmphub_versions"
MODIFICATIONS: Final = "dmphub_modifications"

# Top-level fields owned by the registry
INTERNAL_FIELDS: Final = frozenset({
    "PK",
    "SK",
    "dmphub_provenance_id",
    "dmphub_provenance_identifier",
    "dmphub_owner_id",
    "dmphub_owner_org",
    "dmphub_modification_day",
    "dmphub_fingerprint",
    "dmphub_tombstoned_at",
})

# Tags the registry puts on related identifiers contributed by non-owners
RELATED_INTERNAL_FIELDS: Final = frozenset({
    "dmphub_provenance_id",
    "dmphub_created_at",
})

# Fields that change on every write and never count as a content change
BOOKKEEPING_FIELDS: Final = frozenset({
    "SK",
    "created",
    "modified",
    "registered",
    "dmphub_modification_day",
    VERSIONS,
})

_WHITESPACE_RE: Final = re.compile(r"\s+")
_PROTOCOL_RE: Final = re.compile(r"^https?://", re.IGNORECASE)


def project_public(item: Record) -> Record:
    """Project a stored item onto the fields callers may see.

    Removes ``INTERNAL_FIELDS`` from the record and ``RELATED_INTERNAL_FIELDS``
    from each related identifier. ``dmphub_versions`` is kept.

    Args:
        item: A stored item. It is not modified.

    Returns:
        A new dict safe to return to callers.
    """
    public = {
        key: copy.deepcopy(value)
        for key, value in item.items()
        if key not in INTERNAL_FIELDS
    }
    related = public.get(RELATED_IDENTIFIERS)
    if isinstance(related, list):
        public[RELATED_IDENTIFIERS] = [
            _strip_related_tags(entry) for entry in related
        ]
    return public


def strip_submitted(document: Record) -> Record:
    """Drop registry-owned fields a caller tried to submit."""
    cleaned = {
        key: copy.deepcopy(value)
        for key, value in document.items()
        if key not in INTERNAL_FIELDS and key != VERSIONS
    }
    related = cleaned.get(RELATED_IDENTIFIERS)
    if isinstance(related, list):
        cleaned[RELATED_IDENTIFIERS] = [
            _strip_related_tags(entry) for entry in related
        ]
    return cleaned


def _strip_related_tags(entry: Any) -> Any:
    if not isinstance(entry, dict):
        return entry
    return {k: v for k, v in entry.items() if k not in RELATED_INTERNAL_FIELDS}


def same_content(current: Record, candidate: Record) -> bool:
    """Compare two records, ignoring bookkeeping fields and related-work tags."""
    return _comparable(current) == _comparable(candidate)


def _comparable(record: Record) -> Record:
    result = {k: v for k, v in record.items() if k not in BOOKKEEPING_FIELDS}
    related = result.get(RELATED_IDENTIFIERS)
    if isinstance(related, list):
        result[RELATED_IDENTIFIERS] = [
            {k: v for k, v in entry.items() if k != "dmphub_created_at"}
            if isinstance(entry, dict)
            else entry
            for entry in related
        ]
    return result


def related_identifiers(record: Record) -> list[dict[str, Any]]:
    """Return the record's related identifiers, skipping malformed entries."""
    related = record.get(RELATED_IDENTIFIERS)
    if not isinstance(related, list):
        return []
    return [entry for entry in related if isinstance(entry, dict)]


def _dig(data: Any, *path: str) -> Any:
    for part in path:
        if not isinstance(data, dict):
            return None
        data = data.get(part)
    return data


def extract_owner_id(document: Record) -> str | None:
    """Return the contact's identifier, else the first contributor identifier."""
    owner = _dig(document, "contact", "contact_id", "identifier")
    if owner:
        return str(owner)

    contributors = document.get("contributor")
    if not isinstance(contributors, list):
        return None
    for contributor in contributors:
        identifier = _dig(contributor, "contributor_id", "identifier")
        if identifier:
            return str(identifier)
    return None


def extract_owner_org(document: Record) -> str | None:
    """Infer the organization that owns a DMP.

    Uses the contact's affiliation when present. Otherwise picks the
    affiliation shared by the most contributors; ties go to the one that
    appears first.

    Args:
        document: The DMP document.

    Returns:
        The organization identifier, or None if no affiliation is known.

    Examples:
        >>> extract_owner_org({
        ...     "contact": {"name": "A"},
        ...     "contributor": [
        ...         {"dmproadmap_affiliation": {"affiliation_id": {"identifier": "Z"}}},
        ...         {"dmproadmap_affiliation": {"affiliation_id": {"identifier": "Y"}}},
        ...         {"dmproadmap_affiliation": {"affiliation_id": {"identifier": "Y"}}},
        ...     ],
        ... })
        'Y'
    """
    org = _dig(document, "contact", "dmproadmap_affiliation", "affiliation_id", "identifier")
    if org:
        return str(org)

    contributors = document.get("contributor")
    if not isinstance(contributors, list):
        return None
    orgs = [
        str(identifier)
        for contributor in contributors
        if (
            identifier := _dig(
                contributor, "dmproadmap_affiliation", "affiliation_id", "identifier"
            )
        )
    ]
    if not orgs:
        return None

    counts = Counter(orgs)
    # max() keeps the first of equal candidates, dict.fromkeys keeps input order
    return max(dict.fromkeys(orgs), key=counts.__getitem__)


def fingerprint(document: Record) -> str | None:
    """Compute the equivalence key used to detect duplicate creations.

    Two documents are equivalent when they have the same contact (by
    identifier, else email) and the same title, ignoring case and spacing.

    Returns:
        A hex digest, or None if the document has no contact or title.
    """
    title = document.get("title")
    contact = _dig(document, "contact", "contact_id", "identifier") or _dig(
        document, "contact", "mbox"
    )
    if not isinstance(title, str) or not title.strip() or not contact:
        return None

    contact_key = _PROTOCOL_RE.sub("", str(contact).strip()).casefold()
    title_key = _WHITESPACE_RE.sub(" ", title.strip()).casefold()
    return hashlib.sha256(f"{contact_key}\n{title_key}".encode()).hexdigest()


def citable_related_identifiers(record: Record) -> list[dict[str, Any]]:
    """Return related identifiers a citation can still be fetched for.

    Skips the link to the narrative document and DOIs that already
    carry a citation.
    """
    return [
        entry
        for entry in related_identifiers(record)
        if not (
            entry.get("work_type") == "output_management_plan"
            and entry.get("descriptor") == "is_metadata_for"
        )
        and not (entry.get("type") == "doi" and entry.get("citation") is not None)
    ]


def is_truthy_flag(value: Any) -> bool:
    """Interpret the loose boolean spellings DMP documents use."""
    return str(value).strip().lower() in {"1", "true", "yes"}


def featured_flag(value: Any) -> str:
    """Normalize ``dmproadmap_featured`` to ``"1"`` or ``"0"``."""
    return "1" if is_truthy_flag(value) else "0"


def related_key(entry: dict[str, Any]) -> tuple[str, str]:
    """Identity of a related identifier: its normalized value and relation."""
    identifier = _PROTOCOL_RE.sub("", str(entry.get("identifier", "")).strip())
    return identifier.casefold(), str(entry.get("descriptor", ""))
