# pyright: reportAny=false, reportExplicitAny=false
"""Structural contracts for incoming DMP documents.

Three named contracts cover the ways a provenance system may submit a DMP:

- ``author``: the full document, used for creation and by the owning
  provenance for updates.
- ``amend``: the reduced document a non-owning provenance may send. Only the
  identifier, title, modification date, related works and funding may appear.
- ``delete``: a reference to the record being retired.

``validate`` reports violations as data and never raises for malformed input.
``parse`` returns the typed document, raising ``DmpValidationError`` instead.
Documents may be sent bare or wrapped as ``{"dmp": {...}}``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Any, ClassVar, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from dmpid._keys import DOI_PATTERN, is_valid_identifier
from dmpid.exceptions import DmpValidationError

if TYPE_CHECKING:
    from pydantic_core import ErrorDetails


class ContractMode(StrEnum):
    """Names of the document contracts."""

    AUTHOR = "author"
    AMEND = "amend"
    DELETE = "delete"


type RelationDescriptor = Literal[
    "is_cited_by",
    "cites",
    "is_supplement_to",
    "is_supplemented_by",
    "is_described_by",
    "describes",
    "has_metadata",
    "is_metadata_for",
    "is_part_of",
    "has_part",
    "is_referenced_by",
    "references",
    "is_documented_by",
    "documents",
    "is_new_version_of",
    "is_previous_version_of",
]

type RelatedIdentifierType = Literal["handle", "doi", "ark", "url", "other"]

type WorkType = Literal[
    "article",
    "book",
    "dataset",
    "metadata_template",
    "other",
    "output_management_plan",
    "paper",
    "preprint",
    "preregistration",
    "protocol",
    "software",
    "supplemental_information",
]

type FundingStatus = Literal["planned", "applied", "granted", "rejected"]


@dataclass(frozen=True, slots=True)
class ValidationIssue:
    """A single contract violation.

    Attributes:
        key: Dotted path to the offending field (e.g. ``contact.mbox``).
        message: Human-readable description of the issue.
        expected: Description of the expected value, if available.
        actual: The value that caused the issue.
    """

    key: str
    message: str
    expected: str | None
    actual: Any

    def __str__(self) -> str:
        return f"{self.key}: {self.message}" if self.key else self.message


# -----------------------------------------------------------------------------
# Shared Parts
# -----------------------------------------------------------------------------


class _Open(BaseModel):
    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True, extra="allow")


class _Closed(BaseModel):
    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True, extra="forbid")


class TypedIdentifier(_Open):
    """An identifier with its scheme (``doi``, ``orcid``, ``ror``, ``url``...)."""

    identifier: str = Field(min_length=1)
    type: str = Field(min_length=1)


class DmpIdentifier(_Closed):
    """The ``dmp_id`` of a document.

    DOI-typed identifiers must have the DOI shape.
    """

    identifier: str = Field(min_length=1)
    type: str = Field(min_length=1)

    @model_validator(mode="after")
    def _check_doi_shape(self) -> DmpIdentifier:
        if self.type == "doi" and not is_valid_identifier(self.identifier):
            msg = f"identifier must match {DOI_PATTERN.pattern}"
            raise ValueError(msg)
        return self


class Affiliation(_Open):
    """An organization a person is affiliated with."""

    name: str | None = None
    affiliation_id: TypedIdentifier | None = None


class Contact(_Open):
    """The person responsible for the plan."""

    name: str = Field(min_length=1)
    mbox: str = Field(min_length=1)
    contact_id: TypedIdentifier
    dmproadmap_affiliation: Affiliation | None = None


class Contributor(_Open):
    """A person who contributes to the project, with their roles."""

    name: str = Field(min_length=1)
    role: list[str] = Field(min_length=1)
    contributor_id: TypedIdentifier | None = None
    dmproadmap_affiliation: Affiliation | None = None


class RelatedIdentifier(_Open):
    """A link from the plan to a related work."""

    descriptor: RelationDescriptor
    identifier: str = Field(min_length=1)
    type: RelatedIdentifierType
    work_type: str = Field(min_length=1)


class Funding(_Open):
    """A funding source for a project."""

    name: str = Field(min_length=1)
    funding_status: FundingStatus
    funder_id: TypedIdentifier | None = None
    grant_id: TypedIdentifier | None = None


class Project(_Open):
    """The project a plan belongs to."""

    title: str = Field(min_length=1)
    funding: list[Funding] | None = None


class Dataset(_Open):
    """An output the plan describes."""

    title: str = Field(min_length=1)


# -----------------------------------------------------------------------------
# Contracts
# -----------------------------------------------------------------------------


class AuthorDocument(_Open):
    """The full DMP document an owning provenance submits."""

    title: str = Field(min_length=1)
    contact: Contact
    dmp_id: DmpIdentifier | None = None
    description: str | None = None
    created: str | None = None
    modified: str | None = None
    contributor: list[Contributor] | None = None
    dataset: list[Dataset] | None = None
    project: list[Project] | None = None
    dmproadmap_related_identifiers: list[RelatedIdentifier] | None = None


class AmendRelatedIdentifier(_Closed):
    """A related work a non-owning provenance may assert."""

    descriptor: RelationDescriptor
    identifier: str = Field(min_length=1)
    type: RelatedIdentifierType
    work_type: WorkType
    citation: str | None = None


class AmendFunding(_Closed):
    """Funding details a non-owning provenance may report."""

    name: str = Field(min_length=1)
    funding_status: FundingStatus
    funder_id: TypedIdentifier | None = None
    grant_id: TypedIdentifier | None = None
    dmproadmap_project_number: str | None = None
    dmproadmap_opportunity_number: str | None = None


class AmendProject(_Closed):
    """Project details a non-owning provenance may report."""

    title: str | None = None
    funding: list[AmendFunding] | None = None


class AmendDocument(_Closed):
    """The reduced DMP document a non-owning provenance submits."""

    dmp_id: DmpIdentifier
    title: str | None = None
    modified: str | None = None
    dmproadmap_related_identifiers: list[AmendRelatedIdentifier] | None = None
    project: list[AmendProject] | None = None


class DeleteDocument(BaseModel):
    """A request to retire a DMP ID."""

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True, extra="ignore")

    dmp_id: DmpIdentifier

    @model_validator(mode="after")
    def _require_doi(self) -> DeleteDocument:
        if not is_valid_identifier(self.dmp_id.identifier):
            msg = "dmp_id must reference a registered DMP ID"
            raise ValueError(msg)
        return self


type ContractDocument = AuthorDocument | AmendDocument | DeleteDocument

_CONTRACTS: dict[ContractMode, type[BaseModel]] = {
    ContractMode.AUTHOR: AuthorDocument,
    ContractMode.AMEND: AmendDocument,
    ContractMode.DELETE: DeleteDocument,
}

# Fields a non-owning provenance may change on an existing record
AMENDABLE_FIELDS: tuple[str, ...] = ("dmproadmap_related_identifiers",)


# -----------------------------------------------------------------------------
# Validation Functions
# -----------------------------------------------------------------------------


def unwrap(document: object) -> object:
    """Return the DMP body of a document that may be wrapped in ``{"dmp": ...}``."""
    if isinstance(document, dict) and set(document) == {"dmp"}:
        return document["dmp"]
    return document


def _pydantic_error_to_issue(error: ErrorDetails) -> ValidationIssue:
    """Convert a Pydantic error dict to a ValidationIssue.

    Args:
        error: A single error dict from ValidationError.errors().

    Returns:
        A ValidationIssue representing the violation.
    """
    loc = error.get("loc", ())
    key = ".".join(str(part) for part in loc)
    message = str(error.get("msg", "Validation error"))

    ctx = error.get("ctx")
    expected: str | None = None
    if ctx is not None:
        if "expected" in ctx:
            expected = str(ctx["expected"])
        elif "pattern" in ctx:
            expected = f"pattern: {ctx['pattern']}"

    return ValidationIssue(
        key=key,
        message=message,
        expected=expected,
        actual=error.get("input"),
    )


def _check(
    mode: ContractMode | str, document: object
) -> tuple[BaseModel | None, list[ValidationIssue]]:
    contract = _CONTRACTS[ContractMode(mode)]
    body = unwrap(document)
    if not isinstance(body, dict):
        issue = ValidationIssue(
            key="",
            message="Document must be a JSON object",
            expected="object",
            actual=body,
        )
        return None, [issue]

    try:
        model = contract.model_validate(body)
    except ValidationError as e:
        return None, [_pydantic_error_to_issue(err) for err in e.errors()]
    return model, []


def validate(mode: ContractMode | str, document: object) -> list[ValidationIssue]:
    """Validate a document against a named contract.

    Args:
        mode: The contract name (``author``, ``amend`` or ``delete``).
        document: The incoming document, bare or wrapped in ``{"dmp": ...}``.

    Returns:
        List of ValidationIssue objects. Empty list indicates a valid document.

    Raises:
        ValueError: If ``mode`` is not a known contract name.
    """
    _, issues = _check(mode, document)
    return issues


def parse_author(document: object) -> AuthorDocument:
    """Parse a document under the ``author`` contract.

    Raises:
        DmpValidationError: If the document violates the contract.
    """
    return _parse(ContractMode.AUTHOR, document, AuthorDocument)


def parse_amend(document: object) -> AmendDocument:
    """Parse a document under the ``amend`` contract.

    Raises:
        DmpValidationError: If the document violates the contract.
    """
    return _parse(ContractMode.AMEND, document, AmendDocument)


def parse_delete(document: object) -> DeleteDocument:
    """Parse a document under the ``delete`` contract.

    Raises:
        DmpValidationError: If the document violates the contract.
    """
    return _parse(ContractMode.DELETE, document, DeleteDocument)


def _parse[T: BaseModel](mode: ContractMode, document: object, model: type[T]) -> T:
    parsed, issues = _check(mode, document)
    if issues or not isinstance(parsed, model):
        summary = "; ".join(str(issue) for issue in issues[:3])
        msg = f"Document does not satisfy the {mode} contract: {summary}"
        raise DmpValidationError(msg, mode=mode.value, issues=issues)
    return parsed


def to_document(model: BaseModel) -> dict[str, Any]:
    """Dump a parsed contract model back to a JSON-compatible dict.

    Only fields present in the submitted document are included.
    """
    return model.model_dump(mode="json", exclude_unset=True)


def get_contract_schema(mode: ContractMode | str) -> dict[str, Any]:
    """Get the JSON Schema for a named contract.

    Examples:
        >>> schema = get_contract_schema("delete")
        >>> schema["required"]
        ['dmp_id']
    """
    return _CONTRACTS[ContractMode(mode)].model_json_schema()
