"""
Identifier handling for proposals.

Three spellings reach the API:

- public id: 36-char hyphenated UUID, the only form clients should hold
- surrogate id: positive integer primary key, the only form internal
  records (audit, notifications, outbox) may reference
- legacy label: human-readable draft names such as "school-event-42",
  which only ever exist in the draft store and are migrated on first touch

Tokens are parsed once at the API boundary into one of the Identifier
variants below; everything downstream works with the typed value.
"""
import re
from dataclasses import dataclass
from enum import Enum
from uuid import UUID

from cedo.exceptions import IdentifierFormatError, NotFoundError
from cedo.models.proposal import EventTypeChoice
from cedo.repositories.proposal_repository import ProposalRepository


PUBLIC_ID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$",
    re.IGNORECASE,
)
LEGACY_HINTS = ("-event", "school", "community")


class IdentifierKind(str, Enum):
    PUBLIC_ID = "public_id"
    SURROGATE_ID = "surrogate_id"
    LEGACY_LABEL = "legacy_label"
    MALFORMED = "malformed"


@dataclass(frozen=True)
class PublicId:
    value: UUID

    def __str__(self) -> str:
        return str(self.value)


@dataclass(frozen=True)
class SurrogateId:
    value: int

    def __str__(self) -> str:
        return str(self.value)


@dataclass(frozen=True)
class LegacyLabel:
    value: str

    def __str__(self) -> str:
        return self.value


Identifier = PublicId | SurrogateId | LegacyLabel


@dataclass(frozen=True)
class ResolvedProposal:
    surrogate_id: int
    public_id: UUID


def classify(token: str) -> IdentifierKind:
    token = (token or "").strip()
    if PUBLIC_ID_PATTERN.match(token):
        return IdentifierKind.PUBLIC_ID
    if token.isascii() and token.isdigit():
        return IdentifierKind.SURROGATE_ID
    lowered = token.lower()
    if any(hint in lowered for hint in LEGACY_HINTS):
        return IdentifierKind.LEGACY_LABEL
    return IdentifierKind.MALFORMED


def parse(token: str) -> Identifier:
    """Raises IdentifierFormatError for malformed tokens"""
    kind = classify(token)
    token = (token or "").strip()
    if kind == IdentifierKind.PUBLIC_ID:
        return PublicId(UUID(token))
    if kind == IdentifierKind.SURROGATE_ID:
        value = int(token)
        if value <= 0:
            raise IdentifierFormatError(
                message="Invalid identifier",
                detail=f"Surrogate ids are positive integers, got {token!r}"
            )
        return SurrogateId(value)
    if kind == IdentifierKind.LEGACY_LABEL:
        return LegacyLabel(token)
    raise IdentifierFormatError(
        message="Invalid identifier",
        detail=f"{token!r} is neither a public id, a surrogate id nor a legacy label"
    )


def require_surrogate(value) -> int:
    """
    Gate for every internal reference to a proposal.

    Accepts a positive int, a SurrogateId, or a digit string. Anything
    public-id shaped is rejected even if it would resolve, so a public
    identifier can never leak into audit or notification rows.
    """
    if isinstance(value, SurrogateId):
        return value.value
    if isinstance(value, bool):
        raise IdentifierFormatError(
            message="Surrogate id required",
            detail=f"Expected a positive integer, got {value!r}"
        )
    if isinstance(value, int):
        if value <= 0:
            raise IdentifierFormatError(
                message="Surrogate id required",
                detail=f"Expected a positive integer, got {value}"
            )
        return value
    if isinstance(value, (UUID, PublicId)):
        raise IdentifierFormatError(
            message="Surrogate id required",
            detail=f"Got public id {value}; resolve it to the surrogate id first"
        )
    if isinstance(value, str):
        parsed = parse(value)
        if isinstance(parsed, SurrogateId):
            return parsed.value
        raise IdentifierFormatError(
            message="Surrogate id required",
            detail=f"Got {classify(value).value} {value!r}; resolve it to the surrogate id first"
        )
    raise IdentifierFormatError(
        message="Surrogate id required",
        detail=f"Unsupported identifier type {type(value).__name__}"
    )


def infer_event_type(label: str) -> str:
    if "school" in (label or "").lower():
        return EventTypeChoice.SCHOOL_BASED.value
    return EventTypeChoice.COMMUNITY_BASED.value


class IdentifierResolver:
    def __init__(self, proposal_repo: ProposalRepository):
        self.proposal_repo = proposal_repo

    def resolve(self, token: str | Identifier) -> ResolvedProposal:
        """One lookup by the column matching the identifier kind"""
        proposal = self.resolve_proposal(token)
        return ResolvedProposal(surrogate_id=proposal.id, public_id=proposal.uuid)

    def resolve_proposal(self, token: str | Identifier):
        identifier = parse(token) if isinstance(token, str) else token

        if isinstance(identifier, PublicId):
            proposal = self.proposal_repo.get_by_uuid(identifier.value)
        elif isinstance(identifier, SurrogateId):
            proposal = self.proposal_repo.get_by_id(identifier.value)
        else:
            raise IdentifierFormatError(
                message="Legacy labels do not identify proposals",
                detail=f"{identifier} only names a draft; open the draft to migrate it"
            )

        if proposal is None:
            raise NotFoundError(
                message="Proposal not found",
                detail=f"No proposal with id {identifier}"
            )
        return proposal
