"""Common enums, shared types, and value constructors for ChipLedger models."""

from datetime import datetime, timezone
from enum import StrEnum
from typing import Annotated, Any, Optional

from bson import ObjectId
from pydantic import (
    AfterValidator,
    BeforeValidator,
    Field,
    PlainSerializer,
    TypeAdapter,
)
from pydantic import ValidationError as PydanticValidationError

from chipledger.errors import ValidationError

MAX_AMOUNT = 1_000_000
MAX_LOCATION_LENGTH = 100
MAX_NOTES_LENGTH = 500


def _validate_object_id(value: Any) -> str:
    """Validate and convert ObjectId or string to string representation."""
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, str):
        return value
    raise ValueError(f"Invalid ObjectId value: {value}")


# Annotated type for MongoDB ObjectId fields.
# Accepts ObjectId or string on input, always serializes as string.
PyObjectId = Annotated[
    str,
    BeforeValidator(_validate_object_id),
    PlainSerializer(lambda v: str(v), return_type=str),
]


def new_id() -> str:
    """Generate a string id for an embedded ledger record."""
    return str(ObjectId())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime.

    MongoDB hands back naive datetimes unless the client is tz-aware;
    naive values are interpreted as UTC.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# Datetime field that always ends up aware UTC.
UtcDatetime = Annotated[datetime, AfterValidator(as_utc)]


class GameStatus(StrEnum):
    """Game lifecycle states. COMPLETED is terminal."""
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"


class BalanceStatus(StrEnum):
    """Reconciliation status derived from the balance discrepancy."""
    GREEN = "GREEN"
    YELLOW = "YELLOW"
    RED = "RED"


class TransactionType(StrEnum):
    """Kinds of entries in the time-ordered transaction log."""
    BUY_IN = "BUY_IN"
    CASHOUT = "CASHOUT"


# ---------------------------------------------------------------------------
# Value constructors
# ---------------------------------------------------------------------------

BuyInAmount = Annotated[int, Field(strict=True, ge=1, le=MAX_AMOUNT)]
CashoutAmount = Annotated[int, Field(strict=True, ge=0, le=MAX_AMOUNT)]

_buy_in_amount = TypeAdapter(BuyInAmount)
_cashout_amount = TypeAdapter(CashoutAmount)


def _first_error(exc: PydanticValidationError) -> str:
    errors = exc.errors()
    return errors[0]["msg"] if errors else str(exc)


def parse_buy_in_amount(value: Any) -> int:
    """Return ``value`` as a buy-in amount or raise ValidationError.

    Must be a whole number between 1 and 1,000,000. Booleans, floats
    and numeric strings are rejected.
    """
    try:
        return _buy_in_amount.validate_python(value)
    except PydanticValidationError as exc:
        raise ValidationError(
            f"Buy-in amount must be a whole number between 1 and {MAX_AMOUNT:,}: "
            f"{_first_error(exc)}",
            kind="InvalidAmount",
        ) from exc


def parse_cashout_amount(value: Any) -> int:
    """Return ``value`` as a cashout amount or raise ValidationError."""
    try:
        return _cashout_amount.validate_python(value)
    except PydanticValidationError as exc:
        raise ValidationError(
            f"Cashout amount must be a whole number between 0 and {MAX_AMOUNT:,}: "
            f"{_first_error(exc)}",
            kind="InvalidAmount",
        ) from exc


def parse_location(value: Optional[str]) -> Optional[str]:
    """Trim a game location; blank becomes None."""
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError("Location must be a string", kind="InvalidLocation")
    value = value.strip()
    if not value:
        return None
    if len(value) > MAX_LOCATION_LENGTH:
        raise ValidationError(
            f"Location cannot exceed {MAX_LOCATION_LENGTH} characters",
            kind="InvalidLocation",
        )
    return value


def parse_notes(value: Optional[str]) -> Optional[str]:
    """Validate discrepancy notes; blank becomes None."""
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError("Notes must be a string", kind="InvalidNotes")
    if not value.strip():
        return None
    if len(value) > MAX_NOTES_LENGTH:
        raise ValidationError(
            f"Discrepancy notes cannot exceed {MAX_NOTES_LENGTH} characters",
            kind="InvalidNotes",
        )
    return value


def parse_timestamp(value: Any) -> datetime:
    """Accept a datetime or ISO-8601 string and return aware UTC."""
    if isinstance(value, datetime):
        return as_utc(value)
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError as exc:
            raise ValidationError(
                f"Malformed timestamp: {value!r}", kind="InvalidTimestamp"
            ) from exc
        return as_utc(parsed)
    raise ValidationError(
        f"Malformed timestamp: {value!r}", kind="InvalidTimestamp"
    )
