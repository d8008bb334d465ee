"""Domain error taxonomy for the ledger core.

Every error carries a stable machine-readable ``kind`` and a human
message. Services raise these; the HTTP layer maps each family to a
status code in ``chipledger.main``.
"""

from typing import Optional


class LedgerError(Exception):
    """Base class for all errors raised by the ledger services."""

    kind: str = "LedgerError"

    def __init__(self, message: str, kind: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        if kind is not None:
            self.kind = kind

    def __str__(self) -> str:
        return f"{self.kind}: {self.message}"


# ---------------------------------------------------------------------------
# Families
# ---------------------------------------------------------------------------

class ValidationError(LedgerError):
    """A field-level value was rejected (amount range, timestamp, length)."""

    kind = "ValidationError"


class NotFound(LedgerError):
    """A referenced Game, Participant, Player or BuyIn does not exist."""

    kind = "NotFound"


class Conflict(LedgerError):
    """The request conflicts with the current state of the ledger."""

    kind = "Conflict"


class PreconditionFailed(LedgerError):
    """A lifecycle or timing precondition does not hold."""

    kind = "PreconditionFailed"


# ---------------------------------------------------------------------------
# Conflicts
# ---------------------------------------------------------------------------

class DuplicateParticipant(Conflict):
    kind = "DuplicateParticipant"


class DuplicateCashout(Conflict):
    kind = "DuplicateCashout"


class GameAlreadyCompleted(Conflict):
    kind = "GameAlreadyCompleted"


class ConcurrentModification(Conflict):
    """The game changed between the snapshot read and the guarded write."""

    kind = "ConcurrentModification"


# ---------------------------------------------------------------------------
# Preconditions
# ---------------------------------------------------------------------------

class CashoutBeforeMinimumTime(PreconditionFailed):
    kind = "CashoutBeforeMinimumTime"


class BuyInBeforeGameStart(PreconditionFailed):
    kind = "BuyInBeforeGameStart"


class StartTimeInFuture(PreconditionFailed):
    kind = "StartTimeInFuture"


class MinCashoutBeforeStart(PreconditionFailed):
    kind = "MinCashoutBeforeStart"


class EmptyParticipantSet(PreconditionFailed):
    kind = "EmptyParticipantSet"


class MissingCashouts(PreconditionFailed):
    kind = "MissingCashouts"


class EndBeforeStart(PreconditionFailed):
    kind = "EndBeforeStart"


# ---------------------------------------------------------------------------
# Not found helpers
# ---------------------------------------------------------------------------

def game_not_found(game_id: str) -> NotFound:
    return NotFound(f"Game {game_id} not found", kind="GameNotFound")


def participant_not_found(participant_id: str) -> NotFound:
    return NotFound(
        f"Participant {participant_id} not found", kind="ParticipantNotFound"
    )


def player_not_found(player_id: str) -> NotFound:
    return NotFound(f"Player {player_id} not found", kind="PlayerNotFound")


def buy_in_not_found(buy_in_id: str) -> NotFound:
    return NotFound(f"Buy-in {buy_in_id} not found", kind="BuyInNotFound")
