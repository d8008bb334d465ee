"""Pydantic models for ChipLedger."""

from chipledger.models.common import (
    BalanceStatus,
    GameStatus,
    PyObjectId,
    TransactionType,
)
from chipledger.models.game import (
    BuyIn,
    Cashout,
    Game,
    GameSummary,
    Participant,
    Settlement,
)
from chipledger.models.ledger import (
    CashoutEntry,
    GameLedger,
    ParticipantTotals,
    SettlementView,
    Transaction,
)
from chipledger.models.player import Player

__all__ = [
    # Enums and types
    "BalanceStatus",
    "GameStatus",
    "PyObjectId",
    "TransactionType",
    # Game aggregate
    "Game",
    "GameSummary",
    "Participant",
    "BuyIn",
    "Cashout",
    "Settlement",
    # Read models
    "CashoutEntry",
    "GameLedger",
    "ParticipantTotals",
    "SettlementView",
    "Transaction",
    # Player registry
    "Player",
]
