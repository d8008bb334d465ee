"""Ledger read models and the cashout entry accepted by the write services."""

from datetime import datetime
from typing import NamedTuple, Optional

from pydantic import BaseModel

from chipledger.models.common import BalanceStatus, GameStatus, TransactionType


class CashoutEntry(NamedTuple):
    """A cashout submitted for a participant; the amount is parsed on use."""

    participant_id: str
    amount: int


class ParticipantTotals(BaseModel):
    """A participant with the totals derived from their ledger entries."""

    id: str
    player_id: str
    player_name: str
    joined_at: datetime
    buy_in_count: int
    total_buy_ins: int
    total_cashouts: int
    has_cashed_out: bool
    profit_loss: int


class Transaction(BaseModel):
    """One entry in the time-ordered transaction log of a game."""

    id: str
    type: TransactionType
    participant_id: str
    player_id: str
    player_name: str
    amount: int
    timestamp: datetime
    is_rebuy: Optional[bool] = None


class SettlementView(BaseModel):
    """A settlement with both players' display names resolved."""

    id: str
    game_id: str
    from_player_id: str
    from_player_name: str
    to_player_id: str
    to_player_name: str
    amount: int
    created_at: datetime


class GameLedger(BaseModel):
    """Full ledger of one game: participants, transactions and balance."""

    id: str
    location: Optional[str] = None
    start_time: datetime
    minimum_cashout_time: datetime
    end_time: Optional[datetime] = None
    status: GameStatus
    discrepancy_notes: Optional[str] = None
    total_buy_ins: int
    total_cashouts: int
    balance_discrepancy: int
    balance_status: BalanceStatus
    participants: list[ParticipantTotals]
    transactions: list[Transaction]
    settlements: list[SettlementView]
