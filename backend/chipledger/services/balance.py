"""Pure functions for balance reconciliation.

No database access, no async. Derives per-participant and per-game totals
and the discrepancy status from the ledger entries of a game.
"""

from dataclasses import dataclass
from typing import Mapping, Optional

from chipledger.models.common import BalanceStatus
from chipledger.models.game import Game


@dataclass(frozen=True)
class ParticipantBalance:
    """Totals for one participant."""
    participant_id: str
    player_id: str
    buy_in_count: int
    total_buy_ins: int
    cashout: int
    has_cashed_out: bool

    @property
    def profit_loss(self) -> int:
        """Cashout minus total buy-ins; the participant's net balance."""
        return self.cashout - self.total_buy_ins


@dataclass(frozen=True)
class GameBalance:
    """Totals for a whole game."""
    total_buy_ins: int
    total_cashouts: int
    participants: tuple[ParticipantBalance, ...]

    @property
    def balance_discrepancy(self) -> int:
        return self.total_cashouts - self.total_buy_ins

    @property
    def status(self) -> BalanceStatus:
        return balance_status(self.balance_discrepancy)


def balance_status(discrepancy: int) -> BalanceStatus:
    """Map a discrepancy (cashouts minus buy-ins) to a status.

    GREEN means exact accounting. YELLOW means fewer chips came back than
    went in, which is informational. RED means more chips were cashed out
    than bought, i.e. a counting error the operator must look at.
    """
    if discrepancy == 0:
        return BalanceStatus.GREEN
    if discrepancy < 0:
        return BalanceStatus.YELLOW
    return BalanceStatus.RED


def reconcile(
    game: Game,
    cashout_overrides: Optional[Mapping[str, int]] = None,
) -> GameBalance:
    """Compute the balance of ``game``.

    Args:
        game: The game aggregate with its buy-ins and cashouts.
        cashout_overrides: Cashout amounts keyed by participant id that are
            not recorded yet (e.g. submitted at completion). They take the
            place of a missing cashout.

    Returns:
        A GameBalance. Participants without a cashout contribute 0.
    """
    overrides = cashout_overrides or {}
    buy_in_totals: dict[str, int] = {}
    buy_in_counts: dict[str, int] = {}
    for buy_in in game.buy_ins:
        buy_in_totals[buy_in.participant_id] = (
            buy_in_totals.get(buy_in.participant_id, 0) + buy_in.amount
        )
        buy_in_counts[buy_in.participant_id] = (
            buy_in_counts.get(buy_in.participant_id, 0) + 1
        )

    participants: list[ParticipantBalance] = []
    for participant in game.participants:
        recorded = game.cashout_for(participant.id)
        if recorded is not None:
            cashout, has_cashed_out = recorded.amount, True
        elif participant.id in overrides:
            cashout, has_cashed_out = overrides[participant.id], True
        else:
            cashout, has_cashed_out = 0, False
        participants.append(
            ParticipantBalance(
                participant_id=participant.id,
                player_id=participant.player_id,
                buy_in_count=buy_in_counts.get(participant.id, 0),
                total_buy_ins=buy_in_totals.get(participant.id, 0),
                cashout=cashout,
                has_cashed_out=has_cashed_out,
            )
        )

    return GameBalance(
        total_buy_ins=sum(p.total_buy_ins for p in participants),
        total_cashouts=sum(p.cashout for p in participants),
        participants=tuple(participants),
    )


def net_balances(balance: GameBalance) -> list[tuple[str, int]]:
    """Return (player_id, net balance) pairs for the settlement engine."""
    return [(p.player_id, p.profit_loss) for p in balance.participants]
