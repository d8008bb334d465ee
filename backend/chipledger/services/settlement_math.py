"""Pure functions for settling a finished game.

No database access, no async. Turns net balances into the transfers that
settle them.
"""

from dataclasses import dataclass
from typing import Iterable


@dataclass(frozen=True)
class Transfer:
    """A payment from a losing player to a winning player."""
    from_player_id: str
    to_player_id: str
    amount: int


def compute_settlements(balances: Iterable[tuple[str, int]]) -> list[Transfer]:
    """Compute the transfers that net out a game's balances.

    Winners are paid largest first and losers pay most-negative first, both
    tie-broken by ascending player id, so the output is reproducible. A
    two-pointer sweep matches the current loser against the current winner
    for the smaller of the two outstanding amounts and advances whichever
    side reaches zero. Each step clears at least one side, so the result
    has at most ``len(winners) + len(losers) - 1`` transfers.

    If winners and losers do not add up to zero (the table miscounted),
    the residual is left unmatched; it is not a debt between players.

    Args:
        balances: (player_id, net balance) pairs. Net balance is cashout
            minus buy-ins.

    Returns:
        The list of transfers, in the order they were matched.
    """
    balances = list(balances)
    winners = sorted(
        ([player_id, amount] for player_id, amount in balances if amount > 0),
        key=lambda w: (-w[1], w[0]),
    )
    losers = sorted(
        ([player_id, amount] for player_id, amount in balances if amount < 0),
        key=lambda l: (l[1], l[0]),
    )

    transfers: list[Transfer] = []
    wi = li = 0
    while wi < len(winners) and li < len(losers):
        winner, loser = winners[wi], losers[li]
        amount = min(winner[1], -loser[1])
        if amount > 0:
            transfers.append(Transfer(loser[0], winner[0], amount))
        winner[1] -= amount
        loser[1] += amount
        if winner[1] == 0:
            wi += 1
        if loser[1] == 0:
            li += 1

    return transfers
