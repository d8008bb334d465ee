"""Game route handlers.

Endpoints:
    POST  /api/games                            -- Create a new game.
    GET   /api/games                            -- List games, newest first.
    GET   /api/games/{game_id}                  -- Full ledger of a game.
    POST  /api/games/{game_id}/participants     -- Add a player to a game.
    PATCH /api/games/{game_id}/complete         -- Complete a game and settle it.
    GET   /api/games/{game_id}/settlements      -- Settlements of a game.
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, Path, Query, status
from pydantic import BaseModel, Field

from chipledger.dependencies import get_services
from chipledger.models.common import BalanceStatus, GameStatus
from chipledger.models.game import GameSummary
from chipledger.models.ledger import CashoutEntry, GameLedger, SettlementView
from chipledger.routes.schemas import GameResponse, ParticipantResponse
from chipledger.services import LedgerServices

logger = logging.getLogger("chipledger.routes.games")

router = APIRouter(prefix="/games", tags=["Games"])


# ---------------------------------------------------------------------------
# Pydantic request / response schemas
# ---------------------------------------------------------------------------

class CreateGameRequest(BaseModel):
    """Request body for POST /api/games."""
    start_time: str = Field(
        ..., description="ISO-8601 start of play. Past times are accepted."
    )
    minimum_cashout_time: str = Field(
        ..., description="ISO-8601 earliest time the game may be completed."
    )
    location: Optional[str] = Field(
        None, description="Where the game is played (max 100 characters)."
    )


class GamesListResponse(BaseModel):
    """Response for GET /api/games."""
    games: list[GameSummary]
    total_count: int


class AddParticipantRequest(BaseModel):
    """Request body for POST /api/games/{game_id}/participants."""
    player_id: str = Field(..., description="Id of a registered player.")


class CompletionCashout(BaseModel):
    """A single participant's final cashout in the completion request."""
    participant_id: str
    amount: Any = Field(
        ..., description="Whole number of chips between 0 and 1,000,000."
    )


class CompleteGameRequest(BaseModel):
    """Request body for PATCH /api/games/{game_id}/complete."""
    cashouts: list[CompletionCashout] = Field(
        default_factory=list,
        description="Final cashouts of participants that have not cashed out yet.",
    )
    discrepancy_notes: Optional[str] = Field(
        None, description="Explanation of a balance discrepancy (max 500 characters)."
    )


class CompleteGameResponse(BaseModel):
    """Response for PATCH /api/games/{game_id}/complete."""
    game: GameResponse
    settlements: list[SettlementView]
    total_buy_ins: int
    total_cashouts: int
    balance_discrepancy: int
    balance_status: BalanceStatus


class SettlementsResponse(BaseModel):
    """Response for GET /api/games/{game_id}/settlements."""
    game_id: str
    settlements: list[SettlementView]


# ---------------------------------------------------------------------------
# POST /api/games -- Create a new game
# ---------------------------------------------------------------------------

@router.post(
    "",
    response_model=GameResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a new game",
)
async def create_game(
    body: CreateGameRequest,
    services: LedgerServices = Depends(get_services),
) -> GameResponse:
    """Create a new IN_PROGRESS game."""
    game = await services.games.create_game(
        start_time=body.start_time,
        minimum_cashout_time=body.minimum_cashout_time,
        location=body.location,
    )
    return GameResponse.from_game(game)


# ---------------------------------------------------------------------------
# GET /api/games -- List games
# ---------------------------------------------------------------------------

@router.get(
    "",
    response_model=GamesListResponse,
    summary="List games",
)
async def list_games(
    game_status: Optional[GameStatus] = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=200),
    skip: int = Query(0, ge=0),
    services: LedgerServices = Depends(get_services),
) -> GamesListResponse:
    """List games sorted by start time, newest first.

    ``total_count`` counts every matching game, not just this page.
    """
    games = await services.games.list_games(status=game_status, limit=limit, skip=skip)
    total_count = await services.games.count_games(status=game_status)
    return GamesListResponse(games=games, total_count=total_count)


# ---------------------------------------------------------------------------
# GET /api/games/{game_id} -- Full ledger
# ---------------------------------------------------------------------------

@router.get(
    "/{game_id}",
    response_model=GameLedger,
    summary="Get the full ledger of a game",
)
async def get_game(
    game_id: str = Path(...),
    services: LedgerServices = Depends(get_services),
) -> GameLedger:
    """Game details with participants, transactions, settlements and balance."""
    return await services.games.get_game_ledger(game_id)


# ---------------------------------------------------------------------------
# POST /api/games/{game_id}/participants -- Add participant
# ---------------------------------------------------------------------------

@router.post(
    "/{game_id}/participants",
    response_model=ParticipantResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add a player to a game",
)
async def add_participant(
    body: AddParticipantRequest,
    game_id: str = Path(...),
    services: LedgerServices = Depends(get_services),
) -> ParticipantResponse:
    """Add a registered player to an in-progress game."""
    participant = await services.ledger.add_participant(
        game_id=game_id, player_id=body.player_id
    )
    return ParticipantResponse.from_participant(participant)


# ---------------------------------------------------------------------------
# PATCH /api/games/{game_id}/complete -- Complete a game
# ---------------------------------------------------------------------------

@router.patch(
    "/{game_id}/complete",
    response_model=CompleteGameResponse,
    summary="Complete a game and compute settlements",
)
async def complete_game(
    body: CompleteGameRequest,
    game_id: str = Path(...),
    services: LedgerServices = Depends(get_services),
) -> CompleteGameResponse:
    """Record the final cashouts, settle the game and mark it COMPLETED.

    Either everything is recorded or nothing is.
    """
    result = await services.completion.complete_game(
        game_id=game_id,
        cashouts=[CashoutEntry(c.participant_id, c.amount) for c in body.cashouts],
        notes=body.discrepancy_notes,
    )
    settlements = await services.games.describe_settlements(
        result.settlements, best_effort=True
    )
    return CompleteGameResponse(
        game=GameResponse.from_game(result.game),
        settlements=settlements,
        total_buy_ins=result.balance.total_buy_ins,
        total_cashouts=result.balance.total_cashouts,
        balance_discrepancy=result.balance.balance_discrepancy,
        balance_status=result.balance.status,
    )


# ---------------------------------------------------------------------------
# GET /api/games/{game_id}/settlements -- Settlements
# ---------------------------------------------------------------------------

@router.get(
    "/{game_id}/settlements",
    response_model=SettlementsResponse,
    summary="Get the settlements of a game",
)
async def get_settlements(
    game_id: str = Path(...),
    services: LedgerServices = Depends(get_services),
) -> SettlementsResponse:
    """Who pays whom. Empty while the game is in progress."""
    settlements = await services.games.get_settlements(game_id)
    return SettlementsResponse(game_id=game_id, settlements=settlements)
