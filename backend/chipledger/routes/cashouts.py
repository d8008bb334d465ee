"""Cashout route handlers.

Endpoints:
    POST /api/cashouts          -- Record one participant's cashout.
    POST /api/cashouts/batch    -- Record several cashouts of one game at once.
"""

import logging
from typing import Any

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from chipledger.dependencies import get_services
from chipledger.models.ledger import CashoutEntry
from chipledger.routes.schemas import CashoutResponse
from chipledger.services import LedgerServices

logger = logging.getLogger("chipledger.routes.cashouts")

router = APIRouter(prefix="/cashouts", tags=["Cashouts"])


class RecordCashoutRequest(BaseModel):
    """Request body for POST /api/cashouts."""
    participant_id: str
    amount: Any = Field(
        ..., description="Whole number of chips between 0 and 1,000,000."
    )


class BatchCashoutRequest(BaseModel):
    """Request body for POST /api/cashouts/batch."""
    game_id: str
    cashouts: list[RecordCashoutRequest] = Field(..., min_length=1)


class BatchCashoutResponse(BaseModel):
    """Response for POST /api/cashouts/batch."""
    game_id: str
    cashouts: list[CashoutResponse]


@router.post(
    "",
    response_model=CashoutResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Record a cashout",
)
async def record_cashout(
    body: RecordCashoutRequest,
    services: LedgerServices = Depends(get_services),
) -> CashoutResponse:
    """Record the final chip count of a participant. At most once each."""
    cashout = await services.ledger.record_cashout(
        participant_id=body.participant_id, amount=body.amount
    )
    return CashoutResponse.from_cashout(cashout)


@router.post(
    "/batch",
    response_model=BatchCashoutResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Record several cashouts of one game",
)
async def record_cashouts(
    body: BatchCashoutRequest,
    services: LedgerServices = Depends(get_services),
) -> BatchCashoutResponse:
    """Record cashouts for several participants. All are recorded or none."""
    cashouts = await services.ledger.record_cashouts(
        game_id=body.game_id,
        entries=[CashoutEntry(c.participant_id, c.amount) for c in body.cashouts],
    )
    return BatchCashoutResponse(
        game_id=body.game_id,
        cashouts=[CashoutResponse.from_cashout(c) for c in cashouts],
    )
