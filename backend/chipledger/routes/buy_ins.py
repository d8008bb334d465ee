"""Buy-in route handlers.

Endpoints:
    POST   /api/buy-ins                 -- Record a buy-in or re-buy.
    PATCH  /api/buy-ins/{buy_in_id}     -- Correct a buy-in amount.
    DELETE /api/buy-ins/{buy_in_id}     -- Remove a buy-in.
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, Path, Response, status
from pydantic import BaseModel, Field

from chipledger.dependencies import get_services
from chipledger.routes.schemas import BuyInResponse
from chipledger.services import LedgerServices

logger = logging.getLogger("chipledger.routes.buy_ins")

router = APIRouter(prefix="/buy-ins", tags=["Buy-ins"])


class RecordBuyInRequest(BaseModel):
    """Request body for POST /api/buy-ins."""
    participant_id: str
    amount: Any = Field(
        ..., description="Whole number of chips between 1 and 1,000,000."
    )
    timestamp: Optional[str] = Field(
        None, description="ISO-8601 time of the buy-in. Defaults to now."
    )


class UpdateBuyInRequest(BaseModel):
    """Request body for PATCH /api/buy-ins/{buy_in_id}."""
    amount: Any = Field(
        ..., description="Whole number of chips between 1 and 1,000,000."
    )


@router.post(
    "",
    response_model=BuyInResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Record a buy-in",
)
async def record_buy_in(
    body: RecordBuyInRequest,
    services: LedgerServices = Depends(get_services),
) -> BuyInResponse:
    """Record chips bought by a participant. Later buy-ins are re-buys."""
    buy_in = await services.ledger.record_buy_in(
        participant_id=body.participant_id,
        amount=body.amount,
        timestamp=body.timestamp,
    )
    return BuyInResponse.from_buy_in(buy_in)


@router.patch(
    "/{buy_in_id}",
    response_model=BuyInResponse,
    summary="Correct a buy-in amount",
)
async def update_buy_in(
    body: UpdateBuyInRequest,
    buy_in_id: str = Path(...),
    services: LedgerServices = Depends(get_services),
) -> BuyInResponse:
    """Change the amount of a buy-in while the game is in progress."""
    buy_in = await services.ledger.update_buy_in(buy_in_id=buy_in_id, amount=body.amount)
    return BuyInResponse.from_buy_in(buy_in)


@router.delete(
    "/{buy_in_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a buy-in",
)
async def delete_buy_in(
    buy_in_id: str = Path(...),
    services: LedgerServices = Depends(get_services),
) -> Response:
    """Remove a buy-in while the game is in progress."""
    await services.ledger.delete_buy_in(buy_in_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
