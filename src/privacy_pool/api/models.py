from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class QuoteRequest(BaseModel):
    """Request model for a fee preview."""

    model_config = ConfigDict(populate_by_name=True)

    withdraw_amount: str = Field(
        ..., alias="withdrawAmount", description="Amount to withdraw, in ether (e.g. \"0.5\")"
    )


class QuoteResponse(BaseModel):
    """Fee breakdown for a withdrawal amount, in ether."""

    withdraw_amount: Decimal = Field(..., description="Requested withdrawal amount")
    execution_fee: Decimal = Field(..., description="Protocol fee deducted from the amount")
    you_receive: Decimal = Field(..., description="Amount the recipient is credited")
    relay_fee_bps: int = Field(..., description="Fee rate in basis points")


class PrepareResponse(BaseModel):
    """A prepared, not yet submitted, withdrawal."""

    id: str = Field(..., description="Handle to pass to the execute endpoint")
    next_note_index: int = Field(..., description="Note index reserved for the change note")
    context: str = Field(..., description="Context scalar the proof is bound to (decimal)")
    call_data: str = Field(..., description="Encoded relay call")
    user_operation: dict[str, Any] = Field(..., description="Unsigned user operation")
    amounts: QuoteResponse


class ExecuteResponse(BaseModel):
    """Response model for a submitted withdrawal."""

    id: str = Field(..., description="Prepared withdrawal that was submitted")
    tx_id: str = Field(..., description="Identifier returned by the bundler")


class ErrorResponse(BaseModel):
    detail: str
    error: str
    stage: str | None = None
