import logging

from fastapi import APIRouter, HTTPException, Request

from privacy_pool.api.models import (
    ExecuteResponse,
    PrepareResponse,
    QuoteRequest,
    QuoteResponse,
)
from privacy_pool.core.models import PreparedWithdrawal, WithdrawalRequest
from privacy_pool.withdrawal.service import WithdrawalService

logger = logging.getLogger("privacy_pool.api")

router = APIRouter(tags=["Withdrawals"])


def get_service(request: Request) -> WithdrawalService:
    """Dependency to retrieve the initialized WithdrawalService from app state."""
    service = getattr(request.app.state, "service", None)
    if not service:
        raise HTTPException(status_code=500, detail="withdrawal service not initialized")
    return service


def remember_prepared(request: Request, prepared: PreparedWithdrawal) -> None:
    """Hold a prepared withdrawal for execution, dropping the oldest past the cap."""
    state = request.app.state
    with state.prepared_lock:
        state.prepared[prepared.id] = prepared
        while len(state.prepared) > state.max_pending:
            evicted, _ = state.prepared.popitem(last=False)
            logger.warning(f"Dropped prepared withdrawal {evicted}: more than {state.max_pending} pending")


def take_prepared(request: Request, withdrawal_id: str) -> PreparedWithdrawal:
    state = request.app.state
    with state.prepared_lock:
        prepared = state.prepared.pop(withdrawal_id, None)
    if prepared is None:
        raise HTTPException(status_code=404, detail=f"No prepared withdrawal {withdrawal_id}")
    return prepared


@router.post("/withdrawals/quote", response_model=QuoteResponse)
def quote(request: Request, req: QuoteRequest):
    """Preview the protocol fee and the amount the recipient receives."""
    service = get_service(request)
    amounts = service.calculate_amounts(req.withdraw_amount)
    return QuoteResponse(**amounts.model_dump())


@router.post("/withdrawals", response_model=PrepareResponse)
def prepare(request: Request, req: WithdrawalRequest):
    """
    Prepare a withdrawal: fetch state, reserve a note index, generate the
    proof and build the unsigned operation.

    Nothing is submitted. Review the returned amounts, then call
    `POST /withdrawals/{id}/execute`, or `DELETE /withdrawals/{id}` to drop it.
    """
    service = get_service(request)
    prepared = service.prepare_withdrawal(req)
    amounts = service.calculate_amounts(req.withdraw_amount)

    remember_prepared(request, prepared)

    return PrepareResponse(
        id=prepared.id,
        next_note_index=prepared.context.next_note_index,
        context=str(prepared.context.context),
        call_data=prepared.call_data,
        user_operation=prepared.user_operation.to_rpc(),
        amounts=QuoteResponse(**amounts.model_dump()),
    )


@router.post("/withdrawals/{withdrawal_id}/execute", response_model=ExecuteResponse)
def execute(request: Request, withdrawal_id: str):
    """Submit a previously prepared withdrawal. Each one can be submitted once."""
    service = get_service(request)
    prepared = take_prepared(request, withdrawal_id)

    try:
        tx_id = service.execute_withdrawal(prepared)
    except Exception:
        # Failed submissions stay available for a retry
        remember_prepared(request, prepared)
        raise

    return ExecuteResponse(id=withdrawal_id, tx_id=tx_id)


@router.delete("/withdrawals/{withdrawal_id}", status_code=204)
def discard(request: Request, withdrawal_id: str):
    """Drop a prepared withdrawal without submitting it."""
    take_prepared(request, withdrawal_id)
