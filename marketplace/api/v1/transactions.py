from fastapi import APIRouter, Depends, status

from marketplace.api.deps import get_principal, get_stats_service, get_transaction_service
from marketplace.core.principal import Principal
from marketplace.schemas.transaction import (
    TransactionCreate,
    TransactionResponse,
    TransactionStatusUpdate,
    TransactionUpdate,
)
from marketplace.services.stats_service import StatsService
from marketplace.services.transaction_service import TransactionService
from marketplace.utils.response import dump, success

router = APIRouter()


@router.post("", response_model=dict, status_code=status.HTTP_201_CREATED)
@router.post("/", response_model=dict, status_code=status.HTTP_201_CREATED)
def create_transaction(
    transaction_in: TransactionCreate,
    principal: Principal = Depends(get_principal),
    service: TransactionService = Depends(get_transaction_service),
):
    """Record a declared payment against an order; no gateway is contacted"""
    transaction = service.create(principal, **transaction_in.model_dump())
    return success(data=dump(TransactionResponse, transaction), message="Transaction created successfully")


@router.get("", response_model=dict)
@router.get("/", response_model=dict)
def list_transactions(
    principal: Principal = Depends(get_principal),
    service: TransactionService = Depends(get_transaction_service),
):
    transactions = service.list_all(principal)
    return success(
        data=dump(TransactionResponse, transactions),
        message="Transactions retrieved",
        count=len(transactions),
    )


@router.get("/stats", response_model=dict)
def get_transaction_stats(
    principal: Principal = Depends(get_principal),
    stats: StatsService = Depends(get_stats_service),
):
    return success(data=stats.transaction_stats(principal), message="Transaction statistics retrieved")


@router.get("/user/{user_id}", response_model=dict)
def get_user_transactions(
    user_id: int,
    principal: Principal = Depends(get_principal),
    service: TransactionService = Depends(get_transaction_service),
):
    transactions = service.list_for_user(principal, user_id)
    return success(
        data=dump(TransactionResponse, transactions),
        message="Transactions retrieved",
        count=len(transactions),
    )


@router.get("/number/{transaction_number}", response_model=dict)
def get_transaction_by_number(
    transaction_number: str,
    principal: Principal = Depends(get_principal),
    service: TransactionService = Depends(get_transaction_service),
):
    transaction = service.get_by_number(principal, transaction_number)
    return success(data=dump(TransactionResponse, transaction), message="Transaction retrieved")


@router.put("/status/{transaction_id}", response_model=dict)
def update_transaction_status(
    transaction_id: int,
    status_update: TransactionStatusUpdate,
    principal: Principal = Depends(get_principal),
    service: TransactionService = Depends(get_transaction_service),
):
    """Advance the payment status; terminal states accept only a same-status no-op"""
    transaction = service.update_status(principal, transaction_id, status_update.status)
    return success(data=dump(TransactionResponse, transaction), message="Transaction status updated")


@router.get("/{transaction_id}", response_model=dict)
def get_transaction(
    transaction_id: int,
    principal: Principal = Depends(get_principal),
    service: TransactionService = Depends(get_transaction_service),
):
    transaction = service.get(principal, transaction_id)
    return success(data=dump(TransactionResponse, transaction), message="Transaction retrieved")


@router.put("/{transaction_id}", response_model=dict)
def update_transaction(
    transaction_id: int,
    transaction_update: TransactionUpdate,
    principal: Principal = Depends(get_principal),
    service: TransactionService = Depends(get_transaction_service),
):
    transaction = service.update(principal, transaction_id, **transaction_update.model_dump(exclude_unset=True))
    return success(data=dump(TransactionResponse, transaction), message="Transaction updated successfully")


@router.delete("/{transaction_id}", response_model=dict)
def delete_transaction(
    transaction_id: int,
    principal: Principal = Depends(get_principal),
    service: TransactionService = Depends(get_transaction_service),
):
    service.delete(principal, transaction_id)
    return success(message="Transaction deleted successfully")
