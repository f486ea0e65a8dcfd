"""Order status and return request routes"""

from typing import List, Optional

from fastapi import APIRouter, Depends, status

from cartledger.api.dependencies import get_current_actor, get_order_ledger, get_return_ledger
from cartledger.core.exceptions import ForbiddenException
from cartledger.models.order import OrderStatus
from cartledger.schemas.order import (
    Actor,
    ActorRole,
    OrderFilter,
    OrderRecord,
    OrderStatusUpdate,
    ReturnDecision,
    ReturnRequestCreate,
    ReturnRequestRecord,
)
from cartledger.services.order_service import OrderLedger
from cartledger.services.return_service import ReturnLedger

router = APIRouter()

@router.get("", response_model=List[OrderRecord])
async def list_orders(
    order_status: Optional[OrderStatus] = None,
    actor: Actor = Depends(get_current_actor),
    ledger: OrderLedger = Depends(get_order_ledger),
):
    """List the caller's orders (all orders for admins, sold orders for sellers)"""
    filters = OrderFilter(status=order_status)
    if actor.role == ActorRole.SELLER:
        filters.seller_id = actor.user_id
    elif actor.role == ActorRole.CUSTOMER:
        filters.buyer_id = actor.user_id
    return await ledger.list_for(filters)

@router.patch("/returns/{request_id}", response_model=ReturnRequestRecord)
async def review_return(
    request_id: str,
    decision: ReturnDecision,
    actor: Actor = Depends(get_current_actor),
    returns: ReturnLedger = Depends(get_return_ledger),
):
    """Approve or reject a return request (admin only)"""
    return await returns.set_status(request_id, decision.status, actor, decision.reason)

@router.get("/{order_id}", response_model=OrderRecord)
async def get_order(
    order_id: str,
    actor: Actor = Depends(get_current_actor),
    ledger: OrderLedger = Depends(get_order_ledger),
):
    """Get order details"""
    order = await ledger.get(order_id)
    if actor.role == ActorRole.ADMIN:
        return order
    if actor.user_id == order.buyer_id or order.seller_items(actor.user_id):
        return order
    raise ForbiddenException("You are not allowed to view this order")

@router.patch("/{order_id}/status", response_model=OrderRecord)
async def update_order_status(
    order_id: str,
    status_update: OrderStatusUpdate,
    actor: Actor = Depends(get_current_actor),
    ledger: OrderLedger = Depends(get_order_ledger),
):
    """Update order status"""
    return await ledger.set_status(order_id, status_update.status, actor)

@router.post(
    "/{order_id}/returns",
    response_model=ReturnRequestRecord,
    status_code=status.HTTP_201_CREATED,
)
async def request_return(
    order_id: str,
    return_data: ReturnRequestCreate,
    actor: Actor = Depends(get_current_actor),
    returns: ReturnLedger = Depends(get_return_ledger),
):
    """Request a return for one item of a delivered order"""
    return await returns.create(order_id, return_data.product_id, actor.user_id, return_data.reason)
