"""Seller and platform revenue routes"""

from fastapi import APIRouter, Depends

from cartledger.api.dependencies import (
    get_current_actor,
    get_order_ledger,
    get_return_ledger,
    get_stock_oracle,
    require_admin,
)
from cartledger.core.config import settings
from cartledger.core.exceptions import ForbiddenException
from cartledger.schemas.order import Actor, ActorRole
from cartledger.schemas.revenue import PlatformRevenueSummary, SellerRevenueSummary
from cartledger.services.order_service import OrderLedger
from cartledger.services.return_service import ReturnLedger
from cartledger.services.revenue_service import platform_revenue, summarize
from cartledger.services.stock_oracle import DatabaseStockOracle

router = APIRouter()

@router.get("/platform/revenue", response_model=PlatformRevenueSummary)
async def get_platform_revenue(
    actor: Actor = Depends(require_admin),
    ledger: OrderLedger = Depends(get_order_ledger),
    returns: ReturnLedger = Depends(get_return_ledger),
    oracle: DatabaseStockOracle = Depends(get_stock_oracle),
):
    """Platform take: tax, fees, shipping and margin on the platform's own items"""
    orders = await ledger.list_for()
    return_requests = await returns.list_for()
    
    cost_prices = {}
    if settings.ADMIN_SELLER_ID:
        own_products = {
            item.product_id
            for order in orders
            for item in order.seller_items(settings.ADMIN_SELLER_ID)
        }
        cost_prices = await oracle.get_cost_prices(own_products)
    
    return platform_revenue(orders, return_requests, settings.ADMIN_SELLER_ID, cost_prices)

@router.get("/{seller_id}/revenue", response_model=SellerRevenueSummary)
async def get_seller_revenue(
    seller_id: str,
    actor: Actor = Depends(get_current_actor),
    ledger: OrderLedger = Depends(get_order_ledger),
    returns: ReturnLedger = Depends(get_return_ledger),
):
    """Recognized revenue for a seller, recomputed from the full history"""
    if actor.role != ActorRole.ADMIN and actor.user_id != seller_id:
        raise ForbiddenException("You can only view your own revenue")
    
    orders = await ledger.list_for()
    return_requests = await returns.list_for()
    return summarize(seller_id, orders, return_requests)
