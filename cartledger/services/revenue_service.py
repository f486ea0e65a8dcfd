"""
Revenue recognition
Recomputes per-seller and platform revenue from the full order and return
history on every call; nothing is tracked incrementally
"""

from typing import Awaitable, Callable, Dict, Iterable, List, Optional
from decimal import Decimal
import logging

from cartledger.core.feed import ORDERS_TOPIC, RETURNS_TOPIC, ChangeFeed
from cartledger.models.order import OrderStatus, PaymentMethod
from cartledger.models.return_request import ReturnStatus
from cartledger.schemas.order import OrderRecord, ReturnRequestRecord
from cartledger.schemas.revenue import (
    PayoutRecord,
    PayoutStatus,
    PlatformRevenueSummary,
    SellerOrderShare,
    SellerRevenueSummary,
)
from .pricing import ZERO

logger = logging.getLogger(__name__)

PREPAID_RECOGNIZED = {OrderStatus.PROCESSING, OrderStatus.SHIPPED, OrderStatus.DELIVERED}

def is_recognizable(order: OrderRecord) -> bool:
    """
    Whether an order's revenue is currently earned

    Cash on delivery is earned at delivery; prepaid orders as soon as they
    are placed, unless cancelled.
    """
    if order.payment_method == PaymentMethod.CASH_ON_DELIVERY:
        return order.status == OrderStatus.DELIVERED
    return order.status in PREPAID_RECOGNIZED

def prorated_discount(value: Decimal, order: OrderRecord) -> Decimal:
    """Share of the order's coupon discount carried by value"""
    if not order.coupon_discount or order.subtotal <= 0:
        return ZERO
    return value * order.coupon_discount / order.subtotal

def seller_order_share(seller_id: str, order: OrderRecord) -> Optional[SellerOrderShare]:
    """One seller's slice of an order, or None if they sold nothing in it"""
    items = order.seller_items(seller_id)
    if not items:
        return None
    seller_subtotal = sum((item.line_total for item in items), ZERO)
    discount_share = prorated_discount(seller_subtotal, order)
    return SellerOrderShare(
        order_id=order.id,
        seller_subtotal=seller_subtotal,
        discount_share=discount_share,
        seller_total=seller_subtotal - discount_share,
        recognizable=is_recognizable(order),
    )

def _return_deduction(request: ReturnRequestRecord, order: OrderRecord) -> Decimal:
    item = order.item_for(request.product_id)
    returned_value = item.line_total
    return returned_value - prorated_discount(returned_value, order)

def summarize(
    seller_id: str,
    orders: Iterable[OrderRecord],
    returns: Iterable[ReturnRequestRecord],
) -> SellerRevenueSummary:
    """
    Seller revenue from the full history

    Args:
        seller_id: Seller to report on
        orders: Every order (other sellers' orders are skipped)
        returns: Every return request

    Returns:
        Gross, return deductions and net revenue, the deduction pending
        returns would cause, and any reconciliation anomalies found
    """
    orders_by_id: Dict[str, OrderRecord] = {order.id: order for order in orders}
    summary = SellerRevenueSummary(seller_id=seller_id)

    for order in orders_by_id.values():
        share = seller_order_share(seller_id, order)
        if share and share.recognizable:
            summary.gross_revenue += share.seller_total
            summary.recognized_orders += 1

    for request in returns:
        if request.status == ReturnStatus.REJECTED:
            continue
        order = orders_by_id.get(request.order_id)
        item = order.item_for(request.product_id) if order else None
        if item is None:
            if request.status == ReturnStatus.APPROVED:
                _anomaly(summary, f"Return {request.id} references unknown order item {request.order_id}/{request.product_id}")
            continue
        if item.seller_id != seller_id:
            continue
        if not is_recognizable(order):
            if request.status == ReturnStatus.APPROVED:
                _anomaly(summary, f"Return {request.id} against unrecognized order {order.id} ({order.status.value}) ignored")
            continue

        deduction = _return_deduction(request, order)
        if request.status == ReturnStatus.APPROVED:
            summary.return_deductions += deduction
        else:
            summary.pending_return_deductions += deduction

    summary.net_revenue = summary.gross_revenue - summary.return_deductions
    if summary.net_revenue < 0:
        _anomaly(summary, f"Net revenue for seller {seller_id} is negative: {summary.net_revenue}")
    return summary

def recognized_revenue(
    seller_id: str,
    orders: Iterable[OrderRecord],
    returns: Iterable[ReturnRequestRecord],
) -> Decimal:
    """Net recognized revenue for a seller; may be negative"""
    return summarize(seller_id, orders, returns).net_revenue

def _anomaly(summary: SellerRevenueSummary, message: str) -> None:
    logger.warning(message)
    summary.anomalies.append(message)

def available_for_payout(net_revenue: Decimal, payouts: Iterable[PayoutRecord]) -> Decimal:
    """Net revenue less completed and in-flight payouts"""
    paid = sum(
        (payout.amount for payout in payouts
         if payout.status in (PayoutStatus.COMPLETED, PayoutStatus.PROCESSING)),
        ZERO,
    )
    return net_revenue - paid

def platform_revenue(
    orders: Iterable[OrderRecord],
    returns: Iterable[ReturnRequestRecord],
    admin_seller_id: Optional[str] = None,
    cost_prices: Optional[Dict[str, Decimal]] = None,
) -> PlatformRevenueSummary:
    """
    Platform take over recognizable orders

    Tax, platform fee and shipping fee of every recognizable order, plus the
    margin on items the platform sells itself. An approved return reverses
    the returned item's share of tax and platform fee and, for the
    platform's own items, the margin on it.
    """
    cost_prices = cost_prices or {}
    orders_by_id = {order.id: order for order in orders}
    summary = PlatformRevenueSummary()

    def margin(item) -> Decimal:
        if admin_seller_id is None or item.seller_id != admin_seller_id:
            return ZERO
        cost = cost_prices.get(item.product_id)
        if cost is None:
            return ZERO
        return (item.unit_price - cost) * item.quantity

    for order in orders_by_id.values():
        if not is_recognizable(order):
            continue
        summary.recognized_orders += 1
        summary.total_tax += order.tax_amount
        summary.total_platform_fee += order.platform_fee
        summary.total_shipping_fee += order.shipping_fee
        summary.total_admin_profit += sum((margin(item) for item in order.items), ZERO)

    for request in returns:
        if request.status != ReturnStatus.APPROVED:
            continue
        order = orders_by_id.get(request.order_id)
        if not order or not is_recognizable(order) or order.subtotal <= 0:
            continue
        item = order.item_for(request.product_id)
        if not item:
            continue
        ratio = item.line_total / order.subtotal
        summary.total_tax -= order.tax_amount * ratio
        summary.total_platform_fee -= order.platform_fee * ratio
        summary.total_admin_profit -= margin(item)

    summary.total_revenue = (
        summary.total_tax
        + summary.total_platform_fee
        + summary.total_shipping_fee
        + summary.total_admin_profit
    )
    return summary

OrdersSource = Callable[[], Awaitable[List[OrderRecord]]]
ReturnsSource = Callable[[], Awaitable[List[ReturnRequestRecord]]]

class SellerRevenueView:
    """
    Live seller revenue summary

    Subscribes to the order and return feeds and, on any change, re-reads
    both histories and recomputes the summary from scratch.
    """

    def __init__(
        self,
        seller_id: str,
        feed: ChangeFeed,
        load_orders: OrdersSource,
        load_returns: ReturnsSource,
    ):
        self.seller_id = seller_id
        self.feed = feed
        self.load_orders = load_orders
        self.load_returns = load_returns
        self.summary: Optional[SellerRevenueSummary] = None
        self._unsubscribers: List[Callable[[], None]] = []

    async def start(self) -> SellerRevenueSummary:
        for topic in (ORDERS_TOPIC, RETURNS_TOPIC):
            self._unsubscribers.append(self.feed.subscribe(topic, self._on_change))
        return await self.refresh()

    def stop(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []

    async def refresh(self) -> SellerRevenueSummary:
        orders = await self.load_orders()
        returns = await self.load_returns()
        self.summary = summarize(self.seller_id, orders, returns)
        return self.summary

    async def _on_change(self, message: Dict) -> None:
        logger.debug(f"Revenue view for {self.seller_id} invalidated by {message}")
        await self.refresh()
