"""
Checkout orchestration
Turns a session's cart into an immutable order
"""

from typing import Dict, List, Optional
from datetime import datetime, timezone
import logging

from cartledger.core.exceptions import PersistenceFailure, StockCheckFailed
from cartledger.models.order import PaymentMethod
from cartledger.schemas.cart import CartSnapshot
from cartledger.schemas.order import OrderCreate, OrderItemSnapshot, OrderTotals
from cartledger.schemas.results import CheckoutResult, CheckoutStatus
from .cart_service import CartManager
from .order_service import OrderLedger
from .payment_service import PaymentCollaborator
from .pricing import compute_totals

logger = logging.getLogger(__name__)

class CheckoutService:
    """Places orders from a cart manager's current cart"""
    
    def __init__(
        self,
        cart: CartManager,
        ledger: OrderLedger,
        payments: PaymentCollaborator,
    ):
        self.cart = cart
        self.ledger = ledger
        self.payments = payments
    
    async def checkout(
        self,
        buyer_id: str,
        payment_method: PaymentMethod,
        now: Optional[datetime] = None,
    ) -> CheckoutResult:
        """
        Place an order for the cart
        
        Stock is re-read for every line immediately before placing. A
        dismissed payment puts the cart back exactly as it was; a failed
        ledger write leaves the cart untouched.
        
        Args:
            buyer_id: Authenticated buyer
            payment_method: Prepaid orders are paid before they are recorded
            now: Placement time
            
        Returns:
            CheckoutResult placed, rejected, cancelled or failed
        """
        now = now or datetime.now(timezone.utc)
        if self.cart.snapshot.is_empty:
            return self._result(CheckoutStatus.REJECTED, reason="empty_cart")
        
        conflicts = await self._stock_conflicts()
        if conflicts is None:
            return self._result(
                CheckoutStatus.REJECTED,
                reason="stock_check_failed",
                notices=["We couldn't verify stock right now. Please try again."],
            )
        if conflicts:
            notices = await self.cart.revalidate(now)
            logger.info(f"Checkout for {buyer_id} blocked by stock conflicts on {', '.join(conflicts)}")
            return self._result(CheckoutStatus.REJECTED, reason="stock_conflict", notices=notices)
        
        notices = await self.cart.refresh_coupon(now)
        
        previous_method = self.cart.payment_method
        self.cart.set_payment_method(payment_method)
        snapshot: CartSnapshot = self.cart.snapshot
        coupon_code = self.cart.coupon_code
        totals = compute_totals(
            snapshot.subtotal,
            self.cart.tax_rate_percent,
            self.cart.platform_fee,
            self.cart.shipping_fee,
            self.cart.discount,
        )
        
        payment_reference = None
        if payment_method == PaymentMethod.PREPAID:
            try:
                outcome = await self.payments.collect(totals.grand_total, buyer_id)
            except Exception as e:
                logger.error(f"Payment failed for {buyer_id}: {e}")
                self.cart.set_payment_method(previous_method)
                return self._result(CheckoutStatus.FAILED, totals=totals, reason="payment_failed", notices=notices)
            if outcome.is_cancelled:
                await self._restore(snapshot, coupon_code, previous_method)
                logger.info(f"Checkout for {buyer_id} cancelled at payment")
                return self._result(CheckoutStatus.CANCELLED, totals=totals, reason="payment_cancelled", notices=notices)
            payment_reference = outcome.token
        
        order = OrderCreate(
            buyer_id=buyer_id,
            items=[
                OrderItemSnapshot(
                    product_id=line.product_id,
                    seller_id=line.seller_id,
                    name=line.name,
                    unit_price=line.unit_price,
                    quantity=line.quantity,
                    variant=line.variant,
                    return_days=line.return_days,
                )
                for line in snapshot.lines
            ],
            subtotal=totals.subtotal,
            tax_amount=totals.tax_amount,
            platform_fee=totals.platform_fee,
            shipping_fee=totals.shipping_fee,
            coupon_code=coupon_code,
            coupon_discount=totals.coupon_discount if coupon_code else None,
            total_price=totals.grand_total,
            payment_method=payment_method,
            payment_reference=payment_reference,
            placed_at=now,
        )
        try:
            record = await self.ledger.append(order)
        except PersistenceFailure as e:
            self.cart.set_payment_method(previous_method)
            if payment_reference:
                logger.error(f"Order not recorded for {buyer_id} after payment {payment_reference}: {e.detail}")
            return self._result(CheckoutStatus.FAILED, totals=totals, reason="order_not_saved", notices=notices)
        
        cleared = await self.cart.clear()
        if not cleared.succeeded:
            logger.warning(f"Order {record.id} placed but cart {self.cart.owner_key} was not cleared")
            notices = notices + ["Your order was placed, but we couldn't empty your cart."]
        
        return self._result(CheckoutStatus.PLACED, order_id=record.id, totals=totals, notices=notices)
    
    async def _stock_conflicts(self) -> Optional[List[str]]:
        """Line keys whose quantity exceeds fresh stock; None if stock could not be read"""
        conflicts = []
        stock: Dict[str, Optional[int]] = {}
        for line in self.cart.snapshot.lines:
            if line.product_id not in stock:
                try:
                    stock[line.product_id] = await self.cart.query_stock(line.product_id)
                except StockCheckFailed as e:
                    logger.warning(e.detail)
                    return None
            available = stock[line.product_id]
            if available is None or line.quantity > available:
                conflicts.append(line.key)
        return conflicts
    
    async def _restore(
        self,
        snapshot: CartSnapshot,
        coupon_code: Optional[str],
        payment_method: PaymentMethod,
    ) -> None:
        self.cart.set_payment_method(payment_method)
        if self.cart.snapshot == snapshot and self.cart.coupon_code == coupon_code:
            return
        if not await self.cart.restore(snapshot, coupon_code):
            logger.error(f"Failed to restore cart {self.cart.owner_key} after cancelled payment")
    
    @staticmethod
    def _result(
        status: CheckoutStatus,
        order_id: Optional[str] = None,
        totals: Optional[OrderTotals] = None,
        reason: Optional[str] = None,
        notices: Optional[List[str]] = None,
    ) -> CheckoutResult:
        return CheckoutResult(
            status=status,
            order_id=order_id,
            totals=totals,
            reason=reason,
            notices=notices or [],
        )
