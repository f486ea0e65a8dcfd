"""
Cart service
Keeps one session's cart consistent with live stock, its backing store and
the attached coupon
"""

from typing import Dict, List, Optional, Tuple
from datetime import datetime
from decimal import Decimal
import asyncio
import logging

from cartledger.core.config import settings
from cartledger.core.exceptions import StockCheckFailed
from cartledger.models.order import PaymentMethod
from cartledger.schemas.cart import (
    CartLine,
    CartSnapshot,
    CartState,
    ProductInfo,
    ProductSnapshot,
    SelectedVariant,
    composite_key,
)
from cartledger.schemas.results import (
    CartMutationResult,
    CouponRejection,
    CouponResult,
    CouponStatus,
    MutationStatus,
    RejectionReason,
)
from .cart_store import CartStore, CouponSlot
from .coupon_service import CouponEngine
from .pricing import ZERO, compute_shipping_fee, compute_totals
from .stock_oracle import StockOracle

logger = logging.getLogger(__name__)

class CartManager:
    """
    Cart consistency manager for a single session

    Mutations are serialized per session. Each one consults the stock oracle,
    builds a candidate snapshot, persists it, and only then adopts it. A
    failed write leaves the in-memory cart untouched and reports ``failed``.
    """

    def __init__(
        self,
        owner_key: str,
        store: CartStore,
        oracle: StockOracle,
        coupons: CouponEngine,
        coupon_slot: CouponSlot,
        payment_method: PaymentMethod = PaymentMethod.PREPAID,
        tax_rate_percent: Optional[Decimal] = None,
        platform_fee: Optional[Decimal] = None,
        stock_timeout: Optional[float] = None,
    ):
        self.owner_key = owner_key
        self.store = store
        self.oracle = oracle
        self.coupons = coupons
        self.coupon_slot = coupon_slot
        self.payment_method = payment_method
        self.tax_rate_percent = settings.TAX_RATE_PERCENT if tax_rate_percent is None else tax_rate_percent
        self.platform_fee = settings.PLATFORM_FEE if platform_fee is None else platform_fee
        self.stock_timeout = stock_timeout or settings.STOCK_CHECK_TIMEOUT_SECONDS

        self.snapshot = CartSnapshot()
        self.coupon_code: Optional[str] = None
        self.discount = ZERO
        self.notices: List[str] = []

        self._lock = asyncio.Lock()
        # Latest quantity the shopper asked for, per line key
        self._desired: Dict[str, int] = {}

    # Read side

    @property
    def shipping_fee(self) -> Decimal:
        return compute_shipping_fee(self.payment_method)

    @property
    def state(self) -> CartState:
        """Read-only projection of the cart with its money breakdown"""
        if self.snapshot.is_empty:
            platform_fee = shipping_fee = ZERO
        else:
            platform_fee, shipping_fee = self.platform_fee, self.shipping_fee
        totals = compute_totals(
            self.snapshot.subtotal,
            self.tax_rate_percent,
            platform_fee,
            shipping_fee,
            self.discount,
        )
        return CartState(
            lines=list(self.snapshot.lines),
            item_count=self.snapshot.item_count,
            subtotal=totals.subtotal,
            tax_rate_percent=totals.tax_rate_percent,
            tax_amount=totals.tax_amount,
            platform_fee=totals.platform_fee,
            shipping_fee=totals.shipping_fee,
            discount=totals.coupon_discount,
            grand_total=totals.grand_total,
            coupon_code=self.coupon_code,
            notices=list(self.notices),
        )

    def set_payment_method(self, payment_method: PaymentMethod) -> None:
        self.payment_method = payment_method

    async def load(self, now: Optional[datetime] = None) -> CartState:
        """
        Load the cart from its store and revalidate it

        Revalidation runs on every load; prices and stock cached when a
        line was added are never trusted.
        """
        async with self._lock:
            self.notices = []
            try:
                self.snapshot = await self.store.load(self.owner_key)
            except Exception as e:
                logger.error(f"Failed to load cart {self.owner_key}: {e}")
                self.snapshot = CartSnapshot()
                self.notices.append("Your saved cart could not be loaded.")

            try:
                self.coupon_code = await self.coupon_slot.get(self.owner_key)
            except Exception as e:
                logger.error(f"Failed to load attached coupon for {self.owner_key}: {e}")
                self.coupon_code = None
            self.discount = ZERO

            self.notices.extend(await self._revalidate(now))
            return self.state

    async def revalidate(self, now: Optional[datetime] = None) -> List[str]:
        """Re-check every line against fresh price and stock; returns notices"""
        async with self._lock:
            self.notices = await self._revalidate(now)
            return list(self.notices)

    async def refresh_coupon(self, now: Optional[datetime] = None) -> List[str]:
        """Revalidate the attached coupon against the current subtotal; returns notices"""
        async with self._lock:
            notices: List[str] = []
            await self._refresh_coupon(now, notices)
            self.notices = notices
            return notices

    # Cart actions

    async def add_item(
        self,
        product: ProductSnapshot,
        quantity: int = 1,
        variant: Optional[SelectedVariant] = None,
        now: Optional[datetime] = None,
    ) -> CartMutationResult:
        """
        Add a product, merging into an existing line with the same variant

        Returns:
            ok, clamped (quantity limited to available stock) or rejected
        """
        size = variant.size if variant else None
        color = variant.color if variant else None
        key = composite_key(product.id, size, color)

        if quantity <= 0:
            return self._rejected(key, RejectionReason.INVALID_QUANTITY)

        async with self._lock:
            self.notices = []
            stock, reason = await self._stock_for(product.id)
            if reason:
                return self._rejected(key, reason)
            if stock == 0:
                return self._rejected(key, RejectionReason.OUT_OF_STOCK, f"{product.name or product.id} is out of stock.")

            existing = self.snapshot.get(key)
            requested = (existing.quantity if existing else 0) + quantity
            new_quantity = min(requested, stock)

            notices = []
            status = MutationStatus.OK
            if new_quantity < requested:
                status = MutationStatus.CLAMPED
                notices.append(f"Only {stock} of {product.name or product.id} available. Quantity set to {new_quantity}.")
                logger.info(f"Clamped {key} in {self.owner_key} from {requested} to {new_quantity}")

            line = CartLine(
                product_id=product.id,
                name=product.name,
                seller_id=product.seller_id,
                unit_price=product.price,
                original_unit_price=product.original_price,
                quantity=new_quantity,
                variant=variant if (size or color) else None,
                return_days=product.return_days,
            )
            return await self._commit(self.snapshot.with_line(line), key, new_quantity, status, notices, now)

    async def set_quantity(
        self,
        line_key: str,
        quantity: int,
        now: Optional[datetime] = None,
    ) -> CartMutationResult:
        """
        Set a line's quantity

        The quantity applied is the latest one requested for this line when
        the stock answer arrives, not the one captured when this call started.
        Use remove_item to drop a line.
        """
        if quantity <= 0:
            return self._rejected(line_key, RejectionReason.INVALID_QUANTITY)

        self._desired[line_key] = quantity
        async with self._lock:
            self.notices = []
            line = self.snapshot.get(line_key)
            if not line:
                self._desired.pop(line_key, None)
                return self._rejected(line_key, RejectionReason.LINE_NOT_FOUND)

            stock, reason = await self._stock_for(line.product_id)
            desired = self._desired.get(line_key, quantity)
            if reason:
                return self._rejected(line_key, reason)
            if stock == 0:
                return self._rejected(line_key, RejectionReason.OUT_OF_STOCK, f"{line.name or line.product_id} is out of stock.")

            new_quantity = min(desired, stock)
            notices = []
            status = MutationStatus.OK
            if new_quantity < desired:
                status = MutationStatus.CLAMPED
                notices.append(f"Only {stock} of {line.name or line.product_id} available. Quantity set to {new_quantity}.")
                logger.info(f"Clamped {line_key} in {self.owner_key} from {desired} to {new_quantity}")

            candidate = self.snapshot.with_line(line.model_copy(update={"quantity": new_quantity}))
            result = await self._commit(candidate, line_key, new_quantity, status, notices, now)
            if self._desired.get(line_key) == desired:
                del self._desired[line_key]
            return result

    async def remove_item(self, line_key: str, now: Optional[datetime] = None) -> CartMutationResult:
        async with self._lock:
            self.notices = []
            if not self.snapshot.get(line_key):
                return self._rejected(line_key, RejectionReason.LINE_NOT_FOUND)
            self._desired.pop(line_key, None)
            return await self._commit(self.snapshot.without(line_key), line_key, 0, MutationStatus.OK, [], now)

    async def clear(self) -> CartMutationResult:
        """Empty the cart and detach any coupon"""
        async with self._lock:
            self.notices = []
            if not await self._save(CartSnapshot()):
                return self._failed(None)
            self.snapshot = CartSnapshot()
            self._desired.clear()
            if self.coupon_code and not await self._write_slot(None):
                logger.warning(f"Cart {self.owner_key} cleared but coupon slot still holds {self.coupon_code}")
            self.coupon_code = None
            self.discount = ZERO
            logger.info(f"Cart {self.owner_key} cleared")
            return CartMutationResult(status=MutationStatus.OK)

    async def apply_coupon(self, code: str, now: Optional[datetime] = None) -> CouponResult:
        """
        Attach a coupon to the cart

        Applied locally first, then written to the session slot; reverted
        if that write fails.
        """
        async with self._lock:
            self.notices = []
            result = await self.coupons.apply(
                code, self.snapshot.subtotal, now=now, attached_code=self.coupon_code
            )
            if not result.accepted:
                return result

            previous = (self.coupon_code, self.discount)
            self.coupon_code, self.discount = result.code, result.discount
            if not await self._write_slot(result.code):
                self.coupon_code, self.discount = previous
                return self._coupon_failed(result.code)
            return result

    async def remove_coupon(self) -> CouponResult:
        async with self._lock:
            self.notices = []
            if not self.coupon_code:
                return CouponResult(status=CouponStatus.REMOVED, message="No coupon applied.")

            previous = (self.coupon_code, self.discount)
            self.coupon_code, self.discount = None, ZERO
            if not await self._write_slot(None):
                self.coupon_code, self.discount = previous
                return self._coupon_failed(previous[0])
            logger.info(f"Coupon {previous[0]} removed from {self.owner_key}")
            return CouponResult(status=CouponStatus.REMOVED, code=previous[0], message="Coupon removed.")

    async def restore(self, snapshot: CartSnapshot, coupon_code: Optional[str]) -> bool:
        """Put back an earlier snapshot and coupon exactly as they were"""
        async with self._lock:
            if not await self._save(snapshot):
                return False
            self.snapshot = snapshot
            if coupon_code != self.coupon_code and not await self._write_slot(coupon_code):
                logger.warning(f"Restored cart {self.owner_key} without coupon {coupon_code}")
                coupon_code = None
            self.coupon_code = coupon_code
            if coupon_code is None:
                self.discount = ZERO
            else:
                await self._refresh_coupon(None)
            return True

    # Login

    @staticmethod
    def merge_on_login(anonymous: CartSnapshot, persisted: CartSnapshot) -> CartSnapshot:
        """
        Union-merge two snapshots by composite key

        A key in both keeps the persisted line with the larger of the two
        quantities, so a cart that round-trips between guest and signed-in
        states never inflates. Persisted lines come first, then guest-only
        lines, each in their original order. Merging again is a no-op.
        """
        anonymous_lines = anonymous.as_dict()
        lines = []
        for line in persisted.lines:
            other = anonymous_lines.get(line.key)
            if other and other.quantity > line.quantity:
                line = line.model_copy(update={"quantity": other.quantity})
            lines.append(line)

        persisted_keys = {line.key for line in persisted.lines}
        lines.extend(line for line in anonymous.lines if line.key not in persisted_keys)
        return CartSnapshot(lines=lines)

    async def login(
        self,
        owner_key: str,
        store: CartStore,
        now: Optional[datetime] = None,
    ) -> CartMutationResult:
        """
        Transfer this session's guest cart to an authenticated owner

        The merged cart is written to the owner's store before the guest
        cart is discarded, then revalidated against current price and stock.
        """
        async with self._lock:
            self.notices = []
            try:
                persisted = await store.load(owner_key)
            except Exception as e:
                logger.error(f"Failed to load persisted cart {owner_key}: {e}")
                return self._failed(None)

            merged = self.merge_on_login(self.snapshot, persisted)
            try:
                saved = await store.save(owner_key, merged)
            except Exception as e:
                logger.error(f"Failed to save merged cart {owner_key}: {e}")
                saved = False
            if not saved:
                return self._failed(None)

            guest_key, guest_store = self.owner_key, self.store
            try:
                await guest_store.discard(guest_key)
            except Exception as e:
                logger.warning(f"Failed to discard guest cart {guest_key}: {e}")

            self.owner_key, self.store = owner_key, store
            self.snapshot = merged
            self._desired.clear()
            logger.info(f"Merged guest cart {guest_key} into {owner_key}: {len(merged.lines)} lines")

            await self._carry_coupon(guest_key)
            notices = await self._revalidate(now)
            self.notices = notices
            return CartMutationResult(status=MutationStatus.OK, quantity=self.snapshot.item_count, notices=notices)

    # Internals

    async def _stock_for(self, product_id: str) -> Tuple[Optional[int], Optional[RejectionReason]]:
        """Fresh stock for a product, or the reason it could not be used"""
        try:
            stock = await self.query_stock(product_id)
        except StockCheckFailed as e:
            logger.warning(e.detail)
            return None, RejectionReason.STOCK_CHECK_FAILED
        if stock is None:
            return None, RejectionReason.PRODUCT_UNAVAILABLE
        return max(0, stock), None

    async def query_stock(self, product_id: str) -> Optional[int]:
        """
        Fresh available stock, None when the product is gone

        Raises:
            StockCheckFailed: If the oracle timed out or errored
        """
        try:
            return await asyncio.wait_for(self.oracle.get_available(product_id), self.stock_timeout)
        except asyncio.TimeoutError:
            raise StockCheckFailed(product_id, "timed out")
        except Exception as e:
            raise StockCheckFailed(product_id, str(e))

    async def _fresh_products(self, product_ids: List[str]) -> Dict[str, ProductInfo]:
        try:
            return await asyncio.wait_for(self.oracle.get_products(product_ids), self.stock_timeout)
        except asyncio.TimeoutError:
            raise StockCheckFailed(",".join(product_ids), "timed out")
        except Exception as e:
            raise StockCheckFailed(",".join(product_ids), str(e))

    async def _revalidate(self, now: Optional[datetime]) -> List[str]:
        notices: List[str] = []
        if self.snapshot.is_empty:
            await self._refresh_coupon(now, notices)
            return notices

        try:
            products = await self._fresh_products([line.product_id for line in self.snapshot.lines])
        except StockCheckFailed as e:
            logger.warning(f"Cart {self.owner_key} revalidation skipped: {e.detail}")
            notices.append("We couldn't verify current prices and stock. Please try again shortly.")
            await self._refresh_coupon(now, notices)
            return notices

        lines = []
        for line in self.snapshot.lines:
            label = line.name or line.product_id
            info = products.get(line.product_id)
            if info is None:
                notices.append(f"{label} is no longer available and was removed from your cart.")
                logger.info(f"Dropped {line.key} from {self.owner_key}: product gone")
                continue
            if info.stock_quantity == 0:
                notices.append(f"{label} is out of stock and was removed from your cart.")
                logger.info(f"Dropped {line.key} from {self.owner_key}: out of stock")
                continue

            quantity = line.quantity
            if quantity > info.stock_quantity:
                quantity = info.stock_quantity
                notices.append(f"Only {quantity} of {label} available. Quantity updated.")
                logger.info(f"Clamped {line.key} in {self.owner_key} from {line.quantity} to {quantity}")

            lines.append(line.model_copy(update={
                "quantity": quantity,
                "unit_price": info.price,
                "original_unit_price": info.original_price,
                "name": info.name or line.name,
            }))

        revalidated = CartSnapshot(lines=lines)
        if revalidated != self.snapshot:
            if not await self._save(revalidated):
                notices.append("Your cart was updated but could not be saved.")
            # Fresh stock wins over the stored cart even when the write fails
            self.snapshot = revalidated

        await self._refresh_coupon(now, notices)
        return notices

    async def _refresh_coupon(self, now: Optional[datetime], notices: Optional[List[str]] = None) -> Optional[CouponResult]:
        """Recompute the attached coupon's discount from scratch, detaching it if no longer valid"""
        if not self.coupon_code:
            self.discount = ZERO
            return None

        result = await self.coupons.revalidate(self.coupon_code, self.snapshot.subtotal, now=now)
        if result.accepted:
            self.discount = result.discount
            return result

        logger.info(f"Detached coupon {self.coupon_code} from {self.owner_key}: {result.reason.value}")
        self.coupon_code, self.discount = None, ZERO
        if not await self._write_slot(None):
            logger.warning(f"Coupon slot for {self.owner_key} still holds a detached coupon")
        if notices is not None:
            notices.append(f"Coupon {result.code} was removed: {result.message}")
        return result

    async def _carry_coupon(self, guest_key: str) -> None:
        """Keep the owner's attached coupon, or adopt the guest's"""
        guest_code = self.coupon_code
        try:
            owner_code = await self.coupon_slot.get(self.owner_key)
        except Exception as e:
            logger.error(f"Failed to load attached coupon for {self.owner_key}: {e}")
            owner_code = None

        self.coupon_code = owner_code or guest_code
        if self.coupon_code and not owner_code:
            if not await self._write_slot(self.coupon_code):
                self.coupon_code = None
        if guest_code:
            try:
                await self.coupon_slot.set(guest_key, None)
            except Exception as e:
                logger.warning(f"Failed to clear guest coupon slot {guest_key}: {e}")

    async def _commit(
        self,
        candidate: CartSnapshot,
        line_key: str,
        quantity: int,
        status: MutationStatus,
        notices: List[str],
        now: Optional[datetime],
    ) -> CartMutationResult:
        if not await self._save(candidate):
            return self._failed(line_key)

        self.snapshot = candidate
        await self._refresh_coupon(now, notices)
        self.notices = list(notices)
        return CartMutationResult(status=status, line_key=line_key, quantity=quantity, notices=notices)

    async def _save(self, snapshot: CartSnapshot) -> bool:
        try:
            saved = await self.store.save(self.owner_key, snapshot)
        except Exception as e:
            logger.error(f"Cart store write failed for {self.owner_key}: {e}")
            return False
        if not saved:
            logger.warning(f"Cart store rejected write for {self.owner_key}")
        return bool(saved)

    async def _write_slot(self, code: Optional[str]) -> bool:
        try:
            return bool(await self.coupon_slot.set(self.owner_key, code))
        except Exception as e:
            logger.error(f"Coupon slot write failed for {self.owner_key}: {e}")
            return False

    def _rejected(self, line_key: str, reason: RejectionReason, notice: Optional[str] = None) -> CartMutationResult:
        logger.info(f"Cart {self.owner_key} rejected {line_key}: {reason.value}")
        return CartMutationResult(
            status=MutationStatus.REJECTED,
            line_key=line_key,
            reason=reason,
            notices=[notice] if notice else [],
        )

    def _failed(self, line_key: Optional[str]) -> CartMutationResult:
        notice = "We couldn't save your cart. Please try again."
        self.notices = [notice]
        return CartMutationResult(
            status=MutationStatus.FAILED,
            line_key=line_key,
            reason=RejectionReason.PERSISTENCE_FAILED,
            notices=[notice],
        )

    def _coupon_failed(self, code: Optional[str]) -> CouponResult:
        logger.warning(f"Coupon slot write failed for {self.owner_key}; reverted {code}")
        return CouponResult(
            status=CouponStatus.FAILED,
            code=code,
            reason=CouponRejection.PERSISTENCE_FAILED,
            message="We couldn't update your coupon. Please try again.",
        )
