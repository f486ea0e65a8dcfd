"""
Coupon service
Validates promo codes against a subtotal and computes the discount
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional
from datetime import datetime, timezone
from decimal import Decimal
import logging

from sqlalchemy import select, func, delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import async_sessionmaker

from cartledger.core.database import AsyncSessionLocal, get_db_context
from cartledger.core.exceptions import DuplicateResourceException, NotFoundException
from cartledger.models.coupon import Coupon, CouponKind
from cartledger.models.order import Order
from cartledger.schemas.coupon import CouponCreate, CouponRecord
from cartledger.schemas.results import CouponRejection, CouponResult, CouponStatus
from .pricing import to_cents

logger = logging.getLogger(__name__)

REJECTION_MESSAGES = {
    CouponRejection.INVALID: "Invalid coupon code.",
    CouponRejection.INACTIVE: "This coupon is currently inactive.",
    CouponRejection.EXPIRED: "This coupon has expired.",
    CouponRejection.BELOW_MINIMUM: "This coupon requires a minimum order of {minimum}.",
    CouponRejection.ALREADY_APPLIED: "A coupon is already applied. Please remove it first.",
}

def normalize_code(code: str) -> str:
    return code.strip().upper()

class CouponLookup(ABC):
    """Read side of the coupon store"""

    @abstractmethod
    async def get_by_code(self, code: str) -> Optional[CouponRecord]:
        """Return the coupon with this (uppercase) code, or None"""

class CouponEngine:
    """
    Coupon validation engine

    Independent of cart mechanics: given a code, a subtotal and the current
    time it decides validity and computes a discount. Discounts are always
    recomputed from scratch, never adjusted incrementally.
    """

    def __init__(self, lookup: CouponLookup):
        self.lookup = lookup

    @staticmethod
    def compute_discount(coupon: CouponRecord, subtotal: Decimal) -> Decimal:
        """
        Calculate the discount for a subtotal

        Flat coupons never discount below zero net. Percentage coupons are
        uncapped; a value above 100 is an administrative error, not a runtime one.
        The discount is rounded to cents.
        """
        if coupon.kind == CouponKind.FLAT:
            return to_cents(min(coupon.value, subtotal))
        return to_cents(subtotal * coupon.value / Decimal("100"))

    @staticmethod
    def check(coupon: CouponRecord, subtotal: Decimal, now: datetime) -> Optional[CouponRejection]:
        """Return why the coupon is not applicable, or None if it is"""
        if not coupon.is_active:
            return CouponRejection.INACTIVE

        # Valid through the end of its expiry day
        if coupon.expiry_date and now.date() > coupon.expiry_date:
            return CouponRejection.EXPIRED

        if coupon.min_order_value is not None and subtotal < coupon.min_order_value:
            return CouponRejection.BELOW_MINIMUM

        return None

    async def _fetch(self, code: str) -> Optional[CouponRecord]:
        try:
            return await self.lookup.get_by_code(normalize_code(code))
        except Exception as e:
            logger.error(f"Coupon lookup failed for {code}: {e}")
            return None

    def _rejected(
        self,
        code: str,
        reason: CouponRejection,
        coupon: Optional[CouponRecord] = None,
        status: CouponStatus = CouponStatus.REJECTED,
    ) -> CouponResult:
        message = REJECTION_MESSAGES[reason]
        if reason == CouponRejection.BELOW_MINIMUM and coupon is not None:
            message = message.format(minimum=coupon.min_order_value)
        logger.info(f"Coupon {code} {status.value}: {reason.value}")
        return CouponResult(status=status, code=code, reason=reason, message=message)

    async def apply(
        self,
        code: str,
        subtotal: Decimal,
        now: Optional[datetime] = None,
        attached_code: Optional[str] = None,
    ) -> CouponResult:
        """
        Validate a code for a subtotal

        Args:
            code: Code as typed by the shopper (case-insensitive)
            subtotal: Current cart subtotal
            now: Evaluation time (defaults to current UTC time)
            attached_code: Code already attached to the session, if any

        Returns:
            CouponResult with status applied and the discount, or rejected
            with the first failing reason in check order
        """
        normalized = normalize_code(code)
        if attached_code:
            return self._rejected(normalized, CouponRejection.ALREADY_APPLIED)

        now = now or datetime.now(timezone.utc)
        coupon = await self._fetch(normalized)
        if coupon is None:
            return self._rejected(normalized, CouponRejection.INVALID)

        reason = self.check(coupon, subtotal, now)
        if reason:
            return self._rejected(coupon.code, reason, coupon)

        discount = self.compute_discount(coupon, subtotal)
        logger.info(f"Coupon {coupon.code} applied to subtotal {subtotal}: discount {discount}")
        return CouponResult(
            status=CouponStatus.APPLIED,
            code=coupon.code,
            discount=discount,
            message=f'Success! Coupon "{coupon.code}" applied.',
        )

    async def revalidate(
        self,
        attached_code: str,
        subtotal: Decimal,
        now: Optional[datetime] = None,
    ) -> CouponResult:
        """
        Re-check an attached coupon after the subtotal changed

        Returns:
            revalidated with a freshly computed discount, or detached with
            the reason the coupon no longer applies
        """
        now = now or datetime.now(timezone.utc)
        normalized = normalize_code(attached_code)
        coupon = await self._fetch(normalized)
        if coupon is None:
            return self._rejected(normalized, CouponRejection.INVALID, status=CouponStatus.DETACHED)

        reason = self.check(coupon, subtotal, now)
        if reason:
            return self._rejected(coupon.code, reason, coupon, status=CouponStatus.DETACHED)

        return CouponResult(
            status=CouponStatus.REVALIDATED,
            code=coupon.code,
            discount=self.compute_discount(coupon, subtotal),
        )

class CouponRepository(CouponLookup):
    """SQL-backed coupon store"""

    def __init__(self, session_factory: async_sessionmaker = AsyncSessionLocal):
        self.session_factory = session_factory

    async def get_by_code(self, code: str) -> Optional[CouponRecord]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(Coupon).where(Coupon.code == normalize_code(code))
            )
            coupon = result.scalar_one_or_none()
            return CouponRecord.model_validate(coupon) if coupon else None

    async def create(self, data: CouponCreate) -> CouponRecord:
        """Create an active coupon; codes are stored uppercase"""
        coupon = Coupon(
            code=normalize_code(data.code),
            kind=data.kind,
            value=data.value,
            min_order_value=data.min_order_value,
            expiry_date=data.expiry_date,
            is_active=True,
        )
        try:
            async with get_db_context(self.session_factory) as session:
                session.add(coupon)
        except IntegrityError:
            raise DuplicateResourceException("Coupon", "code", coupon.code)

        logger.info(f"Coupon {coupon.code} created")
        return CouponRecord.model_validate(coupon)

    async def set_active(self, code: str, is_active: bool) -> CouponRecord:
        async with get_db_context(self.session_factory) as session:
            result = await session.execute(
                select(Coupon).where(Coupon.code == normalize_code(code))
            )
            coupon = result.scalar_one_or_none()
            if not coupon:
                raise NotFoundException("Coupon not found")
            coupon.is_active = is_active

        logger.info(f"Coupon {coupon.code} active={is_active}")
        return CouponRecord.model_validate(coupon)

    async def delete(self, code: str) -> bool:
        async with get_db_context(self.session_factory) as session:
            result = await session.execute(
                delete(Coupon).where(Coupon.code == normalize_code(code))
            )
        return result.rowcount > 0

    async def list_with_usage(self) -> List[CouponRecord]:
        """All coupons, newest first, with usage counted from placed orders"""
        async with self.session_factory() as session:
            usage_rows = await session.execute(
                select(Order.coupon_code, func.count(Order.id))
                .where(Order.coupon_code.is_not(None))
                .group_by(Order.coupon_code)
            )
            usage: Dict[str, int] = {code: count for code, count in usage_rows.all()}

            result = await session.execute(
                select(Coupon).order_by(Coupon.created_at.desc())
            )
            coupons = result.scalars().all()

        return [
            CouponRecord.model_validate(coupon).model_copy(
                update={"usage_count": usage.get(coupon.code, 0)}
            )
            for coupon in coupons
        ]
