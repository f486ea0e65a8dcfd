"""
Return ledger
Buyers request returns of delivered items inside the item's return window;
an admin approves or rejects each request exactly once
"""

from typing import Iterable, List, Optional
from datetime import datetime, time, timedelta, timezone
import logging
import math

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from cartledger.core.database import AsyncSessionLocal, get_db_context
from cartledger.core.exceptions import (
    DuplicateResourceException,
    ForbiddenException,
    NotFoundException,
    PersistenceFailure,
    ReturnNotAllowedException,
)
from cartledger.core.feed import RETURNS_TOPIC, ChangeFeed
from cartledger.models.order import Order, OrderStatus
from cartledger.models.return_request import ReturnRequest, ReturnStatus
from cartledger.schemas.order import (
    Actor,
    ActorRole,
    OrderItemSnapshot,
    OrderRecord,
    ReturnRequestRecord,
)

logger = logging.getLogger(__name__)

def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)

def return_deadline(item: OrderItemSnapshot, order: OrderRecord) -> Optional[datetime]:
    """End of the last day of the item's return window, or None if not returnable"""
    if not order.delivered_at or item.return_days is None or item.return_days < 0:
        return None
    delivered_at = _as_utc(order.delivered_at)
    last_day = (delivered_at + timedelta(days=item.return_days)).date()
    return datetime.combine(last_day, time.max, tzinfo=delivered_at.tzinfo)

def is_return_eligible(item: OrderItemSnapshot, order: OrderRecord, now: datetime) -> bool:
    deadline = return_deadline(item, order)
    return deadline is not None and _as_utc(now) <= deadline

def return_days_left(item: OrderItemSnapshot, order: OrderRecord, now: datetime) -> int:
    """Whole days left to request a return, rounded up; 0 once closed"""
    deadline = return_deadline(item, order)
    if deadline is None:
        return 0
    remaining = (deadline - _as_utc(now)).total_seconds() / 86400
    return max(0, math.ceil(remaining))

class ReturnLedger:
    """SQL-backed return requests that announce every write on the change feed"""
    
    def __init__(
        self,
        session_factory: async_sessionmaker = AsyncSessionLocal,
        feed: Optional[ChangeFeed] = None,
    ):
        self.session_factory = session_factory
        self.feed = feed
    
    async def create(
        self,
        order_id: str,
        product_id: str,
        buyer_id: str,
        reason: str,
        now: Optional[datetime] = None,
    ) -> ReturnRequestRecord:
        """
        Open a return request for one item of a delivered order
        
        Raises:
            NotFoundException: If the order does not exist
            ForbiddenException: If the order belongs to someone else
            ReturnNotAllowedException: If the order is not delivered, the item
                is not in it, or its return window is closed
            DuplicateResourceException: If a request already exists for the item
        """
        now = now or datetime.now(timezone.utc)
        async with self.session_factory() as session:
            order = await session.get(Order, order_id)
            if not order:
                raise NotFoundException("Order not found")
            record = OrderRecord.model_validate(order)
            
            existing = await session.execute(
                select(ReturnRequest.id).where(
                    ReturnRequest.order_id == order_id,
                    ReturnRequest.product_id == product_id,
                )
            )
            duplicate = existing.scalar_one_or_none() is not None
        
        if record.buyer_id != buyer_id:
            raise ForbiddenException("You can only return items from your own orders")
        if record.status != OrderStatus.DELIVERED:
            raise ReturnNotAllowedException("Only delivered orders can be returned")
        
        item = record.item_for(product_id)
        if not item:
            raise ReturnNotAllowedException("Item is not part of this order")
        if not is_return_eligible(item, record, now):
            raise ReturnNotAllowedException("The return window for this item has closed")
        if duplicate:
            raise DuplicateResourceException("Return request", "product", product_id)
        
        request = ReturnRequest(
            order_id=order_id,
            product_id=product_id,
            buyer_id=buyer_id,
            reason=reason,
            status=ReturnStatus.PENDING,
            created_at=now,
        )
        try:
            async with get_db_context(self.session_factory) as session:
                session.add(request)
        except IntegrityError:
            raise DuplicateResourceException("Return request", "product", product_id)
        except SQLAlchemyError as e:
            logger.error(f"Failed to create return for order {order_id}: {e}")
            raise PersistenceFailure("Failed to submit return request")
        
        logger.info(f"Return {request.id} requested for {product_id} on order {order_id}")
        await self._publish("created", request.id)
        return ReturnRequestRecord.model_validate(request)
    
    async def set_status(
        self,
        request_id: str,
        new_status: ReturnStatus,
        actor: Actor,
        reason: Optional[str] = None,
    ) -> ReturnRequestRecord:
        """
        Approve or reject a pending return request
        
        Raises:
            ForbiddenException: If the actor is not an admin
            NotFoundException: If the request does not exist
            ReturnNotAllowedException: If the request was already decided or
                the status is not a decision
        """
        if actor.role != ActorRole.ADMIN:
            raise ForbiddenException("Only administrators can review returns")
        if new_status == ReturnStatus.PENDING:
            raise ReturnNotAllowedException("A return can only be approved or rejected")
        
        try:
            async with get_db_context(self.session_factory) as session:
                request = await session.get(ReturnRequest, request_id)
                if not request:
                    raise NotFoundException("Return request not found")
                if request.status != ReturnStatus.PENDING:
                    raise ReturnNotAllowedException(f"Return request is already {request.status.value}")
                request.status = new_status
                request.status_reason = reason
        except SQLAlchemyError as e:
            logger.error(f"Failed to update return {request_id}: {e}")
            raise PersistenceFailure("Failed to update return request")
        
        logger.info(f"Return {request_id} {new_status.value} by {actor.user_id}")
        await self._publish("status_changed", request_id)
        return ReturnRequestRecord.model_validate(request)
    
    async def list_for(
        self,
        order_id: Optional[str] = None,
        product_ids: Optional[Iterable[str]] = None,
        status: Optional[ReturnStatus] = None,
    ) -> List[ReturnRequestRecord]:
        query = select(ReturnRequest).order_by(ReturnRequest.created_at.desc())
        if order_id:
            query = query.where(ReturnRequest.order_id == order_id)
        if product_ids is not None:
            query = query.where(ReturnRequest.product_id.in_(list(product_ids)))
        if status:
            query = query.where(ReturnRequest.status == status)
        
        async with self.session_factory() as session:
            result = await session.execute(query)
            return [ReturnRequestRecord.model_validate(r) for r in result.scalars().all()]
    
    async def _publish(self, event: str, request_id: str) -> None:
        if self.feed:
            await self.feed.publish(RETURNS_TOPIC, {"event": event, "id": request_id})
