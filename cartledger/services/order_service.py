"""
Order ledger
Append-only record of placed orders; only status and delivery time change
"""

from typing import List, Optional
from datetime import datetime, timezone
import logging

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from cartledger.core.database import AsyncSessionLocal, get_db_context
from cartledger.core.exceptions import (
    ForbiddenException,
    NotFoundException,
    OrderTransitionException,
    PersistenceFailure,
)
from cartledger.core.feed import ORDERS_TOPIC, ChangeFeed
from cartledger.models.order import Order, OrderStatus
from cartledger.schemas.order import Actor, ActorRole, OrderCreate, OrderFilter, OrderRecord
from .state_machine import OrderStateMachine

logger = logging.getLogger(__name__)

class OrderLedger:
    """SQL-backed order ledger that announces every write on the change feed"""
    
    def __init__(
        self,
        session_factory: async_sessionmaker = AsyncSessionLocal,
        feed: Optional[ChangeFeed] = None,
    ):
        self.session_factory = session_factory
        self.feed = feed
        self.state_machine = OrderStateMachine()
    
    async def append(self, data: OrderCreate) -> OrderRecord:
        """
        Record a placed order
        
        Raises:
            PersistenceFailure: If the order could not be written
        """
        order = Order(
            buyer_id=data.buyer_id,
            items=[item.model_dump(mode="json") for item in data.items],
            subtotal=data.subtotal,
            tax_amount=data.tax_amount,
            platform_fee=data.platform_fee,
            shipping_fee=data.shipping_fee,
            coupon_code=data.coupon_code,
            coupon_discount=data.coupon_discount,
            total_price=data.total_price,
            payment_method=data.payment_method,
            payment_reference=data.payment_reference,
            status=data.status,
            placed_at=data.placed_at,
            delivered_at=data.delivered_at,
        )
        try:
            async with get_db_context(self.session_factory) as session:
                session.add(order)
        except SQLAlchemyError as e:
            logger.error(f"Failed to append order for buyer {data.buyer_id}: {e}")
            raise PersistenceFailure("Failed to place order")
        
        logger.info(f"Order {order.id} placed by {data.buyer_id}: total {data.total_price}")
        await self._publish("created", order.id)
        return OrderRecord.model_validate(order)
    
    async def get(self, order_id: str) -> OrderRecord:
        async with self.session_factory() as session:
            order = await session.get(Order, order_id)
        if not order:
            raise NotFoundException("Order not found")
        return OrderRecord.model_validate(order)
    
    async def list_for(self, filters: Optional[OrderFilter] = None) -> List[OrderRecord]:
        """
        Orders matching a filter, newest first
        
        A seller filter matches every order holding at least one of that
        seller's items.
        """
        filters = filters or OrderFilter()
        query = select(Order).order_by(Order.placed_at.desc())
        if filters.buyer_id:
            query = query.where(Order.buyer_id == filters.buyer_id)
        if filters.status:
            query = query.where(Order.status == filters.status)
        
        async with self.session_factory() as session:
            result = await session.execute(query)
            orders = [OrderRecord.model_validate(order) for order in result.scalars().all()]
        
        if filters.seller_id:
            orders = [order for order in orders if order.seller_items(filters.seller_id)]
        return orders
    
    def check_permission(self, order: OrderRecord, new_status: OrderStatus, actor: Actor) -> None:
        """
        Raise unless the actor may move this order to new_status
        
        Admins and sellers with items in the order review any transition;
        a buyer may only cancel their own order while it is processing.
        """
        if actor.role == ActorRole.ADMIN:
            return
        if actor.role == ActorRole.SELLER and order.seller_items(actor.user_id):
            return
        if actor.user_id == order.buyer_id:
            if order.status == OrderStatus.PROCESSING and new_status == OrderStatus.CANCELLED:
                return
            raise ForbiddenException("Buyers can only cancel orders that are still processing")
        raise ForbiddenException("You are not allowed to update this order")
    
    async def set_status(
        self,
        order_id: str,
        new_status: OrderStatus,
        actor: Actor,
        now: Optional[datetime] = None,
    ) -> OrderRecord:
        """
        Update order status
        
        Args:
            order_id: Order ID
            new_status: New status
            actor: Who requests the change
            now: Transition time, stamped as delivered_at on delivery
            
        Returns:
            Updated order
            
        Raises:
            NotFoundException: If order not found
            ForbiddenException: If the actor may not make this change
            OrderTransitionException: If the transition is not allowed
            PersistenceFailure: If the update could not be written
        """
        try:
            async with get_db_context(self.session_factory) as session:
                order = await session.get(Order, order_id)
                if not order:
                    raise NotFoundException("Order not found")
                
                record = OrderRecord.model_validate(order)
                self.check_permission(record, new_status, actor)
                if not self.state_machine.can_transition(order.status, new_status):
                    raise OrderTransitionException(order.status.value, new_status.value)
                
                order.status = new_status
                if new_status == OrderStatus.DELIVERED:
                    order.delivered_at = now or datetime.now(timezone.utc)
        except SQLAlchemyError as e:
            logger.error(f"Failed to update order {order_id}: {e}")
            raise PersistenceFailure("Failed to update order status")
        
        logger.info(f"Order {order_id} moved to {new_status.value} by {actor.role.value} {actor.user_id}")
        await self._publish("status_changed", order_id)
        return OrderRecord.model_validate(order)
    
    async def _publish(self, event: str, order_id: str) -> None:
        if self.feed:
            await self.feed.publish(ORDERS_TOPIC, {"event": event, "id": order_id})
