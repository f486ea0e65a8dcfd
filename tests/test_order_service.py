from datetime import timedelta
from decimal import Decimal

import pytest

from cartledger.core.exceptions import ForbiddenException, NotFoundException, OrderTransitionException
from cartledger.core.feed import ORDERS_TOPIC, ChangeFeed
from cartledger.models.order import OrderStatus, PaymentMethod
from cartledger.schemas.order import Actor, ActorRole, OrderCreate, OrderFilter, OrderItemSnapshot
from cartledger.services.order_service import OrderLedger

from tests.conftest import NOW

ADMIN = Actor(user_id="admin-1", role=ActorRole.ADMIN)
BUYER = Actor(user_id="buyer-1")

def order_data(buyer_id="buyer-1", seller_ids=("seller-a",), placed_at=NOW) -> OrderCreate:
    items = [
        OrderItemSnapshot(product_id=f"p-{seller}", seller_id=seller, unit_price=Decimal("100"), quantity=1, return_days=7)
        for seller in seller_ids
    ]
    subtotal = Decimal(100 * len(items))
    return OrderCreate(
        buyer_id=buyer_id,
        items=items,
        subtotal=subtotal,
        tax_amount=subtotal * Decimal("0.18"),
        platform_fee=Decimal("5"),
        total_price=subtotal * Decimal("1.18") + 5,
        payment_method=PaymentMethod.PREPAID,
        placed_at=placed_at,
    )

@pytest.fixture
def feed():
    return ChangeFeed()

@pytest.fixture
def ledger(session_factory, feed):
    return OrderLedger(session_factory, feed)

async def test_append_and_get_round_trip_items(ledger):
    placed = await ledger.append(order_data(seller_ids=("seller-a", "seller-b")))
    
    order = await ledger.get(placed.id)
    
    assert order.status == OrderStatus.PROCESSING
    assert [item.seller_id for item in order.items] == ["seller-a", "seller-b"]
    assert order.items[0].unit_price == Decimal("100")

async def test_get_unknown_order(ledger):
    with pytest.raises(NotFoundException):
        await ledger.get("missing")

async def test_list_filters_by_buyer_and_seller(ledger):
    first = await ledger.append(order_data(buyer_id="buyer-1", seller_ids=("seller-a",)))
    second = await ledger.append(order_data(buyer_id="buyer-2", seller_ids=("seller-a", "seller-b"), placed_at=NOW + timedelta(hours=1)))
    
    assert [o.id for o in await ledger.list_for(OrderFilter(buyer_id="buyer-1"))] == [first.id]
    assert [o.id for o in await ledger.list_for(OrderFilter(seller_id="seller-b"))] == [second.id]
    assert [o.id for o in await ledger.list_for(OrderFilter(seller_id="seller-a"))] == [second.id, first.id]

async def test_delivery_stamps_delivered_at(ledger):
    placed = await ledger.append(order_data())
    await ledger.set_status(placed.id, OrderStatus.SHIPPED, ADMIN)
    
    delivered = await ledger.set_status(placed.id, OrderStatus.DELIVERED, ADMIN, now=NOW + timedelta(days=2))
    
    assert delivered.status == OrderStatus.DELIVERED
    assert delivered.delivered_at is not None

async def test_invalid_transition_is_refused(ledger):
    placed = await ledger.append(order_data())
    with pytest.raises(OrderTransitionException):
        await ledger.set_status(placed.id, OrderStatus.DELIVERED, ADMIN)

async def test_buyer_may_only_cancel_processing_order(ledger):
    placed = await ledger.append(order_data())
    
    with pytest.raises(ForbiddenException):
        await ledger.set_status(placed.id, OrderStatus.SHIPPED, BUYER)
    cancelled = await ledger.set_status(placed.id, OrderStatus.CANCELLED, BUYER)
    
    assert cancelled.status == OrderStatus.CANCELLED

async def test_other_buyers_cannot_touch_order(ledger):
    placed = await ledger.append(order_data())
    with pytest.raises(ForbiddenException):
        await ledger.set_status(placed.id, OrderStatus.CANCELLED, Actor(user_id="buyer-2"))

async def test_seller_reviews_only_orders_with_their_items(ledger):
    placed = await ledger.append(order_data(seller_ids=("seller-a",)))
    
    with pytest.raises(ForbiddenException):
        await ledger.set_status(placed.id, OrderStatus.SHIPPED, Actor(user_id="seller-b", role=ActorRole.SELLER))
    shipped = await ledger.set_status(placed.id, OrderStatus.SHIPPED, Actor(user_id="seller-a", role=ActorRole.SELLER))
    
    assert shipped.status == OrderStatus.SHIPPED

async def test_every_write_is_published(ledger, feed):
    messages = []
    
    async def record(message):
        messages.append(message)
    feed.subscribe(ORDERS_TOPIC, record)
    
    placed = await ledger.append(order_data())
    await ledger.set_status(placed.id, OrderStatus.CANCELLED, BUYER)
    
    assert messages == [
        {"event": "created", "id": placed.id},
        {"event": "status_changed", "id": placed.id},
    ]

def test_payment_method_reads_cash_on_delivery_labels():
    assert PaymentMethod("COD") == PaymentMethod.CASH_ON_DELIVERY
    assert PaymentMethod("Cash on Delivery") == PaymentMethod.CASH_ON_DELIVERY
    with pytest.raises(ValueError):
        PaymentMethod("razorpay")
