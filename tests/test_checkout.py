from decimal import Decimal
from typing import List

import pytest

from cartledger.core.exceptions import PersistenceFailure
from cartledger.models.coupon import CouponKind
from cartledger.models.order import OrderStatus, PaymentMethod
from cartledger.schemas.order import OrderCreate, OrderRecord
from cartledger.schemas.results import CheckoutStatus
from cartledger.services.checkout_service import CheckoutService
from cartledger.services.order_service import OrderLedger
from cartledger.services.payment_service import PaymentOutcome

from tests.conftest import NOW, FakePayments

class FakeLedger:
    def __init__(self, fail: bool = False):
        self.orders: List[OrderRecord] = []
        self.fail = fail
    
    async def append(self, data: OrderCreate) -> OrderRecord:
        if self.fail:
            raise PersistenceFailure("Failed to place order")
        record = OrderRecord(id=f"order-{len(self.orders) + 1}", **data.model_dump())
        self.orders.append(record)
        return record

@pytest.fixture
def ledger():
    return FakeLedger()

@pytest.fixture
def payments():
    return FakePayments()

@pytest.fixture
def checkout(cart, ledger, payments):
    return CheckoutService(cart, ledger, payments)

async def test_checkout_places_order_and_clears_cart(checkout, cart, oracle, lookup, ledger, payments, store):
    lookup.add("TEN", CouponKind.PERCENTAGE, "10")
    await cart.add_item(oracle.add("p1", "500", stock=5, seller_id="seller-a"), 1)
    await cart.add_item(oracle.add("p2", "250", stock=5, seller_id="seller-b"), 2)
    await cart.apply_coupon("TEN", now=NOW)
    
    result = await checkout.checkout("buyer-1", PaymentMethod.PREPAID, now=NOW)
    
    assert result.status == CheckoutStatus.PLACED
    assert result.order_id == "order-1"
    order = ledger.orders[0]
    assert order.subtotal == Decimal("1000")
    assert order.coupon_code == "TEN"
    assert order.coupon_discount == Decimal("100")
    assert order.status == OrderStatus.PROCESSING
    assert order.payment_reference == "pay_123"
    assert [(i.seller_id, i.quantity) for i in order.items] == [("seller-a", 1), ("seller-b", 2)]
    assert payments.amounts == [order.total_price]
    assert cart.snapshot.is_empty
    assert cart.coupon_code is None

async def test_empty_cart_is_rejected(checkout):
    result = await checkout.checkout("buyer-1", PaymentMethod.PREPAID, now=NOW)
    assert result.status == CheckoutStatus.REJECTED
    assert result.reason == "empty_cart"

async def test_stock_drop_blocks_checkout_and_clamps_cart(checkout, cart, oracle, ledger):
    await cart.add_item(oracle.add("p1", "100", stock=5), 4)
    oracle.stock["p1"] = 2
    
    result = await checkout.checkout("buyer-1", PaymentMethod.PREPAID, now=NOW)
    
    assert result.status == CheckoutStatus.REJECTED
    assert result.reason == "stock_conflict"
    assert result.notices
    assert cart.snapshot.get("p1").quantity == 2
    assert ledger.orders == []

async def test_stock_oracle_failure_blocks_checkout(checkout, cart, oracle):
    await cart.add_item(oracle.add("p1", "100", stock=5), 1)
    oracle.error = ConnectionError("down")
    
    result = await checkout.checkout("buyer-1", PaymentMethod.PREPAID, now=NOW)
    
    assert result.reason == "stock_check_failed"

async def test_dismissed_payment_leaves_cart_exactly_as_before(checkout, cart, oracle, lookup, ledger, payments):
    lookup.add("TEN", CouponKind.PERCENTAGE, "10")
    await cart.add_item(oracle.add("p1", "100", stock=5), 2)
    await cart.apply_coupon("TEN", now=NOW)
    before = (cart.snapshot, cart.coupon_code, cart.discount)
    payments.outcome = PaymentOutcome.cancelled()
    
    result = await checkout.checkout("buyer-1", PaymentMethod.PREPAID, now=NOW)
    
    assert result.status == CheckoutStatus.CANCELLED
    assert (cart.snapshot, cart.coupon_code, cart.discount) == before
    assert ledger.orders == []

async def test_cash_on_delivery_skips_payment_and_adds_surcharge(checkout, cart, oracle, ledger, payments):
    await cart.add_item(oracle.add("p1", "100", stock=5), 1)
    
    result = await checkout.checkout("buyer-1", PaymentMethod.CASH_ON_DELIVERY, now=NOW)
    
    assert result.status == CheckoutStatus.PLACED
    assert payments.amounts == []
    assert ledger.orders[0].shipping_fee >= Decimal("15")

async def test_ledger_failure_leaves_cart_untouched(cart, oracle, payments):
    checkout = CheckoutService(cart, FakeLedger(fail=True), payments)
    await cart.add_item(oracle.add("p1", "100", stock=5), 1)
    snapshot = cart.snapshot
    
    result = await checkout.checkout("buyer-1", PaymentMethod.CASH_ON_DELIVERY, now=NOW)
    
    assert result.status == CheckoutStatus.FAILED
    assert cart.snapshot == snapshot

async def test_order_stands_when_cart_cannot_be_cleared(checkout, cart, oracle, store, ledger):
    await cart.add_item(oracle.add("p1", "100", stock=5), 1)
    store.fail_saves = True
    
    result = await checkout.checkout("buyer-1", PaymentMethod.CASH_ON_DELIVERY, now=NOW)
    
    assert result.status == CheckoutStatus.PLACED
    assert len(ledger.orders) == 1
    assert result.notices

async def test_checkout_charges_and_stores_the_same_cent_amounts(cart, oracle, lookup, payments, session_factory):
    lookup.add("FIFTEEN", CouponKind.PERCENTAGE, "15")
    await cart.add_item(oracle.add("p1", "10.03", stock=5), 1)
    await cart.apply_coupon("FIFTEEN", now=NOW)
    ledger = OrderLedger(session_factory)
    
    result = await CheckoutService(cart, ledger, payments).checkout("buyer-1", PaymentMethod.PREPAID, now=NOW)
    
    assert result.status == CheckoutStatus.PLACED
    order = await ledger.get(result.order_id)
    assert order.coupon_discount == Decimal("1.50")
    assert order.tax_amount == Decimal("1.81")
    assert order.total_price == Decimal("15.34")
    assert order.subtotal + order.tax_amount + order.platform_fee + order.shipping_fee - order.coupon_discount == order.total_price
    assert payments.amounts == [order.total_price]
    assert result.totals.grand_total == order.total_price

async def test_dismissed_payment_restores_payment_method(checkout, cart, oracle, payments):
    await cart.add_item(oracle.add("p1", "100", stock=5), 1)
    cart.set_payment_method(PaymentMethod.CASH_ON_DELIVERY)
    shipping_before = cart.state.shipping_fee
    payments.outcome = PaymentOutcome.cancelled()
    
    result = await checkout.checkout("buyer-1", PaymentMethod.PREPAID, now=NOW)
    
    assert result.status == CheckoutStatus.CANCELLED
    assert cart.payment_method == PaymentMethod.CASH_ON_DELIVERY
    assert cart.state.shipping_fee == shipping_before
