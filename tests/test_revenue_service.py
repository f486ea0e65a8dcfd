from decimal import Decimal

from cartledger.core.feed import ORDERS_TOPIC, ChangeFeed
from cartledger.models.order import OrderStatus, PaymentMethod
from cartledger.models.return_request import ReturnStatus
from cartledger.schemas.order import ReturnRequestRecord
from cartledger.schemas.revenue import PayoutRecord, PayoutStatus
from cartledger.services.revenue_service import (
    available_for_payout,
    is_recognizable,
    platform_revenue,
    recognized_revenue,
    seller_order_share,
    summarize,
    SellerRevenueView,
)

from tests.conftest import make_order

def shared_order(status=OrderStatus.PROCESSING, payment_method=PaymentMethod.PREPAID):
    """Seller A sells 500 (300 + 200) of a 1000 order carrying a 100 coupon"""
    return make_order(
        "o1",
        [("a1", "seller-a", "300", 1), ("a2", "seller-a", "100", 2), ("b1", "seller-b", "500", 1)],
        payment_method=payment_method,
        status=status,
        coupon_discount="100",
        tax_amount="180",
        platform_fee="5",
        shipping_fee="40",
    )

def return_request(product_id, status=ReturnStatus.APPROVED, order_id="o1", request_id="r1"):
    return ReturnRequestRecord(
        id=request_id,
        order_id=order_id,
        product_id=product_id,
        buyer_id="buyer-1",
        reason="Damaged",
        status=status,
    )

# Recognition timing

def test_cod_order_is_recognized_only_when_delivered():
    order = make_order("o1", [("p1", "seller-a", "250", 2)], payment_method=PaymentMethod.CASH_ON_DELIVERY)
    
    assert recognized_revenue("seller-a", [order], []) == Decimal("0")
    
    delivered = order.model_copy(update={"status": OrderStatus.DELIVERED})
    assert recognized_revenue("seller-a", [delivered], []) == Decimal("500")

def test_prepaid_order_is_recognized_until_cancelled():
    for status in (OrderStatus.PROCESSING, OrderStatus.SHIPPED, OrderStatus.DELIVERED):
        assert is_recognizable(shared_order(status=status))
    assert not is_recognizable(shared_order(status=OrderStatus.CANCELLED))

# Proration

def test_prepaid_share_with_prorated_coupon():
    share = seller_order_share("seller-a", shared_order())
    
    assert share.seller_subtotal == Decimal("500")
    assert share.discount_share == Decimal("50")
    assert share.seller_total == Decimal("450")
    assert share.recognizable
    assert recognized_revenue("seller-a", [shared_order()], []) == Decimal("450")

def test_seller_without_items_is_skipped():
    assert seller_order_share("seller-z", shared_order()) is None
    assert summarize("seller-z", [shared_order()], []).recognized_orders == 0

def test_approved_return_deducts_value_net_of_discount_share():
    summary = summarize("seller-a", [shared_order()], [return_request("a2")])
    
    assert summary.gross_revenue == Decimal("450")
    assert summary.return_deductions == Decimal("180")
    assert summary.net_revenue == Decimal("270")

def test_return_is_attributed_to_the_item_seller():
    summary = summarize("seller-b", [shared_order()], [return_request("a2")])
    assert summary.return_deductions == Decimal("0")
    assert summary.net_revenue == Decimal("450")

def test_return_on_unrecognized_order_deducts_nothing():
    order = shared_order(status=OrderStatus.SHIPPED, payment_method=PaymentMethod.CASH_ON_DELIVERY)
    
    summary = summarize("seller-a", [order], [return_request("a2")])
    
    assert summary.net_revenue == Decimal("0")
    assert summary.return_deductions == Decimal("0")
    assert summary.anomalies

def test_pending_and_rejected_returns():
    returns = [
        return_request("a1", status=ReturnStatus.PENDING, request_id="r1"),
        return_request("a2", status=ReturnStatus.REJECTED, request_id="r2"),
    ]
    
    summary = summarize("seller-a", [shared_order()], returns)
    
    assert summary.net_revenue == Decimal("450")
    assert summary.pending_return_deductions == Decimal("270")

def test_net_revenue_is_not_floored():
    order = make_order("o1", [("p1", "seller-a", "100", 1)])
    # Same item approved twice via bad data
    returns = [return_request("p1", request_id="r1"), return_request("p1", request_id="r2")]
    
    summary = summarize("seller-a", [order], returns)
    
    assert summary.net_revenue == Decimal("-100")
    assert any("negative" in anomaly for anomaly in summary.anomalies)

def test_recognized_revenue_is_additive_across_sellers():
    orders = [
        make_order("o1", [("p1", "seller-a", "100", 2)], coupon_discount="20"),
        make_order("o2", [("p2", "seller-b", "75", 1)], payment_method=PaymentMethod.CASH_ON_DELIVERY, status=OrderStatus.DELIVERED),
        make_order("o3", [("p3", "seller-a", "60", 1)], payment_method=PaymentMethod.CASH_ON_DELIVERY),
        make_order("o4", [("p4", "seller-c", "40", 3)], status=OrderStatus.CANCELLED),
        make_order("o5", [("p5", "seller-c", "90", 1)], coupon_discount="9"),
    ]
    returns = [return_request("p5", order_id="o5")]
    
    per_seller = sum(recognized_revenue(s, orders, returns) for s in ("seller-a", "seller-b", "seller-c"))
    
    total = Decimal("0")
    for order in orders:
        if is_recognizable(order):
            total += order.subtotal - (order.coupon_discount or 0)
    total -= Decimal("90") - Decimal("9")
    assert per_seller == total

# Payouts and platform revenue

def test_available_for_payout_subtracts_completed_and_processing():
    payouts = [
        PayoutRecord(seller_id="seller-a", amount=Decimal("100"), status=PayoutStatus.COMPLETED),
        PayoutRecord(seller_id="seller-a", amount=Decimal("50"), status=PayoutStatus.PROCESSING),
    ]
    assert available_for_payout(Decimal("270"), payouts) == Decimal("120")

def test_platform_revenue_with_own_items_and_return():
    order = make_order(
        "o1",
        [("own", "platform", "200", 1), ("b1", "seller-b", "800", 1)],
        tax_amount="180",
        platform_fee="10",
        shipping_fee="40",
    )
    cancelled = make_order("o2", [("b1", "seller-b", "800", 1)], status=OrderStatus.CANCELLED, tax_amount="144")
    
    before = platform_revenue([order, cancelled], [], "platform", {"own": Decimal("150")})
    after = platform_revenue([order, cancelled], [return_request("own")], "platform", {"own": Decimal("150")})
    
    assert before.recognized_orders == 1
    assert before.total_admin_profit == Decimal("50")
    assert before.total_revenue == Decimal("280")
    # 200 of 1000 returned: a fifth of tax and platform fee, and the whole margin
    assert after.total_tax == Decimal("144")
    assert after.total_platform_fee == Decimal("8")
    assert after.total_admin_profit == Decimal("0")
    assert after.total_revenue == Decimal("192")

# Live view

async def test_revenue_view_recomputes_on_every_change():
    feed = ChangeFeed()
    orders = []
    
    async def load_orders():
        return list(orders)
    
    async def load_returns():
        return []
    
    view = SellerRevenueView("seller-a", feed, load_orders, load_returns)
    assert (await view.start()).net_revenue == Decimal("0")
    
    orders.append(shared_order())
    await feed.publish(ORDERS_TOPIC, {"event": "created", "id": "o1"})
    assert view.summary.net_revenue == Decimal("450")
    
    orders[0] = shared_order(status=OrderStatus.CANCELLED)
    await feed.publish(ORDERS_TOPIC, {"event": "status_changed", "id": "o1"})
    assert view.summary.net_revenue == Decimal("0")
    
    view.stop()
    assert feed.subscriptions[ORDERS_TOPIC] == []
