import pytest

from cartledger.models.order import OrderStatus
from cartledger.services.state_machine import OrderStateMachine

@pytest.fixture
def machine():
    return OrderStateMachine()

@pytest.mark.parametrize("current,new", [
    (OrderStatus.PROCESSING, OrderStatus.SHIPPED),
    (OrderStatus.PROCESSING, OrderStatus.CANCELLED),
    (OrderStatus.SHIPPED, OrderStatus.DELIVERED),
])
def test_allowed_transitions(machine, current, new):
    assert machine.can_transition(current, new)

@pytest.mark.parametrize("current,new", [
    (OrderStatus.PROCESSING, OrderStatus.DELIVERED),
    (OrderStatus.SHIPPED, OrderStatus.CANCELLED),
    (OrderStatus.DELIVERED, OrderStatus.PROCESSING),
    (OrderStatus.CANCELLED, OrderStatus.PROCESSING),
])
def test_rejected_transitions(machine, current, new):
    assert not machine.can_transition(current, new)

def test_terminal_states(machine):
    assert machine.is_terminal_state(OrderStatus.DELIVERED)
    assert machine.is_terminal_state(OrderStatus.CANCELLED)
    assert not machine.is_terminal_state(OrderStatus.SHIPPED)

def test_only_processing_orders_are_cancellable(machine):
    assert machine.is_cancellable(OrderStatus.PROCESSING)
    assert not machine.is_cancellable(OrderStatus.SHIPPED)
    assert machine.get_valid_transitions(OrderStatus.SHIPPED) == [OrderStatus.DELIVERED]
