"""
Order state machine for managing order status transitions
"""

from typing import Dict, List, Set

from cartledger.models.order import OrderStatus

class OrderStateMachine:
    """
    Manages valid order status transitions
    
    Processing -> Shipped -> Delivered, or Processing -> Cancelled.
    Delivered and Cancelled are terminal.
    """
    
    def __init__(self):
        self.transitions: Dict[OrderStatus, Set[OrderStatus]] = {
            OrderStatus.PROCESSING: {
                OrderStatus.SHIPPED,
                OrderStatus.CANCELLED
            },
            OrderStatus.SHIPPED: {
                OrderStatus.DELIVERED
            },
            OrderStatus.DELIVERED: set(),
            OrderStatus.CANCELLED: set()
        }
    
    def can_transition(
        self,
        current_status: OrderStatus,
        new_status: OrderStatus
    ) -> bool:
        """
        Check if transition is valid
        
        Args:
            current_status: Current order status
            new_status: Desired new status
            
        Returns:
            True if transition is allowed
        """
        valid_transitions = self.transitions.get(current_status, set())
        return new_status in valid_transitions
    
    def get_valid_transitions(
        self,
        current_status: OrderStatus
    ) -> List[OrderStatus]:
        """List of valid next statuses"""
        return list(self.transitions.get(current_status, set()))
    
    def is_terminal_state(self, status: OrderStatus) -> bool:
        """True if no more transitions possible"""
        return len(self.transitions.get(status, set())) == 0
    
    def is_cancellable(self, status: OrderStatus) -> bool:
        return OrderStatus.CANCELLED in self.transitions.get(status, set())
