"""
Payment collaborator contract
Checkout presents a grand total and gets back a token or a dismissal
"""

from abc import ABC, abstractmethod
from typing import Optional
from decimal import Decimal
import enum

from pydantic import BaseModel

class PaymentOutcomeStatus(str, enum.Enum):
    SUCCEEDED = "succeeded"
    CANCELLED = "cancelled"

class PaymentOutcome(BaseModel):
    status: PaymentOutcomeStatus
    token: Optional[str] = None
    
    @classmethod
    def succeeded(cls, token: str) -> "PaymentOutcome":
        return cls(status=PaymentOutcomeStatus.SUCCEEDED, token=token)
    
    @classmethod
    def cancelled(cls) -> "PaymentOutcome":
        return cls(status=PaymentOutcomeStatus.CANCELLED)
    
    @property
    def is_cancelled(self) -> bool:
        return self.status == PaymentOutcomeStatus.CANCELLED

class PaymentCollaborator(ABC):
    """Payment gateway session as seen by checkout"""
    
    @abstractmethod
    async def collect(self, amount: Decimal, buyer_id: str) -> PaymentOutcome:
        """
        Present amount to the buyer for payment
        
        Returns:
            succeeded with the gateway's payment token, or cancelled when
            the buyer dismissed the payment
        """
