"""Payment collaborator as seen by the session engine.

The engine never moves money. Canceling a session asks the gateway to accept a
refund request; settlement happens elsewhere and is not tracked here. The
gateway works inside the caller's database transaction, so a rejected request
rolls back the cancellation with it.
"""

import logging
import uuid
from abc import ABC, abstractmethod
from decimal import Decimal

from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from errors import DependencyFailure
from payments.models import RefundRequest

logger = logging.getLogger(__name__)


class RefundHandle(BaseModel):
    refund_id: uuid.UUID
    session_id: uuid.UUID
    amount: Decimal
    status: str


class PaymentGateway(ABC):
    @abstractmethod
    async def request_refund(
        self,
        db: AsyncSession,
        session_id: uuid.UUID,
        amount: Decimal | None,
        reason: str | None = None,
    ) -> RefundHandle:
        ...


class LedgerPaymentGateway(PaymentGateway):
    """Records refund requests in ``refund_requests`` for the finance workers to settle."""

    async def request_refund(self, db, session_id, amount, reason=None):
        if amount is None or Decimal(amount) < 0:
            logger.error("Refund for session %s rejected: invalid amount %r", session_id, amount)
            raise DependencyFailure("The refund request was rejected by the payment service")

        refund = RefundRequest(
            id=uuid.uuid4(),
            session_id=session_id,
            amount=Decimal(amount),
            reason=reason,
            status="requested",
        )
        db.add(refund)
        await db.flush()

        logger.info("Refund %s requested for session %s (amount=%s)", refund.id, session_id, refund.amount)
        return RefundHandle(
            refund_id=refund.id,
            session_id=session_id,
            amount=refund.amount,
            status=refund.status,
        )


def get_payment_gateway() -> PaymentGateway:
    return LedgerPaymentGateway()
