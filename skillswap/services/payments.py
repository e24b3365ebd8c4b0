"""Payment gateway boundary for credit purchases.

Real card processing is out of scope.  SimulatedPaymentGateway accepts
every payment method except the literal id ``"fail"``, which lets tests
and local clients exercise the decline path.
"""

from __future__ import annotations

import logging
import uuid
from typing import Protocol, runtime_checkable
from uuid import UUID

from skillswap.core.errors import PaymentFailed

logger = logging.getLogger(__name__)

DECLINED_PAYMENT_METHOD = "fail"


@runtime_checkable
class PaymentGateway(Protocol):
    async def charge(self, user_id: UUID, amount: int, payment_method_id: str) -> str:
        """Charge the payment method.  Returns a charge reference.

        Raises PaymentFailed when the charge is declined.
        """
        ...


class SimulatedPaymentGateway:
    async def charge(self, user_id: UUID, amount: int, payment_method_id: str) -> str:
        if payment_method_id == DECLINED_PAYMENT_METHOD:
            logger.warning(
                "Simulated charge declined user=%s amount=%d", user_id, amount
            )
            raise PaymentFailed()
        return f"sim_{uuid.uuid4().hex}"


payment_gateway: PaymentGateway = SimulatedPaymentGateway()
