"""Order executors.

Only paper execution ships; anything exchange-facing plugs in behind the
same two methods.
"""

import logging
from typing import Dict

from regime_pilot.exceptions import OrderExecutionError
from regime_pilot.models import Side, new_id

logger = logging.getLogger(__name__)


class PaperOrderExecutor:
    """Simulated executor that fills every order immediately."""

    def __init__(self):
        self.orders: Dict[str, dict] = {}

    def create_order(self, instrument: str, side: Side, quantity: float, leverage: int) -> str:
        """Record a simulated order.

        Returns:
            Order ID

        Raises:
            OrderExecutionError: On a non-positive quantity or leverage
        """
        if quantity <= 0 or leverage < 1:
            raise OrderExecutionError(
                f"Invalid order for {instrument}: quantity={quantity}, leverage={leverage}"
            )
        order_id = new_id("order")
        self.orders[order_id] = {
            "instrument": instrument,
            "side": side.value,
            "quantity": quantity,
            "leverage": leverage,
            "open": True,
        }
        logger.info(f"📝 [PAPER] {side.value.upper()} {quantity:.6f} {instrument} @ {leverage}x ({order_id})")
        return order_id

    def close_order(self, order_id: str) -> None:
        order = self.orders.get(order_id)
        if order is None:
            raise OrderExecutionError(f"Unknown order: {order_id}")
        order["open"] = False
        logger.info(f"📝 [PAPER] Closed {order_id}")
