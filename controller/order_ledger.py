# controller/order_ledger.py

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional


class OrderLedger(ABC):
    """
    Narrow view of the order persistence layer.

    The print-file pipeline only ever reports finished assets for an order;
    payment state and fulfilment workflow live elsewhere.
    """

    @abstractmethod
    async def record_print_file(
            self,
            order_id: str,
            print_file_url: str,
            qr_url: Optional[str],
            qr_target_url: str,
    ) -> bool:
        """
        Attach the generated asset URLs to `order_id` and mark it ready for fulfilment.

        Returns False when the order does not exist.
        """
        raise NotImplementedError
