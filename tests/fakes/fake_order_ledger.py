# tests/fakes/fake_order_ledger.py

from typing import Dict, List, Optional

from controller.order_ledger import OrderLedger


class FakeOrderLedger(OrderLedger):
    def __init__(self, known_orders=()):
        self.known_orders = set(known_orders)
        self.records: Dict[str, dict] = {}
        self.calls: List[tuple] = []

    async def record_print_file(
            self,
            order_id: str,
            print_file_url: str,
            qr_url: Optional[str],
            qr_target_url: str,
    ) -> bool:
        self.calls.append((order_id, print_file_url, qr_url, qr_target_url))
        if order_id not in self.known_orders:
            return False
        self.records[order_id] = {
            "print_file_url": print_file_url,
            "qr_url": qr_url,
            "qr_target_url": qr_target_url,
            "status": "READY_FOR_FULFILMENT",
        }
        return True
