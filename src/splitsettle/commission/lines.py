"""Commission lines — per-item commission records for legacy orders.

Orders whose split payment carries a pre-computed platform fee are
skipped entirely. For every other order, each line item gets exactly one
CommissionLine, resolved through the rule waterfall and priced by the
fee calculator. Lines are immutable once written.

An order is recorded all-or-nothing: every line is resolved and priced
before the first one is stored. Recording is idempotent per order, so a
settlement retried after a gateway failure gets back the lines it
already wrote. An item can never carry lines for two different orders.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional
from uuid import uuid4

from splitsettle.commission.fees import FeeCalculator, uses_precomputed_fee
from splitsettle.commission.resolver import RuleResolver
from splitsettle.errors import InvariantViolation
from splitsettle.models.commission import (
    CommissionCalculationContext,
    CommissionLine,
    LinePrice,
)
from splitsettle.models.payment import PlatformFee
from splitsettle.persistence.event_log import EventKind, EventLog, EventRecord

logger = logging.getLogger(__name__)

# rule_id recorded on lines priced by the configured default rate
DEFAULT_RATE_RULE_ID = "default"


@dataclass(frozen=True)
class OrderLineItem:
    """One line item as seen by the commission path."""
    item_line_id: str
    product_id: str
    product_type_id: str
    product_category_id: str
    price: LinePrice

    def context(self, seller_id: str) -> CommissionCalculationContext:
        return CommissionCalculationContext(
            product_id=self.product_id,
            product_type_id=self.product_type_id,
            product_category_id=self.product_category_id,
            seller_id=seller_id,
        )


class CommissionLineRecorder:
    """Creates and stores commission lines for legacy orders.

    Usage:
        recorder = CommissionLineRecorder(resolver, calculator)
        lines = recorder.record_for_order("order_1", "sel_1", "usd", items,
                                          platform_fee=NO_PLATFORM_FEE)
    """

    def __init__(
        self,
        resolver: RuleResolver,
        calculator: FeeCalculator,
        event_log: Optional[EventLog] = None,
    ) -> None:
        self._resolver = resolver
        self._calculator = calculator
        self._event_log = event_log
        self._lines: Dict[str, CommissionLine] = {}
        self._order_for_item: Dict[str, str] = {}

    def record_for_order(
        self,
        order_id: str,
        seller_id: str,
        currency_code: str,
        items: Iterable[OrderLineItem],
        platform_fee: Optional[PlatformFee] = None,
        now: Optional[datetime] = None,
    ) -> List[CommissionLine]:
        """Create one commission line per item, unless the order has a platform fee.

        Returns the order's lines in item order (empty when skipped or
        nothing matched). Items already recorded for this order return their
        stored line. Raises InvariantViolation if an item already has a line
        for a different order.
        """
        if uses_precomputed_fee(platform_fee):
            logger.info(
                "Skipping commission lines: platform fee already set",
                extra={"order_id": order_id, "platform_fee": platform_fee.amount},
            )
            return []

        items = list(items)
        foreign = [
            i.item_line_id for i in items
            if self._order_for_item.get(i.item_line_id, order_id) != order_id
        ]
        if foreign:
            raise InvariantViolation(
                f"Order {order_id}: commission lines already exist for {foreign} "
                f"under another order"
            )
        if now is None:
            now = datetime.now(timezone.utc)

        result: List[CommissionLine] = []
        pending: List[CommissionLine] = []
        for item in items:
            existing = self._lines.get(item.item_line_id)
            if existing is not None:
                result.append(existing)
                continue
            rule = self._resolver.resolve(item.context(seller_id))
            value = self._calculator.rule_fee(rule, item.price, currency_code)
            if value is None:
                continue
            pending.append(CommissionLine(
                id=f"comline_{uuid4().hex[:12]}",
                item_line_id=item.item_line_id,
                rule_id=rule.id if rule is not None else DEFAULT_RATE_RULE_ID,
                currency_code=currency_code.lower(),
                value=value,
                created_utc=now,
            ))
            result.append(pending[-1])

        for line in pending:
            self._lines[line.item_line_id] = line
            self._order_for_item[line.item_line_id] = order_id
            self._record_event(order_id, line, now)

        logger.info(
            "Commission lines recorded",
            extra={
                "order_id": order_id,
                "seller_id": seller_id,
                "lines": len(pending),
                "existing": len(result) - len(pending),
            },
        )
        return result

    def lines_for_items(self, item_line_ids: Iterable[str]) -> List[CommissionLine]:
        return [self._lines[i] for i in item_line_ids if i in self._lines]

    def total_for_items(self, item_line_ids: Iterable[str]) -> int:
        return sum(line.value for line in self.lines_for_items(item_line_ids))

    def _record_event(self, order_id: str, line: CommissionLine, now: datetime) -> None:
        if self._event_log is None:
            return
        self._event_log.append(EventRecord.create(
            event_id=f"evt_{line.id}",
            event_kind=EventKind.COMMISSION_LINE_CREATED,
            actor_id="system",
            payload={
                "order_id": order_id,
                "line_id": line.id,
                "item_line_id": line.item_line_id,
                "rule_id": line.rule_id,
                "currency_code": line.currency_code,
                "value": line.value,
            },
            timestamp_utc=now,
        ))
