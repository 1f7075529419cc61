"""Commission subsystem — rule store, waterfall resolver, fees, lines."""

from splitsettle.commission.fees import FeeCalculator
from splitsettle.commission.lines import CommissionLineRecorder, OrderLineItem
from splitsettle.commission.listing import CommissionRuleLister
from splitsettle.commission.resolver import RuleResolver
from splitsettle.commission.store import RuleStore

__all__ = [
    "CommissionLineRecorder",
    "CommissionRuleLister",
    "FeeCalculator",
    "OrderLineItem",
    "RuleResolver",
    "RuleStore",
]
