"""Rule store — commission rules, rates and the price sets they reference.

Storage is in-memory, keyed by the ``(reference, reference_id)`` pair
that ``encode_scope`` produces. That pair is unique among non-deleted
rules; the create path enforces it, so a point lookup never has more
than one candidate.

Rules are soft-deleted. A deleted rule keeps its record (and its id
stays valid for commission lines that cite it) but frees its scope key
for a replacement rule.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Tuple
from uuid import uuid4

from splitsettle.errors import ConfigurationError, NotFoundError
from splitsettle.models.commission import (
    CommissionRate,
    CommissionRule,
    CommissionScope,
    PriceSet,
    encode_scope,
)

ScopeKey = Tuple[str, str]


class RuleStore:
    """In-memory store of commission rules and price sets.

    Usage:
        store = RuleStore()
        store.add_price_set(PriceSet("ps_min", {"usd": 50}))
        rule = store.create_rule("Vendor default", SellerScope("sel_1"), rate)
        store.find_active(SellerScope("sel_1"))
    """

    def __init__(self) -> None:
        self._rules: Dict[str, CommissionRule] = {}
        self._by_key: Dict[ScopeKey, str] = {}
        self._price_sets: Dict[str, PriceSet] = {}

    # ------------------------------------------------------------------
    # Price sets
    # ------------------------------------------------------------------

    def add_price_set(self, price_set: PriceSet) -> None:
        normalized = PriceSet(
            price_set_id=price_set.price_set_id,
            prices={c.lower(): int(a) for c, a in price_set.prices.items()},
        )
        self._price_sets[price_set.price_set_id] = normalized

    def get_price_set(self, price_set_id: str) -> PriceSet:
        price_set = self._price_sets.get(price_set_id)
        if price_set is None:
            raise NotFoundError(f"Unknown price set: {price_set_id}")
        return price_set

    # ------------------------------------------------------------------
    # Rule mutation (admin paths)
    # ------------------------------------------------------------------

    def create_rule(
        self,
        name: str,
        scope: CommissionScope,
        rate: CommissionRate,
        rule_id: Optional[str] = None,
        is_active: bool = True,
        now: Optional[datetime] = None,
    ) -> CommissionRule:
        """Create a rule. Raises ConfigurationError on a bad rate or a taken scope."""
        rate.validate()
        self._check_price_sets(rate)
        key = encode_scope(scope)
        if key in self._by_key:
            raise ConfigurationError(
                f"A commission rule already exists for {key[0]} {key[1]!r}: "
                f"{self._by_key[key]}"
            )
        if now is None:
            now = datetime.now(timezone.utc)
        if rule_id is None:
            rule_id = f"comrule_{uuid4().hex[:12]}"
        if rule_id in self._rules:
            raise ConfigurationError(f"Rule ID already exists: {rule_id}")

        rule = CommissionRule(
            id=rule_id,
            name=name,
            scope=scope,
            rate=rate,
            is_active=is_active,
            created_utc=now,
            updated_utc=now,
        )
        self._rules[rule_id] = rule
        self._by_key[key] = rule_id
        return rule

    def update_rule(
        self,
        rule_id: str,
        name: Optional[str] = None,
        rate: Optional[CommissionRate] = None,
        is_active: Optional[bool] = None,
        now: Optional[datetime] = None,
    ) -> CommissionRule:
        """Update a rule's name, rate or active flag. Scope is immutable."""
        rule = self.get_rule(rule_id)
        if rule.deleted_utc is not None:
            raise NotFoundError(f"Commission rule deleted: {rule_id}")
        if rate is not None:
            rate.validate()
            self._check_price_sets(rate)
        if now is None:
            now = datetime.now(timezone.utc)

        updated = replace(
            rule,
            name=rule.name if name is None else name,
            rate=rule.rate if rate is None else rate,
            is_active=rule.is_active if is_active is None else is_active,
            updated_utc=now,
        )
        self._rules[rule_id] = updated
        return updated

    def delete_rule(self, rule_id: str, now: Optional[datetime] = None) -> CommissionRule:
        """Soft-delete a rule and release its scope key."""
        rule = self.get_rule(rule_id)
        if rule.deleted_utc is not None:
            return rule
        if now is None:
            now = datetime.now(timezone.utc)
        deleted = replace(rule, deleted_utc=now, updated_utc=now)
        self._rules[rule_id] = deleted
        self._by_key.pop(encode_scope(rule.scope), None)
        return deleted

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_rule(self, rule_id: str) -> CommissionRule:
        rule = self._rules.get(rule_id)
        if rule is None:
            raise NotFoundError(f"Unknown commission rule: {rule_id}")
        return rule

    def find_active(self, scope: CommissionScope) -> Optional[CommissionRule]:
        """Point lookup: the eligible rule for exactly this scope, if any."""
        return self._eligible(encode_scope(scope))

    def find_active_many(
        self,
        scopes: Iterable[CommissionScope],
    ) -> Dict[ScopeKey, CommissionRule]:
        """Batched point lookup. Returns only the keys that matched."""
        found: Dict[ScopeKey, CommissionRule] = {}
        for scope in scopes:
            key = encode_scope(scope)
            rule = self._eligible(key)
            if rule is not None:
                found[key] = rule
        return found

    def list_rules(
        self,
        reference: Optional[str] = None,
        reference_id: Optional[str] = None,
        ids: Optional[List[str]] = None,
        include_deleted: bool = False,
        skip: int = 0,
        take: Optional[int] = None,
    ) -> Tuple[List[CommissionRule], int]:
        """Filtered, paginated listing. Returns (page, total matching)."""
        rules = sorted(
            self._rules.values(),
            key=lambda r: (r.created_utc or datetime.min.replace(tzinfo=timezone.utc), r.id),
        )
        if not include_deleted:
            rules = [r for r in rules if r.deleted_utc is None]
        if reference is not None:
            rules = [r for r in rules if r.reference == reference]
        if reference_id is not None:
            rules = [r for r in rules if r.reference_id == reference_id]
        if ids is not None:
            wanted = set(ids)
            rules = [r for r in rules if r.id in wanted]
        total = len(rules)
        page = rules[skip:] if take is None else rules[skip:skip + take]
        return page, total

    def _eligible(self, key: ScopeKey) -> Optional[CommissionRule]:
        rule_id = self._by_key.get(key)
        if rule_id is None:
            return None
        rule = self._rules[rule_id]
        return rule if rule.is_eligible else None

    def _check_price_sets(self, rate: CommissionRate) -> None:
        for ps_id in (rate.price_set_id, rate.min_price_set_id, rate.max_price_set_id):
            if ps_id is not None and ps_id not in self._price_sets:
                raise ConfigurationError(
                    f"Rate {rate.id} references unknown price set {ps_id}"
                )
