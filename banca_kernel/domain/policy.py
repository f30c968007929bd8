"""
Transaction policy (``banca_kernel.domain.policy``).

Responsibility
--------------
Pure value objects holding the configurable rules BalanceLedger and the
engines apply: supported currencies with their minimum amounts, per-tier
limits and approval thresholds, the ordered commission rule list, and the
scheduling parameters.

Architecture position
---------------------
**Kernel domain layer** -- ZERO I/O.  ``banca_config`` parses YAML into these
types; the kernel never reads configuration files itself.

Invariants enforced
-------------------
* Commission rules are evaluated in declaration order; the first match wins.
* Commission is ``fixed + amount * rate`` truncated once to the currency
  minor unit.
* An unknown tier is a configuration fault (``ConfigurationError``), never a
  silent fallback.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from banca_kernel.db.types import minor_unit, truncate_money
from banca_kernel.domain.destination import DestinationScope
from banca_kernel.domain.transaction_state import TransactionKind
from banca_kernel.exceptions import ConfigurationError


@dataclass(frozen=True)
class CurrencyRule:
    code: str
    decimal_places: int = 2
    minimum_amount: Decimal = Decimal("0")

    @property
    def minor_unit(self) -> Decimal:
        return minor_unit(self.decimal_places)


@dataclass(frozen=True)
class TierLimits:
    """Ceilings for one client tier."""

    name: str
    single_operation_limit: Decimal
    daily_limit: Decimal
    approval_threshold: Decimal


@dataclass(frozen=True)
class CommissionRule:
    """
    One commission rule.

    ``scope``, ``tier`` and ``currency`` left as None match anything.
    """

    name: str
    kind: TransactionKind
    scope: DestinationScope | None = None
    tier: str | None = None
    currency: str | None = None
    fixed: Decimal = Decimal("0")
    rate: Decimal = Decimal("0")

    def matches(
        self,
        kind: TransactionKind,
        scope: DestinationScope,
        tier: str,
        currency: str,
    ) -> bool:
        return (
            self.kind == kind
            and (self.scope is None or self.scope == scope)
            and (self.tier is None or self.tier == tier)
            and (self.currency is None or self.currency == currency)
        )

    def compute(self, amount: Decimal, decimal_places: int) -> Decimal:
        return truncate_money(self.fixed + amount * self.rate, decimal_places)


@dataclass(frozen=True)
class SchedulingPolicy:
    tick_interval_seconds: int = 60
    batch_size: int = 100
    min_lead_minutes: int = 0
    cancellation_cutoff_hours: int = 0


@dataclass(frozen=True)
class TransactionPolicy:
    currencies: tuple[CurrencyRule, ...]
    tiers: tuple[TierLimits, ...]
    commission_rules: tuple[CommissionRule, ...] = ()
    default_tier: str = "standard"

    def currency(self, code: str) -> CurrencyRule | None:
        for rule in self.currencies:
            if rule.code == code:
                return rule
        return None

    def tier(self, name: str | None) -> TierLimits:
        wanted = name or self.default_tier
        for limits in self.tiers:
            if limits.name == wanted:
                return limits
        raise ConfigurationError(f"Unknown client tier: {wanted}")

    def find_commission_rule(
        self,
        kind: TransactionKind,
        scope: DestinationScope,
        tier: str,
        currency: str,
    ) -> CommissionRule | None:
        for rule in self.commission_rules:
            if rule.matches(kind, scope, tier, currency):
                return rule
        return None

    def commission(
        self,
        kind: TransactionKind,
        scope: DestinationScope,
        tier: str,
        currency: str,
        amount: Decimal,
    ) -> Decimal:
        """Commission for a movement; zero when no rule matches."""
        rule_currency = self.currency(currency)
        decimal_places = rule_currency.decimal_places if rule_currency else 2
        rule = self.find_commission_rule(kind, scope, tier, currency)
        if rule is None:
            return truncate_money(Decimal("0"), decimal_places)
        return rule.compute(amount, decimal_places)
