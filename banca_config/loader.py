"""
Configuration Loader (``banca_config.loader``).

Responsibility
--------------
Loads a YAML configuration file and parses it into a ``BankingConfig``.
The single public entry point for runtime config is
``banca_config.get_active_config()``.

Invariants enforced
-------------------
* Every parsed object is a frozen dataclass.
* Amounts are parsed from strings or integers through Decimal, never float.
* ``validate_config`` collects every problem and raises one
  ``ConfigurationError`` listing all of them.
* ``compute_checksum`` produces a deterministic SHA-256 of the source file.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing keys, bad values, inconsistent rules  -> ``ConfigurationError``.
"""

from __future__ import annotations

import hashlib
import re
from decimal import Decimal
from pathlib import Path
from typing import Any

import yaml

from banca_config.schema import BankingConfig
from banca_kernel.db.types import to_money
from banca_kernel.domain.currency import CurrencyRegistry
from banca_kernel.domain.destination import DestinationScope
from banca_kernel.domain.policy import (
    CommissionRule,
    CurrencyRule,
    SchedulingPolicy,
    TierLimits,
    TransactionPolicy,
)
from banca_kernel.domain.transaction_state import TransactionKind
from banca_kernel.exceptions import ConfigurationError


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        data = yaml.safe_load(f)
    return data if data is not None else {}


def compute_checksum(path: Path) -> str:
    return hashlib.sha256(Path(path).read_bytes()).hexdigest()


def _decimal(data: dict[str, Any], key: str, default: str | None = None) -> Decimal:
    raw = data.get(key, default)
    if raw is None:
        raise ConfigurationError(f"Missing required key: {key}")
    try:
        # YAML floats are stringified first so 0.1 stays 0.1
        return to_money(str(raw) if isinstance(raw, float) else raw)
    except ValueError as exc:
        raise ConfigurationError(f"{key}: {exc}") from exc


def parse_currency(data: dict[str, Any]) -> CurrencyRule:
    code = str(data["code"]).upper()
    return CurrencyRule(
        code=code,
        decimal_places=int(data.get("decimal_places", CurrencyRegistry.get_decimal_places(code))),
        minimum_amount=_decimal(data, "minimum_amount", "0"),
    )


def parse_tier(name: str, data: dict[str, Any]) -> TierLimits:
    return TierLimits(
        name=name,
        single_operation_limit=_decimal(data, "single_operation_limit"),
        daily_limit=_decimal(data, "daily_limit"),
        approval_threshold=_decimal(data, "approval_threshold"),
    )


def parse_commission_rule(data: dict[str, Any]) -> CommissionRule:
    try:
        kind = TransactionKind(data["kind"])
        scope = DestinationScope(data["scope"]) if data.get("scope") else None
    except ValueError as exc:
        raise ConfigurationError(f"commission rule {data.get('name')!r}: {exc}") from exc
    return CommissionRule(
        name=str(data["name"]),
        kind=kind,
        scope=scope,
        tier=data.get("tier"),
        currency=str(data["currency"]).upper() if data.get("currency") else None,
        fixed=_decimal(data, "fixed", "0"),
        rate=_decimal(data, "rate", "0"),
    )


def parse_scheduling(data: dict[str, Any]) -> SchedulingPolicy:
    return SchedulingPolicy(
        tick_interval_seconds=int(data.get("tick_interval_seconds", 60)),
        batch_size=int(data.get("batch_size", 100)),
        min_lead_minutes=int(data.get("min_lead_minutes", 0)),
        cancellation_cutoff_hours=int(data.get("cancellation_cutoff_hours", 0)),
    )


def parse_config(data: dict[str, Any], checksum: str = "") -> BankingConfig:
    """Parse a raw YAML mapping into a validated BankingConfig."""
    try:
        policy = TransactionPolicy(
            currencies=tuple(parse_currency(c) for c in data.get("currencies", [])),
            tiers=tuple(
                parse_tier(name, tier) for name, tier in (data.get("tiers") or {}).items()
            ),
            commission_rules=tuple(
                parse_commission_rule(r) for r in data.get("commission_rules", [])
            ),
            default_tier=str(data.get("default_tier", "standard")),
        )
        config = BankingConfig(
            config_id=str(data.get("config_id", "default")),
            version=int(data.get("version", 1)),
            checksum=checksum,
            policy=policy,
            scheduling=parse_scheduling(data.get("scheduling") or {}),
        )
    except KeyError as exc:
        raise ConfigurationError(f"Missing required key: {exc.args[0]}") from exc
    validate_config(config)
    return config


def validate_config(config: BankingConfig) -> None:
    """Raise ConfigurationError listing every structural problem."""
    errors: list[str] = []
    policy = config.policy

    if not policy.currencies:
        errors.append("at least one currency is required")
    for currency in policy.currencies:
        if not CurrencyRegistry.is_valid(currency.code):
            errors.append(f"unknown currency {currency.code}")
        if currency.minimum_amount < 0:
            errors.append(f"{currency.code}: minimum_amount must be >= 0")

    tier_names = {t.name for t in policy.tiers}
    if policy.default_tier not in tier_names:
        errors.append(f"default tier {policy.default_tier!r} is not defined")
    for tier in policy.tiers:
        for label in ("single_operation_limit", "daily_limit", "approval_threshold"):
            if getattr(tier, label) <= 0:
                errors.append(f"tier {tier.name}: {label} must be > 0")

    currency_codes = {c.code for c in policy.currencies}
    for rule in policy.commission_rules:
        if rule.fixed < 0 or rule.rate < 0:
            errors.append(f"commission rule {rule.name}: amounts must be >= 0")
        if rule.tier is not None and rule.tier not in tier_names:
            errors.append(f"commission rule {rule.name}: unknown tier {rule.tier}")
        if rule.currency is not None and rule.currency not in currency_codes:
            errors.append(f"commission rule {rule.name}: unknown currency {rule.currency}")

    scheduling = config.scheduling
    if scheduling.tick_interval_seconds <= 0:
        errors.append("scheduling.tick_interval_seconds must be > 0")
    if scheduling.batch_size <= 0:
        errors.append("scheduling.batch_size must be > 0")
    if scheduling.min_lead_minutes < 0 or scheduling.cancellation_cutoff_hours < 0:
        errors.append("scheduling lead/cutoff must be >= 0")

    if not re.fullmatch(r"[A-Za-z0-9_.-]+", config.config_id):
        errors.append(f"invalid config_id {config.config_id!r}")

    if errors:
        raise ConfigurationError(errors)


def load_config(path: Path) -> BankingConfig:
    """Load, parse and validate one configuration file."""
    return parse_config(load_yaml_file(path), checksum=compute_checksum(path))
