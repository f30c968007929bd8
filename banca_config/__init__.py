"""
banca_config -- single public entrypoint for banking configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads configuration files
    directly.  YAML loading is internal tooling.

Architecture position:
    Configuration sits above ``banca_kernel`` (it builds kernel policy value
    objects) and below ``banca_batch``.  The kernel never imports from here.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``BANKING_CONFIG_TRACE`` log entry with config id, version and checksum.
"""

from __future__ import annotations

from pathlib import Path

from banca_config.loader import load_config
from banca_config.schema import BankingConfig
from banca_kernel.logging_config import get_logger

logger = get_logger("config")

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"


def get_active_config(config_path: Path | None = None) -> BankingConfig:
    """
    The ONLY public configuration entrypoint.

    Args:
        config_path: Override path to a configuration file.  Defaults to
            banca_config/sets/default.yaml.

    Raises:
        FileNotFoundError: If the file does not exist.
        ConfigurationError: If validation fails.
    """
    path = Path(config_path) if config_path else _DEFAULT_CONFIG_PATH
    config = load_config(path)
    logger.info(
        "BANKING_CONFIG_TRACE",
        extra={
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "currencies": [c.code for c in config.policy.currencies],
            "tiers": [t.name for t in config.policy.tiers],
            "commission_rule_count": len(config.policy.commission_rules),
        },
    )
    return config


__all__ = ["BankingConfig", "get_active_config"]
