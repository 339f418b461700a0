"""
checkout_config -- single public entrypoint for checkout configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component may read configuration
    files or environment variables directly.  Returns a frozen
    ``CheckoutConfig``.

Architecture position:
    Configuration -- sits above ``checkout_kernel`` and below
    ``checkout_batch`` / ``checkout_api`` / scripts.  The kernel MUST NEVER
    import from ``checkout_config``; bridges in this package translate the
    config into kernel-compatible inputs.

Invariants enforced:
    - Single entrypoint: all runtime config flows through ``get_active_config()``.
    - Load-time validation: invalid values raise before any service is built.
    - Resolution order: explicit path, then ``CHECKOUT_CONFIG``, then the
      packaged ``defaults.yaml``.  ``DATABASE_URL`` overrides ``database.url``.

Failure modes:
    - ``FileNotFoundError`` -- the requested configuration file is missing.
    - ``ValueError`` -- schema validation failures.
    - ``yaml.YAMLError`` -- malformed YAML.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``CHECKOUT_CONFIG_TRACE`` log entry with the source file, its checksum
    and the effective checkout switches.
"""

from __future__ import annotations

import logging
import os
from dataclasses import replace
from pathlib import Path

from checkout_config.loader import compute_checksum, load_yaml_file, parse_config
from checkout_config.schema import CheckoutConfig

_logger = logging.getLogger("checkout_kernel.config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"

CONFIG_ENV_VAR = "CHECKOUT_CONFIG"
DATABASE_URL_ENV_VAR = "DATABASE_URL"


def _resolve_path(path: Path | str | None) -> Path:
    if path is not None:
        return Path(path)
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path)
    return DEFAULT_CONFIG_PATH


def get_active_config(path: Path | str | None = None) -> CheckoutConfig:
    """The ONLY public configuration entrypoint.

    Args:
        path: Optional configuration file.  Defaults to ``$CHECKOUT_CONFIG``
            or the packaged ``defaults.yaml``.

    Returns:
        A validated, frozen CheckoutConfig.
    """
    config_path = _resolve_path(path)
    raw = load_yaml_file(config_path)
    config = parse_config(raw, source=str(config_path))

    database_url = os.environ.get(DATABASE_URL_ENV_VAR)
    if database_url:
        config = replace(config, database=replace(config.database, url=database_url))

    _logger.info(
        "CHECKOUT_CONFIG_TRACE",
        extra={
            "config_source": config.source,
            "config_checksum": compute_checksum(raw),
            "checkout_enabled": config.checkout_enabled,
            "maintenance_mode": config.maintenance_mode,
            "hold_minutes": config.holds.duration_minutes,
            "reaper_enabled": config.reaper.enabled,
            "catalog_variants": len(config.catalog),
        },
    )
    return config


__all__ = [
    "CheckoutConfig",
    "DEFAULT_CONFIG_PATH",
    "get_active_config",
]
