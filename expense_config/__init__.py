"""
expense_config -- single public entrypoint for runtime configuration.

Responsibility:
    ``get_settings()`` is the only way runtime code obtains settings.  It
    merges the bundled ``defaults.yaml``, an optional override file, and
    the ``EXPENSE_*`` environment variables into a frozen
    ``ExpenseSettings``.

Architecture position:
    Configuration -- sits above ``expense_kernel``.  The kernel MUST NEVER
    import from ``expense_config``; ``bridges`` translates YAML definitions
    into kernel service arguments.

Failure modes:
    - ``FileNotFoundError`` -- override file does not exist.
    - ``ValueError`` -- unknown keys or unparseable values.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Mapping

from expense_config.loader import load_seed_definition, load_settings
from expense_config.schema import ExpenseSettings, SeedDefinition

_logger = logging.getLogger("expense_kernel.config")


def get_settings(
    config_path: Path | None = None,
    env: Mapping[str, str] | None = None,
) -> ExpenseSettings:
    """The public settings entrypoint.

    Args:
        config_path: Optional YAML file overriding ``defaults.yaml``.
        env: Environment mapping; defaults to ``os.environ``.
    """
    settings = load_settings(config_path, os.environ if env is None else env)
    _logger.info(
        "expense_config_loaded",
        extra={
            "config_path": str(config_path) if config_path else None,
            "log_level": settings.log_level,
            "default_currency": settings.default_currency,
            "checksum": settings.checksum,
        },
    )
    return settings


__all__ = [
    "ExpenseSettings",
    "SeedDefinition",
    "get_settings",
    "load_seed_definition",
]
