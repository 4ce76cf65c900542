"""
Configuration Loader (``expense_config.loader``).

Responsibility
--------------
Loads YAML files and parses them into the typed ``expense_config.schema``
dataclasses.  Runtime code obtains settings through
``expense_config.get_settings()``; seed definitions are consumed by
``scripts/seed_data.py`` and tests.

Invariants enforced
-------------------
* Parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages; required fields never get silent defaults.
* Every parsed object is a frozen dataclass from ``schema.py``.
* ``compute_checksum`` produces a deterministic SHA-256 hash for
  configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys in parsed dict  -> ``KeyError`` propagates.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any, Mapping

import yaml

from expense_config.schema import (
    CompanyDef,
    ExpenseSettings,
    PolicyDef,
    SeedDefinition,
    UserDef,
)

DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"
SETS_DIR = Path(__file__).parent / "sets"

_VALID_ROLES = ("admin", "manager", "employee")

# Environment variable -> settings key
ENV_OVERRIDES = {
    "EXPENSE_DATABASE_URL": "database_url",
    "EXPENSE_LOG_LEVEL": "log_level",
}

_TRUE_STRINGS = {"1", "true", "yes", "on"}
_FALSE_STRINGS = {"0", "false", "no", "off"}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the top level is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a mapping at the top level")
    return data


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 checksum of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def parse_bool(value: Any, field: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    raise ValueError(f"{field}: cannot parse boolean from {value!r}")


def parse_percentage(value: Any, field: str = "quorum_percentage") -> int:
    """Parse an integer percentage in [0, 100]."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{field}: expected an integer, got {value!r}")
    if not 0 <= value <= 100:
        raise ValueError(f"{field}: must be within [0, 100], got {value}")
    return value


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


def parse_settings(data: Mapping[str, Any]) -> ExpenseSettings:
    """Build ExpenseSettings from a merged mapping."""
    unknown = set(data) - {
        "database_url",
        "echo_sql",
        "log_level",
        "default_currency",
        "notifications_enabled",
    }
    if unknown:
        raise ValueError(f"Unknown settings: {sorted(unknown)}")

    defaults = ExpenseSettings()
    return ExpenseSettings(
        database_url=str(data.get("database_url", defaults.database_url)),
        echo_sql=parse_bool(data.get("echo_sql", defaults.echo_sql), "echo_sql"),
        log_level=str(data.get("log_level", defaults.log_level)).upper(),
        default_currency=str(
            data.get("default_currency", defaults.default_currency)
        ).upper(),
        notifications_enabled=parse_bool(
            data.get("notifications_enabled", defaults.notifications_enabled),
            "notifications_enabled",
        ),
        checksum=compute_checksum(dict(data)),
    )


def load_settings(
    path: Path | None = None,
    env: Mapping[str, str] | None = None,
) -> ExpenseSettings:
    """
    Merge ``defaults.yaml``, an optional override file, and environment
    variables (in that order of increasing precedence).
    """
    merged: dict[str, Any] = load_yaml_file(DEFAULTS_PATH)
    if path is not None:
        merged.update(load_yaml_file(path))
    for var, key in ENV_OVERRIDES.items():
        if env and env.get(var):
            merged[key] = env[var]
    return parse_settings(merged)


# ---------------------------------------------------------------------------
# Seed definitions
# ---------------------------------------------------------------------------


def parse_company(data: dict[str, Any], default_currency: str = "USD") -> CompanyDef:
    admin = data["admin"]
    return CompanyDef(
        name=data["name"],
        country=data["country"],
        base_currency=str(data.get("base_currency", default_currency)).upper(),
        admin_name=admin["name"],
        admin_email=admin["email"].strip().lower(),
    )


def parse_user(data: dict[str, Any]) -> UserDef:
    role = data.get("role", "employee")
    if role not in _VALID_ROLES:
        raise ValueError(f"User {data.get('email')!r}: unknown role {role!r}")
    manager = data.get("manager")
    return UserDef(
        name=data["name"],
        email=data["email"].strip().lower(),
        role=role,
        manager=manager.strip().lower() if manager else None,
    )


def parse_policy(data: dict[str, Any]) -> PolicyDef:
    """
    Parse a ``PolicyDef`` from a dict.

    Raises:
        KeyError: if ``name`` is missing.
        ValueError: on an invalid quorum or a duplicate approver.
    """
    approvers = tuple(e.strip().lower() for e in data.get("approvers", ()))
    if len(set(approvers)) != len(approvers):
        raise ValueError(f"Policy {data['name']!r}: duplicate approver")
    return PolicyDef(
        name=data["name"],
        description=data.get("description", ""),
        approvers=approvers,
        include_manager_approver=parse_bool(
            data.get("include_manager_approver", True), "include_manager_approver",
        ),
        sequential=parse_bool(data.get("sequential", False), "sequential"),
        quorum_percentage=parse_percentage(data.get("quorum_percentage", 100)),
        override_approvers=tuple(
            e.strip().lower() for e in data.get("override_approvers", ())
        ),
    )


def parse_seed(data: dict[str, Any], default_currency: str = "USD") -> SeedDefinition:
    """
    Parse a whole seed file and check its internal references.

    Raises:
        ValueError: duplicate emails, or a manager / approver email that
            is not defined in the same file.
    """
    company = parse_company(data["company"], default_currency)
    users = tuple(parse_user(u) for u in data.get("users", ()))
    policies = tuple(parse_policy(p) for p in data.get("policies", ()))

    emails = [company.admin_email] + [u.email for u in users]
    if len(set(emails)) != len(emails):
        raise ValueError("Seed definition contains duplicate user emails")
    known = set(emails)

    defined = {company.admin_email}
    for user in users:
        if user.manager is not None and user.manager not in defined:
            raise ValueError(
                f"User {user.email!r}: manager {user.manager!r} is not defined above"
            )
        defined.add(user.email)
    for policy in policies:
        for email in policy.approvers + policy.override_approvers:
            if email not in known:
                raise ValueError(f"Policy {policy.name!r}: unknown approver {email!r}")

    return SeedDefinition(
        company=company,
        users=users,
        policies=policies,
        checksum=compute_checksum(data),
    )


def load_seed_definition(
    path: Path | None = None,
    default_currency: str = "USD",
) -> SeedDefinition:
    """Load a seed file; defaults to the bundled demo company.

    ``default_currency`` applies to a company that names no base currency.
    """
    return parse_seed(
        load_yaml_file(path or SETS_DIR / "demo_company.yaml"), default_currency,
    )
