"""
Configuration Schema (``expense_config.schema``).

Frozen dataclasses for everything that can be authored in YAML: runtime
settings and seed definitions (a company, its users, and its approval
policies).  Policies reference users by email so YAML files never carry
database ids.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ExpenseSettings:
    """Runtime settings."""

    database_url: str = "sqlite:///expenses.db"
    echo_sql: bool = False
    log_level: str = "INFO"
    default_currency: str = "USD"
    notifications_enabled: bool = True
    checksum: str = ""


@dataclass(frozen=True)
class CompanyDef:
    """YAML-authored company together with its first admin."""

    name: str
    country: str
    base_currency: str
    admin_name: str
    admin_email: str


@dataclass(frozen=True)
class UserDef:
    """YAML-authored user.  ``manager`` is the manager's email."""

    name: str
    email: str
    role: str = "employee"
    manager: str | None = None


@dataclass(frozen=True)
class PolicyDef:
    """YAML-authored approval policy."""

    name: str
    description: str = ""
    approvers: tuple[str, ...] = ()
    include_manager_approver: bool = True
    sequential: bool = False
    quorum_percentage: int = 100
    override_approvers: tuple[str, ...] = ()


@dataclass(frozen=True)
class SeedDefinition:
    """A complete company to provision.

    Policies are created in order; each one deactivates the previous, so
    the last entry is the company's active policy.
    """

    company: CompanyDef
    users: tuple[UserDef, ...] = ()
    policies: tuple[PolicyDef, ...] = ()
    checksum: str = ""
