"""
Deterministic hashing utilities.

Policy snapshots are fingerprinted at creation so a claim can later prove
it was evaluated against exactly the rules it was bound to.
"""

import hashlib
import json
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Iterable
from uuid import UUID


def _json_serializer(obj: Any) -> Any:
    """
    Custom JSON serializer for types not natively supported.

    Raises:
        TypeError: If object type is not supported.
    """
    if isinstance(obj, Decimal):
        return str(obj.normalize())
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, date):
        return obj.isoformat()
    if isinstance(obj, UUID):
        return str(obj)

    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def canonicalize_json(data: dict | list | Any) -> str:
    """
    Convert data to canonical JSON string.

    Keys are sorted, whitespace is removed, and Decimal/datetime/UUID
    values are rendered consistently.
    """
    return json.dumps(
        data,
        sort_keys=True,
        separators=(",", ":"),
        default=_json_serializer,
    )


def hash_payload(payload: dict) -> str:
    """
    Compute SHA-256 hash of a payload.

    Returns:
        Hex-encoded SHA-256 hash (64 characters).
    """
    canonical = canonicalize_json(payload)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def hash_policy(
    *,
    policy_id: UUID,
    company_id: UUID,
    version: int,
    required_approvers: Iterable[UUID],
    include_manager_approver: bool,
    sequential: bool,
    quorum_percentage: int,
    override_approvers: Iterable[UUID],
) -> str:
    """
    Compute the fingerprint of an approval policy's evaluation-relevant fields.

    Required approvers keep their order; override approvers are a set and
    are sorted before hashing.
    """
    return hash_payload({
        "policy_id": str(policy_id),
        "company_id": str(company_id),
        "version": version,
        "required_approvers": [str(a) for a in required_approvers],
        "include_manager_approver": include_manager_approver,
        "sequential": sequential,
        "quorum_percentage": quorum_percentage,
        "override_approvers": sorted(str(a) for a in override_approvers),
    })
