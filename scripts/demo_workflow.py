#!/usr/bin/env python3
"""
Walk the demo company through the approval rules.

Seeds the bundled demo company into a database (in-memory SQLite by
default), then for each of its four approval policies activates that
policy, files a claim for John and plays the decisions of a typical
scenario, printing the approval slots after every step.

Usage:
    python3 scripts/demo_workflow.py
    python3 scripts/demo_workflow.py --database-url sqlite:///demo.db
    python3 scripts/demo_workflow.py --log-json      # show structured logs
"""

import argparse
import logging
import sys
from datetime import date

from expense_config import get_settings, load_seed_definition
from expense_config.bridges import notifier_for, policy_kwargs
from expense_config.seed import seed_company
from expense_kernel.db.engine import create_tables, init_engine_from_url, session_scope
from expense_kernel.domain.approval import ApprovalAction
from expense_kernel.domain.claim import StaticRateProvider
from expense_kernel.exceptions import ExpenseKernelError
from expense_kernel.logging_config import configure_logging
from expense_kernel.services.claim_service import ClaimService
from expense_kernel.services.policy_service import PolicyService

APPROVE = ApprovalAction.APPROVE
REJECT = ApprovalAction.REJECT

# (policy name, [(approver email, action, comment), ...])
SCENARIOS = [
    ("Sequential Approval Rule", [
        ("sarah@demo.com", APPROVE, "Within budget"),
        ("admin@demo.com", APPROVE, "OK"),
    ]),
    ("Percentage Rule", [
        ("sarah@demo.com", APPROVE, "Fine by me"),
    ]),
    ("Admin Override Rule", [
        ("admin@demo.com", APPROVE, "Approved"),
    ]),
    ("Hybrid Rule", [
        ("sarah@demo.com", REJECT, "No receipt attached"),
    ]),
]


def _print_state(claim_service: ClaimService, claim_id, names: dict) -> None:
    state = claim_service.get_approval_state(claim_id)
    print(f"      status={state.status.value}", end="")
    if state.current_approver_id:
        print(f"  current={names[state.current_approver_id]}", end="")
    print()
    for slot in state.slots:
        comment = f"  ({slot.comment})" if slot.comment else ""
        print(f"        - {names[slot.approver_id]:<8} {slot.status.value:<9}{comment}")


def main() -> int:
    parser = argparse.ArgumentParser(description="Run the demo approval scenarios.")
    parser.add_argument(
        "--database-url",
        default="sqlite:///:memory:",
        help="SQLAlchemy URL (default: in-memory SQLite)",
    )
    parser.add_argument(
        "--log-json",
        action="store_true",
        help="Print structured JSON logs to stderr",
    )
    args = parser.parse_args()

    settings = get_settings()
    configure_logging(level=settings.log_level if args.log_json else logging.WARNING)

    init_engine_from_url(args.database_url, echo=settings.echo_sql)
    create_tables()
    definition = load_seed_definition(default_currency=settings.default_currency)

    try:
        with session_scope() as session:
            seeded = seed_company(session, definition)
            names = {uid: email.split("@")[0] for email, uid in seeded.user_ids.items()}
            by_name = {p.name: p for p in definition.policies}
            policies = PolicyService(session)
            claims = ClaimService(
                session,
                notifier=notifier_for(settings),
                rate_provider=StaticRateProvider({("EUR", "USD"): "1.10"}),
                policies=policies,
            )
            john = seeded.user_ids["john@demo.com"]
            admin = seeded.user_ids[definition.company.admin_email]

            for number, (policy_name, steps) in enumerate(SCENARIOS, start=1):
                policy = policies.create_policy(
                    seeded.company.id,
                    actor_id=admin,
                    **policy_kwargs(by_name[policy_name], seeded.user_ids),
                )
                print()
                print(f"  [{number}/{len(SCENARIOS)}] {policy.name}: {policy.description}")

                draft = claims.create_claim(
                    john,
                    description=f"Client dinner #{number}",
                    category="Food",
                    amount="120.00",
                    currency="EUR",
                    expense_date=date(2024, 3, number),
                )
                claims.submit_claim(draft.claim_id, john)
                print(f"    submitted {draft.amount} EUR ({draft.converted_amount} USD)")
                _print_state(claims, draft.claim_id, names)

                for email, action, comment in steps:
                    outcome = claims.decide(
                        draft.claim_id, seeded.user_ids[email], action, comment,
                    )
                    print(f"    {email.split('@')[0]} {action.value}s -> rule={outcome.rule.value}")
                    _print_state(claims, draft.claim_id, names)
    except ExpenseKernelError as exc:
        print(f"  ERROR [{exc.code}]: {exc}", file=sys.stderr)
        return 1

    print()
    return 0


if __name__ == "__main__":
    sys.exit(main())
