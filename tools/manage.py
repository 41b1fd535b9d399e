#!/usr/bin/env python3
"""
Organ Matching Management CLI

Commands for operating the matching service:
- generate-identity: Generate an Ed25519 identity (keypair)
- init-schema: Create the PostgreSQL records table
- initialize: Create program state with an admin identity
- set-authority: Register, activate or deactivate a medical authority
- score: Score a donor against a recipient offline (JSON files)
- show-config: Print the effective configuration
- health-check: Check store connectivity and program state

Usage:
    python -m tools.manage <command> [options]

Examples:
    python -m tools.manage generate-identity
    python -m tools.manage initialize --admin "<identity>"
    python -m tools.manage score --donor donor.json --recipient recipient.json
"""

import argparse
import json
import sys
import time


def _service():
    from organ_matching.core import MatchingService
    from organ_matching.db import create_record_store

    return MatchingService(create_record_store())


def cmd_generate_identity(args):
    """Generate a fresh Ed25519 identity."""
    from organ_matching.core import Identity

    private_key, identity = Identity.generate_keypair()

    print("[OK] Identity generated")
    print(f"\n  Identity (public key):")
    print(f"  {identity}")
    print(f"\n  Private key (KEEP SECRET!):")
    print(f"  {private_key}")


def cmd_init_schema(args):
    """Create the records table in PostgreSQL."""
    from organ_matching.db import PostgresRecordStore, RecordStoreDriver, create_record_store

    store = create_record_store(RecordStoreDriver.PSYCOPG2)
    if not isinstance(store, PostgresRecordStore):
        print("Error: init-schema needs a PostgreSQL store")
        return 1

    store.ensure_schema()
    print("[OK] Schema ready")
    return 0


def cmd_initialize(args):
    """Create program state."""
    from organ_matching.core import OrganMatchingError

    service = _service()
    try:
        state = service.initialize(args.admin)
    except OrganMatchingError as e:
        print(f"[FAIL] {e}")
        return 1

    print("[OK] Program initialized")
    print(f"  Admin: {state.admin}")
    return 0


def cmd_set_authority(args):
    """Register, activate or deactivate a medical authority."""
    from organ_matching.core import OrganMatchingError

    service = _service()
    try:
        record = service.set_medical_authority(args.admin, args.authority, not args.inactive)
    except OrganMatchingError as e:
        print(f"[FAIL] {e}")
        return 1

    print("[OK] Medical authority updated")
    print(f"  Authority: {record.authority}")
    print(f"  Active: {record.is_active}")
    print(f"  Confirmed matches: {record.confirmed_match_count}")
    return 0


def cmd_score(args):
    """Score one donor against one recipient without touching any store."""
    from organ_matching.config import CompatibilityPolicy, MatchingConfig
    from organ_matching.core import is_compatible, score_candidate
    from organ_matching.core.validator import validate_donor, validate_recipient
    from organ_matching.core.identity import donor_ref, recipient_ref
    from organ_matching.core.errors import OrganMatchingError
    from organ_matching.schemas import DonorData, DonorRecord, RecipientData, RecipientRecord

    now = args.now if args.now is not None else int(time.time())

    # ValueError covers malformed JSON, pydantic errors and unknown policies
    try:
        with open(args.donor) as f:
            donor_json = json.load(f)
        with open(args.recipient) as f:
            recipient_json = json.load(f)

        created_at = recipient_json.pop("created_at", now)

        donor_data = DonorData.model_validate(donor_json)
        recipient_data = RecipientData.model_validate(recipient_json)
        validate_donor(donor_data)
        validate_recipient(recipient_data)

        donor = DonorRecord(
            ref=donor_ref("offline-donor"),
            owner="offline-donor",
            created_at=now,
            **donor_data.model_dump(),
        )
        recipient = RecipientRecord(
            ref=recipient_ref("offline-recipient"),
            owner="offline-recipient",
            created_at=created_at,
            last_updated=created_at,
            **recipient_data.model_dump(),
        )

        policy = (
            CompatibilityPolicy(args.policy)
            if args.policy
            else MatchingConfig.from_env().compatibility
        )
    except (OSError, ValueError, OrganMatchingError) as e:
        print(f"[FAIL] {e}")
        return 1
    breakdown = score_candidate(donor, recipient, now)

    print(json.dumps(
        {
            "compatible": is_compatible(donor, recipient, policy),
            "policy": policy.value,
            "breakdown": breakdown.model_dump(),
        },
        indent=2,
    ))
    return 0


def cmd_show_config(args):
    """Print the effective configuration (password omitted)."""
    from organ_matching.config import MatchingConfig
    from organ_matching.db.config import DatabaseConfig, RecordStoreDriver, get_recordstore_driver

    matching = MatchingConfig.from_env()
    driver = get_recordstore_driver()

    print("=== Organ Matching Configuration ===\n")
    print("Matching:")
    print(f"  Compatibility: {matching.compatibility.value}")
    print(f"  Max candidates: {matching.max_candidates}")
    print("\nRecord store:")
    print(f"  Driver: {driver.value}")
    if driver != RecordStoreDriver.MEMORY:
        db = DatabaseConfig.from_env()
        print(f"  URL: {db.to_url(include_password=False)}")
        print(f"  Lock timeout: {db.lock_timeout_ms}ms")
        print(f"  Statement timeout: {db.statement_timeout_ms}ms")
    return 0


def cmd_health_check(args):
    """Run health checks against the configured store."""
    from organ_matching.observability import check_health

    service = _service()
    status = check_health(service=service, store=service.store)

    print("=== Organ Matching Health Check ===\n")
    for name, check in status.checks.items():
        marker = "[OK]" if check.get("status") == "healthy" else "[FAIL]"
        details = ", ".join(f"{k}={v}" for k, v in check.items() if k != "status")
        print(f"  {name}: {marker} {details}".rstrip())

    print("\n=== Health Check Complete ===")
    return 0 if status.healthy else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Organ Matching Management CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    subparsers.add_parser(
        "generate-identity",
        help="Generate an Ed25519 identity"
    )

    subparsers.add_parser(
        "init-schema",
        help="Create the PostgreSQL records table"
    )

    p_init = subparsers.add_parser(
        "initialize",
        help="Create program state"
    )
    p_init.add_argument("--admin", required=True, help="Admin identity")

    p_auth = subparsers.add_parser(
        "set-authority",
        help="Register, activate or deactivate a medical authority"
    )
    p_auth.add_argument("--admin", required=True, help="Admin identity (caller)")
    p_auth.add_argument("--authority", required=True, help="Medical authority identity")
    p_auth.add_argument("--inactive", action="store_true", help="Deactivate instead of activate")

    p_score = subparsers.add_parser(
        "score",
        help="Score a donor against a recipient (JSON files)"
    )
    p_score.add_argument("--donor", required=True, help="Donor JSON file")
    p_score.add_argument("--recipient", required=True, help="Recipient JSON file (may include created_at)")
    p_score.add_argument("--now", type=int, help="Unix time to score at (default: now)")
    p_score.add_argument(
        "--policy",
        choices=["exact", "abo_directional"],
        help="Compatibility policy (default: from environment)"
    )

    subparsers.add_parser(
        "show-config",
        help="Print the effective configuration"
    )

    subparsers.add_parser(
        "health-check",
        help="Check store connectivity and program state"
    )

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    commands = {
        "generate-identity": cmd_generate_identity,
        "init-schema": cmd_init_schema,
        "initialize": cmd_initialize,
        "set-authority": cmd_set_authority,
        "score": cmd_score,
        "show-config": cmd_show_config,
        "health-check": cmd_health_check,
    }

    return commands[args.command](args) or 0


if __name__ == "__main__":
    sys.exit(main())
