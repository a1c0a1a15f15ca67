"""
Operator CLI: seed, resync and inspect an organization's authorization state.

Commands:
    orgguard seed ORG           Install the default role grants
    orgguard sync-org ORG       Rebuild role assignments from the membership table
    orgguard verify-audit       Verify the audit hash chain (one org with --org)
    orgguard violations ORG     List active suspensions
    orgguard unlock ORG         Lift an organization lockdown
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Awaitable, Callable, Sequence

from orgguard.authz.context import AuthzContext, build_authz_context
from orgguard.cache import build_cache_provider
from orgguard.cli import ux
from orgguard.config import Settings, get_settings
from orgguard.core.errors import (
    AuditIntegrityError,
    ExitCode,
    OrgGuardError,
    ViolationError,
    format_error_message,
    main_with_error_handling,
)
from orgguard.db.session import dispose_engine, get_session_factory
from orgguard.domain.models import AuditContext
from orgguard.logging import configure_logging

Handler = Callable[[AuthzContext, argparse.Namespace], Awaitable[int]]


async def seed_command(ctx: AuthzContext, args: argparse.Namespace) -> int:
    created = await ctx.seeder.seed_default_policies(args.org)
    if created:
        ux.success(f"Seeded {created} default grants for {args.org}")
    else:
        ux.info(f"Default grants already present for {args.org}")
    return ExitCode.SUCCESS


async def sync_org_command(ctx: AuthzContext, args: argparse.Namespace) -> int:
    result = await ctx.sync.sync_all_org_members(args.org)
    ux.success(
        f"Synced {len(result.assignments)} members for {args.org} "
        f"({len(result.removed)} assignments replaced)"
    )
    return ExitCode.SUCCESS


async def verify_audit_command(ctx: AuthzContext, args: argparse.Namespace) -> int:
    verification = await ctx.audit.verify_chain_integrity(args.org)
    if not verification.valid:
        raise AuditIntegrityError(
            "Audit chain integrity check failed",
            details={
                "org_id": verification.domain,
                "broken_at_sequence": verification.broken_at_sequence,
            },
        )
    scope = args.org or "all organizations"
    ux.success(f"Audit chain intact for {scope} ({verification.records_checked} records)")
    return ExitCode.SUCCESS


async def violations_command(ctx: AuthzContext, args: argparse.Namespace) -> int:
    violations = await ctx.violations.get_violations(args.org)
    if not violations:
        ux.info(f"No active violations for {args.org}")
        return ExitCode.SUCCESS
    ux.print_table(
        f"Violations for {args.org}",
        ["Resource", "Action", "Effect"],
        [[v["resource"], v["action"], v["effect"]] for v in violations],
    )
    return ExitCode.SUCCESS


async def unlock_command(ctx: AuthzContext, args: argparse.Namespace) -> int:
    """Lift a lockdown from the operator side."""
    context = AuditContext(actor_id="cli")
    if not await ctx.violations.restore_organization(args.org, context=context):
        raise ViolationError(
            "Failed to unlock organization: no violations found", details={"org_id": args.org}
        )
    ux.success(f"Lockdown lifted for {args.org}")
    return ExitCode.SUCCESS


COMMANDS: dict[str, Handler] = {
    "seed": seed_command,
    "sync-org": sync_org_command,
    "verify-audit": verify_audit_command,
    "violations": violations_command,
    "unlock": unlock_command,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="orgguard", description="OrgGuard authorization CLI")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    seed_parser = subparsers.add_parser("seed", help="Seed default role grants for an org")
    seed_parser.add_argument("org", help="Organization id")

    sync_parser = subparsers.add_parser("sync-org", help="Resync all member role assignments")
    sync_parser.add_argument("org", help="Organization id")

    verify_parser = subparsers.add_parser("verify-audit", help="Verify audit hash chain")
    verify_parser.add_argument("--org", default=None, help="Only verify this organization")

    violations_parser = subparsers.add_parser("violations", help="List active violations")
    violations_parser.add_argument("org", help="Organization id")

    unlock_parser = subparsers.add_parser("unlock", help="Lift an organization lockdown")
    unlock_parser.add_argument("org", help="Organization id")

    return parser


async def run_command(args: argparse.Namespace, settings: Settings) -> int:
    handler = COMMANDS[args.command]
    cache_provider = build_cache_provider(settings)
    try:
        async with get_session_factory()() as session:
            ctx = build_authz_context(session, cache_provider, settings)
            return await handler(ctx, args)
    finally:
        if cache_provider is not None:
            await cache_provider.close()
        await dispose_engine()


@main_with_error_handling()
def main(argv: Sequence[str] | None = None, settings: Settings | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(logging.DEBUG if args.verbose else logging.WARNING)
    try:
        return asyncio.run(run_command(args, settings or get_settings()))
    except OrgGuardError as exc:
        ux.error(format_error_message(exc))
        raise


def run() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run()
