#!/usr/bin/env python3
"""
crm-admin: run one administrative action against the CRM backend.

Usage:
    crm-admin --list
    crm-admin users.list --tenant medex
    crm-admin users.show -p email=someone@example.com
    crm-admin users.activate -p email=someone@example.com --tenant medex            # DRY_RUN
    crm-admin users.activate -p email=someone@example.com --tenant medex --execute  # LIVE WRITE
    crm-admin records.update -p table=users -w email=a@b.com -s role=admin --execute
    crm-admin tenant.purge --tenant demo -p include_auth=true --execute --output runs/

Exit codes:
    0   action succeeded (and verified, when verification ran)
    1   action failed, verification failed, or configuration is missing
    2   usage error
"""

import argparse
import json
import sys
from pathlib import Path

from crm_admin import __version__
from crm_admin.actions import ACTIONS, list_actions, run_action
from crm_admin.client.filters import coerce_value
from crm_admin.client.supabase_client import SupabaseClient
from crm_admin.config.settings import get_settings, load_env, mask_secret
from crm_admin.errors import ConfigError, suggest_remedy
from crm_admin.report.results_writer import ResultsWriter, make_run_id

SECRET_PARAMS = {"password"}


def split_pair(text: str) -> tuple:
    if "=" not in text:
        raise ValueError(f"Expected KEY=VALUE, got '{text}'")
    key, value = text.split("=", 1)
    key = key.strip()
    if not key:
        raise ValueError(f"Empty key in '{text}'")
    return key, value


def build_params(args) -> dict:
    """Collect -p, -w and -s options into the action parameter mapping."""
    params = {}
    for pair in args.param:
        key, value = split_pair(pair)
        params[key] = value
    if args.where:
        params["where"] = list(args.where)
    if args.set:
        params["set"] = {}
        for pair in args.set:
            key, value = split_pair(pair)
            params["set"][key] = coerce_value(value)
    return params


def redact_params(params):
    """Mask secret values at any depth (-p password=..., -s password=...)."""
    if isinstance(params, dict):
        return {k: ("***" if k in SECRET_PARAMS else redact_params(v)) for k, v in params.items()}
    if isinstance(params, list):
        return [redact_params(v) for v in params]
    return params


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="crm-admin",
        description="Run one administrative action against the CRM backend",
    )
    parser.add_argument("action", nargs="?", help="Action name (see --list)")
    parser.add_argument("--list", action="store_true", help="List available actions and exit")
    parser.add_argument("-p", "--param", action="append", default=[], metavar="KEY=VALUE", help="Action parameter")
    parser.add_argument("-w", "--where", action="append", default=[], metavar="EXPR", help="Row filter (col=value, col!=null, col=in(a,b), ...)")
    parser.add_argument("-s", "--set", action="append", default=[], metavar="COL=VALUE", help="Value to write (true/false/null/numbers/JSON are typed)")
    parser.add_argument("--tenant", help="Tenant id (default: CRM_ADMIN_TENANT)")
    parser.add_argument("--execute", action="store_true", help="Perform writes for real (default: DRY_RUN)")
    parser.add_argument("--no-verify", action="store_true", help="Skip the follow-up verification read")
    parser.add_argument("--verify-delay", type=float, default=0, metavar="SECONDS", help="Wait before the verification read")
    parser.add_argument("--output", type=Path, metavar="DIR", help="Write <run_id>.results.json/.md to this directory")
    parser.add_argument("--json", action="store_true", help="Print the result as JSON only")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def print_actions():
    print(f"{'ACTION':<24} {'WRITES':<7} DESCRIPTION")
    for name, description, mutates in list_actions():
        print(f"{name:<24} {'yes' if mutates else '-':<7} {description}")


def print_result(result):
    print()
    print("=" * 70)
    print("RESULT")
    print("=" * 70)
    status = "SUCCESS" if result.success else "FAILED"
    if result.success and result.dry_run:
        status = "DRY_RUN_SUCCESS"
    print(f"Status:   {status}")
    print(f"Affected: {result.affected}")
    if result.verified is not None:
        print(f"Verified: {result.verified}")

    if result.error:
        print()
        print(f"ERROR ({result.error.get('kind')}): {result.error.get('message')}")
        for key in ("status", "code", "details", "hint"):
            if result.error.get(key) is not None:
                print(f"  {key}: {result.error[key]}")
        remedy = suggest_remedy(result.error.get("code"))
        if remedy:
            print(f"  Suggested fix: {remedy}")


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.list:
        print_actions()
        sys.exit(0)

    if not args.action:
        parser.error("an action name is required (see --list)")
    if args.action not in ACTIONS:
        parser.error(f"unknown action '{args.action}' (see --list)")

    try:
        params = build_params(args)
    except ValueError as e:
        parser.error(str(e))

    quiet = args.json
    spec = ACTIONS[args.action]

    if not quiet:
        print("=" * 70)
        print(f"CRM ADMIN - {args.action}")
        print("=" * 70)
        print()

    load_env()
    try:
        settings = get_settings()
    except ConfigError as e:
        if quiet:
            print(json.dumps({"success": False, "error": {"kind": "config", "message": str(e)}}))
        else:
            print(f"ERROR: {e}")
        sys.exit(1)

    tenant = args.tenant or settings.tenant

    if not quiet:
        print(f"Endpoint: {settings.url}")
        print(f"Key:      {mask_secret(settings.service_key)}")
        print(f"Tenant:   {tenant or '(none)'}")
        print()
        if spec.mutates and args.execute:
            print("=" * 70)
            print("WARNING: EXECUTE MODE - LIVE WRITES ENABLED")
            print("=" * 70)
        elif spec.mutates:
            print("Running in DRY_RUN mode (no actual changes). Pass --execute to write.")
        print()

    client = SupabaseClient(settings.url, settings.service_key, timeout=settings.timeout, anon_key=settings.anon_key)
    result = run_action(
        args.action,
        params,
        client,
        tenant=tenant,
        execute=args.execute,
        verify=not args.no_verify,
        verify_delay=args.verify_delay,
        echo=not quiet,
    )

    if args.output:
        writer = ResultsWriter(args.output)
        json_path, md_path = writer.write_results(result, {
            "run_id": make_run_id(args.action),
            "endpoint": settings.url,
            "tenant": tenant,
            "params": redact_params(params),
        })
        if not quiet:
            print()
            print("Results written:")
            print(f"  JSON: {json_path}")
            print(f"  Markdown: {md_path}")

    if quiet:
        print(json.dumps(result.to_dict(), indent=2, default=str))
    else:
        print_result(result)
        print()
        print("Done." if result.success else "Failed.")

    sys.exit(0 if result.success else 1)


if __name__ == "__main__":
    main()
