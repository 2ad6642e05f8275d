from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from typing import Sequence

from ci_compliance_tool.adapters.collectors.caching import CachingCollectorAdapter
from ci_compliance_tool.adapters.collectors.github_api import GitHubCollectorAdapter
from ci_compliance_tool.application.use_cases.compliance_scanner import ComplianceScanner
from ci_compliance_tool.cli.config import AppConfig, load_config
from ci_compliance_tool.domain.errors import PolicyParseError, ScanError
from ci_compliance_tool.domain.results import ComplianceResult, ScanConfig
from ci_compliance_tool.logging_utils import configure_logging
from ci_compliance_tool.policy import PolicyEngine, PolicyLoader, ProfileRegistry
from ci_compliance_tool.policy.engine import ATTRIBUTE_SCHEMA_VERSION, describe_schema
from ci_compliance_tool.reporting import SUPPORTED_FORMATS, render_report, write_report


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cicomply",
        description="Evaluate CI/CD compliance of every repository in one or more GitHub organizations.",
    )

    parser.add_argument("--orgs", required=False, help="Comma-separated organizations. Falls back to CICOMPLY_ORGS.")
    parser.add_argument(
        "--profile",
        required=False,
        help="Profile to validate against (default, modern, legacy or custom). Falls back to CICOMPLY_PROFILE.",
    )
    parser.add_argument(
        "--policy-dir",
        required=False,
        help="Directory of .cedar policy files. Falls back to CICOMPLY_POLICY_DIR.",
    )
    parser.add_argument(
        "--profile-dir",
        required=False,
        help="Directory of YAML profile files. Falls back to CICOMPLY_PROFILE_DIR.",
    )
    parser.add_argument(
        "--no-builtin-policies",
        action="store_true",
        help="Do not register the built-in policies.",
    )
    parser.add_argument(
        "--format",
        choices=list(SUPPORTED_FORMATS),
        required=False,
        help="Report format. Falls back to CICOMPLY_FORMAT (default json).",
    )
    parser.add_argument("--output", required=False, help="Report file path. Falls back to CICOMPLY_OUTPUT (default stdout).")

    parser.add_argument("--include-languages", required=False, help="Comma-separated languages to include.")
    parser.add_argument("--exclude-languages", required=False, help="Comma-separated languages to exclude.")
    parser.add_argument("--include-topics", required=False, help="Comma-separated topics to include.")
    parser.add_argument("--exclude-topics", required=False, help="Comma-separated topics to exclude.")
    parser.add_argument("--include-archived", action="store_true", help="List archived repositories (reported as skipped).")
    parser.add_argument("--include-forks", action="store_true", help="Include forked repositories.")
    parser.add_argument("--visibility", required=False, help="Comma-separated visibilities (public, private, internal).")
    parser.add_argument("--name-pattern", required=False, help="Glob matched against the repository name or full name.")

    parser.add_argument(
        "--max-workers",
        type=int,
        required=False,
        help="Repositories scanned concurrently. Falls back to CICOMPLY_MAX_WORKERS (default 1).",
    )
    parser.add_argument(
        "--fail-fast",
        action="store_true",
        help="Stop after the first repository that errors (sequential scans only). Falls back to CICOMPLY_FAIL_FAST.",
    )
    parser.add_argument(
        "--fail-on-violations",
        action="store_true",
        help="Exit with status 1 when any repository is non-compliant.",
    )
    parser.add_argument(
        "--show-schema",
        action="store_true",
        help="Print the policy context attribute schema and exit.",
    )

    return parser


def main(argv: Sequence[str] | None = None) -> int:
    try:
        configure_logging(os.environ.get("LOG_LEVEL", "INFO"), os.environ.get("LOG_FORMAT", "json"))
    except ValueError as error:
        print(f"cicomply: error: {error}", file=sys.stderr)
        return 2
    logger = logging.getLogger(__name__)

    parser = build_parser()
    args = parser.parse_args(argv)

    if args.show_schema:
        print(json.dumps({"version": ATTRIBUTE_SCHEMA_VERSION, "attributes": dict(describe_schema())}, indent=2))
        return 0

    try:
        config = load_config(args=args, env=os.environ)
    except ValueError as error:
        parser.error(str(error))

    logger.info(
        "cli configuration resolved",
        extra={
            "event": "cli.config.resolved",
            "orgs": list(config.orgs),
            "profile": config.profile,
            "policy_dir": str(config.policy_dir) if config.policy_dir else None,
            "profile_dir": str(config.profile_dir) if config.profile_dir else None,
            "report_format": config.report_format,
            "max_workers": config.max_workers,
            "fail_fast": config.fail_fast,
        },
    )

    try:
        scanner = _build_scanner(config)
        result = scanner.execute(
            ScanConfig(
                orgs=config.orgs,
                policy_dir=str(config.policy_dir) if config.policy_dir else "",
                profile=config.profile,
                filter=config.repo_filter,
            ),
            fail_fast=config.fail_fast,
        )
    except (PolicyParseError, OSError, ValueError, ScanError) as error:
        logger.exception("cli execution failed", extra={"event": "cli.execution.failed"})
        parser.error(str(error))

    if config.output is not None:
        write_report(result, config.report_format, config.output)
        logger.info(
            "report written",
            extra={"event": "cli.report.written", "path": str(config.output), "report_format": config.report_format},
        )
    else:
        sys.stdout.write(render_report(result, config.report_format))

    _print_summary(result)

    if config.fail_on_violations and result.summary.non_compliant > 0:
        return 1
    return 0


def _build_scanner(config: AppConfig) -> ComplianceScanner:
    engine = PolicyEngine()
    loader = PolicyLoader(engine)
    if config.builtin_policies:
        loader.load_builtin_policies()
    if config.policy_dir is not None:
        loader.load_from_directory(config.policy_dir)

    profiles = ProfileRegistry()
    profiles.load_builtin_profiles()
    if config.profile_dir is not None:
        profiles.load_from_directory(config.profile_dir)

    collector = GitHubCollectorAdapter(
        api_base_url=config.github_api_base_url,
        token=config.github_token,
        timeout_seconds=config.github_timeout_seconds,
        max_retries=config.github_max_retries,
        fetch_languages=config.github_fetch_languages,
    )

    return ComplianceScanner(
        collector=CachingCollectorAdapter(collector),
        engine=engine,
        profiles=profiles,
        max_workers=config.max_workers,
    )


def _print_summary(result: ComplianceResult) -> None:
    summary = result.summary
    print(f"Repositories scanned: {summary.total}", file=sys.stderr)
    print(f"Compliant: {summary.compliant}", file=sys.stderr)
    print(f"Non-compliant: {summary.non_compliant}", file=sys.stderr)
    print(f"Skipped: {summary.skipped}", file=sys.stderr)
    print(f"Errors: {summary.errors}", file=sys.stderr)
    print(f"Compliance rate: {summary.compliance_rate:.1f}%", file=sys.stderr)
    print(f"Violations: {result.violation_count()}", file=sys.stderr)


if __name__ == "__main__":
    raise SystemExit(main())
