from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

from ci_compliance_tool.domain.entities import RepoFilter
from ci_compliance_tool.reporting import SUPPORTED_FORMATS


@dataclass(slots=True)
class AppConfig:
    orgs: tuple[str, ...]
    profile: str
    policy_dir: Path | None
    profile_dir: Path | None
    builtin_policies: bool
    report_format: str
    output: Path | None
    repo_filter: RepoFilter
    max_workers: int
    fail_fast: bool
    fail_on_violations: bool
    github_token: str | None
    github_api_base_url: str
    github_timeout_seconds: float
    github_max_retries: int
    github_fetch_languages: bool


def load_config(args, env: Mapping[str, str]) -> AppConfig:
    orgs = _split_list(_normalize_empty(args.orgs) or _normalize_empty(env.get("CICOMPLY_ORGS")))
    profile = _normalize_empty(args.profile) or _normalize_empty(env.get("CICOMPLY_PROFILE")) or "default"
    policy_dir_raw = _normalize_empty(args.policy_dir) or _normalize_empty(env.get("CICOMPLY_POLICY_DIR"))
    profile_dir_raw = _normalize_empty(args.profile_dir) or _normalize_empty(env.get("CICOMPLY_PROFILE_DIR"))
    report_format = _normalize_empty(args.format) or _normalize_empty(env.get("CICOMPLY_FORMAT")) or "json"
    output_raw = _normalize_empty(args.output) or _normalize_empty(env.get("CICOMPLY_OUTPUT"))
    raw_max_workers = _normalize_empty(str(args.max_workers) if args.max_workers is not None else None) or _normalize_empty(
        env.get("CICOMPLY_MAX_WORKERS")
    )

    if not orgs:
        raise ValueError("Missing organizations. Use --orgs or set CICOMPLY_ORGS")

    if report_format not in SUPPORTED_FORMATS:
        valid = ", ".join(SUPPORTED_FORMATS)
        raise ValueError(f"Unsupported report format '{report_format}'. Allowed values: {valid}")

    max_workers = 1
    if raw_max_workers is not None:
        try:
            max_workers = int(raw_max_workers)
        except ValueError as error:
            raise ValueError("CICOMPLY_MAX_WORKERS/--max-workers must be an integer") from error
        if max_workers <= 0:
            raise ValueError("CICOMPLY_MAX_WORKERS/--max-workers must be greater than 0")

    fail_fast = args.fail_fast or _parse_bool(env.get("CICOMPLY_FAIL_FAST", "false"), "CICOMPLY_FAIL_FAST")

    repo_filter = RepoFilter(
        include_languages=_split_list(args.include_languages),
        exclude_languages=_split_list(args.exclude_languages),
        include_topics=_split_list(args.include_topics),
        exclude_topics=_split_list(args.exclude_topics),
        include_archived=args.include_archived,
        include_forks=args.include_forks,
        visibility=_split_list(args.visibility),
        name_pattern=_normalize_empty(args.name_pattern) or "",
    )

    github_api_base_url = _normalize_empty(env.get("GITHUB_API_BASE_URL")) or "https://api.github.com"

    raw_timeout = _normalize_empty(env.get("GITHUB_TIMEOUT_SECONDS"))
    try:
        github_timeout_seconds = float(raw_timeout) if raw_timeout else 30.0
    except ValueError as error:
        raise ValueError("GITHUB_TIMEOUT_SECONDS must be a number") from error

    raw_retries = _normalize_empty(env.get("GITHUB_MAX_RETRIES"))
    try:
        github_max_retries = int(raw_retries) if raw_retries else 5
    except ValueError as error:
        raise ValueError("GITHUB_MAX_RETRIES must be an integer") from error
    if github_max_retries < 0:
        raise ValueError("GITHUB_MAX_RETRIES must be >= 0")

    return AppConfig(
        orgs=orgs,
        profile=profile,
        policy_dir=Path(policy_dir_raw).expanduser() if policy_dir_raw else None,
        profile_dir=Path(profile_dir_raw).expanduser() if profile_dir_raw else None,
        builtin_policies=not args.no_builtin_policies,
        report_format=report_format,
        output=Path(output_raw).expanduser() if output_raw else None,
        repo_filter=repo_filter,
        max_workers=max_workers,
        fail_fast=fail_fast,
        fail_on_violations=args.fail_on_violations,
        github_token=_normalize_empty(env.get("GITHUB_TOKEN")),
        github_api_base_url=github_api_base_url,
        github_timeout_seconds=github_timeout_seconds,
        github_max_retries=github_max_retries,
        github_fetch_languages=_parse_bool(env.get("GITHUB_FETCH_LANGUAGES", "false"), "GITHUB_FETCH_LANGUAGES"),
    )


def _parse_bool(value: str, name: str) -> bool:
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"{name} must be a boolean (true/false)")


def _split_list(value: str | None) -> tuple[str, ...]:
    if not value:
        return ()
    return tuple(item.strip() for item in value.split(",") if item.strip())


def _normalize_empty(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped if stripped else None
