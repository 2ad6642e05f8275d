from __future__ import annotations
"""Aggregate per-repository outcomes into a scan-level result."""

from datetime import datetime, timezone
from typing import Sequence

from ci_compliance_tool.domain.results import ComplianceResult, RepoResult, ScanConfig, ScanSummary


def summarize(repos: Sequence[RepoResult]) -> ScanSummary:
    """Compute summary counts.

    Skipped and errored repositories count as non-compliant for the rate.
    A skipped repository carries no violations, so it is excluded explicitly.
    """
    total = len(repos)
    compliant = sum(1 for repo in repos if repo.is_compliant() and not repo.skipped)
    return ScanSummary(
        total=total,
        compliant=compliant,
        non_compliant=total - compliant,
        skipped=sum(1 for repo in repos if repo.skipped),
        errors=sum(1 for repo in repos if repo.error),
        compliance_rate=(100.0 * compliant / total) if total else 0.0,
    )


def build_compliance_result(
    repos: Sequence[RepoResult],
    config: ScanConfig,
    duration_ms: int,
    *,
    timestamp: datetime | None = None,
) -> ComplianceResult:
    return ComplianceResult(
        timestamp=timestamp or datetime.now(timezone.utc),
        summary=summarize(repos),
        repos=list(repos),
        scan_duration_ms=duration_ms,
        config=config,
    )
