from __future__ import annotations
"""CSV encodings of compliance results.

Two layouts are available:
- summary (`format_summary_csv`): one row per repository;
- violations (`format_violations_csv`): one row per violation, plus an empty
  row for repositories without violations so every scanned repo is listed.
"""

import csv
import io

from ci_compliance_tool.domain.results import ComplianceResult


SUMMARY_FIELDNAMES = (
    "repo",
    "org",
    "compliant",
    "violation_count",
    "warning_count",
    "error",
    "skipped",
    "skip_reason",
    "scan_time_ms",
)

VIOLATION_FIELDNAMES = ("repo", "org", "policy", "rule", "severity", "message", "remediation", "file", "line")


def format_summary_csv(result: ComplianceResult) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(SUMMARY_FIELDNAMES)
    for repo_result in result.repos:
        writer.writerow(
            [
                repo_result.repo.full_name,
                repo_result.repo.owner,
                _bool(repo_result.compliant),
                len(repo_result.violations),
                len(repo_result.warnings),
                repo_result.error,
                _bool(repo_result.skipped),
                repo_result.skip_reason,
                repo_result.scan_time_ms,
            ]
        )
    return buffer.getvalue()


def format_violations_csv(result: ComplianceResult) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(VIOLATION_FIELDNAMES)
    for repo_result in result.repos:
        if not repo_result.violations:
            writer.writerow([repo_result.repo.full_name, repo_result.repo.owner] + [""] * 7)
            continue
        for violation in repo_result.violations:
            writer.writerow(
                [
                    repo_result.repo.full_name,
                    repo_result.repo.owner,
                    violation.policy,
                    violation.rule,
                    violation.severity.value,
                    violation.message,
                    violation.remediation,
                    violation.file,
                    violation.line,
                ]
            )
    return buffer.getvalue()


def _bool(value: bool) -> str:
    return "true" if value else "false"
