from __future__ import annotations
"""Markdown encoding of compliance results for pull requests and wikis."""

from ci_compliance_tool.domain.results import ComplianceResult, RepoResult


def format_markdown(result: ComplianceResult) -> str:
    summary = result.summary
    lines = [
        "# Compliance Report",
        "",
        f"Generated: {result.timestamp.isoformat()}",
        "",
        "## Summary",
        "",
        "| Metric | Value |",
        "|---|---|",
        f"| Total repositories | {summary.total} |",
        f"| Compliant | {summary.compliant} |",
        f"| Non-compliant | {summary.non_compliant} |",
        f"| Skipped | {summary.skipped} |",
        f"| Errors | {summary.errors} |",
        f"| Compliance rate | {summary.compliance_rate:.1f}% |",
        f"| Violations | {result.violation_count()} |",
        "",
        "## Repositories",
        "",
        "| Repository | Status | Violations |",
        "|---|---|---|",
    ]
    for repo_result in result.repos:
        lines.append(f"| {_cell(repo_result.repo.full_name)} | {_status(repo_result)} | {len(repo_result.violations)} |")

    flagged = [repo_result for repo_result in result.repos if repo_result.violations or repo_result.error]
    if flagged:
        lines.extend(["", "## Findings"])
    for repo_result in flagged:
        lines.extend(["", f"### {repo_result.repo.full_name}", ""])
        if repo_result.error:
            lines.extend([f"Error: {repo_result.error}", ""])
        if not repo_result.violations:
            continue
        lines.extend(["| Severity | Policy | Message | Remediation |", "|---|---|---|---|"])
        for violation in repo_result.violations:
            lines.append(
                f"| {violation.severity.value} | {_cell(violation.policy)} | "
                f"{_cell(violation.message)} | {_cell(violation.remediation)} |"
            )

    return "\n".join(lines) + "\n"


def _status(repo_result: RepoResult) -> str:
    if repo_result.skipped:
        return "skipped"
    if repo_result.error:
        return "error"
    return "compliant" if repo_result.compliant else "non-compliant"


def _cell(text: str) -> str:
    return text.replace("|", "\\|").replace("\n", " ")
