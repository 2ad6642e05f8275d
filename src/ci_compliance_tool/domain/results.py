from __future__ import annotations
"""Violation and compliance result models.

Field names written by `to_dict()` and the severity strings are consumed by
report encoders and downstream tooling; they must stay stable.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping

from .entities import Repository, RepoFilter, parse_timestamp


class Severity(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"


@dataclass(slots=True)
class Violation:
    """One policy or profile disagreement.

    Attributes:
        policy: Policy identifier, e.g. `profile/go-version` or `policy/merge`.
        rule: Rule name inside the policy.
        message: Human-readable description.
        severity: One of the five `Severity` levels.
        remediation: Optional guidance to fix the violation.
        file: Optional file the violation points to.
        line: Optional 1-based line number (0 when unknown).
    """

    policy: str
    rule: str
    message: str
    severity: Severity
    remediation: str = ""
    file: str = ""
    line: int = 0

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "policy": self.policy,
            "rule": self.rule,
            "message": self.message,
            "severity": self.severity.value,
        }
        if self.remediation:
            payload["remediation"] = self.remediation
        if self.file:
            payload["file"] = self.file
        if self.line:
            payload["line"] = self.line
        return payload

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Violation:
        return cls(
            policy=data.get("policy", ""),
            rule=data.get("rule", ""),
            message=data.get("message", ""),
            severity=Severity(data["severity"]),
            remediation=data.get("remediation", ""),
            file=data.get("file", ""),
            line=int(data.get("line", 0)),
        )


@dataclass(slots=True)
class RepoWarning:
    """Non-blocking issue recorded for a repository."""

    code: str
    message: str
    file: str = ""

    def to_dict(self) -> dict[str, Any]:
        payload = {"code": self.code, "message": self.message}
        if self.file:
            payload["file"] = self.file
        return payload

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> RepoWarning:
        return cls(code=data.get("code", ""), message=data.get("message", ""), file=data.get("file", ""))


@dataclass(slots=True)
class RepoResult:
    """Compliance outcome for a single repository."""

    repo: Repository
    compliant: bool = False
    violations: list[Violation] = field(default_factory=list)
    warnings: list[RepoWarning] = field(default_factory=list)
    skipped: bool = False
    skip_reason: str = ""
    error: str = ""
    scan_time_ms: int = 0

    def is_compliant(self) -> bool:
        return not self.violations and self.error == ""

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "repo": self.repo.to_dict(),
            "compliant": self.compliant,
            "skipped": self.skipped,
            "scanTimeMs": self.scan_time_ms,
        }
        if self.violations:
            payload["violations"] = [violation.to_dict() for violation in self.violations]
        if self.warnings:
            payload["warnings"] = [warning.to_dict() for warning in self.warnings]
        if self.skip_reason:
            payload["skipReason"] = self.skip_reason
        if self.error:
            payload["error"] = self.error
        return payload

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> RepoResult:
        return cls(
            repo=Repository.from_dict(data.get("repo") or {}),
            compliant=bool(data.get("compliant", False)),
            violations=[Violation.from_dict(item) for item in data.get("violations") or ()],
            warnings=[RepoWarning.from_dict(item) for item in data.get("warnings") or ()],
            skipped=bool(data.get("skipped", False)),
            skip_reason=data.get("skipReason", ""),
            error=data.get("error", ""),
            scan_time_ms=int(data.get("scanTimeMs", 0)),
        )


@dataclass(slots=True)
class ScanSummary:
    total: int = 0
    compliant: int = 0
    non_compliant: int = 0
    skipped: int = 0
    errors: int = 0
    compliance_rate: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "compliant": self.compliant,
            "nonCompliant": self.non_compliant,
            "skipped": self.skipped,
            "errors": self.errors,
            "complianceRate": self.compliance_rate,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ScanSummary:
        return cls(
            total=int(data.get("total", 0)),
            compliant=int(data.get("compliant", 0)),
            non_compliant=int(data.get("nonCompliant", 0)),
            skipped=int(data.get("skipped", 0)),
            errors=int(data.get("errors", 0)),
            compliance_rate=float(data.get("complianceRate", 0.0)),
        )


@dataclass(slots=True)
class ScanConfig:
    """Configuration a scan ran with, echoed into the result for reproducibility."""

    orgs: tuple[str, ...] = ()
    policy_dir: str = ""
    profile: str = ""
    filter: RepoFilter = field(default_factory=RepoFilter)

    def to_dict(self) -> dict[str, Any]:
        return {
            "orgs": list(self.orgs),
            "policyDir": self.policy_dir,
            "profile": self.profile,
            "filter": self.filter.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ScanConfig:
        return cls(
            orgs=tuple(data.get("orgs") or ()),
            policy_dir=data.get("policyDir", ""),
            profile=data.get("profile", ""),
            filter=RepoFilter.from_dict(data.get("filter") or {}),
        )


@dataclass(slots=True)
class ComplianceResult:
    """Scan-level aggregate returned by one compliance scan."""

    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    summary: ScanSummary = field(default_factory=ScanSummary)
    repos: list[RepoResult] = field(default_factory=list)
    scan_duration_ms: int = 0
    config: ScanConfig = field(default_factory=ScanConfig)

    def violation_count(self) -> int:
        return sum(len(repo.violations) for repo in self.repos)

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "summary": self.summary.to_dict(),
            "repos": [repo.to_dict() for repo in self.repos],
            "scanDurationMs": self.scan_duration_ms,
            "config": self.config.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ComplianceResult:
        return cls(
            timestamp=parse_timestamp(data.get("timestamp")) or datetime.now(timezone.utc),
            summary=ScanSummary.from_dict(data.get("summary") or {}),
            repos=[RepoResult.from_dict(item) for item in data.get("repos") or ()],
            scan_duration_ms=int(data.get("scanDurationMs", 0)),
            config=ScanConfig.from_dict(data.get("config") or {}),
        )
