from __future__ import annotations
"""Canonical, immutable policy evaluation context.

A `PolicyContext` is built once per repository per scan by the context builder
and never mutated afterwards. Every collection is a tuple so the snapshot can be
shared across threads and hashed.
"""

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True, slots=True)
class RepoSection:
    name: str = ""
    org: str = ""
    full_name: str = ""
    languages: tuple[str, ...] = ()
    topics: tuple[str, ...] = ()
    archived: bool = False
    fork: bool = False


@dataclass(frozen=True, slots=True)
class CISection:
    """CI workflow signals.

    Attributes:
        has_workflow: At least one workflow exists.
        uses_reusable_workflow: Some workflow calls a shared workflow.
        reusable_workflow_ref: Verbatim reference of the first such call.
        required_checks: Status checks required by branch protection.
        last_run_passed: Most recent workflow run concluded successfully.
        os_matrix: Deduplicated OS labels in first-seen order.
    """

    has_workflow: bool = False
    uses_reusable_workflow: bool = False
    reusable_workflow_ref: str = ""
    required_checks: tuple[str, ...] = ()
    last_run_passed: bool = False
    os_matrix: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class GoSection:
    versions: tuple[str, ...] = ()
    profile: str = ""
    has_go_mod: bool = False
    go_mod_tidy: bool = False


@dataclass(frozen=True, slots=True)
class DependenciesSection:
    has_renovate: bool = False
    has_dependabot: bool = False
    oldest_dependency_days: int = 0
    has_vulnerabilities: bool = False
    vulnerability_count: int = 0


@dataclass(frozen=True, slots=True)
class BranchProtectionSection:
    enabled: bool = False
    require_reviews: bool = False
    require_status_checks: bool = False
    enforce_admins: bool = False


@dataclass(frozen=True, slots=True)
class PolicyContext:
    repo: RepoSection = field(default_factory=RepoSection)
    ci: CISection = field(default_factory=CISection)
    go: GoSection = field(default_factory=GoSection)
    dependencies: DependenciesSection = field(default_factory=DependenciesSection)
    branch_protection: BranchProtectionSection = field(default_factory=BranchProtectionSection)

    def to_dict(self) -> dict[str, Any]:
        """Nested camelCase view used by debug output and JSON reports."""
        return {
            "repo": {
                "name": self.repo.name,
                "org": self.repo.org,
                "fullName": self.repo.full_name,
                "language": list(self.repo.languages),
                "topics": list(self.repo.topics),
                "archived": self.repo.archived,
                "fork": self.repo.fork,
            },
            "ci": {
                "hasWorkflow": self.ci.has_workflow,
                "usesReusableWorkflow": self.ci.uses_reusable_workflow,
                "reusableWorkflowRef": self.ci.reusable_workflow_ref,
                "requiredChecks": list(self.ci.required_checks),
                "lastRunPassed": self.ci.last_run_passed,
                "osMatrix": list(self.ci.os_matrix),
            },
            "go": {
                "versions": list(self.go.versions),
                "profile": self.go.profile,
                "hasGoMod": self.go.has_go_mod,
                "goModTidy": self.go.go_mod_tidy,
            },
            "dependencies": {
                "hasRenovate": self.dependencies.has_renovate,
                "hasDependabot": self.dependencies.has_dependabot,
                "oldestDependencyDays": self.dependencies.oldest_dependency_days,
                "hasVulnerabilities": self.dependencies.has_vulnerabilities,
                "vulnerabilityCount": self.dependencies.vulnerability_count,
            },
            "branchProtection": {
                "enabled": self.branch_protection.enabled,
                "requireReviews": self.branch_protection.require_reviews,
                "requireStatusChecks": self.branch_protection.require_status_checks,
                "enforceAdmins": self.branch_protection.enforce_admins,
            },
        }
