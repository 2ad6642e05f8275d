from __future__ import annotations
"""Build canonical `PolicyContext` snapshots from collected repository data."""

from typing import Sequence

from ci_compliance_tool.domain.context import (
    BranchProtectionSection,
    CISection,
    GoSection,
    PolicyContext,
    RepoSection,
)
from ci_compliance_tool.domain.entities import (
    BranchProtection,
    Profile,
    Repository,
    Workflow,
    WorkflowRun,
    dedupe,
)


GO_LANGUAGE = "Go"


class ContextBuilder:
    """Deterministic, side-effect-free `PolicyContext` factory.

    Expected usage:
    - Construct once per scan, optionally with the active `Profile`.
    - Call `build()` for each repository; the builder never fails and never
      returns a partially populated context (missing data yields zero values).
    """

    def __init__(self, profile: Profile | None = None) -> None:
        self._profile = profile

    @property
    def profile(self) -> Profile | None:
        return self._profile

    def with_profile(self, profile: Profile | None) -> ContextBuilder:
        """Return a builder seeded with `profile`; the current builder is unchanged."""
        return ContextBuilder(profile)

    def build(
        self,
        repository: Repository,
        workflows: Sequence[Workflow] = (),
        branch_protection: BranchProtection | None = None,
        *,
        latest_run: WorkflowRun | None = None,
    ) -> PolicyContext:
        """Create the context for one repository.

        Args:
            repository: Repository metadata.
            workflows: Workflows in discovery order; order decides which
                reusable workflow reference is recorded.
            branch_protection: Default branch protection, if known.
            latest_run: Most recent workflow run, if known.
        """
        workflows = tuple(workflows or ())
        return PolicyContext(
            repo=RepoSection(
                name=repository.name,
                org=repository.owner,
                full_name=repository.full_name,
                languages=tuple(repository.languages),
                topics=tuple(repository.topics),
                archived=repository.archived,
                fork=repository.fork,
            ),
            ci=self._build_ci_section(workflows, branch_protection, latest_run),
            go=self._build_go_section(repository, workflows),
            branch_protection=self._build_branch_protection_section(branch_protection),
        )

    @staticmethod
    def _build_ci_section(
        workflows: tuple[Workflow, ...],
        branch_protection: BranchProtection | None,
        latest_run: WorkflowRun | None,
    ) -> CISection:
        reusable_ref = ""
        uses_reusable = False
        for workflow in workflows:
            if workflow.reusable_workflow_refs:
                uses_reusable = True
                reusable_ref = workflow.reusable_workflow_refs[0].full_ref
                break

        os_labels: list[str] = []
        for workflow in workflows:
            for job in workflow.jobs:
                os_labels.extend(job.runs_on)
                if job.matrix is not None:
                    os_labels.extend(job.matrix.os)

        required_checks: tuple[str, ...] = ()
        if branch_protection is not None:
            required_checks = tuple(branch_protection.required_status_checks)

        return CISection(
            has_workflow=len(workflows) > 0,
            uses_reusable_workflow=uses_reusable,
            reusable_workflow_ref=reusable_ref,
            required_checks=required_checks,
            last_run_passed=latest_run is not None and latest_run.passed,
            os_matrix=dedupe(os_labels),
        )

    def _build_go_section(self, repository: Repository, workflows: tuple[Workflow, ...]) -> GoSection:
        if GO_LANGUAGE not in repository.languages:
            return GoSection()

        profile_name = ""
        versions: tuple[str, ...] = ()
        if self._profile is not None:
            profile_name = self._profile.name
            versions = tuple(self._profile.go_versions)

        # Versions declared by the workflows win over profile defaults.
        declared = dedupe(
            version
            for workflow in workflows
            for job in workflow.jobs
            if job.matrix is not None
            for version in job.matrix.go_version
        )
        if declared:
            versions = declared

        return GoSection(versions=versions, profile=profile_name)

    @staticmethod
    def _build_branch_protection_section(branch_protection: BranchProtection | None) -> BranchProtectionSection:
        if branch_protection is None:
            return BranchProtectionSection()
        return BranchProtectionSection(
            enabled=branch_protection.enabled,
            require_reviews=branch_protection.require_reviews,
            require_status_checks=branch_protection.require_status_checks,
            enforce_admins=branch_protection.enforce_admins,
        )
