from __future__ import annotations
"""Application use case for organization-wide CI/CD compliance scans."""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
import logging
import time

from ci_compliance_tool.application.aggregation import build_compliance_result
from ci_compliance_tool.domain.entities import BranchProtection, Repository, Workflow, WorkflowRun
from ci_compliance_tool.domain.errors import ScanError
from ci_compliance_tool.domain.ports import SourceCollectorPort
from ci_compliance_tool.domain.results import ComplianceResult, RepoResult, RepoWarning, ScanConfig
from ci_compliance_tool.policy.context_builder import ContextBuilder
from ci_compliance_tool.policy.engine import PolicyEngine
from ci_compliance_tool.policy.profiles import ProfileRegistry, validate_repo_against_profile


LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class ComplianceScanner:
    """Core orchestration use case.

    Responsibilities:
    - list repositories from `SourceCollectorPort`
    - collect workflows, branch protection and the latest run per repository
    - build a `PolicyContext` and run policies and the profile validator
    - isolate per-repository failures into `RepoResult.error`
    - aggregate everything into a `ComplianceResult`
    """

    collector: SourceCollectorPort
    engine: PolicyEngine
    profiles: ProfileRegistry
    evaluate_policies: bool = True
    validate_profiles: bool = True
    max_workers: int = 1

    def execute(self, config: ScanConfig, *, fail_fast: bool = False) -> ComplianceResult:
        """Run one scan.

        Args:
            config: Organizations, profile name and repository filter.
            fail_fast: Stop after the first repository that errored. Only
                honoured for sequential scans (`max_workers == 1`).

        Raises:
            ScanError: the repository listing itself failed.
        """
        started = time.monotonic()
        profile = self.profiles.get_or_default(config.profile)

        # Stores are read concurrently from here on.
        self.engine.freeze()
        self.profiles.freeze()

        try:
            repositories = self.collector.list_repositories(config.orgs, config.filter)
        except Exception as error:  # noqa: BLE001
            raise ScanError(f"listing repositories for orgs {', '.join(config.orgs)}: {error}") from error

        LOGGER.info(
            "repositories listed",
            extra={
                "event": "scanner.repositories.listed",
                "orgs": list(config.orgs),
                "count": len(repositories),
                "profile": profile.name,
            },
        )

        builder = ContextBuilder(profile)
        results: list[RepoResult] = []

        if self.max_workers > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                results = list(executor.map(lambda repository: self.scan_repository(repository, builder), repositories))
        else:
            for repository in repositories:
                result = self.scan_repository(repository, builder)
                results.append(result)
                if result.error and fail_fast:
                    LOGGER.error(
                        "fail_fast triggered after repository failure",
                        extra={"event": "scanner.fail_fast.triggered", "repo_full_name": repository.full_name},
                    )
                    break

        duration_ms = int((time.monotonic() - started) * 1000)
        compliance = build_compliance_result(results, config, duration_ms)

        LOGGER.info(
            "scanner execution completed",
            extra={
                "event": "scanner.completed",
                "repo_count": compliance.summary.total,
                "compliant": compliance.summary.compliant,
                "non_compliant": compliance.summary.non_compliant,
                "errors": compliance.summary.errors,
                "violations": compliance.violation_count(),
                "duration_ms": duration_ms,
            },
        )
        return compliance

    def scan_repository(self, repository: Repository, builder: ContextBuilder) -> RepoResult:
        """Evaluate one repository; never raises."""
        started = time.monotonic()
        result = RepoResult(repo=repository)

        LOGGER.info(
            "repository processing started",
            extra={"event": "scanner.repository.start", "repo_full_name": repository.full_name},
        )

        if repository.archived:
            result.skipped = True
            result.skip_reason = "repository is archived"
            result.scan_time_ms = _elapsed_ms(started)
            LOGGER.info(
                "repository skipped",
                extra={
                    "event": "scanner.repository.skipped",
                    "repo_full_name": repository.full_name,
                    "reason": result.skip_reason,
                },
            )
            return result

        operation = "fetching workflows for"
        try:
            workflows = self.collector.get_workflows(repository)
            for workflow in workflows:
                if workflow.load_error:
                    result.warnings.append(
                        RepoWarning(
                            code="workflow-content-unavailable",
                            message=f"workflow {workflow.path or workflow.name} was not checked: {workflow.load_error}",
                            file=workflow.path,
                        )
                    )

            operation = "fetching branch protection for"
            branch_protection = self._branch_protection(repository, result)

            operation = "fetching latest workflow run for"
            latest_run = self._latest_run(repository, workflows, result)

            operation = "evaluating"
            context = builder.build(repository, workflows, branch_protection, latest_run=latest_run)

            if self.evaluate_policies:
                for evaluation in self.engine.evaluate_all(context):
                    for message in evaluation.errors:
                        result.warnings.append(RepoWarning(code="policy-evaluation-error", message=message))
                    violation = evaluation.to_violation()
                    if violation is not None:
                        result.violations.append(violation)

            if self.validate_profiles and builder.profile is not None:
                result.violations.extend(validate_repo_against_profile(context, builder.profile))
        except Exception as error:  # noqa: BLE001
            result.error = f"{operation} {repository.full_name}: {error}"
            LOGGER.exception(
                "repository processing failed",
                extra={
                    "event": "scanner.repository.failed",
                    "repo_full_name": repository.full_name,
                    "error": result.error,
                },
            )

        result.compliant = result.is_compliant()
        result.scan_time_ms = _elapsed_ms(started)

        LOGGER.info(
            "repository processing completed",
            extra={
                "event": "scanner.repository.completed",
                "repo_full_name": repository.full_name,
                "compliant": result.compliant,
                "violation_count": len(result.violations),
                "warning_count": len(result.warnings),
                "scan_time_ms": result.scan_time_ms,
            },
        )
        return result

    def _branch_protection(self, repository: Repository, result: RepoResult) -> BranchProtection | None:
        try:
            return self.collector.get_branch_protection(repository, repository.default_branch)
        except Exception as error:  # noqa: BLE001
            result.warnings.append(
                RepoWarning(
                    code="branch-protection-unavailable",
                    message=f"branch protection for {repository.default_branch} could not be read: {error}",
                )
            )
            return None

    def _latest_run(
        self,
        repository: Repository,
        workflows: list[Workflow],
        result: RepoResult,
    ) -> WorkflowRun | None:
        if not workflows:
            return None
        try:
            return self.collector.get_latest_workflow_run(repository, workflows[0])
        except Exception as error:  # noqa: BLE001
            result.warnings.append(
                RepoWarning(
                    code="workflow-run-unavailable",
                    message=f"latest run of {workflows[0].path or workflows[0].name} could not be read: {error}",
                    file=workflows[0].path,
                )
            )
            return None


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
