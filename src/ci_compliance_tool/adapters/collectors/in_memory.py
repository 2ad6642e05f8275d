from __future__ import annotations

from typing import Mapping, Sequence

from ci_compliance_tool.domain.entities import BranchProtection, Repository, RepoFilter, Workflow, WorkflowRun
from ci_compliance_tool.domain.errors import CollectorError
from ci_compliance_tool.domain.ports import SourceCollectorPort


class InMemoryCollectorAdapter(SourceCollectorPort):
    """Collector serving pre-built entities, keyed by repository full name.

    `failures` maps a full name to the message of a `CollectorError` raised
    when that repository's workflows are requested, to simulate partial
    outages.
    """

    def __init__(
        self,
        repositories: Sequence[Repository] = (),
        *,
        workflows: Mapping[str, Sequence[Workflow]] | None = None,
        branch_protections: Mapping[str, BranchProtection] | None = None,
        latest_runs: Mapping[str, WorkflowRun] | None = None,
        failures: Mapping[str, str] | None = None,
    ) -> None:
        self._repositories = list(repositories)
        self._workflows = {key: list(value) for key, value in (workflows or {}).items()}
        self._branch_protections = dict(branch_protections or {})
        self._latest_runs = dict(latest_runs or {})
        self._failures = dict(failures or {})

    def list_repositories(self, orgs: Sequence[str], repo_filter: RepoFilter) -> list[Repository]:
        wanted = set(orgs)
        return [
            repository
            for repository in self._repositories
            if (not wanted or repository.owner in wanted) and repository.matches(repo_filter)
        ]

    def get_workflows(self, repository: Repository) -> list[Workflow]:
        failure = self._failures.get(repository.full_name)
        if failure is not None:
            raise CollectorError(failure)
        return list(self._workflows.get(repository.full_name, ()))

    def get_branch_protection(self, repository: Repository, branch: str) -> BranchProtection | None:
        return self._branch_protections.get(repository.full_name)

    def get_latest_workflow_run(self, repository: Repository, workflow: Workflow) -> WorkflowRun | None:
        return self._latest_runs.get(repository.full_name)
