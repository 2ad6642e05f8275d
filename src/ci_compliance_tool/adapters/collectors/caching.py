from __future__ import annotations

import threading
from typing import Any, Callable, Sequence

from ci_compliance_tool.domain.entities import BranchProtection, Repository, RepoFilter, Workflow, WorkflowRun
from ci_compliance_tool.domain.ports import SourceCollectorPort


class CachingCollectorAdapter(SourceCollectorPort):
    """Memoize another collector for the lifetime of this object.

    Only successful responses are cached; failures propagate and are retried
    on the next call. Safe to share between scanner worker threads.
    """

    def __init__(self, delegate: SourceCollectorPort) -> None:
        self._delegate = delegate
        self._cache: dict[tuple[Any, ...], Any] = {}
        self._lock = threading.Lock()

    def list_repositories(self, orgs: Sequence[str], repo_filter: RepoFilter) -> list[Repository]:
        key = ("repos", tuple(orgs), repr(repo_filter))
        return list(self._cached(key, lambda: self._delegate.list_repositories(orgs, repo_filter)))

    def get_workflows(self, repository: Repository) -> list[Workflow]:
        key = ("workflows", repository.full_name)
        return list(self._cached(key, lambda: self._delegate.get_workflows(repository)))

    def get_branch_protection(self, repository: Repository, branch: str) -> BranchProtection | None:
        key = ("protection", repository.full_name, branch)
        return self._cached(key, lambda: self._delegate.get_branch_protection(repository, branch))

    def get_latest_workflow_run(self, repository: Repository, workflow: Workflow) -> WorkflowRun | None:
        key = ("latest_run", repository.full_name, workflow.path or workflow.name)
        return self._cached(key, lambda: self._delegate.get_latest_workflow_run(repository, workflow))

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()

    def _cached(self, key: tuple[Any, ...], load: Callable[[], Any]) -> Any:
        with self._lock:
            if key in self._cache:
                return self._cache[key]
        value = load()
        with self._lock:
            self._cache.setdefault(key, value)
            return self._cache[key]
