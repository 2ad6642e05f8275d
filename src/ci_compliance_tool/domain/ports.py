from __future__ import annotations
"""Hexagonal architecture port interfaces.

The compliance core depends only on these abstractions. Adapters provide
concrete implementations (GitHub REST API, in-memory fixtures, caching
decorators) without the evaluation pipeline knowing which one is in use.
"""

from abc import ABC, abstractmethod
from typing import Sequence

from .entities import BranchProtection, Repository, RepoFilter, Workflow, WorkflowRun


class SourceCollectorPort(ABC):
    """Read-only repository data source.

    Retry, backoff and rate-limit handling belong to implementations. Every
    method raises `CollectorError` for failures that concern one repository so
    the caller can isolate them.
    """

    @abstractmethod
    def list_repositories(self, orgs: Sequence[str], repo_filter: RepoFilter) -> list[Repository]:
        """List repositories of the given organizations that pass `repo_filter`."""
        raise NotImplementedError

    @abstractmethod
    def get_workflows(self, repository: Repository) -> list[Workflow]:
        """Return CI workflows defined in the repository, in discovery order."""
        raise NotImplementedError

    @abstractmethod
    def get_branch_protection(self, repository: Repository, branch: str) -> BranchProtection | None:
        """Return protection settings for `branch`, or `None` when unknown."""
        raise NotImplementedError

    @abstractmethod
    def get_latest_workflow_run(self, repository: Repository, workflow: Workflow) -> WorkflowRun | None:
        """Return the most recent run of `workflow`, or `None` if it never ran."""
        raise NotImplementedError
