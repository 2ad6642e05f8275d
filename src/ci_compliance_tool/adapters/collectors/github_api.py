from __future__ import annotations

import base64
import json
import logging
import re
import time
from typing import Any, Callable, Mapping, Sequence
from urllib.error import HTTPError, URLError
from urllib.parse import quote, urlencode
from urllib.request import Request, urlopen

from ci_compliance_tool.adapters.collectors.workflow_parser import parse_workflow
from ci_compliance_tool.domain.entities import (
    BranchProtection,
    Repository,
    RepoFilter,
    Workflow,
    WorkflowRun,
    parse_timestamp,
)
from ci_compliance_tool.domain.errors import CollectorError, WorkflowParseError
from ci_compliance_tool.domain.ports import SourceCollectorPort


LOGGER = logging.getLogger(__name__)

RETRYABLE_SERVER_STATUSES = frozenset({500, 502, 503, 504})
RATE_LIMIT_STATUSES = frozenset({403, 429})

_NEXT_LINK_PATTERN = re.compile(r'<([^>]+)>;\s*rel="next"')

OnRetry = Callable[[int, str, "int | None", float], None]


def should_retry(status: int | None, headers: Mapping[str, str] | None) -> bool:
    """Classify a failed request as retryable.

    `status is None` means the request failed before a response (connection
    error, timeout). 403/429 are retried only when they carry rate-limit
    headers; 403 without them is a genuine permission error.
    """
    if status is None:
        return True
    headers = headers or {}
    if status in RATE_LIMIT_STATUSES:
        if headers.get("X-RateLimit-Remaining") == "0":
            return True
        if headers.get("Retry-After"):
            return True
        if headers.get("X-RateLimit-Limit"):
            return True
    return status in RETRYABLE_SERVER_STATUSES


def compute_backoff(
    attempt: int,
    headers: Mapping[str, str] | None,
    *,
    initial_backoff: float,
    max_backoff: float,
) -> float:
    """Exponential backoff for the 1-based `attempt`, capped; `Retry-After` wins when present."""
    retry_after = (headers or {}).get("Retry-After")
    if retry_after:
        try:
            return min(max(float(retry_after), 0.0), max_backoff)
        except ValueError:
            pass
    return min(initial_backoff * (2 ** (attempt - 1)), max_backoff)


def log_retry(attempt: int, url: str, status: int | None, backoff: float) -> None:
    LOGGER.info(
        "github request retry scheduled",
        extra={
            "event": "collector.retry",
            "attempt": attempt,
            "url": url,
            "status": status,
            "backoff_seconds": backoff,
        },
    )


class GitHubCollectorAdapter(SourceCollectorPort):
    def __init__(
        self,
        *,
        api_base_url: str = "https://api.github.com",
        token: str | None = None,
        timeout_seconds: float = 30.0,
        max_retries: int = 5,
        initial_backoff_seconds: float = 1.0,
        max_backoff_seconds: float = 60.0,
        fetch_languages: bool = False,
        on_retry: OnRetry | None = log_retry,
        urlopen_fn: Callable[..., Any] = urlopen,
        sleep_fn: Callable[[float], None] = time.sleep,
    ) -> None:
        self._api_base_url = api_base_url.rstrip("/")
        self._token = token
        self._timeout_seconds = timeout_seconds
        self._max_retries = max(0, max_retries)
        self._initial_backoff_seconds = initial_backoff_seconds
        self._max_backoff_seconds = max_backoff_seconds
        self._fetch_languages = fetch_languages
        self._on_retry = on_retry
        self._urlopen_fn = urlopen_fn
        self._sleep_fn = sleep_fn

    def list_repositories(self, orgs: Sequence[str], repo_filter: RepoFilter) -> list[Repository]:
        repositories: list[Repository] = []
        for org in orgs:
            try:
                items = self._get_paginated(f"/orgs/{quote(org, safe='')}/repos", {"per_page": 100, "type": "all"})
            except CollectorError as error:
                raise CollectorError(f"listing repos for org {org}: {error}", status=error.status) from error

            for item in items:
                if not isinstance(item, dict):
                    continue
                repository = self._map_repository(item)
                if repository is None:
                    continue
                if self._fetch_languages:
                    repository.languages = self._get_languages(repository) or repository.languages
                if repository.matches(repo_filter):
                    repositories.append(repository)
        return repositories

    def get_workflows(self, repository: Repository) -> list[Workflow]:
        try:
            payload, _ = self._request_json(
                self._url(f"{self._repo_path(repository)}/actions/workflows", {"per_page": 100})
            )
        except CollectorError as error:
            raise CollectorError(f"listing workflows: {error}", status=error.status) from error

        items = payload.get("workflows", []) if isinstance(payload, dict) else []
        workflows: list[Workflow] = []
        for item in items:
            if not isinstance(item, dict):
                continue
            path = str(item.get("path") or "")
            name = str(item.get("name") or path)
            workflow_id = int(item.get("id") or 0)
            state = str(item.get("state") or "")

            workflow = Workflow(name=name, path=path, id=workflow_id, state=state)
            if path:
                workflow = self._load_workflow_definition(repository, workflow)
            workflows.append(workflow)
        return workflows

    def get_branch_protection(self, repository: Repository, branch: str) -> BranchProtection | None:
        url = self._url(f"{self._repo_path(repository)}/branches/{quote(branch, safe='')}/protection")
        try:
            payload, _ = self._request_json(url)
        except CollectorError as error:
            if error.status == 404:
                return BranchProtection(branch=branch, enabled=False)
            raise CollectorError(f"getting branch protection: {error}", status=error.status) from error

        if not isinstance(payload, dict):
            raise CollectorError("getting branch protection: unexpected payload")

        protection = BranchProtection(branch=branch, enabled=True)
        reviews = payload.get("required_pull_request_reviews")
        if isinstance(reviews, dict):
            protection.require_reviews = True
            protection.required_reviewers = int(reviews.get("required_approving_review_count") or 0)

        checks = payload.get("required_status_checks")
        if isinstance(checks, dict):
            protection.require_status_checks = True
            protection.required_status_checks = tuple(str(item) for item in checks.get("contexts") or ())

        protection.enforce_admins = _enabled(payload.get("enforce_admins"))
        protection.require_signed_commits = _enabled(payload.get("required_signatures"))
        protection.allow_force_pushes = _enabled(payload.get("allow_force_pushes"))
        protection.allow_deletions = _enabled(payload.get("allow_deletions"))
        return protection

    def get_latest_workflow_run(self, repository: Repository, workflow: Workflow) -> WorkflowRun | None:
        if not workflow.id:
            return None
        url = self._url(f"{self._repo_path(repository)}/actions/workflows/{workflow.id}/runs", {"per_page": 1})
        try:
            payload, _ = self._request_json(url)
        except CollectorError as error:
            raise CollectorError(f"listing workflow runs: {error}", status=error.status) from error

        runs = payload.get("workflow_runs") if isinstance(payload, dict) else None
        if not isinstance(runs, list) or not runs or not isinstance(runs[0], dict):
            return None

        run = runs[0]
        return WorkflowRun(
            id=int(run.get("id") or 0),
            workflow_id=int(run.get("workflow_id") or workflow.id),
            name=str(run.get("name") or ""),
            status=str(run.get("status") or ""),
            conclusion=str(run.get("conclusion") or ""),
            branch=str(run.get("head_branch") or ""),
            head_sha=str(run.get("head_sha") or ""),
            html_url=str(run.get("html_url") or ""),
            created_at=parse_timestamp(run.get("created_at")),
            updated_at=parse_timestamp(run.get("updated_at")),
        )

    def get_file_content(self, repository: Repository, path: str) -> str:
        url = self._url(f"{self._repo_path(repository)}/contents/{quote(path)}")
        try:
            payload, _ = self._request_json(url)
        except CollectorError as error:
            raise CollectorError(f"getting file content {path}: {error}", status=error.status) from error

        content = payload.get("content") if isinstance(payload, dict) else None
        if not isinstance(content, str):
            raise CollectorError(f"getting file content {path}: file content is missing")
        try:
            return base64.b64decode(content.replace("\n", "")).decode("utf-8")
        except (ValueError, UnicodeDecodeError) as error:
            raise CollectorError(f"decoding file content {path}: {error}") from error

    def _load_workflow_definition(self, repository: Repository, workflow: Workflow) -> Workflow:
        try:
            content = self.get_file_content(repository, workflow.path)
        except CollectorError as error:
            LOGGER.warning(
                "workflow content unavailable",
                extra={
                    "event": "collector.workflow.content_unavailable",
                    "repo_full_name": repository.full_name,
                    "path": workflow.path,
                    "error": str(error),
                },
            )
            workflow.load_error = f"content unavailable: {error}"
            return workflow

        try:
            parsed = parse_workflow(workflow.path, content, name=workflow.name, workflow_id=workflow.id)
        except WorkflowParseError as error:
            LOGGER.warning(
                "workflow content could not be parsed",
                extra={
                    "event": "collector.workflow.parse_failed",
                    "repo_full_name": repository.full_name,
                    "path": workflow.path,
                    "error": str(error),
                },
            )
            workflow.content = content
            workflow.load_error = f"content could not be parsed: {error}"
            return workflow

        parsed.state = workflow.state
        return parsed

    def _get_languages(self, repository: Repository) -> tuple[str, ...]:
        try:
            payload, _ = self._request_json(self._url(f"{self._repo_path(repository)}/languages"))
        except CollectorError as error:
            LOGGER.debug(
                "repository languages unavailable",
                extra={"event": "collector.languages.unavailable", "repo_full_name": repository.full_name, "error": str(error)},
            )
            return ()
        if not isinstance(payload, dict):
            return ()
        # Largest byte count first.
        return tuple(name for name, _ in sorted(payload.items(), key=lambda item: -int(item[1] or 0)))

    def _get_paginated(self, path: str, query: Mapping[str, Any]) -> list[Any]:
        next_url: str | None = self._url(path, query)
        items: list[Any] = []
        while next_url:
            payload, headers = self._request_json(next_url)
            if not isinstance(payload, list):
                raise CollectorError(f"Unexpected GitHub API payload for URL: {next_url}: expected a list")
            items.extend(payload)
            next_url = _next_link(headers.get("Link"))
        return items

    def _request_json(self, url: str) -> tuple[Any, Mapping[str, str]]:
        attempt = 0
        while True:
            request = Request(url, headers=self._build_headers())
            try:
                with self._urlopen_fn(request, timeout=self._timeout_seconds) as response:
                    content = response.read()
                    headers = response.headers or {}
                break
            except HTTPError as error:
                status: int | None = error.code
                retry_headers = error.headers or {}
                failure = f"GitHub API request failed with HTTP {error.code} for URL: {url}"
                cause: Exception = error
            except URLError as error:
                status = None
                retry_headers = {}
                failure = f"GitHub API request failed for URL: {url}: {error.reason}"
                cause = error
            except OSError as error:
                # Socket timeouts and connection resets raised outside URLError.
                status = None
                retry_headers = {}
                failure = f"GitHub API request failed for URL: {url}: {error}"
                cause = error

            if attempt >= self._max_retries or not should_retry(status, retry_headers):
                raise CollectorError(failure, status=status) from cause

            attempt += 1
            backoff = compute_backoff(
                attempt,
                retry_headers,
                initial_backoff=self._initial_backoff_seconds,
                max_backoff=self._max_backoff_seconds,
            )
            if self._on_retry is not None:
                self._on_retry(attempt, url, status, backoff)
            self._sleep_fn(backoff)

        try:
            parsed = json.loads(content)
        except json.JSONDecodeError as error:
            raise CollectorError(f"Invalid JSON received from GitHub API for URL: {url}") from error
        return parsed, headers

    def _build_headers(self) -> dict[str, str]:
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    def _url(self, path: str, query: Mapping[str, Any] | None = None) -> str:
        url = f"{self._api_base_url}{path}"
        if query:
            url = f"{url}?{urlencode(query)}"
        return url

    @staticmethod
    def _repo_path(repository: Repository) -> str:
        return f"/repos/{quote(repository.owner, safe='')}/{quote(repository.name, safe='')}"

    @staticmethod
    def _map_repository(payload: dict[str, Any]) -> Repository | None:
        name = payload.get("name")
        owner = payload.get("owner")
        login = owner.get("login") if isinstance(owner, dict) else None
        if not isinstance(name, str) or not name.strip() or not isinstance(login, str) or not login.strip():
            return None

        language = payload.get("language")
        languages = (language,) if isinstance(language, str) and language else ()
        return Repository(
            owner=login.strip(),
            name=name.strip(),
            full_name=str(payload.get("full_name") or ""),
            default_branch=str(payload.get("default_branch") or "main"),
            languages=languages,
            primary_language=languages[0] if languages else "",
            topics=tuple(str(topic) for topic in payload.get("topics") or ()),
            visibility=str(payload.get("visibility") or ("private" if payload.get("private") else "public")),
            archived=bool(payload.get("archived", False)),
            fork=bool(payload.get("fork", False)),
            html_url=str(payload.get("html_url") or ""),
            clone_url=str(payload.get("clone_url") or ""),
            created_at=parse_timestamp(payload.get("created_at")),
            updated_at=parse_timestamp(payload.get("updated_at")),
            pushed_at=parse_timestamp(payload.get("pushed_at")),
        )


def _enabled(value: Any) -> bool:
    return isinstance(value, dict) and bool(value.get("enabled", False))


def _next_link(header: str | None) -> str | None:
    if not header:
        return None
    match = _NEXT_LINK_PATTERN.search(header)
    return match.group(1) if match else None
