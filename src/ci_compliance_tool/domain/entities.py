from __future__ import annotations
"""Core domain entities shared by collectors, the policy layer and use cases.

These data models are intentionally framework-agnostic and can be reused across
different adapters (CLI, tests, future APIs).
"""

from dataclasses import dataclass, field
from datetime import datetime
from fnmatch import fnmatchcase
from typing import Any, Iterable, Mapping


@dataclass(slots=True)
class RepoFilter:
    """Selection criteria applied to listed repositories.

    Empty include lists match everything; exclude lists always apply.
    """

    include_languages: tuple[str, ...] = ()
    exclude_languages: tuple[str, ...] = ()
    include_topics: tuple[str, ...] = ()
    exclude_topics: tuple[str, ...] = ()
    include_archived: bool = False
    include_forks: bool = False
    visibility: tuple[str, ...] = ()
    name_pattern: str = ""

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "includeArchived": self.include_archived,
            "includeForks": self.include_forks,
        }
        optional = {
            "includeLanguages": list(self.include_languages),
            "excludeLanguages": list(self.exclude_languages),
            "includeTopics": list(self.include_topics),
            "excludeTopics": list(self.exclude_topics),
            "visibilityFilter": list(self.visibility),
            "namePattern": self.name_pattern,
        }
        payload.update({key: value for key, value in optional.items() if value})
        return payload

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> RepoFilter:
        return cls(
            include_languages=tuple(data.get("includeLanguages") or ()),
            exclude_languages=tuple(data.get("excludeLanguages") or ()),
            include_topics=tuple(data.get("includeTopics") or ()),
            exclude_topics=tuple(data.get("excludeTopics") or ()),
            include_archived=bool(data.get("includeArchived", False)),
            include_forks=bool(data.get("includeForks", False)),
            visibility=tuple(data.get("visibilityFilter") or ()),
            name_pattern=data.get("namePattern") or "",
        )


@dataclass(slots=True)
class Repository:
    """Repository metadata as reported by a source collector.

    Attributes:
        owner: Organization or user login owning the repository.
        name: Short repository name.
        full_name: `owner/name` identity used in reports and policy requests.
        default_branch: Branch whose protection settings are inspected.
        languages: Detected languages, primary language first when known.
    """

    owner: str
    name: str
    full_name: str = ""
    default_branch: str = "main"
    languages: tuple[str, ...] = ()
    primary_language: str = ""
    topics: tuple[str, ...] = ()
    visibility: str = "public"
    archived: bool = False
    fork: bool = False
    html_url: str = ""
    clone_url: str = ""
    created_at: datetime | None = None
    updated_at: datetime | None = None
    pushed_at: datetime | None = None

    def __post_init__(self) -> None:
        if not self.full_name:
            self.full_name = f"{self.owner}/{self.name}"

    def matches(self, repo_filter: RepoFilter) -> bool:
        """Return whether this repository passes every criterion of `repo_filter`."""
        if self.archived and not repo_filter.include_archived:
            return False
        if self.fork and not repo_filter.include_forks:
            return False
        if repo_filter.visibility and self.visibility not in repo_filter.visibility:
            return False
        if repo_filter.include_languages and not _has_any(self.languages, repo_filter.include_languages):
            return False
        if _has_any(self.languages, repo_filter.exclude_languages):
            return False
        if repo_filter.include_topics and not _has_any(self.topics, repo_filter.include_topics):
            return False
        if _has_any(self.topics, repo_filter.exclude_topics):
            return False
        if repo_filter.name_pattern and not (
            fnmatchcase(self.name, repo_filter.name_pattern) or fnmatchcase(self.full_name, repo_filter.name_pattern)
        ):
            return False
        return True

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "owner": self.owner,
            "name": self.name,
            "fullName": self.full_name,
            "defaultBranch": self.default_branch,
            "languages": list(self.languages),
            "primaryLanguage": self.primary_language,
            "topics": list(self.topics),
            "visibility": self.visibility,
            "archived": self.archived,
            "fork": self.fork,
            "htmlUrl": self.html_url,
            "cloneUrl": self.clone_url,
        }
        for key, value in (("createdAt", self.created_at), ("updatedAt", self.updated_at), ("pushedAt", self.pushed_at)):
            if value is not None:
                payload[key] = value.isoformat()
        return payload

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Repository:
        return cls(
            owner=data.get("owner", ""),
            name=data.get("name", ""),
            full_name=data.get("fullName", ""),
            default_branch=data.get("defaultBranch") or "main",
            languages=tuple(data.get("languages") or ()),
            primary_language=data.get("primaryLanguage", ""),
            topics=tuple(data.get("topics") or ()),
            visibility=data.get("visibility") or "public",
            archived=bool(data.get("archived", False)),
            fork=bool(data.get("fork", False)),
            html_url=data.get("htmlUrl", ""),
            clone_url=data.get("cloneUrl", ""),
            created_at=parse_timestamp(data.get("createdAt")),
            updated_at=parse_timestamp(data.get("updatedAt")),
            pushed_at=parse_timestamp(data.get("pushedAt")),
        )


@dataclass(slots=True)
class BranchProtection:
    """Branch protection settings for one branch."""

    branch: str
    enabled: bool = False
    require_reviews: bool = False
    required_reviewers: int = 0
    require_status_checks: bool = False
    required_status_checks: tuple[str, ...] = ()
    enforce_admins: bool = False
    require_signed_commits: bool = False
    allow_force_pushes: bool = False
    allow_deletions: bool = False


@dataclass(frozen=True, slots=True)
class ReusableWorkflowRef:
    """Pointer to a shared workflow hosted in another repository."""

    owner: str = ""
    repo: str = ""
    path: str = ""
    ref: str = ""
    full_ref: str = ""

    @classmethod
    def parse(cls, reference: str) -> ReusableWorkflowRef:
        """Parse `owner/repo/.github/workflows/file.yml@ref`.

        Missing components stay empty; the input is kept verbatim in `full_ref`.
        """
        location, separator, ref = reference.partition("@")
        parts = location.split("/", 2)
        return cls(
            owner=parts[0] if len(parts) >= 1 else "",
            repo=parts[1] if len(parts) >= 2 else "",
            path=parts[2] if len(parts) >= 3 else "",
            ref=ref if separator else "",
            full_ref=reference,
        )


@dataclass(slots=True)
class MatrixConfig:
    os: tuple[str, ...] = ()
    go_version: tuple[str, ...] = ()
    python_version: tuple[str, ...] = ()
    node_version: tuple[str, ...] = ()
    include: tuple[dict[str, str], ...] = ()
    exclude: tuple[dict[str, str], ...] = ()
    fail_fast: bool = True


@dataclass(slots=True)
class WorkflowStep:
    name: str = ""
    uses: str = ""
    run: str = ""
    with_args: dict[str, str] = field(default_factory=dict)
    env: dict[str, str] = field(default_factory=dict)


@dataclass(slots=True)
class WorkflowJob:
    """One job of a workflow; `runs_on` is normalized to a tuple of labels."""

    id: str
    name: str = ""
    runs_on: tuple[str, ...] = ()
    steps: tuple[WorkflowStep, ...] = ()
    needs: tuple[str, ...] = ()
    matrix: MatrixConfig | None = None
    reusable_workflow_ref: ReusableWorkflowRef | None = None

    @property
    def uses_reusable_workflow(self) -> bool:
        return self.reusable_workflow_ref is not None


@dataclass(slots=True)
class Workflow:
    """CI workflow definition discovered in a repository."""

    name: str
    path: str = ""
    content: str = ""
    id: int = 0
    triggers: tuple[str, ...] = ()
    jobs: tuple[WorkflowJob, ...] = ()
    reusable_workflow_refs: tuple[ReusableWorkflowRef, ...] = ()
    state: str = "active"
    # Set when the definition could not be fetched or parsed; jobs are then empty.
    load_error: str = ""

    @property
    def uses_reusable_workflow(self) -> bool:
        return bool(self.reusable_workflow_refs)


@dataclass(slots=True)
class WorkflowRun:
    id: int
    workflow_id: int
    name: str = ""
    status: str = ""
    conclusion: str = ""
    branch: str = ""
    head_sha: str = ""
    html_url: str = ""
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def passed(self) -> bool:
        return self.conclusion == "success"


@dataclass(frozen=True, slots=True)
class ProfileLint:
    enabled: bool = False
    tool: str = ""


@dataclass(frozen=True, slots=True)
class ProfileTest:
    coverage: bool = False
    race: bool = False


@dataclass(frozen=True, slots=True)
class Profile:
    """Named CI/CD configuration expectation.

    Attributes:
        name: Registry key.
        go_versions: Allowed Go versions; the first entry is the preferred one.
        os: Operating systems the CI matrix is expected to cover.
        required_checks: Status check names a repository should require.
    """

    name: str
    description: str = ""
    go_versions: tuple[str, ...] = ()
    os: tuple[str, ...] = ()
    required_checks: tuple[str, ...] = ()
    lint: ProfileLint = ProfileLint()
    test: ProfileTest = ProfileTest()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], *, default_name: str = "") -> Profile:
        """Build a profile from its declarative config shape.

        Expected keys: `name`, `description`, `go.versions`, `os`,
        `checks.required`, `lint.enabled`, `lint.tool`, `test.coverage`,
        `test.race`. Missing keys leave zero values.
        """
        go = data.get("go") or {}
        checks = data.get("checks") or {}
        lint = data.get("lint") or {}
        test = data.get("test") or {}
        return cls(
            name=str(data.get("name") or default_name),
            description=str(data.get("description") or ""),
            go_versions=_string_tuple(go.get("versions")),
            os=_string_tuple(data.get("os")),
            required_checks=_string_tuple(checks.get("required")),
            lint=ProfileLint(enabled=bool(lint.get("enabled", False)), tool=str(lint.get("tool") or "")),
            test=ProfileTest(coverage=bool(test.get("coverage", False)), race=bool(test.get("race", False))),
        )


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO-8601 timestamp (accepting a trailing `Z`); `None` when absent."""
    if not isinstance(value, str) or not value.strip():
        return None
    normalized = value.strip()
    if normalized.endswith("Z"):
        normalized = f"{normalized[:-1]}+00:00"
    return datetime.fromisoformat(normalized)


def dedupe(values: Iterable[str]) -> tuple[str, ...]:
    """Drop duplicates keeping first-seen order."""
    seen: set[str] = set()
    ordered: list[str] = []
    for value in values:
        if value not in seen:
            seen.add(value)
            ordered.append(value)
    return tuple(ordered)


def _string_tuple(value: Any) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, (str, int, float)):
        return (str(value),)
    return tuple(str(item) for item in value)


def _has_any(values: Iterable[str], candidates: Iterable[str]) -> bool:
    present = set(values)
    return any(candidate in present for candidate in candidates)
