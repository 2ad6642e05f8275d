from __future__ import annotations
"""Parse GitHub Actions workflow YAML into `Workflow` entities."""

from typing import Any

import yaml

from ci_compliance_tool.domain.entities import (
    MatrixConfig,
    ReusableWorkflowRef,
    Workflow,
    WorkflowJob,
    WorkflowStep,
    dedupe,
)
from ci_compliance_tool.domain.errors import WorkflowParseError
from ci_compliance_tool.yaml_utils import load_yaml


_WORKFLOWS_DIR = ".github/workflows/"


def parse_workflow(path: str, content: str, *, name: str | None = None, workflow_id: int = 0) -> Workflow:
    """Parse workflow `content` found at `path`.

    Args:
        path: Repository-relative workflow path (used for messages).
        content: Raw YAML text.
        name: Name reported by the API; falls back to the YAML `name` key,
            then to `path`.
        workflow_id: API identifier, when known.

    Raises:
        WorkflowParseError: content is not valid YAML or not a mapping.
    """
    try:
        data = load_yaml(content)
    except yaml.YAMLError as error:
        raise WorkflowParseError(f"parsing workflow {path}: {error}") from error

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise WorkflowParseError(f"parsing workflow {path}: top-level value must be a mapping")

    jobs: list[WorkflowJob] = []
    raw_jobs = data.get("jobs") or {}
    if not isinstance(raw_jobs, dict):
        raise WorkflowParseError(f"parsing workflow {path}: `jobs` must be a mapping")

    for job_id, raw_job in raw_jobs.items():
        if isinstance(raw_job, dict):
            jobs.append(_parse_job(str(job_id), raw_job))

    refs: list[ReusableWorkflowRef] = []
    for job in jobs:
        if job.reusable_workflow_ref is not None:
            refs.append(job.reusable_workflow_ref)
        for step in job.steps:
            if _WORKFLOWS_DIR in step.uses:
                refs.append(ReusableWorkflowRef.parse(step.uses))

    # PyYAML resolves the bare `on` key to boolean True.
    triggers = data.get("on", data.get(True))

    return Workflow(
        name=name or str(data.get("name") or path),
        path=path,
        content=content,
        id=workflow_id,
        triggers=_triggers(triggers),
        jobs=tuple(jobs),
        reusable_workflow_refs=tuple(refs),
    )


def _parse_job(job_id: str, raw: dict[str, Any]) -> WorkflowJob:
    uses = raw.get("uses")
    reusable_ref = ReusableWorkflowRef.parse(str(uses)) if isinstance(uses, str) and uses.strip() else None

    steps = tuple(
        WorkflowStep(
            name=str(step.get("name") or ""),
            uses=str(step.get("uses") or ""),
            run=str(step.get("run") or ""),
            with_args=_string_mapping(step.get("with")),
            env=_string_mapping(step.get("env")),
        )
        for step in raw.get("steps") or ()
        if isinstance(step, dict)
    )

    return WorkflowJob(
        id=job_id,
        name=str(raw.get("name") or job_id),
        runs_on=_runs_on(raw.get("runs-on")),
        steps=steps,
        needs=_string_list(raw.get("needs")),
        matrix=_matrix(raw.get("strategy")),
        reusable_workflow_ref=reusable_ref,
    )


def _matrix(strategy: Any) -> MatrixConfig | None:
    if not isinstance(strategy, dict):
        return None
    raw = strategy.get("matrix")
    if not isinstance(raw, dict):
        return None

    fail_fast = strategy.get("fail-fast", True)
    return MatrixConfig(
        os=_static_values(raw.get("os")),
        go_version=dedupe(_static_values(raw.get("go-version")) + _static_values(raw.get("go"))),
        python_version=_static_values(raw.get("python-version")),
        node_version=_static_values(raw.get("node-version")),
        include=tuple(_string_mapping(item) for item in raw.get("include") or () if isinstance(item, dict)),
        exclude=tuple(_string_mapping(item) for item in raw.get("exclude") or () if isinstance(item, dict)),
        fail_fast=fail_fast if isinstance(fail_fast, bool) else True,
    )


def _runs_on(value: Any) -> tuple[str, ...]:
    if isinstance(value, dict):
        value = value.get("labels")
    return _static_values(value)


def _static_values(value: Any) -> tuple[str, ...]:
    """Literal labels only; `${{ ... }}` expressions are resolved elsewhere (matrix)."""
    return tuple(item for item in _string_list(value) if not item.startswith("${{"))


def _string_list(value: Any) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, (list, tuple)):
        return tuple(str(item) for item in value if item is not None)
    return (str(value),)


def _string_mapping(value: Any) -> dict[str, str]:
    if not isinstance(value, dict):
        return {}
    return {str(key): str(item) for key, item in value.items()}


def _triggers(value: Any) -> tuple[str, ...]:
    if isinstance(value, dict):
        return tuple(str(key) for key in value)
    return _string_list(value)
