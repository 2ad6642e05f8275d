"""Shared fixtures for the compliance tool test suite."""

import pytest

from ci_compliance_tool.domain.entities import (
    BranchProtection,
    MatrixConfig,
    ReusableWorkflowRef,
    Repository,
    Workflow,
    WorkflowJob,
    WorkflowRun,
)
from ci_compliance_tool.policy.engine import PolicyEngine
from ci_compliance_tool.policy.loader import PolicyLoader
from ci_compliance_tool.policy.profiles import ProfileRegistry


@pytest.fixture
def go_repository():
    return Repository(owner="acme", name="api", languages=("Go",), topics=("service",))


@pytest.fixture
def go_workflow():
    return Workflow(
        name="CI",
        path=".github/workflows/ci.yml",
        id=11,
        jobs=(
            WorkflowJob(
                id="test",
                runs_on=("ubuntu-latest",),
                matrix=MatrixConfig(os=("ubuntu-latest", "macos-latest"), go_version=("1.24", "1.25")),
            ),
        ),
    )


@pytest.fixture
def reusable_workflow():
    ref = ReusableWorkflowRef.parse("acme/.github/.github/workflows/go.yml@v1")
    return Workflow(
        name="Shared",
        path=".github/workflows/shared.yml",
        jobs=(WorkflowJob(id="call", reusable_workflow_ref=ref),),
        reusable_workflow_refs=(ref,),
    )


@pytest.fixture
def protected_branch():
    return BranchProtection(
        branch="main",
        enabled=True,
        require_reviews=True,
        required_reviewers=1,
        require_status_checks=True,
        required_status_checks=("test", "lint"),
        enforce_admins=True,
    )


@pytest.fixture
def passing_run():
    return WorkflowRun(id=1, workflow_id=11, conclusion="success", status="completed")


@pytest.fixture
def builtin_engine():
    engine = PolicyEngine()
    PolicyLoader(engine).load_builtin_policies()
    return engine


@pytest.fixture
def profiles():
    registry = ProfileRegistry()
    registry.load_builtin_profiles()
    return registry
