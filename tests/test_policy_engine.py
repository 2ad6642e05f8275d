import pytest

from ci_compliance_tool.domain.context import PolicyContext
from ci_compliance_tool.domain.errors import PolicyParseError
from ci_compliance_tool.domain.results import Severity
from ci_compliance_tool.policy.context_builder import ContextBuilder
from ci_compliance_tool.policy.engine import (
    ATTRIBUTE_SCHEMA,
    STANDARD_ACTIONS,
    EvaluationResult,
    PolicyEngine,
    build_context_record,
    describe_schema,
)


PERMIT_ALL = "permit(principal, action, resource);"
PERMIT_MERGE_WITH_WORKFLOW = """
permit(principal, action == Action::"merge", resource)
when { context.hasWorkflow == true };
"""
FORBID_UNPROTECTED_MERGE = """
forbid(principal, action == Action::"merge", resource)
unless { context.branchProtectionEnabled };
"""


@pytest.fixture
def context(go_repository, go_workflow):
    return ContextBuilder().build(go_repository, [go_workflow])


def test_empty_policy_set_denies_every_action(context):
    engine = PolicyEngine()

    for action in STANDARD_ACTIONS:
        result = engine.evaluate(context, action)
        assert result.allowed is False
        assert result.reasons == []
        assert result.errors == []


def test_satisfied_permit_allows(context):
    engine = PolicyEngine()
    engine.add_policy("merge-needs-workflow", PERMIT_MERGE_WITH_WORKFLOW)

    result = engine.evaluate(context, "merge")

    assert result.allowed is True
    assert result.reasons == ["merge-needs-workflow"]
    assert result.to_violation() is None


def test_permit_for_other_action_does_not_apply(context):
    engine = PolicyEngine()
    engine.add_policy("merge-needs-workflow", PERMIT_MERGE_WITH_WORKFLOW)

    assert engine.evaluate(context, "build").allowed is False


def test_forbid_overrides_permit(context):
    engine = PolicyEngine()
    engine.add_policy("allow-all", PERMIT_ALL)
    engine.add_policy("no-unprotected-merge", FORBID_UNPROTECTED_MERGE)

    result = engine.evaluate(context, "merge")

    assert result.allowed is False
    assert result.reasons == ["no-unprotected-merge"]
    assert engine.evaluate(context, "build").allowed is True


def test_forbid_alone_still_denies_by_default_when_not_satisfied(go_repository, protected_branch):
    engine = PolicyEngine()
    engine.add_policy("no-unprotected-merge", FORBID_UNPROTECTED_MERGE)
    context = ContextBuilder().build(go_repository, [], protected_branch)

    result = engine.evaluate(context, "merge")

    assert result.allowed is False
    assert result.reasons == []


def test_evaluation_error_is_recorded_and_policy_skipped(context):
    engine = PolicyEngine()
    engine.add_policy("broken", "forbid(principal, action, resource) when { context.doesNotExist };")
    engine.add_policy("allow-all", PERMIT_ALL)

    result = engine.evaluate(context, "test")

    assert result.allowed is True
    assert len(result.errors) == 1
    assert result.errors[0].startswith("policy broken:")


def test_to_violation_default_severities():
    merge = EvaluationResult(allowed=False, action="merge", repo_name="acme/api")
    deploy = EvaluationResult(allowed=False, action="deploy", repo_name="acme/api")
    build = EvaluationResult(allowed=False, action="build", repo_name="acme/api", reasons=["a", "b"])

    assert merge.to_violation().severity is Severity.HIGH
    assert deploy.to_violation().severity is Severity.HIGH
    violation = build.to_violation()
    assert violation.severity is Severity.MEDIUM
    assert violation.policy == "policy/build"
    assert violation.rule == "build"
    assert violation.message == "Policy denied build action (policies: a, b)"
    assert merge.to_violation().message == "Policy denied merge action"


def test_severity_annotation_overrides_default(context):
    engine = PolicyEngine()
    engine.add_policy("low", '@severity("low") forbid(principal, action == Action::"merge", resource);')
    engine.add_policy("critical", '@severity("critical") forbid(principal, action == Action::"merge", resource);')

    violation = engine.evaluate(context, "merge").to_violation()

    assert violation.severity is Severity.CRITICAL


def test_unknown_severity_annotation_is_rejected():
    engine = PolicyEngine()

    with pytest.raises(PolicyParseError):
        engine.add_policy("p", '@severity("urgent") forbid(principal, action, resource);')

    assert len(engine.policy_set) == 0


def test_invalid_policy_leaves_store_unchanged():
    engine = PolicyEngine()
    engine.add_policy("ok", PERMIT_ALL)

    with pytest.raises(PolicyParseError):
        engine.add_policy("bad", "permit(")

    assert engine.policy_set.ids() == ("ok",)


def test_re_adding_policy_id_replaces_it(context):
    engine = PolicyEngine()
    engine.add_policy("p", PERMIT_ALL)
    engine.add_policy("p", 'forbid(principal, action, resource);')

    assert len(engine.policy_set) == 1
    assert engine.evaluate(context, "build").allowed is False


def test_remove_policy():
    engine = PolicyEngine()
    engine.add_policy("p", PERMIT_ALL)

    assert engine.remove_policy("p") is True
    assert engine.remove_policy("p") is False
    assert "p" not in engine.policy_set


def test_frozen_engine_rejects_mutation():
    engine = PolicyEngine()
    engine.add_policy("p", PERMIT_ALL)
    engine.freeze()

    assert engine.frozen is True
    with pytest.raises(RuntimeError):
        engine.add_policy("q", PERMIT_ALL)
    with pytest.raises(RuntimeError):
        engine.remove_policy("p")


def test_evaluate_all_covers_standard_actions_in_order(context, builtin_engine):
    results = builtin_engine.evaluate_all(context)

    assert [result.action for result in results] == ["build", "test", "lint", "merge"]


def test_builtin_policies_against_go_context(go_repository, go_workflow, passing_run, builtin_engine):
    context = ContextBuilder().build(go_repository, [go_workflow], latest_run=passing_run)

    decisions = {result.action: result for result in builtin_engine.evaluate_all(context)}

    assert decisions["build"].allowed is True
    assert decisions["merge"].allowed is True
    assert decisions["merge"].reasons == ["builtin/require-workflow", "builtin/require-tests"]
    # No built-in policy permits test or lint.
    assert decisions["test"].allowed is False
    assert decisions["lint"].allowed is False


def test_build_request_uses_repository_as_resource(context):
    request = PolicyEngine().build_request(context, "merge")

    assert request["principal"] == 'CISystem::"ci-compliance-tool"'
    assert request["action"] == 'Action::"merge"'
    assert request["resource"] == 'Repository::"acme/api"'
    assert request["context"]["osMatrix"] == ["macos-latest", "ubuntu-latest"]


def test_context_record_matches_schema(context):
    record = build_context_record(context)
    schema = describe_schema()

    assert set(record) == {spec.name for spec in ATTRIBUTE_SCHEMA}
    assert set(schema) == set(record)
    assert schema["goVersions"] == "Set"
    assert record["goVersions"] == ["1.24", "1.25"]
    assert record["vulnerabilityCount"] == 0
    assert record["hasWorkflow"] is True


def test_runtime_fault_in_one_policy_does_not_stop_siblings():
    engine = PolicyEngine()
    engine.add_policy("odd", "permit(principal, action, resource) when { context.repoName.contains(1) };")
    engine.add_policy("allow", PERMIT_ALL)

    results = engine.evaluate_all(PolicyContext())

    assert [result.allowed for result in results] == [True, True, True, True]
    for result in results:
        assert result.reasons == ["allow"]
        assert len(result.errors) == 1
        assert result.errors[0].startswith("policy odd:")


def test_bytes_policy_text_is_accepted(context):
    engine = PolicyEngine()
    engine.add_policy("from-file", PERMIT_MERGE_WITH_WORKFLOW.encode("utf-8"))

    assert engine.evaluate(context, "merge").allowed is True


def test_invalid_utf8_policy_text_raises_parse_error():
    engine = PolicyEngine()

    with pytest.raises(PolicyParseError) as raised:
        engine.add_policy("bad", b'permit(principal, action, resource) when { context.repoName == "\xff" };')

    assert raised.value.policy_id == "bad"
    assert "bad" in str(raised.value)
    assert len(engine.policy_set) == 0


def test_policy_text_must_hold_exactly_one_policy():
    engine = PolicyEngine()

    with pytest.raises(PolicyParseError):
        engine.add_policy("two", PERMIT_ALL + PERMIT_ALL)
    with pytest.raises(PolicyParseError):
        engine.add_policy("none", "// nothing here\n")

    assert len(engine.policy_set) == 0
