import pytest

from ci_compliance_tool.adapters.collectors.in_memory import InMemoryCollectorAdapter
from ci_compliance_tool.application.use_cases.compliance_scanner import ComplianceScanner
from ci_compliance_tool.domain.entities import RepoFilter, Repository, Workflow
from ci_compliance_tool.domain.errors import CollectorError, ScanError
from ci_compliance_tool.domain.results import ScanConfig
from ci_compliance_tool.policy.engine import PolicyEngine


ALLOW_ALL = "permit(principal, action, resource);"


class ListingFailureCollector(InMemoryCollectorAdapter):
    def list_repositories(self, orgs, repo_filter):
        raise CollectorError("listing repos for org acme: HTTP 500")


class BranchProtectionFailureCollector(InMemoryCollectorAdapter):
    def get_branch_protection(self, repository, branch):
        raise CollectorError("HTTP 403")


class BrokenRunCollector(InMemoryCollectorAdapter):
    def get_latest_workflow_run(self, repository, workflow):
        raise CollectorError("HTTP 502")


def allow_all_engine():
    engine = PolicyEngine()
    engine.add_policy("allow-all", ALLOW_ALL)
    return engine


def scan_config(**kwargs):
    return ScanConfig(orgs=("acme",), profile=kwargs.pop("profile", "default"), **kwargs)


def test_partial_failure_is_isolated(go_repository, go_workflow, profiles):
    broken = Repository(owner="acme", name="broken", languages=("Go",))
    collector = InMemoryCollectorAdapter(
        [go_repository, broken],
        workflows={"acme/api": [go_workflow]},
        failures={"acme/broken": "HTTP 500"},
    )
    scanner = ComplianceScanner(collector=collector, engine=allow_all_engine(), profiles=profiles)

    result = scanner.execute(scan_config())

    assert [repo.repo.full_name for repo in result.repos] == ["acme/api", "acme/broken"]
    healthy, failed = result.repos
    assert failed.error == "fetching workflows for acme/broken: HTTP 500"
    assert failed.compliant is False
    assert healthy.error == ""
    assert result.summary.errors == 1
    assert result.summary.total == 2


def test_profile_violations_are_reported(go_repository, go_workflow, profiles):
    collector = InMemoryCollectorAdapter([go_repository], workflows={"acme/api": [go_workflow]})
    scanner = ComplianceScanner(collector=collector, engine=allow_all_engine(), profiles=profiles)

    result = scanner.execute(scan_config(profile="modern"))

    repo = result.repos[0]
    rules = [(violation.policy, violation.rule) for violation in repo.violations]
    assert rules == [("profile/go-version", "allowed-versions")]
    assert repo.compliant is False
    assert result.summary.non_compliant == 1


def test_fully_compliant_repository(go_repository, go_workflow, profiles):
    collector = InMemoryCollectorAdapter([go_repository], workflows={"acme/api": [go_workflow]})
    scanner = ComplianceScanner(
        collector=collector,
        engine=allow_all_engine(),
        profiles=profiles,
        validate_profiles=False,
    )

    result = scanner.execute(scan_config())

    assert result.repos[0].compliant is True
    assert result.summary.compliance_rate == pytest.approx(100.0)
    assert result.violation_count() == 0


def test_policy_denials_become_violations(go_repository, profiles):
    collector = InMemoryCollectorAdapter([go_repository])
    scanner = ComplianceScanner(collector=collector, engine=PolicyEngine(), profiles=profiles)

    result = scanner.execute(scan_config())

    violations = result.repos[0].violations
    assert [violation.policy for violation in violations] == [
        "policy/build",
        "policy/test",
        "policy/lint",
        "policy/merge",
    ]
    assert violations[-1].severity.value == "high"


def test_archived_repositories_are_skipped(profiles):
    archived = Repository(owner="acme", name="old", archived=True)
    collector = InMemoryCollectorAdapter([archived], failures={"acme/old": "must not be called"})
    scanner = ComplianceScanner(collector=collector, engine=allow_all_engine(), profiles=profiles)

    result = scanner.execute(scan_config(filter=RepoFilter(include_archived=True)))

    repo = result.repos[0]
    assert repo.skipped is True
    assert repo.skip_reason == "repository is archived"
    assert repo.error == ""
    assert result.summary.skipped == 1
    assert result.summary.compliant == 0


def test_listing_failure_is_a_scan_error(profiles):
    scanner = ComplianceScanner(
        collector=ListingFailureCollector(),
        engine=allow_all_engine(),
        profiles=profiles,
    )

    with pytest.raises(ScanError):
        scanner.execute(scan_config())


def test_branch_protection_failure_is_a_warning(go_repository, profiles):
    collector = BranchProtectionFailureCollector([go_repository])
    scanner = ComplianceScanner(collector=collector, engine=allow_all_engine(), profiles=profiles)

    repo = scanner.execute(scan_config()).repos[0]

    assert repo.error == ""
    assert [warning.code for warning in repo.warnings] == ["branch-protection-unavailable"]


def test_unreadable_workflow_definition_is_a_warning(go_repository, profiles):
    unreadable = Workflow(
        name="CI",
        path=".github/workflows/ci.yml",
        id=3,
        load_error="content unavailable: HTTP 404",
    )
    collector = InMemoryCollectorAdapter([go_repository], workflows={"acme/api": [unreadable]})
    scanner = ComplianceScanner(collector=collector, engine=allow_all_engine(), profiles=profiles)

    repo = scanner.execute(scan_config()).repos[0]

    assert repo.error == ""
    assert [warning.code for warning in repo.warnings] == ["workflow-content-unavailable"]
    assert repo.warnings[0].file == ".github/workflows/ci.yml"
    assert "HTTP 404" in repo.warnings[0].message


def test_latest_run_failure_is_a_warning(go_repository, go_workflow, profiles):
    collector = BrokenRunCollector([go_repository], workflows={"acme/api": [go_workflow]})
    scanner = ComplianceScanner(collector=collector, engine=allow_all_engine(), profiles=profiles)

    repo = scanner.execute(scan_config()).repos[0]

    assert repo.error == ""
    assert [warning.code for warning in repo.warnings] == ["workflow-run-unavailable"]
    assert repo.warnings[0].file == ".github/workflows/ci.yml"


def test_policy_evaluation_errors_become_warnings(go_repository, profiles):
    engine = allow_all_engine()
    engine.add_policy("typo", "forbid(principal, action, resource) when { context.hasWorkflw };")
    scanner = ComplianceScanner(
        collector=InMemoryCollectorAdapter([go_repository]),
        engine=engine,
        profiles=profiles,
        validate_profiles=False,
    )

    repo = scanner.execute(scan_config()).repos[0]

    assert repo.violations == []
    assert len(repo.warnings) == 4
    assert {warning.code for warning in repo.warnings} == {"policy-evaluation-error"}


def test_fail_fast_stops_after_first_error(profiles):
    repositories = [Repository(owner="acme", name=name) for name in ("a", "b", "c")]
    collector = InMemoryCollectorAdapter(repositories, failures={"acme/a": "HTTP 500"})
    scanner = ComplianceScanner(collector=collector, engine=allow_all_engine(), profiles=profiles)

    result = scanner.execute(scan_config(), fail_fast=True)

    assert [repo.repo.name for repo in result.repos] == ["a"]


def test_thread_pool_keeps_listing_order(profiles):
    repositories = [Repository(owner="acme", name=f"repo-{index}") for index in range(12)]
    collector = InMemoryCollectorAdapter(repositories, failures={"acme/repo-3": "HTTP 500"})
    scanner = ComplianceScanner(
        collector=collector,
        engine=allow_all_engine(),
        profiles=profiles,
        max_workers=4,
    )

    result = scanner.execute(scan_config())

    assert [repo.repo.name for repo in result.repos] == [f"repo-{index}" for index in range(12)]
    assert result.summary.errors == 1


def test_execute_freezes_stores(go_repository, profiles):
    engine = allow_all_engine()
    scanner = ComplianceScanner(collector=InMemoryCollectorAdapter([go_repository]), engine=engine, profiles=profiles)

    scanner.execute(scan_config())

    assert engine.frozen is True
    with pytest.raises(RuntimeError):
        engine.add_policy("late", ALLOW_ALL)
