import pytest

from ci_compliance_tool.domain.context import CISection, GoSection, PolicyContext
from ci_compliance_tool.domain.errors import ProfileNotFoundError
from ci_compliance_tool.domain.results import Severity
from ci_compliance_tool.policy.profiles import (
    ProfileRegistry,
    default_profile,
    legacy_profile,
    validate_repo_against_profile,
)


def make_context(versions=(), os_matrix=()):
    return PolicyContext(ci=CISection(os_matrix=tuple(os_matrix)), go=GoSection(versions=tuple(versions)))


def test_builtin_profiles_are_registered(profiles):
    assert profiles.names() == ["default", "legacy", "modern"]
    assert profiles.get("modern").go_versions == ("1.25",)
    assert profiles.get("legacy").os == ("ubuntu-latest",)


def test_get_unknown_profile_raises(profiles):
    with pytest.raises(ProfileNotFoundError) as raised:
        profiles.get("nope")

    assert str(raised.value) == "profile not found: nope"


def test_get_or_default_falls_back():
    empty = ProfileRegistry()
    assert empty.get_or_default("nope").name == "default"

    registry = ProfileRegistry()
    registry.add(legacy_profile())
    assert registry.get_or_default("legacy").name == "legacy"
    assert registry.get_or_default("nope") == default_profile()


def test_frozen_registry_rejects_new_profiles(profiles):
    profiles.freeze()

    with pytest.raises(RuntimeError):
        profiles.add(default_profile())


def test_load_from_directory_reads_yaml_profiles(tmp_path):
    (tmp_path / "team.yaml").write_text(
        """
name: team
description: Team services
go:
  versions: ["1.23", "1.24"]
os: [ubuntu-latest]
checks:
  required: [test, build]
lint:
  enabled: true
  tool: golangci-lint
""",
        encoding="utf-8",
    )
    (tmp_path / "unnamed.yml").write_text("os: [macos-latest]\n", encoding="utf-8")
    (tmp_path / "notes.txt").write_text("ignored", encoding="utf-8")
    registry = ProfileRegistry()

    loaded = registry.load_from_directory(tmp_path)

    assert [profile.name for profile in loaded] == ["team", "unnamed"]
    team = registry.get("team")
    assert team.go_versions == ("1.23", "1.24")
    assert team.required_checks == ("test", "build")
    assert team.lint.tool == "golangci-lint"
    assert registry.get("unnamed").os == ("macos-latest",)


def test_load_from_file_rejects_non_mapping(tmp_path):
    path = tmp_path / "list.yaml"
    path.write_text("- a\n- b\n", encoding="utf-8")

    with pytest.raises(ValueError):
        ProfileRegistry().load_from_file(path)


def test_load_from_file_rejects_invalid_yaml(tmp_path):
    path = tmp_path / "bad.yaml"
    path.write_text("name: [unclosed\n", encoding="utf-8")

    with pytest.raises(ValueError):
        ProfileRegistry().load_from_file(path)


def test_validator_reports_disallowed_go_version():
    violations = validate_repo_against_profile(make_context(versions=("1.21", "1.24")), default_profile())

    assert len(violations) == 1
    violation = violations[0]
    assert violation.policy == "profile/go-version"
    assert violation.rule == "allowed-versions"
    assert violation.severity is Severity.MEDIUM
    assert "1.21" in violation.message
    assert violation.remediation == "Update go-version to one of: [1.24, 1.25]"


def test_validator_reports_extra_and_missing_os_in_order():
    context = make_context(os_matrix=("ubuntu-latest", "self-hosted"))

    violations = validate_repo_against_profile(context, default_profile())

    assert [(v.rule, v.severity) for v in violations] == [
        ("allowed-os", Severity.LOW),
        ("required-os", Severity.INFO),
        ("required-os", Severity.INFO),
    ]
    assert "self-hosted" in violations[0].message
    assert "macos-latest" in violations[1].message
    assert "windows-latest" in violations[2].message


def test_validator_skips_checks_without_context_data():
    assert validate_repo_against_profile(make_context(), default_profile()) == []


def test_validator_is_deterministic():
    context = make_context(versions=("1.20", "1.21"), os_matrix=("windows-2019",))

    first = validate_repo_against_profile(context, legacy_profile())
    second = validate_repo_against_profile(context, legacy_profile())

    assert first == second


def test_single_outdated_go_version_gives_one_medium_violation():
    violations = validate_repo_against_profile(make_context(versions=("1.20",)), default_profile())

    assert [(v.rule, v.severity) for v in violations] == [("allowed-versions", Severity.MEDIUM)]


def test_missing_required_os_gives_only_info_violation(profiles):
    violations = validate_repo_against_profile(make_context(os_matrix=("ubuntu-latest",)), profiles.get("modern"))

    assert [(v.rule, v.severity) for v in violations] == [("required-os", Severity.INFO)]


def test_unquoted_go_versions_keep_trailing_zero(tmp_path):
    path = tmp_path / "old.yaml"
    path.write_text("name: old\ngo:\n  versions: [1.20, 1.21]\nos: [ubuntu-latest]\n", encoding="utf-8")

    profile = ProfileRegistry().load_from_file(path)

    assert profile.go_versions == ("1.20", "1.21")
    assert validate_repo_against_profile(make_context(versions=("1.20",)), profile) == []
