import pytest

from ci_compliance_tool.domain.errors import PolicyParseError
from ci_compliance_tool.policy.engine import PolicyEngine
from ci_compliance_tool.policy.loader import BUILTIN_POLICIES, PolicyLoader


def test_load_builtin_policies_registers_every_builtin():
    engine = PolicyEngine()

    loaded = PolicyLoader(engine).load_builtin_policies()

    assert loaded == list(BUILTIN_POLICIES)
    assert engine.policy_set.ids() == tuple(BUILTIN_POLICIES)


def test_load_from_directory_is_recursive_and_sorted(tmp_path):
    (tmp_path / "security").mkdir()
    (tmp_path / "quality").mkdir()
    (tmp_path / "security" / "protect-main.cedar").write_text(
        'forbid(principal, action == Action::"merge", resource) unless { context.branchProtectionEnabled };',
        encoding="utf-8",
    )
    (tmp_path / "quality" / "tests.cedar").write_text(
        'permit(principal, action == Action::"test", resource);',
        encoding="utf-8",
    )
    (tmp_path / "quality" / "README.md").write_text("not a policy", encoding="utf-8")
    engine = PolicyEngine()

    loaded = PolicyLoader(engine).load_from_directory(tmp_path)

    assert loaded == ["quality/tests", "security/protect-main"]
    assert engine.policy_set.ids() == ("quality/tests", "security/protect-main")


def test_load_from_directory_rejects_missing_directory(tmp_path):
    with pytest.raises(FileNotFoundError):
        PolicyLoader(PolicyEngine()).load_from_directory(tmp_path / "missing")


def test_parse_error_names_the_file(tmp_path):
    policy_file = tmp_path / "broken.cedar"
    policy_file.write_text("permit(principal, action", encoding="utf-8")

    with pytest.raises(PolicyParseError) as raised:
        PolicyLoader(PolicyEngine()).load_from_file(policy_file)

    assert str(policy_file) in str(raised.value)
    assert raised.value.policy_id == f"{tmp_path.name}/broken"


def test_load_from_text_uses_given_id():
    engine = PolicyEngine()

    policy_id = PolicyLoader(engine).load_from_text("custom/allow", "permit(principal, action, resource);")

    assert policy_id == "custom/allow"
    assert "custom/allow" in engine.policy_set
