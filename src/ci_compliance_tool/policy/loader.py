from __future__ import annotations
"""Load policy text from files, directories and built-in definitions."""

import logging
from pathlib import Path

from ci_compliance_tool.domain.errors import PolicyParseError
from ci_compliance_tool.policy.engine import PolicyEngine


LOGGER = logging.getLogger(__name__)

POLICY_SUFFIX = ".cedar"

BUILTIN_POLICIES: dict[str, str] = {
    # Merging requires at least one CI workflow.
    "builtin/require-workflow": """
permit(
    principal,
    action == Action::"merge",
    resource
)
when {
    context.hasWorkflow == true
};
""",
    # Merging requires the latest workflow run to have passed.
    "builtin/require-tests": """
permit(
    principal,
    action == Action::"merge",
    resource
)
when {
    context.lastRunPassed == true
};
""",
    # Builds are permitted only on approved Go versions.
    "builtin/go-versions": """
permit(
    principal,
    action == Action::"build",
    resource
)
when {
    context.goVersions.containsAny(["1.24", "1.25"])
};
""",
}


class PolicyLoader:
    """Feed policy sources into a `PolicyEngine`.

    Policy ids are derived from file paths as `<parent dir>/<file stem>`. A
    file that fails to parse aborts the load with a `PolicyParseError` naming
    the file; policies loaded before it stay registered.
    """

    def __init__(self, engine: PolicyEngine) -> None:
        self._engine = engine

    def load_from_directory(self, directory: Path) -> list[str]:
        """Recursively load every `.cedar` file, in sorted path order."""
        if not directory.is_dir():
            raise FileNotFoundError(f"reading policy directory {directory}: not a directory")

        loaded: list[str] = []
        for path in sorted(directory.rglob(f"*{POLICY_SUFFIX}")):
            if path.is_file():
                loaded.append(self.load_from_file(path))

        LOGGER.info(
            "policy directory loaded",
            extra={"event": "policy.directory.loaded", "directory": str(directory), "count": len(loaded)},
        )
        return loaded

    def load_from_file(self, path: Path) -> str:
        policy_id = self.policy_id_for(path)
        try:
            content = path.read_text(encoding="utf-8")
        except OSError as error:
            raise OSError(f"reading policy file {path}: {error}") from error

        try:
            self._engine.add_policy(policy_id, content)
        except PolicyParseError as error:
            raise PolicyParseError(policy_id, f"{error.reason} (file {path})", position=error.position) from error
        return policy_id

    def load_from_text(self, policy_id: str, content: str | bytes) -> str:
        self._engine.add_policy(policy_id, content)
        return policy_id

    def load_builtin_policies(self) -> list[str]:
        return [self.load_from_text(policy_id, content) for policy_id, content in BUILTIN_POLICIES.items()]

    @staticmethod
    def policy_id_for(path: Path) -> str:
        parent = path.parent.name
        if parent in {"", ".", "/"}:
            return path.stem
        return f"{parent}/{path.stem}"
