from __future__ import annotations
"""Named CI/CD profiles and the profile validator."""

import logging
from pathlib import Path

import yaml

from ci_compliance_tool.domain.context import PolicyContext
from ci_compliance_tool.domain.entities import Profile, ProfileLint, ProfileTest
from ci_compliance_tool.domain.errors import ProfileNotFoundError
from ci_compliance_tool.domain.results import Severity, Violation
from ci_compliance_tool.yaml_utils import load_yaml


LOGGER = logging.getLogger(__name__)

DEFAULT_PROFILE_NAME = "default"
PROFILE_SUFFIXES = (".yaml", ".yml")


def default_profile() -> Profile:
    return Profile(
        name=DEFAULT_PROFILE_NAME,
        description="Standard Go CI configuration for active projects",
        go_versions=("1.24", "1.25"),
        os=("ubuntu-latest", "macos-latest", "windows-latest"),
        required_checks=("test", "lint", "build"),
        lint=ProfileLint(enabled=True, tool="golangci-lint"),
        test=ProfileTest(coverage=True, race=True),
    )


def modern_profile() -> Profile:
    return Profile(
        name="modern",
        description="Modern Go CI for projects using latest Go features",
        go_versions=("1.25",),
        os=("ubuntu-latest", "macos-latest"),
        required_checks=("test", "lint", "build"),
        lint=ProfileLint(enabled=True, tool="golangci-lint"),
        test=ProfileTest(coverage=True, race=True),
    )


def legacy_profile() -> Profile:
    return Profile(
        name="legacy",
        description="Legacy Go CI for older projects requiring Go 1.12-1.18",
        go_versions=("1.12",),
        os=("ubuntu-latest",),
        required_checks=("test", "build"),
        lint=ProfileLint(enabled=False),
        test=ProfileTest(coverage=False, race=False),
    )


class ProfileRegistry:
    """Profiles keyed by name, owned by the caller (not a process-wide singleton).

    Load-then-freeze like `PolicyEngine`: registration after `freeze()` raises.
    """

    def __init__(self) -> None:
        self._profiles: dict[str, Profile] = {}
        self._frozen = False

    def freeze(self) -> None:
        self._frozen = True

    def add(self, profile: Profile) -> None:
        if self._frozen:
            raise RuntimeError(f"add profile {profile.name}: profile registry is frozen")
        self._profiles[profile.name] = profile

    def get(self, name: str) -> Profile:
        try:
            return self._profiles[name]
        except KeyError:
            raise ProfileNotFoundError(name) from None

    def get_or_default(self, name: str) -> Profile:
        """Resolve `name`, falling back to the registered `default`, then the built-in default."""
        if name in self._profiles:
            return self._profiles[name]
        if DEFAULT_PROFILE_NAME in self._profiles:
            LOGGER.debug(
                "profile not found, using registered default",
                extra={"event": "profile.fallback", "profile": name, "fallback": DEFAULT_PROFILE_NAME},
            )
            return self._profiles[DEFAULT_PROFILE_NAME]
        LOGGER.debug(
            "profile not found, using built-in default",
            extra={"event": "profile.fallback", "profile": name, "fallback": "builtin"},
        )
        return default_profile()

    def names(self) -> list[str]:
        return sorted(self._profiles)

    def __contains__(self, name: object) -> bool:
        return name in self._profiles

    def __len__(self) -> int:
        return len(self._profiles)

    def load_builtin_profiles(self) -> None:
        for profile in (default_profile(), modern_profile(), legacy_profile()):
            self.add(profile)

    def load_from_file(self, path: Path) -> Profile:
        """Load one YAML profile; the file stem names profiles without `name`."""
        try:
            content = path.read_text(encoding="utf-8")
        except OSError as error:
            raise OSError(f"reading profile file {path}: {error}") from error

        try:
            data = load_yaml(content)
        except yaml.YAMLError as error:
            raise ValueError(f"parsing YAML {path}: {error}") from error

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ValueError(f"parsing YAML {path}: top-level value must be a mapping")

        profile = Profile.from_dict(data, default_name=path.stem)
        self.add(profile)
        LOGGER.info(
            "profile loaded",
            extra={"event": "profile.loaded", "profile": profile.name, "path": str(path)},
        )
        return profile

    def load_from_directory(self, directory: Path) -> list[Profile]:
        """Load every `.yaml`/`.yml` file directly inside `directory`, sorted by name."""
        if not directory.is_dir():
            raise FileNotFoundError(f"reading profile directory {directory}: not a directory")
        return [
            self.load_from_file(path)
            for path in sorted(directory.iterdir())
            if path.is_file() and path.suffix in PROFILE_SUFFIXES
        ]


def validate_repo_against_profile(context: PolicyContext, profile: Profile) -> list[Violation]:
    """Compare a repository context with a profile.

    Pure and deterministic: violations follow the order of the context and
    profile lists. Checks are skipped when the context carries no data for them.
    """
    violations: list[Violation] = []
    allowed_versions = ", ".join(profile.go_versions)

    for version in context.go.versions:
        if version in profile.go_versions:
            continue
        violations.append(
            Violation(
                policy="profile/go-version",
                rule="allowed-versions",
                message=(
                    f"Go version {version} not in profile {profile.name} allowed versions [{allowed_versions}]"
                ),
                severity=Severity.MEDIUM,
                remediation=f"Update go-version to one of: [{allowed_versions}]",
            )
        )

    if not context.ci.os_matrix:
        return violations

    allowed_os = ", ".join(profile.os)
    for os_label in context.ci.os_matrix:
        if os_label in profile.os:
            continue
        violations.append(
            Violation(
                policy="profile/os-matrix",
                rule="allowed-os",
                message=f"OS {os_label} not in profile {profile.name} allowed platforms [{allowed_os}]",
                severity=Severity.LOW,
                remediation=f"Update runs-on to one of: [{allowed_os}]",
            )
        )

    for required_os in profile.os:
        if required_os in context.ci.os_matrix:
            continue
        violations.append(
            Violation(
                policy="profile/os-matrix",
                rule="required-os",
                message=f"Profile {profile.name} requires OS {required_os} but it is not in the matrix",
                severity=Severity.INFO,
                remediation=f"Add {required_os} to your OS matrix",
            )
        )

    return violations
