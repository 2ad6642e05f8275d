from __future__ import annotations
"""Policy store and authorization engine for CI/CD compliance.

Policies are Cedar text evaluated by the `cedarpy` runtime. Decisions follow
Cedar's conflict model:
1. any satisfied `forbid` policy denies the request;
2. otherwise any satisfied `permit` policy allows it;
3. otherwise the request is denied by default.
"""

from dataclasses import dataclass, field
import json
import logging
import re
from typing import Any, Callable, Iterator, Mapping

import cedarpy

from ci_compliance_tool.domain.context import PolicyContext
from ci_compliance_tool.domain.errors import PolicyParseError
from ci_compliance_tool.domain.results import Severity, Violation


LOGGER = logging.getLogger(__name__)

ACTION_BUILD = "build"
ACTION_TEST = "test"
ACTION_LINT = "lint"
ACTION_MERGE = "merge"
ACTION_DEPLOY = "deploy"
ACTION_RELEASE = "release"

STANDARD_ACTIONS = (ACTION_BUILD, ACTION_TEST, ACTION_LINT, ACTION_MERGE)
HIGH_SEVERITY_ACTIONS = frozenset({ACTION_MERGE, ACTION_DEPLOY})

VIOLATION_NAMESPACE = "policy"
PRINCIPAL_TYPE = "CISystem"
PRINCIPAL_ID = "ci-compliance-tool"

SEVERITY_ANNOTATION = "severity"

# Cedar names policies of a parsed set `policy0`, `policy1`, ... in text order.
_CEDAR_POLICY_ID = re.compile(r"\bpolicy(\d+)\b")


@dataclass(frozen=True, slots=True)
class AttributeSpec:
    name: str
    type: str
    extract: Callable[[PolicyContext], Any]


ATTRIBUTE_SCHEMA_VERSION = 1

# Context record handed to every policy. Names and types form the contract
# with policy authors; bump ATTRIBUTE_SCHEMA_VERSION when changing them.
ATTRIBUTE_SCHEMA: tuple[AttributeSpec, ...] = (
    AttributeSpec("repoName", "String", lambda ctx: ctx.repo.name),
    AttributeSpec("repoOrg", "String", lambda ctx: ctx.repo.org),
    AttributeSpec("repoFullName", "String", lambda ctx: ctx.repo.full_name),
    AttributeSpec("archived", "Bool", lambda ctx: ctx.repo.archived),
    AttributeSpec("fork", "Bool", lambda ctx: ctx.repo.fork),
    AttributeSpec("languages", "Set", lambda ctx: ctx.repo.languages),
    AttributeSpec("topics", "Set", lambda ctx: ctx.repo.topics),
    AttributeSpec("hasWorkflow", "Bool", lambda ctx: ctx.ci.has_workflow),
    AttributeSpec("usesReusableWorkflow", "Bool", lambda ctx: ctx.ci.uses_reusable_workflow),
    AttributeSpec("reusableWorkflowRef", "String", lambda ctx: ctx.ci.reusable_workflow_ref),
    AttributeSpec("lastRunPassed", "Bool", lambda ctx: ctx.ci.last_run_passed),
    AttributeSpec("requiredChecks", "Set", lambda ctx: ctx.ci.required_checks),
    AttributeSpec("osMatrix", "Set", lambda ctx: ctx.ci.os_matrix),
    AttributeSpec("goVersions", "Set", lambda ctx: ctx.go.versions),
    AttributeSpec("goProfile", "String", lambda ctx: ctx.go.profile),
    AttributeSpec("hasGoMod", "Bool", lambda ctx: ctx.go.has_go_mod),
    AttributeSpec("hasRenovate", "Bool", lambda ctx: ctx.dependencies.has_renovate),
    AttributeSpec("hasDependabot", "Bool", lambda ctx: ctx.dependencies.has_dependabot),
    AttributeSpec("oldestDependencyDays", "Long", lambda ctx: ctx.dependencies.oldest_dependency_days),
    AttributeSpec("hasVulnerabilities", "Bool", lambda ctx: ctx.dependencies.has_vulnerabilities),
    AttributeSpec("vulnerabilityCount", "Long", lambda ctx: ctx.dependencies.vulnerability_count),
    AttributeSpec("branchProtectionEnabled", "Bool", lambda ctx: ctx.branch_protection.enabled),
    AttributeSpec("requireReviews", "Bool", lambda ctx: ctx.branch_protection.require_reviews),
    AttributeSpec("requireStatusChecks", "Bool", lambda ctx: ctx.branch_protection.require_status_checks),
    AttributeSpec("branchProtectionEnforceAdmins", "Bool", lambda ctx: ctx.branch_protection.enforce_admins),
)

# Cedar's JSON request format reads arrays as sets.
_CONVERTERS: dict[str, Callable[[Any], Any]] = {
    "String": lambda value: str(value or ""),
    "Bool": bool,
    "Long": lambda value: int(value or 0),
    "Set": lambda value: sorted({str(item) for item in value or ()}),
}


def build_context_record(context: PolicyContext) -> dict[str, Any]:
    """Flatten `context` into the typed attribute record described by `ATTRIBUTE_SCHEMA`."""
    return {spec.name: _CONVERTERS[spec.type](spec.extract(context)) for spec in ATTRIBUTE_SCHEMA}


def entity_uid(entity_type: str, entity_id: str) -> str:
    return f"{entity_type}::{json.dumps(entity_id, ensure_ascii=False)}"


@dataclass(frozen=True, slots=True)
class StoredPolicy:
    """One validated Cedar policy and the metadata read from it."""

    text: str
    effect: str
    annotations: Mapping[str, str] = field(default_factory=dict)


class PolicySet:
    """Insertion-ordered mapping of unique policy id to stored policy.

    Re-adding an id replaces the policy in place so diagnostics keep a stable
    order across reloads.
    """

    def __init__(self) -> None:
        self._policies: dict[str, StoredPolicy] = {}

    def add(self, policy_id: str, policy: StoredPolicy) -> None:
        self._policies[policy_id] = policy

    def remove(self, policy_id: str) -> bool:
        return self._policies.pop(policy_id, None) is not None

    def get(self, policy_id: str) -> StoredPolicy | None:
        return self._policies.get(policy_id)

    def ids(self) -> tuple[str, ...]:
        return tuple(self._policies)

    def items(self) -> Iterator[tuple[str, StoredPolicy]]:
        return iter(tuple(self._policies.items()))

    def to_cedar(self) -> str:
        """Concatenated policy text; the n-th policy is Cedar's `policy<n>`."""
        return "\n".join(policy.text for policy in self._policies.values())

    def __len__(self) -> int:
        return len(self._policies)

    def __contains__(self, policy_id: object) -> bool:
        return policy_id in self._policies


def parse_policy(policy_id: str, text: str | bytes) -> StoredPolicy:
    """Validate one Cedar policy and read its effect and annotations.

    Raises:
        PolicyParseError: text is not UTF-8, does not parse, or does not hold
            exactly one static policy.
    """
    if isinstance(text, bytes):
        try:
            text = text.decode("utf-8")
        except UnicodeDecodeError as error:
            raise PolicyParseError(policy_id, f"policy text is not valid UTF-8: {error}") from error

    try:
        parsed = json.loads(cedarpy.policies_to_json_str(text))
    except Exception as error:  # noqa: BLE001
        raise PolicyParseError(policy_id, str(error)) from error

    static_policies = parsed.get("staticPolicies") or {}
    if parsed.get("templates"):
        raise PolicyParseError(policy_id, "policy templates are not supported")
    if len(static_policies) != 1:
        raise PolicyParseError(policy_id, f"expected exactly one policy, found {len(static_policies)}")

    body = next(iter(static_policies.values()))
    return StoredPolicy(
        text=text.strip(),
        effect=str(body.get("effect", "")),
        annotations=dict(body.get("annotations") or {}),
    )


@dataclass(slots=True)
class EvaluationResult:
    """Outcome of evaluating one action against one repository context.

    Attributes:
        allowed: Final decision.
        action: Evaluated action name.
        repo_name: Full name of the repository used as resource.
        reasons: Ids of the policies that determined the decision, in policy
            set order (satisfied forbids on deny, satisfied permits on allow).
        errors: Evaluation diagnostics, one per policy that failed to evaluate.
        severity_override: Severity declared by a deciding forbid policy.
    """

    allowed: bool
    action: str
    repo_name: str
    reasons: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    severity_override: Severity | None = None

    def to_violation(self) -> Violation | None:
        """Convert a denied result into a `Violation`; `None` when allowed."""
        if self.allowed:
            return None

        severity = Severity.HIGH if self.action in HIGH_SEVERITY_ACTIONS else Severity.MEDIUM
        if self.severity_override is not None:
            severity = self.severity_override

        message = f"Policy denied {self.action} action"
        if self.reasons:
            message = f"Policy denied {self.action} action (policies: {', '.join(self.reasons)})"

        return Violation(
            policy=f"{VIOLATION_NAMESPACE}/{self.action}",
            rule=self.action,
            message=message,
            severity=severity,
        )


class PolicyEngine:
    """Owns a `PolicySet` and answers authorization requests against it.

    Load-then-freeze: register every policy first, call `freeze()`, then
    evaluate from any number of threads. A frozen engine rejects mutation.
    """

    def __init__(self, policy_set: PolicySet | None = None) -> None:
        self._policy_set = policy_set if policy_set is not None else PolicySet()
        self._frozen = False
        self._cedar_text = self._policy_set.to_cedar()

    @property
    def policy_set(self) -> PolicySet:
        return self._policy_set

    @property
    def frozen(self) -> bool:
        return self._frozen

    def freeze(self) -> None:
        self._frozen = True

    def add_policy(self, policy_id: str, text: str | bytes) -> None:
        """Validate and register one policy under `policy_id`.

        Raises:
            PolicyParseError: text is invalid; the store is left unchanged.
            RuntimeError: the engine is frozen.
        """
        self._ensure_mutable("add_policy")
        policy = parse_policy(policy_id, text)
        severity = policy.annotations.get(SEVERITY_ANNOTATION)
        if severity is not None and severity not in {level.value for level in Severity}:
            raise PolicyParseError(policy_id, f"unknown severity {severity!r} in @{SEVERITY_ANNOTATION}")
        replaced = policy_id in self._policy_set
        self._policy_set.add(policy_id, policy)
        self._cedar_text = self._policy_set.to_cedar()
        LOGGER.debug(
            "policy registered",
            extra={"event": "policy.added", "policy_id": policy_id, "effect": policy.effect, "replaced": replaced},
        )

    def remove_policy(self, policy_id: str) -> bool:
        self._ensure_mutable("remove_policy")
        removed = self._policy_set.remove(policy_id)
        self._cedar_text = self._policy_set.to_cedar()
        return removed

    def build_request(self, context: PolicyContext, action: str) -> dict[str, Any]:
        return {
            "principal": entity_uid(PRINCIPAL_TYPE, PRINCIPAL_ID),
            "action": entity_uid("Action", action),
            "resource": entity_uid("Repository", context.repo.full_name),
            "context": build_context_record(context),
        }

    def evaluate(self, context: PolicyContext, action: str) -> EvaluationResult:
        """Evaluate `action` for the repository described by `context`.

        Never raises for policy problems: Cedar skips a policy whose condition
        fails to evaluate and the failure is reported in `errors`.
        """
        ids = self._policy_set.ids()
        request = self.build_request(context, action)

        try:
            authz = cedarpy.is_authorized(request, self._cedar_text, [])
        except Exception as error:  # noqa: BLE001
            allowed, reasons, errors = False, [], [f"authorization failed: {error}"]
        else:
            allowed = authz.decision == cedarpy.Decision.Allow
            reasons = self._ordered_ids(authz.diagnostics.reasons, ids)
            errors = [self._describe_error(str(message), ids) for message in authz.diagnostics.errors]

        result = EvaluationResult(
            allowed=allowed,
            action=action,
            repo_name=context.repo.full_name,
            reasons=reasons,
            errors=errors,
            severity_override=None if allowed else self._severity_override(reasons),
        )

        if errors:
            LOGGER.warning(
                "policy evaluation produced errors",
                extra={
                    "event": "policy.evaluation.errors",
                    "repo_full_name": result.repo_name,
                    "action": action,
                    "errors": errors,
                },
            )
        return result

    def evaluate_all(self, context: PolicyContext) -> list[EvaluationResult]:
        """Evaluate `build`, `test`, `lint` and `merge`, in that order."""
        return [self.evaluate(context, action) for action in STANDARD_ACTIONS]

    @staticmethod
    def _resolve_id(cedar_id: str, ids: tuple[str, ...]) -> str:
        match = _CEDAR_POLICY_ID.fullmatch(cedar_id)
        if match is not None and int(match.group(1)) < len(ids):
            return ids[int(match.group(1))]
        return cedar_id

    def _ordered_ids(self, cedar_ids: Any, ids: tuple[str, ...]) -> list[str]:
        resolved = {self._resolve_id(str(cedar_id), ids) for cedar_id in cedar_ids or ()}
        return [policy_id for policy_id in ids if policy_id in resolved]

    @staticmethod
    def _describe_error(message: str, ids: tuple[str, ...]) -> str:
        match = _CEDAR_POLICY_ID.search(message)
        if match is None or int(match.group(1)) >= len(ids):
            return message
        return f"policy {ids[int(match.group(1))]}: {message}"

    def _severity_override(self, forbid_ids: list[str]) -> Severity | None:
        levels = list(Severity)
        chosen: Severity | None = None
        for policy_id in forbid_ids:
            policy = self._policy_set.get(policy_id)
            declared = policy.annotations.get(SEVERITY_ANNOTATION) if policy is not None else None
            if declared is None:
                continue
            severity = Severity(declared)
            # Highest declared severity wins.
            if chosen is None or levels.index(severity) < levels.index(chosen):
                chosen = severity
        return chosen

    def _ensure_mutable(self, operation: str) -> None:
        if self._frozen:
            raise RuntimeError(f"{operation}: policy engine is frozen")


def describe_schema() -> Mapping[str, str]:
    """Attribute name to type mapping, for documentation and tooling."""
    return {spec.name: spec.type for spec in ATTRIBUTE_SCHEMA}
