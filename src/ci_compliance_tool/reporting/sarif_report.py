from __future__ import annotations
"""SARIF 2.1.0 encoding of compliance results, for code-scanning dashboards.

Each distinct `policy/rule` pair becomes one rule of the tool driver; each
violation becomes one result located at its repository (logical location)
and, when known, at its file and line (physical location).
"""

import json
from typing import Any

from ci_compliance_tool.domain.results import ComplianceResult, Severity, Violation


SARIF_VERSION = "2.1.0"
SARIF_SCHEMA = "https://raw.githubusercontent.com/oasis-tcs/sarif-spec/master/Schemata/sarif-schema-2.1.0.json"
TOOL_NAME = "ci-compliance-tool"
TOOL_VERSION = "0.1.0"

SARIF_LEVELS = {
    Severity.CRITICAL: "error",
    Severity.HIGH: "error",
    Severity.MEDIUM: "warning",
    Severity.LOW: "note",
    Severity.INFO: "note",
}


def severity_to_sarif_level(severity: Severity) -> str:
    return SARIF_LEVELS.get(severity, "note")


def rule_id(violation: Violation) -> str:
    if violation.rule:
        return f"{violation.policy}/{violation.rule}"
    return violation.policy


def format_sarif(result: ComplianceResult) -> str:
    rules: list[dict[str, Any]] = []
    rule_index: dict[str, int] = {}
    results: list[dict[str, Any]] = []

    for repo_result in result.repos:
        repository = repo_result.repo
        for violation in repo_result.violations:
            identifier = rule_id(violation)
            level = severity_to_sarif_level(violation.severity)
            if identifier not in rule_index:
                rule_index[identifier] = len(rules)
                rules.append(
                    {
                        "id": identifier,
                        "name": violation.policy,
                        "shortDescription": {"text": violation.message},
                        "defaultConfiguration": {"level": level},
                    }
                )

            location: dict[str, Any] = {
                "logicalLocations": [
                    {
                        "name": repository.name,
                        "fullyQualifiedName": repository.full_name,
                        "kind": "repository",
                    }
                ]
            }
            if violation.file:
                physical: dict[str, Any] = {"artifactLocation": {"uri": violation.file}}
                if violation.line > 0:
                    physical["region"] = {"startLine": violation.line}
                location["physicalLocation"] = physical

            entry: dict[str, Any] = {
                "ruleId": identifier,
                "ruleIndex": rule_index[identifier],
                "level": level,
                "message": {"text": f"[{repository.full_name}] {violation.message}"},
                "locations": [location],
            }
            if violation.remediation:
                entry["fixes"] = [{"description": {"text": violation.remediation}}]
            results.append(entry)

    driver: dict[str, Any] = {"name": TOOL_NAME, "version": TOOL_VERSION}
    if rules:
        driver["rules"] = rules

    payload = {
        "version": SARIF_VERSION,
        "$schema": SARIF_SCHEMA,
        "runs": [{"tool": {"driver": driver}, "results": results}],
    }
    return json.dumps(payload, indent=2)
