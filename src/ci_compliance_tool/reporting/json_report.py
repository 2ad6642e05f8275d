from __future__ import annotations
"""JSON encoding of compliance results."""

import json

from ci_compliance_tool.domain.results import ComplianceResult


def format_json(result: ComplianceResult, *, indent: int | None = 2) -> str:
    return json.dumps(result.to_dict(), indent=indent)


def parse_json(payload: str) -> ComplianceResult:
    """Decode a report produced by `format_json`."""
    data = json.loads(payload)
    if not isinstance(data, dict):
        raise ValueError("compliance report must be a JSON object")
    return ComplianceResult.from_dict(data)
