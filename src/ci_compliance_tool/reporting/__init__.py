"""Report encoders for compliance results."""

from pathlib import Path

from ci_compliance_tool.domain.results import ComplianceResult

from .csv_report import format_summary_csv, format_violations_csv
from .json_report import format_json, parse_json
from .markdown_report import format_markdown
from .sarif_report import format_sarif

FORMATTERS = {
    "json": format_json,
    "csv": format_summary_csv,
    "csv-violations": format_violations_csv,
    "sarif": format_sarif,
    "markdown": format_markdown,
    "md": format_markdown,
}

SUPPORTED_FORMATS = tuple(FORMATTERS)


def render_report(result: ComplianceResult, report_format: str) -> str:
    try:
        formatter = FORMATTERS[report_format]
    except KeyError:
        valid = ", ".join(SUPPORTED_FORMATS)
        raise ValueError(f"unknown report format: {report_format} (supported: {valid})") from None
    return formatter(result)


def write_report(result: ComplianceResult, report_format: str, output_path: Path) -> None:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(render_report(result, report_format), encoding="utf-8")


__all__ = [
	"SUPPORTED_FORMATS",
	"format_json",
	"format_markdown",
	"format_sarif",
	"format_summary_csv",
	"format_violations_csv",
	"parse_json",
	"render_report",
	"write_report",
]
