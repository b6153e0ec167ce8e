import json
import logging
from typing import Any, List, Optional

from npm_clean_audit.errors import ParseError
from npm_clean_audit.models import ReportMetrics, ReportSet, VulnerabilitySummary

logger = logging.getLogger(__name__)

# Markers npm ls draws in front of a child entry
TREE_CONNECTORS = ("├──", "└──")

SEVERITIES = ("low", "moderate", "high", "critical")


def parse_json_report(raw: str) -> Any:
    try:
        return json.loads(raw)
    except (ValueError, TypeError) as e:
        raise ParseError(f"report is not valid JSON: {e}") from e


def unused_packages(raw_unused: Optional[str]) -> List[str]:
    """Return the package names a depcheck report lists as unused."""
    if not raw_unused:
        return []
    try:
        report = parse_json_report(raw_unused)
    except ParseError as e:
        logger.warning("Could not parse unused packages report: %s", e)
        return []

    if not isinstance(report, dict) or not isinstance(report.get("dependencies"), list):
        return []
    return report["dependencies"]


def dependency_count(raw_installed: Optional[str]) -> int:
    """Count the child entries of an `npm ls` listing.

    Every line carrying a connector counts once, so a package that shows up
    under several parents is counted several times.
    """
    if not raw_installed:
        return 0
    return sum(
        1 for line in raw_installed.splitlines()
        if any(connector in line for connector in TREE_CONNECTORS)
    )


def _severity_count(value: Any) -> int:
    if isinstance(value, bool):
        return 0
    try:
        count = int(value)
    except (ValueError, TypeError, OverflowError):
        return 0
    return max(count, 0)


def vulnerability_summary(raw_security: Optional[str]) -> VulnerabilitySummary:
    """Read the per-severity counts out of an `npm audit --json` report.

    The server stores a plain error message instead of JSON when the audit
    itself failed; that reads as zero vulnerabilities.
    """
    if not raw_security:
        return VulnerabilitySummary()
    try:
        report = parse_json_report(raw_security)
    except ParseError as e:
        logger.warning("Could not parse security report: %s", e)
        return VulnerabilitySummary()

    metadata = report.get("metadata") if isinstance(report, dict) else None
    counts = metadata.get("vulnerabilities") if isinstance(metadata, dict) else None
    if not isinstance(counts, dict):
        return VulnerabilitySummary()

    return VulnerabilitySummary(**{
        severity: _severity_count(counts[severity])
        for severity in SEVERITIES if severity in counts
    })


def total_vulnerabilities(summary: VulnerabilitySummary) -> int:
    return summary.total


def highest_severity(summary: VulnerabilitySummary) -> str:
    """Return the most severe level with at least one vulnerability."""
    if summary.critical:
        return "Critical"
    elif summary.high:
        return "High"
    elif summary.moderate:
        return "Moderate"
    elif summary.low:
        return "Low"
    return "None"


def report_metrics(report_set: ReportSet) -> ReportMetrics:
    vulnerabilities = vulnerability_summary(report_set.security)
    return ReportMetrics(
        unused_packages=unused_packages(report_set.unused),
        dependency_count=dependency_count(report_set.installed),
        vulnerabilities=vulnerabilities,
        total_vulnerabilities=total_vulnerabilities(vulnerabilities),
        severity=highest_severity(vulnerabilities),
        has_git_diff=report_set.has_git_diff,
    )
