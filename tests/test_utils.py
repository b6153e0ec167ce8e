import sys, os
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
import json
import pytest
from npm_clean_audit.models import ReportSet, VulnerabilitySummary
from npm_clean_audit.utils import (
    dependency_count,
    highest_severity,
    report_metrics,
    unused_packages,
    vulnerability_summary,
)

NPM_LS_OUTPUT = """demo-app@1.0.0 /srv/projects/demo
├── express@4.18.2
│ ├── body-parser@1.20.1
│ │ └── debug@2.6.9
│ └── debug@2.6.9
├── left-pad@1.3.0
└── lodash@4.17.21
"""

# ------------------- UNUSED PACKAGES -------------------

@pytest.mark.parametrize("raw", [None, "", "not json", "{\"dependencies\": [", "Error: depcheck crashed"])
def test_unused_packages_absent_or_unparsable(raw):
    assert unused_packages(raw) == []


@pytest.mark.parametrize("payload", [
    {"dependencies": "left-pad"},
    {"dependencies": None},
    {"dependencies": {"left-pad": 1}},
    {"devDependencies": ["jest"]},
    ["left-pad"],
    None,
    42,
])
def test_unused_packages_without_dependency_list(payload):
    assert unused_packages(json.dumps(payload)) == []


def test_unused_packages_returns_list_unchanged():
    names = ["left-pad", "moment", "@types/node"]
    raw = json.dumps({"dependencies": names, "devDependencies": ["jest"], "missing": {}})
    assert unused_packages(raw) == names


# ------------------- DEPENDENCY COUNT -------------------

def test_dependency_count_empty():
    assert dependency_count("") == 0
    assert dependency_count(None) == 0


def test_dependency_count_counts_connector_lines_at_any_depth():
    assert dependency_count(NPM_LS_OUTPUT) == 6


def test_dependency_count_repeats_duplicates():
    listing = "root@1.0.0\n├── a@1.0.0\n│ └── shared@1.0.0\n└── b@1.0.0\n  └── shared@1.0.0\n"
    assert dependency_count(listing) == 4


def test_dependency_count_ignores_lines_without_connectors():
    assert dependency_count("root@1.0.0\n(empty)\n│ \n") == 0


# ------------------- VULNERABILITIES -------------------

@pytest.mark.parametrize("raw", [
    None,
    "",
    "npm ERR! audit endpoint returned an error",
    json.dumps({}),
    json.dumps({"metadata": {}}),
    json.dumps({"metadata": "oops"}),
    json.dumps({"metadata": {"vulnerabilities": []}}),
    json.dumps(["metadata"]),
])
def test_vulnerability_summary_defaults_to_zero(raw):
    assert vulnerability_summary(raw) == VulnerabilitySummary()


def test_vulnerability_summary_partial_counts():
    summary = vulnerability_summary('{"metadata":{"vulnerabilities":{"high":2}}}')
    assert summary == VulnerabilitySummary(low=0, moderate=0, high=2, critical=0)
    assert summary.total == 2


def test_vulnerability_summary_ignores_unknown_severities():
    raw = json.dumps({"metadata": {"vulnerabilities": {
        "info": 9, "low": 1, "moderate": 3, "high": 0, "critical": 1, "total": 14,
    }}})
    summary = vulnerability_summary(raw)
    assert summary.model_dump() == {"low": 1, "moderate": 3, "high": 0, "critical": 1}
    assert summary.total == 5


def test_vulnerability_summary_bad_values_count_as_zero():
    raw = json.dumps({"metadata": {"vulnerabilities": {"low": "4", "moderate": "many", "high": -3, "critical": None}}})
    assert vulnerability_summary(raw) == VulnerabilitySummary(low=4)


@pytest.mark.parametrize("raw", [
    '{"metadata":{"vulnerabilities":{"high":1e999}}}',
    '{"metadata":{"vulnerabilities":{"high":Infinity}}}',
    '{"metadata":{"vulnerabilities":{"high":-Infinity}}}',
    '{"metadata":{"vulnerabilities":{"high":NaN}}}',
])
def test_vulnerability_summary_non_finite_counts(raw):
    assert vulnerability_summary(raw) == VulnerabilitySummary()


def test_report_metrics_with_infinite_count():
    metrics = report_metrics(ReportSet(security='{"metadata":{"vulnerabilities":{"high":1e999,"low":2}}}'))
    assert metrics.vulnerabilities == VulnerabilitySummary(low=2)
    assert metrics.severity == "Low"


@pytest.mark.parametrize("counts,expected", [
    ({"critical": 1, "low": 5}, "Critical"),
    ({"high": 2}, "High"),
    ({"moderate": 1, "low": 1}, "Moderate"),
    ({"low": 3}, "Low"),
    ({}, "None"),
])
def test_highest_severity_all_branches(counts, expected):
    assert highest_severity(VulnerabilitySummary(**counts)) == expected


def test_report_metrics_combines_reports():
    reports = ReportSet(
        installed=NPM_LS_OUTPUT,
        unused=json.dumps({"dependencies": ["left-pad"]}),
        security=json.dumps({"metadata": {"vulnerabilities": {"moderate": 2, "critical": 1}}}),
        gitDiff="diff --git a/package.json b/package.json",
    )
    metrics = report_metrics(reports)
    assert metrics.unused_packages == ["left-pad"]
    assert metrics.dependency_count == 6
    assert metrics.total_vulnerabilities == 3
    assert metrics.severity == "Critical"
    assert metrics.has_git_diff


def test_report_metrics_of_empty_report_set():
    metrics = report_metrics(ReportSet())
    assert metrics.unused_packages == []
    assert metrics.dependency_count == 0
    assert metrics.total_vulnerabilities == 0
    assert metrics.severity == "None"
    assert not metrics.has_git_diff
