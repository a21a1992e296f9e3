"""Unit tests for the test failure summary."""

from __future__ import annotations

import json

import pytest

from tenant_harness.riskanalysis import (
    STATUS_FAIL,
    STATUS_FLAKE,
    JUnitTestCase,
    JUnitTestSuite,
    PassFail,
    read_junit_suite,
    summarize,
    write_job_run_test_failure_summary,
)


def failed(name: str) -> JUnitTestCase:
    return JUnitTestCase(name=name, failure_output="assertion failed")


def passed(name: str) -> JUnitTestCase:
    return JUnitTestCase(name=name)


class TestPassFail:
    """Tests for PassFail.status_code."""

    @pytest.mark.parametrize(
        "passed_, failed_, expected",
        [
            (False, True, STATUS_FAIL),
            (True, True, STATUS_FLAKE),
            (True, False, 0),
            (False, False, 0),
        ],
    )
    def test_status_code(self, passed_, failed_, expected):
        assert PassFail(passed=passed_, failed=failed_).status_code == expected


class TestSummarize:
    """Tests for summarize."""

    def test_only_consistent_failures_are_reported(self):
        suite = JUnitTestSuite("openshift-tests", [failed("A"), passed("A"), failed("B")])

        summary = summarize(suite, "job-1", "https://ci.example/job-1")

        assert summary == {
            "job": {"name": "job-1"},
            "url": "https://ci.example/job-1",
            "tests": [
                {"test": {"name": "B"}, "suite": {"name": "openshift-tests"}, "status": 12}
            ],
        }

    def test_all_passing_suite_is_empty(self):
        suite = JUnitTestSuite("openshift-tests", [passed("C")])

        assert summarize(suite)["tests"] == []

    def test_skipped_tests_are_ignored(self):
        suite = JUnitTestSuite(
            "s", [JUnitTestCase(name="D", skip_message="not supported"), failed("E")]
        )

        names = [t["test"]["name"] for t in summarize(suite)["tests"]]

        assert names == ["E"]

    def test_repeated_failures_reported_once(self):
        suite = JUnitTestSuite("s", [failed("F"), failed("F")])

        assert len(summarize(suite)["tests"]) == 1


class TestWriteSummary:
    """Tests for write_job_run_test_failure_summary."""

    def test_writes_file_with_job_from_environment(self, tmp_path, monkeypatch):
        monkeypatch.setenv("JOB_NAME", "periodic-e2e")
        monkeypatch.setenv("JOB_URL", "https://ci.example/periodic-e2e/1")
        suite = JUnitTestSuite("s", [failed("G")])

        path = write_job_run_test_failure_summary(tmp_path, "20260101-120000", suite)

        assert path == tmp_path / "test-failures-summary_20260101-120000.json"
        document = json.loads(path.read_text())
        assert document["job"] == {"name": "periodic-e2e"}
        assert document["url"] == "https://ci.example/periodic-e2e/1"
        assert document["tests"][0]["status"] == STATUS_FAIL

    def test_missing_environment_gives_empty_job(self, tmp_path, monkeypatch):
        monkeypatch.delenv("JOB_NAME", raising=False)
        monkeypatch.delenv("JOB_URL", raising=False)

        path = write_job_run_test_failure_summary(tmp_path, "x", JUnitTestSuite("s"))

        document = json.loads(path.read_text())
        assert document == {"job": {"name": ""}, "url": "", "tests": []}

    def test_output_is_indented(self, tmp_path):
        path = write_job_run_test_failure_summary(tmp_path, "x", JUnitTestSuite("s"))

        assert '\n    "job"' in path.read_text()


class TestReadJUnit:
    """Tests for read_junit_suite."""

    def test_parses_testsuites_root(self, tmp_path):
        path = tmp_path / "junit.xml"
        path.write_text(
            """<?xml version="1.0"?>
<testsuites>
  <testsuite name="openshift-tests">
    <testcase name="passes"/>
    <testcase name="fails"><failure message="boom">stack</failure></testcase>
    <testcase name="errors"><error message="panic"/></testcase>
    <testcase name="skips"><skipped message="not here"/></testcase>
  </testsuite>
</testsuites>
"""
        )

        suite = read_junit_suite(path)

        assert suite.name == "openshift-tests"
        by_name = {case.name: case for case in suite.test_cases}
        assert by_name["passes"].failure_output is None
        assert by_name["fails"].failure_output == "stack"
        assert by_name["errors"].failure_output == "panic"
        assert by_name["skips"].skip_message == "not here"

    def test_rejects_other_roots(self, tmp_path):
        path = tmp_path / "junit.xml"
        path.write_text("<report/>")

        with pytest.raises(ValueError):
            read_junit_suite(path)
