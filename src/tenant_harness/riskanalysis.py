"""Minimal failure summary of a finished test run.

The summary lists only tests that failed without ever passing in the run.
Flakes (a name that both failed and passed, e.g. through a retry) and
passing or skipped tests are left out. The document is later submitted
for risk analysis of how unusual the failures were; that step happens
elsewhere.
"""

from __future__ import annotations

import json
import os
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

TEST_FAILURE_SUMMARY_FILE_PREFIX = "test-failures-summary_"

STATUS_FAIL = 12
STATUS_FLAKE = 13


@dataclass
class JUnitTestCase:
    """One test occurrence in a suite."""

    name: str
    failure_output: str | None = None
    skip_message: str | None = None


@dataclass
class JUnitTestSuite:
    """A finished suite; the same test name may occur several times."""

    name: str
    test_cases: list[JUnitTestCase] = field(default_factory=list)


@dataclass
class PassFail:
    """Aggregate of all occurrences of one test name."""

    passed: bool = False
    failed: bool = False

    @property
    def status_code(self) -> int:
        if self.failed and self.passed:
            return STATUS_FLAKE
        if self.failed:
            return STATUS_FAIL
        return 0


def summarize(suite: JUnitTestSuite, job_name: str = "", job_url: str = "") -> dict[str, Any]:
    """Build the failure summary document for ``suite``.

    Args:
        suite: Final suite results
        job_name: CI job name
        job_url: CI job URL

    Returns:
        ``{"job": {"name"}, "url", "tests": [...]}``
    """
    tests: dict[str, PassFail] = {}
    for case in suite.test_cases:
        record = tests.setdefault(case.name, PassFail())
        if case.skip_message is not None:
            continue
        if case.failure_output is not None:
            record.failed = True
        else:
            record.passed = True

    summary_tests = []
    for name, record in tests.items():
        # neither a fail nor a flake
        if not record.failed:
            continue
        # flakes are not reported yet
        if record.passed:
            continue
        summary_tests.append(
            {
                "test": {"name": name},
                "suite": {"name": suite.name},
                "status": record.status_code,
            }
        )

    return {
        "job": {"name": job_name},
        "url": job_url,
        "tests": summary_tests,
    }


def write_job_run_test_failure_summary(
    artifact_dir: str | Path,
    time_suffix: str,
    suite: JUnitTestSuite,
) -> Path:
    """Write the summary to ``<artifact_dir>/test-failures-summary_<time_suffix>.json``.

    Job name and URL come from the ``JOB_NAME`` and ``JOB_URL`` environment
    variables.

    Returns:
        Path of the written file
    """
    document = summarize(suite, os.environ.get("JOB_NAME", ""), os.environ.get("JOB_URL", ""))
    output_file = Path(artifact_dir) / f"{TEST_FAILURE_SUMMARY_FILE_PREFIX}{time_suffix}.json"
    output_file.write_text(json.dumps(document, indent=4))
    return output_file


def read_junit_suite(path: str | Path) -> JUnitTestSuite:
    """Parse a JUnit XML file.

    Accepts a ``<testsuite>`` root or a ``<testsuites>`` root, in which case
    the first suite is used.

    Raises:
        ValueError: If the file contains no test suite
    """
    root = ET.parse(path).getroot()
    if root.tag == "testsuites":
        found = root.find("testsuite")
        if found is None:
            raise ValueError(f"no <testsuite> in {path}")
        root = found
    elif root.tag != "testsuite":
        raise ValueError(f"unexpected root element <{root.tag}> in {path}")

    suite = JUnitTestSuite(name=root.get("name", ""))
    for element in root.iter("testcase"):
        failure = element.find("failure")
        if failure is None:
            failure = element.find("error")
        skipped = element.find("skipped")
        suite.test_cases.append(
            JUnitTestCase(
                name=element.get("name", ""),
                failure_output=None if failure is None else (failure.text or failure.get("message", "")),
                skip_message=None if skipped is None else (skipped.get("message") or skipped.text or ""),
            )
        )
    return suite
