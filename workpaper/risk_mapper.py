"""
Risk-Test Mapper

Associates each catalogued analytics test with the first generated risk whose
description mentions one of the test's keywords. Runs once per generated
program; later edits do not re-run it.
"""

import logging
from typing import List, Optional, Sequence

from workpaper.analytics_library import catalogue_for
from workpaper.schemas import AnalyticsTest, AuditProgram, Risk

logger = logging.getLogger(__name__)


def match_risk(keywords: Sequence[str], risks: Sequence[Risk]) -> Optional[str]:
    """Id of the first risk (in order) whose description contains any keyword."""
    folded = [kw.casefold() for kw in keywords if kw]
    for risk in risks:
        description = (risk.description or "").casefold()
        if any(kw in description for kw in folded):
            return risk.id
    return None


def map_tests_to_risks(risks: Sequence[Risk], tests: Sequence[AnalyticsTest]) -> List[AnalyticsTest]:
    """Copies of the tests with risk_id set by keyword match and included=True."""
    mapped = []
    for test in tests:
        risk_id = match_risk(test.keywords, risks)
        mapped.append(test.model_copy(update={"risk_id": risk_id, "included": True}))
    return mapped


def attach_analytics(program: AuditProgram, process: Optional[str]) -> AuditProgram:
    """Return a copy of the program carrying the mapped catalogue for a process."""
    tests = map_tests_to_risks(program.risks, catalogue_for(process))
    matched = sum(1 for t in tests if t.risk_id)
    logger.info(f"Mapped {matched}/{len(tests)} analytics test(s) to risks for process '{process}'")
    return program.model_copy(update={"analytics_tests": tests, "process": process}, deep=True)
