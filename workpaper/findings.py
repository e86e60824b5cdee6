"""
Analytics Findings

Turns a completed population test into a draft control-deficiency finding.
"""

import logging
from typing import List, Sequence

from workpaper.schemas import AnalyticsTest, RaisedFinding

logger = logging.getLogger(__name__)


def finding_ref(test_id: str) -> str:
    return f"ANA-{test_id}"


def build_finding(
    test: AnalyticsTest,
    exception_count: int,
    total_rows: int,
    work_done: str = "",
) -> RaisedFinding:
    plural = "" if exception_count == 1 else "s"
    risk_ref = f" ({test.risk_id})" if test.risk_id else ""
    description = (
        f"Control Deficiency — {test.name}: {exception_count} exception{plural} identified "
        f"out of {total_rows} records tested{risk_ref}. {test.purpose} "
        "Exceptions on a population test indicate that the control designed to mitigate "
        "this risk is not operating effectively."
    )
    return RaisedFinding(
        ref=finding_ref(test.id),
        risk_id=test.risk_id or "",
        finding_description=description,
        risk_rating="High" if exception_count > 0 else "Low",
        root_cause=work_done or "",
    )


def raise_finding(
    findings: Sequence[RaisedFinding],
    test: AnalyticsTest,
    exception_count: int,
    total_rows: int,
    work_done: str = "",
) -> List[RaisedFinding]:
    """New findings list with the finding for this test added or replaced."""
    finding = build_finding(test, exception_count, total_rows, work_done)
    updated = [f for f in findings if f.ref != finding.ref]
    updated.append(finding)
    logger.info(f"Raised finding {finding.ref} ({finding.risk_rating})")
    return updated
