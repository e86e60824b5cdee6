"""
Risk-Test Mapping, Library and Findings Tests
Run with: python -m pytest tests/test_risk_mapper.py -v
"""

import pytest

from workpaper.analytics_library import (
    ANALYTICS_LIBRARY,
    catalogue_for,
    find_test,
    get_process_label,
)
from workpaper.findings import raise_finding
from workpaper.program_engine import check_integrity, delete_risk
from workpaper.risk_mapper import attach_analytics, map_tests_to_risks, match_risk
from workpaper.schemas import AnalyticsTest, AuditProgram, Risk


@pytest.fixture
def risks():
    return [
        Risk(id="R001", description="Inventory counts may be inaccurate"),
        Risk(id="R002", description="Ghost employees on the PAYROLL"),
        Risk(id="R003", description="Payroll payments to wrong Bank Account"),
    ]


# =============================================================================
# LIBRARY
# =============================================================================

class TestLibrary:

    def test_every_entry_has_keywords(self):
        for process, entries in ANALYTICS_LIBRARY.items():
            for entry in entries:
                assert entry["keywords"], f"{process}/{entry['id']} has no keywords"

    def test_catalogue_marks_executable_tests(self):
        tests = {t.id: t for t in catalogue_for("procurement")}
        assert tests["PP-002"].executable
        assert tests["PP-002"].required_fields == ["Invoice Number", "Vendor ID"]
        assert not tests["PP-003"].executable
        assert tests["PP-003"].required_fields == []

    def test_unknown_process_is_empty(self):
        assert catalogue_for("treasury") == []
        assert catalogue_for(None) == []

    def test_labels_and_lookup(self):
        assert get_process_label("hr") == "Hire-to-Retire (H2R)"
        assert get_process_label("unknown") == "unknown"
        assert find_test("IT-003").name == "Privileged Access Review"
        assert find_test("IT-003").required_fields == ["Access Level"]
        assert find_test("ZZ-001") is None


# =============================================================================
# MAPPING
# =============================================================================

class TestMapping:

    def test_first_risk_with_any_keyword_wins(self, risks):
        assert match_risk(["bank account", "payroll"], risks) == "R002"
        assert match_risk(["BANK ACCOUNT"], risks) == "R003"

    def test_no_match_is_none(self, risks):
        assert match_risk(["vendor"], risks) is None
        assert match_risk([], risks) is None

    def test_every_test_included_regardless_of_match(self, risks):
        tests = [
            AnalyticsTest(id="A", name="A", rule_id="A", keywords=["inventory"], included=False),
            AnalyticsTest(id="B", name="B", rule_id="B", keywords=["nothing-matches"], included=False),
        ]
        mapped = map_tests_to_risks(risks, tests)
        assert [(t.risk_id, t.included) for t in mapped] == [("R001", True), (None, True)]
        assert tests[0].risk_id is None

    def test_attach_analytics_for_process(self, risks):
        program = AuditProgram(risks=risks)
        attached = attach_analytics(program, "hr")
        assert attached.process == "hr"
        assert len(attached.analytics_tests) == len(ANALYTICS_LIBRARY["hr"])
        by_id = {t.id: t for t in attached.analytics_tests}
        assert by_id["HR-002"].risk_id == "R002"
        assert all(t.included for t in attached.analytics_tests)
        assert program.analytics_tests == []

    def test_mapping_is_not_rerun_on_edit(self, risks):
        attached = attach_analytics(AuditProgram(risks=risks), "hr")
        edited = delete_risk(attached, "R002")
        by_id = {t.id: t for t in edited.analytics_tests}
        assert by_id["HR-002"].risk_id is None
        assert check_integrity(edited) == []


# =============================================================================
# FINDINGS
# =============================================================================

class TestRaiseFinding:

    @pytest.fixture
    def test(self):
        return AnalyticsTest(
            id="HR-002",
            name="Duplicate Bank Accounts",
            rule_id="HR-002",
            risk_id="R003",
            purpose="Identify two employees sharing a bank account.",
        )

    def test_builds_finding(self, test):
        findings = raise_finding([], test, exception_count=4, total_rows=120)
        assert len(findings) == 1
        finding = findings[0]
        assert finding.ref == "ANA-HR-002"
        assert finding.risk_id == "R003"
        assert finding.risk_rating == "High"
        assert finding.status == "Open"
        assert "4 exceptions identified out of 120 records tested (R003)" in finding.finding_description

    def test_replaces_existing_finding_for_same_test(self, test):
        first = raise_finding([], test, 1, 10)
        assert "1 exception identified" in first[0].finding_description
        second = raise_finding(first, test, 0, 10, work_done="Reviewed with HR")
        assert len(second) == 1
        assert second[0].risk_rating == "Low"
        assert second[0].root_cause == "Reviewed with HR"
