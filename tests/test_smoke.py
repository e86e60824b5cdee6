"""
Smoke Tests for the Workpaper Engine API

End-to-end requests through FastAPI: generate -> sanitize -> edit, and
upload -> resolve -> run -> raise finding.
Run with: python -m pytest tests/test_smoke.py -v
"""

import os

import pytest
from fastapi.testclient import TestClient

# Set test environment
os.environ["ENVIRONMENT"] = "test"

# Import after setting env vars
from workpaper.main import app

client = TestClient(app)


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def generated_program():
    """Candidate program as the generator returns it, including a dangling id."""
    return {
        "auditObjectives": ["Payments are made only to valid vendors"],
        "risks": [
            {"id": "R001", "category": "Financial", "description": "Duplicate invoice payments",
             "rating": "High", "assertion": "Occurrence", "relatedControls": ["C001", "C003"]},
            {"id": "R002", "category": "Compliance", "description": "Fictitious vendor in the vendor master",
             "rating": "Medium", "assertion": "Existence", "relatedControls": ["C002"]},
        ],
        "controls": [
            {"id": "C001", "description": "Three-way match", "type": "Preventive",
             "frequency": "Continuous", "owner": "AP Supervisor", "mitigatesRisks": ["R001"]},
            {"id": "C002", "description": "Vendor master review", "type": "Detective",
             "frequency": "Monthly", "owner": "Procurement Lead", "mitigatesRisks": ["R002", "R005"]},
        ],
        "auditProcedures": [
            {"controlId": "C001", "procedure": "Reperform match for sample", "testingMethod": "Reperformance",
             "sampleSize": "25", "expectedEvidence": "PO, GRN, invoice"},
            {"controlId": "C003", "procedure": "Test a control that does not exist"},
        ],
    }


@pytest.fixture
def sanitized(generated_program):
    response = client.post("/api/program/sanitize", json={"program": generated_program, "process": "procurement"})
    assert response.status_code == 200
    return response.json()["program"]


# =============================================================================
# HEALTH
# =============================================================================

class TestHealthEndpoints:

    def test_health_check(self):
        response = client.get("/api/system/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert "timestamp" in data
        assert data["version"]
        assert isinstance(data.get("services"), dict)


# =============================================================================
# PROGRAM
# =============================================================================

class TestProgramEndpoints:

    def test_sanitize_cleans_and_maps_analytics(self, generated_program):
        response = client.post("/api/program/sanitize", json={"program": generated_program, "process": "procurement"})
        assert response.status_code == 200
        data = response.json()
        program = data["program"]
        assert program["risks"][0]["relatedControls"] == ["C001"]
        assert program["controls"][1]["mitigatesRisks"] == ["R002"]
        assert len(program["auditProcedures"]) == 1
        assert program["auditObjectives"] == ["Payments are made only to valid vendors"]

        tests = {t["id"]: t for t in program["analyticsTests"]}
        assert tests["PP-002"]["riskId"] == "R001"
        assert tests["PP-001"]["riskId"] == "R002"
        assert all(t["included"] for t in tests.values())
        assert data["orphans"]["controlsWithoutProcedures"] == ["C002"]

    def test_sanitize_rejects_non_object(self):
        response = client.post("/api/program/sanitize", json={"program": ["nope"]})
        assert response.status_code == 400
        assert response.json()["success"] is False

    def test_link_and_delete_round(self, sanitized):
        response = client.post("/api/program/link", json={
            "program": sanitized, "riskId": "R002", "controlId": "C001", "linked": True,
        })
        assert response.status_code == 200
        program = response.json()["program"]
        assert program["risks"][1]["relatedControls"] == ["C002", "C001"]
        assert program["controls"][0]["mitigatesRisks"] == ["R001", "R002"]

        response = client.post("/api/program/delete", json={"program": program, "kind": "risk", "id": "R001"})
        assert response.status_code == 200
        program = response.json()["program"]
        assert [r["id"] for r in program["risks"]] == ["R001"]
        assert program["controls"][0]["mitigatesRisks"] == ["R001"]
        assert program["controls"][1]["mitigatesRisks"] == ["R001"]
        tests = {t["id"]: t for t in program["analyticsTests"]}
        assert tests["PP-002"]["riskId"] is None
        assert tests["PP-001"]["riskId"] == "R001"

    def test_link_unknown_id_is_reported(self, sanitized):
        response = client.post("/api/program/link", json={
            "program": sanitized, "riskId": "R009", "controlId": "C001",
        })
        assert response.status_code == 404
        body = response.json()
        assert body["success"] is False
        assert "R009" in body["error"]

    def test_add_and_update(self, sanitized):
        response = client.post("/api/program/add-control", json={
            "program": sanitized, "draft": {"description": "Duplicate payment report", "mitigatesRisks": ["R001"]},
        })
        assert response.status_code == 200
        program = response.json()["program"]
        assert program["controls"][-1]["id"] == "C003"
        assert "C003" in program["risks"][0]["relatedControls"]

        response = client.post("/api/program/add-procedure", json={"program": program, "draft": {"controlId": "C003"}})
        program = response.json()["program"]
        assert program["auditProcedures"][-1]["controlId"] == "C003"

        response = client.post("/api/program/update", json={
            "program": program, "kind": "risk", "target": "R002", "changes": {"rating": "High"},
        })
        assert response.json()["program"]["risks"][1]["rating"] == "High"

        response = client.post("/api/program/update", json={
            "program": program, "kind": "risk", "target": "R002", "changes": {"relatedControls": []},
        })
        assert response.status_code == 400

    def test_test_assignment_and_toggle(self, sanitized):
        response = client.post("/api/program/tests/risk", json={
            "program": sanitized, "testId": "PP-002", "riskId": "R002",
        })
        program = response.json()["program"]
        assert {t["id"]: t for t in program["analyticsTests"]}["PP-002"]["riskId"] == "R002"

        response = client.post("/api/program/tests/toggle", json={"program": program, "testId": "PP-002"})
        program = response.json()["program"]
        assert {t["id"]: t for t in program["analyticsTests"]}["PP-002"]["included"] is False

    def test_objectives(self, sanitized):
        response = client.post("/api/program/objectives", json={
            "program": sanitized, "action": "add", "text": "Vendor changes are authorised",
        })
        assert response.status_code == 200
        program = response.json()["program"]
        assert program["auditObjectives"] == [
            "Payments are made only to valid vendors",
            "Vendor changes are authorised",
        ]

        response = client.post("/api/program/objectives", json={
            "program": program, "action": "update", "index": 0, "text": "Payments go to approved vendors",
        })
        program = response.json()["program"]
        assert program["auditObjectives"][0] == "Payments go to approved vendors"

        response = client.post("/api/program/objectives", json={"program": program, "action": "delete", "index": 1})
        assert response.json()["program"]["auditObjectives"] == ["Payments go to approved vendors"]

        response = client.post("/api/program/objectives", json={"program": program, "action": "delete"})
        assert response.status_code == 400
        response = client.post("/api/program/objectives", json={"program": program, "action": "delete", "index": 7})
        assert response.status_code == 404

    def test_update_rejects_unknown_rating(self, sanitized):
        response = client.post("/api/program/update", json={
            "program": sanitized, "kind": "risk", "target": "R001", "changes": {"rating": "Critical"},
        })
        assert response.status_code == 400
        assert "High, Medium, Low" in response.json()["error"]

    def test_orphans(self, sanitized):
        response = client.post("/api/program/orphans", json=sanitized)
        assert response.status_code == 200
        assert response.json() == {
            "risksWithoutControls": [],
            "controlsWithoutRisks": [],
            "controlsWithoutProcedures": ["C002"],
        }


# =============================================================================
# ANALYTICS
# =============================================================================

class TestAnalyticsEndpoints:

    def test_library(self):
        response = client.get("/api/analytics/library/it")
        assert response.status_code == 200
        tests = {t["id"]: t for t in response.json()}
        assert tests["IT-003"]["requiredFields"] == ["Access Level"]
        assert tests["IT-003"]["executable"] is True

    def test_single_library_test(self):
        response = client.get("/api/analytics/library/tests/HR-002")
        assert response.status_code == 200
        assert response.json()["requiredFields"] == ["Bank Account Number", "Employee ID"]
        assert client.get("/api/analytics/library/tests/ZZ-9").status_code == 404

    def test_processes(self):
        response = client.get("/api/analytics/processes")
        ids = [p["id"] for p in response.json()["processes"]]
        assert "procurement" in ids and "it" in ids

    def test_upload_resolve_run_and_raise(self):
        csv_bytes = b"EmpNo,Name,Bank Acct No\nE1,Ann,A\nE2,Bob,A\nE3,Cy,B\n"
        response = client.post("/api/analytics/upload", files={"file": ("payroll.csv", csv_bytes, "text/csv")})
        assert response.status_code == 200
        dataset = response.json()

        response = client.post("/api/analytics/resolve", json={"testId": "HR-002", "headers": dataset["headers"]})
        resolved = response.json()
        assert resolved["mapping"] == {"Employee ID": 0}
        assert resolved["missingFields"] == ["Bank Account Number"]
        assert resolved["complete"] is False

        mapping = {**resolved["mapping"], "Bank Account Number": 2}
        response = client.post("/api/analytics/run", json={
            "testId": "HR-002", "columnMapping": mapping, "rows": dataset["rows"], "headers": dataset["headers"],
        })
        assert response.status_code == 200
        result = response.json()
        assert result["success"] is True
        assert result["exceptionCount"] == 2
        assert result["totalRows"] == 3
        assert result["sampleRows"] == [["E1", "Ann", "A"], ["E2", "Bob", "A"]]

        response = client.post("/api/analytics/findings", json={
            "test": {"id": "HR-002", "name": "Duplicate Bank Accounts", "ruleId": "HR-002", "riskId": "R001"},
            "exceptionCount": result["exceptionCount"],
            "totalRows": result["totalRows"],
        })
        findings = response.json()
        assert findings[0]["ref"] == "ANA-HR-002"
        assert findings[0]["riskRating"] == "High"

    def test_run_missing_fields(self):
        response = client.post("/api/analytics/run", json={"testId": "RC-001"})
        assert response.status_code == 400
        assert response.json()["success"] is False

    def test_run_unknown_test(self):
        response = client.post("/api/analytics/run", json={"testId": "ZZ-1", "columnMapping": {}, "rows": []})
        assert response.status_code == 422
        assert response.json()["error"] == "Unknown test ID: ZZ-1"

    def test_malformed_body_uses_envelope(self):
        response = client.post("/api/analytics/run", json={"testId": "RC-001", "columnMapping": {}, "rows": "x"})
        assert response.status_code == 400
        assert response.json()["success"] is False
