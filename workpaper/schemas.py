from typing import List, Dict, Any, Optional, Union
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, AliasChoices
from pydantic.alias_generators import to_camel

# =============================================================================
# BASE
# =============================================================================

class WireModel(BaseModel):
    """camelCase on the wire, snake_case in Python; both accepted on input."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class EntityKind(str, Enum):
    RISK = "risk"
    CONTROL = "control"


class EditableKind(str, Enum):
    RISK = "risk"
    CONTROL = "control"
    PROCEDURE = "procedure"


class ObjectiveAction(str, Enum):
    ADD = "add"
    UPDATE = "update"
    DELETE = "delete"


RATINGS = ["High", "Medium", "Low"]
CONTROL_TYPES = ["Preventive", "Detective", "Corrective"]
TESTING_METHODS = ["Inquiry", "Observation", "Inspection", "Reperformance", "Data Analytics"]

# =============================================================================
# PROGRAM ENTITIES
# =============================================================================

class Risk(WireModel):
    id: str
    category: str = "Financial"
    description: str = ""
    rating: str = "Medium"
    assertion: str = ""
    related_controls: List[str] = Field(default_factory=list)
    framework_reference: str = ""
    regulatory_refs: Optional[List[str]] = None


class Control(WireModel):
    id: str
    description: str = ""
    type: str = "Preventive"
    frequency: str = "Monthly"
    owner: str = ""
    owner_role: str = ""
    owner_department: str = ""
    mitigates_risks: List[str] = Field(default_factory=list)
    framework_reference: str = ""


class Procedure(WireModel):
    control_id: str
    procedure: str = ""
    testing_method: str = "Inquiry"
    sample_size: str = ""
    expected_evidence: str = ""
    framework_reference: str = ""
    analytics_test: Optional[Dict[str, Any]] = None


class AnalyticsTest(WireModel):
    id: str
    name: str
    rule_id: str
    required_fields: List[str] = Field(default_factory=list)
    risk_id: Optional[str] = None
    included: bool = True
    executable: bool = False
    purpose: str = ""
    data_needed: str = ""
    steps: List[str] = Field(default_factory=list)
    red_flags: str = ""
    keywords: List[str] = Field(default_factory=list)


class AuditProgram(WireModel):
    """Snapshot of a generated (and possibly edited) audit program.

    Unknown top-level keys from the generator are carried through untouched.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    risks: List[Risk] = Field(default_factory=list)
    controls: List[Control] = Field(default_factory=list)
    audit_procedures: List[Procedure] = Field(default_factory=list)
    audit_objectives: List[str] = Field(default_factory=list)
    analytics_tests: List[AnalyticsTest] = Field(default_factory=list)
    process: Optional[str] = None


class OrphanReport(WireModel):
    risks_without_controls: List[str] = Field(default_factory=list)
    controls_without_risks: List[str] = Field(default_factory=list)
    controls_without_procedures: List[str] = Field(default_factory=list)

    @property
    def has_warnings(self) -> bool:
        return bool(
            self.risks_without_controls
            or self.controls_without_risks
            or self.controls_without_procedures
        )

# =============================================================================
# ANALYTICS
# =============================================================================

class Dataset(WireModel):
    headers: List[str] = Field(default_factory=list)
    rows: List[List[Any]] = Field(default_factory=list)
    filename: Optional[str] = None


class AnalyticsRunRequest(WireModel):
    test_id: Optional[str] = None
    column_mapping: Optional[Dict[str, Any]] = Field(
        default=None,
        validation_alias=AliasChoices("columnMapping", "column_mapping", "columns"),
    )
    rows: Optional[List[List[Any]]] = None
    headers: List[str] = Field(default_factory=list)


class AnalyticsRunResponse(WireModel):
    success: bool
    test_id: Optional[str] = None
    exception_count: int = 0
    total_rows: int = 0
    headers: List[str] = Field(default_factory=list)
    sample_rows: List[List[Any]] = Field(default_factory=list)
    error: Optional[str] = None


class ResolveColumnsRequest(WireModel):
    test_id: Optional[str] = None
    required_fields: Optional[List[str]] = None
    headers: List[Any] = Field(default_factory=list)


class ResolveColumnsResponse(WireModel):
    mapping: Dict[str, int] = Field(default_factory=dict)
    missing_fields: List[str] = Field(default_factory=list)
    complete: bool = False


class RaisedFinding(WireModel):
    ref: str
    control_id: str = ""
    risk_id: str = ""
    finding_description: str = ""
    risk_rating: str = "Low"
    root_cause: str = ""
    management_response: str = ""
    due_date: str = ""
    status: str = "Open"


class RaiseFindingRequest(WireModel):
    findings: List[RaisedFinding] = Field(default_factory=list)
    test: AnalyticsTest
    exception_count: int = Field(default=0, ge=0)
    total_rows: int = Field(default=0, ge=0)
    work_done: str = ""

# =============================================================================
# PROGRAM OPERATIONS
# =============================================================================

class SanitizeRequest(WireModel):
    program: Dict[str, Any]
    process: Optional[str] = None


class LinkRequest(WireModel):
    program: AuditProgram
    risk_id: str
    control_id: str
    linked: bool = True


class DeleteRequest(WireModel):
    program: AuditProgram
    kind: EntityKind
    id: str


class AddRequest(WireModel):
    program: AuditProgram
    draft: Dict[str, Any] = Field(default_factory=dict)


class UpdateRequest(WireModel):
    program: AuditProgram
    kind: EditableKind
    target: Union[int, str]
    changes: Dict[str, Any] = Field(default_factory=dict)


class DeleteProcedureRequest(WireModel):
    program: AuditProgram
    index: int


class AnalyticsTestRiskRequest(WireModel):
    program: AuditProgram
    test_id: str
    risk_id: Optional[str] = None


class AnalyticsTestToggleRequest(WireModel):
    program: AuditProgram
    test_id: str


class ObjectiveRequest(WireModel):
    program: AuditProgram
    action: ObjectiveAction
    index: Optional[int] = None
    text: Optional[str] = None


class ProgramResponse(WireModel):
    success: bool = True
    program: AuditProgram
    orphans: Optional[OrphanReport] = None
