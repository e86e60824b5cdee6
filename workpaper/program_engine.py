"""
Program Engine
Integrity rules for the Risk / Control / Procedure graph of an audit program.

Every operation takes an AuditProgram and returns a new one; the argument is
never modified. After any mutation the program satisfies:

1. Control.mitigates_risks and Risk.related_controls mirror each other
2. every Procedure.control_id names an existing control
3. risk and control ids run R001..R00N / C001..C00M with no gaps
4. every non-null AnalyticsTest.risk_id names an existing risk

sanitize() is the entry point for untrusted generator output. It only removes
references to entities that do not exist; it does not repair one-sided links
between entities that do (those can only be created or removed via link()).
"""

import logging
from collections.abc import Mapping
from typing import Any, Dict, Iterable, List, Optional, Set, Union

from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from workpaper.errors import ReferenceIntegrityViolation, ValidationError
from workpaper.schemas import (
    AnalyticsTest,
    AuditProgram,
    Control,
    EditableKind,
    EntityKind,
    OrphanReport,
    Procedure,
    Risk,
    CONTROL_TYPES,
    RATINGS,
    TESTING_METHODS,
)

logger = logging.getLogger(__name__)

RISK_PREFIX = "R"
CONTROL_PREFIX = "C"

_TEXT_FIELDS = {
    EditableKind.RISK: ("category", "description", "rating", "assertion", "framework_reference"),
    EditableKind.CONTROL: (
        "description", "type", "frequency", "owner", "owner_role",
        "owner_department", "framework_reference",
    ),
    EditableKind.PROCEDURE: (
        "procedure", "testing_method", "sample_size", "expected_evidence", "framework_reference",
    ),
}

# Fields that change only through link/delete, never through update.
_REFERENCE_FIELDS = {"id", "related_controls", "mitigates_risks"}

# Fields restricted to a fixed set of values when set through add or update.
_CHOICES = {
    "rating": RATINGS,
    "type": CONTROL_TYPES,
    "testing_method": TESTING_METHODS,
}

DEFAULT_OBJECTIVE = "New objective"

DEFAULT_RISK = {
    "category": "Financial",
    "description": "New risk description",
    "rating": "Medium",
    "assertion": "Completeness",
}

DEFAULT_CONTROL = {
    "description": "New control description",
    "type": "Preventive",
    "frequency": "Monthly",
}

DEFAULT_PROCEDURE = {
    "procedure": "New audit procedure description",
    "testing_method": "Inquiry",
    "sample_size": "25 samples",
    "expected_evidence": "Documentation or evidence to be reviewed",
    "framework_reference": "IIA Standard 2310: Identifying Information",
}

# ============================================================================
# Helpers
# ============================================================================

def format_id(prefix: str, sequence: int) -> str:
    """R + 3-digit zero-padded sequence, e.g. format_id('R', 1) == 'R001'."""
    return f"{prefix}{sequence:03d}"


def _clone(program: AuditProgram) -> AuditProgram:
    return program.model_copy(deep=True)


def _get(data: Mapping, name: str) -> Any:
    """Read a field by its camelCase wire name, falling back to snake_case."""
    camel = to_camel(name)
    if camel in data:
        return data[camel]
    return data.get(name)


def _text_values(data: Mapping, names: Iterable[str]) -> Dict[str, str]:
    values = {}
    for name in names:
        value = _get(data, name)
        if isinstance(value, (str, int, float)) and not isinstance(value, bool):
            values[name] = str(value)
    return values


def _id_list(value: Any) -> List[str]:
    """String ids from a list-like value, in order, duplicates removed."""
    if not isinstance(value, (list, tuple)):
        return []
    ids = []
    for item in value:
        if isinstance(item, (str, int)) and not isinstance(item, bool):
            text = str(item).strip()
            if text and text not in ids:
                ids.append(text)
    return ids


def _unique_in(ids: Iterable[str], allowed: Set[str]) -> List[str]:
    kept = []
    for item in ids:
        if item in allowed and item not in kept:
            kept.append(item)
    return kept


def _next_id(prefix: str, existing: Iterable[str]) -> str:
    taken = set(existing)
    sequence = len(taken) + 1
    while format_id(prefix, sequence) in taken:
        sequence += 1
    return format_id(prefix, sequence)


def _kind(enum, value):
    if isinstance(value, enum):
        return value
    try:
        return enum(str(value).strip().lower())
    except ValueError:
        raise ValidationError(f"Unknown entity kind: {value}")


def _check_choices(values: Mapping) -> None:
    for name, allowed in _CHOICES.items():
        if name in values and values[name] not in allowed:
            raise ValidationError(
                f"Invalid {to_camel(name)} '{values[name]}'. Use one of: {', '.join(allowed)}",
                target=name,
            )


def _find_risk(program: AuditProgram, risk_id: str) -> Risk:
    for risk in program.risks:
        if risk.id == risk_id:
            return risk
    raise ReferenceIntegrityViolation(f"Risk {risk_id} does not exist", target=risk_id)


def _find_control(program: AuditProgram, control_id: str) -> Control:
    for control in program.controls:
        if control.id == control_id:
            return control
    raise ReferenceIntegrityViolation(f"Control {control_id} does not exist", target=control_id)


def _find_test(program: AuditProgram, test_id: str) -> AnalyticsTest:
    for test in program.analytics_tests:
        if test.id == test_id:
            return test
    raise ReferenceIntegrityViolation(f"Analytics test {test_id} does not exist", target=test_id)

# ============================================================================
# Decoding untrusted input
# ============================================================================

def _decode_risk(data: Mapping) -> Optional[Risk]:
    risk_id = str(_get(data, "id") or "").strip()
    if not risk_id:
        return None
    refs = _get(data, "regulatory_refs")
    return Risk(
        id=risk_id,
        related_controls=_id_list(_get(data, "related_controls")),
        regulatory_refs=[str(r) for r in refs if r is not None] if isinstance(refs, list) else None,
        **_text_values(data, _TEXT_FIELDS[EditableKind.RISK]),
    )


def _decode_control(data: Mapping) -> Optional[Control]:
    control_id = str(_get(data, "id") or "").strip()
    if not control_id:
        return None
    return Control(
        id=control_id,
        mitigates_risks=_id_list(_get(data, "mitigates_risks")),
        **_text_values(data, _TEXT_FIELDS[EditableKind.CONTROL]),
    )


def _decode_procedure(data: Mapping) -> Procedure:
    analytics = _get(data, "analytics_test")
    return Procedure(
        control_id=str(_get(data, "control_id") or "").strip(),
        analytics_test=dict(analytics) if isinstance(analytics, Mapping) else None,
        **_text_values(data, _TEXT_FIELDS[EditableKind.PROCEDURE]),
    )


def _decode_tests(value: Any) -> List[AnalyticsTest]:
    tests = []
    for item in value if isinstance(value, list) else []:
        if not isinstance(item, Mapping):
            continue
        try:
            tests.append(AnalyticsTest.model_validate(item))
        except PydanticValidationError as e:
            logger.warning(f"Dropping malformed analytics test entry: {e.error_count()} error(s)")
    return tests


def decode_program(raw: Any) -> AuditProgram:
    """
    Build typed records from untrusted generator output.

    Missing collections become empty, non-object entries and risks/controls
    without an id are dropped, text fields are coerced to strings and
    reference lists keep only string/integer ids. Raises ValidationError only
    when the payload is not an object at all.
    """
    if isinstance(raw, AuditProgram):
        return _clone(raw)
    if not isinstance(raw, Mapping):
        raise ValidationError("Program must be a JSON object")

    def entries(name: str) -> List[Mapping]:
        value = _get(raw, name)
        return [item for item in value if isinstance(item, Mapping)] if isinstance(value, list) else []

    risks = [r for r in (_decode_risk(d) for d in entries("risks")) if r is not None]
    controls = [c for c in (_decode_control(d) for d in entries("controls")) if c is not None]
    procedures = [_decode_procedure(d) for d in entries("audit_procedures")]

    dropped = len(entries("risks")) - len(risks) + len(entries("controls")) - len(controls)
    if dropped:
        logger.warning(f"Dropped {dropped} risk/control record(s) without an id")

    objectives = _get(raw, "audit_objectives")
    process = _get(raw, "process")

    known = set()
    for name in AuditProgram.model_fields:
        known.update({name, to_camel(name)})
    extras = {k: v for k, v in raw.items() if isinstance(k, str) and k not in known}

    return AuditProgram(
        risks=risks,
        controls=controls,
        audit_procedures=procedures,
        audit_objectives=[str(o) for o in objectives if o is not None] if isinstance(objectives, list) else [],
        analytics_tests=_decode_tests(_get(raw, "analytics_tests")),
        process=str(process) if isinstance(process, str) and process else None,
        **extras,
    )

# ============================================================================
# Sanitize
# ============================================================================

def _first_by_id(entities: List[Any]) -> List[Any]:
    seen = set()
    kept = []
    for entity in entities:
        if entity.id not in seen:
            seen.add(entity.id)
            kept.append(entity)
    return kept


def sanitize(program: AuditProgram) -> AuditProgram:
    """
    Remove every reference to a risk or control that does not exist.

    A risk or control id that appears more than once keeps only its first
    record.
    """
    result = _clone(program)
    risks = _first_by_id(result.risks)
    controls = _first_by_id(result.controls)
    duplicates = len(result.risks) - len(risks) + len(result.controls) - len(controls)
    if duplicates:
        logger.warning(f"Sanitize dropped {duplicates} risk/control record(s) with a repeated id")
    result.risks, result.controls = risks, controls

    risk_ids = {r.id for r in result.risks}
    control_ids = {c.id for c in result.controls}
    removed = 0

    for risk in result.risks:
        kept = _unique_in(risk.related_controls, control_ids)
        removed += len(risk.related_controls) - len(kept)
        risk.related_controls = kept

    for control in result.controls:
        kept = _unique_in(control.mitigates_risks, risk_ids)
        removed += len(control.mitigates_risks) - len(kept)
        control.mitigates_risks = kept

    procedures = [p for p in result.audit_procedures if p.control_id in control_ids]
    removed += len(result.audit_procedures) - len(procedures)
    result.audit_procedures = procedures

    for test in result.analytics_tests:
        if test.risk_id is not None and test.risk_id not in risk_ids:
            test.risk_id = None
            removed += 1

    if removed:
        logger.info(f"Sanitize removed {removed} dangling reference(s)")
    return result

# ============================================================================
# Link / Unlink
# ============================================================================

def link(program: AuditProgram, risk_id: str, control_id: str, linked: bool = True) -> AuditProgram:
    """Add or remove a risk-control link on both sides at once."""
    result = _clone(program)
    risk = _find_risk(result, risk_id)
    control = _find_control(result, control_id)

    if linked:
        if control_id not in risk.related_controls:
            risk.related_controls.append(control_id)
        if risk_id not in control.mitigates_risks:
            control.mitigates_risks.append(risk_id)
    else:
        risk.related_controls = [c for c in risk.related_controls if c != control_id]
        control.mitigates_risks = [r for r in control.mitigates_risks if r != risk_id]

    logger.info(f"{'Linked' if linked else 'Unlinked'} {risk_id} <-> {control_id}")
    return result


def unlink(program: AuditProgram, risk_id: str, control_id: str) -> AuditProgram:
    return link(program, risk_id, control_id, linked=False)

# ============================================================================
# Delete with renumbering
# ============================================================================

def delete_entity(program: AuditProgram, kind: Union[EntityKind, str], entity_id: str) -> AuditProgram:
    """
    Delete a risk or control and renumber the survivors.

    The complete old -> new id map is built from the survivors first; only
    then are references rewritten (deleted id dropped, others remapped) and
    the survivors given their new ids.
    """
    kind = _kind(EntityKind, kind)
    result = _clone(program)
    if kind is EntityKind.RISK:
        entities, prefix = result.risks, RISK_PREFIX
    else:
        entities, prefix = result.controls, CONTROL_PREFIX

    if not any(e.id == entity_id for e in entities):
        raise ReferenceIntegrityViolation(
            f"{kind.value.capitalize()} {entity_id} does not exist", target=entity_id
        )

    # 1-2: capture survivors and the full renumbering map
    survivors = [e for e in entities if e.id != entity_id]
    new_ids = [format_id(prefix, i) for i in range(1, len(survivors) + 1)]
    # references to a repeated id follow its first record
    renumber = {}
    for entity, new_id in zip(survivors, new_ids):
        renumber.setdefault(entity.id, new_id)

    def remap(ids: List[str]) -> List[str]:
        return [renumber[i] for i in ids if i != entity_id and i in renumber]

    # 3: rewrite every reference
    if kind is EntityKind.RISK:
        for control in result.controls:
            control.mitigates_risks = remap(control.mitigates_risks)
        for test in result.analytics_tests:
            if test.risk_id is not None:
                test.risk_id = renumber.get(test.risk_id)
    else:
        for risk in result.risks:
            risk.related_controls = remap(risk.related_controls)
        procedures = []
        for procedure in result.audit_procedures:
            new_id = renumber.get(procedure.control_id)
            if procedure.control_id != entity_id and new_id is not None:
                procedure.control_id = new_id
                procedures.append(procedure)
        result.audit_procedures = procedures

    # 4: survivors take their new ids
    for entity, new_id in zip(survivors, new_ids):
        entity.id = new_id
    if kind is EntityKind.RISK:
        result.risks = survivors
    else:
        result.controls = survivors

    logger.info(f"Deleted {kind.value} {entity_id}; {len(survivors)} renumbered")
    return result


def delete_risk(program: AuditProgram, risk_id: str) -> AuditProgram:
    return delete_entity(program, EntityKind.RISK, risk_id)


def delete_control(program: AuditProgram, control_id: str) -> AuditProgram:
    return delete_entity(program, EntityKind.CONTROL, control_id)


def delete_procedure(program: AuditProgram, index: int) -> AuditProgram:
    result = _clone(program)
    if not 0 <= index < len(result.audit_procedures):
        raise ReferenceIntegrityViolation(f"Procedure {index} does not exist", target=str(index))
    del result.audit_procedures[index]
    return result

# ============================================================================
# Add
# ============================================================================

def add_risk(program: AuditProgram, draft: Optional[Mapping] = None) -> AuditProgram:
    """Append a risk with the next id; draft control links are applied on both sides."""
    draft = draft or {}
    result = _clone(program)
    values = {**DEFAULT_RISK, **_text_values(draft, _TEXT_FIELDS[EditableKind.RISK])}
    _check_choices(values)
    refs = _get(draft, "regulatory_refs")
    risk = Risk(
        id=_next_id(RISK_PREFIX, (r.id for r in result.risks)),
        regulatory_refs=[str(r) for r in refs] if isinstance(refs, list) else None,
        **values,
    )
    related = _id_list(_get(draft, "related_controls"))
    for control_id in related:
        _find_control(result, control_id)

    result.risks.append(risk)
    for control_id in related:
        result = link(result, risk.id, control_id, True)
    logger.info(f"Added risk {risk.id}")
    return result


def add_control(program: AuditProgram, draft: Optional[Mapping] = None) -> AuditProgram:
    """Append a control with the next id; draft risk links are applied on both sides."""
    draft = draft or {}
    result = _clone(program)
    values = {**DEFAULT_CONTROL, **_text_values(draft, _TEXT_FIELDS[EditableKind.CONTROL])}
    _check_choices(values)
    control = Control(id=_next_id(CONTROL_PREFIX, (c.id for c in result.controls)), **values)
    mitigates = _id_list(_get(draft, "mitigates_risks"))
    for risk_id in mitigates:
        _find_risk(result, risk_id)

    result.controls.append(control)
    for risk_id in mitigates:
        result = link(result, risk_id, control.id, True)
    logger.info(f"Added control {control.id}")
    return result


def add_procedure(program: AuditProgram, draft: Optional[Mapping] = None) -> AuditProgram:
    """Append a procedure; it tests the draft's control, or the first control."""
    draft = draft or {}
    result = _clone(program)
    control_id = str(_get(draft, "control_id") or "").strip()
    if not control_id:
        if not result.controls:
            raise ReferenceIntegrityViolation("Cannot add a procedure to a program with no controls")
        control_id = result.controls[0].id
    _find_control(result, control_id)

    analytics = _get(draft, "analytics_test")
    values = {**DEFAULT_PROCEDURE, **_text_values(draft, _TEXT_FIELDS[EditableKind.PROCEDURE])}
    _check_choices(values)
    result.audit_procedures.append(Procedure(
        control_id=control_id,
        analytics_test=dict(analytics) if isinstance(analytics, Mapping) else None,
        **values,
    ))
    return result

# ============================================================================
# Field updates
# ============================================================================

def _field_names(model) -> Dict[str, str]:
    names = {}
    for name in model.model_fields:
        names[name] = name
        names[to_camel(name)] = name
    return names


def update_entity(
    program: AuditProgram,
    kind: Union[EditableKind, str],
    target: Union[int, str],
    changes: Mapping,
) -> AuditProgram:
    """
    Change plain fields of a risk, control (by id or index) or procedure (by index).

    Ids and link lists are not editable here. A procedure may be pointed at
    another existing control.
    """
    kind = _kind(EditableKind, kind)
    result = _clone(program)
    collection = {
        EditableKind.RISK: result.risks,
        EditableKind.CONTROL: result.controls,
        EditableKind.PROCEDURE: result.audit_procedures,
    }[kind]

    if isinstance(target, int) and not isinstance(target, bool):
        if not 0 <= target < len(collection):
            raise ReferenceIntegrityViolation(f"{kind.value.capitalize()} {target} does not exist", target=str(target))
        index = target
    else:
        matches = [i for i, e in enumerate(collection) if getattr(e, "id", None) == target]
        if not matches:
            raise ReferenceIntegrityViolation(f"{kind.value.capitalize()} {target} does not exist", target=str(target))
        index = matches[0]

    entity = collection[index]
    known = _field_names(type(entity))
    updates = {}
    for key, value in (changes or {}).items():
        name = known.get(key)
        if name is None:
            raise ValidationError(f"Unknown {kind.value} field: {key}", target=key)
        if name in _REFERENCE_FIELDS:
            raise ValidationError(f"Field {key} cannot be changed directly; use link or delete", target=key)
        updates[name] = value

    _check_choices(updates)
    if "control_id" in updates:
        _find_control(result, str(updates["control_id"]))

    try:
        collection[index] = type(entity).model_validate({**entity.model_dump(), **updates})
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid {kind.value} update: {e.errors()[0].get('msg', 'invalid value')}")
    return result


def update_risk(program: AuditProgram, risk_id: str, changes: Mapping) -> AuditProgram:
    return update_entity(program, EditableKind.RISK, risk_id, changes)


def update_control(program: AuditProgram, control_id: str, changes: Mapping) -> AuditProgram:
    return update_entity(program, EditableKind.CONTROL, control_id, changes)


def update_procedure(program: AuditProgram, index: int, changes: Mapping) -> AuditProgram:
    return update_entity(program, EditableKind.PROCEDURE, index, changes)

# ============================================================================
# Analytics test assignment
# ============================================================================

def set_test_risk(program: AuditProgram, test_id: str, risk_id: Optional[str]) -> AuditProgram:
    """Point an analytics test at another risk (or at none)."""
    result = _clone(program)
    test = _find_test(result, test_id)
    if risk_id:
        _find_risk(result, risk_id)
    test.risk_id = risk_id or None
    return result


def toggle_test(program: AuditProgram, test_id: str) -> AuditProgram:
    result = _clone(program)
    test = _find_test(result, test_id)
    test.included = not test.included
    return result

# ============================================================================
# Audit objectives
# ============================================================================

def _objective_index(program: AuditProgram, index: int) -> int:
    if isinstance(index, bool) or not 0 <= index < len(program.audit_objectives):
        raise ReferenceIntegrityViolation(f"Objective {index} does not exist", target=str(index))
    return index


def add_objective(program: AuditProgram, text: Optional[str] = None) -> AuditProgram:
    result = _clone(program)
    result.audit_objectives.append(DEFAULT_OBJECTIVE if text is None else str(text))
    return result


def update_objective(program: AuditProgram, index: int, text: str) -> AuditProgram:
    result = _clone(program)
    result.audit_objectives[_objective_index(result, index)] = str(text)
    return result


def delete_objective(program: AuditProgram, index: int) -> AuditProgram:
    result = _clone(program)
    del result.audit_objectives[_objective_index(result, index)]
    return result

# ============================================================================
# Queries
# ============================================================================

def orphan_check(program: AuditProgram) -> OrphanReport:
    """Advisory warnings only: nothing here is rejected or fixed."""
    tested = {p.control_id for p in program.audit_procedures}
    return OrphanReport(
        risks_without_controls=[r.id for r in program.risks if not r.related_controls],
        controls_without_risks=[c.id for c in program.controls if not c.mitigates_risks],
        controls_without_procedures=[c.id for c in program.controls if c.id not in tested],
    )


def check_integrity(program: AuditProgram) -> List[str]:
    """Describe every broken invariant; an empty list means the program is consistent."""
    problems = []
    risks = {r.id: r for r in program.risks}
    controls = {c.id: c for c in program.controls}

    for control in program.controls:
        for risk_id in control.mitigates_risks:
            if risk_id not in risks:
                problems.append(f"{control.id} mitigates unknown risk {risk_id}")
            elif control.id not in risks[risk_id].related_controls:
                problems.append(f"{control.id} -> {risk_id} is not mirrored on the risk")
    for risk in program.risks:
        for control_id in risk.related_controls:
            if control_id not in controls:
                problems.append(f"{risk.id} references unknown control {control_id}")
            elif risk.id not in controls[control_id].mitigates_risks:
                problems.append(f"{risk.id} -> {control_id} is not mirrored on the control")

    for index, procedure in enumerate(program.audit_procedures):
        if procedure.control_id not in controls:
            problems.append(f"Procedure {index} references unknown control {procedure.control_id}")

    for prefix, entities in ((RISK_PREFIX, program.risks), (CONTROL_PREFIX, program.controls)):
        expected = [format_id(prefix, i) for i in range(1, len(entities) + 1)]
        if [e.id for e in entities] != expected:
            problems.append(f"{prefix} ids are not a dense sequence")

    for test in program.analytics_tests:
        if test.risk_id is not None and test.risk_id not in risks:
            problems.append(f"Analytics test {test.id} references unknown risk {test.risk_id}")

    return problems
