"""
Program Routes - Audit Program Editing API

Stateless endpoints over an audit program value. Each request carries the
current program and receives the updated program back; the caller owns
persistence.
"""

import logging

from fastapi import APIRouter

from workpaper import program_engine
from workpaper.errors import ValidationError
from workpaper.risk_mapper import attach_analytics
from workpaper.router_utils import program_response
from workpaper.schemas import (
    AddRequest,
    AnalyticsTestRiskRequest,
    AnalyticsTestToggleRequest,
    AuditProgram,
    DeleteProcedureRequest,
    DeleteRequest,
    LinkRequest,
    ObjectiveAction,
    ObjectiveRequest,
    OrphanReport,
    ProgramResponse,
    SanitizeRequest,
    UpdateRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/program", tags=["program"])


@router.post("/sanitize", response_model=ProgramResponse)
async def sanitize_program(request: SanitizeRequest):
    """
    Accept raw generator output, drop dangling references and, when a process
    is given, attach that process's analytics tests mapped to the risks.
    """
    program = program_engine.sanitize(program_engine.decode_program(request.program))
    process = request.process or program.process
    if process:
        program = attach_analytics(program, process)

    problems = program_engine.check_integrity(program)
    if problems:
        logger.warning(f"Sanitized program still has {len(problems)} integrity issue(s): {problems[:3]}")
    return program_response(program)


@router.post("/link", response_model=ProgramResponse)
async def link_entities(request: LinkRequest):
    program = program_engine.link(request.program, request.risk_id, request.control_id, request.linked)
    return program_response(program)


@router.post("/delete", response_model=ProgramResponse)
async def delete_entity(request: DeleteRequest):
    program = program_engine.delete_entity(request.program, request.kind, request.id)
    return program_response(program)


@router.post("/add-risk", response_model=ProgramResponse)
async def add_risk(request: AddRequest):
    return program_response(program_engine.add_risk(request.program, request.draft))


@router.post("/add-control", response_model=ProgramResponse)
async def add_control(request: AddRequest):
    return program_response(program_engine.add_control(request.program, request.draft))


@router.post("/add-procedure", response_model=ProgramResponse)
async def add_procedure(request: AddRequest):
    return program_response(program_engine.add_procedure(request.program, request.draft))


@router.post("/update", response_model=ProgramResponse)
async def update_entity(request: UpdateRequest):
    program = program_engine.update_entity(request.program, request.kind, request.target, request.changes)
    return program_response(program)


@router.post("/delete-procedure", response_model=ProgramResponse)
async def delete_procedure(request: DeleteProcedureRequest):
    return program_response(program_engine.delete_procedure(request.program, request.index))


@router.post("/tests/risk", response_model=ProgramResponse)
async def set_test_risk(request: AnalyticsTestRiskRequest):
    program = program_engine.set_test_risk(request.program, request.test_id, request.risk_id)
    return program_response(program, include_orphans=False)


@router.post("/tests/toggle", response_model=ProgramResponse)
async def toggle_test(request: AnalyticsTestToggleRequest):
    program = program_engine.toggle_test(request.program, request.test_id)
    return program_response(program, include_orphans=False)


@router.post("/orphans", response_model=OrphanReport)
async def orphans(program: AuditProgram):
    """Advisory warnings for display; never blocks anything."""
    return program_engine.orphan_check(program)


@router.post("/objectives", response_model=ProgramResponse)
async def edit_objectives(request: ObjectiveRequest):
    """Add, update or delete an audit objective (by index)."""
    if request.action is ObjectiveAction.ADD:
        program = program_engine.add_objective(request.program, request.text)
    elif request.index is None:
        raise ValidationError("Missing required fields: index")
    elif request.action is ObjectiveAction.UPDATE:
        program = program_engine.update_objective(request.program, request.index, request.text or "")
    else:
        program = program_engine.delete_objective(request.program, request.index)
    return program_response(program, include_orphans=False)
