"""
Analytics Routes - Population Testing API

Endpoints for:
- Browsing the analytics test library per process, or a single test
- Uploading a dataset
- Suggesting a column mapping for a test
- Running a test
- Raising a finding from a test result
"""

import logging
from typing import List

from fastapi import APIRouter, File, Response, UploadFile

from workpaper import analytics_engine
from workpaper.analytics_library import PROCESSES, catalogue_for, find_test, get_process_label
from workpaper.column_resolver import missing_fields, resolve_columns
from workpaper.dataset_loader import load_dataset
from workpaper.errors import ReferenceIntegrityViolation, ValidationError
from workpaper.findings import raise_finding
from workpaper.schemas import (
    AnalyticsRunRequest,
    AnalyticsRunResponse,
    AnalyticsTest,
    Dataset,
    RaisedFinding,
    RaiseFindingRequest,
    ResolveColumnsRequest,
    ResolveColumnsResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/analytics", tags=["analytics"])


@router.get("/processes")
async def list_processes():
    return {"processes": PROCESSES}


@router.get("/library/{process}", response_model=List[AnalyticsTest])
async def get_library(process: str):
    """Catalogued tests for a process (unmapped to any risk)."""
    tests = catalogue_for(process)
    logger.info(f"Library for {get_process_label(process)}: {len(tests)} test(s)")
    return tests


@router.get("/library/tests/{test_id}", response_model=AnalyticsTest)
async def get_library_test(test_id: str):
    """One catalogued test, whichever process it belongs to."""
    test = find_test(test_id)
    if test is None:
        raise ReferenceIntegrityViolation(f"Analytics test {test_id} does not exist", target=test_id)
    return test


@router.post("/upload", response_model=Dataset)
async def upload_dataset(file: UploadFile = File(...)):
    contents = await file.read()
    return load_dataset(file.filename, contents)


@router.post("/resolve", response_model=ResolveColumnsResponse)
async def resolve(request: ResolveColumnsRequest):
    """Suggest which header holds each field the test needs."""
    if request.required_fields is not None:
        fields = request.required_fields
    elif request.test_id:
        fields = analytics_engine.get_rule(request.test_id).required_fields
    else:
        raise ValidationError("Missing required fields: testId or requiredFields")

    mapping = resolve_columns(fields, request.headers)
    missing = missing_fields(fields, mapping)
    return ResolveColumnsResponse(mapping=mapping, missing_fields=missing, complete=not missing)


@router.post("/run", response_model=AnalyticsRunResponse)
async def run_test(request: AnalyticsRunRequest, response: Response):
    result = analytics_engine.run_analytics(request)
    if not result.success:
        response.status_code = 500
    return result


@router.post("/findings", response_model=List[RaisedFinding])
async def create_finding(request: RaiseFindingRequest):
    return raise_finding(
        request.findings,
        request.test,
        request.exception_count,
        request.total_rows,
        request.work_done,
    )
