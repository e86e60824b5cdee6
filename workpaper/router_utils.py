import logging

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from workpaper.errors import WorkpaperError
from workpaper.program_engine import orphan_check
from workpaper.schemas import AuditProgram, ProgramResponse

logger = logging.getLogger(__name__)


def program_response(program: AuditProgram, include_orphans: bool = True) -> ProgramResponse:
    """Wraps a program in the standard response, with advisory orphan warnings."""
    return ProgramResponse(
        program=program,
        orphans=orphan_check(program) if include_orphans else None,
    )


async def workpaper_error_handler(request: Request, exc: WorkpaperError) -> JSONResponse:
    """Reports engine errors as {success: false, error}."""
    logger.warning(f"{request.method} {request.url.path} -> {exc.code}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed request bodies use the same envelope as engine validation errors."""
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = f"Invalid request: {location} {first.get('msg', '')}".strip()
    return JSONResponse(
        status_code=400,
        content={"success": False, "error": message, "code": "VALIDATION_ERROR"},
    )
