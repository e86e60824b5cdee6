import logging

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from workpaper import config
from workpaper import analytics_routes, program_routes, system_routes
from workpaper.errors import WorkpaperError
from workpaper.router_utils import request_validation_handler, workpaper_error_handler

# Configure logging
logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL, logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Workpaper Engine API",
    description="Audit program integrity and population analytics testing",
    version=config.VERSION,
)

allowed_origins = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]
allowed_origins.extend(config.CORS_ORIGINS)

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(WorkpaperError, workpaper_error_handler)
app.add_exception_handler(RequestValidationError, request_validation_handler)

app.include_router(system_routes.router)
app.include_router(program_routes.router)
app.include_router(analytics_routes.router)

logger.info(f"Workpaper Engine API ready ({config.ENVIRONMENT})")
