"""
SmartDiff Backend - FastAPI Application Entry Point
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from routers import config, diff, documents, export, history, workflow
from services.dependencies import get_services
from services.exceptions import (
    CollaboratorError,
    InvalidTransitionError,
    NotFoundError,
    RequestSupersededError,
    SmartDiffError,
    ValidationError,
    WorkflowBusyError,
)

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s [%(name)s] %(message)s")
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager - startup and shutdown logic"""
    logger.info("Starting SmartDiff Backend...")
    services = get_services()
    logger.info(
        "Workspace loaded from %s: %d document(s), %d history record(s)",
        services.config_manager.data_dir,
        len(services.repository.list_documents()),
        len(services.history),
    )
    yield
    logger.info("Shutting down SmartDiff Backend...")


app = FastAPI(
    title="SmartDiff Backend",
    description="Line-accurate change reports and AI-assisted revisions for evolving documents",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(ValidationError)
async def validation_handler(request: Request, exc: ValidationError):
    status = 409 if isinstance(exc, (WorkflowBusyError, InvalidTransitionError)) else 400
    return JSONResponse(status_code=status, content={"detail": str(exc)})


@app.exception_handler(RequestSupersededError)
async def superseded_handler(request: Request, exc: RequestSupersededError):
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(CollaboratorError)
async def collaborator_handler(request: Request, exc: CollaboratorError):
    logger.error("Collaborator call failed on %s: %s", request.url.path, exc.detail)
    return JSONResponse(status_code=502, content={"detail": exc.user_message})


@app.exception_handler(SmartDiffError)
async def service_error_handler(request: Request, exc: SmartDiffError):
    logger.error("Request %s failed: %s", request.url.path, exc)
    return JSONResponse(status_code=500, content={"detail": str(exc)})


app.include_router(documents.router, prefix="/api", tags=["documents"])
app.include_router(workflow.router, prefix="/api/documents", tags=["workflow"])
app.include_router(export.router, prefix="/api/documents", tags=["export"])
app.include_router(diff.router, prefix="/api/diff", tags=["diff"])
app.include_router(history.router, prefix="/api/history", tags=["history"])
app.include_router(config.router, prefix="/api/config", tags=["config"])


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "service": "smartdiff-backend"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
