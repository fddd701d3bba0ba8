from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging

from app import config, state
from app.api import deployments, health, runtimes
from app.services.deployment_service import DeploymentService
from app.services.errors import (
    ClusterApiError,
    ConfigValidationError,
    NotFoundError,
    extract_error_message,
)
from app.services.kubernetes import KubectlClient

logging.basicConfig(level=config.LOG_LEVEL, format=config.LOG_FORMAT)
logger = logging.getLogger("kubefoundry-api")

app = FastAPI(title="KubeFoundry API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=[config.CORS_ORIGIN],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router, prefix="/api")
app.include_router(deployments.router, prefix="/api")
app.include_router(runtimes.router, prefix="/api")


@app.on_event("startup")
async def startup_event():
    """Register runtimes and build the deployment service"""
    registry = state.register_default_providers()
    state.deployment_service = DeploymentService(registry, KubectlClient())
    logger.info(f"Registered providers: {registry.list_provider_ids()}")


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse({"detail": str(exc)}, status_code=404)


@app.exception_handler(ConfigValidationError)
async def validation_error_handler(request: Request, exc: ConfigValidationError):
    return JSONResponse({"detail": str(exc), "errors": exc.errors}, status_code=400)


@app.exception_handler(ClusterApiError)
async def cluster_error_handler(request: Request, exc: ClusterApiError):
    message = extract_error_message(exc)
    logger.error(
        f"Kubernetes API error on {request.method} {request.url.path}: "
        f"{message} (status={exc.status_code}, reason={exc.reason})"
    )
    return JSONResponse({"detail": message}, status_code=exc.status_code)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=config.HOST, port=config.PORT)
