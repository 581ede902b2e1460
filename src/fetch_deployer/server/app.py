"""FastAPI app factory.

Endpoints are intentionally thin wrappers over the deployment services.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Form, HTTPException, Request
from fastapi.responses import JSONResponse

from fetch_deployer import __version__
from fetch_deployer.config import DeployerSettings
from fetch_deployer.deploy import DeploymentFailed, DeploymentRecord
from fetch_deployer.git import FetchError
from fetch_deployer.server.models import DeployResponse, HealthResponse, SettingValue
from fetch_deployer.services import build_services

logger = logging.getLogger(__name__)


def create_app(settings: DeployerSettings | None = None) -> FastAPI:
    settings = settings or DeployerSettings()
    services = build_services(settings)

    app = FastAPI(
        title="Fetch Deployer",
        version=__version__,
        description="Webhook-triggered fetch and deploy for a single environment.",
        openapi_url="/api/openapi.json",
        docs_url="/api/docs",
        redoc_url="/api/redoc",
    )

    # Expose services for request handlers (and tests) that want them.
    app.state.settings = settings
    app.state.services = services

    @app.exception_handler(FetchError)
    def fetch_failed(_request: Request, exc: FetchError) -> JSONResponse:
        logger.error("Fetch failed", extra={"error": str(exc)})
        return JSONResponse(status_code=500, content={"detail": str(exc)})

    @app.exception_handler(DeploymentFailed)
    def deployment_failed(_request: Request, exc: DeploymentFailed) -> JSONResponse:
        return JSONResponse(
            status_code=500,
            content={"detail": str(exc), "deployment_id": exc.deployment_id},
        )

    # Sync endpoint: FastAPI runs it on the threadpool, so concurrent
    # deliveries reach the handler on separate threads.
    @app.post("/deploy", response_model=DeployResponse)
    def deploy(request: Request, payload: str | None = Form(default=None)) -> JSONResponse:
        result = services.handler.handle(payload, request.headers)
        body = DeployResponse(
            status=result.state.value, message=result.message, cycles=result.cycles
        )
        return JSONResponse(status_code=result.status_code, content=body.model_dump())

    @app.get("/api/health", response_model=HealthResponse)
    def health() -> HealthResponse:
        return HealthResponse(
            status="ok",
            version=__version__,
            deployment_in_progress=services.lock.is_held(),
            pending=services.markers.exists(),
        )

    @app.get("/api/deployments", response_model=list[DeploymentRecord])
    def list_deployments() -> list[DeploymentRecord]:
        return services.deployments.list()

    @app.get("/api/deployments/{deployment_id}", response_model=DeploymentRecord)
    def get_deployment(deployment_id: str) -> DeploymentRecord:
        record = services.deployments.get(deployment_id)
        if record is None:
            raise HTTPException(status_code=404, detail="Deployment not found")
        return record

    @app.get("/api/settings")
    def get_settings() -> dict[str, str]:
        return services.settings_store.all()

    @app.put("/api/settings/{key}")
    def put_setting(key: str, body: SettingValue) -> dict[str, str]:
        if not body.value.strip():
            raise HTTPException(status_code=400, detail="Setting value must not be empty")
        services.settings_store.set_value(key, body.value.strip())
        return services.settings_store.all()

    return app
