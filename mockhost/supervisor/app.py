from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
import asyncio
import logging
import traceback

from mockhost.errors import MockHostError, UnknownIO
from .api_configs import router as configs_router
from .api_mock import router as mock_router
from .config_store import ConfigStore
from .port_policy import PortPolicy
from .process_supervisor import ProcessSupervisor
from .registry import InstanceRegistry
from .settings import Settings, load_settings

logger = logging.getLogger("mockhost.supervisor")
reconcile_logger = logging.getLogger("mockhost.supervisor.reconciler")


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler()],
    )


async def _reconcile_loop(registry: InstanceRegistry, interval_seconds: float):
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            evicted = await registry.reconcile()
            if evicted:
                reconcile_logger.info("Evicted %d exited mock servers", len(evicted))
        except Exception as e:
            reconcile_logger.error("Liveness reconciliation error: %s", e)


def create_app(
    settings: Settings | None = None,
    *,
    port_policy: PortPolicy | None = None,
    supervisor: ProcessSupervisor | None = None,
) -> FastAPI:
    """Build the management API around one registry and config store."""
    settings = settings or load_settings()
    configure_logging(settings.log_level)

    store = ConfigStore(settings.configs_dir, settings.upload_dir)
    supervisor = supervisor or ProcessSupervisor(
        settings.mock_command,
        settings.logs_dir,
        terminate_timeout=settings.terminate_timeout,
        startup_grace=settings.startup_grace,
    )
    registry = InstanceRegistry(store, supervisor, port_policy)

    app = FastAPI(title="Mock Host Supervisor")
    app.state.settings = settings
    app.state.store = store
    app.state.registry = registry
    app.state.reconcile_task = None
    app.include_router(mock_router)
    app.include_router(configs_router)

    @app.on_event("startup")
    async def startup_event():
        settings.ensure_dirs()
        logger.info(
            "Mock host ready (configs=%s logs=%s command=%s)",
            settings.configs_dir,
            settings.logs_dir,
            " ".join(settings.mock_command),
        )
        if settings.reconcile_interval > 0:
            app.state.reconcile_task = asyncio.create_task(
                _reconcile_loop(registry, settings.reconcile_interval)
            )

    @app.on_event("shutdown")
    async def shutdown_event():
        task = app.state.reconcile_task
        if task:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            app.state.reconcile_task = None
        await registry.shutdown()
        logger.info("Mock servers stopped.")

    @app.exception_handler(MockHostError)
    async def mockhost_error_handler(request: Request, exc: MockHostError):
        payload = exc.to_payload()
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        if isinstance(exc, UnknownIO):
            if settings.development:
                payload["detail"] = exc.message
            else:
                payload["error"] = "Internal server error"
        return JSONResponse(status_code=exc.status_code, content=payload)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.error(
            "Unhandled error for %s %s",
            request.method,
            request.url.path,
            exc_info=(type(exc), exc, exc.__traceback__),
        )
        payload = {"error": "Internal server error"}
        if settings.development:
            payload["detail"] = str(exc)
            payload["stack"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        return JSONResponse(status_code=500, content=payload)

    @app.get("/api/health")
    async def health_check():
        return {"status": "healthy"}

    return app
