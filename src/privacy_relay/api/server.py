import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from privacy_relay.api import admin
from privacy_relay.api.routes import router
from privacy_relay.config import Settings, get_settings
from privacy_relay.relay.errors import RelayError
from privacy_relay.relay.orchestrator import RelayService
from privacy_relay.relay.runtime import build_runtimes
from privacy_relay.storage.sessions import SessionStore

logger = logging.getLogger("privacy_relay.server")


def build_relay_service(settings: Settings) -> RelayService:
    """Assemble the store and per-chain runtimes from settings."""
    store = SessionStore.from_url(settings.database_url)
    return RelayService(store, build_runtimes(settings))


def create_app(
    relay: RelayService | None = None,
    settings: Settings | None = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        relay: Pre-built service (tests). Built from settings at start-up if omitted.
        settings: Settings to use. Loaded from the environment if omitted.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        cfg = settings or get_settings()
        logging.basicConfig(
            level=cfg.log_level.upper(),
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )

        service = relay or build_relay_service(cfg)
        app.state.relay = service
        app.state.admin_api_key = (
            cfg.admin_api_key.get_secret_value() if cfg.admin_api_key else None
        )

        enabled = [r.chain.value for r in service.runtimes.values() if r.enabled]
        logger.info(f"Relay ready; enabled chains: {', '.join(enabled) or 'none'}")

        yield

        if relay is None:
            service.close()

    cfg_for_cors = settings or get_settings()

    app = FastAPI(
        title="Privacy Relay",
        description="Custodial transfer relay: verified deposits in, net payouts out",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg_for_cors.cors_allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router)
    app.include_router(admin.router)

    @app.exception_handler(RelayError)
    async def relay_error_handler(request: Request, exc: RelayError):
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={"detail": "Invalid request", "errors": jsonable_encoder(exc.errors())},
        )

    @app.get("/health")
    async def health_check():
        """Simple health check endpoint."""
        return {"status": "ok"}

    return app


app = create_app()
