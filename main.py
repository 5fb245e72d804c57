"""
Provider gateway service — application entry point.
"""

from __future__ import annotations

import logging
import sys

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.auth import router as toss_auth_router
from api.errors import register_exception_handlers
from api.middleware import register_middleware
from api.push import router as toss_push_router
from api.responses import success_response
from api.user import router as toss_user_router
from api.users import router as users_router
from config.settings import config
from database.session import dispose_engine
from provider.gateway import ProviderGateway

logging.basicConfig(
    level=logging.DEBUG if config.debug else logging.INFO,
    format="%(asctime)s  %(levelname)-8s  %(name)s — %(message)s",
    stream=sys.stdout,
)
for _noisy in ("httpcore", "httpx", "asyncio"):
    logging.getLogger(_noisy).setLevel(logging.WARNING)
logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    app = FastAPI(
        title="Toss Gateway",
        version="1.0.0",
        description="Login, profile decryption and push messaging against the Toss partner API.",
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_middleware(app)
    register_exception_handlers(app)

    # Routes
    app.include_router(toss_auth_router, prefix="/api/toss/auth")
    app.include_router(toss_user_router, prefix="/api/toss/user")
    app.include_router(toss_push_router, prefix="/api/toss/push")
    app.include_router(users_router, prefix="/api/users")

    @app.get("/health")
    async def health() -> dict:
        return success_response({"status": "ok"})

    @app.on_event("startup")
    async def on_startup():
        app.state.gateway = ProviderGateway(config)
        if app.state.gateway.mtls_enabled:
            logger.info("Provider gateway ready (mTLS)")
        else:
            logger.warning("Provider gateway ready WITHOUT client certificate")
        if not config.toss_decryption_key:
            logger.warning("TOSS_DECRYPTION_KEY not set — profile decryption will fail")
        logger.info("Application ready to accept requests.")

    @app.on_event("shutdown")
    async def on_shutdown():
        gateway = getattr(app.state, "gateway", None)
        if gateway is not None:
            await gateway.aclose()
        await dispose_engine()

    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=config.host,
        port=config.port,
        reload=config.debug,
        log_level="debug" if config.debug else "info",
    )
