from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from app.api.routes.account import router as account_router
from app.api.routes.ads import router as ads_router
from app.api.routes.block_status import router as block_status_router
from app.api.routes.health import router as health_router
from app.api.routes.internal_blocks import router as internal_blocks_router
from app.api.routes.internal_identity import router as internal_identity_router
from app.api.routes.internal_session import router as internal_session_router
from app.api.routes.purchases import router as purchases_router
from app.core.config import get_settings
from app.core.logging import configure_logging
from app.db.session import dispose_engine


@asynccontextmanager
async def lifespan(_: FastAPI):
    yield
    await dispose_engine()


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title="Coin Storefront API",
        version="0.1.0",
        docs_url="/docs" if settings.app_env == "dev" else None,
        redoc_url="/redoc" if settings.app_env == "dev" else None,
        lifespan=lifespan,
    )
    app.include_router(health_router)
    app.include_router(block_status_router)
    app.include_router(account_router)
    app.include_router(ads_router)
    app.include_router(purchases_router)
    app.include_router(internal_session_router)
    app.include_router(internal_blocks_router)
    app.include_router(internal_identity_router)
    return app


app = create_app()


def run() -> None:
    settings = get_settings()
    uvicorn.run(
        "app.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.app_env == "dev",
    )


if __name__ == "__main__":
    run()
