"""FastAPI application factory."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from walletmigrator.config import get_settings
from walletmigrator.ledger.database import close_db, init_db


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    await init_db()
    yield
    await close_db()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Wallet Migrator API",
        description="System of record for smart wallet to EOA migrations",
        version="0.1.0",
        lifespan=lifespan,
        debug=settings.debug,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.debug else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    from walletmigrator.api.routes import health, kyc, wallets

    app.include_router(health.router, tags=["Health"])
    app.include_router(wallets.router, prefix="/api/v1", tags=["Wallets"])
    app.include_router(kyc.router, prefix="/api/v1", tags=["KYC"])

    return app


# Default app instance
app = create_app()
