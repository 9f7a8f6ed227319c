import uvicorn
from fastapi import FastAPI

from app.api.routes.errors import register_exception_handlers
from app.api.routes.health import router as health_router
from app.api.routes.partners import router as partners_router
from app.api.routes.referrals import router as referrals_router
from app.core.config import get_settings
from app.core.logging import configure_logging


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title="VPN Referral & Partner Commission API",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )
    register_exception_handlers(app)
    app.include_router(health_router)
    app.include_router(referrals_router)
    app.include_router(partners_router)
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
