from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request

from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from epg_server.config import CustomSettings, settings as default_settings, setup_logging
from epg_server.database import close_db, init_db
from epg_server.dependencies import configure_services, reset_service_locator
from epg_server.services import cache_scheduler, create_response_cache
from epg_server.utils.logging_helpers import log_section_end, log_section_start, setup_access_log

from epg_server.routers import main_router


setup_logging()
logger = logging.getLogger(__name__)


def create_app(app_settings: CustomSettings | None = None) -> FastAPI:
    """Build the FastAPI application around the given settings"""
    app_settings = app_settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Lifespan context manager for startup and shutdown events"""
        log_section_start(logger, "EPG Server startup")

        cache = create_response_cache(app_settings)
        try:
            logger.info("Initializing database...")
            await init_db(app_settings.database_url)
            app.state.database_ready = True

            configure_services(app_settings, cache)
            setup_access_log(app_settings.data_dir, app_settings.debug_mode)
            cache_scheduler.start(cache, app_settings.cache_sweep_cron, app_settings.timezone)
        except Exception as e:
            logger.error(f"Failed to start EPG Server: {e}", exc_info=True)
            raise

        log_section_end(logger, "EPG Server startup")

        yield

        log_section_start(logger, "EPG Server shutdown")
        try:
            cache_scheduler.shutdown()
            await cache.close()
            await close_db()
        except Exception as e:
            logger.error(f"Error during shutdown: {e}", exc_info=True)
        finally:
            reset_service_locator()
            app.state.database_ready = False
        log_section_end(logger, "EPG Server shutdown")

    app = FastAPI(
        title="EPG Server",
        version="0.1.0",
        lifespan=lifespan
    )

    app.include_router(main_router)
    app_settings.icon_dir.mkdir(parents=True, exist_ok=True)
    app.mount(
        "/data/icon",
        StaticFiles(directory=app_settings.icon_dir),
        name="icons",
    )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Log validation errors with details"""
        logger.error(f"Validation error for {request.method} {request.url.path}")
        logger.error(f"Validation details: {exc.errors()}")

        errors = []
        for error in exc.errors():
            error_dict = {
                "type": error.get("type"),
                "loc": error.get("loc"),
                "msg": error.get("msg"),
                "input": str(error.get("input", ""))[:100]
            }
            errors.append(error_dict)

        return JSONResponse(
            status_code=422,
            content={
                "detail": errors
            }
        )

    return app


app = create_app()
