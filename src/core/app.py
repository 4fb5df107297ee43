"""
Trak Assistant - Core Application

Builds the FastAPI application serving the assistant tool engine.
"""

from contextlib import asynccontextmanager
import logging
import time

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import Settings, get_cached_settings
from .exceptions import BaseAPIException

# Configure logging
logger = logging.getLogger(__name__)


class TrakAssistantApp:
    """Application wrapper owning settings, middleware and routes."""

    def __init__(self, settings: Settings = None):
        self.settings = settings or get_cached_settings()
        self.app = None
        self._create_app()

    def _create_app(self):
        """Create the FastAPI application instance."""

        @asynccontextmanager
        async def lifespan(app: FastAPI):
            """Application lifespan manager."""
            from services.tool_catalog import TOOL_CATALOG

            logger.info(f"Starting {self.settings.PROJECT_NAME} v{self.settings.VERSION}")
            logger.info(
                f"{len(TOOL_CATALOG)} tools registered; data actions at {self.settings.DATA_ACTIONS_URL}"
            )
            yield
            logger.info(f"{self.settings.PROJECT_NAME} shutting down")

        self.app = FastAPI(
            title=self.settings.PROJECT_NAME,
            description="Tool call resolution and execution engine for the workspace assistant",
            version=self.settings.VERSION,
            openapi_url=f"{self.settings.API_V1_STR}/openapi.json",
            docs_url=f"{self.settings.API_V1_STR}/docs",
            redoc_url=f"{self.settings.API_V1_STR}/redoc",
            lifespan=lifespan,
        )

        self._add_middleware()
        self._add_exception_handlers()
        self._add_routes()

    def _add_middleware(self):
        """Add middleware to the application."""
        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=list(self.settings.BACKEND_CORS_ORIGINS),
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

        # Request timing
        @self.app.middleware("http")
        async def add_process_time_header(request, call_next):
            start_time = time.time()
            response = await call_next(request)
            response.headers["X-Process-Time"] = str(time.time() - start_time)
            return response

    def _add_exception_handlers(self):
        @self.app.exception_handler(BaseAPIException)
        async def api_exception_handler(request: Request, exc: BaseAPIException):
            return JSONResponse(
                status_code=exc.status_code,
                content={"error": exc.message, "details": exc.details},
            )

    def _add_routes(self):
        """Add routes to the application."""
        @self.app.get("/")
        async def root():
            return {
                "name": self.settings.PROJECT_NAME,
                "version": self.settings.VERSION,
                "docs": f"{self.settings.API_V1_STR}/docs",
            }

        from api.v1 import api_router
        self.app.include_router(api_router, prefix=self.settings.API_V1_STR)


def create_app(settings: Settings = None) -> FastAPI:
    """Create the FastAPI application."""
    return TrakAssistantApp(settings).app
