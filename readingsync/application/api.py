"""FastAPI application entry point."""

import logging
import secrets
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Header, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import Settings, settings as default_settings
from .controller import ReadingStatusController
from ..domain.errors import AuthError, InternalError, ReadingSyncError
from ..domain.interfaces.cover_resolver import CoverResolver
from ..domain.interfaces.state_store import StateStore
from ..infrastructure.openlibrary_cover_resolver import OpenLibraryCoverResolver
from ..infrastructure.sql_state_store import SqlStateStore

# Configure logging
logging.basicConfig(
    level=default_settings.log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    state_store: Optional[StateStore] = None,
    cover_resolver: Optional[CoverResolver] = None,
) -> FastAPI:
    """Build the API with its controller and injected providers.

    Args:
        settings: Server settings. Defaults to the environment-loaded singleton.
        state_store: Store override. Defaults to ``SqlStateStore`` on
            ``settings.database_url``.
        cover_resolver: Cover lookup override. Defaults to OpenLibrary when
            cover lookup is enabled.
    """
    settings = settings or default_settings

    if state_store is None:
        state_store = SqlStateStore(settings.database_url)
    if cover_resolver is None and settings.cover_lookup_enabled:
        cover_resolver = OpenLibraryCoverResolver(timeout=settings.cover_lookup_timeout)

    # Initialize controller with injected dependencies
    controller = ReadingStatusController(
        state_store=state_store,
        cover_resolver=cover_resolver,
        heatmap_timezone=settings.heatmap_timezone,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await controller.startup()
        yield

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        debug=settings.debug,
        lifespan=lifespan,
    )
    app.state.controller = controller

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    @app.exception_handler(ReadingSyncError)
    async def reading_sync_error_handler(request: Request, exc: ReadingSyncError):
        headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, AuthError) else None
        return JSONResponse({"error": exc.message}, status_code=exc.status_code, headers=headers)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        first = exc.errors()[0] if exc.errors() else {}
        field = ".".join(str(part) for part in first.get("loc", ())[1:])
        message = first.get("msg", "invalid request")
        return JSONResponse({"error": f"{field}: {message}" if field else message}, status_code=400)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse({"error": str(exc.detail).lower()}, status_code=exc.status_code)

    async def require_token(authorization: Optional[str] = Header(None)) -> None:
        """Static bearer token check, run before the body is read."""
        expected = settings.auth_token
        if not expected or not authorization:
            raise AuthError("unauthorized")
        scheme, _, token = authorization.partition(" ")
        if scheme.lower() != "bearer" or not secrets.compare_digest(token.strip(), expected):
            raise AuthError("unauthorized")

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return controller.get_health_status()

    @app.post("/events", dependencies=[Depends(require_token)])
    @app.post("/sync-stats", dependencies=[Depends(require_token)])
    async def ingest_events(request: Request):
        """Ingest telemetry.

        Accepts a single event, an array of events, or the batched
        ``{book, page_stats, last_sync_time}`` shape.
        """
        body = await request.body()
        try:
            return await controller.ingest(body)
        except ReadingSyncError:
            raise
        except Exception as e:
            logger.error(f"Error ingesting events: {e}", exc_info=True)
            raise InternalError("internal server error") from e

    @app.get("/books/current")
    async def get_current_book():
        """Book most recently reported by a device."""
        try:
            return await controller.get_current_book()
        except ReadingSyncError:
            raise
        except Exception as e:
            logger.error(f"Error getting current book: {e}", exc_info=True)
            raise InternalError("internal server error") from e

    @app.get("/books")
    async def list_books():
        """Every book with its reading aggregates."""
        try:
            return await controller.list_books()
        except Exception as e:
            logger.error(f"Error listing books: {e}", exc_info=True)
            raise InternalError("internal server error") from e

    @app.get("/books/{book_key}")
    async def get_book(book_key: str):
        """Book detail with stats, sessions and recent telemetry.

        Args:
            book_key: The book identity key.
        """
        try:
            return await controller.get_book(book_key)
        except ReadingSyncError:
            raise
        except Exception as e:
            logger.error(f"Error getting book {book_key}: {e}", exc_info=True)
            raise InternalError("internal server error") from e

    @app.get("/books/{book_key}/sync-state")
    async def get_sync_state(book_key: str):
        try:
            return await controller.get_sync_state(book_key)
        except Exception as e:
            logger.error(f"Error getting sync state for {book_key}: {e}", exc_info=True)
            raise InternalError("internal server error") from e

    @app.get("/activity")
    async def get_activity(
        days: int = Query(365, description="How many days back to include"),
        tz: Optional[str] = Query(None, description="IANA time zone for day boundaries"),
    ):
        """Reading activity heatmap."""
        try:
            return await controller.get_activity(days, tz)
        except ReadingSyncError:
            raise
        except Exception as e:
            logger.error(f"Error building activity heatmap: {e}", exc_info=True)
            raise InternalError("internal server error") from e

    return app


app = create_app()
