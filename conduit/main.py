"""
Listener runtime.

One FastAPI application per configured listener. Each app is wired from the
resolved configuration: CORS from the listener's policy, capability gating
from the current snapshot, and storage errors mapped to HTTP responses.
Resource handlers are mounted by the embedding application.

    python -m conduit.main
"""

import asyncio
import signal
from concurrent.futures import ThreadPoolExecutor
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import uvicorn
from anyio import to_thread
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from conduit.api.deps import Config, DbSession, Listener
from conduit.api.middleware.cors import ListenerCorsMiddleware
from conduit.api.middleware.request_id import REQUEST_ID_HEADER, RequestIdMiddleware
from conduit.config import ConfigHolder, get_settings, load_for_run_mode
from conduit.database import Database
from conduit.kernel.cors import WILDCARD, CorsPolicy
from conduit.kernel.errors import ConfigurationError, ConstraintViolation, NotFound
from conduit.logging_config import configure_logging, get_logger
from conduit.schemas.common import CapabilitiesResponse, ErrorResponse, HealthResponse

logger = get_logger(__name__)

DEFAULT_BACKLOG = 2048


def _cors_headers(request: Request, policy: CorsPolicy) -> dict:
    """
    CORS headers for 500 responses, which are produced outside CORSMiddleware.

    Credentials are only ever allowed for an enumerated origin.
    """
    origin = request.headers.get("origin")
    if not origin or not policy.allows_origin(origin):
        return {}
    if policy.is_wildcard:
        return {"Access-Control-Allow-Origin": WILDCARD}
    return {
        "Access-Control-Allow-Origin": origin,
        "Access-Control-Allow-Credentials": "true",
        "Vary": "Origin",
    }


def _error_headers(request: Request) -> dict:
    req_id = getattr(request.state, "request_id", None)
    return {REQUEST_ID_HEADER: req_id} if req_id else {}


def create_app(
    holder: ConfigHolder,
    listener_name: str,
    database: Optional[Database] = None,
) -> FastAPI:
    """
    Build the application for one listener.

    Args:
        holder: Owner of the configuration snapshot; read on every request
        listener_name: Which configured listener this app serves
        database: Shared database; created (and closed) by the app if omitted

    Raises:
        ConfigurationError: If the listener is not configured
    """
    config = holder.current
    listener = config.listener(listener_name)
    owns_database = database is None
    if database is None:
        database = Database(config.database_url, echo=config.debug)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator:
        if listener.workers:
            # Sync handlers run on the pool of this listener's own event loop
            to_thread.current_default_thread_limiter().total_tokens = listener.workers
        logger.info(
            "Listener started",
            extra={
                "listener": listener.name,
                "listen": listener.listen,
                "services": sorted(s.value for s in listener.services),
            },
        )
        yield
        if owns_database:
            await database.close()
        logger.info("Listener stopped", extra={"listener": listener.name})

    app = FastAPI(
        title=f"Conduit ({listener_name})",
        lifespan=lifespan,
        docs_url="/docs" if config.debug else None,
        redoc_url=None,
    )
    app.state.config_holder = holder
    app.state.listener_name = listener_name
    app.state.database = database

    # add_middleware stacks innermost-first: CORS is added last so it wraps
    # every response produced below it.
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        ListenerCorsMiddleware,
        holder=holder,
        listener_name=listener_name,
        expose_headers=(REQUEST_ID_HEADER,),
    )

    @app.exception_handler(ConstraintViolation)
    async def constraint_violation_handler(request: Request, exc: ConstraintViolation):
        body = ErrorResponse(
            detail=exc.description,
            code=exc.kind.value,
            constraint=exc.constraint,
            request_id=getattr(request.state, "request_id", None),
        )
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=body.model_dump(exclude_none=True),
            headers=_error_headers(request),
        )

    @app.exception_handler(NotFound)
    async def not_found_handler(request: Request, exc: NotFound):
        body = ErrorResponse(
            detail=str(exc),
            code="not_found",
            request_id=getattr(request.state, "request_id", None),
        )
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content=body.model_dump(exclude_none=True),
            headers=_error_headers(request),
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception: %s", exc)
        snapshot = holder.current
        headers = _error_headers(request)
        headers.update(_cors_headers(request, snapshot.cors(listener_name)))
        req_id = getattr(request.state, "request_id", None)
        if snapshot.debug:
            content = {"detail": str(exc), "type": type(exc).__name__, "request_id": req_id}
        else:
            content = {"detail": "Internal server error", "request_id": req_id}
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=content,
            headers=headers,
        )

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health_check(db: DbSession, current: Listener):
        """Check listener and database health."""
        try:
            await db.execute(text("SELECT 1"))
            database_state = "connected"
        except SQLAlchemyError as exc:
            logger.warning("Database health check failed", extra={"error": str(exc)})
            database_state = "unavailable"
        return HealthResponse(
            status="ok" if database_state == "connected" else "degraded",
            listener=current.name,
            database=database_state,
        )

    @app.get("/api/capabilities", response_model=CapabilitiesResponse, tags=["Configuration"])
    async def capabilities(snapshot: Config, current: Listener):
        """Services this listener serves and the resolved capability flags."""
        services = sorted(current.services, key=lambda s: s.value)
        flags = {s.value: snapshot.capabilities.for_resource(s) for s in services}
        return CapabilitiesResponse(
            listener=current.name,
            services=[s.value for s in services],
            # Resource types without flags (Tag) are omitted
            capabilities={name: values for name, values in flags.items() if values},
            cors_mode=current.cors.mode.value,
        )

    return app


def _run_listener(server: uvicorn.Server) -> None:
    """Serve one listener on a fresh event loop in the calling thread."""
    asyncio.run(server.serve())


async def serve(holder: ConfigHolder) -> None:
    """
    Run every configured listener until one of them stops, then stop the rest.

    Each listener runs on its own thread and event loop, so its `workers`
    setting sizes a thread pool no other listener shares. SIGHUP reloads the
    configuration; a failed reload keeps the old snapshot.
    """
    config = holder.current
    running = config.servers
    servers = []
    for listener in config.listeners:
        # The app owns its database: engines are bound to the loop they run on
        app = create_app(holder, listener.name)
        servers.append(uvicorn.Server(uvicorn.Config(
            app,
            host=listener.host,
            port=listener.port,
            backlog=listener.backlog or DEFAULT_BACKLOG,
            log_config=None,
        )))

    def _reload() -> None:
        try:
            holder.reload(keep_listeners=running)
        except ConfigurationError as exc:
            logger.error("Configuration reload failed, keeping previous", extra={"error": str(exc)})

    def _stop() -> None:
        for server in servers:
            server.should_exit = True

    loop = asyncio.get_running_loop()
    if hasattr(signal, "SIGHUP"):
        loop.add_signal_handler(signal.SIGHUP, _reload)
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _stop)

    with ThreadPoolExecutor(max_workers=len(servers), thread_name_prefix="listener") as pool:
        tasks = [loop.run_in_executor(pool, _run_listener, server) for server in servers]
        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            # uvicorn exits with SystemExit when it cannot bind
            if task.exception() is not None:
                logger.error("Listener failed", extra={"error": repr(task.exception())})
        _stop()
        if pending:
            await asyncio.wait(pending)
    logger.info("Stopped all listeners")


def main() -> None:
    try:
        settings = get_settings()
    except ConfigurationError as exc:
        configure_logging()
        logger.critical("Invalid environment: %s", exc)
        raise SystemExit(1) from exc
    configure_logging(
        log_level=settings.log_level,
        environment=settings.environment,
        debug=bool(settings.debug),
    )
    try:
        holder = ConfigHolder(load_for_run_mode)
    except ConfigurationError as exc:
        logger.critical("Invalid configuration: %s", exc)
        raise SystemExit(1) from exc
    asyncio.run(serve(holder))


if __name__ == "__main__":
    main()
