import uvicorn
import time
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from bountyboard.api.agents import router as agents_router
from bountyboard.api.bounties import router as bounties_router
from bountyboard.api.stats import router as stats_router
from bountyboard.api.webhooks import router as webhooks_router
from bountyboard.core.config import HOST, PORT
from bountyboard.core.container import Container, build_container
from bountyboard.core.errors import BountyBoardError, RateLimited
from bountyboard.utils.logging_config import setup_logging

# Initialize enhanced logging
setup_logging(level=logging.INFO)
logger = logging.getLogger("main")


# ---------------------------------------------------------------------------
# Logging Middleware
# ---------------------------------------------------------------------------
class LoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start_time = time.time()
        client_host = request.client.host if request.client else "unknown"
        logger.info(f"Incoming: {request.method} {request.url.path} from {client_host}")

        try:
            response = await call_next(request)
            process_time = (time.time() - start_time) * 1000
            logger.info(
                f"Outgoing: {request.method} {request.url.path} - "
                f"Status: {response.status_code} - "
                f"Time: {process_time:.2f}ms"
            )
            return response
        except Exception as e:
            process_time = (time.time() - start_time) * 1000
            logger.error(f"Request failed: {request.method} {request.url.path} - Error: {str(e)}")
            raise e


# ---------------------------------------------------------------------------
# Readiness gate: nothing is served before the caches have loaded
# ---------------------------------------------------------------------------
class ReadinessMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        container: Container = request.app.state.container
        if not container.is_ready:
            logger.info(f"Waiting for cache load: {request.method} {request.url.path}")
            await container.ready()
        return await call_next(request)


async def bountyboard_error_handler(request: Request, exc: BountyBoardError):
    headers = {"Retry-After": str(exc.retry_after)} if isinstance(exc, RateLimited) else None
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


def create_app(container: Optional[Container] = None) -> FastAPI:
    container = container or build_container()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await container.start()
        try:
            yield
        finally:
            await container.close()

    app = FastAPI(title="Bounty Board API", lifespan=lifespan)
    app.state.container = container

    app.add_middleware(ReadinessMiddleware)
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(BountyBoardError, bountyboard_error_handler)

    # Register routers
    app.include_router(bounties_router)
    app.include_router(agents_router)
    app.include_router(webhooks_router)
    app.include_router(stats_router)
    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run("main:app", host=HOST, port=PORT)
