"""sensechat-proxy: OpenAI-compatible front for the SenseNova chat API."""
import uuid
import time
import logging
from contextlib import asynccontextmanager
from datetime import datetime

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import settings, get_environment_info
from proxy import ProxyService
from middleware import RequestContextMiddleware

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger("sensechat-proxy")

PROXY_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create the upstream client on startup and close it on shutdown."""
    startup_start_time = time.time()
    logger.info("Starting sensechat-proxy service initialization...")

    await ProxyService.initialize()
    logger.info(
        f"sensechat-proxy ready on port {settings.PORT} "
        f"(startup time: {time.time() - startup_start_time:.2f}s)"
    )

    try:
        yield
    finally:
        logger.info("Shutting down sensechat-proxy service...")
        await ProxyService.close()

# Every path belongs to the proxied APIs, so FastAPI's own docs routes stay off
app = FastAPI(
    title="sensechat-proxy",
    description="Translates OpenAI-style chat completions to the SenseNova chat API",
    version="1.0.0",
    docs_url=None,
    redoc_url=None,
    openapi_url=None,
    lifespan=lifespan,
)

# Exception handlers
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler for better error reporting."""
    request_id = getattr(request.state, 'request_id', str(uuid.uuid4()))
    logger.error(f"Unhandled exception in {request.url.path}: {str(exc)}", exc_info=True)

    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "message": "An unexpected error occurred",
            "request_id": request_id,
            "timestamp": datetime.utcnow().isoformat()
        }
    )

@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Handle HTTP exceptions with consistent format."""
    request_id = getattr(request.state, 'request_id', str(uuid.uuid4()))

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": "HTTP error",
            "message": exc.detail,
            "status_code": exc.status_code,
            "request_id": request_id,
            "timestamp": datetime.utcnow().isoformat()
        }
    )

app.add_middleware(RequestContextMiddleware)

@app.get(settings.HEALTH_PATH, tags=["System"])
async def health_check():
    """Local health endpoint; never forwarded."""
    return {
        "status": "healthy",
        "timestamp": datetime.utcnow().isoformat(),
        "version": "1.0.0",
        "proxy": {"initialized": ProxyService._client is not None},
        "settings": get_environment_info(),
    }

@app.api_route("/{full_path:path}", methods=PROXY_METHODS, include_in_schema=False)
async def proxy_entry(full_path: str, request: Request):
    """Translate chat completions, pass everything else through."""
    return await ProxyService.dispatch(request)

if __name__ == "__main__":
    logger.info(f"Server starting on port {settings.PORT}...")
    uvicorn.run(app, host=settings.HOST, port=settings.PORT)
