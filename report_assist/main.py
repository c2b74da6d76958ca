import logging

from fastapi import FastAPI
from fastapi import Request
from fastapi import status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from report_assist.api.routes import router
from report_assist.api.routes import status_for
from report_assist.core.config import settings
from report_assist.core.exceptions import GenerationError
from report_assist.core.logging import setup_logging
from report_assist.services.client_loader import default_cache

setup_logging()

app = FastAPI(title="Report Assist")

logger = logging.getLogger(__name__)


@app.on_event("startup")
async def startup_event() -> None:
    logger.info("Application started (model=%s, max_attempts=%d)", settings.model_id, settings.max_attempts)


@app.on_event("shutdown")
async def shutdown_event() -> None:
    if default_cache.is_loaded:
        await default_cache.get().close()
    default_cache.reset()


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
    logger.error(f"HTTP exception: {exc.detail} (status: {exc.status_code})")
    return JSONResponse({"detail": exc.detail}, status_code=exc.status_code)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(_request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.error("Request validation failed: %s", exc.errors(), exc_info=False)
    return JSONResponse(
        # ctx may hold the raw exception, which is not JSON serializable
        {"error": "Input validation failed", "details": [{k: v for k, v in err.items() if k != "ctx"} for err in exc.errors()]},
        status_code=422,
    )


@app.exception_handler(GenerationError)
async def generation_exception_handler(_request: Request, exc: GenerationError) -> JSONResponse:
    logger.error(f"Generation error: {exc.message} ({exc.kind.value})")
    return JSONResponse({"error": exc.message, "kind": exc.kind.value, "retryable": exc.retryable}, status_code=status_for(exc))


@app.get("/health", status_code=status.HTTP_200_OK, tags=["Health"])
async def health_check() -> dict[str, str]:
    logger.info("Health check endpoint called")
    return {"status": "ok"}


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allowed_origins,
    allow_methods=["POST", "GET", "OPTIONS"],
    allow_headers=["*"],
)
app.include_router(router)
