from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api.routes.chat import router as chat_router
from app.api.routes.contact import router as contact_router
from app.api.routes.logs import router as logs_router
from app.core.config import settings
from app.core.exceptions import RelayError, UpstreamRejectionError
from app.core.logging import log_startup_info, log_shutdown_info, get_logger
from app.models.response import HealthCheckResponse, ResponseStatus
from app.rag.prompt import get_prompt_builder

logger = get_logger(__name__)

app = FastAPI(title=settings.APP_NAME, version=settings.APP_VERSION)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(chat_router)
app.include_router(logs_router)
app.include_router(contact_router)

PREFLIGHT_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
}

# Validation error types meaning the message is absent or blank
MISSING_MESSAGE_ERRORS = {"missing", "string_type", "string_too_short", "value_error"}


@app.on_event("startup")
async def startup_event():
    log_startup_info()
    # Persona text is read once here and shared read-only by all requests
    get_prompt_builder()
    logger.info("Application startup completed")


@app.on_event("shutdown")
async def shutdown_event():
    log_shutdown_info()


@app.exception_handler(RelayError)
async def relay_error_handler(request: Request, exc: RelayError):
    content = {"error": exc.public_message}
    if isinstance(exc, UpstreamRejectionError) and exc.detail:
        content["detail"] = exc.detail
    logger.error(f"{request.method} {request.url.path} failed: {type(exc).__name__}: {exc}")
    return JSONResponse(status_code=exc.status_code, content=content)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = [
        {
            "loc": [str(part) for part in err.get("loc", ())],
            "type": err.get("type", ""),
            "msg": err.get("msg", ""),
        }
        for err in exc.errors()
    ]
    missing_message = any(
        "message" in e["loc"] and e["type"] in MISSING_MESSAGE_ERRORS for e in errors
    )
    return JSONResponse(
        status_code=400,
        content={
            "error": "message is required" if missing_message else "Invalid request body",
            "detail": errors,
        },
    )


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


@app.middleware("http")
async def preflight_middleware(request: Request, call_next):
    """Answer every OPTIONS request with permissive CORS headers and no body."""
    # Outermost middleware: preflights never reach CORSMiddleware
    if request.method == "OPTIONS":
        return Response(status_code=200, headers=PREFLIGHT_HEADERS)
    return await call_next(request)


@app.get("/health", response_model=HealthCheckResponse)
async def health():
    """Health check endpoint: reports which collaborators are configured."""
    integrations = {
        "llm": bool(settings.DEEPSEEK_API_KEY),
        "vector_store": bool(settings.UPSTASH_VECTOR_URL and settings.UPSTASH_VECTOR_TOKEN),
        "chat_log": bool(settings.UPSTASH_REDIS_URL and settings.UPSTASH_REDIS_TOKEN),
        "email": bool(settings.RESEND_API_KEY),
    }
    return HealthCheckResponse(
        status=ResponseStatus.OK if integrations["llm"] else ResponseStatus.DEGRADED,
        model_name=settings.LLM_MODEL_NAME,
        persona_loaded=bool(get_prompt_builder().persona_text),
        integrations=integrations,
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.RELOAD,
    )
