"""Deep PR Reviewer - FastAPI entry point."""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from deep_reviewer.config import settings
from deep_reviewer.core.exceptions import ApiException
from deep_reviewer.core.logging import get_logger
from deep_reviewer.core.schemas.responses import ErrorResponse, HealthResponse
from deep_reviewer.services.reviewer.routes import router as reviewer_router

logger = get_logger("main")

app = FastAPI(
    title="Deep PR Reviewer",
    description="Tool-calling AI pull request reviewer",
    version="0.1.0",
)


@app.exception_handler(ApiException)
async def api_exception_handler(request: Request, exc: ApiException) -> JSONResponse:
    """Handle custom API exceptions and return structured error response."""
    logger.warning(f"API error: {exc.message} (status={exc.status_code})")
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=exc.message,
            details=exc.details if exc.details else None,
        ).model_dump(),
    )

# Include routes
app.include_router(reviewer_router, prefix="/api")


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "service": "deep-reviewer",
        "version": "0.1.0",
        "status": "running",
    }


@app.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse()


if __name__ == "__main__":
    import uvicorn

    logger.info(f"Starting Deep PR Reviewer on {settings.host}:{settings.port}")
    uvicorn.run(
        "deep_reviewer.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
