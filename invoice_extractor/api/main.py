from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from ..core.logging import setup_logging
from ..core.config import settings
from .routers import health, invoice

logger = setup_logging()
app = FastAPI(title="Invoice Extractor")


# Add custom exception handler for validation errors
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.error(f"Validation error: {exc.errors()}")
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": exc.errors()},
    )


app.include_router(health.router)
app.include_router(invoice.router)
logger.info("API ready", app=settings.app_name, env=settings.app_env)
