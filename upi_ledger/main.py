"""
UPI Ledger — FastAPI Application.

This is the entry point for the application.
All routers are registered here.
"""

import sys

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
from starlette.exceptions import HTTPException as StarletteHTTPException

from upi_ledger.config import get_settings
from upi_ledger.api.health import router as health_router
from upi_ledger.api.profiles import router as profiles_router
from upi_ledger.api.payments import router as payments_router
from upi_ledger.api.transactions import router as transactions_router
from upi_ledger.api.advice import router as advice_router

settings = get_settings()

# Configure loguru
logger.remove()
logger.add(
    sys.stderr,
    level=settings.LOG_LEVEL,
    format="{time:HH:mm:ss} | {level:<8} | {message}",
)

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Peer-to-peer payments with an AI spending assistant",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["authorization", "x-client-info", "apikey", "content-type"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    logger.info("{} {}", request.method, request.url.path)
    response: Response = await call_next(request)
    logger.info("→ {}", response.status_code)
    return response


# Every failure leaves the API as {"error": "<message>"}
@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    problems = []
    for err in exc.errors():
        field = ".".join(str(part) for part in err["loc"][1:])
        problems.append(f"{field}: {err['msg']}" if field else err["msg"])
    return JSONResponse(
        status_code=422,
        content={"error": "; ".join(problems) or "Invalid request"},
    )


# Register routers
app.include_router(health_router)
app.include_router(profiles_router)
app.include_router(payments_router)
app.include_router(transactions_router)
app.include_router(advice_router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "upi_ledger.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
    )
