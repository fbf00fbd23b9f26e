import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import models  # noqa: F401 - register models with Base
from .config import CORS_ORIGINS
from .database import Base, engine
from .domain.accounts.router import router as accounts_router
from .domain.clients.router import router as clients_router
from .domain.fees.router import router as fees_router
from .domain.invitations.router import router as invitations_router
from .domain.notifications.router import router as notifications_router
from .domain.payments.router import router as payments_router
from .domain.plans.router import router as plans_router
from .domain.products.router import router as products_router
from .domain.sales.router import router as sales_router
from .domain.sessions.router import router as sessions_router
from .errors import ApiError, build_error_response

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Reduce verbosity of third-party libraries
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("stripe").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application starting up...")
    try:
        Base.metadata.create_all(bind=engine, checkfirst=True)
        logger.info("Database tables created successfully")
    except Exception as e:
        # Another worker may have created them first
        error_msg = str(e)
        if "already exists" in error_msg or "duplicate key" in error_msg:
            logger.info("Database tables already exist (created by another worker)")
        else:
            logger.error(f"Failed to create database tables: {e}")

    yield
    logger.info("Application shutting down...")


app = FastAPI(title="Keepon API", version="1.0.0", lifespan=lifespan)


@app.exception_handler(ApiError)
async def api_error_handler(request: Request, exc: ApiError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} - {exc.title}: {exc.detail}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    detail = exc.detail if isinstance(exc.detail, str) else None
    title = "Not found." if exc.status_code == 404 else (detail or "Request failed")
    return JSONResponse(
        status_code=exc.status_code,
        content=build_error_response(exc.status_code, title, detail),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Validation failures are 400s. Query string problems and body problems get distinct types."""
    errors = exc.errors()
    in_query = any((error.get("loc") or ("",))[0] == "query" for error in errors)
    messages = []
    for error in errors:
        location = ".".join(str(part) for part in error.get("loc", ()) if part not in ("body", "query"))
        messages.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))

    logger.warning(f"Validation error for {request.url.path}: {messages}")
    if in_query:
        body = build_error_response(400, "Your query is invalid", "; ".join(messages), "/invalid-query")
    else:
        body = build_error_response(400, "Your body is invalid", "; ".join(messages), "/invalid-body")
    return JSONResponse(status_code=400, content=body)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"{request.method} {request.url.path} - Error: {exc}")
    return JSONResponse(
        status_code=500,
        content=build_error_response(500, "Something on our end went wrong.", None, "/internal-server-error"),
    )


logger.info(f"CORS allowed origins: {CORS_ORIGINS}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=["*"],
)

# Routes
app.include_router(accounts_router)
app.include_router(clients_router)
app.include_router(products_router)
app.include_router(sales_router)
app.include_router(payments_router)
app.include_router(fees_router)
app.include_router(plans_router)
app.include_router(sessions_router)
app.include_router(invitations_router)
app.include_router(notifications_router)


@app.get("/")
def root():
    return {"message": "Keepon API is running"}


@app.get("/health")
def health():
    return {"status": "healthy"}
