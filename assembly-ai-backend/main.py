import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import CORS_ORIGINS, StorageSettings, VeoSettings
from routers import animations, plans
from services import OperationLocks
from storage import BlobStore
from veo import VeoClient

# --------------------------------------------------------------------------
# --- Configuration & Setup ---
# --------------------------------------------------------------------------

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")


def _first_error_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request payload."

    error = errors[0]
    loc = [part for part in error.get("loc", ()) if part != "body"]
    if not loc:
        return "Invalid request payload."
    field = str(loc[-1])
    kind = error.get("type", "")

    if kind == "missing":
        return f"{field} is required."
    if kind in ("string_type",):
        return f"{field} must be a string."
    if kind in ("int_type", "int_parsing", "int_from_float"):
        return f"{field} must be an integer."
    if kind in ("model_attributes_type", "dict_type", "json_invalid"):
        return "Invalid request payload."

    message = error.get("msg") or "Invalid request payload."
    return message.removeprefix("Value error, ")


async def _http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=exc.headers)


async def _validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"error": _first_error_message(exc)})


def create_app(
    veo: Optional[VeoClient] = None,
    storage: Optional[BlobStore] = None,
) -> FastAPI:
    """Build the application. Clients are created here once and shared through app.state."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logging.info("🚀 Assembly Animator API starting")
        yield
        logging.info("Assembly Animator API stopped")

    app = FastAPI(
        title="Assembly Animator",
        description="Stores illustrated assembly plans and animates their steps with Veo.",
        lifespan=lifespan,
    )

    app.state.veo = veo or VeoClient(VeoSettings.from_env())
    app.state.storage = storage or BlobStore(StorageSettings.from_env())
    app.state.operation_locks = OperationLocks()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(StarletteHTTPException, _http_exception_handler)
    app.add_exception_handler(RequestValidationError, _validation_exception_handler)

    app.include_router(animations.router)
    app.include_router(plans.router)

    @app.get("/health")
    def health():
        return {"status": "ok"}

    return app


app = create_app()
