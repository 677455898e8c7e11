import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlmodel import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import get_settings
from db import create_db_and_tables, engine
from logging_config import setup_logging
from routers import admin, assignments, auth, matches, requests, resources, users
from routers.auth import ensure_admin

settings = get_settings()
setup_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title=settings.app_name)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
def on_startup() -> None:
    create_db_and_tables()
    if settings.admin_email and settings.admin_password:
        with Session(engine) as session:
            ensure_admin(session, settings.admin_email, settings.admin_password)
    logger.info("%s started, API at %s", settings.app_name, settings.api_prefix)


def _error_body(status_code: int, message) -> dict:
    return {"status": "fail" if status_code < 500 else "error", "message": message}


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(exc.status_code, exc.detail),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = "Invalid request"
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{field}: {first.get('msg')}" if field else first.get("msg", message)
    body = _error_body(422, message)
    body["errors"] = jsonable_encoder(
        [{k: v for k, v in err.items() if k not in ("ctx", "input")} for err in errors]
    )
    return JSONResponse(status_code=422, content=body)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content=_error_body(500, "Internal server error"))


@app.get("/health")
def health():
    return {"status": "ok", "service": settings.app_name}


for module in (auth, users, requests, resources, matches, assignments, admin):
    app.include_router(module.router, prefix=settings.api_prefix)
