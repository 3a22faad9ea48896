from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.trustedhost import TrustedHostMiddleware

from worksuite.config import settings, verify_security_config
from worksuite.errors import AppError, ConfigurationError, DependencyError, error_response
from worksuite.gatekeeper import RequestGatekeeper
from worksuite.logging_setup import setup_logging
from worksuite.routers.accounts import router as accounts_router
from worksuite.routers.admin import router as admin_router
from worksuite.routers.auth import router as auth_router
from worksuite.routers.sessions import router as sessions_router
from worksuite.routers.system import router as system_router
from worksuite.routers.two_factor import router as two_factor_router
from worksuite.routers.uploads import router as uploads_router

logger = logging.getLogger(__name__)

app = FastAPI(
  title="ProVision WorkSuite API",
  version=settings.app_version,
  docs_url="/docs" if settings.api_docs_enabled else None,
  redoc_url="/redoc" if settings.api_docs_enabled else None,
  openapi_url="/openapi.json" if settings.api_docs_enabled else None,
)


@app.exception_handler(AppError)
async def _app_error_handler(request: Request, exc: AppError) -> JSONResponse:
  if isinstance(exc, (ConfigurationError, DependencyError)):
    logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc.detail)
  return error_response(exc)


@app.exception_handler(RequestValidationError)
async def _validation_error_handler(_, exc: RequestValidationError) -> JSONResponse:
  errors = [{"loc": list(e.get("loc", ())), "msg": e.get("msg", "")} for e in exc.errors()]
  return JSONResponse(status_code=400, content={"detail": jsonable_encoder(errors)})


@app.exception_handler(Exception)
async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
  logger.exception("Unhandled error on %s %s", request.method, request.url.path)
  return JSONResponse(status_code=500, content={"detail": "Internal server error"})


# Added innermost first: TrustedHost -> CORS -> gatekeeper -> routes.
app.add_middleware(RequestGatekeeper)
app.add_middleware(
  CORSMiddleware,
  allow_origins=settings.cors_origin_list(),
  allow_credentials=True,
  allow_methods=["*"],
  allow_headers=["*"],
)
app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.trusted_host_list())

app.include_router(auth_router)
app.include_router(two_factor_router)
app.include_router(sessions_router)
app.include_router(accounts_router)
app.include_router(uploads_router)
app.include_router(admin_router)
app.include_router(system_router)


@app.middleware("http")
async def _security_headers_middleware(request, call_next):
  response = await call_next(request)
  response.headers.setdefault("X-Content-Type-Options", "nosniff")
  response.headers.setdefault("X-Frame-Options", "DENY")
  response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
  response.headers.setdefault("Permissions-Policy", "geolocation=(), microphone=(), camera=()")
  return response


@app.on_event("startup")
async def _startup() -> None:
  setup_logging(settings.log_level, settings.log_format)
  verify_security_config(settings)
