from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from .error import ClientError, ServerError
import logging

logger = logging.getLogger(__name__)


async def handle_client_error(request: Request, exc: ClientError):
    error_dict = exc.base_error.to_dict()
    logger.warning(f"Client error: {error_dict['code']} {error_dict['message']}")
    return JSONResponse(status_code=exc.status_code, content={"error": error_dict})


async def handle_server_error(request: Request, exc: ServerError):
    error_dict = {"code": exc.base_error.code, "message": "Internal server error"}
    logger.error(f"Server error: {exc.base_error.code} {exc.base_error.message}")
    return JSONResponse(status_code=exc.status_code, content={"error": error_dict})


@asynccontextmanager
async def lifespan(app: FastAPI):
    from invitation_engine.depends import init_models

    await init_models()
    yield


def create_app(ApplicationConfig) -> FastAPI:
    app = FastAPI(
        title="Supplier Invitation Engine", version="0.1.0", lifespan=lifespan
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=ApplicationConfig.CORS_ORIGINS,
        allow_credentials=ApplicationConfig.CORS_ALLOW_CREDENTIALS,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    from invitation_engine.api.routes import health_check, invitations

    app.include_router(health_check.router, tags=["Health"])
    app.include_router(invitations.router, prefix=ApplicationConfig.API_PREFIX)

    app.add_exception_handler(ClientError, handle_client_error)
    app.add_exception_handler(ServerError, handle_server_error)

    return app
