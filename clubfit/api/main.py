import json
import os
from typing import Optional
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.openapi.utils import get_openapi
from loguru import logger

from clubfit.api.routes import auth as auth_routes
from clubfit.api.routes import system as system_routes
from clubfit.api.routes import workouts as workout_routes
from clubfit.api.routes import clubs as club_routes
from clubfit.api.routes import reactions as reaction_routes
from clubfit.api.routes import stats as stats_routes
from clubfit.api.routes import routines as routine_routes
from clubfit.api.routes import admin as admin_routes
from clubfit.api.errors import register_exception_handlers
from clubfit.logger import setup_logger
from clubfit.reactions import ReactionGateway
from dotenv import load_dotenv

load_dotenv()

def _parse_origins(env_value: str | None) -> list[str]:
    """
    Parse comma-separated origins from env; fallback to ["*"] if unset/blank.
    """
    if not env_value:
        return ["*"]
    # support JSON-style list or comma-separated list
    v = env_value.strip()
    if v.startswith("[") and v.endswith("]"):
        try:
            parsed = json.loads(v)
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, list) and all(isinstance(x, str) for x in parsed):
            return parsed
    return [o.strip() for o in v.split(",") if o.strip()]

def custom_openapi(app: FastAPI):
    if app.openapi_schema:
        return app.openapi_schema
    openapi_schema = get_openapi(
        title="ClubFit API",
        version=app.version,
        description="Workouts, club sessions, reactions and stats",
        routes=app.routes,
    )
    openapi_schema.setdefault("components", {})["securitySchemes"] = {
        "BearerAuth": {
            "type": "http",
            "scheme": "bearer",
            "bearerFormat": "JWT",
        }
    }
    for path in openapi_schema["paths"].values():
        for method in path.values():
            method.setdefault("security", [{"BearerAuth": []}])
    app.openapi_schema = openapi_schema
    return app.openapi_schema

def create_app(reaction_gateway: Optional[ReactionGateway] = None) -> FastAPI:
    """
    Build the FastAPI app and register all routers.
    reaction_gateway can be passed in (tests hand one a fake clock), otherwise a fresh one is made.
    """
    setup_logger()
    app_version = os.getenv("CLUBFIT_VERSION", "0.1.0")
    cors_origins = _parse_origins(os.getenv("CLUBFIT_CORS_ORIGINS"))

    app = FastAPI(title="ClubFit API", version=app_version)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,   # env-configurable; defaults to ["*"]
        allow_methods=["*"],
        allow_headers=["*"],
        allow_credentials=True,
    )

    register_exception_handlers(app)

    # throttle state lives with the app, one gateway per process
    app.state.reaction_gateway = reaction_gateway or ReactionGateway()

    # Route registration
    app.include_router(system_routes.router, prefix="/system", tags=["system"])
    app.include_router(auth_routes.router, prefix="/auth", tags=["auth"])
    app.include_router(workout_routes.router, prefix="/workouts", tags=["workouts"])
    app.include_router(club_routes.router, prefix="/club", tags=["club"])
    app.include_router(reaction_routes.router, prefix="/reactions", tags=["reactions"])
    app.include_router(stats_routes.router, prefix="/stats", tags=["stats"])
    app.include_router(routine_routes.router, prefix="/coach", tags=["coach"])
    app.include_router(admin_routes.router, prefix="/admin", tags=["admin"])

    app.openapi = lambda: custom_openapi(app)

    logger.info(f"ClubFit API {app_version} ready, CORS origins: {cors_origins}")
    return app


# entrypoint for uvicorn
app = create_app()
