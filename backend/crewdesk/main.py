from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from crewdesk.core.config import settings
from crewdesk.core.errors import AuthzError, Unauthenticated
from crewdesk.core.logging_config import setup_logging
import crewdesk.models  # noqa: F401  # force model registration

from crewdesk.api.v1.auth import router as auth_router
from crewdesk.api.v1.roles import router as roles_router
from crewdesk.api.v1.team import router as team_router


async def authz_error_handler(request: Request, exc: AuthzError) -> JSONResponse:
    headers = None
    if isinstance(exc, Unauthenticated):
        headers = {"WWW-Authenticate": "Bearer"}

    response = JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.to_detail()},
        headers=headers,
    )
    if isinstance(exc, Unauthenticated) and exc.clear_session:
        response.delete_cookie(key=settings.SESSION_COOKIE_NAME, path="/")
    return response


def create_application() -> FastAPI:
    setup_logging()
    app = FastAPI(title="CrewDesk API")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[
            # Local development (Vite frontend)
            "http://localhost:5173",
            "http://127.0.0.1:5173",
        ],
        # GitHub Codespaces / *.app.github.dev domains
        allow_origin_regex=r"^https:\/\/.*\.app\.github\.dev$",
        # Session cookie is the primary credential
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(AuthzError, authz_error_handler)

    @app.get("/")
    def root():
        return {"status": "ok", "service": "crewdesk"}

    # Routers
    app.include_router(auth_router, prefix="/api/v1")
    app.include_router(roles_router, prefix="/api/v1")
    app.include_router(team_router, prefix="/api/v1")

    return app


app = create_application()
