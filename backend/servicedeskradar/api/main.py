from __future__ import annotations

from datetime import date

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from servicedeskradar.api.routers.catalog import router as catalog_router
from servicedeskradar.api.routers.reports import router as reports_router
from servicedeskradar.api.routers.roster import router as roster_router
from servicedeskradar.config import settings
from servicedeskradar.services import ReportingService


def create_app() -> FastAPI:
    app = FastAPI(title=settings.app_name)

    # CORS: dashboard local
    app.add_middleware(  # pyright: ignore[reportUnknownMemberType]
        CORSMiddleware,
        allow_origins=[
            "http://localhost:3000",
            "http://127.0.0.1:3000",
            "http://localhost:5173",
        ],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Simple DI via app.state
    app.state.settings = settings
    app.state.reporting = ReportingService(settings)

    # Routers
    app.include_router(catalog_router, tags=["catalog"])
    app.include_router(reports_router, prefix="/reports", tags=["reports"])
    app.include_router(roster_router, prefix="/roster", tags=["roster"])

    @app.get("/health", include_in_schema=False, status_code=200)
    def health() -> dict[str, str]:  # pyright: ignore[reportUnusedFunction]
        return {"status": "ok", "date": date.today().isoformat()}

    return app


app = create_app()
