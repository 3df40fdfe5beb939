from __future__ import annotations

import logging
import os

from fastapi import APIRouter, FastAPI
from starlette.middleware.cors import CORSMiddleware

from .app import config
from .app.routes import admin, classes, render, reports, session, students


# Configure logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


cors_origins = config.parse_csv(os.environ.get("CORS_ORIGINS"), default=["*"])
explicit_origins, origin_regex = config.prepare_cors_settings(cors_origins)

app = FastAPI(title="Student Reports")

app.add_middleware(
    CORSMiddleware,
    allow_credentials=True,
    allow_origins=explicit_origins,
    allow_origin_regex=origin_regex,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Create a router with the /api prefix
api_router = APIRouter(prefix="/api")
api_router.include_router(session.router)
api_router.include_router(classes.router)
api_router.include_router(students.router)
api_router.include_router(reports.router)
api_router.include_router(admin.router)
api_router.include_router(render.router)


@api_router.get("/health")
def health():
    return {"status": "ok"}


app.include_router(api_router)

logger.info("CORS origins: %s (regex=%s)", explicit_origins or "-", origin_regex)


def main() -> None:
    import uvicorn

    uvicorn.run(
        "studentreports.server:app",
        host=os.environ.get("HOST", "0.0.0.0"),
        port=int(os.environ.get("PORT", "8000")),
    )


if __name__ == "__main__":
    main()
