"""Admin pages.

Page content is static; access to the dashboard is enforced by the edge
gate before these handlers run.
"""

from pathlib import Path

from fastapi import APIRouter
from fastapi.responses import FileResponse

STATIC_DIR = Path(__file__).parent / "static"

router = APIRouter(tags=["pages"], include_in_schema=False)


@router.get("/admin")
async def dashboard_page() -> FileResponse:
    """Serve the dashboard (gated)."""
    return FileResponse(STATIC_DIR / "dashboard.html")


@router.get("/admin/unauthorized")
async def unauthorized_page() -> FileResponse:
    """Serve the page denied browsers are redirected to."""
    return FileResponse(STATIC_DIR / "unauthorized.html")
