import os

from fastapi import APIRouter, HTTPException
from fastapi.responses import FileResponse

from constants import PUBLIC_DIR
from logging_config import get_logger

logger = get_logger(__name__)

CONTENT_TYPES = {
    ".html": "text/html",
    ".js": "text/javascript",
    ".css": "text/css",
}
DEFAULT_CONTENT_TYPE = "application/octet-stream"


def content_type_for(path: str) -> str:
    return CONTENT_TYPES.get(os.path.splitext(path)[1].lower(), DEFAULT_CONTENT_TYPE)


def resolve_public_path(public_dir: str, request_path: str) -> str:
    """Map a request path onto a file under public_dir.

    Raises 403 if the path escapes public_dir. Existence is not checked here.
    """
    root = os.path.realpath(public_dir)
    relative = request_path.lstrip("/") or "index.html"
    candidate = os.path.realpath(os.path.join(root, relative))
    if candidate != root and not candidate.startswith(root + os.sep):
        logger.warning(f"Rejected path outside public dir: {request_path!r}")
        raise HTTPException(status_code=403, detail="Forbidden")
    return candidate


def build_static_router(public_dir: str = PUBLIC_DIR) -> APIRouter:
    static_router = APIRouter(tags=["static"])

    def serve_file(request_path: str) -> FileResponse:
        file_path = resolve_public_path(public_dir, request_path)
        if not os.path.isfile(file_path):
            logger.debug(f"Static file not found: {request_path!r}")
            raise HTTPException(status_code=404, detail="Not found")
        return FileResponse(file_path, media_type=content_type_for(file_path))

    @static_router.get("/", include_in_schema=False)
    async def serve_index():
        return serve_file("index.html")

    # any /room/<name> is handled client-side by the same page
    @static_router.get("/room/{room_path:path}", include_in_schema=False)
    async def serve_room(room_path: str):
        return serve_file("index.html")

    @static_router.get("/{file_path:path}", include_in_schema=False)
    async def serve_static(file_path: str):
        return serve_file(file_path)

    return static_router
