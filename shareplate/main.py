import hmac
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, File, HTTPException, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, RedirectResponse

from shareplate.config import Settings, configure_logging, get_settings
from shareplate.models import (
    AdminLoginRequest,
    FileListResponse,
    FileRecord,
    FileStats,
    MessageResponse,
    RetrievedFile,
    RetrieveRequest,
    RetrieveResponse,
    StorageHandle,
    UploadResponse,
)
from shareplate.registry import FileRegistry, ShareConflictError
from shareplate.relay import RelayError, RelayNotConfiguredError, TelegramRelay, read_upload
from shareplate.sharing import generate_share_code, generate_share_link

logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None, relay: TelegramRelay | None = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings)

    registry = FileRegistry()
    owns_relay = relay is None
    if relay is None:
        relay = TelegramRelay(
            settings.telegram_bot_token,
            settings.telegram_channel_id,
            api_base=settings.telegram_api_base,
            timeout=settings.relay_timeout_seconds,
        )

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        if not relay.configured:
            logger.warning("Telegram relay is not configured; uploads will be rejected")
        yield
        if owns_relay:
            relay.close()

    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.state.registry = registry
    app.state.relay = relay

    @app.get("/")
    def root() -> dict:
        return {"status": "ok", "service": settings.app_name}

    def error_response(status_code: int, message: str, code: str) -> JSONResponse:
        return JSONResponse(
            status_code=status_code,
            content={"error": {"code": code, "message": message}},
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_exception_handler(_: Request, exc: RequestValidationError):
        missing_fields = [
            ".".join(str(item) for item in error["loc"] if item != "body")
            for error in exc.errors()
            if error.get("type") == "missing"
        ]
        if missing_fields:
            message = f"missing parameters: {', '.join(missing_fields)}"
        else:
            message = "invalid request parameters"
        return error_response(400, message, "bad_request")

    @app.exception_handler(HTTPException)
    async def http_exception_handler(_: Request, exc: HTTPException):
        message = str(exc.detail) if exc.detail else "request failed"
        code_map = {
            400: "bad_request",
            401: "unauthorized",
            404: "not_found",
            413: "payload_too_large",
            500: "internal_error",
            502: "upstream_error",
            503: "service_unavailable",
        }
        return error_response(exc.status_code, message, code_map.get(exc.status_code, "error"))

    def relay_failure(exc: RelayError) -> HTTPException:
        if isinstance(exc, RelayNotConfiguredError):
            return HTTPException(status_code=503, detail=str(exc))
        return HTTPException(status_code=502, detail=str(exc))

    @app.get("/health")
    def health() -> dict:
        return {"status": "ok", "environment": settings.app_env, "files": len(registry)}

    def register(file: UploadFile, handle: StorageHandle, size: int) -> FileRecord:
        for _ in range(settings.share_generation_attempts):
            try:
                return registry.create(
                    original_name=file.filename,
                    storage_handle=handle,
                    file_size=size,
                    mime_type=file.content_type or "application/octet-stream",
                    share_code=generate_share_code(),
                    share_link=generate_share_link(settings.base_url),
                )
            except ShareConflictError as exc:
                logger.warning("Share identifier collision on %s, regenerating", exc.field)

        relay.discard(handle)
        raise HTTPException(status_code=500, detail="could not allocate share identifiers")

    @app.post("/api/upload", response_model=UploadResponse, status_code=201)
    def upload_files(files: list[UploadFile] = File(...)):
        if not files:
            raise HTTPException(status_code=400, detail="No files uploaded")

        uploaded = []
        for file in files:
            if not file.filename:
                raise HTTPException(status_code=400, detail="filename is required")

            try:
                content = read_upload(file, settings.max_upload_size_bytes)
            except ValueError as exc:
                raise HTTPException(status_code=413, detail=str(exc)) from exc

            try:
                handle = relay.upload(
                    filename=file.filename,
                    content=content,
                    content_type=file.content_type or "application/octet-stream",
                )
            except RelayError as exc:
                logger.error("Upload of %s failed: %s", file.filename, exc)
                raise relay_failure(exc) from exc

            uploaded.append(register(file, handle, len(content)))

        return UploadResponse(message="Files uploaded successfully", files=uploaded)

    def download(record: FileRecord) -> str:
        try:
            return relay.download_link(record.storage_handle.file_id)
        except RelayError as exc:
            logger.error("Download link for %s failed: %s", record.id, exc)
            raise relay_failure(exc) from exc

    @app.post("/api/retrieve", response_model=RetrieveResponse)
    def retrieve_file(payload: RetrieveRequest):
        record = registry.resolve(payload.identifier)
        if record is None:
            raise HTTPException(status_code=404, detail="File not found")

        return RetrieveResponse(
            file=RetrievedFile(
                id=record.id,
                original_name=record.original_name,
                file_size=record.file_size,
                mime_type=record.mime_type,
                uploaded_at=record.uploaded_at,
                download_link=download(record),
            )
        )

    @app.get("/d/{suffix}")
    def follow_share_link(suffix: str):
        record = registry.resolve(f"/d/{suffix}")
        if record is None:
            raise HTTPException(status_code=404, detail="File not found")
        return RedirectResponse(url=download(record), status_code=307)

    @app.post("/api/admin/login", response_model=MessageResponse)
    def admin_login(payload: AdminLoginRequest):
        if not hmac.compare_digest(payload.password.encode("utf-8"), settings.admin_password.encode("utf-8")):
            raise HTTPException(status_code=401, detail="Invalid password")
        return MessageResponse(message="Login successful")

    @app.get("/api/admin/stats", response_model=FileStats)
    def admin_stats():
        return registry.stats()

    @app.get("/api/admin/files", response_model=FileListResponse)
    def admin_list_files():
        return FileListResponse(files=registry.list_all())

    @app.delete("/api/admin/files/{file_id}", response_model=MessageResponse)
    def admin_delete_file(file_id: str):
        record = registry.get_by_id(file_id)
        if record is None:
            raise HTTPException(status_code=404, detail="File not found")

        relay.discard(record.storage_handle)

        if not registry.delete(file_id):
            # Lost a race with a concurrent delete.
            raise HTTPException(status_code=404, detail="File not found")
        logger.info("Deleted file %s (%s)", file_id, record.original_name)
        return MessageResponse(message="File deleted successfully")

    return app


app = create_app()
