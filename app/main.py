import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, File, Form, HTTPException, Query, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse, PlainTextResponse, RedirectResponse
from fastapi.staticfiles import StaticFiles

from app.cloudinary_storage import CloudinaryStorage
from app.config import Settings, get_settings
from app.credentials import AuthState, load_auth
from app.drive import DriveStorage
from app.error_log import ErrorLog
from app.errors import NotConfiguredError, RemoteStorageError, UploadTooLargeError
from app.models import UploadResponse
from app.storage import RemoteStorage, TempUploadStore

logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=logging.INFO,
)

logger = logging.getLogger(__name__)

GENERIC_UPLOAD_ERROR = "Upload failed, please try again"


def build_storage(settings: Settings, auth: AuthState) -> RemoteStorage:
    if settings.storage_backend == "cloudinary":
        return CloudinaryStorage(settings)
    return DriveStorage(auth, settings.event_folder)


def create_app(
    settings: Settings | None = None,
    *,
    auth: AuthState | None = None,
    storage: RemoteStorage | None = None,
) -> FastAPI:
    settings = settings or get_settings()
    logging.getLogger().setLevel(settings.log_level)

    if auth is None:
        auth = load_auth(settings)
    if storage is None:
        storage = build_storage(settings, auth)
    temp_uploads = TempUploadStore(settings.upload_dir, settings.max_file_size_mb)
    error_log = ErrorLog(settings.error_log_path, settings.secret_values)
    static_dir = Path(settings.static_dir)

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        temp_uploads.init()
        logger.info(
            "Upload server starting",
            extra={"backend": storage.name, "oauth_configured": auth.configured, "port": settings.port},
        )
        yield
        logger.info("Upload server shutting down")

    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    if static_dir.is_dir():
        app.mount("/static", StaticFiles(directory=static_dir), name="static")

    def error_response(status_code: int, message: str, correlation_id: str | None = None) -> JSONResponse:
        content = {"success": False, "error": message}
        if correlation_id:
            content["id"] = correlation_id
        return JSONResponse(status_code=status_code, content=content)

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
        return error_response(400, message)

    @app.exception_handler(HTTPException)
    async def http_exception_handler(_: Request, exc: HTTPException):
        return error_response(exc.status_code, str(exc.detail) if exc.detail else "request failed")

    @app.exception_handler(NotConfiguredError)
    async def not_configured_handler(_: Request, exc: NotConfiguredError):
        logger.error("Service not configured", extra={"service": exc.service, "reason": exc.reason})
        return error_response(500, str(exc))

    @app.exception_handler(UploadTooLargeError)
    async def upload_too_large_handler(_: Request, exc: UploadTooLargeError):
        return error_response(413, str(exc))

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        correlation_id = error_log.record(exc)
        logger.error(
            "Unhandled exception",
            extra={"path": request.url.path, "method": request.method, "correlation_id": correlation_id},
        )
        return error_response(500, "Internal server error", correlation_id)

    @app.get("/", include_in_schema=False)
    def index():
        index_file = static_dir / "index.html"
        if not index_file.is_file():
            raise HTTPException(status_code=404, detail="index.html not found")
        return FileResponse(index_file)

    @app.get("/health")
    def health() -> dict:
        return {"ok": True, "env": {"frontend": settings.frontend_origin}}

    @app.get("/auth")
    def start_auth(
        force: str = Query("0"),
        prompt: str | None = Query(None),
        login_hint: str | None = Query(None),
        authuser: str | None = Query(None),
    ):
        if not auth.configured:
            return PlainTextResponse("Google OAuth not configured on the server", status_code=500)
        url = auth.require().authorization_url(
            force=force == "1",
            prompt=prompt,
            login_hint=login_hint,
            authuser=authuser,
        )
        return RedirectResponse(url, status_code=302)

    @app.get("/oauth2callback", response_class=PlainTextResponse)
    def oauth_callback(code: str | None = Query(None)):
        if not auth.configured:
            return PlainTextResponse("Google OAuth not configured on the server", status_code=500)
        if not code:
            return PlainTextResponse("Missing authorization code", status_code=400)

        client = auth.require()
        try:
            client.set_token(client.exchange_code(code))
        except Exception as e:
            logger.error("OAuth code exchange failed", extra={"error": str(e)})
            return PlainTextResponse("Authentication failed", status_code=500)
        return "Authentication complete. You can close this tab."

    @app.post("/upload", response_model=UploadResponse)
    def upload_file(
        guest_name: str | None = Form(None, alias="guestName"),
        file: UploadFile | None = File(None),
    ):
        storage.ensure_ready()
        if not guest_name or not guest_name.strip():
            raise HTTPException(status_code=400, detail="guestName is required")
        if file is None or not file.filename:
            raise HTTPException(status_code=400, detail="file is required")

        temp_path = None
        try:
            temp_path = temp_uploads.save(file)
            result = storage.upload(
                path=temp_path,
                guest_name=guest_name,
                filename=file.filename,
                mime_type=file.content_type,
            )
        except RemoteStorageError as exc:
            correlation_id = error_log.record(exc, guest_name=guest_name, filename=file.filename)
            return error_response(500, GENERIC_UPLOAD_ERROR, correlation_id)
        finally:
            temp_uploads.discard(temp_path)

        return UploadResponse(file=result)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("app.main:app", host="0.0.0.0", port=get_settings().port)
