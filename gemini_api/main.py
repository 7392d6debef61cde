"""
FastAPI application for the Gemini PDF Chat Gateway.
"""

import asyncio
import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, List, Optional
from fastapi import APIRouter, Body, Depends, FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging

from .auth import verify_api_key
from .config import Settings, settings, validate_required_settings
from .errors import ChatError, UpstreamError
from .model_registry import get_all_model_configs
from .models import (
    ErrorResponse, GenerateResponse, HealthResponse, MessageResponse, MessageResult,
    ModelsResponse, SessionCreateRequest, SessionSnapshot
)
from .services import ChatManager, GeminiConversationClient, GenerationService, SessionStore
from .services.gemini_client import ConversationClient
from .utils import format_timestamp, get_client_ip, staged_filename, validate_file_size, validate_pdf_upload

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

UPLOAD_CHUNK_SIZE = 1024 * 1024


def get_chat_manager(request: Request) -> ChatManager:
    return request.app.state.chat_manager


def get_generation_service(request: Request) -> GenerationService:
    return request.app.state.generation_service


async def read_limited(upload: UploadFile, max_file_size_mb: int) -> bytes:
    """Read an upload in chunks, stopping as soon as it exceeds the size limit."""
    chunks = []
    size = 0
    while True:
        chunk = await upload.read(UPLOAD_CHUNK_SIZE)
        if not chunk:
            break
        size += len(chunk)
        if not validate_file_size(size, max_file_size_mb):
            raise HTTPException(
                status_code=400,
                detail=f"File {upload.filename} is too large. Maximum size is {max_file_size_mb}MB."
            )
        chunks.append(chunk)
    return b"".join(chunks)


@asynccontextmanager
async def staged_pdf(upload: Optional[UploadFile], app_settings: Settings) -> AsyncIterator[Optional[str]]:
    """
    Validate an uploaded PDF and stage it on disk for the duration of a request.

    The staged file is always removed on exit.
    """
    if upload is None:
        yield None
        return

    if not validate_pdf_upload(upload.filename, upload.content_type):
        raise HTTPException(status_code=400, detail="Only PDF files are allowed")

    content = await read_limited(upload, app_settings.max_file_size_mb)

    directory = Path(app_settings.upload_dir)
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / staged_filename(upload.filename)
    await asyncio.to_thread(path.write_bytes, content)

    try:
        yield str(path)
    finally:
        try:
            os.unlink(path)
        except FileNotFoundError:
            pass


router = APIRouter(prefix="/api", dependencies=[Depends(verify_api_key)])


@router.get("/models", response_model=ModelsResponse)
async def list_models():
    """List the models this gateway accepts."""
    return ModelsResponse(models=get_all_model_configs())


@router.post("/generate", response_model=GenerateResponse)
async def generate(
    request: Request,
    prompt: Optional[str] = Form(None),
    preprompt: Optional[str] = Form(None),
    model: Optional[str] = Form(None),
    pdf: Optional[UploadFile] = File(None),
    generation_service: GenerationService = Depends(get_generation_service),
):
    """
    Generate content from a PDF and a prompt without a chat session.

    The uploaded PDF is required (PDF only, size limited) and deleted afterwards.
    """
    if pdf is None:
        raise HTTPException(status_code=400, detail="PDF file is required")
    if not prompt:
        raise HTTPException(status_code=400, detail="Prompt is required")

    async with staged_pdf(pdf, request.app.state.settings) as pdf_path:
        result = await generation_service.generate(pdf_path, prompt, preprompt, model)
    return GenerateResponse(result=result)


@router.post("/chat/session", response_model=SessionSnapshot)
async def create_chat_session(
    request: Request,
    payload: Optional[SessionCreateRequest] = Body(None),
    chat_manager: ChatManager = Depends(get_chat_manager),
):
    """Start a chat session for the caller, replacing any session it already has."""
    payload = payload or SessionCreateRequest()
    return await chat_manager.create_session(get_client_ip(request), payload.preprompt, payload.model)


@router.post("/chat/{session_id}/message", response_model=MessageResponse)
async def send_chat_message(
    session_id: str,
    request: Request,
    message: Optional[str] = Form(None),
    pdf: Optional[UploadFile] = File(None),
    chat_manager: ChatManager = Depends(get_chat_manager),
):
    """Send a message, optionally with a PDF, to an existing chat session."""
    if not message:
        raise HTTPException(status_code=400, detail="Message is required")

    async with staged_pdf(pdf, request.app.state.settings) as pdf_path:
        return await chat_manager.send_message(session_id, get_client_ip(request), message, pdf_path)


@router.get("/chat/{session_id}", response_model=SessionSnapshot)
async def get_chat_session(session_id: str, request: Request,
                           chat_manager: ChatManager = Depends(get_chat_manager)):
    session = await chat_manager.get_session(session_id, get_client_ip(request))
    if not session:
        raise HTTPException(status_code=404, detail="Chat session not found")
    return session


@router.get("/chat", response_model=List[SessionSnapshot])
async def list_chat_sessions(request: Request, chat_manager: ChatManager = Depends(get_chat_manager)):
    return await chat_manager.list_sessions(get_client_ip(request))


@router.delete("/chat/{session_id}", response_model=MessageResult)
async def delete_chat_session(session_id: str, request: Request,
                              chat_manager: ChatManager = Depends(get_chat_manager)):
    if not await chat_manager.delete_session(session_id, get_client_ip(request)):
        raise HTTPException(status_code=404, detail="Chat session not found")
    return MessageResult(message="Chat session deleted successfully")


@router.delete("/chat", response_model=MessageResult)
async def delete_all_chat_sessions(request: Request, chat_manager: ChatManager = Depends(get_chat_manager)):
    deleted_count = await chat_manager.delete_all_sessions(get_client_ip(request))
    return MessageResult(message=f"Deleted {deleted_count} chat sessions")


async def chat_error_handler(request: Request, exc: ChatError) -> JSONResponse:
    """Translate core error kinds into HTTP responses."""
    if isinstance(exc, UpstreamError):
        logger.error(f"Upstream failure on {request.method} {request.url.path}: {exc.kind}: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected: {exc.kind}: {exc.message}")

    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=exc.message,
            kind=exc.kind,
            status_code=exc.status_code
        ).model_dump()
    )


def create_app(app_settings: Settings = None, client: ConversationClient = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        app_settings: Settings to use, the environment settings by default
        client: Conversation client, a Gemini client built from settings by default
    """
    app_settings = app_settings or settings
    conversation_client = client or GeminiConversationClient(app_settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if client is None:
            # Validate required settings on startup
            try:
                validate_required_settings(app_settings)
            except ValueError as e:
                logger.error(f"Configuration validation failed: {e}")
                raise
        await app.state.chat_manager.start()
        logger.info(f"{app_settings.app_name} {app_settings.app_version} started")
        try:
            yield
        finally:
            await app.state.chat_manager.stop()
            logger.info(f"{app_settings.app_name} stopped")

    app = FastAPI(
        title=app_settings.app_name,
        version=app_settings.app_version,
        description="HTTP gateway for Gemini chat sessions over PDF documents",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    store = SessionStore(
        conversation_client,
        ttl=app_settings.session_ttl,
        cleanup_interval=app_settings.session_cleanup_interval,
        default_preprompt=app_settings.default_preprompt,
    )
    app.state.settings = app_settings
    app.state.chat_manager = ChatManager(store, upstream_timeout=app_settings.upstream_timeout_seconds)
    app.state.generation_service = GenerationService(conversation_client, app_settings)

    @app.exception_handler(Exception)
    async def global_exception_handler(request, exc):
        """Global exception handler."""
        logger.error(f"Unhandled exception: {str(exc)}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content=ErrorResponse(
                error="Internal server error",
                detail=str(exc) if app_settings.debug else "An unexpected error occurred",
                status_code=500
            ).model_dump()
        )

    app.add_exception_handler(ChatError, chat_error_handler)

    @app.get("/", response_model=dict)
    async def root():
        """Root endpoint."""
        return {
            "message": "Gemini PDF Chat Gateway is running",
            "version": app_settings.app_version,
            "timestamp": format_timestamp()
        }

    @app.get("/health", response_model=HealthResponse)
    async def health_check(request: Request):
        """Health check endpoint."""
        chat_manager: ChatManager = request.app.state.chat_manager
        return HealthResponse(
            status="healthy" if chat_manager.store.is_running else "degraded",
            message="Service health check completed",
            version=app_settings.app_version,
            timestamp=format_timestamp(),
            active_sessions=len(chat_manager.store)
        )

    app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "gemini_api.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug
    )
