"""FastAPI gateway: websocket game channel plus the REST side surfaces."""

from __future__ import annotations

import base64
from contextlib import asynccontextmanager
import io
import json
import logging
from pathlib import Path
import socket
from uuid import uuid4

from fastapi import (
    Depends,
    FastAPI,
    File,
    Form,
    HTTPException,
    Request,
    UploadFile,
    WebSocket,
    WebSocketDisconnect,
)
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel, Field, ValidationError, model_validator
import qrcode
import uvicorn

from livequiz.constants.about import APP_ABOUT_TEXT, APP_LICENSE, APP_NAME, APP_VERSION
from livequiz.constants.network_constants import DEFAULT_HOST, DEFAULT_PORT
from livequiz.constants.quiz_constants import IMAGES_DIR_NAME
from livequiz.core.errors import (
    CommandRejected,
    QuestionNotFoundError,
    QuestionValidationError,
    QuizImportError,
)
from livequiz.core.models import QuizQuestion
from livequiz.core.quiz_manager import CommandResult, QuizManager
from livequiz.server.broadcaster import Broadcaster, Connection
from livequiz.server.image_store import QuestionImageStore

logger = logging.getLogger(__name__)

HOST_COMMANDS = ("start_game", "advance_question", "reset_game")


class ClientMessage(BaseModel):
    """Inbound websocket message from a host or player screen."""

    type: str
    name: str | None = None
    option: str | None = None


class QuestionPayload(BaseModel):
    """Form fields for creating or updating a question.

    The correct option can be given by index or by its text. The image
    travels separately as a multipart upload.
    """

    prompt: str
    options: list[str] = Field(min_length=2)
    correct_option_index: int | None = None
    correct_option: str | None = None

    @model_validator(mode="after")
    def _resolve_correct_option(self) -> "QuestionPayload":
        if self.correct_option_index is None:
            if self.correct_option is None:
                raise ValueError("Either correct_option_index or correct_option is required")
            stripped = [option.strip() for option in self.options]
            if self.correct_option.strip() not in stripped:
                raise ValueError("correct_option must be one of the options")
            self.correct_option_index = stripped.index(self.correct_option.strip())
        return self

    def to_question(self, image: str | None = None) -> QuizQuestion:
        return QuizQuestion(
            id=0,
            prompt=self.prompt,
            options=list(self.options),
            correct_option_index=self.correct_option_index or 0,
            image=image,
        )


class SettingsPayload(BaseModel):
    questions_per_game: int = Field(ge=1)


def _question_dict(question: QuizQuestion) -> dict[str, object]:
    payload = question.to_dict()
    payload["correct_option"] = question.correct_option
    return payload


def _parse_question_form(
    prompt: str,
    options: str,
    correct_option_index: int | None,
    correct_option: str | None,
) -> QuestionPayload:
    """Validate admin form fields; ``options`` is a JSON-encoded list of strings."""
    try:
        parsed = json.loads(options)
    except json.JSONDecodeError as exc:
        raise HTTPException(status_code=422, detail="options must be a JSON list") from exc
    if not isinstance(parsed, list) or not all(isinstance(item, str) for item in parsed):
        raise HTTPException(status_code=422, detail="options must be a JSON list of strings")
    try:
        return QuestionPayload(
            prompt=prompt,
            options=parsed,
            correct_option_index=correct_option_index,
            correct_option=correct_option,
        )
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc


def _uploaded_image(image: UploadFile | None) -> UploadFile | None:
    # Browsers send an empty part when the file input is left blank.
    if image is None or not image.filename:
        return None
    if not (image.content_type or "").startswith("image/"):
        raise HTTPException(status_code=400, detail="Uploaded file must be an image")
    return image


def _qr_code_data_url(text: str) -> str:
    qr = qrcode.QRCode(border=1, box_size=4)
    qr.add_data(text)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")
    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    encoded = base64.b64encode(buffer.getvalue()).decode("ascii")
    return f"data:image/png;base64,{encoded}"


def _determine_server_url(port: int) -> str:
    """Best-effort determination of the local IP for the client-facing URL."""
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
            sock.connect(("8.8.8.8", 80))
            ip_address = sock.getsockname()[0]
    except OSError:
        ip_address = "127.0.0.1"
    return f"http://{ip_address}:{port}"


def _get_quiz_manager_dependency(quiz_manager: QuizManager):
    def dependency() -> QuizManager:
        return quiz_manager

    return dependency


def create_api_app(
    quiz_manager: QuizManager,
    port: int = DEFAULT_PORT,
    images_dir: Path | None = None,
) -> FastAPI:
    """Create a FastAPI application wired to the provided quiz manager."""
    broadcaster = Broadcaster()
    images = QuestionImageStore(images_dir or Path("data") / IMAGES_DIR_NAME)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await broadcaster.start()
        quiz_manager.add_listener(broadcaster.publish)
        logger.info("Gateway started")
        try:
            yield
        finally:
            quiz_manager.remove_listener(broadcaster.publish)
            await broadcaster.stop()
            logger.info("Gateway stopped")

    app = FastAPI(
        title=f"{APP_NAME} API",
        version=APP_VERSION,
        description=APP_ABOUT_TEXT,
        license_info={"name": APP_LICENSE},
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["*"],
    )
    app.mount("/images", StaticFiles(directory=images.root), name="images")
    app.state.broadcaster = broadcaster
    app.state.images = images
    quiz_manager_dep = _get_quiz_manager_dependency(quiz_manager)

    # --- Live game channel ---

    def handle_message(connection: Connection, message: ClientMessage) -> CommandResult:
        connection_id = connection.connection_id
        if message.type == "join":
            return quiz_manager.join(connection_id, message.name)
        if message.type == "submit_answer":
            if message.option is None:
                raise CommandRejected("bad_message", "submit_answer requires an option")
            return quiz_manager.submit_answer(connection_id, message.option)
        if message.type in HOST_COMMANDS:
            if not connection.is_host:
                raise CommandRejected("host_only", "Only the host can do that")
            if message.type == "start_game":
                return quiz_manager.start_game()
            if message.type == "advance_question":
                return quiz_manager.advance_question()
            return quiz_manager.reset_game()
        if message.type == "state":
            quiz_manager.snapshot_for(
                connection_id,
                include_answer=connection.is_host,
                sink=lambda state: broadcaster.send_direct(connection_id, state),
            )
            return CommandResult()
        raise CommandRejected("bad_message", f"Unknown message type '{message.type}'")

    @app.websocket("/ws")
    async def game_channel(websocket: WebSocket, role: str = "player") -> None:
        await websocket.accept()
        connection = Connection(
            connection_id=uuid4().hex,
            websocket=websocket,
            is_host=role == "host",
        )
        broadcaster.register(connection)
        logger.info("Observer %s connected (role=%s)", connection.connection_id, role)
        # Late or returning observers get the current state, never an event backlog.
        quiz_manager.snapshot_for(
            connection.connection_id,
            include_answer=connection.is_host,
            sink=lambda state: broadcaster.send_direct(connection.connection_id, state),
        )
        try:
            while True:
                raw = await websocket.receive_text()
                try:
                    message = ClientMessage.model_validate(json.loads(raw))
                    result = handle_message(connection, message)
                except (json.JSONDecodeError, ValidationError):
                    broadcaster.send_direct(
                        connection.connection_id,
                        CommandRejected("bad_message", "Malformed message").to_payload(),
                    )
                    continue
                except CommandRejected as exc:
                    logger.warning(
                        "Rejected %s from %s: %s", raw[:80], connection.connection_id, exc.message
                    )
                    broadcaster.send_direct(connection.connection_id, exc.to_payload())
                    continue
                if result.reply is not None:
                    broadcaster.send_direct(connection.connection_id, result.reply)
        except WebSocketDisconnect:
            logger.info("Observer %s disconnected", connection.connection_id)
        finally:
            broadcaster.unregister(connection.connection_id)
            quiz_manager.release_connection(connection.connection_id)

    # --- Game state over HTTP ---

    @app.get("/health")
    def health() -> dict[str, object]:
        return {"ok": True, "observers": broadcaster.connection_count()}

    @app.get("/api/state")
    def get_state(
        role: str = "player", manager: QuizManager = Depends(quiz_manager_dep)
    ) -> dict[str, object]:
        return manager.snapshot(include_answer=role == "host")

    @app.get("/api/leaderboard")
    def get_leaderboard(manager: QuizManager = Depends(quiz_manager_dep)) -> dict[str, object]:
        return manager.get_leaderboard()

    @app.get("/api/server-info")
    def get_server_info(request: Request) -> dict[str, object]:
        forwarded_host = request.headers.get("host")
        if forwarded_host and not forwarded_host.startswith(("localhost", "127.0.0.1")):
            proto = request.headers.get("x-forwarded-proto", request.url.scheme)
            base_url = f"{proto}://{forwarded_host}"
        else:
            base_url = _determine_server_url(port)
        client_url = f"{base_url}/client"
        return {
            "url": base_url,
            "client_url": client_url,
            "qr_code": _qr_code_data_url(client_url),
        }

    # --- Admin: question bank ---

    @app.get("/api/admin/questions")
    def list_questions(manager: QuizManager = Depends(quiz_manager_dep)) -> list[dict[str, object]]:
        return [_question_dict(q) for q in manager.list_questions()]

    @app.post("/api/admin/questions", status_code=201)
    def create_question(
        prompt: str = Form(...),
        options: str = Form(...),
        correct_option_index: int | None = Form(None),
        correct_option: str | None = Form(None),
        image: UploadFile | None = File(None),
        manager: QuizManager = Depends(quiz_manager_dep),
    ) -> dict[str, object]:
        payload = _parse_question_form(prompt, options, correct_option_index, correct_option)
        upload = _uploaded_image(image)
        image_url = images.save(upload) if upload is not None else None
        try:
            created = manager.add_question(payload.to_question(image=image_url))
        except QuestionValidationError as exc:
            images.delete(image_url)
            raise HTTPException(status_code=422, detail=str(exc)) from exc
        return _question_dict(created)

    @app.put("/api/admin/questions/{question_id}")
    def update_question(
        question_id: int,
        prompt: str = Form(...),
        options: str = Form(...),
        correct_option_index: int | None = Form(None),
        correct_option: str | None = Form(None),
        image: UploadFile | None = File(None),
        manager: QuizManager = Depends(quiz_manager_dep),
    ) -> dict[str, object]:
        try:
            existing = manager.get_question(question_id)
        except QuestionNotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        payload = _parse_question_form(prompt, options, correct_option_index, correct_option)
        upload = _uploaded_image(image)
        new_url = images.save(upload) if upload is not None else None
        try:
            updated = manager.update_question(
                question_id, payload.to_question(image=new_url or existing.image)
            )
        except (QuestionNotFoundError, QuestionValidationError) as exc:
            images.delete(new_url)
            status = 404 if isinstance(exc, QuestionNotFoundError) else 422
            raise HTTPException(status_code=status, detail=str(exc)) from exc
        if new_url is not None:
            images.delete(existing.image)
        return _question_dict(updated)

    @app.delete("/api/admin/questions/{question_id}")
    def delete_question(
        question_id: int, manager: QuizManager = Depends(quiz_manager_dep)
    ) -> dict[str, object]:
        try:
            removed = manager.delete_question(question_id)
        except QuestionNotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        images.delete(removed.image)
        return {"success": True}

    @app.get("/api/admin/questions/export", response_class=PlainTextResponse)
    def export_questions(manager: QuizManager = Depends(quiz_manager_dep)) -> str:
        return manager.export_questions()

    @app.post("/api/admin/questions/import")
    async def import_questions(
        request: Request, manager: QuizManager = Depends(quiz_manager_dep)
    ) -> dict[str, object]:
        text = (await request.body()).decode("utf-8", errors="replace")
        try:
            count = await run_in_threadpool(manager.import_questions, text)
        except (QuizImportError, QuestionValidationError) as exc:
            raise HTTPException(status_code=422, detail=str(exc)) from exc
        return {"imported": count}

    # --- Settings ---

    @app.get("/api/settings")
    def get_settings(manager: QuizManager = Depends(quiz_manager_dep)) -> dict[str, object]:
        return manager.get_settings()

    @app.put("/api/settings")
    def update_settings(
        payload: SettingsPayload, manager: QuizManager = Depends(quiz_manager_dep)
    ) -> dict[str, object]:
        manager.set_questions_per_game(payload.questions_per_game)
        return manager.get_settings()

    # --- Teacher dashboard ---

    @app.get("/api/teacher/dashboard")
    def get_dashboard(manager: QuizManager = Depends(quiz_manager_dep)) -> dict[str, object]:
        return manager.dashboard()

    @app.get("/api/teacher/students/{name}")
    def get_student(name: str, manager: QuizManager = Depends(quiz_manager_dep)) -> dict[str, object]:
        history = manager.student_history(name)
        if history is None:
            raise HTTPException(status_code=404, detail=f"No results for student '{name}'")
        return history

    @app.delete("/api/teacher/data")
    def clear_data(manager: QuizManager = Depends(quiz_manager_dep)) -> dict[str, object]:
        manager.clear_results()
        return {"success": True}

    return app


def run_api_server(
    quiz_manager: QuizManager,
    host: str = DEFAULT_HOST,
    port: int = DEFAULT_PORT,
    images_dir: Path | None = None,
) -> None:
    """Serve the gateway in the foreground until interrupted."""
    app = create_api_app(quiz_manager, port=port, images_dir=images_dir)
    config = uvicorn.Config(app=app, host=host, port=port, log_level="info")
    server = uvicorn.Server(config)
    server.run()
