import asyncio
from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import Depends, FastAPI, File, Form, Header, HTTPException, Request, UploadFile, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from pydantic import ValidationError

from auth import AuthenticationError, SessionAuth
from config import (
    ACCESS_TOKEN_EXPIRE_MINUTES,
    ADMIN_EMAIL,
    ADMIN_PASSWORD_HASH,
    ADMIN_PATH,
    ALGORITHM,
    MAX_PENDING_MESSAGES,
    MAX_UPLOAD_BYTES,
    PORTFOLIO_COLLECTION,
    PORTFOLIO_DOCUMENT_ID,
    PORTFOLIO_WATCH_CHANGES,
    SECRET_KEY,
    pwd_context,
)
from database import get_collection
from logging_config import setup_logging
from media import COVER_TOO_LARGE, FILE_TOO_LARGE, FileTooLarge, InlineFile
from portfolio import ControllerNotReady, PortfolioController, UnknownSection
from presenter import public_view, resolve_mode, resume_links
from schemas import (
    SECTION_MODELS,
    LoginRequest,
    ProjectCreate,
    ProjectUpdate,
    ResumeCreate,
    ResumeUpdate,
    SkillCategoryCreate,
    Token,
)
from store import DocumentStore

logger = structlog.get_logger(__name__)


class Broadcaster:
    """Fans controller events out to connected WebSocket viewers.

    Each viewer gets a bounded queue. A viewer that falls behind loses its
    oldest pending messages; every snapshot carries the whole document, so
    the newest one is all it needs.
    """

    def __init__(self, max_pending: int = MAX_PENDING_MESSAGES):
        self._queues = set()
        self._max_pending = max_pending

    def connect(self) -> asyncio.Queue:
        queue = asyncio.Queue(maxsize=self._max_pending)
        self._queues.add(queue)
        return queue

    def disconnect(self, queue: asyncio.Queue) -> None:
        self._queues.discard(queue)

    def publish(self, message: dict) -> None:
        for queue in list(self._queues):
            try:
                queue.put_nowait(message)
            except asyncio.QueueFull:
                dropped = queue.get_nowait()
                logger.warning("Viewer falling behind, dropping oldest message", dropped_type=dropped.get("type"))
                queue.put_nowait(message)


def create_app(store: Optional[DocumentStore] = None, auth: Optional[SessionAuth] = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging()
        doc_store = store if store is not None else DocumentStore(get_collection(PORTFOLIO_COLLECTION), PORTFOLIO_DOCUMENT_ID)
        broadcaster = Broadcaster()
        controller = PortfolioController(
            doc_store,
            on_save_error=lambda message: broadcaster.publish({"type": "error", "message": message}),
        )
        controller.add_listener(lambda document: broadcaster.publish({"type": "snapshot", "data": document}))
        controller.start()
        # A first run writes the default document; let it land before serving
        await controller.flush()
        if PORTFOLIO_WATCH_CHANGES:
            doc_store.start_watching(asyncio.get_running_loop())

        app.state.store = doc_store
        app.state.controller = controller
        app.state.broadcaster = broadcaster
        logger.info("Portfolio API started", state=controller.state.value)
        try:
            yield
        finally:
            controller.stop()
            doc_store.stop_watching()
            await controller.flush()
            logger.info("Portfolio API stopped")

    app = FastAPI(title="Portfolio API", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.auth = auth if auth is not None else SessionAuth(
        ADMIN_EMAIL,
        ADMIN_PASSWORD_HASH,
        SECRET_KEY,
        algorithm=ALGORITHM,
        expire_minutes=ACCESS_TOKEN_EXPIRE_MINUTES,
        pwd_context=pwd_context,
    )

    register_routes(app)
    return app


# ============
# Dependencies
# ============

def get_auth(request: Request) -> SessionAuth:
    return request.app.state.auth


def get_controller(request: Request) -> PortfolioController:
    controller = request.app.state.controller
    if not controller.ready:
        raise HTTPException(status_code=503, detail="Portfolio is still loading")
    return controller


def bearer_token(authorization: Optional[str] = Header(None)) -> Optional[str]:
    if not authorization or not authorization.lower().startswith("bearer "):
        return None
    return authorization.split(" ", 1)[1]


def get_current_admin(token: Optional[str] = Depends(bearer_token), auth: SessionAuth = Depends(get_auth)):
    if token is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    if not auth.check_session(token):
        raise HTTPException(status_code=401, detail="Invalid token")
    return {"role": "admin"}


# ======
# Routes
# ======

def register_routes(app: FastAPI) -> None:
    @app.get("/")
    def root():
        return {"status": "ok", "service": "portfolio-api"}

    @app.get("/api/mode")
    def mode(path: str = "/"):
        return {"mode": resolve_mode(path, ADMIN_PATH)}

    # Auth
    @app.post("/api/auth/login", response_model=Token)
    def login(data: LoginRequest, auth: SessionAuth = Depends(get_auth)):
        try:
            token = auth.login(data.email, data.password)
        except AuthenticationError as e:
            raise HTTPException(status_code=401, detail=str(e))
        return Token(access_token=token)

    @app.post("/api/auth/logout")
    def logout(token: Optional[str] = Depends(bearer_token), auth: SessionAuth = Depends(get_auth)):
        auth.logout(token)
        return {"ok": True}

    @app.get("/api/auth/session")
    def session(token: Optional[str] = Depends(bearer_token), auth: SessionAuth = Depends(get_auth)):
        return {"authenticated": auth.check_session(token)}

    # Portfolio document
    @app.get("/api/portfolio")
    async def get_portfolio(controller: PortfolioController = Depends(get_controller), _: dict = Depends(get_current_admin)):
        return controller.get_snapshot()

    @app.get("/api/portfolio/public")
    async def get_public_portfolio(controller: PortfolioController = Depends(get_controller)):
        return public_view(controller.get_snapshot())

    @app.patch("/api/portfolio/{section}")
    async def update_section(
        section: str,
        fields: dict,
        controller: PortfolioController = Depends(get_controller),
        _: dict = Depends(get_current_admin),
    ):
        model = SECTION_MODELS.get(section)
        if model is not None:
            # Validate the merged result so a bad field never reaches the stored document
            try:
                model.model_validate({**(controller.get_snapshot().get(section) or {}), **fields})
            except ValidationError as e:
                raise HTTPException(status_code=422, detail=e.errors(include_url=False, include_context=False))
        try:
            document = controller.update_section(section, fields)
        except UnknownSection as e:
            raise HTTPException(status_code=404, detail=str(e))
        return document[section]

    # Skill categories
    @app.post("/api/about/skill-categories")
    async def add_skill_category(
        payload: SkillCategoryCreate,
        controller: PortfolioController = Depends(get_controller),
        _: dict = Depends(get_current_admin),
    ):
        document = controller.add_skill_category(payload.category, payload.skills)
        return document["about"]["skillCategories"]

    @app.put("/api/about/skill-categories/{index}")
    async def update_skill_category(
        index: int,
        payload: SkillCategoryCreate,
        controller: PortfolioController = Depends(get_controller),
        _: dict = Depends(get_current_admin),
    ):
        try:
            document = controller.update_skill_category(index, payload.category, payload.skills)
        except ValueError as e:
            raise HTTPException(status_code=404, detail=str(e))
        return document["about"]["skillCategories"]

    @app.delete("/api/about/skill-categories/{index}")
    async def delete_skill_category(
        index: int,
        controller: PortfolioController = Depends(get_controller),
        _: dict = Depends(get_current_admin),
    ):
        try:
            document = controller.delete_skill_category(index)
        except ValueError as e:
            raise HTTPException(status_code=404, detail=str(e))
        return document["about"]["skillCategories"]

    # Projects
    @app.get("/api/projects")
    async def list_projects(controller: PortfolioController = Depends(get_controller), _: dict = Depends(get_current_admin)):
        return controller.get_snapshot()["projects"]

    @app.post("/api/projects", status_code=201)
    async def create_project(
        project: ProjectCreate,
        controller: PortfolioController = Depends(get_controller),
        _: dict = Depends(get_current_admin),
    ):
        return controller.add_project(project.dump())

    @app.patch("/api/projects/{project_id}")
    async def update_project(
        project_id: int,
        project: ProjectUpdate,
        controller: PortfolioController = Depends(get_controller),
        _: dict = Depends(get_current_admin),
    ):
        # Unknown ids are a no-op, not a 404
        controller.update_project(project_id, project.dump(exclude_unset=True))
        return {"ok": True}

    @app.delete("/api/projects/{project_id}")
    async def delete_project(
        project_id: int,
        controller: PortfolioController = Depends(get_controller),
        _: dict = Depends(get_current_admin),
    ):
        controller.delete_project(project_id)
        return {"ok": True}

    # Resumes
    @app.get("/api/resumes")
    async def list_resumes(controller: PortfolioController = Depends(get_controller), _: dict = Depends(get_current_admin)):
        return controller.get_snapshot()["resumes"]

    @app.post("/api/resumes", status_code=201)
    async def create_resume(
        resume: ResumeCreate,
        controller: PortfolioController = Depends(get_controller),
        _: dict = Depends(get_current_admin),
    ):
        return controller.add_resume(resume.dump())

    @app.patch("/api/resumes/{resume_id}")
    async def update_resume(
        resume_id: int,
        resume: ResumeUpdate,
        controller: PortfolioController = Depends(get_controller),
        _: dict = Depends(get_current_admin),
    ):
        controller.update_resume(resume_id, resume.dump(exclude_unset=True))
        return {"ok": True}

    @app.delete("/api/resumes/{resume_id}")
    async def delete_resume(
        resume_id: int,
        controller: PortfolioController = Depends(get_controller),
        _: dict = Depends(get_current_admin),
    ):
        controller.delete_resume(resume_id)
        return {"ok": True}

    @app.get("/api/resumes/{resume_id}/links")
    async def get_resume_links(resume_id: int, controller: PortfolioController = Depends(get_controller)):
        for resume in controller.get_snapshot()["resumes"]:
            if resume["id"] == resume_id:
                return resume_links(resume)
        raise HTTPException(status_code=404, detail="Not found")

    # Uploads
    @app.post("/api/uploads")
    async def upload_file(
        file: UploadFile = File(...),
        purpose: str = Form("file"),
        _: dict = Depends(get_current_admin),
    ):
        message = COVER_TOO_LARGE if purpose == "cover" else FILE_TOO_LARGE
        # One byte past the cap is enough to tell an oversized file
        content = await file.read(MAX_UPLOAD_BYTES + 1)
        try:
            inline = InlineFile(file.filename or "file", content, file.content_type, rejection_message=message)
        except FileTooLarge as e:
            logger.warning("Upload rejected", filename=file.filename, limit=e.limit)
            raise HTTPException(status_code=413, detail=e.message)
        return {"name": inline.name, "url": inline.to_data_uri()}

    # Realtime
    @app.websocket("/ws/portfolio")
    async def portfolio_updates(websocket: WebSocket):
        await websocket.accept()
        broadcaster: Broadcaster = websocket.app.state.broadcaster
        controller: PortfolioController = websocket.app.state.controller
        queue = broadcaster.connect()

        async def forward():
            while True:
                await websocket.send_json(await queue.get())

        sender = None
        try:
            try:
                await websocket.send_json({"type": "snapshot", "data": controller.get_snapshot()})
            except ControllerNotReady:
                await websocket.send_json({"type": "loading"})
            sender = asyncio.create_task(forward())
            # Viewers never send anything meaningful; reading only detects the close
            while True:
                await websocket.receive_text()
        except WebSocketDisconnect:
            pass
        finally:
            if sender is not None:
                sender.cancel()
            broadcaster.disconnect(queue)


app = create_app()
