from fastapi import FastAPI, UploadFile, File, Form, Depends, HTTPException, BackgroundTasks, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import SQLAlchemyError
from pydantic import BaseModel
from typing import Any, Optional
import logging
import os
import fitz  # PyMuPDF
from dotenv import load_dotenv

load_dotenv()

from database import init_db, close_db, get_db
from deep_analysis import DeepAnalysisClient
from llm import ContentScorer, GeminiClient
from orchestrator import InterviewClosed, NoActiveInterview, SessionOrchestrator

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("interview_trainer")

app = FastAPI(title="Interview Trainer API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=[os.getenv("FRONTEND_URL", "*")],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
async def startup():
    await init_db()


@app.on_event("shutdown")
async def shutdown():
    await close_db()


# ── Errors ───────────────────────────────────────────────

@app.exception_handler(NoActiveInterview)
async def no_active_interview_handler(request: Request, exc: NoActiveInterview):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(InterviewClosed)
async def interview_closed_handler(request: Request, exc: InterviewClosed):
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error(f"[DB] {request.method} {request.url.path} failed: {exc}")
    return JSONResponse(status_code=500, content={"detail": "Database error"})


# ── Helpers ──────────────────────────────────────────────

_ORCHESTRATOR: Optional[SessionOrchestrator] = None


def get_orchestrator() -> SessionOrchestrator:
    global _ORCHESTRATOR
    if _ORCHESTRATOR is None:
        _ORCHESTRATOR = SessionOrchestrator(
            scorer=ContentScorer(GeminiClient()),
            deep=DeepAnalysisClient(),
        )
    return _ORCHESTRATOR


def extract_pdf_text(file_bytes: bytes) -> str:
    doc = fitz.open(stream=file_bytes, filetype="pdf")
    text = ""
    for page in doc:
        text += page.get_text()
    doc.close()
    return text


def _clean_label(value: Any) -> Optional[str]:
    return value.strip() if isinstance(value, str) else None


@app.get("/")
async def root():
    return {"status": "running", "service": "interview-trainer"}


@app.get("/api/list-models")
async def list_models(orchestrator: SessionOrchestrator = Depends(get_orchestrator)):
    try:
        models = await orchestrator.scorer.llm.list_models()
    except Exception as e:
        logger.error(f"[LLM] Listing models failed: {e}")
        raise HTTPException(500, str(e))
    return {"models": models}


# ── Session setup ────────────────────────────────────────

@app.post("/api/upload")
async def upload(
    userId: int = Form(...),
    files: Optional[list[UploadFile]] = File(None),
    db: AsyncSession = Depends(get_db),
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
):
    documents: list[tuple[str, Optional[str]]] = []
    for upload_file in files or []:
        filename = upload_file.filename or "upload"
        text = None
        if upload_file.content_type == "application/pdf":
            try:
                text = extract_pdf_text(await upload_file.read())
            except RuntimeError as e:
                raise HTTPException(400, f"Could not read PDF {filename}: {e}")
        documents.append((filename, text))

    interview_id = await orchestrator.start_session(db, userId, documents)
    return {"message": "Upload successful", "interviewId": interview_id}


class JobRequest(BaseModel):
    job: Optional[str] = None
    userId: Optional[int] = None


@app.post("/api/job")
async def set_job(
    body: JobRequest,
    db: AsyncSession = Depends(get_db),
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
):
    await orchestrator.set_job(db, body.userId, body.job)
    return {"reply": "Job set."}


class SettingsRequest(BaseModel):
    difficulty: Optional[str] = None
    userId: Optional[int] = None


@app.post("/api/settings")
async def settings(
    body: SettingsRequest,
    db: AsyncSession = Depends(get_db),
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
):
    await orchestrator.set_difficulty(db, body.difficulty, body.userId)
    return {"reply": "Settings saved"}


class PersonaRequest(BaseModel):
    gender: Optional[str] = None
    userId: Optional[int] = None


@app.post("/api/persona")
async def persona(
    body: PersonaRequest,
    db: AsyncSession = Depends(get_db),
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
):
    await orchestrator.set_persona(db, body.gender, body.userId)
    return {"reply": "Persona set"}


# ── Interview ────────────────────────────────────────────

class MetricsRequest(BaseModel):
    userId: Optional[int] = None
    eye_contact: Any = None
    posture_alert: Any = None
    emotion: Any = None


@app.post("/api/metrics")
async def metrics(
    body: MetricsRequest,
    db: AsyncSession = Depends(get_db),
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
):
    sample_id = await orchestrator.record_metrics(
        db,
        body.userId,
        eye_contact=_clean_label(body.eye_contact),
        posture_alert=_clean_label(body.posture_alert),
        emotion=_clean_label(body.emotion),
    )
    return {"message": "Saved metrics snapshot", "id": sample_id}


class ChatRequest(BaseModel):
    message: Optional[str] = None
    userId: Optional[int] = None


@app.post("/api/chat")
async def chat(
    body: ChatRequest,
    db: AsyncSession = Depends(get_db),
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
):
    if not body.message:
        raise HTTPException(400, "Message required")

    turn = await orchestrator.advance_turn(db, body.userId, body.message)
    if turn.degraded:
        logger.info(f"[CHAT] user={body.userId} turn served with fallbacks: {', '.join(turn.degraded)}")
    return {
        "reply": turn.reply,
        "score": turn.score,
        "difficulty": turn.difficulty,
        "metrics": turn.metrics,
        "deepScore": turn.deep_score,
    }


class ReportRequest(BaseModel):
    userId: Optional[int] = None


@app.post("/api/report")
async def report(
    body: ReportRequest,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
):
    result = await orchestrator.finalize_session(db, body.userId)
    background_tasks.add_task(orchestrator.notify_training)
    if result.degraded:
        logger.info(f"[REPORT] user={body.userId} report served with fallbacks: {', '.join(result.degraded)}")
    return {
        "reply": result.reply,
        "deepScore": result.deep_score,
        "scores": result.scores,
        "report": True,
    }


@app.get("/api/history/{user_id}")
async def history(
    user_id: int,
    db: AsyncSession = Depends(get_db),
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
):
    return await orchestrator.history(db, user_id)
