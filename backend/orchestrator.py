import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from behavior import BehaviorScores, aggregate_session, fallback_scores, score_latest
from deep_analysis import DeepAnalysisClient, build_payload, report_fallback, turn_fallback
from llm import ContentScorer
from models import BehaviorMetric, Document, Interview, InterviewDataset, Question
from prompts import build_report_prompt, build_turn_prompt
from sessions import DEFAULT_DIFFICULTY, DEFAULT_GENDER, SessionContext, SessionContextStore

logger = logging.getLogger(__name__)

OPEN = "open"
CLOSED = "closed"


class InterviewError(Exception):
    pass


class NoActiveInterview(InterviewError):
    def __init__(self, message: str = "No active interview"):
        super().__init__(message)


class InterviewClosed(InterviewError):
    def __init__(self, interview_id: int):
        super().__init__(f"Interview {interview_id} is already finalized")
        self.interview_id = interview_id


@dataclass
class TurnResult:
    reply: str
    score: float
    difficulty: str
    metrics: dict
    deep_score: dict
    degraded: list[str] = field(default_factory=list)


@dataclass
class ReportResult:
    reply: str
    deep_score: dict
    scores: dict
    degraded: list[str] = field(default_factory=list)


def overall_score(content_avg: float, behavior_avg: float) -> float:
    return content_avg * 0.5 + behavior_avg * 0.5


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class SessionOrchestrator:
    def __init__(
        self,
        scorer: ContentScorer,
        deep: DeepAnalysisClient,
        store: Optional[SessionContextStore] = None,
    ):
        self.scorer = scorer
        self.deep = deep
        self.store = store if store is not None else SessionContextStore()

    # ── Session lookup ──────────────────────────────────

    async def latest_interview(self, db: AsyncSession, user_id: Optional[int]) -> Optional[Interview]:
        if user_id is None:
            return None
        result = await db.execute(
            select(Interview)
            .where(Interview.user_id == user_id)
            .order_by(Interview.id.desc())
            .limit(1)
        )
        return result.scalars().first()

    async def active_interview(self, db: AsyncSession, user_id: Optional[int]) -> Interview:
        interview = await self.latest_interview(db, user_id)
        if interview is None:
            raise NoActiveInterview()
        if interview.status == CLOSED:
            raise InterviewClosed(interview.id)
        return interview

    async def _open_interview_or_none(self, db: AsyncSession, user_id: Optional[int]) -> Optional[Interview]:
        interview = await self.latest_interview(db, user_id)
        if interview is None or interview.status == CLOSED:
            return None
        return interview

    async def context_for(self, db: AsyncSession, interview: Interview) -> SessionContext:
        ctx = self.store.get(interview.id)
        if ctx is not None:
            return ctx
        result = await db.execute(
            select(Document.content)
            .where(Document.interview_id == interview.id)
            .order_by(Document.id)
        )
        knowledge_base = "".join(f"{text}\n" for text in result.scalars().all() if text)
        logger.info(f"[SESSION] Restoring context for interview {interview.id}")
        return self.store.restore(
            interview.id,
            knowledge_base=knowledge_base,
            job_description=interview.job_description or "",
            difficulty=interview.difficulty or DEFAULT_DIFFICULTY,
            gender=interview.persona_gender or DEFAULT_GENDER,
        )

    async def _ensure_open(self, db: AsyncSession, interview: Interview) -> None:
        # Another request may have finalized the session while we waited on the lock.
        await db.refresh(interview)
        if interview.status == CLOSED:
            raise InterviewClosed(interview.id)

    # ── Setup operations ────────────────────────────────

    async def start_session(
        self,
        db: AsyncSession,
        user_id: int,
        documents: list[tuple[str, Optional[str]]],
    ) -> int:
        """Open a new interview and attach the uploaded CV files.

        ``documents`` holds ``(filename, extracted_text)`` pairs; the text is
        None for files that are not PDFs. Any interview the user still had open
        is closed and its context dropped.
        """
        result = await db.execute(
            select(Interview).where(Interview.user_id == user_id, Interview.status == OPEN)
        )
        previous = result.scalars().all()
        for old in previous:
            old.status = CLOSED
            old.end_time = _utcnow()

        interview = Interview(
            user_id=user_id,
            status=OPEN,
            difficulty=DEFAULT_DIFFICULTY,
            persona_gender=DEFAULT_GENDER,
        )
        db.add(interview)
        await db.flush()

        knowledge_base = ""
        for filename, text in documents:
            if text is not None:
                knowledge_base += text + "\n"
            db.add(Document(
                user_id=user_id,
                interview_id=interview.id,
                type="cv",
                filename=filename,
                content=text or "",
            ))
        await db.commit()

        for old in previous:
            self.store.discard(old.id)
            logger.info(f"[UPLOAD] Interview {old.id} abandoned by a new upload")
        self.store.create(interview.id, knowledge_base)
        logger.info(f"[UPLOAD] Interview {interview.id} started for user {user_id} with {len(documents)} file(s)")
        return interview.id

    async def set_job(self, db: AsyncSession, user_id: Optional[int], job: Optional[str]) -> None:
        interview = await self._open_interview_or_none(db, user_id)
        if interview is None:
            return
        ctx = await self.context_for(db, interview)
        async with ctx.lock:
            ctx.job_description = job or ""
            interview.job_description = ctx.job_description
            await db.commit()

    async def set_difficulty(self, db: AsyncSession, difficulty: Optional[str], user_id: Optional[int] = None) -> None:
        difficulty = difficulty or DEFAULT_DIFFICULTY
        interview = await self._open_interview_or_none(db, user_id)
        if interview is None:
            return
        ctx = await self.context_for(db, interview)
        async with ctx.lock:
            ctx.difficulty = difficulty
            interview.difficulty = difficulty
            await db.commit()

    async def set_persona(self, db: AsyncSession, gender: Optional[str], user_id: Optional[int] = None) -> None:
        gender = gender or DEFAULT_GENDER
        interview = await self._open_interview_or_none(db, user_id)
        if interview is None:
            return
        ctx = await self.context_for(db, interview)
        async with ctx.lock:
            ctx.persona["gender"] = gender
            interview.persona_gender = gender
            await db.commit()

    async def record_metrics(
        self,
        db: AsyncSession,
        user_id: Optional[int],
        eye_contact: Optional[str],
        posture_alert: Optional[str],
        emotion: Optional[str],
    ) -> int:
        interview = await self.active_interview(db, user_id)
        sample = BehaviorMetric(
            interview_id=interview.id,
            eye_contact=eye_contact,
            posture_alert=posture_alert,
            emotion=emotion,
        )
        db.add(sample)
        await db.commit()
        return sample.id

    # ── Scoring helpers ─────────────────────────────────

    async def current_behavior(self, db: AsyncSession, interview_id: int) -> BehaviorScores:
        try:
            result = await db.execute(
                select(BehaviorMetric)
                .where(BehaviorMetric.interview_id == interview_id)
                .order_by(BehaviorMetric.id.desc())
                .limit(1)
            )
            latest = result.scalars().first()
        except SQLAlchemyError as e:
            logger.warning(f"[BEHAVIOR] Lookup failed, using fallback scores: {e}")
            return fallback_scores()
        return score_latest(latest)

    async def content_average(self, db: AsyncSession, interview_id: int) -> float:
        result = await db.execute(
            select(Question.score)
            .where(Question.interview_id == interview_id, Question.score > 0)
        )
        scores = result.scalars().all()
        return sum(scores) / len(scores) if scores else 0

    async def _pending_question(self, db: AsyncSession, interview_id: int) -> Optional[Question]:
        result = await db.execute(
            select(Question)
            .where(Question.interview_id == interview_id, Question.score.is_(None))
            .order_by(Question.id.desc())
            .limit(1)
        )
        return result.scalars().first()

    # ── Turn ────────────────────────────────────────────

    async def advance_turn(self, db: AsyncSession, user_id: int, message: str) -> TurnResult:
        interview = await self.active_interview(db, user_id)
        ctx = await self.context_for(db, interview)

        async with ctx.lock:
            await self._ensure_open(db, interview)
            degraded: list[str] = []
            ctx.transcript.append(f"User: {message}")

            try:
                pending = await self._pending_question(db, interview.id)
                behavior = await self.current_behavior(db, interview.id)

                prompt = build_turn_prompt(
                    ctx.persona,
                    ctx.job_description,
                    ctx.knowledge_base,
                    ctx.difficulty,
                    behavior.status,
                    ctx.transcript,
                )
                turn = await self.scorer.score_turn(prompt)
                if turn.degraded:
                    degraded.append("llm")

                if pending is not None:
                    pending.score = turn.data.score
                db.add(Question(
                    interview_id=interview.id,
                    question_text=turn.data.question,
                    difficulty=ctx.difficulty,
                ))
                interview.difficulty = ctx.difficulty
                content_avg = await self.content_average(db, interview.id)
                await db.commit()
            except SQLAlchemyError:
                await db.rollback()
                ctx.transcript.pop()
                raise

            ctx.transcript.append(f"Interviewer: {turn.data.question}")

            deep = await self.deep.analyze(
                build_payload(
                    content_avg,
                    behavior.eye_score,
                    behavior.posture_score,
                    behavior.emotion_score,
                    user_id,
                ),
                fallback=turn_fallback(),
            )
            if deep.degraded:
                degraded.append("deep_analysis")

            recommended = deep.data.get("recommended_difficulty")
            if recommended is not None and not (isinstance(recommended, str) and recommended.strip()):
                logger.warning(f"[CHAT] Ignoring invalid recommended_difficulty: {recommended!r}")
                recommended = None
            if recommended and recommended != ctx.difficulty:
                logger.info(f"[CHAT] Interview {interview.id}: difficulty {ctx.difficulty} -> {recommended}")
                ctx.difficulty = recommended
                interview.difficulty = recommended
                await db.commit()

            return TurnResult(
                reply=turn.data.question,
                score=turn.data.score,
                difficulty=ctx.difficulty,
                metrics={"eye": behavior.eye_score, "posture": behavior.posture_score},
                deep_score=deep.data,
                degraded=degraded,
            )

    # ── Report ──────────────────────────────────────────

    async def finalize_session(self, db: AsyncSession, user_id: int) -> ReportResult:
        interview = await self.active_interview(db, user_id)
        ctx = await self.context_for(db, interview)

        async with ctx.lock:
            await self._ensure_open(db, interview)
            degraded: list[str] = []

            result = await db.execute(
                select(BehaviorMetric)
                .where(BehaviorMetric.interview_id == interview.id)
                .order_by(BehaviorMetric.id)
            )
            behavior = aggregate_session(result.scalars().all())
            content_avg = await self.content_average(db, interview.id)
            overall = overall_score(content_avg, behavior.composite_score)

            deep = await self.deep.analyze(
                build_payload(
                    content_avg,
                    behavior.eye_score,
                    behavior.posture_score,
                    behavior.emotion_score,
                    user_id,
                ),
                fallback=report_fallback(),
            )
            if deep.degraded:
                degraded.append("deep_analysis")

            report = await self.scorer.write_report(
                build_report_prompt(ctx.job_description, overall, deep.data, ctx.transcript)
            )
            if report.degraded:
                degraded.append("llm")

            ended_at = _utcnow()
            interview.feedback_text = report.data
            interview.score_content = content_avg
            interview.score_behavior = behavior.composite_score
            interview.score_overall = overall
            interview.emotional_score = behavior.emotion_score
            interview.eye_contact_score = behavior.eye_score
            interview.posture_score = behavior.posture_score
            interview.end_time = ended_at
            interview.status = CLOSED

            db.add(InterviewDataset(
                interview_id=interview.id,
                user_id=interview.user_id,
                job_description=interview.job_description,
                start_time=interview.start_time,
                end_time=ended_at,
                score_overall=overall,
                score_content=content_avg,
                score_behavior=behavior.composite_score,
                emotional_score=behavior.emotion_score,
                eye_contact_score=behavior.eye_score,
                posture_score=behavior.posture_score,
                feedback_text=report.data,
            ))
            await db.commit()

        self.store.discard(interview.id)
        logger.info(f"[REPORT] Interview {interview.id} closed with overall score {overall:.2f}")

        return ReportResult(
            reply=report.data,
            deep_score=deep.data,
            scores={
                "overall": overall,
                "contentAvg": content_avg,
                "behaviorAvg": behavior.composite_score,
                "details": {
                    "emotion": behavior.emotion_score,
                    "eyeContact": behavior.eye_score,
                    "posture": behavior.posture_score,
                },
            },
            degraded=degraded,
        )

    async def notify_training(self) -> None:
        await self.deep.train()

    # ── History ─────────────────────────────────────────

    async def history(self, db: AsyncSession, user_id: int) -> dict:
        result = await db.execute(
            select(InterviewDataset)
            .where(InterviewDataset.user_id == user_id)
            .order_by(InterviewDataset.created_at.desc(), InterviewDataset.id.desc())
        )
        rows = result.scalars().all()

        improvement = 0.0
        if len(rows) > 1:
            improvement = (rows[0].score_overall or 0) - (rows[-1].score_overall or 0)
        avg_score = (
            f"{sum(r.score_overall or 0 for r in rows) / len(rows):.1f}" if rows else "0"
        )

        return {
            "history": [_dataset_row(r) for r in rows],
            "stats": {
                "totalInterviews": len(rows),
                "avgScore": avg_score,
                "improvement": f"{improvement:.1f}",
            },
        }


def _dataset_row(row: InterviewDataset) -> dict:
    return {
        "id": row.id,
        "interview_id": row.interview_id,
        "user_id": row.user_id,
        "job_description": row.job_description,
        "start_time": str(row.start_time) if row.start_time else None,
        "end_time": str(row.end_time) if row.end_time else None,
        "score_overall": row.score_overall,
        "score_content": row.score_content,
        "score_behavior": row.score_behavior,
        "emotional_score": row.emotional_score,
        "eye_contact_score": row.eye_contact_score,
        "posture_score": row.posture_score,
        "feedback_text": row.feedback_text,
        "created_at": str(row.created_at) if row.created_at else None,
    }
