from sqlalchemy import Column, Integer, String, Float, Text, DateTime, ForeignKey, func
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


class Interview(Base):
    __tablename__ = "interviews"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, nullable=False, index=True)
    job_description = Column(Text, nullable=True)
    status = Column(String, default="open")  # open, closed
    difficulty = Column(String, default="medium")
    persona_gender = Column(String, default="neutral")
    start_time = Column(DateTime, default=func.now())
    end_time = Column(DateTime, nullable=True)
    score_content = Column(Float, nullable=True)
    score_behavior = Column(Float, nullable=True)
    score_overall = Column(Float, nullable=True)
    emotional_score = Column(Float, nullable=True)
    eye_contact_score = Column(Float, nullable=True)
    posture_score = Column(Float, nullable=True)
    feedback_text = Column(Text, nullable=True)


class Document(Base):
    __tablename__ = "documents"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, nullable=False)
    interview_id = Column(Integer, ForeignKey("interviews.id"), nullable=True)
    type = Column(String, default="cv")
    filename = Column(String, nullable=False)
    content = Column(Text, default="")  # extracted text, empty for non-PDF uploads
    upload_time = Column(DateTime, default=func.now())


class Question(Base):
    __tablename__ = "questions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    interview_id = Column(Integer, ForeignKey("interviews.id"), nullable=False, index=True)
    question_text = Column(Text, nullable=False)
    difficulty = Column(String, nullable=False)
    score = Column(Float, nullable=True)  # filled in by the next answer


class BehaviorMetric(Base):
    __tablename__ = "behaviormetrics"

    id = Column(Integer, primary_key=True, autoincrement=True)
    interview_id = Column(Integer, ForeignKey("interviews.id"), nullable=False, index=True)
    timestamp = Column(DateTime, default=func.now())
    eye_contact = Column(String, nullable=True)
    emotion = Column(String, nullable=True)
    posture_alert = Column(String, nullable=True)


class InterviewDataset(Base):
    __tablename__ = "interview_dataset"

    id = Column(Integer, primary_key=True, autoincrement=True)
    interview_id = Column(Integer, nullable=False)
    user_id = Column(Integer, nullable=False, index=True)
    job_description = Column(Text, nullable=True)
    start_time = Column(DateTime, nullable=True)
    end_time = Column(DateTime, nullable=True)
    score_overall = Column(Float, nullable=True)
    score_content = Column(Float, nullable=True)
    score_behavior = Column(Float, nullable=True)
    emotional_score = Column(Float, nullable=True)
    eye_contact_score = Column(Float, nullable=True)
    posture_score = Column(Float, nullable=True)
    feedback_text = Column(Text, nullable=True)
    created_at = Column(DateTime, default=func.now())
