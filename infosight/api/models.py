import uuid
from datetime import datetime, timezone
from typing import Optional, List, Dict, Any

from sqlalchemy import Column, JSON
from sqlmodel import SQLModel, Field

# Submission status values. A submission starts as PROCESSING and moves
# exactly once to COMPLETED or FAILED.
PROCESSING = "processing"
COMPLETED = "completed"
FAILED = "failed"

SENTIMENTS = ("positive", "neutral", "negative")


def utcnow() -> datetime:
    """Timezone-aware current time; every stored timestamp is UTC."""
    return datetime.now(timezone.utc)


class Submission(SQLModel, table=True):
    __tablename__ = "submissions"

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    user_id: str = Field(index=True)
    created_at: datetime = Field(default_factory=utcnow, index=True)
    updated_at: datetime = Field(default_factory=utcnow)

    # File references
    video_files: List[Dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    document_file: Optional[str] = None
    notes: Optional[str] = None

    # AI processing results
    transcript: Optional[str] = None
    key_points: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    extracted_kpis: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    sentiment: Optional[str] = None  # positive, neutral, negative
    ai_quotes: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))

    # Processing status
    status: str = Field(default=PROCESSING, index=True)  # processing, completed, failed
    processing_error: Optional[str] = None

    # Processing lease, set while a pipeline invocation owns the row
    lease_owner: Optional[str] = None
    lease_expires_at: Optional[datetime] = None


class KPIDefinition(SQLModel, table=True):
    __tablename__ = "kpi_definitions"

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    name: str = Field(unique=True, index=True)
    description: Optional[str] = None
    category: Optional[str] = None
    target_value: Optional[float] = None
    unit: Optional[str] = None
    is_active: bool = Field(default=True, index=True)
    created_by: str
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
