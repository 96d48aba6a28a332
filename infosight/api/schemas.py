"""
Pydantic schemas for API request/response models.
"""

from datetime import datetime
from typing import Optional, List, Dict
from pydantic import BaseModel, ConfigDict, Field


# Submission Schemas
class VideoFileInfo(BaseModel):
    """A stored video reference."""
    path: str
    name: str
    size: int = 0
    question_index: Optional[int] = None


class SubmissionResponse(BaseModel):
    """Response model for submission details."""
    id: str
    user_id: str
    created_at: datetime
    updated_at: datetime
    video_files: List[VideoFileInfo]
    document_file: Optional[str] = None
    notes: Optional[str] = None
    transcript: Optional[str] = None
    key_points: List[str] = []
    extracted_kpis: List[str] = []
    sentiment: Optional[str] = None
    ai_quotes: List[str] = []
    status: str
    processing_error: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class SubmissionListResponse(BaseModel):
    """Response model for paginated submission list."""
    submissions: List[SubmissionResponse]
    total: int
    limit: int
    offset: int


class ProcessSubmissionRequest(BaseModel):
    """Trigger body for the processing pipeline."""
    submission_id: Optional[str] = Field(default=None, alias="submissionId")

    model_config = ConfigDict(populate_by_name=True)


class ReprocessResponse(BaseModel):
    success: bool
    message: str
    processedCount: int
    updatedCount: int
    skippedCount: int = 0
    failedCount: int = 0


# KPI Definition Schemas
class KPIDefinitionCreate(BaseModel):
    """Request model for creating a KPI definition."""
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    category: Optional[str] = None
    target_value: Optional[float] = None
    unit: Optional[str] = None
    is_active: bool = True


class KPIDefinitionUpdate(BaseModel):
    """Request model for editing a KPI definition; omitted fields are unchanged."""
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    category: Optional[str] = None
    target_value: Optional[float] = None
    unit: Optional[str] = None
    is_active: Optional[bool] = None


class KPIPromoteRequest(BaseModel):
    """Promote an extracted "Metric Name: Value" string to a KPI definition."""
    kpi: str
    submission_id: Optional[str] = None
    category: Optional[str] = None
    description: Optional[str] = None
    target_value: Optional[float] = None


class KPIDefinitionResponse(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    category: Optional[str] = None
    target_value: Optional[float] = None
    unit: Optional[str] = None
    is_active: bool
    created_by: str
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


# Health Check Schemas
class HealthCheckResponse(BaseModel):
    """Response model for health check."""
    status: str
    service: str
    checks: Dict[str, bool]
    timestamp: datetime


class ReadinessCheckResponse(BaseModel):
    """Response model for readiness check."""
    ready: bool
    checks: Dict[str, bool]
    missing_keys: Optional[List[str]] = None
