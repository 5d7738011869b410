from enum import Enum
from typing import Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class RunStatus(str, Enum):
    pending = "PENDING"
    processing = "PROCESSING"
    cancelling = "CANCELLING"
    processed = "PROCESSED"
    failed = "FAILED"
    cancelled = "CANCELLED"
    needs_review = "NEEDS_REVIEW"
    rejected = "REJECTED"


class Run(BaseModel):
    """Snapshot of an asynchronous run as returned by create/retrieve"""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str
    status: str
    failure_reason: Optional[str] = Field(default=None, alias="failureReason")
    failure_message: Optional[str] = Field(default=None, alias="failureMessage")


class PollingConfig(BaseModel):
    max_wait_ms: Optional[float] = Field(default=None, ge=0)
    fast_poll_duration_ms: float = Field(default=30000, ge=0)
    fast_poll_interval_ms: float = Field(default=1000, gt=0)
    initial_delay_ms: float = Field(default=1000, gt=0)
    max_delay_ms: float = Field(default=30000, gt=0)
    backoff_multiplier: float = Field(default=1.15, gt=0)
    jitter_fraction: float = Field(default=0.25, ge=0, lt=1)


class WebhookEventType(str, Enum):
    workflow_run_completed = "workflow_run.completed"
    workflow_run_failed = "workflow_run.failed"
    workflow_run_needs_review = "workflow_run.needs_review"
    workflow_run_rejected = "workflow_run.rejected"
    workflow_run_cancelled = "workflow_run.cancelled"
    workflow_run_step_run_processed = "workflow_run.step_run.processed"
    extract_run_processed = "extract_run.processed"
    extract_run_failed = "extract_run.failed"
    classify_run_processed = "classify_run.processed"
    classify_run_failed = "classify_run.failed"
    split_run_processed = "split_run.processed"
    split_run_failed = "split_run.failed"
    parse_run_processed = "parse_run.processed"
    parse_run_failed = "parse_run.failed"
    edit_run_processed = "edit_run.processed"
    edit_run_failed = "edit_run.failed"
    workflow_created = "workflow.created"
    workflow_deployed = "workflow.deployed"
    workflow_deleted = "workflow.deleted"
    processor_created = "processor.created"
    processor_updated = "processor.updated"
    processor_deleted = "processor.deleted"
    processor_version_published = "processor_version.published"


class SignedDataUrlPayload(BaseModel):
    """Indirect payload: the full event body lives behind a signed URL (valid for one hour)"""

    object: Literal["signed_data_url"]
    data: str
    # Only object and data identify a signed URL payload
    id: Any = None
    metadata: Any = None


class WebhookEvent(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    event_id: str = Field(alias="eventId")
    # Plain string so event types added server-side still parse
    event_type: str = Field(alias="eventType")
    payload: Union[SignedDataUrlPayload, Dict[str, Any]] = Field(
        union_mode="left_to_right"
    )


class VerifyOptions(BaseModel):
    max_age_seconds: int = Field(default=300, ge=0)


class VerifyAndParseOptions(VerifyOptions):
    allow_signed_url: bool = False
