# supportpilot/backend/app/schemas/ticket.py

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class TicketCategory(str, Enum):
    BUG = "Bug"
    PERFORMANCE = "Performance"
    BILLING = "Billing"
    LOGIN = "Login"
    UI = "UI"
    FEATURE_REQUEST = "Feature Request"
    OTHER = "Other"


class TicketPriority(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    URGENT = "Urgent"


class TicketStatus(str, Enum):
    OPEN = "Open"
    IN_PROGRESS = "In Progress"
    RESOLVED = "Resolved"


class TicketChannel(str, Enum):
    WEB = "Web"
    MOBILE = "Mobile"
    DESKTOP = "Desktop"
    OTHER = "Other"


# Canonical labels, in display order
ALLOWED_CATEGORIES = [c.value for c in TicketCategory]
ALLOWED_PRIORITIES = [p.value for p in TicketPriority]
ALLOWED_STATUSES = [s.value for s in TicketStatus]
ALLOWED_CHANNELS = [c.value for c in TicketChannel]

PRIORITY_RANK = {
    TicketPriority.LOW: 1,
    TicketPriority.MEDIUM: 2,
    TicketPriority.HIGH: 3,
    TicketPriority.URGENT: 4,
}


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value) -> datetime:
    """
    Lenient ISO-8601 parsing for stored records.
    Anything unparseable becomes the Unix epoch instead of failing the load.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return EPOCH
    else:
        return EPOCH
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class CamelModel(BaseModel):
    # Stored and served JSON uses camelCase keys
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class TicketEnvironment(CamelModel):
    browser: Optional[str] = None
    os: Optional[str] = None
    device_type: Optional[str] = None
    user_agent: Optional[str] = None


class AiAnalysisResult(CamelModel):
    """What the analysis gateway returns for a ticket."""

    customer_reply: str
    qa_summary: str
    follow_up_questions: List[str]


class AiOutput(AiAnalysisResult):
    generated_at: datetime
    model: str
    # Missing on records written before versioning existed
    version: Optional[int] = None

    @field_validator("generated_at", mode="before")
    @classmethod
    def _lenient_generated_at(cls, value):
        return parse_timestamp(value)


class Ticket(CamelModel):
    id: str
    title: str
    category: TicketCategory
    priority: TicketPriority
    status: TicketStatus = TicketStatus.OPEN
    channel: TicketChannel

    description: str
    steps_to_reproduce: Optional[str] = None
    expected_result: Optional[str] = None
    actual_result: Optional[str] = None

    environment: TicketEnvironment = Field(default_factory=TicketEnvironment)

    created_at: datetime
    updated_at: Optional[datetime] = None

    ai_output: Optional[AiOutput] = None
    ai_output_history: List[AiOutput] = Field(default_factory=list)
    ai_output_version_counter: Optional[int] = None

    @field_validator("created_at", mode="before")
    @classmethod
    def _lenient_created_at(cls, value):
        return parse_timestamp(value)

    @field_validator("updated_at", mode="before")
    @classmethod
    def _lenient_updated_at(cls, value):
        if value is None:
            return None
        return parse_timestamp(value)

    @field_validator("ai_output_history", mode="before")
    @classmethod
    def _history_or_empty(cls, value):
        return value if value is not None else []

    @property
    def last_activity(self) -> datetime:
        return self.updated_at or self.created_at

    def to_storage(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    def analysis_payload(self) -> dict:
        """Ticket as sent to the analysis gateway, without AI state."""
        return self.model_dump(
            mode="json",
            by_alias=True,
            exclude_none=True,
            exclude={"ai_output", "ai_output_history", "ai_output_version_counter"},
        )


class TicketCreate(CamelModel):
    title: str = Field(min_length=1, max_length=255)
    category: TicketCategory
    priority: TicketPriority
    channel: TicketChannel
    description: str = Field(min_length=1, max_length=5000)
    steps_to_reproduce: Optional[str] = None
    expected_result: Optional[str] = None
    actual_result: Optional[str] = None
    environment: Optional[TicketEnvironment] = None

    @field_validator("title", "description", mode="before")
    @classmethod
    def _strip_required(cls, value):
        return value.strip() if isinstance(value, str) else value

    @field_validator(
        "steps_to_reproduce", "expected_result", "actual_result", mode="before"
    )
    @classmethod
    def _blank_to_none(cls, value):
        if isinstance(value, str):
            value = value.strip()
            return value or None
        return value


class TicketStatusUpdate(CamelModel):
    status: TicketStatus


class AiOutputSave(AiAnalysisResult):
    model: Optional[str] = None


class RestoreVersionRequest(CamelModel):
    index: int


class BulkStatusUpdate(CamelModel):
    ids: List[str]
    status: TicketStatus


class BulkDeleteRequest(CamelModel):
    ids: List[str]
    confirm: bool = False
