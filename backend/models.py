from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Action(str, Enum):
    ADD_TASK = "add_task"
    ENHANCE_TASK = "enhance_task"
    LIST_TASKS = "list_tasks"
    COMPLETE_TASK = "complete_task"
    PROCESS_FREE_TEXT = "process_free_text"


class User(BaseModel):
    id: str
    name: str
    email: str
    created_at: str  # ISO format datetime string
    updated_at: str


class Task(BaseModel):
    id: str
    title: str
    description: str = ""
    completed: bool = False
    user_id: str
    source: str = "web"  # web, chatbot, whatsapp, ...
    enhanced: bool = False  # title/description came from the enhancer
    created_at: str  # ISO format datetime string
    updated_at: str


class TaskCreate(BaseModel):
    title: str
    description: str = ""
    source: str = "web"

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("title must not be blank")
        return value


class TaskUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    completed: Optional[bool] = None

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        value = value.strip()
        if not value:
            raise ValueError("title must not be blank")
        return value


class TaskCounts(BaseModel):
    all: int
    active: int
    completed: int


class LoginRequest(BaseModel):
    email: str
    name: str


class LoginResponse(BaseModel):
    user: User
    created: bool


class EnhancementResult(BaseModel):
    title: str
    description: str = ""
    steps: list[str] = []
    enhanced_by: str = "AI"  # "AI" or "fallback"

    @property
    def fallback(self) -> bool:
        return self.enhanced_by == "fallback"


class ChatbotData(BaseModel):
    title: Optional[str] = None


class ChatbotRequest(BaseModel):
    """Inbound command from the web UI or a messaging channel."""
    model_config = ConfigDict(populate_by_name=True)

    action: str  # validated by the dispatcher so unknown keys get a 400
    data: Optional[ChatbotData] = None
    user_id: str = Field(alias="userId")
    message: Optional[str] = None
    source: Optional[str] = None


class ChatMessageRequest(BaseModel):
    """Raw text typed into the web chat widget."""
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(alias="userId")
    message: str
    source: str = "web"


class ChannelMessage(BaseModel):
    """Message delivered by an external channel adapter."""
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(alias="userId")
    message: str


class ChatbotResponse(BaseModel):
    success: bool
    message: str = ""
    intent: Optional[str] = None
    task: Optional[Task] = None
    tasks: Optional[list[Task]] = None
    enhancement: Optional[EnhancementResult] = None
    original: Optional[str] = None
    suggestions: Optional[list[str]] = None
    error: Optional[str] = None
