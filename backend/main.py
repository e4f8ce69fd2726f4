import re
from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import database
from chatbot import ChatbotDispatcher, parse_message_data, preclassify
from config import CORS_ORIGINS
from enhancer import TaskEnhancer
from exceptions import TaskFlowError
from logging_config import setup_logging
from models import (
    ChannelMessage,
    ChatbotRequest,
    ChatMessageRequest,
    LoginRequest,
    LoginResponse,
    Task,
    TaskCounts,
    TaskCreate,
    TaskUpdate,
    User,
)

log = structlog.get_logger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
TASK_STATUSES = ("all", "active", "completed")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    setup_logging()
    database.init_db()
    app.state.enhancer = TaskEnhancer()
    if not app.state.enhancer.configured:
        log.warning("enhancer_not_configured", detail="ANTHROPIC_API_KEY missing; tasks are saved as typed")
    yield
    # Shutdown (nothing to do)

app = FastAPI(lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(TaskFlowError)
async def taskflow_error_handler(request: Request, exc: TaskFlowError) -> JSONResponse:
    """Store failures outside the chatbot still answer with a JSON body."""
    log.error("request_failed", path=request.url.path, error=exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": exc.message, "error": exc.message},
    )


# Dependencies
def get_task_store():
    """The database module is the task store."""
    return database


def get_user_directory():
    """The database module is the user directory."""
    return database


def get_enhancer(request: Request):
    return request.app.state.enhancer


def get_dispatcher(store=Depends(get_task_store), enhancer=Depends(get_enhancer)) -> ChatbotDispatcher:
    return ChatbotDispatcher(store, enhancer)


# Users
@app.post("/users/login")
def login(login_data: LoginRequest, users=Depends(get_user_directory)) -> LoginResponse:
    """Resume the account for this email, or create it."""
    email = login_data.email.strip().lower()
    name = login_data.name.strip()
    if not email:
        raise HTTPException(status_code=400, detail="Please enter an email address")
    if not name:
        raise HTTPException(status_code=400, detail="Please enter your name")
    if not EMAIL_PATTERN.match(email):
        raise HTTPException(status_code=400, detail="Please enter a valid email address")

    user, created = users.register_user_db(email, name)
    return LoginResponse(user=user, created=created)


@app.get("/users")
def get_recent_users(limit: Optional[int] = Query(3, ge=1), users=Depends(get_user_directory)) -> list[User]:
    return users.list_users_db(limit)


@app.get("/users/{email}")
def get_user(email: str, users=Depends(get_user_directory)) -> User:
    user = users.lookup_user_db(email)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


# Tasks
@app.get("/users/{user_id}/tasks")
def get_tasks(user_id: str, status: str = "all", store=Depends(get_task_store)) -> list[Task]:
    if status not in TASK_STATUSES:
        raise HTTPException(status_code=400, detail=f"status must be one of {', '.join(TASK_STATUSES)}")
    return store.get_user_tasks_db(user_id, status)


@app.get("/users/{user_id}/tasks/counts")
def get_task_counts(user_id: str, store=Depends(get_task_store)) -> TaskCounts:
    return TaskCounts(**store.get_task_counts_db(user_id))


@app.post("/users/{user_id}/tasks")
def create_task(user_id: str, task_data: TaskCreate, store=Depends(get_task_store)) -> Task:
    return store.create_task_db(
        user_id,
        task_data.title,
        description=task_data.description,
        source=task_data.source,
    )


@app.patch("/users/{user_id}/tasks/{task_id}")
def update_task(user_id: str, task_id: str, task_data: TaskUpdate, store=Depends(get_task_store)) -> Task:
    result = store.update_task_db(
        user_id,
        task_id,
        title=task_data.title,
        description=task_data.description,
        completed=task_data.completed,
    )
    if not result:
        raise HTTPException(status_code=404, detail="Task not found")
    return result


@app.delete("/users/{user_id}/tasks/{task_id}")
def delete_task(user_id: str, task_id: str, store=Depends(get_task_store)) -> dict:
    if not store.delete_task_db(user_id, task_id):
        raise HTTPException(status_code=404, detail="Task not found")
    return {"status": "deleted"}


# Chatbot
@app.post("/chatbot")
async def chatbot(chat_request: ChatbotRequest, dispatcher=Depends(get_dispatcher)) -> JSONResponse:
    """Run one chatbot action (explicit action, or free text via process_free_text)."""
    log.info("chatbot_request", action=chat_request.action, source=chat_request.source, user_id=chat_request.user_id)
    status_code, response = await dispatcher.handle(
        chat_request.action,
        chat_request.user_id,
        title=chat_request.data.title if chat_request.data else None,
        message=chat_request.message,
        source=chat_request.source,
    )
    return JSONResponse(status_code=status_code, content=response.model_dump(exclude_none=True))


@app.post("/chatbot/message")
async def chatbot_message(chat_message: ChatMessageRequest, dispatcher=Depends(get_dispatcher)) -> JSONResponse:
    """What the web chat widget does with typed text: guess the action, then dispatch."""
    action = preclassify(chat_message.message)
    data = parse_message_data(chat_message.message, action)
    log.info("chatbot_message", action=action.value, user_id=chat_message.user_id)
    status_code, response = await dispatcher.handle(
        action.value,
        chat_message.user_id,
        title=data.title,
        message=chat_message.message,
        source=chat_message.source,
    )
    return JSONResponse(status_code=status_code, content=response.model_dump(exclude_none=True))


@app.post("/channels/whatsapp")
async def whatsapp_message(channel_message: ChannelMessage, dispatcher=Depends(get_dispatcher)) -> JSONResponse:
    """Inbound message from the WhatsApp adapter. The adapter sends `reply` back to the user."""
    status_code, response = await dispatcher.handle(
        "process_free_text",
        channel_message.user_id,
        message=channel_message.message,
        source="whatsapp",
    )
    content = {"reply": response.message, **response.model_dump(exclude_none=True)}
    return JSONResponse(status_code=status_code, content=content)


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
