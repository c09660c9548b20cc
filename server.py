import logging
import traceback
from contextlib import asynccontextmanager
from typing import Any, List, Optional, Union
from urllib.parse import quote

import requests

from fastapi import Depends, FastAPI, Header, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import RedirectResponse, StreamingResponse
from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from classes.agui_relay import AgentStreamError, AguiRelay
from classes.backend import Backend, LlmConfigurationError, PlanFormatError
from classes.backend_prompts import REMINDER_FIRST_MESSAGE
from classes.entities import Base
from classes.google_helpers import CALL_WEBHOOK_URL, FRONTEND_URL, WEBHOOK_URL, create_session_factory, get_db_engine
from classes.history_cache import GLOBAL_CHAT_HISTORY_CACHE
from classes.llm_client import MaxRetryErrorsException
from classes.profile_service import ProfileService, normalize_phone
from classes.reminder_scheduler import REMINDER_SCHEDULER
from classes.supabase_auth import (
    AuthenticationError,
    AuthNotConfiguredError,
    RevokeFailedError,
    SupabaseAuth,
    display_name,
)
from classes.todo_service import TodoNotFound, TodoService

logger = logging.getLogger("habit_backend")


@asynccontextmanager
async def lifespan(app: FastAPI):
    Base.metadata.create_all(get_db_engine())
    REMINDER_SCHEDULER.start()
    yield
    REMINDER_SCHEDULER.shutdown()


app = FastAPI(lifespan=lifespan)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Allow all origins for dev
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

SESSION_FACTORY = create_session_factory()
BACKEND = Backend(SESSION_FACTORY)
PROFILES = ProfileService(SESSION_FACTORY)
TODOS = TodoService(SESSION_FACTORY)
AUTH = SupabaseAuth()
AGUI = AguiRelay()


# -----------------------
# Request models
# -----------------------

MultiValue = Union[List[str], str, None]


class Credentials(BaseModel):
    email: str
    password: str
    full_name: Optional[str] = Field(default=None, validation_alias=AliasChoices("full_name", "fullName"))


class SignOutRequest(BaseModel):
    access_token: Optional[str] = None


class PhoneRequest(BaseModel):
    phone: str


class ProfileIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    phone: Optional[str] = None
    age: Optional[int] = None
    occupation: Optional[str] = None
    lifestyle: Optional[str] = None
    energy_level: Optional[str] = Field(default=None, validation_alias=AliasChoices("energy_level", "energyLevel"))
    schedule: Optional[str] = None
    description: Optional[str] = None
    goals: MultiValue = None
    current_habits: MultiValue = Field(default=None, validation_alias=AliasChoices("current_habits", "currentHabits", "currenthabits"))
    challenges: MultiValue = None
    preferences: MultiValue = None


class GoalIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    primary_goal: Optional[str] = Field(default=None, validation_alias=AliasChoices("primary_goal", "primaryGoal"))
    goal_duration: Optional[int] = Field(default=None, validation_alias=AliasChoices("goal_duration", "goalDuration"))
    duration_type: Optional[str] = Field(default=None, validation_alias=AliasChoices("duration_type", "durationType"))


class OnboardingRequest(BaseModel):
    profile: ProfileIn
    goal: GoalIn


class GoalPlanRequest(BaseModel):
    user_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("user_id", "userId"))
    profile: ProfileIn = Field(default_factory=ProfileIn)
    goal: GoalIn = Field(default_factory=GoalIn)
    model: Optional[str] = None


class HabitPlanRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    habit_name: Optional[str] = Field(default=None, validation_alias=AliasChoices("habit_name", "habitName"))
    frequency: Optional[str] = None
    motivation: Optional[str] = None
    obstacles: MultiValue = None
    user_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("user_id", "userId"))
    model: Optional[str] = None


class WebhookRequest(BaseModel):
    datetime: Optional[str] = None
    Generated_Content: Optional[Any] = None


class ScheduleCallRequest(BaseModel):
    phone_number: str
    schedule_time: str
    user_id: Optional[str] = None


class TodoCreate(BaseModel):
    text: str
    user_id: Optional[str] = None


class TodoUpdate(BaseModel):
    text: Optional[str] = None
    completed: Optional[bool] = None


class ChatRequest(BaseModel):
    message: str
    user_id: str = "default_user"


# -----------------------
# Auth
# -----------------------

def get_current_user(authorization: Optional[str] = Header(default=None)) -> dict:
    token = (authorization or "").removeprefix("Bearer ").strip()
    try:
        return AUTH.get_user(token)
    except AuthenticationError as e:
        raise HTTPException(status_code=401, detail=str(e))
    except AuthNotConfiguredError as e:
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/auth/signup")
def signup(body: Credentials):
    try:
        result = AUTH.sign_up(body.email, body.password, body.full_name)
    except AuthenticationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except AuthNotConfiguredError as e:
        raise HTTPException(status_code=500, detail=str(e))
    user = result["user"]
    return {
        "user_id": user["id"],
        "email": user["email"],
        "access_token": result["access_token"],
        "refresh_token": result["refresh_token"],
    }


@app.post("/auth/login")
def login(body: Credentials):
    try:
        result = AUTH.sign_in(body.email, body.password)
    except AuthenticationError as e:
        raise HTTPException(status_code=401, detail=str(e))
    except AuthNotConfiguredError as e:
        raise HTTPException(status_code=500, detail=str(e))
    user = result["user"]
    return {
        "user_id": user["id"],
        "email": user["email"],
        "access_token": result["access_token"],
        "refresh_token": result["refresh_token"],
        "expires_at": result["expires_at"],
    }


def _login_redirect(description: str) -> RedirectResponse:
    return RedirectResponse(f"{FRONTEND_URL}/login?error={quote(description)}", status_code=302)


@app.get("/auth/callback")
def auth_callback(
    code: Optional[str] = None,
    error: Optional[str] = None,
    error_description: Optional[str] = None,
    next: str = "/",
):
    if error:
        logger.warning(f"OAuth error: {error} {error_description}")
        return _login_redirect(error_description or error)
    if not code:
        return RedirectResponse(f"{FRONTEND_URL}/", status_code=302)

    try:
        session = AUTH.exchange_code(code)
    except (AuthenticationError, AuthNotConfiguredError) as e:
        return _login_redirect(str(e))

    status = PROFILES.onboarding_status(session["user"]["id"])
    target = next if status["complete"] else "/onboarding"
    if not target.startswith("/"):
        target = "/"
    return RedirectResponse(f"{FRONTEND_URL}{target}", status_code=302)


@app.post("/auth/signout")
def signout(body: SignOutRequest):
    try:
        AUTH.sign_out(body.access_token or "")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except AuthNotConfiguredError as e:
        raise HTTPException(status_code=500, detail=str(e))
    except RevokeFailedError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return {"success": True}


@app.get("/auth/me")
def me(user: dict = Depends(get_current_user)):
    return {
        "user": user,
        "display_name": display_name(user),
        "profile": PROFILES.get_profile(user["id"]),
        "onboarding": PROFILES.onboarding_status(user["id"]),
    }


# -----------------------
# Profile / onboarding
# -----------------------

@app.get("/profile")
def get_profile(user: dict = Depends(get_current_user)):
    profile = PROFILES.get_profile(user["id"])
    if profile is None:
        raise HTTPException(status_code=404, detail="Profile not found")
    return profile


@app.post("/profile/phone")
def save_phone(body: PhoneRequest, user: dict = Depends(get_current_user)):
    try:
        return PROFILES.save_phone(user["id"], body.phone, display_name(user))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.get("/profile/onboarding")
def onboarding_status(user: dict = Depends(get_current_user)):
    return PROFILES.onboarding_status(user["id"])


@app.post("/profile/onboarding")
def complete_onboarding(body: OnboardingRequest, user: dict = Depends(get_current_user)):
    try:
        return PROFILES.complete_onboarding(
            user["id"],
            display_name(user),
            body.profile.model_dump(),
            body.goal.model_dump(),
            BACKEND,
        )
    except LlmConfigurationError as e:
        raise HTTPException(status_code=500, detail=str(e))
    except PlanFormatError as e:
        raise HTTPException(status_code=500, detail=str(e))
    except MaxRetryErrorsException:
        raise HTTPException(status_code=502, detail="Failed to generate plan")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


# -----------------------
# Plans
# -----------------------

@app.post("/generate")
def generate(body: HabitPlanRequest):
    try:
        return BACKEND.generate_habit_plan(body.model_dump())
    except (LlmConfigurationError, PlanFormatError) as e:
        raise HTTPException(status_code=500, detail=str(e))
    except MaxRetryErrorsException:
        raise HTTPException(status_code=502, detail="Failed to generate plan")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error generating habit plan:\n{traceback.format_exc()}")
        raise HTTPException(status_code=500, detail=str(e))


@app.get("/plans")
def list_plans(user_id: str):
    return {"status": "success", "data": BACKEND.list_habit_plans(user_id)}


@app.post("/generate-goal-plan")
def generate_goal_plan(body: GoalPlanRequest):
    try:
        return BACKEND.generate_goal_plan(
            body.user_id,
            body.profile.model_dump(),
            body.goal.model_dump(),
            payload={"model": body.model} if body.model else None,
        )
    except (LlmConfigurationError, PlanFormatError) as e:
        raise HTTPException(status_code=500, detail=str(e))
    except MaxRetryErrorsException:
        raise HTTPException(status_code=502, detail="Failed to generate plan")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


# -----------------------
# Reminders
# -----------------------

@app.post("/webhook")
def schedule_webhook(body: WebhookRequest):
    if not WEBHOOK_URL or not body.datetime:
        raise HTTPException(status_code=400, detail="Webhook URL and datetime are required")
    try:
        when = REMINDER_SCHEDULER.parse(body.datetime)
        entry = REMINDER_SCHEDULER.schedule(
            WEBHOOK_URL,
            when,
            {
                "first_message": REMINDER_FIRST_MESSAGE,
                "vapi_voice_call_context_prompt": body.Generated_Content,
            },
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"message": f"Webhook scheduled for {body.datetime}!", "cron": entry["cron"], "run_at": entry["run_at"]}


@app.post("/schedule-call")
def schedule_call(body: ScheduleCallRequest):
    if not CALL_WEBHOOK_URL:
        raise HTTPException(status_code=400, detail="Webhook URL and datetime are required")
    try:
        phone = normalize_phone(body.phone_number)
        when = REMINDER_SCHEDULER.parse(body.schedule_time)
        key = f"{CALL_WEBHOOK_URL}#call:{body.user_id or 'anonymous'}"
        entry = REMINDER_SCHEDULER.schedule(
            CALL_WEBHOOK_URL,
            when,
            {"phone_number": phone, "user_id": body.user_id, "first_message": REMINDER_FIRST_MESSAGE},
            key=key,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"message": f"Call scheduled for {body.schedule_time}!", "run_at": entry["run_at"]}


@app.get("/reminders")
def list_reminders():
    return {"reminders": REMINDER_SCHEDULER.snapshot()}


@app.delete("/reminders")
def cancel_reminder(webhook_url: str):
    if not REMINDER_SCHEDULER.cancel(webhook_url):
        raise HTTPException(status_code=404, detail="Reminder not found")
    return {"message": "Reminder cancelled"}


# -----------------------
# Todos
# -----------------------

@app.post("/api/v1/todos", status_code=201)
def create_todo(body: TodoCreate):
    try:
        return TODOS.create_todo(body.model_dump())
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.get("/api/v1/todos")
def list_todos(user_id: Optional[str] = None):
    return TODOS.list_todos(user_id)


@app.delete("/api/v1/todos/completed/clear")
def clear_completed(user_id: Optional[str] = None):
    return TODOS.clear_completed(user_id)


@app.get("/api/v1/todos/{todo_id}")
def get_todo(todo_id: str):
    try:
        return TODOS.get_todo(todo_id)
    except TodoNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))


@app.put("/api/v1/todos/{todo_id}")
def update_todo(todo_id: str, body: TodoUpdate):
    try:
        return TODOS.update_todo(todo_id, body.model_dump(exclude_none=True))
    except TodoNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.patch("/api/v1/todos/{todo_id}/toggle")
def toggle_todo(todo_id: str):
    try:
        return TODOS.toggle_todo(todo_id)
    except TodoNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))


@app.delete("/api/v1/todos/{todo_id}")
def delete_todo(todo_id: str):
    try:
        return TODOS.delete_todo(todo_id)
    except TodoNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))


# -----------------------
# Chat
# -----------------------

@app.post("/api/v1/chat/")
def chat(body: ChatRequest):
    return StreamingResponse(
        AGUI.stream(body.message, body.user_id),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive", "X-Accel-Buffering": "no"},
    )


@app.post("/api/v1/chat/simple")
def chat_simple(body: ChatRequest):
    try:
        return AGUI.complete(body.message, body.user_id)
    except (requests.RequestException, AgentStreamError) as e:
        logger.error(f"AGUI simple chat failed: {e}")
        raise HTTPException(status_code=502, detail=str(e))


@app.get("/api/v1/chat/history")
def chat_history(user_id: str = "default_user"):
    return {"user_id": user_id, "messages": GLOBAL_CHAT_HISTORY_CACHE.snapshot(user_id)}


@app.delete("/api/v1/chat/history")
def clear_chat_history(user_id: str = "default_user"):
    return {"cleared": GLOBAL_CHAT_HISTORY_CACHE.clear(user_id)}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
