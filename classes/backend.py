# classes/backend.py

import json
import logging
import os
import traceback
from datetime import datetime, timezone

from classes.backend_prompts import ATOMIC_HABIT_PROMPT, GOAL_PLAN_PROMPT, GOAL_PLAN_SYSTEM_PROMPT
from classes.entities import HabitPlan, UserProfile
from classes.google_helpers import GOAL_PLAN_MODEL, HABIT_PLAN_MODEL, create_session_factory
from classes.llm_client import MaxRetryErrorsException
from classes.model_props import is_openai_model
from classes.utils import Utils

logger = logging.getLogger("habit_backend")

ATOMIC_HABIT_KEYS = ("obvious", "attractive", "easy", "satisfying")
DURATION_TYPES = ("days", "weeks", "months")


class PlanFormatError(Exception):
    """The model answered, but not with the JSON object we asked for."""


class LlmConfigurationError(RuntimeError):
    pass


class Backend(Utils):
    """
    Plan generation. Prompts are rendered locally and sent to a hosted model:
    habit plans go to HABIT_PLAN_MODEL (Gemini), goal plans to GOAL_PLAN_MODEL (OpenAI).
    Pre-built clients can be injected (tests, alternative providers).
    """

    def __init__(self, session_factory=None, habit_llm=None, goal_llm=None):
        self.SessionFactory = session_factory or create_session_factory()
        self._habit_llm = habit_llm
        self._goal_llm = goal_llm

    # -----------------------
    # LLM plumbing
    # -----------------------

    def _resolve_llm(self, payload, injected, default_model, **llm_kwargs):
        requested = self._detect_llm_model_in_payload(payload)
        if injected is not None and not requested:
            return injected

        model_name = requested or default_model
        if is_openai_model(model_name) and not os.getenv("OPENAI_API_KEY"):
            raise LlmConfigurationError("OpenAI API key not configured")
        logger.debug(f"Building LLM client for model {model_name}")
        return self._build_llm_for_model(model_name, **llm_kwargs)

    # -----------------------
    # Atomic Habits plan
    # -----------------------

    def generate_habit_plan(self, payload: dict) -> dict:
        payload = payload or {}
        llm = self._resolve_llm(payload, self._habit_llm, HABIT_PLAN_MODEL)

        prompt = self.unsafe_string_format(
            ATOMIC_HABIT_PROMPT,
            print_unused_keys_report=False,
            habit_name=self._coerce_field_to_str(payload.get("habit_name")),
            frequency=self._coerce_field_to_str(payload.get("frequency")),
            motivation=self._coerce_field_to_str(payload.get("motivation")),
            obstacles=self._coerce_field_to_str(payload.get("obstacles")),
        )

        try:
            raw = llm.invoke(prompt, json_mode=True)
        except MaxRetryErrorsException:
            logger.error(f"Habit plan generation failed:\n{traceback.format_exc()}")
            raise
        logger.debug(f"Habit plan raw response: {raw}")

        plan = self._parse_plan(raw, required_keys=ATOMIC_HABIT_KEYS, llm=llm)

        user_id = payload.get("user_id")
        if user_id:
            self._store_habit_plan(str(user_id), payload.get("habit_name"), getattr(llm, "model_name", None), plan)

        return {"message": "success", "data": plan}

    def _store_habit_plan(self, user_id: str, habit_name, model_name, plan: dict) -> str:
        session = self.SessionFactory()
        try:
            row = HabitPlan(user_id=user_id, habit_name=habit_name, model_name=model_name, plan=plan)
            session.add(row)
            session.commit()
            return row.id
        finally:
            session.close()

    def list_habit_plans(self, user_id: str) -> list[dict]:
        session = self.SessionFactory()
        try:
            rows = (
                session.query(HabitPlan)
                .filter(HabitPlan.user_id == str(user_id))
                .order_by(HabitPlan.created_at.desc())
                .all()
            )
            return [
                {
                    "id": r.id,
                    "habit_name": r.habit_name,
                    "model_name": r.model_name,
                    "plan": r.plan,
                    "created_at": r.created_at.isoformat() if r.created_at else None,
                }
                for r in rows
            ]
        finally:
            session.close()

    # -----------------------
    # Goal plan
    # -----------------------

    def generate_goal_plan(self, user_id, profile: dict, goal: dict, payload: dict | None = None, store: bool = True) -> dict:
        profile = profile or {}
        goal = goal or {}
        primary_goal = (goal.get("primary_goal") or "").strip()
        if not user_id or not primary_goal:
            raise ValueError("Missing required fields")

        llm = self._resolve_llm(payload, self._goal_llm, GOAL_PLAN_MODEL, temperature=0.7, max_output_tokens=3000)

        duration = f"{goal.get('goal_duration') or ''} {goal.get('duration_type') or ''}".strip()
        prompt = self.unsafe_string_format(
            GOAL_PLAN_PROMPT,
            print_unused_keys_report=False,
            age=self._coerce_field_to_str(profile.get("age")),
            occupation=self._coerce_field_to_str(profile.get("occupation")),
            lifestyle=self._coerce_field_to_str(profile.get("lifestyle")),
            energy_level=self._coerce_field_to_str(profile.get("energy_level")),
            schedule=self._coerce_field_to_str(profile.get("schedule")),
            description=self._coerce_field_to_str(profile.get("description")),
            goals=self._coerce_field_to_str(profile.get("goals"), default="None specified"),
            current_habits=self._coerce_field_to_str(profile.get("current_habits"), default="None specified"),
            challenges=self._coerce_field_to_str(profile.get("challenges"), default="None specified"),
            preferences=self._coerce_field_to_str(profile.get("preferences"), default="None specified"),
            primary_goal=primary_goal,
            goal_duration=goal.get("goal_duration") or "",
            duration_type=goal.get("duration_type") or "",
        )

        try:
            raw = llm.invoke(prompt, system=GOAL_PLAN_SYSTEM_PROMPT, json_mode=True)
        except MaxRetryErrorsException:
            logger.error(f"Goal plan generation failed:\n{traceback.format_exc()}")
            raise

        plan = self._parse_plan(raw, llm=llm)
        generated_at = datetime.now(timezone.utc)
        enriched = {
            **plan,
            "generatedAt": generated_at.isoformat(),
            "goal": primary_goal,
            "duration": duration,
            "userId": str(user_id),
        }

        if store:
            self._store_goal_plan(str(user_id), goal, enriched, generated_at)

        cost = llm.get_accrued_cost() if hasattr(llm, "get_accrued_cost") else 0.0
        self.color_print(f"Goal plan generated for {user_id} (cost ~${cost:.5f})", color="green")
        return {"success": True, "plan": enriched}

    def _store_goal_plan(self, user_id: str, goal: dict, plan: dict, generated_at: datetime) -> None:
        session = self.SessionFactory()
        try:
            profile = session.get(UserProfile, user_id)
            if profile is None:
                profile = UserProfile(id=user_id)
                session.add(profile)
            profile.primary_goal = goal.get("primary_goal")
            profile.goal_duration = goal.get("goal_duration")
            profile.duration_type = goal.get("duration_type")
            profile.generated_plan = plan
            profile.plan_generated_at = generated_at
            session.commit()
        finally:
            session.close()

    # -----------------------
    # Parsing
    # -----------------------

    def _parse_plan(self, raw: str, required_keys=(), llm=None) -> dict:
        try:
            plan = self.load_fault_tolerant_json(raw, llm=llm)
        except ValueError as e:
            logger.error(f"Failed to parse AI response: {raw}")
            raise PlanFormatError("Invalid plan format") from e

        missing = [k for k in required_keys if k not in plan]
        if missing:
            logger.error(f"AI response missing keys {missing}: {json.dumps(plan)}")
            raise PlanFormatError("Invalid plan format")
        return plan
