# classes/profile_service.py

import logging
import re

from classes.backend import DURATION_TYPES
from classes.entities import UserProfile
from classes.google_helpers import create_session_factory
from classes.utils import Utils

logger = logging.getLogger("habit_backend")

MIN_AGE = 13
ONBOARDING_FIELDS = ("phone", "primary_goal", "plan_generated_at")


def normalize_phone(raw: str) -> str:
    """
    Keep digits and '+', default to +1 when no country code is given.
    Raises ValueError unless the result carries 10-15 digits.
    """
    cleaned = re.sub(r"[^\d+]", "", raw or "")
    digits = re.sub(r"\D", "", cleaned)
    if not 10 <= len(digits) <= 15:
        raise ValueError("Please enter a valid phone number (10-15 digits)")
    if not cleaned.startswith("+"):
        cleaned = "+1" + digits
    else:
        cleaned = "+" + digits
    return cleaned


def parse_multi_value(value) -> list[str]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        items = value
    else:
        items = str(value).split(",")
    return [str(item).strip() for item in items if str(item).strip()]


def profile_to_dict(profile: UserProfile) -> dict:
    return {
        "id": profile.id,
        "name": profile.name,
        "phone": profile.phone,
        "age": profile.age,
        "goals": list(profile.goals or []),
        "challenges": list(profile.challenges or []),
        "currenthabits": list(profile.currenthabits or []),
        "schedule": profile.schedule,
        "description": profile.description,
        "primary_goal": profile.primary_goal,
        "goal_duration": profile.goal_duration,
        "duration_type": profile.duration_type,
        "generated_plan": profile.generated_plan,
        "plan_generated_at": profile.plan_generated_at.isoformat() if profile.plan_generated_at else None,
        "updated_at": profile.updated_at.isoformat() if profile.updated_at else None,
    }


class ProfileService(Utils):
    def __init__(self, session_factory=None):
        self.SessionFactory = session_factory or create_session_factory()

    def get_profile(self, user_id: str) -> dict | None:
        session = self.SessionFactory()
        try:
            profile = session.get(UserProfile, str(user_id))
            return profile_to_dict(profile) if profile else None
        finally:
            session.close()

    def upsert_profile(self, user_id: str, **fields) -> dict:
        if not user_id:
            raise ValueError("User not authenticated")

        session = self.SessionFactory()
        try:
            profile = session.get(UserProfile, str(user_id))
            if profile is None:
                profile = UserProfile(id=str(user_id), goals=[], challenges=[], currenthabits=[])
                session.add(profile)
            for key, value in fields.items():
                if not hasattr(UserProfile, key):
                    raise ValueError(f"Unknown profile field: {key}")
                setattr(profile, key, value)
            session.commit()
            session.refresh(profile)
            return profile_to_dict(profile)
        finally:
            session.close()

    def save_phone(self, user_id: str, phone: str, name: str | None = None) -> dict:
        cleaned = normalize_phone(phone)
        logger.info(f"Saving phone number for {user_id}")
        return self.upsert_profile(user_id, phone=cleaned, name=name or "User")

    def onboarding_status(self, user_id: str) -> dict:
        profile = self.get_profile(user_id) or {}
        missing = [f for f in ONBOARDING_FIELDS if not profile.get(f)]
        return {"complete": not missing, "missing": missing}

    def validate_onboarding(self, profile: dict, goal: dict) -> None:
        if not profile.get("phone"):
            raise ValueError("Phone number is required")
        age = profile.get("age")
        if not age or int(age) < MIN_AGE:
            raise ValueError(f"Please enter a valid age ({MIN_AGE}+)")
        if not (goal.get("primary_goal") or "").strip():
            raise ValueError("Please enter your primary goal")
        duration = goal.get("goal_duration")
        if not duration or int(duration) < 1:
            raise ValueError("Please enter a valid duration")
        if goal.get("duration_type") not in DURATION_TYPES:
            raise ValueError(f"duration_type must be one of {', '.join(DURATION_TYPES)}")

    def complete_onboarding(self, user_id: str, name: str | None, profile: dict, goal: dict, backend) -> dict:
        """
        Saves the onboarding answers and generates the first goal plan.
        `backend` is a classes.backend.Backend (or anything with generate_goal_plan).
        """
        profile = dict(profile or {})
        goal = dict(goal or {})
        self.validate_onboarding(profile, goal)

        profile["goals"] = parse_multi_value(profile.get("goals"))
        profile["challenges"] = parse_multi_value(profile.get("challenges"))
        profile["current_habits"] = parse_multi_value(profile.get("current_habits"))
        goal["goal_duration"] = int(goal["goal_duration"])

        saved = self.upsert_profile(
            user_id,
            name=name or "User",
            phone=normalize_phone(profile["phone"]),
            age=int(profile["age"]),
            goals=profile["goals"],
            challenges=profile["challenges"],
            currenthabits=profile["current_habits"],
            schedule=profile.get("schedule"),
            description=profile.get("description"),
        )

        result = backend.generate_goal_plan(user_id, profile, goal)
        saved["generated_plan"] = result["plan"]
        saved["plan_generated_at"] = result["plan"]["generatedAt"]
        saved["primary_goal"] = goal.get("primary_goal")
        return {"profile": saved, "plan": result["plan"]}
