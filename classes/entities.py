# classes/entities.py
from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    DateTime,
    Index,
    Integer,
    JSON,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, declarative_base, mapped_column

from typing import TypeAlias
UUID: TypeAlias = str
Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UserProfile(Base):
    """
    Mirrors the `users_profile` table. `id` is the Supabase auth user id.
    """
    __tablename__ = "users_profile"

    id: Mapped[UUID] = mapped_column(String(64), primary_key=True)
    name: Mapped[str | None] = mapped_column(String)
    phone: Mapped[str | None] = mapped_column(String(32))
    age: Mapped[int | None] = mapped_column(Integer)

    goals: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    challenges: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    currenthabits: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    schedule: Mapped[str | None] = mapped_column(Text)
    description: Mapped[str | None] = mapped_column(Text)

    primary_goal: Mapped[str | None] = mapped_column(Text)
    goal_duration: Mapped[int | None] = mapped_column(Integer)
    duration_type: Mapped[str | None] = mapped_column(String(16))

    generated_plan: Mapped[dict | None] = mapped_column(JSON)
    plan_generated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )


class HabitPlan(Base):
    """
    One row per Atomic-Habits plan generated for a user.
    """
    __tablename__ = "habit_plan"

    id: Mapped[UUID] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))
    user_id: Mapped[UUID] = mapped_column(String(64), nullable=False)
    habit_name: Mapped[str | None] = mapped_column(Text)
    model_name: Mapped[str | None] = mapped_column(String)

    # {"obvious": ..., "attractive": ..., "easy": ..., "satisfying": ...}
    plan: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        Index("ix_habit_plan_user_id", "user_id"),
    )


class Todo(Base):
    __tablename__ = "todo"

    id: Mapped[UUID] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))
    user_id: Mapped[UUID] = mapped_column(String(64), nullable=False)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        Index("ix_todo_user_id", "user_id"),
    )

    def to_dict(self) -> dict:
        created = self.created_at
        return {
            "id": self.id,
            "text": self.text,
            "completed": bool(self.completed),
            "created_at": created.isoformat() if created else None,
            "user_id": self.user_id,
        }
