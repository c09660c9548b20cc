import logging

from classes.entities import Todo
from classes.google_helpers import create_session_factory
from classes.utils import Utils

logger = logging.getLogger("habit_backend")


class TodoNotFound(LookupError):
    pass


class TodoService(Utils):
    """
    Todo CRUD. Every method returns the {status, data?, message} envelope the
    web client expects; missing rows raise TodoNotFound, bad input ValueError.
    """

    def __init__(self, session_factory=None):
        self.SessionFactory = session_factory or create_session_factory()

    def _get_or_raise(self, session, todo_id: str) -> Todo:
        todo = session.get(Todo, str(todo_id))
        if todo is None:
            raise TodoNotFound("Todo not found")
        return todo

    def create_todo(self, payload):
        payload = payload or {}
        user_id = payload.get("user_id")
        text = (payload.get("text") or "").strip()
        if not user_id:
            raise ValueError("User ID is required to create a todo")
        if not text:
            raise ValueError("Todo text cannot be empty")

        session = self.SessionFactory()
        try:
            todo = Todo(user_id=str(user_id), text=text, completed=False)
            session.add(todo)
            session.commit()
            session.refresh(todo)
            logger.debug(f"create_todo: {todo.id} for {user_id}")
            return {"status": "success", "data": todo.to_dict(), "message": "Todo created successfully"}
        except Exception as e:
            session.rollback()
            self.color_print(f"create_todo(): DB error -> {e}", color="red")
            raise
        finally:
            session.close()

    def list_todos(self, user_id: str | None = None):
        session = self.SessionFactory()
        try:
            query = session.query(Todo)
            if user_id:
                query = query.filter(Todo.user_id == str(user_id))
            rows = query.order_by(Todo.created_at.desc()).all()
            return {
                "status": "success",
                "data": [r.to_dict() for r in rows],
                "message": f"Retrieved {len(rows)} todos",
            }
        finally:
            session.close()

    def get_todo(self, todo_id: str):
        session = self.SessionFactory()
        try:
            todo = self._get_or_raise(session, todo_id)
            return {"status": "success", "data": todo.to_dict(), "message": "Todo retrieved successfully"}
        finally:
            session.close()

    def update_todo(self, todo_id: str, payload):
        payload = payload or {}
        session = self.SessionFactory()
        try:
            todo = self._get_or_raise(session, todo_id)
            if payload.get("text") is not None:
                text = payload["text"].strip()
                if not text:
                    raise ValueError("Todo text cannot be empty")
                todo.text = text
            if payload.get("completed") is not None:
                todo.completed = bool(payload["completed"])
            session.commit()
            session.refresh(todo)
            return {"status": "success", "data": todo.to_dict(), "message": "Todo updated successfully"}
        finally:
            session.close()

    def toggle_todo(self, todo_id: str):
        session = self.SessionFactory()
        try:
            todo = self._get_or_raise(session, todo_id)
            todo.completed = not todo.completed
            session.commit()
            session.refresh(todo)
            return {"status": "success", "data": todo.to_dict(), "message": "Todo toggled successfully"}
        finally:
            session.close()

    def delete_todo(self, todo_id: str):
        session = self.SessionFactory()
        try:
            todo = self._get_or_raise(session, todo_id)
            session.delete(todo)
            session.commit()
            return {"status": "success", "data": None, "message": "Todo deleted successfully"}
        finally:
            session.close()

    def clear_completed(self, user_id: str | None = None):
        session = self.SessionFactory()
        try:
            query = session.query(Todo).filter(Todo.completed.is_(True))
            if user_id:
                query = query.filter(Todo.user_id == str(user_id))
            removed = query.delete(synchronize_session=False)
            session.commit()
            return {"status": "success", "data": None, "message": f"Cleared {removed} completed todos"}
        finally:
            session.close()
