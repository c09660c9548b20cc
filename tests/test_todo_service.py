import pytest

from classes.todo_service import TodoNotFound, TodoService


@pytest.fixture
def todos(session_factory):
    return TodoService(session_factory)


def test_create_and_get_todo(todos):
    created = todos.create_todo({"user_id": "user-1", "text": "  Drink water  "})
    assert created["status"] == "success"
    assert created["message"] == "Todo created successfully"
    data = created["data"]
    assert data["text"] == "Drink water"
    assert data["completed"] is False
    assert data["user_id"] == "user-1"
    assert data["created_at"]

    fetched = todos.get_todo(data["id"])
    assert fetched["data"] == data


@pytest.mark.parametrize(
    "payload, message",
    [
        ({"text": "Walk"}, "User ID is required"),
        ({"user_id": "user-1", "text": "   "}, "cannot be empty"),
        (None, "User ID is required"),
    ],
)
def test_create_todo_validation(todos, payload, message):
    with pytest.raises(ValueError, match=message):
        todos.create_todo(payload)


def test_list_todos_filters_by_user(todos):
    todos.create_todo({"user_id": "user-1", "text": "a"})
    todos.create_todo({"user_id": "user-1", "text": "b"})
    todos.create_todo({"user_id": "user-2", "text": "c"})

    mine = todos.list_todos("user-1")
    assert {t["text"] for t in mine["data"]} == {"a", "b"}
    assert mine["message"] == "Retrieved 2 todos"
    assert len(todos.list_todos()["data"]) == 3


def test_update_and_toggle(todos):
    todo_id = todos.create_todo({"user_id": "user-1", "text": "Stretch"})["data"]["id"]

    updated = todos.update_todo(todo_id, {"text": "Stretch 10 min"})
    assert updated["data"]["text"] == "Stretch 10 min"
    assert updated["data"]["completed"] is False

    assert todos.toggle_todo(todo_id)["data"]["completed"] is True
    assert todos.toggle_todo(todo_id)["data"]["completed"] is False

    assert todos.update_todo(todo_id, {"completed": True})["data"]["completed"] is True

    with pytest.raises(ValueError):
        todos.update_todo(todo_id, {"text": ""})


def test_delete_and_missing_todo(todos):
    todo_id = todos.create_todo({"user_id": "user-1", "text": "Journal"})["data"]["id"]
    assert todos.delete_todo(todo_id)["message"] == "Todo deleted successfully"

    for call in (todos.get_todo, todos.toggle_todo, todos.delete_todo):
        with pytest.raises(TodoNotFound, match="Todo not found"):
            call(todo_id)


def test_clear_completed_only_touches_one_user(todos):
    a = todos.create_todo({"user_id": "user-1", "text": "a"})["data"]["id"]
    todos.create_todo({"user_id": "user-1", "text": "b"})
    c = todos.create_todo({"user_id": "user-2", "text": "c"})["data"]["id"]
    todos.toggle_todo(a)
    todos.toggle_todo(c)

    result = todos.clear_completed("user-1")
    assert result["message"] == "Cleared 1 completed todos"
    assert [t["text"] for t in todos.list_todos("user-1")["data"]] == ["b"]
    assert todos.get_todo(c)["data"]["completed"] is True
