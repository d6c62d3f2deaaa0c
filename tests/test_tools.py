from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from sessions_mcp.catalog import Client, ClientNotFoundError, GoalStatus, GoalTemplate
from sessions_mcp.config import SessionsSettings
from sessions_mcp.storage import SessionNotFoundError, SessionRecord, SessionSaveError
from sessions_mcp.tools import register_tools


class StubTool:
    def __init__(self, fn, name):
        self.fn = fn
        self.name = name


class StubServer:
    def __init__(self) -> None:
        self._tools: dict[str, StubTool] = {}

    def tool(self, *args, **kwargs):
        provided_name = None
        if args and isinstance(args[0], str):
            provided_name = args[0]
        provided_name = kwargs.get("name", provided_name)

        def decorator(fn):
            tool_name = provided_name or fn.__name__
            tool = StubTool(fn, tool_name)
            self._tools[tool_name] = tool
            return tool

        return decorator


class StubCatalog:
    def __init__(self, *clients: Client) -> None:
        self._clients = {client.id: client for client in clients}

    def load_all(self) -> dict[str, Client]:
        return dict(self._clients)

    def get(self, client_id: str) -> Client:
        try:
            return self._clients[client_id]
        except KeyError as exc:
            raise ClientNotFoundError(f"Unknown client '{client_id}'") from exc


class StubStore:
    def __init__(self, *, fail: bool = False, failures: int = 0) -> None:
        self.saved: list[SessionRecord] = []
        self.attempts: list[str] = []
        self.fail = fail
        self.failures = failures

    async def save_session(self, record: SessionRecord) -> SessionRecord:
        self.attempts.append(record.id)
        if self.fail or self.failures:
            self.failures = max(0, self.failures - 1)
            raise SessionSaveError("disk full")
        self.saved.append(record)
        return record

    def fetch_session(self, session_id: str) -> SessionRecord:
        for record in self.saved:
            if record.id == session_id:
                return record
        raise SessionNotFoundError(f"Session '{session_id}' not found")

    def list_sessions(self, client_id: str | None = None) -> list[SessionRecord]:
        return [record for record in self.saved if client_id is None or record.client_id == client_id]

    def fetch_goal_logs(self, session_id: str):
        return list(self.fetch_session(session_id).goal_logs)


class StepClock:
    def __init__(self) -> None:
        self.now = datetime(2025, 3, 4, 15, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now


def _client(goal_count: int = 5) -> Client:
    goals = [
        GoalTemplate(id=f"goal-{index}", title=f"Goal {index}", category="Articulation")
        for index in range(goal_count)
    ]
    if goals:
        goals.append(GoalTemplate(id="goal-old", title="Old goal", status=GoalStatus.INACTIVE))
    return Client(id="client-1", name="Emma Grace Johnson", goals=goals)


def _register(store: StubStore | None = None, *clients: Client, clock: StepClock | None = None):
    server = StubServer()
    settings = SessionsSettings()
    settings.max_session_goals = 4
    settings.device_origin = "Watch"
    handles = register_tools(
        server,  # type: ignore[arg-type]
        catalog=StubCatalog(*(clients or (_client(),))),  # type: ignore[arg-type]
        settings=settings,
        store=store,
        clock=clock or StepClock(),
    )
    return server, handles


def test_all_tools_registered() -> None:
    server, _ = _register(StubStore())

    assert set(server._tools) == {
        "list_clients",
        "list_goals",
        "start_session",
        "log_trial",
        "undo_trial",
        "next_goal",
        "previous_goal",
        "select_goal",
        "session_status",
        "end_session",
        "cancel_session",
        "session_history",
        "export_session",
    }


def test_list_clients_uses_privacy_name() -> None:
    _, handles = _register(StubStore())

    listing = handles.list_clients.fn()  # type: ignore[attr-defined]

    assert listing == [{"id": "client-1", "name": "Emma J.", "age": None, "active_goal_count": 5}]


def test_list_goals_hides_inactive_by_default() -> None:
    _, handles = _register(StubStore())

    active = handles.list_goals.fn("client-1")  # type: ignore[attr-defined]
    everything = handles.list_goals.fn("client-1", include_inactive=True)  # type: ignore[attr-defined]

    assert len(active) == 5
    assert everything[-1]["status"] == "inactive"
    with pytest.raises(ValueError):
        handles.list_goals.fn("client-404")  # type: ignore[attr-defined]


def test_start_session_limits_goals() -> None:
    _, handles = _register(StubStore())

    snapshot = handles.start_session.fn("client-1")  # type: ignore[attr-defined]

    assert snapshot["total_goals"] == 4
    assert snapshot["current_goal"]["goal_id"] == "goal-0"
    assert [goal["goal_id"] for goal in snapshot["goals"]] == ["goal-0", "goal-1", "goal-2", "goal-3"]
    assert snapshot["success_rate"] == "0% (0/0)"


def test_start_session_rejects_second_session() -> None:
    _, handles = _register(StubStore())
    handles.start_session.fn("client-1")  # type: ignore[attr-defined]

    with pytest.raises(ValueError):
        handles.start_session.fn("client-1")  # type: ignore[attr-defined]


def test_start_session_requires_active_goals() -> None:
    _, handles = _register(StubStore(), _client(goal_count=0))

    with pytest.raises(ValueError):
        handles.start_session.fn("client-1")  # type: ignore[attr-defined]
    assert handles.session_state["active"] is None


def test_log_trial_without_session_fails() -> None:
    _, handles = _register(StubStore())

    with pytest.raises(ValueError):
        handles.log_trial.fn(True, "independent")  # type: ignore[attr-defined]


def test_log_undo_and_navigate() -> None:
    _, handles = _register(StubStore())
    handles.start_session.fn("client-1", goal_ids=["goal-2", "goal-0"])  # type: ignore[attr-defined]

    handles.log_trial.fn(True, "independent")  # type: ignore[attr-defined]
    handles.log_trial.fn(True, "Min")  # type: ignore[attr-defined]
    handles.next_goal.fn()  # type: ignore[attr-defined]
    result = handles.log_trial.fn(False, "moderate")  # type: ignore[attr-defined]

    assert result["trial"]["goal_id"] == "goal-0"
    assert result["session"]["success_rate"] == "66% (2/3)"
    assert result["session"]["cue_levels"] == {"independent": 1, "minimal": 1, "moderate": 1, "maximal": 0}

    undone = handles.undo_trial.fn()  # type: ignore[attr-defined]
    assert undone["undone"] is True
    assert undone["session"]["total_trials"] == 2

    assert handles.next_goal.fn()["current_goal_index"] == 1  # type: ignore[attr-defined]
    assert handles.previous_goal.fn()["current_goal_index"] == 0  # type: ignore[attr-defined]
    assert handles.previous_goal.fn()["current_goal_index"] == 0  # type: ignore[attr-defined]


def test_log_trial_rejects_unknown_cue_level() -> None:
    _, handles = _register(StubStore())
    handles.start_session.fn("client-1")  # type: ignore[attr-defined]

    with pytest.raises(ValueError):
        handles.log_trial.fn(True, "sometimes")  # type: ignore[attr-defined]


def test_undo_with_no_trials_reports_false() -> None:
    _, handles = _register(StubStore())
    handles.start_session.fn("client-1")  # type: ignore[attr-defined]

    result = handles.undo_trial.fn()  # type: ignore[attr-defined]

    assert result["undone"] is False
    assert result["trial_id"] is None


def test_select_goal_out_of_range_raises() -> None:
    _, handles = _register(StubStore())
    handles.start_session.fn("client-1")  # type: ignore[attr-defined]

    assert handles.select_goal.fn(3)["current_goal_index"] == 3  # type: ignore[attr-defined]
    with pytest.raises(ValueError):
        handles.select_goal.fn(4)  # type: ignore[attr-defined]
    assert handles.session_state["active"].current_goal_index == 3


def test_session_status_full_includes_goals() -> None:
    clock = StepClock()
    _, handles = _register(StubStore(), clock=clock)
    handles.start_session.fn("client-1")  # type: ignore[attr-defined]
    handles.log_trial.fn(True, "maximal")  # type: ignore[attr-defined]
    clock.now += timedelta(minutes=3, seconds=9)

    brief = handles.session_status.fn()  # type: ignore[attr-defined]
    full = handles.session_status.fn(detail_level="full")  # type: ignore[attr-defined]

    assert "goals" not in brief
    assert brief["duration"] == "03:09"
    assert full["goals"][0]["success_percentage"] == 100
    assert full["goals"][0]["performance_level"] == "Excellent"
    assert full["summary"]["duration"] == "3:09"


def test_end_session_saves_and_clears_state() -> None:
    clock = StepClock()
    store = StubStore()
    _, handles = _register(store, clock=clock)
    started = handles.start_session.fn("client-1")  # type: ignore[attr-defined]
    handles.log_trial.fn(True, "independent")  # type: ignore[attr-defined]
    handles.log_trial.fn(False, "moderate")  # type: ignore[attr-defined]
    clock.now += timedelta(minutes=15)

    result = asyncio.run(handles.end_session.fn(location="Clinic", notes="Tired"))  # type: ignore[attr-defined]

    assert len(store.saved) == 1
    record = store.saved[0]
    assert record.id != started["session_id"]
    assert record.tracking_id == started["session_id"]
    assert record.origin == "Watch"
    assert record.location == "Clinic"
    assert all(log.session_id == record.id for log in record.goal_logs)
    assert result["session"]["session_id"] == record.id
    assert result["summary"]["total_trials"] == 2
    assert result["summary"]["session_id"] == record.id
    assert result["session"]["duration_seconds"] == 15 * 60
    assert result["summary"]["tracking_id"] == started["session_id"]
    assert handles.session_state["active"] is None
    assert handles.session_state["last_saved"] == record.id


def test_end_session_failure_keeps_session_active() -> None:
    _, handles = _register(StubStore(fail=True))
    handles.start_session.fn("client-1")  # type: ignore[attr-defined]
    handles.log_trial.fn(True, "independent")  # type: ignore[attr-defined]

    with pytest.raises(SessionSaveError):
        asyncio.run(handles.end_session.fn())  # type: ignore[attr-defined]

    active = handles.session_state["active"]
    assert active is not None
    assert active.total_trials == 1


def test_end_session_retry_reuses_session_id() -> None:
    store = StubStore(failures=1)
    _, handles = _register(store)
    handles.start_session.fn("client-1")  # type: ignore[attr-defined]
    handles.log_trial.fn(True, "independent")  # type: ignore[attr-defined]
    handles.log_trial.fn(False, "maximal")  # type: ignore[attr-defined]

    with pytest.raises(SessionSaveError):
        asyncio.run(handles.end_session.fn())  # type: ignore[attr-defined]
    result = asyncio.run(handles.end_session.fn())  # type: ignore[attr-defined]

    assert store.attempts[0] == store.attempts[1]
    assert [record.id for record in store.saved] == [store.attempts[0]]
    assert len(handles.session_history.fn("client-1")["sessions"]) == 1  # type: ignore[attr-defined]
    assert result["session"]["total_trials"] == 2
    assert handles.session_state["pending_id"] is None


def test_cancel_after_failed_save_forgets_pending_id() -> None:
    store = StubStore(failures=1)
    _, handles = _register(store)
    handles.start_session.fn("client-1")  # type: ignore[attr-defined]

    with pytest.raises(SessionSaveError):
        asyncio.run(handles.end_session.fn())  # type: ignore[attr-defined]
    handles.cancel_session.fn()  # type: ignore[attr-defined]
    handles.start_session.fn("client-1")  # type: ignore[attr-defined]
    asyncio.run(handles.end_session.fn())  # type: ignore[attr-defined]

    assert store.saved[0].id != store.attempts[0]


def test_start_session_rejects_repeated_or_excess_goal_ids() -> None:
    _, handles = _register(StubStore())

    with pytest.raises(ValueError):
        handles.start_session.fn("client-1", goal_ids=["goal-0", "goal-0"])  # type: ignore[attr-defined]
    with pytest.raises(ValueError):
        handles.start_session.fn(  # type: ignore[attr-defined]
            "client-1", goal_ids=["goal-0", "goal-1", "goal-2", "goal-3", "goal-4"]
        )
    assert handles.session_state["active"] is None


def test_end_session_without_store_raises() -> None:
    _, handles = _register(None)
    handles.start_session.fn("client-1")  # type: ignore[attr-defined]

    with pytest.raises(RuntimeError):
        asyncio.run(handles.end_session.fn())  # type: ignore[attr-defined]
    assert handles.session_state["active"] is not None


def test_cancel_session_discards_trials() -> None:
    store = StubStore()
    _, handles = _register(store)
    handles.start_session.fn("client-1")  # type: ignore[attr-defined]
    handles.log_trial.fn(True, "independent")  # type: ignore[attr-defined]

    result = handles.cancel_session.fn()  # type: ignore[attr-defined]

    assert result["discarded_trials"] == 1
    assert handles.session_state["active"] is None
    assert store.saved == []


def test_history_and_markdown_export() -> None:
    clock = StepClock()
    store = StubStore()
    _, handles = _register(store, clock=clock)

    for outcome in (True, False):
        handles.start_session.fn("client-1")  # type: ignore[attr-defined]
        handles.log_trial.fn(outcome, "minimal")  # type: ignore[attr-defined]
        clock.now += timedelta(minutes=10)
        asyncio.run(handles.end_session.fn())  # type: ignore[attr-defined]

    history = handles.session_history.fn("client-1", limit=1)  # type: ignore[attr-defined]
    assert len(history["sessions"]) == 1
    latest = history["sessions"][0]
    assert latest["session_id"] == store.saved[-1].id
    assert latest["success_count"] == 0

    export = handles.export_session.fn(latest["session_id"], format="markdown")  # type: ignore[attr-defined]
    assert export["format"] == "markdown"
    assert f"# Session {latest['session_id']}" in export["data"]
    assert "[Minimal] Goal 0: failure" in export["data"]

    as_json = handles.export_session.fn(latest["session_id"])  # type: ignore[attr-defined]
    assert as_json["data"]["goal_logs"][0]["cue_level"] == "minimal"

    with pytest.raises(ValueError):
        handles.export_session.fn("missing")  # type: ignore[attr-defined]
