"""Tool registration for Sessions MCP."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Literal

from fastmcp import Context, FastMCP

from ..catalog import CatalogLoader, Client, ClientNotFoundError
from ..config import SessionsSettings
from ..storage import SessionNotFoundError, SessionRecord, SessionStore, StorageError
from ..tracking import ActiveSession, CueLevel
from ..tracking.finalizer import finalize, summarize


@dataclass(slots=True)
class ToolHandles:
    list_clients: Any
    list_goals: Any
    start_session: Any
    log_trial: Any
    undo_trial: Any
    next_goal: Any
    previous_goal: Any
    select_goal: Any
    session_status: Any
    end_session: Any
    cancel_session: Any
    session_history: Any
    export_session: Any
    session_state: dict[str, Any]


def _goal_payload(active: ActiveSession) -> list[dict[str, Any]]:
    return [
        {
            "index": position,
            "goal_id": stat.goal_id,
            "description": goal.description,
            "current": position == active.current_goal_index,
            "success_count": stat.success_count,
            "total_count": stat.total_count,
            "success_percentage": stat.success_percentage,
            "performance_level": stat.performance_level.description,
        }
        for position, (goal, stat) in enumerate(zip(active.goals, active.all_goal_statistics))
    ]


def _session_snapshot(active: ActiveSession) -> dict[str, Any]:
    current = active.current_goal
    return {
        "session_id": active.id,
        "client_id": active.client_id,
        "started_at": active.start_time.isoformat(),
        "duration": active.formatted_duration,
        "current_goal_index": active.current_goal_index,
        "current_goal": {"goal_id": current.id, "description": current.description} if current else None,
        "total_goals": len(active.goals),
        "total_trials": active.total_trials,
        "success_count": active.success_count,
        "failure_count": active.failure_count,
        "success_rate": active.formatted_success_rate,
        "can_undo": active.can_undo,
        "cue_levels": active.cue_level_breakdown.as_dict(),
    }


def _session_record_summary(record: SessionRecord) -> dict[str, Any]:
    return {
        "session_id": record.id,
        "client_id": record.client_id,
        "origin": record.origin,
        "start_time": record.start_time.isoformat(),
        "end_time": record.end_time.isoformat(),
        "duration_seconds": int(record.duration.total_seconds()),
        "location": record.location,
        "total_trials": record.total_trials,
        "success_count": record.success_count,
        "failure_count": record.failure_count,
        "success_rate": round(record.success_rate, 3),
    }


def register_tools(
    server: FastMCP,
    *,
    catalog: CatalogLoader,
    settings: SessionsSettings,
    store: SessionStore | None,
    clock: Callable[[], datetime] | None = None,
) -> ToolHandles:
    """Register the session logging tools on the server."""

    now = clock or (lambda: datetime.now(timezone.utc))
    # One owner, one active session at a time.
    session_state: dict[str, Any] = {"active": None, "last_saved": None, "pending_id": None}

    def _load_client(client_id: str) -> Client:
        try:
            return catalog.get(client_id)
        except ClientNotFoundError as exc:
            raise ValueError(str(exc)) from exc

    def _require_active() -> ActiveSession:
        active = session_state["active"]
        if active is None:
            raise ValueError("No active session; start a session before logging trials")
        return active

    def _require_store() -> SessionStore:
        if store is None:
            raise RuntimeError("Session storage is unavailable; enable persistence before using this tool")
        return store

    def _list_clients(context: Context | None = None) -> list[dict[str, Any]]:
        """List catalog clients by privacy name."""

        clients = catalog.load_all()
        listing = [
            {
                "id": client.id,
                "name": client.privacy_name,
                "age": client.age(now().date()),
                "active_goal_count": len(client.active_goals),
            }
            for client in sorted(clients.values(), key=lambda item: item.name.lower())
        ]
        _emit_log(context, "debug", "Listing clients", extra={"count": len(listing)})
        return listing

    def _list_goals(
        client_id: str,
        include_inactive: bool = False,
        context: Context | None = None,
    ) -> list[dict[str, Any]]:
        """List goal templates for a client."""

        client = _load_client(client_id)
        templates = client.goals if include_inactive else client.active_goals
        return [
            {
                "id": template.id,
                "title": template.title,
                "description": template.description,
                "category": template.category,
                "default_cue_level": template.default_cue_level.value,
                "status": template.status.value,
            }
            for template in templates
        ]

    tool_list_clients = server.tool(
        name="list_clients",
        description="List therapy clients (privacy-safe names) with their active goal counts.",
    )(_list_clients)

    tool_list_goals = server.tool(
        name="list_goals",
        description="List a client's goal templates; set include_inactive to show deactivated goals.",
    )(_list_goals)

    def _start_session(
        client_id: str,
        goal_ids: list[str] | None = None,
        context: Context | None = None,
    ) -> dict[str, Any]:
        """Start logging a session for a client against up to max_session_goals goals."""

        if session_state["active"] is not None:
            raise ValueError("Another session is already in progress; end it before starting a new one")

        client = _load_client(client_id)
        goals = client.session_goals(goal_ids, limit=settings.max_session_goals)
        if not goals:
            raise ValueError(f"Client '{client_id}' has no active goals to log against")

        active = ActiveSession(client.id, client.privacy_name, goals, clock=now)
        session_state["active"] = active

        _emit_log(
            context,
            "info",
            "Started session",
            extra={"session_id": active.id, "client_id": client.id, "goal_count": len(goals)},
        )
        return {**_session_snapshot(active), "goals": _goal_payload(active)}

    def _log_trial(
        was_successful: bool,
        cue_level: str,
        context: Context | None = None,
    ) -> dict[str, Any]:
        """Record one trial for the current goal."""

        active = _require_active()
        level = CueLevel.parse(cue_level)
        trial = active.add_trial(was_successful, level)
        if trial is None:  # pragma: no cover - start_session rejects empty goal sets
            raise ValueError("Active session has no current goal")

        _emit_log(
            context,
            "debug",
            "Logged trial",
            extra={
                "session_id": active.id,
                "goal_id": trial.goal_id,
                "was_successful": was_successful,
                "cue_level": level.value,
            },
        )
        return {
            "trial": {
                "id": trial.id,
                "goal_id": trial.goal_id,
                "was_successful": trial.was_successful,
                "cue_level": trial.cue_level.value,
                "timestamp": trial.timestamp.isoformat(),
            },
            "session": _session_snapshot(active),
        }

    def _undo_trial(context: Context | None = None) -> dict[str, Any]:
        """Remove the most recently logged trial."""

        active = _require_active()
        removed = active.remove_last_trial()
        if removed is not None:
            _emit_log(
                context,
                "info",
                "Undid trial",
                extra={"session_id": active.id, "trial_id": removed.id},
            )
        return {
            "undone": removed is not None,
            "trial_id": removed.id if removed else None,
            "session": _session_snapshot(active),
        }

    tool_start = server.tool(
        name="start_session",
        description=(
            "Start an in-memory therapy session for a client. Optionally pass goal_ids to "
            "choose and order the goals; defaults to the client's first active goals."
        ),
    )(_start_session)

    tool_log_trial = server.tool(
        name="log_trial",
        description=(
            "Log a trial for the current goal with its outcome and cue level "
            "(independent, minimal, moderate, maximal)."
        ),
    )(_log_trial)

    tool_undo = server.tool(
        name="undo_trial",
        description="Undo the most recent trial. Reports undone=false when there is nothing to undo.",
    )(_undo_trial)

    def _next_goal(context: Context | None = None) -> dict[str, Any]:
        """Advance to the next goal; stays on the last goal."""

        active = _require_active()
        active.move_to_next_goal()
        return _session_snapshot(active)

    def _previous_goal(context: Context | None = None) -> dict[str, Any]:
        """Go back to the previous goal; stays on the first goal."""

        active = _require_active()
        active.move_to_previous_goal()
        return _session_snapshot(active)

    def _select_goal(index: int, context: Context | None = None) -> dict[str, Any]:
        """Jump to a goal by its 0-based position."""

        active = _require_active()
        if not active.set_goal_index(index):
            raise ValueError(
                f"Goal index {index} is out of range; session has {len(active.goals)} goals"
            )
        return _session_snapshot(active)

    def _session_status(
        detail_level: Literal["brief", "full"] = "brief",
        context: Context | None = None,
    ) -> dict[str, Any]:
        """Report live statistics for the active session."""

        active = _require_active()
        payload = _session_snapshot(active)
        if detail_level == "full":
            payload["goals"] = _goal_payload(active)
            payload["summary"] = summarize(active, clock=now).to_payload()
        return payload

    tool_next = server.tool(
        name="next_goal",
        description="Move to the next goal in the session rotation (no wraparound).",
    )(_next_goal)

    tool_previous = server.tool(
        name="previous_goal",
        description="Move to the previous goal in the session rotation (no wraparound).",
    )(_previous_goal)

    tool_select = server.tool(
        name="select_goal",
        description="Jump to a goal by 0-based index.",
    )(_select_goal)

    tool_status = server.tool(
        name="session_status",
        description="Live statistics for the active session (set detail_level=full for per-goal breakdown).",
    )(_session_status)

    async def _end_session(
        location: str | None = None,
        notes: str | None = None,
        context: Context | None = None,
    ) -> dict[str, Any]:
        """Finalize the active session and persist it."""

        active = _require_active()
        target = _require_store()
        # A retry after a failed save keeps the id it was first given.
        record = finalize(
            active,
            origin=settings.device_origin,
            clock=now,
            location=location,
            notes=notes,
            session_id=session_state["pending_id"],
        )
        summary = summarize(active, clock=now, session_id=record.id)

        try:
            await target.save_session(record)
        except StorageError as exc:
            # Keep the active session so the caller can retry or cancel.
            session_state["pending_id"] = record.id
            _emit_log(
                context,
                "error",
                "Failed to save session",
                extra={"session_id": record.id, "retryable": exc.retryable},
            )
            raise

        session_state["active"] = None
        session_state["pending_id"] = None
        session_state["last_saved"] = record.id
        _emit_log(
            context,
            "info",
            "Ended session",
            extra={
                "session_id": record.id,
                "tracking_id": active.id,
                "client_id": record.client_id,
                "total_trials": record.total_trials,
            },
        )
        return {
            "session": _session_record_summary(record),
            "summary": summary.to_payload(),
        }

    def _cancel_session(context: Context | None = None) -> dict[str, Any]:
        """Discard the active session without saving it."""

        active = _require_active()
        session_state["active"] = None
        session_state["pending_id"] = None
        _emit_log(
            context,
            "warning",
            "Cancelled session",
            extra={"session_id": active.id, "discarded_trials": active.total_trials},
        )
        return {"session_id": active.id, "discarded_trials": active.total_trials}

    tool_end = server.tool(
        name="end_session",
        description="Finalize the active session, persist it with its goal logs, and return a summary.",
    )(_end_session)

    tool_cancel = server.tool(
        name="cancel_session",
        description="Discard the active session without saving any trials.",
    )(_cancel_session)

    def _session_history(
        client_id: str,
        limit: int | None = None,
        context: Context | None = None,
    ) -> dict[str, Any]:
        """List stored sessions for a client, most recent last."""

        target = _require_store()
        _load_client(client_id)
        records = target.list_sessions(client_id)
        if limit is not None and limit > 0:
            records = records[-limit:]
        _emit_log(
            context,
            "debug",
            "Session history",
            extra={"client_id": client_id, "results": len(records)},
        )
        return {"client_id": client_id, "sessions": [_session_record_summary(r) for r in records]}

    def _export_session(
        session_id: str,
        *,
        format: Literal["json", "markdown"] = "json",
        context: Context | None = None,
    ) -> dict[str, Any]:
        """Export a stored session with its goal logs as JSON or Markdown."""

        target = _require_store()
        try:
            record = target.fetch_session(session_id)
        except SessionNotFoundError as exc:
            raise ValueError(str(exc)) from exc

        if format == "json":
            payload = {"format": "json", "session_id": session_id, "data": record.to_payload()}
        elif format == "markdown":
            lines = [
                f"# Session {record.id}",
                f"- Started: {record.start_time.isoformat()}",
                f"- Origin: {record.origin}",
                f"- Trials: {record.success_count}/{record.total_trials} successful",
                "",
            ]
            for log in record.goal_logs:
                outcome = "success" if log.was_successful else "failure"
                lines.append(
                    f"- {log.timestamp.isoformat()} [{log.cue_level.full_display_name}] "
                    f"{log.goal_description}: {outcome}"
                )
            payload = {"format": "markdown", "session_id": session_id, "data": "\n".join(lines)}
        else:
            raise ValueError("Unsupported export format. Use 'json' or 'markdown'.")

        _emit_log(
            context,
            "info",
            "Exported session",
            extra={"session_id": session_id, "format": format},
        )
        return payload

    tool_history = server.tool(
        name="session_history",
        description="List stored sessions for a client with trial counts and success rates.",
    )(_session_history)

    tool_export = server.tool(
        name="export_session",
        description="Export a stored session and its goal logs as JSON or Markdown.",
    )(_export_session)

    return ToolHandles(
        list_clients=tool_list_clients,
        list_goals=tool_list_goals,
        start_session=tool_start,
        log_trial=tool_log_trial,
        undo_trial=tool_undo,
        next_goal=tool_next,
        previous_goal=tool_previous,
        select_goal=tool_select,
        session_status=tool_status,
        end_session=tool_end,
        cancel_session=tool_cancel,
        session_history=tool_history,
        export_session=tool_export,
        session_state=session_state,
    )


__all__ = ["register_tools", "ToolHandles"]

logger = logging.getLogger(__name__)


def _emit_log(
    context: Context | None,
    level: str,
    message: str,
    *,
    extra: dict[str, Any] | None = None,
) -> None:
    """Best-effort logging that prefers the MCP context logger when available."""

    payload = extra or {}

    if context is not None:
        ctx_logger = getattr(context, "logger", None)
        if ctx_logger is not None:
            log_method = getattr(ctx_logger, level, None)
            if callable(log_method):
                log_method(message, extra=payload)
                return

    fallback = getattr(logger, level, logger.info)
    fallback(message, extra=payload)
