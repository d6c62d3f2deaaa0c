"""Sessions MCP diagnostics CLI."""

from __future__ import annotations

import argparse
import json

from sessions_mcp.config import SessionsSettings
from sessions_mcp.storage import ChromaStore, ChromaUnavailableError, SessionNotFoundError
from sessions_mcp.tracking import performance_level, success_percentage


def load_store(settings: SessionsSettings) -> ChromaStore:
    try:
        store = ChromaStore(settings.chroma_persist_path)
        store.ping()
        return store
    except ChromaUnavailableError as exc:
        print(f"Chroma unavailable: {exc}")
        raise SystemExit(1)


def cmd_sessions(args: argparse.Namespace) -> None:
    settings = SessionsSettings()
    store = load_store(settings)
    records = store.list_sessions(client_id=args.client_id)
    if args.json:
        print(json.dumps([record.to_payload() for record in records], indent=2))
    else:
        for record in records:
            print(
                f"{record.id} [{record.origin}] client={record.client_id} "
                f"{record.success_count}/{record.total_trials} @ {record.start_time.isoformat()}"
            )


def cmd_logs(args: argparse.Namespace) -> None:
    settings = SessionsSettings()
    store = load_store(settings)
    try:
        store.fetch_session(args.session_id)
    except SessionNotFoundError as exc:
        print(str(exc))
        raise SystemExit(1)
    logs = store.fetch_goal_logs(args.session_id)
    print(json.dumps([log.to_payload() for log in logs], indent=2))


def cmd_metrics(args: argparse.Namespace) -> None:
    settings = SessionsSettings()
    store = load_store(settings)
    records = store.list_sessions(client_id=args.client_id)

    goals: dict[str, dict[str, object]] = {}
    cue_counts: dict[str, int] = {}
    total_trials = 0
    total_success = 0
    for record in records:
        for log in record.goal_logs:
            key = log.goal_id or log.goal_description
            entry = goals.setdefault(
                key,
                {"goal_id": log.goal_id, "description": log.goal_description, "success": 0, "total": 0},
            )
            entry["total"] += 1
            if log.was_successful:
                entry["success"] += 1
                total_success += 1
            total_trials += 1
            cue_counts[log.cue_level.value] = cue_counts.get(log.cue_level.value, 0) + 1

    goal_metrics = []
    for entry in goals.values():
        percent = success_percentage(entry["success"] / entry["total"])
        goal_metrics.append(
            {
                **entry,
                "success_percentage": percent,
                "performance_level": performance_level(percent).description,
            }
        )

    metrics = {
        "client_id": args.client_id,
        "sessions_total": len(records),
        "trials_total": total_trials,
        "success_total": total_success,
        "success_percentage": success_percentage(total_success / total_trials) if total_trials else 0,
        "cue_level_counts": cue_counts,
        "goals": goal_metrics,
    }

    print(json.dumps(metrics, indent=2))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Sessions MCP diagnostics")
    sub = parser.add_subparsers(dest="cmd")

    p_sessions = sub.add_parser("sessions", help="List stored sessions")
    p_sessions.add_argument("--client-id")
    p_sessions.add_argument("--json", action="store_true", help="Output JSON")
    p_sessions.set_defaults(func=cmd_sessions)

    p_logs = sub.add_parser("logs", help="Show goal logs for a stored session")
    p_logs.add_argument("session_id")
    p_logs.set_defaults(func=cmd_logs)

    p_metrics = sub.add_parser("metrics", help="Show per-goal success rates across stored sessions")
    p_metrics.add_argument("--client-id")
    p_metrics.set_defaults(func=cmd_metrics)

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not hasattr(args, "func"):
        parser.print_help()
        return
    args.func(args)


if __name__ == "__main__":
    main()
