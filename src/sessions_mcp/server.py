"""FastMCP server bootstrap for Sessions MCP."""

import json
import logging
from datetime import datetime, timezone
from typing import Optional

from fastmcp import Context, FastMCP

from . import __version__
from .catalog import CatalogLoadError, CatalogLoader
from .config import SessionsSettings, get_settings
from .storage import ChromaStore, ChromaUnavailableError, SessionStore
from .tools import register_tools


def configure_logging(level: str) -> None:
    """Configure root logging for the Sessions server."""

    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
    )


def create_server(
    settings: Optional[SessionsSettings] = None,
    store: SessionStore | None = None,
) -> FastMCP:
    """Instantiate the FastMCP server with the session tools and a status resource."""

    settings = settings or get_settings()

    catalog = CatalogLoader(settings.catalog_paths)

    storage_metadata = {
        "available": False,
        "path": str(settings.chroma_persist_path),
        "collection": None,
        "error": None,
    }

    if store is None:
        try:
            chroma_store = ChromaStore(settings.chroma_persist_path)
            chroma_store.ping()
            store = chroma_store
            storage_metadata["collection"] = chroma_store.collection_name
            storage_metadata["available"] = True
        except ChromaUnavailableError as exc:
            storage_metadata["error"] = str(exc)
            logging.getLogger(__name__).warning(
                "Session storage unavailable", extra={"error": str(exc)}
            )
    else:
        storage_metadata["available"] = True
        storage_metadata["collection"] = getattr(store, "collection_name", None)

    server = FastMCP(
        name="Sessions MCP",
        version=__version__,
        instructions=(
            "Sessions logs therapy trials against a client's goals. Start a session, "
            "log each trial with its outcome and cue level, move between goals, and "
            "end the session to persist it with its goal logs."
        ),
    )

    handles = register_tools(
        server,
        catalog=catalog,
        settings=settings,
        store=store,
    )
    session_state = handles.session_state

    def status_resource(context: Context) -> str:
        """Return a JSON string summarizing basic runtime state."""

        try:
            clients = catalog.load_all()
            client_count = len(clients)
            catalog_error: str | None = None
        except CatalogLoadError as exc:
            client_count = 0
            catalog_error = str(exc)

        active = session_state.get("active")
        active_summary = None
        if active is not None:
            active_summary = {
                "session_id": active.id,
                "client_id": active.client_id,
                "duration": active.formatted_duration,
                "current_goal_index": active.current_goal_index,
                "total_trials": active.total_trials,
                "success_rate": active.formatted_success_rate,
            }

        payload = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "server_version": __version__,
            "log_level": settings.log_level,
            "catalog": {
                "paths": [str(path) for path in catalog.search_paths],
                "client_count": client_count,
                "error": catalog_error,
            },
            "storage": storage_metadata,
            "sessions": {
                "active": active_summary,
                "last_saved": session_state.get("last_saved"),
                "max_goals": settings.max_session_goals,
                "origin": settings.device_origin,
            },
            "request_id": getattr(context, "request_id", None),
        }
        return json.dumps(payload)

    server.resource(
        "resource://sessions/status",
        name="sessions_status",
        title="Sessions MCP Status",
        description="Provides the current runtime status for the Sessions MCP server.",
        mime_type="application/json",
        tags={"status", "health"},
    )(status_resource)

    setattr(server, "catalog", catalog)
    setattr(server, "session_store", store)
    setattr(server, "storage_metadata", storage_metadata)
    setattr(server, "tool_handles", handles)
    setattr(server, "session_state", session_state)
    setattr(server, "status_resource", status_resource)
    return server


def main() -> None:
    """Entry point for running the Sessions MCP server via CLI."""

    settings = get_settings()
    configure_logging(settings.log_level)

    server = create_server(settings)
    logging.getLogger(__name__).info(
        "Launching Sessions MCP server",
        extra={
            "version": __version__,
            "log_level": settings.log_level,
            "storage_available": getattr(server, "storage_metadata", {}).get("available"),
        },
    )
    server.run()


if __name__ == "__main__":
    main()
