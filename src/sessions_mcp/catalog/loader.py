"""Read client catalogs from YAML files."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable

import yaml
from pydantic import ValidationError

from .models import Client

logger = logging.getLogger(__name__)


class CatalogLoadError(RuntimeError):
    """Raised when one or more catalog files cannot be parsed."""


class ClientNotFoundError(CatalogLoadError, LookupError):
    """Raised when a client id is absent from every catalog directory."""


class CatalogLoader:
    """Loads clients and their goal templates from YAML files on disk.

    Each ``*.yml``/``*.yaml`` file holds one client. A later directory may
    override a client from an earlier one (a clinic overlay on a shared
    catalog), but two files in the same directory claiming one client id is
    an error.
    """

    def __init__(self, search_paths: Iterable[Path] | None = None) -> None:
        paths = [Path(path) for path in (search_paths or [])]
        self._search_paths: list[Path] = [path for path in paths if path.exists()]

    @property
    def search_paths(self) -> list[Path]:
        return list(self._search_paths)

    def _read_directory(self, base: Path, errors: list[str]) -> dict[str, Client]:
        found: dict[str, Client] = {}
        sources: dict[str, Path] = {}
        for path in sorted([*base.glob("*.yml"), *base.glob("*.yaml")]):
            try:
                document = yaml.safe_load(path.read_text(encoding="utf-8"))
            except yaml.YAMLError as exc:
                errors.append(f"Failed to parse YAML in {path}: {exc}")
                continue
            if document is None:
                continue

            try:
                client = Client.model_validate(document)
            except ValidationError as exc:
                errors.append(f"Client validation error in {path}: {exc}")
                continue

            if client.id in sources:
                errors.append(
                    f"Duplicate client id '{client.id}' in {sources[client.id].name} and {path.name}"
                )
                continue
            sources[client.id] = path
            found[client.id] = client
        return found

    def load_all(self) -> dict[str, Client]:
        """Load clients from all search paths, later directories winning."""

        clients: dict[str, Client] = {}
        errors: list[str] = []

        for base in self._search_paths:
            for client_id, client in self._read_directory(base, errors).items():
                if client_id in clients:
                    logger.debug(
                        "Client overridden by later catalog",
                        extra={"client_id": client_id, "catalog": str(base)},
                    )
                clients[client_id] = client

        if errors:
            raise CatalogLoadError("; ".join(errors))

        return clients

    def get(self, client_id: str) -> Client:
        clients = self.load_all()
        try:
            return clients[client_id]
        except KeyError as exc:
            raise ClientNotFoundError(f"Unknown client '{client_id}'") from exc


__all__ = ["CatalogLoadError", "CatalogLoader", "ClientNotFoundError"]
