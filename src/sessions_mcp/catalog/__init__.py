"""Client catalog models and loader exports."""

from .loader import CatalogLoadError, CatalogLoader, ClientNotFoundError
from .models import Client, GoalStatus, GoalTemplate

__all__ = [
    "CatalogLoadError",
    "CatalogLoader",
    "Client",
    "ClientNotFoundError",
    "GoalStatus",
    "GoalTemplate",
]
