"""Adapters package - Bridge between the engine and the terminal UI.

Holds the event types, the event bus the coordinator publishes to, and
the REST client for the backend's project list.
"""
from __future__ import annotations

__all__ = [
    "EventBus",
    "ProjectsClient",
    "dict_to_event",
]

from ccui.adapters.event_bus import EventBus
from ccui.adapters.events import dict_to_event
from ccui.adapters.projects_api import ProjectsClient
