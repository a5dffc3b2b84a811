"""Persistence backends that need no database."""

from __future__ import annotations

from litestar_agent_workflows.store.memory import InMemoryStore

__all__ = ["InMemoryStore"]
