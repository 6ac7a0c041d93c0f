"""
Service container: every collaborator is built once and handed to the
HTTP and MCP layers explicitly.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from secondbrain.db import Database
from secondbrain.services.activity import ActivityLog
from secondbrain.services.config_store import ConfigStore
from secondbrain.services.embeddings import EmbeddingClient
from secondbrain.services.entry_repository import EntryRepository
from secondbrain.services.inbox_log import InboxLog
from secondbrain.services.relations import RelationEngine
from secondbrain.services.search import HybridSearchEngine


@dataclass
class Services:
    database: Database
    embedder: EmbeddingClient
    activity: ActivityLog
    entries: EntryRepository
    search: HybridSearchEngine
    relations: RelationEngine
    inbox: InboxLog
    settings: ConfigStore

    def close(self) -> None:
        self.embedder.close()
        self.database.dispose()


def build_services(
    database: Database,
    embedder: Optional[EmbeddingClient] = None,
    *,
    activity_enabled: Optional[bool] = None,
) -> Services:
    embedder = embedder or EmbeddingClient()
    activity = ActivityLog(database) if activity_enabled is None else ActivityLog(database, enabled=activity_enabled)
    return Services(
        database=database,
        embedder=embedder,
        activity=activity,
        entries=EntryRepository(database, embedder, activity),
        search=HybridSearchEngine(database, embedder, activity),
        relations=RelationEngine(database, embedder),
        inbox=InboxLog(database),
        settings=ConfigStore(database),
    )
