from __future__ import annotations

from dataclasses import dataclass

from cms_core.models import IngestOptions
from cms_core.services import TenantResolver

from cms_server.adapters import SQLiteStorage
from cms_server.config import Settings


@dataclass
class AppContext:
    settings: Settings
    storage: SQLiteStorage
    resolver: TenantResolver
    ingest_options: IngestOptions
