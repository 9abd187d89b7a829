"""Cable dataset ingestion, lineage storage and read path."""

from .models import Upload, ImportRun, IngestPreview
from .head import resolve_head, sort_lineage
from .locks import GroupLockRegistry, default_registry
from .store import DatabaseClient
from .memory_client import InMemoryClient
from .supabase_client import SupabaseClient, SCHEMA_SQL
from .snapshot_ingest import ingest, preview_ingest, restore_upload
from .queries import (
    get_records,
    get_head_records,
    resolve_group_head,
    list_uploads,
    list_import_runs,
    get_diff,
    diff_uploads,
    get_lineage,
)

__all__ = [
    "Upload",
    "ImportRun",
    "IngestPreview",
    "resolve_head",
    "sort_lineage",
    "GroupLockRegistry",
    "default_registry",
    "DatabaseClient",
    "InMemoryClient",
    "SupabaseClient",
    "SCHEMA_SQL",
    "ingest",
    "preview_ingest",
    "restore_upload",
    "get_records",
    "get_head_records",
    "resolve_group_head",
    "list_uploads",
    "list_import_runs",
    "get_diff",
    "diff_uploads",
    "get_lineage",
]
