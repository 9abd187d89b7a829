#!/usr/bin/env python3
"""Example: Ingest a cable-tracking CSV export into the lineage.

Reads a CSV export (header row + one cable per row), maps the columns onto the
canonical cable fields and ingests the dataset for a project. Prints what
changed against the previous HEAD.

Uses the Supabase database when SUPABASE_DB_URL (or the SUPABASE_DB_* parts)
is configured, otherwise an in-memory store.
"""

import csv
from pathlib import Path

from cablekit import normalize_row_from_dict
from cablekit.config import configure_logging, load_settings
from cablekit.diff import changed_fields
from cablekit.ingest import InMemoryClient, SupabaseClient, ingest


def read_rows(input_file: str):
    """Read a CSV export and map each row to a CableRecord (rows without a code are skipped)."""
    with open(input_file, newline="", encoding="utf-8-sig") as f:
        sample = f.read(4096)
        f.seek(0)
        dialect = csv.Sniffer().sniff(sample, delimiters=",;\t")
        records = [normalize_row_from_dict(row) for row in csv.DictReader(f, dialect=dialect)]
    return [record for record in records if record is not None]


def ingest_export(input_file: str, project_code: str, contract_code: str = None):
    """Ingest one CSV export for a project.

    Args:
        input_file: Path to the CSV export
        project_code: Project (ship) code
        contract_code: Optional contract code
    """
    settings = load_settings(Path(__file__).parent.parent / ".env")
    configure_logging(settings.log_level)

    if settings.db_url or settings.db_host:
        db = SupabaseClient.from_settings(settings)
        db.ensure_schema()
    else:
        db = InMemoryClient()

    records = read_rows(input_file)
    print(f"✓ Read {len(records)} cables from {input_file}")

    try:
        run = ingest(
            db,
            {"project_code": project_code, "contract_code": contract_code},
            records,
            source_label=Path(input_file).name,
            actor_id="cli",
        )
    finally:
        db.close()

    if run.is_duplicate:
        print(f"= Same content as current HEAD {run.previous_upload_id}; nothing new stored")
        return run

    summary = run.summary
    print(f"✓ Upload {run.new_upload_id} (previous: {run.previous_upload_id})")
    print(f"  added={summary['added']} removed={summary['removed']} "
          f"changed={summary['changed']} total={summary['total']}")

    for entry in run.diff.changed[:20]:
        print(f"  ~ {entry.code}: {', '.join(changed_fields(entry))}")

    return run


if __name__ == "__main__":
    import sys

    if len(sys.argv) < 3:
        print("Usage: python ingest_csv_export.py <input_file> <project_code> [contract_code]")
        print("\nExample:")
        print("  python ingest_csv_export.py inca_week40.csv C32 6092")
        sys.exit(1)

    ingest_export(sys.argv[1], sys.argv[2], sys.argv[3] if len(sys.argv) > 3 else None)
