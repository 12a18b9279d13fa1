#!/usr/bin/env python3
"""
Run a system level Encounter bulk export

Streams every Encounter visible as of now to an NDJSON file under
the configured export directory.

Usage:
    python scripts/run_export.py [last_exported_id]
"""
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

# Add parent directory to path to import encounter_export modules
sys.path.append(str(Path(__file__).parent.parent))

from encounter_export.config import settings, configure_logging
from encounter_export.database import get_db, init_db
from encounter_export.fhir import (
    ExportJob,
    ExportWillShutdownException,
    FhirEncounterService,
    NdjsonStreamWriter,
)
from encounter_export.repository import SqlEncounterRepository


def run_export(last_exported_id: str = None) -> int:
    """Export all encounters, returning the number of resources written"""
    job = ExportJob(start_time=datetime.now(timezone.utc))
    
    output_dir = Path(settings.export_output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    output_path = output_dir / f"{job.uuid}-Encounter.ndjson"
    
    shutdown_time = None
    if settings.export_max_seconds > 0:
        shutdown_time = job.start_time + timedelta(seconds=settings.export_max_seconds)
    
    init_db()
    sessions = get_db()
    db = next(sessions)
    try:
        service = FhirEncounterService(SqlEncounterRepository(db))
        with open(output_path, 'w', encoding='utf-8') as stream:
            writer = NdjsonStreamWriter(stream, shutdown_time=shutdown_time)
            try:
                service.export(writer, job, last_exported_id)
            except ExportWillShutdownException as e:
                print(f"⏸  Export paused, resume after: {e.last_resource_id_exported}")
    finally:
        sessions.close()
    
    print(f"✅ Wrote {writer.record_count} Encounter resources to {output_path}")
    return writer.record_count

if __name__ == "__main__":
    configure_logging()
    print("📦 Running Encounter bulk export...\n")
    try:
        run_export(sys.argv[1] if len(sys.argv) > 1 else None)
    except Exception as e:
        print(f"\n❌ Export failed: {e}")
        import traceback
        traceback.print_exc()
        sys.exit(1)
