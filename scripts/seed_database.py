#!/usr/bin/env python3
"""
Database seeding script for encounters

This script loads encounter rows from data/encounters.json
into the configured database for testing and demonstration.

Usage:
    python scripts/seed_database.py [path/to/encounters.json]
"""
import json
import sys
from pathlib import Path

# Add parent directory to path to import encounter_export modules
sys.path.append(str(Path(__file__).parent.parent))

from encounter_export.database import SessionLocal, init_db
from encounter_export.models import EncounterRow
from encounter_export.schemas import SourceRecord

# Create all tables
init_db()

def seed_encounters(source: Path):
    """Load encounter rows from a JSON array into the database"""
    if not source.exists():
        print(f"⚠️  Encounter file not found: {source}")
        print("   Provide a JSON array of encounter records")
        return
    
    with open(source, 'r', encoding='utf-8') as f:
        rows = json.load(f)
    
    db = SessionLocal()
    added_count = 0
    skipped_count = 0
    
    try:
        for row in rows:
            # Validate and normalise blank fields before inserting
            record = SourceRecord.model_validate(row)
            existing = db.query(EncounterRow).filter(EncounterRow.euuid == record.euuid).first()
            if not existing:
                db.add(EncounterRow(**record.model_dump()))
                print(f"✓ Added: {record.euuid}")
                added_count += 1
            else:
                print(f"⊘ Skipped (exists): {record.euuid}")
                skipped_count += 1
        
        db.commit()
    finally:
        db.close()
    
    print(f"\n✅ Database seeding complete!")
    print(f"   Added: {added_count} encounters")
    print(f"   Skipped: {skipped_count} existing encounters")

if __name__ == "__main__":
    default_source = Path(__file__).parent.parent / "data" / "encounters.json"
    source = Path(sys.argv[1]) if len(sys.argv) > 1 else default_source
    print("📋 Seeding database with encounters...\n")
    try:
        seed_encounters(source)
    except Exception as e:
        print(f"\n❌ Error seeding database: {e}")
        import traceback
        traceback.print_exc()
        sys.exit(1)
