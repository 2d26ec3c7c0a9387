import argparse
import sys
from pathlib import Path

# Add the project root to sys.path to import seva_portal modules
sys.path.append(str(Path(__file__).parent))

from seva_portal.database import engine, Base, SessionLocal
from seva_portal.document_store import DocumentStore
from seva_portal.services.catalog_service import CatalogService


def seed(force=False):
    print("Seeding default services...")

    # 1. Create tables if they don't exist
    Base.metadata.create_all(bind=engine)
    print("Database tables ensured.")

    db = SessionLocal()
    try:
        result = CatalogService(DocumentStore(db)).seed_services(force=force)
        print(
            f"Seeding completed: {result['created']} created, "
            f"{result['updated']} updated, {result['skipped']} skipped"
        )
        return result
    except Exception as e:
        print(f"Seeding failed: {e}")
        raise
    finally:
        db.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed the default service catalog")
    parser.add_argument("--force", action="store_true", help="Overwrite services that already exist")
    args = parser.parse_args()
    seed(force=args.force)
