from notesearch.db.session import SessionLocal
from notesearch.services.semantic_reindex_service import get_reindex_state, reset_stale_reindex_state


def main() -> None:
    """Clear a semantic reindex left marked as running. Run only while the API is stopped."""
    db = SessionLocal()
    try:
        if reset_stale_reindex_state(db):
            state = get_reindex_state(db)
            print(f"Reset stale reindex state ({state.processed}/{state.total} processed, {state.failed} failed)")
        else:
            print("No running reindex recorded")
    finally:
        db.close()


if __name__ == "__main__":
    main()
