import logging

from prometheus_fastapi_instrumentator import Instrumentator

from asset_tracker.core.config import settings
from asset_tracker.core.errors import StorageUnavailable
from asset_tracker.core.logging import setup_logging
from asset_tracker.db.session import SessionLocal
from asset_tracker.services.audit_spool import pending_count, replay_spooled_entries
from . import app

setup_logging()
LOGGER = logging.getLogger(__name__)
instrumentator = Instrumentator()
instrumentator.instrument(app).expose(app)


@app.get("/health")
async def health() -> dict[str, object]:
    return {"ok": True, "pending_audit_entries": pending_count()}


@app.on_event("startup")
def _replay_audit_spool() -> None:
    if not pending_count():
        return
    db = SessionLocal()
    try:
        replay_spooled_entries(db)
    except StorageUnavailable:
        # Entries stay in the spool; the admin replay endpoint can retry.
        LOGGER.exception("audit.startup_replay_failed")
    finally:
        db.close()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("asset_tracker.main:app", host=settings.HOST, port=settings.PORT)
