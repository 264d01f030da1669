"""Application factory and top-level wiring for the asset tracker.

Configuration, database setup, routers and error rendering meet here. Tables
are created and migrated on import so tests and a fresh checkout start with a
usable database.
"""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from .core.config import settings
from .core.errors import (
    AssetTrackerError,
    domain_exception_handler,
    http_exception_handler,
    validation_exception_handler,
)
from .db.migrate import run_migrations
from .db.session import Base, engine
from .middlewares import RequestIdMiddleware, SecurityHeadersMiddleware

# Registers the tables with ``Base.metadata``.
from .models import asset as _asset  # noqa: F401
from .models import assignment as _assignment  # noqa: F401
from .models import audit as _audit  # noqa: F401
from .models import employee as _employee  # noqa: F401

app = FastAPI(title=settings.APP_NAME)

Base.metadata.create_all(bind=engine)
run_migrations(engine)

app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(RequestIdMiddleware)

app.add_exception_handler(AssetTrackerError, domain_exception_handler)
app.add_exception_handler(StarletteHTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)

from .routers import api_admin_logs as api_admin_logs_router  # noqa: E402
from .routers import api_assets as api_assets_router  # noqa: E402
from .routers import api_assignments as api_assignments_router  # noqa: E402
from .routers import api_employees as api_employees_router  # noqa: E402
from .routers import api_me as api_me_router  # noqa: E402

app.include_router(api_assets_router.router)
app.include_router(api_assignments_router.router)
app.include_router(api_employees_router.router)
app.include_router(api_me_router.router)
app.include_router(api_admin_logs_router.router)


__all__ = ["app"]
