"""
Family Ledger API server

Run with:
    python -m app.main
or
    uvicorn app.main:app --port 3001
"""

import structlog
import uvicorn

from family_ledger.api import create_app
from family_ledger.config import get_settings, validate_all_settings

logger = structlog.get_logger(__name__)

results = validate_all_settings()
for section, ok in results.items():
    if not section.endswith("_error") and not ok:
        logger.warning("settings_invalid", section=section, error=results.get(f"{section}_error"))

app = create_app()


if __name__ == "__main__":
    settings = get_settings()
    uvicorn.run(
        "app.main:app",
        host=settings.api.host,
        port=settings.api.port,
        reload=settings.app.debug_mode,
    )
