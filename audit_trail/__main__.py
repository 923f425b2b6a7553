"""
Web entry point

Run with:
    python -m audit_trail
"""

import uvicorn

from audit_trail.config import get_settings
from audit_trail.logging_setup import setup_logging

if __name__ == "__main__":
    settings = get_settings()
    setup_logging(settings.log_level)
    uvicorn.run(
        "audit_trail.main:app",
        host=settings.host,
        port=settings.port,
        reload=False,
    )
