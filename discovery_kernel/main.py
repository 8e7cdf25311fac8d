"""
Service Discovery — API server entry point.

Run with:
    python -m discovery_kernel.main
    # or: uvicorn discovery_kernel.api.app:app --port 8000
"""

import logging
import sys

from discovery_kernel.config import get_settings, setup_logging


def serve(host: str = "0.0.0.0", port: int = 8000) -> None:
    """Start the FastAPI server."""
    import uvicorn

    setup_logging(get_settings().log_level)
    logger = logging.getLogger(__name__)
    logger.info("Starting API server on %s:%d", host, port)
    uvicorn.run("discovery_kernel.api.app:app", host=host, port=port)


if __name__ == "__main__":
    port_arg = int(sys.argv[1]) if len(sys.argv) > 1 else 8000
    serve(port=port_arg)
