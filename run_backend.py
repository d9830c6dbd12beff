#!/usr/bin/env python3
import multiprocessing

import uvicorn

from folio.config import get_settings


def run_server():
    """Run the FastAPI server with proper configuration"""
    settings = get_settings()
    uvicorn.run(
        "folio.main:app",
        host=settings.host,
        port=settings.port,
        reload=True,
        reload_dirs=["folio"],
        workers=1,
        use_colors=True,
        access_log=True,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    # Protect the entry point for multiprocessing
    multiprocessing.set_start_method('spawn', force=True)
    run_server()
