import logging
import threading

import uvicorn
from fastapi import FastAPI

from kpi_uploader import config
from kpi_uploader.routers import system

logger = logging.getLogger(__name__)

app = FastAPI(title="KPI Uploader")
app.include_router(system.router)


def serve_in_background(host: str = None, port: int = None) -> threading.Thread:
    """Starts the health/metrics listener in a daemon thread for the process lifetime."""
    host = host or config.HTTP_HOST
    port = port or config.HTTP_PORT
    server = uvicorn.Server(uvicorn.Config(app, host=host, port=port, log_level="warning"))
    thread = threading.Thread(target=server.run, name="health-http", daemon=True)
    thread.start()
    logger.info("HTTP server started on %s:%s", host, port)
    logger.info("serving metrics on %s", config.METRICS_PATH)
    logger.info("serving readiness check on %s", config.READY_PATH)
    logger.info("serving liveness check on %s", config.ALIVE_PATH)
    return thread
