from fastapi import APIRouter
from fastapi.responses import PlainTextResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from kpi_uploader import config

router = APIRouter(tags=["System"])


@router.get(config.ALIVE_PATH, response_class=PlainTextResponse)
def is_alive():
    return "Alive."


@router.get(config.READY_PATH, response_class=PlainTextResponse)
def is_ready():
    return "Ready."


@router.get(config.METRICS_PATH)
def read_metrics():
    """
    Prometheus metrics: run durations, source reads and datapoint outcomes.
    """
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
