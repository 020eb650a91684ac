"""Metrics exposition endpoint."""

from fastapi import APIRouter, Depends, Response

from tezos_indexer.api.deps import get_metrics
from tezos_indexer.core.metrics import MetricsAdapter

router = APIRouter()


@router.get("/metrics", include_in_schema=False)
async def metrics_endpoint(metrics: MetricsAdapter = Depends(get_metrics)) -> Response:
    body, content_type = metrics.render()
    return Response(content=body, media_type=content_type)
