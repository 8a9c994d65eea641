"""
Kiro Gateway - Models API

Compatible with OpenAI's Models API.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from ...adapters.base import BaseAdapter
from ..dependencies import add_standard_headers, get_adapter, verify_api_key
from ..models import ModelData, ModelListResponse

router = APIRouter(prefix="/v1", tags=["models"])


@router.get("/models")
async def list_models(
    capability: Optional[str] = Query(
        None,
        description="Filter by capability (chat, tools, streaming)"
    ),
    request_id: str = Depends(verify_api_key),
    adapter: BaseAdapter = Depends(get_adapter)
):
    """
    List the model names the gateway accepts.

    Each entry carries the Kiro model id it maps to.
    """
    models = adapter.list_models()
    if capability:
        models = [m for m in models if m.supports(capability)]

    body = ModelListResponse(data=[ModelData.from_info(m) for m in models])

    return JSONResponse(
        content=body.model_dump(),
        headers=add_standard_headers({}, request_id)
    )
