"""Dashboard state API routes."""

from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Request

from ...services.store import SLICES, AppStore, UnknownSliceError

router = APIRouter()


def get_store(request: Request) -> AppStore:
    return request.app.state.store


@router.get("")
async def get_state(store: AppStore = Depends(get_store)) -> Dict[str, Any]:
    """Full JSON snapshot of the dashboard store."""
    return store.snapshot()


@router.get("/{slice_name}")
async def get_slice(slice_name: str, store: AppStore = Depends(get_store)) -> Dict[str, Any]:
    try:
        data = store.slice(slice_name)
    except UnknownSliceError:
        raise HTTPException(
            status_code=404,
            detail=f"Unknown state slice: {slice_name}. Valid slices: {list(SLICES)}",
        )
    return {"slice": slice_name, "data": data}
