"""Sync endpoints: stored progress checkpoint, key pool state."""
from fastapi import APIRouter, HTTPException

from ..services.firebase import get_firestore
from ..services.firestore_writer import FirestoreWriter
from ..services.robotevents_client import get_robotevents_client

router = APIRouter()


@router.get("/progress")
async def sync_progress():
    """Last checkpoint written by a sync run."""
    try:
        progress = await FirestoreWriter(get_firestore()).get_progress()
    except Exception as e:
        raise HTTPException(status_code=503, detail=str(e))
    if progress is None:
        raise HTTPException(status_code=404, detail="No sync progress recorded yet")
    return progress


@router.get("/keys")
async def key_status():
    return get_robotevents_client().pool.snapshot()
