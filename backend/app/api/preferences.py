"""GET/PUT /api/preferences/{user_id} - Per-user preference record."""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..models.database import get_db
from ..schemas.preferences import PreferencesUpdate, UserPreferences
from ..services.preference_store import PreferenceStore, PreferenceStoreError

router = APIRouter()


@router.get("/preferences/{user_id}", response_model=UserPreferences)
def get_preferences(user_id: str, db: Session = Depends(get_db)):
    """Return the stored record; 404 means no record has been saved yet."""
    try:
        prefs = PreferenceStore(db).get(user_id)
    except PreferenceStoreError as e:
        raise HTTPException(status_code=503, detail=f"Preference store unavailable: {e}")
    if prefs is None:
        raise HTTPException(status_code=404, detail=f"No preferences for {user_id}")
    return prefs


@router.put("/preferences/{user_id}", response_model=UserPreferences)
def save_preferences(user_id: str, update: PreferencesUpdate, db: Session = Depends(get_db)):
    """Upsert: patch supplied fields onto an existing record, or insert a new one."""
    store = PreferenceStore(db)
    try:
        store.save(user_id, update)
        return store.get(user_id)
    except PreferenceStoreError as e:
        raise HTTPException(status_code=503, detail=f"Preference store unavailable: {e}")
