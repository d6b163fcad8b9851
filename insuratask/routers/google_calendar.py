import logging
from datetime import datetime, timedelta
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status, Query, Body
from sqlalchemy.orm import Session

from insuratask.core.database import get_db
from insuratask.core.errors import GoogleCalendarError
from insuratask.core.security import state_user_id
from insuratask.schemas.task import DATE_PATTERN, MessageResponse
from insuratask.schemas.calendar_sync import (
    AuthUrlResponse, AuthCallbackRequest, AuthCallbackResponse,
    CalendarConfigUpdate, CalendarConfigResponse, CalendarInfo,
    SyncOptions, SyncResult, SyncStatusResponse, ConflictsResponse,
    ResolveConflictsRequest, ResolveConflictsResponse, SyncAuditResponse,
    CalendarEventOut, ConnectionTestResponse
)
from insuratask.services import calendar_store, task_service
from insuratask.services.calendar_sync_service import CalendarSyncService
from insuratask.services.google_auth_service import GoogleAuthService, google_auth_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/google-calendar", tags=["google-calendar"])


def get_auth_service() -> GoogleAuthService:
    return google_auth_service


def get_calendar_client(
    db: Session = Depends(get_db),
    auth: GoogleAuthService = Depends(get_auth_service)
):
    """Calendar client for the stored account, or None when no account is connected"""
    config = calendar_store.get_config(db)
    if config is None:
        return None
    try:
        credentials = auth.credentials_for(db, config)
    except GoogleCalendarError as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(e))
    return auth.build_client(credentials)


def require_client(client=Depends(get_calendar_client)):
    if client is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Google Calendar not configured")
    return client


# ---- OAuth ----

@router.get("/auth-url", response_model=AuthUrlResponse)
def auth_url(auth: GoogleAuthService = Depends(get_auth_service)):
    if not auth.is_configured():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Google OAuth client not configured")
    url, state = auth.get_auth_url()
    return {"auth_url": url, "state": state}


@router.post("/auth-callback", response_model=AuthCallbackResponse)
def auth_callback(
    payload: AuthCallbackRequest,
    db: Session = Depends(get_db),
    auth: GoogleAuthService = Depends(get_auth_service)
):
    user_id = state_user_id(payload.state)
    if user_id is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid or expired OAuth state")

    credentials = auth.exchange_code(payload.code)
    client = auth.build_client(credentials)
    user_info = client.get_user_info()
    calendars = client.list_calendars()
    primary = next((c for c in calendars if c["primary"]), calendars[0] if calendars else None)

    calendar_store.save_config(
        db,
        access_token=credentials.token,
        refresh_token=credentials.refresh_token,
        expires_at=credentials.expiry or datetime.utcnow() + timedelta(hours=1),
        calendar_id=primary["id"] if primary else "primary",
        user_id=user_id
    )
    calendar_store.log_audit(db, "create", "calendar", primary["id"] if primary else "primary",
                             {"user_email": user_info.get("email")}, True)
    logger.info(f"Google Calendar connected for {user_info.get('email')}")

    return {
        "user_email": user_info.get("email"),
        "user_name": user_info.get("name"),
        "calendar_name": (primary or {}).get("name") or "Calendario principale",
        "calendars_available": len(calendars),
    }


@router.delete("/auth", response_model=MessageResponse)
def revoke_auth(db: Session = Depends(get_db), auth: GoogleAuthService = Depends(get_auth_service)):
    config = calendar_store.get_config(db)
    if config is not None:
        calendar_id = config.calendar_id or "primary"
        if not auth.revoke_token(config.refresh_token or config.access_token):
            logger.warning("Google token revocation failed, tokens may already be expired")
        calendar_store.delete_config(db)
        calendar_store.log_audit(db, "delete", "calendar", calendar_id, {}, True)
    return {"message": "Google Calendar authorization revoked"}


# ---- configuration ----

@router.get("/config", response_model=CalendarConfigResponse)
def get_config(db: Session = Depends(get_db)):
    config = calendar_store.get_config(db)
    if config is None:
        return {"is_configured": False}
    return {
        "is_configured": True,
        "sync_enabled": config.sync_enabled,
        "sync_direction": config.sync_direction,
        "calendar_id": config.calendar_id,
        "last_sync_at": config.last_sync_at,
        "created_at": config.created_at,
    }


@router.put("/config", response_model=CalendarConfigResponse)
def update_config(updates: CalendarConfigUpdate, db: Session = Depends(get_db)):
    config = calendar_store.get_config(db)
    if config is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Google Calendar not configured")
    config = calendar_store.update_config(db, config, updates.model_dump(exclude_unset=True))
    return {
        "is_configured": True,
        "sync_enabled": config.sync_enabled,
        "sync_direction": config.sync_direction,
        "calendar_id": config.calendar_id,
        "last_sync_at": config.last_sync_at,
        "created_at": config.created_at,
    }


@router.get("/calendars", response_model=List[CalendarInfo])
def list_calendars(client=Depends(require_client)):
    return client.list_calendars()


# ---- sync ----

@router.post("/sync", response_model=SyncResult)
def sync(
    options: Optional[SyncOptions] = Body(None),
    db: Session = Depends(get_db),
    client=Depends(get_calendar_client)
):
    return CalendarSyncService(db, client).perform_sync(options or SyncOptions())


@router.get("/sync/status", response_model=SyncStatusResponse)
def sync_status(db: Session = Depends(get_db)):
    return CalendarSyncService(db).get_sync_status()


@router.post("/sync/task/{task_id}")
def sync_task(task_id: int, db: Session = Depends(get_db), client=Depends(get_calendar_client)):
    if not task_service.get_task(db, task_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Task not found")
    result = CalendarSyncService(db, client).sync_single_task(task_id)
    if not result["success"]:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=result["error"])
    return {"message": "Task synced with Google Calendar", "event_id": result["event_id"]}


@router.delete("/sync/task/{task_id}", response_model=MessageResponse)
def unsync_task(task_id: int, db: Session = Depends(get_db), client=Depends(get_calendar_client)):
    CalendarSyncService(db, client).unsync_task(task_id)
    return {"message": "Task sync removed"}


@router.get("/sync/conflicts", response_model=ConflictsResponse)
def sync_conflicts(db: Session = Depends(get_db)):
    conflicts = calendar_store.get_mappings(db, "conflict")
    pending = calendar_store.get_mappings(db, "pending")
    return {"conflicts": conflicts, "pending": pending, "total": len(conflicts) + len(pending)}


@router.post("/sync/resolve-conflicts", response_model=ResolveConflictsResponse)
def resolve_conflicts(
    request: ResolveConflictsRequest,
    db: Session = Depends(get_db),
    client=Depends(get_calendar_client)
):
    resolutions = [item.model_dump() for item in request.resolutions]
    return CalendarSyncService(db, client).resolve_conflicts(resolutions)


@router.get("/audit", response_model=List[SyncAuditResponse])
def audit(limit: int = Query(50, ge=1, le=200), db: Session = Depends(get_db)):
    return calendar_store.get_audit(db, limit)


# ---- events ----

@router.get("/events", response_model=List[CalendarEventOut])
def list_events(
    date: Optional[str] = Query(None, pattern=DATE_PATTERN),
    start_date: Optional[str] = Query(None, pattern=DATE_PATTERN),
    end_date: Optional[str] = Query(None, pattern=DATE_PATTERN),
    db: Session = Depends(get_db),
    client=Depends(require_client)
):
    if date:
        start_date = end_date = date
    if not start_date or not end_date:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Required: date (YYYY-MM-DD) or start_date and end_date (YYYY-MM-DD)"
        )

    config = calendar_store.get_config(db)
    events = client.list_events(
        config.calendar_id or "primary",
        f"{start_date}T00:00:00Z",
        f"{end_date}T23:59:59Z"
    )
    return [
        {
            "id": event.get("id"),
            "title": event.get("summary") or "Evento senza titolo",
            "start": (event.get("start") or {}).get("dateTime") or (event.get("start") or {}).get("date") or "",
            "end": (event.get("end") or {}).get("dateTime") or (event.get("end") or {}).get("date") or "",
            "description": event.get("description") or "",
            "location": event.get("location") or "",
            "is_all_day": not (event.get("start") or {}).get("dateTime"),
            "source": "google",
        }
        for event in events
    ]


@router.post("/test-connection", response_model=ConnectionTestResponse)
def connection_check(db: Session = Depends(get_db), client=Depends(require_client)):
    calendars = client.list_calendars()
    user_info = client.get_user_info()
    config = calendar_store.get_config(db)
    return {
        "user_email": user_info.get("email"),
        "calendars_count": len(calendars),
        "last_sync_at": config.last_sync_at if config else None,
    }
