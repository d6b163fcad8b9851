"""Thin wrapper around the Google Calendar v3 API"""

import logging
from typing import Any, Dict, List, Optional

from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from insuratask.core.errors import GoogleCalendarError

logger = logging.getLogger(__name__)

GONE_STATUSES = (404, 410)


def _status(error: HttpError) -> int:
    return int(getattr(error.resp, "status", 0) or 0)


class GoogleCalendarClient:
    """Calendar calls used by the sync and the routes. HttpError becomes GoogleCalendarError."""

    def __init__(self, credentials, service=None):
        self.credentials = credentials
        self.service = service or build("calendar", "v3", credentials=credentials, cache_discovery=False)

    def _execute(self, request, action: str):
        try:
            return request.execute()
        except HttpError as e:
            logger.error(f"Google Calendar {action} failed: {e}")
            raise GoogleCalendarError(f"{action} failed (HTTP {_status(e)})")

    def get_user_info(self) -> Dict[str, Any]:
        oauth2 = build("oauth2", "v2", credentials=self.credentials, cache_discovery=False)
        return self._execute(oauth2.userinfo().get(), "user info")

    def list_calendars(self) -> List[Dict[str, Any]]:
        calendars = []
        page_token = None
        while True:
            page = self._execute(
                self.service.calendarList().list(pageToken=page_token),
                "calendar list"
            )
            for item in page.get("items", []):
                calendars.append({
                    "id": item.get("id"),
                    "name": item.get("summary"),
                    "description": item.get("description"),
                    "primary": bool(item.get("primary", False)),
                    "access_role": item.get("accessRole"),
                    "time_zone": item.get("timeZone"),
                })
            page_token = page.get("nextPageToken")
            if not page_token:
                return calendars

    def list_events(self, calendar_id: str, time_min: str, time_max: str) -> List[Dict[str, Any]]:
        """Single (expanded) events between two RFC3339 timestamps"""
        events = []
        page_token = None
        while True:
            page = self._execute(
                self.service.events().list(
                    calendarId=calendar_id,
                    timeMin=time_min,
                    timeMax=time_max,
                    singleEvents=True,
                    orderBy="startTime",
                    maxResults=250,
                    pageToken=page_token
                ),
                "event list"
            )
            events.extend(page.get("items", []))
            page_token = page.get("nextPageToken")
            if not page_token:
                return events

    def get_event(self, calendar_id: str, event_id: str) -> Optional[Dict[str, Any]]:
        """The event, or None when it was deleted"""
        try:
            event = self.service.events().get(calendarId=calendar_id, eventId=event_id).execute()
        except HttpError as e:
            if _status(e) in GONE_STATUSES:
                return None
            logger.error(f"Google Calendar event get failed: {e}")
            raise GoogleCalendarError(f"event get failed (HTTP {_status(e)})")
        if event.get("status") == "cancelled":
            return None
        return event

    def insert_event(self, calendar_id: str, body: Dict[str, Any]) -> Dict[str, Any]:
        return self._execute(
            self.service.events().insert(calendarId=calendar_id, body=body),
            "event insert"
        )

    def update_event(self, calendar_id: str, event_id: str, body: Dict[str, Any]) -> Dict[str, Any]:
        return self._execute(
            self.service.events().patch(calendarId=calendar_id, eventId=event_id, body=body),
            "event update"
        )

    def delete_event(self, calendar_id: str, event_id: str) -> bool:
        """False when the event was already gone"""
        try:
            self.service.events().delete(calendarId=calendar_id, eventId=event_id).execute()
        except HttpError as e:
            if _status(e) in GONE_STATUSES:
                return False
            logger.error(f"Google Calendar event delete failed: {e}")
            raise GoogleCalendarError(f"event delete failed (HTTP {_status(e)})")
        return True
