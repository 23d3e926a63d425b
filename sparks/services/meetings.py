"""
Meeting link provisioning for online and hybrid sessions.

Creates a Google Calendar event with a Meet conference when a calendar
credential is available, otherwise hands out a link on our own domain.
"""
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

import httpx
from sqlalchemy.orm import Session

from sparks.core import config
from sparks.core.timeparse import as_utc
from sparks.models.calendar_credential import CalendarCredential

logger = logging.getLogger(__name__)

GOOGLE_PROVIDER = 'google'
TOKEN_REFRESH_MARGIN = timedelta(minutes=5)


class MeetingProvisioningError(Exception):
    pass


@dataclass(frozen=True)
class MeetingDetails:
    meeting_link: str
    calendar_event_id: str | None = None


@dataclass(frozen=True)
class MeetingRequest:
    summary: str
    description: str
    start: datetime
    end: datetime
    reference: str
    attendee_emails: list[str] = field(default_factory=list)
    # Whose calendar to create the event in, in order of preference.
    organizer_user_ids: list[int] = field(default_factory=list)


def generate_fallback_meeting_link(reference: str) -> str:
    meeting_code = f'{int(datetime.now(timezone.utc).timestamp()):x}-{uuid.uuid4().hex[:5]}'
    return f'{config.APP_URL}/meeting/{meeting_code}?session={reference}'


class FallbackMeetingProvisioner:
    def provision(self, db: Session, request: MeetingRequest) -> MeetingDetails:
        return MeetingDetails(meeting_link=generate_fallback_meeting_link(request.reference))


class GoogleMeetProvisioner:
    def __init__(self, client: httpx.Client | None = None, timeout: float = config.MEETING_PROVIDER_TIMEOUT_SECONDS):
        self._client = client
        self._timeout = timeout

    def provision(self, db: Session, request: MeetingRequest) -> MeetingDetails:
        credential = self._find_credential(db, request.organizer_user_ids)
        if credential is None:
            logger.info('No calendar credentials for users %s, using fallback meeting link', request.organizer_user_ids)
            return MeetingDetails(meeting_link=generate_fallback_meeting_link(request.reference))

        if self._client is not None:
            return self._create_meeting(self._client, credential, request)

        with httpx.Client(timeout=self._timeout) as client:
            return self._create_meeting(client, credential, request)

    def _find_credential(self, db: Session, user_ids: list[int]) -> CalendarCredential | None:
        for user_id in user_ids:
            credential = db.query(CalendarCredential).filter(
                CalendarCredential.user_id == user_id,
                CalendarCredential.provider == GOOGLE_PROVIDER,
            ).first()
            if credential and credential.access_token and credential.refresh_token:
                return credential
        return None

    def _create_meeting(self, client: httpx.Client, credential: CalendarCredential, request: MeetingRequest) -> MeetingDetails:
        access_token = self._valid_access_token(client, credential)

        event = {
            'summary': request.summary,
            'description': request.description,
            'start': {'dateTime': request.start.isoformat(), 'timeZone': config.MEETING_TIMEZONE},
            'end': {'dateTime': request.end.isoformat(), 'timeZone': config.MEETING_TIMEZONE},
            'attendees': [{'email': email} for email in request.attendee_emails],
            'conferenceData': {
                'createRequest': {
                    'requestId': f'{request.reference}-{uuid.uuid4().hex[:8]}',
                    'conferenceSolutionKey': {'type': 'hangoutsMeet'},
                },
            },
            'reminders': {
                'useDefault': False,
                'overrides': [
                    {'method': 'email', 'minutes': 24 * 60},
                    {'method': 'popup', 'minutes': 30},
                ],
            },
        }

        try:
            response = client.post(
                f'{config.GOOGLE_CALENDAR_API}/calendars/primary/events',
                params={'conferenceDataVersion': 1, 'sendUpdates': 'all'},
                headers={'Authorization': f'Bearer {access_token}'},
                json=event,
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise MeetingProvisioningError(f'Failed to create Google Meet event: {exc}') from exc

        payload = response.json()
        if not payload.get('id') or not payload.get('hangoutLink'):
            raise MeetingProvisioningError('Failed to create meeting with conference data')

        logger.info('Google Meet event %s created', payload['id'])
        return MeetingDetails(meeting_link=payload['hangoutLink'], calendar_event_id=payload['id'])

    def _valid_access_token(self, client: httpx.Client, credential: CalendarCredential) -> str:
        now = datetime.now(timezone.utc)
        if credential.expires_at is None or as_utc(credential.expires_at) > now + TOKEN_REFRESH_MARGIN:
            return credential.access_token

        logger.info('Refreshing calendar token for user %s', credential.user_id)
        try:
            response = client.post(
                config.GOOGLE_TOKEN_URL,
                data={
                    'client_id': config.GOOGLE_CLIENT_ID,
                    'client_secret': config.GOOGLE_CLIENT_SECRET,
                    'refresh_token': credential.refresh_token,
                    'grant_type': 'refresh_token',
                },
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise MeetingProvisioningError(f'Token refresh failed: {exc}') from exc

        tokens = response.json()
        access_token = tokens.get('access_token')
        if not access_token:
            raise MeetingProvisioningError('No access token in refresh response')

        credential.access_token = access_token
        credential.expires_at = now + timedelta(seconds=int(tokens.get('expires_in', 3600)))
        return access_token
