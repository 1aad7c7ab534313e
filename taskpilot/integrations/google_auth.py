"""
TaskPilot — Google API Authentication.

One OAuth token covers both Google Calendar (events) and Gmail (sending
and replying). The token file written by the Google client library is the
only credential storage.
"""

from __future__ import annotations

import logging
from pathlib import Path

from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow
from googleapiclient.discovery import build

logger = logging.getLogger(__name__)

SCOPES = [
    "https://www.googleapis.com/auth/calendar",
    "https://www.googleapis.com/auth/gmail.modify",
]


def load_credentials() -> Credentials:
    """Return valid Google credentials, refreshing or re-consenting as needed.

    Flow:
    1. Try loading the existing token from disk.
    2. If expired, refresh with the refresh token.
    3. If still not valid, run the interactive OAuth2 consent flow.
    4. Persist the (refreshed) token for next time.
    """
    from taskpilot.config import settings

    token_path = Path(settings.GOOGLE_TOKEN_PATH)
    creds_path = Path(settings.GOOGLE_CREDENTIALS_PATH)
    creds: Credentials | None = None

    if token_path.exists():
        creds = Credentials.from_authorized_user_file(str(token_path), SCOPES)
        logger.debug("Loaded existing token from %s", token_path)

    if creds and creds.expired and creds.refresh_token:
        try:
            creds.refresh(Request())
            logger.info("Token refreshed successfully")
        except Exception as exc:
            logger.warning("Token refresh failed (%s), re-authenticating", exc)
            creds = None

    if not creds or not creds.valid:
        if not creds_path.exists():
            raise FileNotFoundError(
                f"Google credentials file not found at {creds_path}. "
                "Download it from the Google Cloud Console."
            )
        flow = InstalledAppFlow.from_client_secrets_file(str(creds_path), SCOPES)
        creds = flow.run_local_server(port=0)
        logger.info("New credentials obtained via OAuth2 consent flow")

    token_path.parent.mkdir(parents=True, exist_ok=True)
    token_path.write_text(creds.to_json())
    logger.debug("Token saved to %s", token_path)
    return creds


def get_calendar_service():
    """Return an authenticated Google Calendar API v3 service object."""
    return build("calendar", "v3", credentials=load_credentials())


def get_gmail_service():
    """Return an authenticated Gmail API v1 service object."""
    return build("gmail", "v1", credentials=load_credentials())


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
    print("Running Google authorization flow (Calendar + Gmail)...")
    events = get_calendar_service().events().list(calendarId="primary", maxResults=3).execute()
    print(f"Calendar OK: {len(events.get('items', []))} upcoming event(s).")
    profile = get_gmail_service().users().getProfile(userId="me").execute()
    print(f"Gmail OK: {profile.get('emailAddress')}")
