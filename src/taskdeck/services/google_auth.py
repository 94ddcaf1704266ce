from __future__ import annotations

from pathlib import Path
import logging

import httpx
from google.auth.transport.requests import Request  # type: ignore[import]
from google.oauth2.credentials import Credentials  # type: ignore[import]
from google_auth_oauthlib.flow import InstalledAppFlow  # type: ignore[import]

from ..errors import NotAuthenticatedError
from ..models import Identity


SCOPES = [
    "openid",
    "https://www.googleapis.com/auth/userinfo.email",
    "https://www.googleapis.com/auth/datastore",
]
USERINFO_ENDPOINT = "https://www.googleapis.com/oauth2/v2/userinfo"

logger = logging.getLogger(__name__)


class GoogleAuthProvider:
    """Google sign-in for the task store.

    Authentication is interactive: an installed app flow opens the user's
    browser the first time. Tokens are cached in
    ~/.config/taskdeck/google_token.json (explicit path).
    """

    def __init__(
        self,
        client_secrets_path: str | Path | None = None,
        token_path: str | Path | None = None,
        timeout: float = 10.0,
    ) -> None:
        self.client_secrets_path = Path(client_secrets_path) if client_secrets_path else Path.home() / ".config" / "taskdeck" / "google_client_secret.json"
        self.token_path = Path(token_path) if token_path else Path.home() / ".config" / "taskdeck" / "google_token.json"
        self.timeout = timeout
        self._creds: Credentials | None = None
        self._identity: Identity | None = None

    @property
    def credentials(self) -> Credentials:
        creds = self._load_cached()
        if creds is None:
            raise NotAuthenticatedError("Not signed in to Google")
        return creds

    def current_user(self) -> Identity | None:
        if self._identity is not None:
            return self._identity
        creds = self._load_cached()
        if creds is None:
            return None
        self._identity = self._fetch_identity(creds)
        return self._identity

    def sign_in(self) -> Identity:
        """Run the browser flow unless a usable token is already cached."""
        creds = self._load_cached()
        if creds is None:
            if not self.client_secrets_path.exists():
                raise FileNotFoundError(
                    f"Google client secrets file not found: {self.client_secrets_path}. Create an OAuth client in the Google Cloud Console and place the JSON here."
                )
            flow = InstalledAppFlow.from_client_secrets_file(str(self.client_secrets_path), SCOPES)
            creds = flow.run_local_server(port=0)
            self._persist(creds)
            self._creds = creds
        self._identity = self._fetch_identity(creds)
        logger.info("Signed in as %s", self._identity.email or self._identity.uid)
        return self._identity

    def sign_out(self) -> None:
        self._creds = None
        self._identity = None
        if self.token_path.exists():
            self.token_path.unlink()
        logger.info("Signed out; cached token removed")

    def _load_cached(self) -> Credentials | None:
        creds = self._creds
        if creds is None and self.token_path.exists():
            creds = Credentials.from_authorized_user_file(str(self.token_path), SCOPES)
        if creds is None:
            return None
        if not creds.valid:
            if not (creds.expired and creds.refresh_token):
                return None
            creds.refresh(Request())
            self._persist(creds)
        self._creds = creds
        return creds

    def _persist(self, creds: Credentials) -> None:
        self.token_path.parent.mkdir(parents=True, exist_ok=True)
        with self.token_path.open("w", encoding="utf-8") as fh:
            fh.write(creds.to_json())

    def _fetch_identity(self, creds: Credentials) -> Identity:
        response = httpx.get(
            USERINFO_ENDPOINT,
            headers={"Authorization": f"Bearer {creds.token}"},
            timeout=self.timeout,
        )
        response.raise_for_status()
        data = response.json()
        uid = data.get("id")
        if not uid:
            raise NotAuthenticatedError("Google did not return a user id")
        return Identity(uid=str(uid), email=data.get("email"))
