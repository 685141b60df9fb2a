"""Google Sheets tabular store over the Sheets REST API v4.

Authentication uses a service account: a short-lived RS256 assertion is signed
locally and exchanged for an OAuth access token (JWT bearer grant).
"""

from __future__ import annotations

import json
import logging
import threading
import time
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

import httpx
from jose import jwt

from sheetchain.core.errors import ConfigurationError, StoreUnavailable
from sheetchain.store.a1 import column_letter

logger = logging.getLogger(__name__)

SHEETS_API_URL = "https://sheets.googleapis.com/v4/spreadsheets"
TOKEN_URL = "https://oauth2.googleapis.com/token"
SHEETS_SCOPE = "https://www.googleapis.com/auth/spreadsheets"
JWT_BEARER_GRANT = "urn:ietf:params:oauth:grant-type:jwt-bearer"
TOKEN_LIFETIME_SECONDS = 3600
TOKEN_REFRESH_MARGIN_SECONDS = 60


@dataclass(frozen=True)
class ServiceAccountCredentials:
    """Service account identity used to mint access tokens."""

    client_email: str
    private_key: str
    token_uri: str = TOKEN_URL

    @classmethod
    def from_file(cls, path: str) -> ServiceAccountCredentials:
        try:
            payload = json.loads(Path(path).read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise ConfigurationError(f"Unreadable service account file {path}: {exc}") from exc
        try:
            return cls(
                client_email=payload["client_email"],
                private_key=payload["private_key"],
                token_uri=payload.get("token_uri", TOKEN_URL),
            )
        except KeyError as exc:
            raise ConfigurationError(f"Service account file {path} lacks {exc}") from exc

    @classmethod
    def from_inline(cls, client_email: str, private_key: str) -> ServiceAccountCredentials:
        # Keys pasted into env vars usually carry literal "\n" sequences.
        return cls(client_email=client_email, private_key=private_key.replace("\\n", "\n"))


class _AccessToken:
    """Caches the OAuth token until shortly before it expires."""

    def __init__(self, credentials: ServiceAccountCredentials, http: httpx.Client) -> None:
        self._credentials = credentials
        self._http = http
        self._token: str | None = None
        self._expires_at = 0.0
        self._lock = threading.Lock()

    def get(self) -> str:
        with self._lock:
            expiring = time.time() >= self._expires_at - TOKEN_REFRESH_MARGIN_SECONDS
            if self._token is None or expiring:
                self._token = self._refresh()
            return self._token

    def _refresh(self) -> str:
        now = int(time.time())
        assertion = jwt.encode(
            {
                "iss": self._credentials.client_email,
                "scope": SHEETS_SCOPE,
                "aud": self._credentials.token_uri,
                "iat": now,
                "exp": now + TOKEN_LIFETIME_SECONDS,
            },
            self._credentials.private_key,
            algorithm="RS256",
        )
        response = self._http.post(
            self._credentials.token_uri,
            data={"grant_type": JWT_BEARER_GRANT, "assertion": assertion},
        )
        response.raise_for_status()
        payload = response.json()
        self._expires_at = now + int(payload.get("expires_in", TOKEN_LIFETIME_SECONDS))
        logger.debug("Refreshed Google Sheets access token")
        return str(payload["access_token"])


class GoogleSheetsStore:
    """Tabular store backed by a Google spreadsheet."""

    def __init__(
        self,
        spreadsheet_id: str,
        credentials: ServiceAccountCredentials,
        *,
        timeout_seconds: float = 15.0,
        http: httpx.Client | None = None,
    ) -> None:
        self.spreadsheet_id = spreadsheet_id
        self._http = http or httpx.Client(timeout=httpx.Timeout(timeout_seconds))
        self._token = _AccessToken(credentials, self._http)

    def _request(self, method: str, path: str, **kwargs: object) -> dict:
        url = f"{SHEETS_API_URL}/{self.spreadsheet_id}{path}"
        try:
            headers = {"Authorization": f"Bearer {self._token.get()}"}
            response = self._http.request(
                method, url, headers=headers, **kwargs  # type: ignore[arg-type]
            )
            response.raise_for_status()
        except (httpx.HTTPError, KeyError, ValueError) as exc:
            raise StoreUnavailable(f"Google Sheets request failed: {exc}") from exc
        return response.json() if response.content else {}

    def read_range(self, range_spec: str) -> list[list[str]]:
        payload = self._request("GET", f"/values/{range_spec}")
        return [[str(cell) for cell in row] for row in payload.get("values", [])]

    def append_row(self, table: str, row: Sequence[str]) -> None:
        self._request(
            "POST",
            f"/values/{table}!A:A:append",
            params={"valueInputOption": "RAW", "insertDataOption": "INSERT_ROWS"},
            json={"values": [[str(value) for value in row]]},
        )

    def update_range(self, range_spec: str, rows: Sequence[Sequence[str]]) -> None:
        self._request(
            "PUT",
            f"/values/{range_spec}",
            params={"valueInputOption": "RAW"},
            json={"values": [[str(value) for value in row] for row in rows]},
        )

    def ensure_table(self, table: str, headers: Sequence[str]) -> None:
        spreadsheet = self._request("GET", "", params={"fields": "sheets.properties.title"})
        titles = {sheet["properties"]["title"] for sheet in spreadsheet.get("sheets", [])}
        if table in titles:
            return
        self._request(
            "POST",
            ":batchUpdate",
            json={"requests": [{"addSheet": {"properties": {"title": table}}}]},
        )
        self.update_range(f"{table}!A1:{column_letter(len(headers) - 1)}1", [list(headers)])
        logger.info("Created sheet: %s", table)

    def close(self) -> None:
        self._http.close()
