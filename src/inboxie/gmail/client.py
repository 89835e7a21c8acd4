from __future__ import annotations

import base64
import logging
from dataclasses import dataclass, field
from email.message import EmailMessage
from pathlib import Path
from typing import Any, Dict, List, Optional

import google_auth_httplib2
import httplib2
from google.auth.exceptions import RefreshError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from inboxie.errors import AuthenticationFailed, ProviderError
from inboxie.models import Label

logger = logging.getLogger(__name__)

# Labels and drafts both need modify scope.
SCOPES = ["https://www.googleapis.com/auth/gmail.modify"]


@dataclass(frozen=True)
class GmailClientConfig:
    # Raw OAuth access token handed over by the extension / web session.
    access_token: Optional[str] = None
    # Path to OAuth client credentials downloaded from Google Cloud Console.
    credentials_path: Optional[Path] = None
    # Token cache will be created here after first login.
    token_path: Optional[Path] = None
    # Gmail userId, "me" refers to the authenticated user.
    user_id: str = "me"


@dataclass(frozen=True)
class MessagePage:
    ids: List[str] = field(default_factory=list)
    next_page_token: Optional[str] = None


def _translate(exc: Exception, action: str) -> Exception:
    # Map library errors into the project's error taxonomy.
    if isinstance(exc, RefreshError):
        return AuthenticationFailed(f"Gmail credentials rejected during {action}: {exc}")
    if isinstance(exc, HttpError):
        status = int(getattr(exc.resp, "status", 0) or 0)
        if status == 401:
            return AuthenticationFailed(f"Gmail credentials rejected during {action}")
        return ProviderError(f"Gmail {action} failed: {exc}", status=status)
    return ProviderError(f"Gmail {action} failed: {type(exc).__name__}: {exc}")


class GmailClient:
    def __init__(self, cfg: GmailClientConfig):
        self._cfg = cfg
        self._creds: Optional[Credentials] = None
        self._service = None

    def connect(self) -> None:
        """Create an authenticated Gmail API service client."""
        if self._cfg.access_token:
            creds = Credentials(token=self._cfg.access_token)
        else:
            creds = self._load_cached_credentials()

        self._creds = creds
        self._service = build("gmail", "v1", credentials=creds, cache_discovery=False)

    def _load_cached_credentials(self) -> Credentials:
        if not self._cfg.token_path or not self._cfg.credentials_path:
            raise AuthenticationFailed("No Gmail access token or credential files configured.")

        creds = None
        if self._cfg.token_path.exists():
            creds = Credentials.from_authorized_user_file(str(self._cfg.token_path), SCOPES)

        # If there are no (valid) credentials available, let the user log in.
        if not creds or not creds.valid:
            if creds and creds.expired and creds.refresh_token:
                creds.refresh(Request())
            else:
                flow = InstalledAppFlow.from_client_secrets_file(
                    str(self._cfg.credentials_path),
                    SCOPES,
                )
                creds = flow.run_local_server(port=0)

            # Save the credentials for the next run.
            self._cfg.token_path.parent.mkdir(parents=True, exist_ok=True)
            self._cfg.token_path.write_text(creds.to_json(), encoding="utf-8")
        return creds

    @property
    def service(self):
        if self._service is None:
            raise RuntimeError("GmailClient is not connected. Call connect() first.")
        return self._service

    def _execute(self, request, action: str) -> Dict[str, Any]:
        # httplib2.Http is not thread-safe: give every request its own transport.
        http = google_auth_httplib2.AuthorizedHttp(self._creds, http=httplib2.Http())
        try:
            return request.execute(http=http, num_retries=0)
        # OSError and HttpLib2Error cover socket, TLS and DNS failures.
        except (HttpError, RefreshError, httplib2.HttpLib2Error, OSError) as exc:
            raise _translate(exc, action) from exc

    def list_messages(
        self,
        query: str = "in:inbox",
        page_token: Optional[str] = None,
        max_results: int = 50,
    ) -> MessagePage:
        """
        List one page of message IDs matching a Gmail search query.
        Example query: 'in:inbox', 'in:sent'
        """
        users = self.service.users()
        resp = self._execute(
            users.messages().list(
                userId=self._cfg.user_id,
                q=query,
                maxResults=max_results,
                pageToken=page_token,
            ),
            "list messages",
        )
        msgs = resp.get("messages", []) or []
        return MessagePage(
            ids=[m["id"] for m in msgs],
            next_page_token=resp.get("nextPageToken"),
        )

    def get_message(self, message_id: str, fmt: str = "full") -> Dict[str, Any]:
        """
        Fetch a full message resource.
        fmt: 'full' | 'metadata' | 'minimal' | 'raw'
        """
        return self._execute(
            self.service.users().messages().get(userId=self._cfg.user_id, id=message_id, format=fmt),
            "get message",
        )

    def list_labels(self) -> List[Label]:
        resp = self._execute(
            self.service.users().labels().list(userId=self._cfg.user_id),
            "list labels",
        )
        return [
            Label(label_id=item.get("id", ""), name=item.get("name", ""))
            for item in resp.get("labels", []) or []
        ]

    def create_label(self, name: str, color: Optional[Dict[str, str]] = None) -> str:
        body: Dict[str, Any] = {
            "name": name,
            "labelListVisibility": "labelShow",
            "messageListVisibility": "show",
        }
        if color:
            body["color"] = color
        resp = self._execute(
            self.service.users().labels().create(userId=self._cfg.user_id, body=body),
            "create label",
        )
        return resp.get("id", "")

    def modify_message(self, message_id: str, add_label_ids: List[str]) -> None:
        self._execute(
            self.service.users().messages().modify(
                userId=self._cfg.user_id,
                id=message_id,
                body={"addLabelIds": list(add_label_ids)},
            ),
            "modify message",
        )

    def create_draft(
        self,
        to: str,
        subject: str,
        body: str,
        *,
        thread_id: Optional[str] = None,
        in_reply_to: Optional[str] = None,
    ) -> str:
        msg = EmailMessage()
        msg["To"] = to
        msg["Subject"] = subject
        if in_reply_to:
            # Threading headers expect the RFC 822 Message-ID of the original.
            msg["In-Reply-To"] = in_reply_to
            msg["References"] = in_reply_to
        msg.set_content(body)

        raw = base64.urlsafe_b64encode(msg.as_bytes()).decode("ascii")
        message: Dict[str, Any] = {"raw": raw}
        if thread_id:
            message["threadId"] = thread_id

        resp = self._execute(
            self.service.users().drafts().create(userId=self._cfg.user_id, body={"message": message}),
            "create draft",
        )
        return resp.get("id", "")

    def get_profile(self) -> Dict[str, Any]:
        """Get the Gmail profile of the authenticated user."""
        return self._execute(
            self.service.users().getProfile(userId=self._cfg.user_id),
            "get profile",
        )
