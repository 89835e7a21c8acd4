from __future__ import annotations

import base64
from email import message_from_bytes
from typing import Any, Dict, List, Tuple

import httplib2
import pytest
from google.auth.exceptions import RefreshError
from googleapiclient.errors import HttpError

from inboxie.errors import AuthenticationFailed, ProviderError
from inboxie.gmail.client import GmailClient, GmailClientConfig
from inboxie.models import Label


class FakeRequest:
    def __init__(self, response: Any) -> None:
        self.response = response

    def execute(self, http=None, num_retries: int = 0) -> Dict[str, Any]:
        if isinstance(self.response, Exception):
            raise self.response
        return self.response


class FakeService:
    """Chained googleapiclient resource: users().messages().list(...).execute()."""

    def __init__(self, responses: Dict[str, Any]) -> None:
        self.responses = responses
        self.calls: List[Tuple[str, Dict[str, Any]]] = []
        self._resource = ""

    def __getattr__(self, name: str):
        def method(**kwargs: Any):
            if not kwargs:
                self._resource = name
                return self
            key = f"{self._resource}.{name}"
            self.calls.append((key, kwargs))
            return FakeRequest(self.responses.get(key, {}))

        return method


def _client(responses: Dict[str, Any]) -> Tuple[GmailClient, FakeService]:
    client = GmailClient(GmailClientConfig(access_token="ya29.test"))
    service = FakeService(responses)
    client._service = service
    return client, service


def _http_error(status: int) -> HttpError:
    return HttpError(httplib2.Response({"status": status}), b'{"error": {"message": "boom"}}')


def test_unconnected_client_refuses_calls() -> None:
    client = GmailClient(GmailClientConfig(access_token="ya29.test"))

    with pytest.raises(RuntimeError):
        client.get_profile()


def test_list_messages_returns_page() -> None:
    client, service = _client(
        {"messages.list": {"messages": [{"id": "a"}, {"id": "b"}], "nextPageToken": "t2"}}
    )

    page = client.list_messages("in:inbox", page_token="t1", max_results=2)

    assert page.ids == ["a", "b"]
    assert page.next_page_token == "t2"
    assert service.calls[0][1]["pageToken"] == "t1"
    assert service.calls[0][1]["maxResults"] == 2


def test_empty_list_page() -> None:
    client, _ = _client({"messages.list": {"resultSizeEstimate": 0}})

    page = client.list_messages()

    assert page.ids == []
    assert page.next_page_token is None


def test_list_labels_maps_to_labels() -> None:
    client, _ = _client({"labels.list": {"labels": [{"id": "Label_1", "name": "Work"}]}})

    assert client.list_labels() == [Label(label_id="Label_1", name="Work")]


def test_create_label_sends_color() -> None:
    client, service = _client({"labels.create": {"id": "Label_9"}})
    color = {"backgroundColor": "#4a86e8", "textColor": "#ffffff"}

    assert client.create_label("Work", color) == "Label_9"
    assert service.calls[0][1]["body"]["color"] == color


def test_create_draft_sets_threading_headers() -> None:
    client, service = _client({"drafts.create": {"id": "r-1"}})

    draft_id = client.create_draft(
        "alice@example.com",
        "Re: Lunch",
        "Sounds good",
        thread_id="thread-1",
        in_reply_to="<m1@mail.example.com>",
    )

    message = service.calls[0][1]["body"]["message"]
    mime = message_from_bytes(base64.urlsafe_b64decode(message["raw"]))
    assert draft_id == "r-1"
    assert message["threadId"] == "thread-1"
    assert mime["Subject"] == "Re: Lunch"
    assert mime["In-Reply-To"] == "<m1@mail.example.com>"
    assert mime["References"] == "<m1@mail.example.com>"


def test_unauthorized_is_authentication_failed() -> None:
    client, _ = _client({"messages.get": _http_error(401)})

    with pytest.raises(AuthenticationFailed):
        client.get_message("m1")


def test_refresh_error_is_authentication_failed() -> None:
    client, _ = _client({"users.getProfile": RefreshError("token expired")})

    with pytest.raises(AuthenticationFailed):
        client.get_profile()


def test_other_http_errors_keep_provider_status() -> None:
    client, _ = _client({"labels.create": _http_error(409)})

    with pytest.raises(ProviderError) as excinfo:
        client.create_label("Work")

    assert excinfo.value.status == 409


@pytest.mark.parametrize(
    "error",
    [
        ConnectionResetError("reset by peer"),
        TimeoutError("read timed out"),
        httplib2.ServerNotFoundError("Unable to find the server at gmail.googleapis.com"),
    ],
)
def test_transport_errors_become_provider_errors(error) -> None:
    client, _ = _client({"messages.list": error})

    with pytest.raises(ProviderError) as excinfo:
        client.list_messages()

    assert type(error).__name__ in str(excinfo.value)
    assert excinfo.value.status is None
