from unittest.mock import MagicMock

import pytest
import requests

from utils.brevo_email import BREVO_SEND_URL, BrevoTransport, EmailSendError


def _transport(http, **kw):
    kw.setdefault("api_key", "xkeysib-test")
    kw.setdefault("sender_email", "no-reply@figacare.com")
    return BrevoTransport(session=http, **kw)


def _response(status, body=None, text=""):
    resp = MagicMock()
    resp.status_code = status
    resp.json.return_value = body or {}
    resp.text = text
    return resp


def test_send_posts_transactional_email_and_returns_message_id():
    http = MagicMock()
    http.post.return_value = _response(201, {"messageId": "<202603020930.1@smtp-relay.brevo.com>"})

    message_id = _transport(http).send(
        to_email="user@example.com", subject="Hi", html="<p>123456</p>", text="123456"
    )

    assert message_id == "<202603020930.1@smtp-relay.brevo.com>"
    url = http.post.call_args.args[0]
    kwargs = http.post.call_args.kwargs
    assert url == BREVO_SEND_URL
    assert kwargs["headers"]["api-key"] == "xkeysib-test"
    assert kwargs["json"]["to"] == [{"email": "user@example.com"}]
    assert kwargs["json"]["sender"] == {"email": "no-reply@figacare.com", "name": "FIGA Care"}
    assert kwargs["json"]["textContent"] == "123456"
    assert kwargs["timeout"] == 15


@pytest.mark.parametrize("api_key, sender", [(None, "a@b.com"), ("key", None), ("  ", "a@b.com")])
def test_unconfigured_transport_refuses_to_send(api_key, sender):
    http = MagicMock()
    transport = _transport(http, api_key=api_key, sender_email=sender)

    assert transport.configured is False
    with pytest.raises(EmailSendError) as exc:
        transport.send(to_email="user@example.com", subject="s", html="h")
    assert exc.value.reason == "not_configured"
    http.post.assert_not_called()


@pytest.mark.parametrize("status, reason", [(401, "auth"), (403, "auth"), (400, "rejected"), (500, "rejected")])
def test_http_errors_are_categorized(status, reason):
    http = MagicMock()
    http.post.return_value = _response(status, text="nope")

    with pytest.raises(EmailSendError) as exc:
        _transport(http).send(to_email="user@example.com", subject="s", html="h")
    assert exc.value.reason == reason


@pytest.mark.parametrize("error", [requests.ConnectionError("refused"), requests.Timeout("slow")])
def test_network_errors_are_connection_failures(error):
    http = MagicMock()
    http.post.side_effect = error

    with pytest.raises(EmailSendError) as exc:
        _transport(http).send(to_email="user@example.com", subject="s", html="h")
    assert exc.value.reason == "connection"


def test_from_env(monkeypatch):
    monkeypatch.setenv("BREVO_API_KEY", "k")
    monkeypatch.delenv("BREVO_FROM", raising=False)
    monkeypatch.setenv("EMAIL_FROM", "care@figacare.com")
    monkeypatch.setenv("BREVO_SENDER_NAME", "FIGA")

    transport = BrevoTransport.from_env()

    assert transport.configured
    assert transport.sender_email == "care@figacare.com"
    assert transport.sender_name == "FIGA"


def test_from_env_without_key_is_unconfigured(monkeypatch):
    monkeypatch.delenv("BREVO_API_KEY", raising=False)
    monkeypatch.setenv("BREVO_FROM", "care@figacare.com")
    assert BrevoTransport.from_env().configured is False
