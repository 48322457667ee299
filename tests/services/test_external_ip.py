import pytest

from pastelup.errors import ExternalIPError, RemoteExecError
from pastelup.services.external_ip import get_external_ip, get_remote_external_ip


class FakeResponse:
    def __init__(self, text):
        self.text = text

    def raise_for_status(self):
        return None


class FakeRequestsModule:
    class RequestException(Exception):
        pass

    def __init__(self, text=None, error=None):
        self.text = text
        self.error = error

    def get(self, *_args, **_kwargs):
        if self.error:
            raise self.error
        return FakeResponse(self.text)


def test_get_external_ip_strips_and_validates():
    assert get_external_ip(requests_module=FakeRequestsModule(text="203.0.113.9\n")) == "203.0.113.9"


def test_get_external_ip_rejects_garbage():
    with pytest.raises(ExternalIPError, match="invalid address"):
        get_external_ip(requests_module=FakeRequestsModule(text="<html>rate limited</html>"))


def test_get_external_ip_wraps_request_errors():
    module = FakeRequestsModule()
    module.error = module.RequestException("dns failure")

    with pytest.raises(ExternalIPError, match="dns failure"):
        get_external_ip(requests_module=module)


class FakeSession:
    host = "203.0.113.9"

    def __init__(self, answer=None, error=None):
        self.answer = answer
        self.error = error

    def external_ip(self, url):
        if self.error:
            raise self.error
        return self.answer


def test_get_remote_external_ip_uses_session():
    assert get_remote_external_ip(FakeSession(answer="198.51.100.4\n")) == "198.51.100.4"


def test_get_remote_external_ip_wraps_session_errors():
    with pytest.raises(ExternalIPError, match="203.0.113.9"):
        get_remote_external_ip(FakeSession(error=RemoteExecError("curl: not found", command="curl")))
