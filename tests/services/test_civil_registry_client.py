"""
Tests for vitalcheck_services.civil_registry -- the LK2 HTTP adapter.
"""

from unittest.mock import Mock

import pytest
import requests

from vitalcheck_services.civil_registry import CivilRegistryClient
from vitalcheck_services.types import Cancelled, CivilRegistryRecord, Resolved, TransportFailure


def _response(status_code=200, body=None, json_error=False):
    response = Mock()
    response.status_code = status_code
    response.ok = 200 <= status_code < 300
    if json_error:
        response.json.side_effect = ValueError("not json")
    else:
        response.json.return_value = body
    return response


def _person(status="200", data=None):
    return {"serviceID": 1, "responseStatus": status, "responseData": data or {}}


@pytest.fixture
def session():
    return Mock()


@pytest.fixture
def client(session):
    return CivilRegistryClient(
        "https://lk2.test/",
        "JOB-1",
        token_check_url="https://lk2.test/token",
        timeout_seconds=9,
        session=session,
    )


class TestCheck:
    def test_resolves_person_entry(self, client, session):
        session.post.return_value = _response(body={"data": [
            {"serviceID": 27, "responseStatus": 200, "responseData": {}},
            _person(data={"dateOfBirth": 24930301, "statusOfPersonCode": 1}),
        ]})

        result = client.check("1100000000001", "tok")

        assert result == Resolved(CivilRegistryRecord(date_of_birth="24930301", status_code="1"))
        session.post.assert_called_once_with(
            "https://lk2.test/api/center/request/",
            json={
                "jobID": "JOB-1",
                "data": [
                    {"serviceID": 1, "query": {"personalID": "1100000000001"}},
                    {"serviceID": 27, "query": {"personalID": "1100000000001"}},
                ],
            },
            headers={"Content-Type": "application/json", "Authorization": "Bearer tok"},
            timeout=9,
        )

    def test_missing_fields_resolve_to_none(self, client, session):
        session.post.return_value = _response(body={"data": [_person()]})
        assert client.check("1", "tok") == Resolved(CivilRegistryRecord(None, None))

    def test_no_token_short_circuits(self, client, session):
        assert isinstance(client.check("1", None), TransportFailure)
        session.post.assert_not_called()

    def test_overlong_person_status_is_a_failure(self, client, session):
        session.post.return_value = _response(
            body={"data": [_person(data={"statusOfPersonCode": "Z" * 21})]},
        )
        result = client.check("1", "tok")
        assert isinstance(result, TransportFailure)
        assert "unexpected person status" in result.reason

    def test_closed_window_sends_nothing(self, client, session):
        assert client.check("1", "tok", should_continue=lambda: False) == Cancelled("lk2")
        session.post.assert_not_called()

    def test_open_window_sends_request(self, client, session):
        session.post.return_value = _response(body={"data": [_person()]})
        assert isinstance(client.check("1", "tok", should_continue=lambda: True), Resolved)

    def test_http_error_uses_error_message(self, client, session):
        session.post.return_value = _response(status_code=401, body={"errorMessage": "token expired"})
        assert client.check("1", "tok") == TransportFailure(reason="token expired", status_code=401)

    def test_http_error_without_body(self, client, session):
        session.post.return_value = _response(status_code=502, json_error=True)
        assert client.check("1", "tok") == TransportFailure(reason="HTTP 502", status_code=502)

    def test_network_error(self, client, session):
        session.post.side_effect = requests.Timeout("slow")
        assert isinstance(client.check("1", "tok"), TransportFailure)

    @pytest.mark.parametrize(
        "body",
        [
            {"data": "nope"},
            {"data": []},
            {"data": [_person(status="404")]},
            ["not", "a", "dict"],
        ],
    )
    def test_unusable_answers_are_failures(self, client, session, body):
        session.post.return_value = _response(body=body)
        assert isinstance(client.check("1", "tok"), TransportFailure)


class TestCheckToken:
    def test_valid(self, client, session):
        session.get.return_value = _response(status_code=200)
        assert client.check_token("tok") is True
        session.get.assert_called_once_with(
            "https://lk2.test/token",
            headers={"Content-Type": "application/json", "Authorization": "Bearer tok"},
            timeout=9,
        )

    def test_rejected(self, client, session):
        session.get.return_value = _response(status_code=401)
        assert client.check_token("tok") is False

    def test_network_error_is_invalid(self, client, session):
        session.get.side_effect = requests.ConnectionError("down")
        assert client.check_token("tok") is False

    def test_no_check_url(self, session):
        client = CivilRegistryClient("https://lk2.test", "JOB-1", session=session)
        assert client.check_token("tok") is False
        session.get.assert_not_called()
