"""Tests for the stateful directory session client."""

import pytest
import requests

from cpa_intel.scrapers.errors import RequestFailed, SessionExpiredError, StructureError
from cpa_intel.scrapers.session import (
    SessionHttpClient,
    SessionState,
    extract_form_field_names,
    extract_hidden_fields,
)

ENTRY_URL = "https://directory.test/search.aspx"

ENTRY_PAGE = """
<form method="post" action="search.aspx">
  <input type="hidden" name="__VIEWSTATE" value="vs-1" />
  <input type="hidden" name="__EVENTVALIDATION" value="ev-1" />
  <input type="text" name="txtLastName" value="" />
  <input type="text" name="txtFirstName" value="prefilled" />
</form>
"""

RESULT_PAGE = """
<form method="post" action="search.aspx">
  <input type="hidden" name="__VIEWSTATE" value="vs-2" />
  <input type="hidden" name="__EVENTVALIDATION" value="ev-2" />
  <input type="text" name="txtLastName" value="" />
</form>
<table><tr><td>Smith, John</td><td>Victoria</td></tr></table>
"""


class Clock:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


def make_client(http, sleeps, clock=None, **kwargs) -> SessionHttpClient:
    return SessionHttpClient(
        ENTRY_URL,
        http=http,
        request_delay=2.5,
        sleep=sleeps.append,
        clock=clock or Clock(),
        **kwargs,
    )


class TestHiddenFields:
    def test_extracts_hidden_inputs(self):
        assert extract_hidden_fields(ENTRY_PAGE) == {"__VIEWSTATE": "vs-1", "__EVENTVALIDATION": "ev-1"}

    def test_extracts_delta_format(self):
        delta = "1|#||4|12|hiddenField|__VIEWSTATE|vs-delta|8|hiddenField|__EVENTVALIDATION|ev-delta|"
        assert extract_hidden_fields(delta) == {"__VIEWSTATE": "vs-delta", "__EVENTVALIDATION": "ev-delta"}

    def test_form_field_names(self):
        assert {"txtLastName", "txtFirstName", "__VIEWSTATE"} <= extract_form_field_names(ENTRY_PAGE)


class TestConversation:
    def test_establish_captures_state(self, make_http, make_response, sleeps):
        http = make_http(lambda method, url, kw: make_response(ENTRY_PAGE, url=ENTRY_URL, cookies={"ASP.NET_SessionId": "s1"}))
        client = make_client(http, sleeps)
        assert client.state == SessionState.UNINITIALIZED

        client.establish_session()

        assert client.state == SessionState.ESTABLISHED
        assert client.hidden_fields["__VIEWSTATE"] == "vs-1"
        assert client.cookies == {"ASP.NET_SessionId": "s1"}
        assert http.calls[0]["timeout"] == client.timeout

    def test_missing_required_field_is_structural(self, make_http, make_response, sleeps):
        http = make_http(lambda method, url, kw: make_response(ENTRY_PAGE, url=ENTRY_URL))
        client = make_client(http, sleeps, required_fields=("txtLastName", "txtSurname"))
        with pytest.raises(StructureError, match="txtSurname"):
            client.establish_session()

    def test_submit_builds_body_and_refreshes_state(self, make_http, make_response, sleeps):
        def handler(method, url, kw):
            if method == "GET":
                return make_response(ENTRY_PAGE, url=ENTRY_URL, cookies={"ASP.NET_SessionId": "s1"})
            return make_response(RESULT_PAGE, url=ENTRY_URL + "?page=1", cookies={"lb": "node2"})

        http = make_http(handler)
        client = make_client(http, sleeps)
        client.establish_session()
        page = client.submit_search(
            {"txtLastName": "Smith"},
            clear_fields=("txtFirstName",),
            extra_fields={"btnSearch": "Search"},
        )

        post = http.calls[1]
        assert post["method"] == "POST"
        assert post["data"] == {
            "__VIEWSTATE": "vs-1",
            "__EVENTVALIDATION": "ev-1",
            "txtFirstName": "",
            "btnSearch": "Search",
            "txtLastName": "Smith",
        }
        assert post["headers"]["Referer"] == ENTRY_URL
        assert post["headers"]["Content-Type"] == "application/x-www-form-urlencoded"
        assert post["cookies"] == {"ASP.NET_SessionId": "s1"}

        assert page.hidden_fields["__VIEWSTATE"] == "vs-2"
        assert client.cookies == {"ASP.NET_SessionId": "s1", "lb": "node2"}
        assert client.last_url == ENTRY_URL + "?page=1"
        assert client.state == SessionState.ESTABLISHED

    def test_cookie_overwrite_keeps_others(self, make_http, make_response, sleeps):
        responses = iter([
            make_response(ENTRY_PAGE, cookies={"a": "1", "b": "1"}),
            make_response(RESULT_PAGE, cookies={"a": "2"}),
        ])
        client = make_client(make_http(lambda method, url, kw: next(responses)), sleeps)
        client.establish_session()
        client.submit_search({"txtLastName": "Lee"})
        assert client.cookies == {"a": "2", "b": "1"}

    def test_fixed_delay_between_requests(self, make_http, make_response, sleeps):
        clock = Clock()
        client = make_client(make_http(lambda method, url, kw: make_response(ENTRY_PAGE)), sleeps, clock=clock)

        client.establish_session()
        clock.now += 1.0
        client.get(ENTRY_URL)
        clock.now += 5.0
        client.get(ENTRY_URL)

        assert sleeps == [pytest.approx(1.5)]


class TestFailurePolicy:
    def test_network_error_becomes_request_failed(self, make_http, make_response, sleeps):
        def handler(method, url, kw):
            if method == "GET":
                return make_response(ENTRY_PAGE)
            return requests.ConnectionError("reset")

        client = make_client(make_http(handler), sleeps)
        client.establish_session()
        with pytest.raises(RequestFailed):
            client.submit_search({"txtLastName": "Smith"})
        assert client.consecutive_failures == 1

    def test_http_error_status_counts(self, make_http, make_response, sleeps):
        client = make_client(make_http(lambda method, url, kw: make_response("oops", status_code=500)), sleeps)
        with pytest.raises(RequestFailed):
            client.get(ENTRY_URL)
        assert client.consecutive_failures == 1

    def test_success_resets_counter(self, make_http, make_response, sleeps):
        client = make_client(make_http(lambda method, url, kw: make_response(ENTRY_PAGE)), sleeps)
        client.record_failure("bad page")
        client.record_failure("bad page")
        client.record_success()
        assert client.consecutive_failures == 0

    def test_five_failures_reestablish(self, make_http, make_response, sleeps):
        state = {"posts": 0}

        def handler(method, url, kw):
            if method == "GET":
                return make_response(ENTRY_PAGE, cookies={"ASP.NET_SessionId": f"s{state['posts']}"})
            state["posts"] += 1
            return requests.Timeout("slow")

        http = make_http(handler)
        client = make_client(http, sleeps)
        client.establish_session()

        for _ in range(5):
            with pytest.raises(RequestFailed):
                client.submit_search({"txtLastName": "Smith"})

        gets = [call for call in http.calls if call["method"] == "GET"]
        assert len(gets) == 2
        assert client.reestablish_count == 1
        assert client.consecutive_failures == 0
        assert client.state == SessionState.ESTABLISHED
        assert client.cookies == {"ASP.NET_SessionId": "s5"}

    def test_failed_reestablish_raises_session_expired(self, make_http, make_response, sleeps):
        state = {"established": False}

        def handler(method, url, kw):
            if method == "GET" and not state["established"]:
                state["established"] = True
                return make_response(ENTRY_PAGE)
            return requests.ConnectionError("down")

        client = make_client(make_http(handler), sleeps, max_consecutive_failures=3)
        client.establish_session()
        for _ in range(2):
            with pytest.raises(RequestFailed):
                client.submit_search({"txtLastName": "Smith"})

        with pytest.raises(SessionExpiredError):
            client.submit_search({"txtLastName": "Smith"})
        assert client.state == SessionState.EXPIRED
