"""Tests for the configuration-driven directory scraper."""

import pytest
import requests

from cpa_intel.config import ScrapingConfig
from cpa_intel.models import JOB_COMPLETED, JOB_FAILED
from cpa_intel.scrapers.directory import (
    PARSER_SCRIPT,
    PROTOCOL_QUERY,
    PROTOCOL_SPA,
    DirectoryConfig,
    DirectoryScraper,
    build_parser,
)
from cpa_intel.scrapers.errors import ProtectionWallError, SessionExpiredError, StructureError
from cpa_intel.scrapers.parsers import ColumnMap, GridParser, ScriptArrayParser
from cpa_intel.scrapers.strategies import AdaptiveNarrowing, ExactNameList, SpaFallback

ENTRY_URL = "https://directory.test/search.aspx"

ENTRY_PAGE = """
<form method="post">
  <input type="hidden" name="__VIEWSTATE" value="vs" />
  <input type="text" name="txtLastName" />
  <input type="text" name="txtFirstName" />
</form>
"""

NO_RESULTS_PAGE = ENTRY_PAGE + '<span id="lblMsg">No records found.</span>'
TOO_MANY_PAGE = ENTRY_PAGE + "<h3>Too many results. Please refine your search.</h3>"

GRID_CONFIG = DirectoryConfig(
    name="cpa_test",
    province="BC",
    entry_url=ENTRY_URL,
    strategy="exact_list",
    columns=ColumnMap(full_name=0, city=1, last_first=True),
    last_name_field="txtLastName",
    required_fields=("txtLastName",),
)


def grid_page(*rows):
    cells = "".join(f"<tr><td>{name}</td><td>{city}</td></tr>" for name, city in rows)
    return f"{ENTRY_PAGE}<table><tr><th>Name</th><th>City</th></tr>{cells}</table>"


def form_handler(make_response, pages, entry=ENTRY_PAGE):
    """GETs return the entry form; POSTs answer from ``pages`` keyed by (last, first)."""

    def handler(method, url, kw):
        if method == "GET":
            return make_response(entry, url=ENTRY_URL)
        data = kw["data"]
        key = (data.get("txtLastName"), data.get("txtFirstName", ""))
        page = pages.get(key, NO_RESULTS_PAGE)
        if isinstance(page, Exception):
            return page
        return make_response(page, url=ENTRY_URL)

    return handler


def make_scraper(db, http, sleeps, config=GRID_CONFIG, strategy=None, **settings):
    return DirectoryScraper(
        config,
        db,
        settings=ScrapingConfig(request_delay=0, **settings),
        http=http,
        strategy=strategy or ExactNameList(["Smith", "Lee"]),
        sleep=sleeps.append,
    )


class TestRun:
    def test_stores_professionals_and_completes_job(self, db, make_http, make_response, sleeps):
        pages = {("Smith", ""): grid_page(("Smith, John CPA, CA", "Victoria"), ("Smith, Jane", "Nanaimo"))}
        result = make_scraper(db, make_http(form_handler(make_response, pages)), sleeps).run()

        assert (result["found"], result["inserted"], result["skipped"]) == (2, 2, 0)
        job = db.get_job(result["job_id"])
        assert job["status"] == JOB_COMPLETED
        assert job["inserted"] == 2

        persons, total = db.list_persons()
        assert total == 2
        john = next(p for p in persons if p.first_name == "John")
        assert john.source == "cpa_test"
        assert john.province == "BC"
        assert john.designation == "CPA, CA"
        assert john.job_id == result["job_id"]

    def test_second_run_inserts_nothing(self, db, make_http, make_response, sleeps):
        pages = {
            ("Smith", ""): grid_page(("Smith, John", "Victoria"), ("Smith, Jane", "Nanaimo")),
            ("Lee", ""): grid_page(("Lee, Ann", "Victoria")),
        }
        first = make_scraper(db, make_http(form_handler(make_response, pages)), sleeps).run()
        second = make_scraper(db, make_http(form_handler(make_response, pages)), sleeps).run()

        assert first["inserted"] == 3
        assert second["inserted"] == 0
        assert second["skipped"] == first["inserted"]
        assert db.list_persons()[1] == 3

    def test_same_person_twice_in_one_run(self, db, make_http, make_response, sleeps):
        page = grid_page(("Smith, John", "Victoria"))
        pages = {("Smith", ""): page, ("Lee", ""): page}
        result = make_scraper(db, make_http(form_handler(make_response, pages)), sleeps).run()
        assert (result["found"], result["inserted"], result["skipped"]) == (2, 1, 1)

    def test_post_body_carries_search_field(self, db, make_http, make_response, sleeps):
        http = make_http(form_handler(make_response, {}))
        make_scraper(db, http, sleeps, strategy=ExactNameList(["Roy"])).run()

        post = next(call for call in http.calls if call["method"] == "POST")
        assert post["data"]["txtLastName"] == "Roy"
        assert post["data"]["__VIEWSTATE"] == "vs"


class TestFailureIsolation:
    def test_failed_term_does_not_end_run(self, db, make_http, make_response, sleeps):
        pages = {
            ("Smith", ""): requests.ConnectionError("reset"),
            ("Lee", ""): grid_page(("Lee, Ann", "Victoria")),
        }
        result = make_scraper(db, make_http(form_handler(make_response, pages)), sleeps).run()
        assert result["inserted"] == 1
        assert db.get_job(result["job_id"])["status"] == JOB_COMPLETED

    def test_unparseable_page_skipped(self, db, make_http, make_response, sleeps):
        pages = {
            ("Smith", ""): "<html><body><p>Down for maintenance</p></body></html>",
            ("Lee", ""): grid_page(("Lee, Ann", "Victoria")),
        }
        scraper = make_scraper(db, make_http(form_handler(make_response, pages)), sleeps)
        result = scraper.run()
        assert result["inserted"] == 1
        assert scraper.client.consecutive_failures == 0

    def test_failed_reestablish_fails_job(self, db, make_http, make_response, sleeps):
        state = {"gets": 0}

        def handler(method, url, kw):
            if method == "GET":
                state["gets"] += 1
                if state["gets"] == 1:
                    return make_response(ENTRY_PAGE, url=ENTRY_URL)
            return requests.ConnectionError("down")

        scraper = make_scraper(
            db, make_http(handler), sleeps,
            strategy=ExactNameList(["A", "B", "C", "D", "E", "F"]),
        )
        with pytest.raises(SessionExpiredError):
            scraper.run()

        job = db.list_jobs()[0]
        assert job["status"] == JOB_FAILED
        assert job["failure_kind"] == "session"

    def test_unexpected_crash_still_closes_job(self, db, make_http, make_response, sleeps):
        class Exploding(ExactNameList):
            def terms(self):
                raise RuntimeError("boom")

        scraper = make_scraper(db, make_http(form_handler(make_response, {})), sleeps, strategy=Exploding())
        with pytest.raises(RuntimeError):
            scraper.run()

        job = db.list_jobs()[0]
        assert job["status"] == JOB_FAILED
        assert job["failure_kind"] == "error"
        assert "boom" in job["error_message"]


class TestStructuralFailures:
    def test_missing_form_field(self, db, make_http, make_response, sleeps):
        config = DirectoryConfig(
            name="cpa_test",
            province="BC",
            entry_url=ENTRY_URL,
            strategy="exact_list",
            columns=ColumnMap(full_name=0, city=1),
            last_name_field="txtSurname",
            required_fields=("txtSurname",),
        )
        scraper = make_scraper(db, make_http(form_handler(make_response, {})), sleeps, config=config)
        with pytest.raises(StructureError):
            scraper.run()

        job = db.list_jobs()[0]
        assert job["status"] == JOB_FAILED
        assert job["failure_kind"] == "structure"
        assert "txtSurname" in job["error_message"]

    def test_captcha_on_entry_page(self, db, make_http, make_response, sleeps):
        config = DirectoryConfig(
            name="cpa_walled",
            province="NB",
            entry_url=ENTRY_URL,
            strategy="exact_list",
            columns=ColumnMap(full_name=0, city=1),
            last_name_field="txtLastName",
            captcha_probe=True,
        )
        entry = ENTRY_PAGE + '<div class="g-recaptcha" data-sitekey="k"></div>'
        http = make_http(form_handler(make_response, {}, entry=entry))
        with pytest.raises(ProtectionWallError):
            make_scraper(db, http, sleeps, config=config).run()

        job = db.list_jobs()[0]
        assert job["status"] == JOB_FAILED
        assert job["failure_kind"] == "blocked"
        assert not [call for call in http.calls if call["method"] == "POST"]

    def test_refusal_without_narrowing(self, db, make_http, make_response, sleeps):
        pages = {("Smith", ""): TOO_MANY_PAGE}
        with pytest.raises(ProtectionWallError):
            make_scraper(db, make_http(form_handler(make_response, pages)), sleeps).run()
        assert db.list_jobs()[0]["failure_kind"] == "blocked"


class TestNarrowing:
    def test_too_broad_surname_narrowed_by_initial(self, db, make_http, make_response, sleeps):
        config = DirectoryConfig(
            name="cpa_test",
            province="AB",
            entry_url=ENTRY_URL,
            strategy="narrowing",
            columns=ColumnMap(full_name=0, city=1, last_first=True),
            last_name_field="txtLastName",
            first_name_field="txtFirstName",
        )
        pages = {
            ("Smith", ""): TOO_MANY_PAGE,
            ("Smith", "A"): grid_page(("Smith, Alice", "Calgary")),
            ("Smith", "B"): grid_page(("Smith, Bob", "Edmonton")),
        }
        http = make_http(form_handler(make_response, pages))
        result = make_scraper(db, http, sleeps, config=config, strategy=AdaptiveNarrowing(["Smith"])).run()

        assert result["inserted"] == 2
        posts = [call for call in http.calls if call["method"] == "POST"]
        assert len(posts) == 27
        assert posts[1]["data"]["txtFirstName"] == "A"


class TestScriptRenderedDirectory:
    def test_shell_pages_complete_with_note(self, db, make_http, make_response, sleeps):
        config = DirectoryConfig(
            name="cpa_spa",
            province="ON",
            entry_url="https://portal.test/directory",
            protocol=PROTOCOL_SPA,
            parser=PARSER_SCRIPT,
            strategy="spa_fallback",
        )
        shell = '<html><body><div id="app"></div><script src="/bundle.js"></script></body></html>'
        http = make_http(lambda method, url, kw: make_response(shell))
        result = make_scraper(db, http, sleeps, config=config, strategy=SpaFallback(["Smith", "Lee"])).run()

        assert result["found"] == 0
        job = db.get_job(result["job_id"])
        assert job["status"] == JOB_COMPLETED
        assert "script-rendered" in job["notes"]
        assert http.calls[0]["params"] == {"lastName": "Smith"}
        assert http.calls[0]["url"] == "https://portal.test/directory"

    def test_query_directory_uses_search_url_and_extras(self, db, make_http, make_response, sleeps):
        config = DirectoryConfig(
            name="cpa_query",
            province="QC",
            entry_url="https://cpa.test/find",
            search_url="https://cpa.test/api/search",
            protocol=PROTOCOL_QUERY,
            parser=PARSER_SCRIPT,
            strategy="exact_list",
            last_name_field="Nom",
            extra_fields={"Langue": "en"},
        )
        page = '<script>var results = [{"FirstName": "Marie", "LastName": "Roy", "City": "Laval"}];</script>'
        http = make_http(lambda method, url, kw: make_response(page))
        result = make_scraper(db, http, sleeps, config=config, strategy=ExactNameList(["Roy"])).run()

        assert result["inserted"] == 1
        assert http.calls[0]["url"] == "https://cpa.test/api/search"
        assert http.calls[0]["params"] == {"Langue": "en", "Nom": "Roy"}
        assert db.get_job(result["job_id"])["notes"] is None


class TestBuildParser:
    def test_kinds(self):
        assert isinstance(build_parser(GRID_CONFIG), GridParser)
        spa = DirectoryConfig(name="x", province="ON", entry_url="u", strategy="exact_list", parser=PARSER_SCRIPT)
        assert isinstance(build_parser(spa), ScriptArrayParser)

    def test_grid_needs_columns(self):
        with pytest.raises(ValueError):
            build_parser(DirectoryConfig(name="x", province="ON", entry_url="u", strategy="exact_list"))
