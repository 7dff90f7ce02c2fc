# tests/test_challenge.py
from bs4 import BeautifulSoup

from modules.careers_crawl.lib.challenge import Verdict, detect, visible_text

SEARCH = "https://www.google.com/about/careers/applications/jobs/results?q=nurse"

NORMAL_PAGE = """
<html><head><title>Search results - Google Careers</title>
<script>var help = "If you see a captcha, contact support";</script></head>
<body><h1>Jobs</h1><ul><li>Registered Nurse</li></ul></body></html>
"""


def test_unusual_traffic_is_a_challenge():
    body = "<html><body><p>Our systems have detected unusual traffic from your network.</p></body></html>"
    d = detect(body, SEARCH, SEARCH)
    assert d.verdict is Verdict.CHALLENGE
    assert d.blocked
    assert d.reason == "body:unusual traffic"


def test_normal_page_is_ok():
    d = detect(NORMAL_PAGE, SEARCH, SEARCH)
    assert d.verdict is Verdict.OK
    assert not d.blocked


def test_script_payloads_are_not_visible_text():
    soup = BeautifulSoup(NORMAL_PAGE, "html.parser")
    assert "captcha" not in visible_text(soup).lower()
    assert "Registered Nurse" in visible_text(soup)


def test_title_marker():
    d = detect("<html><head><title>Just a moment...</title></head><body></body></html>")
    assert d.verdict is Verdict.CHALLENGE
    assert d.reason.startswith("title:")


def test_selector_marker():
    html = '<html><body><div class="g-recaptcha" data-sitekey="abc"></div></body></html>'
    d = detect(html, SEARCH, SEARCH)
    assert d.verdict is Verdict.CHALLENGE
    assert d.reason.startswith("selector:")


def test_redirect_to_gate():
    final = "https://www.google.com/sorry/index?continue=https://www.google.com/about/careers"
    d = detect("<html><body>ok</body></html>", final, SEARCH)
    assert d.verdict is Verdict.REDIRECT_TO_GATE
    assert d.blocked


def test_gate_url_requested_directly_is_a_challenge():
    gate = "https://consent.google.com/ml?continue=x"
    d = detect("<html><body>ok</body></html>", gate, gate)
    assert d.verdict is Verdict.CHALLENGE


def test_accepts_parsed_soup():
    soup = BeautifulSoup("<html><body>Please verify you are human</body></html>", "html.parser")
    assert detect(soup).verdict is Verdict.CHALLENGE
