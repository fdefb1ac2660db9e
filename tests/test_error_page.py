import socket

from core.proxy.error_page import render_error_page, present
from core.proxy.errors import FetchError, FetchErrorReason, MissingUrlError
from core.proxy.response_emitter import encode_body
from utils.port_utils import check_port_availability


def test_error_page_embeds_url_and_message():
    error = FetchError(FetchErrorReason.TIMEOUT, 'timeout of 15s exceeded')
    page = render_error_page('https://example.com/page?a=1&b=2', error)
    assert 'https://example.com/page?a=1&amp;b=2' in page
    assert 'timeout of 15s exceeded' in page
    assert 'href="https://example.com/page?a=1&amp;b=2"' in page
    assert 'href="/"' in page


def test_error_page_escapes_untrusted_input():
    error = FetchError(FetchErrorReason.NETWORK_FAILURE, '<img src=x onerror=alert(1)>')
    page = render_error_page("https://example.com/'\"><b>", error)
    assert '<img src=x' not in page
    assert '&lt;img src=x onerror=alert(1)&gt;' in page
    assert '"><b>' not in page


def test_error_page_hides_direct_link_for_non_http():
    page = render_error_page('javascript:alert(1)', FetchError(FetchErrorReason.INVALID_URL, 'Invalid URL'))
    assert 'Open Directly' not in page


def test_present_is_500_html():
    response = present('https://example.com/', MissingUrlError())
    assert response.status == 500
    assert response.content_type == 'text/html'
    assert response.headers['Access-Control-Allow-Origin'] == '*'
    assert response.headers['X-Content-Type-Options'] == 'nosniff'


def test_encode_body():
    assert encode_body(b'raw') == b'raw'
    assert encode_body('café', 'iso8859-1') == b'caf\xe9'
    assert encode_body('привет', 'iso8859-1') == b'&#1087;&#1088;&#1080;&#1074;&#1077;&#1090;'
    assert encode_body('ok', 'no-such-codec') == b'ok'


def test_busy_port_is_reported():
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(('127.0.0.1', 0))
        s.listen()
        port = s.getsockname()[1]
        available, message = check_port_availability(port, '127.0.0.1')
    assert not available
    assert str(port) in message
