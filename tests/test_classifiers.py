import pytest

from caddyfile_syntax import classifiers as cls
from caddyfile_syntax.classifiers import (
    LexicalError,
    invalid_address_hint,
    is_ip_literal,
    is_ipv4_literal,
    is_ipv6_literal,
    scan_interpreted_string,
    scan_raw_string,
    split_network_address,
)
from caddyfile_syntax.errors import ErrorKind
from caddyfile_syntax.lexer import LexContext, classify
from caddyfile_syntax.tokens import TokenKind


@pytest.mark.parametrize("text", ["0.0.0.0", "127.0.0.1", "192.168.1.254", "255.255.255.255"])
def test_ipv4_literals_are_network_addresses(text):
    assert is_ipv4_literal(text)
    assert classify(text) is TokenKind.NETWORK_ADDRESS


@pytest.mark.parametrize("text", ["256.0.0.1", "1.2.3.300", "999.999.999.999"])
def test_ipv4_octet_above_255_is_not_an_address(text):
    assert not is_ipv4_literal(text)
    assert classify(text) is not TokenKind.NETWORK_ADDRESS


def test_ipv6_literal_accepts_zone():
    assert is_ipv6_literal("fe80::1%eth0")
    assert not is_ipv6_literal("fe80::1%")
    assert not is_ipv6_literal("::zz")


def test_bare_ipv6_and_cidr():
    assert classify("::1") is TokenKind.BARE_IPV6_OR_CIDR
    assert classify("2001:db8::/32") is TokenKind.BARE_IPV6_OR_CIDR


def test_ip_cidr_in_matcher_fields():
    assert classify("192.168.0.0/16", LexContext.MATCHER_FIELD) is TokenKind.IP_ADDRESS_OR_CIDR
    assert classify("::1", LexContext.MATCHER_FIELD) is TokenKind.IP_ADDRESS_OR_CIDR


@pytest.mark.parametrize(
    "text",
    [
        "localhost:9000",
        "example.com",
        "example.com:8443/api",
        "https://example.com/path",
        "h2c://backend:8080",
        "[::1]:2019",
        "fd/3",
        "fdgram/4",
        "unix//run/caddy.sock",
        "unix//run/caddy.sock|0660",
        "tcp/localhost:2019",
        "udp6/[::1]:53",
    ],
)
def test_network_address_shapes(text):
    assert classify(text) is TokenKind.NETWORK_ADDRESS


def test_bare_single_label_is_an_argument():
    assert classify("localhost") is TokenKind.ARGUMENT


def test_split_network_address_parts():
    parts = split_network_address("unix//run/caddy.sock|0660")
    assert parts.network == "unix"
    assert parts.address == "/run/caddy.sock"
    assert parts.perms == "0660"

    parts = split_network_address("tcp/localhost:2019")
    assert (parts.network, parts.address, parts.port) == ("tcp", "localhost", 2019)

    parts = split_network_address("https://example.com/path")
    assert (parts.network, parts.address, parts.path) == ("https", "example.com", "/path")

    assert split_network_address("not an address") is None


def test_literals():
    assert classify("0") is TokenKind.INTEGER
    assert classify("8080") is TokenKind.INTEGER
    assert classify("007") is TokenKind.ARGUMENT
    assert classify("10s") is TokenKind.DURATION
    assert classify("250ms") is TokenKind.DURATION
    assert classify("5µs") is TokenKind.DURATION
    assert classify('"hi there"') is TokenKind.INTERPRETED_STRING
    assert classify('`raw "text"`') is TokenKind.RAW_STRING


def test_status_code_fallback_beats_argument():
    assert classify("=404") is TokenKind.STATUS_CODE_FALLBACK
    assert classify("=4040") is None


@pytest.mark.parametrize("text", ["?Cache-Control", ">Set-Cookie", "!Foo", "%2F", "-Server", "gzip"])
def test_argument_prefix_characters(text):
    assert classify(text) is TokenKind.ARGUMENT


def test_argument_with_several_at_signs():
    assert classify("@longhorn-ui@/share/lib", LexContext.MATCHER) is TokenKind.ARGUMENT
    assert classify("@api", LexContext.MATCHER) is TokenKind.MATCHER_IDENTIFIER


def test_path_matcher_outranks_argument():
    assert classify("/api/*", LexContext.MATCHER) is TokenKind.PATH_MATCHER
    assert classify("/api/*", LexContext.DIRECTIVE_FIELD) is TokenKind.ARGUMENT
    assert classify("/static/app.js", LexContext.MATCHER_FIELD) is TokenKind.PATH


def test_placeholders_and_environment_variables():
    assert classify("{$HOME}") is TokenKind.ENVIRONMENT_VARIABLE
    assert classify("{$PORT:8080}") is TokenKind.ENVIRONMENT_VARIABLE
    assert classify("{http.request.host}") is TokenKind.PLACEHOLDER
    assert classify("{vars.site{$SUFFIX}}") is TokenKind.PLACEHOLDER


def test_placeholder_only_allows_one_trailing_environment_variable():
    assert classify("{a{$B}{$C}}") is None
    assert classify("{http.request.host:{$HOME}}") is None
    assert classify("{{$HOME}x}") is None


@pytest.mark.parametrize(
    "text",
    ["example.com", "*.example.com", "localhost", "localhost:8080", ":443", "{$DOMAIN}", ":{$PORT}", "[::1]:8080", "http://", "https://example.com"],
)
def test_site_addresses(text):
    assert classify(text, LexContext.SITE_ADDRESS) is TokenKind.SITE_ADDRESS


def test_site_address_rejects_bad_ipv4():
    assert classify("300.1.1.1", LexContext.SITE_ADDRESS) is None


def test_interpreted_string_escapes():
    assert scan_interpreted_string(r'"a\"b"', 0) == 6
    assert scan_interpreted_string(r'"\101\x41\u0041\U00000041"', 0) == 26
    assert scan_interpreted_string("plain", 0) == 0


@pytest.mark.parametrize("text", [r'"\x4"', r'"\u12"', r'"\U1234"'])
def test_invalid_escape_sequence(text):
    with pytest.raises(LexicalError) as excinfo:
        scan_interpreted_string(text, 0)
    assert excinfo.value.kind is ErrorKind.INVALID_ESCAPE_SEQUENCE
    assert excinfo.value.offset == 1


def test_unterminated_strings():
    with pytest.raises(LexicalError) as excinfo:
        scan_interpreted_string('"abc\nxyz"', 0)
    assert excinfo.value.kind is ErrorKind.UNTERMINATED_STRING

    with pytest.raises(LexicalError) as excinfo:
        scan_raw_string("`abc", 0)
    assert excinfo.value.kind is ErrorKind.UNTERMINATED_STRING


def test_raw_string_spans_lines():
    assert scan_raw_string("`a\nb` rest", 0) == 5


def test_comment_runs_to_line_end():
    assert cls.COMMENT.match("# hi\nnext", 0) == 4


def test_invalid_address_hint():
    assert "invalid IPv6" in invalid_address_hint("[::zz]:80", 0)
    assert invalid_address_hint("300.1.1.1 {", 0) == "invalid IPv4 address '300.1.1.1'"
    assert invalid_address_hint("example.com", 0) is None


def test_classifier_registry_names():
    assert cls.CLASSIFIERS["status_code_fallback"] is cls.STATUS_CODE_FALLBACK
    assert all(name == classifier.name for name, classifier in cls.CLASSIFIERS.items())


def test_is_ip_literal_accepts_either_family():
    assert is_ip_literal("10.0.0.1")
    assert is_ip_literal("fe80::1%eth0")
    assert not is_ip_literal("fe80::1%")
    assert not is_ip_literal("10.0.0.256")
    assert not is_ip_literal("example.com")
