"""Pattern recognisers for every Caddyfile token family.

Each :class:`Classifier` answers one question: how many characters of
``text`` starting at ``pos`` belong to a token of its kind (0 when none).
Picking between classifiers that match at the same position is the job of
:mod:`caddyfile_syntax.lexer`.
"""
from __future__ import annotations

import ipaddress
import re
from dataclasses import dataclass
from typing import Callable

from .errors import ErrorKind
from .tokens import TokenKind


class LexicalError(Exception):
    """Raised by a classifier that recognised its opener but not a full token."""

    def __init__(self, kind: ErrorKind, offset: int, message: str, expected: str | None = None):
        super().__init__(message)
        self.kind = kind
        self.offset = offset
        self.message = message
        self.expected = expected


# ---------------------------------------------------------------------------
# Character classes
# ---------------------------------------------------------------------------

# `?` (set default), `>` (defer), `!` (negate) and `%` (url escapes) may open
# an argument. `=` and `@` only continue one so `=404` stays a status code
# fallback and `@name` stays a matcher reference.
ARGUMENT_BASE_CHARS = r"a-zA-Z\-_+.\\/*:$0-9"
ARGUMENT_FIRST_CHARS = ARGUMENT_BASE_CHARS + r"?>!%"
ARGUMENT_CHARS = ARGUMENT_FIRST_CHARS + r"@="
# Directive names take `?`, `>`, `-` and `+` header prefixes and `.` for
# domain lists, but never digits.
DIRECTIVE_NAME_CHARS = r"a-zA-Z_\-+?.>"
PATH_CHARS = r"a-zA-Z0-9\-_%\\/."
URL_PATH_CHARS = r"A-Za-z0-9\-_.~!&'()*+,;=:#"

# ---------------------------------------------------------------------------
# Building blocks
# ---------------------------------------------------------------------------

IPV4_SHAPE = r"[0-9]{1,3}(?:\.[0-9]{1,3}){3}"
IPV6_SHAPE = r"[0-9a-fA-F]{0,4}(?::[0-9a-fA-F]{0,4}){2,8}(?:\.[0-9]{1,3}){0,3}"
ZONE = r"%[0-9a-zA-Z]+"
BRACKETED_IPV6 = rf"\[{IPV6_SHAPE}(?:{ZONE})?\]"
PORT = r"[0-9]{1,5}"
LABEL = r"[a-z](?:[a-z0-9\-]*[a-z0-9])?"
TLD = r"(?:xn--[a-z0-9]+|[a-z]{2,})"
HOSTNAME = rf"{LABEL}(?:\.{LABEL})*\.{TLD}"
BARE_HOSTNAME = rf"{LABEL}(?:\.{LABEL})*"
URL_PATH = rf"(?:/(?:[{URL_PATH_CHARS}]|%[0-9a-fA-F]{{2}})*)*"
IDENTIFIER = r"[a-zA-Z0-9][a-zA-Z0-9_.\[\]\-]*"
ENVIRONMENT_VARIABLE = rf"\{{\${IDENTIFIER}(?::[^}}\n\r]+)?\}}"

_IPV4_RE = re.compile(IPV4_SHAPE)
_ESCAPE_RE = re.compile(r"\\(?:[0-9]{2,3}|x[0-9a-fA-F]{2,}|u[0-9a-fA-F]{4}|U[0-9a-fA-F]{8}|[^xuU])")


def is_ipv4_literal(text: str) -> bool:
    """Return True for a dotted quad whose octets are all within 0-255."""
    if _IPV4_RE.fullmatch(text) is None:
        return False
    return all(int(octet) <= 255 for octet in text.split("."))


def is_ipv6_literal(text: str) -> bool:
    address, _, zone = text.partition("%")
    if "%" in text and not zone:
        return False
    try:
        ipaddress.IPv6Address(address)
    except ValueError:
        return False
    return True


def is_ip_literal(text: str) -> bool:
    return is_ipv4_literal(text) or is_ipv6_literal(text)


def _valid_address(match: re.Match) -> bool:
    address = match.groupdict().get("address")
    if address is None:
        return True
    if address.startswith("["):
        return is_ipv6_literal(address[1:-1])
    if _IPV4_RE.fullmatch(address):
        return is_ipv4_literal(address)
    return True


def _valid_ip_or_cidr(match: re.Match) -> bool:
    ip = match.group("ip")
    prefix = match.group("prefix")
    if is_ipv4_literal(ip):
        limit = 32
    elif is_ipv6_literal(ip):
        limit = 128
    else:
        return False
    return prefix is None or int(prefix) <= limit


def _valid_ipv6_or_cidr(match: re.Match) -> bool:
    prefix = match.group("prefix")
    if not is_ipv6_literal(match.group("ip")):
        return False
    return prefix is None or int(prefix) <= 128


# ---------------------------------------------------------------------------
# Scanners for tokens with their own error reporting
# ---------------------------------------------------------------------------


def scan_interpreted_string(text: str, pos: int) -> int:
    if not text.startswith('"', pos):
        return 0
    idx = pos + 1
    length = len(text)
    while idx < length:
        ch = text[idx]
        if ch == '"':
            return idx + 1 - pos
        if ch == "\\":
            if idx + 1 >= length:
                break
            match = _ESCAPE_RE.match(text, idx)
            if match is None:
                raise LexicalError(
                    ErrorKind.INVALID_ESCAPE_SEQUENCE,
                    idx,
                    f"invalid escape sequence {text[idx:idx + 2]!r}",
                    expected=r"\c, \ooo, \xHH, \uHHHH or \UHHHHHHHH",
                )
            idx = match.end()
            continue
        if ch in "\r\n":
            break
        idx += 1
    raise LexicalError(ErrorKind.UNTERMINATED_STRING, pos, "unterminated string literal", expected="closing '\"'")


def scan_raw_string(text: str, pos: int) -> int:
    if not text.startswith("`", pos):
        return 0
    closing = text.find("`", pos + 1)
    if closing == -1:
        raise LexicalError(ErrorKind.UNTERMINATED_STRING, pos, "unterminated raw string literal", expected="closing '`'")
    return closing + 1 - pos


# ---------------------------------------------------------------------------
# Classifiers
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Classifier:
    name: str
    kind: TokenKind
    patterns: tuple[re.Pattern, ...] = ()
    precedence: int = 0
    validate: Callable[[re.Match], bool] | None = None
    scanner: Callable[[str, int], int] | None = None

    def match(self, text: str, pos: int) -> int:
        """Length of the longest token of this family at ``pos``."""
        if self.scanner is not None:
            return self.scanner(text, pos)
        best = 0
        for pattern in self.patterns:
            found = pattern.match(text, pos)
            if found is None or found.end() == pos:
                continue
            if self.validate is not None and not self.validate(found):
                continue
            best = max(best, found.end() - pos)
        return best

    def __repr__(self) -> str:
        return f"Classifier({self.name})"


def _compile(*patterns: str) -> tuple[re.Pattern, ...]:
    return tuple(re.compile(pattern) for pattern in patterns)


NETWORK_ADDRESS_PATTERNS = _compile(
    rf"(?P<address>{IPV4_SHAPE}|{BRACKETED_IPV6}|{HOSTNAME})(?::(?P<port>{PORT}))?(?P<path>{URL_PATH})",
    rf"(?P<network>https|http|h2c)://(?P<address>{IPV4_SHAPE}|{BRACKETED_IPV6}|{BARE_HOSTNAME})"
    rf"(?::(?P<port>{PORT}))?(?P<path>{URL_PATH})",
    r"(?P<network>fdgram|fd)/(?P<address>[0-9]+)",
    r"(?P<network>unix\+h2c|unixgram|unixpacket|unix)/(?P<address>/[a-zA-Z0-9_\-./*]+)(?:\|(?P<perms>[0-9]{3,4}))?",
    rf"(?P<network>tcp4|tcp6|tcp|udp4|udp6|udp|ip4|ip6|ip)/(?P<address>{IPV4_SHAPE}|{BRACKETED_IPV6}|{BARE_HOSTNAME})"
    rf"(?::(?P<port>{PORT}))?",
    rf"(?P<address>{BARE_HOSTNAME}):(?P<port>{PORT})",
)

NETWORK_ADDRESS = Classifier(
    "network_address",
    TokenKind.NETWORK_ADDRESS,
    NETWORK_ADDRESS_PATTERNS,
    validate=_valid_address,
)

BARE_IPV6_OR_CIDR = Classifier(
    "bare_ipv6",
    TokenKind.BARE_IPV6_OR_CIDR,
    _compile(rf"(?P<ip>{IPV6_SHAPE}(?:{ZONE})?)(?:/(?P<prefix>[0-9]{{1,3}}))?"),
    validate=_valid_ipv6_or_cidr,
)

IP_ADDRESS_OR_CIDR = Classifier(
    "ip_address_or_cidr",
    TokenKind.IP_ADDRESS_OR_CIDR,
    _compile(rf"(?P<ip>{IPV4_SHAPE}|{IPV6_SHAPE}(?:{ZONE})?)(?:/(?P<prefix>[0-9]{{1,3}}))?"),
    validate=_valid_ip_or_cidr,
)

SITE_ADDRESS = Classifier(
    "site_address",
    TokenKind.SITE_ADDRESS,
    _compile(
        r"https?://",
        rf":{PORT}",
        rf":?{ENVIRONMENT_VARIABLE}",
        rf"(?:[a-z]+://)?(?P<address>{IPV4_SHAPE}|{BRACKETED_IPV6}|(?:\*|{LABEL})(?:\.{LABEL})*)(?::{PORT})?",
    ),
    validate=_valid_address,
)

ENVIRONMENT_VARIABLE_CLASSIFIER = Classifier(
    "environment_variable",
    TokenKind.ENVIRONMENT_VARIABLE,
    _compile(ENVIRONMENT_VARIABLE),
)

# A placeholder may end in one environment variable; nothing else nests.
PLACEHOLDER = Classifier(
    "placeholder",
    TokenKind.PLACEHOLDER,
    _compile(rf"\{{{IDENTIFIER}(?:{ENVIRONMENT_VARIABLE})?\}}"),
)

RAW_STRING = Classifier("raw_string_literal", TokenKind.RAW_STRING, scanner=scan_raw_string)
INTERPRETED_STRING = Classifier("interpreted_string_literal", TokenKind.INTERPRETED_STRING, scanner=scan_interpreted_string)

INTEGER = Classifier("int_literal", TokenKind.INTEGER, _compile(r"0|[1-9][0-9]*"))
DURATION = Classifier("duration_literal", TokenKind.DURATION, _compile(r"(?:0|[1-9][0-9]*)(?:ns|us|µs|ms|s|m|h|d)"))
STATUS_CODE_FALLBACK = Classifier("status_code_fallback", TokenKind.STATUS_CODE_FALLBACK, _compile(r"=[0-9]{3}"))

ARGUMENT = Classifier(
    "argument",
    TokenKind.ARGUMENT,
    _compile(
        rf"[{ARGUMENT_FIRST_CHARS}][{ARGUMENT_CHARS}]*",
        rf"@[{ARGUMENT_BASE_CHARS}]*@[{ARGUMENT_BASE_CHARS}@]*",
    ),
)

COMMENT = Classifier("comment", TokenKind.COMMENT, _compile(r"#[^\r\n]*"))

DIRECTIVE_NAME = Classifier("directive_name", TokenKind.DIRECTIVE_NAME, _compile(rf"[{DIRECTIVE_NAME_CHARS}]+"))
SNIPPET_NAME = Classifier("snippet_name", TokenKind.SNIPPET_NAME, _compile(r"\([a-zA-Z0-9\-_]+\)"))
NAMED_ROUTE_IDENTIFIER = Classifier(
    "named_route_identifier", TokenKind.NAMED_ROUTE_IDENTIFIER, _compile(r"&\([a-zA-Z0-9\-_]+\)")
)
MATCHER_IDENTIFIER = Classifier("matcher_identifier", TokenKind.MATCHER_IDENTIFIER, _compile(r"@[a-zA-Z0-9\-_]+"))
MATCHER_DIRECTIVE_NAME = Classifier(
    "matcher_directive_name", TokenKind.MATCHER_DIRECTIVE_NAME, _compile(r"[a-zA-Z_+]+")
)

# Path tokens outrank arguments wherever both are allowed.
PATH_MATCHER = Classifier(
    "path_matcher", TokenKind.PATH_MATCHER, _compile(rf"[/\\][{PATH_CHARS}]*\*?"), precedence=2
)
PATH = Classifier("path", TokenKind.PATH, _compile(rf"[/\\][{PATH_CHARS}]*\*?"), precedence=2)
WILDCARD = Classifier("wildcard", TokenKind.PUNCTUATION, _compile(r"\*"))

BLOCK_OPEN = Classifier("block_open", TokenKind.PUNCTUATION, _compile(r"\{"))
HEREDOC_OPEN = Classifier("heredoc_open", TokenKind.PUNCTUATION, _compile(r"<<"))

# The quoted form spans its back-quotes; the parser splits them off the
# expression text when it emits the tokens.
QUOTED_CEL_EXPRESSION = Classifier(
    "quoted_cel_expression", TokenKind.CEL_EXPRESSION, _compile(r"`[^`\r\n]+`"), precedence=2
)
BARE_CEL_EXPRESSION = Classifier("bare_cel_expression", TokenKind.CEL_EXPRESSION, _compile(r"[^\r\n]*[^\s]"))

CLASSIFIERS: dict[str, Classifier] = {
    classifier.name: classifier
    for classifier in (
        NETWORK_ADDRESS,
        BARE_IPV6_OR_CIDR,
        IP_ADDRESS_OR_CIDR,
        SITE_ADDRESS,
        ENVIRONMENT_VARIABLE_CLASSIFIER,
        PLACEHOLDER,
        RAW_STRING,
        INTERPRETED_STRING,
        INTEGER,
        DURATION,
        STATUS_CODE_FALLBACK,
        ARGUMENT,
        COMMENT,
        DIRECTIVE_NAME,
        SNIPPET_NAME,
        NAMED_ROUTE_IDENTIFIER,
        MATCHER_IDENTIFIER,
        MATCHER_DIRECTIVE_NAME,
        PATH_MATCHER,
        PATH,
        WILDCARD,
        BLOCK_OPEN,
        HEREDOC_OPEN,
        QUOTED_CEL_EXPRESSION,
        BARE_CEL_EXPRESSION,
    )
}


# ---------------------------------------------------------------------------
# Address helpers
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class NetworkAddressParts:
    network: str | None
    address: str | None
    port: int | None
    path: str | None
    perms: str | None

    def to_dict(self) -> dict:
        return {
            "network": self.network,
            "address": self.address,
            "port": self.port,
            "path": self.path,
            "perms": self.perms,
        }


def split_network_address(text: str) -> NetworkAddressParts | None:
    """Break a ``network_address`` token into its labelled parts."""
    for pattern in NETWORK_ADDRESS_PATTERNS:
        match = pattern.fullmatch(text)
        if match is None or not _valid_address(match):
            continue
        groups = match.groupdict()
        port = groups.get("port")
        return NetworkAddressParts(
            network=groups.get("network"),
            address=groups.get("address"),
            port=int(port) if port else None,
            path=groups.get("path") or None,
            perms=groups.get("perms"),
        )
    return None


_IPV4_LIKE_RE = re.compile(r"[0-9]{1,3}(?:\.[0-9]+){3}")
_BRACKET_LIKE_RE = re.compile(r"\[[^\]\s]*\]")


def invalid_address_hint(text: str, pos: int) -> str | None:
    """Describe an address-shaped token at ``pos`` that failed validation."""
    bracketed = _BRACKET_LIKE_RE.match(text, pos)
    if bracketed is not None and not is_ipv6_literal(bracketed.group()[1:-1]):
        return f"invalid IPv6 address {bracketed.group()!r}"
    dotted = _IPV4_LIKE_RE.match(text, pos)
    if dotted is not None and not is_ipv4_literal(dotted.group()):
        return f"invalid IPv4 address {dotted.group()!r}"
    return None
