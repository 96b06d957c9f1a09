import pytest

from caddyfile_syntax.caddyfile_parser import parse_caddyfile_text, parse_single_directive
from caddyfile_syntax.models import MATCHER_NAMED, MATCHER_WILDCARD, Node, NodeBuilder, NodeType
from caddyfile_syntax.tokens import START_POSITION, Token, TokenKind, advance_position


def _token(kind, text, start=START_POSITION):
    return Token(kind=kind, text=text, start=start, end=advance_position(start, text))


def test_builder_tracks_span():
    first = _token(TokenKind.DIRECTIVE_NAME, "respond")
    second = _token(TokenKind.ARGUMENT, "ok", advance_position(first.end, " "))
    builder = NodeBuilder(NodeType.DIRECTIVE, START_POSITION)
    builder.add(first, "name")
    builder.add(second)
    node = builder.build()
    assert node.start == first.start
    assert node.end == second.end
    assert node.labels == ("name", None)
    assert node.text_of("respond ok") == "respond ok"


def test_anchored_builder_keeps_its_start():
    later = advance_position(START_POSITION, "\n\n")
    token = _token(TokenKind.SITE_ADDRESS, "example.com", later)
    builder = NodeBuilder(NodeType.SOURCE_FILE, START_POSITION, anchored=True)
    builder.add(token)
    assert builder.build().start == START_POSITION


def test_nodes_are_immutable():
    node = parse_single_directive("respond ok")
    with pytest.raises(AttributeError):
        node.type = NodeType.BLOCK  # type: ignore[misc]


def test_matcher_variants():
    wildcard = parse_single_directive("file_server *").matcher
    assert wildcard.variant == MATCHER_WILDCARD
    named = parse_single_directive("reverse_proxy @api localhost:9000").matcher
    assert named.variant == MATCHER_NAMED
    assert named.name == "@api"


def test_heredoc_value_strips_closing_indent():
    directive = parse_single_directive("respond <<HTML\n\t\t<p>hi</p>\n\t\t\t<b>x</b>\n\t\tHTML\n")
    (heredoc,) = directive.arguments
    assert heredoc.heredoc_value == "<p>hi</p>\n\t<b>x</b>"


def test_empty_heredoc():
    (heredoc,) = parse_single_directive("respond <<EOF\nEOF").arguments
    assert heredoc.heredoc_value == ""


def test_walk_and_tokens():
    tree = parse_caddyfile_text("example.com {\n\trespond ok\n}\n")
    assert [node.type for node in tree.walk()] == [
        NodeType.SOURCE_FILE,
        NodeType.SITE_BLOCK,
        NodeType.BLOCK,
        NodeType.DIRECTIVE,
    ]
    assert [token.text for token in tree.tokens()] == ["example.com", "{", "respond", "ok", "}"]


def test_source_file_sexp():
    tree = parse_caddyfile_text("example.com {\n\trespond ok\n}\n")
    assert tree.sexp() == (
        "(source_file (site_block name: (site_address) "
        "(block body: (directive name: (directive_name) (argument)))))"
    )


def test_to_dict_keeps_fields_and_spans():
    tree = parse_caddyfile_text("example.com {\n}\n")
    data = tree.to_dict()
    site = data["children"][0]
    assert site["type"] == "site_block"
    assert site["children"][0] == {
        "kind": "site_address",
        "text": "example.com",
        "start": {"offset": 0, "line": 1, "column": 1},
        "end": {"offset": 11, "line": 1, "column": 12},
        "field": "name",
    }
    assert site["children"][1]["type"] == "block"
    assert data["end"]["offset"] == len("example.com {\n}\n")


def test_node_without_name():
    block = Node(NodeType.BLOCK, (), (), START_POSITION, START_POSITION)
    assert block.name is None
    assert block.variant is None
    assert block.heredoc_value is None


def test_named_children_skip_punctuation():
    tree = parse_caddyfile_text("example.com {\n\trespond ok\n}\n")
    site = tree.children[0]
    block = site.block
    assert [type(child).__name__ for child in site.named_children] == ["Token", "Node"]
    assert len(block.children) == 3
    assert block.named_children == (block.children[1],)
    assert block.named_children[0].type is NodeType.DIRECTIVE
