import pytest

from caddyfile_syntax.errors import (
    CaddyfilePermissionError,
    CaddyfileSyntaxError,
    ErrorKind,
    SyntaxDiagnostic,
)
from caddyfile_syntax.tokens import Position


def _diagnostic(kind=ErrorKind.UNTERMINATED_HEREDOC, expected="closing heredoc tag `EOF`"):
    return SyntaxDiagnostic(
        kind=kind,
        message="unterminated heredoc 'EOF'",
        position=Position(offset=14, byte_offset=15, line=2, column=3),
        expected=expected,
    )


def test_diagnostic_format_includes_expectation():
    assert _diagnostic().format() == (
        "2:3: UnterminatedHeredoc: unterminated heredoc 'EOF' (expected closing heredoc tag `EOF`)"
    )
    assert _diagnostic(expected=None).format() == "2:3: UnterminatedHeredoc: unterminated heredoc 'EOF'"


def test_diagnostic_to_dict_uses_byte_offset():
    data = _diagnostic().to_dict()
    assert data == {
        "kind": "UnterminatedHeredoc",
        "message": "unterminated heredoc 'EOF'",
        "expected": "closing heredoc tag `EOF`",
        "offset": 15,
        "line": 2,
        "column": 3,
    }


def test_fatal_kinds():
    assert _diagnostic().fatal
    assert _diagnostic(ErrorKind.UNTERMINATED_BLOCK).fatal
    assert not _diagnostic(ErrorKind.UNEXPECTED_TOKEN).fatal


def test_syntax_error_carries_diagnostics():
    first = _diagnostic()
    second = _diagnostic(ErrorKind.UNEXPECTED_TOKEN)
    error = CaddyfileSyntaxError([first, second])
    assert error.diagnostic is first
    assert error.kind is ErrorKind.UNTERMINATED_HEREDOC
    assert error.diagnostics == (first, second)
    assert str(error) == first.format()


def test_syntax_error_needs_a_diagnostic():
    with pytest.raises(ValueError):
        CaddyfileSyntaxError([])


def test_permission_error_suggests_command(tmp_path):
    path = tmp_path / "Caddyfile"
    error = CaddyfilePermissionError(path)
    assert error.suggested_command == f"sudo caddyfile-syntax check {path}"
    assert str(path) in str(error)

    helper = CaddyfilePermissionError(path, helper_command="sudo cat Caddyfile")
    assert helper.suggested_command == "sudo cat Caddyfile"
    assert "You can run: sudo cat Caddyfile" in str(helper)
