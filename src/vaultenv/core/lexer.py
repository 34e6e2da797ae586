"""
Structure-preserving .env file lexer.

Parses a .env file into an ordered list of lines (comments, blanks and
variables) plus the flat list of variables. The line list is what lets a
template or a regenerated .env keep every comment and blank line in place:

    write(parse(content).lines) == content

holds for any header-free file whose variable values are written in their
canonical form (no inline comments, no redundant quotes).
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from functools import reduce
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

from . import errors
from .headers import strip_header_lines


BOM = "\ufeff"
VARIABLE_PATTERN = re.compile(r"^(export\s+)?([A-Za-z_][A-Za-z0-9_]*)=(.*)$")
INLINE_COMMENT = re.compile(r"\s+#")


class LineType(Enum):
    """Kinds of lines kept in the document structure."""
    COMMENT = "comment"
    EMPTY = "empty"
    VARIABLE = "variable"


@dataclass(frozen=True)
class EnvLine:
    """A single structural line of a .env file."""
    type: LineType
    content: str = ""  # Original text, comments only
    key: Optional[str] = None
    value: Optional[str] = None
    has_export: bool = False

    @classmethod
    def comment(cls, content: str) -> "EnvLine":
        return cls(LineType.COMMENT, content=content)

    @classmethod
    def empty(cls) -> "EnvLine":
        return cls(LineType.EMPTY)

    @classmethod
    def variable(cls, key: str, value: str, has_export: bool = False) -> "EnvLine":
        return cls(LineType.VARIABLE, key=key, value=value, has_export=has_export)

    def __repr__(self):
        if self.type == LineType.VARIABLE:
            export = "export " if self.has_export else ""
            return f"EnvLine({self.type.value}, {export}{self.key}={self.value})"
        if self.type == LineType.COMMENT:
            return f"EnvLine({self.type.value}, {repr(self.content[:20])})"
        return f"EnvLine({self.type.value})"


@dataclass(frozen=True)
class EnvVariable:
    """A variable parsed from a .env file."""
    key: str
    value: str
    comment: Optional[str] = None  # Text of the comment line directly above
    line: int = 0  # 1-based line number in the file as read
    has_export: bool = False


@dataclass
class ParseResult:
    """Result of parsing a .env file."""
    variables: List[EnvVariable] = field(default_factory=list)
    lines: List[EnvLine] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def keys(self) -> List[str]:
        return [variable.key for variable in self.variables]


@dataclass(frozen=True)
class _State:
    """Accumulator threaded through the line fold."""
    pending_comment: Optional[str] = None
    lines: Tuple[EnvLine, ...] = ()
    variables: Tuple[EnvVariable, ...] = ()
    errors: Tuple[str, ...] = ()


def parse_value(raw: str) -> str:
    """
    Parse the value part of a KEY=VALUE line.

    Quoted values run up to the next matching quote. Unquoted values are cut
    at the first '#' that follows whitespace, so `a # note` becomes `a`
    while `http://x#frag` is kept whole.
    """
    trimmed = raw.strip()

    for quote in ('"', "'"):
        if trimmed.startswith(quote):
            end = trimmed.find(quote, 1)
            if end != -1:
                return trimmed[1:end]

    return INLINE_COMMENT.split(trimmed, maxsplit=1)[0].strip()


class Lexer:
    """
    Line-by-line lexer for .env content.

    The lexer strips a leading BOM and any generated header block, then
    folds each physical line into the parse state.
    """

    def __init__(self, content: str):
        self.content = content[len(BOM):] if content.startswith(BOM) else content
        self.lines = self.content.split("\n")

    def parse(self) -> ParseResult:
        """
        Parse content into a ParseResult.

        Returns:
            ParseResult with variables, structural lines and parse errors
        """
        kept = strip_header_lines(self.lines)
        state = reduce(
            lambda acc, item: self._step(acc, item[0] + 1, item[1].rstrip("\r")),
            kept,
            _State(),
        )
        return ParseResult(
            variables=list(state.variables),
            lines=list(state.lines),
            errors=list(state.errors),
        )

    @staticmethod
    def _step(state: _State, line_number: int, line: str) -> _State:
        """Fold one line into the state."""
        stripped = line.strip()

        if not stripped:
            return _State(
                pending_comment=None,
                lines=state.lines + (EnvLine.empty(),),
                variables=state.variables,
                errors=state.errors,
            )

        if stripped.startswith('#'):
            return _State(
                pending_comment=stripped[1:].strip(),
                lines=state.lines + (EnvLine.comment(line),),
                variables=state.variables,
                errors=state.errors,
            )

        match = VARIABLE_PATTERN.match(stripped)
        if match:
            has_export = match.group(1) is not None
            key = match.group(2)
            value = parse_value(match.group(3))
            variable = EnvVariable(
                key=key,
                value=value,
                comment=state.pending_comment or None,
                line=line_number,
                has_export=has_export,
            )
            return _State(
                pending_comment=None,
                lines=state.lines + (EnvLine.variable(key, value, has_export),),
                variables=state.variables + (variable,),
                errors=state.errors,
            )

        if '=' in stripped:
            return _State(
                pending_comment=state.pending_comment,
                lines=state.lines,
                variables=state.variables,
                errors=state.errors + (f"Line {line_number}: Invalid variable name",),
            )

        # No '=' at all: ignored
        return state


def parse(content: str) -> ParseResult:
    """
    Parse .env file content.

    Args:
        content: String content of a .env file

    Returns:
        ParseResult
    """
    return Lexer(content).parse()


def parse_file(path: Union[str, Path]) -> ParseResult:
    """
    Read and parse a .env file.

    Raises:
        VaultEnvError: ENV_FILE_NOT_FOUND if the file does not exist
        VaultEnvError: FILE_READ_FAILED if it cannot be read as UTF-8
    """
    env_path = Path(path)
    if not env_path.is_file():
        raise errors.env_file_not_found(str(path))

    try:
        content = env_path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise errors.file_read_failed(str(path), str(exc)) from exc
    return parse(content)


def validate(result: ParseResult, path: Union[str, Path]) -> None:
    """
    Check that a parse produced at least one variable.

    Raises:
        VaultEnvError: ENV_FILE_EMPTY if there are no variables
    """
    if not result.variables:
        raise errors.env_file_empty(str(path))


def get_keys(result: ParseResult) -> Dict[str, str]:
    """Map of key to value; the last occurrence of a key wins."""
    return {variable.key: variable.value for variable in result.variables}


def find_duplicate_keys(variables: List[EnvVariable]) -> List[str]:
    """Keys defined more than once, in order of first repetition."""
    seen = set()
    duplicates: List[str] = []
    for variable in variables:
        if variable.key in seen and variable.key not in duplicates:
            duplicates.append(variable.key)
        seen.add(variable.key)
    return duplicates


def format_value(value: str) -> str:
    """Quote a value when writing it back would otherwise change it."""
    needs_quotes = (
        any(ch.isspace() for ch in value)
        or '#' in value
        or value.startswith(('"', "'"))
    )
    if not needs_quotes:
        return value
    if '"' not in value:
        return f'"{value}"'
    if "'" not in value:
        return f"'{value}'"
    return value


def write(lines: List[EnvLine], values: Optional[Dict[str, str]] = None) -> str:
    """
    Reconstruct .env content from structural lines.

    Args:
        lines: Lines from a ParseResult
        values: Optional replacement values by key (e.g. resolved secrets)

    Returns:
        .env file content
    """
    out = []
    for line in lines:
        if line.type == LineType.EMPTY:
            out.append("")
        elif line.type == LineType.COMMENT:
            out.append(line.content)
        else:
            value = line.value if values is None else values.get(line.key, line.value)
            export_prefix = "export " if line.has_export else ""
            out.append(f"{export_prefix}{line.key}={format_value(value or '')}")
    return "\n".join(out)
