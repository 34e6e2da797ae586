"""
Header framing for generated .env files.

A generated file starts with a block delimited by two SEPARATOR lines.
Stripping removes every such block (and the blank lines that follow it) so
repeated pulls never stack headers on top of each other.
"""

from datetime import datetime, timezone
from typing import List, Optional, Tuple


SEPARATOR = "# " + "=" * 60
GENERATED_MARKER = "Generated by vaultenv"


def build_header(output_name: str, generated_at: Optional[datetime] = None) -> List[str]:
    """
    Build the header lines for a generated .env file.

    Args:
        output_name: File name shown in the header
        generated_at: Timestamp to record (defaults to now, UTC)

    Returns:
        Header lines without line endings, ending with a blank line
    """
    if generated_at is None:
        generated_at = datetime.now(timezone.utc)
    stamp = generated_at.strftime("%Y-%m-%d %H:%M:%S UTC")

    return [
        SEPARATOR,
        f"# {output_name}",
        f"# {GENERATED_MARKER} from 1Password on {stamp}",
        "# Do not commit this file. Regenerate it with `vaultenv pull`.",
        SEPARATOR,
        "",
    ]


def prepend_header(content: str, output_name: str, generated_at: Optional[datetime] = None) -> str:
    """
    Prepend a fresh header block to content.

    Leading blank lines of content are dropped so the header is always
    followed by exactly one blank line.
    """
    header = "\n".join(build_header(output_name, generated_at))
    body = content.splitlines(keepends=True)
    while body and not body[0].strip():
        body.pop(0)
    return f"{header}\n{''.join(body)}"


def _is_separator(line: str) -> bool:
    return line.rstrip("\r\n").strip() == SEPARATOR


def strip_header_lines(lines: List[str]) -> List[Tuple[int, str]]:
    """
    Remove header blocks from a list of lines.

    A block is a SEPARATOR line, everything up to the next SEPARATOR line,
    and that closing line. Blank lines directly after a removed block are
    dropped too. A SEPARATOR without a partner is kept as a normal line.

    Args:
        lines: Lines of the file (with or without line endings)

    Returns:
        List of (original index, line) for every kept line
    """
    kept: List[Tuple[int, str]] = []
    i = 0

    while i < len(lines):
        if _is_separator(lines[i]):
            close = next(
                (j for j in range(i + 1, len(lines)) if _is_separator(lines[j])),
                None,
            )
            if close is not None:
                i = close + 1
                while i < len(lines) and not lines[i].strip():
                    i += 1
                continue

        kept.append((i, lines[i]))
        i += 1

    return kept


def strip_headers(content: str) -> str:
    """
    Remove every generated header block from content.

    Idempotent: stripping already stripped content returns it unchanged.
    """
    lines = content.splitlines(keepends=True)
    return "".join(line for _, line in strip_header_lines(lines))
