"""Merging the tool-owned block into the shared instruction document.

The shared document (GEMINI.md) is owned by two parties. Everything before
the first occurrence of ``MARKER`` belongs to the user and is never
altered beyond trimming trailing whitespace. Everything from the marker to
end of file belongs to MineKit and is replaced wholesale on every install
or upgrade, and removed on uninstall.

If the marker appears more than once, the first occurrence wins: a copy
of the block pasted further down by hand is treated as tool-owned and
discarded along with the rest of the suffix.
"""

from __future__ import annotations

from .exceptions import MergeError

MARKER = "# Mine - Antigravity Workflow Framework"


def decode_document(raw: bytes | None) -> str | None:
    """Decode the shared document, keeping absence distinct from empty.

    Raises:
        MergeError: If the document is not valid UTF-8
    """
    if raw is None:
        return None
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as e:
        msg = f"Managed document is not valid UTF-8: {e}"
        raise MergeError(msg) from e


def has_marker(existing: str | None, marker: str = MARKER) -> bool:
    """Whether the document already carries a managed block."""
    return existing is not None and marker in existing


def user_prefix(existing: str | None, marker: str = MARKER) -> str:
    """User-owned content before the first marker, trailing whitespace trimmed."""
    if existing is None:
        return ""
    offset = existing.find(marker)
    prefix = existing if offset == -1 else existing[:offset]
    return prefix.rstrip()


def merge(existing: str | None, marker: str, new_managed_content: str) -> str:
    """Produce the document with the managed block replaced or appended.

    Args:
        existing: Current document text, or None if the file is absent
        marker: Header line delimiting the tool-owned suffix
        new_managed_content: Block to install, starting with the marker

    Returns:
        ``prefix + "\\n" + new_managed_content``

    Raises:
        ValueError: If the new content does not start with the marker
    """
    if not new_managed_content.startswith(marker):
        msg = "Managed content must begin with the marker line"
        raise ValueError(msg)
    return user_prefix(existing, marker) + "\n" + new_managed_content


def strip(existing: str, marker: str = MARKER) -> str | None:
    """Remove the managed block from the document.

    Returns:
        The remaining text, the input unchanged if it has no block, or
        None when nothing but whitespace would remain and the file
        should be deleted instead.
    """
    if marker not in existing:
        return existing
    prefix = user_prefix(existing, marker)
    if not prefix:
        return None
    return prefix + "\n"
