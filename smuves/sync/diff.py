"""SMUVES — Rich-text body diff.

Word-level diff between the snapshot body and the edited body, rendered as
HTML with ``<ins>``/``<del>``/``<span>`` runs for the review screen.
"""

import html
import re
from difflib import SequenceMatcher
from typing import List, Tuple

# Operation codes, in the order they appear in a rendered diff
DELETE = -1
EQUAL = 0
INSERT = 1

_TOKEN_RE = re.compile(r"\s+|[^\s]+")

Diff = List[Tuple[int, str]]


def _tokenize(text: str) -> List[str]:
    """Split into alternating word / whitespace tokens, keeping both."""
    return _TOKEN_RE.findall(text)


def compute_diff(old: str, new: str) -> Diff:
    """Return ``(op, text)`` runs turning ``old`` into ``new``.

    Matching happens on whole words, so a changed word shows up as one
    deletion plus one insertion instead of scattered characters.
    """
    old_tokens = _tokenize(old or "")
    new_tokens = _tokenize(new or "")
    matcher = SequenceMatcher(None, old_tokens, new_tokens, autojunk=False)

    diffs: Diff = []
    for tag, i1, i2, j1, j2 in matcher.get_opcodes():
        if tag == "equal":
            _append(diffs, EQUAL, "".join(old_tokens[i1:i2]))
            continue
        if tag in ("delete", "replace"):
            _append(diffs, DELETE, "".join(old_tokens[i1:i2]))
        if tag in ("insert", "replace"):
            _append(diffs, INSERT, "".join(new_tokens[j1:j2]))
    return _absorb_whitespace(diffs)


def _append(diffs: Diff, op: int, text: str) -> None:
    if not text:
        return
    if diffs and diffs[-1][0] == op:
        diffs[-1] = (op, diffs[-1][1] + text)
    else:
        diffs.append((op, text))


def _absorb_whitespace(diffs: Diff) -> Diff:
    """Fold lone-whitespace equalities between edits into the edits.

    ``<del>a</del> <ins>b</ins>`` style output around every word is hard to
    read; a single space sandwiched between two edits becomes part of both.
    """
    merged: Diff = []
    i = 0
    while i < len(diffs):
        op, text = diffs[i]
        sandwiched = (
            op == EQUAL
            and text.isspace()
            and 0 < i < len(diffs) - 1
            and diffs[i - 1][0] != EQUAL
            and diffs[i + 1][0] != EQUAL
        )
        if sandwiched:
            for target in (DELETE, INSERT):
                _append(merged, target, text)
        else:
            _append(merged, op, text)
        i += 1
    return _regroup(merged)


def _regroup(diffs: Diff) -> Diff:
    """Collapse consecutive edit runs into one deletion then one insertion."""
    out: Diff = []
    pending_del, pending_ins = "", ""
    for op, text in diffs:
        if op == DELETE:
            pending_del += text
        elif op == INSERT:
            pending_ins += text
        else:
            _append(out, DELETE, pending_del)
            _append(out, INSERT, pending_ins)
            pending_del, pending_ins = "", ""
            _append(out, EQUAL, text)
    _append(out, DELETE, pending_del)
    _append(out, INSERT, pending_ins)
    return out


def render_html(diffs: Diff) -> str:
    """Render diff runs as pretty HTML."""
    parts = []
    for op, text in diffs:
        escaped = html.escape(text, quote=False).replace("\n", "&para;<br>")
        if op == INSERT:
            parts.append(f'<ins style="background:#e6ffe6;">{escaped}</ins>')
        elif op == DELETE:
            parts.append(f'<del style="background:#ffe6e6;">{escaped}</del>')
        else:
            parts.append(f"<span>{escaped}</span>")
    return "".join(parts)


def body_diff_html(old: str, new: str) -> str:
    return render_html(compute_diff(old, new))
