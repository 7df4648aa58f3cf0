"""
Display formats such as "YYYY-MM-DD HH:mm:ss" translated to strftime.
Text inside [brackets] or 'single quotes' is literal; any other unquoted
letter that is not a known token makes the format invalid.
"""
from __future__ import annotations

import re

_TOKENS = {
    "YYYY": "%Y",
    "YY": "%y",
    "MMMM": "%B",
    "MMM": "%b",
    "MM": "%m",
    "DD": "%d",
    "dddd": "%A",
    "ddd": "%a",
    "HH": "%H",
    "hh": "%I",
    "mm": "%M",
    "ss": "%S",
    "A": "%p",
    "Z": "%z",
}

_SCANNER = re.compile(
    r"\[(?P<bracket>[^\]]*)\]|'(?P<quoted>[^']*)'|(?P<token>"
    + "|".join(sorted((re.escape(t) for t in _TOKENS), key=len, reverse=True))
    + r")|(?P<letter>[A-Za-z])|(?P<other>.)",
    re.DOTALL,
)


def to_strftime(fmt: str) -> str:
    if not fmt or not fmt.strip():
        raise ValueError("Date-time format must not be empty")
    out = []
    saw_token = False
    for m in _SCANNER.finditer(fmt):
        if m.group("token"):
            out.append(_TOKENS[m.group("token")])
            saw_token = True
        elif m.group("letter"):
            raise ValueError(f"Invalid date-time format token {m.group('letter')!r}")
        else:
            literal = m.group("bracket") or m.group("quoted") or m.group("other") or ""
            out.append(literal.replace("%", "%%"))
    if not saw_token:
        raise ValueError("Date-time format has no date or time tokens")
    return "".join(out)
