"""Semantic versions and version constraints used to select chart versions."""

from __future__ import annotations

import functools
import re
from dataclasses import dataclass, replace

_IDENTIFIERS = r"[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*"
_LOOSE = re.compile(
    r"^v?([0-9]+)(?:\.([0-9]+))?(?:\.([0-9]+))?"
    rf"(?:-({_IDENTIFIERS}))?(?:\+({_IDENTIFIERS}))?$"
)
_STRICT = re.compile(
    r"^(0|[1-9][0-9]*)\.(0|[1-9][0-9]*)\.(0|[1-9][0-9]*)"
    rf"(?:-({_IDENTIFIERS}))?(?:\+({_IDENTIFIERS}))?$"
)
_IDENTIFIER_LIST = re.compile(rf"^{_IDENTIFIERS}$")

_TERM = re.compile(
    r"\s*(\^|~>|~|!=|>=|=>|<=|=<|>|<|=)?\s*"
    r"(v?[0-9xX*]+(?:\.[0-9xX*]+){0,2}(?:-[0-9A-Za-z.-]+)?(?:\+[0-9A-Za-z.-]+)?)\s*"
)
_TERM_VERSION = re.compile(
    r"^v?([0-9xX*]+)(?:\.([0-9xX*]+))?(?:\.([0-9xX*]+))?(?:-([0-9A-Za-z.-]+))?(?:\+[0-9A-Za-z.-]+)?$"
)
_HYPHEN_RANGE = re.compile(r"^\s*(\S+)\s+-\s+(\S+)\s*$")


class InvalidVersionError(ValueError):
    """A version or version metadata string is not valid."""


class InvalidConstraintError(ValueError):
    """A version constraint string is not valid."""


def _compare_prerelease(left, right):
    if left == right:
        return 0
    if not left:
        return 1
    if not right:
        return -1
    left_parts, right_parts = left.split("."), right.split(".")
    for a, b in zip(left_parts, right_parts):
        if a == b:
            continue
        a_num, b_num = a.isdigit(), b.isdigit()
        if a_num and b_num:
            return -1 if int(a) < int(b) else 1
        if a_num:
            return -1
        if b_num:
            return 1
        return -1 if a < b else 1
    return (len(left_parts) > len(right_parts)) - (len(left_parts) < len(right_parts))


@functools.total_ordering
@dataclass(frozen=True, eq=False)
class Version:
    """A semantic version; build metadata takes no part in comparisons."""

    major: int
    minor: int = 0
    patch: int = 0
    prerelease: str = ""
    metadata: str = ""

    @classmethod
    def parse(cls, text):
        """Parse a version leniently: a leading "v" and missing parts are allowed."""
        match = _LOOSE.match(text.strip()) if isinstance(text, str) else None
        if match is None:
            raise InvalidVersionError(f"Invalid Semantic Version: {text!r}")
        major, minor, patch, pre, meta = match.groups()
        return cls(int(major), int(minor or 0), int(patch or 0), pre or "", meta or "")

    def with_metadata(self, metadata):
        """Return a copy of this version carrying the given build metadata."""
        if metadata and not _IDENTIFIER_LIST.match(metadata):
            raise InvalidVersionError("Invalid Metadata string")
        return replace(self, metadata=metadata)

    def compare(self, other):
        """Return -1, 0 or 1 as this version precedes, equals or follows other."""
        mine = (self.major, self.minor, self.patch)
        theirs = (other.major, other.minor, other.patch)
        if mine != theirs:
            return -1 if mine < theirs else 1
        return _compare_prerelease(self.prerelease, other.prerelease)

    def __eq__(self, other):
        if not isinstance(other, Version):
            return NotImplemented
        return self.compare(other) == 0

    def __lt__(self, other):
        if not isinstance(other, Version):
            return NotImplemented
        return self.compare(other) < 0

    def __hash__(self):
        return hash((self.major, self.minor, self.patch, self.prerelease))

    def __str__(self):
        text = f"{self.major}.{self.minor}.{self.patch}"
        if self.prerelease:
            text += f"-{self.prerelease}"
        if self.metadata:
            text += f"+{self.metadata}"
        return text


def parse_version(text):
    """Parse a strict semantic version (MAJOR.MINOR.PATCH), allowing a leading "v"."""
    if not isinstance(text, str):
        raise InvalidVersionError(f"Invalid Semantic Version: {text!r}")
    candidate = text[1:] if text.startswith("v") else text
    match = _STRICT.match(candidate)
    if match is None:
        raise InvalidVersionError(f"Invalid Semantic Version: {text!r}")
    major, minor, patch, pre, meta = match.groups()
    return Version(int(major), int(minor), int(patch), pre or "", meta or "")


def _is_wild(part):
    return part is None or part in ("x", "X", "*")


def _make_term(operator, version_text, source):
    match = _TERM_VERSION.match(version_text)
    if match is None:
        raise InvalidConstraintError(f"improper constraint: {source}")
    parts = match.groups()[:3]
    pre = match.group(4) or ""
    level = next((index for index, part in enumerate(parts) if _is_wild(part)), None)
    numbers = [0 if _is_wild(part) else int(part) for part in parts]
    if level is not None:
        numbers[level:] = [0] * (3 - level)
    base = Version(numbers[0], numbers[1], numbers[2], pre)
    operator = operator or "="

    def same_prefix(v, length):
        return (v.major, v.minor, v.patch)[:length] == (base.major, base.minor, base.patch)[:length]

    def equal(v):
        return v == base if level is None else same_prefix(v, level)

    def greater(v):
        if level is None:
            return v > base
        if level == 0:
            return False
        return (v.major, v.minor)[:level] > (base.major, base.minor)[:level]

    def less_equal(v):
        if level is None:
            return v <= base
        if level == 0:
            return True
        return (v.major, v.minor)[:level] <= (base.major, base.minor)[:level]

    def tilde(v):
        if v < base:
            return False
        if level == 0:
            return True
        if level == 1:
            return v.major == base.major
        return v.major == base.major and v.minor == base.minor

    def caret(v):
        if v < base:
            return False
        if level == 0:
            return True
        if base.major > 0 or level == 1:
            return v.major == base.major
        if base.minor > 0 or level == 2:
            return v.major == 0 and v.minor == base.minor
        return v.major == 0 and v.minor == 0 and v.patch == base.patch

    checks = {
        "=": equal,
        "!=": lambda v: not equal(v),
        ">": greater,
        "<": lambda v: v < base,
        ">=": lambda v: v >= base,
        "=>": lambda v: v >= base,
        "<=": less_equal,
        "=<": less_equal,
        "~": tilde,
        "~>": tilde,
        "^": caret,
    }
    check = checks[operator]

    def term(version):
        if version.prerelease and not base.prerelease:
            return False
        return check(version)

    return term


class Constraint:
    """A set of version constraints such as ">=1.0.0, <2.0.0 || ^3"."""

    def __init__(self, text):
        if not isinstance(text, str) or not text.strip():
            raise InvalidConstraintError(f"improper constraint: {text}")
        self.text = text
        self._groups = [self._parse_group(group, text) for group in text.split("||")]

    @staticmethod
    def _parse_group(group, source):
        terms = []
        for segment in group.split(","):
            hyphen = _HYPHEN_RANGE.match(segment)
            if hyphen:
                terms.append(_make_term(">=", hyphen.group(1), source))
                terms.append(_make_term("<=", hyphen.group(2), source))
                continue
            if not segment.strip():
                raise InvalidConstraintError(f"improper constraint: {source}")
            position = 0
            while position < len(segment):
                match = _TERM.match(segment, position)
                if match is None or match.end() == position:
                    raise InvalidConstraintError(f"improper constraint: {source}")
                terms.append(_make_term(match.group(1), match.group(2), source))
                position = match.end()
        return terms

    def check(self, version):
        """Return whether version satisfies the constraint."""
        if isinstance(version, str):
            version = Version.parse(version)
        return any(all(term(version) for term in group) for group in self._groups)

    def __str__(self):
        return self.text