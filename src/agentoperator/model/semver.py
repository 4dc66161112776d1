"""Semantic versions and npm-style version ranges.

Provided capabilities advertise a :class:`SemanticVersion`; required
capabilities carry a range expression that is parsed into a
:class:`VersionRange`.

Supported range grammar
-----------------------
* ``*``, ``x`` or an empty string match any release.
* Primitive comparators: ``>=1.2.3``, ``>1.2.3``, ``<=1.2.3``, ``<1.2.3``,
  ``=1.2.3`` (or just ``1.2.3``).
* X-ranges: ``1.x``, ``1.2.*``, ``1`` and ``1.2``.
* Caret ranges: ``^1.2.3``, ``^0.2.3``, ``^0.0.3``.
* Tilde ranges: ``~1.2.3``, ``~1.2``, ``~>1.2``.
* Hyphen ranges: ``1.2 - 2.3.4``.
* Whitespace (or ``&&``) joins comparators with AND, ``||`` with OR.

A prerelease version only satisfies a comparator set when one of the
comparators in that set carries a prerelease on the same ``MAJOR.MINOR.PATCH``
tuple.
"""

from __future__ import annotations

import functools
import re
from dataclasses import dataclass
from typing import List, Optional, Tuple, Union

_IDENT = r"[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*"

_VERSION_RE = re.compile(
    r"^\s*[v=]*\s*(\d+)(?:\.(\d+))?(?:\.(\d+))?"
    rf"(?:-({_IDENT}))?(?:\+({_IDENT}))?\s*$"
)
_PARTIAL_RE = re.compile(
    r"^[v=]*(\d+|[xX*])(?:\.(\d+|[xX*]))?(?:\.(\d+|[xX*]))?"
    rf"(?:-({_IDENT}))?(?:\+({_IDENT}))?$"
)
_HYPHEN_RE = re.compile(r"^(\S+)\s+-\s+(\S+)$")
_OPERATOR_SPACE_RE = re.compile(r"(<=|>=|~>|<|>|=|\^|~)\s+")
_TOKEN_RE = re.compile(r"^(<=|>=|~>|<|>|=|\^|~)?(.+)$")


class VersionError(ValueError):
    """Raised when a version or a range expression cannot be parsed."""


def _compare_prerelease(left: Tuple[str, ...], right: Tuple[str, ...]) -> int:
    if left == right:
        return 0
    # A release has higher precedence than any of its prereleases.
    if not left:
        return 1
    if not right:
        return -1
    for a, b in zip(left, right):
        if a == b:
            continue
        a_num, b_num = a.isdigit(), b.isdigit()
        if a_num and b_num:
            if int(a) == int(b):
                continue
            return -1 if int(a) < int(b) else 1
        if a_num:
            return -1
        if b_num:
            return 1
        return -1 if a < b else 1
    if len(left) == len(right):
        return 0
    return -1 if len(left) < len(right) else 1


@functools.total_ordering
@dataclass(frozen=True, eq=False)
class SemanticVersion:
    """A SemVer 2.0 version. Build metadata does not take part in precedence."""

    major: int
    minor: int = 0
    patch: int = 0
    prerelease: Tuple[str, ...] = ()
    build: Tuple[str, ...] = ()

    @classmethod
    def parse(cls, text: str) -> "SemanticVersion":
        """Parse ``text`` leniently: ``1`` and ``v1.0`` both become ``1.0.0``."""
        return _parse_version(text)

    @property
    def release(self) -> Tuple[int, int, int]:
        return (self.major, self.minor, self.patch)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SemanticVersion):
            return NotImplemented
        return self.release == other.release and self.prerelease == other.prerelease

    def __hash__(self) -> int:
        return hash((self.release, self.prerelease))

    def __lt__(self, other: "SemanticVersion") -> bool:
        if not isinstance(other, SemanticVersion):
            return NotImplemented
        if self.release != other.release:
            return self.release < other.release
        return _compare_prerelease(self.prerelease, other.prerelease) < 0

    def __str__(self) -> str:
        text = f"{self.major}.{self.minor}.{self.patch}"
        if self.prerelease:
            text += "-" + ".".join(self.prerelease)
        if self.build:
            text += "+" + ".".join(self.build)
        return text


@functools.lru_cache(maxsize=1024)
def _parse_version(text: str) -> SemanticVersion:
    if not isinstance(text, str):
        raise VersionError(f"Version must be a string, got {type(text).__name__}")
    match = _VERSION_RE.match(text)
    if not match:
        raise VersionError(f"Invalid semantic version: {text!r}")
    major, minor, patch, prerelease, build = match.groups()
    return SemanticVersion(
        major=int(major),
        minor=int(minor or 0),
        patch=int(patch or 0),
        prerelease=tuple(prerelease.split(".")) if prerelease else (),
        build=tuple(build.split(".")) if build else (),
    )


@dataclass(frozen=True)
class Comparator:
    """A single ``<op><version>`` test."""

    operator: str
    version: SemanticVersion

    def test(self, version: SemanticVersion) -> bool:
        if self.operator == "=":
            return version == self.version
        if self.operator == ">=":
            return version >= self.version
        if self.operator == ">":
            return version > self.version
        if self.operator == "<=":
            return version <= self.version
        if self.operator == "<":
            return version < self.version
        raise VersionError(f"Unknown comparator operator: {self.operator!r}")

    def __str__(self) -> str:
        return f"{self.operator}{self.version}"


# Matches nothing; used for expressions such as ">*".
_NOTHING = Comparator("<", SemanticVersion(0, 0, 0))


@dataclass(frozen=True)
class _Partial:
    major: Optional[int]
    minor: Optional[int]
    patch: Optional[int]
    prerelease: Tuple[str, ...] = ()

    def floor(self) -> SemanticVersion:
        return SemanticVersion(
            self.major or 0, self.minor or 0, self.patch or 0, self.prerelease
        )

    def next_major(self) -> SemanticVersion:
        return SemanticVersion((self.major or 0) + 1, 0, 0)

    def next_minor(self) -> SemanticVersion:
        return SemanticVersion(self.major or 0, (self.minor or 0) + 1, 0)

    def next_patch(self) -> SemanticVersion:
        return SemanticVersion(self.major or 0, self.minor or 0, (self.patch or 0) + 1)


def _number(group: Optional[str]) -> Optional[int]:
    if group is None or group in ("x", "X", "*"):
        return None
    return int(group)


def _parse_partial(text: str) -> _Partial:
    match = _PARTIAL_RE.match(text)
    if not match:
        raise VersionError(f"Invalid version in range: {text!r}")
    major, minor, patch = (_number(g) for g in match.groups()[:3])
    # everything after a wildcard is a wildcard too
    if major is None:
        minor = patch = None
    elif minor is None:
        patch = None
    prerelease = match.group(4)
    return _Partial(
        major,
        minor,
        patch,
        tuple(prerelease.split(".")) if prerelease and patch is not None else (),
    )


def _expand(operator: str, partial: _Partial) -> List[Comparator]:
    if partial.major is None:
        if operator in (">", "<"):
            return [_NOTHING]
        return []

    if operator in ("", "="):
        if partial.minor is None:
            return [Comparator(">=", partial.floor()), Comparator("<", partial.next_major())]
        if partial.patch is None:
            return [Comparator(">=", partial.floor()), Comparator("<", partial.next_minor())]
        return [Comparator("=", partial.floor())]

    if operator == ">=":
        return [Comparator(">=", partial.floor())]

    if operator == ">":
        if partial.minor is None:
            return [Comparator(">=", partial.next_major())]
        if partial.patch is None:
            return [Comparator(">=", partial.next_minor())]
        return [Comparator(">", partial.floor())]

    if operator == "<":
        return [Comparator("<", partial.floor())]

    if operator == "<=":
        if partial.minor is None:
            return [Comparator("<", partial.next_major())]
        if partial.patch is None:
            return [Comparator("<", partial.next_minor())]
        return [Comparator("<=", partial.floor())]

    if operator == "^":
        lower = Comparator(">=", partial.floor())
        if partial.major > 0 or partial.minor is None:
            return [lower, Comparator("<", partial.next_major())]
        if partial.minor > 0 or partial.patch is None:
            return [lower, Comparator("<", partial.next_minor())]
        return [lower, Comparator("<", partial.next_patch())]

    if operator in ("~", "~>"):
        lower = Comparator(">=", partial.floor())
        if partial.minor is None:
            return [lower, Comparator("<", partial.next_major())]
        return [lower, Comparator("<", partial.next_minor())]

    raise VersionError(f"Unknown range operator: {operator!r}")


def _expand_hyphen(low: _Partial, high: _Partial) -> List[Comparator]:
    comparators: List[Comparator] = []
    if low.major is not None:
        comparators.append(Comparator(">=", low.floor()))
    if high.major is None:
        return comparators
    if high.minor is None:
        comparators.append(Comparator("<", high.next_major()))
    elif high.patch is None:
        comparators.append(Comparator("<", high.next_minor()))
    else:
        comparators.append(Comparator("<=", high.floor()))
    return comparators


def _parse_comparator_set(text: str) -> Tuple[Comparator, ...]:
    text = text.replace("&&", " ").strip()
    if not text:
        return ()
    hyphen = _HYPHEN_RE.match(text)
    if hyphen:
        return tuple(
            _expand_hyphen(_parse_partial(hyphen.group(1)), _parse_partial(hyphen.group(2)))
        )
    comparators: List[Comparator] = []
    for token in _OPERATOR_SPACE_RE.sub(r"\1", text).split():
        match = _TOKEN_RE.match(token)
        if not match:
            raise VersionError(f"Invalid range token: {token!r}")
        comparators.extend(_expand(match.group(1) or "", _parse_partial(match.group(2))))
    return tuple(comparators)


def _set_matches(comparators: Tuple[Comparator, ...], version: SemanticVersion) -> bool:
    if not all(c.test(version) for c in comparators):
        return False
    if not version.prerelease:
        return True
    return any(
        c.version.prerelease and c.version.release == version.release
        for c in comparators
    )


@dataclass(frozen=True)
class VersionRange:
    """A parsed range expression: an OR of AND-ed comparator sets."""

    expression: str
    alternatives: Tuple[Tuple[Comparator, ...], ...]

    @classmethod
    def parse(cls, expression: str) -> "VersionRange":
        return _parse_range(expression)

    def satisfied_by(self, version: Union[SemanticVersion, str]) -> bool:
        if isinstance(version, str):
            version = SemanticVersion.parse(version)
        return any(_set_matches(cs, version) for cs in self.alternatives)

    def __str__(self) -> str:
        return self.expression


@functools.lru_cache(maxsize=1024)
def _parse_range(expression: str) -> VersionRange:
    if not isinstance(expression, str):
        raise VersionError(f"Range must be a string, got {type(expression).__name__}")
    alternatives = tuple(_parse_comparator_set(part) for part in expression.split("||"))
    return VersionRange(expression.strip(), alternatives)


def satisfies(version: Union[SemanticVersion, str], expression: str) -> bool:
    """Return True if ``version`` lies within the range ``expression``."""
    return VersionRange.parse(expression).satisfied_by(version)


__all__ = [
    "Comparator",
    "SemanticVersion",
    "VersionError",
    "VersionRange",
    "satisfies",
]
