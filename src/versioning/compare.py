"""Version parsing, three-way comparison and range matching.

Versions are ``major[.minor[.patch[.build]]][-prerelease][+metadata]``.
Missing numeric parts count as 0 and a release sorts after every
prerelease of the same numeric tuple. Ranges use interval notation:
``[1.0,2.0)``, ``(1.0,)``, ``[1.5]``; a bare version is an inclusive floor.
"""

from __future__ import annotations

import logging
from functools import cmp_to_key
from typing import Optional, Tuple

from common.errors import VersionParseError

logger = logging.getLogger(__name__)

# Sorts after any real prerelease tag under ordinal comparison.
RELEASE_SENTINEL = "\uffff"

ParsedVersion = Tuple[int, int, int, int, str]


def parse_version(version: str) -> ParsedVersion:
    """Parse a single version token.

    Args:
        version: Version string such as "1.2.3-beta".

    Returns:
        Tuple of (major, minor, patch, build, prerelease).

    Raises:
        VersionParseError: If the string is empty or not numeric where required.
    """
    if version is None:
        raise VersionParseError(str(version))
    text = version.strip().split("+", 1)[0]
    core, sep, prerelease = text.partition("-")
    parts = core.split(".")
    if not core or len(parts) > 4:
        raise VersionParseError(version)
    numbers = []
    for part in parts:
        if not part.isdigit():
            raise VersionParseError(version)
        numbers.append(int(part))
    numbers.extend([0] * (4 - len(numbers)))
    return numbers[0], numbers[1], numbers[2], numbers[3], (prerelease if sep else RELEASE_SENTINEL)


def _sign(value: int) -> int:
    return (value > 0) - (value < 0)


def compare_versions(version_a: str, version_b: str) -> int:
    """Three-way compare two single versions.

    A malformed operand is logged and ordered as "less than" so callers never
    select it over a valid candidate.

    Returns:
        -1, 0 or +1.
    """
    try:
        parsed_a = parse_version(version_a)
        parsed_b = parse_version(version_b)
    except VersionParseError as exc:
        logger.warning("Compare error: %s (%s vs %s)", exc, version_a, version_b)
        return -1

    for left, right in zip(parsed_a[:4], parsed_b[:4]):
        if left != right:
            return _sign(left - right)
    if parsed_a[4] == parsed_b[4]:
        return 0
    return -1 if parsed_a[4] < parsed_b[4] else 1


def has_version_range(version: str) -> bool:
    """True for bracketed/parenthesized interval notation."""
    return version.startswith(("[", "("))


def split_range(version: str) -> Tuple[str, Optional[str]]:
    """Return (minimum, maximum) of a range; maximum is None when absent."""
    inner = version.lstrip("[(").rstrip("])")
    minimum, sep, maximum = inner.partition(",")
    return minimum.strip(), (maximum.strip() if sep else None)


def compare_to_range(range_version: str, candidate: str) -> int:
    """Place ``candidate`` relative to a range or floor.

    Args:
        range_version: Range notation or a bare version.
        candidate: Single version to place.

    Returns:
        -1 when the candidate is below the range, 0 when inside it and +1 when
        above it. For a bare version the result is the plain comparison of
        candidate against it, so anything >= 0 satisfies the floor.
    """
    if not has_version_range(range_version):
        return compare_versions(candidate, range_version)

    minimum, maximum = split_range(range_version)
    min_inclusive = range_version.startswith("[")
    max_inclusive = range_version.endswith("]")

    if minimum:
        cmp = compare_versions(candidate, minimum)
        if (min_inclusive and cmp < 0) or (not min_inclusive and cmp <= 0):
            return -1

    if maximum:
        cmp = compare_versions(candidate, maximum)
        if (max_inclusive and cmp > 0) or (not max_inclusive and cmp >= 0):
            return 1
    elif maximum is None and max_inclusive:
        # "[x]" pins exactly x
        return compare_versions(candidate, minimum)

    return 0


def in_range(range_version: str, candidate: str) -> bool:
    """True when ``candidate`` satisfies a range or an inclusive floor."""
    comparison = compare_to_range(range_version, candidate)
    if comparison == 0:
        return True
    return not has_version_range(range_version) and comparison > 0


def anchor_version(version: str) -> str:
    """Single version used to order a range: its minimum, or 0.0 when open."""
    if not has_version_range(version):
        return version
    minimum, _ = split_range(version)
    return minimum or "0.0"


def compare_identifiers(first, second) -> int:
    """Total order over identifiers: Id ordinally, then version.

    Ranges are ordered by their minimum bound.
    """
    if first.id != second.id:
        return -1 if first.id < second.id else 1
    return compare_versions(anchor_version(first.version), anchor_version(second.version))


def is_newer(first, second) -> bool:
    """True when ``first`` orders strictly after ``second``."""
    return compare_identifiers(first, second) > 0


def is_older(first, second) -> bool:
    """True when ``first`` orders strictly before ``second``."""
    return compare_identifiers(first, second) < 0


def satisfies(requirement, version: str) -> bool:
    """True when a concrete ``version`` meets ``requirement``'s version or range."""
    return in_range(requirement.version, version)


version_sort_key = cmp_to_key(compare_versions)
