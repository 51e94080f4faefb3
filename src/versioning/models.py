"""Package identifier value type."""

from dataclasses import dataclass, field
from typing import Optional

from versioning.compare import (
    compare_to_range,
    has_version_range,
    in_range,
    split_range,
)


@dataclass
class PackageIdentifier:
    """Package id plus a single version or a version range.

    ``manual`` marks user-initiated installs and does not take part in
    equality.
    """
    id: str
    version: str
    manual: bool = field(default=False, compare=False)

    @property
    def is_prerelease(self) -> bool:
        return "-" in self.version

    @property
    def has_version_range(self) -> bool:
        return has_version_range(self.version)

    @property
    def is_min_inclusive(self) -> bool:
        return self.version.startswith("[")

    @property
    def is_max_inclusive(self) -> bool:
        return self.version.endswith("]")

    @property
    def minimum_version(self) -> str:
        if not self.has_version_range:
            return self.version
        return split_range(self.version)[0]

    @property
    def maximum_version(self) -> Optional[str]:
        if not self.has_version_range:
            return None
        return split_range(self.version)[1]

    @property
    def key(self) -> str:
        """Case-insensitive lookup key for the id."""
        return self.id.lower()

    def in_range(self, version: str) -> bool:
        """True when ``version`` satisfies this identifier's version or range."""
        return in_range(self.version, version)

    def compare_version(self, version: str) -> int:
        """Place ``version`` below (-1), inside (0) or above (+1) this range."""
        return compare_to_range(self.version, version)

    def __str__(self) -> str:
        return f"{self.id}.{self.version}"

    def __hash__(self) -> int:
        return hash((self.id, self.version))
