"""Target framework moniker (TFM) priorities.

The consumer's compatibility profile decides which TFM groups are
acceptable and in which order. A TFM's rank is
``group_index * 1000 + index_within_group``; the lowest rank wins and
names found in no group are ineligible.
"""

from __future__ import annotations

from typing import Iterable, List, Optional

from constants import CompatibilityLevel, Constants
from sources.models import FrameworkGroup

UNITY_FRAMEWORKS = ["unity"]
NETSTANDARD_FRAMEWORKS = [
    "netstandard20", "netstandard16", "netstandard15", "netstandard14",
    "netstandard13", "netstandard12", "netstandard11", "netstandard10",
]
NET47_FRAMEWORKS = ["net471", "net47"]
NET46_FRAMEWORKS = ["net462", "net461", "net46", "net452", "net451", "net45", "net403", "net40", "net4"]
NET3_FRAMEWORKS = ["net35-unity full v3.5", "net35-unity subset v3.5", "net35", "net20", "net11"]
DEFAULT_FRAMEWORKS = [""]

# Selecting any of these keeps all of them.
UMBRELLA_FRAMEWORKS = ("unity", "net35-unity full v3.5", "net35-unity subset v3.5")

GROUP_WIDTH = 1000


def framework_names_equal(first: str, second: str) -> bool:
    return first.lower() == second.lower()


class FrameworkSelector:
    """Pick the best TFM for one compatibility profile.

    Args:
        compatibility: Consumer runtime profile.
        platform_version: Consumer platform tier; gates the net46/net47 groups
            for the legacy framework profile.
    """

    def __init__(self, compatibility: CompatibilityLevel = CompatibilityLevel.NET4X,
                 platform_version: int = Constants.DEFAULT_PLATFORM_VERSION) -> None:
        self.compatibility = compatibility
        self.platform_version = platform_version
        self.groups = self._build_groups()

    def _build_groups(self) -> List[List[str]]:
        if self.compatibility is CompatibilityLevel.NETSTANDARD20:
            return [NETSTANDARD_FRAMEWORKS, UNITY_FRAMEWORKS, DEFAULT_FRAMEWORKS]
        if self.compatibility is CompatibilityLevel.NET4X:
            groups: List[List[str]] = []
            if self.platform_version >= Constants.PLATFORM_TIER_NET47:
                groups.append(NET47_FRAMEWORKS)
            if self.platform_version >= Constants.PLATFORM_TIER_NET46:
                groups.append(NET46_FRAMEWORKS)
            groups.extend([NET3_FRAMEWORKS, NETSTANDARD_FRAMEWORKS, UNITY_FRAMEWORKS, DEFAULT_FRAMEWORKS])
            return groups
        return [UNITY_FRAMEWORKS, NET3_FRAMEWORKS, DEFAULT_FRAMEWORKS]

    def priority(self, tfm: str) -> Optional[int]:
        """Rank of ``tfm`` (lower is better), or None when not acceptable."""
        lowered = tfm.lower()
        undotted = lowered.replace(".", "")
        for group_index, group in enumerate(self.groups):
            for index, candidate in enumerate(group):
                if candidate == lowered or candidate == undotted:
                    return group_index * GROUP_WIDTH + index
        return None

    def best(self, tfms: Iterable[str]) -> Optional[str]:
        """Best acceptable TFM among ``tfms``; ties keep the first given."""
        best_tfm = None
        best_rank = None
        for tfm in tfms:
            rank = self.priority(tfm)
            if rank is None:
                continue
            if best_rank is None or rank < best_rank:
                best_tfm, best_rank = tfm, rank
        return best_tfm

    def best_dependency_group(self, groups: List[FrameworkGroup]) -> FrameworkGroup:
        """Dependency group for the best TFM, or an empty group."""
        best_tfm = self.best(g.target_framework for g in groups)
        if best_tfm is None:
            return FrameworkGroup()
        return next(g for g in groups if framework_names_equal(g.target_framework, best_tfm))
