"""Peer-pack dependency validation.

A pack may require another pack to be selected alongside it, at or above a
minimum version. Validation runs before any state is touched.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from enum import StrEnum

from packaging.version import InvalidVersion, Version

from mcs_cli.packs.models import Pack
from mcs_cli.packs.registry import PackCatalog


class PeerStatus(StrEnum):
    SATISFIED = "satisfied"
    MISSING = "missing"
    VERSION_TOO_LOW = "version_too_low"


@dataclass(frozen=True)
class PeerDependencyResult:
    pack_identifier: str
    peer_pack: str
    min_version: str
    status: PeerStatus
    actual_version: str | None = None

    @property
    def message(self) -> str:
        if self.status is PeerStatus.MISSING:
            return (
                f"Pack '{self.pack_identifier}' requires peer pack '{self.peer_pack}' "
                f"(>= {self.min_version}) which is not selected"
            )
        if self.status is PeerStatus.VERSION_TOO_LOW:
            return (
                f"Pack '{self.pack_identifier}' requires '{self.peer_pack}' >= {self.min_version}, "
                f"found {self.actual_version}"
            )
        return f"Peer '{self.peer_pack}' satisfied"


def is_compatible(current: str, required: str) -> bool:
    """Return True when *current* >= *required*.

    Pre-release suffixes are ignored. Unparseable versions are incompatible.
    """
    try:
        current_version = Version(current.split("-", 1)[0])
        required_version = Version(required.split("-", 1)[0])
    except InvalidVersion:
        return False
    return current_version >= required_version


def validate_selection(packs: Sequence[Pack], catalog: PackCatalog) -> list[PeerDependencyResult]:
    """Return the unmet peer dependencies of *packs*; an empty list means all satisfied."""
    selected = {pack.identifier for pack in packs}
    failures: list[PeerDependencyResult] = []
    for pack in packs:
        for peer in pack.peer_dependencies:
            if peer.pack not in selected:
                failures.append(PeerDependencyResult(pack.identifier, peer.pack, peer.min_version, PeerStatus.MISSING))
                continue
            peer_pack = catalog.pack(peer.pack)
            if peer_pack is not None and not is_compatible(peer_pack.version, peer.min_version):
                failures.append(
                    PeerDependencyResult(
                        pack.identifier,
                        peer.pack,
                        peer.min_version,
                        PeerStatus.VERSION_TOO_LOW,
                        actual_version=peer_pack.version,
                    )
                )
    return failures


__all__ = ["PeerDependencyResult", "PeerStatus", "is_compatible", "validate_selection"]
