"""Pack catalog: every pack available to a sync, loaded once per run."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path

from mcs_cli.core.constants import PACK_MANIFEST_FILE
from mcs_cli.core.errors import ManifestError
from mcs_cli.packs.manifest import load_pack
from mcs_cli.packs.models import Component, Pack

logger = logging.getLogger(__name__)


class PackCatalog:
    """Immutable lookup of packs by identifier."""

    def __init__(self, packs: Iterable[Pack] = ()) -> None:
        self._packs: dict[str, Pack] = {}
        for pack in packs:
            if pack.identifier in self._packs:
                logger.warning("Duplicate pack '%s'; keeping the first definition", pack.identifier)
                continue
            self._packs[pack.identifier] = pack

    @classmethod
    def from_directory(cls, packs_directory: Path) -> tuple[PackCatalog, list[str]]:
        """Load every ``<dir>/<pack>/techpack.yaml`` below *packs_directory*.

        Returns the catalog and a list of load errors for packs that were
        skipped. A missing directory is an empty catalog.
        """
        packs: list[Pack] = []
        errors: list[str] = []
        if not packs_directory.is_dir():
            logger.debug("Packs directory %s does not exist", packs_directory)
            return cls(), errors

        for pack_dir in sorted(p for p in packs_directory.iterdir() if p.is_dir()):
            if not (pack_dir / PACK_MANIFEST_FILE).exists():
                continue
            try:
                packs.append(load_pack(pack_dir, PACK_MANIFEST_FILE))
            except ManifestError as exc:
                logger.warning("Skipping pack at %s: %s", pack_dir, exc)
                errors.append(f"Skipping pack '{pack_dir.name}': {exc}")
        return cls(packs), errors

    def pack(self, identifier: str) -> Pack | None:
        return self._packs.get(identifier)

    def __contains__(self, identifier: object) -> bool:
        return identifier in self._packs

    def __len__(self) -> int:
        return len(self._packs)

    @property
    def available_packs(self) -> list[Pack]:
        return [self._packs[k] for k in sorted(self._packs)]

    @property
    def identifiers(self) -> list[str]:
        return sorted(self._packs)

    def all_components(self) -> dict[str, Component]:
        """Every component of every pack, keyed by component id."""
        return {c.id: c for pack in self.available_packs for c in pack.components}


__all__ = ["PackCatalog"]
