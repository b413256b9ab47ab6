"""Tests for peer pack validation."""

from __future__ import annotations

from mcs_cli.packs.models import Pack, PeerDependency
from mcs_cli.packs.peers import PeerStatus, is_compatible, validate_selection
from mcs_cli.packs.registry import PackCatalog


def pack(identifier: str, version: str = "1.0.0", *peers: PeerDependency) -> Pack:
    return Pack(identifier=identifier, display_name=identifier, version=version, peer_dependencies=peers)


def test_is_compatible_compares_versions_numerically():
    assert is_compatible("1.10.0", "1.9.0")
    assert is_compatible("2.0.0", "2.0.0")
    assert not is_compatible("1.2.0", "1.10.0")


def test_prerelease_suffix_is_ignored():
    assert is_compatible("2.0.0-beta.1", "2.0.0")


def test_unparseable_version_is_incompatible():
    assert not is_compatible("banana", "1.0.0")


def test_selection_with_satisfied_peers_passes():
    core = pack("core", "1.5.0")
    ios = pack("ios", "1.0.0", PeerDependency("core", "1.0.0"))

    assert validate_selection([core, ios], PackCatalog([core, ios])) == []


def test_missing_peer_is_reported():
    core = pack("core", "1.5.0")
    ios = pack("ios", "1.0.0", PeerDependency("core", "1.0.0"))

    failures = validate_selection([ios], PackCatalog([core, ios]))

    assert [(f.pack_identifier, f.peer_pack, f.status) for f in failures] == [("ios", "core", PeerStatus.MISSING)]
    assert "not selected" in failures[0].message


def test_peer_version_too_low_is_reported():
    core = pack("core", "0.9.0")
    ios = pack("ios", "1.0.0", PeerDependency("core", "1.0.0"))

    failures = validate_selection([core, ios], PackCatalog([core, ios]))

    assert failures[0].status is PeerStatus.VERSION_TOO_LOW
    assert failures[0].actual_version == "0.9.0"
