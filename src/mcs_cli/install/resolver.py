"""Dependency resolution for component selections.

Produces a deterministic, dependencies-first ordering of the selected
components plus every transitive dependency they pull in.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field

from mcs_cli.core.errors import ConfigurationError
from mcs_cli.packs.models import Component

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedPlan:
    ordered_components: list[Component] = field(default_factory=list)
    added_dependencies: list[Component] = field(default_factory=list)

    @property
    def ordered_ids(self) -> list[str]:
        return [c.id for c in self.ordered_components]


def resolve(selected_ids: Iterable[str], all_components: Iterable[Component]) -> ResolvedPlan:
    """Order *selected_ids* so every component follows its dependencies.

    Selected ids are visited in sorted order, which makes the plan
    independent of how the selection was built. Dependencies that were not
    selected are reported in :attr:`ResolvedPlan.added_dependencies`.

    Raises:
        ConfigurationError: On a dependency cycle or an unknown component id.
    """
    selected = set(selected_ids)
    component_map = {c.id: c for c in all_components}

    resolved: list[str] = []
    resolved_set: set[str] = set()
    in_stack: set[str] = set()
    added: set[str] = set()
    stack: list[tuple[str, Iterator[str]]] = []

    def enter(component_id: str) -> None:
        if component_id in resolved_set:
            return
        if component_id in in_stack:
            raise ConfigurationError(f"Circular dependency detected involving '{component_id}'")
        component = component_map.get(component_id)
        if component is None:
            raise ConfigurationError(f"Unknown component '{component_id}'")
        in_stack.add(component_id)
        stack.append((component_id, iter(component.dependencies)))

    for root in sorted(selected):
        enter(root)
        while stack:
            current, dependencies = stack[-1]
            dependency = next(dependencies, None)
            if dependency is None:
                stack.pop()
                in_stack.discard(current)
                resolved.append(current)
                resolved_set.add(current)
                continue
            if dependency not in selected:
                added.add(dependency)
            enter(dependency)

    if added:
        logger.debug("Auto-added dependencies: %s", ", ".join(sorted(added)))
    return ResolvedPlan(
        ordered_components=[component_map[cid] for cid in resolved],
        added_dependencies=[component_map[cid] for cid in resolved if cid in added],
    )


__all__ = ["ResolvedPlan", "resolve"]
