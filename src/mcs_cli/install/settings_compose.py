"""Recompose a scope's settings file from every selected pack.

The file is rebuilt from scratch on each sync, so a component that was
deselected simply stops contributing. Project scope owns its settings file
outright; global scope shares ``settings.json`` with the user, so only
entries mcs manages are replaced there.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field

from mcs_cli.core.errors import ConfigurationError
from mcs_cli.core.output import Output
from mcs_cli.core.settings import ENABLED_PLUGINS_KEY, Settings, SettingsParseError
from mcs_cli.install.dispatcher import hook_command_for
from mcs_cli.install.scope import SyncScope
from mcs_cli.packs.models import Pack, PluginAction, SettingsMergeAction

logger = logging.getLogger(__name__)


@dataclass
class MergeResult:
    has_content: bool = False
    contributed_keys: dict[str, list[str]] = field(default_factory=dict)


def merge_pack_components(
    settings: Settings,
    packs: Sequence[Pack],
    excluded_components: Mapping[str, set[str]],
    scope: SyncScope,
    resolved_values: Mapping[str, str],
    output: Output,
) -> MergeResult:
    """Merge hook entries, enabled plugins and settings fragments into *settings*.

    Returns which packs contributed which key paths so removal can strip
    exactly those keys later.
    """
    result = MergeResult()
    for pack in packs:
        keys: list[str] = []
        for component in pack.active_components(excluded_components.get(pack.identifier, set())):
            action = component.install_action

            hook_command = hook_command_for(component, scope)
            if hook_command is not None and component.hook_event:
                settings.add_hook_entry(component.hook_event, hook_command)
                result.has_content = True

            if isinstance(action, PluginAction):
                bare = action.ref.bare_name
                plugins = settings.enabled_plugins if settings.enabled_plugins is not None else {}
                plugins[bare] = True
                settings.enabled_plugins = plugins
                keys.append(f"{ENABLED_PLUGINS_KEY}.{bare}")
                result.has_content = True

            elif isinstance(action, SettingsMergeAction) and action.source is not None:
                try:
                    fragment = Settings.load(action.source, resolved_values)
                except (OSError, SettingsParseError) as exc:
                    output.warn(f"Could not load settings from {action.source}: {exc}")
                    continue
                keys.extend(k for k in fragment.contributed_key_paths() if k not in keys)
                settings.merge(fragment)
                result.has_content = True

        if keys:
            result.contributed_keys[pack.identifier] = keys
    return result


def load_scope_settings(scope: SyncScope) -> Settings:
    """Load the scope's existing settings.

    Raises:
        ConfigurationError: If the file exists but is not valid JSON.
    """
    try:
        return Settings.load(scope.settings_path)
    except (OSError, SettingsParseError) as exc:
        raise ConfigurationError(
            f"Could not parse {scope.settings_path}: {exc}. "
            f"Fix the JSON syntax or rename the file, then re-run '{scope.sync_hint}'."
        ) from exc


def compose_settings(
    scope: SyncScope,
    packs: Sequence[Pack],
    excluded_components: Mapping[str, set[str]],
    resolved_values: Mapping[str, str],
    output: Output,
    previous_keys: Iterable[str] = (),
) -> dict[str, list[str]]:
    """Rewrite the scope's settings file; returns contributed key paths per pack.

    *previous_keys* are the key paths recorded by the last sync. Those no pack
    contributes any more are dropped instead of being preserved as user keys.

    Raises:
        ConfigurationError: If the global settings file cannot be parsed.
    """
    file_name = scope.settings_path.name
    if scope.is_global_scope:
        settings = load_scope_settings(scope)
        modified = settings.strip_hooks_with_prefix(scope.hook_command_prefix) > 0
    else:
        settings = Settings()
        modified = False

    merged = merge_pack_components(settings, packs, excluded_components, scope, resolved_values, output)

    contributed = {key for keys in merged.contributed_keys.values() for key in keys}
    stale = sorted({key for key in previous_keys if key not in contributed})
    if stale:
        logger.debug("Dropping settings keys no longer contributed: %s", stale)
        settings.remove_keys(stale)
        modified = True
    drop_keys = {key for key in stale if "." not in key}

    if merged.has_content or (scope.is_global_scope and modified):
        try:
            settings.save(scope.settings_path, drop_keys=drop_keys)
        except OSError as exc:
            output.warn(f"Could not write {file_name}: {exc}")
            output.warn(f"Hooks and plugins will not be active. Re-run '{scope.sync_hint}' after fixing the issue.")
            return merged.contributed_keys
        output.success(f"Composed {file_name}{scope.label_suffix}")
    elif not scope.is_global_scope and scope.settings_path.exists():
        try:
            scope.settings_path.unlink()
        except OSError as exc:
            output.warn(f"Could not remove stale {file_name}: {exc}")
        else:
            output.dimmed(f"Removed empty {file_name}")

    return merged.contributed_keys


__all__ = ["MergeResult", "compose_settings", "load_scope_settings", "merge_pack_components"]
