"""Shared string constants."""

from __future__ import annotations

# Assistant directory layout
CLAUDE_DIRECTORY = ".claude"
CLAUDE_LOCAL_MD = "CLAUDE.local.md"
CLAUDE_GLOBAL_MD = "CLAUDE.md"
PROJECT_SETTINGS_FILE = "settings.local.json"
GLOBAL_SETTINGS_FILE = "settings.json"

# mcs bookkeeping files
PROJECT_STATE_FILE = ".mcs-project"
GLOBAL_STATE_FILE = "global-state.json"
PROJECTS_INDEX_FILE = "projects.yaml"
LOCK_FILE = "lock"
PACKS_DIRECTORY = "packs"
PACK_MANIFEST_FILE = "techpack.yaml"

# Cross-scope bookkeeping
GLOBAL_SCOPE_SENTINEL = "__global__"
PACK_REMOVE_SENTINEL = "__pack_remove__"

# Assistant CLI
ENV_COMMAND = "/usr/bin/env"
CLAUDE_COMMAND = "claude"
OFFICIAL_MARKETPLACE = "claude-plugins-official"
OFFICIAL_MARKETPLACE_REPO = "anthropics/claude-plugins-official"

# Section markers
CORE_SECTION = "core"
MARKER_BEGIN_PREFIX = "<!-- mcs:begin "
MARKER_END_PREFIX = "<!-- mcs:end "
MARKER_SUFFIX = " -->"

# Placeholders
PLACEHOLDER_PATTERN = r"__[A-Z][A-Z0-9_]+__"
