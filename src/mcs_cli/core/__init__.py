"""Filesystem, state and external-tool primitives shared by the engine."""
