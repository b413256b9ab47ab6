"""CLI command modules for mcs.

Each module holds one command (or one sub-app); ``mcs_cli.cli.app`` wires
them into the root application.
"""
