"""Integration package.

Order facade, shared context and error taxonomy.

IMPORTANT:
Run CLI entrypoints via module execution from the repository root, e.g.:
  python3 -m tools.orders_cli derive --maker <pubkey> --id 42

This avoids Python import-path ambiguity when running files by relative path.
"""
