# =============================================================================
# src/cli/__main__.py -- Package Entry Point
# =============================================================================
#
# Enables running the CLI package itself as a module:
#     python -m src.cli server status
# =============================================================================

"""Allow ``python -m src.cli`` execution."""

from src.cli.llamactl import main

main()
