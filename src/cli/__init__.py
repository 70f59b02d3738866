# =============================================================================
# src/cli/__init__.py -- CLI Module Overview
# =============================================================================
#
# `llamactl` (llamactl.py) is the command line counterpart of the HTTP API:
#
#   1. SERVER   -- install, start (foreground), stop, status, health
#   2. DOWNLOAD -- fetch or resume model packs from the catalog
#   3. CHAT     -- one-shot streamed completion against the running server
#   4. RAG      -- dataset CRUD, ingestion from text/files/folders/URLs, query
#
# Architecture Notes:
#   - argparse only, no extra CLI dependency.
#   - Heavy imports (providers, services) are deferred inside the command
#     handlers to keep startup fast for simple commands.
#   - Each command constructs its own service dependencies rather than
#     relying on the API's wiring, because CLI runs are one-shot.
# =============================================================================

"""Command line tools for llamadeck (``python -m src.cli``)."""
