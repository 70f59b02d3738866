"""Utility modules for llamadeck.

Available utility modules (all re-exported here for convenience):

- **errors** -- Domain-specific exception hierarchy rooted at LlamaDeckError;
  each subsystem raises its own subclass so callers can handle failures
  granularly without broad ``except Exception`` blocks.
- **logging** -- structlog setup with a dual-renderer pattern: coloured
  console output in development, structured JSON in production.
- **similarity** -- numpy cosine similarity and stable top-k ranking for
  the RAG datasets.
"""

# -- Domain exception hierarchy --------------------------------------------
from src.utils.errors import (
    BinaryMissingError,
    ConfigurationError,
    DecodeError,
    EmbeddingSizeMismatchError,
    ImmediateExitError,
    InstallError,
    LlamaDeckError,
    ModelMissingError,
    NotFoundError,
    NotInstalledError,
    PlatformUnsupportedError,
    PreconditionError,
    RAGError,
    ServerProcessError,
    SourceNotFoundError,
    TransportError,
)

# -- Structured logging setup ----------------------------------------------
from src.utils.logging import configure_logging, get_logger

# -- Vector similarity ------------------------------------------------------
from src.utils.similarity import cosine_scores, cosine_similarity, rank_top_k

__all__ = [
    "BinaryMissingError",
    "ConfigurationError",
    "DecodeError",
    "EmbeddingSizeMismatchError",
    "ImmediateExitError",
    "InstallError",
    "LlamaDeckError",
    "ModelMissingError",
    "NotFoundError",
    "NotInstalledError",
    "PlatformUnsupportedError",
    "PreconditionError",
    "RAGError",
    "ServerProcessError",
    "SourceNotFoundError",
    "TransportError",
    "configure_logging",
    "cosine_scores",
    "cosine_similarity",
    "get_logger",
    "rank_top_k",
]
