"""Custom exception hierarchy for llamadeck.

All application exceptions inherit from :class:`LlamaDeckError`, which
carries an optional ``component`` so error handlers can identify which
part of the system (e.g. "supervisor", "downloads", "llama_server")
raised the failure.

The hierarchy is organized by subsystem:

    LlamaDeckError  (base -- catch-all for any llamadeck error)
    +-- PreconditionError          (user-actionable: install or download first)
    |   +-- NotInstalledError
    |   +-- BinaryMissingError
    |   +-- ModelMissingError
    +-- ImmediateExitError         (server died inside the startup grace window)
    +-- ServerProcessError         (spawn / terminate failures)
    +-- InstallError               (archive download or extraction failures)
    +-- PlatformUnsupportedError   (no release for this OS / architecture)
    +-- TransportError             (connection refused, timeout, bad status)
    +-- DecodeError                (malformed streamed JSON record)
    +-- RAGError                   (embedding or dataset persistence failure)
    |   +-- EmbeddingSizeMismatchError
    +-- NotFoundError              (unknown download / dataset / conversation)
    +-- SourceNotFoundError        (local source file absent)
    +-- ConfigurationError         (startup / missing config)

Callers handle errors at the right level -- e.g. the HTTP layer maps
``PreconditionError`` to 409 and ``TransportError`` to 502, while the
SSE decoder logs and skips ``DecodeError``.
"""


class LlamaDeckError(Exception):
    """Base exception for all llamadeck errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``component`` naming the subsystem that raised it.  ``__str__``
    prefixes the component in brackets, e.g. ``[supervisor] Binary missing``.
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        component: str | None = None,
    ) -> None:
        self._message = message
        self._component = component
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def component(self) -> str | None:
        return self._component

    def __str__(self) -> str:
        if self._component:
            return f"[{self._component}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Preconditions (install or download first)
# ---------------------------------------------------------------------------

class PreconditionError(LlamaDeckError):
    """Raised when an operation needs something the user has to provide first."""

    def __init__(
        self,
        message: str = "Operation precondition not met",
        component: str | None = None,
    ) -> None:
        super().__init__(message=message, component=component)


class NotInstalledError(PreconditionError):
    """Raised when the inference server has not been installed yet."""

    def __init__(
        self,
        message: str = "llama-server is not installed. Install it first.",
        component: str | None = None,
    ) -> None:
        super().__init__(message=message, component=component)


class BinaryMissingError(PreconditionError):
    """Raised when the server binary is absent from the binary directory."""

    def __init__(
        self,
        message: str = "llama-server binary not found. Install it first.",
        component: str | None = None,
    ) -> None:
        super().__init__(message=message, component=component)


class ModelMissingError(PreconditionError):
    """Raised when the requested model file does not exist."""

    def __init__(
        self,
        message: str = "Model file not found. Download it first.",
        component: str | None = None,
    ) -> None:
        super().__init__(message=message, component=component)


# ---------------------------------------------------------------------------
# Server process lifecycle
# ---------------------------------------------------------------------------

class ImmediateExitError(LlamaDeckError):
    """Raised when the server exits within the startup grace window.

    Missing shared libraries next to the binary are the usual cause.  The
    failure is surfaced verbatim and never retried automatically.
    """

    def __init__(
        self,
        message: str = (
            "llama-server process exited immediately. "
            "Please verify dependencies and DLLs."
        ),
        component: str | None = None,
    ) -> None:
        super().__init__(message=message, component=component)


class ServerProcessError(LlamaDeckError):
    """Raised when the server subprocess cannot be spawned or terminated."""

    def __init__(
        self,
        message: str = "llama-server process operation failed",
        component: str | None = None,
    ) -> None:
        super().__init__(message=message, component=component)


class InstallError(LlamaDeckError):
    """Raised when the server archive cannot be downloaded or extracted."""

    def __init__(
        self,
        message: str = "llama-server installation failed",
        component: str | None = None,
    ) -> None:
        super().__init__(message=message, component=component)


class PlatformUnsupportedError(LlamaDeckError):
    """Raised when no server release exists for the current OS / architecture."""

    def __init__(
        self,
        message: str = "Unsupported platform",
        component: str | None = None,
    ) -> None:
        super().__init__(message=message, component=component)


# ---------------------------------------------------------------------------
# HTTP transport and streaming
# ---------------------------------------------------------------------------

class TransportError(LlamaDeckError):
    """Raised when the inference server cannot be reached or answers non-2xx.

    Distinct from :class:`DecodeError`: a transport failure means no
    usable response was received at all.
    """

    def __init__(
        self,
        message: str = "Request to llama-server failed",
        component: str | None = None,
    ) -> None:
        super().__init__(message=message, component=component)


class DecodeError(LlamaDeckError):
    """Raised for a malformed streamed record.  Logged and skipped by the decoder."""

    def __init__(
        self,
        message: str = "Malformed stream record",
        component: str | None = None,
    ) -> None:
        super().__init__(message=message, component=component)


# ---------------------------------------------------------------------------
# Retrieval (RAG)
# ---------------------------------------------------------------------------

class RAGError(LlamaDeckError):
    """Raised when an embedding call or dataset persistence step fails."""

    def __init__(
        self,
        message: str = "RAG operation failed",
        component: str | None = None,
    ) -> None:
        super().__init__(message=message, component=component)


class EmbeddingSizeMismatchError(RAGError):
    """Raised when the embedding count differs from the chunk count.

    Fatal for the ingestion in progress; nothing is persisted.
    """

    def __init__(
        self,
        message: str = "Embedding count does not match chunk count",
        component: str | None = None,
    ) -> None:
        super().__init__(message=message, component=component)


# ---------------------------------------------------------------------------
# Lookup and configuration
# ---------------------------------------------------------------------------

class NotFoundError(LlamaDeckError):
    """Raised for an unknown download key, dataset id or conversation id."""

    def __init__(
        self,
        message: str = "Not found",
        component: str | None = None,
    ) -> None:
        super().__init__(message=message, component=component)


class SourceNotFoundError(LlamaDeckError):
    """Raised when a local (non-network) source file does not exist."""

    def __init__(
        self,
        message: str = "Source file not found",
        component: str | None = None,
    ) -> None:
        super().__init__(message=message, component=component)


class ConfigurationError(LlamaDeckError):
    """Raised when a required configuration value is missing or invalid."""

    def __init__(
        self,
        message: str = "Invalid configuration",
        component: str | None = None,
    ) -> None:
        super().__init__(message=message, component=component)
