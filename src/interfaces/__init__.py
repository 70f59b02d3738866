"""Public interface definitions for every swappable collaborator.

The services never talk to llama-server, the filesystem layout or the
web directly; they go through the abstract base classes defined in this
package.  Concrete adapters implement these interfaces and are injected
at startup in ``src/main.py`` (or per command in the CLI), so tests can
substitute fakes without patching.

CONCRETE PROVIDER MAP:
    Interface             →  Concrete implementations (in src/providers/
                             and src/services/ingestion/source_processors/)
    ─────────────────────────────────────────────────────────────────────
    ILLMProvider          →  LlamaServerLLMProvider
    IEmbeddingProvider    →  LlamaEmbeddingProvider
    IDatasetStore         →  JsonDatasetStore
    ICatalogSource        →  YamlCatalogSource
    IConversationStore    →  InMemoryConversationStore
    ITextExtractor        →  PlainTextProcessor, PDFProcessor, EPUBProcessor,
                             HTMLProcessor, CompositeTextExtractor
    IWebFetcher           →  WebScraperProvider
"""

from src.interfaces.catalog_source import ICatalogSource
from src.interfaces.conversation_store import IConversationStore
from src.interfaces.dataset_store import IDatasetStore
from src.interfaces.embedding_provider import IEmbeddingProvider
from src.interfaces.llm_provider import ILLMProvider
from src.interfaces.text_extractor import ITextExtractor
from src.interfaces.web_fetcher import IWebFetcher, WebPage

__all__ = [
    "ICatalogSource",
    "IConversationStore",
    "IDatasetStore",
    "IEmbeddingProvider",
    "ILLMProvider",
    "ITextExtractor",
    "IWebFetcher",
    "WebPage",
]
