"""RAG data models for per-dataset knowledge stores.

RAG (Retrieval-Augmented Generation) overview:

    1. INGESTION: text from pasted input, files, folders or web pages is
       split into overlapping character windows (chunks).
    2. EMBEDDING: every chunk is sent in one batch to the inference
       server's ``/v1/embeddings`` endpoint.
    3. STORAGE: ``chunks.json`` and ``embeddings.json`` are written side by
       side in the dataset's directory, index-aligned 1:1.
    4. RETRIEVAL: a query is embedded the same way and ranked against every
       stored vector by cosine similarity.
    5. GENERATION: the best chunks are injected into the chat prompt as a
       system message.

Datasets are fully re-ingested each time; there is no incremental update.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class DatasetInfo(BaseModel):
    """Registry entry in ``datasets.json``.

    ``id`` is ``ds_<epoch milliseconds>`` and never changes; only ``name``
    and ``updated_at`` are mutable.  Timestamps are RFC 3339 UTC strings.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    created_at: str
    updated_at: str


class Chunk(BaseModel):
    """One element of ``chunks.json``."""

    model_config = ConfigDict(frozen=True)

    text: str


class EmbeddingRecord(BaseModel):
    """One element of ``embeddings.json``, aligned with the chunk at the same index."""

    model_config = ConfigDict(frozen=True)

    embedding: list[float]


class IngestResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    dataset_id: str
    chunks: int = Field(ge=0, description="Number of chunks now stored for the dataset.")


class RagHit(BaseModel):
    """A ranked query result."""

    model_config = ConfigDict(frozen=True)

    index: int = Field(ge=0, description="Position of the chunk in ingestion order.")
    text: str
    score: float
