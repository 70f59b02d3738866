"""Cosine similarity and top-k ranking over in-memory embedding vectors."""

from __future__ import annotations

import math
from collections.abc import Sequence

import numpy as np


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Return ``dot(a, b) / (|a| * |b|)``.

    A zero-norm vector scores 0.0.  Vectors of different lengths cannot be
    compared and score NaN.
    """
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.shape != vb.shape:
        return float("nan")
    norm = float(np.linalg.norm(va)) * float(np.linalg.norm(vb))
    if norm == 0.0:
        return 0.0
    return float(np.dot(va, vb) / norm)


def cosine_scores(query: Sequence[float], vectors: Sequence[Sequence[float]]) -> list[float]:
    """Score every vector in *vectors* against *query*, in input order."""
    if not vectors:
        return []
    q = np.asarray(query, dtype=np.float64)
    if any(len(vector) != q.shape[0] for vector in vectors):
        return [cosine_similarity(q, vector) for vector in vectors]

    matrix = np.asarray(vectors, dtype=np.float64)
    norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(q)
    dots = matrix @ q
    with np.errstate(divide="ignore", invalid="ignore"):
        scores = np.where(norms == 0.0, 0.0, dots / norms)
    return [float(score) for score in scores]


def rank_top_k(
    query: Sequence[float],
    vectors: Sequence[Sequence[float]],
    k: int,
) -> list[tuple[int, float]]:
    """Return up to *k* ``(index, score)`` pairs, best first.

    NaN scores are dropped.  Equal scores keep ingestion order because the
    sort is stable.
    """
    if k <= 0 or not vectors:
        return []
    scored = [
        (index, score)
        for index, score in enumerate(cosine_scores(query, vectors))
        if not math.isnan(score)
    ]
    scored.sort(key=lambda pair: pair[1], reverse=True)
    return scored[:k]
