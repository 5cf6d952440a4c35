"""Building blocks of the BART encoder and decoder layers."""

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence
from typing import Any

import numpy as np

from .bart_config import BartConfig
from .layers import (
    Activation,
    AttentionCache,
    Embedding,
    LayerNorm,
    Linear,
    MultiHeadAttention,
    Sequential,
)

_NORM_EPS = 1e-5


def make_positions(size: int, offset: int) -> list[int]:
    """Return ``size`` consecutive positions starting at ``offset``."""
    return list(range(offset, offset + size))


class SelfAttentionBlock:
    """Self-attention with a residual connection and layer normalisation.

    With ``normalize_before`` the input is normalised before the attention
    (pre-norm); otherwise the residual sum is normalised (post-norm).
    """

    def __init__(self, dim: int, num_heads: int, normalize_before: bool = False,
                 use_causal_mask: bool = False, *, dtype: Any = np.float32,
                 rng: np.random.Generator | None = None) -> None:
        self.normalize_before = normalize_before
        self.attention = MultiHeadAttention(
            dim, num_heads, use_causal_mask, False, dtype=dtype, rng=rng
        )
        self.norm = LayerNorm(dim, _NORM_EPS, dtype=dtype)

    def forward(self, cache: AttentionCache | None,
                xs: Any) -> tuple[np.ndarray, AttentionCache]:
        """Return the transformed sequence and the next attention cache."""
        x = np.asarray(xs)
        if self.normalize_before:
            normed = self.norm.forward(x)
            attended, _, next_cache = self.attention.forward(cache, normed, normed)
            return x + attended, next_cache
        attended, _, next_cache = self.attention.forward(cache, x, x)
        return self.norm.forward(x + attended), next_cache


class CrossAttentionBlock:
    """Cross-attention over encoder states with residual connection and normalisation."""

    def __init__(self, dim: int, num_heads: int, normalize_before: bool = False, *,
                 dtype: Any = np.float32, rng: np.random.Generator | None = None) -> None:
        self.normalize_before = normalize_before
        self.attention = MultiHeadAttention(dim, num_heads, False, True, dtype=dtype, rng=rng)
        self.norm = LayerNorm(dim, _NORM_EPS, dtype=dtype)

    def forward(self, cache: AttentionCache | None, seq1: Any,
                seq2: Any) -> tuple[np.ndarray, AttentionCache]:
        """Attend from ``seq1`` to ``seq2``; return the result and the next cache."""
        x = np.asarray(seq1)
        if self.normalize_before:
            normed = self.norm.forward(x)
            attended, _, next_cache = self.attention.forward(cache, normed, seq2)
            return x + attended, next_cache
        attended, _, next_cache = self.attention.forward(cache, x, seq2)
        return self.norm.forward(x + attended), next_cache


class FeedForwardBlock:
    """Two-layer perceptron with a residual connection and normalisation."""

    def __init__(self, dim: int, hidden_dim: int, activation: Activation,
                 normalize_before: bool = False, *, dtype: Any = np.float32,
                 rng: np.random.Generator | None = None) -> None:
        self.normalize_before = normalize_before
        self.ffn = Sequential(
            Linear(dim, hidden_dim, dtype=dtype, rng=rng),
            activation,
            Linear(hidden_dim, dim, dtype=dtype, rng=rng),
        )
        self.norm = LayerNorm(dim, _NORM_EPS, dtype=dtype)

    def forward(self, xs: Any) -> np.ndarray:
        x = np.asarray(xs)
        if self.normalize_before:
            return x + self.ffn.forward(self.norm.forward(x))
        return self.norm.forward(x + self.ffn.forward(x))


def _sinusoidal_table(rows: int, size: int) -> np.ndarray:
    """Sines of each row in the first half of the columns, cosines in the second."""
    half = (size + size % 2) // 2
    positions = np.arange(rows, dtype=np.float64)[:, None]
    exponents = 2.0 * (np.arange(size) // 2) / size if size else np.zeros(0)
    angles = positions / np.power(10000.0, exponents)[None, :]
    table = np.empty((rows, size), dtype=np.float64)
    table[:, :half] = np.sin(angles[:, 0::2])
    table[:, half:] = np.cos(angles[:, 1::2])
    return table


class PositionalEncoder:
    """Sinusoidal position embeddings, shifted by a fixed offset."""

    def __init__(self, num_embeddings: int, embedding_dim: int, *, padding_idx: int = 0,
                 offset: int = 0, store_name: str = "", trainable: bool = False,
                 dtype: Any = np.float32) -> None:
        self.num_embeddings = num_embeddings
        self.embedding_dim = embedding_dim
        self.padding_idx = padding_idx
        self.offset = offset
        self.store_name = store_name
        self.trainable = trainable
        rows = num_embeddings + offset
        self.embeddings = Embedding(rows, embedding_dim, dtype=dtype)
        self.embeddings.weight[:] = _sinusoidal_table(rows, embedding_dim)

    def encode(self, positions: Iterable[int]) -> np.ndarray:
        """Return one vector per position, after adding the offset."""
        return self.embeddings.encode(position + self.offset for position in positions)


class BartEmbeddings:
    """Input embeddings: shared token vectors, optionally scaled, plus positions."""

    def __init__(self, config: BartConfig, shared: Embedding, is_decoder: bool = False, *,
                 dtype: Any = np.float32) -> None:
        settings = config.cybertron
        store_name = (
            settings.decoder_positional_encoding_store_name
            if is_decoder
            else settings.encoder_positional_encoding_store_name
        )
        self.config = config
        self.shared_embeddings = shared
        self.positional_encoder = PositionalEncoder(
            config.max_position_embeddings,
            config.d_model,
            padding_idx=config.pad_token_id,
            offset=settings.positional_encoder_offset,
            store_name=store_name,
            trainable=settings.training,
            dtype=dtype,
        )
        self.norm = LayerNorm(config.d_model, _NORM_EPS, dtype=dtype)
        self.scale_factor = math.sqrt(config.d_model) if config.scale_embedding else None

    def encode(self, input_ids: Sequence[int], offset: int = 0) -> np.ndarray:
        """Embed ``input_ids`` whose first token stands at position ``offset``."""
        ids = list(input_ids)
        tokens = self.shared_embeddings.encode(ids)
        if self.scale_factor is not None:
            tokens = tokens * tokens.dtype.type(self.scale_factor)
        positions = self.positional_encoder.encode(make_positions(len(ids), offset))
        ys = tokens + positions
        if self.config.normalize_embedding:
            ys = self.norm.forward(ys)
        return ys