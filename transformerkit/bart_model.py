"""The BART encoder-decoder: encoder and decoder stacks and the base model."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any, TypeVar

import numpy as np

from .bart_blocks import BartEmbeddings, CrossAttentionBlock, FeedForwardBlock, SelfAttentionBlock
from .bart_config import BartConfig
from .layers import AttentionCache, Embedding, LayerNorm, parse_activation

_NORM_EPS = 1e-5

_T = TypeVar("_T")

LayerCache = tuple[AttentionCache | None, AttentionCache | None]
"""Self-attention cache and cross-attention cache of one decoder layer."""


def shift_right(items: Sequence[_T], i: int) -> list[_T]:
    """Rotate ``items`` right by ``i`` places: the last ``i`` items come first."""
    items = list(items)
    if not 0 <= i <= len(items):
        raise ValueError(f"shift {i} out of range for a sequence of length {len(items)}")
    split = len(items) - i
    return items[split:] + items[:split]


class BartEncoderLayer:
    """One encoder layer: self-attention block then feed-forward block."""

    def __init__(self, config: BartConfig, *, dtype: Any = np.float32,
                 rng: np.random.Generator | None = None) -> None:
        self.config = config
        self.self_attention = SelfAttentionBlock(
            config.d_model,
            config.encoder_attention_heads,
            config.normalize_before,
            False,
            dtype=dtype,
            rng=rng,
        )
        self.ff = FeedForwardBlock(
            config.d_model,
            config.encoder_ffn_dim,
            parse_activation(config.activation_function),
            config.normalize_before,
            dtype=dtype,
            rng=rng,
        )

    def forward(self, xs: Any) -> np.ndarray:
        attended, _ = self.self_attention.forward(None, xs)
        return self.ff.forward(attended)


class BartEncoder:
    """Input embeddings followed by a stack of encoder layers."""

    def __init__(self, config: BartConfig, shared: Embedding, *, dtype: Any = np.float32,
                 rng: np.random.Generator | None = None) -> None:
        self.config = config
        self.embeddings = BartEmbeddings(config, shared, False, dtype=dtype)
        self.layers = [
            BartEncoderLayer(config, dtype=dtype, rng=rng)
            for _ in range(config.encoder_layers)
        ]
        self.layer_norm = LayerNorm(config.d_model, _NORM_EPS, dtype=dtype)

    def encode(self, input_ids: Sequence[int]) -> np.ndarray:
        """Return one encoded state per input id."""
        ys = self.embeddings.encode(input_ids, 0)
        for layer in self.layers:
            ys = layer.forward(ys)
        if self.config.final_layer_norm:
            ys = self.layer_norm.forward(ys)
        return ys


class BartDecoderLayer:
    """One decoder layer: causal self-attention, cross-attention, feed-forward."""

    def __init__(self, config: BartConfig, *, dtype: Any = np.float32,
                 rng: np.random.Generator | None = None) -> None:
        self.config = config
        self.self_attention = SelfAttentionBlock(
            config.d_model,
            config.decoder_attention_heads,
            config.normalize_before,
            True,
            dtype=dtype,
            rng=rng,
        )
        self.cross_attention = CrossAttentionBlock(
            config.d_model,
            config.decoder_attention_heads,
            config.normalize_before,
            dtype=dtype,
            rng=rng,
        )
        self.ff = FeedForwardBlock(
            config.d_model,
            config.decoder_ffn_dim,
            parse_activation(config.activation_function),
            config.normalize_before,
            dtype=dtype,
            rng=rng,
        )

    def forward(self, cache: LayerCache | None, seq1: Any,
                seq2: Any) -> tuple[np.ndarray, tuple[AttentionCache, AttentionCache]]:
        """Decode ``seq1`` attending to ``seq2``; return the result and the next cache."""
        self_cache, cross_cache = cache if cache is not None else (None, None)
        attended, next_self = self.self_attention.forward(self_cache, seq1)
        crossed, next_cross = self.cross_attention.forward(cross_cache, attended, seq2)
        return self.ff.forward(crossed), (next_self, next_cross)


class BartDecoder:
    """Input embeddings followed by a stack of decoder layers."""

    def __init__(self, config: BartConfig, shared: Embedding, *, dtype: Any = np.float32,
                 rng: np.random.Generator | None = None) -> None:
        self.config = config
        self.embeddings = BartEmbeddings(config, shared, True, dtype=dtype)
        self.layers = [
            BartDecoderLayer(config, dtype=dtype, rng=rng)
            for _ in range(config.decoder_layers)
        ]
        self.layer_norm = LayerNorm(config.d_model, _NORM_EPS, dtype=dtype)

    def decode(self, encoder_states: Any, input_ids: Sequence[int],
               cache: Sequence[LayerCache] | None = None,
               cur_len: int = 1) -> tuple[np.ndarray, list[tuple[AttentionCache, AttentionCache]]]:
        """Decode ``input_ids``, the first of which stands at position ``cur_len - 1``.

        ``cache`` holds one entry per layer from a previous call; an empty or
        missing cache starts afresh.
        """
        ys = self.embeddings.encode(input_ids, cur_len - 1)
        next_cache = []
        for index, layer in enumerate(self.layers):
            layer_cache = cache[index] if cache else None
            ys, layer_next = layer.forward(layer_cache, ys, encoder_states)
            next_cache.append(layer_next)
        if self.config.final_layer_norm:
            ys = self.layer_norm.forward(ys)
        return ys, next_cache


class BartModel:
    """A base BART encoder-decoder without any head on top."""

    def __init__(self, config: BartConfig, *, dtype: Any = np.float32,
                 rng: np.random.Generator | None = None) -> None:
        self.config = config
        self.embeddings = Embedding(config.vocab_size, config.d_model, dtype=dtype, rng=rng)
        self.encoder = BartEncoder(config, self.embeddings, dtype=dtype, rng=rng)
        self.decoder = BartDecoder(config, self.embeddings, dtype=dtype, rng=rng)

    def forward(self, input_ids: Sequence[int]) -> np.ndarray:
        """Encode and decode the same sequence, returning the decoded states."""
        ids = list(input_ids)
        encoded = self.encoder.encode(ids)
        decoded, _ = self.decoder.decode(encoded, shift_right(ids, 1), None, 1)
        return decoded