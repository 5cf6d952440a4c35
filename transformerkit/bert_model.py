"""The BERT encoder: input embeddings, encoder layers and pooler."""

from __future__ import annotations

from collections.abc import Iterator, Mapping, Sequence
from typing import Any

import numpy as np

from .bert_config import BertConfig
from .layers import (
    Activation,
    Embedding,
    LayerNorm,
    Linear,
    MultiHeadAttention,
    Sequential,
    parse_activation,
)

DEFAULT_SEQUENCE_SEPARATOR = "[SEP]"
_NORM_EPS = 1e-5


def _token_type_ids(tokens: Sequence[str], separator: str) -> Iterator[int]:
    """Yield the segment index of each token; a separator closes its segment."""
    segment = 0
    for token in tokens:
        yield segment
        if token == separator:
            segment += 1


class BertEmbeddings:
    """Input embeddings: token, position and token-type vectors, normalised."""

    def __init__(self, config: BertConfig, vocab: Mapping[str, int], *,
                 sequence_separator: str = DEFAULT_SEQUENCE_SEPARATOR,
                 dtype: Any = np.float32, rng: np.random.Generator | None = None) -> None:
        size = config.embeddings_size
        self.config = config
        self.vocab = vocab
        self.sequence_separator = sequence_separator
        self.tokens = Embedding(config.vocab_size, size, dtype=dtype, rng=rng)
        self.positions = Embedding(config.max_position_embeddings, size, dtype=dtype, rng=rng)
        self.token_types = Embedding(config.type_vocab_size, size, dtype=dtype, rng=rng)
        self.norm = LayerNorm(size, _NORM_EPS, dtype=dtype)
        self.projector = (
            Linear(size, config.hidden_size, dtype=dtype, rng=rng)
            if size != config.hidden_size
            else None
        )

    def _token_id(self, token: str) -> int:
        try:
            return self.vocab[token]
        except KeyError:
            raise KeyError(f"token {token!r} not found in the vocabulary") from None

    def encode_tokens(self, tokens: Sequence[str]) -> np.ndarray:
        """Return one embedding row per token, of the model's hidden size."""
        tokens = list(tokens)
        encoded = self.tokens.encode([self._token_id(token) for token in tokens])
        encoded = encoded + self.positions.encode(range(len(tokens)))
        encoded = encoded + self.token_types.encode(
            _token_type_ids(tokens, self.sequence_separator)
        )
        normalized = self.norm.forward(encoded)
        if self.projector is None:
            return normalized
        return self.projector.forward(normalized)


class BertSelfAttentionBlock:
    """Self-attention followed by a residual connection and normalisation."""

    def __init__(self, dim: int, num_heads: int, *, dtype: Any = np.float32,
                 rng: np.random.Generator | None = None) -> None:
        self.attention = MultiHeadAttention(dim, num_heads, False, False, dtype=dtype, rng=rng)
        self.norm = LayerNorm(dim, _NORM_EPS, dtype=dtype)

    def forward(self, xs: Any) -> np.ndarray:
        x = np.asarray(xs)
        attended, _, _ = self.attention.forward(None, x, x)
        return self.norm.forward(x + attended)


class BertFeedForwardBlock:
    """Two-layer perceptron with a residual connection and normalisation."""

    def __init__(self, dim: int, hidden_dim: int, activation: Activation, *,
                 dtype: Any = np.float32, rng: np.random.Generator | None = None) -> None:
        self.mlp = Sequential(
            Linear(dim, hidden_dim, dtype=dtype, rng=rng),
            activation,
            Linear(hidden_dim, dim, dtype=dtype, rng=rng),
        )
        self.norm = LayerNorm(dim, _NORM_EPS, dtype=dtype)

    def forward(self, xs: Any) -> np.ndarray:
        x = np.asarray(xs)
        return self.norm.forward(x + self.mlp.forward(x))


class BertEncoderLayer:
    """One encoder layer: self-attention block then feed-forward block."""

    def __init__(self, config: BertConfig, *, dtype: Any = np.float32,
                 rng: np.random.Generator | None = None) -> None:
        self.config = config
        self.self_attention = BertSelfAttentionBlock(
            config.hidden_size, config.num_attention_heads, dtype=dtype, rng=rng
        )
        self.ff = BertFeedForwardBlock(
            config.hidden_size,
            config.intermediate_size,
            parse_activation(config.hidden_act),
            dtype=dtype,
            rng=rng,
        )

    def forward(self, xs: Any) -> np.ndarray:
        return self.ff.forward(self.self_attention.forward(xs))


class BertEncoder:
    """A stack of encoder layers."""

    def __init__(self, config: BertConfig, *, dtype: Any = np.float32,
                 rng: np.random.Generator | None = None) -> None:
        self.config = config
        self.layers = [
            BertEncoderLayer(config, dtype=dtype, rng=rng)
            for _ in range(config.num_hidden_layers)
        ]

    def encode(self, xs: Any) -> np.ndarray:
        result = np.asarray(xs)
        for layer in self.layers:
            result = layer.forward(result)
        return result


class BertPooler:
    """Linear transformation followed by tanh, applied to the ``[CLS]`` state."""

    def __init__(self, config: BertConfig, *, dtype: Any = np.float32,
                 rng: np.random.Generator | None = None) -> None:
        self.model = Sequential(
            Linear(config.hidden_size, config.hidden_size, dtype=dtype, rng=rng),
            Activation.TANH,
        )

    def forward(self, encoded: Any) -> np.ndarray:
        return self.model.forward(encoded)


class BertModel:
    """A base BERT encoder without any head on top."""

    def __init__(self, config: BertConfig, vocab: Mapping[str, int], *,
                 dtype: Any = np.float32, rng: np.random.Generator | None = None) -> None:
        self.config = config
        self.embeddings = BertEmbeddings(config, vocab, dtype=dtype, rng=rng)
        self.encoder = BertEncoder(config, dtype=dtype, rng=rng)
        self.pooler = BertPooler(config, dtype=dtype, rng=rng)

    def encode_tokens(self, tokens: Sequence[str]) -> np.ndarray:
        """Return the encoded representation of each token."""
        return self.encoder.encode(self.embeddings.encode_tokens(tokens))