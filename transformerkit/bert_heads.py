"""Task-specific heads on top of a BERT encoder."""

from __future__ import annotations

from collections.abc import Sequence
from enum import IntEnum
from typing import Any

import numpy as np

from .bert_model import BertModel
from .layers import LayerNorm, Linear, Sequential, parse_activation

DEFAULT_MASK_TOKEN = "[MASK]"
_NORM_EPS = 1e-5


class PoolingStrategy(IntEnum):
    """How a sequence of hidden states is reduced to a single vector."""

    CLS_TOKEN = 0
    """The pooled state of the first token, ``[CLS]`` (default)."""
    MEAN = 1
    """The average of the last hidden states."""
    MAX = 2
    """The element-wise maximum of the last hidden states."""
    MEAN_MAX = 3
    """Mean and max pooling concatenated."""


def masked_positions(tokens: Sequence[str], mask_token: str = DEFAULT_MASK_TOKEN) -> list[int]:
    """Return the indices of the tokens equal to ``mask_token``."""
    return [index for index, token in enumerate(tokens) if token == mask_token]


class BertForMaskedLM:
    """Head scoring every vocabulary entry at each mask position."""

    def __init__(self, bert: BertModel, *, mask_token: str = DEFAULT_MASK_TOKEN,
                 dtype: Any = np.float32, rng: np.random.Generator | None = None) -> None:
        config = bert.config
        self.bert = bert
        self.mask_token = mask_token
        self.layers = Sequential(
            Linear(config.hidden_size, config.hidden_size, dtype=dtype, rng=rng),
            parse_activation(config.hidden_act),
            LayerNorm(config.hidden_size, _NORM_EPS, dtype=dtype),
            Linear(config.hidden_size, config.vocab_size, dtype=dtype, rng=rng),
        )

    def predict(self, tokens: Sequence[str]) -> dict[int, np.ndarray]:
        """Map each masked position to its scores over the vocabulary."""
        tokens = list(tokens)
        encoded = self.bert.encode_tokens(tokens)
        return {
            position: self.layers.forward(encoded[position])
            for position in masked_positions(tokens, self.mask_token)
        }


class BertForQuestionAnswering:
    """Span classification for extractive question answering."""

    def __init__(self, bert: BertModel, *, dtype: Any = np.float32,
                 rng: np.random.Generator | None = None) -> None:
        self.bert = bert
        self.classifier = Linear(bert.config.hidden_size, 2, dtype=dtype, rng=rng)

    def answer(self, tokens: Sequence[str]) -> tuple[np.ndarray, np.ndarray]:
        """Return the span start logits and the span end logits, one per token."""
        logits = self.classifier.forward(self.bert.encode_tokens(tokens))
        return logits[:, 0].copy(), logits[:, 1].copy()


class BertForSequenceClassification:
    """Classification of a whole sequence from its pooled ``[CLS]`` state."""

    def __init__(self, bert: BertModel, *, dtype: Any = np.float32,
                 rng: np.random.Generator | None = None) -> None:
        self.bert = bert
        self.classifier = Linear(
            bert.config.hidden_size, len(bert.config.id2label), dtype=dtype, rng=rng
        )

    def classify(self, tokens: Sequence[str]) -> np.ndarray:
        """Return one logit per label."""
        encoded = self.bert.encode_tokens(tokens)
        return self.classifier.forward(self.bert.pooler.forward(encoded[0]))


class BertForSequenceEncoding:
    """Dense vector representation of a whole sequence."""

    def __init__(self, bert: BertModel) -> None:
        self.bert = bert

    def encode(self, tokens: Sequence[str],
               pooling_strategy: PoolingStrategy | int = PoolingStrategy.CLS_TOKEN) -> np.ndarray:
        """Encode ``tokens`` and pool the hidden states into one vector."""
        try:
            strategy = PoolingStrategy(pooling_strategy)
        except ValueError:
            raise ValueError("bert: invalid pooling strategy") from None
        return self._pool(self.bert.encode_tokens(tokens), strategy)

    def _pool(self, states: np.ndarray, strategy: PoolingStrategy) -> np.ndarray:
        if strategy is PoolingStrategy.MEAN:
            return states.mean(axis=0)
        if strategy is PoolingStrategy.MAX:
            return states.max(axis=0)
        if strategy is PoolingStrategy.MEAN_MAX:
            return np.concatenate([states.mean(axis=0), states.max(axis=0)])
        return self.bert.pooler.forward(states[0])


class BertForTokenClassification:
    """Classification of every token of a sequence."""

    def __init__(self, bert: BertModel, *, dtype: Any = np.float32,
                 rng: np.random.Generator | None = None) -> None:
        self.bert = bert
        self.classifier = Linear(
            bert.config.hidden_size, len(bert.config.id2label), dtype=dtype, rng=rng
        )

    def classify(self, tokens: Sequence[str]) -> np.ndarray:
        """Return the label logits of each token, shape ``(len(tokens), labels)``."""
        return self.classifier.forward(self.bert.encode_tokens(tokens))