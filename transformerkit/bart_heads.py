"""Task-specific heads on top of a BART encoder-decoder."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

import numpy as np

from .bart_model import BartModel, LayerCache
from .layers import Activation, Linear, Sequential

ScoreProcessor = Callable[[np.ndarray], np.ndarray]
"""Post-processes the log probabilities of the next token."""


def make_pad_mask(pad_token_id: int, vocab_size: int) -> np.ndarray:
    """Return a mask that forbids the pad token: ``-inf`` at its id, zero elsewhere."""
    if not 0 <= pad_token_id < vocab_size:
        raise IndexError(f"pad token id {pad_token_id} out of range [0, {vocab_size})")
    mask = np.zeros(vocab_size, dtype=np.float32)
    mask[pad_token_id] = -np.inf
    return mask


def make_eos_mask(eos_token_id: int, vocab_size: int) -> np.ndarray:
    """Return a mask that forces EOS: zero at its id, ``-inf`` elsewhere."""
    if not 0 <= eos_token_id < vocab_size:
        raise IndexError(f"EOS token id {eos_token_id} out of range [0, {vocab_size})")
    mask = np.full(vocab_size, -np.inf, dtype=np.float32)
    mask[eos_token_id] = 0
    return mask


def _log_softmax(x: np.ndarray) -> np.ndarray:
    shifted = x - x.max()
    return shifted - np.log(np.exp(shifted).sum())


class BartClassifier:
    """Sentence-level classification head: linear, tanh, linear."""

    def __init__(self, input_size: int, hidden_size: int, output_size: int,
                 pooler_dropout: float = 0.0, *, dtype: Any = np.float32,
                 rng: np.random.Generator | None = None) -> None:
        self.input_size = input_size
        self.hidden_size = hidden_size
        self.output_size = output_size
        self.pooler_dropout = pooler_dropout
        self.layers = Sequential(
            Linear(input_size, hidden_size, dtype=dtype, rng=rng),
            Activation.TANH,
            Linear(hidden_size, output_size, dtype=dtype, rng=rng),
        )

    def forward(self, x: Any) -> np.ndarray:
        return self.layers.forward(x)


class BartForSequenceClassification:
    """Classification of a sequence from the last decoded state."""

    def __init__(self, bart: BartModel, *, dtype: Any = np.float32,
                 rng: np.random.Generator | None = None) -> None:
        config = bart.config
        self.bart = bart
        self.classifier = BartClassifier(
            config.d_model,
            config.d_model,
            config.num_labels,
            config.classifier_dropout,
            dtype=dtype,
            rng=rng,
        )

    def forward(self, input_ids: Sequence[int]) -> np.ndarray:
        """Return one logit per label."""
        return self.classifier.forward(self.bart.forward(input_ids)[-1])


@dataclass
class DecodingInput:
    """One item of a decoding batch."""

    input_ids: list[int]
    cur_len: int
    cache: list[LayerCache] | None = field(default=None)


@dataclass
class DecodingOutput:
    """The log probabilities of the next token and the cache to continue with."""

    log_prob_raw: np.ndarray
    log_prob_value: np.ndarray
    next_cache: list[LayerCache]


class BartForConditionalGeneration:
    """Conditional generation: projects decoder states onto the vocabulary."""

    def __init__(self, bart: BartModel, *, dtype: Any = np.float32,
                 rng: np.random.Generator | None = None) -> None:
        config = bart.config
        self.bart = bart
        self.projection = Linear(config.d_model, config.vocab_size, dtype=dtype, rng=rng)
        self.pad_mask = make_pad_mask(config.pad_token_id, config.vocab_size).astype(dtype)
        self.eos_mask = (
            make_eos_mask(config.eos_token_id, config.vocab_size).astype(dtype)
            if config.eos_token_id >= 0
            else None
        )

    def decoding_func(self, encoder_input_ids: Sequence[int],
                      score_processor: ScoreProcessor | None = None,
                      inference: bool = True) -> Callable[[Sequence[DecodingInput]], list[DecodingOutput]]:
        """Encode the input once; return a function decoding batches against it.

        During inference the logits are adjusted to avoid impossible tokens.
        """
        encoder_states = self.bart.encoder.encode(encoder_input_ids)
        process = score_processor if score_processor is not None else (lambda x: x)

        def decode(batch: Sequence[DecodingInput]) -> list[DecodingOutput]:
            return [self._next(encoder_states, item, process, inference) for item in batch]

        return decode

    def _next(self, encoder_states: np.ndarray, item: DecodingInput,
              score_processor: ScoreProcessor, inference: bool) -> DecodingOutput:
        decoded, next_cache = self.bart.decoder.decode(
            encoder_states, item.input_ids, item.cache, item.cur_len
        )
        logits = self.projection.forward(decoded[0])
        if inference:
            logits = self.adjust_logits(logits, item.cur_len)
        log_prob = _log_softmax(logits)
        return DecodingOutput(
            log_prob_raw=log_prob,
            log_prob_value=score_processor(log_prob.copy()),
            next_cache=next_cache,
        )

    def adjust_logits(self, logits: Any, cur_len: int) -> np.ndarray:
        """Forbid the pad token, and force EOS at the last allowed position."""
        ys = np.asarray(logits) + self.pad_mask
        config = self.bart.config
        if cur_len == config.max_length - 1 and config.eos_token_id >= 0:
            ys = ys + self.eos_mask
        return ys