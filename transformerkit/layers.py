"""Neural network building blocks on numpy arrays."""

from __future__ import annotations

import math
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from enum import Enum
from typing import Any

import numpy as np

_erf = np.vectorize(math.erf, otypes=[np.float64])


def _as_float_array(x: Any) -> np.ndarray:
    array = np.asarray(x)
    if not np.issubdtype(array.dtype, np.floating):
        array = array.astype(np.float64)
    return array


def _initial(shape: tuple[int, ...], fan_in: int, rng: np.random.Generator | None, dtype: Any) -> np.ndarray:
    if rng is None:
        return np.zeros(shape, dtype=dtype)
    bound = 1.0 / math.sqrt(fan_in) if fan_in > 0 else 0.0
    return rng.uniform(-bound, bound, size=shape).astype(dtype)


def _sigmoid(x: np.ndarray) -> np.ndarray:
    return 0.5 * (1.0 + np.tanh(0.5 * x))


class Activation(Enum):
    """Element-wise activation functions."""

    IDENTITY = "identity"
    TANH = "tanh"
    SIGMOID = "sigmoid"
    RELU = "relu"
    GELU = "gelu"
    GELU_NEW = "gelu_new"
    SILU = "silu"

    def __call__(self, x: Any) -> np.ndarray:
        array = _as_float_array(x)
        return np.asarray(_ACTIVATION_FUNCTIONS[self](array), dtype=array.dtype)


_ACTIVATION_FUNCTIONS: dict[Activation, Callable[[np.ndarray], np.ndarray]] = {
    Activation.IDENTITY: lambda x: x.copy(),
    Activation.TANH: np.tanh,
    Activation.SIGMOID: _sigmoid,
    Activation.RELU: lambda x: np.maximum(x, 0),
    Activation.GELU: lambda x: 0.5 * x * (1.0 + _erf(x / math.sqrt(2.0))),
    Activation.GELU_NEW: lambda x: 0.5 * x * (
        1.0 + np.tanh(math.sqrt(2.0 / math.pi) * (x + 0.044715 * x**3))
    ),
    Activation.SILU: lambda x: x * _sigmoid(x),
}

_ACTIVATION_ALIASES = {"swish": Activation.SILU, "linear": Activation.IDENTITY}


def parse_activation(name: str) -> Activation:
    """Return the activation for a name such as ``"gelu"``, ignoring case."""
    key = name.strip().lower()
    if key in _ACTIVATION_ALIASES:
        return _ACTIVATION_ALIASES[key]
    try:
        return Activation(key)
    except ValueError:
        raise ValueError(f"unknown activation function {name!r}") from None


class Linear:
    """Affine transformation ``x @ W.T + b``."""

    def __init__(self, in_features: int, out_features: int, *, dtype: Any = np.float32,
                 rng: np.random.Generator | None = None) -> None:
        self.weight = _initial((out_features, in_features), in_features, rng, dtype)
        self.bias = _initial((out_features,), in_features, rng, dtype)

    @property
    def in_features(self) -> int:
        return self.weight.shape[1]

    @property
    def out_features(self) -> int:
        return self.weight.shape[0]

    def forward(self, xs: Any) -> np.ndarray:
        """Transform the last axis of ``xs``."""
        x = _as_float_array(xs)
        if x.shape[-1:] != (self.in_features,):
            raise ValueError(f"expected last dimension {self.in_features}, got shape {x.shape}")
        return x @ self.weight.T + self.bias


class LayerNorm:
    """Layer normalisation over the last axis."""

    def __init__(self, dim: int, eps: float = 1e-5, *, dtype: Any = np.float32) -> None:
        self.eps = eps
        self.weight = np.ones(dim, dtype=dtype)
        self.bias = np.zeros(dim, dtype=dtype)

    def forward(self, xs: Any) -> np.ndarray:
        x = _as_float_array(xs)
        if x.shape[-1:] != self.weight.shape:
            raise ValueError(f"expected last dimension {self.weight.shape[0]}, got shape {x.shape}")
        mean = x.mean(axis=-1, keepdims=True)
        var = ((x - mean) ** 2).mean(axis=-1, keepdims=True)
        return (x - mean) / np.sqrt(var + self.eps) * self.weight + self.bias


class Embedding:
    """Lookup table of dense vectors indexed by integer ids."""

    def __init__(self, num_embeddings: int, dim: int, *, dtype: Any = np.float32,
                 rng: np.random.Generator | None = None) -> None:
        if rng is None:
            self.weight = np.zeros((num_embeddings, dim), dtype=dtype)
        else:
            self.weight = rng.standard_normal((num_embeddings, dim)).astype(dtype)

    @property
    def num_embeddings(self) -> int:
        return self.weight.shape[0]

    @property
    def dim(self) -> int:
        return self.weight.shape[1]

    def _check_index(self, index: int) -> None:
        if not 0 <= index < self.num_embeddings:
            raise IndexError(f"embedding index {index} out of range [0, {self.num_embeddings})")

    def encode(self, ids: Any) -> np.ndarray:
        """Return one row per id, shape ``(len(ids), dim)``."""
        indices = [int(i) for i in ids]
        for index in indices:
            self._check_index(index)
        return self.weight[np.asarray(indices, dtype=np.intp)].copy()

    def set_vector(self, index: int, values: Any) -> None:
        """Replace the vector stored at ``index``."""
        self._check_index(index)
        vector = np.asarray(values, dtype=self.weight.dtype)
        if vector.shape != (self.dim,):
            raise ValueError(f"expected a vector of size {self.dim}, got shape {vector.shape}")
        self.weight[index] = vector


@dataclass(frozen=True)
class AttentionCache:
    """Projected keys and values kept between attention calls."""

    keys: np.ndarray | None = None
    values: np.ndarray | None = None

    @property
    def has_values(self) -> bool:
        return self.keys is not None


def _softmax(scores: np.ndarray) -> np.ndarray:
    exp = np.exp(scores - scores.max(axis=-1, keepdims=True))
    return exp / exp.sum(axis=-1, keepdims=True)


class MultiHeadAttention:
    """Scaled dot-product attention with several heads.

    Self-attention appends new keys and values to the cache; cross-attention
    projects the keys and values once and reuses them from the cache.
    """

    def __init__(self, dim: int, num_heads: int, use_causal_mask: bool = False,
                 is_cross_attention: bool = False, *, dtype: Any = np.float32,
                 rng: np.random.Generator | None = None) -> None:
        if num_heads <= 0 or dim % num_heads != 0:
            raise ValueError(f"dimension {dim} is not divisible into {num_heads} heads")
        self.dim = dim
        self.num_heads = num_heads
        self.use_causal_mask = use_causal_mask
        self.is_cross_attention = is_cross_attention
        self.query = Linear(dim, dim, dtype=dtype, rng=rng)
        self.key = Linear(dim, dim, dtype=dtype, rng=rng)
        self.value = Linear(dim, dim, dtype=dtype, rng=rng)
        self.output = Linear(dim, dim, dtype=dtype, rng=rng)

    def _split_heads(self, x: np.ndarray) -> np.ndarray:
        return x.reshape(x.shape[0], self.num_heads, -1).transpose(1, 0, 2)

    def forward(self, cache: AttentionCache | None, queries: Any,
                keys_values: Any) -> tuple[np.ndarray, np.ndarray, AttentionCache]:
        """Return the attended outputs, the attention weights and the next cache."""
        cache = cache if cache is not None else AttentionCache()
        q_in = _as_float_array(queries)
        if q_in.ndim != 2:
            raise ValueError(f"queries must be two-dimensional, got shape {q_in.shape}")
        q = self.query.forward(q_in)
        if self.is_cross_attention and cache.has_values:
            k, v = cache.keys, cache.values
        else:
            kv = _as_float_array(keys_values)
            k, v = self.key.forward(kv), self.value.forward(kv)
            if cache.has_values:
                k = np.concatenate([cache.keys, k])
                v = np.concatenate([cache.values, v])
        if k.shape[0] == 0:
            raise ValueError("attention needs at least one key")

        n, k_len = q.shape[0], k.shape[0]
        head_dim = self.dim // self.num_heads
        scores = self._split_heads(q) @ self._split_heads(k).transpose(0, 2, 1)
        scores = scores / math.sqrt(head_dim)
        if self.use_causal_mask:
            mask = np.triu(np.ones((n, k_len), dtype=bool), k=k_len - n + 1)
            scores = np.where(mask, -np.inf, scores)
        weights = _softmax(scores)
        context = (weights @ self._split_heads(v)).transpose(1, 0, 2).reshape(n, self.dim)
        return self.output.forward(context), weights, AttentionCache(k, v)


class Sequential:
    """Layers applied one after another."""

    def __init__(self, *layers: Any) -> None:
        self.layers = list(layers)

    def __iter__(self) -> Iterator[Any]:
        return iter(self.layers)

    def __len__(self) -> int:
        return len(self.layers)

    def __getitem__(self, index: int) -> Any:
        return self.layers[index]

    def forward(self, xs: Any) -> np.ndarray:
        result = _as_float_array(xs)
        for layer in self.layers:
            result = layer.forward(result) if hasattr(layer, "forward") else layer(result)
        return result