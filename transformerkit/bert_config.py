"""Configuration of BERT models and of their tokenizers."""

from __future__ import annotations

from dataclasses import dataclass, field
from os import PathLike
from typing import Any

from .commonconfig import _load_config


@dataclass
class BertCybertronSettings:
    """Settings specific to this package, stored under the ``Cybertron`` key."""

    training: bool = False
    tokens_store_name: str = ""
    positions_store_name: str = ""
    token_types_store_name: str = ""


@dataclass
class BertConfig:
    """Global configuration of a BERT model, in the Hugging Face layout."""

    architectures: list[str] = field(default_factory=list)
    attention_probs_dropout_prob: float = 0.0
    gradient_checkpointing: bool = False
    hidden_act: str = ""
    hidden_dropout_prob: float = 0.0
    hidden_size: int = 0
    embeddings_size: int = 0
    initializer_range: float = 0.0
    intermediate_size: int = 0
    layer_norm_eps: float = 0.0
    max_position_embeddings: int = 0
    model_type: str = ""
    num_attention_heads: int = 0
    num_hidden_layers: int = 0
    pad_token_id: int = 0
    position_embedding_type: str = ""
    transformers_version: str = ""
    type_vocab_size: int = 0
    use_cache: bool = False
    vocab_size: int = 0
    id2label: dict[str, str] = field(default_factory=dict)
    cybertron: BertCybertronSettings = field(
        default_factory=BertCybertronSettings, metadata={"json": "Cybertron"}
    )


@dataclass
class TokenizerConfig:
    """Configuration of a BERT tokenizer, in the Hugging Face layout."""

    do_lower_case: bool = False
    unk_token: str = ""
    sep_token: str = ""
    pad_token: str = ""
    cls_token: str = ""
    mask_token: str = ""
    tokenize_chinese_chars: bool = False
    strip_accents: Any = None
    model_max_length: int = 0


def load_bert_config(path: str | PathLike[str]) -> BertConfig:
    """Load a BERT model configuration from a JSON file."""
    return _load_config(BertConfig, path)


def load_tokenizer_config(path: str | PathLike[str]) -> TokenizerConfig:
    """Load a BERT tokenizer configuration from a JSON file."""
    return _load_config(TokenizerConfig, path)