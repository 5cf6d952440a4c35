"""Configuration of BART models and of their fine-tuning heads."""

from __future__ import annotations

from dataclasses import dataclass, field
from os import PathLike
from typing import Any

from .commonconfig import _load_config

_DEFAULT_NUM_BEAMS = 4


def _named(key: str, **kwargs: Any) -> Any:
    return field(metadata={"json": key}, **kwargs)


@dataclass
class BartCybertronSettings:
    """Settings specific to this package, stored under the ``Cybertron`` key."""

    training: bool = False
    positional_encoder_offset: int = 0
    shared_embeddings_store_name: str = ""
    decoder_positional_encoding_store_name: str = ""
    encoder_positional_encoding_store_name: str = ""


@dataclass
class BartConfig:
    """Global configuration of a BART model, in the Hugging Face layout."""

    num_labels: int = _named("_num_labels", default=0)
    activation_dropout: float = 0.0
    activation_function: str = ""
    bias_logits: bool = _named("add_bias_logits", default=False)
    final_layer_norm: bool = _named("add_final_layer_norm", default=False)
    architecture: list[str] = _named("architectures", default_factory=list)
    attention_dropout: float = 0.0
    bos_token_id: int = 0
    classifier_dropout: float = _named("classif_dropout", default=0.0)
    d_model: int = 0
    decoder_attention_heads: int = 0
    decoder_ffn_dim: int = 0
    decoder_layer_drop: float = _named("decoder_layerdrop", default=0.0)
    decoder_layers: int = 0
    decoder_start_token_id: int = 0
    dropout: float = 0.0
    encoder_attention_heads: int = 0
    encoder_ffn_dim: int = 0
    encoder_layer_drop: float = _named("encoder_layerdrop", default=0.0)
    encoder_layers: int = 0
    eos_token_id: int = 0
    fine_tuning_task: str = _named("finetuning_task", default="")
    force_bos_token_to_be_generated: bool = False
    id2label: dict[str, str] = field(default_factory=dict)
    init_std: float = 0.0
    is_encoder_decoder: bool = False
    label2id: dict[str, int] = field(default_factory=dict)
    length_penalty: float = 0.0
    max_position_embeddings: int = 0
    model_type: str = ""
    normalize_before: bool = False
    normalize_embedding: bool = True
    num_hidden_layers: int = 0
    output_past: bool = False
    pad_token_id: int = 0
    scale_embedding: bool = False
    static_position_embeddings: bool = False
    total_flos: float = 0.0
    vocab_size: int = 0
    num_beams: int = 0
    max_length: int = 0
    min_length: int = 0
    bad_words_ids: list[list[int]] = field(default_factory=list)
    early_stopping: bool = False
    no_repeat_ngram_size: int = 0
    extra_special_tokens: dict[int, str] = field(default_factory=dict)
    cybertron: BartCybertronSettings = _named(
        "Cybertron", default_factory=BartCybertronSettings
    )

    def entailment_id(self) -> int:
        """Return the id of the ``entailment`` label."""
        return self._label_id("entailment")

    def contradiction_id(self) -> int:
        """Return the id of the ``contradiction`` label."""
        return self._label_id("contradiction")

    def _label_id(self, label: str) -> int:
        try:
            return self.label2id[label]
        except KeyError:
            raise KeyError(f"bart: `{label}` label not found") from None


def load_bart_config(path: str | PathLike[str]) -> BartConfig:
    """Load a BART configuration from a JSON file, filling generation defaults."""
    config = _load_config(BartConfig, path)
    if config.max_length == 0:
        config.max_length = config.max_position_embeddings
    if config.num_beams == 0:
        config.num_beams = _DEFAULT_NUM_BEAMS
    return config