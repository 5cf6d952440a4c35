import json

import pytest

from transformerkit.bert_config import (
    BertConfig,
    TokenizerConfig,
    load_bert_config,
    load_tokenizer_config,
)


def _write(tmp_path, data, name="config.json"):
    path = tmp_path / name
    path.write_text(data if isinstance(data, str) else json.dumps(data), encoding="utf-8")
    return path


def test_full_config_round_trip(tmp_path):
    data = {
        "architectures": ["BertForMaskedLM"],
        "attention_probs_dropout_prob": 0.1,
        "hidden_act": "gelu",
        "hidden_size": 768,
        "embeddings_size": 128,
        "intermediate_size": 3072,
        "layer_norm_eps": 1e-12,
        "max_position_embeddings": 512,
        "model_type": "bert",
        "num_attention_heads": 12,
        "num_hidden_layers": 6,
        "pad_token_id": 0,
        "type_vocab_size": 2,
        "use_cache": True,
        "vocab_size": 30522,
        "id2label": {"0": "NEG", "1": "POS"},
    }
    config = load_bert_config(_write(tmp_path, data))
    assert config.architectures == ["BertForMaskedLM"]
    assert config.attention_probs_dropout_prob == 0.1
    assert config.hidden_act == "gelu"
    assert config.hidden_size == 768
    assert config.embeddings_size == 128
    assert config.num_hidden_layers == 6
    assert config.use_cache is True
    assert config.vocab_size == 30522
    assert config.id2label == {"0": "NEG", "1": "POS"}


def test_missing_fields_keep_defaults(tmp_path):
    assert load_bert_config(_write(tmp_path, {})) == BertConfig()


def test_null_document_gives_defaults(tmp_path):
    assert load_bert_config(_write(tmp_path, "null")) == BertConfig()


def test_null_field_keeps_default(tmp_path):
    config = load_bert_config(_write(tmp_path, {"hidden_size": None, "vocab_size": 7}))
    assert config.hidden_size == BertConfig().hidden_size
    assert config.vocab_size == 7


def test_cybertron_settings_matched_case_insensitively(tmp_path):
    data = {"cybertron": {"training": True, "tokens_store_name": "words"}}
    config = load_bert_config(_write(tmp_path, data))
    assert config.cybertron.training is True
    assert config.cybertron.tokens_store_name == "words"
    assert config.cybertron.positions_store_name == ""


def test_integer_accepted_for_float_field(tmp_path):
    config = load_bert_config(_write(tmp_path, {"hidden_dropout_prob": 1}))
    assert config.hidden_dropout_prob == 1.0
    assert isinstance(config.hidden_dropout_prob, float)


@pytest.mark.parametrize(
    "data",
    [
        {"hidden_size": "768"},
        {"hidden_size": 1.5},
        {"use_cache": 1},
        {"architectures": "bert"},
        {"id2label": {"0": 1}},
    ],
)
def test_wrong_types_raise(tmp_path, data):
    with pytest.raises(ValueError):
        load_bert_config(_write(tmp_path, data))


def test_trailing_content_is_ignored(tmp_path):
    config = load_bert_config(_write(tmp_path, '{"hidden_size": 4} trailing'))
    assert config.hidden_size == 4


def test_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_bert_config(tmp_path / "absent.json")


def test_tokenizer_config(tmp_path):
    data = {
        "do_lower_case": True,
        "unk_token": "[UNK]",
        "sep_token": "[SEP]",
        "pad_token": "[PAD]",
        "cls_token": "[CLS]",
        "mask_token": "[MASK]",
        "tokenize_chinese_chars": True,
        "strip_accents": False,
        "model_max_length": 512,
    }
    config = load_tokenizer_config(_write(tmp_path, data))
    assert config == TokenizerConfig(**data)


def test_tokenizer_strip_accents_accepts_any_value(tmp_path):
    config = load_tokenizer_config(_write(tmp_path, {"strip_accents": ["a", 1]}))
    assert config.strip_accents == ["a", 1]


def test_tokenizer_out_of_range_length_raises(tmp_path):
    with pytest.raises(ValueError):
        load_tokenizer_config(_write(tmp_path, {"model_max_length": 10**30}))