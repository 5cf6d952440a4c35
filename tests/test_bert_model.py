import numpy as np
import pytest

from transformerkit.bert_config import BertConfig
from transformerkit.bert_model import (
    BertEmbeddings,
    BertEncoder,
    BertEncoderLayer,
    BertFeedForwardBlock,
    BertModel,
    BertPooler,
    BertSelfAttentionBlock,
)
from transformerkit.layers import Activation, LayerNorm

VOCAB = {"[CLS]": 0, "[SEP]": 1, "a": 2, "b": 3, "c": 4}


def make_config(**overrides):
    values = dict(
        hidden_size=4,
        embeddings_size=4,
        intermediate_size=8,
        num_attention_heads=2,
        num_hidden_layers=2,
        vocab_size=len(VOCAB),
        max_position_embeddings=16,
        type_vocab_size=2,
        hidden_act="gelu",
    )
    values.update(overrides)
    return BertConfig(**values)


def close(a, b):
    np.testing.assert_allclose(a, b, rtol=1e-4, atol=1e-4)


def test_embeddings_shape_and_normalised_rows():
    emb = BertEmbeddings(make_config(), VOCAB, rng=np.random.default_rng(0))
    out = emb.encode_tokens(["[CLS]", "a", "b", "[SEP]"])
    assert out.shape == (4, 4)
    close(out.mean(axis=-1), np.zeros(4))


def test_embeddings_unknown_token_raises():
    emb = BertEmbeddings(make_config(), VOCAB)
    with pytest.raises(KeyError):
        emb.encode_tokens(["[CLS]", "zzz"])


def test_embeddings_token_types_follow_separator():
    emb = BertEmbeddings(make_config(), VOCAB)
    emb.token_types.set_vector(0, [1.0, -1.0, 0.0, 0.0])
    emb.token_types.set_vector(1, [-1.0, 1.0, 0.0, 0.0])
    out = emb.encode_tokens(["[CLS]", "a", "[SEP]", "b"])
    close(out[1], out[0])
    close(out[2], out[0])
    close(out[3], -out[0])


def test_embeddings_trailing_separator_beyond_type_vocab_is_fine():
    emb = BertEmbeddings(make_config(), VOCAB, rng=np.random.default_rng(1))
    out = emb.encode_tokens(["a", "[SEP]", "b", "[SEP]"])
    assert out.shape == (4, 4)


def test_embeddings_too_many_segments_raises():
    emb = BertEmbeddings(make_config(), VOCAB)
    with pytest.raises(IndexError):
        emb.encode_tokens(["[SEP]", "[SEP]", "a"])


def test_embeddings_projection_when_sizes_differ():
    config = make_config(embeddings_size=6, hidden_size=4)
    emb = BertEmbeddings(config, VOCAB, rng=np.random.default_rng(2))
    assert emb.projector is not None
    out = emb.encode_tokens(["[CLS]", "c"])
    assert out.shape == (2, 4)


def test_embeddings_without_projection_when_sizes_match():
    emb = BertEmbeddings(make_config(), VOCAB)
    assert emb.projector is None


def test_self_attention_block_with_zero_weights_is_normalised_input():
    block = BertSelfAttentionBlock(4, 2)
    xs = np.array([[1.0, 2.0, 3.0, 4.0], [0.0, -1.0, 5.0, 2.0]], dtype=np.float32)
    close(block.forward(xs), LayerNorm(4).forward(xs))


def test_self_attention_block_output_rows_normalised():
    block = BertSelfAttentionBlock(4, 2, rng=np.random.default_rng(3))
    xs = np.random.default_rng(4).standard_normal((3, 4)).astype(np.float32)
    out = block.forward(xs)
    assert out.shape == (3, 4)
    close(out.mean(axis=-1), np.zeros(3))


def test_feed_forward_block_with_zero_weights_is_normalised_input():
    block = BertFeedForwardBlock(4, 8, Activation.GELU)
    xs = np.array([[3.0, 1.0, -2.0, 0.5]], dtype=np.float32)
    close(block.forward(xs), LayerNorm(4).forward(xs))


def test_encoder_layer_rejects_unknown_activation():
    with pytest.raises(ValueError):
        BertEncoderLayer(make_config(hidden_act="nonsense"))


def test_encoder_layer_count_and_shape():
    encoder = BertEncoder(make_config(num_hidden_layers=3), rng=np.random.default_rng(5))
    assert len(encoder.layers) == 3
    xs = np.random.default_rng(6).standard_normal((5, 4)).astype(np.float32)
    assert encoder.encode(xs).shape == (5, 4)


def test_encoder_without_layers_returns_input():
    encoder = BertEncoder(make_config(num_hidden_layers=0))
    xs = np.array([[1.0, 2.0, 3.0, 4.0]], dtype=np.float32)
    close(encoder.encode(xs), xs)


def test_pooler_with_identity_weight_is_tanh():
    pooler = BertPooler(make_config())
    pooler.model[0].weight = np.eye(4, dtype=np.float32)
    x = np.array([0.5, -1.0, 2.0, 0.0], dtype=np.float32)
    close(pooler.forward(x), np.tanh(x))


def test_pooler_output_bounded():
    pooler = BertPooler(make_config(), rng=np.random.default_rng(7))
    out = pooler.forward(np.full(4, 100.0, dtype=np.float32))
    assert np.all(np.abs(out) <= 1.0)


def test_model_encode_tokens_shape_and_determinism():
    model = BertModel(make_config(), VOCAB, rng=np.random.default_rng(8))
    tokens = ["[CLS]", "a", "b", "[SEP]", "c", "[SEP]"]
    first = model.encode_tokens(tokens)
    second = model.encode_tokens(tokens)
    assert first.shape == (6, 4)
    close(first, second)


def test_model_matches_embeddings_then_encoder():
    model = BertModel(make_config(), VOCAB, rng=np.random.default_rng(9))
    tokens = ["[CLS]", "c", "[SEP]"]
    expected = model.encoder.encode(model.embeddings.encode_tokens(tokens))
    close(model.encode_tokens(tokens), expected)


def test_model_position_limit():
    model = BertModel(make_config(max_position_embeddings=2), VOCAB)
    with pytest.raises(IndexError):
        model.encode_tokens(["a", "b", "c"])