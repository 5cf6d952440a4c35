import numpy as np
import pytest

from transformerkit.bart_config import BartConfig
from transformerkit.bart_heads import (
    BartClassifier,
    BartForConditionalGeneration,
    BartForSequenceClassification,
    DecodingInput,
    make_eos_mask,
    make_pad_mask,
)
from transformerkit.bart_model import BartModel
from transformerkit.layers import Activation

VOCAB = 10
PAD = 1
EOS = 2
MAX_LENGTH = 5


def _config(**overrides):
    values = dict(
        vocab_size=VOCAB,
        d_model=8,
        encoder_layers=1,
        decoder_layers=2,
        encoder_attention_heads=2,
        decoder_attention_heads=2,
        encoder_ffn_dim=16,
        decoder_ffn_dim=16,
        activation_function="gelu",
        max_position_embeddings=16,
        max_length=MAX_LENGTH,
        pad_token_id=PAD,
        eos_token_id=EOS,
        num_labels=3,
    )
    values.update(overrides)
    return BartConfig(**values)


@pytest.fixture
def generator():
    rng = np.random.default_rng(0)
    bart = BartModel(_config(), rng=rng)
    return BartForConditionalGeneration(bart, rng=rng)


def test_pad_mask():
    mask = make_pad_mask(PAD, VOCAB)
    assert mask.shape == (VOCAB,)
    assert mask[PAD] == -np.inf
    assert np.all(np.delete(mask, PAD) == 0)


def test_eos_mask():
    mask = make_eos_mask(EOS, VOCAB)
    assert mask[EOS] == 0
    assert np.all(np.isneginf(np.delete(mask, EOS)))


def test_mask_out_of_range():
    with pytest.raises(IndexError):
        make_pad_mask(VOCAB, VOCAB)
    with pytest.raises(IndexError):
        make_eos_mask(-1, VOCAB)


def test_classifier_layers_and_shape():
    classifier = BartClassifier(8, 8, 3, rng=np.random.default_rng(1))
    assert classifier.layers[1] is Activation.TANH
    assert len(classifier.layers) == 3
    out = classifier.forward(np.ones(8))
    assert out.shape == (3,)


def test_classifier_zero_weights_give_zero():
    classifier = BartClassifier(4, 4, 2)
    assert np.array_equal(classifier.forward(np.ones(4)), np.zeros(2))


def test_sequence_classification_uses_last_state():
    rng = np.random.default_rng(2)
    bart = BartModel(_config(), rng=rng)
    model = BartForSequenceClassification(bart, rng=rng)
    ids = [0, 3, 4, 2]
    logits = model.forward(ids)
    assert logits.shape == (3,)
    expected = model.classifier.forward(bart.forward(ids)[-1])
    assert np.allclose(logits, expected)


def test_decoding_outputs_are_distributions(generator):
    decode = generator.decoding_func([0, 3, 4, 2], None, True)
    outputs = decode([DecodingInput([EOS], 1), DecodingInput([EOS], 1)])
    assert len(outputs) == 2
    for out in outputs:
        assert out.log_prob_raw.shape == (VOCAB,)
        assert np.isclose(np.exp(out.log_prob_raw).sum(), 1.0, atol=1e-5)
        assert out.log_prob_raw[PAD] == -np.inf
        assert len(out.next_cache) == 2


def test_without_inference_pad_is_possible(generator):
    raw_decode = generator.decoding_func([0, 3, 4, 2], None, False)
    adjusted_decode = generator.decoding_func([0, 3, 4, 2], None, True)
    (raw,) = raw_decode([DecodingInput([EOS], 1)])
    (adjusted,) = adjusted_decode([DecodingInput([EOS], 1)])
    raw_probs = raw.log_prob_raw.astype(np.float64)
    assert np.all(np.isfinite(raw_probs))
    assert np.isclose(np.exp(raw_probs).sum(), 1.0, atol=1e-5)
    # Removing the pad token renormalises every other probability by the same amount.
    others = np.arange(VOCAB) != PAD
    renormalised = raw_probs[others] - np.log1p(-np.exp(raw_probs[PAD]))
    assert np.allclose(adjusted.log_prob_raw[others], renormalised, atol=1e-4)


def test_eos_forced_at_last_position(generator):
    decode = generator.decoding_func([0, 3, 4, 2], None, True)
    (out,) = decode([DecodingInput([5], MAX_LENGTH - 1)])
    assert np.isclose(out.log_prob_raw[EOS], 0.0, atol=1e-6)
    assert np.all(np.isneginf(np.delete(out.log_prob_raw, EOS)))


def test_score_processor_is_applied(generator):
    decode = generator.decoding_func([0, 3, 4, 2], lambda x: x * 2, False)
    (out,) = decode([DecodingInput([EOS], 1)])
    assert np.allclose(out.log_prob_value, out.log_prob_raw * 2)


def test_batch_order_matches_single_calls(generator):
    decode = generator.decoding_func([0, 3, 4, 2], None, True)
    batch = decode([DecodingInput([5], 1), DecodingInput([6], 1)])
    (first,) = decode([DecodingInput([5], 1)])
    (second,) = decode([DecodingInput([6], 1)])
    assert np.allclose(batch[0].log_prob_raw, first.log_prob_raw)
    assert np.allclose(batch[1].log_prob_raw, second.log_prob_raw)


def test_cache_continues_decoding(generator):
    decode = generator.decoding_func([0, 3, 4, 2], None, True)
    (step1,) = decode([DecodingInput([EOS], 1)])
    (step2,) = decode([DecodingInput([5], 2, step1.next_cache)])
    self_cache, _ = step2.next_cache[0]
    assert self_cache.keys.shape[0] == 2
    assert np.isclose(np.exp(step2.log_prob_raw).sum(), 1.0, atol=1e-5)


def test_adjust_logits_without_eos_id():
    rng = np.random.default_rng(3)
    bart = BartModel(_config(eos_token_id=-1), rng=rng)
    model = BartForConditionalGeneration(bart, rng=rng)
    ys = model.adjust_logits(np.zeros(VOCAB, dtype=np.float32), MAX_LENGTH - 1)
    assert ys[PAD] == -np.inf
    assert np.all(np.delete(ys, PAD) == 0)


def test_adjust_logits_before_last_position(generator):
    ys = generator.adjust_logits(np.zeros(VOCAB, dtype=np.float32), 1)
    assert np.array_equal(ys, make_pad_mask(PAD, VOCAB))