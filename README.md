# transformerkit

BERT and BART transformer models written with NumPy. The package provides
the encoder and decoder stacks, the task heads that sit on top of them, and
readers for Hugging Face style JSON configuration files. All computation is
done on plain `numpy` arrays.

## Installation

```
pip install .
```

To run the test suite:

```
pip install ".[test]"
pytest
```

## Reading configuration files

```python
from transformerkit.commonconfig import read_common_model_config
from transformerkit.bert_config import load_bert_config, load_tokenizer_config
from transformerkit.bart_config import load_bart_config

common = read_common_model_config("path/to/model", "")   # reads config.json
print(common.model_type)

bert_conf = load_bert_config("path/to/model/config.json")
tok_conf = load_tokenizer_config("path/to/model/tokenizer_config.json")
bart_conf = load_bart_config("path/to/model/config.json")
print(bart_conf.entailment_id(), bart_conf.contradiction_id())
```

- `read_common_model_config(model_path, config_filename)` returns a
  `CommonModelConfig` holding only `model_type`. An empty or `None`
  filename selects `config.json`. A missing file raises `OSError`
  (such as `FileNotFoundError`). An empty or malformed file raises
  `ValueError`. A file that holds only `null` gives `None`.
- `load_bert_config` returns a `BertConfig`, and `load_tokenizer_config`
  returns a `TokenizerConfig`.
- `load_bart_config` returns a `BartConfig` and fills in two generation
  defaults. When `max_length` is 0 it takes the value of
  `max_position_embeddings`. When `num_beams` is 0 it is set to 4.
  `normalize_embedding` is `True` unless the file says otherwise.
- `BartConfig.entailment_id()` and `BartConfig.contradiction_id()` look
  the label up in `label2id`. If the label is missing they raise `KeyError`.

Keys that the dataclasses do not know are ignored. A value of the wrong
JSON type raises `ValueError`.

## Building blocks

`transformerkit.layers` holds the layers that the models are built from:

- `Linear`, `LayerNorm` and `Embedding` (use `encode` to look up rows and
  `set_vector` to replace one)
- `MultiHeadAttention`, which returns the outputs, the attention weights
  and an `AttentionCache` for step-by-step decoding
- `Sequential`
- the `Activation` enum, and `parse_activation(name)`, which accepts names
  such as `"gelu"`, `"gelu_new"`, `"relu"`, `"tanh"`, `"silu"`/`"swish"`
  and `"identity"`/`"linear"`

Each model and layer takes the keyword arguments `dtype` (default
`numpy.float32`) and `rng`. With no `rng`, linear and embedding weights
start at zero. With a `numpy.random.Generator`, they are drawn at random.
Weights are plain arrays held in the `weight` and `bias` attributes, and
you fill them in yourself.

## BERT

```python
import numpy as np
from transformerkit.bert_config import BertConfig
from transformerkit.bert_model import BertModel
from transformerkit.bert_heads import BertForSequenceEncoding, PoolingStrategy

config = BertConfig(
    hidden_size=8, embeddings_size=8, num_attention_heads=2,
    intermediate_size=16, num_hidden_layers=1, max_position_embeddings=16,
    type_vocab_size=2, vocab_size=5, hidden_act="gelu",
)
vocab = {"[CLS]": 0, "[SEP]": 1, "[MASK]": 2, "hello": 3, "world": 4}
bert = BertModel(config, vocab, rng=np.random.default_rng(0))

states = bert.encode_tokens(["[CLS]", "hello", "world", "[SEP]"])  # shape (4, 8)
vector = BertForSequenceEncoding(bert).encode(["[CLS]", "hello", "[SEP]"], PoolingStrategy.MEAN)
```

`BertModel` takes word-piece tokens and a mapping from token to id. A token
that is not in the mapping raises `KeyError`. Token types start at 0 and go
up by one after each `[SEP]`. The heads in `transformerkit.bert_heads` are:

- `BertForMaskedLM.predict(tokens)` maps each `[MASK]` position to scores
  over the vocabulary. `masked_positions(tokens, mask_token)` lists those
  positions.
- `BertForQuestionAnswering.answer(tokens)` returns the span start logits
  and the span end logits.
- `BertForSequenceClassification.classify(tokens)` returns one logit per
  label in `id2label`, computed from the pooled first token.
- `BertForTokenClassification.classify(tokens)` returns logits for each token.
- `BertForSequenceEncoding.encode(tokens, pooling_strategy)` returns a
  sequence vector. `PoolingStrategy` is one of `CLS_TOKEN` (the default),
  `MEAN`, `MAX` or `MEAN_MAX`. Any other value raises `ValueError`.

## BART

`transformerkit.bart_model.BartModel` is an encoder-decoder model whose
token embeddings are shared by the encoder and the decoder.
`BartModel.forward(input_ids)` encodes the sequence, then decodes the same
sequence rotated right by one place (see `shift_right`).

`transformerkit.bart_blocks` has the parts the layers are built from:

- `SelfAttentionBlock`, `CrossAttentionBlock` and `FeedForwardBlock`, each
  either pre-norm or post-norm according to `normalize_before`
- the sinusoidal `PositionalEncoder`
- `BartEmbeddings`

The heads in `transformerkit.bart_heads` are:

- `BartForSequenceClassification.forward(input_ids)` classifies from the
  last decoded state through a `BartClassifier` (linear, tanh, linear).
- `BartForConditionalGeneration.decoding_func(encoder_input_ids,
  score_processor, inference)` encodes the input once. It returns a
  function that turns a batch of `DecodingInput` items into a list of
  `DecodingOutput` items. Each output holds the log-probabilities of the
  next token, both raw and passed through `score_processor`, and the cache
  for the next step. When `inference` is true, `adjust_logits` masks out
  the pad token. At `cur_len == max_length - 1` it also forces EOS
  (see `make_pad_mask` and `make_eos_mask`).

```python
import numpy as np
from transformerkit.bart_config import BartConfig
from transformerkit.bart_model import BartModel
from transformerkit.bart_heads import BartForConditionalGeneration, DecodingInput

config = BartConfig(
    d_model=8, encoder_attention_heads=2, decoder_attention_heads=2,
    encoder_ffn_dim=16, decoder_ffn_dim=16, encoder_layers=1, decoder_layers=1,
    activation_function="gelu", max_position_embeddings=32, vocab_size=10,
    pad_token_id=1, eos_token_id=2, max_length=20,
)
generator = BartForConditionalGeneration(BartModel(config, rng=np.random.default_rng(0)))
decode = generator.decoding_func([0, 5, 6, 2])
step = decode([DecodingInput(input_ids=[2], cur_len=1)])[0]
print(step.log_prob_value.shape)   # (10,)
```

## What the package does not do

- It has no tokenizer. You supply the tokens, or the token ids, yourself.
- It does not download models or read checkpoint files. You fill in the
  weights of each layer yourself.
- Generation stops at single decoding steps. There is no beam search or
  sampling loop built on `decoding_func`.
- It has no command-line program and no network service.