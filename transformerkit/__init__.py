"""BERT and BART transformer models on NumPy, their task heads and configuration readers."""

__version__ = "0.1.0"