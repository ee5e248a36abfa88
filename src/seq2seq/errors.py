"""
Error types raised by the seq2seq trainer.

- ConfigurationError: inconsistent options, detected before any training step
- CorpusFormatError: malformed corpus files (fatal, never retried)
"""


class Seq2SeqError(Exception):
    """Base class for errors raised by this package."""


class ConfigurationError(Seq2SeqError, ValueError):
    """Options or model resources are inconsistent with each other."""


class CorpusFormatError(Seq2SeqError, ValueError):
    """Corpus files cannot be paired up line by line."""
