"""Exceptions raised by abcbars."""


class AbcBarsError(ValueError):
    """Base class for all abcbars errors."""


class MissingKeySignature(AbcBarsError):
    """The tune has no ``K:`` header."""


class InvalidKeySignature(AbcBarsError):
    """A key header cannot be resolved to a tonic and mode."""


class UnsupportedDivisor(AbcBarsError):
    """Bars can only be bisected (divisor 2)."""


class MalformedBarStructure(AbcBarsError):
    """Every bar segment must be closed by a bar-line."""


class UnsupportedMeter(AbcBarsError):
    """The meter has no doubling/halving counterpart."""


class AbcSyntaxError(AbcBarsError):
    """The music text uses notation the tokenizer cannot represent."""


class NotEnoughBars(AbcBarsError):
    """The tune has fewer complete bars than an excerpt asks for."""
