"""Status parsing: the line grammar and the tolerant parser built on it."""

from .grammar import DEFAULT_GRAMMAR_VERSION, LineGrammar, load_grammar
from .parser import StatusParser, format_update

__all__ = [
    "DEFAULT_GRAMMAR_VERSION",
    "LineGrammar",
    "load_grammar",
    "StatusParser",
    "format_update",
]
