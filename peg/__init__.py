# Parsing expression grammars, built out of Python.
"""Write [PEG](https://bford.info/pub/lang/peg.pdf) grammars as Python classes
and match them directly against strings.

The combinators and the `Grammar` base class live in the [parser] module; the
cursor, match results and lookup contexts they run on live in the [runtime]
module.
"""
from . import parser
from . import runtime

from .parser import *
from .runtime import (
    EMPTY,
    MISSING,
    Cursor,
    LookupContext,
    Matched,
    MatchResult,
    NotMatched,
    NullContext,
    VariableLookup,
)
