import logging
import types
import typing
from dataclasses import dataclass

if typing.TYPE_CHECKING:
    from .parser import Grammar


match_log = logging.getLogger("peg.match")


class _Missing:
    """The answer to a lookup for a name that nobody has bound."""

    __slots__ = ()

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING = _Missing()


class _Empty:
    """The value of an `Optional` whose inner rule did not match.

    This is distinct from every value a rule can actually produce, including
    None and the empty string.
    """

    __slots__ = ()

    def __repr__(self) -> str:
        return "EMPTY"


EMPTY = _Empty()


Bindings = typing.Mapping[str, typing.Any]

NO_BINDINGS: Bindings = types.MappingProxyType({})


###############################################################################
# Match results
###############################################################################
@dataclass(frozen=True, slots=True)
class Matched:
    """A successful match.

    `value` is whatever the rule produced (after running its action, if any)
    and `bindings` are the captures of the rule's matched children. A Matched
    is always true, even if the value is not.
    """

    value: typing.Any
    bindings: Bindings = NO_BINDINGS

    def __bool__(self) -> bool:
        return True


class _NotMatched:
    __slots__ = ()

    def __repr__(self) -> str:
        return "NotMatched"

    def __bool__(self) -> bool:
        return False


NotMatched = _NotMatched()

MatchResult = Matched | _NotMatched


###############################################################################
# The cursor
###############################################################################
class Cursor:
    """A position in an input string.

    The text never changes; only the offset does, and it only ever moves
    forward. Offsets count codepoints. When a rule needs to try something it
    might have to take back, it works on a `duplicate()` and then commits the
    duplicate's offset if it liked the result.

    The cursor also knows which grammar is active, so that a `Call` can find
    the rule it names.
    """

    __slots__ = ("text", "offset", "grammar")

    text: str
    offset: int
    grammar: "Grammar | None"

    def __init__(self, text: str, offset: int = 0, grammar: "Grammar | None" = None):
        if offset < 0 or offset > len(text):
            raise ValueError(f"Offset {offset} is outside of the input (length {len(text)})")
        self.text = text
        self.offset = offset
        self.grammar = grammar

    def remaining(self) -> str:
        """The part of the input that has not been consumed yet."""
        return self.text[self.offset :]

    def at_end(self) -> bool:
        return self.offset >= len(self.text)

    def peek(self) -> str | None:
        """The next character, or None at the end of the input."""
        if self.offset < len(self.text):
            return self.text[self.offset]
        return None

    def starts_with(self, prefix: str) -> bool:
        # Same as remaining().startswith(prefix), without the copy.
        return self.text.startswith(prefix, self.offset)

    def advance(self, n: int):
        if n < 0:
            raise ValueError(f"Cannot advance a cursor by a negative amount ({n})")
        if self.offset + n > len(self.text):
            raise ValueError(
                f"Cannot advance by {n} at offset {self.offset}: only "
                f"{len(self.text) - self.offset} characters remain"
            )
        self.offset += n

    def duplicate(self) -> "Cursor":
        return Cursor(self.text, self.offset, self.grammar)

    def commit(self, probe: "Cursor"):
        """Move up to where a probe made from this cursor ended up."""
        assert probe.text is self.text
        self.advance(probe.offset - self.offset)

    def __repr__(self) -> str:
        rest = self.text[self.offset : self.offset + 16]
        return f"Cursor({self.offset}, {rest!r})"


###############################################################################
# Lookup contexts
###############################################################################
class NullContext:
    """The outermost lookup context. Nothing is bound here."""

    __slots__ = ()

    def lookup(self, name: str) -> typing.Any:
        del name
        return MISSING

    def merge(self, bindings: Bindings) -> "LookupContext":
        return LookupContext(bindings, self)

    def __repr__(self) -> str:
        return "NullContext()"


class LookupContext(typing.NamedTuple):
    """One scope in a chain of binding scopes.

    Contexts are never modified: `merge` makes a new leaf that points back at
    this one, so a probe that gets abandoned just drops its leaf on the floor.
    """

    bindings: Bindings
    parent: "LookupContext | NullContext"

    def lookup(self, name: str) -> typing.Any:
        context: LookupContext | NullContext = self
        while isinstance(context, LookupContext):
            value = context.bindings.get(name, MISSING)
            if value is not MISSING:
                return value
            context = context.parent
        return context.lookup(name)

    def merge(self, bindings: Bindings) -> "LookupContext":
        return LookupContext(bindings, self)

    def flatten(self) -> dict[str, typing.Any]:
        """All visible bindings, with the nearest scope winning."""
        scopes = []
        context: LookupContext | NullContext = self
        while isinstance(context, LookupContext):
            scopes.append(context.bindings)
            context = context.parent

        result: dict[str, typing.Any] = {}
        for scope in reversed(scopes):
            result.update(scope)
        return result


Context = LookupContext | NullContext


@dataclass(frozen=True, slots=True)
class VariableLookup:
    """An argument to a rule call that is the value of a captured name,
    resolved in the caller's context when the call is made.
    """

    name: str

    def lookup(self, context: Context) -> typing.Any:
        return context.lookup(self.name)

    def __repr__(self) -> str:
        return f"${self.name}"
