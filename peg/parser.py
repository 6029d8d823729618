"""A small library of PEG combinators.

Parsers are trees of rules: literals, sequences, ordered choices, lookahead
and so on, evaluated top-down against a cursor over a string. There is no
lexer and no table; a rule either matches at the cursor or it doesn't.

## Making Grammars

Subclass `Grammar` and define the rules as methods decorated with `@rule`.
Inside a rule, refer to other rules as members of `self`; that produces a
call that is looked up by name when the grammar is run, so rules can refer to
themselves and each other in any order:

    class Digits(Grammar):
        start = "number"

        @rule
        def number(self) -> Rule:
            return one_or_more(self.digit, name="ds", action=lambda ds: int("".join(ds)))

        @rule
        def digit(self) -> Rule:
            return chars(("0", "9"))

    Digits().match("1234")  # Matched(value=1234, ...)

Rules can take arguments. Arguments are either plain values or `var(...)`
references to something captured earlier in the enclosing sequence:

    @rule
    def twice(self) -> Rule:
        return seq(any_char(name="c"), self.same(var("c")))

    @rule
    def same(self, c) -> Rule:
        return lit(c)

## Captures and actions

Any rule can be given a `name`, which captures its value, and an `action`,
which is called with the captures of the rule's children (as keyword
arguments) and whose result replaces the value of the rule. Captures made in
a sequence are visible to the rules that come after them in that sequence;
they are not visible to the other alternatives of a choice.

## Deriving grammars

A subclass of a grammar inherits all of its rules and may replace some of
them. A replacement can still get at the rule it replaced with `super()`:

    class Shouty(Digits):
        @rule
        def number(self) -> Rule:
            return alt(lit("LOTS"), super().number)

## Left recursion

There is none. A rule that calls itself before consuming anything will recurse
until Python gives up with a RecursionError. Write repetition instead.
"""

import abc
import copy
import inspect
import logging
import typing

from .runtime import (
    EMPTY,
    MISSING,
    NO_BINDINGS,
    Bindings,
    Context,
    Cursor,
    Matched,
    MatchResult,
    NotMatched,
    NullContext,
    VariableLookup,
    match_log,
)


__all__ = [
    "AnyChar",
    "Call",
    "CharacterClass",
    "ForeignEmbed",
    "Grammar",
    "GrammarError",
    "Grouping",
    "Literal",
    "Lookahead",
    "Negation",
    "NoStartRuleError",
    "NothingRule",
    "OneOrMore",
    "Optional",
    "OrderedChoice",
    "Repetition",
    "Rule",
    "RuleDef",
    "Sequence",
    "UnboundVariableError",
    "UnknownRuleError",
    "ZeroOrMore",
    "alt",
    "any_char",
    "call",
    "chars",
    "empty",
    "foreign",
    "gather_rules",
    "group",
    "lit",
    "lookahead",
    "neg",
    "one_or_more",
    "opt",
    "rule",
    "seq",
    "var",
    "zero_or_more",
]


grammar_log = logging.getLogger("peg.grammar")

NULL_CONTEXT = NullContext()

Action = typing.Callable[..., typing.Any]


###############################################################################
# Errors
###############################################################################
class GrammarError(Exception):
    """Something is wrong with the grammar itself, as opposed to the input."""

    pass


class NoStartRuleError(GrammarError):
    pass


class UnknownRuleError(GrammarError):
    def __init__(self, grammar: str, target: str, location: str | None = None):
        self.grammar = grammar
        self.target = target
        self.location = location

        message = f"Grammar {grammar} has no rule named '{target}'"
        if location is not None:
            message = f"{message} (called from {location})"
        super().__init__(message)


class UnboundVariableError(GrammarError):
    def __init__(self, name: str, target: str):
        self.name = name
        self.target = target
        super().__init__(f"Argument ${name} to '{target}' is not bound to anything")


def _caller_location(depth: int) -> str | None:
    frame = inspect.currentframe()
    for _ in range(depth + 1):
        if frame is None:
            return None
        frame = frame.f_back
    if frame is None:
        return None
    return f"{frame.f_code.co_filename}:{frame.f_lineno}"


###############################################################################
# Rules
###############################################################################
class Rule:
    """Something that can match at a cursor.

    Matching never changes the rule: everything a match produces comes back in
    the result, so one tree can be used for any number of inputs.
    """

    name: str | None
    action: Action | None

    # Set on the sequences and choices made by `+` and `|`, so that `a + b + c`
    # is one sequence of three. Anything built with `seq` or `alt` stays nested,
    # because nesting decides which captures are visible.
    joined: bool = False

    def __init__(self, *, name: str | None = None, action: Action | None = None):
        self.name = name
        self.action = action

    def __or__(self, other: "Rule | str") -> "Rule":
        if isinstance(self, OrderedChoice) and self.joined and self.is_plain():
            result = OrderedChoice(*self.rules, _as_rule(other))
        else:
            result = OrderedChoice(self, _as_rule(other))
        result.joined = True
        return result

    def __ror__(self, other: str) -> "Rule":
        result = OrderedChoice(_as_rule(other), self)
        result.joined = True
        return result

    def __add__(self, other: "Rule | str") -> "Rule":
        if isinstance(self, Sequence) and self.joined and self.is_plain():
            result = Sequence(*self.rules, _as_rule(other))
        else:
            result = Sequence(self, _as_rule(other))
        result.joined = True
        return result

    def __radd__(self, other: str) -> "Rule":
        result = Sequence(_as_rule(other), self)
        result.joined = True
        return result

    def named(self, name: str) -> "Rule":
        """A copy of this rule that captures its value as `name`."""
        result = copy.copy(self)
        result.name = name
        return result

    def with_action(self, action: Action) -> "Rule":
        """A copy of this rule that replaces its value with the result of
        calling `action`.
        """
        result = copy.copy(self)
        result.action = action
        return result

    def is_plain(self) -> bool:
        return self.name is None and self.action is None

    def capture(self, value: typing.Any) -> Bindings:
        """The bindings this rule contributes to its parent, given the value
        it produced.
        """
        if self.name is None:
            return NO_BINDINGS
        return {self.name: value}

    def match(self, cursor: Cursor, context: Context = NULL_CONTEXT) -> MatchResult:
        """Match this rule at the cursor.

        On success the cursor has been advanced past whatever was matched.
        Rules that need to back out of a partial match do so on a duplicate
        cursor; the exception is a sequence, which leaves behind whatever its
        successful children consumed.
        """
        result = self.match_body(cursor, context)
        if not isinstance(result, Matched) or self.action is None:
            return result

        kwargs = dict(result.bindings)
        if self.name is not None:
            kwargs[self.name] = result.value
        return Matched(self.action(**kwargs), result.bindings)

    @abc.abstractmethod
    def match_body(self, cursor: Cursor, context: Context) -> MatchResult:
        """Match without running the action."""
        raise NotImplementedError()

    def match_text(self, text: str, grammar: "Grammar | None" = None) -> tuple[MatchResult, int]:
        """Match this rule at the start of `text`. Returns the result and the
        number of characters consumed.

        Pass a grammar if the rule calls other rules by name.
        """
        cursor = Cursor(text, grammar=grammar)
        result = self.match(cursor, NULL_CONTEXT)
        return result, cursor.offset

    @abc.abstractmethod
    def describe(self) -> str:
        """The rule in PEG notation, without its name."""
        raise NotImplementedError()

    def __repr__(self) -> str:
        result = self.describe()
        if self.name is not None:
            result = f"{result}:{self.name}"
        return result


def _as_rule(rule: "Rule | str") -> Rule:
    if isinstance(rule, str):
        return Literal(rule)
    if not isinstance(rule, Rule):
        raise TypeError(f"Expected a rule or a string, got {rule!r}")
    return rule


class Literal(Rule):
    """Matches exactly the given text."""

    def __init__(self, text: str, **kwargs):
        super().__init__(**kwargs)
        self.text = text

    def match_body(self, cursor: Cursor, context: Context) -> MatchResult:
        del context
        if not cursor.starts_with(self.text):
            return NotMatched
        cursor.advance(len(self.text))
        return Matched(self.text)

    def describe(self) -> str:
        return repr(self.text)


class AnyChar(Rule):
    """Matches any one character; fails only at the end of the input."""

    def match_body(self, cursor: Cursor, context: Context) -> MatchResult:
        del context
        char = cursor.peek()
        if char is None:
            return NotMatched
        cursor.advance(1)
        return Matched(char)

    def describe(self) -> str:
        return "."


class NothingRule(Rule):
    """Matches the empty string, anywhere. The value is None."""

    def match_body(self, cursor: Cursor, context: Context) -> MatchResult:
        del cursor
        del context
        return Matched(None)

    def describe(self) -> str:
        return "()"


class Sequence(Rule):
    """Matches each of its rules, one after another.

    Every rule in the sequence can see what the rules before it captured. The
    value is the value of the last rule.
    """

    rules: tuple[Rule, ...]

    def __init__(self, *rules: Rule | str, **kwargs):
        if len(rules) == 0:
            raise ValueError("A sequence needs at least one rule")
        super().__init__(**kwargs)
        self.rules = tuple(_as_rule(r) for r in rules)

    def match_body(self, cursor: Cursor, context: Context) -> MatchResult:
        bindings: dict[str, typing.Any] = {}
        value = None
        for rule in self.rules:
            result = rule.match(cursor, context)
            if not isinstance(result, Matched):
                # Whatever the earlier rules consumed stays consumed. Undoing
                # it is up to whoever handed us a probe.
                return NotMatched

            value = result.value
            if rule.name is not None:
                bindings[rule.name] = value
                context = context.merge({rule.name: value})

        return Matched(value, bindings)

    def describe(self) -> str:
        return "(" + " ".join(repr(r) for r in self.rules) + ")"


class OrderedChoice(Rule):
    """Matches the first of its rules that matches.

    Each alternative is tried on its own probe cursor, so a failed alternative
    doesn't leave anything behind. Later alternatives are not tried once one
    has matched.
    """

    rules: tuple[Rule, ...]

    def __init__(self, *rules: Rule | str, **kwargs):
        if len(rules) == 0:
            raise ValueError("A choice needs at least one alternative")
        super().__init__(**kwargs)
        self.rules = tuple(_as_rule(r) for r in rules)

    def match_body(self, cursor: Cursor, context: Context) -> MatchResult:
        for rule in self.rules:
            probe = cursor.duplicate()
            result = rule.match(probe, context)
            if isinstance(result, Matched):
                cursor.commit(probe)
                return Matched(result.value, rule.capture(result.value))

        return NotMatched

    def describe(self) -> str:
        return "(" + " / ".join(repr(r) for r in self.rules) + ")"


class Negation(Rule):
    """Matches, without consuming anything, if the inner rule doesn't."""

    def __init__(self, rule: Rule | str, **kwargs):
        super().__init__(**kwargs)
        self.rule = _as_rule(rule)

    def match_body(self, cursor: Cursor, context: Context) -> MatchResult:
        if self.rule.match(cursor.duplicate(), context):
            return NotMatched
        return Matched(True)

    def describe(self) -> str:
        return f"!{self.rule!r}"


class Lookahead(Rule):
    """Matches, without consuming anything, if the inner rule does."""

    def __init__(self, rule: Rule | str, **kwargs):
        super().__init__(**kwargs)
        self.rule = _as_rule(rule)
        self._test = Negation(Negation(self.rule))

    def match_body(self, cursor: Cursor, context: Context) -> MatchResult:
        return self._test.match(cursor, context)

    def describe(self) -> str:
        return f"&{self.rule!r}"


class Optional(Rule):
    """Always matches. If the inner rule doesn't, the value is `EMPTY` and
    nothing is consumed.
    """

    def __init__(self, rule: Rule | str, **kwargs):
        super().__init__(**kwargs)
        self.rule = _as_rule(rule)

    def match_body(self, cursor: Cursor, context: Context) -> MatchResult:
        probe = cursor.duplicate()
        result = self.rule.match(probe, context)
        if not isinstance(result, Matched):
            return Matched(EMPTY)

        cursor.commit(probe)
        return Matched(result.value, self.rule.capture(result.value))

    def describe(self) -> str:
        return f"{self.rule!r}?"


class Repetition(Rule):
    """Matches the inner rule as many times as it can. The value is the list
    of values from each time it matched.
    """

    minimum: typing.ClassVar[int] = 0
    suffix: typing.ClassVar[str] = "*"

    def __init__(self, rule: Rule | str, **kwargs):
        super().__init__(**kwargs)
        self.rule = _as_rule(rule)

    def match_body(self, cursor: Cursor, context: Context) -> MatchResult:
        values = []
        bindings: dict[str, typing.Any] = {}
        while True:
            probe = cursor.duplicate()
            result = self.rule.match(probe, context)
            if not isinstance(result, Matched):
                break

            consumed = probe.offset - cursor.offset
            cursor.commit(probe)
            values.append(result.value)
            bindings.update(self.rule.capture(result.value))

            # Something that matches without consuming would match forever.
            if consumed == 0:
                break

        if len(values) < self.minimum:
            return NotMatched
        return Matched(values, bindings)

    def describe(self) -> str:
        return f"{self.rule!r}{self.suffix}"


class ZeroOrMore(Repetition):
    minimum = 0
    suffix = "*"


class OneOrMore(Repetition):
    minimum = 1
    suffix = "+"


class Grouping(Rule):
    """Matches exactly what the inner rule matches. Use this to hang a name or
    an action on a rule that shouldn't carry it itself.
    """

    def __init__(self, rule: Rule | str, **kwargs):
        super().__init__(**kwargs)
        self.rule = _as_rule(rule)

    def match_body(self, cursor: Cursor, context: Context) -> MatchResult:
        result = self.rule.match(cursor, context)
        if not isinstance(result, Matched):
            return result
        return Matched(result.value, self.rule.capture(result.value))

    def describe(self) -> str:
        return f"({self.rule!r})"


def _char_range(lower: str, upper: str) -> list[str]:
    if len(lower) != 1 or len(upper) != 1:
        raise ValueError(f"A character range needs single characters, not {lower!r}-{upper!r}")
    lo, hi = ord(lower), ord(upper)
    if lo > hi:
        raise ValueError(f"Character range {lower!r}-{upper!r} is backwards")
    return [chr(cp) for cp in range(lo, hi + 1)]


class CharacterClass(Rule):
    """Matches any one of a set of characters.

    Members are given as strings (every character of the string is a member)
    or as (lower, upper) tuples for inclusive ranges. Ranges are expanded into
    their members up front.
    """

    members: tuple[str, ...]

    def __init__(self, *members: str | tuple[str, str], **kwargs):
        super().__init__(**kwargs)
        expanded: list[str] = []
        for member in members:
            if isinstance(member, str):
                expanded.extend(member)
            else:
                expanded.extend(_char_range(*member))

        if len(expanded) == 0:
            raise ValueError("A character class needs at least one member")

        # Declaration order, without repeats.
        self.members = tuple(dict.fromkeys(expanded))
        self._lookup = frozenset(self.members)

    def match_body(self, cursor: Cursor, context: Context) -> MatchResult:
        del context
        char = cursor.peek()
        if char is None or char not in self._lookup:
            return NotMatched
        cursor.advance(1)
        return Matched(char)

    def describe(self) -> str:
        return "[" + "".join(repr(m)[1:-1] for m in self.members) + "]"


class Call(Rule):
    """Invokes a rule of the active grammar by name.

    The rule is found when the call is matched, not when it is built, which
    is what lets rules refer to themselves. Arguments that are `var(...)`
    references are looked up in the caller's context at that point too.

    A call made through `super()` carries the exact definition it refers to,
    and skips the lookup by name.
    """

    target: str
    args: tuple[typing.Any, ...]
    definition: "RuleDef | None"
    location: str | None

    def __init__(
        self,
        target: str,
        *args: typing.Any,
        definition: "RuleDef | None" = None,
        location: str | None = None,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.target = target
        self.args = args
        self.definition = definition
        self.location = location

    def __call__(self, *args: typing.Any, name: str | None = None, action: Action | None = None) -> "Call":
        """Supply arguments to the called rule: `self.rule_name(a, b)`."""
        return Call(
            self.target,
            *args,
            definition=self.definition,
            location=_caller_location(1) or self.location,
            name=name,
            action=action,
        )

    def resolve_args(self, context: Context) -> tuple[typing.Any, ...]:
        result = []
        for arg in self.args:
            match arg:
                case VariableLookup(name=name):
                    value = arg.lookup(context)
                    if value is MISSING:
                        raise UnboundVariableError(name, self.target)
                    result.append(value)

                case _:
                    result.append(arg)

        return tuple(result)

    def match_body(self, cursor: Cursor, context: Context) -> MatchResult:
        grammar = cursor.grammar
        if grammar is None:
            raise GrammarError(f"Cannot call '{self.target}' outside of a grammar")

        args = self.resolve_args(context)
        rule = grammar.instantiate(self.target, args, self.definition, self.location)

        ml = match_log
        if ml.isEnabledFor(logging.DEBUG):
            ml.debug(f"{cursor.offset:>6} enter {self.target}{_format_args(args)}")

        start = cursor.offset
        result = rule.match(cursor, context)

        if ml.isEnabledFor(logging.DEBUG):
            if isinstance(result, Matched):
                ml.debug(f"{cursor.offset:>6} match {self.target} [{start}, {cursor.offset})")
            else:
                ml.debug(f"{start:>6} fail  {self.target}")

        if not isinstance(result, Matched):
            return result
        return Matched(result.value, rule.capture(result.value))

    def describe(self) -> str:
        prefix = "super." if self.definition is not None else ""
        return f"{prefix}{self.target}{_format_args(self.args)}"


def _format_args(args: tuple[typing.Any, ...]) -> str:
    if len(args) == 0:
        return ""
    return "(" + ", ".join(repr(a) for a in args) + ")"


class ForeignEmbed(Rule):
    """Matches a rule of some other grammar.

    The other grammar runs over the rest of the input as if it were the whole
    input, with nothing bound. However far it gets is then committed to our
    cursor, *even if it fails*: a foreign sequence that matched some of its
    rules before failing leaves that input consumed.
    """

    def __init__(
        self,
        grammar: "type[Grammar] | Grammar",
        target: str | None = None,
        location: str | None = None,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.grammar = grammar
        self.target = target
        self.location = location

    def match_body(self, cursor: Cursor, context: Context) -> MatchResult:
        del context
        if isinstance(self.grammar, type):
            foreign = self.grammar()
        else:
            foreign = self.grammar

        target = foreign.start_rule(self.target)
        rule = foreign.instantiate(target, (), None, self.location)

        probe = Cursor(cursor.remaining(), grammar=foreign)
        result = rule.match(probe, NULL_CONTEXT)
        cursor.advance(probe.offset)

        gl = grammar_log
        if gl.isEnabledFor(logging.DEBUG):
            outcome = "matched" if isinstance(result, Matched) else "failed"
            gl.debug(f"{type(foreign).__name__}.{target} {outcome}, committing {probe.offset}")

        if not isinstance(result, Matched):
            return result
        return Matched(result.value, rule.capture(result.value))

    def describe(self) -> str:
        grammar = self.grammar if isinstance(self.grammar, type) else type(self.grammar)
        target = self.target or "start"
        return f"<{grammar.__name__}.{target}>"


###############################################################################
# Sugar for constructing rules
###############################################################################
# Each of these takes optional `name` and `action` keyword arguments.
def lit(text: str, **kwargs) -> Rule:
    return Literal(text, **kwargs)


def any_char(**kwargs) -> Rule:
    return AnyChar(**kwargs)


def empty(**kwargs) -> Rule:
    """A rule that matches nothing at all, successfully."""
    return NothingRule(**kwargs)


def seq(*args: Rule | str, **kwargs) -> Rule:
    """A rule that matches a sequence of rules."""
    return Sequence(*args, **kwargs)


def alt(*args: Rule | str, **kwargs) -> Rule:
    """A rule that matches the first of a series of alternatives that
    matches.
    """
    return OrderedChoice(*args, **kwargs)


def _one(args: tuple[Rule | str, ...]) -> Rule | str:
    if len(args) == 1:
        return args[0]
    return Sequence(*args)


def neg(*args: Rule | str, **kwargs) -> Rule:
    return Negation(_one(args), **kwargs)


def lookahead(*args: Rule | str, **kwargs) -> Rule:
    return Lookahead(_one(args), **kwargs)


def opt(*args: Rule | str, **kwargs) -> Rule:
    """Mark a sequence as optional."""
    return Optional(_one(args), **kwargs)


def zero_or_more(*args: Rule | str, **kwargs) -> Rule:
    return ZeroOrMore(_one(args), **kwargs)


def one_or_more(*args: Rule | str, **kwargs) -> Rule:
    return OneOrMore(_one(args), **kwargs)


def group(*args: Rule | str, **kwargs) -> Rule:
    return Grouping(_one(args), **kwargs)


def chars(*members: str | tuple[str, str], **kwargs) -> Rule:
    """A character class: `chars("abc")`, `chars(("a", "z"), "_")`."""
    return CharacterClass(*members, **kwargs)


def call(target: str, *args: typing.Any, **kwargs) -> Rule:
    """Call a rule of the active grammar by name."""
    return Call(target, *args, location=_caller_location(1), **kwargs)


def var(name: str) -> VariableLookup:
    """An argument for a rule call that is the value captured as `name`."""
    return VariableLookup(name)


def foreign(grammar: "type[Grammar] | Grammar", target: str | None = None, **kwargs) -> Rule:
    """Match a rule (by default, the start rule) of another grammar."""
    return ForeignEmbed(grammar, target, location=_caller_location(1), **kwargs)


###############################################################################
# Grammars
###############################################################################
class RuleDef:
    """The definition of a rule in a grammar: the function that builds the
    rule's tree.

    You probably don't want to create this directly; use the `@rule`
    decorator on a method of your grammar class.

    Getting the attribute from a grammar instance makes a `Call`. Normally the
    call finds its rule by name when it runs, so an override in a derived
    grammar replaces this definition everywhere. Through `super()`, though,
    the call holds on to this definition itself: that is how an override gets
    at the rule it replaced.
    """

    fn: typing.Callable[..., Rule]
    name: str
    attribute: str | None
    definition_location: str

    def __init__(self, fn: typing.Callable[..., Rule], name: str | None = None):
        self.fn = fn
        self.name = name or fn.__name__
        self.attribute = None

        code = fn.__code__
        self.definition_location = f"{code.co_filename}:{code.co_firstlineno}"

    def __set_name__(self, owner: type, attribute: str):
        if self.attribute is None:
            self.attribute = attribute

    @typing.overload
    def __get__(self, instance: None, owner: type) -> "RuleDef": ...

    @typing.overload
    def __get__(self, instance: "Grammar", owner: type) -> Call: ...

    def __get__(self, instance: "Grammar | None", owner: type) -> "RuleDef | Call":
        if instance is None:
            return self

        # Plain attribute access finds whatever the instance's class has under
        # that attribute. If that isn't us, we were reached through super().
        attribute = self.attribute or self.fn.__name__
        via_super = inspect.getattr_static(type(instance), attribute, None) is not self
        return Call(
            self.name,
            definition=self if via_super else None,
            location=_caller_location(1),
        )

    def build(self, grammar: "Grammar", args: tuple[typing.Any, ...]) -> Rule:
        result = self.fn(grammar, *args)
        if isinstance(result, str):
            result = Literal(result)
        if not isinstance(result, Rule):
            raise GrammarError(
                f"Rule '{self.name}' ({self.definition_location}) returned {result!r}, not a rule"
            )
        return result

    def __repr__(self) -> str:
        return f"RuleDef({self.name})"


@typing.overload
def rule(f: typing.Callable[..., Rule], /) -> RuleDef: ...


@typing.overload
def rule(name: str | None = None) -> typing.Callable[[typing.Callable[..., Rule]], RuleDef]: ...


def rule(
    name: str | None | typing.Callable[..., Rule] = None,
) -> RuleDef | typing.Callable[[typing.Callable[..., Rule]], RuleDef]:
    """The decorator that marks a method of a Grammar as a rule.

    As with all the best decorators, it can be called with or without
    arguments. If called with one argument, that argument is the name of the
    rule, which otherwise defaults to the name of the function.
    """
    if callable(name):
        return rule()(name)

    def wrapper(f: typing.Callable[..., Rule]) -> RuleDef:
        return RuleDef(f, name)

    return wrapper


def gather_rules(cls: type) -> dict[str, RuleDef]:
    """Build the rule table for a grammar class: everything its bases define,
    overridden by whatever the class itself defines.
    """
    table: dict[str, RuleDef] = {}
    for base in reversed(cls.__mro__[1:]):
        table.update(base.__dict__.get("_rules", {}))

    defined: dict[str, RuleDef] = {}
    for attr, value in cls.__dict__.items():
        if not isinstance(value, RuleDef):
            continue

        existing = defined.get(value.name)
        if existing is value:
            # The same rule under a second attribute, e.g. `start = expression`.
            continue
        if existing is not None:
            raise GrammarError(
                f"""Found more than one rule named {value.name} in {cls.__name__}:
- {existing.definition_location}
- {value.definition_location}"""
            )
        defined[value.name] = value

        base = table.get(value.name)
        if base is not None and base is not value:
            grammar_log.debug(f"{cls.__name__}.{attr} overrides {value.name} from {base.definition_location}")

    table.update(defined)
    return table


class Grammar:
    """The base class for defining a grammar.

    Inherit from this, define rules as methods decorated with `@rule`, say
    which one to start from, and then call `match`:

        class Greeting(Grammar):
            start = "greeting"

            @rule
            def greeting(self) -> Rule:
                return seq(lit("hello"), lit(" "), self.who)

            @rule
            def who(self) -> Rule:
                return lit("world") | lit("there")

        Greeting().match("hello world")

    The start rule can be set on the class (as a rule name, or the rule
    itself), passed to the constructor, or passed to `match`.

    Every grammar has a few rules already: `anything` matches any character,
    `end` matches only at the end of the input, and `empty` always matches
    and consumes nothing.
    """

    start: "str | RuleDef | None" = None

    _rules: typing.ClassVar[dict[str, RuleDef]] = {}
    _start: str | None
    _trees: dict[RuleDef, Rule]

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        cls._rules = gather_rules(cls)

    def __init__(self, start: str | None = None):
        self._start = start
        self._trees = {}

    @classmethod
    def rule_names(cls) -> list[str]:
        return list(cls._rules.keys())

    def definition(self, name: str) -> RuleDef | None:
        return type(self)._rules.get(name)

    def start_rule(self, start: str | None = None) -> str:
        """Figure out which rule to start from: the argument, the one given to
        the constructor, or the one given on the class, in that order.
        """
        if start is None:
            start = self._start
        if start is None:
            # This is a RuleDef if the class said `start = some_rule`, or if
            # the start rule is just called "start".
            default = getattr(type(self), "start", None)
            if isinstance(default, RuleDef):
                start = default.name
            else:
                start = default

        if start is None:
            raise NoStartRuleError(
                f"No start rule for {type(self).__name__}: either pass one to match or "
                "set a default with the `start` class attribute"
            )
        return start

    def instantiate(
        self,
        target: str,
        args: tuple[typing.Any, ...],
        definition: RuleDef | None = None,
        location: str | None = None,
    ) -> Rule:
        """Get the tree for the named rule, built with the given arguments."""
        if definition is None:
            definition = self.definition(target)
            if definition is None:
                raise UnknownRuleError(type(self).__name__, target, location)

        if len(args) > 0:
            return definition.build(self, args)

        # Rule trees are never modified by matching, so the trees of rules
        # without arguments only need to be built once.
        tree = self._trees.get(definition)
        if tree is None:
            tree = definition.build(self, args)
            self._trees[definition] = tree
        return tree

    def match_prefix(self, text: str, start: str | None = None) -> tuple[MatchResult, int]:
        """Match the start rule against the beginning of `text`, returning the
        result and how many characters were consumed.
        """
        target = self.start_rule(start)
        rule = self.instantiate(target, ())

        cursor = Cursor(text, grammar=self)
        result = rule.match(cursor, NULL_CONTEXT)
        return result, cursor.offset

    def match(self, text: str, start: str | None = None) -> MatchResult:
        """Match the start rule against the beginning of `text`.

        The result is a `Matched` carrying the value, or `NotMatched`. The
        match does not have to consume all of the text; end the start rule
        with `self.end` if it should.
        """
        result, _ = self.match_prefix(text, start)
        return result

    def apply(self, target: str, *args: typing.Any, **kwargs) -> Call:
        """Call the named rule, the same as `getattr(self, target)(*args)`."""
        return Call(target, *args, location=_caller_location(1), **kwargs)

    def foreign(self, grammar: "type[Grammar] | Grammar", target: str | None = None, **kwargs) -> Rule:
        """Match a rule of another grammar, sharing our cursor."""
        return ForeignEmbed(grammar, target, location=_caller_location(1), **kwargs)

    @rule
    def anything(self) -> Rule:
        return AnyChar()

    @rule
    def end(self) -> Rule:
        return Negation(AnyChar())

    @rule
    def empty(self) -> Rule:
        return NothingRule()

    def __repr__(self) -> str:
        return f"<{type(self).__name__} start={self._start or type(self).start!r}>"


Grammar._rules = gather_rules(Grammar)
