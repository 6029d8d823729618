import logging
import sys

import pytest

from peg import (
    EMPTY,
    Call,
    ForeignEmbed,
    Grammar,
    GrammarError,
    Matched,
    NoStartRuleError,
    NotMatched,
    Rule,
    UnboundVariableError,
    UnknownRuleError,
    alt,
    any_char,
    call,
    chars,
    empty,
    foreign,
    lit,
    one_or_more,
    opt,
    rule,
    seq,
    var,
    zero_or_more,
)


class Greeting(Grammar):
    start = "top"

    @rule
    def top(self) -> Rule:
        return seq(lit("hello"), lit("world"))


def test_grammar():
    g = Greeting()
    assert g.match("helloworld")
    assert g.match("helloworldfoo")
    assert not g.match("hello")


def test_match_prefix():
    result, consumed = Greeting().match_prefix("helloworldfoo")
    assert result == Matched("world")
    assert consumed == 10


def test_start_rule_choices():
    class Two(Grammar):
        start = "a"

        @rule
        def a(self) -> Rule:
            return lit("a")

        @rule
        def b(self) -> Rule:
            return lit("b")

    assert Two().match("a")
    assert not Two().match("b")
    assert Two().match("b", start="b")
    assert Two(start="b").match("b")
    assert Two(start="b").match("a", start="a")


def test_start_can_be_a_rule():
    class Direct(Grammar):
        @rule
        def word(self) -> Rule:
            return one_or_more(chars(("a", "z")))

        start = word

    assert Direct().match("abc") == Matched(["a", "b", "c"])
    assert Direct.rule_names().count("word") == 1


def test_rule_called_start():
    class Implicit(Grammar):
        @rule
        def start(self) -> Rule:
            return seq(lit("x"), self.end)

    assert Implicit().match("x")
    assert not Implicit().match("xy")


def test_no_start_rule():
    class Startless(Grammar):
        @rule
        def a(self) -> Rule:
            return lit("a")

    with pytest.raises(NoStartRuleError):
        Startless().match("a")

    assert Startless().match("a", start="a")


def test_unknown_start_rule():
    with pytest.raises(UnknownRuleError):
        Greeting().match("hello", start="nope")


def test_unknown_called_rule():
    class Broken(Grammar):
        start = "top"

        @rule
        def top(self) -> Rule:
            return seq(lit("a"), self.apply("missing"))

    # Nothing goes looking for the rule until it is reached.
    assert not Broken().match("b")

    with pytest.raises(UnknownRuleError) as info:
        Broken().match("a")
    assert info.value.target == "missing"
    assert info.value.grammar == "Broken"
    assert "test_grammar.py" in str(info.value)


def test_rule_must_return_a_rule():
    class Confused(Grammar):
        start = "top"

        @rule
        def top(self):
            return 42

    with pytest.raises(GrammarError):
        Confused().match("42")


def test_duplicate_rule_names():
    with pytest.raises(GrammarError):

        class Twice(Grammar):
            @rule("thing")
            def first(self) -> Rule:
                return lit("a")

            @rule("thing")
            def second(self) -> Rule:
                return lit("b")


def test_renamed_rule():
    class Renamed(Grammar):
        start = "File"

        @rule("File")
        def file(self) -> Rule:
            return self.apply("Word")

        @rule("Word")
        def word(self) -> Rule:
            return lit("w")

    assert Renamed().match("w")
    assert "File" in Renamed.rule_names()
    assert "file" not in Renamed.rule_names()


def test_captured_rule():
    class Captured(Grammar):
        start = "top"

        @rule
        def top(self) -> Rule:
            return seq(
                any_char(name="x"),
                lit("b"),
                any_char(name="y"),
                action=lambda x, y: (x + y).upper(),
            )

    assert Captured().match("abc").value == "AC"


def test_falsy_results_are_matches():
    class Nothing(Grammar):
        start = "top"

        @rule
        def top(self) -> Rule:
            return alt(lit("null", action=lambda: None), lit("zero", action=lambda: 0))

    assert Nothing().match("null") == Matched(None)
    assert Nothing().match("zero") == Matched(0)
    assert Nothing().match("one") is NotMatched


def test_apply():
    class Applied(Grammar):
        start = "top"

        @rule
        def top(self) -> Rule:
            return self.apply("hello")

        @rule
        def hello(self) -> Rule:
            return lit("hello")

    assert Applied().match("hello")
    assert not Applied().match("goodbye")


def test_call_builder():
    class Called(Grammar):
        start = "top"

        @rule
        def top(self) -> Rule:
            return call("twice", "ab")

        @rule
        def twice(self, text) -> Rule:
            return seq(lit(text), lit(text))

    assert Called().match("abab")
    assert not Called().match("ab")


def test_call_outside_grammar():
    with pytest.raises(GrammarError):
        call("anything").match_text("a")


def test_variable_lookup():
    class Repeat(Grammar):
        start = "top"

        @rule
        def top(self) -> Rule:
            return seq(lit("a", name="var"), self.lit_with_arg(var("var")))

        @rule
        def lit_with_arg(self, a) -> Rule:
            return lit(a)

    assert Repeat().match("aa")
    assert not Repeat().match("ab")


def test_variable_lookup_sees_earlier_capture():
    class Doubled(Grammar):
        start = "top"

        @rule
        def top(self) -> Rule:
            return seq(any_char(name="c"), self.same(var("c")), self.end)

        @rule
        def same(self, c) -> Rule:
            return lit(c)

    assert Doubled().match("xx")
    assert Doubled().match("77")
    assert not Doubled().match("xy")


def test_nested_variable_lookup():
    class Nested(Grammar):
        start = "top"

        @rule
        def top(self) -> Rule:
            return seq(lit("a", name="a"), alt(lit("b"), self.letter(var("a"))))

        @rule
        def letter(self, l) -> Rule:
            return lit(l)

    assert Nested().match("ab")
    assert Nested().match("aa")
    assert not Nested().match("ac")


def test_bindings_do_not_leak_between_alternatives():
    class Leaky(Grammar):
        start = "top"

        @rule
        def top(self) -> Rule:
            return alt(
                seq(any_char(name="c"), lit("!")),
                seq(any_char(), self.same(var("c"))),
            )

        @rule
        def same(self, c) -> Rule:
            return lit(c)

    # The first alternative captured "c" before it failed, but the second
    # alternative never sees it.
    with pytest.raises(UnboundVariableError):
        Leaky().match("aa")

    assert Leaky().match("a!")


def test_unbound_variable():
    class Unbound(Grammar):
        start = "top"

        @rule
        def top(self) -> Rule:
            return self.same(var("nope"))

        @rule
        def same(self, c) -> Rule:
            return lit(c)

    with pytest.raises(UnboundVariableError) as info:
        Unbound().match("a")
    assert info.value.name == "nope"


def test_named_call():
    class Numbers(Grammar):
        start = "sum"

        @rule
        def sum(self) -> Rule:
            return seq(self.num(name="a"), lit("+"), self.num(name="b"), action=lambda a, b: a + b)

        @rule
        def num(self) -> Rule:
            return one_or_more(chars(("0", "9")), name="digits", action=lambda digits: int("".join(digits)))

    assert Numbers().match("10+32").value == 42


def test_builtin_rules():
    class Builtins(Grammar):
        @rule
        def two(self) -> Rule:
            return seq(self.anything, self.anything, self.end)

        @rule
        def blank(self) -> Rule:
            return seq(self.empty, self.end)

    assert Builtins().match("ab", start="two")
    assert not Builtins().match("abc", start="two")
    assert not Builtins().match("a", start="two")
    assert Builtins().match("", start="blank")
    assert Builtins().match("", start="end") == Matched(True)
    assert not Builtins().match("x", start="end")
    assert Builtins().match("", start="empty") == Matched(None)


def test_recursive_rules():
    class Parens(Grammar):
        start = "balanced"

        @rule
        def balanced(self) -> Rule:
            return zero_or_more(lit("("), self.balanced, lit(")"))

    # One balanced group, whose value is its last child's: the ")".
    assert Parens().match_prefix("(()())") == (Matched([")"]), 6)

    _, consumed = Parens().match_prefix("(()())(")
    assert consumed == 6

    _, consumed = Parens().match_prefix("(()")
    assert consumed == 0


def test_right_recursion():
    class Right(Grammar):
        start = "xs"

        @rule
        def xs(self) -> Rule:
            return alt(seq(lit("x"), self.xs), self.empty)

    for text, rest in [("", ""), ("x", ""), ("xx", ""), ("xxy", "y")]:
        result, consumed = Right().match_prefix(text)
        assert result
        assert text[consumed:] == rest


def test_mutual_recursion():
    class PingPong(Grammar):
        start = "ping"

        @rule
        def ping(self) -> Rule:
            return seq(lit("i"), opt(self.pong))

        @rule
        def pong(self) -> Rule:
            return seq(lit("o"), opt(self.ping))

    _, consumed = PingPong().match_prefix("ioioi!")
    assert consumed == 5


def test_left_recursion_does_not_terminate():
    """A rule that calls itself before consuming anything just keeps calling
    itself. That's how PEGs work; we make sure it ends in a RecursionError and
    not something stranger.
    """

    class Left(Grammar):
        start = "expr"

        @rule
        def expr(self) -> Rule:
            return alt(
                seq(self.expr(name="e"), lit("+"), self.num(name="n"), action=lambda e, n: ("add", e, n)),
                self.num,
            )

        @rule
        def num(self) -> Rule:
            return one_or_more(chars(("0", "9")), name="digits", action=lambda digits: int("".join(digits)))

    limit = sys.getrecursionlimit()
    sys.setrecursionlimit(400)
    try:
        with pytest.raises(RecursionError):
            Left().match("10+20+30")
    finally:
        sys.setrecursionlimit(limit)


class Abc(Grammar):
    start = "top"

    @rule
    def top(self) -> Rule:
        return lit("abc")


def test_foreign():
    class Host(Grammar):
        start = "top"

        @rule
        def top(self) -> Rule:
            return self.foreign(Abc)

    assert Host().match("abc")
    assert not Host().match("ab")


def test_foreign_records_where_it_was_written():
    assert "test_grammar.py:" in foreign(Abc).location
    assert "test_grammar.py:" in Abc().foreign(Abc).location
    assert ForeignEmbed(Abc).location is None

    located = ForeignEmbed(Abc, location="grammar.py:12")
    assert located.location == "grammar.py:12"


def test_foreign_commits_consumption():
    class Host(Grammar):
        start = "top"

        @rule
        def top(self) -> Rule:
            return seq(lit("<"), foreign(Abc, name="inner"), lit(">"), action=lambda inner: inner)

    result, consumed = Host().match_prefix("<abc>!")
    assert result == Matched("abc", {"inner": "abc"})
    assert consumed == 5


def test_foreign_target_and_instance():
    class Letters(Grammar):
        @rule
        def vowel(self) -> Rule:
            return chars("aeiou")

    class Host(Grammar):
        start = "top"

        @rule
        def top(self) -> Rule:
            return seq(self.foreign(Letters(), "vowel"), self.foreign(Letters, "vowel"))

    assert Host().match("ae")
    assert not Host().match("ab")


def test_foreign_without_start():
    class Letters(Grammar):
        @rule
        def vowel(self) -> Rule:
            return chars("aeiou")

    class Host(Grammar):
        start = "top"

        @rule
        def top(self) -> Rule:
            return self.foreign(Letters)

    with pytest.raises(NoStartRuleError):
        Host().match("a")


def test_foreign_unknown_target():
    class Host(Grammar):
        start = "top"

        @rule
        def top(self) -> Rule:
            return self.foreign(Abc, "nope")

    with pytest.raises(UnknownRuleError):
        Host().match("abc")


def test_foreign_does_not_see_our_bindings():
    class Inner(Grammar):
        start = "top"

        @rule
        def top(self) -> Rule:
            return self.same(var("c"))

        @rule
        def same(self, c) -> Rule:
            return lit(c)

    class Host(Grammar):
        start = "top"

        @rule
        def top(self) -> Rule:
            return seq(any_char(name="c"), self.foreign(Inner))

    with pytest.raises(UnboundVariableError):
        Host().match("aa")


def test_foreign_failure_still_commits():
    """When the other grammar fails partway through, whatever it consumed
    before failing is still committed to our cursor.
    """

    class Partial(Grammar):
        start = "top"

        @rule
        def top(self) -> Rule:
            return seq(lit("ab"), lit("c"))

    class Host(Grammar):
        start = "top"

        @rule
        def top(self) -> Rule:
            return seq(lit(">"), self.foreign(Partial))

    result, consumed = Host().match_prefix(">abd")
    assert result is NotMatched
    assert consumed == 3


def test_foreign_failure_inside_choice_is_undone():
    class Partial(Grammar):
        start = "top"

        @rule
        def top(self) -> Rule:
            return seq(lit("ab"), lit("c"))

    class Host(Grammar):
        start = "top"

        @rule
        def top(self) -> Rule:
            return alt(self.foreign(Partial), lit("abd"))

    result, consumed = Host().match_prefix("abd")
    assert result == Matched("abd")
    assert consumed == 3


class Lower(Grammar):
    start = "abc"

    @rule
    def abc(self) -> Rule:
        return lit("abc")

    @rule
    def word(self) -> Rule:
        return seq(self.abc, lit("!"))


def test_super():
    class Upper(Lower):
        @rule
        def abc(self) -> Rule:
            return alt(lit("ABC"), super().abc)

    assert Upper().match("abc")
    assert Upper().match("ABC")
    assert not Lower().match("ABC")


def test_inherited_rules_call_overrides():
    class Upper(Lower):
        @rule
        def abc(self) -> Rule:
            return lit("ABC")

    assert Upper().match("ABC!", start="word")
    assert not Upper().match("abc!", start="word")
    assert Lower().match("abc!", start="word")


def test_super_chain():
    class Middle(Lower):
        @rule
        def abc(self) -> Rule:
            return alt(lit("ABC"), super().abc)

    class Top(Middle):
        @rule
        def abc(self) -> Rule:
            return alt(lit("xyz"), super().abc)

    for text in ["abc", "ABC", "xyz"]:
        assert Top().match(text)
    assert not Middle().match("xyz")

    # Each super() call holds on to the definition one level up.
    top_tree = Top().instantiate("abc", ())
    assert top_tree.rules[1].definition is Middle._rules["abc"]
    middle_tree = Middle().instantiate("abc", ())
    assert middle_tree.rules[1].definition is Lower._rules["abc"]


def test_renamed_rule_overrides():
    class Base(Grammar):
        start = "top"

        @rule
        def top(self) -> Rule:
            return seq(self.word, lit("!"))

        @rule("Word")
        def word(self) -> Rule:
            return lit("w")

    class Derived(Base):
        @rule
        def Word(self) -> Rule:
            return lit("W")

    assert Derived._rules["Word"] is Derived.Word
    assert Derived().match("W!")
    assert not Derived().match("w!")
    assert Base().match("w!")

    top = Derived().instantiate("top", ())
    assert top.rules[0].definition is None


def test_super_with_arguments():
    class Base(Grammar):
        start = "top"

        @rule
        def top(self) -> Rule:
            return self.keyword("if")

        @rule
        def keyword(self, word) -> Rule:
            return lit(word)

    class Spaced(Base):
        @rule
        def keyword(self, word) -> Rule:
            return seq(super().keyword(word, name="k"), zero_or_more(lit(" ")), action=lambda k: k)

    assert Spaced().match_prefix("if   x") == (Matched("if"), 5)
    assert Base().match_prefix("if   x") == (Matched("if"), 2)


def test_self_rule_is_a_call():
    class Probe(Grammar):
        @rule
        def a(self) -> Rule:
            return lit("a")

    reference = Probe().a
    assert isinstance(reference, Call)
    assert reference.target == "a"
    assert reference.definition is None
    assert Probe.a is Probe._rules["a"]


def test_grammar_is_reusable():
    class Word(Grammar):
        start = "word"

        @rule
        def word(self) -> Rule:
            return seq(one_or_more(chars(("a", "z")), name="w"), action=lambda w: "".join(w))

    g = Word()
    assert g.match("hello").value == "hello"
    assert g.match("bye").value == "bye"
    assert not g.match("123")
    assert g.match("hello").value == "hello"


def test_match_logging(caplog):
    with caplog.at_level(logging.DEBUG, logger="peg.match"):
        Greeting().match("helloworld", start="top")
        Lower().match("abc!", start="word")

    messages = [r.getMessage() for r in caplog.records if r.name == "peg.match"]
    assert any("enter abc" in m for m in messages)
    assert any("match abc [0, 3)" in m for m in messages)


def test_empty_rule_builder():
    class Maybe(Grammar):
        start = "top"

        @rule
        def top(self) -> Rule:
            return seq(alt(lit("x"), empty()), lit("y"))

    assert Maybe().match("xy")
    assert Maybe().match("y")
    assert not Maybe().match("z")
    assert opt("x").match_text("")[0] == Matched(EMPTY)
