# A four-function calculator, evaluated as it parses.
import functools
import operator

from peg import EMPTY, Grammar, Rule, alt, chars, lit, one_or_more, opt, rule, seq, zero_or_more


OPERATORS = {
    "+": operator.add,
    "-": operator.sub,
    "*": operator.mul,
    "/": operator.truediv,
}


def fold(first, rest):
    """Apply a list of (operator, operand) pairs left to right."""
    return functools.reduce(lambda acc, pair: OPERATORS[pair[0]](acc, pair[1]), rest, first)


def make_number(whole, fraction):
    if fraction is EMPTY:
        return int("".join(whole))
    return float("".join(whole) + "." + "".join(fraction))


class Arithmetic(Grammar):
    start = "program"

    @rule
    def program(self) -> Rule:
        return seq(self.spaces, self.expression(name="e"), self.end, action=lambda e: e)

    # Left-associative operators are written as repetition and folded up
    # afterwards, since `expression <- expression "+" term` would never stop.
    @rule
    def expression(self) -> Rule:
        return seq(
            self.term(name="first"),
            zero_or_more(self.additive, name="rest"),
            action=fold,
        )

    @rule
    def additive(self) -> Rule:
        return seq(
            alt(self.symbol("+"), self.symbol("-"), name="op"),
            self.term(name="operand"),
            action=lambda op, operand: (op, operand),
        )

    @rule
    def term(self) -> Rule:
        return seq(
            self.factor(name="first"),
            zero_or_more(self.multiplicative, name="rest"),
            action=fold,
        )

    @rule
    def multiplicative(self) -> Rule:
        return seq(
            alt(self.symbol("*"), self.symbol("/"), name="op"),
            self.factor(name="operand"),
            action=lambda op, operand: (op, operand),
        )

    @rule
    def factor(self) -> Rule:
        return alt(
            self.number,
            seq(self.symbol("("), self.expression(name="e"), self.symbol(")"), action=lambda e: e),
            seq(self.symbol("-"), self.factor(name="f"), action=lambda f: -f),
        )

    @rule
    def number(self) -> Rule:
        return seq(
            one_or_more(self.digit, name="whole"),
            opt(seq(".", one_or_more(self.digit, name="digits")), name="fraction"),
            self.spaces,
            action=make_number,
        )

    @rule
    def symbol(self, text: str) -> Rule:
        return seq(lit(text, name="s"), self.spaces, action=lambda s: s)

    @rule
    def digit(self) -> Rule:
        return chars(("0", "9"))

    @rule
    def spaces(self) -> Rule:
        return zero_or_more(chars(" \t\n"))


class PowerArithmetic(Arithmetic):
    """The calculator, plus right-associative exponentiation with `^`."""

    @rule
    def factor(self) -> Rule:
        return seq(
            super().factor(name="base"),
            opt(self.symbol("^"), self.factor(name="exponent"), name="power"),
            action=lambda base, power: base if power is EMPTY else base**power,
        )


def evaluate(text: str):
    result = Arithmetic().match(text)
    if not result:
        raise ValueError(f"Not an arithmetic expression: {text!r}")
    return result.value


if __name__ == "__main__":
    import sys

    print(evaluate(" ".join(sys.argv[1:])))
