# A slightly relaxed JSON reader: strings may use either kind of quote.
from peg import (
    EMPTY,
    Grammar,
    Rule,
    alt,
    any_char,
    chars,
    lit,
    neg,
    one_or_more,
    opt,
    rule,
    seq,
    var,
    zero_or_more,
)


ESCAPES = {
    '"': '"',
    "'": "'",
    "\\": "\\",
    "/": "/",
    "b": "\b",
    "f": "\f",
    "n": "\n",
    "r": "\r",
    "t": "\t",
}


def make_number(sign, whole, fraction, exponent):
    text = whole
    is_float = False
    if fraction is not EMPTY:
        text += "." + "".join(fraction)
        is_float = True
    if exponent is not EMPTY:
        text += "e" + exponent
        is_float = True
    if sign is not EMPTY:
        text = "-" + text
    return float(text) if is_float else int(text)


class JsonReader(Grammar):
    start = "document"

    @rule
    def document(self) -> Rule:
        return seq(self.ws, self.value(name="v"), self.end, action=lambda v: v)

    @rule
    def value(self) -> Rule:
        return alt(
            self.object,
            self.array,
            self.string,
            self.number,
            self.keyword("true", True),
            self.keyword("false", False),
            self.keyword("null", None),
        )

    @rule
    def object(self) -> Rule:
        return seq(
            self.token("{"),
            opt(self.members, name="members"),
            self.token("}"),
            action=lambda members: {} if members is EMPTY else dict(members),
        )

    @rule
    def members(self) -> Rule:
        return seq(
            self.pair(name="first"),
            zero_or_more(self.token(","), self.pair(name="p"), name="rest"),
            action=lambda first, rest: [first, *rest],
        )

    @rule
    def pair(self) -> Rule:
        return seq(
            self.string(name="key"),
            self.token(":"),
            self.value(name="v"),
            action=lambda key, v: (key, v),
        )

    @rule
    def array(self) -> Rule:
        return seq(
            self.token("["),
            opt(self.elements, name="elements"),
            self.token("]"),
            action=lambda elements: [] if elements is EMPTY else elements,
        )

    @rule
    def elements(self) -> Rule:
        return seq(
            self.value(name="first"),
            zero_or_more(self.token(","), self.value(name="v"), name="rest"),
            action=lambda first, rest: [first, *rest],
        )

    # The closing quote has to be the same as the opening one, so the opening
    # quote is captured and handed to the rules that need to know it.
    @rule
    def string(self) -> Rule:
        return seq(
            chars("\"'", name="quote"),
            zero_or_more(self.string_char(var("quote")), name="body"),
            self.closing_quote(var("quote")),
            self.ws,
            action=lambda quote, body: "".join(body),
        )

    @rule
    def string_char(self, quote: str) -> Rule:
        return alt(
            self.escape,
            seq(neg(quote), neg(chars("\\\n")), any_char(name="c"), action=lambda c: c),
        )

    @rule
    def closing_quote(self, quote: str) -> Rule:
        return lit(quote)

    @rule
    def escape(self) -> Rule:
        return alt(
            seq(
                "\\u",
                self.hex_digit(name="a"),
                self.hex_digit(name="b"),
                self.hex_digit(name="c"),
                self.hex_digit(name="d"),
                action=lambda a, b, c, d: chr(int(a + b + c + d, 16)),
            ),
            seq("\\", chars("".join(ESCAPES), name="e"), action=lambda e: ESCAPES[e]),
        )

    @rule
    def hex_digit(self) -> Rule:
        return chars(("0", "9"), ("a", "f"), ("A", "F"))

    @rule
    def number(self) -> Rule:
        return seq(
            opt("-", name="sign"),
            alt(
                lit("0"),
                seq(
                    chars(("1", "9"), name="d"),
                    zero_or_more(self.digit, name="ds"),
                    action=lambda d, ds: d + "".join(ds),
                ),
                name="whole",
            ),
            opt(".", one_or_more(self.digit), name="fraction"),
            opt(
                seq(
                    chars("eE"),
                    opt(chars("+-"), name="s"),
                    one_or_more(self.digit, name="ds"),
                    action=lambda s, ds: ("" if s is EMPTY else s) + "".join(ds),
                ),
                name="exponent",
            ),
            self.ws,
            action=make_number,
        )

    @rule
    def keyword(self, text: str, result) -> Rule:
        return seq(lit(text), neg(chars(("a", "z"), ("A", "Z"), ("0", "9"), "_")), self.ws, action=lambda: result)

    @rule
    def token(self, text: str) -> Rule:
        return seq(lit(text), self.ws)

    @rule
    def digit(self) -> Rule:
        return chars(("0", "9"))

    @rule
    def ws(self) -> Rule:
        return zero_or_more(chars(" \t\r\n"))


def loads(text: str):
    result = JsonReader().match(text)
    if not result:
        raise ValueError("Not a JSON document")
    return result.value
