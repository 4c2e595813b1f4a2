"""
Constructor argument tokenizer

Splits the `--constructor-args` text into one token per constructor
parameter, and splits array/tuple literals into element tokens for the
encoder. Tokenizing is plain string scanning; argument text is never
evaluated.

Design Notes:
- Whitespace separates tokens only outside brackets and quotes
- Top-level quotes are stripped; quotes inside `[...]` / `(...)` are kept so
  the literal splitter can see element boundaries
- Brackets inside quotes are literal characters
"""

from typing import List, Optional, Sequence, Union

from ..utils.exceptions import ArgumentCountMismatch, ArgumentError

OPENERS = {"[": "]", "(": ")"}
CLOSERS = {"]": "[", ")": "("}
QUOTES = ("'", '"')

RawArguments = Union[None, str, Sequence[str]]


def _scan(text: str, delimiter: Optional[str], strip_quotes: bool) -> List[str]:
    """
    Split text on a delimiter at bracket depth 0, outside quotes.

    A delimiter of None means any whitespace, with runs collapsed.
    """
    tokens: List[str] = []
    current: List[str] = []
    stack: List[str] = []
    quote: Optional[str] = None
    started = False

    for position, char in enumerate(text):
        if quote is not None:
            if char == quote:
                quote = None
                if stack or not strip_quotes:
                    current.append(char)
            else:
                current.append(char)
            continue

        if char in QUOTES:
            quote = char
            started = True
            if stack or not strip_quotes:
                current.append(char)
            continue

        if char in OPENERS:
            stack.append(char)
        elif char in CLOSERS:
            if not stack or stack[-1] != CLOSERS[char]:
                raise ArgumentError(
                    f"Unbalanced '{char}' at position {position} in arguments: {text}"
                )
            stack.pop()

        is_delimiter = char.isspace() if delimiter is None else char == delimiter
        if is_delimiter and not stack:
            if delimiter is not None or started:
                tokens.append("".join(current))
            current = []
            started = False
            continue

        current.append(char)
        started = True

    if quote is not None:
        raise ArgumentError(f"Unterminated {quote} quote in arguments: {text}")
    if stack:
        raise ArgumentError(f"Unclosed '{stack[-1]}' in arguments: {text}")

    if delimiter is not None or started:
        tokens.append("".join(current))
    return tokens


def _strip_outer_quotes(token: str) -> str:
    if len(token) >= 2 and token[0] in QUOTES and token[-1] == token[0]:
        return token[1:-1]
    return token


def tokenize(text: str) -> List[str]:
    """Split a whitespace-delimited argument string into top-level tokens"""
    return _scan(text, None, strip_quotes=True)


def tokenize_arguments(raw: RawArguments, expected: Optional[int] = None) -> List[str]:
    """
    Produce top-level argument tokens from a string or an argv-style list.

    A list whose length already equals `expected` is taken element by
    element, since the shell has done the splitting. Otherwise every
    element is tokenized and the results are concatenated.
    """
    if raw is None:
        return []
    if isinstance(raw, str):
        return tokenize(raw)

    items = [str(item) for item in raw]
    if expected is not None and len(items) == expected:
        return [_strip_outer_quotes(item) for item in items]

    tokens: List[str] = []
    for item in items:
        tokens.extend(tokenize(item))
    return tokens


def split_arguments(raw: RawArguments, expected: int) -> List[str]:
    """
    Tokenize constructor arguments and check them against the arity.

    Raises:
        ArgumentCountMismatch: Token count differs from `expected`
    """
    tokens = tokenize_arguments(raw, expected)
    if len(tokens) != expected:
        if not tokens:
            message = f"Constructor expects {expected} argument(s) but none were given"
        else:
            message = (
                f"Constructor expects {expected} argument(s) but got {len(tokens)}: "
                + ", ".join(repr(t) for t in tokens)
            )
        raise ArgumentCountMismatch(message, expected=expected, actual=len(tokens))
    return tokens


def split_literal(text: str) -> List[str]:
    """
    Split an array or tuple literal into element tokens.

    `[1, 2, 3]` -> ['1', '2', '3']; `("a,b", [1,2])` -> ['a,b', '[1,2]'];
    `[]` -> []. Element quotes are stripped, nested literals are returned
    verbatim for recursive splitting.
    """
    stripped = text.strip()
    if len(stripped) < 2 or stripped[0] not in OPENERS or stripped[-1] != OPENERS[stripped[0]]:
        raise ArgumentError(f"Expected an array or tuple literal, got: {text!r}")

    body = stripped[1:-1]
    if not body.strip():
        return []

    elements = _scan(body, ",", strip_quotes=False)
    result = []
    for element in elements:
        element = element.strip()
        if not element:
            raise ArgumentError(f"Empty element in literal: {text!r}")
        result.append(_strip_outer_quotes(element))
    return result
