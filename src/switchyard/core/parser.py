"""Route pattern parser.

This module implements the pattern grammar shared by matching and URL
generation:
- Literal text, passed through unchanged
- Variable tokens: {name} or {name:regex}, with brace-depth aware scanning
- One trailing optional chain: [/{a};/{b}], sequentially optional

Two parsers turn a pattern into regex data for the two dispatch strategies:
- MarkParser: one regex variant per depth of optional expansion, positional groups
- NamedParser: a single regex with nested optional groups and named captures
"""

import re
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Iterator, Mapping
from dataclasses import dataclass, field

from switchyard.core.exceptions import DuplicateAttributeError, RouteSyntaxError

# Constraint used when neither the token nor the route supplies one
DEFAULT_TOKEN = "[^/]+"

_NAME_PATTERN = re.compile(r"^[A-Za-z_][\w-]*$")
_DEPRECATED_CHAIN = "[!"


@dataclass(frozen=True)
class RouteToken:
    """A variable token found in a route pattern.

    Attributes:
        text: Token text as written, braces included
        name: Attribute name
        pattern: Inline constraint regex, if any
    """

    text: str
    name: str
    pattern: str | None = None


Piece = str | RouteToken


@dataclass(frozen=True)
class PatternLayout:
    """Structure of a route pattern split into base part and optional chain.

    Both the base and every optional sub-segment are stored as sequences of
    literal strings and RouteToken objects in written order.
    """

    pattern: str
    base: tuple[Piece, ...]
    segments: tuple[tuple[Piece, ...], ...] = ()
    optional_start: bool = False

    @property
    def tokens(self) -> tuple[RouteToken, ...]:
        """All tokens of the pattern in left-to-right order."""
        return self.base_tokens + tuple(
            token for segment in self.segments for token in _tokens_of(segment)
        )

    @property
    def base_tokens(self) -> tuple[RouteToken, ...]:
        return _tokens_of(self.base)

    def variant_pieces(self) -> Iterator[tuple[Piece, ...]]:
        """Yield the pieces of every variant, from no optional segment to all of them."""
        current: tuple[Piece, ...] = () if self.optional_start else self.base
        yield ("/",) if self.optional_start else self.base
        for segment in self.segments:
            current = current + segment
            yield current


@dataclass(frozen=True)
class ParsedRoute:
    """Positional parse result used by the mark strategy.

    Attributes:
        variants: Regex fragments; variant i includes optional segments 0..i-1
        attributes: Attribute names in order of first occurrence
        groups: For each variant, the group number of each attribute it contains
    """

    variants: tuple[str, ...]
    attributes: tuple[str, ...] = ()
    groups: tuple[tuple[int, ...], ...] = ()


@dataclass(frozen=True)
class NamedRoute:
    """Named-capture parse result used by the named strategy.

    Attributes:
        regex: Single regex with nested optional groups
        captures: Regex group alias -> attribute name
    """

    regex: str
    captures: dict[str, str] = field(default_factory=dict)

    @property
    def attributes(self) -> tuple[str, ...]:
        return tuple(self.captures.values())


def is_dynamic(pattern: str) -> bool:
    """Check whether a pattern holds a variable token or an optional chain."""
    return "{" in pattern or "[" in pattern


def analyze_pattern(pattern: str) -> PatternLayout:
    """Split a route pattern into its base part and optional sub-segments.

    Args:
        pattern: Route pattern

    Returns:
        PatternLayout describing the pattern

    Raises:
        RouteSyntaxError: If the pattern is malformed
        DuplicateAttributeError: If a variable name is used twice
    """
    base_text, chain = _split_chain(pattern)
    base_text = base_text.strip()

    segments: tuple[tuple[Piece, ...], ...] = ()
    if chain is not None:
        segments = tuple(
            _split_pieces(part, pattern) for part in _split_segments(chain, pattern)
        )

    optional_start = chain is not None and base_text == ""
    if optional_start:
        first = segments[0][0]
        if not isinstance(first, str) or not first.startswith("/"):
            raise RouteSyntaxError(
                "An optional chain opening the pattern must start with `/`", pattern
            )

    layout = PatternLayout(
        pattern=pattern,
        base=_split_pieces(base_text, pattern),
        segments=segments,
        optional_start=optional_start,
    )

    seen: set[str] = set()
    for token in layout.tokens:
        if token.name in seen:
            raise DuplicateAttributeError(token.name, pattern)
        seen.add(token.name)

    return layout


def resolve_constraint(
    token: RouteToken, tokens: Mapping[str, str] | None = None, pattern: str | None = None
) -> str:
    """Resolve the regex constraint of a variable token.

    The inline constraint wins, then the route-level override for the
    token's name, then the default non-slash class.

    Raises:
        RouteSyntaxError: If the resolved constraint is not a valid regex
    """
    if token.pattern:
        constraint = token.pattern
    elif tokens and tokens.get(token.name):
        constraint = tokens[token.name].strip()
    else:
        return DEFAULT_TOKEN

    try:
        compiled = re.compile(constraint)
    except re.error as e:
        raise RouteSyntaxError(
            f"Invalid constraint `{constraint}` for attribute [{token.name}]: {e}", pattern
        ) from e
    # Constraints are repeated across variants and chunks
    _reject_named_groups(compiled, pattern)
    return constraint


def render(pieces: tuple[Piece, ...], render_token: Callable[[RouteToken], str]) -> str:
    """Join pieces into text, rendering each token with the given callable."""
    return "".join(
        piece if isinstance(piece, str) else render_token(piece) for piece in pieces
    )


class Parser(ABC):
    """Interface of the pattern parsers."""

    @abstractmethod
    def parse(
        self, pattern: str, tokens: Mapping[str, str] | None = None
    ) -> ParsedRoute | NamedRoute:
        """Parse a route pattern.

        Args:
            pattern: Route pattern
            tokens: Per-attribute constraint overrides

        Returns:
            Parse result for the parser's dispatch strategy
        """


class MarkParser(Parser):
    """Parses patterns into positional regex variants.

    Example::

        MarkParser().parse("/archive[/{year:\\d+};/{month:\\d+}]")
        # variants: ("/archive", "/archive/(\\d+)", "/archive/(\\d+)/(\\d+)")
        # attributes: ("year", "month")
    """

    def parse(self, pattern: str, tokens: Mapping[str, str] | None = None) -> ParsedRoute:
        if pattern in ("", "/"):
            return ParsedRoute(variants=("/",), groups=((),))

        if not is_dynamic(pattern):
            _reject_named_groups(_compile(pattern, pattern), pattern)
            return ParsedRoute(variants=(pattern,), groups=((),))

        layout = analyze_pattern(pattern)
        constraints = {
            token.name: resolve_constraint(token, tokens, pattern) for token in layout.tokens
        }

        variants: list[str] = []
        groups: list[tuple[int, ...]] = []
        for pieces in layout.variant_pieces():
            variants.append(render(pieces, lambda t: f"({constraints[t.name]})"))
            groups.append(_group_numbers(pieces, constraints, pattern))

        return ParsedRoute(
            variants=tuple(variants),
            attributes=tuple(token.name for token in layout.tokens),
            groups=tuple(groups),
        )


class NamedParser(Parser):
    """Parses patterns into one regex with named captures.

    Example::

        NamedParser().parse("/archive[/{year:\\d+};/{month:\\d+}]")
        # regex: "/archive(?:/(?P<year>\\d+)(?:/(?P<month>\\d+))?)?"
    """

    def parse(self, pattern: str, tokens: Mapping[str, str] | None = None) -> NamedRoute:
        if pattern in ("", "/"):
            return NamedRoute(regex="/")

        if not is_dynamic(pattern):
            return NamedRoute(regex=pattern)

        layout = analyze_pattern(pattern)
        aliases = _capture_aliases(layout.tokens)

        def named_group(token: RouteToken) -> str:
            constraint = resolve_constraint(token, tokens, pattern)
            return f"(?P<{aliases[token.name]}>{constraint})"

        segments = [render(segment, named_group) for segment in layout.segments]

        if layout.optional_start:
            # The leading slash stays mandatory so "/" still matches
            head = "/(?:" + segments[0][1:]
            tail = ")?"
            segments = segments[1:]
        else:
            head = render(layout.base, named_group)
            tail = ""

        for segment in segments:
            head += "(?:" + segment
            tail += ")?"

        regex = head + tail
        _compile(regex, pattern)

        return NamedRoute(
            regex=regex,
            captures={aliases[token.name]: token.name for token in layout.tokens},
        )


def _tokens_of(pieces: tuple[Piece, ...]) -> tuple[RouteToken, ...]:
    return tuple(piece for piece in pieces if isinstance(piece, RouteToken))


def _split_chain(pattern: str) -> tuple[str, str | None]:
    """Split off the optional chain, ignoring brackets inside tokens."""
    depth = 0
    for index, char in enumerate(pattern):
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth < 0:
                raise RouteSyntaxError("Unbalanced braces", pattern)
        elif char == "[" and depth == 0:
            return pattern[:index], pattern[index:]
    return pattern, None


def _split_segments(chain: str, pattern: str) -> list[str]:
    """Split the optional chain into its `;` separated sub-segments."""
    chain = chain.rstrip()
    if chain.startswith(_DEPRECATED_CHAIN):
        raise RouteSyntaxError(
            "The `[!...]` optional syntax is no longer supported, use `[...]`", pattern
        )
    if not chain.endswith("]"):
        raise RouteSyntaxError("The optional chain must close the pattern", pattern)

    parts: list[str] = []
    buffer = ""
    depth = 0
    for char in chain[1:-1]:
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
        elif char in "[]" and depth == 0:
            raise RouteSyntaxError("Only one non-nested optional chain is allowed", pattern)
        elif char == ";" and depth == 0:
            parts.append(buffer)
            buffer = ""
            continue
        buffer += char
    parts.append(buffer)

    segments = [part.strip() for part in parts]
    if any(not segment for segment in segments):
        raise RouteSyntaxError("Empty optional segment", pattern)
    return segments


def _split_pieces(text: str, pattern: str) -> tuple[Piece, ...]:
    """Split text into literal strings and tokens."""
    pieces: list[Piece] = []
    buffer = ""
    index = 0
    length = len(text)

    while index < length:
        char = text[index]
        if char == "{":
            end = _token_end(text, index, pattern)
            # Whitespace right before a token is not part of the path
            buffer = buffer.rstrip()
            if buffer:
                pieces.append(buffer)
            buffer = ""
            pieces.append(_parse_token(text[index:end], pattern))
            index = end
            continue
        if char == "}":
            raise RouteSyntaxError("Unbalanced braces", pattern)
        buffer += char
        index += 1

    if buffer:
        pieces.append(buffer)
    return tuple(pieces)


def _token_end(text: str, start: int, pattern: str) -> int:
    """Return the index just past the brace closing the token opened at start."""
    depth = 0
    for index in range(start, len(text)):
        if text[index] == "{":
            depth += 1
        elif text[index] == "}":
            depth -= 1
            if depth == 0:
                return index + 1
    raise RouteSyntaxError("Unbalanced braces", pattern)


def _parse_token(text: str, pattern: str) -> RouteToken:
    """Parse a token like `{id}`, `{slug:[a-z]+}` or `{year:\\d{4}}`."""
    name, _, constraint = text[1:-1].partition(":")
    name = name.strip()
    constraint = constraint.strip()

    if not _NAME_PATTERN.match(name):
        raise RouteSyntaxError(f"Invalid parameter name: '{name}'", pattern)

    return RouteToken(text=text, name=name, pattern=constraint or None)


def _group_numbers(
    pieces: tuple[Piece, ...], constraints: dict[str, str], pattern: str
) -> tuple[int, ...]:
    """Find the group number of every attribute in one variant.

    The variant is rendered with a named marker around each attribute; the
    group numbering is the same as for the plain positional rendering, so
    groups held by literals or constraints are accounted for.
    """
    markers: dict[str, str] = {}

    def marked(token: RouteToken) -> str:
        marker = f"_sw{len(markers)}"
        markers[marker] = token.name
        return f"(?P<{marker}>{constraints[token.name]})"

    compiled = _compile(render(pieces, marked), pattern)
    _reject_named_groups(compiled, pattern, allowed=markers)
    return tuple(compiled.groupindex[marker] for marker in markers)


def _capture_aliases(tokens: tuple[RouteToken, ...]) -> dict[str, str]:
    """Map attribute names to regex group names.

    Names containing `-` are not valid group names and get an alias.
    """
    names = {token.name for token in tokens}
    aliases: dict[str, str] = {}
    for index, token in enumerate(tokens):
        alias = token.name
        if not alias.isidentifier():
            alias = f"_a{index}"
            while alias in names:
                alias = f"_{alias}"
        aliases[token.name] = alias
    return aliases


def _compile(regex: str, pattern: str) -> re.Pattern[str]:
    try:
        return re.compile(regex)
    except re.error as e:
        raise RouteSyntaxError(f"Invalid regex `{regex}`: {e}", pattern) from e


def _reject_named_groups(
    compiled: re.Pattern[str], pattern: str, allowed: Iterable[str] = ()
) -> None:
    names = sorted(set(compiled.groupindex) - set(allowed))
    if names:
        raise RouteSyntaxError(
            f"Named groups are not allowed in route regexes, use (?:...) instead: {names}",
            pattern,
        )
