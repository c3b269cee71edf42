"""
Evaluation of PromQL queries against samples scraped by the collector.

Supported subset:

- number literals, parentheses, unary minus and ``+ - * /``
- instant selectors ``metric{label="v", label!="v", label=~"re", label!~"re"}``
- range selectors ``metric{...}[2s]`` as arguments of ``rate``, ``irate`` and ``increase``
- aggregations ``sum``, ``avg``, ``min``, ``max`` with an optional ``by (labels)`` clause

Unlike Prometheus, ``rate`` and ``increase`` are computed over the samples
actually present in the window and are not extrapolated to its edges.

Copyright 2025 Advanced Micro Devices, Inc.
All rights reserved.
"""

from collections import deque
from typing import Dict, FrozenSet, List, Optional, Tuple, Union
import math
import re
import threading

from composebench.lib.utils_lib import parse_duration

Labels = FrozenSet[Tuple[str, str]]
SeriesKey = Tuple[str, Labels]

FUNCTIONS = ("rate", "irate", "increase")
AGGREGATIONS = ("sum", "avg", "min", "max")

# how long scraped samples are kept around for range selectors
DEFAULT_RETENTION_SECONDS = 300.0


class QueryError(ValueError):
    """The query is not valid or uses an unsupported construct."""


class Vector(dict):
    """Instant vector: labels -> value."""


class Matrix(dict):
    """Range vector: labels -> [(timestamp, value), ...]."""


_TOKEN_RE = re.compile(
    r"""
    (?P<ws>\s+)
  | (?P<number>(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?)
  | (?P<string>"(?:[^"\\]|\\.)*"|'(?:[^'\\]|\\.)*')
  | (?P<ident>[a-zA-Z_:][a-zA-Z0-9_:]*)
  | (?P<range>\[[^\]]*\])
  | (?P<op>=~|!~|!=|[-+*/(){},=])
    """,
    re.VERBOSE,
)


def _tokenize(text):
    tokens = []
    pos = 0
    while pos < len(text):
        match = _TOKEN_RE.match(text, pos)
        if match is None:
            raise QueryError(f"unexpected character {text[pos]!r} at position {pos}")
        kind = match.lastgroup
        if kind != "ws":
            tokens.append((kind, match.group(kind)))
        pos = match.end()
    return tokens


def _unquote(s):
    body = s[1:-1]
    return re.sub(r"\\(.)", lambda m: {"n": "\n", "t": "\t"}.get(m.group(1), m.group(1)), body)


# -- AST ----------------------------------------------------------------------


class Number:
    def __init__(self, value):
        self.value = value


class Matcher:
    def __init__(self, label, op, value):
        self.label = label
        self.op = op
        self.value = value
        self._regex = None
        if op in ("=~", "!~"):
            try:
                self._regex = re.compile(value)
            except re.error as e:
                raise QueryError(f"invalid regex {value!r} for label {label!r}: {e}") from e

    def matches(self, labels):
        actual = labels.get(self.label, "")
        if self.op == "=":
            return actual == self.value
        if self.op == "!=":
            return actual != self.value
        matched = self._regex.fullmatch(actual) is not None
        return matched if self.op == "=~" else not matched


class Selector:
    def __init__(self, name, matchers, range_seconds=None):
        self.name = name
        self.matchers = matchers
        self.range_seconds = range_seconds

    def matches(self, name, labels):
        if self.name and name != self.name:
            return False
        if not self.matchers:
            return True
        full = dict(labels)
        full["__name__"] = name
        return all(m.matches(full) for m in self.matchers)

    def key(self, name, labels):
        # the metric name is dropped from results unless the selector has none
        if self.name:
            return labels
        return labels | {("__name__", name)}


class Call:
    def __init__(self, func, arg):
        self.func = func
        self.arg = arg


class Aggregate:
    def __init__(self, op, arg, by=None):
        self.op = op
        self.arg = arg
        self.by = by


class BinaryOp:
    def __init__(self, op, left, right):
        self.op = op
        self.left = left
        self.right = right


Node = Union[Number, Selector, Call, Aggregate, BinaryOp]


# -- parser -------------------------------------------------------------------


class _Parser:
    def __init__(self, text):
        self.text = text
        self.tokens = _tokenize(text)
        self.pos = 0

    def peek(self, offset=0):
        idx = self.pos + offset
        return self.tokens[idx] if idx < len(self.tokens) else (None, None)

    def next(self):
        tok = self.peek()
        if tok[0] is None:
            raise QueryError(f"unexpected end of query {self.text!r}")
        self.pos += 1
        return tok

    def expect(self, value):
        kind, tok = self.next()
        if tok != value:
            raise QueryError(f"expected {value!r}, got {tok!r} in {self.text!r}")

    def parse(self):
        node = self.additive()
        if self.peek()[0] is not None:
            raise QueryError(f"unexpected {self.peek()[1]!r} in {self.text!r}")
        return node

    def additive(self):
        node = self.multiplicative()
        while self.peek() in (("op", "+"), ("op", "-")):
            op = self.next()[1]
            node = BinaryOp(op, node, self.multiplicative())
        return node

    def multiplicative(self):
        node = self.unary()
        while self.peek() in (("op", "*"), ("op", "/")):
            op = self.next()[1]
            node = BinaryOp(op, node, self.unary())
        return node

    def unary(self):
        if self.peek() == ("op", "-"):
            self.next()
            return BinaryOp("*", Number(-1.0), self.unary())
        if self.peek() == ("op", "+"):
            self.next()
            return self.unary()
        return self.primary()

    def primary(self):
        kind, tok = self.peek()
        if kind == "number":
            self.next()
            return Number(float(tok))
        if tok == "(":
            self.next()
            node = self.additive()
            self.expect(")")
            return node
        if kind == "ident" and tok in FUNCTIONS and self.peek(1) == ("op", "("):
            return self.call()
        if kind == "ident" and tok in AGGREGATIONS and self.peek(1) in (("op", "("), ("ident", "by")):
            return self.aggregate()
        if kind == "ident" or tok == "{":
            return self.selector()
        raise QueryError(f"unexpected {tok!r} in {self.text!r}")

    def call(self):
        func = self.next()[1]
        self.expect("(")
        arg = self.additive()
        self.expect(")")
        if not isinstance(arg, Selector) or arg.range_seconds is None:
            raise QueryError(f"{func}() expects a range selector such as metric[2s] in {self.text!r}")
        return Call(func, arg)

    def aggregate(self):
        op = self.next()[1]
        by = None
        if self.peek() == ("ident", "by"):
            by = self.label_list()
        self.expect("(")
        arg = self.additive()
        self.expect(")")
        if by is None and self.peek() == ("ident", "by"):
            by = self.label_list()
        return Aggregate(op, arg, by)

    def label_list(self):
        self.next()  # by
        self.expect("(")
        labels = []
        while self.peek() != ("op", ")"):
            kind, tok = self.next()
            if kind != "ident":
                raise QueryError(f"expected label name, got {tok!r} in {self.text!r}")
            labels.append(tok)
            if self.peek() == ("op", ","):
                self.next()
        self.expect(")")
        return frozenset(labels)

    def selector(self):
        name = ""
        if self.peek()[0] == "ident":
            name = self.next()[1]
        matchers = []
        if self.peek() == ("op", "{"):
            self.next()
            while self.peek() != ("op", "}"):
                kind, label = self.next()
                if kind != "ident":
                    raise QueryError(f"expected label name, got {label!r} in {self.text!r}")
                _, op = self.next()
                if op not in ("=", "!=", "=~", "!~"):
                    raise QueryError(f"unsupported label matcher {op!r} in {self.text!r}")
                kind, value = self.next()
                if kind != "string":
                    raise QueryError(f"expected quoted label value, got {value!r} in {self.text!r}")
                matchers.append(Matcher(label, op, _unquote(value)))
                if self.peek() == ("op", ","):
                    self.next()
            self.expect("}")
        if not name and not matchers:
            raise QueryError(f"empty selector in {self.text!r}")

        range_seconds = None
        if self.peek()[0] == "range":
            raw = self.next()[1][1:-1].strip()
            try:
                range_seconds = parse_duration(raw)
            except ValueError as e:
                raise QueryError(f"invalid range [{raw}] in {self.text!r}") from e
            if range_seconds <= 0:
                raise QueryError(f"range must be positive in {self.text!r}")
        return Selector(name, matchers, range_seconds)


def parse_query(text: str) -> Node:
    """Parse a query, raising QueryError when it is not supported."""
    if not text or not text.strip():
        raise QueryError("empty query")
    return _Parser(text).parse()


# -- evaluation ---------------------------------------------------------------


def _apply(op, a, b):
    if op == "+":
        return a + b
    if op == "-":
        return a - b
    if op == "*":
        return a * b
    if b == 0:
        if a == 0 or math.isnan(a):
            return math.nan
        return math.copysign(math.inf, a)
    return a / b


def _increase(points):
    total = 0.0
    prev = points[0][1]
    for _, value in points[1:]:
        # a counter that went down was reset
        total += value - prev if value >= prev else value
        prev = value
    return total


class SeriesStore:
    """
    Scraped samples of one collector, kept for a bounded time window.

    Each scrape is stored as (timestamp, {(metric name, labels): value}).
    """

    def __init__(self, retention_seconds: float = DEFAULT_RETENTION_SECONDS):
        self.retention_seconds = retention_seconds
        self._scrapes = deque()
        self._lock = threading.Lock()

    def add(self, timestamp: float, series: Dict[SeriesKey, float]):
        with self._lock:
            self._scrapes.append((timestamp, series))
            while self._scrapes and self._scrapes[0][0] < timestamp - self.retention_seconds:
                self._scrapes.popleft()

    def __len__(self):
        with self._lock:
            return len(self._scrapes)

    def _snapshot(self):
        with self._lock:
            return list(self._scrapes)

    def evaluate(self, node: Node, at: float):
        return self._eval(node, at, self._snapshot())

    def evaluate_value(self, node: Node, at: float) -> Optional[float]:
        """
        Evaluate a query to a single number.

        Several resulting series are summed; None is returned when the query
        produced no series.
        """
        result = self.evaluate(node, at)
        if isinstance(result, float):
            return result
        if isinstance(result, Matrix):
            raise QueryError("range vector cannot be used as a query result")
        if not result:
            return None
        return float(sum(result.values()))

    def _eval(self, node, at, scrapes):
        if isinstance(node, Number):
            return node.value
        if isinstance(node, Selector):
            if node.range_seconds is not None:
                return self._select_range(node, at, scrapes)
            return self._select_instant(node, at, scrapes)
        if isinstance(node, Call):
            return self._call(node, self._eval(node.arg, at, scrapes))
        if isinstance(node, Aggregate):
            return self._aggregate(node, self._eval(node.arg, at, scrapes))
        if isinstance(node, BinaryOp):
            return self._binary(node.op, self._eval(node.left, at, scrapes), self._eval(node.right, at, scrapes))
        raise QueryError(f"unsupported node {type(node).__name__}")

    def _select_instant(self, sel, at, scrapes):
        vector = Vector()
        latest = None
        for ts, series in scrapes:
            if ts <= at:
                latest = series
        if latest is None:
            return vector
        for (name, labels), value in latest.items():
            if sel.matches(name, labels):
                vector[sel.key(name, labels)] = value
        return vector

    def _select_range(self, sel, at, scrapes):
        matrix = Matrix()
        start = at - sel.range_seconds
        for ts, series in scrapes:
            if ts <= start or ts > at:
                continue
            for (name, labels), value in series.items():
                if sel.matches(name, labels):
                    matrix.setdefault(sel.key(name, labels), []).append((ts, value))
        return matrix

    def _call(self, call, matrix):
        out = Vector()
        for labels, points in matrix.items():
            if len(points) < 2:
                continue
            if call.func == "increase":
                out[labels] = _increase(points)
                continue
            if call.func == "irate":
                points = points[-2:]
            span = points[-1][0] - points[0][0]
            if span <= 0:
                continue
            out[labels] = _increase(points) / span
        return out

    def _aggregate(self, agg, vector):
        if not isinstance(vector, Vector):
            raise QueryError(f"{agg.op}() expects an instant vector")
        groups: Dict[Labels, List[float]] = {}
        for labels, value in vector.items():
            key = frozenset((k, v) for k, v in labels if agg.by and k in agg.by)
            groups.setdefault(key, []).append(value)
        out = Vector()
        for key, values in groups.items():
            if agg.op == "sum":
                out[key] = float(sum(values))
            elif agg.op == "avg":
                out[key] = float(sum(values)) / len(values)
            elif agg.op == "min":
                out[key] = min(values)
            else:
                out[key] = max(values)
        return out

    def _binary(self, op, left, right):
        if isinstance(left, Matrix) or isinstance(right, Matrix):
            raise QueryError("range vectors cannot be used in arithmetic")
        if isinstance(left, float) and isinstance(right, float):
            return _apply(op, left, right)
        if isinstance(left, float):
            return Vector((labels, _apply(op, left, v)) for labels, v in right.items())
        if isinstance(right, float):
            return Vector((labels, _apply(op, v, right)) for labels, v in left.items())
        return Vector((labels, _apply(op, v, right[labels])) for labels, v in left.items() if labels in right)
