"""
Configuration expressions.

Attribute values in a configuration document are expressions evaluated
against an EvaluationScope:

- ``"${var.start}"``: a single interpolation, evaluates to the native value
- ``"SELECT * FROM t WHERE d = '${var.day}'"``: a template, always a string
- ``"$${literal}"``: escaped, the text ``${literal}``
- anything else (numbers, plain strings, lists, mappings): a literal whose
  nested strings may themselves contain interpolations

Interpolations use Python expression syntax and are evaluated by
simpleeval. The syntax tree is kept so callers can inspect which
variables an expression refers to without evaluating it.

Evaluation never raises: failures come back as diagnostics together with
the UNKNOWN sentinel.
"""

from __future__ import annotations

import ast
from abc import ABC, abstractmethod
from dataclasses import dataclass
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from simpleeval import (
    AttributeDoesNotExist,
    EvalWithCompoundTypes,
    FunctionNotDefined,
    InvalidExpression,
    NameNotDefined,
)

from .diagnostics import Diagnostic, Diagnostics, SourceRange

if TYPE_CHECKING:
    from .scope import EvaluationScope


class _Unknown:
    """Value of an expression that could not be evaluated."""

    _instance: _Unknown | None = None

    def __new__(cls) -> _Unknown:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNKNOWN"

    def __bool__(self) -> bool:
        return False


UNKNOWN = _Unknown()


def is_known(value: Any) -> bool:
    return value is not UNKNOWN


# =============================================================================
# Traversals
# =============================================================================


@dataclass(frozen=True)
class TraverseAttr:
    """``.name`` step of a traversal."""

    name: str


@dataclass(frozen=True)
class TraverseIndex:
    """``[key]`` step of a traversal; key is None when computed."""

    key: Any = None
    computed: bool = False


@dataclass(frozen=True)
class Traversal:
    """
    A variable reference found in an expression.

    ``query_runner.dummy.default`` is
    ``Traversal("query_runner", (TraverseAttr("dummy"), TraverseAttr("default")))``.
    """

    root_name: str
    steps: tuple[TraverseAttr | TraverseIndex, ...]
    range: SourceRange

    def __len__(self) -> int:
        return 1 + len(self.steps)

    def __str__(self) -> str:
        text = self.root_name
        for step in self.steps:
            if isinstance(step, TraverseAttr):
                text += f".{step.name}"
            elif step.computed:
                text += "[...]"
            else:
                text += f"[{step.key!r}]"
        return text


class _TraversalCollector(ast.NodeVisitor):
    def __init__(self, subject: SourceRange):
        self.subject = subject
        self.found: list[Traversal] = []

    def visit_Name(self, node: ast.Name) -> None:
        if isinstance(node.ctx, ast.Load):
            self.found.append(Traversal(node.id, (), self.subject))

    def visit_Attribute(self, node: ast.Attribute) -> None:
        self._collect(node)

    def visit_Subscript(self, node: ast.Subscript) -> None:
        self._collect(node)

    def visit_Call(self, node: ast.Call) -> None:
        # Function names live in the function table, not among variables
        if not isinstance(node.func, ast.Name):
            self.visit(node.func)
        for arg in node.args:
            self.visit(arg)
        for keyword in node.keywords:
            self.visit(keyword.value)

    def _collect(self, node: ast.expr) -> None:
        steps: list[TraverseAttr | TraverseIndex] = []
        current: ast.expr = node
        while isinstance(current, (ast.Attribute, ast.Subscript)):
            if isinstance(current, ast.Attribute):
                steps.append(TraverseAttr(current.attr))
            elif isinstance(current.slice, ast.Constant):
                steps.append(TraverseIndex(current.slice.value))
            else:
                steps.append(TraverseIndex(computed=True))
                self.visit(current.slice)
            current = current.value
        if isinstance(current, ast.Name):
            self.found.append(Traversal(current.id, tuple(reversed(steps)), self.subject))
        else:
            self.visit(current)


# =============================================================================
# Expressions
# =============================================================================


class Expression(ABC):
    """An attribute value, evaluated lazily against a scope."""

    range: SourceRange

    @abstractmethod
    def value(self, scope: EvaluationScope | None = None) -> tuple[Any, Diagnostics]:
        """
        Evaluate the expression.

        Returns:
            (value, diagnostics); value is UNKNOWN when evaluation failed
        """
        ...

    @abstractmethod
    def variables(self) -> list[Traversal]:
        """Variable references in source order."""
        ...


class LiteralExpression(Expression):
    """A constant value."""

    def __init__(self, value: Any, range: SourceRange):
        self._value = value
        self.range = range

    def value(self, scope: EvaluationScope | None = None) -> tuple[Any, Diagnostics]:
        return self._value, Diagnostics()

    def variables(self) -> list[Traversal]:
        return []

    def __repr__(self) -> str:
        return f"LiteralExpression({self._value!r})"


class _Evaluator(EvalWithCompoundTypes):
    """
    simpleeval with object semantics for mappings.

    ``var.items`` reads the ``"items"`` key of a mapping, never its bound
    method. A missing key is an unsupported attribute. Attribute access on
    anything else keeps simpleeval's rules.
    """

    def _eval_attribute(self, node: ast.Attribute) -> Any:
        subject = self._eval(node.value)
        if not isinstance(subject, Mapping):
            return super()._eval_attribute(node)
        try:
            return subject[node.attr]
        except KeyError:
            raise AttributeDoesNotExist(node.attr, self.expr) from None


class NativeExpression(Expression):
    """A single ``${...}`` interpolation in Python expression syntax."""

    def __init__(self, source: str, tree: ast.Expression, range: SourceRange):
        self.source = source
        self.tree = tree
        self.range = range

    @classmethod
    def parse(cls, source: str, range: SourceRange) -> tuple[NativeExpression | None, Diagnostics]:
        source = source.strip()
        if not source:
            return None, Diagnostics(
                [Diagnostic.error("Invalid expression", "Expected the start of an expression.", range)]
            )
        try:
            tree = ast.parse(source, mode="eval")
        except SyntaxError as e:
            return None, Diagnostics(
                [Diagnostic.error("Invalid expression", f"{e.msg} in `{source}`", range)]
            )
        return cls(source, tree, range), Diagnostics()

    def value(self, scope: EvaluationScope | None = None) -> tuple[Any, Diagnostics]:
        if scope is None:
            from .scope import EvaluationScope

            scope = EvaluationScope()
        evaluator = _Evaluator(names=scope.variables, functions=scope.functions)
        try:
            return evaluator.eval(self.source), Diagnostics()
        except NameNotDefined as e:
            diag = Diagnostic.error(
                "Unknown variable",
                f'There is no variable named "{getattr(e, "name", "?")}".',
                self.range,
            )
        except FunctionNotDefined as e:
            diag = Diagnostic.error(
                "Call to unknown function",
                f'There is no function named "{getattr(e, "func_name", "?")}".',
                self.range,
            )
        except AttributeDoesNotExist as e:
            diag = Diagnostic.error(
                "Unsupported attribute",
                f'This object does not have an attribute named "{getattr(e, "attr", "?")}".',
                self.range,
            )
        except InvalidExpression as e:
            diag = Diagnostic.error("Invalid expression", str(e), self.range)
        except Exception as e:
            # Helper functions raise ordinary exceptions (bad JSON, missing file, ...)
            diag = Diagnostic.error(
                "Error in expression evaluation",
                f"`{self.source}`: {type(e).__name__}: {e}",
                self.range,
            )
        return UNKNOWN, Diagnostics([diag])

    def variables(self) -> list[Traversal]:
        collector = _TraversalCollector(self.range)
        collector.visit(self.tree)
        return collector.found

    def __repr__(self) -> str:
        return f"NativeExpression({self.source!r})"


class TemplateExpression(Expression):
    """Literal text with embedded interpolations; evaluates to a string."""

    def __init__(self, parts: list[str | NativeExpression], range: SourceRange):
        self.parts = parts
        self.range = range

    def value(self, scope: EvaluationScope | None = None) -> tuple[Any, Diagnostics]:
        from .result import format_scalar

        diags = Diagnostics()
        chunks: list[str] = []
        known = True
        for part in self.parts:
            if isinstance(part, str):
                chunks.append(part)
                continue
            value, value_diags = part.value(scope)
            diags.extend(value_diags)
            if not is_known(value):
                known = False
                continue
            if value is None:
                diags.append(
                    Diagnostic.error(
                        "Invalid template interpolation value",
                        f"The expression `{part.source}` result is null. "
                        "Cannot include a null value in a string template.",
                        self.range,
                    )
                )
                known = False
                continue
            chunks.append(format_scalar(value))
        if not known:
            return UNKNOWN, diags
        return "".join(chunks), diags

    def variables(self) -> list[Traversal]:
        found: list[Traversal] = []
        for part in self.parts:
            if isinstance(part, NativeExpression):
                found.extend(part.variables())
        return found

    def __repr__(self) -> str:
        return f"TemplateExpression({self.parts!r})"


class ListExpression(Expression):
    def __init__(self, items: list[Expression], range: SourceRange):
        self.items = items
        self.range = range

    def value(self, scope: EvaluationScope | None = None) -> tuple[Any, Diagnostics]:
        diags = Diagnostics()
        values = []
        for item in self.items:
            value, item_diags = item.value(scope)
            diags.extend(item_diags)
            values.append(value)
        if not all(is_known(v) for v in values):
            return UNKNOWN, diags
        return values, diags

    def variables(self) -> list[Traversal]:
        return [t for item in self.items for t in item.variables()]


class MappingExpression(Expression):
    def __init__(self, items: dict[str, Expression], range: SourceRange):
        self.items = items
        self.range = range

    def value(self, scope: EvaluationScope | None = None) -> tuple[Any, Diagnostics]:
        diags = Diagnostics()
        values = {}
        for key, item in self.items.items():
            value, item_diags = item.value(scope)
            diags.extend(item_diags)
            values[key] = value
        if not all(is_known(v) for v in values.values()):
            return UNKNOWN, diags
        return values, diags

    def variables(self) -> list[Traversal]:
        return [t for item in self.items.values() for t in item.variables()]


# =============================================================================
# Template parsing
# =============================================================================

_OPENERS = {"(": ")", "[": "]", "{": "}"}


def _find_closing_brace(text: str, start: int) -> int:
    """Index of the ``}`` closing an interpolation whose body starts at ``start``, or -1."""
    stack: list[str] = []
    quote: str | None = None
    i = start
    while i < len(text):
        ch = text[i]
        if quote:
            if ch == "\\":
                i += 2
                continue
            if ch == quote:
                quote = None
        elif ch in ("'", '"'):
            quote = ch
        elif ch in _OPENERS:
            stack.append(_OPENERS[ch])
        elif ch in (")", "]", "}"):
            if not stack:
                return i if ch == "}" else -1
            if stack.pop() != ch:
                return -1
        i += 1
    return -1


def parse_template(text: str, range: SourceRange) -> tuple[Expression, Diagnostics]:
    """
    Parse a configuration string into an expression.

    Args:
        text: Raw string value
        range: Source range of the string, used for every diagnostic

    Returns:
        (expression, diagnostics); a LiteralExpression when the string has
        no interpolation, a NativeExpression when it is exactly one
        ``${...}``, otherwise a TemplateExpression.
    """
    diags = Diagnostics()
    parts: list[str | NativeExpression] = []
    literal = ""
    i = 0
    while i < len(text):
        if text.startswith("$${", i):
            literal += "${"
            i += 3
            continue
        if text.startswith("${", i):
            end = _find_closing_brace(text, i + 2)
            if end < 0:
                diags.append(
                    Diagnostic.error(
                        "Unterminated template string",
                        f"No closing brace found for the interpolation in `{text}`.",
                        range,
                    )
                )
                return LiteralExpression(text, range), diags
            native, parse_diags = NativeExpression.parse(text[i + 2 : end], range)
            diags.extend(parse_diags)
            if native is not None:
                if literal:
                    parts.append(literal)
                    literal = ""
                parts.append(native)
            i = end + 1
            continue
        literal += text[i]
        i += 1
    if literal:
        parts.append(literal)

    if diags.has_errors():
        return LiteralExpression(text, range), diags
    if not any(isinstance(p, NativeExpression) for p in parts):
        return LiteralExpression("".join(p for p in parts if isinstance(p, str)), range), diags
    if len(parts) == 1:
        return parts[0], diags
    return TemplateExpression(parts, range), diags


def parse_expression(source: str, filename: str = "<expression>") -> tuple[Expression | None, Diagnostics]:
    """Parse bare expression source (no ``${}``), e.g. a fallback default."""
    return NativeExpression.parse(source, SourceRange.point(filename))


__all__ = [
    "UNKNOWN",
    "Expression",
    "ListExpression",
    "LiteralExpression",
    "MappingExpression",
    "NativeExpression",
    "TemplateExpression",
    "Traversal",
    "TraverseAttr",
    "TraverseIndex",
    "is_known",
    "parse_expression",
    "parse_template",
]
