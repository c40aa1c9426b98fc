"""
Configuration document.

A configuration is one YAML file, or every ``*.yaml``/``*.yml`` file of a
directory read in name order as a single document. Blocks are nested
mappings keyed by their labels, the same shape HCL uses for its JSON
syntax:

    query_runner:
      redshift_data:          # label 1: type
        default:              # label 2: name
          cluster_identifier: warehouse
          database: dev
          db_user: admin

    query:
      daily_users:            # label 1: name
        runner: ${query_runner.redshift_data.default}
        sql: SELECT count(*) FROM users WHERE day = '${var.day}'

    notify: ...               # anything else is passed through

The document is composed (not constructed) with PyYAML so every key and
value keeps its source position, and duplicate keys survive long enough
to be reported.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

import yaml
from yaml.constructor import SafeConstructor
from yaml.nodes import MappingNode, Node, ScalarNode, SequenceNode

from queryrunner.diagnostics import Diagnostic, Diagnostics, SourceRange
from queryrunner.expressions import (
    Expression,
    ListExpression,
    LiteralExpression,
    MappingExpression,
    parse_template,
)

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping, Sequence

logger = logging.getLogger(__name__)

YAML_SUFFIXES = (".yaml", ".yml")
_STR_TAG = "tag:yaml.org,2002:str"
_NULL_TAG = "tag:yaml.org,2002:null"


def _range(node: Node, filename: str) -> SourceRange:
    return SourceRange(
        filename,
        node.start_mark.line + 1,
        node.start_mark.column + 1,
        node.end_mark.line + 1,
        node.end_mark.column + 1,
    )


def _is_null(node: Node) -> bool:
    return isinstance(node, ScalarNode) and node.tag == _NULL_TAG


def expression_from_node(node: Node, filename: str) -> tuple[Expression, Diagnostics]:
    """Convert a composed YAML node into an (unevaluated) expression."""
    subject = _range(node, filename)
    diags = Diagnostics()

    if isinstance(node, ScalarNode):
        if node.tag == _STR_TAG:
            return parse_template(node.value, subject)
        return LiteralExpression(SafeConstructor().construct_object(node, deep=True), subject), diags

    if isinstance(node, SequenceNode):
        items = []
        for item in node.value:
            expr, item_diags = expression_from_node(item, filename)
            diags.extend(item_diags)
            items.append(expr)
        return ListExpression(items, subject), diags

    items_map: dict[str, Expression] = {}
    for key_node, value_node in node.value:
        if not isinstance(key_node, ScalarNode):
            diags.append(
                Diagnostic.error("Invalid key", "Mapping keys must be strings.", _range(key_node, filename))
            )
            continue
        expr, item_diags = expression_from_node(value_node, filename)
        diags.extend(item_diags)
        items_map[str(key_node.value)] = expr
    return MappingExpression(items_map, subject), diags


# =============================================================================
# Attributes and bodies
# =============================================================================


@dataclass
class Attribute:
    """``name: expression`` inside a body."""

    name: str
    expr: Expression
    name_range: SourceRange

    @property
    def range(self) -> SourceRange:
        return SourceRange(
            self.name_range.filename,
            self.name_range.start_line,
            self.name_range.start_column,
            self.expr.range.end_line,
            self.expr.range.end_column,
        )


@dataclass(frozen=True)
class AttributeSchema:
    name: str
    required: bool = False


class Body:
    """
    The attributes of a block (or the remainder of one).

    Args:
        attributes: Attributes in source order (duplicates allowed here)
        missing_item_range: Where to point diagnostics about absent attributes
    """

    def __init__(self, attributes: Sequence[Attribute], missing_item_range: SourceRange):
        self._attributes = list(attributes)
        self.missing_item_range = missing_item_range

    def __iter__(self):
        return iter(self._attributes)

    def __len__(self) -> int:
        return len(self._attributes)

    def __repr__(self) -> str:
        return f"<Body attributes={[a.name for a in self._attributes]}>"

    def just_attributes(self) -> tuple[dict[str, Attribute], Diagnostics]:
        """All attributes by name, reporting duplicates."""
        attrs: dict[str, Attribute] = {}
        diags = Diagnostics()
        for attr in self._attributes:
            if attr.name in attrs:
                diags.append(
                    Diagnostic.error(
                        "Duplicate argument",
                        f'The argument "{attr.name}" was already set at '
                        f"{attrs[attr.name].name_range}. Each argument may be set only once.",
                        attr.name_range,
                    )
                )
                continue
            attrs[attr.name] = attr
        return attrs, diags

    def partial_content(
        self, schema: Iterable[AttributeSchema]
    ) -> tuple[dict[str, Attribute], Body, Diagnostics]:
        """
        Extract the attributes named in ``schema``.

        Returns:
            (content, remain, diagnostics); remain holds everything else
        """
        attrs, diags = self.just_attributes()
        content: dict[str, Attribute] = {}
        names = set()
        for item in schema:
            names.add(item.name)
            if item.name in attrs:
                content[item.name] = attrs[item.name]
            elif item.required:
                diags.append(
                    Diagnostic.error(
                        "Missing required argument",
                        f'The argument "{item.name}" is required, but no definition was found.',
                        self.missing_item_range,
                    )
                )
        remain = Body([a for a in attrs.values() if a.name not in names], self.missing_item_range)
        return content, remain, diags

    def content(self, schema: Iterable[AttributeSchema]) -> tuple[dict[str, Attribute], Diagnostics]:
        """Like partial_content, but any attribute outside ``schema`` is an error."""
        content, remain, diags = self.partial_content(schema)
        for attr in remain:
            diags.append(
                Diagnostic.error(
                    "Unsupported argument",
                    f'An argument named "{attr.name}" is not expected here.',
                    attr.name_range,
                )
            )
        return content, diags


@dataclass
class Block:
    """A labeled block such as ``query_runner "redshift_data" "default"``."""

    type: str
    labels: tuple[str, ...]
    body: Body
    def_range: SourceRange

    def __str__(self) -> str:
        labels = " ".join(f'"{label}"' for label in self.labels)
        return f"{self.type} {labels}"


# =============================================================================
# Document
# =============================================================================


@dataclass
class _Item:
    key: ScalarNode
    value: Node
    filename: str


@dataclass
class Document:
    """
    A composed configuration, not yet split into blocks.

    Attributes:
        files: Source text by filename (for diagnostic rendering)
        base_dir: Directory relative paths in expressions resolve against
    """

    files: dict[str, str] = field(default_factory=dict)
    base_dir: Path = field(default_factory=lambda: Path("."))
    _items: list[_Item] = field(default_factory=list)

    def partial_content(
        self, block_schema: Mapping[str, Sequence[str]]
    ) -> tuple[list[Block], Body, Diagnostics]:
        """
        Split the document into blocks and remaining top-level attributes.

        Args:
            block_schema: Block type -> label names

        Returns:
            (blocks in source order, remain body, diagnostics)
        """
        blocks: list[Block] = []
        remain: list[Attribute] = []
        diags = Diagnostics()
        for item in self._items:
            key = str(item.key.value)
            if key in block_schema:
                found, block_diags = self._blocks(
                    key, tuple(block_schema[key]), item.value, item.key, item.filename, ()
                )
                blocks.extend(found)
                diags.extend(block_diags)
                continue
            expr, expr_diags = expression_from_node(item.value, item.filename)
            diags.extend(expr_diags)
            remain.append(Attribute(key, expr, _range(item.key, item.filename)))

        first = next(iter(self.files), "<config>")
        return blocks, Body(remain, SourceRange.point(first)), diags

    def _blocks(
        self,
        block_type: str,
        label_names: tuple[str, ...],
        node: Node,
        header: ScalarNode,
        filename: str,
        labels: tuple[str, ...],
    ) -> tuple[list[Block], Diagnostics]:
        depth = len(labels)
        if depth == len(label_names):
            body, diags = self._body(node, _range(header, filename), filename)
            return [Block(block_type, labels, body, _range(header, filename))], diags

        if _is_null(node):
            return [], Diagnostics()
        if not isinstance(node, MappingNode):
            return [], Diagnostics(
                [
                    Diagnostic.error(
                        f"Invalid {block_type} block",
                        f'Expected a mapping of {label_names[depth]} labels for "{block_type}".',
                        _range(node, filename),
                    )
                ]
            )

        blocks: list[Block] = []
        diags = Diagnostics()
        for key_node, value_node in node.value:
            if not isinstance(key_node, ScalarNode) or not str(key_node.value):
                diags.append(
                    Diagnostic.error(
                        f"Invalid {block_type} block",
                        f"The {label_names[depth]} label must be a non-empty string.",
                        _range(key_node, filename),
                    )
                )
                continue
            found, found_diags = self._blocks(
                block_type,
                label_names,
                value_node,
                key_node,
                filename,
                labels + (str(key_node.value),),
            )
            blocks.extend(found)
            diags.extend(found_diags)
        return blocks, diags

    def _body(self, node: Node, def_range: SourceRange, filename: str) -> tuple[Body, Diagnostics]:
        if _is_null(node):
            return Body([], def_range), Diagnostics()
        if not isinstance(node, MappingNode):
            return Body([], def_range), Diagnostics(
                [
                    Diagnostic.error(
                        "Invalid block body",
                        "A block body must be a mapping of arguments.",
                        _range(node, filename),
                    )
                ]
            )
        attrs: list[Attribute] = []
        diags = Diagnostics()
        for key_node, value_node in node.value:
            if not isinstance(key_node, ScalarNode):
                diags.append(
                    Diagnostic.error(
                        "Invalid argument name",
                        "Argument names must be strings.",
                        _range(key_node, filename),
                    )
                )
                continue
            expr, expr_diags = expression_from_node(value_node, filename)
            diags.extend(expr_diags)
            attrs.append(Attribute(str(key_node.value), expr, _range(key_node, filename)))
        return Body(attrs, def_range), diags


# =============================================================================
# Loading
# =============================================================================


def parse_document(
    src: str, filename: str = "config.yaml", *, document: Document | None = None
) -> tuple[Document, Diagnostics]:
    """
    Compose YAML source into a Document (or append it to ``document``).

    Returns:
        (document, diagnostics); syntax errors become located diagnostics
    """
    doc = document if document is not None else Document()
    doc.files[filename] = src
    diags = Diagnostics()

    try:
        root = yaml.compose(src, Loader=yaml.SafeLoader)
    except yaml.MarkedYAMLError as e:
        mark = e.problem_mark or e.context_mark
        subject = (
            SourceRange.point(filename, mark.line + 1, mark.column + 1)
            if mark is not None
            else SourceRange.point(filename)
        )
        diags.append(Diagnostic.error("Invalid YAML syntax", str(e.problem or e), subject))
        return doc, diags
    except yaml.YAMLError as e:
        diags.append(Diagnostic.error("Invalid YAML syntax", str(e), SourceRange.point(filename)))
        return doc, diags

    if root is None or _is_null(root):
        return doc, diags
    if not isinstance(root, MappingNode):
        diags.append(
            Diagnostic.error(
                "Invalid configuration document",
                "The top level of a configuration file must be a mapping.",
                _range(root, filename),
            )
        )
        return doc, diags

    for key_node, value_node in root.value:
        if not isinstance(key_node, ScalarNode):
            diags.append(
                Diagnostic.error(
                    "Invalid configuration document",
                    "Top-level keys must be strings.",
                    _range(key_node, filename),
                )
            )
            continue
        doc._items.append(_Item(key_node, value_node, filename))
    return doc, diags


def load_document(path: str | Path) -> tuple[Document, Diagnostics]:
    """
    Load a configuration file, or every YAML file of a directory.

    Args:
        path: File or directory (``~`` is expanded)

    Returns:
        (document, diagnostics)
    """
    target = Path(path).expanduser()
    diags = Diagnostics()

    if target.is_dir():
        files = sorted(p for p in target.iterdir() if p.is_file() and p.suffix in YAML_SUFFIXES)
        base_dir = target
    elif target.is_file():
        files = [target]
        base_dir = target.parent
    else:
        diags.append(
            Diagnostic.error(
                "Configuration not found",
                f"{target} is neither a file nor a directory.",
            )
        )
        return Document(base_dir=target), diags

    document = Document(base_dir=base_dir)
    for file in files:
        logger.debug(f"[document] Loading {file}")
        _, file_diags = parse_document(file.read_text(encoding="utf-8"), str(file), document=document)
        diags.extend(file_diags)

    if not files:
        diags.append(
            Diagnostic.warning(
                "Empty configuration",
                f"No {'/'.join(YAML_SUFFIXES)} files found in {target}.",
            )
        )
    logger.info(f"[document] Loaded {len(files)} file(s) from {target}")
    return document, diags


__all__ = [
    "Attribute",
    "AttributeSchema",
    "Block",
    "Body",
    "Document",
    "expression_from_node",
    "load_document",
    "parse_document",
]
