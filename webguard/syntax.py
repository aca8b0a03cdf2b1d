"""
Syntax-tree query helpers shared by every rule.

Rules receive a tree-sitter Tree for JavaScript/TypeScript files and need the
same few primitives: find nodes of a kind, walk up to the nearest enclosing
construct (function, conditional, JSX attribute), and turn a node into a
location, its source text and a ± N-line context window. The context window
contract is the one used by webguard.patterns, so tree-based and text-based
findings look identical downstream.

Node kinds are tree-sitter grammar names. NodeKind lists the closed set the
rules care about; kind-specific readers (callee name, assignment target) are
dispatch tables keyed by NodeKind, so adding a kind means adding one entry.

Typical usage:
    from webguard.syntax import NodeKind, find_nodes_by_kind, call_name

    for call in find_nodes_by_kind(tree.root_node, NodeKind.CALL_EXPRESSION):
        if call_name(call, source) == "eval":
            ...
"""

from __future__ import annotations

from enum import Enum
from typing import Callable, Iterator, Optional

from tree_sitter import Node as TSNode

from webguard.patterns import DEFAULT_CONTEXT_LINES, PatternMatch, TreePattern, context_window


class NodeKind(str, Enum):
    """Tree-sitter node kinds (JavaScript/TypeScript/TSX grammars) used by the rules."""

    PROGRAM = "program"
    CALL_EXPRESSION = "call_expression"
    NEW_EXPRESSION = "new_expression"
    MEMBER_EXPRESSION = "member_expression"
    SUBSCRIPT_EXPRESSION = "subscript_expression"
    IDENTIFIER = "identifier"
    PROPERTY_IDENTIFIER = "property_identifier"
    SHORTHAND_PROPERTY_IDENTIFIER = "shorthand_property_identifier"
    STRING = "string"
    STRING_FRAGMENT = "string_fragment"
    TEMPLATE_STRING = "template_string"
    TEMPLATE_SUBSTITUTION = "template_substitution"
    BINARY_EXPRESSION = "binary_expression"
    PARENTHESIZED_EXPRESSION = "parenthesized_expression"
    ARGUMENTS = "arguments"
    VARIABLE_DECLARATOR = "variable_declarator"
    ASSIGNMENT_EXPRESSION = "assignment_expression"
    PAIR = "pair"
    OBJECT = "object"
    JSX_ATTRIBUTE = "jsx_attribute"
    JSX_EXPRESSION = "jsx_expression"
    JSX_ELEMENT = "jsx_element"
    JSX_SELF_CLOSING_ELEMENT = "jsx_self_closing_element"
    FUNCTION_DECLARATION = "function_declaration"
    GENERATOR_FUNCTION_DECLARATION = "generator_function_declaration"
    FUNCTION_EXPRESSION = "function_expression"
    FUNCTION = "function"
    ARROW_FUNCTION = "arrow_function"
    METHOD_DEFINITION = "method_definition"
    IF_STATEMENT = "if_statement"
    TERNARY_EXPRESSION = "ternary_expression"
    TRUE = "true"
    DEBUGGER_STATEMENT = "debugger_statement"
    COMMENT = "comment"
    IMPORT_STATEMENT = "import_statement"
    EXPORT_STATEMENT = "export_statement"
    AS_EXPRESSION = "as_expression"
    SATISFIES_EXPRESSION = "satisfies_expression"


FUNCTION_KINDS = frozenset(
    {
        NodeKind.FUNCTION_DECLARATION,
        NodeKind.GENERATOR_FUNCTION_DECLARATION,
        NodeKind.FUNCTION_EXPRESSION,
        NodeKind.FUNCTION,
        NodeKind.ARROW_FUNCTION,
        NodeKind.METHOD_DEFINITION,
    }
)

STRING_KINDS = frozenset({NodeKind.STRING, NodeKind.TEMPLATE_STRING})


def _kind_value(kind: NodeKind | str) -> str:
    return kind.value if isinstance(kind, NodeKind) else kind


def node_kind(node: TSNode) -> Optional[NodeKind]:
    """Return the NodeKind for a node, or None for kinds the rules never inspect."""
    try:
        return NodeKind(node.type)
    except ValueError:
        return None


# --- traversal -------------------------------------------------------------


def iter_nodes(root: TSNode) -> Iterator[TSNode]:
    """
    Yield every node under root (root included) in pre-order.

    Uses an explicit stack so deeply nested trees (long call chains, minified
    bundles) never hit the recursion limit; each node is visited exactly once.
    """
    stack = [root]
    while stack:
        node = stack.pop()
        yield node
        children = node.children
        for i in range(len(children) - 1, -1, -1):
            stack.append(children[i])


def find_nodes_by_kind(
    root: TSNode,
    kind: NodeKind | str,
    predicate: Optional[Callable[[TSNode], bool]] = None,
) -> list[TSNode]:
    """Collect every node of `kind` under root that satisfies the optional predicate."""
    wanted = _kind_value(kind)
    return [n for n in iter_nodes(root) if n.type == wanted and (predicate is None or predicate(n))]


def find_nearest_parent(node: TSNode, predicate: Callable[[TSNode], bool]) -> Optional[TSNode]:
    """Walk ancestor links (excluding node itself) until predicate matches; None at the root."""
    current = node.parent
    while current is not None:
        if predicate(current):
            return current
        current = current.parent
    return None


def is_inside_kind(node: TSNode, kinds: frozenset[NodeKind] | set[NodeKind]) -> bool:
    values = {_kind_value(k) for k in kinds}
    return find_nearest_parent(node, lambda n: n.type in values) is not None


# --- location / text -------------------------------------------------------


def get_node_location(node: TSNode) -> tuple[int, int]:
    """
    Return 1-based (line, column) of the node's start.

    Tree-sitter points are 0-based (row, column) with the column in UTF-8
    bytes; text matches use the same unit.
    """
    row, col = node.start_point
    return row + 1, col + 1


def get_node_end_location(node: TSNode) -> tuple[int, int]:
    row, col = node.end_point
    return row + 1, col + 1


def get_node_text(node: TSNode, source: bytes) -> str:
    """Exact source text of the node; bad UTF-8 is replaced rather than raising."""
    return source[node.start_byte : node.end_byte].decode("utf-8", errors="replace")


def get_node_context(node: TSNode, source: bytes | str, lines: int = DEFAULT_CONTEXT_LINES) -> str:
    """± `lines` lines of source around the node's first line."""
    text = source.decode("utf-8", errors="replace") if isinstance(source, bytes) else source
    line, _ = get_node_location(node)
    return context_window(text, line, lines)


def node_to_match(node: TSNode, source: bytes, text: str | None = None, lines: int = DEFAULT_CONTEXT_LINES) -> PatternMatch:
    """Describe a node as a PatternMatch (byte offsets, 1-based position, context)."""
    line, col = get_node_location(node)
    end_line, end_col = get_node_end_location(node)
    return PatternMatch(
        text=get_node_text(node, source),
        start=node.start_byte,
        end=node.end_byte,
        line=line,
        column=col,
        context=get_node_context(node, text if text is not None else source, lines),
        end_line=end_line,
        end_column=end_col,
    )


# --- kind-specific readers -------------------------------------------------


def _name_of_identifier(node: TSNode, source: bytes) -> Optional[str]:
    return get_node_text(node, source)


def _name_of_member(node: TSNode, source: bytes) -> Optional[str]:
    prop = node.child_by_field_name("property")
    return get_node_text(prop, source) if prop is not None else None


def _name_of_parenthesized(node: TSNode, source: bytes) -> Optional[str]:
    inner = node.named_children[0] if node.named_children else None
    return expression_name(inner, source) if inner is not None else None


_EXPRESSION_NAME_READERS: dict[NodeKind, Callable[[TSNode, bytes], Optional[str]]] = {
    NodeKind.IDENTIFIER: _name_of_identifier,
    NodeKind.PROPERTY_IDENTIFIER: _name_of_identifier,
    NodeKind.MEMBER_EXPRESSION: _name_of_member,
    NodeKind.PARENTHESIZED_EXPRESSION: _name_of_parenthesized,
}


def expression_name(node: TSNode, source: bytes) -> Optional[str]:
    """Bare name of an identifier-like expression (`foo`, `a.b.foo` -> `foo`)."""
    kind = node_kind(node)
    reader = _EXPRESSION_NAME_READERS.get(kind) if kind is not None else None
    return reader(node, source) if reader is not None else None


def callee(node: TSNode) -> Optional[TSNode]:
    """The function expression of a call, or the constructor of a `new`."""
    if node.type == NodeKind.CALL_EXPRESSION.value:
        return node.child_by_field_name("function")
    if node.type == NodeKind.NEW_EXPRESSION.value:
        return node.child_by_field_name("constructor")
    return None


def call_name(node: TSNode, source: bytes) -> Optional[str]:
    """
    Called function name for call/new expressions.

    `eval(x)` -> "eval", `window.eval(x)` -> "eval", `new Function(s)` -> "Function".
    """
    fn = callee(node)
    return expression_name(fn, source) if fn is not None else None


def callee_is_identifier(node: TSNode) -> bool:
    fn = callee(node)
    return fn is not None and fn.type == NodeKind.IDENTIFIER.value


def call_arguments(node: TSNode) -> list[TSNode]:
    """Named argument nodes of a call/new expression (punctuation filtered out)."""
    args = node.child_by_field_name("arguments")
    if args is None:
        return []
    return [c for c in args.named_children if c.type != NodeKind.COMMENT.value]


def string_value(node: TSNode, source: bytes) -> Optional[str]:
    """
    Static value of a string or substitution-free template literal.

    Returns None for template literals containing `${...}` and for non-strings.
    """
    if node.type == NodeKind.STRING.value:
        raw = get_node_text(node, source)
        return raw[1:-1] if len(raw) >= 2 else ""
    if node.type == NodeKind.TEMPLATE_STRING.value:
        if any(c.type == NodeKind.TEMPLATE_SUBSTITUTION.value for c in node.children):
            return None
        raw = get_node_text(node, source)
        return raw[1:-1] if len(raw) >= 2 else ""
    return None


def has_substitution(node: TSNode) -> bool:
    return node.type == NodeKind.TEMPLATE_STRING.value and any(
        c.type == NodeKind.TEMPLATE_SUBSTITUTION.value for c in node.children
    )


def _declarator_target(node: TSNode, source: bytes) -> Optional[str]:
    name = node.child_by_field_name("name")
    if name is not None and name.type == NodeKind.IDENTIFIER.value:
        return get_node_text(name, source)
    return None


def _pair_target(node: TSNode, source: bytes) -> Optional[str]:
    key = node.child_by_field_name("key")
    if key is None:
        return None
    if key.type in STRING_KINDS:
        return string_value(key, source)
    return get_node_text(key, source)


def _assignment_target(node: TSNode, source: bytes) -> Optional[str]:
    left = node.child_by_field_name("left")
    return expression_name(left, source) if left is not None else None


_ASSIGNMENT_READERS: dict[NodeKind, tuple[str, Callable[[TSNode, bytes], Optional[str]]]] = {
    NodeKind.VARIABLE_DECLARATOR: ("declaration", _declarator_target),
    NodeKind.PAIR: ("property", _pair_target),
    NodeKind.ASSIGNMENT_EXPRESSION: ("assignment", _assignment_target),
}


def assignment_target(node: TSNode, source: bytes) -> Optional[tuple[str, str]]:
    """
    Name a value is bound to, as (name, kind).

    kind is "declaration" (`const x = v`), "property" (`{ x: v }`) or
    "assignment" (`x = v`, `obj.x = v`). Only the value's direct parent is
    consulted so nested expressions do not inherit an outer name.
    """
    parent = node.parent
    if parent is None:
        return None
    kind = node_kind(parent)
    entry = _ASSIGNMENT_READERS.get(kind) if kind is not None else None
    if entry is None:
        return None
    label, reader = entry
    name = reader(parent, source)
    return (name, label) if name else None


def _function_name(node: TSNode, source: bytes) -> Optional[str]:
    name = node.child_by_field_name("name")
    if name is not None:
        return get_node_text(name, source)
    # anonymous function bound to a name: const handler = () => {...}
    target = assignment_target(node, source)
    return target[0] if target else None


def enclosing_function_name(node: TSNode, source: bytes) -> Optional[str]:
    """Name of the nearest named enclosing function/method, or None at module scope."""
    kinds = {k.value for k in FUNCTION_KINDS}
    current = find_nearest_parent(node, lambda n: n.type in kinds)
    while current is not None:
        name = _function_name(current, source)
        if name:
            return name
        current = find_nearest_parent(current, lambda n: n.type in kinds)
    return None


# --- tree patterns ---------------------------------------------------------


def matches_tree_pattern(node: TSNode, source: bytes, pattern: TreePattern) -> bool:
    if node.type != pattern.node_kind:
        return False
    cond = pattern.conditions
    if cond is None:
        return True
    if cond.parent_kind is not None and (node.parent is None or node.parent.type != cond.parent_kind):
        return False
    if cond.has_child_kind is not None and not any(c.type == cond.has_child_kind for c in node.children):
        return False
    for field_name, expected in cond.field_text:
        child = node.child_by_field_name(field_name)
        if child is None or get_node_text(child, source) != expected:
            return False
    if cond.predicate is not None and not cond.predicate(node, source):
        return False
    return True


def find_tree_matches(
    root: TSNode,
    source: bytes,
    pattern: TreePattern,
    lines: int = DEFAULT_CONTEXT_LINES,
) -> list[PatternMatch]:
    """Evaluate a TreePattern over a tree, returning matches with the shared context contract."""
    text = source.decode("utf-8", errors="replace")
    return [
        node_to_match(node, source, text, lines)
        for node in find_nodes_by_kind(root, pattern.node_kind)
        if matches_tree_pattern(node, source, pattern)
    ]
