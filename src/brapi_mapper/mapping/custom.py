"""Custom value resolution with embedded JSONPath tokens.

A custom field rule holds a free-text expression in which JSONPath-like
tokens are replaced by values read from the record's plain-data form
(``Record.to_data()``).  The grammar is a small subset of JSONPath:

- ``$``            -- the record itself (only when it is the whole expression)
- ``.field``       -- child member
- ``.*`` / ``[*]`` -- every member or element
- ``..field``      -- recursive descent
- ``['a','b']``    -- member union
- ``[0,2]``        -- element union (negative indexes count from the end)
- ``[1:3]``        -- element slice (optional step)

Usage:
    from brapi_mapper.mapping.custom import CustomValueResolver

    resolver = CustomValueResolver()
    resolver.resolve("$.user_id[0].target_id", {"user_id": [{"target_id": 42}]})
    # '42'
    resolver.resolve('{"ids": $.data[*].value}', data, is_json=True)
    # {'ids': [...]}
"""

import json
import logging
import re
from typing import Any

logger = logging.getLogger(__name__)

TOKEN_PATTERN = re.compile(
    r"\$(?:\.\.(?:\w+|\*)?|\.(?:\w+|\*)|\[[^\[\]]*\])*"
)
_STEP_PATTERN = re.compile(r"\.\.(\w+|\*)?|\.(\w+|\*)|\[([^\[\]]*)\]")
_INT_PATTERN = re.compile(r"^-?\d+$")
_QUOTED_PATTERN = re.compile(r"""^\s*(?:'([^']*)'|"([^"]*)")\s*$""")

# Marker returned when a token resolves to nothing
_UNRESOLVED = object()


class PathSyntaxError(ValueError):
    """Raised for a structurally invalid path token."""

    pass


# ============================================================================
# Path parsing
# ============================================================================


def parse_path(token: str) -> list[tuple[str, Any]]:
    """Parse a path token into a list of ``(kind, argument)`` steps.

    Step kinds are ``child``, ``wildcard``, ``descendant``, ``names``,
    ``indexes`` and ``slice``.  A ``descendant`` step wraps the step that
    follows it.

    Raises:
        PathSyntaxError: If the token is not a well-formed path.
    """
    if not token.startswith("$"):
        raise PathSyntaxError(f"Path must start with '$': {token}")

    steps: list[tuple[str, Any]] = []
    position = 1
    pending_descent = False

    while position < len(token):
        match = _STEP_PATTERN.match(token, position)
        if not match:
            raise PathSyntaxError(f"Unexpected text at {position} in {token!r}")
        position = match.end()

        if match.group(0).startswith(".."):
            if pending_descent:
                raise PathSyntaxError(f"Repeated '..' in {token!r}")
            name = match.group(1)
            if name is None:
                pending_descent = True
                continue
            step = ("wildcard", None) if name == "*" else ("child", name)
            steps.append(("descendant", step))
            continue

        if match.group(2) is not None:
            name = match.group(2)
            step = ("wildcard", None) if name == "*" else ("child", name)
        else:
            step = _parse_bracket(match.group(3), token)

        if pending_descent:
            steps.append(("descendant", step))
            pending_descent = False
        else:
            steps.append(step)

    if pending_descent:
        raise PathSyntaxError(f"Dangling '..' in {token!r}")
    return steps


def _parse_bracket(content: str, token: str) -> tuple[str, Any]:
    """Parse the inside of a ``[...]`` step."""
    content = content.strip()
    if not content:
        raise PathSyntaxError(f"Empty brackets in {token!r}")
    if content == "*":
        return ("wildcard", None)

    if ":" in content:
        parts = content.split(":")
        if len(parts) > 3:
            raise PathSyntaxError(f"Invalid slice [{content}] in {token!r}")
        bounds: list[int | None] = []
        for part in parts:
            part = part.strip()
            if not part:
                bounds.append(None)
            elif _INT_PATTERN.match(part):
                bounds.append(int(part))
            else:
                raise PathSyntaxError(f"Invalid slice [{content}] in {token!r}")
        if len(bounds) == 3 and bounds[2] == 0:
            raise PathSyntaxError(f"Slice step cannot be zero in {token!r}")
        return ("slice", slice(*bounds))

    items = [item.strip() for item in content.split(",")]
    if all(_INT_PATTERN.match(item) for item in items):
        return ("indexes", [int(item) for item in items])

    names: list[str] = []
    for item in items:
        quoted = _QUOTED_PATTERN.match(item)
        if quoted:
            names.append(quoted.group(1) if quoted.group(1) is not None else quoted.group(2))
        elif re.match(r"^\w+$", item):
            names.append(item)
        else:
            raise PathSyntaxError(f"Invalid member [{content}] in {token!r}")
    return ("names", names)


def is_definite(steps: list[tuple[str, Any]]) -> bool:
    """Return True when *steps* can select at most one value."""
    for kind, argument in steps:
        if kind in ("wildcard", "descendant", "slice"):
            return False
        if kind in ("names", "indexes") and len(argument) > 1:
            return False
    return True


def simple_field(expression: str) -> str | None:
    """Return the member name when *expression* is exactly ``$.field``."""
    try:
        steps = parse_path(expression.strip())
    except PathSyntaxError:
        return None
    if len(steps) == 1 and steps[0][0] == "child":
        return steps[0][1]
    if len(steps) == 1 and steps[0][0] == "names" and len(steps[0][1]) == 1:
        return steps[0][1][0]
    return None


# ============================================================================
# Path evaluation
# ============================================================================


def _children(node: Any) -> list[Any]:
    if isinstance(node, dict):
        return list(node.values())
    if isinstance(node, list):
        return list(node)
    return []


def _descendants(node: Any) -> list[Any]:
    """Return *node* and every nested value, depth first."""
    found = [node]
    for child in _children(node):
        found.extend(_descendants(child))
    return found


def _apply_step(nodes: list[Any], step: tuple[str, Any]) -> list[Any]:
    kind, argument = step
    selected: list[Any] = []

    if kind == "descendant":
        expanded: list[Any] = []
        for node in nodes:
            expanded.extend(_descendants(node))
        return _apply_step(expanded, argument)

    for node in nodes:
        if kind == "child":
            if isinstance(node, dict) and argument in node:
                selected.append(node[argument])
        elif kind == "wildcard":
            selected.extend(_children(node))
        elif kind == "names":
            if isinstance(node, dict):
                selected.extend(node[name] for name in argument if name in node)
        elif kind == "indexes":
            if isinstance(node, list):
                for index in argument:
                    if -len(node) <= index < len(node):
                        selected.append(node[index])
        elif kind == "slice":
            if isinstance(node, list):
                selected.extend(node[argument])
    return selected


def find(token: str, data: Any) -> list[Any]:
    """Return every value matched by *token* in *data*.

    Raises:
        PathSyntaxError: If the token is not a well-formed path.
    """
    nodes = [data]
    for step in parse_path(token):
        nodes = _apply_step(nodes, step)
        if not nodes:
            break
    return nodes


def _to_text(value: Any) -> str:
    """Render a matched value for substitution into the expression."""
    if isinstance(value, str):
        return value
    if isinstance(value, bool) or value is None:
        return json.dumps(value)
    if isinstance(value, (int, float)):
        return str(value)
    return json.dumps(value)


# ============================================================================
# Resolver
# ============================================================================


class CustomValueResolver:
    """Evaluate custom field expressions against a record's data.

    Stateless: the same expression and data always produce the same value,
    and nothing is read from storage.  Problems never raise; an unresolved
    token stays in the output as literal text and malformed JSON yields
    ``None``.
    """

    def resolve(
        self,
        expression: str,
        record_data: dict[str, Any],
        is_json: bool = False,
    ) -> Any:
        """Substitute every path token in *expression* and return the result.

        Args:
            expression: Free text with embedded path tokens.
            record_data: Plain-data form of the record.
            is_json: Parse the substituted text as JSON.

        Returns:
            The substituted string, or the parsed JSON value when
            *is_json* is set (``None`` if the text is not valid JSON).
        """
        text = self.substitute(expression, record_data)
        if not is_json:
            return text
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            logger.warning(f"Custom value is not valid JSON ({e}): {text[:200]!r}")
            return None

    def substitute(self, expression: str, record_data: dict[str, Any]) -> str:
        """Replace path tokens left to right; every token reads the unmodified record data."""
        whole = expression.strip() == "$"
        pieces: list[str] = []
        last = 0

        for match in TOKEN_PATTERN.finditer(expression):
            token = match.group(0)
            if token == "$" and not whole:
                continue
            value = self._evaluate(token, record_data)
            pieces.append(expression[last:match.start()])
            pieces.append(token if value is _UNRESOLVED else _to_text(value))
            last = match.end()

        pieces.append(expression[last:])
        return "".join(pieces)

    def _evaluate(self, token: str, record_data: dict[str, Any]) -> Any:
        try:
            steps = parse_path(token)
            matches = find(token, record_data)
        except PathSyntaxError as e:
            logger.warning(f"Invalid custom path {token!r}: {e}")
            return _UNRESOLVED

        if not matches:
            logger.debug(f"Custom path {token!r} matched nothing")
            return _UNRESOLVED
        if is_definite(steps):
            return matches[0]
        return matches
