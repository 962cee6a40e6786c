"""
Calculator tool: evaluates arithmetic expressions without eval().
"""

from __future__ import annotations

import ast
import math
import operator
import re

from collections.abc import Callable
from typing import Any

from models.tool_models import ToolCategory, ToolDescriptor
from tools.base import ToolDefinition, ToolExecutor, require_string

#: Characters an expression may contain
_ALLOWED_CHARS = re.compile(r"^[0-9+\-*/().%\s]+$")

#: Largest exponent accepted for ``**``
MAX_EXPONENT = 100

#: Largest estimated size, in bits, of an integer result of ``*`` or ``**``
MAX_RESULT_BITS = 4096

_BINARY_OPS: dict[type[ast.operator], Callable[[Any, Any], Any]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
}

_UNARY_OPS: dict[type[ast.unaryop], Callable[[Any], Any]] = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
}


def _bits(value: int | float) -> float:
    magnitude = abs(value)
    return math.log2(magnitude) if magnitude > 1 else 0.0


def _check_size(op: ast.operator, left: int | float, right: int | float) -> None:
    """Reject ``*`` and ``**`` whose result would be too large to compute quickly."""
    if isinstance(op, ast.Pow):
        if abs(right) > MAX_EXPONENT:
            raise ValueError(f"Exponent too large (max {MAX_EXPONENT})")
        estimated = right * _bits(left) if right > 0 else 0.0
    elif isinstance(op, ast.Mult):
        estimated = _bits(left) + _bits(right)
    else:
        return
    if estimated > MAX_RESULT_BITS:
        raise ValueError("Result too large")


def _evaluate(node: ast.AST) -> int | float:
    if isinstance(node, ast.Expression):
        return _evaluate(node.body)
    if isinstance(node, ast.Constant) and isinstance(node.value, int | float) and not isinstance(node.value, bool):
        return node.value
    if isinstance(node, ast.BinOp) and type(node.op) in _BINARY_OPS:
        left = _evaluate(node.left)
        right = _evaluate(node.right)
        _check_size(node.op, left, right)
        return _BINARY_OPS[type(node.op)](left, right)
    if isinstance(node, ast.UnaryOp) and type(node.op) in _UNARY_OPS:
        return _UNARY_OPS[type(node.op)](_evaluate(node.operand))
    raise ValueError("Unsupported expression")


def _format_number(value: int | float) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def calculate(expression: str) -> str:
    """Evaluate ``expression`` and return ``Result: <expr> = <value>``.

    Raises:
        ValueError: If the expression contains illegal characters, cannot be
            parsed, divides by zero, or its result would be too large.
    """
    if not _ALLOWED_CHARS.match(expression):
        raise ValueError("Expression contains illegal characters")
    try:
        tree = ast.parse(expression, mode="eval")
    except SyntaxError:
        raise ValueError(f'Cannot parse expression "{expression}"') from None
    try:
        value = _evaluate(tree)
    except ZeroDivisionError:
        raise ValueError("Division by zero") from None
    except OverflowError:
        raise ValueError("Result too large") from None
    return f"Result: {expression} = {_format_number(value)}"


def build_calculator(config: dict[str, Any]) -> ToolExecutor:
    async def execute(args: dict[str, Any]) -> str:
        return calculate(require_string(args, "expression"))

    return execute


DEFINITION = ToolDefinition(
    descriptor=ToolDescriptor(
        id="internal:calculator",
        name="calculator",
        display_name="Calculator",
        description="Calculate mathematical expressions",
        category=ToolCategory.UTILITY,
        tags=("math", "calculation", "arithmetic"),
        requires_approval=True,
        input_schema={
            "type": "object",
            "properties": {
                "expression": {
                    "type": "string",
                    "description": "Mathematical expression to calculate, e.g. 2 + 2",
                },
            },
            "required": ["expression"],
        },
    ),
    factory=build_calculator,
)
