"""Safe expression evaluator used by widget data transforms.

Supports a constrained Python expression subset with no arbitrary code execution.
Comprehensions are allowed so a transform can reshape fetched rows, e.g.
``[row.close for row in data]``.
"""

from __future__ import annotations

import ast
from typing import Any, Mapping


class SafeExpressionError(ValueError):
    """Raised when an expression contains unsupported/unsafe constructs."""


_ALLOWED_FUNCS = {
    "len": len,
    "str": str,
    "int": int,
    "float": float,
    "bool": bool,
    "abs": abs,
    "min": min,
    "max": max,
    "round": round,
    "sum": sum,
    "list": list,
    "sorted": sorted,
    "reversed": lambda items: list(reversed(items)),
    "zip": lambda *items: list(zip(*items)),
}

_MAX_SEQUENCE = 1_000_000


class _SafeEvaluator:
    def __init__(self, context: Mapping[str, Any]):
        self.scopes: list[Mapping[str, Any]] = [context]

    def eval(self, expression: str) -> Any:
        tree = ast.parse(expression, mode="eval")
        return self._eval_node(tree)

    def _lookup(self, name: str) -> Any:
        for scope in reversed(self.scopes):
            if name in scope:
                return scope[name]
        return None

    def _eval_node(self, node: ast.AST) -> Any:
        if isinstance(node, ast.Expression):
            return self._eval_node(node.body)

        if isinstance(node, ast.Constant):
            return node.value

        if isinstance(node, ast.Name):
            name = node.id
            if name in {"true", "false", "null", "none"}:
                return {"true": True, "false": False, "null": None, "none": None}[name]
            if name.startswith("__"):
                raise SafeExpressionError(f"Name '{name}' is not allowed")
            return self._lookup(name)

        if isinstance(node, ast.Attribute):
            if node.attr.startswith("_"):
                raise SafeExpressionError(f"Attribute '{node.attr}' is not allowed")
            value = self._eval_node(node.value)
            if isinstance(value, dict):
                return value.get(node.attr)
            return None

        if isinstance(node, ast.Subscript):
            value = self._eval_node(node.value)
            if isinstance(node.slice, ast.Slice):
                return self._eval_slice(value, node.slice)
            index = self._eval_node(node.slice)
            if isinstance(value, (list, tuple)) and isinstance(index, int):
                if -len(value) <= index < len(value):
                    return value[index]
                return None
            if isinstance(value, dict):
                return value.get(index)
            return None

        if isinstance(node, ast.List):
            return [self._eval_node(item) for item in node.elts]

        if isinstance(node, ast.Tuple):
            return tuple(self._eval_node(item) for item in node.elts)

        if isinstance(node, ast.Dict):
            return {
                self._eval_node(key): self._eval_node(value)
                for key, value in zip(node.keys, node.values)
            }

        if isinstance(node, (ast.ListComp, ast.GeneratorExp)):
            return self._eval_comprehension(node)

        if isinstance(node, ast.BoolOp):
            values = [self._eval_node(value) for value in node.values]
            if isinstance(node.op, ast.And):
                return all(bool(item) for item in values)
            if isinstance(node.op, ast.Or):
                return any(bool(item) for item in values)
            raise SafeExpressionError("Unsupported boolean operator")

        if isinstance(node, ast.UnaryOp):
            operand = self._eval_node(node.operand)
            if isinstance(node.op, ast.Not):
                return not bool(operand)
            if isinstance(node.op, ast.USub):
                return -operand
            if isinstance(node.op, ast.UAdd):
                return +operand
            raise SafeExpressionError("Unsupported unary operator")

        if isinstance(node, ast.BinOp):
            left = self._eval_node(node.left)
            right = self._eval_node(node.right)
            if isinstance(node.op, ast.Add):
                return left + right
            if isinstance(node.op, ast.Sub):
                return left - right
            if isinstance(node.op, ast.Mult):
                if isinstance(left, (list, str)) or isinstance(right, (list, str)):
                    raise SafeExpressionError("Sequence repetition is not allowed")
                return left * right
            if isinstance(node.op, ast.Div):
                return left / right
            if isinstance(node.op, ast.FloorDiv):
                return left // right
            if isinstance(node.op, ast.Mod):
                return left % right
            raise SafeExpressionError("Unsupported binary operator")

        if isinstance(node, ast.Compare):
            left = self._eval_node(node.left)
            for op, comparator in zip(node.ops, node.comparators):
                right = self._eval_node(comparator)
                result = self._compare(op, left, right)
                if not result:
                    return False
                left = right
            return True

        if isinstance(node, ast.IfExp):
            test = bool(self._eval_node(node.test))
            return self._eval_node(node.body if test else node.orelse)

        if isinstance(node, ast.Call):
            if not isinstance(node.func, ast.Name):
                raise SafeExpressionError("Only direct safe function calls are allowed")
            fn_name = node.func.id
            fn = _ALLOWED_FUNCS.get(fn_name)
            if fn is None:
                raise SafeExpressionError(f"Function '{fn_name}' is not allowed")
            args = [self._eval_node(arg) for arg in node.args]
            kwargs = {kw.arg: self._eval_node(kw.value) for kw in node.keywords if kw.arg}
            return fn(*args, **kwargs)

        raise SafeExpressionError(f"Unsupported expression node: {type(node).__name__}")

    def _eval_slice(self, value: Any, node: ast.Slice) -> Any:
        lower = self._eval_node(node.lower) if node.lower is not None else None
        upper = self._eval_node(node.upper) if node.upper is not None else None
        step = self._eval_node(node.step) if node.step is not None else None
        if not isinstance(value, (list, tuple, str)):
            return None
        return value[slice(lower, upper, step)]

    def _eval_comprehension(self, node: ast.ListComp | ast.GeneratorExp) -> list[Any]:
        results: list[Any] = []

        def _walk(generators: list[ast.comprehension]) -> None:
            if not generators:
                if len(results) >= _MAX_SEQUENCE:
                    raise SafeExpressionError("Comprehension result too large")
                results.append(self._eval_node(node.elt))
                return
            current, rest = generators[0], generators[1:]
            if current.is_async:
                raise SafeExpressionError("Async comprehensions are not allowed")
            iterable = self._eval_node(current.iter)
            if iterable is None:
                return
            if not isinstance(iterable, (list, tuple, str, dict)):
                raise SafeExpressionError("Comprehension source must be a sequence")
            for item in iterable:
                scope: dict[str, Any] = {}
                self._bind(current.target, item, scope)
                self.scopes.append(scope)
                try:
                    if all(bool(self._eval_node(cond)) for cond in current.ifs):
                        _walk(rest)
                finally:
                    self.scopes.pop()

        _walk(list(node.generators))
        return results

    def _bind(self, target: ast.AST, value: Any, scope: dict[str, Any]) -> None:
        if isinstance(target, ast.Name):
            scope[target.id] = value
            return
        if isinstance(target, (ast.Tuple, ast.List)):
            items = list(value)
            if len(items) != len(target.elts):
                raise SafeExpressionError("Cannot unpack comprehension target")
            for sub_target, sub_value in zip(target.elts, items):
                self._bind(sub_target, sub_value, scope)
            return
        raise SafeExpressionError("Unsupported comprehension target")

    def _compare(self, op: ast.cmpop, left: Any, right: Any) -> bool:
        if isinstance(op, ast.Eq):
            return left == right
        if isinstance(op, ast.NotEq):
            return left != right
        if isinstance(op, ast.Lt):
            return left < right
        if isinstance(op, ast.LtE):
            return left <= right
        if isinstance(op, ast.Gt):
            return left > right
        if isinstance(op, ast.GtE):
            return left >= right
        if isinstance(op, ast.In):
            return left in right
        if isinstance(op, ast.NotIn):
            return left not in right
        if isinstance(op, ast.Is):
            return left is right
        if isinstance(op, ast.IsNot):
            return left is not right
        raise SafeExpressionError(f"Unsupported comparison operator: {type(op).__name__}")


def evaluate_expression(expression: str, context: Mapping[str, Any]) -> Any:
    """Evaluate a constrained expression; raise SafeExpressionError on bad input."""
    expr = str(expression or "").strip()
    if not expr:
        raise SafeExpressionError("Empty expression")
    try:
        return _SafeEvaluator(context).eval(expr)
    except SafeExpressionError:
        raise
    except (SyntaxError, TypeError, ValueError, ArithmeticError, KeyError) as exc:
        raise SafeExpressionError(f"{type(exc).__name__}: {exc}") from exc
