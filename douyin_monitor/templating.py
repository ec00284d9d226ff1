"""
Webhook 变量替换

将模板中的 {{变量名}} 替换为上下文中的值，未知变量原样保留。
支持字符串以及嵌套的 dict / list 结构。
"""

import re
from typing import Any, Mapping

VARIABLE_PATTERN = re.compile(r"\{\{(\w+)\}\}")


def substitute(template: Any, context: Mapping[str, Any]) -> Any:
    """替换字符串中的变量，非字符串原样返回"""
    if not isinstance(template, str):
        return template

    def _replace(match: "re.Match[str]") -> str:
        name = match.group(1)
        if name in context and context[name] is not None:
            return str(context[name])
        return match.group(0)

    return VARIABLE_PATTERN.sub(_replace, template)


def substitute_object(obj: Any, context: Mapping[str, Any]) -> Any:
    """递归替换对象中所有字符串的变量，键名保持不变"""
    if isinstance(obj, str):
        return substitute(obj, context)
    if isinstance(obj, list):
        return [substitute_object(item, context) for item in obj]
    if isinstance(obj, dict):
        return {key: substitute_object(value, context) for key, value in obj.items()}
    return obj


__all__ = ["VARIABLE_PATTERN", "substitute", "substitute_object"]
