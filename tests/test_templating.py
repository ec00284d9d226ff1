"""
Webhook 变量替换测试
"""

from douyin_monitor.templating import substitute, substitute_object


def test_substitute_known_variables():
    assert substitute("{{a}}-{{b}}", {"a": "x", "b": "y"}) == "x-y"


def test_unknown_variable_left_verbatim():
    assert substitute("{{missing}}", {}) == "{{missing}}"
    assert substitute("{{a}} {{missing}}", {"a": 1}) == "1 {{missing}}"


def test_none_value_left_verbatim():
    assert substitute("{{title}}", {"title": None}) == "{{title}}"


def test_non_string_values_are_stringified():
    assert substitute("size={{fileSize}}", {"fileSize": 1024}) == "size=1024"


def test_non_string_template_returned_unchanged():
    assert substitute(42, {"a": "x"}) == 42
    assert substitute(None, {}) is None


def test_substitute_object_recurses_values_only():
    template = {
        "{{key}}": "{{value}}",
        "items": ["{{a}}", 3, {"nested": "{{b}}"}],
        "flag": True,
    }
    context = {"key": "K", "value": "V", "a": "A", "b": "B"}

    assert substitute_object(template, context) == {
        "{{key}}": "V",
        "items": ["A", 3, {"nested": "B"}],
        "flag": True,
    }
