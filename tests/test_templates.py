from copilot.core.templates import parse_template, render_message, resolve_param, template_keys
from copilot.types import MessageTemplate


def render(content, params=None, bindings=None, **kwargs):
    template = MessageTemplate(role="system", content=content, params=bindings or {}, **kwargs)
    return render_message(template, params or {})


def test_scalar_substitution():
    msg = render("hello {{name}}!", {"name": "world"})
    assert msg.content == "hello world!"
    assert msg.params == {"name": "world"}
    assert msg.role == "system"


def test_missing_key_defaults_to_first_candidate():
    msg = render("to {{dst}}", {}, {"dst": ["chs", "jpn", "kor"]})
    assert msg.content == "to chs"
    assert msg.params == {"dst": "chs"}


def test_missing_key_without_candidates_renders_empty():
    msg = render("a{{missing}}b", {})
    assert msg.content == "ab"
    assert "{{" not in msg.content
    assert msg.params == {}


def test_supplied_value_outside_candidates_falls_back():
    msg = render("{{src}}", {"src": "abc"}, {"src": ["eng"]})
    assert msg.content == "eng"
    assert msg.params == {"src": "eng"}


def test_supplied_value_among_candidates_is_used():
    msg = render("{{dst}}", {"dst": "jpn"}, {"dst": ["chs", "jpn"]})
    assert msg.content == "jpn"


def test_non_scalar_value_for_scalar_placeholder_uses_default():
    assert render("[{{k}}]", {"k": ["a", "b"]}).content == "[]"
    assert render("[{{k}}]", {"k": {"a": 1}}, {"k": ["x"]}).content == "[x]"


def test_numbers_are_stringified():
    assert render("{{n}} items", {"n": 3}).content == "3 items"


def test_list_block_repeats_body_in_order():
    msg = render(
        "links:\n{{#links}}- {{.}}\n{{/links}}",
        {"links": ["https://affine.pro", "https://github.com/toeverything/affine"]},
    )
    assert msg.content == "links:\n- https://affine.pro\n- https://github.com/toeverything/affine\n"


def test_list_block_three_elements():
    msg = render("{{#xs}}<{{.}}>{{/xs}}", {"xs": ["e1", "e2", "e3"]})
    assert msg.content == "<e1><e2><e3>"


def test_list_block_empty_or_missing_or_not_a_list():
    assert render("a{{#xs}}<{{.}}>{{/xs}}b", {"xs": []}).content == "ab"
    assert render("a{{#xs}}<{{.}}>{{/xs}}b", {}).content == "ab"
    assert render("a{{#xs}}<{{.}}>{{/xs}}b", {"xs": "nope"}).content == "ab"


def test_list_block_can_reference_scalars():
    msg = render("{{#xs}}{{prefix}}{{.}} {{/xs}}", {"xs": [1, 2], "prefix": "#"})
    assert msg.content == "#1 #2 "
    assert msg.params == {"prefix": "#"}


def test_list_block_key_not_recorded_in_params():
    msg = render("{{#xs}}{{.}}{{/xs}}", {"xs": ["a"]})
    assert msg.params == {}


def test_unsupported_syntax_is_literal():
    assert render("{{a.b}} {{^x}}y{{/x}}", {"a": "1"}).content == "{{a.b}} {{^x}}y{{/x}}"
    assert render("{{! note }}", {}).content == "{{! note }}"


def test_unclosed_block_is_literal():
    msg = render("{{#xs}}item {{name}}", {"xs": ["a"], "name": "n"})
    assert msg.content == "{{#xs}}item n"


def test_nested_block_open_is_literal():
    msg = render("{{#a}}[{{#b}}{{.}}]{{/a}}", {"a": ["1"], "b": ["2"]})
    assert msg.content == "[{{#b}}1]"


def test_dot_outside_block_is_empty():
    assert render("x{{.}}y", {}).content == "xy"


def test_attachments_are_carried():
    msg = render("", {}, attachments=["https://affine.pro/a.jpg"])
    assert msg.attachments == ["https://affine.pro/a.jpg"]
    assert not msg.is_empty()


def test_render_does_not_mutate_template_or_params():
    template = MessageTemplate(role="user", content="{{a}}", params={"a": ["x"]})
    params = {"b": "y"}
    render_message(template, params)
    assert template.params == {"a": ["x"]}
    assert params == {"b": "y"}


def test_template_keys_first_seen_order():
    keys = template_keys("{{b}} {{a}} {{b}} {{#items}}{{.}}{{c}}{{/items}}")
    assert keys == ["b", "a", "items", "c"]


def test_parse_is_cached():
    assert parse_template("{{x}}") is parse_template("{{x}}")


def test_resolve_param_returns_none_when_unresolved():
    assert resolve_param("k", {}, ()) is None
    assert resolve_param("k", {"k": None}, ["d"]) == "d"
