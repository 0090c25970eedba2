from cloudbuilder.template import expand, expand_arguments


def test_expand_replaces_known_keys():
    assert expand({"tag": "v1.2.0"}, "checkout tags/{tag}") == "checkout tags/v1.2.0"


def test_expand_leaves_unknown_tokens():
    assert expand({"a": "1"}, "{a} {b} {}") == "1 {b} {}"


def test_expand_is_single_pass():
    # a value that looks like another token is not expanded again
    assert expand({"a": "{b}", "b": "x"}, "{a}-{b}") == "{b}-x"


def test_expand_repeated_token():
    assert expand({"p": "Win64"}, "-platform={p} -serverplatform={p}") == "-platform=Win64 -serverplatform=Win64"


def test_expand_without_placeholders():
    assert expand({}, "{a}") == "{a}"
    assert expand({"a": "1"}, "plain") == "plain"


def test_expand_arguments_keeps_values_with_spaces_together():
    args = expand_arguments("-c {code}", {"code": "print('hello world')"})
    assert args == ["-c", "print('hello world')"]


def test_expand_arguments_splits_on_any_whitespace():
    assert expand_arguments("  fetch   --tags\t--force ", None) == ["fetch", "--tags", "--force"]
    assert expand_arguments("", {"a": "b"}) == []
