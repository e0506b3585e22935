"""Tests for JSON extraction, path lookup and action response validation."""

import pytest

from promptcascade.errors import JsonParseError
from promptcascade.graph.actions.extraction import (
    extract_json_from_response,
    find_array_paths,
    get_nested_value,
    normalize_path,
    validate_action_response,
)
from promptcascade.schemas import PostActionConfig


class TestExtractJson:
    def test_plain_json(self):
        assert extract_json_from_response('{"items": [1, 2]}') == {"items": [1, 2]}

    def test_fenced_block(self):
        text = 'Here you go:\n```json\n{"items": ["a"]}\n```\nAnything else?'
        assert extract_json_from_response(text) == {"items": ["a"]}

    def test_fence_without_language(self):
        assert extract_json_from_response("```\n[1, 2, 3]\n```") == [1, 2, 3]

    def test_json_embedded_in_prose(self):
        text = 'Sure! {"sections": [{"title": "Intro"}]} Hope that helps.'
        assert extract_json_from_response(text) == {"sections": [{"title": "Intro"}]}

    def test_top_level_array_in_prose(self):
        assert extract_json_from_response("List: [\"x\", \"y\"] done") == ["x", "y"]

    def test_malformed_raises_with_preview(self):
        with pytest.raises(JsonParseError) as exc_info:
            extract_json_from_response("{not json at all" + "x" * 400)

        assert str(exc_info.value).startswith("JSON parse error")
        assert len(exc_info.value.response_preview) == 300

    def test_empty_response(self):
        with pytest.raises(JsonParseError):
            extract_json_from_response("   ")


class TestPaths:
    @pytest.mark.parametrize(
        "path,expected",
        [
            ("$.items", ["items"]),
            ("data.sections[0].title", ["data", "sections", "0", "title"]),
            ("a.1.b", ["a", "1", "b"]),
            ("$", []),
            ("root", []),
            ("", []),
        ],
    )
    def test_normalize_path(self, path, expected):
        assert normalize_path(path) == expected

    def test_get_nested_value(self):
        data = {"data": {"sections": [{"title": "Intro"}, {"title": "Body"}]}}
        assert get_nested_value(data, "$.data.sections[1].title") == "Body"
        assert get_nested_value(data, "data.sections.0.title") == "Intro"
        assert get_nested_value(data, "data.missing") is None
        assert get_nested_value(data, "data.sections[5]") is None
        assert get_nested_value(data, "$") is data

    def test_find_array_paths(self):
        data = {"items": [], "meta": {"tags": [], "deep": {"deeper": {"list": []}}}, "n": 1}
        assert find_array_paths(data) == ["items", "meta.tags"]


class TestValidateActionResponse:
    def test_array_found(self):
        config = PostActionConfig(json_path="$.items")
        validation = validate_action_response(
            {"items": ["x", "y"]}, config, "create_children_json"
        )

        assert validation.valid
        assert validation.items == ["x", "y"]
        assert validation.json_path == "$.items"
        assert not validation.is_empty

    def test_missing_path_lists_available_arrays(self):
        config = PostActionConfig(json_path="items")
        validation = validate_action_response(
            {"sections": [{"title": "a"}]}, config, "create_children_json"
        )

        assert not validation.valid
        assert validation.error == 'Path "items" not found in response'
        assert validation.available_arrays == ["sections"]
        assert "sections" in validation.suggestion
        assert validation.response_keys == ["sections"]

    def test_path_not_an_array(self):
        config = PostActionConfig(json_path="items")
        validation = validate_action_response({"items": "x"}, config, "create_children_json")

        assert not validation.valid
        assert validation.error == 'Path "items" is not an array (found str)'

    def test_empty_array_is_valid(self):
        config = PostActionConfig(json_path="items")
        validation = validate_action_response({"items": []}, config, "create_children_json")
        assert validation.valid
        assert validation.is_empty

    def test_first_path_of_list_is_used(self):
        config = PostActionConfig(json_path=["data.rows", "items"])
        validation = validate_action_response(
            {"data": {"rows": [1]}}, config, "create_children_json"
        )
        assert validation.items == [1]

    def test_non_array_actions_always_valid(self):
        config = PostActionConfig()
        assert validate_action_response({"a": 1}, config, "create_children_text").valid
        assert validate_action_response({"a": 1}, config, None).valid
