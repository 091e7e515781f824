"""Tests for recursive field location."""
import pytest

from services.field_mapping.locator import MISSING, get_by_path, locate_field, locate_field_all
from services.field_mapping.models import SearchResult


class CountingDict(dict):
    """dict that counts how many times its children are enumerated."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.visits = 0

    def items(self):
        self.visits += 1
        return super().items()


@pytest.fixture
def nested_data():
    return {
        "name": "root-name",
        "user": {
            "name": "user-name",
            "profile": {
                "name": "profile-name",
                "details": {"firstName": "John", "lastName": "Doe"},
            },
            "settings": {"name": "settings-name", "preferences": {"theme": "dark"}},
        },
        "items": [
            {"name": "item-1", "value": 100},
            {"name": "item-2", "value": 200},
        ],
        "config": {"database": {"name": "db-name", "host": "localhost"}},
    }


class TestGetByPath:
    """Test path expression resolution."""

    def test_dotted_path(self, nested_data):
        assert get_by_path(nested_data, "user.profile.details.firstName") == "John"

    def test_numeric_segment_indexes_list(self, nested_data):
        assert get_by_path(nested_data, "items.1.name") == "item-2"

    def test_bracket_notation(self, nested_data):
        assert get_by_path(nested_data, "items[0].value") == 100

    def test_literal_dotted_key_takes_precedence(self):
        assert get_by_path({"a.b": 1, "a": {"b": 2}}, "a.b") == 1

    def test_missing_segment_returns_default(self, nested_data):
        assert get_by_path(nested_data, "user.nope.name") is MISSING
        assert get_by_path(nested_data, "user.nope", default=None) is None

    def test_index_out_of_range(self, nested_data):
        assert get_by_path(nested_data, "items.5.name") is MISSING

    def test_empty_inputs(self):
        assert get_by_path(None, "a") is MISSING
        assert get_by_path({"a": 1}, "") is MISSING

    def test_none_value_is_found(self):
        assert get_by_path({"a": None}, "a") is None


class TestLocateField:
    """Test first-match field location."""

    def test_single_location(self):
        tree = {"data": {"user": {"userId": "u1"}}}
        assert locate_field(tree, "userId") == SearchResult(value="u1", path="data.user.userId")

    def test_root_path_expression(self, nested_data):
        result = locate_field(nested_data, "user.profile.name")
        assert result == SearchResult(value="profile-name", path="user.profile.name")

    def test_direct_child_wins_over_deeper_match(self):
        tree = {"wrapper": {"deep": {"id": 1}, "id": 2}}
        assert locate_field(tree, "id") == SearchResult(value=2, path="wrapper.id")

    def test_first_in_enumeration_order(self):
        tree = {"a": {"name": 1}, "b": {"name": 2}}
        assert locate_field(tree, "name") == SearchResult(value=1, path="a.name")

    def test_searches_inside_lists(self):
        tree = {"items": [{"other": 1}, {"target": "x"}]}
        assert locate_field(tree, "target") == SearchResult(value="x", path="items.1.target")

    def test_none_value_found(self):
        assert locate_field({"outer": {"status": None}}, "status") == SearchResult(value=None, path="outer.status")

    def test_not_found(self, nested_data):
        assert locate_field(nested_data, "nonexistent") is None

    @pytest.mark.parametrize("tree", [None, {}, [], ""])
    def test_empty_tree(self, tree):
        assert locate_field(tree, "name") is None

    @pytest.mark.parametrize("field_name", ["", None])
    def test_empty_field_name(self, nested_data, field_name):
        assert locate_field(nested_data, field_name) is None

    def test_cycle_terminates_without_revisiting(self):
        root = CountingDict(label="root")
        child = CountingDict(label="child")
        child["parent"] = root
        root["child"] = child
        root["alias"] = child

        assert locate_field(root, "missing") is None
        assert root.visits == 1
        assert child.visits == 1


class TestLocateFieldAll:
    """Test all-matches field location."""

    def test_single_location_matches_first_match_variant(self):
        tree = {"data": {"user": {"userId": "u1"}}}
        assert locate_field_all(tree, "userId") == [locate_field(tree, "userId")]

    def test_sibling_order_preserved(self):
        tree = {"a": {"name": 1}, "b": {"name": 2}}
        assert locate_field_all(tree, "name") == [
            SearchResult(value=1, path="a.name"),
            SearchResult(value=2, path="b.name"),
        ]

    def test_finds_all_occurrences(self, nested_data):
        results = locate_field_all(nested_data, "name")

        assert [r.path for r in results] == [
            "name",
            "user.name",
            "user.profile.name",
            "user.settings.name",
            "items.0.name",
            "items.1.name",
            "config.database.name",
        ]
        assert results[0].value == "root-name"
        assert results[-1].value == "db-name"

    def test_direct_match_recorded_before_children(self):
        tree = {"outer": {"inner": {"id": 1}, "id": 2}}
        assert [r.path for r in locate_field_all(tree, "id")] == ["outer.id", "outer.inner.id"]

    def test_root_path_match_not_duplicated(self):
        assert locate_field_all({"name": "x"}, "name") == [SearchResult(value="x", path="name")]

    def test_root_path_expression_match(self, nested_data):
        results = locate_field_all(nested_data, "user.profile.details")
        assert len(results) == 1
        assert results[0].path == "user.profile.details"
        assert results[0].value == {"firstName": "John", "lastName": "Doe"}

    def test_equal_but_distinct_nodes_both_visited(self):
        tree = {"a": {"k": {"v": 1}}, "b": {"k": {"v": 1}}}
        assert [r.path for r in locate_field_all(tree, "v")] == ["a.k.v", "b.k.v"]

    def test_cycle_terminates_without_revisiting(self):
        root = CountingDict(name="root")
        child = CountingDict(name="child")
        child["parent"] = root
        root["child"] = child
        root["alias"] = child

        results = locate_field_all(root, "name")

        assert results == [
            SearchResult(value="root", path="name"),
            SearchResult(value="child", path="child.name"),
        ]
        assert root.visits == 1
        assert child.visits == 1

    def test_self_referencing_list(self):
        items = [{"id": 1}]
        items.append(items)
        assert locate_field_all({"items": items}, "id") == [SearchResult(value=1, path="items.0.id")]

    @pytest.mark.parametrize("tree", [None, {}, []])
    def test_empty_tree(self, tree):
        assert locate_field_all(tree, "name") == []

    @pytest.mark.parametrize("field_name", ["", None])
    def test_empty_field_name(self, nested_data, field_name):
        assert locate_field_all(nested_data, field_name) == []

    def test_not_found(self, nested_data):
        assert locate_field_all(nested_data, "nonexistent") == []
