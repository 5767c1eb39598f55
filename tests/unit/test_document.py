"""Unit tests for flattening and rebuilding nested documents."""
import copy

import pytest

from l10n_editor.document import (
    NodeKind,
    flatten_document,
    is_array_item_path,
    node_kind,
    serialize_document,
    split_path,
    unflatten_document,
)
from l10n_editor.errors import StructuralError
from l10n_editor.reconciler import reconcile


class TestFlatten:

    def test_nested_object(self):
        assert flatten_document({"a": {"b": "Hello"}}) == {"a.b": "Hello"}

    def test_array_indices_are_plain_segments(self):
        document = {"auth": {"errors": [{"message": "Oops"}, {"message": "Nope"}]}}

        assert flatten_document(document) == {
            "auth.errors.0.message": "Oops",
            "auth.errors.1.message": "Nope",
        }

    def test_order_follows_document_order(self):
        document = {"z": "1", "a": {"y": "2", "b": ["3", "4"]}, "m": "5"}

        assert list(flatten_document(document)) == ["z", "a.y", "a.b.0", "a.b.1", "m"]

    def test_non_string_scalars_are_kept(self):
        document = {"count": 3, "ratio": 0.5, "enabled": True, "missing": None}

        assert flatten_document(document) == document

    def test_empty_containers_emit_nothing(self):
        assert flatten_document({"a": {}, "b": [], "c": "x"}) == {"c": "x"}

    def test_root_array(self):
        assert flatten_document(["x", {"y": "z"}]) == {"0": "x", "1.y": "z"}

    def test_digit_key_is_escaped(self):
        flat = flatten_document({"a": {"0": "zero"}})

        assert flat == {"a.\\0": "zero"}
        assert split_path("a.\\0") == [("a", False), ("0", False)]

    def test_dot_and_backslash_in_keys_are_escaped(self):
        flat = flatten_document({"a.b": {"c\\d": "x"}})

        assert flat == {"a\\.b.c\\\\d": "x"}
        assert split_path("a\\.b.c\\\\d") == [("a.b", False), ("c\\d", False)]

    def test_scalar_root_is_rejected(self):
        with pytest.raises(StructuralError):
            flatten_document("just a string")

    def test_unsupported_value_is_rejected_with_path(self):
        with pytest.raises(StructuralError) as exc_info:
            flatten_document({"a": {"b": {1, 2}}})

        assert exc_info.value.path == "a.b"

    def test_non_string_key_is_rejected(self):
        with pytest.raises(StructuralError):
            flatten_document({"a": {1: "x"}})


class TestUnflatten:

    def test_builds_objects_and_arrays_from_scratch(self):
        flat = {"auth.errors.0.message": "Oops", "auth.title": "Sign in"}

        assert unflatten_document(flat) == {
            "auth": {"errors": [{"message": "Oops"}], "title": "Sign in"}
        }

    def test_round_trip_with_base_restores_everything(self):
        document = {
            "a": {"b": "Hello", "n": 2, "flag": False},
            "list": ["x", ["y", {"z": None}]],
            "empty_obj": {},
            "empty_list": [],
            "weird": {"0": "zero", "a.b": "dotted"},
        }

        assert unflatten_document(flatten_document(document), document) == document

    def test_base_is_not_mutated(self):
        base = {"a": {"b": "old"}}
        snapshot = copy.deepcopy(base)

        result = unflatten_document({"a.b": "new"}, base)

        assert base == snapshot
        assert result == {"a": {"b": "new"}}

    def test_leaf_overwrites_base_value_and_keeps_other_keys(self):
        base = {"a": {"b": "old", "keep": 1}, "other": []}

        assert unflatten_document({"a.b": "new"}, base) == {"a": {"b": "new", "keep": 1}, "other": []}

    def test_digit_key_stays_an_object_key(self):
        assert unflatten_document({"a.\\0": "zero"}) == {"a": {"0": "zero"}}

    def test_gap_in_array_is_padded(self):
        assert unflatten_document({"a.2": "c"}) == {"a": [None, None, "c"]}

    def test_array_in_the_way_of_an_object_key_is_replaced(self):
        assert unflatten_document({"a.name": "x"}, {"a": ["first"]}) == {"a": {"name": "x"}}

    def test_object_in_the_way_of_an_index_is_replaced(self):
        assert unflatten_document({"a.0": "x"}, {"a": {"k": "v"}, "b": "kept"}) == {"a": ["x"], "b": "kept"}

    def test_root_of_the_wrong_kind_is_replaced(self):
        assert unflatten_document({"a": "x"}, ["first"]) == {"a": "x"}

    def test_target_shaped_differently_from_source(self):
        source = {"items": {"a": "x"}}
        target = {"items": ["y"], "other": "z"}

        flat = reconcile([], flatten_document(source), flatten_document(target)).flat_target()

        assert unflatten_document(flat, target) == {"items": {"a": "x"}, "other": "z"}

    def test_scalar_in_the_way_is_replaced_by_container(self):
        assert unflatten_document({"a.b": "x"}, {"a": "was a string"}) == {"a": {"b": "x"}}

    def test_serialization_is_stable(self):
        base = {"b": {"x": "1"}, "a": ["é"]}
        flat = {"a.0": "è", "b.x": "2"}

        first = serialize_document(unflatten_document(flat, base))
        second = serialize_document(unflatten_document(flat, base))

        assert first == second
        assert first == '{\n    "b": {\n        "x": "2"\n    },\n    "a": [\n        "è"\n    ]\n}'


class TestPathHelpers:

    def test_node_kind(self):
        assert node_kind({}) is NodeKind.OBJECT
        assert node_kind([]) is NodeKind.ARRAY
        assert node_kind("x") is NodeKind.SCALAR
        assert node_kind(None) is NodeKind.SCALAR

    def test_is_array_item_path(self):
        assert is_array_item_path("auth.errors.0")
        assert not is_array_item_path("auth.errors")
        assert not is_array_item_path("a.\\0")

    def test_dangling_escape_is_rejected(self):
        with pytest.raises(StructuralError):
            split_path("a.b\\")
