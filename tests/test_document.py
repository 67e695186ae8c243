"""
Tests for the in-memory document graph: contexts, change records,
subscriptions, update cycles, item insertion, search and undo.

Run with: pytest tests/test_document.py -v
"""

import pytest

from interactive_bridge.document import (
    DocumentController, UndoCommand, UndoHistory, legalize_attribute_name,
)
from interactive_bridge.document.graph import USER_LOG_LIMIT


def make_context(document=None):
    document = document or DocumentController()
    context = document.create_data_context({"name": "Mammals"})
    diets = context.create_collection({"name": "Diets", "attrs": [{"name": "Diet"}]})
    species = context.create_collection({
        "name": "Species", "parent": diets,
        "attrs": [{"name": "Name"}, {"name": "Mass"}],
    })
    return document, context, diets, species


# ─────────────────────────────────────────────────────────────
# Entities
# ─────────────────────────────────────────────────────────────

class TestLegalize:
    def test_spaces_and_punctuation(self):
        assert legalize_attribute_name("Body Mass (kg)") == "Body_Mass__kg_"

    def test_leading_digit(self):
        assert legalize_attribute_name("2nd") == "_2nd"

    def test_already_legal(self):
        assert legalize_attribute_name("Mass") == "Mass"


class TestCollections:
    def setup_method(self):
        self.document, self.context, self.diets, self.species = make_context()

    def test_ordered_ancestor_first(self):
        late_root = self.context.create_collection({"name": "Zoo"})
        assert self.context.collections == [self.diets, late_root, self.species]

    def test_last_collection(self):
        assert self.context.last_collection is self.species

    def test_duplicate_name_rejected(self):
        assert self.context.create_collection({"name": "Species"}) is None

    def test_missing_parent_rejected(self):
        assert self.context.create_collection({"name": "X", "parent": "Nope"}) is None

    def test_reserved_keys_ignored(self):
        zoo = self.context.create_collection({
            "name": "Zoo", "context": "elsewhere", "id": self.diets.id,
            "description": "Enclosures",
        })
        assert zoo.context is self.context
        assert zoo.id != self.diets.id
        assert zoo.description == "Enclosures"

    def test_archive_carries_guid(self):
        archive = self.context.to_archive(exclude_cases=True)
        assert archive["guid"] == self.context.id
        assert [c["name"] for c in archive["collections"]] == ["Diets", "Species"]
        assert "cases" not in archive["collections"][0]


class TestCases:
    def setup_method(self):
        self.document, self.context, self.diets, self.species = make_context()
        self.plants = self.context.apply_change({
            "operation": "createCases", "collection": self.diets,
            "values": [{"Diet": "plants"}],
        })["caseID"]

    def test_child_inherits_parent_values(self):
        result = self.context.apply_change({
            "operation": "createCases", "collection": self.species,
            "properties": {"parent": self.plants},
            "values": [{"Name": "Elephant", "Mass": 5000}],
        })
        assert result["success"]
        case = self.context.get_case_by_id(result["caseID"])
        diet = self.diets.get_attribute_by_name("Diet")
        assert case.get_value(diet.id) == "plants"
        assert case.values_by_name() == {"Name": "Elephant", "Mass": 5000}

    def test_parent_must_be_in_parent_collection(self):
        result = self.context.apply_change({
            "operation": "createCases", "collection": self.diets,
            "properties": {"parent": self.plants},
            "values": [{"Diet": "x"}],
        })
        assert result["success"] is False

    def test_delete_removes_descendants(self):
        child = self.context.apply_change({
            "operation": "createCases", "collection": self.species,
            "properties": {"parent": self.plants}, "values": [{"Name": "Giraffe"}],
        })["caseID"]
        parent = self.context.get_case_by_id(self.plants)
        result = self.context.apply_change({"operation": "deleteCases", "cases": [parent]})
        assert set(result["caseIDs"]) == {self.plants, child}
        assert self.context.all_cases == []

    def test_select_and_extend(self):
        a = self.context.get_case_by_id(self.plants)
        b_id = self.context.apply_change({
            "operation": "createCases", "collection": self.diets, "values": [{"Diet": "meat"}],
        })["caseID"]
        b = self.context.get_case_by_id(b_id)
        self.context.apply_change({"operation": "selectCases", "cases": [a]})
        self.context.apply_change({"operation": "selectCases", "cases": [b], "extend": True})
        assert self.context.get_selected_cases() == [a, b]
        self.context.apply_change({"operation": "selectCases", "cases": [b]})
        assert self.context.get_selected_cases() == [b]

    def test_unknown_operation_recorded_as_failure(self):
        seen = []
        self.context.subscribe(lambda ctx, changes: seen.extend(changes))
        assert self.context.apply_change({"operation": "teleport"}) == {"success": False}
        assert seen[0].operation == "teleport" and not seen[0].success


class TestAttributes:
    def setup_method(self):
        self.document, self.context, self.diets, self.species = make_context()

    def test_create_update_delete(self):
        result = self.context.apply_change({
            "operation": "createAttributes", "collection": self.species,
            "attrPropsArray": [{"name": "Life Span"}],
        })
        assert result["success"]
        attr = self.context.get_attribute_by_name("Life_Span")
        assert attr.title == "Life Span"

        self.context.apply_change({
            "operation": "updateAttributes", "collection": self.species,
            "attrPropsArray": [{"name": "Life_Span", "unit": "years"}],
        })
        assert attr.unit == "years"

        result = self.context.apply_change({"operation": "deleteAttributes", "attrs": [attr]})
        assert result["attrIDs"] == [attr.id]
        assert self.context.get_attribute_by_name("Life_Span") is None

    def test_duplicate_rejected(self):
        result = self.context.apply_change({
            "operation": "createAttributes", "collection": self.species,
            "attrPropsArray": [{"name": "Mass"}],
        })
        assert result["success"] is False


class TestItems:
    def test_split_and_reuse_parents(self):
        _, context, diets, species = make_context()
        ids = context.add_items([
            {"Diet": "plants", "Name": "Elephant", "Mass": 5000},
            {"Diet": "plants", "Name": "Giraffe",  "Mass": 800},
            {"Diet": "meat",   "Name": "Lion",     "Mass": 190},
        ])
        assert len(ids) == 3
        assert len(diets.cases) == 2
        assert len(species.cases) == 3
        assert species.cases[0].parent is species.cases[1].parent

    def test_no_collections(self):
        document = DocumentController()
        context = document.create_data_context({"name": "Empty"})
        assert context.add_items([{"a": 1}]) is None

    def test_empty_list_records_nothing(self):
        _, context, _, _ = make_context()
        batches = []
        context.subscribe(lambda ctx, changes: batches.append(changes))
        assert context.add_items([]) == []
        assert batches == []


class TestSearch:
    def setup_method(self):
        _, self.context, _, self.species = make_context()
        self.context.add_items([
            {"Diet": "plants", "Name": "Elephant", "Mass": 5000},
            {"Diet": "meat",   "Name": "Lion",     "Mass": 190},
        ])

    def test_numeric(self):
        found = self.species.search_cases("Mass>1000")
        assert [c.values_by_name()["Name"] for c in found] == ["Elephant"]

    def test_string_equality(self):
        assert len(self.species.search_cases("Name==Lion")) == 1
        assert len(self.species.search_cases("Name!=Lion")) == 1

    def test_no_match_is_empty_list(self):
        assert self.species.search_cases("Mass<0") == []

    def test_malformed(self):
        assert self.species.search_cases("nonsense") is None
        assert self.species.search_cases("Color==red") is None


# ─────────────────────────────────────────────────────────────
# Delivery
# ─────────────────────────────────────────────────────────────

class TestDelivery:
    def setup_method(self):
        self.document, self.context, self.diets, self.species = make_context()
        self.batches = []
        self.sub = self.context.subscribe(
            lambda ctx, changes: self.batches.append([c.operation for c in changes])
        )

    def test_immediate_outside_cycle(self):
        self.context.apply_change({"operation": "createCases", "collection": self.diets})
        self.context.apply_change({"operation": "createCases", "collection": self.diets})
        assert self.batches == [["createCases"], ["createCases"]]

    def test_coalesced_inside_cycle(self):
        with self.document.update_cycle():
            with self.document.update_cycle():
                self.context.apply_change({"operation": "createCases", "collection": self.diets})
            self.context.apply_change({"operation": "createCases", "collection": self.diets})
            assert self.batches == []
        assert self.batches == [["createCases", "createCases"]]

    def test_cancel_is_idempotent(self):
        assert self.sub.active
        self.sub.cancel()
        self.sub.cancel()
        assert not self.sub.active
        assert self.context.subscriber_count == 0

    def test_listener_error_does_not_block_others(self):
        seen = []

        def broken(ctx, changes):
            raise RuntimeError("boom")

        self.context.subscribe(broken)
        self.context.subscribe(lambda ctx, changes: seen.append(len(changes)))
        self.context.apply_change({"operation": "createCases", "collection": self.diets})
        assert seen == [1]

    def test_contexts_signal_deferred_in_cycle(self):
        signals = []
        with self.document.observe_contexts(lambda doc: signals.append(len(doc.contexts))):
            with self.document.update_cycle():
                self.document.create_data_context({"name": "A"})
                self.document.create_data_context({"name": "B"})
                assert signals == []
            assert signals == [3]
        self.document.create_data_context({"name": "C"})
        assert signals == [3]

    def test_destroy_unbinds_frames(self):
        frame = self.document.create_interactive_frame(context=self.context)
        self.context.destroy()
        assert frame.context is None
        assert self.document.get_context_by_name("Mammals") is None


class TestDocument:
    def test_auto_context_names(self):
        document = DocumentController()
        first = document.create_data_context()
        second = document.create_data_context()
        assert (first.name, second.name) == ("Data_Context_1", "Data_Context_2")

    def test_duplicate_context_name(self):
        document = DocumentController()
        document.create_data_context({"name": "X"})
        assert document.create_data_context({"name": "X"}) is None

    def test_component_lookup_by_name_or_id(self):
        document = DocumentController()
        component = document.create_component({"type": "GraphView", "name": "g"})
        assert document.get_component_by_name("g") is component
        assert document.get_component_by_name(str(component.id)) is component
        component.destroy()
        assert document.components == []

    def test_globals(self):
        document = DocumentController()
        g = document.create_global("speed", 3)
        assert document.create_global("speed") is g
        assert document.get_global_by_name("speed").value == 3

    def test_user_log(self):
        document = DocumentController()
        document.log_user("hello")
        assert list(document.user_log) == ["hello"]

    def test_user_log_capped(self):
        document = DocumentController()
        for n in range(USER_LOG_LIMIT + 10):
            document.log_user(f"entry {n}")
        assert len(document.user_log) == USER_LOG_LIMIT
        assert document.user_log[0] == "entry 10"


# ─────────────────────────────────────────────────────────────
# Undo
# ─────────────────────────────────────────────────────────────

class TestUndoHistory:
    def test_undo_redo(self):
        trail = []
        history = UndoHistory()
        history.execute(UndoCommand(
            "step",
            execute=lambda: trail.append("do"),
            undo=lambda: trail.append("undo"),
            redo=lambda: trail.append("redo"),
        ))
        assert history.can_undo and not history.can_redo
        assert history.undo() and history.redo()
        assert trail == ["do", "undo", "redo"]

    def test_empty_stacks(self):
        history = UndoHistory()
        assert history.undo() is False
        assert history.redo() is False
        assert history.next_undo is None

    def test_execute_clears_redo(self):
        history = UndoHistory()
        history.execute(UndoCommand("a"))
        history.undo()
        history.execute(UndoCommand("b"))
        assert not history.can_redo
        assert history.next_undo.name == "b"
