"""
Testes do quadro ordenado do PCS.

Cobre:
    - OrderedBoard.add / update / remove / toggle_completion
    - OrderedBoard.move     : renumeração densa, limites do índice, gravação em lote
    - falha no movimento    : recarga completa do quadro
    - somente leitura       : alterações viram no-op
    - DragResult.from_payload e apply_drag
    - build_mindmap_nodes
"""

import random

import pytest

from conftest import InMemoryStore, make_entry, PATIENT_ID
from utils.pcs_board import (
    OrderedBoard,
    DragResult,
    BoardValidationError,
    EntryNotFound,
    build_mindmap_nodes,
    CATEGORIES,
)
from utils.permissions import RoleBasedPolicy


def loaded_board(store, user=None, **kwargs):
    board = OrderedBoard(store, PATIENT_ID, user=user, **kwargs)
    assert board.load()
    return board


def titles(board, category):
    return [e["title"] for e in board.entries_by_category(category)]


def indices(board, category):
    return [e["order_index"] for e in board.entries_by_category(category)]


@pytest.fixture
def seeded_store():
    return InMemoryStore([
        make_entry("a", "Extração", "fundamental", 0),
        make_entry("b", "Limpeza", "fundamental", 1),
        make_entry("c", "Canal", "fundamental", 2),
        make_entry("d", "Clareamento", "important", 0),
        make_entry("e", "Faceta", "important", 1),
        make_entry("f", "Fio dental", "care", 0),
    ])


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# add / update / remove
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestAdd:

    def test_first_entry_gets_index_zero(self, store, user):
        board = loaded_board(store, user)
        entry = board.add("Extração", None, "fundamental")
        assert entry["order_index"] == 0
        assert board.get(entry["id"]) is entry

    def test_appends_after_max_index(self, user):
        store = InMemoryStore([make_entry("a", "A", "care", 0), make_entry("b", "B", "care", 4)])
        board = loaded_board(store, user)
        assert board.add("C", None, "care")["order_index"] == 5

    def test_other_categories_do_not_count(self, seeded_store, user):
        board = loaded_board(seeded_store, user)
        assert board.add("Flúor", None, "care")["order_index"] == 1

    def test_strips_fields_and_empty_description_becomes_none(self, store, user):
        board = loaded_board(store, user)
        entry = board.add("  Limpeza  ", "   ", "fundamental")
        assert entry["title"] == "Limpeza"
        assert entry["description"] is None

    def test_blank_title_rejected(self, store, user):
        board = loaded_board(store, user)
        with pytest.raises(BoardValidationError):
            board.add("   ", "desc", "fundamental")
        assert store.rows == {}

    def test_unknown_category_rejected(self, store, user):
        board = loaded_board(store, user)
        with pytest.raises(BoardValidationError):
            board.add("Extração", None, "urgent")

    def test_writes_one_audit_record(self, store, user):
        board = loaded_board(store, user)
        board.add("Extração", None, "fundamental")
        assert len(store.logs) == 1
        assert store.logs[0]["action"] == "create"
        assert store.logs[0]["user_id"] == "user-1"
        assert "Extração" in store.logs[0]["description"]

    def test_store_failure_leaves_cache_unchanged(self, store, user):
        board = loaded_board(store, user)
        store.fail_writes = True
        assert board.add("Extração", None, "fundamental") is None
        assert board.entries == []
        assert store.logs == []


class TestUpdate:

    def test_updates_title_and_description_only(self, seeded_store, user):
        board = loaded_board(seeded_store, user)
        entry = board.update("b", "Limpeza profunda", "Com jato de bicarbonato")
        assert entry["title"] == "Limpeza profunda"
        assert entry["category"] == "fundamental"
        assert entry["order_index"] == 1
        assert seeded_store.rows["b"]["description"] == "Com jato de bicarbonato"
        assert seeded_store.logs[-1]["action"] == "update"

    def test_blank_title_rejected(self, seeded_store, user):
        board = loaded_board(seeded_store, user)
        with pytest.raises(BoardValidationError):
            board.update("b", "", None)
        assert seeded_store.rows["b"]["title"] == "Limpeza"

    def test_unknown_entry(self, seeded_store, user):
        board = loaded_board(seeded_store, user)
        with pytest.raises(EntryNotFound):
            board.update("zzz", "Novo", None)


class TestRemove:

    def test_removes_and_keeps_gap(self, seeded_store, user):
        board = loaded_board(seeded_store, user)
        removed = board.remove("b")
        assert removed["title"] == "Limpeza"
        assert "b" not in seeded_store.rows
        assert indices(board, "fundamental") == [0, 2]
        assert seeded_store.logs[-1]["action"] == "delete"

    def test_next_move_closes_gap(self, seeded_store, user):
        board = loaded_board(seeded_store, user)
        board.remove("b")
        board.move("c", "fundamental", 0)
        assert titles(board, "fundamental") == ["Canal", "Extração"]
        assert indices(board, "fundamental") == [0, 1]

    def test_unknown_entry(self, seeded_store, user):
        board = loaded_board(seeded_store, user)
        with pytest.raises(EntryNotFound):
            board.remove("zzz")


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# toggle_completion
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestToggleCompletion:

    def test_completing_stamps_time_and_user(self, seeded_store, user):
        board = loaded_board(seeded_store, user)
        entry = board.toggle_completion("a")
        assert entry["is_completed"] is True
        assert entry["completed_at"] is not None
        assert entry["completed_by"] == "user-1"
        assert seeded_store.rows["a"]["is_completed"] is True
        assert seeded_store.logs[-1]["action"] == "complete"

    def test_toggle_twice_restores_and_clears_stamps(self, seeded_store, user):
        board = loaded_board(seeded_store, user)
        board.toggle_completion("a")
        entry = board.toggle_completion("a")
        assert entry["is_completed"] is False
        assert entry["completed_at"] is None
        assert entry["completed_by"] is None
        assert seeded_store.logs[-1]["action"] == "reopen"

    def test_store_failure_keeps_state(self, seeded_store, user):
        board = loaded_board(seeded_store, user)
        seeded_store.fail_writes = True
        assert board.toggle_completion("a") is None
        assert board.get("a")["is_completed"] is False


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# move
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestMove:

    def test_extraction_cleaning_scenario(self, store, user):
        board = loaded_board(store, user)
        extraction = board.add("Extração", None, "fundamental")
        cleaning = board.add("Limpeza", None, "fundamental")
        assert (extraction["order_index"], cleaning["order_index"]) == (0, 1)

        board.move(extraction["id"], "important", 0)

        assert titles(board, "fundamental") == ["Limpeza"]
        assert indices(board, "fundamental") == [0]
        assert titles(board, "important") == ["Extração"]
        assert indices(board, "important") == [0]
        assert store.order_of("fundamental") == [("Limpeza", 0)]
        assert store.order_of("important") == [("Extração", 0)]

    def test_reorder_within_category(self, seeded_store, user):
        board = loaded_board(seeded_store, user)
        board.move("c", "fundamental", 0)
        assert titles(board, "fundamental") == ["Canal", "Extração", "Limpeza"]
        assert indices(board, "fundamental") == [0, 1, 2]

    @pytest.mark.parametrize("index, expected_position", [(-5, 0), (0, 0), (1, 1), (2, 2), (99, 2)])
    def test_destination_index_is_clamped(self, seeded_store, user, index, expected_position):
        board = loaded_board(seeded_store, user)
        board.move("f", "important", index)
        assert titles(board, "important").index("Fio dental") == expected_position

    @pytest.mark.parametrize("entry_id, category, index", [
        ("a", "care", 1), ("e", "fundamental", 0), ("b", "fundamental", 2), ("f", "important", 1),
    ])
    def test_every_category_stays_dense(self, seeded_store, user, entry_id, category, index):
        board = loaded_board(seeded_store, user)
        board.move(entry_id, category, index)
        for c in CATEGORIES:
            expected = list(range(len(board.entries_by_category(c))))
            assert indices(board, c) == expected
            assert [i for _, i in seeded_store.order_of(c)] == expected

    @pytest.mark.parametrize("seed", range(10))
    def test_random_sequences_keep_positions_dense(self, store, user, seed):
        rng = random.Random(seed)
        board = loaded_board(store, user)
        for step in range(300):
            action = rng.choice(["add", "add", "remove", "move", "move", "move"])
            if action == "add" or not board.entries:
                category = rng.choice(CATEGORIES)
                current = indices(board, category)
                expected = max(current) + 1 if current else 0
                entry = board.add(f"Entrada {seed}-{step}", None, category)
                assert entry["order_index"] == expected
            elif action == "remove":
                board.remove(rng.choice(board.entries)["id"])
            else:
                entry = rng.choice(board.entries)
                source = entry["category"]
                destination = rng.choice(CATEGORIES)
                others = [e for e in board.entries_by_category(destination) if e is not entry]
                requested = rng.randint(-2, len(others) + 2)
                expected = min(max(requested, 0), len(others))

                board.move(entry["id"], destination, requested)

                assert board.entries_by_category(destination)[expected] is entry
                assert store.rows[entry["id"]]["category"] == destination
                assert store.rows[entry["id"]]["order_index"] == expected
                for category in {source, destination}:
                    dense = list(range(len(board.entries_by_category(category))))
                    assert indices(board, category) == dense
                    assert [i for _, i in store.order_of(category)] == dense

    def test_persists_every_changed_row_in_one_call(self, seeded_store, user):
        board = loaded_board(seeded_store, user)
        board.move("a", "important", 0)
        assert len(seeded_store.position_calls) == 1
        changed = {row[0] for row in seeded_store.position_calls[0]}
        # a muda de categoria; b, c sobem; d, e descem
        assert changed == {"a", "b", "c", "d", "e"}

    def test_noop_move_writes_nothing(self, seeded_store, user):
        board = loaded_board(seeded_store, user)
        entry = board.move("b", "fundamental", 1)
        assert entry["id"] == "b"
        assert seeded_store.position_calls == []
        assert seeded_store.logs == []

    def test_one_audit_record(self, seeded_store, user):
        board = loaded_board(seeded_store, user)
        board.move("a", "care", 0)
        assert [log["action"] for log in seeded_store.logs] == ["move"]

    def test_invalid_category(self, seeded_store, user):
        board = loaded_board(seeded_store, user)
        with pytest.raises(BoardValidationError):
            board.move("a", "other", 0)

    def test_failure_refetches_from_store(self, seeded_store, user):
        board = loaded_board(seeded_store, user)
        seeded_store.fail_positions = True
        assert board.move("a", "important", 0) is None
        assert titles(board, "fundamental") == ["Extração", "Limpeza", "Canal"]
        assert titles(board, "important") == ["Clareamento", "Faceta"]
        assert seeded_store.logs == []

    def test_failure_with_refetch_failure_restores_snapshot(self, seeded_store, user):
        board = loaded_board(seeded_store, user)
        seeded_store.fail_positions = True
        seeded_store.fail_list = True
        assert board.move("c", "care", 0) is None
        assert board.get("c")["category"] == "fundamental"
        assert board.get("c")["order_index"] == 2
        assert indices(board, "care") == [0]


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# somente leitura e política de permissão
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestReadOnly:

    def test_every_mutator_is_a_noop(self, seeded_store, user):
        board = loaded_board(seeded_store, user, read_only=True)
        before = {k: dict(v) for k, v in seeded_store.rows.items()}

        assert board.add("Nova", None, "care") is None
        assert board.update("a", "Outro", None) is None
        assert board.remove("a") is None
        assert board.toggle_completion("a") is None
        assert board.move("a", "care", 0) is None

        assert seeded_store.rows == before
        assert seeded_store.logs == []

    def test_noop_even_with_invalid_input(self, seeded_store):
        board = loaded_board(seeded_store, read_only=True)
        assert board.add("", None, "nope") is None

    def test_role_policy_denies_delete(self, seeded_store):
        policy = RoleBasedPolicy({"viewer": {"pcs:read"}, "user": {"pcs:update"}})
        viewer = loaded_board(seeded_store, {"id": "u2", "role": "viewer"}, policy=policy)
        assert viewer.remove("a") is None
        assert "a" in seeded_store.rows

        editor = loaded_board(seeded_store, {"id": "u3", "role": "user"}, policy=policy)
        assert editor.toggle_completion("a")["is_completed"] is True
        assert editor.remove("a") is None


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# DragResult
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestDragResult:

    def test_library_payload(self):
        drag = DragResult.from_payload({
            "draggableId": "a",
            "source": {"droppableId": "fundamental", "index": 0},
            "destination": {"droppableId": "important", "index": "1"},
        })
        assert drag == DragResult("a", "fundamental", 0, "important", 1)
        assert drag.dropped

    def test_flat_payload_without_destination(self):
        drag = DragResult.from_payload({"moved_id": "a", "source_category": "care", "source_index": 2})
        assert not drag.dropped
        assert drag.destination_index is None

    @pytest.mark.parametrize("payload", [
        None,
        [],
        {"moved_id": "", "source_category": "care", "source_index": 0},
        {"moved_id": "a", "source_category": "nope", "source_index": 0},
        {"moved_id": "a", "source_category": "care", "source_index": "x"},
        {"moved_id": "a", "source_category": "care", "source_index": True},
        {"moved_id": "a", "source_category": "care", "source_index": 0,
         "destination_category": "other", "destination_index": 0},
        {"moved_id": "a", "source_category": "care", "source_index": 0,
         "destination_category": "care", "destination_index": None},
        {"draggableId": "a", "source": "fundamental", "destination": None},
        {"draggableId": "a", "source": ["fundamental", 0], "destination": None},
        {"draggableId": "a", "source": {"droppableId": "care", "index": 0}, "destination": "care"},
        {"draggableId": "a", "source": {"droppableId": "care", "index": 0}, "destination": [1]},
    ])
    def test_invalid_payloads(self, payload):
        with pytest.raises(BoardValidationError):
            DragResult.from_payload(payload)

    def test_apply_drag_moves_entry(self, seeded_store, user):
        board = loaded_board(seeded_store, user)
        board.apply_drag(DragResult("f", "care", 0, "fundamental", 1))
        assert titles(board, "fundamental") == ["Extração", "Fio dental", "Limpeza", "Canal"]

    def test_apply_drag_without_destination_is_ignored(self, seeded_store, user):
        board = loaded_board(seeded_store, user)
        assert board.apply_drag(DragResult("f", "care", 0)) is None
        assert seeded_store.position_calls == []

    def test_apply_drag_rejects_stale_source(self, seeded_store, user):
        board = loaded_board(seeded_store, user)
        with pytest.raises(BoardValidationError):
            board.apply_drag(DragResult("f", "important", 0, "fundamental", 0))


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# histórico e mapa mental
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_change_log_author_fallbacks(seeded_store):
    seeded_store.list_change_log = lambda patient_id, limit=50: [
        {"id": 1, "action": "move", "description": "x", "created_at": None,
         "first_name": "Ana", "last_name": "Souza", "email": "ana@almare.com"},
        {"id": 2, "action": "move", "description": "y", "created_at": None,
         "first_name": None, "last_name": None, "email": "bia@almare.com"},
        {"id": 3, "action": "move", "description": "z", "created_at": None,
         "first_name": None, "last_name": None, "email": None},
    ]
    board = OrderedBoard(seeded_store, PATIENT_ID)
    assert [log["user_name"] for log in board.change_log()] == ["Ana Souza", "bia@almare.com", "Sistema"]


class TestMindmap:

    def test_positions_by_column_and_row(self, seeded_store):
        board = loaded_board(seeded_store)
        nodes = {n["id"]: n for n in build_mindmap_nodes(board.entries)}
        assert (nodes["a"]["x"], nodes["a"]["y"]) == (100, 100)
        assert (nodes["c"]["x"], nodes["c"]["y"]) == (100, 340)
        assert (nodes["e"]["x"], nodes["e"]["y"]) == (400, 220)
        assert (nodes["f"]["x"], nodes["f"]["y"]) == (700, 100)

    def test_completed_entries_are_green_and_preview_is_truncated(self):
        entries = [make_entry("a", "Extração", completed=True, description="x" * 80)]
        node = build_mindmap_nodes(entries)[0]
        assert node["background"] == "#dcfce7"
        assert node["preview"] == "x" * 50 + "..."
