# tests/test_cards.py — Card CRUD, moves, members, attachments and checklists
import asyncio
import threading

import pytest
from httpx import AsyncClient

import blob_store
from tests.conftest import (
    get_auth_headers, create_board, create_list, create_card, add_member,
)


async def _board_with_lists(client, user, *titles):
    board = await create_board(client, user)
    lists = [
        await create_list(client, user, board["id"], title, position=i)
        for i, title in enumerate(titles)
    ]
    return board, lists


async def _titles(client, user, board_id):
    resp = await client.get(f"/api/boards/{board_id}", headers=get_auth_headers(user))
    return {
        lst["title"]: [(c["title"], c["position"]) for c in lst["cards"]]
        for lst in resp.json()["board"]["lists"]
    }


@pytest.mark.asyncio
class TestCardCrud:
    async def test_create_defaults_and_event(self, client: AsyncClient, alice, watch_board):
        board, (todo,) = await _board_with_lists(client, alice, "Todo")
        ws = watch_board(board["id"])

        card = await create_card(client, alice, todo["id"], "Task")
        assert card["priority"] == "medium"
        assert card["position"] == 0
        assert card["board_id"] == board["id"]
        assert card["comment_count"] == 0

        event = ws.of_type("card-created")[0]
        assert event["list_id"] == todo["id"]
        assert event["card"]["id"] == card["id"]

    async def test_create_rejects_mismatched_board(self, client: AsyncClient, alice):
        board, (todo,) = await _board_with_lists(client, alice, "Todo")
        other = await create_board(client, alice, title="Other")

        resp = await client.post(
            "/api/cards",
            json={"title": "Task", "listId": todo["id"], "boardId": other["id"]},
            headers=get_auth_headers(alice),
        )
        assert resp.status_code == 400

    async def test_create_in_missing_list(self, client: AsyncClient, alice):
        resp = await client.post(
            "/api/cards",
            json={"title": "Task", "listId": "nope"},
            headers=get_auth_headers(alice),
        )
        assert resp.status_code == 404
        assert resp.json()["message"] == "List not found"

    async def test_create_rejects_unknown_priority(self, client: AsyncClient, alice):
        board, (todo,) = await _board_with_lists(client, alice, "Todo")
        resp = await client.post(
            "/api/cards",
            json={"title": "Task", "listId": todo["id"], "priority": "urgent"},
            headers=get_auth_headers(alice),
        )
        assert resp.status_code == 400

    async def test_get_card_detail(self, client: AsyncClient, alice):
        board, (todo,) = await _board_with_lists(client, alice, "Todo")
        card = await create_card(client, alice, todo["id"], "Task")
        await client.post(
            "/api/comments",
            json={"cardId": card["id"], "text": "first!"},
            headers=get_auth_headers(alice),
        )

        resp = await client.get(f"/api/cards/{card['id']}", headers=get_auth_headers(alice))
        assert resp.status_code == 200
        detail = resp.json()["card"]
        assert detail["list_title"] == "Todo"
        assert detail["board_title"] == board["title"]
        assert detail["comment_count"] == 1
        assert detail["comments"][0]["text"] == "first!"

    async def test_stranger_cannot_read(self, client: AsyncClient, alice, bob):
        board, (todo,) = await _board_with_lists(client, alice, "Todo")
        card = await create_card(client, alice, todo["id"], "Task")
        resp = await client.get(f"/api/cards/{card['id']}", headers=get_auth_headers(bob))
        assert resp.status_code == 403

    async def test_partial_update_with_camel_case(self, client: AsyncClient, alice, watch_board):
        board, (todo,) = await _board_with_lists(client, alice, "Todo")
        card = await create_card(client, alice, todo["id"], "Task")
        ws = watch_board(board["id"])

        resp = await client.put(
            f"/api/cards/{card['id']}",
            json={"priority": "critical", "dueDate": "2026-01-15T12:00:00+00:00"},
            headers=get_auth_headers(alice),
        )
        assert resp.status_code == 200
        updated = resp.json()["card"]
        assert updated["priority"] == "critical"
        assert updated["due_date"].startswith("2026-01-15T12:00:00")
        assert updated["title"] == "Task"
        assert ws.of_type("card-updated")[0]["card"]["priority"] == "critical"

        activity = await client.get(f"/api/boards/{board['id']}/activity", headers=get_auth_headers(alice))
        entry = activity.json()["activities"][0]
        assert entry["type"] == "card_updated"
        assert entry["old_value"]["priority"] == "medium"
        assert entry["new_value"]["priority"] == "critical"
        assert set(entry["old_value"]) == set(entry["new_value"]) == {"due_date", "priority"}

    async def test_untracked_update_records_no_snapshot(self, client: AsyncClient, alice):
        board, (todo,) = await _board_with_lists(client, alice, "Todo")
        card = await create_card(client, alice, todo["id"], "Task")
        headers = get_auth_headers(alice)

        resp = await client.put(
            f"/api/cards/{card['id']}", json={"cover": "#ff0000", "completed": True}, headers=headers,
        )
        assert resp.status_code == 200

        activity = await client.get(f"/api/boards/{board['id']}/activity", headers=headers)
        entry = activity.json()["activities"][0]
        assert entry["type"] == "card_updated"
        assert entry["old_value"] is None
        assert entry["new_value"] is None

    async def test_clear_due_date(self, client: AsyncClient, alice):
        board, (todo,) = await _board_with_lists(client, alice, "Todo")
        card = await create_card(client, alice, todo["id"], "Task")
        headers = get_auth_headers(alice)
        await client.put(f"/api/cards/{card['id']}", json={"dueDate": "2026-01-15T12:00:00Z"}, headers=headers)

        resp = await client.put(f"/api/cards/{card['id']}", json={"dueDate": None}, headers=headers)
        assert resp.json()["card"]["due_date"] is None

    async def test_delete_archives(self, client: AsyncClient, alice, watch_board):
        board, (todo,) = await _board_with_lists(client, alice, "Todo")
        card = await create_card(client, alice, todo["id"], "Task")
        ws = watch_board(board["id"])
        headers = get_auth_headers(alice)

        resp = await client.delete(f"/api/cards/{card['id']}", headers=headers)
        assert resp.status_code == 200
        event = ws.of_type("card-deleted")[0]
        assert (event["card_id"], event["list_id"]) == (card["id"], todo["id"])
        assert (await client.get(f"/api/cards/{card['id']}", headers=headers)).status_code == 404


@pytest.mark.asyncio
class TestCardMove:
    async def test_move_across_lists(self, client: AsyncClient, alice, watch_board):
        board, (a, b) = await _board_with_lists(client, alice, "A", "B")
        a_cards = [await create_card(client, alice, a["id"], f"a{i}", position=i) for i in range(5)]
        for i in range(3):
            await create_card(client, alice, b["id"], f"b{i}", position=i)
        ws = watch_board(board["id"])

        resp = await client.put(
            f"/api/cards/{a_cards[2]['id']}/move",
            json={"listId": b["id"], "position": 1},
            headers=get_auth_headers(alice),
        )
        assert resp.status_code == 200
        assert resp.json()["card"]["list_id"] == b["id"]

        layout = await _titles(client, alice, board["id"])
        assert layout["A"] == [("a0", 0), ("a1", 1), ("a3", 2), ("a4", 3)]
        assert layout["B"] == [("b0", 0), ("a2", 1), ("b1", 2), ("b2", 3)]

        event = ws.of_type("card-moved")[0]
        assert event["old_list_id"] == a["id"]
        assert event["new_list_id"] == b["id"]
        assert event["card"]["position"] == 1

    async def test_move_to_other_board_rejected(self, client: AsyncClient, alice):
        board, (a,) = await _board_with_lists(client, alice, "A")
        other, (x,) = await _board_with_lists(client, alice, "X")
        card = await create_card(client, alice, a["id"], "Task")

        resp = await client.put(
            f"/api/cards/{card['id']}/move",
            json={"listId": x["id"], "position": 0},
            headers=get_auth_headers(alice),
        )
        assert resp.status_code == 400
        assert resp.json()["message"] == "Target list belongs to another board"

    async def test_negative_position_rejected(self, client: AsyncClient, alice):
        board, (a,) = await _board_with_lists(client, alice, "A")
        card = await create_card(client, alice, a["id"], "Task")
        resp = await client.put(
            f"/api/cards/{card['id']}/move",
            json={"listId": a["id"], "position": -1},
            headers=get_auth_headers(alice),
        )
        assert resp.status_code == 400

    async def test_concurrent_moves_then_reindex(self, client: AsyncClient, alice):
        board, (a, b) = await _board_with_lists(client, alice, "A", "B")
        a_cards = [await create_card(client, alice, a["id"], f"a{i}", position=i) for i in range(3)]
        b_card = await create_card(client, alice, b["id"], "b0")
        headers = get_auth_headers(alice)

        results = await asyncio.gather(*[
            client.put(
                f"/api/cards/{card['id']}/move",
                json={"listId": b["id"], "position": 0},
                headers=headers,
            )
            for card in a_cards
        ])
        assert [r.status_code for r in results] == [200, 200, 200]

        layout = await _titles(client, alice, board["id"])
        assert layout["A"] == []
        assert sorted(title for title, _ in layout["B"]) == ["a0", "a1", "a2", "b0"]

        order = [c["id"] for c in a_cards] + [b_card["id"]]
        resp = await client.put(f"/api/lists/{b['id']}/cards/reorder", json={"cardIds": order}, headers=headers)
        assert resp.status_code == 200

        layout = await _titles(client, alice, board["id"])
        assert layout["B"] == [("a0", 0), ("a1", 1), ("a2", 2), ("b0", 3)]


@pytest.mark.asyncio
class TestCardMembers:
    async def test_assign_notifies_assignee(self, client: AsyncClient, alice, bob, watch_board):
        board, (todo,) = await _board_with_lists(client, alice, "Todo")
        await add_member(client, alice, board["id"], bob)
        card = await create_card(client, alice, todo["id"], "Task")
        ws = watch_board(board["id"])
        bob_socket = watch_board("elsewhere", user_id=bob.id)

        resp = await client.post(f"/api/cards/{card['id']}/members/{bob.id}", headers=get_auth_headers(alice))
        assert resp.status_code == 200
        assert [m["id"] for m in resp.json()["card"]["members"]] == [bob.id]
        assert ws.of_type("card-updated")

        pushed = bob_socket.of_type("notification")
        assert pushed[0]["notification"]["type"] == "card_assigned"

        inbox = await client.get("/api/notifications", headers=get_auth_headers(bob))
        types = [n["type"] for n in inbox.json()["notifications"]]
        assert "card_assigned" in types

    async def test_assign_via_body_and_self_assign_is_silent(self, client: AsyncClient, alice):
        board, (todo,) = await _board_with_lists(client, alice, "Todo")
        card = await create_card(client, alice, todo["id"], "Task")
        headers = get_auth_headers(alice)

        resp = await client.post(f"/api/cards/{card['id']}/members", json={"userId": alice.id}, headers=headers)
        assert resp.status_code == 200
        assert [m["id"] for m in resp.json()["card"]["members"]] == [alice.id]

        inbox = await client.get("/api/notifications", headers=headers)
        assert inbox.json()["notifications"] == []

    async def test_assign_non_member_rejected(self, client: AsyncClient, alice, bob):
        board, (todo,) = await _board_with_lists(client, alice, "Todo")
        card = await create_card(client, alice, todo["id"], "Task")
        resp = await client.post(f"/api/cards/{card['id']}/members/{bob.id}", headers=get_auth_headers(alice))
        assert resp.status_code == 400
        assert resp.json()["message"] == "User is not a member of this board"

    async def test_assign_twice_is_idempotent(self, client: AsyncClient, alice, bob):
        board, (todo,) = await _board_with_lists(client, alice, "Todo")
        await add_member(client, alice, board["id"], bob)
        card = await create_card(client, alice, todo["id"], "Task")
        headers = get_auth_headers(alice)

        await client.post(f"/api/cards/{card['id']}/members/{bob.id}", headers=headers)
        resp = await client.post(f"/api/cards/{card['id']}/members/{bob.id}", headers=headers)
        assert [m["id"] for m in resp.json()["card"]["members"]] == [bob.id]

        count = await client.get("/api/notifications/count", headers=get_auth_headers(bob))
        # board invite + one assignment
        assert count.json()["unread_count"] == 2

    async def test_unassign(self, client: AsyncClient, alice, bob):
        board, (todo,) = await _board_with_lists(client, alice, "Todo")
        await add_member(client, alice, board["id"], bob)
        card = await create_card(client, alice, todo["id"], "Task")
        headers = get_auth_headers(alice)
        await client.post(f"/api/cards/{card['id']}/members/{bob.id}", headers=headers)

        resp = await client.delete(f"/api/cards/{card['id']}/members/{bob.id}", headers=headers)
        assert resp.status_code == 200
        assert resp.json()["card"]["members"] == []


@pytest.mark.asyncio
class TestAttachments:
    async def test_upload_and_download(self, client: AsyncClient, alice, watch_board):
        board, (todo,) = await _board_with_lists(client, alice, "Todo")
        card = await create_card(client, alice, todo["id"], "Task")
        ws = watch_board(board["id"])

        resp = await client.post(
            f"/api/cards/{card['id']}/attachments",
            files={"file": ("notes.txt", b"hello board", "text/plain")},
            headers=get_auth_headers(alice),
        )
        assert resp.status_code == 200
        attachment = resp.json()["card"]["attachments"][0]
        assert attachment["name"] == "notes.txt"
        assert attachment["size"] == len(b"hello board")
        assert attachment["mime_type"] == "text/plain"
        assert attachment["uploader_id"] == alice.id
        assert attachment["url"].startswith("/uploads/attachments/attachment-")
        assert attachment["url"].endswith(".txt")
        assert ws.of_type("card-updated")

        download = await client.get(attachment["url"])
        assert download.status_code == 200
        assert download.content == b"hello board"

    async def test_upload_is_written_in_a_worker_thread(self, client: AsyncClient, alice, monkeypatch):
        board, (todo,) = await _board_with_lists(client, alice, "Todo")
        card = await create_card(client, alice, todo["id"], "Task")
        loop_thread = threading.get_ident()
        writers = []
        original = blob_store._write

        def recording_write(*args):
            writers.append(threading.get_ident())
            original(*args)

        monkeypatch.setattr(blob_store, "_write", recording_write)
        resp = await client.post(
            f"/api/cards/{card['id']}/attachments",
            files={"file": ("big.bin", b"x" * 4096, "application/octet-stream")},
            headers=get_auth_headers(alice),
        )
        assert resp.status_code == 200
        assert len(writers) == 1
        assert writers[0] != loop_thread

    async def test_empty_upload_rejected(self, client: AsyncClient, alice):
        board, (todo,) = await _board_with_lists(client, alice, "Todo")
        card = await create_card(client, alice, todo["id"], "Task")
        resp = await client.post(
            f"/api/cards/{card['id']}/attachments",
            files={"file": ("empty.txt", b"", "text/plain")},
            headers=get_auth_headers(alice),
        )
        assert resp.status_code == 400
        assert resp.json()["message"] == "No file uploaded"

    async def test_missing_file_field(self, client: AsyncClient, alice):
        board, (todo,) = await _board_with_lists(client, alice, "Todo")
        card = await create_card(client, alice, todo["id"], "Task")
        resp = await client.post(
            f"/api/cards/{card['id']}/attachments",
            files={"other": ("x.txt", b"x", "text/plain")},
            headers=get_auth_headers(alice),
        )
        assert resp.status_code == 400


@pytest.mark.asyncio
class TestChecklists:
    async def test_checklist_lifecycle(self, client: AsyncClient, alice, bob):
        board, (todo,) = await _board_with_lists(client, alice, "Todo")
        await add_member(client, alice, board["id"], bob)
        card = await create_card(client, alice, todo["id"], "Task")

        resp = await client.post(
            f"/api/cards/{card['id']}/checklists",
            json={"title": "QA", "items": [{"text": "unit"}, {"text": "e2e", "completed": True}]},
            headers=get_auth_headers(alice),
        )
        assert resp.status_code == 200
        checklist = resp.json()["card"]["checklists"][0]
        unit, e2e = checklist["items"]
        assert unit["completed"] is False and unit["completed_by"] is None
        assert e2e["completed_by"] == alice.id and e2e["completed_at"]

        # Bob completes "unit"; "e2e" keeps its original completer
        resp = await client.put(
            f"/api/cards/{card['id']}/checklists/{checklist['id']}",
            json={"items": [
                {"id": unit["id"], "text": "unit", "completed": True},
                {"id": e2e["id"], "text": "e2e", "completed": True},
            ]},
            headers=get_auth_headers(bob),
        )
        assert resp.status_code == 200
        unit, e2e = resp.json()["card"]["checklists"][0]["items"]
        assert unit["completed_by"] == bob.id
        assert e2e["completed_by"] == alice.id

        resp = await client.delete(
            f"/api/cards/{card['id']}/checklists/{checklist['id']}",
            headers=get_auth_headers(alice),
        )
        assert resp.status_code == 200
        assert resp.json()["card"]["checklists"] == []

    async def test_unknown_checklist(self, client: AsyncClient, alice):
        board, (todo,) = await _board_with_lists(client, alice, "Todo")
        card = await create_card(client, alice, todo["id"], "Task")
        resp = await client.put(
            f"/api/cards/{card['id']}/checklists/nope",
            json={"title": "x"},
            headers=get_auth_headers(alice),
        )
        assert resp.status_code == 404
        assert resp.json()["message"] == "Checklist not found"
