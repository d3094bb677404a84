# tests/test_references.py — Card reference router tests
from types import SimpleNamespace

import pytest
from httpx import AsyncClient

import reference_graph
from errors import NotFound
from tests.conftest import get_auth_headers


async def _link(client, headers, source_id, target_id, reference_type="blocks"):
    return await client.post(
        f"/api/v1/cards/{source_id}/references",
        json={"target_card_id": target_id, "reference_type": reference_type},
        headers=headers,
    )


async def _version(client, headers, card_id):
    return (await client.get(f"/api/v1/cards/{card_id}", headers=headers)).json()["version"]


@pytest.mark.asyncio
class TestCreateReference:
    async def test_create_bumps_source_only(self, client: AsyncClient, human_user, make_card):
        a = await make_card("Schema migration")
        b = await make_card("Backfill job")
        headers = get_auth_headers(human_user)

        resp = await _link(client, headers, a.id, b.id)
        assert resp.status_code == 201
        data = resp.json()
        assert data["direction"] == "outgoing"
        assert data["label"] == "Blocks"
        assert data["source_title"] == "Schema migration"
        assert data["target_title"] == "Backfill job"

        assert await _version(client, headers, a.id) == 2
        assert await _version(client, headers, b.id) == 1

    async def test_self_reference_rejected(self, client: AsyncClient, human_user, make_card):
        a = await make_card()
        headers = get_auth_headers(human_user)
        resp = await _link(client, headers, a.id, a.id)
        assert resp.status_code == 400
        assert "self-reference" in resp.json()["detail"]
        assert await _version(client, headers, a.id) == 1

    async def test_unknown_type_rejected(self, client: AsyncClient, human_user, make_card):
        a = await make_card()
        b = await make_card("Other")
        resp = await _link(client, get_auth_headers(human_user), a.id, b.id, "depends_on")
        assert resp.status_code == 400

    async def test_missing_target(self, client: AsyncClient, human_user, make_card):
        a = await make_card()
        resp = await _link(client, get_auth_headers(human_user), a.id, 8080)
        assert resp.status_code == 404

    async def test_duplicate_edge_rejected(self, client: AsyncClient, human_user, make_card):
        a = await make_card()
        b = await make_card("Other")
        headers = get_auth_headers(human_user)
        assert (await _link(client, headers, a.id, b.id)).status_code == 201

        dup = await _link(client, headers, a.id, b.id)
        assert dup.status_code == 409
        assert await _version(client, headers, a.id) == 2

        other_type = await _link(client, headers, a.id, b.id, "relates_to")
        assert other_type.status_code == 201

    async def test_reverse_edge_is_independent(self, client: AsyncClient, human_user, make_card):
        a = await make_card()
        b = await make_card("Other")
        headers = get_auth_headers(human_user)
        assert (await _link(client, headers, a.id, b.id, "blocks")).status_code == 201
        assert (await _link(client, headers, b.id, a.id, "blocks")).status_code == 201


@pytest.mark.asyncio
async def test_list_references_both_directions(client: AsyncClient, human_user, make_card):
    a = await make_card("API")
    b = await make_card("UI")
    c = await make_card("Docs")
    headers = get_auth_headers(human_user)
    await _link(client, headers, a.id, b.id, "blocks")
    await _link(client, headers, c.id, b.id, "parent_of")

    resp = await client.get(f"/api/v1/cards/{b.id}/references", headers=headers)
    assert resp.status_code == 200
    data = resp.json()
    assert data["card_id"] == b.id
    assert data["outgoing"] == []

    incoming = data["incoming"]
    assert [r["source_card_id"] for r in incoming] == [a.id, c.id]
    assert [r["label"] for r in incoming] == ["Blocked by", "Child of"]
    assert [r["source_title"] for r in incoming] == ["API", "Docs"]
    assert all(r["direction"] == "incoming" for r in incoming)

    outgoing = (await client.get(f"/api/v1/cards/{a.id}/references", headers=headers)).json()["outgoing"]
    assert len(outgoing) == 1
    assert outgoing[0]["target_title"] == "UI"
    assert outgoing[0]["label"] == "Blocks"


@pytest.mark.asyncio
async def test_delete_reference(client: AsyncClient, human_user, make_card):
    a = await make_card()
    b = await make_card("Other")
    headers = get_auth_headers(human_user)
    ref_id = (await _link(client, headers, a.id, b.id)).json()["id"]

    wrong = await client.delete(f"/api/v1/cards/{b.id}/references/{ref_id}", headers=headers)
    assert wrong.status_code == 404

    resp = await client.delete(f"/api/v1/cards/{a.id}/references/{ref_id}", headers=headers)
    assert resp.status_code == 200
    assert resp.json() == {"success": True, "reference_id": ref_id}
    assert await _version(client, headers, a.id) == 3
    assert await _version(client, headers, b.id) == 1

    listing = (await client.get(f"/api/v1/cards/{a.id}/references", headers=headers)).json()
    assert listing["outgoing"] == []

    gone = await client.delete(f"/api/v1/cards/{a.id}/references/{ref_id}", headers=headers)
    assert gone.status_code == 404


@pytest.mark.asyncio
async def test_reference_types(client: AsyncClient, human_user):
    resp = await client.get("/api/v1/reference-types", headers=get_auth_headers(human_user))
    assert resp.status_code == 200
    types = {t["type"]: t for t in resp.json()["reference_types"]}
    assert len(types) == 11
    assert types["blocks"]["inverse_label"] == "Blocked by"
    assert types["duplicates"]["label"] == "Duplicates"


def test_every_type_has_labels():
    for rt in reference_graph.ReferenceType:
        assert reference_graph.label_for(rt.value, reference_graph.OUTGOING)
        assert reference_graph.label_for(rt.value, reference_graph.INCOMING)


@pytest.mark.asyncio
async def test_edge_to_vanished_card_is_not_found(db_session, make_card, monkeypatch):
    source = await make_card()
    source_id = source.id
    real_get_card = reference_graph.get_card

    async def lookup_with_stale_target(db, card_id):
        if card_id == 999:
            return SimpleNamespace(id=999, title="Gone")
        return await real_get_card(db, card_id)

    monkeypatch.setattr(reference_graph, "get_card", lookup_with_stale_target)
    with pytest.raises(NotFound):
        await reference_graph.create_reference(db_session, source_id, 999, "blocks")
    monkeypatch.undo()

    stored = await reference_graph.get_card(db_session, source_id)
    assert stored.version == 1
