# tests/test_search.py — Card listing and full-text search tests
import pytest
from httpx import AsyncClient

import card_engine
from card_engine import CardPatch
from card_search import CardFilters, list_cards
from errors import InvalidArgument
from tests.conftest import get_auth_headers


@pytest.mark.asyncio
async def test_filter_scan_orders_by_priority_then_newest(db_session, make_card):
    low = await make_card("Low", priority=10)
    high = await make_card("High", priority=90)
    older = await make_card("Older", priority=50)
    newer = await make_card("Newer", priority=50)

    cards = await list_cards(db_session, CardFilters())
    assert [c.id for c in cards] == [high.id, newer.id, older.id, low.id]


@pytest.mark.asyncio
async def test_filters_are_anded(db_session, make_card):
    bug = await make_card("Crash", card_type="bug", status="in_progress")
    await make_card("Crash too", card_type="bug")
    await make_card("Chore", card_type="chore", status="in_progress")

    cards = await list_cards(db_session, CardFilters(type="bug", status="in_progress"))
    assert [c.id for c in cards] == [bug.id]

    assert await list_cards(db_session, CardFilters(priority=77)) == []


@pytest.mark.asyncio
async def test_title_match_outranks_description_match(client: AsyncClient, human_user, make_card):
    in_description = await make_card("Refactor session store", description="occasional deadlock under load")
    in_title = await make_card("Deadlock in worker pool", description="threads hang")
    for filler in ("Dark mode", "Export to CSV", "Onboarding copy"):
        await make_card(filler, description="unrelated work")

    resp = await client.get(
        "/api/v1/cards", params={"search": "deadlock"}, headers=get_auth_headers(human_user),
    )
    assert resp.status_code == 200
    assert [c["id"] for c in resp.json()] == [in_title.id, in_description.id]


@pytest.mark.asyncio
async def test_search_ignores_other_filters(db_session, make_card):
    done = await make_card("Flaky test", status="done")
    cards = await list_cards(db_session, CardFilters(search="flaky", status="backlog"))
    assert [c.id for c in cards] == [done.id]


@pytest.mark.asyncio
async def test_search_follows_updates(db_session, human_user, make_card):
    card = await make_card("Memory leak", description="grows over time")
    await card_engine.update_card(db_session, card.id, CardPatch(title="Slow startup"), changed_by=human_user.id)

    assert await list_cards(db_session, CardFilters(search="leak")) == []
    found = await list_cards(db_session, CardFilters(search="startup"))
    assert [c.id for c in found] == [card.id]


@pytest.mark.asyncio
async def test_cleared_description_no_longer_matches(db_session, human_user, make_card):
    card = await make_card("Cache", description="eviction is broken")
    await card_engine.update_card(db_session, card.id, CardPatch(description=None), changed_by=human_user.id)
    assert await list_cards(db_session, CardFilters(search="eviction")) == []


@pytest.mark.asyncio
async def test_search_without_matches(client: AsyncClient, human_user, make_card):
    await make_card("Something")
    resp = await client.get(
        "/api/v1/cards", params={"search": "nonexistentterm"}, headers=get_auth_headers(human_user),
    )
    assert resp.status_code == 200
    assert resp.json() == []


@pytest.mark.asyncio
async def test_malformed_query_is_invalid_argument(db_session, make_card):
    await make_card("Something")
    with pytest.raises(InvalidArgument):
        await list_cards(db_session, CardFilters(search='"unterminated'))


@pytest.mark.asyncio
async def test_malformed_query_over_http(client: AsyncClient, human_user, make_card):
    await make_card("Something")
    resp = await client.get(
        "/api/v1/cards", params={"search": "AND OR"}, headers=get_auth_headers(human_user),
    )
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_list_cards_by_id_over_http(client: AsyncClient, human_user, make_card):
    await make_card("One")
    two = await make_card("Two")
    resp = await client.get("/api/v1/cards", params={"id": two.id}, headers=get_auth_headers(human_user))
    assert [c["title"] for c in resp.json()] == ["Two"]
