import pytest
from unittest.mock import AsyncMock, MagicMock

from hubspot_export.associations import BATCH_READ_OBJECT_TYPES, AssociationResolver, chunked
from hubspot_export.client import HubSpotClient
from hubspot_export.exceptions import ApiRequestError, AuthenticationError, AuthExpiredError


def _refs(n):
    return [{"toObjectId": i, "associationTypes": [{"category": "HUBSPOT_DEFINED", "typeId": 214}]}
            for i in range(1, n + 1)]


def _echo_batch(object_type, ids):
    return [{"id": object_id, "type": object_type} for object_id in ids]


def _fake_client(associations=None, batch_side_effect=None, listing_side_effect=None):
    client = MagicMock(spec=HubSpotClient)
    if listing_side_effect is not None:
        client.list_associations = AsyncMock(side_effect=listing_side_effect)
    else:
        client.list_associations = AsyncMock(return_value=associations or [])
    client.batch_read = AsyncMock(side_effect=batch_side_effect or _echo_batch)
    return client


def test_chunked_splits_in_order():
    assert chunked(["a", "b", "c", "d", "e"], 2) == [["a", "b"], ["c", "d"], ["e"]]
    assert chunked([], 100) == []


def test_dispatch_table_covers_all_engagement_types():
    assert set(BATCH_READ_OBJECT_TYPES) == {"notes", "calls", "meetings", "emails", "tasks"}


@pytest.mark.asyncio
async def test_no_associations_means_no_batch_reads(tokens):
    client = _fake_client([])
    result = await AssociationResolver(client, tokens).resolve("42", "notes")

    assert result == {"associations": [], "objects": []}
    client.list_associations.assert_awaited_once_with("42", "notes")
    client.batch_read.assert_not_awaited()


@pytest.mark.asyncio
async def test_250_ids_are_read_in_three_ordered_batches(tokens):
    refs = _refs(250)
    client = _fake_client(refs)

    result = await AssociationResolver(client, tokens).resolve("42", "emails")

    batches = [c.args for c in client.batch_read.await_args_list]
    assert [len(ids) for _type, ids in batches] == [100, 100, 50]
    assert all(object_type == "emails" for object_type, _ids in batches)
    assert batches[0][1][0] == "1" and batches[2][1][-1] == "250"
    assert len(result["objects"]) == 250
    assert result["associations"] == refs


@pytest.mark.asyncio
async def test_failed_batch_is_skipped(tokens):
    refs = _refs(250)
    client = _fake_client(refs, batch_side_effect=[
        _echo_batch("notes", [str(i) for i in range(1, 101)]),
        ApiRequestError("boom", status=500),
        _echo_batch("notes", [str(i) for i in range(201, 251)]),
    ])

    result = await AssociationResolver(client, tokens).resolve("42", "notes")

    assert client.batch_read.await_count == 3
    assert len(result["associations"]) == 250
    ids = [o["id"] for o in result["objects"]]
    assert len(ids) == 150
    assert "150" not in ids


@pytest.mark.asyncio
async def test_unknown_type_returns_raw_associations(tokens):
    refs = _refs(3)
    client = _fake_client(refs)

    result = await AssociationResolver(client, tokens).resolve("42", "quotes")

    assert result == {"associations": refs, "objects": []}
    client.batch_read.assert_not_awaited()


@pytest.mark.asyncio
async def test_dispatch_table_is_extensible(tokens):
    client = _fake_client(_refs(2))
    resolver = AssociationResolver(client, tokens, object_types={"quotes": "quotes"})

    result = await resolver.resolve("42", "quotes")

    client.batch_read.assert_awaited_once_with("quotes", ["1", "2"])
    assert len(result["objects"]) == 2


@pytest.mark.asyncio
async def test_401_while_listing_refreshes_and_retries_once(tokens):
    tokens.refresh = AsyncMock()
    refs = _refs(2)
    client = _fake_client(listing_side_effect=[AuthExpiredError("401"), refs])

    result = await AssociationResolver(client, tokens).resolve("42", "calls")

    tokens.refresh.assert_awaited_once()
    assert client.list_associations.await_count == 2
    assert result["associations"] == refs
    assert len(result["objects"]) == 2


@pytest.mark.asyncio
async def test_repeated_401_while_listing_gives_empty_result(tokens):
    tokens.refresh = AsyncMock()
    client = _fake_client(listing_side_effect=[AuthExpiredError("401"), AuthExpiredError("401"), _refs(1)])

    result = await AssociationResolver(client, tokens).resolve("42", "calls")

    assert result == {"associations": [], "objects": []}
    assert client.list_associations.await_count == 2
    assert tokens.refresh.await_count == 1


@pytest.mark.asyncio
async def test_401_on_a_batch_retries_that_batch(tokens):
    tokens.refresh = AsyncMock()
    client = _fake_client(_refs(2), batch_side_effect=[
        AuthExpiredError("401"),
        [{"id": "1"}, {"id": "2"}],
    ])

    result = await AssociationResolver(client, tokens).resolve("42", "tasks")

    assert client.list_associations.await_count == 1
    assert client.batch_read.await_count == 2
    assert result["objects"] == [{"id": "1"}, {"id": "2"}]


@pytest.mark.asyncio
async def test_listing_failure_returns_empty_result(tokens):
    client = _fake_client(listing_side_effect=[ApiRequestError("server error", status=502)])

    result = await AssociationResolver(client, tokens).resolve("42", "meetings")

    assert result == {"associations": [], "objects": []}
    client.batch_read.assert_not_awaited()


@pytest.mark.asyncio
async def test_failed_refresh_propagates(tokens):
    tokens.refresh = AsyncMock(side_effect=AuthenticationError("revoked"))
    client = _fake_client(listing_side_effect=[AuthExpiredError("401")])

    with pytest.raises(AuthenticationError):
        await AssociationResolver(client, tokens).resolve("42", "notes")
