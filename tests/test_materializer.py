"""Tests for golden record materialization."""

from __future__ import annotations

from datetime import UTC, datetime
from uuid import uuid4

import pytest
from conftest import InMemoryIdentityStore

from artgraph.errors import EntityTypeMismatchError
from artgraph.golden.materializer import GoldenMaterializer
from artgraph.models.enums import EntityType
from artgraph.resolution.canonical import MergeResolver


def make_materializer(store: InMemoryIdentityStore) -> GoldenMaterializer:
    return GoldenMaterializer(None, store=store)  # type: ignore[arg-type]


async def test_unknown_entity_is_noop(store: InMemoryIdentityStore) -> None:
    assert await make_materializer(store).materialize(EntityType.ARTIST, uuid4()) is None
    assert store.golden == {}


async def test_type_mismatch_raises(store: InMemoryIdentityStore) -> None:
    gallery = store.add_entity(EntityType.GALLERY, "MoMA")
    with pytest.raises(EntityTypeMismatchError):
        await make_materializer(store).materialize(EntityType.ARTIST, gallery.id)


async def test_entity_deleted_mid_materialization_is_noop(
    store: InMemoryIdentityStore,
) -> None:
    entity = store.add_entity(EntityType.ARTIST, "Kusama")
    lookups = 0
    original_get_entity = store.get_entity

    async def vanishing_get_entity(entity_id, *, for_update=False):
        nonlocal lookups
        lookups += 1
        if lookups > 1:
            return None
        return await original_get_entity(entity_id, for_update=for_update)

    store.get_entity = vanishing_get_entity  # type: ignore[method-assign]

    assert await make_materializer(store).materialize(EntityType.ARTIST, entity.id) is None
    assert store.golden == {}


async def test_single_record(store: InMemoryIdentityStore) -> None:
    entity = store.add_entity(EntityType.ARTIST, "Kusama")
    store.add_source(
        EntityType.ARTIST,
        name="Yayoi Kusama",
        bio="Painter",
        socials=["@kusama"],
        identity_entity_id=entity.id,
    )

    golden = await make_materializer(store).materialize(EntityType.ARTIST, entity.id)

    assert golden is not None
    assert golden.entity_id == entity.id
    assert golden.name == "Yayoi Kusama"
    assert golden.bio == "Painter"
    assert golden.socials == ["@kusama"]
    assert golden.updated_at is not None
    assert entity.last_materialized_at is not None


async def test_is_idempotent(store: InMemoryIdentityStore) -> None:
    entity = store.add_entity(EntityType.GALLERY, "MoMA")
    store.add_source(EntityType.GALLERY, name="MoMA", website="https://moma.org", identity_entity_id=entity.id)
    store.add_source(EntityType.GALLERY, name="MoMA", address="11 W 53rd St", identity_entity_id=entity.id)
    materializer = make_materializer(store)

    first = await materializer.materialize(EntityType.GALLERY, entity.id)
    second = await materializer.materialize(EntityType.GALLERY, entity.id)

    columns = ("name", "website", "address", "description")
    assert [getattr(first, c) for c in columns] == [getattr(second, c) for c in columns]
    assert list(store.golden) == [(EntityType.GALLERY, entity.id)]


async def test_entity_without_records_uses_display_name(store: InMemoryIdentityStore) -> None:
    artist = store.add_entity(EntityType.ARTIST, "Unknown Person")

    golden = await make_materializer(store).materialize(EntityType.ARTIST, artist.id)

    assert golden.name == "Unknown Person"


async def test_merged_family_materializes_under_canonical(store: InMemoryIdentityStore) -> None:
    winner = store.add_entity(EntityType.GALLERY, "MoMA")
    loser = store.add_entity(EntityType.GALLERY, "Museum of Modern Art")
    store.add_source(EntityType.GALLERY, name="MoMA", identity_entity_id=winner.id)
    store.add_source(
        EntityType.GALLERY,
        name="Museum of Modern Art",
        description="Modern and contemporary art museum",
        identity_entity_id=loser.id,
    )
    materializer = make_materializer(store)
    await materializer.materialize(EntityType.GALLERY, loser.id)
    assert (EntityType.GALLERY, loser.id) in store.golden

    await MergeResolver(None, store=store).merge(  # type: ignore[arg-type]
        EntityType.GALLERY, winner.id, loser.id
    )
    # Materializing through the merged-away id resolves to the canonical
    golden = await materializer.materialize(EntityType.GALLERY, loser.id)

    assert golden.entity_id == winner.id
    assert golden.name == "Museum of Modern Art"
    assert golden.description == "Modern and contemporary art museum"
    assert list(store.golden) == [(EntityType.GALLERY, winner.id)]


async def test_event_participants_follow_artist_merges(store: InMemoryIdentityStore) -> None:
    event = store.add_entity(EntityType.EVENT, "Infinity Rooms")
    store.add_source(
        EntityType.EVENT,
        title="Infinity Rooms",
        start_ts=datetime(2024, 5, 1, 18, tzinfo=UTC),
        identity_entity_id=event.id,
    )
    kusama = store.add_entity(EntityType.ARTIST, "Kusama")
    yayoi = store.add_entity(EntityType.ARTIST, "Yayoi Kusama")
    other = store.add_entity(EntityType.ARTIST, "Louise Bourgeois")
    for artist in (kusama, yayoi, other):
        await store.add_event_artist(event.id, artist.id)
    materializer = make_materializer(store)

    await materializer.materialize(EntityType.EVENT, event.id)
    assert set(store.golden_participants(event.id)) == {kusama.id, yayoi.id, other.id}

    await MergeResolver(None, store=store).merge(  # type: ignore[arg-type]
        EntityType.ARTIST, kusama.id, yayoi.id
    )
    golden = await materializer.materialize(EntityType.EVENT, event.id)

    assert set(store.golden_participants(event.id)) == {kusama.id, other.id}
    assert golden.title == "Infinity Rooms"
    assert golden.start_ts == datetime(2024, 5, 1, 18, tzinfo=UTC)


async def test_event_merge_unions_participants_and_drops_loser_golden(
    store: InMemoryIdentityStore,
) -> None:
    first = store.add_entity(EntityType.EVENT, "Opening")
    second = store.add_entity(EntityType.EVENT, "Opening night")
    a1 = store.add_entity(EntityType.ARTIST, "A")
    a2 = store.add_entity(EntityType.ARTIST, "B")
    await store.add_event_artist(first.id, a1.id)
    await store.add_event_artist(second.id, a2.id)
    materializer = make_materializer(store)
    await materializer.materialize(EntityType.EVENT, second.id)

    await MergeResolver(None, store=store).merge(  # type: ignore[arg-type]
        EntityType.EVENT, first.id, second.id
    )
    await materializer.materialize(EntityType.EVENT, first.id)

    assert set(store.golden_participants(first.id)) == {a1.id, a2.id}
    assert second.id not in store.golden_event_artists
    assert (EntityType.EVENT, second.id) not in store.golden
