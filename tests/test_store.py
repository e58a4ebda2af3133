"""Tests for IdentityStore statements (no database)."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

from sqlalchemy.dialects import postgresql

from artgraph.models import GoldenArtist
from artgraph.models.enums import EntityType
from artgraph.resolution.store import IdentityStore


async def test_upsert_golden_returns_the_written_row() -> None:
    entity_id = uuid4()
    golden = GoldenArtist(entity_id=entity_id, name="Yayoi Kusama")
    scalars = MagicMock()
    scalars.one.return_value = golden
    session = AsyncMock()
    session.scalars = AsyncMock(return_value=scalars)

    result = await IdentityStore(session).upsert_golden(
        EntityType.ARTIST, entity_id, {"name": "Yayoi Kusama", "socials": []}
    )

    assert result is golden
    stmt = session.scalars.call_args.args[0]
    sql = str(stmt.compile(dialect=postgresql.dialect()))
    assert "ON CONFLICT (entity_id) DO UPDATE" in sql
    assert "RETURNING" in sql
    assert session.scalars.call_args.kwargs["execution_options"] == {"populate_existing": True}
