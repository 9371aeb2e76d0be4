"""
Relational table destination - insert the transformed payload as a row.

The schema and table are created on first use with a fixed shape:
    id BIGSERIAL PK, event_id BIGINT UNIQUE NULL, payload JSONB, created_at TIMESTAMPTZ
Inserts use ON CONFLICT (event_id) DO NOTHING, so redelivering the same
event is a no-op for this destination type.

Schema/table names come from configuration and are checked against a fixed
identifier grammar before any DDL; SQLAlchemy quotes them when rendering.
"""
import logging

from sqlalchemy import BigInteger, Column, DateTime, Integer, MetaData, Table, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.schema import CreateSchema

from hookrelay.database import insert_for
from hookrelay.destinations.base import DestinationAdapter
from hookrelay.exceptions import DestinationDeliveryError, InvalidIdentifier
from hookrelay.schemas.client_config import DEFAULT_SCHEMA, Destination, validate_identifier
from hookrelay.schemas.job import Job

logger = logging.getLogger(__name__)


class PostgresTableDestination(DestinationAdapter):
    destination_type = "postgres"

    def __init__(self):
        self.metadata = MetaData()
        self._tables: dict[tuple[str, str], Table] = {}

    def table_for(self, schema: str, table: str) -> Table:
        """Table object for schema.table (the default schema maps to the search path)."""
        validate_identifier("schema", schema)
        validate_identifier("table", table)

        key = (schema, table)
        if key not in self._tables:
            self._tables[key] = Table(
                table,
                self.metadata,
                Column(
                    "id", BigInteger().with_variant(Integer, "sqlite"),
                    primary_key=True, autoincrement=True,
                ),
                Column("event_id", BigInteger, nullable=True, unique=True),
                Column("payload", JSONB, nullable=False),
                Column(
                    "created_at", DateTime(timezone=True),
                    nullable=False, server_default=func.now(),
                ),
                schema=None if schema == DEFAULT_SCHEMA else schema,
            )
        return self._tables[key]

    async def ensure_table(self, db: AsyncSession, schema: str, table: str) -> Table:
        target = self.table_for(schema, table)
        if schema != DEFAULT_SCHEMA:
            await db.execute(CreateSchema(schema, if_not_exists=True))
        conn = await db.connection()
        await conn.run_sync(lambda sync_conn: target.create(sync_conn, checkfirst=True))
        return target

    async def send(
        self,
        db: AsyncSession,
        destination: Destination,
        job: Job,
        payload: dict,
    ) -> None:
        name = destination.identifier
        try:
            target = await self.ensure_table(db, destination.schema_name, destination.table)
            stmt = (
                insert_for(db, target)
                .values(payload=payload, event_id=job.event_id)
                .on_conflict_do_nothing(index_elements=["event_id"])
            )
            result = await db.execute(stmt)
        except InvalidIdentifier as e:
            raise DestinationDeliveryError(name, e.message) from e
        except SQLAlchemyError as e:
            raise DestinationDeliveryError(name, f"Insert into {name} failed: {e}") from e

        if result.rowcount == 0:
            logger.info(
                "Row for event %s already present in %s", job.event_id, name,
                extra={**job.log_extra(), "destination": name},
            )
        else:
            logger.info(
                "Inserted event %s into %s", job.event_id, name,
                extra={**job.log_extra(), "destination": name},
            )
