"""
Idempotent table provisioning.

A single create attempt; "already exists" is a normal outcome. Races
between processes provisioning the same table are settled by the store's
own uniqueness guarantee on table names.
"""

from __future__ import annotations

from dynacache.backends.base import KeyValueBackend
from dynacache.exceptions import TableAlreadyExistsError
from dynacache.logging import get_logger

logger = get_logger(__name__)


async def create_table_if_not_exists(
    backend: KeyValueBackend,
    table: str,
    key_attribute: str,
    read_capacity_units: int = 1,
    write_capacity_units: int = 1,
) -> bool:
    """Create the table unless it already exists.

    Args:
        backend: Store to provision in.
        table: Table name.
        key_attribute: Name of the string partition key attribute.
        read_capacity_units: Read throughput hint.
        write_capacity_units: Write throughput hint.

    Returns:
        True if the table was created by this call, False if it existed.
    """
    try:
        await backend.create_table(table, key_attribute, read_capacity_units, write_capacity_units)
    except TableAlreadyExistsError:
        logger.debug("Table already exists", table=table)
        return False

    logger.info(
        "Table created",
        table=table,
        read_capacity_units=read_capacity_units,
        write_capacity_units=write_capacity_units,
    )
    return True
