"""
Schema differ: declared TableDefinition versus introspected LiveSchema.
"""

import logging
from typing import List

from ..database.introspection import LiveSchema
from .definitions import TableDefinition
from .operations import (
    AddColumn,
    AddIndex,
    ChangeColumn,
    CreateTable,
    DropColumn,
    DropIndex,
    SchemaOperation,
)


logger = logging.getLogger(__name__)


class SchemaDiffer:
    """
    Computes the ordered operations that move a live table to its declaration.

    Operations come out as: DropIndex, DropColumn, AddColumn, ChangeColumn,
    AddIndex. Indexes are dropped before the columns they may reference and
    added after the columns they need.
    """

    def diff(self, declared: TableDefinition, live: LiveSchema) -> List[SchemaOperation]:
        if not live.exists:
            return self._create_table(declared)

        table = declared.table_name
        declared_key = declared.primary_key_name
        protected = {declared_key}
        if live.primary_key:
            protected.add(live.primary_key)
            if live.primary_key != declared_key:
                logger.warning(
                    f"Primary key of {table} is '{live.primary_key}' but "
                    f"'{declared_key}' is declared; primary keys are never altered"
                )

        declared_columns = declared.column_map
        live_columns = live.column_map
        declared_indexes = declared.index_map
        live_indexes = live.index_map

        drop_indexes = [
            DropIndex(table, index_name=name)
            for name in sorted(live_indexes)
            if name not in declared_indexes
            or not declared_indexes[name].matches(live_indexes[name])
        ]

        drop_columns = [
            DropColumn(table, column_name=column.name)
            for column in live.columns
            if column.name not in declared_columns
            and column.name not in protected
            and column.name != declared.inheritance_column
        ]

        add_columns = [
            AddColumn(table, column=column)
            for column in declared.columns
            if column.name not in live_columns
        ]

        change_columns = [
            ChangeColumn(table, column=column, previous=live_columns[column.name])
            for column in declared.columns
            if column.name in live_columns
            and column.name not in protected
            and column.differs_from(live_columns[column.name])
        ]

        add_indexes = [
            AddIndex(table, index=declared_indexes[name])
            for name in sorted(declared_indexes)
            if name not in live_indexes
            or not live_indexes[name].matches(declared_indexes[name])
        ]

        return drop_indexes + drop_columns + add_columns + change_columns + add_indexes

    @staticmethod
    def _create_table(declared: TableDefinition) -> List[SchemaOperation]:
        operations: List[SchemaOperation] = [
            CreateTable(
                declared.table_name,
                columns=declared.ddl_columns(),
                primary_key=declared.primary_key_name,
            )
        ]
        index_map = declared.index_map
        operations.extend(
            AddIndex(declared.table_name, index=index_map[name]) for name in sorted(index_map)
        )
        return operations
