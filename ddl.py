"""Render the clinic schema as SQL for a given database dialect."""
from sqlalchemy import insert
from sqlalchemy.dialects import mysql, sqlite
from sqlalchemy.schema import CreateTable, CreateIndex
from database import Base, ROLE_SEED
import models

DIALECTS = {
    "mysql": mysql.dialect,
    "sqlite": sqlite.dialect,
}


def render_schema(dialect="mysql"):
    """Return CREATE TABLE / CREATE INDEX statements and the role seed, in dependency order."""
    try:
        sql_dialect = DIALECTS[dialect]()
    except KeyError:
        raise ValueError(f"Unsupported dialect {dialect!r}; choose one of {', '.join(sorted(DIALECTS))}")
    statements = []
    for table in Base.metadata.sorted_tables:
        statements.append(str(CreateTable(table).compile(dialect=sql_dialect)).strip())
        for index in sorted(table.indexes, key=lambda i: i.name):
            statements.append(str(CreateIndex(index).compile(dialect=sql_dialect)).strip())
    for name, description in ROLE_SEED:
        stmt = insert(models.Role).values(name=name, description=description)
        statements.append(str(stmt.compile(dialect=sql_dialect, compile_kwargs={"literal_binds": True})))
    return ";\n\n".join(statements) + ";\n"
