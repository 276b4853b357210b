"""Create entity storage tables

Revision ID: 001
Revises: None
Create Date: 2024-01-15 00:00:00.000000+00:00

What:  Creates `entities` (one row per stored entity) and `entity_index`
       (one row per indexed property) used by the SQL storage engine.
How:   Mirrors notekeeper/models/entity.py.

Rollback: downgrade() drops both tables and every stored note with them.
"""

from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "entities",
        sa.Column(
            "id",
            sa.BigInteger().with_variant(sa.Integer(), "sqlite"),
            autoincrement=True,
            nullable=False,
            comment="Entity identifier, allocated on first save",
        ),
        sa.Column(
            "kind",
            sa.String(100),
            nullable=False,
            comment="Collection the entity belongs to",
        ),
        sa.Column(
            "properties",
            sa.JSON(),
            nullable=False,
            comment="Full property list, including unindexed properties",
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_entities_kind", "entities", ["kind"])

    op.create_table(
        "entity_index",
        sa.Column("entity_id", sa.BigInteger().with_variant(sa.Integer(), "sqlite"), nullable=False),
        sa.Column("name", sa.String(255), nullable=False, comment="Property name"),
        sa.Column(
            "value_rank",
            sa.SmallInteger(),
            nullable=False,
            comment="1 = integer value, 2 = string value",
        ),
        sa.Column("integer_value", sa.BigInteger(), nullable=False, server_default=sa.text("0")),
        sa.Column("string_value", sa.Text(), nullable=False, server_default=sa.text("''")),
        sa.ForeignKeyConstraint(["entity_id"], ["entities.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("entity_id", "name"),
    )

    # Serves equality filters and ordered keyset scans alike
    op.create_index(
        "idx_entity_index_lookup",
        "entity_index",
        ["name", "value_rank", "integer_value", "string_value", "entity_id"],
    )


def downgrade() -> None:
    op.drop_index("idx_entity_index_lookup", table_name="entity_index")
    op.drop_table("entity_index")
    op.drop_index("ix_entities_kind", table_name="entities")
    op.drop_table("entities")
