"""Create folder, file and tag tables.

Revision ID: 001
Revises:
Create Date: 2026-10-19

Tables:
- folders: one row per directory under the upload root. full_path is the
  logical path ("/root/a/b") and is unique; the root row has no parent.
- files: one row per stored file. storage_path is the absolute physical
  path and is unique; name is the display name shown to users.
- tags: user tags, looked up by their unique slug.
- folder_tags / file_tags: tag associations.

Key design decisions:
- Integer identity keys; clients address everything by id.
- Foreign keys cascade so removing a folder subtree or a tag never leaves
  association rows behind, even when rows are deleted outside the app.
"""

from alembic import op
import sqlalchemy as sa

revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "folders",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column(
            "parent_id",
            sa.Integer,
            sa.ForeignKey("folders.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column("full_path", sa.String(1000), nullable=False, unique=True),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
    )
    op.create_index("ix_folders_parent_id", "folders", ["parent_id"])

    op.create_table(
        "files",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "folder_id",
            sa.Integer,
            sa.ForeignKey("folders.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("storage_path", sa.String(1000), nullable=False, unique=True),
        sa.Column("size_bytes", sa.BigInteger, nullable=False, server_default="0"),
        sa.Column(
            "mime_type",
            sa.String(255),
            nullable=False,
            server_default="application/octet-stream",
        ),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
    )
    op.create_index("ix_files_folder_id", "files", ["folder_id"])

    op.create_table(
        "tags",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("slug", sa.String(100), nullable=False, unique=True),
        sa.Column("color_hex", sa.String(7), nullable=False, server_default="#808080"),
    )

    op.create_table(
        "folder_tags",
        sa.Column(
            "folder_id",
            sa.Integer,
            sa.ForeignKey("folders.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "tag_id",
            sa.Integer,
            sa.ForeignKey("tags.id", ondelete="CASCADE"),
            primary_key=True,
        ),
    )

    op.create_table(
        "file_tags",
        sa.Column(
            "file_id",
            sa.Integer,
            sa.ForeignKey("files.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "tag_id",
            sa.Integer,
            sa.ForeignKey("tags.id", ondelete="CASCADE"),
            primary_key=True,
        ),
    )


def downgrade() -> None:
    op.drop_table("file_tags")
    op.drop_table("folder_tags")
    op.drop_table("tags")
    op.drop_index("ix_files_folder_id", table_name="files")
    op.drop_table("files")
    op.drop_index("ix_folders_parent_id", table_name="folders")
    op.drop_table("folders")
