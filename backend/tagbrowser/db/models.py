"""SQLAlchemy ORM models."""

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class Folder(Base):
    """Folder mirroring a directory under the upload root.

    ``full_path`` is the logical path (``/root/a/b``); every prefix up to the
    last slash is itself a folder's ``full_path``.
    """

    __tablename__ = "folders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    parent_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("folders.id", ondelete="CASCADE"), nullable=True, index=True)
    full_path: Mapped[str] = mapped_column(String(1000), unique=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    files: Mapped[list["File"]] = relationship(back_populates="folder", passive_deletes=True)
    tags: Mapped[list["FolderTag"]] = relationship(back_populates="folder", passive_deletes=True)


class File(Base):
    """File record; ``storage_path`` decides whether it still exists."""

    __tablename__ = "files"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    folder_id: Mapped[int] = mapped_column(Integer, ForeignKey("folders.id", ondelete="CASCADE"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    storage_path: Mapped[str] = mapped_column(String(1000), unique=True, nullable=False)
    size_bytes: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    mime_type: Mapped[str] = mapped_column(String(255), nullable=False, default="application/octet-stream")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    folder: Mapped["Folder"] = relationship(back_populates="files")
    tags: Mapped[list["FileTag"]] = relationship(back_populates="file", passive_deletes=True)


class Tag(Base):
    """User-defined tag, addressed by its slug in filters."""

    __tablename__ = "tags"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    slug: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    color_hex: Mapped[str] = mapped_column(String(7), nullable=False, default="#808080")


class FolderTag(Base):
    """Folder/tag association."""

    __tablename__ = "folder_tags"

    folder_id: Mapped[int] = mapped_column(Integer, ForeignKey("folders.id", ondelete="CASCADE"), primary_key=True)
    tag_id: Mapped[int] = mapped_column(Integer, ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True)

    folder: Mapped["Folder"] = relationship(back_populates="tags")
    tag: Mapped["Tag"] = relationship()


class FileTag(Base):
    """File/tag association."""

    __tablename__ = "file_tags"

    file_id: Mapped[int] = mapped_column(Integer, ForeignKey("files.id", ondelete="CASCADE"), primary_key=True)
    tag_id: Mapped[int] = mapped_column(Integer, ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True)

    file: Mapped["File"] = relationship(back_populates="tags")
    tag: Mapped["Tag"] = relationship()
