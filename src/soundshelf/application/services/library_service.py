"""Library management: the roots the scanner walks."""

import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from sqlalchemy.ext.asyncio import AsyncSession

from soundshelf.domain.exceptions import (
    DuplicateEntityException,
    EntityNotFoundException,
    ValidationException,
)
from soundshelf.infrastructure.persistence.models import LibraryModel, ensure_utc_aware
from soundshelf.infrastructure.persistence.repositories import (
    DirectoryRepository,
    LibraryRepository,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LibraryInfo:
    """Read-only view of a library."""

    id: int
    name: str
    path: str
    is_access_controlled: bool
    content_modified: datetime

    @classmethod
    def from_model(cls, model: LibraryModel) -> "LibraryInfo":
        return cls(
            id=model.id,
            name=model.name,
            path=model.path,
            is_access_controlled=model.is_access_controlled,
            content_modified=ensure_utc_aware(model.content_modified),
        )


def normalize_library_path(path: str | Path) -> str:
    """Absolute, resolved directory path without a trailing separator.

    Raises:
        ValidationException: If the path isn't an existing directory
    """
    resolved = Path(path).expanduser().resolve()
    if not resolved.is_dir():
        raise ValidationException(f"Library path is not a directory: {path}")
    return str(resolved)


class LibraryService:
    """Add, list, rename and remove libraries.

    Unlike repositories, every public method here is a complete operation and commits.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.library_repo = LibraryRepository(session)
        self.directory_repo = DirectoryRepository(session)

    async def add_library(
        self, name: str, path: str | Path, is_access_controlled: bool = False
    ) -> LibraryInfo:
        """Create a library and its root directory.

        Raises:
            ValidationException: Empty name or path isn't a directory
            DuplicateEntityException: A library with this name exists
        """
        name = name.strip()
        if not name:
            raise ValidationException("Library name must not be empty")
        library_path = normalize_library_path(path)

        if await self.library_repo.get_by_name(name) is not None:
            raise DuplicateEntityException("Library", name)

        library = await self.library_repo.add(name, library_path, is_access_controlled)
        await self.directory_repo.add(library.id, library_path, parent_id=None)
        info = LibraryInfo.from_model(library)
        await self.session.commit()

        logger.info(f"Added library '{name}' at {library_path}")
        return info

    async def list_libraries(self) -> list[LibraryInfo]:
        return [LibraryInfo.from_model(m) for m in await self.library_repo.list_all()]

    async def _get(self, name: str) -> LibraryModel:
        library = await self.library_repo.get_by_name(name)
        if library is None:
            raise EntityNotFoundException("Library", name)
        return library

    async def rename_library(self, name: str, new_name: str) -> LibraryInfo:
        """Rename a library.

        Raises:
            EntityNotFoundException: No library called `name`
            ValidationException: Empty new name
            DuplicateEntityException: `new_name` is taken
        """
        new_name = new_name.strip()
        if not new_name:
            raise ValidationException("Library name must not be empty")
        library = await self._get(name)
        if new_name != name and await self.library_repo.get_by_name(new_name) is not None:
            raise DuplicateEntityException("Library", new_name)

        library.name = new_name
        info = LibraryInfo.from_model(library)
        await self.session.commit()
        logger.info(f"Renamed library '{name}' to '{new_name}'")
        return info

    async def set_access_control(self, name: str, is_access_controlled: bool) -> LibraryInfo:
        """Toggle whether the library is restricted to granted users."""
        library = await self._get(name)
        library.is_access_controlled = is_access_controlled
        info = LibraryInfo.from_model(library)
        await self.session.commit()
        return info

    async def delete_library(self, name: str) -> None:
        """Delete a library and everything catalogued below it.

        Artists, albums and genres stay, the scan never deletes them either.
        """
        library = await self._get(name)
        await self.library_repo.delete(library.id)
        await self.session.commit()
        logger.info(f"Deleted library '{name}'")
