"""Infrastructure persistence layer."""

from .database import Database
from .models import (
    AlbumModel,
    ArtistModel,
    Base,
    DirectoryModel,
    FileModel,
    GenreModel,
    LibraryModel,
    PictureModel,
    TrackGenreModel,
    TrackModel,
    ensure_utc_aware,
    utc_now,
)
from .repositories import (
    AlbumRepository,
    ArtistRepository,
    DirectoryRepository,
    FileRepository,
    GenreRepository,
    LibraryRepository,
    PictureRepository,
    TrackRepository,
)

__all__ = [
    # Database
    "Database",
    "Base",
    # Models
    "LibraryModel",
    "DirectoryModel",
    "FileModel",
    "TrackModel",
    "TrackGenreModel",
    "PictureModel",
    "ArtistModel",
    "AlbumModel",
    "GenreModel",
    "utc_now",
    "ensure_utc_aware",
    # Repositories
    "LibraryRepository",
    "DirectoryRepository",
    "FileRepository",
    "TrackRepository",
    "PictureRepository",
    "ArtistRepository",
    "AlbumRepository",
    "GenreRepository",
]
