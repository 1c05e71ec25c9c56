from .archive import DiaryArchive, DiaryEntry

__all__ = ["DiaryArchive", "DiaryEntry"]
