from .filesystem import FilesystemCache

__all__ = ["FilesystemCache"]
