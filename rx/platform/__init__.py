"""Platform helpers."""

from .files import atomic_copy_file, atomic_write_text, remove_tree

__all__ = [
    "atomic_copy_file",
    "atomic_write_text",
    "remove_tree",
]
