# MIT License
# Copyright (c) 2025 Hashborn

"""
Snapshot Data Structures
"""

from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


class ChangeSet(BaseModel, Generic[T]):
    """
    Changelog record: the value a key held before the first change made
    in a given version. None means the key was absent.
    """
    old: Optional[T] = Field(default=None, description="Value before this version's change")
