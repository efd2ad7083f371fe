"""Test declaration, discovery and selection."""

from sytest.loader.filters import NameFilter
from sytest.loader.loader import TEST_FILE_PATTERN, TestLoader
from sytest.loader.models import Action, TestCase
from sytest.loader.registry import TestRegistry

__all__ = [
    "Action",
    "NameFilter",
    "TEST_FILE_PATTERN",
    "TestCase",
    "TestLoader",
    "TestRegistry",
]
