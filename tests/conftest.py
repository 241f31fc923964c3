"""Pytest configuration and shared fixtures for assembly tests."""

import sys
from pathlib import Path

import pytest

# tests/ is inside the repository root, so parent is the root
root_dir = Path(__file__).parent.parent
if str(root_dir) not in sys.path:
    sys.path.insert(0, str(root_dir))

from compressed_state.tree_info import TreeDescriptor, TreeType  # noqa: E402
from tests.fakes import key  # noqa: E402


@pytest.fixture
def state_tree_v1() -> TreeDescriptor:
    return TreeDescriptor(tree=key(101), queue=key(102), tree_type=TreeType.STATE_V1)


@pytest.fixture
def state_tree_v2() -> TreeDescriptor:
    return TreeDescriptor(tree=key(111), queue=key(112), tree_type=TreeType.STATE_V2)


@pytest.fixture
def address_tree() -> TreeDescriptor:
    return TreeDescriptor(tree=key(121), queue=key(122), tree_type=TreeType.ADDRESS_V1)
