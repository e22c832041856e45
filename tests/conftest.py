"""Shared test fixtures for planboard tests."""

import sys
from pathlib import Path

import pytest

# Ensure the package is importable without installation
sys.path.insert(0, str(Path(__file__).parent.parent))

from planboard.board import BoardController
from planboard.schema import Board


@pytest.fixture
def board():
    return BoardController(Board(id="board-1", name="Marketing"))


@pytest.fixture
def columns(board):
    """Board with To Do / Doing / Done lists; returns their ids."""
    ids = []
    for name in ("To Do", "Doing", "Done"):
        task_list, _ = board.add_list(name)
        ids.append(task_list.id)
    return ids
