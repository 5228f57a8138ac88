"""Pytest configuration and fixtures for CodeSage tests."""

import shutil
import tempfile
from pathlib import Path
from typing import Callable, Dict, Generator

import pytest

from codesage.config import AnalysisConfig, DuplicationConfig
from codesage.errors import ParseError
from codesage.models import SourceUnit

from fakecst import (
    FakeNode,
    ident,
    layout,
    py_call,
    py_compare,
    py_elif,
    py_else,
    py_for,
    py_function,
    py_if,
    py_module,
    py_return,
)


@pytest.fixture(autouse=True)
def _isolated_home(temp_dir: Path, monkeypatch):
    """Point CODESAGE_HOME at a throwaway directory for every test."""
    home = temp_dir / ".codesage"
    monkeypatch.setenv("CODESAGE_HOME", str(home))
    monkeypatch.setattr("codesage.config.BASE_DIR", home)
    monkeypatch.setattr("codesage.config.CONFIG_FILE", home / "config.toml")


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    tmp = Path(tempfile.mkdtemp())
    yield tmp
    shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture
def small_window_config() -> AnalysisConfig:
    """Configuration with a short duplication window so small trees can match."""
    return AnalysisConfig(duplication=DuplicationConfig(window=8), workers=2)


class FakeParser:
    """Parse callable for the engine that serves prebuilt fake trees by path."""

    def __init__(self) -> None:
        self.trees: Dict[str, FakeNode] = {}
        self.calls = 0

    def add(self, path: str, root: FakeNode, language: str = "python") -> SourceUnit:
        text = layout(root)
        self.trees[path] = root
        return SourceUnit(path=path, text=text, language=language)

    def fail(self, path: str, text: str = "def broken(:\n", language: str = "python") -> SourceUnit:
        self.trees.pop(path, None)
        return SourceUnit(path=path, text=text, language=language)

    def __call__(self, unit: SourceUnit) -> FakeNode:
        self.calls += 1
        root = self.trees.get(unit.path)
        if root is None:
            raise ParseError(unit.path, 1, 12, "unexpected ':'")
        return root


@pytest.fixture
def fake_parser() -> FakeParser:
    return FakeParser()


@pytest.fixture
def loop_with_branches() -> Callable[[], FakeNode]:
    """A function with one loop around an if / elif / else chain."""

    def build() -> FakeNode:
        return py_module(
            py_function(
                "classify", ["items"],
                py_for(
                    "item", "items",
                    py_if(
                        py_compare("item", ">", "10"),
                        [py_call("big", ident("item"), line=4)],
                        py_elif(py_compare("item", ">", "0"), py_call("small", ident("item"), line=6), line=5),
                        py_else(py_call("negative", ident("item"), line=8), line=7),
                        line=3,
                    ),
                    line=2,
                ),
                py_return(ident("items"), line=9),
                line=1,
            ),
        )

    return build


@pytest.fixture
def sample_python_code() -> str:
    """Real Python source for grammar-backed tests."""
    return '''"""Sample module for testing."""


def classify(items):
    for item in items:
        if item > 10:
            big(item)
        elif item > 0:
            small(item)
        else:
            negative(item)
    return items


def load(path):
    try:
        return open(path).read()
    except OSError:
        pass


def run(command):
    # Evaluates user input
    return eval(command)
'''
