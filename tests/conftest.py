"""Shared test fixtures."""

import pytest
from pathlib import Path

from levfarm.scenarios import ALICE, World, build_world
from levfarm.settings import WorldParams


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def out_dir(tmp_path: Path) -> Path:
    """Return a fresh output directory."""
    return tmp_path / "out"


@pytest.fixture
def params() -> WorldParams:
    """Default world: primary pool 1e6 luna / 4e6 uusd, luna at 4 uusd, no tax."""
    return WorldParams()


@pytest.fixture
def world(params: WorldParams) -> World:
    """A freshly instantiated engine with no positions."""
    return build_world(params)


@pytest.fixture
def taxed_world(params: WorldParams) -> World:
    """Same world with a 0.1% tax on uusd transfers."""
    return build_world(WorldParams(tax_rate="0.001"))


@pytest.fixture
def opened_world(world: World, params: WorldParams) -> World:
    """Alice holds a 2x position opened from 1e6 luna."""
    world.open_position(ALICE, params.deposit)
    return world
