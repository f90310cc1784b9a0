import sys
from pathlib import Path

import pytest

# Ensure repo root is importable when running pytest from any CWD.
REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from helixheatx.config.params import HeatExchangerParams, build_layout  # noqa: E402
from helixheatx.geometry.assembly import make_grid  # noqa: E402
from helixheatx.geometry.channels import Fluid, generate_channel  # noqa: E402

# Coarse enough for a full build in seconds
COARSE_VOXEL_MM = 2.0


def coarse_params() -> HeatExchangerParams:
    params = HeatExchangerParams()
    params.kernel.voxel_size_mm = COARSE_VOXEL_MM
    return params


@pytest.fixture(scope="session")
def params():
    return coarse_params()


@pytest.fixture(scope="session")
def layout(params):
    return build_layout(params)


@pytest.fixture(scope="session")
def grid(params, layout):
    return make_grid(params, layout)


@pytest.fixture(scope="session")
def hot_channel(params, layout, grid):
    return generate_channel(params, layout, grid, Fluid.HOT)


@pytest.fixture(scope="session")
def cool_channel(params, layout, grid):
    return generate_channel(params, layout, grid, Fluid.COOL)
