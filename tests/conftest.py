import matplotlib

matplotlib.use("Agg")

import numpy as np
import pytest

from steadyflow import ForceVector, SimulationConfig, create_grid


@pytest.fixture
def no_physics():
    """Every operator except injection and boundaries is a no-op."""
    return SimulationConfig(
        relaxation_factor=0.0,
        pressure_impact=0.0,
        time_step=0.0,
        viscosity=0.0,
        iterations=1,
    )


@pytest.fixture
def diffusion_only():
    """Contractive linear update: converges quickly on small grids."""
    return SimulationConfig(
        relaxation_factor=0.0,
        pressure_impact=0.0,
        time_step=0.0,
        viscosity=0.1,
        iterations=1,
    )


@pytest.fixture
def center_force():
    return ForceVector(x=0.5, y=0.5, fx=0.2, fy=0.0)


@pytest.fixture
def random_grid():
    """7x6 grid with random fields and a couple of obstacles."""
    rng = np.random.default_rng(1234)
    grid = create_grid(7, 6)
    grid.u[:] = rng.normal(size=grid.shape)
    grid.v[:] = rng.normal(size=grid.shape)
    grid.pressure[:] = rng.normal(size=grid.shape)
    grid.is_obstacle[2, 3] = True
    grid.is_obstacle[4, 1] = True
    return grid
