"""
Parameter groups for the N-body simulation.

This module tells ``NBodySim.update_params`` what a change touches: some
parameters only take effect after a reset, some need a new worker pool or
integrator, the rest are read fresh at every step.
"""

from __future__ import annotations


# =============================================================================
# Parameter Reset Keys - Changes that require simulation reset
# =============================================================================

RESET_KEYS = {
    "init_mode",
    "body_count",
    "spawn_extent",
    "velocity_extent",
    "star_mass",
    "star_radius",
    "planet_mass",
    "planet_radius",
    "seed",
}


# =============================================================================
# Rebuild Keys - Changes that replace a collaborator of the simulation
# =============================================================================

STRATEGY_KEYS = {
    "force_strategy",
    "worker_count",
    "chunk_size",
}

INTEGRATOR_KEYS = {
    "integration_scheme",
    "diagnostics",
}


# =============================================================================
# Runtime Keys - Read at every step, safe to change between frames
# =============================================================================

RUNTIME_KEYS = {
    "theta",
    "g",
    "softening",
    "max_depth",
    "time_scale",
}

PARAM_KEYS = RESET_KEYS | STRATEGY_KEYS | INTEGRATOR_KEYS | RUNTIME_KEYS


PARAM_HINTS = {
    "theta": "Barnes-Hut opening angle (0 = exact, larger = faster and coarser).",
    "g": "Gravitational constant G.",
    "softening": "Bodies closer than this distance ignore each other.",
    "integration_scheme": "Time stepping: euler (semi-implicit) or leapfrog.",
    "force_strategy": "Force evaluation: sequential, partitioned or data_parallel.",
    "worker_count": "Threads used by partitioned/data_parallel.",
    "chunk_size": "Bodies per task for data_parallel.",
    "max_depth": "Octree depth cap; deeper collisions are merged.",
    "time_scale": "Simulated time per wall-clock second.",
    "init_mode": "Initial bodies: star_system, random or empty.",
    "body_count": "Number of planets (star_system) or bodies (random).",
    "spawn_extent": "Half-width of the spawn cube.",
    "velocity_extent": "Initial velocity range (star_system).",
    "star_mass": "Mass of the central star.",
    "star_radius": "Radius of the central star.",
    "planet_mass": "Mass of a planet of radius planet_radius.",
    "planet_radius": "Smallest planet radius.",
    "seed": "Random seed for initial conditions.",
    "diagnostics": "Print numerical diagnostics on stderr.",
}


# =============================================================================
# Helper Functions
# =============================================================================

def get_param_hint(key: str) -> str:
    """
    Get the hint/description for a parameter.

    Args:
        key: Parameter key name

    Returns:
        Hint text or empty string
    """
    return PARAM_HINTS.get(key, "")


def is_reset_required(key: str) -> bool:
    """Check if changing this parameter requires simulation reset."""
    return key in RESET_KEYS


def is_strategy_related(key: str) -> bool:
    """Check if changing this parameter needs a new force strategy."""
    return key in STRATEGY_KEYS


def is_integrator_related(key: str) -> bool:
    return key in INTEGRATOR_KEYS
