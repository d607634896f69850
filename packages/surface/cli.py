"""CLI entry-point for the wall tracker."""

from __future__ import annotations

import logging
import math

import click
import numpy as np

from packages.core.config import PRESETS, EngineConfig, MatchPolicy, load_config
from packages.core.types import CameraIntrinsics
from packages.surface.engine import SurfaceDetectionEngine
from packages.surface.fitting import NearestPointPlaneFitter
from packages.surface.loader import load_snapshot
from packages.surface.poses import PoseBuffer
from packages.surface.synthetic import SyntheticRoom, level_camera, publish_poses


def _build_config(
    preset: str, config_file: str | None, match_policy: str | None, workers: int | None,
) -> EngineConfig:
    config = load_config(config_file) if config_file else PRESETS[preset]()
    overrides = {}
    if match_policy is not None:
        overrides["match_policy"] = MatchPolicy(match_policy)
    if workers is not None:
        overrides["max_workers"] = workers
    return config.model_copy(update=overrides) if overrides else config


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
def main(verbose: bool):
    """Track the dominant wall in front of a depth sensor."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(levelname)s | %(name)s | %(message)s",
    )


_config_options = [
    click.option("--preset", type=click.Choice(sorted(PRESETS)), default="service", show_default=True,
                 help="Grid and threshold preset."),
    click.option("--config", "config_file", type=click.Path(exists=True, dir_okay=False), default=None,
                 help="JSON engine configuration (overrides --preset)."),
    click.option("--match-policy", type=click.Choice([p.value for p in MatchPolicy]), default=None,
                 help="Wall identity predicate."),
    click.option("--workers", type=int, default=None, help="Parallel grid-fit workers."),
]


def config_options(func):
    for option in reversed(_config_options):
        func = option(func)
    return func


@main.command()
@config_options
@click.option("--steps", default=10, show_default=True, help="Frames along the walk.")
@click.option("--start", nargs=2, type=float, default=(-1.5, 0.0), show_default=True,
              help="Start position (x y) in metres.")
@click.option("--end", nargs=2, type=float, default=(1.5, 0.0), show_default=True,
              help="End position (x y) in metres.")
@click.option("--yaw", default=0.0, show_default=True, help="Heading in degrees (0 = +X).")
@click.option("--height", default=1.5, show_default=True, help="Device height in metres.")
@click.option("--noise", default=0.0, show_default=True, help="Depth noise sigma (metres).")
def simulate(preset, config_file, match_policy, workers, steps, start, end, yaw, height, noise):
    """Walk a synthetic room and print the tracked wall distance per frame."""
    config = _build_config(preset, config_file, match_policy, workers)
    room = SyntheticRoom()
    intrinsics = CameraIntrinsics()
    poses = PoseBuffer()
    engine = SurfaceDetectionEngine(poses, NearestPointPlaneFitter(intrinsics), config)
    engine.connect()
    rng = np.random.default_rng(0)

    try:
        for i in range(steps):
            frac = i / max(steps - 1, 1)
            x = start[0] + frac * (end[0] - start[0])
            y = start[1] + frac * (end[1] - start[1])
            world_T_depth = level_camera((x, y, height), math.radians(yaw))
            timestamp = float(i)
            publish_poses(poses, world_T_depth, timestamp)
            snapshot = room.render(
                world_T_depth, intrinsics, timestamp=timestamp, noise=noise, rng=rng,
            )
            m = engine.on_point_cloud(snapshot)
            if m is not None and m.has_wall:
                click.echo(f"{timestamp:6.1f}  ({x:+.2f}, {y:+.2f})  {m.distance:.3f} m  {m.decision.value}")
            else:
                reason = m.reason if m is not None and m.reason else "no wall"
                click.echo(f"{timestamp:6.1f}  ({x:+.2f}, {y:+.2f})  --  {reason}")
    finally:
        engine.disconnect()


@main.command()
@config_options
@click.argument("input_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--height", default=0.0, show_default=True,
              help="Device height; the frame is assumed level and facing +X.")
def measure(preset, config_file, match_policy, workers, input_file, height):
    """Run one tracking cycle on a recorded PLY/E57 depth frame."""
    config = _build_config(preset, config_file, match_policy, workers)
    snapshot = load_snapshot(input_file)
    poses = PoseBuffer()
    publish_poses(poses, level_camera((0.0, 0.0, height), 0.0), snapshot.timestamp)
    engine = SurfaceDetectionEngine(poses, NearestPointPlaneFitter(), config)
    engine.connect()
    m = engine.on_point_cloud(snapshot)
    engine.disconnect()
    if m is None or not m.has_wall:
        raise click.ClickException("No wall found in frame")
    click.echo(m.model_dump_json(indent=2))


if __name__ == "__main__":
    main()
