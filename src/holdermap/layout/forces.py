"""Force kernels for the layout simulation.

Each kernel nudges velocities (or, for centering, positions) of the active
records in place. Kernels never integrate; ``ForceSimulation.tick`` does.
Pairwise kernels only visit pairs in neighbouring grid cells, so a cutoff
distance bounds their cost.
"""
from __future__ import annotations

import math
import random
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Sequence, Tuple


@dataclass
class PositionRecord:
    x: float = 0.0
    y: float = 0.0
    vx: float = 0.0
    vy: float = 0.0
    fx: Optional[float] = None
    fy: Optional[float] = None


def jiggle(rng: random.Random) -> float:
    return (rng.random() - 0.5) * 1e-6


def grid_pairs(points: Sequence[Tuple[float, float]], cell: float) -> Iterator[Tuple[int, int]]:
    """
    Candidate index pairs (i < j) closer than roughly ``cell`` on each axis.
    """
    grid: Dict[Tuple[int, int], List[int]] = {}
    for i, (x, y) in enumerate(points):
        grid.setdefault((math.floor(x / cell), math.floor(y / cell)), []).append(i)

    # each unordered cell pair is visited once: self + 4 forward neighbours
    offsets = ((1, -1), (1, 0), (1, 1), (0, 1))
    for (cx, cy), members in grid.items():
        for a in range(len(members)):
            for b in range(a + 1, len(members)):
                i, j = members[a], members[b]
                yield (i, j) if i < j else (j, i)
        for dx, dy in offsets:
            other = grid.get((cx + dx, cy + dy))
            if not other:
                continue
            for i in members:
                for j in other:
                    yield (i, j) if i < j else (j, i)


def apply_charge(
    recs: Sequence[PositionRecord],
    alpha: float,
    strength: float,
    distance_max: float,
    distance_min: float,
    rng: random.Random,
) -> None:
    """
    Pairwise many-body force; negative strength repels.
    """
    max2 = distance_max * distance_max
    min2 = distance_min * distance_min
    pts = [(r.x, r.y) for r in recs]
    for i, j in grid_pairs(pts, distance_max):
        a, b = recs[i], recs[j]
        x = b.x - a.x
        y = b.y - a.y
        l = x * x + y * y
        if l >= max2:
            continue
        if x == 0:
            x = jiggle(rng)
            l += x * x
        if y == 0:
            y = jiggle(rng)
            l += y * y
        if l < min2:
            l = math.sqrt(min2 * l)
        w = strength * alpha / l
        a.vx += x * w
        a.vy += y * w
        b.vx -= x * w
        b.vy -= y * w


def apply_links(
    recs: Sequence[PositionRecord],
    links: Sequence[Tuple[int, int]],
    degree: Sequence[int],
    alpha: float,
    distance: float,
    strength: float,
    rng: random.Random,
) -> None:
    """
    Springs toward ``distance``; the lighter-connected end moves more.
    """
    for s_i, t_i in links:
        if s_i == t_i:
            continue
        s, t = recs[s_i], recs[t_i]
        x = t.x + t.vx - s.x - s.vx
        y = t.y + t.vy - s.y - s.vy
        if x == 0:
            x = jiggle(rng)
        if y == 0:
            y = jiggle(rng)
        l = math.sqrt(x * x + y * y)
        l = (l - distance) / l * alpha * strength
        x *= l
        y *= l
        bias = degree[s_i] / (degree[s_i] + degree[t_i])
        t.vx -= x * bias
        t.vy -= y * bias
        s.vx += x * (1 - bias)
        s.vy += y * (1 - bias)


def apply_collide(
    recs: Sequence[PositionRecord],
    radii: Sequence[float],
    strength: float,
    padding: float,
    rng: random.Random,
) -> None:
    """
    Push overlapping circles apart, weighted so small nodes give way.
    """
    if not recs:
        return
    reach = 2 * max(radii) + padding
    pts = [(r.x + r.vx, r.y + r.vy) for r in recs]
    for i, j in grid_pairs(pts, reach):
        ri, rj = radii[i], radii[j]
        r = ri + rj + padding
        x = pts[i][0] - pts[j][0]
        y = pts[i][1] - pts[j][1]
        l = x * x + y * y
        if l >= r * r:
            continue
        if x == 0:
            x = jiggle(rng)
            l += x * x
        if y == 0:
            y = jiggle(rng)
            l += y * y
        l = math.sqrt(l)
        l = (r - l) / l * strength
        x *= l
        y *= l
        ri2, rj2 = ri * ri, rj * rj
        k = rj2 / (ri2 + rj2)
        a, b = recs[i], recs[j]
        a.vx += x * k
        a.vy += y * k
        b.vx -= x * (1 - k)
        b.vy -= y * (1 - k)


def apply_center(recs: Sequence[PositionRecord], strength: float, cx: float = 0.0, cy: float = 0.0) -> None:
    if not recs:
        return
    n = len(recs)
    sx = sum(r.x for r in recs) / n - cx
    sy = sum(r.y for r in recs) / n - cy
    sx *= strength
    sy *= strength
    for r in recs:
        r.x -= sx
        r.y -= sy
