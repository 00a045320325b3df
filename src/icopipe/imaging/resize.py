"""Resize planning: how a reduction factor is split between the available steps.

A requested factor is applied in up to three stages, cheapest first:

1. shrink-on-load, where the decoder itself produces a 1/2, 1/4 or 1/8 scale
   image (JPEG only);
2. an integer block shrink of whatever is left, when at least 2 remains;
3. a fractional affine pass for the residual, always a downscale or identity.
   It aims at the source size divided by the factor, so pixels lost to
   integer truncation in stage 2 are not compounded.

The functions here only decide; ``icopipe.imaging.image.Image`` executes.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

# Below this factor neither shrink-on-load nor integer shrinking pays off and
# the affine pass handles the whole reduction.
MIN_SHRINK_FACTOR: float = 2.0


@dataclass(frozen=True)
class ShrinkPlan:
    """Integer reductions chosen for a single shrink call."""

    load_shrink: int = 1
    integer_shrink: int = 1

    @property
    def reduction(self) -> int:
        """Total integer reduction achieved by the plan."""
        return self.load_shrink * self.integer_shrink

    @property
    def is_noop(self) -> bool:
        return self.reduction == 1


def validate_factor(factor: float) -> float:
    """Return ``factor`` as a float, rejecting NaN, infinities and values below 1."""
    factor = float(factor)
    if not math.isfinite(factor) or factor < 1:
        raise ValueError(f"resize factor must be a finite number >= 1, got {factor!r}")
    return factor


def choose_load_shrink(factor: float, steps: tuple[int, ...]) -> int:
    """Return the largest shrink-on-load step not exceeding ``factor``, or 1 if none fits."""
    for step in sorted(steps, reverse=True):
        if step <= factor:
            return step
    return 1


def plan_shrink(factor: float, load_steps: tuple[int, ...] = ()) -> ShrinkPlan:
    """Split ``factor`` into a shrink-on-load step and an integer shrink.

    Args:
        factor: Requested reduction of each linear dimension (>= 1).
        load_steps: Shrink-on-load steps the decoder offers; empty when the
            format (or the image's current state) has none.

    Returns:
        The plan. Factors below 2 produce a no-op plan.
    """
    factor = validate_factor(factor)
    if factor < MIN_SHRINK_FACTOR:
        return ShrinkPlan()

    load_shrink = choose_load_shrink(factor, load_steps)
    residual = factor / load_shrink
    if residual < MIN_SHRINK_FACTOR:
        return ShrinkPlan(load_shrink=load_shrink)

    return ShrinkPlan(load_shrink=load_shrink, integer_shrink=math.floor(residual))


def residual_scale(factor: float, reduction: int = 1) -> float:
    """Return the affine scale completing a reduction by ``factor``.

    ``reduction`` is the integer reduction already applied. With a plain
    integer shrink it equals ``floor(factor)``, so the scale is the familiar
    ``floor(factor) / factor``.

    Raises:
        ValueError: If ``factor`` is invalid or smaller than ``reduction``
            (the pass would have to enlarge the image).
    """
    factor = validate_factor(factor)
    if reduction > factor:
        raise ValueError(f"factor {factor} is smaller than the reduction already applied ({reduction})")
    return reduction / factor


def measured_load_shrink(source_size: tuple[int, int], size: tuple[int, int], steps: tuple[int, ...]) -> int:
    """Return the shrink-on-load step that turned ``source_size`` into ``size``.

    Decoders round partial blocks up, so a step ``s`` yields
    ``ceil(width / s)`` by ``ceil(height / s)``. A decoder may fall back to a
    smaller step than requested when one side is thinner than the step, so the
    result is matched against every candidate, largest first. When nothing
    matches, the ratio of the longer side is used.
    """
    source_width, source_height = source_size
    for step in sorted(steps, reverse=True):
        if size == (math.ceil(source_width / step), math.ceil(source_height / step)):
            return step
    if source_width >= source_height:
        return max(1, round(source_width / size[0]))
    return max(1, round(source_height / size[1]))


def affine_target(source_size: tuple[float, float], size: tuple[int, int], factor: float) -> tuple[int, int]:
    """Return the size an image of ``source_size`` reduced by ``factor`` should end at.

    Each side is ``round(side / factor)``, at least 1 and never more than the
    current ``size``: the affine pass only reduces.
    """
    factor = validate_factor(factor)
    width = min(size[0], max(1, round(source_size[0] / factor)))
    height = min(size[1], max(1, round(source_size[1] / factor)))
    return width, height
