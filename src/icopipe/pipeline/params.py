"""Parsing of pipeline parameter strings.

Parameters arrive as a single comma-separated list of ``key=value`` pairs, as
found in request paths, e.g.::

    width=200,height=200,fit=crop:point:640:360,quality=85

Values may carry ``:``-separated sub-fields. ``fit`` is ``clip`` (default) or
``crop``, optionally followed by a gravity (``center``, ``top``, ``bottom``,
``left``, ``right``) or by ``point:X:Y`` in source pixel coordinates.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

KNOWN_KEYS: frozenset[str] = frozenset({"width", "height", "fit", "quality"})

Fit = Literal["clip", "crop"]
Gravity = Literal["center", "top", "bottom", "left", "right", "point"]


class ParamsError(ValueError):
    """A parameter string could not be parsed or failed validation."""


class PipelineParams(BaseModel):
    """Validated pipeline parameters."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    width: int = Field(default=0, ge=0, description="Target width in pixels (0 = auto)")
    height: int = Field(default=0, ge=0, description="Target height in pixels (0 = auto)")
    fit: Fit = "clip"
    gravity: Gravity = "center"
    point: tuple[int, int] | None = Field(default=None, description="Crop focus point in source pixels")
    quality: int | None = Field(default=None, ge=1, le=100, description="JPEG quality")

    @model_validator(mode="after")
    def _check_point(self) -> PipelineParams:
        if self.gravity == "point" and self.point is None:
            raise ValueError("gravity 'point' requires X and Y coordinates")
        return self

    @property
    def resizes(self) -> bool:
        return self.width > 0 or self.height > 0


def split_params(params: str) -> dict[str, str]:
    """Split a parameter string into a ``key -> value`` mapping.

    Raises:
        ParamsError: If the string is empty, a pair is malformed or a key is unknown.
    """
    if not params.strip():
        raise ParamsError("unable to parse empty parameter list")

    result: dict[str, str] = {}
    for field in params.split(","):
        key, sep, value = field.partition("=")
        key = key.strip()
        if not sep or not key:
            raise ParamsError(f"unable to parse malformed parameter '{field}'")
        if key not in KNOWN_KEYS:
            raise ParamsError(f"unknown parameter '{key}'")
        result[key] = value.strip()
    return result


def parse_params(params: str) -> PipelineParams:
    """Parse and validate a parameter string. Empty values fall back to defaults."""
    raw = split_params(params)

    values: dict[str, object] = {}
    for key in ("width", "height", "quality"):
        if raw.get(key):
            values[key] = raw[key]
    if raw.get("fit"):
        values.update(_parse_fit(raw["fit"]))

    try:
        return PipelineParams.model_validate(values)
    except ValidationError as exc:
        details = "; ".join(f"{'.'.join(str(p) for p in err['loc']) or 'params'}: {err['msg']}" for err in exc.errors())
        raise ParamsError(details) from exc


def _parse_fit(value: str) -> dict[str, object]:
    kind, *rest = value.split(":")
    if kind != "crop":
        if rest:
            raise ParamsError(f"fit '{kind}' takes no options")
        return {"fit": kind}

    if not rest:
        return {"fit": "crop"}

    gravity, *coords = rest
    if gravity == "point":
        if len(coords) != 2:
            raise ParamsError("fit=crop:point requires X and Y coordinates")
        return {"fit": "crop", "gravity": gravity, "point": tuple(coords)}
    if coords:
        raise ParamsError(f"gravity '{gravity}' takes no coordinates")
    return {"fit": "crop", "gravity": gravity}
