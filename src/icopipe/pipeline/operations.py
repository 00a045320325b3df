"""Pipeline operations applied, in order, to a decoded image."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

from icopipe.imaging.backend import Colourspace, Interpolation

if TYPE_CHECKING:
    from icopipe.imaging.image import Image
    from icopipe.pipeline.params import Fit, Gravity, PipelineParams

logger = logging.getLogger(__name__)


class Operation(Protocol):
    """A deterministic image manipulation step."""

    def process(self, image: Image) -> None:
        """Apply the operation to ``image`` in place."""
        ...


@dataclass(frozen=True)
class Resize:
    """Resize to fit inside (``clip``) or cover (``crop``) a target box.

    Either side may be 0, meaning it follows from the other side and the
    image's aspect ratio. Images smaller than or equal to the box are left
    alone; this operation never enlarges.
    """

    width: int = 0
    height: int = 0
    fit: Fit = "clip"
    gravity: Gravity = "center"
    point: tuple[int, int] | None = None
    interpolation: Interpolation = Interpolation.BILINEAR

    @classmethod
    def from_params(
        cls, params: PipelineParams, interpolation: Interpolation = Interpolation.BILINEAR
    ) -> Resize | None:
        """Return a Resize for ``params``, or None when no target size is given."""
        if not params.resizes:
            return None
        return cls(
            width=params.width,
            height=params.height,
            fit=params.fit,
            gravity=params.gravity,
            point=params.point,
            interpolation=interpolation,
        )

    def process(self, image: Image) -> None:
        width, height = image.dimensions
        if self.width > width or self.height > height or (self.width == width and self.height == height):
            logger.debug("Skipping resize of %dx%d image to %dx%d", width, height, self.width, self.height)
            return

        factor = self.resize_factor(width, height)
        image.shrink(factor)
        image.affine(factor, self.interpolation)

        if self.fit == "crop":
            self._crop(image, source_width=width)

    def resize_factor(self, width: int, height: int) -> float:
        """Return the reduction that maps a ``width`` x ``height`` image onto the target box.

        With both sides set, ``crop`` takes the smaller ratio (the image covers
        the box) and ``clip`` the larger one (the image fits inside it).
        """
        if self.width > 0 and self.height > 0:
            xf = width / self.width
            yf = height / self.height
            return min(xf, yf) if self.fit == "crop" else max(xf, yf)
        if self.width > 0:
            return width / self.width
        return height / self.height

    def crop_bounds(self, width: int, height: int, scale: float = 1.0) -> tuple[int, int, int, int]:
        """Return ``(x, y, w, h)`` of the area to keep from a ``width`` x ``height`` image.

        ``scale`` maps source pixel coordinates (used by the ``point``
        gravity) onto the current image.
        """
        box_w = min(width, self.width or width)
        box_h = min(height, self.height or height)

        x, y = (width - box_w) // 2, (height - box_h) // 2
        if self.gravity == "point":
            px, py = self.point or (0, 0)
            x = min(max(0, int(px * scale) - box_w // 2), width - box_w)
            y = min(max(0, int(py * scale) - box_h // 2), height - box_h)
        elif self.gravity == "left":
            x = 0
        elif self.gravity == "right":
            x = width - box_w
        elif self.gravity == "top":
            y = 0
        elif self.gravity == "bottom":
            y = height - box_h

        return x, y, box_w, box_h

    def _crop(self, image: Image, source_width: int) -> None:
        width, height = image.dimensions
        bounds = self.crop_bounds(width, height, scale=width / source_width)
        if bounds == (0, 0, width, height):
            return
        image.crop(*bounds)


@dataclass(frozen=True)
class Normalize:
    """Convert the image to a fixed colourspace (sRGB by default) before encoding."""

    space: Colourspace = Colourspace.SRGB

    def process(self, image: Image) -> None:
        image.colourspace(self.space)
