"""The mutable image entity the pipeline works on.

An ``Image`` owns exactly one backend handle at a time. Every successful
operation builds a new handle, installs it and releases the previous one; a
failed operation releases whatever it created and leaves the previous handle in
place. The encoded source buffer is kept (never copied or modified) so JPEG
images can be decoded again at a reduced scale.

Images are not thread-safe. Use one per request.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from icopipe.imaging.backend import Colourspace, Interpolation
from icopipe.imaging.errors import (
    BackendOperationError,
    ConstructionError,
    ImageReleasedError,
    UnsupportedOperationError,
)
from icopipe.imaging.formats import ImageFormat, detect_format, get_spec
from icopipe.imaging.resize import (
    ShrinkPlan,
    affine_target,
    measured_load_shrink,
    plan_shrink,
    residual_scale,
    validate_factor,
)

if TYPE_CHECKING:
    from types import TracebackType

    from icopipe.imaging.backend import Handle, ImageBackend
    from icopipe.imaging.formats import FormatSpec

logger = logging.getLogger(__name__)


class Image:
    """A decoded image bound to the encoded buffer it was created from."""

    def __init__(self, backend: ImageBackend, data: bytes, fmt: ImageFormat) -> None:
        """Decode ``data`` as ``fmt``.

        Raises:
            ConstructionError: If the buffer is empty, the format is unknown or
                the backend cannot decode the data.
        """
        if not data:
            raise ConstructionError("cannot construct image from an empty buffer")
        try:
            spec = get_spec(fmt)
        except ValueError:
            raise ConstructionError(f"unknown image format: {fmt!r}") from None

        try:
            handle = backend.decode(data, spec)
        except BackendOperationError as exc:
            raise ConstructionError(str(exc)) from exc

        self._backend = backend
        self._spec: FormatSpec = spec
        self._source = data
        self._handle: Handle | None = handle
        self._source_size: tuple[int, int] = backend.dimensions(handle)
        # Source-resolution size of the area the handle covers; crops narrow it.
        self._extent: tuple[float, float] = (float(self._source_size[0]), float(self._source_size[1]))
        # True while the handle is still the untouched full decode of the source.
        self._pristine = True
        self._reduction = 1.0

    @classmethod
    def from_buffer(cls, backend: ImageBackend, data: bytes) -> Image:
        """Construct an image, detecting its format from the buffer's magic header."""
        return cls(backend, data, detect_format(data))

    # -- Metadata -----------------------------------------------------------

    @property
    def format(self) -> ImageFormat:
        return self._spec.format

    @property
    def spec(self) -> FormatSpec:
        return self._spec

    @property
    def source(self) -> bytes:
        """The encoded buffer the image was constructed from."""
        return self._source

    @property
    def source_size(self) -> tuple[int, int]:
        """``(width, height)`` of the full decode of the source."""
        return self._source_size

    @property
    def reduction(self) -> float:
        """Total linear reduction applied to the source so far by shrink and affine.

        Shrink-on-load counts the step the decoder actually took, which can be
        smaller than the one requested for very thin images.
        """
        return self._reduction

    @property
    def released(self) -> bool:
        return self._handle is None

    @property
    def dimensions(self) -> tuple[int, int]:
        return self._backend.dimensions(self._require_handle())

    @property
    def width(self) -> int:
        return self.dimensions[0]

    @property
    def height(self) -> int:
        return self.dimensions[1]

    # -- Resizing -----------------------------------------------------------

    def shrink(self, factor: float) -> float:
        """Reduce the image by the integer part of ``factor``.

        JPEG images that have not been modified yet are decoded again from the
        source at the largest shrink-on-load step (8, 4 or 2) not exceeding
        ``factor``; an integer block shrink covers the rest when at least 2
        remains. Factors below 2 leave the image untouched.

        Returns:
            The factor left for ``affine`` to apply, ``factor`` divided by the
            integer reduction achieved here.

        Raises:
            ValueError: If ``factor`` is not a finite number >= 1.
            BackendOperationError: If a backend step fails. The image is left
                exactly as it was before the call.
        """
        factor = validate_factor(factor)
        handle = self._require_handle()
        steps = self._spec.load_shrink_steps if self._pristine else ()
        plan = plan_shrink(factor, steps)
        if plan.is_noop:
            return factor

        logger.debug(
            "Shrinking %s image by %.3f (load_shrink=%d, integer_shrink=%d)",
            self.format,
            factor,
            plan.load_shrink,
            plan.integer_shrink,
        )

        current = handle
        try:
            if plan.load_shrink > 1:
                current = self._backend.decode(self._source, self._spec, shrink=plan.load_shrink)
                plan = self._replan_after_load(factor, plan, self._backend.dimensions(current))
            if plan.integer_shrink > 1:
                shrunk = self._backend.shrink(current, plan.integer_shrink, plan.integer_shrink)
                if current is not handle:
                    self._backend.release(current)
                current = shrunk
        except BackendOperationError:
            if current is not handle:
                self._backend.release(current)
            raise

        self._install(current)
        self._reduction *= plan.reduction
        return factor / plan.reduction

    def affine(self, factor: float, interpolation: Interpolation = Interpolation.BILINEAR) -> None:
        """Scale the image down by whatever part of ``factor`` shrink left over.

        ``factor`` is the requested reduction relative to the source, the same
        value given to ``shrink``. The image ends at ``round(side / factor)``
        of the source on each axis (capped at the current size), so pixels the
        integer shrink dropped are accounted for. When the image already has
        that size the backend is not called.

        Raises:
            ValueError: If ``factor`` is invalid or smaller than the reduction
                already applied.
            BackendOperationError: If the backend transform fails.
        """
        handle = self._require_handle()
        residual_scale(factor, self._reduction)
        width, height = self._backend.dimensions(handle)
        target_width, target_height = affine_target(self._extent, (width, height), factor)
        if (target_width, target_height) == (width, height):
            self._reduction = validate_factor(factor)
            return

        hscale, vscale = target_width / width, target_height / height
        logger.debug(
            "Affine scaling %s image %dx%d to %dx%d (%s)",
            self.format,
            width,
            height,
            target_width,
            target_height,
            interpolation,
        )
        self._install(self._backend.affine(handle, hscale, vscale, interpolation))
        self._reduction = validate_factor(factor)

    # -- Other mutations ----------------------------------------------------

    def crop(self, x: int, y: int, width: int, height: int) -> None:
        """Keep only the ``width`` x ``height`` area whose top-left corner is at ``(x, y)``.

        The backend validates the rectangle; an out-of-bounds area raises
        ``BackendOperationError`` and leaves the image unchanged.
        """
        handle = self._require_handle()
        current_width, current_height = self._backend.dimensions(handle)
        self._install(self._backend.extract_area(handle, x, y, width, height))
        self._extent = (
            self._extent[0] * width / current_width,
            self._extent[1] * height / current_height,
        )

    def colourspace(self, space: Colourspace) -> None:
        """Convert the image to another colour interpretation."""
        handle = self._require_handle()
        self._install(self._backend.colourspace(handle, space))

    # -- Output -------------------------------------------------------------

    def encode(self, quality: int | None = None, compression: int | None = None) -> bytes:
        """Encode the image in its source format.

        Args:
            quality: JPEG quality (1-100); defaults to the backend setting.
            compression: PNG compression level (0-9); defaults to the backend setting.

        Raises:
            UnsupportedOperationError: If the format cannot be written (GIF).
            ValueError: If ``quality`` or ``compression`` is out of range.
            BackendOperationError: If the encoder fails.
        """
        if not self._spec.encodable:
            raise UnsupportedOperationError(f"saving to {self.format} is not supported")

        handle = self._require_handle()
        config = self._backend.config
        quality = config.jpeg_quality if quality is None else quality
        compression = config.png_compression if compression is None else compression
        if not 1 <= quality <= 100:
            raise ValueError(f"quality must be between 1 and 100, got {quality}")
        if not 0 <= compression <= 9:
            raise ValueError(f"compression must be between 0 and 9, got {compression}")

        return self._backend.encode(handle, self._spec, quality, compression)

    # -- Lifetime -----------------------------------------------------------

    def release(self) -> None:
        """Free the backend handle. Calling it again does nothing."""
        handle, self._handle = self._handle, None
        if handle is not None:
            self._backend.release(handle)

    def __enter__(self) -> Image:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.release()

    def __repr__(self) -> str:
        if self._handle is None:
            return f"<Image {self.format} released>"
        width, height = self.dimensions
        return f"<Image {self.format} {width}x{height}>"

    # -- Internal -----------------------------------------------------------

    def _require_handle(self) -> Handle:
        if self._handle is None:
            raise ImageReleasedError(f"{self.format} image has been released")
        return self._handle

    def _replan_after_load(self, factor: float, plan: ShrinkPlan, size: tuple[int, int]) -> ShrinkPlan:
        steps = tuple(step for step in self._spec.load_shrink_steps if step <= plan.load_shrink)
        applied = measured_load_shrink(self._source_size, size, steps)
        if applied == plan.load_shrink:
            return plan

        logger.debug("%s decoder shrank by %d instead of %d", self.format, applied, plan.load_shrink)
        return ShrinkPlan(load_shrink=applied, integer_shrink=plan_shrink(factor / applied).integer_shrink)

    def _install(self, handle: Handle) -> None:
        previous, self._handle = self._handle, handle
        self._pristine = False
        if previous is not None and previous is not handle:
            self._backend.release(previous)
