"""Pipeline: decode an encoded buffer, apply operations in order, encode the result."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

from icopipe.imaging.backend import Interpolation
from icopipe.imaging.formats import ImageFormat, detect_format, get_spec
from icopipe.imaging.image import Image
from icopipe.pipeline.operations import Normalize, Resize
from icopipe.pipeline.params import PipelineParams, parse_params

if TYPE_CHECKING:
    from icopipe.imaging.backend import ImageBackend
    from icopipe.pipeline.operations import Operation

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProcessedImage:
    """Encoded output of a pipeline run."""

    data: bytes
    format: ImageFormat
    width: int
    height: int

    @property
    def mime_type(self) -> str:
        return get_spec(self.format).mime_type

    @property
    def size(self) -> int:
        return len(self.data)


class Pipeline:
    """An ordered list of operations plus encoder options."""

    def __init__(self, operations: list[Operation], quality: int | None = None) -> None:
        self._operations = list(operations)
        self._quality = quality

    @classmethod
    def from_params(
        cls,
        params: str | PipelineParams,
        interpolation: Interpolation = Interpolation.BILINEAR,
    ) -> Pipeline:
        """Build a pipeline from a parameter string or parsed parameters.

        Raises:
            ParamsError: If a parameter string cannot be parsed.
        """
        if isinstance(params, str):
            params = parse_params(params)

        operations: list[Operation] = []
        resize = Resize.from_params(params, interpolation)
        if resize is not None:
            operations.append(resize)
        operations.append(Normalize())
        return cls(operations, quality=params.quality)

    @property
    def operations(self) -> list[Operation]:
        return list(self._operations)

    def process(self, backend: ImageBackend, data: bytes) -> ProcessedImage:
        """Run the pipeline over an encoded buffer.

        The format is detected from the buffer and the result is written in
        the same format. The decoded image is always released, whether the
        run succeeds or not.

        Raises:
            ConstructionError: If the buffer cannot be decoded.
            UnsupportedOperationError: If the format cannot be written back (GIF).
            BackendOperationError: If an operation fails in the backend.
        """
        started = time.perf_counter()
        fmt = detect_format(data)

        with Image(backend, data, fmt) as image:
            source_width, source_height = image.dimensions
            for operation in self._operations:
                operation.process(image)
            width, height = image.dimensions
            output = image.encode(quality=self._quality)

        logger.debug(
            "Processed %s image %dx%d -> %dx%d (%d bytes) in %.1f ms",
            fmt,
            source_width,
            source_height,
            width,
            height,
            len(output),
            (time.perf_counter() - started) * 1000,
        )
        return ProcessedImage(data=output, format=fmt, width=width, height=height)
