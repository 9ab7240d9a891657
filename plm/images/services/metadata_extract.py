import io
from dataclasses import dataclass

from PIL import Image

from plm.images.errors import UnsupportedFormatError
from plm.images.helpers import format_filesize
from plm.images.services.hashing import compute_checksum


@dataclass(frozen=True)
class ExtractedImageMetadata:
    format: str
    width: int
    height: int
    size_bytes: int
    filesize: str
    checksum: str | None = None

    @property
    def content_type(self) -> str:
        return f"image/{self.format}"


def extract_image_metadata(data: bytes, gen_checksum: bool = True) -> ExtractedImageMetadata:
    """
    Decode just enough of the image to learn its format and geometry.

    Raises UnsupportedFormatError when Pillow cannot identify the bytes.
    The checksum is left as None when gen_checksum is off.
    """
    try:
        with Image.open(io.BytesIO(data)) as img:
            fmt = img.format
            width, height = img.size
    except (OSError, Image.DecompressionBombError) as e:
        raise UnsupportedFormatError(f"unrecognized image data: {e}") from e

    if not fmt:
        raise UnsupportedFormatError("decoder reported no image format")
    if width <= 0 or height <= 0:
        raise UnsupportedFormatError(f"invalid image geometry {width}x{height}")

    return ExtractedImageMetadata(
        format=fmt.upper(),
        width=int(width),
        height=int(height),
        size_bytes=len(data),
        filesize=format_filesize(len(data)),
        checksum=compute_checksum(data) if gen_checksum else None,
    )
