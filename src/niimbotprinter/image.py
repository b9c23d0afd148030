"""
Image Processing for NIIMBOT Printers.

Loads and orients images for printing and encodes them into the per-row
bitmap packets the printer streams during a page.
"""

from io import BytesIO
from pathlib import Path
from typing import Sequence, Union

from PIL import Image

from .errors import ImageError
from .protocol import Packet, RequestCode

# Image size limits to prevent memory exhaustion from malicious/malformed images
MAX_IMAGE_DIMENSION = 10000  # Maximum width or height in pixels
MAX_IMAGE_PIXELS = 10_000_000  # Maximum total pixels (10 megapixels)


class ImageSizeError(ImageError, ValueError):
    """Image dimensions exceed safety limits."""

    pass


class ImageEncoder:
    """
    Encode image rows into PRINT_BITMAP_ROW packets.

    Row packet payload:
        Offset  Length  Field
        0-1     2       Row index (uint16, big-endian)
        2-4     3       Set-bit counts of pixel bytes 0-3, 4-7 and 8-11
        5       1       Marker (always 1)
        6       W       One byte per pixel, 1 = dark, 0 = light
    """

    PACKET_TYPE = RequestCode.PRINT_BITMAP_ROW
    # Print head width in pixels
    ROW_WIDTH = 96
    # Luminance above this is light
    THRESHOLD = 128
    # Three counts of four pixel bytes each. The counts only summarize the
    # first 12 pixel bytes of a row, whatever its width.
    COUNT_GROUPS = 3
    COUNT_GROUP_SIZE = 4
    ROW_MARKER = 1
    # Index, counts and marker ahead of the pixel bytes
    HEADER_SIZE = 6
    # Widest row that fits in one packet
    MAX_ROW_WIDTH = Packet.MAX_DATA_LENGTH - HEADER_SIZE

    def __init__(self, threshold: int = THRESHOLD):
        self.threshold = threshold

    def pixel_value(self, luminance: int) -> int:
        """Map a luminance to its pixel byte: dark is 1, light is 0."""
        return 0 if luminance > self.threshold else 1

    @staticmethod
    def count_bits(data: bytes) -> int:
        """Count bits set in up to 4 bytes read as a big-endian integer."""
        return bin(int.from_bytes(data, "big")).count("1")

    def encode_row(self, row_index: int, luminances: Sequence[int]) -> Packet:
        """
        Encode one row of grayscale values.

        Args:
            row_index: Row number from the top of the page (0-65535)
            luminances: Grayscale value (0-255) of each pixel, left to right

        Returns:
            Row packet of type 0x85

        Raises:
            ImageError: If the row is wider than MAX_ROW_WIDTH
        """
        if not 0 <= row_index <= 0xFFFF:
            raise ValueError(f"Row index out of range: {row_index}")
        if len(luminances) > self.MAX_ROW_WIDTH:
            raise ImageError(
                f"Row of {len(luminances)} pixels exceeds maximum width "
                f"({self.MAX_ROW_WIDTH})"
            )

        pixels = bytes(self.pixel_value(lum) for lum in luminances)

        counts = bytearray()
        for i in range(self.COUNT_GROUPS):
            start = i * self.COUNT_GROUP_SIZE
            counts.append(self.count_bits(pixels[start:start + self.COUNT_GROUP_SIZE]))

        header = row_index.to_bytes(2, "big") + bytes(counts) + bytes([self.ROW_MARKER])
        return Packet(type=self.PACKET_TYPE, data=header + pixels)

    def encode(self, image: Image.Image) -> list[Packet]:
        """Encode every row of an image, top to bottom."""
        if image.mode != "L":
            image = image.convert("L")

        packets = []
        for y in range(image.height):
            row = [image.getpixel((x, y)) for x in range(image.width)]
            packets.append(self.encode_row(y, row))
        return packets


class ImageProcessor:
    """Load and orient images for printing."""

    # Size accepted by the dimension check
    PRINT_WIDTH = ImageEncoder.ROW_WIDTH
    MAX_HEIGHT = 600

    def load(self, source: Union[str, Path, bytes, Image.Image]) -> Image.Image:
        """
        Load an image from various sources.

        Args:
            source: File path, bytes, or PIL Image

        Returns:
            PIL Image object

        Raises:
            ImageError: If the file is missing or cannot be decoded
            ImageSizeError: If image dimensions exceed safety limits
        """
        try:
            if isinstance(source, Image.Image):
                img = source
            elif isinstance(source, (str, Path)):
                path = Path(source)
                if not path.exists():
                    raise ImageError(f"Image file not found: {path}")
                img = Image.open(path)
            elif isinstance(source, bytes):
                img = Image.open(BytesIO(source))
            else:
                raise ImageError(f"Unsupported image type: {type(source)}")
        except ImageError:
            raise
        except Exception as e:
            raise ImageError(f"Failed to load image: {e}") from e

        # Validate image dimensions to prevent memory exhaustion
        if img.width > MAX_IMAGE_DIMENSION or img.height > MAX_IMAGE_DIMENSION:
            raise ImageSizeError(
                f"Image dimensions ({img.width}x{img.height}) exceed maximum "
                f"({MAX_IMAGE_DIMENSION}x{MAX_IMAGE_DIMENSION})"
            )
        if img.width * img.height > MAX_IMAGE_PIXELS:
            raise ImageSizeError(
                f"Image pixel count ({img.width * img.height:,}) exceeds "
                f"maximum ({MAX_IMAGE_PIXELS:,})"
            )

        return img

    def prepare(self, image: Image.Image) -> Image.Image:
        """
        Orient an image for printing.

        Images at least twice as wide as they are tall are rotated 90 degrees
        counter-clockwise so the rightmost column prints first.

        Returns:
            Grayscale image
        """
        if image.mode != "L":
            image = image.convert("L")

        if image.height and image.width // image.height > 1:
            image = image.transpose(Image.Transpose.ROTATE_90)

        return image

    def check(self, image: Image.Image):
        """
        Verify the image fits the print head.

        Raises:
            ImageError: If width is not 96 pixels or height is 600 or more
        """
        if image.width != self.PRINT_WIDTH or image.height >= self.MAX_HEIGHT:
            raise ImageError(
                f"Image dimensions {image.width}x{image.height} are not valid "
                f"(width must be {self.PRINT_WIDTH}, height below {self.MAX_HEIGHT})"
            )


def create_test_pattern(width: int = 96, height: int = 96) -> Image.Image:
    """Create a simple test pattern image."""
    img = Image.new("1", (width, height), color=1)  # White background

    # Draw a border
    for x in range(width):
        img.putpixel((x, 0), 0)
        img.putpixel((x, height - 1), 0)
    for y in range(height):
        img.putpixel((0, y), 0)
        img.putpixel((width - 1, y), 0)

    # Draw diagonal lines
    for i in range(min(width, height)):
        img.putpixel((i, i), 0)
        img.putpixel((width - 1 - i, i), 0)

    return img
