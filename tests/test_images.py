"""Tests for image detection and recompression."""

import io
import random
import unittest

from PIL import Image

from wikifetch.images import ImageCompressor, is_image_mime, is_image_url


def _noise_image(fmt, mode="RGB", size=(64, 64)):
    rng = random.Random(42)
    img = Image.new(mode, size)
    img.putdata([tuple(rng.randrange(256) for _ in mode) for _ in range(size[0] * size[1])])
    out = io.BytesIO()
    if fmt == "JPEG":
        img.save(out, format=fmt, quality=100)
    else:
        img.save(out, format=fmt)
    return out.getvalue()


class TestImageDetection(unittest.TestCase):
    def test_image_urls(self):
        self.assertTrue(is_image_url("https://upload.wiki.test/a/ab/Photo.JPG"))
        self.assertTrue(is_image_url("https://upload.wiki.test/a/ab/Map.svg?version=3"))
        self.assertFalse(is_image_url("https://wiki.test/wiki/Photo.png.html"))
        self.assertFalse(is_image_url("https://wiki.test/w/api.php?action=query"))

    def test_image_mimes(self):
        self.assertTrue(is_image_mime("image/png"))
        self.assertTrue(is_image_mime("image/svg+xml; charset=utf-8"))
        self.assertFalse(is_image_mime("text/html"))
        self.assertFalse(is_image_mime(None))


class TestImageCompressor(unittest.TestCase):
    """Verify the compressor chain never grows an image."""

    def test_jpeg_does_not_grow(self):
        data = _noise_image("JPEG")
        result = ImageCompressor().compress(data, "image/jpeg")
        self.assertLessEqual(len(result), len(data))
        with Image.open(io.BytesIO(result)) as img:
            self.assertEqual(img.format, "JPEG")

    def test_png_does_not_grow(self):
        data = _noise_image("PNG")
        result = ImageCompressor().compress(data, "image/png")
        self.assertLessEqual(len(result), len(data))
        with Image.open(io.BytesIO(result)) as img:
            self.assertEqual(img.size, (64, 64))

    def test_invalid_bytes_pass_through(self):
        with self.assertLogs("wikifetch.images", level="WARNING"):
            self.assertEqual(ImageCompressor().compress(b"not an image", "image/jpeg"), b"not an image")

    def test_unknown_mime_passes_through(self):
        self.assertEqual(ImageCompressor().compress(b"<svg/>", "image/svg+xml"), b"<svg/>")
        self.assertEqual(ImageCompressor().compress(b"abc", None), b"abc")

    def test_registered_step_kept_only_when_smaller(self):
        compressor = ImageCompressor(compressors={})
        compressor.register("image/webp", lambda data: data + b"pad")
        compressor.register("image/webp", lambda data: data[:2])
        self.assertEqual(compressor.compress(b"abcdef", "image/webp"), b"ab")


if __name__ == "__main__":
    unittest.main()
