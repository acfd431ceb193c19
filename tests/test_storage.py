import os
import tempfile
import unittest

from db.errors import StorageError
from db.storage import ObjectStorage


class ObjectStorageTestCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.storage = ObjectStorage(self.temp_dir.name, "https://cdn.test/public/")

    def tearDown(self):
        self.temp_dir.cleanup()

    async def test_upload_and_public_url(self):
        key = await self.storage.upload("products/1/front view.jpg", b"jpeg")
        self.assertEqual(key, "products/1/front view.jpg")
        self.assertTrue(self.storage.exists(key))
        self.assertEqual(
            self.storage.get_public_url(key),
            "https://cdn.test/public/product-images/products/1/front%20view.jpg",
        )
        path = os.path.join(
            self.temp_dir.name, "product-images", "products", "1", "front view.jpg"
        )
        with open(path, "rb") as f:
            self.assertEqual(f.read(), b"jpeg")

    async def test_existing_object_needs_upsert(self):
        await self.storage.upload("a.png", b"1")
        with self.assertRaises(StorageError):
            await self.storage.upload("a.png", b"2")
        await self.storage.upload("a.png", b"3", upsert=True)
        with open(os.path.join(self.temp_dir.name, "product-images", "a.png"), "rb") as f:
            self.assertEqual(f.read(), b"3")

    async def test_paths_outside_bucket_are_rejected(self):
        for path in ("", ".", "/etc/passwd", "../escape.png", "products/../../x.png"):
            with self.assertRaises(StorageError):
                await self.storage.upload(path, b"x")
            with self.assertRaises(StorageError):
                self.storage.get_public_url(path)

    def test_backslashes_are_normalized(self):
        self.assertEqual(
            self.storage.get_public_url("products\\2\\x.png"),
            "https://cdn.test/public/product-images/products/2/x.png",
        )
