import tempfile
import unittest
from pathlib import Path
from unittest import mock

import pandas as pd
from botocore.exceptions import ClientError

import storage
from errors import ValidationError


class LocalStorageTests(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        patches = [
            mock.patch.object(storage, "S3_BUCKET", None),
            mock.patch.object(storage, "LOCAL_STORAGE_DIR", self.tmp.name),
        ]
        for p in patches:
            p.start()
            self.addCleanup(p.stop)
        self.addCleanup(self.tmp.cleanup)

    def test_save_and_load_bytes(self):
        location = storage.save_file("a.txt", b"hello", folder="misc")
        self.assertEqual(Path(location), Path(self.tmp.name) / "misc" / "a.txt")
        self.assertEqual(storage.load_file("a.txt", folder="misc"), b"hello")
        self.assertIsNone(storage.load_file("missing.txt", folder="misc"))

    def test_save_dataframe_and_list(self):
        storage.save_file("b.csv", pd.DataFrame({"Amount": [1, 2]}), folder="misc")
        storage.save_file("c.csv", "Date,Amount\n", folder="misc")
        self.assertEqual(storage.list_files("misc"), ["b.csv", "c.csv"])
        self.assertEqual(storage.load_file("b.csv", folder="misc").decode().splitlines()[0], "Amount")
        self.assertEqual(storage.list_files("empty"), [])

    def test_upload_avatar(self):
        location = storage.upload_avatar(7, "me.PNG", b"\x89PNG")
        self.assertTrue(location.endswith("7.png"))

        with self.assertRaises(ValidationError):
            storage.upload_avatar(7, "me.gif", b"GIF")
        with self.assertRaises(ValidationError):
            storage.upload_avatar(7, "me.png", b"0" * (storage.MAX_AVATAR_BYTES + 1))

    def test_save_report(self):
        location = storage.save_report(3, "report_2026-03-01_to_2026-03-31.csv", "Date,Type\n")
        self.assertEqual(Path(location).parent, Path(self.tmp.name) / "reports" / "3")


class S3StorageTests(unittest.TestCase):
    def setUp(self):
        self.s3 = mock.MagicMock()
        patches = [
            mock.patch.object(storage, "S3_BUCKET", "finora-test"),
            mock.patch.object(storage, "get_s3_client", return_value=self.s3),
        ]
        for p in patches:
            p.start()
            self.addCleanup(p.stop)

    def test_put_object(self):
        location = storage.upload_avatar(7, "me.jpg", b"jpeg")
        self.assertEqual(location, "s3://finora-test/avatars/7.jpg")
        self.s3.put_object.assert_called_once_with(
            Bucket="finora-test", Key="avatars/7.jpg", Body=b"jpeg", ContentType="image/jpeg"
        )

    def test_upload_failure_returns_none(self):
        self.s3.put_object.side_effect = ClientError({"Error": {"Code": "500", "Message": "boom"}}, "PutObject")
        with self.assertLogs("storage", level="ERROR"):
            self.assertIsNone(storage.save_file("x.csv", b"1"))

    def test_list_files(self):
        self.s3.list_objects_v2.return_value = {"Contents": [{"Key": "reports/a.csv"}, {"Key": "reports/b.csv"}]}
        self.assertEqual(storage.list_files("reports"), ["a.csv", "b.csv"])
        self.s3.list_objects_v2.return_value = {}
        self.assertEqual(storage.list_files("reports"), [])


if __name__ == "__main__":
    unittest.main()
