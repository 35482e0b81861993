import io
import tempfile
import unittest
from pathlib import Path

from formsite.errors import StorageError
from formsite.uploads import LocalUploadStore, build_upload_filename


class BuildUploadFilenameTests(unittest.TestCase):
    def test_keeps_extension_and_sanitizes_base(self):
        self.assertEqual(build_upload_filename("my photo!.png", now_ms=123), "123_my_photo_.png")
        self.assertEqual(build_upload_filename("report-v2_final.pdf", now_ms=1), "1_report-v2_final.pdf")
        self.assertEqual(build_upload_filename("résumé.doc", now_ms=5), "5_r_sum_.doc")

    def test_only_ascii_letters_survive(self):
        # U+017F and U+212A case-fold to ASCII letters but are not ASCII.
        self.assertEqual(build_upload_filename("ſKa.txt", now_ms=3), "3___a.txt")

    def test_only_last_extension_is_kept(self):
        self.assertEqual(build_upload_filename("archive.tar.gz", now_ms=7), "7_archive_tar.gz")

    def test_directories_are_dropped(self):
        self.assertEqual(build_upload_filename("../../etc/passwd", now_ms=9), "9_passwd")

    def test_timestamp_prefix(self):
        name = build_upload_filename("a.txt")
        prefix, rest = name.split("_", 1)
        self.assertTrue(prefix.isdigit())
        self.assertEqual(rest, "a.txt")


class LocalUploadStoreTests(unittest.TestCase):
    def setUp(self):
        self.tmp = Path(self.enterContext(tempfile.TemporaryDirectory()))

    def test_save_creates_directory_lazily(self):
        store = LocalUploadStore(directory=self.tmp / "uploads")
        self.assertFalse((self.tmp / "uploads").exists())

        url = store.save("notes.txt", io.BytesIO(b"hello"))
        self.assertRegex(url, r"^/uploads/\d+_notes\.txt$")
        saved = self.tmp / "uploads" / url.rsplit("/", 1)[1]
        self.assertEqual(saved.read_bytes(), b"hello")

    def test_write_failure_raises_storage_error(self):
        blocker = self.tmp / "not-a-dir"
        blocker.write_text("x")
        store = LocalUploadStore(directory=blocker)
        with self.assertRaises(StorageError):
            store.save("notes.txt", io.BytesIO(b"hello"))


if __name__ == "__main__":
    unittest.main()
