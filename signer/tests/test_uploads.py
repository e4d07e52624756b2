import pytest

from signer.app.services.uploads import (
    UploadTooLarge,
    allocate_signed_path,
    discard,
    sanitize_filename,
    stage_upload,
)

pytestmark = pytest.mark.anyio


class _FakeUpload:
    """Minimal stand-in exposing the async read() an UploadFile offers."""

    def __init__(self, payload: bytes):
        self._payload = payload
        self._offset = 0

    async def read(self, size: int = -1) -> bytes:
        if size < 0:
            size = len(self._payload)
        chunk = self._payload[self._offset:self._offset + size]
        self._offset += len(chunk)
        return chunk


def test_sanitize_replaces_everything_but_alphanumerics_and_dots():
    assert sanitize_filename("my report (final).pdf") == "my_report__final_.pdf"
    assert sanitize_filename("../../etc/passwd") == ".._.._etc_passwd"
    assert sanitize_filename(None) == "document.pdf"


def test_signed_paths_are_unique_for_the_same_original_name(tmp_path):
    paths = {allocate_signed_path(tmp_path, "test.pdf") for _ in range(50)}

    assert len(paths) == 50
    assert all(p.parent == tmp_path for p in paths)
    assert all(p.name.startswith("signed-") and p.name.endswith("-test.pdf") for p in paths)


def test_discard_tolerates_missing_and_none(tmp_path):
    present = tmp_path / "a.pdf"
    present.write_bytes(b"x")

    discard(present, tmp_path / "never-created.pdf", None)

    assert not present.exists()


async def test_stage_upload_copies_payload(tmp_path):
    payload = b"%PDF-1.7\n" + b"0" * 200_000

    staged = await stage_upload(
        _FakeUpload(payload),
        upload_dir=tmp_path / "uploads",
        max_bytes=1024 * 1024,
    )

    assert staged.read_bytes() == payload
    assert staged.parent == tmp_path / "uploads"


async def test_stage_upload_enforces_limit_and_removes_partial_file(tmp_path):
    with pytest.raises(UploadTooLarge):
        await stage_upload(
            _FakeUpload(b"x" * 300_000),
            upload_dir=tmp_path,
            max_bytes=100_000,
        )

    assert list(tmp_path.iterdir()) == []
