import pytest

from uploader.app.config import UploaderSettings
from uploader.app.schemas.files import SelectedFile
from uploader.tests.fixtures.pdf_factory import minimal_valid_pdf


@pytest.fixture
def settings():
    return UploaderSettings(
        sign_endpoint="http://signer.test/sign",
        sign_timeout_seconds=5,
    )


@pytest.fixture
def valid_pdf_file():
    return SelectedFile.from_bytes("test.pdf", minimal_valid_pdf(), "application/pdf")
