from datetime import datetime, timezone

import anyio
import httpx
import pytest

from uploader.app.collaborators import (
    InMemoryHandleRegistry,
    InMemoryHistoryStore,
    MemoryNotifier,
    Severity,
)
from uploader.app.schemas.files import SelectedFile
from uploader.app.signing_client import SigningClient
from uploader.app.validation import PdfValidator
from uploader.app.wizard import Action, UploadWizard, WizardState, WizardStep
from uploader.tests.fixtures.pdf_factory import encrypted_pdf

pytestmark = pytest.mark.anyio

SIGNED = b"%PDF-1.7 signed"
FIXED_NOW = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


class Harness:
    """
    Wizard wired to real validation and an in-process signing endpoint.
    """

    def __init__(self, settings, handler):
        self.requests = []

        async def recording(request):
            self.requests.append(request)
            response = handler(request)
            if hasattr(response, "__await__"):
                response = await response
            return response

        http = httpx.AsyncClient(transport=httpx.MockTransport(recording))
        self.notifier = MemoryNotifier()
        self.handles = InMemoryHandleRegistry()
        self.history = InMemoryHistoryStore(self.handles)
        self.wizard = UploadWizard(
            validator=PdfValidator(settings),
            signing_client=SigningClient(settings, http_client=http),
            notifier=self.notifier,
            handles=self.handles,
            history=self.history,
            clock=lambda: FIXED_NOW,
        )


def signs_ok(request):
    return httpx.Response(
        200,
        content=SIGNED,
        headers={"content-type": "application/pdf"},
    )


def fails_with(status_code, error="Signing failed: boom"):
    def handler(request):
        return httpx.Response(status_code, json={"error": error})

    return handler


# ----------------------------------------------------------------------
# Upload step
# ----------------------------------------------------------------------
async def test_dropping_non_pdf_stays_at_upload(settings):
    h = Harness(settings, signs_ok)
    text = SelectedFile.from_bytes("notapdf.txt", b"hello", "text/plain")

    state = await h.wizard.drop_files([text])

    assert state == WizardState()
    assert state.file_info is None
    ((severity, message),) = h.notifier.messages
    assert severity is Severity.ERROR
    assert "not supported" in message
    assert h.handles.created == 0


async def test_dropping_several_files_is_rejected(settings, valid_pdf_file):
    h = Harness(settings, signs_ok)

    state = await h.wizard.drop_files([valid_pdf_file, valid_pdf_file])

    assert state.step is WizardStep.UPLOAD
    assert len(h.notifier.messages) == 1


async def test_selecting_non_pdf_reports_type(settings):
    h = Harness(settings, signs_ok)
    text = SelectedFile.from_bytes("notapdf.txt", b"hello", "text/plain")

    state = await h.wizard.select_file(text)

    assert state.step is WizardStep.UPLOAD
    assert state.message == "File type not supported. Only PDF files are allowed."
    assert not state.is_busy


async def test_valid_pdf_enters_preview(settings, valid_pdf_file):
    h = Harness(settings, signs_ok)

    state = await h.wizard.drop_files([valid_pdf_file])

    assert state.step is WizardStep.PREVIEW
    assert state.file_info.startswith("Selected File: test.pdf (")
    assert state.file_info.endswith(" MB)")
    assert state.available_actions == {Action.SIGN, Action.REMOVE, Action.BACK}
    assert h.handles.resolve(state.preview_handle) == await valid_pdf_file.read()
    assert h.notifier.messages == []


async def test_encrypted_pdf_warns_and_holds_nothing(settings):
    h = Harness(settings, signs_ok)
    locked = SelectedFile.from_bytes("locked.pdf", encrypted_pdf(), "application/pdf")

    state = await h.wizard.select_file(locked)

    assert state.step is WizardStep.UPLOAD
    assert state.document is None
    assert h.notifier.messages[0][0] is Severity.WARNING
    assert h.handles.live_handles == frozenset()


async def test_selecting_new_file_replaces_previous_one(settings, valid_pdf_file):
    h = Harness(settings, signs_ok)
    await h.wizard.select_file(valid_pdf_file)
    first_handle = h.wizard.state.preview_handle

    other = SelectedFile.from_bytes(
        "other.pdf",
        await valid_pdf_file.read(),
        "application/pdf",
    )
    state = await h.wizard.select_file(other)

    assert state.document.name == "other.pdf"
    assert h.handles.live_handles == {state.preview_handle}
    assert first_handle not in h.handles.live_handles


# ----------------------------------------------------------------------
# Signing
# ----------------------------------------------------------------------
async def test_successful_signing_reaches_done(settings, valid_pdf_file):
    h = Harness(settings, signs_ok)
    await h.wizard.select_file(valid_pdf_file)

    state = await h.wizard.sign()

    assert state.step is WizardStep.DONE
    assert Action.DOWNLOAD in state.available_actions
    assert Action.NEW_UPLOAD in state.available_actions
    assert state.download_name == "signed-test.pdf"
    assert h.handles.resolve(state.signed_handle) == SIGNED
    assert h.notifier.messages == [(Severity.SUCCESS, "PDF signed successfully!")]

    (entry,) = h.history.entries()
    assert entry.name == "signed-test.pdf"
    assert entry.signed_at == FIXED_NOW
    assert h.handles.resolve(entry.handle) == SIGNED


async def test_server_error_returns_to_preview(settings, valid_pdf_file):
    h = Harness(settings, fails_with(500))
    await h.wizard.select_file(valid_pdf_file)

    state = await h.wizard.sign()

    assert state.step is WizardStep.PREVIEW
    assert state.document.name == "test.pdf"
    assert {Action.SIGN, Action.REMOVE} <= state.available_actions
    ((severity, message),) = h.notifier.messages
    assert severity is Severity.ERROR
    assert "Signing failed" in message
    assert len(h.history) == 0


async def test_rejection_shows_server_message(settings, valid_pdf_file):
    h = Harness(settings, fails_with(413, "File size exceeds 10MB limit."))
    await h.wizard.select_file(valid_pdf_file)

    state = await h.wizard.sign()

    assert state.message == "Signing failed: File size exceeds 10MB limit."


async def test_unreachable_service_allows_retry(settings, valid_pdf_file):
    attempts = []

    def flaky(request):
        attempts.append(request)
        if len(attempts) == 1:
            raise httpx.ConnectError("connection refused", request=request)
        return signs_ok(request)

    h = Harness(settings, flaky)
    await h.wizard.select_file(valid_pdf_file)

    failed = await h.wizard.sign()
    assert failed.step is WizardStep.PREVIEW
    assert "could not be reached" in failed.message

    retried = await h.wizard.sign()
    assert retried.step is WizardStep.DONE
    assert len(attempts) == 2


async def test_sign_without_document_does_nothing(settings):
    h = Harness(settings, signs_ok)

    state = await h.wizard.sign()

    assert state == WizardState()
    assert h.requests == []


async def test_second_sign_while_in_flight_is_dropped(settings, valid_pdf_file):
    gate = anyio.Event()

    async def slow(request):
        await gate.wait()
        return signs_ok(request)

    h = Harness(settings, slow)
    await h.wizard.select_file(valid_pdf_file)

    async with anyio.create_task_group() as tg:
        tg.start_soon(h.wizard.sign)
        while not h.wizard.state.is_busy:
            await anyio.sleep(0)

        busy = h.wizard.state
        assert busy.step is WizardStep.SIGNING
        assert busy.activity_message == "Signing document..."
        assert busy.available_actions == frozenset()

        await h.wizard.sign()
        h.wizard.go_back()
        h.wizard.remove_file()
        assert h.wizard.state == busy

        gate.set()

    assert len(h.requests) == 1
    assert h.wizard.state.step is WizardStep.DONE


# ----------------------------------------------------------------------
# Navigation and handle lifecycle
# ----------------------------------------------------------------------
async def test_round_trip_leaves_only_history_handles(settings, valid_pdf_file):
    h = Harness(settings, signs_ok)

    await h.wizard.select_file(valid_pdf_file)
    await h.wizard.sign()
    state = h.wizard.start_new_upload()

    assert state == WizardState()
    (entry,) = h.history.entries()
    assert h.handles.live_handles == {entry.handle}

    h.history.clear()
    assert h.handles.live_handles == frozenset()
    assert h.handles.created == h.handles.released == 3


async def test_back_from_done_then_sign_again(settings, valid_pdf_file):
    h = Harness(settings, signs_ok)
    await h.wizard.select_file(valid_pdf_file)
    await h.wizard.sign()

    at_signing = h.wizard.go_back()
    assert at_signing.step is WizardStep.SIGNING
    assert at_signing.signed_handle is None

    at_preview = h.wizard.activate_step(1)
    assert at_preview.step is WizardStep.PREVIEW

    again = await h.wizard.sign()
    assert again.step is WizardStep.DONE
    assert len(h.requests) == 2
    assert len(h.history) == 2
    # preview handle, current signed handle, two history handles
    assert len(h.handles.live_handles) == 4


async def test_remove_discards_preview(settings, valid_pdf_file):
    h = Harness(settings, signs_ok)
    await h.wizard.select_file(valid_pdf_file)

    state = h.wizard.remove_file()

    assert state == WizardState()
    assert h.handles.live_handles == frozenset()


async def test_close_releases_everything_but_history(settings, valid_pdf_file):
    h = Harness(settings, signs_ok)
    await h.wizard.select_file(valid_pdf_file)
    await h.wizard.sign()

    h.wizard.close()

    assert h.wizard.state == WizardState()
    assert h.handles.live_handles == {h.history.entries()[0].handle}


async def test_close_during_signing_discards_late_result(settings, valid_pdf_file):
    gate = anyio.Event()

    async def slow(request):
        await gate.wait()
        return signs_ok(request)

    h = Harness(settings, slow)
    await h.wizard.select_file(valid_pdf_file)

    async with anyio.create_task_group() as tg:
        tg.start_soon(h.wizard.sign)
        while not h.wizard.state.is_busy:
            await anyio.sleep(0)

        h.wizard.close()
        gate.set()

    assert h.wizard.state == WizardState()
    assert h.handles.live_handles == frozenset()
    assert len(h.history) == 0
