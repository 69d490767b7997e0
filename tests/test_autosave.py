import asyncio

import pytest

from formcraft.autosave import AutoSaver, SaveStatus, autosaver_for, storage_saver
from formcraft.config import Settings
from formcraft.document import new_section
from formcraft.errors import PersistenceFailure

DEBOUNCE_MS = 20
RESET_MS = 60


def _doc(title):
    return [new_section("S1", title)]


class Recorder:
    def __init__(self, fail=False):
        self.calls = []
        self.fail = fail
        self.active = 0
        self.max_active = 0
        self.gate = None

    async def __call__(self, document):
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.gate is not None:
                await self.gate.wait()
            if self.fail:
                raise RuntimeError("disk full")
            self.calls.append(document)
        finally:
            self.active -= 1


def _saver(recorder):
    return AutoSaver(recorder, debounce_ms=DEBOUNCE_MS, saved_reset_ms=RESET_MS)


def test_initial_document_is_not_saved():
    async def scenario():
        recorder = Recorder()
        saver = _saver(recorder)
        saver.on_mutation(_doc("loaded"))
        await asyncio.sleep(0.08)
        assert recorder.calls == []
        assert saver.status == SaveStatus.IDLE

    asyncio.run(scenario())


def test_burst_of_mutations_saves_once_with_latest():
    async def scenario():
        recorder = Recorder()
        saver = _saver(recorder)
        saver.attach(_doc("v0"))
        for title in ("v1", "v2", "v3"):
            saver.on_mutation(_doc(title))
            await asyncio.sleep(0.005)
        assert saver.pending
        await asyncio.sleep(0.08)
        assert recorder.calls == [_doc("v3")]
        assert saver.save_count == 1
        assert not saver.dirty

    asyncio.run(scenario())


def test_mutation_reverted_within_window_is_not_saved():
    async def scenario():
        recorder = Recorder()
        saver = _saver(recorder)
        saver.attach(_doc("original"))
        saver.on_mutation(_doc("edited"))
        saver.on_mutation(_doc("original"))
        await asyncio.sleep(0.08)
        assert recorder.calls == []
        assert saver.status == SaveStatus.IDLE

    asyncio.run(scenario())


def test_single_save_in_flight_then_latest_state():
    async def scenario():
        recorder = Recorder()
        recorder.gate = asyncio.Event()
        saver = _saver(recorder)
        saver.attach(_doc("v0"))
        saver.on_mutation(_doc("v1"))
        await asyncio.sleep(0.05)
        assert saver.saving
        assert saver.status == SaveStatus.SAVING

        saver.on_mutation(_doc("v2"))
        await asyncio.sleep(0.05)
        assert recorder.max_active == 1

        recorder.gate.set()
        await asyncio.sleep(0.08)
        assert recorder.calls == [_doc("v1"), _doc("v2")]
        assert recorder.max_active == 1

    asyncio.run(scenario())


def test_saved_returns_to_idle_and_notifies():
    async def scenario():
        recorder = Recorder()
        saver = _saver(recorder)
        seen = []
        saver.subscribe(seen.append)
        saver.attach(_doc("v0"))
        saver.on_mutation(_doc("v1"))
        await asyncio.sleep(0.04)
        assert saver.status == SaveStatus.SAVED
        assert saver.last_saved_at is not None
        await asyncio.sleep(0.08)
        assert saver.status == SaveStatus.IDLE
        assert seen == [SaveStatus.SAVING, SaveStatus.SAVED, SaveStatus.IDLE]

    asyncio.run(scenario())


def test_failing_listener_does_not_stop_save(caplog):
    def broken(status):
        raise ValueError("listener bug")

    async def scenario():
        recorder = Recorder()
        saver = _saver(recorder)
        seen = []
        saver.subscribe(broken)
        saver.subscribe(seen.append)
        saver.attach(_doc("v0"))
        saver.on_mutation(_doc("v1"))
        await asyncio.sleep(0.04)
        assert recorder.calls == [_doc("v1")]
        assert saver.status == SaveStatus.SAVED
        assert seen == [SaveStatus.SAVING, SaveStatus.SAVED]
        saver.close()

    asyncio.run(scenario())
    assert "Auto-save status listener failed" in caplog.text


def test_failure_sets_error_without_retry():
    async def scenario():
        recorder = Recorder(fail=True)
        saver = _saver(recorder)
        saver.attach(_doc("v0"))
        saver.on_mutation(_doc("v1"))
        await asyncio.sleep(0.1)
        assert saver.status == SaveStatus.ERROR
        assert isinstance(saver.error, RuntimeError)
        assert saver.dirty
        assert not saver.pending

        recorder.fail = False
        saver.on_mutation(_doc("v2"))
        await asyncio.sleep(0.05)
        assert recorder.calls == [_doc("v2")]
        assert saver.error is None
        assert saver.status == SaveStatus.SAVED

    asyncio.run(scenario())


def test_save_now_cancels_timer():
    async def scenario():
        recorder = Recorder()
        saver = AutoSaver(recorder, debounce_ms=10_000, saved_reset_ms=RESET_MS)
        saver.attach(_doc("v0"))
        saver.on_mutation(_doc("v1"))
        assert saver.pending
        await saver.save_now()
        assert not saver.pending
        assert recorder.calls == [_doc("v1")]
        await saver.save_now()
        assert len(recorder.calls) == 1
        saver.close()

    asyncio.run(scenario())


def test_flush_waits_for_pending_save():
    async def scenario():
        recorder = Recorder()
        saver = AutoSaver(recorder, debounce_ms=10_000, saved_reset_ms=RESET_MS)
        saver.attach(_doc("v0"))
        saver.on_mutation(_doc("v1"))
        await saver.flush()
        assert recorder.calls == [_doc("v1")]
        saver.close()

    asyncio.run(scenario())


class _BrokenForms:
    def save_content(self, form_id, content):
        raise OSError("read-only file system")


class _BrokenStorage:
    forms = _BrokenForms()


def test_storage_saver_wraps_errors():
    save = storage_saver(_BrokenStorage(), "form-1")
    with pytest.raises(PersistenceFailure):
        asyncio.run(save(_doc("v1")))


def test_storage_saver_writes_content(storage):
    from formcraft.utils import now_utc

    now = now_utc()
    storage.forms.create_form(
        {
            "id": "form-1",
            "user_id": "local",
            "share_url": "share-1",
            "name": "Survey",
            "content": _doc("v0"),
            "created_at": now,
            "updated_at": now,
        }
    )
    asyncio.run(storage_saver(storage, "form-1")(_doc("v1")))
    form = storage.forms.get_form("form-1")
    assert form["content"] == _doc("v1")
    assert form["version"] == 2


def test_autosaver_for_uses_configured_timings(storage, monkeypatch):
    from formcraft.utils import now_utc

    monkeypatch.setenv("AUTOSAVE_DEBOUNCE_MS", "20")
    monkeypatch.setenv("AUTOSAVE_SAVED_RESET_MS", "200")
    now = now_utc()
    storage.forms.create_form(
        {
            "id": "form-1",
            "user_id": "local",
            "share_url": "share-1",
            "name": "Survey",
            "content": _doc("v0"),
            "created_at": now,
            "updated_at": now,
        }
    )

    async def scenario():
        saver = autosaver_for(storage, "form-1", Settings())
        saver.attach(_doc("v0"))
        saver.on_mutation(_doc("v1"))
        await asyncio.sleep(0.06)
        assert saver.status == SaveStatus.SAVED
        assert storage.forms.get_form("form-1")["content"] == _doc("v1")
        await asyncio.sleep(0.3)
        assert saver.status == SaveStatus.IDLE

    asyncio.run(scenario())
