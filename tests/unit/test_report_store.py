import asyncio
import pytest

from product_research.models.schemas import ReportStatus
from product_research.storage.report_store import InMemoryReportStore, JsonFileReportStore, ReportStore
from product_research.utils.errors import ReportNotFoundError


@pytest.fixture(params=["memory", "file"])
def store(request, tmp_path, clock):
    if request.param == "memory":
        return InMemoryReportStore(clock=clock)
    return JsonFileReportStore(tmp_path / "reports", clock=clock)


@pytest.mark.asyncio
async def test_create_and_get(store, clock):
    report = await store.create("42")

    loaded = await store.get(report.id)

    assert loaded.subject_id == "42"
    assert loaded.status == ReportStatus.PENDING
    assert loaded.created_at == clock.now


@pytest.mark.asyncio
async def test_get_missing_raises(store):
    assert await store.find_by_id("nope") is None
    with pytest.raises(ReportNotFoundError):
        await store.get("nope")


@pytest.mark.asyncio
async def test_create_if_absent_returns_live_report(store):
    first, created = await store.create_if_absent("42")
    second, created_again = await store.create_if_absent("42")

    assert created and not created_again
    assert second.id == first.id


@pytest.mark.asyncio
async def test_concurrent_create_if_absent_yields_one_report(store):
    results = await asyncio.gather(*(store.create_if_absent("42") for _ in range(5)))

    assert len({report.id for report, _ in results}) == 1
    assert sum(created for _, created in results) == 1


@pytest.mark.asyncio
async def test_terminal_report_not_resumed(store):
    report = await store.create("42")
    await store.update(report.id, status=ReportStatus.FAILED)

    assert await store.find_in_progress("42") is None
    fresh, created = await store.create_if_absent("42")
    assert created and fresh.id != report.id


@pytest.mark.asyncio
async def test_update_status_keeps_message_when_blank(store, clock):
    report = await store.create("42")
    await store.update_status(report.id, ReportStatus.SEARCHING, "Searching competitors")
    clock.advance(seconds=5)

    updated = await store.update_status(report.id, ReportStatus.PREVIEWING)

    assert updated.status == ReportStatus.PREVIEWING
    assert updated.progress_message == "Searching competitors"
    assert updated.updated_at == clock.now


@pytest.mark.asyncio
async def test_find_latest_complete_and_by_subject(store, clock):
    older = await store.create("42")
    await store.update(older.id, status=ReportStatus.COMPLETE, completed_at=clock.now)
    clock.advance(hours=1)
    newer = await store.create("42")
    await store.update(newer.id, status=ReportStatus.COMPLETE, completed_at=clock.now)
    clock.advance(hours=1)
    live = await store.create("42")
    await store.create("7")

    latest = await store.find_latest_complete("42")
    history = await store.find_by_subject("42", limit=2)

    assert latest.id == newer.id
    assert [r.id for r in history] == [live.id, newer.id]


@pytest.mark.asyncio
async def test_delete_older_than_keeps_recent_and_live(store, clock):
    old_done = await store.create("42")
    await store.update(old_done.id, status=ReportStatus.COMPLETE)
    old_live = await store.create("7")
    clock.advance(days=40)
    recent = await store.create("8")
    await store.update(recent.id, status=ReportStatus.FAILED)

    removed = await store.delete_older_than(30)

    assert removed == 1
    assert await store.find_by_id(old_done.id) is None
    assert await store.find_by_id(old_live.id) is not None
    assert await store.find_by_id(recent.id) is not None
    assert await store.delete(old_done.id) is False


@pytest.mark.asyncio
async def test_memory_store_returns_copies():
    store = InMemoryReportStore()
    report = await store.create("42")
    loaded = await store.get(report.id)
    loaded.progress_message = "mutated"

    assert (await store.get(report.id)).progress_message == ""


@pytest.mark.asyncio
async def test_file_store_skips_unreadable_files(tmp_path):
    store = JsonFileReportStore(tmp_path)
    report = await store.create("42")
    (tmp_path / "garbage.json").write_text("{not json", encoding="utf-8")

    reports = await store.find_by_subject("42")

    assert [r.id for r in reports] == [report.id]
    assert (tmp_path / f"{report.id}.json").exists()


def test_backend_must_implement_storage_primitives():
    with pytest.raises(TypeError):
        ReportStore()

    class ReadOnlyStore(ReportStore):
        async def _get(self, report_id):
            return None

    with pytest.raises(TypeError, match="_put"):
        ReadOnlyStore()
