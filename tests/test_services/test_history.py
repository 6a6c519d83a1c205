"""Tests for history views and package downloads."""

import asyncio
import uuid

import pytest

from autosend.core.errors import NotFoundError
from autosend.models.batch import BatchStatus, ItemStatus
from autosend.services.composer import DocumentComposer
from autosend.services.history import (
    entry_numbers,
    list_batch_history,
    list_item_history,
    load_item_package,
)
from tests.conftest import REPORT_DAY, FakeRenderer, blank_pdf, page_widths

pytestmark = pytest.mark.asyncio


async def plan(planner, recipients):
    result = await planner.plan(date_from=REPORT_DAY, recipient_ids=[r.id for r in recipients])
    assert result.success, result.message
    return result


class TestItemHistory:
    async def test_filters_and_entry_numbers(
        self, planner, db_session, recipient_factory, entry_factory
    ):
        first, second = await entry_factory(), await entry_factory()
        a = await recipient_factory("a@depot.test")
        b = await recipient_factory("b@depot.test")
        await plan(planner, [a, b])

        page, numbers = await list_item_history(db_session, recipient=" A@depot.test ")

        assert page.total == 1
        item = page.items[0]
        assert item.recipient_email == "a@depot.test"
        assert item.status == ItemStatus.PENDING
        assert entry_numbers(item, numbers) == [
            first.registration_number,
            second.registration_number,
        ]

    async def test_pagination(self, planner, db_session, recipient_factory, entry_factory):
        await entry_factory()
        await plan(planner, [await recipient_factory() for _ in range(5)])

        page, _ = await list_item_history(db_session, page=2, limit=2)

        assert page.total == 5
        assert page.total_pages == 3
        assert [item.sequence for item in page.items] == [3, 4]

    async def test_deleted_entries_drop_out_of_numbers(
        self, planner, db_session, recipient_factory, entry_factory
    ):
        kept, gone = await entry_factory(), await entry_factory()
        await plan(planner, [await recipient_factory()])
        await db_session.delete(gone)
        await db_session.commit()

        page, numbers = await list_item_history(db_session)

        assert entry_numbers(page.items[0], numbers) == [kept.registration_number]
        assert len(page.items[0].entry_ids) == 2


class TestBatchHistory:
    async def test_newest_first_with_derived_status(
        self, planner, executor, dispatcher, db_session, recipient_factory, entry_factory
    ):
        await entry_factory()
        a = await recipient_factory("a@depot.test")
        b = await recipient_factory("b@depot.test")
        older = await plan(planner, [a, b])
        dispatcher.fail_for.add("b@depot.test")
        await executor.execute(older.batch_id)
        newer = await planner.plan(
            date_from=REPORT_DAY, recipient_ids=[a.id], include_certificates=False
        )

        page, _ = await list_batch_history(db_session)

        assert [batch.sequence for batch in page.items] == [newer.sequence, older.sequence]
        assert page.items[0].status == BatchStatus.IN_PROGRESS
        assert page.items[1].status == BatchStatus.PARTIAL

    async def test_recipient_filter(self, planner, db_session, recipient_factory, entry_factory):
        await entry_factory()
        a = await recipient_factory("a@depot.test")
        b = await recipient_factory("b@depot.test")
        await plan(planner, [a])
        only_b = await plan(planner, [b])

        page, _ = await list_batch_history(db_session, recipient="b@depot.test")

        assert page.total == 1
        assert page.items[0].id == only_b.batch_id


class TestLoadItemPackage:
    async def test_composes_once_then_serves_stored_bytes(
        self, planner, db_session, composer, artifacts, renderer, recipient_factory,
        entry_factory,
    ):
        entry = await entry_factory()
        result = await plan(planner, [await recipient_factory()])
        page, _ = await list_item_history(db_session, batch_id=result.batch_id)
        item_id = page.items[0].id

        filename, first = await load_item_package(db_session, item_id, composer, artifacts)
        _, second = await load_item_package(db_session, item_id, composer, artifacts)

        assert filename == f"AutoSend_{result.sequence}_1.pdf"
        assert first == second
        assert page_widths(first) == [entry.registration_number]
        assert renderer.calls == [entry.registration_number]

    async def test_unknown_item(self, db_session, composer, artifacts):
        with pytest.raises(NotFoundError):
            await load_item_package(db_session, uuid.uuid4(), composer, artifacts)


class WideRenderer(FakeRenderer):
    """Renders pages 100 points wider than FakeRenderer, optionally waiting for a signal."""

    def __init__(self, release: asyncio.Event | None = None) -> None:
        super().__init__()
        self.started = asyncio.Event()
        self.release = release

    async def render(self, entry):
        self.started.set()
        if self.release is not None:
            await self.release.wait()
        return blank_pdf(width=entry.registration_number + 100)


class TestDownloadDuringExecution:
    async def _single_item(self, planner, db_session, recipient_factory, entry_factory):
        entry = await entry_factory()
        result = await plan(planner, [await recipient_factory()])
        page, _ = await list_item_history(db_session, batch_id=result.batch_id)
        return entry, result, page.items[0].id

    async def test_late_download_keeps_the_emailed_package(
        self, planner, executor, dispatcher, artifacts, session_factory, certificate_dir,
        db_session, recipient_factory, entry_factory,
    ):
        entry, result, item_id = await self._single_item(
            planner, db_session, recipient_factory, entry_factory
        )
        release = asyncio.Event()
        slow = WideRenderer(release)
        slow_composer = DocumentComposer(session_factory, slow, certificate_dir)

        download = asyncio.create_task(
            load_item_package(db_session, item_id, slow_composer, artifacts)
        )
        await slow.started.wait()
        summary = await executor.execute(result.batch_id)
        release.set()
        _, downloaded = await download

        emailed = dispatcher.sent[0][3].content
        assert summary.sent == 1
        assert page_widths(emailed) == [entry.registration_number]
        assert downloaded == emailed
        assert await artifacts.load(item_id) == emailed

        _, again = await load_item_package(db_session, item_id, slow_composer, artifacts)
        assert again == emailed

    async def test_execution_emails_an_already_downloaded_package(
        self, planner, executor, dispatcher, artifacts, session_factory, certificate_dir,
        db_session, recipient_factory, entry_factory,
    ):
        entry, result, item_id = await self._single_item(
            planner, db_session, recipient_factory, entry_factory
        )
        wide_composer = DocumentComposer(session_factory, WideRenderer(), certificate_dir)

        _, downloaded = await load_item_package(db_session, item_id, wide_composer, artifacts)
        await executor.execute(result.batch_id)

        emailed = dispatcher.sent[0][3].content
        assert page_widths(downloaded) == [entry.registration_number + 100]
        assert emailed == downloaded
