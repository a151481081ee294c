import asyncio
from dataclasses import dataclass

import pytest

from bqpager import JobConfiguration, QueryCancelled, TransportError, WriteDisposition
from bqpager.query import Query

from conftest import FakeClient, int_rows, make_response


@dataclass
class Num:
    n: int


@pytest.mark.asyncio
async def test_single_terminal_page_needs_no_fetches():
    client = FakeClient(make_response(int_rows(0, 3), total=3))
    pager = Query(client, "SELECT n", page_size=5000).submit()

    pages = [p async for p in pager.pages()]

    assert len(pages) == 1
    assert len(pages[0].rows) == 3
    assert client.fetch_calls() == []
    assert client.calls[0] == ("submit_query", "SELECT n", 5000, "proj", "ds")


@pytest.mark.asyncio
async def test_follows_page_tokens_until_total_is_reached():
    client = FakeClient(
        make_response(int_rows(0, 5000), total=10000, page_token="t1"),
        [make_response(int_rows(5000, 10000), total=10000)],
    )
    pager = Query(client, "SELECT n").submit()

    page = await pager.collect()

    assert len(page.rows) == 10000
    assert page.total_rows == 10000
    assert page.rows[-1] == ["9999"]
    assert client.fetch_calls() == [("get_query_results", "job-123", "t1", 5000)]
    assert pager.delivered == 10000


@pytest.mark.asyncio
async def test_walks_several_pages_in_token_order():
    client = FakeClient(
        make_response(int_rows(0, 2), total=6, page_token="t1"),
        [
            make_response(int_rows(2, 4), total=6, page_token="t2"),
            make_response(int_rows(4, 6), total=6),
        ],
    )
    pages = [p async for p in Query(client, "SELECT n", page_size=2).submit().pages()]

    assert [p.rows for p in pages] == [int_rows(0, 2), int_rows(2, 4), int_rows(4, 6)]
    assert [c[2] for c in client.fetch_calls()] == ["t1", "t2"]


@pytest.mark.asyncio
async def test_polls_until_job_completes():
    client = FakeClient(
        make_response([], total=0, complete=False),
        [
            make_response([], total=0, complete=False),
            make_response(int_rows(0, 4), total=4),
        ],
    )
    page = await Query(client, "SELECT n").submit().collect()

    assert page.rows == int_rows(0, 4)
    assert [c[2] for c in client.fetch_calls()] == [None, None]


@pytest.mark.asyncio
async def test_reuses_prior_reference_when_a_page_omits_it():
    client = FakeClient(
        make_response(int_rows(0, 2), total=6, page_token="t1"),
        [
            make_response(int_rows(2, 4), total=6, job_id=None, page_token=None),
            make_response(int_rows(4, 6), total=6, job_id=None),
        ],
    )
    page = await Query(client, "SELECT n", page_size=2).submit().collect()

    assert len(page.rows) == 6
    assert client.fetch_calls() == [
        ("get_query_results", "job-123", "t1", 2),
        ("get_query_results", "job-123", "t1", 2),
    ]


@pytest.mark.asyncio
async def test_job_configuration_takes_the_insert_path():
    config = JobConfiguration("dest", allow_large_results=True, write_disposition=WriteDisposition.TRUNCATE)
    client = FakeClient(first={}, pages=[make_response(int_rows(0, 3), total=3, job_id="job-ins")])

    page = await Query(client, "SELECT n", job_config=config).submit().collect()

    assert client.calls[0] == ("insert_job", "SELECT n", "dest")
    assert client.fetch_calls() == [("get_query_results", "job-ins", None, 5000)]
    assert len(page.rows) == 3


@pytest.mark.asyncio
async def test_transport_error_aborts_without_retry():
    client = FakeClient(
        make_response(int_rows(0, 2), total=6, page_token="t1"),
        [TransportError("boom"), make_response(int_rows(2, 6), total=6)],
    )
    with pytest.raises(TransportError):
        await Query(client, "SELECT n", page_size=2).submit().collect()
    assert len(client.fetch_calls()) == 1


@pytest.mark.asyncio
async def test_cancel_stops_polling():
    client = FakeClient(
        make_response([], total=0, complete=False),
        [make_response([], total=0, complete=False)] * 100,
    )
    pager = Query(client, "SELECT n").submit()

    async def cancel_soon():
        await asyncio.sleep(0.02)
        pager.cancel()

    canceller = asyncio.create_task(cancel_soon())
    with pytest.raises(QueryCancelled):
        await pager.collect()
    await canceller
    assert pager.cancelled
    assert len(client.fetch_calls()) < 100


@pytest.mark.asyncio
async def test_pager_is_single_use():
    client = FakeClient(make_response(int_rows(0, 1), total=1))
    pager = Query(client, "SELECT n").submit()
    await pager.collect()
    with pytest.raises(RuntimeError):
        await pager.collect()


@pytest.mark.asyncio
async def test_execute_decodes_into_destination():
    client = FakeClient(
        make_response(int_rows(0, 3), total=5, page_token="t1"),
        [make_response(int_rows(3, 5), total=5)],
    )
    dest = [Num(-1)]
    out = await Query(client, "SELECT n", page_size=3).execute(dest, Num)

    assert out is dest
    assert dest == [Num(i) for i in range(5)]


def test_query_is_immutable_after_submission():
    client = FakeClient(make_response([], total=0))
    query = Query(client, "SELECT 1")
    query.page_size = 10
    query.submit()
    with pytest.raises(AttributeError):
        query.text = "SELECT 2"
    assert query.submitted


def test_page_size_must_be_positive():
    with pytest.raises(ValueError):
        Query(FakeClient({}), "SELECT 1", page_size=0)


@pytest.mark.asyncio
async def test_empty_pages_without_a_new_token_are_polled_again():
    client = FakeClient(
        make_response(int_rows(0, 2), total=4, page_token="t1"),
        [
            make_response([], total=4),
            make_response([], total=4),
            make_response(int_rows(2, 4), total=4),
        ],
    )
    page = await Query(client, "SELECT n", page_size=2).submit().collect()

    assert page.rows == int_rows(0, 4)
    assert [c[2] for c in client.fetch_calls()] == ["t1", "t1", "t1"]


@pytest.mark.asyncio
async def test_stalled_pages_back_off_and_stay_cancellable():
    client = FakeClient(
        make_response(int_rows(0, 2), total=4, page_token="t1"),
        [make_response([], total=4)] * 1000,
    )
    pager = Query(client, "SELECT n", page_size=2).submit()

    async def cancel_soon():
        await asyncio.sleep(0.05)
        pager.cancel()

    canceller = asyncio.create_task(cancel_soon())
    with pytest.raises(QueryCancelled):
        await pager.collect()
    await canceller
    assert len(client.fetch_calls()) < 20


@pytest.mark.asyncio
async def test_warnings_in_a_complete_response_do_not_abort_paging():
    first = make_response(int_rows(0, 2), total=4, page_token="t1")
    first["errors"] = [{"reason": "warning", "message": "deprecated function"}]
    client = FakeClient(first, [make_response(int_rows(2, 4), total=4)])

    page = await Query(client, "SELECT n", page_size=2).submit().collect()

    assert page.rows == int_rows(0, 4)
