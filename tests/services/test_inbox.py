import asyncio

import pytest

from mentorlink.core.errors import InvalidTransitionError, MutationError, MutationInFlightError
from mentorlink.schemas.requests import RequestContext, RequestKind, RequestStatus
from mentorlink.services.inbox import InboxView, describe_request
from tests.conftest import VIEWER_ID, make_profile, make_request


@pytest.fixture
def seeded(backend):
    received = backend.add(
        make_request(
            "u-mentee",
            VIEWER_ID,
            RequestKind.MENTOR_REQUEST,
            requester=make_profile(
                "u-mentee",
                display_name="Mia",
                company_encrypted="enc:acme widgets llc",
                affinity_tags_encrypted='enc:"Python, Go"',
            ),
        )
    )
    sent = backend.add(
        make_request(
            VIEWER_ID,
            "u-mentor",
            RequestKind.MENTEE_REQUEST,
            minutes=5,
            target_user=make_profile("u-mentor", company_encrypted="broken:zzz"),
        )
    )
    return received, sent


async def _load_everything(aggregator):
    await aggregator.refresh_all()


@pytest.mark.asyncio
async def test_load_received_decrypts_counterparts(aggregator_factory, seeded):
    received, _ = seeded
    aggregator = aggregator_factory()

    items = await aggregator.load(InboxView.RECEIVED)

    assert [item.id for item in items] == [received.id]
    profile = items[0].profile
    assert profile.id == "u-mentee"
    assert profile.display_name == "Mia"
    assert profile.company == "Acme Widgets LLC"
    assert profile.affinity_tags == ["Python", "Go"]
    assert aggregator.profile_for(received.id) is profile
    assert aggregator.is_loaded("received")


@pytest.mark.asyncio
async def test_failed_company_decrypt_shows_hidden_label(aggregator_factory, seeded):
    aggregator = aggregator_factory()

    items = await aggregator.load(InboxView.SENT)

    assert items[0].profile.company == "Company information hidden"


@pytest.mark.asyncio
async def test_missing_company_shows_unknown_label(aggregator_factory, backend):
    backend.add(make_request("u-x", VIEWER_ID))
    aggregator = aggregator_factory()

    items = await aggregator.load(InboxView.RECEIVED)

    assert items[0].profile.company == "Unknown Company"
    assert items[0].profile.job_title == "Professional"


@pytest.mark.asyncio
async def test_views_filter_by_direction_and_status(aggregator_factory, backend, seeded):
    received, sent = seeded
    done = backend.add(make_request("u-old", VIEWER_ID, status=RequestStatus.DECLINED))
    aggregator = aggregator_factory()

    results = await aggregator.refresh_all()

    assert [item.id for item in results[InboxView.RECEIVED]] == [received.id]
    assert [item.id for item in results[InboxView.SENT]] == [sent.id]
    assert {item.id for item in results[InboxView.ALL]} == {received.id, sent.id, done.id}
    assert ("list_requests", ("all", None)) in backend.calls
    assert ("list_requests", ("received", RequestStatus.PENDING)) in backend.calls


@pytest.mark.asyncio
async def test_accept_removes_request_from_every_view(aggregator_factory, backend, seeded):
    received, _ = seeded
    aggregator = aggregator_factory()
    await _load_everything(aggregator)

    await aggregator.accept(received.id)

    for view in InboxView:
        assert received.id not in [item.id for item in aggregator.items(view)]
    assert aggregator.profile_for(received.id) is None
    assert backend.requests[0].status is RequestStatus.ACCEPTED


@pytest.mark.asyncio
async def test_failed_accept_leaves_every_view_untouched(aggregator_factory, backend, seeded):
    received, _ = seeded
    aggregator = aggregator_factory()
    await _load_everything(aggregator)
    before = {view: [item.request for item in aggregator.items(view)] for view in InboxView}
    backend.failing.add("respond")

    with pytest.raises(MutationError) as excinfo:
        await aggregator.accept(received.id)

    assert excinfo.value.action == "accept"
    assert excinfo.value.request_id == received.id
    after = {view: [item.request for item in aggregator.items(view)] for view in InboxView}
    assert after == before
    assert not aggregator.is_mutating(received.id)


@pytest.mark.asyncio
async def test_duplicate_accept_is_rejected_while_pending(aggregator_factory, backend, seeded):
    received, _ = seeded
    aggregator = aggregator_factory()
    await _load_everything(aggregator)
    backend.gate = asyncio.Event()

    first = asyncio.ensure_future(aggregator.accept(received.id))
    await asyncio.sleep(0)
    assert aggregator.is_mutating(received.id)

    with pytest.raises(MutationInFlightError):
        await aggregator.accept(received.id)

    backend.gate.set()
    await first

    respond_calls = [call for call in backend.calls if call[0] == "respond"]
    assert respond_calls == [("respond", (received.id, "accept"))]


@pytest.mark.asyncio
async def test_cancel_is_only_allowed_for_sent_requests(aggregator_factory, backend, seeded):
    received, sent = seeded
    aggregator = aggregator_factory()
    await _load_everything(aggregator)

    with pytest.raises(InvalidTransitionError):
        await aggregator.cancel(received.id)

    await aggregator.cancel(sent.id)

    assert sent.id not in [item.id for item in aggregator.items(InboxView.ALL)]
    assert not any(call[0] == "respond" for call in backend.calls)


@pytest.mark.asyncio
async def test_decline_calls_respond(aggregator_factory, backend, seeded):
    received, _ = seeded
    aggregator = aggregator_factory()
    await aggregator.load(InboxView.RECEIVED)

    await aggregator.decline(received.id)

    assert ("respond", (received.id, "decline")) in backend.calls
    assert aggregator.items(InboxView.RECEIVED) == []


@pytest.mark.asyncio
async def test_first_received_load_marks_everything_read(aggregator_factory, backend, seeded):
    received, _ = seeded
    aggregator = aggregator_factory()
    await aggregator.load(InboxView.ALL)
    assert aggregator.items(InboxView.ALL)

    await aggregator.load(InboxView.RECEIVED)

    assert aggregator.unread_count() == 0
    assert not aggregator.has_unread
    assert all(item.read_by_viewer for item in aggregator.items(InboxView.ALL))
    assert [call[0] for call in backend.calls].count("mark_received_as_read") == 1

    await aggregator.load(InboxView.RECEIVED)
    assert [call[0] for call in backend.calls].count("mark_received_as_read") == 1


@pytest.mark.asyncio
async def test_failed_mark_read_leaves_flags_unread(aggregator_factory, backend, seeded):
    aggregator = aggregator_factory()
    backend.failing.add("mark_received_as_read")

    items = await aggregator.load(InboxView.RECEIVED)

    assert len(items) == 1
    assert aggregator.unread_count() == 1

    with pytest.raises(MutationError):
        await aggregator.mark_received_as_read()
    assert aggregator.has_unread


@pytest.mark.asyncio
async def test_load_failure_empties_view_and_records_error(aggregator_factory, backend, seeded):
    aggregator = aggregator_factory()
    await aggregator.load(InboxView.SENT)
    assert aggregator.items(InboxView.SENT)
    backend.failing.add("list_requests")

    items = await aggregator.load(InboxView.SENT)

    assert items == []
    assert aggregator.items(InboxView.SENT) == []
    assert aggregator.load_errors[InboxView.SENT] is not None
    assert not aggregator.is_loading(InboxView.SENT)


@pytest.mark.asyncio
async def test_all_view_prefers_context_other_user(aggregator_factory, backend):
    request = make_request(
        VIEWER_ID,
        "u-target",
        request_context=RequestContext(is_sent=True, other_user=make_profile("u-target", display_name="Tess")),
    )
    backend.add(request)
    aggregator = aggregator_factory()

    items = await aggregator.load(InboxView.ALL)

    assert items[0].profile.display_name == "Tess"


@pytest.mark.asyncio
async def test_all_view_picks_other_party_relative_to_viewer(aggregator_factory, backend):
    backend.add(make_request(VIEWER_ID, "u-target"))
    backend.add(make_request("u-source", VIEWER_ID, minutes=1))
    aggregator = aggregator_factory()

    items = await aggregator.load(InboxView.ALL)

    assert [item.profile.id for item in items] == ["u-target", "u-source"]


def test_describe_request_depends_on_view_and_direction():
    received = make_request("u-other", VIEWER_ID, RequestKind.MENTOR_REQUEST)
    sent = make_request(VIEWER_ID, "u-other", RequestKind.MENTEE_REQUEST)

    assert describe_request(received, "received") == "Wants you as their mentor"
    assert describe_request(sent, "sent") == "You offered to mentor them"
    assert describe_request(sent, "all", VIEWER_ID) == "You offered to mentor them"
    assert describe_request(received, "all", VIEWER_ID) == "Wants you as their mentor"
    assert describe_request(received, "all") == "Mentor Request"
