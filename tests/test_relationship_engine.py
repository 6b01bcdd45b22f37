import pytest

from socialgraph.models import Relationship
from socialgraph.schemas.relationship import MIRROR_STATUS, RelationshipStatus
from socialgraph.services.relationship import RelationshipService
from socialgraph.utils.exceptions import (
    AlreadyRelatedError, InvalidEmailError, InvariantViolationError,
    RelationshipActionNotAllowedError, RequestNotFoundError, SelfRequestError,
    TargetNotFoundError,
)


@pytest.fixture
def service(db, config):
    return RelationshipService(db, config=config)


def assert_mirrored(rows):
    by_pair = {(r.owner_email, r.peer_email): r for r in rows}
    for (owner, peer), row in by_pair.items():
        mirror = by_pair.get((peer, owner))
        assert mirror is not None, f"{owner}->{peer} has no mirror"
        assert mirror.status == MIRROR_STATUS[RelationshipStatus(row.status)].value


def pair(rows, owner, peer):
    return next(r for r in rows if r.owner_email == owner and r.peer_email == peer)


@pytest.mark.asyncio
async def test_send_request_creates_mirrored_rows(service, users, fetch_rows):
    result = await service.send_request(users["alice"], users["bob"], "hi")

    rows = await fetch_rows()
    assert len(rows) == 2
    assert_mirrored(rows)
    forward = pair(rows, users["alice"], users["bob"])
    assert forward.id == result.request_id
    assert forward.status == "pending"
    assert forward.initiated_by == users["alice"]
    assert pair(rows, users["bob"], users["alice"]).status == "received"
    assert result.resurrected is False


@pytest.mark.asyncio
async def test_send_request_normalizes_emails(service, users, fetch_rows):
    await service.send_request("  ALICE@example.com ", "Bob@Example.com")

    rows = await fetch_rows()
    assert {(r.owner_email, r.peer_email) for r in rows} == {
        (users["alice"], users["bob"]),
        (users["bob"], users["alice"]),
    }


@pytest.mark.asyncio
async def test_send_request_validation_order(service, users):
    with pytest.raises(InvalidEmailError):
        await service.send_request(users["alice"], "not-an-email")
    with pytest.raises(SelfRequestError):
        await service.send_request(users["alice"], users["alice"])
    with pytest.raises(TargetNotFoundError):
        await service.send_request(users["alice"], "nobody@example.com")


@pytest.mark.asyncio
async def test_duplicate_and_reverse_requests_are_rejected(service, users):
    await service.send_request(users["alice"], users["bob"])

    with pytest.raises(AlreadyRelatedError):
        await service.send_request(users["alice"], users["bob"])
    with pytest.raises(AlreadyRelatedError) as exc:
        await service.send_request(users["bob"], users["alice"])
    assert exc.value.status == "received"


@pytest.mark.asyncio
async def test_accept_updates_both_rows(service, users, fetch_rows):
    sent = await service.send_request(users["alice"], users["bob"])

    result = await service.accept_request(users["bob"], sent.request_id)

    assert result.status == RelationshipStatus.ACCEPTED
    rows = await fetch_rows()
    assert_mirrored(rows)
    assert {r.status for r in rows} == {"accepted"}
    assert rows[0].accepted_at == rows[1].accepted_at
    assert {r.initiated_by for r in rows} == {users["bob"]}


@pytest.mark.asyncio
async def test_only_recipient_can_accept(service, users):
    sent = await service.send_request(users["alice"], users["bob"])

    with pytest.raises(RequestNotFoundError):
        await service.accept_request(users["alice"], sent.request_id)
    with pytest.raises(RequestNotFoundError):
        await service.accept_request(users["carol"], sent.request_id)
    with pytest.raises(RequestNotFoundError):
        await service.accept_request(users["bob"], "missing-id")


@pytest.mark.asyncio
async def test_reject_requires_pending_request(service, users):
    sent = await service.send_request(users["alice"], users["bob"])
    await service.accept_request(users["bob"], sent.request_id)

    with pytest.raises(RequestNotFoundError):
        await service.reject_request(users["bob"], sent.request_id)


@pytest.mark.asyncio
async def test_resend_after_reject_reuses_rows(service, users, fetch_rows):
    first = await service.send_request(users["alice"], users["bob"])
    await service.reject_request(users["bob"], first.request_id)

    rows = await fetch_rows()
    assert {r.status for r in rows} == {"rejected"}

    second = await service.send_request(users["alice"], users["bob"], "second try")

    assert second.resurrected is True
    assert second.request_id == first.request_id
    rows = await fetch_rows()
    assert len(rows) == 2
    assert_mirrored(rows)
    assert pair(rows, users["alice"], users["bob"]).message == "second try"


@pytest.mark.asyncio
async def test_rejected_recipient_can_send_the_other_way(service, users, fetch_rows):
    first = await service.send_request(users["alice"], users["bob"])
    await service.reject_request(users["bob"], first.request_id)

    await service.send_request(users["bob"], users["alice"])

    rows = await fetch_rows()
    assert pair(rows, users["bob"], users["alice"]).status == "pending"
    assert pair(rows, users["alice"], users["bob"]).status == "received"


@pytest.mark.asyncio
async def test_block_requires_friendship(service, users, fetch_rows):
    sent = await service.send_request(users["alice"], users["bob"])

    with pytest.raises(RelationshipActionNotAllowedError):
        await service.block_friend(users["alice"], users["bob"])

    await service.accept_request(users["bob"], sent.request_id)
    status = await service.block_friend(users["alice"], users["bob"])

    assert status == RelationshipStatus.BLOCKED
    rows = await fetch_rows()
    assert {r.status for r in rows} == {"blocked"}
    assert all(r.blocked_at is not None for r in rows)


@pytest.mark.asyncio
async def test_auto_accept_verdicts(service, users, fetch_rows):
    created = await service.auto_accept_friendship(users["alice"], users["bob"], "Auto-connected via line sync")
    assert created.created is True
    assert created.relationship_id is not None

    again = await service.auto_accept_friendship(users["bob"], users["alice"])
    assert again.created is False
    assert again.message == "Already friends"

    await service.send_request(users["alice"], users["carol"])
    pending = await service.auto_accept_friendship(users["carol"], users["alice"])
    assert pending.created is False
    assert pending.message == "Pending request exists"

    rows = await fetch_rows()
    assert_mirrored(rows)
    assert pair(rows, users["alice"], users["carol"]).status == "pending"


@pytest.mark.asyncio
async def test_auto_accept_respects_block(service, users):
    await service.auto_accept_friendship(users["alice"], users["bob"])
    await service.block_friend(users["alice"], users["bob"])

    result = await service.auto_accept_friendship(users["bob"], users["alice"])

    assert result.created is False
    assert result.message == "Relationship blocked"


@pytest.mark.asyncio
async def test_auto_accept_revives_rejected_pair(service, users, fetch_rows):
    sent = await service.send_request(users["alice"], users["bob"])
    await service.reject_request(users["bob"], sent.request_id)

    result = await service.auto_accept_friendship(users["bob"], users["alice"])

    assert result.created is True
    rows = await fetch_rows()
    assert len(rows) == 2
    assert {r.status for r in rows} == {"accepted"}


@pytest.mark.asyncio
async def test_broken_mirror_raises_invariant_violation(db, service, users):
    db.add(Relationship(owner_email=users["alice"], peer_email=users["bob"], status="pending", initiated_by=users["alice"]))
    db.add(Relationship(owner_email=users["bob"], peer_email=users["alice"], status="accepted", initiated_by=users["alice"]))
    await db.commit()
    request = await service.repo.get_pair(users["alice"], users["bob"])

    with pytest.raises(InvariantViolationError):
        await service.accept_request(users["bob"], request.id)


@pytest.mark.asyncio
async def test_check_bidirectional_relationship(service, users):
    await service.send_request(users["alice"], users["bob"])

    status = await service.check_bidirectional_relationship(users["bob"], users["alice"])

    assert status.forward == RelationshipStatus.RECEIVED
    assert status.reverse == RelationshipStatus.PENDING
    assert status.has(RelationshipStatus.PENDING)
    assert not status.has(RelationshipStatus.ACCEPTED)

    none = await service.check_bidirectional_relationship(users["alice"], users["dave"])
    assert none.exists is False
    assert await service.check_existing_relationship(users["alice"], users["dave"]) is None


@pytest.mark.asyncio
async def test_list_friends_paginates_without_overlap(service, users, befriend):
    for name in ("bob", "carol", "dave"):
        await befriend(users["alice"], users[name])

    first = await service.list_friends(users["alice"], limit=2)
    assert len(first.items) == 2
    assert first.has_next_page is True

    second = await service.list_friends(users["alice"], cursor=first.next_cursor, limit=2)
    assert len(second.items) == 1
    assert second.has_next_page is False
    assert second.next_cursor is None

    emails = [item.email for item in first.items + second.items]
    assert sorted(emails) == [users["bob"], users["carol"], users["dave"]]


@pytest.mark.asyncio
async def test_list_friends_search_matches_name(service, users, befriend):
    await befriend(users["alice"], users["bob"])
    await befriend(users["alice"], users["carol"])

    page = await service.list_friends(users["alice"], search="carol p")

    assert [item.email for item in page.items] == [users["carol"]]
    assert page.items[0].name == "Carol Park"


@pytest.mark.asyncio
async def test_list_requests_shows_pending_received(service, users):
    await service.send_request(users["alice"], users["bob"])
    await service.send_request(users["carol"], users["bob"])
    await service.send_request(users["bob"], users["dave"])

    page = await service.list_requests(users["bob"])

    assert sorted(item.sender_email for item in page.items) == [users["alice"], users["carol"]]


@pytest.mark.asyncio
async def test_cleanup_rejected_removes_old_rows(service, users, fetch_rows):
    sent = await service.send_request(users["alice"], users["bob"])
    await service.reject_request(users["bob"], sent.request_id)
    await service.auto_accept_friendship(users["alice"], users["carol"])

    deleted = await service.cleanup_rejected(older_than_days=0)

    assert deleted == 2
    rows = await fetch_rows()
    assert {r.status for r in rows} == {"accepted"}
