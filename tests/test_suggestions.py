import pytest
from sqlalchemy.exc import OperationalError

from socialgraph.schemas.suggestion import (
    SuggestionCandidate, SuggestionContext, SuggestionSource, SuggestionStatus,
)
from socialgraph.schemas.sync import ContactInfo, SyncPlatform
from socialgraph.services.mutual_friends import MutualFriendsCalculator
from socialgraph.services.relationship import RelationshipService
from socialgraph.services.suggestion import SuggestionService, fallback_reason, merge_candidates
from socialgraph.utils.exceptions import SuggestionLimitExceededError, SuggestionNotFoundError


class BrokenSession:
    async def execute(self, statement):
        raise OperationalError("SELECT", {}, Exception("database is locked"))


def candidate(suggested, priority, reason="r", source=SuggestionSource.CONTACT):
    return SuggestionCandidate(
        user_email="a@example.com",
        suggested_user_email=suggested,
        source=source,
        reason=reason,
        priority=priority,
    )


def test_merge_keeps_highest_priority():
    merged = merge_candidates([
        [candidate("b@example.com", 6, "low"), candidate("c@example.com", 5)],
        [candidate("b@example.com", 8, "high")],
    ])

    by_email = {c.suggested_user_email: c for c in merged}
    assert len(merged) == 2
    assert by_email["b@example.com"].reason == "high"


def test_merge_tie_keeps_first_seen():
    merged = merge_candidates([
        [candidate("b@example.com", 7, "first")],
        [candidate("b@example.com", 7, "second", SuggestionSource.FACEBOOK)],
    ])

    assert [c.reason for c in merged] == ["first"]


def test_fallback_reason():
    assert fallback_reason("contact", 0) == "From your contacts"
    assert fallback_reason("line", 0) == "From LINE friends"
    assert fallback_reason("system", 0) == "Suggested for you"
    assert fallback_reason("facebook", 3) == "You have 3 mutual friends"


@pytest.fixture
def service(db, config):
    return SuggestionService(db, config=config)


@pytest.fixture
def contacts(users):
    return [
        ContactInfo(id="1", name="Bob", email=users["bob"], platform=SyncPlatform.PHONE),
        ContactInfo(id="2", name="Dave", email=users["dave"], platform=SyncPlatform.PHONE),
    ]


@pytest.mark.asyncio
async def test_generate_dedupes_across_sources(service, users, contacts, fetch_suggestions):
    result = await service.generate(
        SuggestionContext(user_email=users["alice"]),
        {SuggestionSource.CONTACT: contacts, SuggestionSource.FACEBOOK: contacts[:1]},
    )

    assert result.persisted == 2
    rows = await fetch_suggestions()
    assert sorted(r.suggested_user_email for r in rows) == [users["bob"], users["dave"]]
    bob = next(r for r in rows if r.suggested_user_email == users["bob"])
    assert bob.source == "contact"
    assert bob.status == "active"
    assert bob.meta["contact_name"] == "Bob"


@pytest.mark.asyncio
async def test_generate_is_idempotent(service, users, contacts, fetch_suggestions):
    context = SuggestionContext(user_email=users["alice"])
    await service.generate(context, {SuggestionSource.CONTACT: contacts})

    again = await service.generate(context, {SuggestionSource.CONTACT: contacts})

    assert again.persisted == 0
    assert again.candidates == []
    assert len(await fetch_suggestions()) == 2


@pytest.mark.asyncio
async def test_generate_skips_existing_relationships(service, users, contacts, befriend, fetch_suggestions):
    await befriend(users["alice"], users["bob"])

    result = await service.generate(SuggestionContext(user_email=users["alice"]), {SuggestionSource.CONTACT: contacts})

    assert [c.suggested_user_email for c in result.candidates] == [users["dave"]]
    assert [r.suggested_user_email for r in await fetch_suggestions()] == [users["dave"]]


@pytest.mark.asyncio
async def test_generate_respects_max_suggestions(service, users, contacts):
    result = await service.generate(
        SuggestionContext(user_email=users["alice"], max_suggestions=1), {SuggestionSource.CONTACT: contacts}
    )

    assert len(result.candidates) == 1
    assert result.persisted == 1


@pytest.mark.asyncio
async def test_generate_over_limit(service, users):
    with pytest.raises(SuggestionLimitExceededError):
        await service.generate(SuggestionContext(user_email=users["alice"], max_suggestions=500))


@pytest.mark.asyncio
async def test_list_and_dismiss(service, users, contacts, fetch_suggestions):
    await service.generate(SuggestionContext(user_email=users["alice"]), {SuggestionSource.CONTACT: contacts})

    page = await service.list_suggestions(users["alice"])
    assert len(page.items) == 2
    assert page.items[0].user.name in ("Bob Lee", "Dave Choi")

    dismissed = await service.dismiss(users["alice"], page.items[0].id)
    assert dismissed.success is True

    page = await service.list_suggestions(users["alice"])
    assert len(page.items) == 1
    with pytest.raises(SuggestionNotFoundError):
        await service.dismiss(users["alice"], dismissed.suggestion_id)
    with pytest.raises(SuggestionNotFoundError):
        await service.dismiss(users["bob"], page.items[0].id)

    rows = await fetch_suggestions()
    assert any(r.status == "dismissed" and r.dismissed_at is not None for r in rows)


@pytest.mark.asyncio
async def test_list_uses_fresh_mutual_counts(service, users, contacts, befriend):
    await service.generate(SuggestionContext(user_email=users["alice"]), {SuggestionSource.CONTACT: contacts[:1]})
    await befriend(users["alice"], users["carol"])
    await befriend(users["bob"], users["carol"])

    page = await service.list_suggestions(users["alice"])

    assert page.items[0].mutual_friends_count == 1
    assert page.items[0].mutual_friend_names == ["Carol Park"]


@pytest.mark.asyncio
async def test_list_falls_back_to_stored_counts(service, users, contacts, befriend, monkeypatch):
    await befriend(users["alice"], users["carol"])
    await befriend(users["bob"], users["carol"])
    await service.generate(SuggestionContext(user_email=users["alice"]), {SuggestionSource.CONTACT: contacts[:1]})
    monkeypatch.setattr(service, "mutual_friends", MutualFriendsCalculator(BrokenSession()))

    page = await service.list_suggestions(users["alice"])

    assert [item.user.email for item in page.items] == [users["bob"]]
    assert page.items[0].mutual_friends_count == 1
    assert page.items[0].mutual_friend_names == []


@pytest.mark.asyncio
async def test_list_paginates(service, users, contacts):
    await service.generate(SuggestionContext(user_email=users["alice"]), {SuggestionSource.CONTACT: contacts})

    first = await service.list_suggestions(users["alice"], limit=1)
    second = await service.list_suggestions(users["alice"], cursor=first.next_cursor, limit=1)

    assert first.has_next_page is True
    assert second.has_next_page is False
    assert first.items[0].id != second.items[0].id


@pytest.mark.asyncio
async def test_friend_request_marks_suggestion(db, service, config, users, contacts, fetch_suggestions):
    await service.generate(SuggestionContext(user_email=users["alice"]), {SuggestionSource.CONTACT: contacts})
    relationships = RelationshipService(db, config=config, suggestions=service)

    await relationships.send_request(users["alice"], users["bob"])

    rows = {r.suggested_user_email: r for r in await fetch_suggestions()}
    assert rows[users["bob"]].status == SuggestionStatus.FRIEND_REQUEST_SENT.value
    page = await service.list_suggestions(users["alice"])
    assert [item.user.email for item in page.items] == [users["dave"]]


@pytest.mark.asyncio
async def test_resend_after_reject_clears_suggestions(db, service, config, users, contacts, fetch_suggestions):
    await service.generate(SuggestionContext(user_email=users["alice"]), {SuggestionSource.CONTACT: contacts})
    relationships = RelationshipService(db, config=config, suggestions=service)
    sent = await relationships.send_request(users["alice"], users["bob"])
    await relationships.reject_request(users["bob"], sent.request_id)

    await relationships.send_request(users["alice"], users["bob"])

    rows = await fetch_suggestions()
    assert [r.suggested_user_email for r in rows] == [users["dave"]]


@pytest.mark.asyncio
async def test_accept_clears_suggestions_both_ways(db, service, config, users, contacts, fetch_suggestions):
    await service.generate(SuggestionContext(user_email=users["alice"]), {SuggestionSource.CONTACT: contacts})
    await service.generate(
        SuggestionContext(user_email=users["bob"]),
        {SuggestionSource.CONTACT: [ContactInfo(id="9", name="Alice", email=users["alice"], platform=SyncPlatform.PHONE)]},
    )
    relationships = RelationshipService(db, config=config, suggestions=service)
    sent = await relationships.send_request(users["alice"], users["bob"])

    await relationships.accept_request(users["bob"], sent.request_id)

    rows = await fetch_suggestions()
    assert [(r.user_email, r.suggested_user_email) for r in rows] == [(users["alice"], users["dave"])]


@pytest.mark.asyncio
async def test_cleanup_expired_and_stats(service, users, contacts):
    await service.generate(SuggestionContext(user_email=users["alice"]), {SuggestionSource.CONTACT: contacts})
    page = await service.list_suggestions(users["alice"])
    await service.dismiss(users["alice"], page.items[0].id)

    stats = await service.get_stats(users["alice"])
    assert stats["total"] == 2
    assert stats["by_status"]["dismissed"] == 1
    assert stats["by_status"]["active"] == 1

    assert await service.cleanup_expired(older_than_days=0) == 1
    assert (await service.get_stats(users["alice"]))["total"] == 1


@pytest.mark.asyncio
async def test_mutual_friends_source(service, users, befriend):
    for a, b in (("alice", "carol"), ("bob", "carol")):
        await befriend(users[a], users[b])

    result = await service.generate(
        SuggestionContext(user_email=users["alice"], min_mutual_friends=1),
        sources=[SuggestionSource.MUTUAL_FRIENDS],
    )

    assert [c.suggested_user_email for c in result.candidates] == [users["bob"]]
    assert result.candidates[0].source == SuggestionSource.MUTUAL_FRIENDS
