import asyncio
import json
from dataclasses import replace
from typing import List

import pytest

from socialgraph.integrations.base import ContactAdapter
from socialgraph.models import User
from socialgraph.schemas.sync import (
    ContactInfo, FacebookSyncData, PhoneSyncData, ProcessOptions, SyncContactsRequest, SyncPlatform,
)
from socialgraph.services.relationship import RelationshipService
from socialgraph.services.sync import SocialSyncService


class SlowAdapter(ContactAdapter):
    platform = SyncPlatform.FACEBOOK
    label = "Slow"

    async def fetch_contacts(self, credential, max_contacts=None, batch_size=None) -> List[ContactInfo]:
        await asyncio.sleep(1)
        return []

    async def validate_credential(self, credential: str) -> bool:
        return True

    def mock_contacts(self) -> List[ContactInfo]:
        return []


class StaticAdapter(ContactAdapter):
    platform = SyncPlatform.FACEBOOK
    label = "Static"

    def __init__(self, contacts, config=None):
        super().__init__(config)
        self.contacts = contacts
        self.calls = 0

    async def fetch_contacts(self, credential, max_contacts=None, batch_size=None) -> List[ContactInfo]:
        self.calls += 1
        return self.contacts

    async def validate_credential(self, credential: str) -> bool:
        return True

    def mock_contacts(self) -> List[ContactInfo]:
        return self.contacts


def contact(cid, name, email=None, phone=None, platform=SyncPlatform.FACEBOOK):
    return ContactInfo(id=cid, name=name, email=email, phone=phone, platform=platform)


@pytest.fixture
def sync_service(session_factory, config):
    return SocialSyncService(session_factory, config)


@pytest.fixture
def address_book(users):
    return [
        contact("1", "Bob", email=users["bob"]),
        contact("2", "Carol", phone="+821055556666"),
        contact("3", "Zed", email="zed@example.com"),
        contact("4", "Me", email=users["alice"]),
    ]


@pytest.mark.asyncio
async def test_process_contacts_connects_registered_users(sync_service, users, address_book, fetch_rows):
    result = await sync_service.process_contacts(users["alice"], address_book, SyncPlatform.FACEBOOK)

    assert result.total_contacts == 4
    assert result.cashpop_users_found == 2
    assert result.new_friendships_created == 2
    assert result.skipped == 1
    assert result.errors == []
    assert sorted(f.email for f in result.details.new_friends) == [users["bob"], users["carol"]]
    assert {f.source for f in result.details.new_friends} == {"facebook_sync"}

    rows = await fetch_rows()
    assert len(rows) == 4
    assert {r.status for r in rows} == {"accepted"}
    assert {r.message for r in rows} == {"Auto-connected via facebook sync"}


@pytest.mark.asyncio
async def test_process_contacts_errors_name_the_account(sync_service, users, address_book, monkeypatch):
    original = RelationshipService.auto_accept_friendship

    async def flaky_accept(self, user_email, friend_email, message=None):
        if friend_email == users["bob"]:
            raise RuntimeError("connection reset")
        return await original(self, user_email, friend_email, message)

    monkeypatch.setattr(RelationshipService, "auto_accept_friendship", flaky_accept)

    result = await sync_service.process_contacts(users["alice"], address_book, SyncPlatform.FACEBOOK)

    assert result.new_friendships_created == 1
    assert result.errors == [f"Failed to connect with Bob ({users['bob']}): connection reset"]


@pytest.mark.asyncio
async def test_process_contacts_is_idempotent(sync_service, users, address_book, fetch_rows):
    await sync_service.process_contacts(users["alice"], address_book, SyncPlatform.FACEBOOK)

    second = await sync_service.process_contacts(users["alice"], address_book, SyncPlatform.FACEBOOK)

    assert second.new_friendships_created == 0
    assert second.already_friends == 2
    assert len(await fetch_rows()) == 4


@pytest.mark.asyncio
async def test_pending_request_is_preserved(session_factory, sync_service, users, fetch_rows):
    async with session_factory() as session:
        await RelationshipService(session).send_request(users["alice"], users["bob"])

    for options in (None, ProcessOptions(skip_duplicate_check=True)):
        result = await sync_service.process_contacts(
            users["bob"], [contact("1", "Alice", email=users["alice"])], SyncPlatform.LINE, options
        )
        assert result.pending_requests == 1
        assert result.new_friendships_created == 0

    rows = {(r.owner_email, r.peer_email): r.status for r in await fetch_rows()}
    assert rows == {
        (users["alice"], users["bob"]): "pending",
        (users["bob"], users["alice"]): "received",
    }


@pytest.mark.asyncio
async def test_blocked_pair_is_skipped(session_factory, sync_service, users, befriend):
    await befriend(users["alice"], users["bob"])
    async with session_factory() as session:
        await RelationshipService(session).block_friend(users["bob"], users["alice"])

    result = await sync_service.process_contacts(
        users["alice"], [contact("1", "Bob", email=users["bob"])], SyncPlatform.FACEBOOK
    )

    assert result.skipped == 1
    assert result.new_friendships_created == 0


@pytest.mark.asyncio
async def test_duplicate_contacts_connect_once(sync_service, users):
    contacts = [contact(str(i), "Bob", email=users["bob"]) for i in range(3)]

    result = await sync_service.process_contacts(users["alice"], contacts, SyncPlatform.FACEBOOK)

    assert result.cashpop_users_found == 1
    assert result.new_friendships_created == 1


@pytest.mark.asyncio
async def test_sync_does_not_suggest_connected_contacts(sync_service, users, address_book, fetch_suggestions):
    result = await sync_service.process_contacts(
        users["alice"], address_book, SyncPlatform.FACEBOOK, ProcessOptions(create_suggestions=True)
    )

    assert result.warnings == []
    assert await fetch_suggestions() == []


@pytest.mark.asyncio
async def test_sync_phone_with_test_session(sync_service, users, fetch_rows):
    payload = json.dumps([
        {"name": "Carol", "phone": "010-5555-6666"},
        {"name": "Nobody", "phone": "010-0000-0000"},
        {"name": "", "phone": "010-1111-2222"},
    ])

    response = await sync_service.sync_phone(users["alice"], "test-session-123", payload)

    assert response.success is True
    assert response.result.platform == SyncPlatform.PHONE
    assert response.result.total_contacts == 2
    assert response.result.new_friendships_created == 1
    rows = await fetch_rows()
    assert {r.message for r in rows} == {"Auto-connected via phone sync"}


@pytest.mark.asyncio
async def test_sync_phone_invalid_session(sync_service, users):
    response = await sync_service.sync_phone(users["alice"], "invalid-session-id", "[]")

    assert response.success is False
    assert response.result.errors == ["Phone verification session is invalid or expired"]


@pytest.mark.asyncio
async def test_sync_dispatches_by_platform(session_factory, config, users):
    adapter = StaticAdapter([contact("1", "Bob", email=users["bob"])], config)
    service = SocialSyncService(session_factory, config, adapters={SyncPlatform.FACEBOOK: adapter})

    response = await service.sync(
        users["alice"],
        SyncContactsRequest(platform=SyncPlatform.FACEBOOK, facebook=FacebookSyncData(token="tok")),
    )

    assert response.success is True
    assert response.result.new_friendships_created == 1
    assert adapter.calls == 1

    unsupported = await service.sync(
        users["alice"],
        SyncContactsRequest(platform=SyncPlatform.PHONE, phone=PhoneSyncData(session_id="s", contacts_json="[]")),
    )
    assert unsupported.success is False
    assert "not supported" in unsupported.message


@pytest.mark.asyncio
async def test_sync_times_out(session_factory, config, users):
    config = replace(config, external_timeout_seconds=0.01)
    service = SocialSyncService(session_factory, config, adapters={SyncPlatform.FACEBOOK: SlowAdapter(config)})

    response = await service.sync_facebook(users["alice"], "tok")

    assert response.success is False
    assert response.result.errors == ["facebook contact fetch timed out"]


@pytest.mark.asyncio
async def test_cooldown_blocks_repeat_sync(session_factory, config, users, fake_redis):
    config = replace(config, cooldown_seconds=60)
    adapter = StaticAdapter([contact("1", "Bob", email=users["bob"])], config)
    service = SocialSyncService(
        session_factory, config, adapters={SyncPlatform.FACEBOOK: adapter}, redis=fake_redis
    )

    first = await service.sync_facebook(users["alice"], "tok")
    second = await service.sync_facebook(users["alice"], "tok")

    assert first.success is True
    assert second.success is False
    assert "retry in 42 seconds" in second.message
    assert adapter.calls == 1
    assert f"sync:cooldown:facebook:{users['alice']}" in fake_redis.store


@pytest.mark.asyncio
async def test_initialize(sync_service, users):
    response = await sync_service.initialize(users["alice"])

    assert response.success is True
    assert response.result.platform == SyncPlatform.CONTACT


@pytest.mark.asyncio
async def test_test_sync_expands_mock_contacts(sync_service, users):
    response = await sync_service.test_sync(users["alice"], SyncPlatform.FACEBOOK, contact_count=8)

    assert response.result.test_mode is True
    assert response.result.total_contacts == 8
    emails = [c.email for c in response.result.details.contacts_processed]
    assert len(set(emails)) == 8
    assert "john.doe+5@example.com" in emails


@pytest.mark.asyncio
async def test_test_sync_matches_mock_friends(session_factory, sync_service, users):
    async with session_factory() as session:
        session.add(User(email="alice.line@example.com", name="Alice Line"))
        await session.commit()

    response = await sync_service.test_sync(users["alice"], SyncPlatform.LINE)

    assert response.success is True
    assert response.result.total_contacts == 4
    assert response.result.new_friendships_created == 1


@pytest.mark.asyncio
async def test_sync_history(sync_service, users, address_book):
    await sync_service.process_contacts(users["alice"], address_book, SyncPlatform.FACEBOOK)
    await sync_service.process_contacts(
        users["alice"], [contact("9", "Dave", email=users["dave"], platform=SyncPlatform.LINE)], SyncPlatform.LINE
    )

    history = await sync_service.get_sync_history(users["alice"])

    assert history.stats == {
        "total_synced": 3,
        "by_platform": {"facebook": 2, "line": 1},
        "recent_syncs": 3,
    }
    line_only = await sync_service.get_sync_history(users["alice"], platform=SyncPlatform.LINE)
    assert [entry.friend_email for entry in line_only.history] == [users["dave"]]
