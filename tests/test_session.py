"""Tests for connecting, refreshing and disconnecting a wallet session."""

import pytest

from lotto_sync.lottery.errors import UserRejectedError
from lotto_sync.lottery.models import TxPhase
from lotto_sync.wallet.session import WalletSession

from conftest import OWNER, PLAYER_A, PLAYER_B, PLAYER_C, TEST_CONFIG, FakeWallet, make_handle


class HandleFactory:
    """Hands out a fresh fake handle per connect and remembers them."""

    def __init__(self, **handle_kwargs):
        self.handle_kwargs = handle_kwargs
        self.handles = []
        self.calls = []

    def __call__(self, account, signer):
        self.calls.append((account, signer))
        handle = make_handle(account=account, **self.handle_kwargs)
        self.handles.append(handle)
        return handle


def make_session(store, subscriptions, status, wallet=None, factory=None):
    factory = factory or HandleFactory()
    session = WalletSession(wallet, factory, store, subscriptions, status, TEST_CONFIG)
    return session, factory


@pytest.mark.asyncio
async def test_connect_loads_and_subscribes(store, subscriptions, status):
    session, factory = make_session(store, subscriptions, status, FakeWallet([PLAYER_A, PLAYER_B]))

    account = await session.connect()

    assert account == PLAYER_A
    assert session.connected
    assert not session.is_owner
    assert factory.calls == [(PLAYER_A, None)]
    assert store.snapshot().lottery_id == 3
    assert session.handle.listener_count() == 2
    assert status.current.phase is TxPhase.SUCCESS
    assert status.current.message == "Wallet connected!"


@pytest.mark.asyncio
async def test_owner_detected_case_insensitively(store, subscriptions, status):
    session, _ = make_session(store, subscriptions, status, FakeWallet([OWNER.lower()]))

    await session.connect()

    assert session.is_owner
    assert session.info.to_dict() == {"account": OWNER.lower(), "connected": True, "isOwner": True}


@pytest.mark.asyncio
async def test_connect_without_wallet(store, subscriptions, status):
    session, factory = make_session(store, subscriptions, status, wallet=None)

    assert await session.connect() is None

    assert not session.connected
    assert factory.calls == []
    assert status.current.phase is TxPhase.ERROR
    assert status.current.message == "Error: Please install a wallet!"


@pytest.mark.asyncio
async def test_connect_rejected_by_user(store, subscriptions, status):
    wallet = FakeWallet(error=UserRejectedError("User rejected the account request"))
    session, factory = make_session(store, subscriptions, status, wallet)

    assert await session.connect() is None

    assert not session.connected
    assert factory.calls == []
    assert status.current.message == "Error: User rejected the account request"


@pytest.mark.asyncio
async def test_connect_with_no_authorized_accounts(store, subscriptions, status):
    session, _ = make_session(store, subscriptions, status, FakeWallet(accounts=[]))

    assert await session.connect() is None
    assert status.current.phase is TxPhase.ERROR


@pytest.mark.asyncio
async def test_owner_read_failure_means_not_owner(store, subscriptions, status):
    class FailingOwnerFactory(HandleFactory):
        def __call__(self, account, signer):
            handle = super().__call__(account, signer)
            handle.failures["owner"] = ConnectionError("node down")
            return handle

    session, _ = make_session(store, subscriptions, status, FakeWallet([OWNER]), FailingOwnerFactory())

    await session.connect()

    assert session.connected
    assert not session.is_owner


@pytest.mark.asyncio
async def test_load_failure_keeps_state_and_subscription(store, subscriptions, status):
    class FailingLoadFactory(HandleFactory):
        def __call__(self, account, signer):
            handle = super().__call__(account, signer)
            handle.failures[("get_winner_by_lottery", 2)] = TimeoutError("read timed out")
            return handle

    store.apply_entry_event(PLAYER_C)
    before = store.snapshot()
    session, _ = make_session(store, subscriptions, status, FakeWallet(), FailingLoadFactory())

    assert await session.connect() == PLAYER_A

    assert store.snapshot() is before
    assert session.connected
    assert session.handle.listener_count() == 2
    assert status.current.phase is TxPhase.ERROR
    assert status.current.message.startswith("Error loading data:")


@pytest.mark.asyncio
async def test_reconnect_replaces_previous_handle(store, subscriptions, status):
    session, factory = make_session(store, subscriptions, status, FakeWallet())

    await session.connect()
    await session.connect()

    first, second = factory.handles
    assert first.closed
    assert first.listener_count() == 0
    assert second.listener_count() == 2
    assert session.handle is second


@pytest.mark.asyncio
async def test_failed_reconnect_keeps_live_session(store, subscriptions, status):
    wallet = FakeWallet()
    session, factory = make_session(store, subscriptions, status, wallet)
    await session.connect()

    wallet.error = UserRejectedError("denied")
    assert await session.connect() is None

    assert session.connected
    assert session.handle is factory.handles[0]
    assert factory.handles[0].listener_count() == 2


@pytest.mark.asyncio
async def test_handle_bind_failure_keeps_live_session(store, subscriptions, status):
    class BreakingFactory(HandleFactory):
        def __call__(self, account, signer):
            if self.handles:
                raise ValueError("invalid account")
            return super().__call__(account, signer)

    session, factory = make_session(store, subscriptions, status, FakeWallet(), BreakingFactory())
    await session.connect()

    assert await session.connect() is None

    first = factory.handles[0]
    assert session.connected
    assert session.handle is first
    assert not first.closed
    assert first.listener_count() == 2
    assert status.current.message == "Error: invalid account"


@pytest.mark.asyncio
async def test_disconnect_is_idempotent(store, subscriptions, status):
    session, factory = make_session(store, subscriptions, status, FakeWallet())
    await session.connect()

    await session.disconnect()
    await session.disconnect()

    assert not session.connected
    assert session.account is None
    assert session.handle is None
    assert factory.handles[0].closed
    assert factory.handles[0].listener_count() == 0


@pytest.mark.asyncio
async def test_refresh_requires_connection(store, subscriptions, status):
    session, _ = make_session(store, subscriptions, status, FakeWallet())

    assert await session.refresh() is False
    assert status.current.message == "Error: Connect a wallet first"


@pytest.mark.asyncio
async def test_refresh_reloads_state(store, subscriptions, status):
    session, factory = make_session(store, subscriptions, status, FakeWallet())
    await session.connect()
    factory.handles[0].players.append(PLAYER_C)

    assert await session.refresh() is True

    assert store.snapshot().players[-1] == PLAYER_C
    assert status.current.phase is TxPhase.IDLE
