"""Tests for the sequence coordinator."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from spigot.blockchain.client import AccountInfo
from spigot.errors import TransientError
from spigot.faucet.sequence import SequenceCoordinator

FAUCET = "terra1faucet"


def make_client(sequence=5, account_number=42):
    """Mock LCD client returning a fixed account."""
    client = AsyncMock()
    client.get_account.return_value = AccountInfo(
        sequence=sequence, account_number=account_number
    )
    return client


class TestRefresh:
    """Tests for SequenceCoordinator.refresh."""

    @pytest.mark.asyncio
    async def test_initial_load(self):
        """The first refresh loads sequence and account number."""
        coordinator = SequenceCoordinator(make_client(), FAUCET)
        assert coordinator.state is None

        assert await coordinator.refresh() == 5

        assert coordinator.state.sequence == 5
        assert coordinator.state.account_number == 42

    @pytest.mark.asyncio
    async def test_refresh_is_idempotent(self):
        """Two refreshes with no commit in between return the same value."""
        coordinator = SequenceCoordinator(make_client(), FAUCET)

        assert await coordinator.refresh() == await coordinator.refresh()

    @pytest.mark.asyncio
    async def test_remote_ahead_is_adopted(self):
        """A higher remote sequence replaces the local one."""
        client = make_client(sequence=5)
        coordinator = SequenceCoordinator(client, FAUCET)
        await coordinator.refresh()

        client.get_account.return_value = AccountInfo(sequence=9, account_number=42)

        assert await coordinator.refresh() == 9

    @pytest.mark.asyncio
    async def test_remote_behind_is_ignored(self):
        """A lagging remote never lowers the local sequence."""
        client = make_client(sequence=5)
        coordinator = SequenceCoordinator(client, FAUCET)
        await coordinator.refresh()
        async with coordinator.acquire() as lease:
            lease.commit()
            lease_seq = coordinator.state.sequence

        assert await coordinator.refresh() == lease_seq == 6

    @pytest.mark.asyncio
    async def test_account_number_kept(self):
        """A differing remote account number does not replace the loaded one."""
        client = make_client(account_number=42)
        coordinator = SequenceCoordinator(client, FAUCET)
        await coordinator.refresh()

        client.get_account.return_value = AccountInfo(sequence=5, account_number=99)
        await coordinator.refresh()

        assert coordinator.state.account_number == 42

    @pytest.mark.asyncio
    async def test_remote_failure_propagates(self):
        """Remote failures are raised to the caller and leave state untouched."""
        client = make_client()
        coordinator = SequenceCoordinator(client, FAUCET)
        await coordinator.refresh()
        client.get_account.side_effect = TransientError("timeout")

        with pytest.raises(TransientError):
            await coordinator.refresh()

        assert coordinator.state.sequence == 5


class TestAcquire:
    """Tests for SequenceCoordinator.acquire."""

    @pytest.mark.asyncio
    async def test_commit_advances(self):
        """Committing a lease advances the sequence by one."""
        coordinator = SequenceCoordinator(make_client(), FAUCET)
        await coordinator.refresh()

        async with coordinator.acquire() as lease:
            assert lease.sequence == 5
            assert lease.account_number == 42
            assert lease.commit() == 6

        assert coordinator.state.sequence == 6

    @pytest.mark.asyncio
    async def test_release_without_commit(self):
        """Leaving without commit keeps the sequence."""
        coordinator = SequenceCoordinator(make_client(), FAUCET)
        await coordinator.refresh()

        async with coordinator.acquire() as lease:
            assert lease.sequence == 5

        assert coordinator.state.sequence == 5
        assert not coordinator.locked

    @pytest.mark.asyncio
    async def test_exception_releases_lock(self):
        """An exception inside the lease releases the lock unchanged."""
        coordinator = SequenceCoordinator(make_client(), FAUCET)
        await coordinator.refresh()

        with pytest.raises(ValueError):
            async with coordinator.acquire():
                raise ValueError("broadcast failed")

        assert coordinator.state.sequence == 5
        assert not coordinator.locked

    @pytest.mark.asyncio
    async def test_double_commit(self):
        """A lease commits at most once."""
        coordinator = SequenceCoordinator(make_client(), FAUCET)
        await coordinator.refresh()

        async with coordinator.acquire() as lease:
            lease.commit()
            with pytest.raises(RuntimeError, match="already committed"):
                lease.commit()

    @pytest.mark.asyncio
    async def test_lease_unusable_after_release(self):
        """A lease cannot be used once its block has exited."""
        coordinator = SequenceCoordinator(make_client(), FAUCET)
        await coordinator.refresh()

        async with coordinator.acquire() as lease:
            pass

        with pytest.raises(RuntimeError, match="after release"):
            _ = lease.sequence
        with pytest.raises(RuntimeError, match="after release"):
            lease.commit()

    @pytest.mark.asyncio
    async def test_sequence_before_load(self):
        """Reading the sequence before any refresh is an error."""
        coordinator = SequenceCoordinator(make_client(), FAUCET)

        async with coordinator.acquire() as lease:
            with pytest.raises(RuntimeError, match="not loaded"):
                _ = lease.sequence

    @pytest.mark.asyncio
    async def test_lease_refresh(self):
        """Refreshing through the lease does not deadlock."""
        client = make_client(sequence=5)
        coordinator = SequenceCoordinator(client, FAUCET)

        async with coordinator.acquire() as lease:
            assert await lease.refresh() == 5
            client.get_account.return_value = AccountInfo(sequence=8, account_number=42)
            assert await lease.refresh() == 8

    @pytest.mark.asyncio
    async def test_concurrent_leases_get_contiguous_sequences(self):
        """Concurrent committers each sign with a distinct, contiguous sequence."""
        coordinator = SequenceCoordinator(make_client(sequence=5), FAUCET)
        await coordinator.refresh()
        used = []

        async def claim():
            async with coordinator.acquire() as lease:
                await lease.refresh()
                seq = lease.sequence
                await asyncio.sleep(0)
                used.append(seq)
                lease.commit()

        await asyncio.gather(*(claim() for _ in range(10)))

        assert sorted(used) == list(range(5, 15))
        assert coordinator.state.sequence == 15

    @pytest.mark.asyncio
    async def test_failed_lease_sequence_reused(self):
        """A sequence released without commit is used by the next lease."""
        coordinator = SequenceCoordinator(make_client(sequence=5), FAUCET)
        await coordinator.refresh()

        async with coordinator.acquire() as lease:
            first = lease.sequence
        async with coordinator.acquire() as lease:
            second = lease.sequence
            lease.commit()

        assert first == second == 5
