import pytest

from raffle.blockchain.deploy import deploy_raffle
from raffle.lottery.event_manager import EventManager, MemoryStore
from raffle.lottery.exceptions import NotEnoughFunds
from raffle.lottery.models import RoundSnapshot

from tests.conftest import pass_interval


def _snapshot(n):
    return RoundSnapshot(round_number=n, request_id=n, winner=f"0x{n:040x}", prize=n * 10, player_count=1, finished_at=n)


class TestMemoryStore:
    def test_feed_is_bounded(self):
        store = MemoryStore(feed_capacity=2)
        for i in range(3):
            store.add_live_feed(event_type="RaffleEnter", message=str(i), details={"timestamp": i})
        assert [item.message for item in store.get_live_feed()] == ["1", "2"]
        assert [item.message for item in store.get_live_feed(limit=1)] == ["2"]

    def test_history_resize_keeps_newest(self):
        store = MemoryStore(history_capacity=5)
        for n in range(1, 5):
            store.add_history_snapshot(_snapshot(n))
        store.set_history_capacity(2)
        assert [s.round_number for s in store.get_round_history()] == [3, 4]

    def test_serialize_snapshot(self):
        payload = MemoryStore.serialize_snapshot(_snapshot(2))
        assert payload["roundNumber"] == 2
        assert payload["prizeWei"] == 20
        assert payload["winner"] == f"0x{2:040x}"


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def manager(chain, raffle, store):
    manager = EventManager(chain, raffle.address, store)
    manager.attach()
    yield manager
    manager.detach()


class TestEventManager:
    def test_records_a_full_round(self, manager, store, raffle, chain, coordinator, accounts, entrance_fee):
        for player in accounts[:3]:
            raffle.enter_raffle(player, value=entrance_fee)
        pass_interval(chain, raffle)
        request_id = raffle.perform_upkeep().return_value
        receipt = coordinator.fulfill_random_words(request_id, raffle.address)

        feed = store.get_live_feed()
        assert [item.event_type for item in feed] == ["RaffleEnter"] * 3 + ["RequestedRaffleWinner", "WinnerPicked"]
        assert feed[0].details["player"] == accounts[0]
        assert "entered the raffle with 0.0100 ETH" in feed[0].message

        (snapshot,) = store.get_round_history()
        assert snapshot.round_number == 1
        assert snapshot.request_id == request_id
        assert snapshot.winner == raffle.get_recent_winner()
        assert snapshot.prize == entrance_fee * 3
        assert snapshot.player_count == 3
        assert snapshot.finished_at == receipt.timestamp
        assert snapshot.transaction_hash == receipt.transaction_hash

    def test_reverted_transactions_leave_no_trace(self, manager, store, raffle, deployer):
        with pytest.raises(NotEnoughFunds):
            raffle.enter_raffle(deployer, value=0)
        assert store.get_live_feed() == []

    def test_player_count_resets_between_rounds(self, manager, store, raffle, chain, coordinator, accounts, entrance_fee):
        for players in (accounts[:2], accounts[2:3]):
            for player in players:
                raffle.enter_raffle(player, value=entrance_fee)
            pass_interval(chain, raffle)
            coordinator.fulfill_random_words(raffle.perform_upkeep().return_value, raffle.address)

        assert [s.player_count for s in store.get_round_history()] == [2, 1]

    def test_ignores_other_raffles(self, manager, store, chain, coordinator, deployer, settings, entrance_fee):
        other = deploy_raffle(chain, deployer, coordinator, settings).raffle
        other.enter_raffle(deployer, value=entrance_fee)
        assert store.get_live_feed() == []

    def test_capacities_come_from_config(self, chain, raffle, store):
        config = {"event_manager": {"live_feed_max_entries": 2, "round_history_max": 1}}
        EventManager(chain, raffle.address, store, config)
        for i in range(3):
            store.add_live_feed(event_type="RaffleEnter", message=str(i))
        assert len(store.get_live_feed()) == 2
