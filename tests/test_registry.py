import itertools

import pytest

from room_chat.exceptions import (
    IdentityRequired,
    InvalidName,
    ProtocolError,
    RoomFull,
    RoomNotFound,
)
from room_chat.models import Message, Room


@pytest.fixture
def users(directory):
    for user_id, sid, nickname in (
        ("A", "sa", "Alice"),
        ("B", "sb", "Bob"),
        ("C", "sc", "Carol"),
    ):
        directory.set_nickname(user_id, sid, nickname)


def test_create_room_registers_requester(registry, users):
    room = registry.create_room("A", "  Test  ", 2, "sa")

    assert registry.lookup_room(room.room_id) is room
    assert room.name == "Test"
    assert room.participants == ["A"]
    assert room.clients == ["sa"]
    assert room.messages == []


def test_create_room_ids_are_unique(registry, users):
    ids = {registry.create_room("A", f"room {i}", 2, "sa").room_id for i in range(20)}
    assert len(ids) == 20


@pytest.mark.parametrize(
    "requester, name, capacity, error",
    [
        (None, "Test", 2, IdentityRequired),
        ("A", "", 2, InvalidName),
        ("A", "   ", 2, InvalidName),
        ("A", None, 2, InvalidName),
        ("A", "Test", 1, ProtocolError),
        ("A", "Test", "3", ProtocolError),
        ("A", "Test", True, ProtocolError),
    ],
)
def test_create_room_guards(registry, users, requester, name, capacity, error):
    with pytest.raises(error):
        registry.create_room(requester, name, capacity, "sa")
    assert registry.rooms == []


def test_join_checks_capacity_for_newcomers_only(registry, users):
    room = registry.create_room("A", "Test", 2, "sa")
    registry.join_as_participant(room.room_id, "B", "sb")

    with pytest.raises(RoomFull):
        registry.join_as_participant(room.room_id, "C", "sc")
    assert room.participants == ["A", "B"]
    assert room.clients == ["sa", "sb"]

    # existing member with a new connection
    registry.join_as_participant(room.room_id, "B", "sb2")
    assert room.participants == ["A", "B"]
    assert room.clients == ["sa", "sb", "sb2"]


def test_join_without_capacity_check(registry, users):
    room = registry.create_room("A", "Test", 2, "sa")
    registry.join_as_participant(room.room_id, "B", "sb")
    registry.join_as_participant(room.room_id, "C", "sc", check_capacity=False)
    assert room.participants == ["A", "B", "C"]


def test_unknown_room(registry):
    with pytest.raises(RoomNotFound):
        registry.join_as_participant("nope", "A", "sa")
    with pytest.raises(RoomNotFound):
        registry.record_message("nope", Message(message="x", id="A", nickname="a"))
    with pytest.raises(RoomNotFound):
        registry.snapshot("nope")
    assert registry.lookup_room("nope") is None


def test_live_clients_never_touch_participants(registry, users):
    room = registry.create_room("A", "Test", 3, "sa")
    registry.attach_live_client(room.room_id, "sx")
    registry.attach_live_client(room.room_id, "sx")
    assert room.clients == ["sa", "sx"]

    assert registry.detach_live_client(room.room_id, "sa") is True
    assert registry.detach_live_client(room.room_id, "sa") is False
    assert room.clients == ["sx"]
    assert room.participants == ["A"]


def test_detach_everywhere_reports_affected_rooms(registry, users):
    first = registry.create_room("A", "one", 2, "sa")
    second = registry.create_room("B", "two", 2, "sb")
    third = registry.create_room("A", "three", 2, "sa")

    affected = registry.detach_everywhere("sa")

    assert [room.room_id for room in affected] == [first.room_id, third.room_id]
    assert first.clients == [] and third.clients == []
    assert second.clients == ["sb"]
    assert first.participants == ["A"]


def test_snapshot_online_follows_current_connection(registry, directory, users):
    room = registry.create_room("A", "Test", 2, "sa")
    registry.join_as_participant(room.room_id, "B", "sb")

    info = registry.snapshot(room.room_id).to_dict()
    assert info["participants"] == [
        {"nickname": "Alice", "isOnline": True},
        {"nickname": "Bob", "isOnline": True},
    ]

    # Bob reconnects elsewhere: his old handle in clients no longer counts
    directory.set_nickname("B", "sb-new", "Bob")
    info = registry.snapshot(room.room_id)
    assert [p.is_online for p in info.participants] == [True, False]
    assert info.current_participants == 2


def test_snapshot_unknown_participant_nickname(registry, state, users):
    room = registry.create_room("A", "Test", 3, "sa")
    room.participants.append("ghost")
    info = registry.snapshot(room.room_id)
    assert info.participants[-1].nickname == "Unknown"
    assert info.participants[-1].is_online is False


def test_list_for_user_partitions_rooms(registry, users):
    mine_full = registry.create_room("A", "mine-full", 2, "sa")
    registry.join_as_participant(mine_full.room_id, "B", "sb")
    open_room = registry.create_room("B", "open", 3, "sb")
    full_room = registry.create_room("B", "full", 2, "sb")
    registry.join_as_participant(full_room.room_id, "C", "sc")

    lists = registry.list_for_user("A")

    assert [r.name for r in lists.mine] == ["mine-full"]
    assert [r.name for r in lists.available] == ["open"]
    assert [r.name for r in lists.full] == ["full"]


def test_partition_is_exhaustive_and_disjoint(registry, users):
    for i, (capacity, extra) in enumerate(
        itertools.product([2, 3], [[], ["B"], ["B", "C"]])
    ):
        room = registry.create_room("A" if i % 2 else "C", f"r{i}", capacity, "s")
        for user_id in extra:
            registry.join_as_participant(
                room.room_id, user_id, f"s{user_id}", check_capacity=False
            )

    all_ids = {room.room_id for room in registry.rooms}
    for user_id in ("A", "B", "C", "stranger"):
        lists = registry.list_for_user(user_id)
        parts = [
            {r.room_id for r in part}
            for part in (lists.mine, lists.available, lists.full)
        ]
        assert parts[0] | parts[1] | parts[2] == all_ids
        assert not (parts[0] & parts[1] or parts[0] & parts[2] or parts[1] & parts[2])


def test_record_message_appends_in_order(registry, users):
    room = registry.create_room("A", "Test", 2, "sa")
    first = Message(message="M1", id="A", nickname="Alice")
    second = Message(message="M2", id="B", nickname="Bob")
    registry.record_message(room.room_id, first)
    registry.record_message(room.room_id, second)
    assert room.messages == [first, second]


def test_load_resets_live_clients(registry, state):
    room = Room(
        room_id="r1",
        name="restored",
        max_participants=2,
        participants=["A"],
        clients=["stale"],
    )
    registry.load([room])
    assert state.rooms["r1"].clients == []
    assert state.rooms["r1"].participants == ["A"]
