"""
Tests for the input-sending client.

Tests cover:
1. Relay registration and waiting for the host address
2. Change suppression for input snapshots
3. Heartbeats are sent regardless of input activity
4. Datagrams from anyone but the relay are ignored
"""

import asyncio

import pytest

pytest_plugins = ("pytest_asyncio",)

from netpad.models.wire_types import Role, UserInput
from netpad.servers.client_session import HEARTBEAT_FRAME, InputClient
from netpad.util.errors import RelayTimeoutError
from netpad.util.key_mapper import AXIS_MAGNITUDE, KeyMapper
from netpad.util.wire_protocol import (
    decode_client_message,
    encode_address,
    encode_address_list,
    encode_role,
)

RELAY = ("192.0.2.1", 45680)
HOST_Y = ("198.51.100.5", 45681)
STRANGER = ("203.0.113.99", 5555)


class MockDatagramTransport:
    """Mock datagram transport recording sent packets."""

    def __init__(self, sockname=("0.0.0.0", 45682)):
        self.sent = []
        self.sockname = sockname
        self.closed = False

    def sendto(self, data, addr=None):
        self.sent.append((data, addr))

    def get_extra_info(self, name, default=None):
        if name == "sockname":
            return self.sockname
        return default

    def close(self):
        self.closed = True


class FakeSource:
    def __init__(self, pressed=()):
        self.pressed = set(pressed)

    def get_pressed_keys(self):
        return set(self.pressed)


def make_client(pressed=(), sample_interval=0.005, heartbeat_interval=5.0):
    source = FakeSource(pressed)
    client = InputClient(
        RELAY,
        source,
        KeyMapper.from_mapping({"D": "LX+", "Space": "A"}),
        sample_interval=sample_interval,
        heartbeat_interval=heartbeat_interval,
    )
    transport = MockDatagramTransport()
    client.connection_made(transport)
    return client, transport, source


def sent_to_host(transport):
    return [decode_client_message(data) for data, dest in transport.sent if dest == HOST_Y]


class TestConnect:
    """Tests for InputClient.connect()."""

    @pytest.mark.asyncio
    async def test_registers_and_learns_host(self):
        client, transport, _ = make_client()

        connecting = asyncio.create_task(client.connect(timeout=1.0))
        await asyncio.sleep(0)
        client.datagram_received(encode_address(HOST_Y), RELAY)

        assert await connecting == HOST_Y
        assert client.host_addr == HOST_Y
        assert transport.sent[0] == (encode_role(Role.CLIENT), RELAY)

    @pytest.mark.asyncio
    async def test_timeout_without_host(self):
        client, _, _ = make_client()

        with pytest.raises(RelayTimeoutError):
            await client.connect(timeout=0.05)
        assert client.host_addr is None

    @pytest.mark.asyncio
    async def test_non_relay_sender_ignored(self):
        client, _, _ = make_client()

        client.datagram_received(encode_address(STRANGER), STRANGER)

        with pytest.raises(RelayTimeoutError):
            await client.connect(timeout=0.05)

    @pytest.mark.asyncio
    async def test_malformed_relay_reply_ignored(self):
        client, _, _ = make_client()

        client.datagram_received(encode_address_list([HOST_Y]), RELAY)
        client.datagram_received(b"junk", RELAY)
        client.datagram_received(encode_address(HOST_Y), RELAY)

        assert await client.connect(timeout=0.5) == HOST_Y

    @pytest.mark.asyncio
    async def test_run_requires_connect(self):
        client, _, _ = make_client()

        with pytest.raises(RuntimeError):
            await client.run()


class TestSending:
    """Tests for input sampling and heartbeats."""

    @pytest.mark.asyncio
    async def test_unchanged_input_sent_once(self):
        client, transport, _ = make_client(pressed={"D"})
        client.host_addr = HOST_Y

        assert client.sample_input()
        assert not client.sample_input()
        assert not client.sample_input()

        assert client.inputs_sent == 1
        assert sent_to_host(transport) == [UserInput(lx=AXIS_MAGNITUDE)]

    @pytest.mark.asyncio
    async def test_changed_input_sent_again(self):
        client, transport, source = make_client(pressed={"D"})
        client.host_addr = HOST_Y

        client.sample_input()
        source.pressed = {"D", "Space"}
        client.sample_input()
        source.pressed = set()
        client.sample_input()

        assert client.inputs_sent == 3
        assert sent_to_host(transport)[-1] == UserInput()

    @pytest.mark.asyncio
    async def test_first_neutral_sample_is_sent(self):
        client, transport, _ = make_client()
        client.host_addr = HOST_Y

        assert client.sample_input()
        assert sent_to_host(transport) == [UserInput()]

    @pytest.mark.asyncio
    async def test_heartbeat_frame(self):
        client, transport, _ = make_client()
        client.host_addr = HOST_Y

        client.send_heartbeat()

        assert transport.sent == [(HEARTBEAT_FRAME, HOST_Y)]
        assert client.heartbeats_sent == 1

    @pytest.mark.asyncio
    async def test_run_sends_heartbeats_while_input_idle(self):
        client, transport, _ = make_client(pressed={"D"}, sample_interval=0.005, heartbeat_interval=0.05)
        client.host_addr = HOST_Y

        task = asyncio.create_task(client.run())
        await asyncio.sleep(0.2)
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

        assert client.inputs_sent == 1
        assert client.heartbeats_sent >= 2
        assert len(transport.sent) == client.inputs_sent + client.heartbeats_sent
