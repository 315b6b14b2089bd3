#   Copyright 2024 Jarek Siembida
#
#   Licensed under the Apache License, Version 2.0 (the "License");
#   you may not use this file except in compliance with the License.
#   You may obtain a copy of the License at
#
#       http://www.apache.org/licenses/LICENSE-2.0
#
#   Unless required by applicable law or agreed to in writing, software
#   distributed under the License is distributed on an "AS IS" BASIS,
#   WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
#   See the License for the specific language governing permissions and
#   limitations under the License.

"""
Shared fixtures: a fake clock and an in-memory transport.
"""

import pytest

import sntp


NANOS = sntp.NANOS
NOW = 1700000000 * NANOS


class FakeClock:
    """Wall clock pinned at ``start``, both clocks move only via advance()."""

    def __init__(self, start=NOW):
        self.start = start
        self.elapsed = 0

    def advance(self, seconds):
        self.elapsed += int(seconds * NANOS)

    def time_ns(self):
        return self.start + self.elapsed

    def monotonic_ns(self):
        return self.elapsed


class FakeSession:
    def __init__(self, respond):
        self.respond = respond
        self.written = []
        self.ttl = None
        self.deadline = None
        self.closed = False

    def set_ttl(self, ttl):
        self.ttl = ttl

    def set_deadline(self, deadline):
        self.deadline = deadline

    def write(self, b):
        self.written.append(b)
        return len(b)

    def read(self, size):
        return self.respond(self.written[-1])

    def close(self):
        self.closed = True


class FakeDialer:
    """Stands in for udp_dial, ``respond`` maps a request to a reply."""

    def __init__(self, respond):
        self.respond = respond
        self.calls = []
        self.sessions = []

    def __call__(self, local_address, local_port, remote_address, remote_port):
        self.calls.append(
            (local_address, local_port, remote_address, remote_port)
        )
        session = FakeSession(self.respond)
        self.sessions.append(session)
        return session


def server_reply(request, **fields):
    """Builds a server mode reply echoing the request transmit time."""
    req = sntp.NtpHeader.deserialize(request)
    mode = fields.pop("mode", sntp.MODE_SERVER)
    leap = fields.pop("leap", sntp.LEAP_NONE)
    h = sntp.NtpHeader(
        stratum=fields.pop("stratum", 1),
        origin_time=fields.pop("origin_time", req.transmit_time),
        **fields
    )
    h.mode = mode
    h.version = req.version
    h.leap = leap
    return h


@pytest.fixture
def clock(monkeypatch):
    c = FakeClock()
    monkeypatch.setattr(sntp, "time_ns", c.time_ns)
    monkeypatch.setattr(sntp, "monotonic_ns", c.monotonic_ns)
    return c


@pytest.fixture
def good_server(clock):
    """Replies 2 s after the request with the server clock 10 s ahead."""

    def respond(request):
        h = server_reply(
            request,
            reference_time=sntp.to_fixed64(NOW + 10 * NANOS),
            receive_time=sntp.to_fixed64(NOW + 11 * NANOS),
            transmit_time=sntp.to_fixed64(NOW + 11 * NANOS),
            reference_id=0x47505300,  # "GPS"
            precision=-20,
            poll=6,
        )
        clock.advance(2)
        return h.serialize()

    return FakeDialer(respond)
