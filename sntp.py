#!/usr/bin/env python3


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


#
# SNTP client, a single client/server exchange per query.
#
# https://datatracker.ietf.org/doc/html/rfc5905
# https://datatracker.ietf.org/doc/html/rfc4493 (AES-CMAC)
# https://datatracker.ietf.org/doc/html/rfc8573 (AES-CMAC for NTP)
#


import hashlib
import hmac
import logging
import os
from binascii import unhexlify
from collections import namedtuple
from datetime import datetime, timezone
from enum import IntEnum
from socket import AF_INET6, IPPROTO_IP, IPPROTO_IPV6, IP_TTL, SOCK_DGRAM
from socket import IPV6_UNICAST_HOPS
from socket import socket, getaddrinfo, timeout as SocketTimeout
from struct import pack, unpack
from time import monotonic_ns, time_ns

from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes


VERSION = 4
PORT = 123
TIMEOUT = 5.0  # seconds
MAXSTRAT = 16
MAXDISP = 16  # 16 s
MAXPOLL = 17  # 2**17 s = 36.4 h
NANOS = 1000000000
NTP_DELTA = 2208988800  # Seconds from 1900/01/01 to 1970/01/01
ERA = (1 << 32) * NANOS  # Length of one 136 year NTP era
HEADER_SIZE = 48
HEADER_FORMAT = "!BBbbLLLQQQQ"
MAX_DATAGRAM = 8192

MODE_RESERVED = 0
MODE_SYMMETRIC_ACTIVE = 1
MODE_SYMMETRIC_PASSIVE = 2
MODE_CLIENT = 3
MODE_SERVER = 4
MODE_BROADCAST = 5
MODE_CONTROL = 6
MODE_PRIVATE = 7

LEAP_NONE = 0
LEAP_ADD_SECOND = 1
LEAP_DEL_SECOND = 2
LEAP_NOT_IN_SYNC = 3
NOSYNC = LEAP_NOT_IN_SYNC

NTP_SERVER_OFFICIAL = "ntp.org"
NTP_SERVER_POOL = "pool.ntp.org"
NTP_SERVER_AMAZON = "time.aws.com"
NTP_SERVER_CLOUDFLARE = "time.cloudflare.com"
NTP_SERVER_GOOGLE = "time.google.com"
NTP_SERVER_ISC = "time.clock.isc.org"
NTP_SERVER_NIST = "time.nist.gov"
NTP_SERVER_UBUNTU = "ntp.ubuntu.com"
NTP_SERVER_WINDOWS = "time.windows.com"
NTP_SERVER_AFRICA = "africa.pool.ntp.org"
NTP_SERVER_ASIA = "asia.pool.ntp.org"
NTP_SERVER_EUROPE = "europe.pool.ntp.org"
NTP_SERVER_NORTH_AMERICA = "north-america.pool.ntp.org"
NTP_SERVER_OCEANIA = "oceania.pool.ntp.org"
NTP_SERVER_SOUTH_AMERICA = "south-america.pool.ntp.org"


log = logging.getLogger("sntp")


class NtpError(Exception):
    pass


class NtpConfigError(NtpError):
    pass


class NtpInvalidKeyError(NtpConfigError):
    pass


class NtpAuthError(NtpError):
    pass


class NtpPacketError(NtpError):
    pass


class NtpResponseMismatchError(NtpPacketError):
    pass


class NtpTickedBackwardsError(NtpPacketError):
    pass


class NtpUnsynchronizedError(NtpError):
    pass


class NtpKissOfDeathError(NtpUnsynchronizedError):
    def __init__(self, code):
        reason = kiss_reason(code)
        if reason:
            message = "Kiss of death %s: %s" % (code, reason)
        else:
            message = "Kiss of death %r" % code
        super().__init__(message)
        self.code = code


class NtpDeniedError(NtpKissOfDeathError):
    pass


class NtpThrottledError(NtpKissOfDeathError):
    pass


class NtpInvalidStratumError(NtpUnsynchronizedError):
    pass


class NtpLeapError(NtpUnsynchronizedError):
    pass


class NtpStaleError(NtpUnsynchronizedError):
    pass


class NtpDispersionError(NtpUnsynchronizedError):
    pass


class NtpInvalidTimeError(NtpUnsynchronizedError):
    pass


#
# Fixed point time. Page 13, timestamps are 64bit (32.32) and the short
# format is 32bit (16.16), both unsigned. Instants on the Python side are
# integer nanoseconds since 1970/01/01 (time.time_ns() scale), durations
# are integer nanoseconds.
#


def to_fixed64(t):
    secs, nsec = divmod(t + NTP_DELTA * NANOS, NANOS)
    frac, rest = divmod(nsec << 32, NANOS)
    if rest >= NANOS // 2:
        frac += 1
    # Wraps around in 2036, the start of the next era.
    return ((secs << 32) + frac) & 0xffffffffffffffff


def fixed64_to_duration(x):
    secs = (x >> 32) * NANOS
    frac = (x & 0xffffffff) * NANOS
    nsec = frac >> 32
    if frac & 0xffffffff >= 0x80000000:
        nsec += 1
    return secs + nsec


def fixed64_to_time(x, pivot=None):
    """Decodes an NTP timestamp into an instant in nanoseconds.

    The timestamp only tells the position within a 136 year era. The era
    chosen is the one that puts the instant nearest to ``pivot``, or era 0
    (1900 to 2036) when there is no pivot.
    """
    t = fixed64_to_duration(x) - NTP_DELTA * NANOS
    if pivot is None:
        return t
    era = (pivot - t + ERA // 2) // ERA
    return t + era * ERA


def fixed64_sub(a, b):
    # a - b modulo 2**64, taken as a signed 64 bit difference, so the
    # result is correct across an era boundary.
    d = (a - b) & 0xffffffffffffffff
    if d & 0x8000000000000000:
        return -fixed64_to_duration(0x10000000000000000 - d)
    return fixed64_to_duration(d)


def fixed32_to_duration(x):
    secs = (x >> 16) * NANOS
    frac = (x & 0xffff) * NANOS
    nsec = frac >> 16
    if frac & 0xffff >= 0x8000:
        nsec += 1
    return secs + nsec


def to_interval(e):
    # Poll and precision are log2 seconds, signed.
    if e > 0:
        return NANOS << e
    if e < 0:
        return NANOS >> -e
    return NANOS


def to_datetime(t):
    secs, nsec = divmod(t, NANOS)
    dt = datetime.fromtimestamp(secs, timezone.utc)
    return dt.replace(microsecond=nsec // 1000)


class NtpHeader:
    def __init__(
        self,
        *,
        li_vn_mode=0,
        stratum=0,
        poll=0,
        precision=0,
        root_delay=0,
        root_dispersion=0,
        reference_id=0,
        reference_time=0,
        origin_time=0,
        receive_time=0,
        transmit_time=0
    ):
        self.li_vn_mode = li_vn_mode
        self.stratum = stratum
        self.poll = poll
        self.precision = precision
        self.root_delay = root_delay
        self.root_dispersion = root_dispersion
        self.reference_id = reference_id
        self.reference_time = reference_time
        self.origin_time = origin_time
        self.receive_time = receive_time
        self.transmit_time = transmit_time

    # First byte of the header: LI (2 bits), VN (3 bits), Mode (3 bits).

    @property
    def leap(self):
        return (self.li_vn_mode >> 6) & 3

    @leap.setter
    def leap(self, value):
        self.li_vn_mode = (self.li_vn_mode & 0x3f) | ((value & 3) << 6)

    @property
    def version(self):
        return (self.li_vn_mode >> 3) & 7

    @version.setter
    def version(self, value):
        self.li_vn_mode = (self.li_vn_mode & 0xc7) | ((value & 7) << 3)

    @property
    def mode(self):
        return self.li_vn_mode & 7

    @mode.setter
    def mode(self, value):
        self.li_vn_mode = (self.li_vn_mode & 0xf8) | (value & 7)

    def serialize(self):
        return pack(
            HEADER_FORMAT,
            self.li_vn_mode,
            self.stratum,
            self.poll,
            self.precision,
            self.root_delay,
            self.root_dispersion,
            self.reference_id,
            self.reference_time,
            self.origin_time,
            self.receive_time,
            self.transmit_time,
        )

    @staticmethod
    def deserialize(b):
        # Anything past the header is an extension or a MAC.
        b = b[:HEADER_SIZE]
        if len(b) != HEADER_SIZE:
            raise NtpPacketError("Invalid packet")

        (
            li_vn_mode,
            stratum,
            poll,
            precision,
            root_delay,
            root_dispersion,
            reference_id,
            reference_time,
            origin_time,
            receive_time,
            transmit_time,
        ) = unpack(HEADER_FORMAT, b)

        return NtpHeader(
            li_vn_mode=li_vn_mode,
            stratum=stratum,
            poll=poll,
            precision=precision,
            root_delay=root_delay,
            root_dispersion=root_dispersion,
            reference_id=reference_id,
            reference_time=reference_time,
            origin_time=origin_time,
            receive_time=receive_time,
            transmit_time=transmit_time,
        )


#
# Symmetric key authentication. The MAC trailer is a 32bit key id followed
# by the digest of key || header (or AES-CMAC of the header).
#


class AuthType(IntEnum):
    NONE = 0
    MD5 = 1
    SHA1 = 2
    SHA256 = 3
    SHA512 = 4
    AES128 = 5


AuthAlgorithm = namedtuple(
    "AuthAlgorithm", ["min_key", "max_key", "digest_size", "digest"]
)


def _digest_md5(payload, key):
    return hashlib.md5(key + payload).digest()


def _digest_sha1(payload, key):
    return hashlib.sha1(key + payload).digest()


def _digest_sha256(payload, key):
    return hashlib.sha256(key + payload).digest()[:20]


def _digest_sha512(payload, key):
    return hashlib.sha512(key + payload).digest()[:20]


def _xor(a, b):
    return bytes(x ^ y for x, y in zip(a, b))


def _double(block):
    # Multiplication by x in GF(2**128), Rb = 0x87.
    x = int.from_bytes(block, "big") << 1
    x ^= 0x87 * (x >> 128)
    return (x & ((1 << 128) - 1)).to_bytes(16, "big")


def aes_cmac(payload, key):
    """RFC 4493 CMAC over the AES block cipher.

    The key length picks AES-128, AES-192 or AES-256. NTP only uses
    AES-128 (RFC 8573).
    """
    encrypt = Cipher(algorithms.AES(key), modes.ECB()).encryptor().update

    k1 = _double(encrypt(bytes(16)))
    k2 = _double(k1)

    mac = bytes(16)
    while len(payload) > 16:
        mac = encrypt(_xor(mac, payload[:16]))
        payload = payload[16:]

    if len(payload) == 16:
        last = _xor(payload, k1)
    else:
        padded = payload + b"\x80" + bytes(15 - len(payload))
        last = _xor(padded, k2)

    return encrypt(_xor(mac, last))


ALGORITHMS = {
    AuthType.MD5: AuthAlgorithm(4, 32, 16, _digest_md5),
    AuthType.SHA1: AuthAlgorithm(4, 32, 20, _digest_sha1),
    AuthType.SHA256: AuthAlgorithm(4, 32, 20, _digest_sha256),
    AuthType.SHA512: AuthAlgorithm(4, 32, 20, _digest_sha512),
    AuthType.AES128: AuthAlgorithm(16, 16, 16, aes_cmac),
}


class AuthOptions:
    def __init__(self, *, type=AuthType.NONE, key="", key_id=0):
        self.type = AuthType(type)
        self.key = key
        self.key_id = key_id

    @property
    def enabled(self):
        return self.type != AuthType.NONE


def decode_auth_key(auth):
    """Turns the key of ``auth`` into raw key bytes.

    Keys longer than 20 characters are hex encoded, shorter ones are taken
    as ASCII. ``bytes`` keys follow the same rule. Keys longer than the
    algorithm allows are truncated.
    """
    algorithm = ALGORITHMS.get(auth.type)
    if algorithm is None:
        raise NtpInvalidKeyError("No authentication algorithm selected")
    if not 0 <= auth.key_id <= 0xffffffff:
        raise NtpInvalidKeyError("Invalid authentication key id")
    if not isinstance(auth.key, (str, bytes, bytearray)):
        raise NtpInvalidKeyError("Invalid authentication key")

    try:
        if len(auth.key) > 20:
            key = unhexlify(auth.key)
        elif isinstance(auth.key, str):
            key = auth.key.encode("ascii")
        else:
            key = bytes(auth.key)
    except ValueError as e:
        # Bad hex digits and non ASCII text alike.
        raise NtpInvalidKeyError("Invalid authentication key") from e

    if len(key) < algorithm.min_key:
        raise NtpInvalidKeyError("Invalid authentication key")
    return key[:algorithm.max_key]


def append_digest(b, auth_type, key_id, key):
    algorithm = ALGORITHMS[auth_type]
    return b + pack("!L", key_id) + algorithm.digest(b, key)


def verify_digest(b, auth_type, key_id, key):
    algorithm = ALGORITHMS[auth_type]
    mac_size = 4 + algorithm.digest_size
    remain = len(b) - HEADER_SIZE
    if remain < mac_size or remain % 4 != 0:
        return False

    payload_size = len(b) - mac_size
    (received_id,) = unpack("!L", b[payload_size:payload_size + 4])
    digest = algorithm.digest(b[:payload_size], key)
    # Both checks always run, a failure does not tell which one it was.
    same_id = received_id == key_id
    same_digest = hmac.compare_digest(digest, b[payload_size + 4:])
    return same_id & same_digest


#
# Kiss-o'-Death codes, page 42.
#


KISS_CODES = {
    "ACST": "the association belongs to a unicast server",
    "AUTH": "server authentication failed",
    "AUTO": "autokey sequence failed",
    "BCST": "the association belongs to a broadcast server",
    "CRYP": "cryptographic authentication or identification failed",
    "DENY": "access denied by remote server",
    "DROP": "lost peer in symmetric mode",
    "RSTR": "access denied due to local policy",
    "INIT": "the association has not yet synchronized for the first time",
    "MCST": "the association belongs to a dynamically discovered server",
    "NKEY": "no key found",
    "RATE": "rate exceeded",
    "RMOT": "alteration of association from a remote host running ntpdc",
    "STEP": (
        "a step change in system time has occurred,"
        " but the association has not yet resynchronized"
    ),
}


def kiss_code(reference_id):
    b = pack("!L", reference_id & 0xffffffff)
    if any(c < 32 or c > 126 for c in b):
        return ""
    return b.decode("ascii")


def kiss_reason(code):
    return KISS_CODES.get(code, "")


#
# Offset and delay of a single exchange, page 29. Timestamps are
# subtracted as 64 bit fixed point values, which keeps the result right
# when the exchange straddles an era boundary.
#


def offset(org, rec, xmt, dst):
    # Offset is the value we need to add to our local clock
    # in order, to be in sync with the server. Therefore,
    # negative offset means our clock is running fast.
    s = fixed64_sub(rec, org) + fixed64_sub(xmt, dst)
    # Halves toward zero.
    return -(-s // 2) if s < 0 else s // 2


def rtt(org, rec, xmt, dst):
    a = fixed64_sub(dst, org)
    b = fixed64_sub(xmt, rec)
    # Negative means the clocks disagree, not a negative delay.
    return max(0, a - b)


def min_error(org, rec, xmt, dst):
    # Lower bound of the clock error implied by causality violations.
    return max(0, fixed64_sub(org, rec), fixed64_sub(xmt, dst))


def root_distance(rtt, root_delay, root_dispersion):
    # Appendix A.5.5.2 adds peer dispersion, jitter and drift. These are
    # all zero for a client that sends a single packet.
    return (rtt + root_delay) // 2 + root_dispersion


_NtpResponse = namedtuple(
    "_NtpResponse",
    [
        "time",
        "clock_offset",
        "rtt",
        "precision",
        "version",
        "stratum",
        "reference_id",
        "reference_time",
        "root_delay",
        "root_dispersion",
        "root_distance",
        "leap",
        "min_error",
        "kiss_code",
        "poll",
    ],
)


class NtpResponse(_NtpResponse):
    """Result of one exchange.

    ``time`` and ``reference_time`` are instants, in nanoseconds since the
    Unix epoch. ``clock_offset``, ``rtt``, ``precision``, ``root_delay``,
    ``root_dispersion``, ``root_distance``, ``min_error`` and ``poll`` are
    durations in nanoseconds. ``kiss_code`` is only set for stratum 0.
    """

    __slots__ = ()

    def __str__(self):
        return "offset=%g rtt=%g distance=%g stratum=%d" % (
            self.clock_offset / NANOS,
            self.rtt / NANOS,
            self.root_distance / NANOS,
            self.stratum,
        )

    @property
    def datetime(self):
        return to_datetime(self.time)

    @property
    def kiss_reason(self):
        return kiss_reason(self.kiss_code)

    def is_kiss_of_death(self):
        return self.stratum == 0

    def reference_string(self):
        # Page 22, stratum 0 and 1 carry ASCII, an IPv4 address otherwise.
        # IPv6 servers put the first 4 bytes of an MD5 hash here, which
        # renders as a bogus address.
        b = pack("!L", self.reference_id)
        if self.stratum <= 1:
            return b.rstrip(b"\0").decode("ascii", "replace")
        return "%d.%d.%d.%d" % tuple(b)

    def validate(self):
        """Raises NtpUnsynchronizedError when unfit for synchronization."""
        if self.stratum == 0:
            if self.kiss_code in ("DENY", "RSTR"):
                raise NtpDeniedError(self.kiss_code)
            if self.kiss_code == "RATE":
                raise NtpThrottledError(self.kiss_code)
            raise NtpKissOfDeathError(self.kiss_code)
        if self.stratum >= MAXSTRAT:
            raise NtpInvalidStratumError("Invalid stratum %d" % self.stratum)
        if self.leap == LEAP_NOT_IN_SYNC:
            raise NtpLeapError("Invalid leap second")

        # Older than the maximum poll interval, the server clock has not
        # been updated from its reference for too long.
        freshness = self.time - self.reference_time
        if freshness > (NANOS << MAXPOLL):
            raise NtpStaleError("Server clock not fresh")

        # Synchronization distance, lambda.
        if self.root_delay // 2 + self.root_dispersion > MAXDISP * NANOS:
            raise NtpDispersionError("Invalid dispersion")

        if self.time < self.reference_time:
            raise NtpInvalidTimeError("Invalid time reported")


def parse_time(h, dst, pivot=None):
    """Builds the response from a received header and its receipt time.

    ``h.origin_time`` must already hold the real local send time. Server
    timestamps are decoded in the era nearest to ``pivot``, usually the
    local clock, see fixed64_to_time().
    """
    org = h.origin_time
    rec = h.receive_time
    xmt = h.transmit_time
    round_trip = rtt(org, rec, xmt, dst)
    root_delay = fixed32_to_duration(h.root_delay)
    root_dispersion = fixed32_to_duration(h.root_dispersion)

    return NtpResponse(
        time=fixed64_to_time(xmt, pivot),
        clock_offset=offset(org, rec, xmt, dst),
        rtt=round_trip,
        precision=to_interval(h.precision),
        version=h.version,
        stratum=h.stratum,
        reference_id=h.reference_id,
        reference_time=fixed64_to_time(h.reference_time, pivot),
        root_delay=root_delay,
        root_dispersion=root_dispersion,
        root_distance=root_distance(round_trip, root_delay, root_dispersion),
        leap=h.leap,
        min_error=min_error(org, rec, xmt, dst),
        kiss_code=kiss_code(h.reference_id) if h.stratum == 0 else "",
        poll=to_interval(h.poll),
    )


#
# Transport. Anything with the same dial signature returning an object
# with the UdpSession methods can be plugged in via QueryOptions.dial.
#


class UdpSession:
    def __init__(self, sock):
        self.sock = sock
        self.deadline = None

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    def set_ttl(self, ttl):
        if self.sock.family == AF_INET6:
            self.sock.setsockopt(IPPROTO_IPV6, IPV6_UNICAST_HOPS, ttl)
        else:
            self.sock.setsockopt(IPPROTO_IP, IP_TTL, ttl)

    def set_deadline(self, deadline):
        self.deadline = deadline

    def _arm(self):
        if self.deadline is None:
            self.sock.settimeout(None)
            return
        remaining = self.deadline - time_ns()
        if remaining <= 0:
            raise SocketTimeout("timed out")
        self.sock.settimeout(remaining / NANOS)

    def write(self, b):
        self._arm()
        return self.sock.send(b)

    def read(self, size):
        self._arm()
        return self.sock.recv(size)

    def close(self):
        self.sock.close()


def udp_dial(local_address, local_port, remote_address, remote_port):
    family, _, _, _, address = getaddrinfo(
        remote_address, remote_port, 0, SOCK_DGRAM
    )[0]
    sock = socket(family, SOCK_DGRAM)
    try:
        if local_address is not None:
            sock.bind((local_address, local_port))
        sock.connect(address)
    except OSError:
        sock.close()
        raise
    log.debug("Connected to %s", address[0])
    return UdpSession(sock)


#
# Queries.
#


class QueryOptions:
    def __init__(
        self,
        *,
        timeout=None,
        version=None,
        local_address=None,
        port=None,
        ttl=None,
        dial=None,
        auth=None
    ):
        self.timeout = timeout
        self.version = version
        self.local_address = local_address
        self.port = port
        self.ttl = ttl
        self.dial = dial
        self.auth = auth


def exchange(host, options):
    """Sends one request to ``host`` and reads one reply.

    Returns the reply header, with the origin time replaced by the real send
    time, and the fixed point receipt time.
    """
    timeout = TIMEOUT if options.timeout is None else options.timeout
    version = VERSION if options.version is None else options.version
    port = PORT if options.port is None else options.port
    dial = udp_dial if options.dial is None else options.dial
    auth = AuthOptions() if options.auth is None else options.auth

    if not 2 <= version <= 4:
        raise NtpConfigError("Invalid protocol version %r" % version)

    key = None
    if auth.enabled:
        key = decode_auth_key(auth)

    request = NtpHeader()
    request.mode = MODE_CLIENT
    request.version = version
    # We have no idea about upcoming leap seconds.
    request.leap = LEAP_NOT_IN_SYNC

    log.debug("Querying %s:%s version %d", host, port, version)
    session = dial(options.local_address, 0, host, port)
    try:
        if options.ttl:
            session.set_ttl(options.ttl)
        session.set_deadline(time_ns() + int(timeout * NANOS))

        # Random transmit timestamp, so the server reply does not reveal
        # our clock and off-path attackers cannot guess the origin.
        try:
            request.transmit_time = int.from_bytes(os.urandom(8), "big")
            t_xmt = time_ns()
        except NotImplementedError:
            t_xmt = time_ns()
            request.transmit_time = to_fixed64(t_xmt)
        start = monotonic_ns()

        payload = request.serialize()
        if key is not None:
            payload = append_digest(payload, auth.type, auth.key_id, key)
        session.write(payload)
        log.debug("Sent %d bytes to %s", len(payload), host)

        reply = session.read(MAX_DATAGRAM)
        t_dst = t_xmt + max(0, monotonic_ns() - start)
        log.debug("Got %d bytes from %s", len(reply), host)
    finally:
        session.close()

    r = NtpHeader.deserialize(reply)

    if key is not None:
        if not verify_digest(reply, auth.type, auth.key_id, key):
            raise NtpAuthError("Authentication failed")

    if r.mode != MODE_SERVER:
        raise NtpPacketError("Invalid response mode")
    if r.transmit_time == 0:
        raise NtpPacketError("Invalid t_xmt in response")
    if r.origin_time != request.transmit_time:
        raise NtpResponseMismatchError("Server response mismatch")
    if fixed64_sub(r.transmit_time, r.receive_time) < 0:
        raise NtpTickedBackwardsError("Server clock ticked backwards")

    r.origin_time = to_fixed64(t_xmt)
    return r, to_fixed64(t_dst)


def query_with_options(host, options):
    h, dst = exchange(host, options)
    response = parse_time(h, dst, time_ns())
    log.debug("%s %s", host, response)
    return response


def query(host):
    return query_with_options(host, QueryOptions())


def get_time(host, options=None):
    """Returns ``(t, error)``, the corrected current time in nanoseconds.

    On any failure, including an unfit response, ``t`` is the local clock
    and ``error`` is the exception. ``error`` is None otherwise.
    """
    if options is None:
        options = QueryOptions()
    try:
        response = query_with_options(host, options)
        response.validate()
    except (NtpError, OSError) as e:
        log.debug("%s %s", host, e)
        return time_ns(), e
    return time_ns() + response.clock_offset, None


def argv_parser(progname=None):
    import argparse

    if progname is None:
        progname = "sntp"

    parser = argparse.ArgumentParser(
        prog=progname,
        formatter_class=argparse.RawTextHelpFormatter,
        description="Query NTP servers once, SNTP style",
        epilog="Example: %s --output-format 'offset={offset}' %s" % (
            progname, NTP_SERVER_POOL
        ),
    )
    parser.add_argument(
        "server",
        nargs="*",
        default=[NTP_SERVER_POOL],
        help="NTP server(s) to query, defaults to %s." % NTP_SERVER_POOL,
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["error", "warning", "info", "debug"],
        default="info",
    )
    parser.add_argument(
        "--output-format",
        type=str,
        default=(
            "{server} {Y:04}-{M:02}-{D:02}T{h:02}:{m:02}:{s:02}.{u:06}Z"
            " offset={offset:+.6f} rtt={rtt:.6f} stratum={stratum}"
        ),
        help=(
            "one line per server, variables available: server, time,"
            " Y, M, D, h, m, s, u (corrected time), offset, rtt, distance,"
            " min_error, stratum, leap, reference and kiss (time values"
            " in seconds)."
        )
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=TIMEOUT,
        help="how long to wait for a reply from NTP server",
    )
    parser.add_argument(
        "--ntp-version",
        type=int,
        default=VERSION,
        choices=[2, 3, 4],
        help="protocol version to send",
    )
    parser.add_argument("--port", type=int, default=PORT)
    parser.add_argument("--ttl", type=int, default=None)
    parser.add_argument("--local-address", type=str, default=None)
    parser.add_argument(
        "--auth-type",
        type=str,
        choices=[t.name.lower() for t in AuthType if t != AuthType.NONE],
        default=None,
        help="symmetric key authentication algorithm",
    )
    parser.add_argument(
        "--auth-key",
        type=str,
        default="",
        help="ASCII key, or hex encoded if longer than 20 characters",
    )
    parser.add_argument("--auth-key-id", type=int, default=0)
    return parser


def main(argv=None):
    args = argv_parser().parse_args(argv)
    log_level = getattr(logging, args.log_level.upper())

    logging.basicConfig(format="%(asctime)s %(levelname)s %(message)s")
    logging.getLogger().setLevel(log_level)

    auth = None
    if args.auth_type is not None:
        auth = AuthOptions(
            type=AuthType[args.auth_type.upper()],
            key=args.auth_key,
            key_id=args.auth_key_id,
        )
    options = QueryOptions(
        timeout=args.timeout,
        version=args.ntp_version,
        local_address=args.local_address,
        port=args.port,
        ttl=args.ttl,
        auth=auth,
    )

    status = 0
    for server in args.server:
        try:
            r = query_with_options(server, options)
        except (NtpError, OSError) as e:
            log.error("%s Query failed: %s", server, e)
            status = 1
            continue

        try:
            r.validate()
        except NtpUnsynchronizedError as e:
            log.warning("%s %s", server, e)
            status = 1

        t = time_ns() + r.clock_offset
        dt = to_datetime(t)
        context = {
            "server": server,
            "time": t / NANOS,
            "Y": dt.year,
            "M": dt.month,
            "D": dt.day,
            "h": dt.hour,
            "m": dt.minute,
            "s": dt.second,
            "u": dt.microsecond,
            "offset": r.clock_offset / NANOS,
            "rtt": r.rtt / NANOS,
            "distance": r.root_distance / NANOS,
            "min_error": r.min_error / NANOS,
            "stratum": r.stratum,
            "leap": r.leap,
            "reference": r.reference_string(),
            "kiss": r.kiss_code,
        }
        print(args.output_format.format_map(context), flush=True)

    return status


if __name__ == "__main__":
    raise SystemExit(main())
