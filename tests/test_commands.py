"""
Tests for the Command Dispatcher

These tests drive a Connection with encoded commands and check the decoded
replies and the keyspace afterwards.

Run with: python -m pytest tests/test_commands.py -v
"""

import pytest

from localkv.cache.store import Keyspace
from localkv.network.connection import Connection, SnapshotSink
from localkv.protocol.commands import ErrorReply
from localkv.protocol.dispatcher import COMMANDS, parse_command


class TestDispatch:
    """Test command lookup and error handling."""

    def test_unknown_command(self, session):
        """Test unknown commands answer an error and keep the connection open."""
        reply = session.run("FROB", "x")
        assert isinstance(reply, ErrorReply)
        assert reply == "UNKNOWN COMMAND FROB"
        assert session.run("PING") == "PONG"

    def test_unknown_command_echoes_name_as_sent(self, session):
        assert session.run("frobNicate") == "UNKNOWN COMMAND frobNicate"

    def test_case_insensitive(self, session):
        for variant in ["ping", "PING", "Ping", "pInG"]:
            assert session.run(variant) == "PONG"

    def test_scalar_frame_promoted(self, session):
        """Test a bare status line is run as a one-word command."""
        session.feed(b"+PING\r\n")
        assert session.replies() == ["PONG"]

    def test_pipelined_commands(self, session, cmd):
        """Test several commands in one chunk run in order."""
        session.feed(cmd("SET", "a", "1") + cmd("GET", "a") + cmd("DEL", "a") + cmd("GET", "a"))
        assert session.replies() == ["OK", b"1", 1, None]

    def test_wrong_arity(self, session):
        reply = session.run("GET")
        assert isinstance(reply, ErrorReply)
        assert "wrong number of arguments" in reply

    def test_non_integer_argument(self, session):
        session.run("SET", "k", "v")
        reply = session.run("EXPIRE", "k", "soon")
        assert isinstance(reply, ErrorReply)

    def test_parse_command(self):
        cmd = parse_command([b"get", b"key"])
        assert cmd.name == "GET"
        assert cmd.args == [b"key"]
        assert cmd.given == "get"
        assert parse_command([]).name == ""

    def test_registry_covers_command_set(self):
        expected = {
            "PING", "INFO", "ECHO", "SAVE", "SELECT", "FLUSHALL", "FLUSHDB",
            "DBSIZE", "CLIENT", "QUIT", "EXISTS", "TYPE", "GET", "MGET", "SET",
            "SETEX", "PSETEX", "MSET", "MSETNX", "DEL", "KEYS", "SCAN",
            "EXPIREAT", "EXPIRE", "PEXPIRE", "TTL", "PTTL", "DUMPALL",
        }
        assert set(COMMANDS) == expected


class TestServerCommands:
    """Test server and connection commands."""

    def test_ping_info_echo(self, session):
        assert session.run("PING") == "PONG"
        assert session.run("INFO") == "OK"
        assert session.run("ECHO", "hello") == b"hello"

    def test_select(self, session):
        assert session.run("SELECT", "0") == "OK"
        reply = session.run("SELECT", "1")
        assert isinstance(reply, ErrorReply)
        assert reply == "SELECT can only select db index 0"

    def test_flushall_and_flushdb(self, session, keyspace):
        session.run("MSET", "a", "1", "b", "2")
        keyspace.mark_clean()
        assert session.run("FLUSHALL") == "OK"
        assert len(keyspace) == 0
        assert keyspace.dirty is True

        session.run("SET", "c", "3")
        assert session.run("FLUSHDB") == "OK"
        assert session.run("DBSIZE") == 0

    def test_dbsize(self, session):
        assert session.run("DBSIZE") == 0
        session.run("MSET", "a", "1", "b", "2")
        assert session.run("DBSIZE") == 2

    def test_client_setname_getname(self, session):
        assert session.run("CLIENT", "GETNAME") == "TEST"
        assert session.run("CLIENT", "SETNAME", "worker-1") == "OK"
        assert session.connection.name == "worker-1"
        assert session.run("client", "getname") == "worker-1"

    def test_client_setname_rejects_spaces(self, session):
        reply = session.run("CLIENT", "SETNAME", "bad name")
        assert isinstance(reply, ErrorReply)
        assert session.connection.name == "TEST"

    def test_client_unsupported_subcommand(self, session):
        reply = session.run("CLIENT", "LIST")
        assert reply == "Unsupported CLIENT command: LIST"

    def test_save_runs_hook(self, keyspace, cmd):
        calls = []
        sink = SnapshotSink()
        connection = Connection(keyspace, sink, name="TEST", on_save=lambda: calls.append(1))
        connection.feed(cmd("SAVE"))
        assert sink.getvalue() == b"+OK\r\n"
        assert calls == [1]

    def test_save_without_hook(self, session):
        assert session.run("SAVE") == "OK"


class TestStringCommands:
    """Test GET/SET family."""

    def test_set_get(self, session, keyspace):
        assert session.run("SET", "foo", "bar") == "OK"
        assert session.run("GET", "foo") == b"bar"
        assert keyspace.dirty is True

    def test_get_missing(self, session):
        assert session.run("GET", "nope") is None

    def test_binary_values(self, session):
        value = b"\x00\xff\r\n"
        assert session.run("SET", "bin", value) == "OK"
        assert session.run("GET", "bin") == value

    def test_set_ex_and_px(self, session, keyspace, clock):
        session.run("SET", "a", "1", "EX", "10")
        session.run("SET", "b", "1", "px", "1500")
        assert keyspace.get("a").expire_at == clock.now + 10_000
        assert keyspace.get("b").expire_at == clock.now + 1500

    def test_set_replaces_expiry(self, session, keyspace):
        session.run("SET", "a", "1", "EX", "10")
        session.run("SET", "a", "2")
        assert keyspace.get("a").expire_at is None

    def test_set_nx(self, session):
        assert session.run("SET", "k", "v1", "NX") == "OK"
        assert session.run("SET", "k", "v2", "NX") is None
        assert session.run("GET", "k") == b"v1"

    def test_set_xx(self, session):
        assert session.run("SET", "k", "v1", "XX") is None
        assert session.run("GET", "k") is None
        session.run("SET", "k", "v1")
        assert session.run("SET", "k", "v2", "XX") == "OK"
        assert session.run("GET", "k") == b"v2"

    def test_set_aborted_leaves_clean(self, session, keyspace):
        session.run("SET", "k", "v")
        keyspace.mark_clean()
        session.run("SET", "k", "v2", "NX")
        assert keyspace.dirty is False

    def test_set_unknown_option(self, session):
        reply = session.run("SET", "k", "v", "KEEPTTL")
        assert reply == "Unknown SET argument: KEEPTTL"
        assert session.run("GET", "k") is None

    def test_set_missing_ttl_value(self, session):
        assert isinstance(session.run("SET", "k", "v", "EX"), ErrorReply)

    def test_setex_psetex(self, session, keyspace, clock):
        assert session.run("SETEX", "a", "5", "va") == "OK"
        assert session.run("PSETEX", "b", "250", "vb") == "OK"
        assert keyspace.get("a").value == b"va"
        assert keyspace.get("a").expire_at == clock.now + 5000
        assert keyspace.get("b").expire_at == clock.now + 250

    def test_mget(self, session):
        session.run("MSET", "a", "1", "c", "3")
        assert session.run("MGET", "a", "b", "c") == [b"1", None, b"3"]

    def test_mset(self, session, keyspace):
        session.run("SET", "a", "old", "EX", "10")
        assert session.run("MSET", "a", "1", "b", "2") == "OK"
        assert keyspace.get("a").value == b"1"
        assert keyspace.get("a").expire_at is None
        assert keyspace.get("b").value == b"2"

    def test_mset_odd_arguments(self, session):
        assert isinstance(session.run("MSET", "a", "1", "b"), ErrorReply)

    def test_msetnx_all_new(self, session):
        assert session.run("MSETNX", "a", "1", "b", "2") == 1
        assert session.run("MGET", "a", "b") == [b"1", b"2"]

    def test_msetnx_any_existing(self, session, keyspace):
        """Test MSETNX writes nothing when one key already exists."""
        session.run("SET", "a", "0")
        keyspace.mark_clean()
        assert session.run("MSETNX", "b", "2", "a", "1") == 0
        assert session.run("GET", "b") is None
        assert session.run("GET", "a") == b"0"
        assert keyspace.dirty is False


class TestKeyCommands:
    """Test EXISTS, TYPE, DEL, KEYS and SCAN."""

    def test_exists(self, session):
        assert session.run("EXISTS", "k") == 0
        session.run("SET", "k", "v")
        assert session.run("EXISTS", "k") == 1

    def test_type(self, session):
        assert session.run("TYPE", "k") == ""
        session.run("SET", "k", "v")
        assert session.run("TYPE", "k") == "string"

    def test_del_counts_existing(self, session):
        session.run("MSET", "a", "1", "b", "2", "c", "3")
        assert session.run("DEL", "a", "b", "x", "y") == 2
        assert session.run("DBSIZE") == 1

    def test_del_nothing_stays_clean(self, session, keyspace):
        assert session.run("DEL", "missing") == 0
        assert keyspace.dirty is False

    def test_keys_glob(self, session):
        session.run("MSET", "abc", "1", "a", "2", "ba", "3", "a.c", "4")
        assert sorted(session.run("KEYS", "a*")) == [b"a", b"a.c", b"abc"]
        assert session.run("KEYS", "a.c") == [b"a.c"]
        assert sorted(session.run("KEYS", "a?c")) == [b"a.c", b"abc"]
        assert sorted(session.run("KEYS", "*")) == [b"a", b"a.c", b"abc", b"ba"]

    def test_keys_requires_pattern(self, session):
        assert session.run("KEYS") == "KEYS requires pattern"

    @pytest.mark.parametrize("args", [("KEYS", "[z-a]"), ("SCAN", "0", "MATCH", "[z-a]")])
    def test_invalid_pattern_keeps_connection(self, session, args):
        """Test a bad character range is an error reply, not a dropped connection."""
        reply = session.run(*args)
        assert isinstance(reply, ErrorReply)
        assert reply == "invalid pattern"
        assert not session.connection.closed
        assert session.run("PING") == "PONG"

    def test_scan_pages(self, session):
        """Test SCAN pages through every key exactly once."""
        session.run("MSET", *[part for i in range(5) for part in (f"k{i}", str(i))])

        cursor, first = session.run("SCAN", "0", "COUNT", "2")
        assert len(first) == 2
        assert cursor != 0

        seen = list(first)
        while cursor != 0:
            cursor, window = session.run("SCAN", str(cursor), "COUNT", "2")
            seen.extend(window)
        assert sorted(seen) == [f"k{i}".encode() for i in range(5)]

    def test_scan_default_count(self, session):
        session.run("MSET", *[part for i in range(12) for part in (f"k{i}", "v")])
        cursor, window = session.run("SCAN", "0")
        assert len(window) == 10
        assert cursor == 10
        cursor, window = session.run("SCAN", "10")
        assert len(window) == 2
        assert cursor == 0

    def test_scan_match_filters_before_paging(self, session):
        session.run("MSET", "user:1", "a", "other", "b", "user:2", "c", "user:3", "d")
        cursor, window = session.run("SCAN", "0", "MATCH", "user:*", "COUNT", "2")
        assert window == [b"user:1", b"user:2"]
        assert cursor == 2
        cursor, window = session.run("SCAN", "2", "MATCH", "user:*", "COUNT", "2")
        assert window == [b"user:3"]
        assert cursor == 0

    def test_scan_exact_fit_ends_with_zero(self, session):
        session.run("MSET", "a", "1", "b", "2")
        assert session.run("SCAN", "0", "COUNT", "2")[0] == 0

    def test_scan_requires_cursor(self, session):
        assert session.run("SCAN") == "SCAN requires cursor"

    def test_scan_unknown_option(self, session):
        assert session.run("SCAN", "0", "TYPE", "string") == "Unknown SCAN argument: TYPE"


class TestDumpAll:
    """Test the snapshot transcript command."""

    def test_dumpall_transcript(self, session, clock):
        session.run("SET", "plain", "v1")
        session.run("SET", "timed", "v2", "PX", "5000")
        clock.advance(1000)
        session.feed(b"*1\r\n$7\r\nDUMPALL\r\n")
        replies = session.replies()
        assert replies[0] == ["FLUSHDB"]
        assert sorted(replies[1:]) == [
            ["SET", b"plain", b"v1"],
            ["SET", b"timed", b"v2", "PX", 4000],
        ]

    def test_dumpall_skips_expired(self, session, clock):
        session.run("SET", "gone", "v", "PX", "100")
        clock.advance(500)
        session.feed(b"*1\r\n+DUMPALL\r\n")
        assert session.replies() == [["FLUSHDB"]]

    def test_dumpall_replays(self, session, keyspace, clock):
        """Test feeding a transcript back reproduces the keyspace."""
        session.run("MSET", "a", "1", "b", "2")
        session.run("PEXPIRE", "b", "3000")
        session.feed(b"*1\r\n+DUMPALL\r\n")
        transcript = session.output()

        restored = Keyspace(clock=clock)
        Connection(restored, None, name="REPLAY").feed(transcript)
        assert restored.get("a").value == b"1"
        assert restored.get("a").expire_at is None
        assert restored.get("b").expire_at == clock.now + 3000


class TestQuit:
    """Test QUIT closes the connection."""

    def test_quit_closes_without_reply(self, session, cmd):
        session.feed(cmd("QUIT"))
        assert session.output() == b""
        assert session.connection.closed
        assert session.sink.closed

    def test_commands_after_quit_are_dropped(self, session, keyspace, cmd):
        session.feed(cmd("SET", "a", "1") + cmd("QUIT") + cmd("SET", "b", "2"))
        assert session.replies() == ["OK"]
        assert "a" in keyspace
        assert "b" not in keyspace

        session.feed(cmd("SET", "c", "3"))
        assert "c" not in keyspace


@pytest.mark.parametrize("name", ["FLUSHALL", "MSET", "SET", "DEL", "EXPIRE"])
def test_mutations_mark_dirty(session, keyspace, name):
    """Test every mutating command sets the dirty flag."""
    session.run("SET", "k", "v")
    keyspace.mark_clean()
    args = {
        "FLUSHALL": [],
        "MSET": ["x", "1"],
        "SET": ["x", "1"],
        "DEL": ["k"],
        "EXPIRE": ["k", "10"],
    }[name]
    session.run(name, *args)
    assert keyspace.dirty is True
