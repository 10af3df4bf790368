"""
Command Dispatcher

Interprets decoded frames as commands, runs them against the keyspace and
writes the encoded replies to the owning connection.

Commands are looked up in COMMANDS, an explicit mapping from the uppercase
command name to its handler. Each handler receives the positional arguments
as a list, validates them itself and returns one reply value (or a
ReplySequence). Command faults are raised as CommandError and reported to
the client as an error reply; the connection stays open.
"""

import logging
from typing import Any, Callable, Dict, List, Optional

from ..cache.store import Keyspace
from ..config.settings import settings
from .commands import (
    Command,
    CommandError,
    ErrorReply,
    ReplySequence,
    to_bytes,
    to_int,
    to_text,
)
from .encoder import encode_reply
from .pattern import compile_pattern, matches

Handler = Callable[["CommandDispatcher", List[Any]], Any]

COMMANDS: Dict[str, Handler] = {}


def command(*names: str) -> Callable[[Handler], Handler]:
    """Register a handler under one or more command names."""
    def register(func: Handler) -> Handler:
        for name in names:
            COMMANDS[name] = func
        return func
    return register


def summary(value: Any) -> str:
    """Short printable form of an argument for log lines."""
    text = to_text(value)
    return text[:20] + "..." if len(text) > 20 else text


def parse_command(frame: Any) -> Command:
    """
    Split a top-level frame into command name and arguments.

    A scalar frame is treated as a one-element command line.
    """
    args = list(frame) if isinstance(frame, list) else [frame]
    if not args:
        return Command(name="")
    given = to_text(args[0])
    return Command(name=given.upper(), args=args[1:], given=given)


def _arity(args: List[Any], count: int, name: str) -> None:
    if len(args) != count:
        raise CommandError(f"wrong number of arguments for '{name}' command")


def _at_least(args: List[Any], count: int, name: str) -> None:
    if len(args) < count:
        raise CommandError(f"wrong number of arguments for '{name}' command")


def _pairs(args: List[Any], name: str) -> List[tuple]:
    if not args or len(args) % 2:
        raise CommandError(f"wrong number of arguments for '{name}' command")
    return [(to_text(args[i]), to_bytes(args[i + 1])) for i in range(0, len(args), 2)]


class CommandDispatcher:
    """
    Executes commands for one connection.

    The connection must provide ``name``, ``write(data)``, ``close(reason)``
    and ``log(message, level)``.

    Attributes:
        keyspace: The shared Keyspace
        connection: The owning connection
    """

    def __init__(self, keyspace: Keyspace, connection, on_save: Optional[Callable[[], Any]] = None):
        self.keyspace = keyspace
        self.connection = connection
        self._on_save = on_save

    def dispatch(self, frame: Any) -> None:
        """Run one decoded top-level frame and emit its reply."""
        cmd = parse_command(frame)
        handler = COMMANDS.get(cmd.name)
        if handler is None:
            self._error(f"UNKNOWN COMMAND {cmd.given}")
            return

        try:
            reply = handler(self, cmd.args)
        except CommandError as exc:
            self._error(str(exc))
            return

        if isinstance(reply, ReplySequence):
            for item in reply:
                self._respond(item)
        else:
            self._respond(reply)

    def _respond(self, reply: Any) -> None:
        self.connection.write(encode_reply(reply))

    def _error(self, message: str) -> None:
        self.connection.log(f"Error: {message}", logging.WARNING)
        self._respond(ErrorReply(message))

    def _trace(self, *parts: Any) -> None:
        self.connection.log(" ".join(str(part) for part in parts), logging.DEBUG)

    # ------------------------------------------------------------------
    # Server and connection commands
    # ------------------------------------------------------------------

    @command("PING")
    def cmd_ping(self, args):
        return "PONG"

    @command("INFO")
    def cmd_info(self, args):
        return "OK"

    @command("ECHO")
    def cmd_echo(self, args):
        _arity(args, 1, "echo")
        return args[0]

    @command("SAVE")
    def cmd_save(self, args):
        self._trace("Save")
        if self._on_save is not None:
            self._on_save()
        return "OK"

    @command("SELECT")
    def cmd_select(self, args):
        _arity(args, 1, "select")
        if to_int(args[0]) != 0:
            raise CommandError("SELECT can only select db index 0")
        return "OK"

    @command("FLUSHALL", "FLUSHDB")
    def cmd_flushall(self, args):
        self._trace("FlushAll")
        self.keyspace.clear()
        return "OK"

    @command("DBSIZE")
    def cmd_dbsize(self, args):
        self._trace("DBSize")
        return len(self.keyspace)

    @command("CLIENT")
    def cmd_client(self, args):
        _at_least(args, 1, "client")
        sub = summary(args[0]).upper()
        if sub == "SETNAME":
            _arity(args, 2, "client|setname")
            name = to_text(args[1])
            if any(char.isspace() for char in name):
                raise CommandError("Client names cannot contain spaces, newlines or special characters.")
            self.connection.name = name
            self.connection.log(f"Client setname {name}")
            return "OK"
        if sub == "GETNAME":
            return self.connection.name
        raise CommandError(f"Unsupported CLIENT command: {sub}")

    @command("QUIT")
    def cmd_quit(self, args):
        self._trace("Quit")
        self.connection.close("Quit")
        return ReplySequence()

    # ------------------------------------------------------------------
    # Key commands
    # ------------------------------------------------------------------

    @command("EXISTS")
    def cmd_exists(self, args):
        _arity(args, 1, "exists")
        key = to_text(args[0])
        self._trace("Exists", key)
        return 1 if key in self.keyspace else 0

    @command("TYPE")
    def cmd_type(self, args):
        _arity(args, 1, "type")
        key = to_text(args[0])
        self._trace("Type", key)
        return "string" if key in self.keyspace else ""

    @command("GET")
    def cmd_get(self, args):
        _arity(args, 1, "get")
        key = to_text(args[0])
        self._trace("Get", key)
        entry = self.keyspace.get(key)
        return entry.value if entry is not None else None

    @command("MGET")
    def cmd_mget(self, args):
        _at_least(args, 1, "mget")
        keys = [to_text(arg) for arg in args]
        self._trace("MGet", *keys)
        results = []
        for key in keys:
            entry = self.keyspace.get(key)
            results.append(entry.value if entry is not None else None)
        return results

    @command("SET")
    def cmd_set(self, args):
        _at_least(args, 2, "set")
        return self._set(to_text(args[0]), to_bytes(args[1]), list(args[2:]))

    @command("SETEX")
    def cmd_setex(self, args):
        _arity(args, 3, "setex")
        return self._set(to_text(args[0]), to_bytes(args[2]), ["EX", args[1]])

    @command("PSETEX")
    def cmd_psetex(self, args):
        _arity(args, 3, "psetex")
        return self._set(to_text(args[0]), to_bytes(args[2]), ["PX", args[1]])

    def _set(self, key: str, value: bytes, options: List[Any]):
        """Shared implementation of SET and its EX/PX shorthands."""
        self._trace("Set", key, summary(value), *(summary(opt) for opt in options))
        expire_at = None
        only_if_absent = only_if_present = False

        while options:
            option = summary(options.pop(0)).upper()
            if option in ("EX", "PX"):
                if not options:
                    raise CommandError("syntax error")
                amount = to_int(options.pop(0))
                expire_at = self.keyspace.now() + (amount * 1000 if option == "EX" else amount)
            elif option == "NX":
                only_if_absent = True
            elif option == "XX":
                only_if_present = True
            else:
                raise CommandError(f"Unknown SET argument: {option}")

        if only_if_absent and key in self.keyspace:
            return None
        if only_if_present and key not in self.keyspace:
            return None

        self.keyspace.set(key, value, expire_at)
        return "OK"

    @command("MSET")
    def cmd_mset(self, args):
        pairs = _pairs(args, "mset")
        self._trace("MSet", *(summary(arg) for arg in args))
        self.keyspace.set_many(pairs)
        return "OK"

    @command("MSETNX")
    def cmd_msetnx(self, args):
        pairs = _pairs(args, "msetnx")
        self._trace("MSetNX", *(summary(arg) for arg in args))
        if any(key in self.keyspace for key, _ in pairs):
            return 0
        self.keyspace.set_many(pairs)
        return 1

    @command("DEL")
    def cmd_delete(self, args):
        _at_least(args, 1, "del")
        keys = [to_text(arg) for arg in args]
        self._trace("Del", *keys)
        return self.keyspace.delete(keys)

    @command("KEYS")
    def cmd_keys(self, args):
        if not args or not args[0]:
            raise CommandError("KEYS requires pattern")
        glob = to_text(args[0])
        self._trace("Keys", glob)
        pattern = compile_pattern(glob)
        return [to_bytes(key) for key in self.keyspace.keys() if matches(pattern, key)]

    @command("SCAN")
    def cmd_scan(self, args):
        if not args or not args[0]:
            raise CommandError("SCAN requires cursor")
        cursor = to_int(args[0])
        if cursor < 0:
            raise CommandError("invalid cursor")
        options = list(args[1:])
        self._trace("Scan", cursor, *(summary(opt) for opt in options))

        pattern = None
        count = settings.DEFAULT_SCAN_COUNT
        while options:
            option = summary(options.pop(0)).upper()
            if option not in ("COUNT", "MATCH"):
                raise CommandError(f"Unknown SCAN argument: {option}")
            if not options:
                raise CommandError("syntax error")
            if option == "COUNT":
                count = to_int(options.pop(0))
                if count < 1:
                    raise CommandError("syntax error")
            else:
                pattern = compile_pattern(to_text(options.pop(0)))

        keys = self.keyspace.keys()
        if pattern is not None:
            keys = [key for key in keys if matches(pattern, key)]
        end = cursor + count
        window = [to_bytes(key) for key in keys[cursor:end]]
        next_cursor = end if end < len(keys) else 0
        return [next_cursor, window]

    # ------------------------------------------------------------------
    # Expiry commands
    # ------------------------------------------------------------------

    @command("EXPIREAT")
    def cmd_expireat(self, args):
        _arity(args, 2, "expireat")
        key = to_text(args[0])
        stamp = to_int(args[1])
        self._trace("ExpireAt", key, stamp)
        return self._expire_at(key, stamp)

    @command("EXPIRE")
    def cmd_expire(self, args):
        _arity(args, 2, "expire")
        key = to_text(args[0])
        seconds = to_int(args[1])
        self._trace("Expire", key, seconds)
        return self._expire_at(key, self.keyspace.now() + seconds * 1000)

    @command("PEXPIRE")
    def cmd_pexpire(self, args):
        _arity(args, 2, "pexpire")
        key = to_text(args[0])
        millis = to_int(args[1])
        self._trace("PExpire", key, millis)
        return self._expire_at(key, self.keyspace.now() + millis)

    def _expire_at(self, key: str, stamp: int) -> int:
        # A missing key is left alone
        return 1 if self.keyspace.expire_at(key, stamp) else 0

    @command("TTL")
    def cmd_ttl(self, args):
        _arity(args, 1, "ttl")
        key = to_text(args[0])
        self._trace("TTL", key)
        return self._ttl(key, 1000)

    @command("PTTL")
    def cmd_pttl(self, args):
        _arity(args, 1, "pttl")
        key = to_text(args[0])
        self._trace("PTTL", key)
        return self._ttl(key, 1)

    def _ttl(self, key: str, unit: int) -> int:
        """Remaining time in ``unit`` milliseconds, -2 if absent, -1 if persistent."""
        entry = self.keyspace.get(key)
        if entry is None:
            return -2
        if entry.expire_at is None:
            return -1
        remaining = entry.expire_at - self.keyspace.now()
        # Nearest unit, not floor: SET k v EX 100 must report TTL 100 right away
        return (remaining + unit // 2) // unit

    # ------------------------------------------------------------------
    # Snapshot transcript
    # ------------------------------------------------------------------

    @command("DUMPALL")
    def cmd_dumpall(self, args):
        self._trace("Dump All")
        now = self.keyspace.now()
        replies = ReplySequence([["FLUSHDB"]])
        for key, entry in self.keyspace.items():
            if entry.expire_at is not None and entry.expire_at <= now:
                continue
            line = ["SET", to_bytes(key), entry.value]
            if entry.expire_at is not None:
                line += ["PX", entry.expire_at - now]
            replies.append(line)
        return replies
