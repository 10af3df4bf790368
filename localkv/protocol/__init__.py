"""Protocol module for localkv."""

from .commands import Command, CommandError, ErrorReply, ProtocolError, ReplySequence
from .decoder import FrameDecoder, decode_all
from .dispatcher import COMMANDS, CommandDispatcher
from .encoder import encode_reply

__all__ = [
    "COMMANDS",
    "Command",
    "CommandDispatcher",
    "CommandError",
    "ErrorReply",
    "FrameDecoder",
    "ProtocolError",
    "ReplySequence",
    "decode_all",
    "encode_reply",
]
