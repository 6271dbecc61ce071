"""
Console output for the interactive client.

Everything the user sees goes through `Console`: help text, `ERROR:` and
`INFO:` lines, delivered messages and the input prompt. Diagnostics go to
the logging framework instead, so the two never mix on stdout.
"""
import logging
import sys
from typing import Optional, TextIO

from pubsubx.client.models import ErrorCode, InfoCode, ReceivedMessage

logger = logging.getLogger(__name__)

PROMPT = "Enter command or (-h): "

HELP_TEXT = (
    "client - list of possible client commands:\n"
    "CONNECT <port> <client_name>    : connect to PubSubX server at specified port with client name\n"
    "DISCONNECT                      : disconnect from PubSubX server, all subscriptions will be removed\n"
    "PUBLISH <topic_name> <message>  : publish message to topic on PubSubX server\n"
    "SUBSCRIBE <topic>               : subscribe client to a topic on a PubSubX server\n"
    "UNSUBSCRIBE <topic_name>        : remove subscription from a topic on PubSubX server\n"
)


class Console:
    def __init__(self, stream: Optional[TextIO] = None):
        self._stream = stream

    @property
    def stream(self) -> TextIO:
        # Resolved lazily so pytest's capsys sees the output
        return self._stream or sys.stdout

    def _write(self, text: str):
        self.stream.write(text)
        self.stream.flush()

    def help(self):
        self._write(HELP_TEXT)

    def error(self, code: ErrorCode, detail: str = ""):
        logger.debug(f"Reporting error {code.name}")
        self._write(f"ERROR: {code.value}{detail}\n")

    def info(self, code: InfoCode, detail: str = ""):
        self._write(f"INFO: {code.value}{detail}\n")

    def message(self, message: ReceivedMessage):
        self._write(f"Topic: {message.topic} Data: {message.data}\n")

    def prompt(self):
        self._write(PROMPT)
