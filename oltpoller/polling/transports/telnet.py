"""
Telnet CLI transport.

For OLTs that only expose Telnet (VSOL, DBC, CDATA, ECOM and older BDCOM
firmware). The SSH transport paces commands with a fixed delay; here each
command is sent once the previous one has returned to the CLI prompt:

1. Answer the username and password prompts
2. Send `enable` when the device stops at a `>` user-mode prompt
3. Disable paging, then run the brand's commands one at a time
4. Answer `--More--` pagers with a space

A session that runs out of time after the device already printed a good
part of its tables is still parsed.
"""
import asyncio
import re
from typing import Callable, List, Optional

import telnetlib3

from oltpoller.core.config import settings
from oltpoller.core.exceptions import ConnectionFailedError, PollTimeoutError
from oltpoller.core.logging import get_logger
from oltpoller.polling.parsers import parse_output
from oltpoller.schemas import DeviceConfig, OnuReading

from .base import Transport
from .commands import PAGER_COMMANDS, get_commands

logger = get_logger(__name__)

USERNAME_PROMPT = re.compile(r"(?:login|user\s*name|user)\s*:", re.I)
PASSWORD_PROMPT = re.compile(r"password\s*:", re.I)
LOGIN_FAILED = re.compile(r"invalid|failed|incorrect|denied", re.I)
MORE_PROMPT = re.compile(r"--\s*more\s*--|press any key", re.I)
CLI_PROMPT = re.compile(r"[\w\-()/]+[#>]\s*$")
MAX_PROMPT_LENGTH = 80

DISABLE_PAGER = "terminal length 0"
MIN_PARTIAL_OUTPUT = 500
READ_SIZE = 4096


def last_line(text: str) -> str:
    return text.replace("\r", "").rsplit("\n", 1)[-1].strip()


def at_prompt(text: str) -> bool:
    """True when the last line received is a CLI prompt such as `OLT#` or `OLT(config)>`."""
    line = last_line(text)
    return len(line) < MAX_PROMPT_LENGTH and CLI_PROMPT.search(line) is not None


def session_commands(brand: str) -> List[str]:
    """The brand's commands with a pager-disabling command first."""
    commands = [c for c in get_commands(brand) if c != "enable"]
    if not commands or commands[0] not in PAGER_COMMANDS:
        commands.insert(0, DISABLE_PAGER)
    return commands


class TelnetSession:
    """One login session. `output` keeps everything the device sent, prompts included."""

    def __init__(self, reader=None, writer=None):
        self.reader = reader
        self.writer = writer
        self.output = ""

    def send(self, line: str) -> None:
        self.writer.write(line + "\r\n")

    async def read_until(self, done: Callable[[str], bool], timeout: float) -> str:
        """
        Read until `done` holds for the text received by this call.

        Raises:
            asyncio.TimeoutError: `done` did not hold within `timeout`
            ConnectionFailedError: the device closed the connection
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        received = ""
        while not done(received):
            remaining = deadline - loop.time()
            if remaining <= 0:
                raise asyncio.TimeoutError()
            chunk = await asyncio.wait_for(self.reader.read(READ_SIZE), remaining)
            if not chunk:
                raise ConnectionFailedError("Connection closed by device")
            received += chunk
            self.output += chunk
            if MORE_PROMPT.search(chunk):
                self.writer.write(" ")
        return received

    async def login(self, username: Optional[str], password: Optional[str], timeout: float) -> None:
        try:
            await self.read_until(USERNAME_PROMPT.search, timeout)
            self.send(username or "")
            await self.read_until(PASSWORD_PROMPT.search, timeout)
            self.send(password or "")

            reply = await self.read_until(
                lambda text: (
                    at_prompt(text)
                    or LOGIN_FAILED.search(text)
                    or USERNAME_PROMPT.search(last_line(text))
                ),
                timeout,
            )
            if not at_prompt(reply):
                raise ConnectionFailedError("Login failed")

            if last_line(reply).endswith(">"):
                self.send("enable")
                reply = await self.read_until(
                    lambda text: at_prompt(text) or PASSWORD_PROMPT.search(text), timeout
                )
                if not at_prompt(reply):
                    self.send(password or "")
                    reply = await self.read_until(at_prompt, timeout)
                if not last_line(reply).endswith("#"):
                    # Most show commands also work in user mode
                    logger.warning("telnet.enable_refused", prompt=last_line(reply))
        except asyncio.TimeoutError:
            raise PollTimeoutError(f"Telnet login timeout after {timeout:.0f}s")

    async def run(self, command: str, timeout: float) -> str:
        """Send one command and wait for the prompt. A slow command is logged and skipped."""
        self.send(command)
        try:
            return await self.read_until(at_prompt, timeout)
        except asyncio.TimeoutError:
            logger.warning("telnet.command_timeout", command=command, timeout_s=timeout)
            return ""

    def close(self) -> None:
        if self.writer is None:
            return
        for line in ("exit", "quit"):
            self.send(line)
        self.writer.close()
        self.writer = None


class TelnetTransport(Transport):
    protocol = "telnet"
    default_port = 23

    def __init__(
        self,
        timeout_s: Optional[float] = None,
        login_timeout_s: Optional[float] = None,
        command_timeout_s: Optional[float] = None,
        connect=telnetlib3.open_connection,
    ):
        self.timeout_s = timeout_s or settings.telnet_timeout_s
        self.login_timeout_s = login_timeout_s or settings.telnet_login_timeout_s
        self.command_timeout_s = command_timeout_s or settings.telnet_command_timeout_s
        self._connect = connect

    async def collect(self, device: DeviceConfig) -> List[OnuReading]:
        timeout = device.timeout_s or self.timeout_s
        session = TelnetSession()
        try:
            output = await asyncio.wait_for(self.run_commands(device, session), timeout=timeout)
        except asyncio.TimeoutError:
            output = session.output
            if len(output) < MIN_PARTIAL_OUTPUT:
                raise PollTimeoutError(f"Telnet session timeout after {timeout:.0f}s")
            logger.warning("telnet.partial_output", device_id=device.id, size=len(output))
        except OSError as e:
            raise ConnectionFailedError(str(e) or type(e).__name__) from e

        logger.debug("telnet.output_received", device_id=device.id, size=len(output))
        return parse_output(device.brand, output)

    async def run_commands(self, device: DeviceConfig, session: TelnetSession) -> str:
        """Log in, run the brand's commands and return everything the device printed."""
        session.reader, session.writer = await self._connect(
            device.host, device.port or self.default_port, encoding="utf8"
        )
        logger.debug("telnet.connected", device_id=device.id, host=device.host)
        try:
            await session.login(device.username, device.password, self.login_timeout_s)
            for command in session_commands(device.brand):
                await session.run(command, self.command_timeout_s)
        finally:
            session.close()
        return session.output


__all__ = ["TelnetTransport", "TelnetSession", "at_prompt", "session_commands"]
