"""
SSH CLI transport.

Opens an interactive shell on the OLT, sends the brand's command list with
a short pause between commands, logs out and parses everything the shell
printed.
"""
import asyncio
from typing import List, Optional

import asyncssh

from oltpoller.core.config import settings
from oltpoller.core.exceptions import ConnectionFailedError, PollTimeoutError
from oltpoller.core.logging import get_logger
from oltpoller.polling.parsers import parse_output
from oltpoller.schemas import DeviceConfig, OnuReading

from .base import Transport
from .commands import get_commands

logger = get_logger(__name__)

# Older OLT firmware only offers legacy key exchange and ciphers
KEX_ALGS = [
    "diffie-hellman-group-exchange-sha256",
    "diffie-hellman-group14-sha256",
    "diffie-hellman-group14-sha1",
    "diffie-hellman-group1-sha1",
]
ENCRYPTION_ALGS = [
    "aes128-ctr",
    "aes192-ctr",
    "aes256-ctr",
    "aes128-cbc",
    "3des-cbc",
]


class SshCliTransport(Transport):
    protocol = "ssh"
    default_port = 22

    def __init__(self, timeout_s: Optional[float] = None, command_delay_s: Optional[float] = None):
        self.timeout_s = timeout_s or settings.ssh_timeout_s
        self.command_delay_s = (
            command_delay_s if command_delay_s is not None else settings.ssh_command_delay_ms / 1000
        )

    async def collect(self, device: DeviceConfig) -> List[OnuReading]:
        timeout = device.timeout_s or self.timeout_s
        try:
            output = await asyncio.wait_for(self.run_commands(device), timeout=timeout)
        except asyncio.TimeoutError:
            raise PollTimeoutError(f"SSH connection timeout after {timeout:.0f}s")
        except asyncssh.PermissionDenied as e:
            raise ConnectionFailedError(f"Authentication failed: {e}") from e
        except (OSError, asyncssh.Error) as e:
            raise ConnectionFailedError(str(e) or type(e).__name__) from e

        logger.debug("ssh.output_received", device_id=device.id, size=len(output))
        return parse_output(device.brand, output)

    async def check_reachable(self, device: DeviceConfig, timeout: float) -> None:
        """Log in and out again, so bad credentials fail the check too."""
        try:
            async with await asyncio.wait_for(self.connect(device), timeout=timeout):
                logger.debug("ssh.check_succeeded", device_id=device.id, host=device.host)
        except asyncio.TimeoutError:
            raise PollTimeoutError(f"SSH connection timeout after {timeout:.0f}s")
        except asyncssh.PermissionDenied as e:
            raise ConnectionFailedError(f"Authentication failed: {e}") from e
        except (OSError, asyncssh.Error) as e:
            raise ConnectionFailedError(str(e) or type(e).__name__) from e

    def connect(self, device: DeviceConfig):
        return asyncssh.connect(
            device.host,
            port=device.port or self.default_port,
            username=device.username,
            password=device.password,
            known_hosts=None,
            kex_algs=KEX_ALGS,
            encryption_algs=ENCRYPTION_ALGS,
        )

    async def run_commands(self, device: DeviceConfig) -> str:
        """Run the brand's commands in one shell session and return the raw output."""
        commands = get_commands(device.brand)

        async with self.connect(device) as conn:
            logger.debug("ssh.connected", device_id=device.id, host=device.host)
            async with conn.create_process(term_type="vt100") as process:
                for command in commands:
                    process.stdin.write(command + "\n")
                    await asyncio.sleep(self.command_delay_s)
                process.stdin.write("exit\n")
                process.stdin.write_eof()
                return await process.stdout.read()


__all__ = ["SshCliTransport"]
