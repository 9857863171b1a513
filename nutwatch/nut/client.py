"""
NUT (Network UPS Tools) protocol client.

This module provides an asynchronous client that speaks the NUT text
protocol over a single persistent TCP connection. Every request is one
line; every response is either one line or a ``BEGIN LIST`` ... ``END LIST``
block which is read through its end marker.
"""

import asyncio
import logging
from typing import Dict, List, Optional

from ..config import settings
from .models import NUTTarget, UPSData
from .parser import parse_list_cmd, parse_list_ups, parse_list_vars

logger = logging.getLogger(__name__)

LIST_BEGIN = "BEGIN LIST"
LIST_END = "END LIST"
SUCCESS = "OK"
ERROR_PREFIX = "ERR"


class NUTError(Exception):
    """Base exception for NUT client errors."""
    pass


class NUTConnectionError(NUTError):
    """No usable socket to the NUT server."""
    pass


class NUTAuthError(NUTError):
    """The server rejected the configured credentials."""
    pass


class NUTCommandError(NUTError):
    """The server rejected a specific request; the session is still usable."""

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class NUTIOError(NUTError):
    """Transport failure in the middle of an exchange."""

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class NUTClient:
    """
    An asynchronous client for one NUT server.
    """

    def __init__(
        self,
        target: NUTTarget,
        connect_timeout: float = settings.CONNECT_TIMEOUT,
        read_timeout: float = settings.READ_TIMEOUT,
    ):
        """
        Initialize the NUT client.

        Args:
            target: The server to talk to.
            connect_timeout: Upper bound for opening the socket.
            read_timeout: Last-resort bound for reading a single response line.
        """
        self.target = target
        self.connect_timeout = connect_timeout
        self.read_timeout = read_timeout
        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None
        logger.debug("Initialized NUT client for %s user=%s", target, bool(target.username))

    @property
    def connected(self) -> bool:
        return self._writer is not None and not self._writer.is_closing()

    async def connect(self) -> None:
        """
        Open the connection and authenticate if credentials are configured.

        Raises:
            NUTConnectionError: If the socket cannot be established.
            NUTAuthError: If the server rejects the username or password.
        """
        try:
            self._reader, self._writer = await asyncio.wait_for(
                asyncio.open_connection(self.target.host, self.target.port),
                timeout=self.connect_timeout,
            )
        except (OSError, asyncio.TimeoutError) as e:
            raise NUTConnectionError(f"Failed to connect to NUT server {self.target}") from e

        logger.info("Connected to NUT server %s", self.target)

        try:
            if self.target.username:
                await self._authenticate(f"USERNAME {self.target.username}")
            if self.target.password:
                await self._authenticate(f"PASSWORD {self.target.password}")
        except NUTError:
            self.abort()
            raise

    async def _authenticate(self, command: str) -> None:
        reply = (await self.send(command)).strip()
        if reply != SUCCESS:
            verb = command.split(" ", 1)[0]
            raise NUTAuthError(f"{verb} rejected by {self.target}: {reply}")

    async def disconnect(self) -> None:
        """Log out and close the socket. Never raises."""
        writer = self._writer
        self._reader = None
        self._writer = None
        if writer is None:
            return
        try:
            writer.write(b"LOGOUT\n")
            await asyncio.wait_for(writer.drain(), timeout=self.read_timeout)
        except (OSError, asyncio.TimeoutError) as e:
            logger.debug("LOGOUT to %s failed: %s", self.target, e)
        try:
            writer.close()
            await asyncio.wait_for(writer.wait_closed(), timeout=self.read_timeout)
        except (OSError, asyncio.TimeoutError) as e:
            logger.debug("Closing connection to %s failed: %s", self.target, e)
        logger.info("Disconnected from NUT server %s", self.target)

    def abort(self) -> None:
        """Drop the transport immediately, without LOGOUT."""
        writer = self._writer
        self._reader = None
        self._writer = None
        if writer is not None:
            writer.transport.abort()
            logger.warning("Connection to NUT server %s torn down", self.target)

    async def reconnect(self) -> None:
        """Close the current socket and connect again."""
        self.abort()
        await self.connect()

    async def _read_line(self) -> str:
        assert self._reader is not None
        try:
            raw = await asyncio.wait_for(self._reader.readline(), timeout=self.read_timeout)
        except asyncio.TimeoutError as e:
            raise NUTIOError(f"Timed out waiting for a response from {self.target}") from e
        except OSError as e:
            raise NUTIOError(f"Read from {self.target} failed: {e}") from e
        return raw.decode("utf-8", errors="replace")

    async def send(self, command: str) -> str:
        """
        Send one command and read exactly one logical response.

        Args:
            command: The request line, without terminator.

        Returns:
            The response text. List responses include both envelope lines.

        Raises:
            NUTConnectionError: If the client is not connected.
            NUTIOError: On a transport failure or a truncated response.
        """
        if self._reader is None or self._writer is None:
            raise NUTConnectionError(f"Not connected to NUT server {self.target}")

        verb = command.split(" ", 1)[0]
        logger.debug("NUT >> %s", verb if verb == "PASSWORD" else command)
        try:
            self._writer.write(f"{command}\n".encode("utf-8"))
            await self._writer.drain()
        except OSError as e:
            raise NUTIOError(f"Write to {self.target} failed: {e}") from e

        first = await self._read_line()
        if not first:
            raise NUTIOError(f"Connection closed by {self.target}")
        if not first.startswith(LIST_BEGIN):
            return first

        lines = [first]
        while True:
            line = await self._read_line()
            if not line:
                raise NUTIOError(f"Connection closed by {self.target} inside a list response")
            lines.append(line)
            if line.startswith(LIST_END):
                return "".join(lines)

    async def _send_list(self, command: str) -> str:
        response = await self.send(command)
        if response.startswith(ERROR_PREFIX):
            raise NUTCommandError(response.strip())
        return response

    async def fetch_telemetry(self, ups_name: str) -> UPSData:
        """
        Get all variables for a specific UPS.

        Raises:
            NUTCommandError: If the server does not know the UPS.
        """
        response = await self._send_list(f"LIST VAR {ups_name}")
        return parse_list_vars(response, ups_name)

    async def list_devices(self) -> Dict[str, str]:
        """List the UPS devices on the server as name -> description."""
        return parse_list_ups(await self._send_list("LIST UPS"))

    async def list_commands(self, ups_name: str) -> List[str]:
        """List the instant commands supported by a UPS."""
        return parse_list_cmd(await self._send_list(f"LIST CMD {ups_name}"))

    async def run_command(self, ups_name: str, command: str) -> None:
        """
        Run an instant command on a UPS.

        Raises:
            NUTCommandError: Unless the server replies with exactly ``OK``.
        """
        response = await self.send(f"INSTCMD {ups_name} {command}")
        if response.strip() != SUCCESS:
            raise NUTCommandError(response.strip())
        logger.info("Instant command '%s' accepted for UPS '%s'", command, ups_name)
