"""Plugin process supervision and startup handshake."""

import asyncio
import logging
import signal

from plugin_host.console import PLUGIN_LOGGER
from plugin_host.errors import PluginExited, StartupError

logger = logging.getLogger(__name__)
plugin_log = logging.getLogger(PLUGIN_LOGGER)

# Seconds the plugin has to print its port
DEFAULT_STARTUP_TIMEOUT = 5.0

# Longest plugin output line read in one piece
OUTPUT_LINE_LIMIT = 1024 * 1024

MAX_PORT = 65535


def parse_port(line: str) -> int:
    """Parse a handshake line.

    Raises:
        StartupError: If the line is not a decimal port number in 1-65535.
    """
    text = line.strip()
    if not (text.isascii() and text.isdecimal()) or not 0 < int(text) <= MAX_PORT:
        raise StartupError(f"bad port number {text!r}")
    return int(text)


class PluginSupervisor:
    """Runs a plugin process and watches its output and exit.

    The first stdout line of the plugin is its port. Every later line is
    forwarded to the "plugin" logger unchanged. Stderr is inherited.
    """

    def __init__(
        self,
        command: list[str],
        startup_timeout: float = DEFAULT_STARTUP_TIMEOUT,
        stop_timeout: float = 2.0,
    ) -> None:
        """Initialize the supervisor.

        Args:
            command: Plugin executable and its arguments.
            startup_timeout: Seconds to wait for the port line.
            stop_timeout: Seconds between SIGTERM and SIGKILL in stop().
        """
        if not command:
            raise ValueError("command must not be empty")
        self.command = command
        self.startup_timeout = startup_timeout
        self.stop_timeout = stop_timeout
        self.process: asyncio.subprocess.Process | None = None
        self.port: int | None = None
        self._reader: asyncio.Task[None] | None = None
        self._exit: asyncio.Task[int] | None = None

    @property
    def exited(self) -> "asyncio.Task[int]":
        """Task resolving to the plugin's exit code."""
        if self._exit is None:
            raise RuntimeError("Plugin not started")
        return self._exit

    async def start(self) -> int:
        """Spawn the plugin and wait for its handshake.

        The timeout, the plugin's exit and the port line race; whichever
        comes first decides the outcome.

        Returns:
            The port the plugin listens on.

        Raises:
            StartupError: On timeout, an unparsable line, or early exit.
        """
        try:
            self.process = await asyncio.create_subprocess_exec(
                *self.command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                limit=OUTPUT_LINE_LIMIT,
            )
        except OSError as e:
            raise StartupError(f"couldn't start plugin: {e}") from e

        logger.info(f"started plugin (pid {self.process.pid}): {' '.join(self.command)}")

        port: asyncio.Future[int] = asyncio.get_running_loop().create_future()
        assert self.process.stdout is not None
        self._reader = asyncio.create_task(self._monitor_stdout(self.process.stdout, port))
        self._exit = asyncio.create_task(self._monitor_exit())

        done, _ = await asyncio.wait(
            {port, self._exit},
            timeout=self.startup_timeout,
            return_when=asyncio.FIRST_COMPLETED,
        )

        if port in done:
            self.port = port.result()
            return self.port
        if self._exit in done:
            raise StartupError(
                f"plugin exited with code {self._exit.result()} before sending a port"
            )
        raise StartupError(
            f"did not get a port from the plugin within timeout of {self.startup_timeout}s"
        )

    async def _monitor_stdout(
        self, stdout: asyncio.StreamReader, port: "asyncio.Future[int]"
    ) -> None:
        try:
            line = await stdout.readline()
        except ValueError:
            if not port.done():
                port.set_exception(StartupError("bad port number (line too long)"))
            return
        if not line:
            # EOF: the exit watcher reports this
            return

        try:
            value = parse_port(line.decode(errors="replace"))
        except StartupError as e:
            if not port.done():
                port.set_exception(e)
            return

        logger.info(f"got port: {value}")
        if not port.done():
            port.set_result(value)

        while True:
            try:
                raw = await stdout.readline()
            except ValueError:
                logger.warning(
                    f"dropped a plugin output line longer than {OUTPUT_LINE_LIMIT} bytes"
                )
                continue
            if not raw:
                return
            plugin_log.info(raw.decode(errors="replace").rstrip("\r\n"))

    async def _monitor_exit(self) -> int:
        assert self.process is not None
        returncode = await self.process.wait()
        logger.info(f"plugin exited with code {returncode}")
        return returncode

    def check_alive(self) -> None:
        """Raise if the plugin has already exited.

        Raises:
            PluginExited: If the plugin is no longer running.
        """
        if self._exit is not None and self._exit.done():
            raise PluginExited(self._exit.result())

    async def stop(self) -> None:
        """Terminate the plugin, killing it if it does not exit in time.

        Safe to call more than once.
        """
        if self.process is None or self.process.returncode is not None:
            return

        try:
            self.process.terminate()
        except ProcessLookupError:
            return

        try:
            await asyncio.wait_for(self.process.wait(), self.stop_timeout)
        except asyncio.TimeoutError:
            logger.warning("plugin did not exit after SIGTERM, killing it")
            self.process.kill()
            await self.process.wait()

        if self._reader is not None and not self._reader.done():
            # Children of the plugin may keep its stdout open
            done, _ = await asyncio.wait({self._reader}, timeout=self.stop_timeout)
            if not done:
                self._reader.cancel()


async def wait_for_signal(
    signals: tuple[signal.Signals, ...] = (signal.SIGINT, signal.SIGTERM),
) -> signal.Signals:
    """Wait until the host receives one of the given signals.

    Returns:
        The signal received.
    """
    loop = asyncio.get_running_loop()
    received: asyncio.Future[signal.Signals] = loop.create_future()

    def handler(sig: signal.Signals) -> None:
        if not received.done():
            received.set_result(sig)

    for sig in signals:
        loop.add_signal_handler(sig, handler, sig)
    try:
        return await received
    finally:
        for sig in signals:
            loop.remove_signal_handler(sig)
