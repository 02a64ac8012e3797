"""
Async subprocess utilities.
"""
import asyncio


class CommandFailedError(RuntimeError):
    """Raised by run_cmd(check=True) when the process exits non-zero."""
    def __init__(self, cmd: list[str], returncode: int, stderr: str):
        self.cmd = cmd
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(
            f"Command failed with exit code {returncode}: {' '.join(cmd)}\n"
            f"stderr: {stderr}"
        )


def decode_output(data: bytes) -> str:
    try:
        return data.decode()
    except UnicodeDecodeError:
        return data.decode(errors='replace')


async def run_cmd(
        cmd: list[str],
        check: bool = True,
        timeout: float | None = None,
) -> tuple[bytes, bytes]:
    """
    Execute a command asynchronously, without a shell.

    Args:
        cmd: Command and arguments to execute.
        check: If True, raises CommandFailedError on non-zero exit code.
        timeout: Seconds to wait before the process is killed.

    Returns:
        Tuple of (stdout, stderr) bytes.

    Raises:
        CommandFailedError: If check=True and command exits with non-zero code.
        TimeoutError: If the process outlives the timeout; it is killed first.
        OSError: If the executable cannot be started.
    """
    process = await asyncio.create_subprocess_exec(
        *cmd,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        process.kill()
        await process.wait()
        raise TimeoutError(f"Command timed out after {timeout}s: {' '.join(cmd)}")

    if check and process.returncode != 0:
        raise CommandFailedError(cmd, process.returncode, decode_output(stderr))
    return stdout, stderr
