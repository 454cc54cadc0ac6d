"""Subprocess helpers for macOS automation commands."""
import asyncio
import logging

logger = logging.getLogger(__name__)


async def run_command(*argv: str) -> tuple[bool, str]:
    """Run a command and return (success, output).

    Output is stdout on success and stderr on failure. A command that cannot
    be spawned counts as a failure.
    """
    try:
        process = await asyncio.create_subprocess_exec(
            *argv,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        stdout, stderr = await process.communicate()
    except OSError as e:
        logger.debug(f"Failed to run {argv[0]}: {e}")
        return False, f"Failed to run {argv[0]}: {e}"

    if process.returncode == 0:
        return True, stdout.decode("utf-8", errors="replace").strip()
    return False, stderr.decode("utf-8", errors="replace").strip()


async def run_osascript(script: str, osascript_path: str = "/usr/bin/osascript") -> tuple[bool, str]:
    """Run an AppleScript snippet and return (success, output)."""
    return await run_command(osascript_path, "-e", script)


def quote_applescript(text: str) -> str:
    """Escape text for use inside an AppleScript string literal."""
    return text.replace("\\", "\\\\").replace('"', '\\"')
