"""Screen capture strategies.

Each strategy acquires a full-screen PNG in a different way. The capture
service tries them in order:

1. MssBufferStrategy: mss grabs the virtual screen straight into memory.
2. MssTempFileStrategy: mss writes a temp PNG that is read back. Works around
   drivers (mostly on Windows) where the in-memory grab fails.
3. NativeScriptStrategy: an OS screenshot tool writes a temp PNG.

Temp files live only inside a scratch_file() block and are deleted on every
exit path.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import shutil
import subprocess
import sys
import tempfile
import uuid
from collections.abc import Iterator
from pathlib import Path

import mss
import mss.tools

from snapsolve.interfaces.capture import CaptureStrategy

logger = logging.getLogger(__name__)

TEMP_SUBDIR = "snapsolve-screenshots"

# Copies every attached screen into one bitmap and saves it as PNG.
POWERSHELL_CAPTURE_SCRIPT = """
Add-Type -AssemblyName System.Windows.Forms,System.Drawing
$screens = [System.Windows.Forms.Screen]::AllScreens
$top = ($screens | ForEach-Object {{$_.Bounds.Top}} | Measure-Object -Minimum).Minimum
$left = ($screens | ForEach-Object {{$_.Bounds.Left}} | Measure-Object -Minimum).Minimum
$right = ($screens | ForEach-Object {{$_.Bounds.Right}} | Measure-Object -Maximum).Maximum
$bottom = ($screens | ForEach-Object {{$_.Bounds.Bottom}} | Measure-Object -Maximum).Maximum
$bounds = [System.Drawing.Rectangle]::FromLTRB($left, $top, $right, $bottom)
$bmp = New-Object System.Drawing.Bitmap $bounds.Width, $bounds.Height
$graphics = [System.Drawing.Graphics]::FromImage($bmp)
$graphics.CopyFromScreen($bounds.Left, $bounds.Top, 0, 0, $bounds.Size)
$bmp.Save('{output}', [System.Drawing.Imaging.ImageFormat]::Png)
$graphics.Dispose()
$bmp.Dispose()
"""


def default_temp_dir() -> Path:
    """Directory used for capture scratch files."""
    return Path(tempfile.gettempdir()) / TEMP_SUBDIR


@contextlib.contextmanager
def scratch_file(directory: Path, prefix: str = "temp") -> Iterator[Path]:
    """Yield a unique PNG path that is deleted when the block exits.

    Args:
        directory: Directory for the file. Created if missing.
        prefix: File name prefix, useful when reading leftover files.
    """
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / f"{prefix}-{uuid.uuid4().hex}.png"
    try:
        yield path
    finally:
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Failed to clean up temp file {path}: {e}")


def _grab_to_png() -> bytes:
    with mss.mss() as sct:
        # Monitor 0 is the bounding box of every attached screen.
        shot = sct.grab(sct.monitors[0])
        png = mss.tools.to_png(shot.rgb, shot.size)
    if not png:
        raise RuntimeError("mss returned no image data")
    return png


def _shot_to_file(path: Path) -> None:
    with mss.mss() as sct:
        sct.shot(mon=-1, output=str(path))


class MssBufferStrategy(CaptureStrategy):
    """Grab the screen into memory with mss."""

    name = "mss-buffer"

    def is_available(self) -> bool:
        return True

    async def capture(self) -> bytes:
        return await asyncio.to_thread(_grab_to_png)


class MssTempFileStrategy(CaptureStrategy):
    """Have mss write a temp file, then read it back."""

    name = "mss-tempfile"

    def __init__(self, temp_dir: Path | None = None) -> None:
        self._temp_dir = temp_dir or default_temp_dir()

    def is_available(self) -> bool:
        return True

    async def capture(self) -> bytes:
        with scratch_file(self._temp_dir, prefix="temp") as path:
            await asyncio.to_thread(_shot_to_file, path)
            if not path.exists():
                raise RuntimeError("Screenshot file not created")
            return await asyncio.to_thread(path.read_bytes)


class NativeScriptStrategy(CaptureStrategy):
    """Shell out to the operating system's screenshot facility.

    Windows uses a PowerShell System.Drawing script, macOS uses
    `screencapture`, and Linux uses the first available of gnome-screenshot,
    scrot, grim, or ImageMagick's `import`.
    """

    name = "native-script"

    _LINUX_TOOLS: tuple[tuple[str, ...], ...] = (
        ("gnome-screenshot", "-f", "{output}"),
        ("scrot", "-o", "{output}"),
        ("grim", "{output}"),
        ("import", "-window", "root", "{output}"),
    )

    def __init__(
        self,
        temp_dir: Path | None = None,
        timeout: float = 15.0,
        platform: str | None = None,
    ) -> None:
        self._temp_dir = temp_dir or default_temp_dir()
        self._timeout = timeout
        self._platform = platform or sys.platform

    def _command_template(self) -> tuple[str, ...] | None:
        """Pick the command for this platform, or None if nothing is installed."""
        if self._platform == "win32":
            if shutil.which("powershell") is None:
                return None
            return (
                "powershell",
                "-NoProfile",
                "-ExecutionPolicy",
                "Bypass",
                "-Command",
                POWERSHELL_CAPTURE_SCRIPT,
            )
        if self._platform == "darwin":
            if shutil.which("screencapture") is None:
                return None
            return ("screencapture", "-x", "-t", "png", "{output}")
        for template in self._LINUX_TOOLS:
            if shutil.which(template[0]) is not None:
                return template
        return None

    def is_available(self) -> bool:
        return self._command_template() is not None

    def build_command(self, output: Path) -> list[str]:
        """Build the argv that writes a screenshot to output.

        Raises:
            RuntimeError: If no screenshot tool is installed.
        """
        template = self._command_template()
        if template is None:
            raise RuntimeError(f"No native screenshot tool available on {self._platform}")
        # Single-quoted PowerShell strings are literal except for doubled quotes.
        output_str = str(output).replace("'", "''") if self._platform == "win32" else str(output)
        return [part.format(output=output_str) for part in template]

    async def capture(self) -> bytes:
        with scratch_file(self._temp_dir, prefix="native-temp") as path:
            command = self.build_command(path)
            logger.debug(f"Running native capture: {command[0]}")
            process = await asyncio.create_subprocess_exec(
                *command,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
            )
            try:
                _, stderr = await asyncio.wait_for(process.communicate(), timeout=self._timeout)
            except TimeoutError as e:
                process.kill()
                await process.wait()
                raise RuntimeError(f"{command[0]} timed out after {self._timeout:.0f}s") from e

            if process.returncode != 0:
                message = stderr.decode(errors="replace").strip() if stderr else ""
                raise RuntimeError(f"{command[0]} exited with {process.returncode}: {message}")
            if not path.exists():
                raise RuntimeError(f"{command[0]} did not create a screenshot file")
            return await asyncio.to_thread(path.read_bytes)


def default_strategies(
    temp_dir: Path | None = None,
    script_timeout: float = 15.0,
    platform: str | None = None,
) -> list[CaptureStrategy]:
    """Build the standard fallback chain, cheapest first."""
    return [
        MssBufferStrategy(),
        MssTempFileStrategy(temp_dir=temp_dir),
        NativeScriptStrategy(temp_dir=temp_dir, timeout=script_timeout, platform=platform),
    ]
