"""Sources of the pinned-conversation sidebar snapshot.

The snapshot is an ordered list of display names as the Messages sidebar
shows them. An empty list means "temporarily unavailable" (the app is not
running, the window is closed, or the sidebar was caught mid-animation);
it never means "no pins".
"""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol, Sequence, runtime_checkable

from chatbridge.core.exceptions import SnapshotUnavailableError

logger = logging.getLogger(__name__)

NAME_SEPARATOR = "|||"

# Collects accessibility descriptions ending in ", Pinned" from the front
# window, widening it first when the sidebar is collapsed.
PINNED_NAMES_SCRIPT = """
tell application "System Events"
    if not (exists process "Messages") then
        return ""
    end if
    tell process "Messages"
        if (count of windows) is 0 then return ""

        set origPos to position of front window
        set origSize to size of front window
        set needsRestore to false
        if (item 1 of origSize) < 1200 then
            set needsRestore to true
            set position of front window to {0, item 2 of origPos}
            set size of front window to {1400, item 2 of origSize}
            delay 0.3
        end if

        set pinnedNames to {}
        try
            set allElements to entire contents of front window
            repeat with elem in allElements
                try
                    set elemDesc to description of elem
                    if elemDesc ends with ", Pinned" then
                        set nameAndStatus to text 1 thru ((length of elemDesc) - 8) of elemDesc
                        if nameAndStatus contains ", Unread, " then
                            set AppleScript's text item delimiters to ", Unread, "
                            set fullName to text item 1 of nameAndStatus
                            set AppleScript's text item delimiters to ""
                        else if nameAndStatus ends with ", Unread" then
                            set fullName to text 1 thru ((length of nameAndStatus) - 8) of nameAndStatus
                        else
                            set fullName to nameAndStatus
                        end if
                        if (length of fullName) > 0 and pinnedNames does not contain fullName then
                            set end of pinnedNames to fullName
                        end if
                    end if
                end try
            end repeat
        end try

        if needsRestore then
            set position of front window to origPos
            set size of front window to origSize
        end if

        set AppleScript's text item delimiters to "|||"
        set resultText to pinnedNames as text
        set AppleScript's text item delimiters to ""
        return resultText
    end tell
end tell
"""


def parse_display_names(output: str) -> list[str]:
    """Split script output into names, dropping blanks."""
    return [name.strip() for name in output.split(NAME_SEPARATOR) if name.strip()]


@runtime_checkable
class PinSnapshotSource(Protocol):
    async def current_display_names(self) -> list[str]:
        """Pinned display names in sidebar order; empty when unavailable.

        Raises:
            SnapshotUnavailableError: If the snapshot could not be taken
        """
        ...


class AppleScriptPinSource:
    """Read the sidebar through ``osascript`` UI scripting."""

    def __init__(
        self,
        timeout_seconds: float = 15.0,
        executable: str = "osascript",
        script: str = PINNED_NAMES_SCRIPT,
    ) -> None:
        self.timeout_seconds = timeout_seconds
        self.executable = executable
        self.script = script

    async def current_display_names(self) -> list[str]:
        try:
            process = await asyncio.create_subprocess_exec(
                self.executable,
                "-e",
                self.script,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise SnapshotUnavailableError(f"cannot run {self.executable}: {e}") from e

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(), timeout=self.timeout_seconds
            )
        except asyncio.TimeoutError as e:
            process.kill()
            await process.wait()
            raise SnapshotUnavailableError(
                f"{self.executable} timed out after {self.timeout_seconds}s"
            ) from e

        if process.returncode != 0:
            message = stderr.decode("utf-8", errors="replace").strip()
            raise SnapshotUnavailableError(
                f"{self.executable} exited with {process.returncode}: {message}"
            )
        return parse_display_names(stdout.decode("utf-8", errors="replace"))


class StaticPinSource:
    """Canned snapshots, for tests and for hosts without UI scripting.

    Given several snapshots, each call returns the next one and the last
    repeats. An ``Exception`` instance in the sequence is raised instead.
    """

    def __init__(self, *snapshots: Sequence[str] | Exception) -> None:
        self._snapshots: list[Sequence[str] | Exception] = list(snapshots) or [[]]
        self.calls = 0

    async def current_display_names(self) -> list[str]:
        position = min(self.calls, len(self._snapshots) - 1)
        self.calls += 1
        snapshot = self._snapshots[position]
        if isinstance(snapshot, Exception):
            raise snapshot
        return list(snapshot)
