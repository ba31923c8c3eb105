import contextlib
import logging
import os
from dataclasses import dataclass
from pathlib import Path

from .constants import APP_NAME

logger = logging.getLogger(APP_NAME)


@dataclass(frozen=True)
class ResumeState:
    """The last repository a run started on, and the command it was running.

    Attributes:
        local_path (str): Local path of the repository being processed.
        signature (str): Command name and arguments, joined by spaces.
    """

    local_path: str
    signature: str


class ResumeTracker:
    """Persists the orchestrator's progress so a failed run can be resumed.

    The checkpoint is a two-line text file: the local path, then the command
    signature. It is replaced atomically before each repository is processed
    and removed once a run finishes.

    Attributes:
        path (Path): The checkpoint file.
    """

    def __init__(self, path: Path):
        self.path = path

    def load(self) -> ResumeState | None:
        """Reads the checkpoint.

        Returns:
            ResumeState | None: The stored state, or None if there is no
                usable checkpoint.
        """
        if not self.path.exists():
            return None

        try:
            with open(self.path, newline="") as f:
                text = f.read()
        except OSError as e:
            logger.warning(f"Could not read resume file {self.path}: {e}")
            return None

        # Arguments may contain newlines: the signature is everything after
        # the first line, minus the single terminating newline.
        local_path, _, signature = text.partition("\n")
        signature = signature.removesuffix("\n")
        if not local_path or not signature:
            logger.warning(f"Ignoring malformed resume file {self.path}")
            return None
        return ResumeState(local_path=local_path, signature=signature)

    def resume_point(self, signature: str) -> str | None:
        """Returns the local path to resume from, if the checkpoint matches.

        Args:
            signature (str): Signature of the command about to run.

        Returns:
            str | None: The recorded local path when the stored signature is
                exactly `signature`, otherwise None.
        """
        state = self.load()
        if state is None:
            return None
        if state.signature != signature:
            logger.info(
                f"Resume file is for a different command ('{state.signature}'); "
                "not resuming."
            )
            return None
        logger.info(f"Resuming from {state.local_path}")
        return state.local_path

    def checkpoint(self, local_path: str, signature: str) -> None:
        """Records that `local_path` is about to be processed.

        Raises:
            OSError: If the checkpoint cannot be written.
        """
        tmp_file = self.path.with_name(self.path.name + ".tmp")
        try:
            with open(tmp_file, "w", newline="") as f:
                f.write(f"{local_path}\n{signature}\n")
                f.flush()
                os.fsync(f.fileno())

            os.replace(tmp_file, self.path)
        except OSError:
            with contextlib.suppress(OSError):
                tmp_file.unlink()
            raise

    def clear(self) -> None:
        """Removes the checkpoint after a completed run."""
        self.path.unlink(missing_ok=True)
