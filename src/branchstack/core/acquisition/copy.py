"""Local copy acquirer: duplicates the live install tree."""

import logging
import os
import shutil
from pathlib import Path

from branchstack.core.acquisition.abc import Acquirer, AcquisitionRequest, AcquisitionResult
from branchstack.core.cancellation import CancelToken

logger = logging.getLogger(__name__)


class CopyAcquirer(Acquirer):
    """Copies every file from the source install into the destination.

    Existing files in the destination are overwritten, so a retried copy
    converges on the source contents.
    """

    def acquire(self, request: AcquisitionRequest, cancel: CancelToken) -> AcquisitionResult:
        source = request.source_path
        if source is None or not source.is_dir():
            return AcquisitionResult(success=False, error=f"Source install not found: {source}")

        copied = 0
        try:
            request.dest_path.mkdir(parents=True, exist_ok=True)
            for dirpath, _dirnames, filenames in os.walk(source):
                if cancel.is_cancelled:
                    return AcquisitionResult(success=False, error="Copy cancelled")
                relative = Path(dirpath).relative_to(source)
                target_dir = request.dest_path / relative
                target_dir.mkdir(parents=True, exist_ok=True)
                for filename in filenames:
                    if cancel.is_cancelled:
                        return AcquisitionResult(success=False, error="Copy cancelled")
                    shutil.copy2(Path(dirpath) / filename, target_dir / filename)
                    copied += 1
        except OSError as e:
            return AcquisitionResult(success=False, error=f"Copy failed after {copied} files: {e}")

        logger.debug("Copied %d files from %s to %s", copied, source, request.dest_path)
        return AcquisitionResult(success=True)
