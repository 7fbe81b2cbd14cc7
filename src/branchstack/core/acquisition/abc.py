"""The acquisition primitive: populate one branch version directory."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from branchstack.core.cancellation import CancelToken

AcquisitionMode = Literal["copy", "download"]


@dataclass(frozen=True)
class AcquisitionRequest:
    """Everything an acquirer needs to populate dest_path.

    Fields:
        source_path: Live install tree to copy from (copy mode)
        dest_path: Version directory to populate
        branch: Managed branch name, e.g. "beta-branch"
        vendor_key: Vendor branch key, e.g. "beta"
        version_identifier: Manifest id to fetch (download mode)
    """

    source_path: Path | None
    dest_path: Path
    branch: str
    vendor_key: str | None
    version_identifier: str | None = None


@dataclass(frozen=True)
class AcquisitionResult:
    success: bool
    error: str | None = None
    identifier_obtained: str | None = None


class Acquirer(ABC):
    """Black-box producer of bytes on disk for one branch version."""

    @abstractmethod
    def acquire(self, request: AcquisitionRequest, cancel: CancelToken) -> AcquisitionResult:
        """Populate request.dest_path.

        Must return (not raise) on ordinary failure, and must stop promptly
        once cancel is set.
        """
        ...
