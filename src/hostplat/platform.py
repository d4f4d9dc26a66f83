"""OS family and architecture detection.

The detector reads four environment values (OS name, OS version,
architecture hint and the Windows `ProgramFiles(x86)` variable), classifies
them, and returns an immutable `PlatformInfo`. Architecture labels follow the
Java `os.arch` vocabulary ("x86", "amd64", ...) because that is the vocabulary
downstream config files use to name platform variants.
"""

import collections.abc
import dataclasses
import enum
import logging
import os
import platform
import threading

import beartype

logger = logging.getLogger(__name__)

DEFAULT_OS_NAME = "generic"
WOW64_ENV_VAR = "ProgramFiles(x86)"


class OSType(enum.Enum):
    """Operating system family."""

    WINDOWS = "windows"
    MACOS = "macos"
    LINUX = "linux"
    OTHER = "other"


class OSArchitecture(enum.Enum):
    """Operating system bitness."""

    X32 = "32-bit"
    X64 = "64-bit"

    @property
    def label(self) -> str:
        return self.value

    def __str__(self) -> str:
        return self.value


@beartype.beartype
@dataclasses.dataclass(frozen=True)
class PlatformSource:
    """Raw values the detector reads. None means the value was not reported."""

    os_name: str | None = None
    """Platform-reported OS name (e.g., "Windows 10", "Mac OS X", "Linux")."""

    os_version: str | None = None
    """Platform-reported OS version."""

    os_arch: str | None = None
    """Architecture hint (e.g., "x86_64", "i386", "AMD64")."""

    wow64_marker: str | None = None
    """Value of `ProgramFiles(x86)`; set only for 32-bit processes on 64-bit Windows."""

    @classmethod
    def from_host(
        cls, environ: collections.abc.Mapping[str, str] | None = None
    ) -> "PlatformSource":
        """Read the current host. `environ` defaults to `os.environ`.

        On macOS the version is the product version (e.g., "14.1") rather than
        the Darwin kernel release that `platform.release()` reports.
        """
        if environ is None:
            environ = os.environ
        system = platform.system()
        version = ""
        if system == "Darwin":
            version = platform.mac_ver()[0]
        return cls(
            os_name=system or None,
            os_version=version or platform.release() or platform.version() or None,
            os_arch=platform.machine() or None,
            wow64_marker=environ.get(WOW64_ENV_VAR),
        )


@beartype.beartype
@dataclasses.dataclass(frozen=True)
class PlatformInfo:
    """Immutable snapshot of the host platform."""

    os_type: OSType
    """OS family."""

    os_type_label: str
    """Lower-cased OS name as reported, "generic" when missing."""

    architecture: OSArchitecture
    """OS bitness."""

    architecture_label: str
    """Lower-cased architecture token in `os.arch` vocabulary."""

    os_version: str
    """OS version as reported, "" when missing."""


@beartype.beartype
def classify_os(os_name: str) -> OSType:
    """Classify a free-form OS name. First match wins."""
    name = os_name.lower()
    if "mac" in name or "darwin" in name:
        return OSType.MACOS
    if "win" in name:
        return OSType.WINDOWS
    if "nux" in name:
        return OSType.LINUX
    return OSType.OTHER


@beartype.beartype
def classify_arch(os_type: OSType, source: PlatformSource) -> OSArchitecture:
    """Classify OS bitness.

    A 32-bit process on 64-bit Windows reports its own bitness as the
    architecture, so Windows relies on the WOW64 environment marker instead.
    """
    if os_type is OSType.WINDOWS:
        if source.wow64_marker is not None:
            return OSArchitecture.X64
        return OSArchitecture.X32
    if "64" in (source.os_arch or ""):
        return OSArchitecture.X64
    return OSArchitecture.X32


@beartype.beartype
def get_arch_label(
    os_type: OSType, architecture: OSArchitecture, os_arch: str | None
) -> str:
    """Get the `os.arch`-style architecture label.

    Windows gets a fixed token derived from `architecture`; every other OS
    passes the reported value through.
    """
    if os_type is OSType.WINDOWS:
        label = "x86" if architecture is OSArchitecture.X32 else "amd64"
    else:
        label = os_arch or ""
    return label.lower()


@beartype.beartype
def detect(source: PlatformSource) -> PlatformInfo:
    """Build a snapshot from `source`. Never raises."""
    os_name = source.os_name if source.os_name is not None else DEFAULT_OS_NAME
    os_type = classify_os(os_name)
    architecture = classify_arch(os_type, source)
    info = PlatformInfo(
        os_type=os_type,
        os_type_label=os_name.lower(),
        architecture=architecture,
        architecture_label=get_arch_label(os_type, architecture, source.os_arch),
        os_version=source.os_version or "",
    )
    logger.debug(
        "Detected %s %s (%s) from os_name=%r os_arch=%r.",
        info.os_type.name,
        info.architecture_label,
        info.architecture,
        source.os_name,
        source.os_arch,
    )
    return info


class PlatformContext:
    """Owns one lazily detected `PlatformInfo`.

    The first access to `platform_info` runs detection under a lock; later
    accesses return the same object without locking.
    """

    def __init__(
        self,
        source_factory: collections.abc.Callable[
            [], PlatformSource
        ] = PlatformSource.from_host,
    ) -> None:
        self._source_factory = source_factory
        self._lock = threading.Lock()
        self._info: PlatformInfo | None = None

    @property
    def platform_info(self) -> PlatformInfo:
        info = self._info
        if info is not None:
            return info
        with self._lock:
            if self._info is None:
                self._info = detect(self._source_factory())
            return self._info


_default_context = PlatformContext()


@beartype.beartype
def get_platform_info() -> PlatformInfo:
    """Get the process-wide platform snapshot, detecting it on first call."""
    return _default_context.platform_info
