"""Builders for on-disk vendor installs and managed roots used in tests."""

from dataclasses import dataclass
from pathlib import Path

from branchstack.core.manifest import manifest_path_for_library
from branchstack.core.registry import Registry

APP_ID = "3164500"
EXECUTABLE = "Schedule I.exe"


def manifest_text(
    build_id: str | None,
    beta_key: str | None = None,
    depots: dict[str, str] | None = None,
) -> str:
    """Render a vendor app manifest.

    Args:
        build_id: Top-level buildid value (None omits the field)
        beta_key: UserConfig BetaKey value (None omits UserConfig)
        depots: depot id -> manifest id for the InstalledDepots section
    """
    lines = ['"AppState"', "{", f'\t"appid"\t\t"{APP_ID}"', '\t"name"\t\t"Schedule I"']
    if build_id is not None:
        lines.append(f'\t"buildid"\t\t"{build_id}"')
    if depots:
        lines.append('\t"InstalledDepots"')
        lines.append("\t{")
        for depot_id, manifest_id in depots.items():
            lines.append(f'\t\t"{depot_id}"')
            lines.append("\t\t{")
            lines.append(f'\t\t\t"manifest"\t\t"{manifest_id}"')
            lines.append('\t\t\t"size"\t\t"1048576"')
            lines.append("\t\t}")
        lines.append("\t}")
    if beta_key is not None:
        lines.append('\t"UserConfig"')
        lines.append("\t{")
        lines.append(f'\t\t"BetaKey"\t\t"{beta_key}"')
        lines.append("\t}")
    lines.append("}")
    return "\n".join(lines) + "\n"


def write_manifest(
    library: Path,
    build_id: str | None,
    beta_key: str | None = None,
    depots: dict[str, str] | None = None,
) -> Path:
    path = manifest_path_for_library(library, APP_ID)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(manifest_text(build_id, beta_key, depots), encoding="utf-8")
    return path


def write_files(folder: Path, files: dict[str, str]) -> Path:
    for relative, content in files.items():
        target = folder / relative
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")
    return folder


@dataclass(frozen=True)
class SourceEnv:
    """A fake vendor library with one installed copy, plus an empty managed root."""

    library: Path
    install_path: Path
    managed_root: Path

    @property
    def manifest_path(self) -> Path:
        return manifest_path_for_library(self.library, APP_ID)

    def switch_to(self, build_id: str, beta_key: str | None) -> None:
        """Simulate the vendor client switching the installed branch."""
        write_manifest(self.library, build_id, beta_key)

    def registry(self, branches: tuple[str, ...] = ()) -> Registry:
        return (
            Registry()
            .with_paths(
                source_library_path=self.library,
                source_install_path=self.install_path,
                managed_root_path=self.managed_root,
            )
            .with_selected_branches(branches)
        )


def make_source_env(
    tmp_path: Path, build_id: str = "1000", beta_key: str | None = None
) -> SourceEnv:
    library = tmp_path / "library"
    install_path = library / "steamapps" / "common" / "Schedule I"
    write_files(
        install_path,
        {EXECUTABLE: "game binary", "Schedule I_Data/level0": "level data"},
    )
    write_manifest(library, build_id, beta_key)
    managed_root = tmp_path / "managed"
    managed_root.mkdir()
    return SourceEnv(library=library, install_path=install_path, managed_root=managed_root)


def install_version(
    managed_root: Path,
    branch: str,
    dir_name: str,
    files: dict[str, str] | None = None,
) -> Path:
    """Create branches/<branch>/<dir_name> with an executable (by default)."""
    folder = managed_root / "branches" / branch / dir_name
    folder.mkdir(parents=True, exist_ok=True)
    return write_files(folder, files if files is not None else {EXECUTABLE: "game binary"})
