"""Export a source tree into a distribution tree.

Honors ``.gitignore`` (via pathspec) and the build exclusions (partials, SCSS
sources, unminified scripts), and stamps a banner into textual outputs.
"""

import logging
import shutil
import time
from dataclasses import dataclass
from datetime import date, datetime
from pathlib import Path
from zoneinfo import ZoneInfo

from pathspec import PathSpec

from chokibasic.exceptions import ExportError
from chokibasic.globs import to_posix

logger = logging.getLogger(__name__)

DEFAULT_BANNER = Path(__file__).parent / "banner.txt"
BANNER_TIMEZONE = "America/Toronto"

_FR_WEEKDAYS = ["lundi", "mardi", "mercredi", "jeudi", "vendredi", "samedi", "dimanche"]
_FR_MONTHS = [
    "janvier", "février", "mars", "avril", "mai", "juin",
    "juillet", "août", "septembre", "octobre", "novembre", "décembre",
]


@dataclass
class ExportStats:
    """Counts reported by :func:`export_dist`."""

    copied: int = 0
    skipped: int = 0


def format_fr_date(moment: datetime | None = None, tz: str = BANNER_TIMEZONE) -> str:
    """Format a date the way banners show it, e.g. ``Samedi le 18 octobre 2026 à 14 h 05``."""
    moment = (moment or datetime.now(ZoneInfo(tz))).astimezone(ZoneInfo(tz))
    weekday = _FR_WEEKDAYS[moment.weekday()].capitalize()
    month = _FR_MONTHS[moment.month - 1]
    return f"{weekday} le {moment.day} {month} {moment.year} à {moment.hour} h {moment.minute:02d}"


def load_gitignore(root: Path) -> PathSpec:
    """Load ``root/.gitignore`` plus ``dist/``."""
    lines = []
    gitignore = root / ".gitignore"
    if gitignore.exists():
        try:
            lines = gitignore.read_text(encoding="utf-8").splitlines()
        except OSError as e:
            logger.warning(f"Could not read .gitignore: {e}")
    lines.append("dist/")
    return PathSpec.from_lines("gitwildmatch", lines)


def should_exclude_file(path: Path) -> bool:
    """Partials (``_name``), SCSS sources and unminified scripts stay out of dist."""
    lower = path.name.lower()
    if lower.startswith("_"):
        return True
    if lower.endswith(".scss"):
        return True
    if lower.endswith(".js") and not lower.endswith(".min.js"):
        return True
    return False


def empty_dir(directory: Path) -> None:
    """Create ``directory`` if needed and remove everything inside it."""
    directory.mkdir(parents=True, exist_ok=True)
    for entry in directory.iterdir():
        if entry.is_dir() and not entry.is_symlink():
            shutil.rmtree(entry)
        else:
            entry.unlink()


def stamp(path: Path, banner: str) -> None:
    """Prepend the banner to a copied file and fill in its placeholders."""
    lower = path.name.lower()
    if lower.endswith((".js", ".css")):
        text = path.read_text(encoding="utf-8")
        path.write_text(f"/*!\n\n{banner}\n\n*/\n{text}", encoding="utf-8")
    elif lower.endswith(".html"):
        text = path.read_text(encoding="utf-8")
        text = text.replace("###YEAR###", str(date.today().year))
        text = text.replace("###TIMESTAMP###", str(int(time.time())))
        path.write_text(f"<!--\n\n{banner}\n\n-->\n{text}", encoding="utf-8")
    elif lower.endswith("sitemap.xml"):
        text = path.read_text(encoding="utf-8")
        path.write_text(text.replace("###TODAY###", date.today().isoformat()), encoding="utf-8")


class _Exporter:
    def __init__(self, src: Path, dist: Path, root: Path, spec: PathSpec, banner: str):
        self.src = src
        self.dist = dist
        self.root = root
        self.spec = spec
        self.banner = banner
        self.stats = ExportStats()

    def _rel(self, path: Path) -> str:
        try:
            return to_posix(path.relative_to(self.root))
        except ValueError:
            return to_posix(path)

    def walk(self, directory: Path) -> None:
        for entry in sorted(directory.iterdir()):
            if entry.is_symlink():
                continue
            rel = self._rel(entry)
            if entry.is_dir():
                if self.spec.match_file(rel + "/") or entry.name.startswith("_"):
                    continue
                self.walk(entry)
            elif entry.is_file():
                if self.copy(entry, rel):
                    self.stats.copied += 1
                else:
                    self.stats.skipped += 1

    def copy(self, path: Path, rel: str) -> bool:
        if self.spec.match_file(rel) or should_exclude_file(path):
            logger.debug(f"Skipped {rel}")
            return False
        target = self.dist / path.relative_to(self.src)
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(path, target)
        stamp(target, self.banner)
        return True


def export_dist(
    src: str | Path,
    dist: str | Path,
    banner: str | Path | None = None,
    root: str | Path | None = None,
) -> ExportStats:
    """Copy ``src`` into a freshly emptied ``dist``.

    Args:
        src: Source tree
        dist: Destination tree, emptied first
        banner: Banner text file (defaults to the packaged banner.txt)
        root: Directory holding ``.gitignore``; ignore rules match paths relative to it
            (defaults to the current directory)

    Returns:
        Number of copied and skipped files

    Raises:
        ExportError: If ``src`` is missing or the copy fails
    """
    src = Path(src).resolve()
    dist = Path(dist).resolve()
    root = Path(root).resolve() if root else Path.cwd()

    try:
        spec = load_gitignore(root)
        empty_dir(dist)
        if not src.is_dir():
            raise ExportError(f"Folder src is invalid: {src}")

        banner_text = Path(banner or DEFAULT_BANNER).read_text(encoding="utf-8")
        banner_text = banner_text.replace("###DATE###", format_fr_date(), 1)

        exporter = _Exporter(src, dist, root, spec, banner_text)
        exporter.walk(src)
    except OSError as e:
        raise ExportError(f"Export of {src} to {dist} failed: {e}") from e

    logger.info(f"Exported {src} -> {dist} ({exporter.stats.copied} copied, {exporter.stats.skipped} skipped)")
    return exporter.stats
