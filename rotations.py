#
# rotations
#
# A small cross-platform CLI tool to delete or archive directory entries by age.
#
# Copyright (c) 2025-2026 Thomas Kuhlmann
#
# Licensed under the MIT License. See LICENSE file in the project root for license information.
#

import argparse
import calendar
import os
import shutil
import stat
import sys
import traceback
import zipfile
from collections import defaultdict
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from datetime import MINYEAR, datetime, timedelta
from enum import Enum, IntEnum
from operator import attrgetter
from pathlib import Path
from types import SimpleNamespace
from typing import Any, NoReturn, Optional, TextIO, no_type_check


VERSION: str = "dev-1.0.0"

ARCHIVE_SUFFIX: str = ".zip"

ROTATE_CONFIRM_DEFAULT: bool = False
STANDALONE_CONFIRM_DEFAULT: bool = True


class RotationError(Exception):
    pass


class ValidationError(RotationError, ValueError):
    pass


class InvalidTimestamp(ValidationError):
    pass


class PathNotFound(RotationError, FileNotFoundError):
    pass


class IOFailure(RotationError, OSError):
    def __init__(self, path: Path, message: str) -> None:
        super().__init__(message)
        self.path = path

    def __str__(self) -> str:
        return str(self.args[0])


class BatchFailedError(RotationError):
    pass


class ConfigNamespace(SimpleNamespace):
    pass


class LogLevel(IntEnum):
    ERROR = 0
    WARN = 1
    INFO = 2
    DEBUG = 3

    @classmethod
    def from_name_or_number(cls, prefix: str) -> "LogLevel":
        try:
            return next(m for m in cls if m.name.startswith(prefix.upper()))
        except StopIteration:
            try:
                return cls(int(prefix))
            except ValueError:
                raise ValueError("Invalid log level: " + prefix)


class Logger:
    _level: LogLevel
    _decisions: dict[Path, list[tuple[str, Optional[str]]]]

    def __init__(self, level: LogLevel = LogLevel.WARN) -> None:
        self._level = level
        self._decisions = defaultdict(list)

    def has_log_level(self, level: LogLevel) -> bool:
        return level <= int(self._level)

    def _raw_verbose(self, level: LogLevel, message: str, file: Optional[TextIO] = None, prefix: str = "") -> None:
        print(f"[{prefix or LogLevel(level).name}] {message}", file=file or sys.stderr)

    def verbose(self, level: LogLevel, message: str, file: Optional[TextIO] = None, prefix: str = "") -> None:
        if self.has_log_level(level):
            self._raw_verbose(level, message, file, prefix)

    def add_decision(self, level: LogLevel, path: Path, message: str, debug: Optional[str] = None) -> None:
        # Latest decision first, older ones are kept as history for debug output
        if self.has_log_level(level):
            self._decisions[path].insert(0, (message, debug if self.has_log_level(LogLevel.DEBUG) else None))

    def _format_decision(self, decision: tuple[str, Optional[str]]) -> str:
        message, debug = decision
        return message + (f" ({debug})" if debug is not None else "")

    def print_decisions(self) -> None:
        if not self._decisions:
            return
        longest_path_length = max(len(str(p)) for p in self._decisions)
        for path in sorted(self._decisions):
            decisions = self._decisions[path]
            self._raw_verbose(LogLevel.INFO, f"{str(path):<{longest_path_length}}: {self._format_decision(decisions[0])}")
            if not self.has_log_level(LogLevel.DEBUG):
                continue
            for idx, decision in enumerate(decisions[1:]):
                self._raw_verbose(LogLevel.DEBUG, f"{' ' * ((longest_path_length + 2) + idx * 4)}└── {self._format_decision(decision)}")


# Model


class TimeUnit(Enum):
    YEAR = "Year"
    MONTH = "Month"
    DAY = "Day"
    HOUR = "Hour"
    MINUTE = "Minute"
    SECOND = "Second"
    MILLISECOND = "Millisecond"

    @classmethod
    def from_name(cls, name: str) -> "TimeUnit":
        try:
            return next(m for m in cls if m.value.lower() == name.strip().lower())
        except StopIteration:
            raise ValueError(f"Invalid time unit: {name}")


class TimeProperty(Enum):
    CREATION_TIME = "CreationTime"
    LAST_WRITE_TIME = "LastWriteTime"
    LAST_ACCESS_TIME = "LastAccessTime"

    @classmethod
    def from_name(cls, name: str) -> "TimeProperty":
        aliases = {"ctime": cls.CREATION_TIME, "mtime": cls.LAST_WRITE_TIME, "atime": cls.LAST_ACCESS_TIME}
        key = name.strip().lower()
        if key in aliases:
            return aliases[key]
        try:
            return next(m for m in cls if m.value.lower() == key)
        except StopIteration:
            raise ValueError(f"Invalid time property: {name}")


class CompressionLevel(Enum):
    OPTIMAL = "Optimal"
    FASTEST = "Fastest"
    NO_COMPRESSION = "NoCompression"

    @classmethod
    def from_name(cls, name: str) -> "CompressionLevel":
        try:
            return next(m for m in cls if m.value.lower() == name.strip().lower())
        except StopIteration:
            raise ValueError(f"Invalid compression level: {name}")

    def zip_settings(self) -> tuple[int, Optional[int]]:
        if self is CompressionLevel.NO_COMPRESSION:
            return zipfile.ZIP_STORED, None
        return zipfile.ZIP_DEFLATED, 9 if self is CompressionLevel.OPTIMAL else 1


class LinkType(Enum):
    SYMBOLIC_LINK = "SymbolicLink"
    HARD_LINK = "HardLink"
    JUNCTION = "Junction"


class EntryKind(Enum):
    FILE = "File"
    DIRECTORY = "Directory"
    SYMBOLIC_LINK = "SymbolicLink"
    HARD_LINK = "HardLink"
    JUNCTION = "Junction"


class Action(Enum):
    DELETE = "Delete"
    COMPRESS = "Compress"


@dataclass(frozen=True)
class Entry:
    path: Path
    creation_time: datetime
    last_write_time: datetime
    last_access_time: datetime
    size: int
    is_directory: bool
    link_type: Optional[LinkType] = None

    @classmethod
    def from_stat(cls, path: Path, st: os.stat_result, is_directory: bool, link_type: Optional[LinkType]) -> "Entry":
        # st_birthtime is only reported by some platforms, st_ctime is the closest substitute elsewhere
        return cls(
            path=path,
            creation_time=datetime.fromtimestamp(getattr(st, "st_birthtime", st.st_ctime)),
            last_write_time=datetime.fromtimestamp(st.st_mtime),
            last_access_time=datetime.fromtimestamp(st.st_atime),
            size=st.st_size,
            is_directory=is_directory,
            link_type=link_type,
        )

    @classmethod
    def from_path(cls, path: Path) -> "Entry":
        st = os.lstat(path)
        link_type: Optional[LinkType] = None
        if stat.S_ISLNK(st.st_mode):
            link_type = LinkType.SYMBOLIC_LINK
        elif os.path.isjunction(path):
            link_type = LinkType.JUNCTION
        elif stat.S_ISREG(st.st_mode) and st.st_nlink > 1:
            link_type = LinkType.HARD_LINK
        return cls.from_stat(Path(path), st, stat.S_ISDIR(st.st_mode), link_type)


PROPERTY_ACCESSORS: dict[TimeProperty, Callable[[Entry], datetime]] = {
    TimeProperty.CREATION_TIME: attrgetter("creation_time"),
    TimeProperty.LAST_WRITE_TIME: attrgetter("last_write_time"),
    TimeProperty.LAST_ACCESS_TIME: attrgetter("last_access_time"),
}


def entry_time(entry: Entry, time_property: TimeProperty) -> datetime:
    return PROPERTY_ACCESSORS[time_property](entry)


# Threshold resolution


def subtract_time(moment: datetime, unit: TimeUnit, magnitude: int) -> datetime:
    """Subtract ``magnitude`` units from ``moment``.

    Years and months follow the calendar: the day is clamped to the last valid day of the
    resulting month (2024-03-31 minus one month is 2024-02-29). All other units are fixed durations.
    """
    if magnitude < 0:
        raise ValidationError(f"Invalid magnitude {magnitude}: must not be negative")
    try:
        if unit in (TimeUnit.YEAR, TimeUnit.MONTH):
            months = magnitude * 12 if unit is TimeUnit.YEAR else magnitude
            year, month_index = divmod(moment.year * 12 + moment.month - 1 - months, 12)
            if year < MINYEAR:
                raise OverflowError("date value out of range")
            month = month_index + 1
            day = min(moment.day, calendar.monthrange(year, month)[1])
            return moment.replace(year=year, month=month, day=day)
        durations = {
            TimeUnit.DAY: timedelta(days=magnitude),
            TimeUnit.HOUR: timedelta(hours=magnitude),
            TimeUnit.MINUTE: timedelta(minutes=magnitude),
            TimeUnit.SECOND: timedelta(seconds=magnitude),
            TimeUnit.MILLISECOND: timedelta(milliseconds=magnitude),
        }
        return moment - durations[unit]
    except OverflowError:
        raise ValidationError(f"Invalid magnitude {magnitude}: {unit.value.lower()}s before {moment} are out of range")


TIMESTAMP_FORMATS: tuple[str, ...] = (
    "%Y-%m-%d %H:%M",
    "%m/%d/%Y",
    "%m/%d/%Y %H:%M",
    "%m/%d/%Y %H:%M:%S",
    "%d.%m.%Y",
    "%d.%m.%Y %H:%M",
    "%d.%m.%Y %H:%M:%S",
)


def parse_timestamp(value: str) -> datetime:
    text = value.strip()
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        for fmt in TIMESTAMP_FORMATS:
            try:
                parsed = datetime.strptime(text, fmt)
                break
            except ValueError:
                continue
        else:
            raise InvalidTimestamp(f"Invalid timestamp: '{value}' (use e.g. '2024-03-31', '2024-03-31 12:00:00' or '03/31/2024')")
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)  # entry times are naive local times
    return parsed


def resolve_cutoff(unit: TimeUnit, magnitude: int, now: Optional[datetime] = None) -> datetime:
    return subtract_time(now or datetime.now(), unit, magnitude)


@dataclass(frozen=True)
class RetentionCriterion:
    property: TimeProperty
    cutoff: datetime

    @classmethod
    def from_age(cls, time_property: TimeProperty, unit: TimeUnit, magnitude: int, now: Optional[datetime] = None) -> "RetentionCriterion":
        if magnitude <= 0:
            raise ValidationError(f"Invalid value '{magnitude}': must be an integer > 0")
        return cls(time_property, resolve_cutoff(unit, magnitude, now))

    @classmethod
    def from_timestamp(cls, time_property: TimeProperty, timestamp: str) -> "RetentionCriterion":
        return cls(time_property, parse_timestamp(timestamp))

    def describe(self) -> str:
        return f"{self.property.value} <= {self.cutoff}"


# Classification and selection


def classify_entry(entry: Entry) -> EntryKind:
    if entry.link_type is not None:
        return EntryKind(entry.link_type.value)
    return EntryKind.DIRECTORY if entry.is_directory else EntryKind.FILE


def is_selected(entry: Entry, criterion: RetentionCriterion) -> bool:
    return entry_time(entry, criterion.property) <= criterion.cutoff


def select_entries(entries: Iterable[Entry], criterion: RetentionCriterion) -> list[Entry]:
    return [entry for entry in entries if is_selected(entry, criterion)]


def is_archive(path: Path) -> bool:
    return path.suffix.lower() == ARCHIVE_SUFFIX


def archive_destination(path: Path, destination: Optional[Path] = None) -> Path:
    return (destination if destination is not None else path.parent) / (path.stem + ARCHIVE_SUFFIX)


# Results


@dataclass(frozen=True)
class ActionResult:
    entry: Entry
    kind: EntryKind
    property: TimeProperty
    value: datetime
    cutoff: datetime
    action: Action
    destination: Optional[Path] = None

    @classmethod
    def for_entry(cls, entry: Entry, criterion: RetentionCriterion, action: Action, destination: Optional[Path] = None) -> "ActionResult":
        return cls(entry, classify_entry(entry), criterion.property, entry_time(entry, criterion.property), criterion.cutoff, action, destination)


@dataclass(frozen=True)
class ItemFailure:
    path: Path
    action: Action
    message: str


@dataclass
class ActionReport:
    results: list[ActionResult] = field(default_factory=list)
    failures: list[ItemFailure] = field(default_factory=list)
    missing_roots: list[Path] = field(default_factory=list)


def format_result(result: ActionResult) -> str:
    columns = [
        result.action.value,
        result.kind.value,
        result.property.value,
        result.value.isoformat(sep=" ", timespec="seconds"),
        result.cutoff.isoformat(sep=" ", timespec="seconds"),
        str(result.entry.path) + (f" -> {result.destination}" if result.destination is not None else ""),
    ]
    return "\t".join(columns)


# Collaborators


def list_entries(root: Path) -> list[Entry]:
    """Direct children of ``root`` (hidden ones included), sorted by name. Links are never followed."""
    base = Path(root)
    if not base.exists():
        raise PathNotFound(f"Path not found: {base}")
    if not base.is_dir():
        raise PathNotFound(f"Path is not a directory: {base}")

    entries: list[Entry] = []
    with os.scandir(base) as iterator:
        for dir_entry in iterator:
            st = dir_entry.stat(follow_symlinks=False)
            is_directory = dir_entry.is_dir(follow_symlinks=False)
            link_type: Optional[LinkType] = None
            if dir_entry.is_junction():
                link_type = LinkType.JUNCTION
            elif dir_entry.is_symlink():
                link_type = LinkType.SYMBOLIC_LINK
            elif not is_directory and st.st_nlink > 1:
                link_type = LinkType.HARD_LINK
            entries.append(Entry.from_stat(Path(dir_entry.path), st, is_directory, link_type))
    return sorted(entries, key=lambda e: e.path.name)


def _retry_writable(func: Callable[[Any], None], path: Any) -> None:
    # Add the write bit (read-only files on Windows), restore the original mode if the retry fails too
    mode = stat.S_IMODE(os.lstat(path).st_mode)
    os.chmod(path, mode | stat.S_IWRITE)
    try:
        func(path)
    except OSError:
        os.chmod(path, mode)
        raise


def _force_remove(func: Callable[[str], None], path: str, exc: BaseException) -> None:
    if isinstance(exc, FileNotFoundError):
        return  # vanished while removing the tree
    if not isinstance(exc, PermissionError):
        raise exc
    _retry_writable(func, path)


class FileSystemMutator:
    def remove(self, entry: Entry) -> None:
        try:
            kind = classify_entry(entry)
            if kind is EntryKind.DIRECTORY:
                shutil.rmtree(entry.path, onexc=_force_remove)
            elif kind in (EntryKind.FILE, EntryKind.HARD_LINK):
                try:
                    entry.path.unlink()
                except PermissionError:
                    _retry_writable(Path.unlink, entry.path)
            else:
                entry.path.unlink()  # the link itself, never its target
        except FileNotFoundError:
            raise
        except OSError as e:
            raise IOFailure(entry.path, f"Error while deleting '{entry.path}': {e}") from e

    def _write_entry(self, archive: zipfile.ZipFile, source: Path, skip: set[Path]) -> None:
        archive.write(source, arcname=source.name)
        if not source.is_dir() or source.is_symlink() or source.is_junction():
            return
        for dirpath, dirnames, filenames in os.walk(source):
            dirnames.sort()
            current = Path(dirpath)
            for name in dirnames:
                archive.write(current / name, arcname=(current / name).relative_to(source.parent))
            for name in sorted(filenames):
                file = current / name
                if file.absolute() in skip:
                    continue
                archive.write(file, arcname=file.relative_to(source.parent))

    def create_archive(self, source: Entry, destination: Path, level: CompressionLevel) -> Path:
        partial = destination.with_name(f".{destination.name}.partial")
        compression, compresslevel = level.zip_settings()
        try:
            with zipfile.ZipFile(partial, "w", compression=compression, compresslevel=compresslevel, strict_timestamps=False) as archive:
                self._write_entry(archive, source.path, {partial.absolute(), destination.absolute()})
            os.replace(partial, destination)
        except FileNotFoundError:
            partial.unlink(missing_ok=True)
            raise
        except OSError as e:
            partial.unlink(missing_ok=True)
            raise IOFailure(source.path, f"Error while compressing '{source.path}': {e}") from e
        return destination


ConfirmationGate = Callable[[Entry, Action], bool]


def auto_confirm(entry: Entry, action: Action) -> bool:  # noqa: ARG001
    return True


class InteractiveConfirmation:
    """Asks once per entry and action; answering 'a' confirms every remaining action."""

    def __init__(self, input_stream: Optional[TextIO] = None, output_stream: Optional[TextIO] = None) -> None:
        self._input = input_stream or sys.stdin
        self._output = output_stream or sys.stderr
        self._confirm_all = False

    def __call__(self, entry: Entry, action: Action) -> bool:
        if self._confirm_all:
            return True
        print(f"{action.value} '{entry.path}'? [y]es, [n]o, [a]ll: ", end="", file=self._output, flush=True)
        answer = self._input.readline().strip().lower()
        if answer in ("a", "all"):
            self._confirm_all = True
            return True
        return answer in ("y", "yes")


# Actors


def _skip_vanished(logger: Logger, entry: Entry) -> None:
    # Removed by someone else between listing and action, not an error
    logger.verbose(LogLevel.DEBUG, f"Skipping '{entry.path}': no longer exists")
    logger.add_decision(LogLevel.INFO, entry.path, "Skipped: no longer exists")


class DeletionActor:
    def __init__(self, logger: Logger, mutator: Optional[FileSystemMutator] = None, confirm: ConfirmationGate = auto_confirm, dry_run: bool = False) -> None:
        self._logger = logger
        self._mutator = mutator or FileSystemMutator()
        self._confirm = confirm
        self._dry_run = dry_run

    def delete(self, entry: Entry, criterion: RetentionCriterion, report: ActionReport) -> Optional[ActionResult]:
        if not os.path.lexists(entry.path):
            _skip_vanished(self._logger, entry)
            return None
        value = entry_time(entry, criterion.property)
        if self._dry_run:
            self._logger.verbose(LogLevel.INFO, f"DRY-RUN DELETE: {entry.path} ({criterion.property.value}: {value})")
            return None
        if not self._confirm(entry, Action.DELETE):
            self._logger.add_decision(LogLevel.INFO, entry.path, "Skipped: deletion not confirmed")
            return None
        self._logger.verbose(LogLevel.INFO, f"DELETING: {entry.path} ({criterion.property.value}: {value})")
        try:
            self._mutator.remove(entry)
        except OSError as e:  # Catch deletion error, report it, and continue with the next entry
            if not os.path.lexists(entry.path):
                _skip_vanished(self._logger, entry)
                return None
            self._logger.verbose(LogLevel.WARN, str(e) if isinstance(e, IOFailure) else f"Error while deleting '{entry.path}': {e}")
            self._logger.add_decision(LogLevel.INFO, entry.path, "Deletion failed", debug=str(e))
            report.failures.append(ItemFailure(entry.path, Action.DELETE, str(e)))
            return None
        result = ActionResult.for_entry(entry, criterion, Action.DELETE)
        self._logger.add_decision(LogLevel.INFO, entry.path, f"Deleted ({criterion.property.value}: {value})", debug=f"cutoff: {criterion.cutoff}")
        report.results.append(result)
        return result

    def run(self, entries: Iterable[Entry], criterion: RetentionCriterion, report: Optional[ActionReport] = None) -> ActionReport:
        report = report if report is not None else ActionReport()
        for entry in select_entries(entries, criterion):
            self.delete(entry, criterion, report)
        return report


class ArchivalActor:
    def __init__(
        self,
        logger: Logger,
        mutator: Optional[FileSystemMutator] = None,
        destination: Optional[Path] = None,
        remove_after: bool = False,
        level: CompressionLevel = CompressionLevel.OPTIMAL,
        confirm: ConfirmationGate = auto_confirm,
        dry_run: bool = False,
    ) -> None:
        self._logger = logger
        self._mutator = mutator or FileSystemMutator()
        self._destination = destination
        self._remove_after = remove_after
        self._level = level
        self._confirm = confirm
        self._dry_run = dry_run

    def _fail(self, entry: Entry, message: str, report: ActionReport) -> None:
        self._logger.verbose(LogLevel.WARN, message)
        self._logger.add_decision(LogLevel.INFO, entry.path, "Compression failed", debug=message)
        report.failures.append(ItemFailure(entry.path, Action.COMPRESS, message))

    def _remove_source(self, entry: Entry, report: ActionReport) -> None:
        try:
            self._mutator.remove(entry)
        except OSError as e:
            if not os.path.lexists(entry.path):
                return
            self._fail(entry, f"Archive written, but source could not be removed: {e}", report)

    def compress(self, entry: Entry, criterion: RetentionCriterion, report: ActionReport) -> Optional[ActionResult]:
        if is_archive(entry.path):
            self._logger.add_decision(LogLevel.INFO, entry.path, "Skipped: already an archive")
            return None
        if not os.path.lexists(entry.path):
            _skip_vanished(self._logger, entry)
            return None
        target = archive_destination(entry.path, self._destination)
        value = entry_time(entry, criterion.property)
        if self._dry_run:
            self._logger.verbose(LogLevel.INFO, f"DRY-RUN COMPRESS: {entry.path} -> {target} ({criterion.property.value}: {value})")
            return None
        if not self._confirm(entry, Action.COMPRESS):
            self._logger.add_decision(LogLevel.INFO, entry.path, "Skipped: compression not confirmed")
            return None
        self._logger.verbose(LogLevel.INFO, f"COMPRESSING: {entry.path} -> {target} ({criterion.property.value}: {value})")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            self._mutator.create_archive(entry, target, self._level)
        except OSError as e:
            if not os.path.lexists(entry.path):
                _skip_vanished(self._logger, entry)
                return None
            self._fail(entry, str(e) if isinstance(e, IOFailure) else f"Error while compressing '{entry.path}': {e}", report)
            return None
        result = ActionResult.for_entry(entry, criterion, Action.COMPRESS, target)
        self._logger.add_decision(LogLevel.INFO, entry.path, f"Compressed to '{target}'", debug=f"{criterion.property.value}: {value}, cutoff: {criterion.cutoff}")
        report.results.append(result)
        if self._remove_after:
            self._remove_source(entry, report)
        return result

    def run(self, entries: Iterable[Entry], criterion: RetentionCriterion, report: Optional[ActionReport] = None) -> ActionReport:
        report = report if report is not None else ActionReport()
        for entry in select_entries(entries, criterion):
            self.compress(entry, criterion, report)
        return report


# Rotation


@dataclass(frozen=True)
class RotationPolicy:
    compression: Optional[RetentionCriterion] = None
    deletion: Optional[RetentionCriterion] = None
    destination: Optional[Path] = None
    remove_after_compression: bool = True
    compression_level: CompressionLevel = CompressionLevel.OPTIMAL

    @classmethod
    def from_ages(
        cls,
        time_property: TimeProperty,
        unit: TimeUnit,
        compression: Optional[int] = None,
        deletion: Optional[int] = None,
        now: Optional[datetime] = None,
        **options,  # noqa: ANN003
    ) -> "RotationPolicy":
        now = now or datetime.now()  # one anchor for both cutoffs
        policy = cls(
            compression=RetentionCriterion.from_age(time_property, unit, compression, now) if compression is not None else None,
            deletion=RetentionCriterion.from_age(time_property, unit, deletion, now) if deletion is not None else None,
            **options,
        )
        policy.validate()
        return policy

    def validate(self) -> None:
        if self.compression is None and self.deletion is None:
            raise ValidationError("At least one of compression or deletion threshold must be given")
        if self.compression is not None and self.deletion is not None and not self.compression.cutoff > self.deletion.cutoff:
            raise ValidationError(f"Compression cutoff ({self.compression.cutoff}) must be more recent than deletion cutoff ({self.deletion.cutoff})")


Lister = Callable[[Path], list[Entry]]


class RotationEngine:
    """Deletes entries older than the deletion cutoff, then archives what is left and older than the compression cutoff.

    Every root is listed exactly once, before anything is mutated, so a missing root aborts the whole run.
    Per entry, deletion always comes first; archival only happens if the entry still exists afterwards.
    """

    def __init__(
        self,
        policy: RotationPolicy,
        logger: Logger,
        lister: Lister = list_entries,
        mutator: Optional[FileSystemMutator] = None,
        confirm: ConfirmationGate = auto_confirm,
        dry_run: bool = False,
    ) -> None:
        self._policy = policy
        self._logger = logger
        self._lister = lister
        self._dry_run = dry_run
        mutator = mutator or FileSystemMutator()
        self._deletion = DeletionActor(logger, mutator, confirm, dry_run)
        self._archival = ArchivalActor(logger, mutator, policy.destination, policy.remove_after_compression, policy.compression_level, confirm, dry_run)

    def _process_entry(self, entry: Entry, report: ActionReport) -> None:
        deletion, compression = self._policy.deletion, self._policy.compression

        # Archives are the output of a rotation and are left alone, whatever their age
        if is_archive(entry.path):
            self._logger.add_decision(LogLevel.INFO, entry.path, "Skipped: already an archive")
            return

        if deletion is not None and is_selected(entry, deletion):
            self._deletion.delete(entry, deletion, report)
            if self._dry_run:
                return  # would have been deleted

        if compression is None or not os.path.lexists(entry.path):
            return
        if is_selected(entry, compression):
            self._archival.compress(entry, compression, report)
        else:
            self._logger.add_decision(LogLevel.INFO, entry.path, "Kept: newer than cutoff", debug=compression.describe())

    def run(self, roots: Sequence[Path]) -> ActionReport:
        self._policy.validate()
        listings = [(Path(root), self._lister(Path(root))) for root in roots]

        report = ActionReport()
        for root, entries in listings:
            self._logger.verbose(LogLevel.INFO, f"Found {len(entries)} entries in '{root}'")
            self._logger.verbose(LogLevel.DEBUG, "Entries found: " + ", ".join(f'"{e.path.name}"' for e in entries))
            for entry in entries:
                self._process_entry(entry, report)
        return report


# Operations


def rotate(
    paths: Sequence[Path],
    time_property: TimeProperty = TimeProperty.CREATION_TIME,
    unit: TimeUnit = TimeUnit.DAY,
    compression: Optional[int] = None,
    deletion: Optional[int] = None,
    level: CompressionLevel = CompressionLevel.OPTIMAL,
    destination: Optional[Path] = None,
    remove_after: bool = True,
    logger: Optional[Logger] = None,
    now: Optional[datetime] = None,
    **collaborators,  # noqa: ANN003
) -> ActionReport:
    policy = RotationPolicy.from_ages(time_property, unit, compression, deletion, now, destination=destination, remove_after_compression=remove_after, compression_level=level)
    return RotationEngine(policy, logger or Logger(), **collaborators).run(paths)


def _run_standalone(paths: Sequence[Path], criterion: RetentionCriterion, actor: DeletionActor | ArchivalActor, logger: Logger, lister: Lister) -> ActionReport:
    report = ActionReport()
    for root in paths:
        try:
            entries = lister(Path(root))
        except PathNotFound as e:
            logger.verbose(LogLevel.ERROR, str(e))
            report.missing_roots.append(Path(root))
            continue
        logger.verbose(LogLevel.INFO, f"Found {len(entries)} entries in '{root}'")
        actor.run(entries, criterion, report)
    return report


def remove(
    paths: Sequence[Path],
    criterion: RetentionCriterion,
    logger: Optional[Logger] = None,
    lister: Lister = list_entries,
    mutator: Optional[FileSystemMutator] = None,
    confirm: ConfirmationGate = auto_confirm,
    dry_run: bool = False,
) -> ActionReport:
    logger = logger or Logger()
    return _run_standalone(paths, criterion, DeletionActor(logger, mutator, confirm, dry_run), logger, lister)


def compress(
    paths: Sequence[Path],
    criterion: RetentionCriterion,
    destination: Optional[Path] = None,
    remove_after: bool = False,
    level: CompressionLevel = CompressionLevel.OPTIMAL,
    logger: Optional[Logger] = None,
    lister: Lister = list_entries,
    mutator: Optional[FileSystemMutator] = None,
    confirm: ConfirmationGate = auto_confirm,
    dry_run: bool = False,
) -> ActionReport:
    logger = logger or Logger()
    actor = ArchivalActor(logger, mutator, destination, remove_after, level, confirm, dry_run)
    return _run_standalone(paths, criterion, actor, logger, lister)


# Command line


class ModernHelpFormatter(argparse.HelpFormatter):
    @no_type_check
    def __init__(self, *a, **kw) -> None:  # noqa: ANN002, ANN003
        super().__init__(*a, max_help_position=30, width=160, **kw)

    @no_type_check
    def start_section(self, heading) -> None:  # noqa: ANN001
        super().start_section(heading.capitalize())


class ModernStrictArgumentParser(argparse.ArgumentParser):
    @no_type_check
    def __init__(self, *a, **kw) -> None:  # noqa: ANN002, ANN003
        super().__init__(*a, **kw)
        self._errors: list[str] = []

    def add_error(self, msg: str) -> None:
        if msg not in self._errors:
            self._errors.append(msg)

    def error(self, message: str) -> NoReturn:
        self.print_usage(sys.stderr)
        print("\nError(s):", file=sys.stderr)
        for line in message.split("\n"):
            print(f"  • {line}", file=sys.stderr)
        print("\nHint: Try '--help' for more information.", file=sys.stderr)
        sys.exit(2)

    # Argument type helpers
    def positive_int_argument(self, value: str) -> int:
        try:
            int_value = int(value)
            if int_value <= 0:
                raise ValueError
        except ValueError:
            raise argparse.ArgumentTypeError(f"Invalid value '{value}': must be an integer > 0")
        return int_value

    def verbose_argument(self, value: str) -> LogLevel:
        try:
            return LogLevel.from_name_or_number(value)
        except ValueError:
            raise argparse.ArgumentTypeError(f"Invalid verbose value '{value}' (use ERROR, WARN, INFO, DEBUG or 0, 1, 2, 3)")

    def time_property_argument(self, value: str) -> TimeProperty:
        try:
            return TimeProperty.from_name(value)
        except ValueError:
            raise argparse.ArgumentTypeError(f"Invalid property '{value}' (use {', '.join(p.value for p in TimeProperty)})")

    def time_unit_argument(self, value: str) -> TimeUnit:
        try:
            return TimeUnit.from_name(value)
        except ValueError:
            raise argparse.ArgumentTypeError(f"Invalid unit '{value}' (use {', '.join(u.value for u in TimeUnit)})")

    def compression_level_argument(self, value: str) -> CompressionLevel:
        try:
            return CompressionLevel.from_name(value)
        except ValueError:
            raise argparse.ArgumentTypeError(f"Invalid compression level '{value}' (use {', '.join(c.value for c in CompressionLevel)})")

    # Internal helper methods
    def _suggest(self, argument: str) -> list[str]:
        opts = [o for a in self._actions for o in a.option_strings if o.startswith("--")]
        cand = [o for o in opts if abs(len(o) - len(argument)) <= 2 and sum(a != b for a, b in zip(o, argument)) <= 2]
        return cand[:1]

    @no_type_check
    def _collect_raw_args(self, args):  # noqa: ANN202, ANN001
        if args is not None:
            return list(args)
        return sys.argv[1:]  # default argparse behavior

    @no_type_check
    def _detect_duplicate_flags(self, raw_args) -> None:  # noqa: ANN001
        # Normalize option strings
        alias = {opt: action.option_strings[0] for action in self._actions for opt in action.option_strings}
        seen = set()

        for tok in raw_args:
            if not tok.startswith("-"):
                continue

            # Extract option (handles -n3, -n=3, --x=5)
            opt = tok.split("=", 1)[0]

            # Handle -n3 → -n
            if len(opt) > 2 and opt.startswith("-") and not opt.startswith("--"):
                opt = opt[:2]

            key = alias.get(opt, opt)

            if key in seen:
                self.add_error(f"Duplicate flag: {key}")
            seen.add(key)

    @no_type_check
    def _validate_arguments(self, ns) -> None:  # noqa: ANN001
        # Sub command parsers only see their own arguments, validation happens once on the complete namespace
        if not hasattr(ns, "command"):
            return

        # Default verbosity, if none given
        if ns.verbose is None:
            ns.verbose = LogLevel.WARN

        # dry-run implies verbose
        if ns.dry_run and ns.verbose < LogLevel.INFO:
            ns.verbose = LogLevel.INFO

        if ns.command == "rotate" and ns.compress_after is None and ns.delete_after is None:
            self.add_error("At least one of --compress-after or --delete-after must be given")

        if ns.command == "rotate" and ns.compress_after is not None and ns.delete_after is not None and ns.compress_after >= ns.delete_after:
            self.add_error(f"--compress-after ({ns.compress_after}) must be less than --delete-after ({ns.delete_after})")

    # Main hook
    @no_type_check
    def parse_known_args(self, args=None, namespace=None) -> tuple[argparse.Namespace, list[str]]:  # noqa: ANN001
        self._errors = []
        raw_args = self._collect_raw_args(args)
        self._detect_duplicate_flags(raw_args)

        ns, unknown = super().parse_known_args(raw_args, namespace or argparse.Namespace())

        if unknown:
            sug = self._suggest(unknown[0])
            if sug:
                self.add_error(f"Unknown option: {unknown[0]} (did you mean {sug[0]}?)")
            else:
                self.add_error(f"Unknown option: {unknown[0]}")

        self._validate_arguments(ns)

        if self._errors:
            msg = "\n".join(f"{e}" for e in self._errors)
            self.error(msg)

        return ns, unknown


def _add_selection_arguments(parser: ModernStrictArgumentParser) -> None:
    g_sel = parser.add_argument_group("Selection arguments")
    # fmt: off
    g_sel.add_argument("--property", "-p", type=parser.time_property_argument, default=TimeProperty.CREATION_TIME, metavar="prop",
        help="Time attribute compared against the cutoff: CreationTime, LastWriteTime, LastAccessTime (default: CreationTime)")
    g_sel.add_argument("--unit", "-u", type=parser.time_unit_argument, default=TimeUnit.DAY, metavar="unit",
        help="Unit of the age values: Year, Month, Day, Hour, Minute, Second, Millisecond (default: Day)")
    # fmt: on


def _add_common_arguments(parser: ModernStrictArgumentParser) -> None:
    g_behavior = parser.add_argument_group("Behavior arguments")
    g_common = parser.add_argument_group("Common arguments")

    g_behavior.add_argument("--dry-run", "-X", action="store_true", help="Show planned actions but do not change anything")
    # fmt: off
    g_behavior.add_argument("--verbose", "-V", "-v", type=parser.verbose_argument, default=None, nargs="?", const=LogLevel.INFO, metavar="lev",
        help="Verbosity level: 0 = error, 1 = warn, 2 = info, 3 = debug (default: 'info', if specified without value; 'warn' otherwise; use numbers or names)")
    # fmt: on
    g_behavior.add_argument("--fail-on-error", action="store_true", help="Exit with an error code if any entry could not be processed")

    g_common.add_argument("--help", "-H", action="help", help="Show this help message and exit")
    g_common.add_argument("--stacktrace", action="store_true", help=argparse.SUPPRESS)


def _add_standalone_threshold_arguments(parser: ModernStrictArgumentParser) -> None:
    g_threshold = parser.add_argument_group("Threshold arguments")
    exclusive = g_threshold.add_mutually_exclusive_group(required=True)
    exclusive.add_argument("--older-than", "-n", type=parser.positive_int_argument, metavar="N", help="Select entries older than N units")
    exclusive.add_argument("--before", "-b", type=str, metavar="timestamp", help="Select entries at or before the given timestamp (e.g. 2024-03-31, '2024-03-31 12:00')")


def create_parser() -> ModernStrictArgumentParser:
    parser: ModernStrictArgumentParser = ModernStrictArgumentParser(
        prog="rotations",
        description=f"rotations {VERSION}\n\nA small cross-platform CLI tool to delete or archive directory entries by age",
        usage=("rotations {rotate,remove,compress} path [path ...] [options]\n\nExample:\n  rotations rotate /var/log/myapp --unit Day --compress-after 30 --delete-after 365"),
        epilog="Use with caution!! This tool deletes files unless --dry-run is set.",
        formatter_class=ModernHelpFormatter,
        add_help=False,
    )
    g_common = parser.add_argument_group("Common arguments")
    g_common.add_argument("--version", "-R", action="version", version=f"%(prog)s {VERSION}")
    g_common.add_argument("--help", "-H", action="help", help="Show this help message and exit")

    commands = parser.add_subparsers(dest="command", metavar="command", required=True)

    # rotate
    p_rotate = commands.add_parser("rotate", help="Delete old entries and archive the remaining older ones", formatter_class=ModernHelpFormatter, add_help=False)
    p_rotate.add_argument("paths", nargs="+", type=Path, metavar="path", help="Directories whose direct children are rotated")
    _add_selection_arguments(p_rotate)
    g_ret = p_rotate.add_argument_group("Rotation arguments")
    g_ret.add_argument("--compress-after", "-c", type=p_rotate.positive_int_argument, metavar="N", help="Archive entries older than N units")
    g_ret.add_argument("--delete-after", "-d", type=p_rotate.positive_int_argument, metavar="N", help="Delete entries older than N units (must be more than --compress-after)")
    g_ret.add_argument("--destination", "-D", type=Path, metavar="dir", help="Directory for archives (default: next to the archived entry)")
    g_ret.add_argument("--keep-original", action="store_false", dest="remove_after", default=True, help="Keep archived entries (default: removed after archiving)")
    g_ret.add_argument("--level", "-C", type=p_rotate.compression_level_argument, default=CompressionLevel.OPTIMAL, metavar="level", help="Compression level: Optimal, Fastest, NoCompression (default: Optimal)")
    g_ret.add_argument("--confirm", action="store_true", default=ROTATE_CONFIRM_DEFAULT, help="Ask before each deletion or compression")
    _add_common_arguments(p_rotate)

    # remove
    p_remove = commands.add_parser("remove", help="Delete entries older than a threshold", formatter_class=ModernHelpFormatter, add_help=False)
    p_remove.add_argument("paths", nargs="+", type=Path, metavar="path", help="Directories whose direct children are checked")
    _add_selection_arguments(p_remove)
    _add_standalone_threshold_arguments(p_remove)
    p_remove.add_argument("--yes", "-y", action="store_false", dest="confirm", default=STANDALONE_CONFIRM_DEFAULT, help="Do not ask before each deletion")
    _add_common_arguments(p_remove)

    # compress
    p_compress = commands.add_parser("compress", help="Archive entries older than a threshold", formatter_class=ModernHelpFormatter, add_help=False)
    p_compress.add_argument("paths", nargs="+", type=Path, metavar="path", help="Directories whose direct children are checked")
    _add_selection_arguments(p_compress)
    _add_standalone_threshold_arguments(p_compress)
    g_arch = p_compress.add_argument_group("Archive arguments")
    g_arch.add_argument("--destination", "-D", type=Path, metavar="dir", help="Directory for archives (default: next to the archived entry)")
    g_arch.add_argument("--remove-source", action="store_true", dest="remove_after", help="Delete entries after archiving them")
    g_arch.add_argument("--level", "-C", type=p_compress.compression_level_argument, default=CompressionLevel.OPTIMAL, metavar="level", help="Compression level: Optimal, Fastest, NoCompression (default: Optimal)")
    g_arch.add_argument("--yes", "-y", action="store_false", dest="confirm", default=STANDALONE_CONFIRM_DEFAULT, help="Do not ask before each compression")
    _add_common_arguments(p_compress)

    return parser


def parse_arguments(argv: Optional[Sequence[str]] = None) -> ConfigNamespace:
    parser = create_parser()
    args = parser.parse_args(argv)
    return ConfigNamespace(**vars(args))


def build_criterion(args: ConfigNamespace, now: Optional[datetime] = None) -> RetentionCriterion:
    if args.before is not None:
        return RetentionCriterion.from_timestamp(args.property, args.before)
    return RetentionCriterion.from_age(args.property, args.unit, args.older_than, now)


def run_command(args: ConfigNamespace, logger: Logger, now: Optional[datetime] = None) -> ActionReport:
    now = now or datetime.now()  # all cutoffs of one invocation share the same instant
    confirm: ConfirmationGate = InteractiveConfirmation() if args.confirm and not args.dry_run else auto_confirm
    if args.command == "rotate":
        return rotate(
            args.paths,
            args.property,
            args.unit,
            compression=args.compress_after,
            deletion=args.delete_after,
            level=args.level,
            destination=args.destination,
            remove_after=args.remove_after,
            logger=logger,
            now=now,
            confirm=confirm,
            dry_run=args.dry_run,
        )
    criterion = build_criterion(args, now)
    logger.verbose(LogLevel.DEBUG, f"Selecting entries with {criterion.describe()}")
    if args.command == "remove":
        return remove(args.paths, criterion, logger=logger, confirm=confirm, dry_run=args.dry_run)
    if args.command == "compress":
        return compress(args.paths, criterion, args.destination, args.remove_after, args.level, logger=logger, confirm=confirm, dry_run=args.dry_run)
    raise ValueError(f"Invalid command: {args.command}")


def handle_exception(exception: Exception, exit_code: int, stacktrace: bool, prefix: str = "") -> None:
    if stacktrace:
        traceback.print_exc()
    print(f"[{prefix or LogLevel.ERROR.name}] {exception}", file=sys.stderr)
    sys.exit(exit_code)


def main(argv: Optional[Sequence[str]] = None) -> None:
    args: Optional[ConfigNamespace] = None

    try:
        args = parse_arguments(argv)
        logger = Logger(args.verbose)

        logger.verbose(LogLevel.DEBUG, f"Parsed arguments: {args}")

        report = run_command(args, logger)

        logger.print_decisions()

        for result in report.results:
            print(format_result(result))

        logger.verbose(LogLevel.INFO, f"Total entries deleted:    {sum(1 for r in report.results if r.action is Action.DELETE):03d}")
        logger.verbose(LogLevel.INFO, f"Total entries compressed: {sum(1 for r in report.results if r.action is Action.COMPRESS):03d}")
        logger.verbose(LogLevel.INFO, f"Total entries failed:     {len(report.failures):03d}")

        if report.missing_roots:
            raise PathNotFound("Path(s) not found: " + ", ".join(str(p) for p in report.missing_roots))
        if report.failures and args.fail_on_error:
            raise BatchFailedError(f"{len(report.failures)} entries could not be processed: " + ", ".join(str(f.path) for f in report.failures))

    except OSError as e:
        handle_exception(e, 1, args.stacktrace if args is not None else True)
    except ValueError as e:
        handle_exception(e, 2, args.stacktrace if args is not None else True)
    except BatchFailedError as e:
        handle_exception(e, 4, args.stacktrace if args is not None else True)
    except Exception as e:
        handle_exception(e, 9, args.stacktrace if args is not None else True, prefix="UNEXPECTED ERROR")


if __name__ == "__main__":
    main()
