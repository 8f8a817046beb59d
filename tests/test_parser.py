"""Tests for the argument parser."""

import argparse
from pathlib import Path

import pytest

from rotations import (
    STANDALONE_CONFIRM_DEFAULT,
    CompressionLevel,
    LogLevel,
    ModernStrictArgumentParser,
    TimeProperty,
    TimeUnit,
    create_parser,
    parse_arguments,
)


@pytest.mark.parametrize(
    "argv",
    [
        ["rotate", ".", "-c", "1", "-c", "2"],  # duplicate short flag
        ["rotate", ".", "--delete-after", "1", "--delete-after", "2"],  # duplicate long flag
        ["rotate", ".", "-c", "1", "--compress-after", "2"],  # combined long and short flag
        ["remove", ".", "-n", "1", "-n2"],  # attached value
    ],
)
def test_duplicate_flags_raise_system_exit(argv) -> None:
    """Providing the same flag twice should cause the parser to exit with an error."""
    with pytest.raises(SystemExit) as exc:
        create_parser().parse_known_args(argv)
    assert exc.value.code == 2


@pytest.mark.parametrize(
    "argv, suggest, error",
    [
        (["rotate", ".", "-c", "3", "--unknown-option"], None, "Unknown option: --unknown-option"),
        (["rotate", ".", "-c", "3", "--levle", "Fastest"], "level?", None),
        (["remove", ".", "-n", "3", "--yse"], "yes?", None),
    ],
)
def test_unknown_option_suggestion_or_error(argv, suggest, error, capsys: pytest.CaptureFixture[str]) -> None:
    """Unknown options should result in SystemExit with an appropriate error message."""
    with pytest.raises(SystemExit) as exc:
        create_parser().parse_known_args(argv)
    assert exc.value.code == 2
    captured = capsys.readouterr()
    if suggest:
        assert "did you mean --" + suggest in captured.err
    else:
        assert "did you mean" not in captured.err
    if error:
        assert error in captured.err


@pytest.mark.parametrize(
    "argv, error",
    [
        (["rotate", "."], "At least one of --compress-after or --delete-after must be given"),
        (["rotate", ".", "-c", "9", "-d", "6"], "--compress-after (9) must be less than --delete-after (6)"),
        (["rotate", ".", "-c", "6", "-d", "6"], "must be less than"),
        (["rotate", ".", "-c", "0"], "must be an integer > 0"),
        (["rotate", ".", "-c", "3", "--unit", "Fortnight"], "Invalid unit 'Fortnight'"),
        (["rotate", ".", "-c", "3", "--property", "BirthTime"], "Invalid property 'BirthTime'"),
        (["rotate", ".", "-c", "3", "--level", "Maximum"], "Invalid compression level 'Maximum'"),
        (["remove", "."], "one of the arguments"),
        (["compress", ".", "-n", "3", "--before", "2024-01-01"], "not allowed with argument"),
        (["remove", ".", "-n", "3", "-V", "LOUD"], "Invalid verbose value 'LOUD'"),
        (["rotate"], "required"),
        ([], "required"),
    ],
)
def test_invalid_arguments(argv, error, capsys: pytest.CaptureFixture[str]) -> None:
    with pytest.raises(SystemExit) as exc:
        create_parser().parse_known_args(argv)
    assert exc.value.code == 2
    assert error in capsys.readouterr().err


def test_rotate_defaults() -> None:
    args = parse_arguments(["rotate", "/var/log/a", "/var/log/b", "-d", "30"])
    assert args.command == "rotate"
    assert args.paths == [Path("/var/log/a"), Path("/var/log/b")]
    assert args.property is TimeProperty.CREATION_TIME
    assert args.unit is TimeUnit.DAY
    assert args.compress_after is None
    assert args.delete_after == 30
    assert args.level is CompressionLevel.OPTIMAL
    assert args.destination is None
    assert args.remove_after is True
    assert args.confirm is False
    assert args.dry_run is False
    assert args.verbose is LogLevel.WARN


def test_rotate_all_options() -> None:
    args = parse_arguments(
        ["rotate", ".", "-p", "mtime", "-u", "month", "-c", "6", "-d", "9", "-C", "nocompression", "-D", "/archive", "--keep-original", "--confirm", "-V"]
    )
    assert args.property is TimeProperty.LAST_WRITE_TIME
    assert args.unit is TimeUnit.MONTH
    assert (args.compress_after, args.delete_after) == (6, 9)
    assert args.level is CompressionLevel.NO_COMPRESSION
    assert args.destination == Path("/archive")
    assert args.remove_after is False
    assert args.confirm is True
    assert args.verbose is LogLevel.INFO


def test_standalone_defaults() -> None:
    remove_args = parse_arguments(["remove", ".", "--before", "2024-01-01"])
    assert remove_args.before == "2024-01-01"
    assert remove_args.older_than is None
    assert remove_args.confirm is STANDALONE_CONFIRM_DEFAULT

    compress_args = parse_arguments(["compress", ".", "-n", "3", "--remove-source", "-y", "-p", "LastAccessTime"])
    assert compress_args.older_than == 3
    assert compress_args.remove_after is True
    assert compress_args.confirm is False
    assert compress_args.property is TimeProperty.LAST_ACCESS_TIME


def test_dry_run_implies_info() -> None:
    args = parse_arguments(["remove", ".", "-n", "1", "--dry-run"])
    assert args.verbose is LogLevel.INFO
    args = parse_arguments(["remove", ".", "-n", "1", "--dry-run", "-V", "debug"])
    assert args.verbose is LogLevel.DEBUG


@pytest.mark.parametrize("value, expected", [("1", 1), ("42", 42), ("9999", 9999)])
def test_positive_int_argument_valid(value: str, expected: int) -> None:
    assert ModernStrictArgumentParser().positive_int_argument(value) == expected


@pytest.mark.parametrize("value", ["0", "-5", "abc", "4.2", "", " "])
def test_positive_int_argument_invalid(value: str) -> None:
    with pytest.raises(argparse.ArgumentTypeError):
        ModernStrictArgumentParser().positive_int_argument(value)


@pytest.mark.parametrize("value, expected", [("ctime", TimeProperty.CREATION_TIME), ("LASTWRITETIME", TimeProperty.LAST_WRITE_TIME), (" atime ", TimeProperty.LAST_ACCESS_TIME)])
def test_time_property_argument(value: str, expected: TimeProperty) -> None:
    assert ModernStrictArgumentParser().time_property_argument(value) is expected


def test_version(capsys: pytest.CaptureFixture[str]) -> None:
    with pytest.raises(SystemExit) as exc:
        create_parser().parse_known_args(["--version"])
    assert exc.value.code == 0
    assert "rotations" in capsys.readouterr().out
