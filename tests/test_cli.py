import json

import pytest

from cleancopy import cli
from cleancopy.config import ClassifierProvider, config
from cleancopy.utils import format_bytes, top_extensions
from tests.builders import write_file


@pytest.fixture(autouse=True)
def restore_config():
    saved = (config.classifier.provider, config.classifier.url,
             config.classifier.max_concurrent_requests, config.classifier.flag_threshold)
    yield
    (config.classifier.provider, config.classifier.url,
     config.classifier.max_concurrent_requests, config.classifier.flag_threshold) = saved


@pytest.mark.parametrize(
    "size, expected",
    [(0, "0 B"), (512, "512 B"), (1536, "1.5 KB"), (5 * 1024 * 1024, "5 MB"), (1024 ** 3, "1 GB")],
)
def test_format_bytes(size, expected):
    assert format_bytes(size) == expected


def test_top_extensions_orders_by_count():
    assert top_extensions({".b": 1, ".a": 1, ".c": 3, "": 2}) == [(".c", 3), ("(none)", 2), (".a", 1), (".b", 1)]


def test_missing_source_is_a_setup_error(capsys):
    assert cli.main([]) == cli.EXIT_SETUP
    assert "--source" in capsys.readouterr().err


def test_bad_threshold_rejected():
    assert cli.main(["--source", ".", "--threshold", "2"]) == cli.EXIT_SETUP


def test_overrides_update_config():
    args = cli._build_parser().parse_args(
        ["--source", "x", "--no-safety", "--concurrency", "3", "--classifier-url", "http://h/c"]
    )
    cli._apply_overrides(args)
    assert config.classifier.provider is ClassifierProvider.NONE
    assert config.classifier.max_concurrent_requests == 3
    assert config.classifier.url == "http://h/c"


def test_scan_and_copy_without_safety(tmp_path, capsys, monkeypatch):
    monkeypatch.setattr(config.classifier, "thumbnail_dir", tmp_path / "thumbs")
    src = tmp_path / "CARD"
    write_file(src / "a.mp3", 10)
    write_file(src / "notes.txt", 5)
    write_file(src / "blob.bin", 1)
    dest = tmp_path / "backup"

    code = cli.main(["--source", str(src), "--destination", str(dest), "--no-safety", "--yes", "--json-progress"])

    assert code == cli.EXIT_OK
    out = capsys.readouterr().out
    summary = json.loads(out[: out.index("}\n{") + 1])
    assert summary["counts"]["Audio"] == 1
    assert summary["selected"] == 3
    backup = next(dest.iterdir())
    assert sorted(p.name for p in backup.iterdir()) == ["Audio", "Documents"]
