import argparse
import os

import pytest
from openpyxl import load_workbook

from idcard_extractor.cli import main as cli_main
from idcard_extractor.errors import ServiceError


class _Client:
    def __init__(self, responses):
        self.responses = list(responses)

    def extract(self, image_bytes, mime_type, field_spec):
        outcome = self.responses.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


@pytest.fixture
def workdir(tmp_path, monkeypatch, image_bytes):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("IDCARD_PREVIEW_DIR", str(tmp_path / "previews"))
    monkeypatch.setenv("OPENROUTER_API_KEY", "sk-test")
    for name in ("alice.jpg", "bob.png"):
        (tmp_path / name).write_bytes(image_bytes("PNG" if name.endswith(".png") else "JPEG"))
    return tmp_path


def test_parse_field_arg():
    assert cli_main.parse_field_arg("Name:Arabic") == ("Name", "Arabic")
    assert cli_main.parse_field_arg("Expiry Date") == ("Expiry Date", "English")
    with pytest.raises(argparse.ArgumentTypeError):
        cli_main.parse_field_arg("Shoe Size")
    with pytest.raises(argparse.ArgumentTypeError):
        cli_main.parse_field_arg("Name:Latin")


def test_extract_writes_spreadsheet(workdir, monkeypatch):
    responses = [{"Name": "Alice", "Expiry Date": "2099-01-01"}, {"Name": "Bob", "Expiry Date": "2099-06-01"}]
    monkeypatch.setattr(cli_main, "create_client", lambda settings: _Client(responses))

    code = cli_main.main(["extract", "alice.jpg", "bob.png", "--field", "Name", "--field", "Expiry Date"])

    assert code == 0
    ws = load_workbook(workdir / "id_card_data.xlsx")["Extracted Data"]
    assert [list(r) for r in ws.iter_rows(values_only=True)] == [
        ["SL NO", "Name", "Expiry Date", "Days After Expiry"],
        [1, "Alice", "2099-01-01", 0],
        [2, "Bob", "2099-06-01", 0],
    ]
    assert list((workdir / "previews").iterdir()) == []


def test_extract_failure_exits_nonzero_without_output(workdir, monkeypatch):
    monkeypatch.setattr(
        cli_main, "create_client", lambda settings: _Client([{"Name": "Alice"}, ServiceError("down")])
    )
    code = cli_main.main(["extract", "alice.jpg", "bob.png", "--field", "Name", "--output", "out.xlsx"])
    assert code == 1
    assert not (workdir / "out.xlsx").exists()


def test_extract_rejects_unsupported_file(workdir, monkeypatch):
    (workdir / "notes.txt").write_text("hello", encoding="utf-8")
    monkeypatch.setattr(cli_main, "create_client", lambda settings: _Client([]))
    assert cli_main.main(["extract", "notes.txt"]) == 2


def test_unknown_field_is_a_usage_error():
    with pytest.raises(SystemExit):
        cli_main.build_parser().parse_args(["extract", "a.jpg", "--field", "Shoe Size"])


def test_serve_with_reload_hands_uvicorn_an_app_factory(tmp_path, monkeypatch):
    import importlib

    import uvicorn

    for name in ("EXTRACTION_BACKEND", "EXTRACTION_MODEL", "IDCARD_ALLOW_ORIGINS"):
        monkeypatch.delenv(name, raising=False)
    calls = []
    monkeypatch.setattr(uvicorn, "run", lambda app, **kwargs: calls.append((app, kwargs)))
    monkeypatch.chdir(tmp_path)

    code = cli_main.main(
        ["serve", "--reload", "--backend", "openai", "--allow-origin", "http://cards.local", "--port", "9001"]
    )

    assert code == 0
    target, kwargs = calls[0]
    assert target == cli_main.APP_FACTORY
    assert kwargs["factory"] is True and kwargs["reload"] is True
    assert kwargs["port"] == 9001
    module_name, attr = target.split(":")
    assert callable(getattr(importlib.import_module(module_name), attr))
    assert os.environ["EXTRACTION_BACKEND"] == "openai"
    assert os.environ["IDCARD_ALLOW_ORIGINS"] == "http://cards.local"


def test_serve_without_reload_passes_the_app(tmp_path, monkeypatch):
    import uvicorn
    from starlette.applications import Starlette

    calls = []
    monkeypatch.setattr(uvicorn, "run", lambda app, **kwargs: calls.append((app, kwargs)))
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("IDCARD_PREVIEW_DIR", str(tmp_path / "previews"))

    assert cli_main.main(["serve"]) == 0
    app, kwargs = calls[0]
    assert isinstance(app, Starlette)
    assert "reload" not in kwargs
