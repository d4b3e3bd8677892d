"""Tests for the timeismoney CLI (in-process, via main(argv))."""

from __future__ import annotations

import json

import pytest

from timeismoney.cli import main

PAGE = """<html><head><title>$999 deal</title></head>
<body><p>Price: $30.00</p><p>Imported: €25</p></body></html>"""


@pytest.fixture
def page(tmp_path):
    path = tmp_path / "page.html"
    path.write_text(PAGE, encoding="utf-8")
    return path


@pytest.fixture
def settings_file(tmp_path):
    path = tmp_path / "settings.yaml"
    path.write_text("wage:\n  amount: 15\n  frequency: hourly\n  currencyCode: USD\n", encoding="utf-8")
    return path


class TestAnnotate:
    def test_writes_annotated_html_to_stdout(self, page, capsys):
        main(["annotate", str(page)])
        captured = capsys.readouterr()
        assert 'class="tim-converted-price"' in captured.out
        assert "$30.00 (1h 0m)" in captured.out
        assert "<title>$999 deal</title>" in captured.out
        assert "Annotated 1 of 2 prices" in captured.err

    def test_settings_file(self, page, settings_file, capsys):
        main(["annotate", str(page), "--settings", str(settings_file)])
        assert "$30.00 (2h 0m)" in capsys.readouterr().out

    def test_output_file(self, page, tmp_path, capsys):
        out = tmp_path / "annotated.html"
        main(["annotate", str(page), "-o", str(out)])
        assert capsys.readouterr().out == ""
        html = out.read_text(encoding="utf-8")
        assert 'data-original-price="$30.00"' in html
        assert "€25</p>" in html

    def test_json_logs(self, page, capsys):
        main(["annotate", str(page), "--json-logs"])
        line = capsys.readouterr().err.strip().splitlines()[-1]
        record = json.loads(line)
        assert record["logger"] == "timeismoney.cli"
        assert record["event"].startswith("Annotated 1 of 2")


class TestScan:
    def test_table(self, page, capsys):
        main(["scan", str(page)])
        out = capsys.readouterr().out
        assert "Work time" in out
        assert "1h 0m" in out
        assert "currency_mismatch" in out

    def test_json_rows(self, page, settings_file, capsys):
        main(["scan", str(page), "--settings", str(settings_file), "--json"])
        rows = json.loads(capsys.readouterr().out)
        assert [r["text"] for r in rows] == ["$30.00", "€25"]
        assert rows[0] == {
            "text": "$30.00",
            "amount": 30.0,
            "currency": "USD",
            "pass": "direct",
            "work_time": "2h 0m",
        }
        assert rows[1]["currency"] == "EUR"
        assert rows[1]["work_time"] == "currency_mismatch"

    def test_scan_leaves_file_alone(self, page, capsys):
        main(["scan", str(page)])
        assert page.read_text(encoding="utf-8") == PAGE

    def test_no_prices(self, tmp_path, capsys):
        path = tmp_path / "plain.html"
        path.write_text("<p>Nothing for sale</p>", encoding="utf-8")
        main(["scan", str(path)])
        assert capsys.readouterr().out.strip() == "No prices found."


class TestErrors:
    def test_missing_file(self, tmp_path, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["scan", str(tmp_path / "missing.html")])
        assert exc_info.value.code == 1
        assert "Cannot read" in capsys.readouterr().err

    def test_empty_document(self, tmp_path, capsys):
        path = tmp_path / "empty.html"
        path.write_text("", encoding="utf-8")
        with pytest.raises(SystemExit) as exc_info:
            main(["annotate", str(path)])
        assert exc_info.value.code == 1
        assert "Cannot parse" in capsys.readouterr().err

    def test_invalid_settings(self, page, tmp_path, capsys):
        bad = tmp_path / "bad.yaml"
        bad.write_text("wage:\n  amount: 10\n  frequency: weekly\n", encoding="utf-8")
        with pytest.raises(SystemExit) as exc_info:
            main(["annotate", str(page), "--settings", str(bad)])
        assert exc_info.value.code == 1
        err = capsys.readouterr().err
        assert "Invalid settings" in err
        assert "Traceback" not in err

    def test_command_required(self):
        with pytest.raises(SystemExit) as exc_info:
            main([])
        assert exc_info.value.code == 2
