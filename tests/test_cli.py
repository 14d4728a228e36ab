import json

import pytest
from typer.testing import CliRunner

from statement_ledger import main
from statement_ledger.manager import LedgerService

runner = CliRunner()

STATEMENT = "\n".join([
    "Kontobevegelser",
    "05.01.2026 KIWI 505 STORO -245,50",
    "06.01.2026 Lønn ACME AS 35 000,00",
])


@pytest.fixture(autouse=True)
def quiet_logging(monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "CRITICAL")
    monkeypatch.delenv("LOG_DIR", raising=False)


@pytest.fixture
def data_dir(tmp_path, monkeypatch):
    monkeypatch.setattr(
        main,
        "_service",
        lambda: LedgerService(data_dir=str(tmp_path), rules_file=str(tmp_path / "rules.json")),
    )
    return tmp_path


def invoke(*args):
    return runner.invoke(main.app, list(args))


def test_classify_command():
    result = invoke("classify", "--", "KIWI 505", "-245.5")

    assert result.exit_code == 0
    payload = json.loads(result.stdout)
    assert payload["flow_type"] == "expense"
    assert payload["reason"] == "purchase-like"
    assert payload["amount"] == -245.5
    assert payload["is_transfer"] is False


def test_classify_command_with_section_context():
    result = invoke(
        "classify",
        "--source", "xlsx",
        "--context", '{"section_label": "Kjøp/uttak"}',
        "Butikk",
        "120",
    )

    assert result.exit_code == 0
    payload = json.loads(result.stdout)
    assert payload["reason"] == "xlsx-section-purchase"
    assert payload["section_label"] == "Kjøp/uttak"
    assert payload["amount"] == -120.0


def test_normalize_merchant_command():
    result = invoke("normalize-merchant", "12345", "--fallback", "Kiwi storo")

    assert result.exit_code == 0
    assert json.loads(result.stdout) == {
        "merchant": "Kiwi Storo",
        "merchant_raw": "12345",
        "merchant_kind": "name",
    }


def test_ingest_text_command_and_file_duplicate(data_dir):
    statement = data_dir / "jan.txt"
    statement.write_text(STATEMENT, encoding="utf-8")

    first = invoke("ingest-text", str(statement))
    second = invoke("ingest-text", str(statement))

    assert first.exit_code == 0
    assert json.loads(first.stdout)["inserted"] == 2
    assert second.exit_code == 0
    assert json.loads(second.stdout)["file_duplicate"] is True


def test_ingest_text_command_rejects_unknown_documents(data_dir):
    statement = data_dir / "notes.txt"
    statement.write_text("Handleliste\n05.01.2026 melk -20,00", encoding="utf-8")

    result = invoke("ingest-text", str(statement), "--file-hash", "abc")

    assert result.exit_code == 1


def test_ingest_rows_command(data_dir):
    rows = data_dir / "rows.json"
    rows.write_text(
        json.dumps([
            {"date": "2026-01-05", "description": "KIWI 505", "amount": -10},
            {"date": "not a date", "description": "broken", "amount": 1},
        ]),
        encoding="utf-8",
    )

    result = invoke("ingest-rows", str(rows))

    assert result.exit_code == 0
    payload = json.loads(result.stdout)
    assert payload["inserted"] == 1
    assert payload["skipped_invalid"] == 1


def test_ingest_rows_command_requires_a_list(data_dir):
    rows = data_dir / "rows.json"
    rows.write_text('{"date": "2026-01-05"}', encoding="utf-8")

    assert invoke("ingest-rows", str(rows)).exit_code == 1


def test_apply_rules_command(data_dir):
    statement = data_dir / "jan.txt"
    statement.write_text(STATEMENT, encoding="utf-8")
    invoke("ingest-text", str(statement))

    rules = data_dir / "custom-rules.json"
    rules.write_text(
        json.dumps([{
            "id": "kiwi",
            "name": "Kiwi",
            "match_field": "description",
            "match_type": "contains",
            "match_value": "kiwi",
            "action_type": "set_category",
            "action_value": "groceries",
        }]),
        encoding="utf-8",
    )

    result = invoke("apply-rules", "--rules", str(rules))

    assert result.exit_code == 0
    payload = json.loads(result.stdout)
    assert payload["processed"] == 2
    assert payload["matched"] == 1
    assert payload["updated"] == 1


def test_apply_rules_command_with_broken_rules_file(data_dir):
    rules = data_dir / "rules.json"
    rules.write_text("[{", encoding="utf-8")

    assert invoke("apply-rules").exit_code == 1


def test_ingest_rows_command_accepts_export_cells(data_dir):
    rows = data_dir / "export.json"
    rows.write_text(
        json.dumps([
            ["05.01.2026", "KIWI 505 STORO", "-245,50", "10 000,00", "NOK"],
            ["Dato", "Tekst", "Beløp", "Saldo", "Valuta"],
        ]),
        encoding="utf-8",
    )

    result = invoke("ingest-rows", str(rows))

    assert result.exit_code == 0
    payload = json.loads(result.stdout)
    assert payload["inserted"] == 1
    assert payload["skipped_invalid"] == 1


def test_list_transactions_and_merchants_commands(data_dir):
    statement = data_dir / "jan.txt"
    statement.write_text(STATEMENT, encoding="utf-8")
    invoke("ingest-text", str(statement))

    listed = invoke("list-transactions", "--limit", "1")
    merchants = invoke("merchants")

    assert listed.exit_code == 0
    [kiwi] = json.loads(listed.stdout)
    assert kiwi["description"] == "KIWI 505 STORO"
    assert kiwi["merchant_name"] == "KIWI 505 STORO"
    assert kiwi["chain_key"] == "KIWI"
    assert kiwi["merchant_kind"] == "name"

    assert merchants.exit_code == 0
    assert json.loads(merchants.stdout) == [
        {"chain_key": "KIWI", "merchant_id": None, "total": 245.5, "count": 1},
    ]
