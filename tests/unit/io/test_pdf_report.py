"""Tests for the PDF report."""

from datetime import datetime, timedelta

from rutbatch.io.pdf import result_rows, write_pdf
from rutbatch.io.report import summarize
from rutbatch.models import ErrorKind, Result

FIELDS = {
    "primer_apellido": "PEREZ",
    "segundo_apellido": "GOMEZ",
    "primer_nombre": "JUAN",
    "otros_nombres": "CARLOS",
    "estado": "REGISTRO ACTIVO",
}


class TestResultRows:

    def test_success_rows(self):
        result = Result.success("100", FIELDS, attempts=2, elapsed=timedelta(seconds=3.456))

        assert result_rows(result) == [
            ["Primer Apellido:", "PEREZ"],
            ["Segundo Apellido:", "GOMEZ"],
            ["Primer Nombre:", "JUAN"],
            ["Otros Nombres:", "CARLOS"],
            ["Estado:", "REGISTRO ACTIVO"],
            ["Intentos:", "2"],
            ["Tiempo:", "3.46s"],
        ]

    def test_error_rows(self):
        result = Result.failure("200", ErrorKind.CAPTCHA_EXHAUSTED, "no slot", attempts=3)

        rows = result_rows(result)

        assert rows[0] == ["Estado:", "Error"]
        assert rows[1] == ["Error:", "captcha_exhausted: no slot"]
        assert ["Intentos:", "3"] in rows


class TestWritePdf:

    def test_writes_pdf_document(self, tmp_path):
        results = [
            Result.success("1047473418", FIELDS, attempts=1, elapsed=timedelta(seconds=4)),
            Result.failure("<73089347>", ErrorKind.SITE_VALIDATION, "no inscrito & sin RUT", attempts=1),
        ]

        path = write_pdf(
            tmp_path / "out" / "report.pdf",
            results,
            summarize(results),
            generated_at=datetime(2024, 5, 1, 10, 30),
        )

        data = path.read_bytes()
        assert data.startswith(b"%PDF")
        assert data.rstrip().endswith(b"%%EOF")

    def test_empty_run(self, tmp_path):
        path = write_pdf(tmp_path / "empty.pdf", [], summarize([]))

        assert path.read_bytes().startswith(b"%PDF")
