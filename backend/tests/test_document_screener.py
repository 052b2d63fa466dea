"""
Document screener: container signature, malware test string, SSN-shaped DLP hits, batch ordering.
"""
from services.document_screener import (
    EICAR_SIGNATURE,
    MAX_SCAN_BYTES,
    expected_signature,
    screen_batch,
    screen_file,
)

PDF = b"%PDF-1.7\n"
PNG = b"\x89PNG\r\n\x1a\n"
JPEG = b"\xff\xd8\xff\xe0"


class TestSignature:
    def test_declared_type_wins(self):
        assert expected_signature("image/png", "scan.pdf") == ("image/png", b"\x89PNG")

    def test_extension_fallback(self):
        assert expected_signature("application/octet-stream", "W2.JPEG")[0] == "image/jpeg"

    def test_unknown_type_and_extension(self):
        assert expected_signature(None, "notes.txt") is None

    def test_relabelled_executable_rejected_as_malware(self):
        result = screen_file(b"MZ\x90\x00 fake exe", "application/pdf", "W2_2025.pdf")
        assert result.accepted is False
        assert result.is_malware is True
        assert "W2_2025.pdf" in result.message

    def test_mismatch_wins_over_dlp(self):
        result = screen_file(b"GIF89a 123-45-6789", "application/pdf", "W2.pdf")
        assert result.accepted is False
        assert result.is_malware is True
        assert result.is_sensitive_data_leak is False

    def test_valid_png(self):
        assert screen_file(PNG + b"pixels", "image/png", "Photo_ID.png").accepted is True


class TestContent:
    def test_eicar_rejected(self):
        result = screen_file(PDF + EICAR_SIGNATURE.encode(), "application/pdf", "W2.pdf")
        assert result.accepted is False
        assert result.is_malware is True
        assert "Malware" in result.message

    def test_ssn_flagged_but_accepted(self):
        result = screen_file(PDF + b"Employee SSN 123-45-6789\n", "application/pdf", "W2.pdf")
        assert result.accepted is True
        assert result.is_sensitive_data_leak is True

    def test_ssn_without_separators_flagged(self):
        result = screen_file(PDF + b"ssn:123456789 end", "application/pdf", "W2.pdf")
        assert result.is_sensitive_data_leak is True

    def test_non_ascii_digits_not_flagged(self):
        text = "ssn \u0661\u0662\u0663\u0664\u0665\u0666\u0667\u0668\u0669".encode("utf-8")
        result = screen_file(PDF + text, "application/pdf", "W2.pdf")
        assert result.accepted is True
        assert result.is_sensitive_data_leak is False

    def test_longer_digit_run_not_flagged(self):
        result = screen_file(PDF + b"account 1234567890123", "application/pdf", "W2.pdf")
        assert result.accepted is True
        assert result.is_sensitive_data_leak is False

    def test_only_leading_bytes_scanned(self):
        data = PDF + b" " * MAX_SCAN_BYTES + EICAR_SIGNATURE.encode()
        assert screen_file(data, "application/pdf", "W2.pdf").accepted is True

    def test_to_dict_wire_names(self):
        result = screen_file(PDF, "application/pdf", "W2.pdf").to_dict()
        assert set(result) == {"accepted", "isMalware", "isSensitiveDataLeak", "message"}


class TestBatch:
    def test_stops_at_first_rejection(self):
        files = [
            ("W2_a.pdf", "application/pdf", PDF),
            ("W2_b.pdf", "application/pdf", b"not a pdf"),
            ("W2_c.pdf", "application/pdf", PDF),
        ]
        outcome = screen_batch(files)
        assert outcome.ok is False
        assert outcome.rejected_file == "W2_b.pdf"
        assert "W2_b.pdf" in outcome.message
        assert [entry["name"] for entry in outcome.results] == ["W2_a.pdf", "W2_b.pdf"]

    def test_progress_reported_in_order(self):
        messages = []
        files = [
            ("W2_a.pdf", "application/pdf", PDF),
            ("ID.jpg", "image/jpeg", JPEG),
        ]
        outcome = screen_batch(files, on_progress=messages.append)
        assert outcome.ok is True
        assert messages[0].startswith("Screening W2_a.pdf (1 of 2)")
        assert messages[1].startswith("Screening ID.jpg (2 of 2)")
        assert messages[-1] == ""

    def test_counts_dlp_hits(self):
        files = [
            ("W2_a.pdf", "application/pdf", PDF + b"123-45-6789"),
            ("W2_b.pdf", "application/pdf", PDF),
        ]
        outcome = screen_batch(files)
        assert outcome.ok is True
        assert outcome.dlp_hits == 1
        assert outcome.warnings == ["Sensitive data detected in W2_a.pdf."]

    def test_empty_batch(self):
        assert screen_batch([]).ok is True
