"""Tests for BankEmailFilter model."""

from finance_mailsync.models.bank_email_filter import BankEmailFilter


def make_filter() -> BankEmailFilter:
    return BankEmailFilter(
        id=1,
        connection_id=1,
        bank_name="BHD León",
        sender_emails=["alertas@bhdleon.com.do", "Notificaciones@BHDLeon.com.do"],
        subject_keywords=["consumo"],
    )


def test_matches_bare_address() -> None:
    """Test a plain sender address matches."""
    assert make_filter().matches_sender("alertas@bhdleon.com.do") is True


def test_matches_display_name_header() -> None:
    """Test a From header with a display name matches case-insensitively."""
    assert make_filter().matches_sender('"BHD León" <notificaciones@bhdleon.com.do>') is True


def test_other_sender_does_not_match() -> None:
    """Test an unrelated sender does not match."""
    assert make_filter().matches_sender("alertas@banreservas.com") is False


def test_bank_email_filter_repr() -> None:
    """Test BankEmailFilter string representation."""
    assert repr(make_filter()) == "<BankEmailFilter(id=1, bank='BHD León')>"
