"""Seed the supported-bank catalog used to build bank email filters."""

import argparse
import sys

from finance_mailsync.db.session import SessionLocal
from finance_mailsync.repositories.bank_filter_repository import BankFilterRepository

# Subject words shared by Dominican bank transaction alerts
DO_SUBJECT_PATTERNS = [
    "consumo",
    "compra",
    "transaccion",
    "cargo",
    "retiro",
    "pago",
    "notificacion",
]

SUPPORTED_BANKS = [
    {
        "name": "Banco Popular Dominicano",
        "sender_emails": [
            "notificaciones@popularenlinea.com",
            "alertas@bpd.com.do",
            "notificaciones@bpd.com.do",
            "noreply@popularenlinea.com",
        ],
    },
    {
        "name": "Banreservas",
        "sender_emails": [
            "notificaciones@banreservas.com",
            "alertas@banreservas.com",
            "notificaciones@banreservas.com.do",
            "noreply@banreservas.com",
        ],
    },
    {
        "name": "BHD León",
        "sender_emails": [
            "alertas@bhdleon.com.do",
            "notificaciones@bhdleon.com.do",
            "bhdalertas@bhdleon.com.do",
            "noreply@bhdleon.com.do",
        ],
    },
    {
        "name": "Scotiabank RD",
        "sender_emails": [
            "alertas@scotiabank.com",
            "notificaciones.do@scotiabank.com",
            "alertas@scotiabank.com.do",
            "noreply@scotiabank.com.do",
        ],
    },
    {
        "name": "Banco Caribe",
        "sender_emails": [
            "notificaciones@bancocaribe.com.do",
            "alertas@bancocaribe.com.do",
            "noreply@bancocaribe.com.do",
        ],
    },
    {
        "name": "APAP",
        "sender_emails": [
            "no-reply@apap.com.do",
            "alertas@apap.com.do",
            "notificaciones@apap.com.do",
            "noreply@apap.com.do",
        ],
    },
    {
        "name": "Banco Vimenca",
        "sender_emails": [
            "internetbanking@vimenca.com",
            "notificaciones@vimenca.com",
            "alertas@vimenca.com",
        ],
    },
    {
        "name": "Banco Santa Cruz",
        "sender_emails": [
            "notificaciones@bsc.com.do",
            "alertas@bsc.com.do",
            "noreply@bsc.com.do",
        ],
    },
    {
        "name": "Banco Promerica",
        "sender_emails": [
            "alertas@promerica.com.do",
            "notificaciones@promerica.com.do",
            "noreply@promerica.com.do",
        ],
    },
    {
        "name": "Banco López de Haro",
        "sender_emails": [
            "alertas@blh.com.do",
            "notificaciones@blh.com.do",
            "noreply@blh.com.do",
        ],
    },
    {
        "name": "Asociación La Nacional",
        "sender_emails": [
            "alertas@alnap.com.do",
            "notificaciones@alnap.com.do",
            "noreply@alnap.com.do",
        ],
    },
    {
        "name": "Banco BDI",
        "sender_emails": [
            "alertas@bdi.com.do",
            "notificaciones@bdi.com.do",
            "noreply@bdi.com.do",
        ],
    },
    {
        "name": "Banco Ademi",
        "sender_emails": [
            "alertas@bancoademi.com.do",
            "notificaciones@bancoademi.com.do",
            "noreply@bancoademi.com.do",
        ],
    },
    {
        "name": "Banco Múltiple Bellbank",
        "sender_emails": [
            "alertas@bellbank.com.do",
            "notificaciones@bellbank.com.do",
            "noreply@bellbank.com.do",
        ],
    },
]


def seed_banks(country: str = "DO") -> int:
    """Insert or refresh the catalog for a country.

    Returns:
        Number of banks written.
    """
    db = SessionLocal()
    try:
        repo = BankFilterRepository(db)
        for bank in SUPPORTED_BANKS:
            repo.add_supported_bank(
                name=bank["name"],  # type: ignore[arg-type]
                country=country,
                sender_emails=bank["sender_emails"],  # type: ignore[arg-type]
                subject_patterns=DO_SUBJECT_PATTERNS,
            )
            print(f"  Seeded: {bank['name']}")
        db.commit()
        print(f"\nTotal banks seeded: {len(SUPPORTED_BANKS)}")
        return len(SUPPORTED_BANKS)
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def main() -> int:
    """CLI entrypoint for the seed banks script."""
    parser = argparse.ArgumentParser(description="Seed the supported-bank catalog.")
    parser.add_argument(
        "--country",
        default="DO",
        help="ISO country code to file the banks under (default: DO)",
    )
    args = parser.parse_args()

    try:
        seed_banks(country=args.country)
        return 0
    except Exception as e:
        print(f"Error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
