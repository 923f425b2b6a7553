import unittest
from dataclasses import replace
from datetime import datetime
from decimal import Decimal
from unittest.mock import patch

from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from audit_trail import main
from audit_trail.audit_repository import AuditEntry, AuditRepository
from audit_trail.db import build_engine, init_db
from audit_trail.transaction_repository import TransactionRepository


class BrokenRepository:
    def get_user_transactions_with_rates(self, user_id: int):
        raise OperationalError("SELECT 1", {}, Exception("database is down"))

    def get_audit_entries(self, user_id: str):
        raise OperationalError("SELECT 1", {}, Exception("database is down"))


class SummaryApiTests(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = build_engine("sqlite://")
        init_db(self.engine)
        self.addCleanup(self.engine.dispose)
        self.transactions = TransactionRepository(self.engine)
        self.audit = AuditRepository(self.engine)

        for name, repository in (
            ("transaction_repository", self.transactions),
            ("audit_repository", self.audit),
        ):
            patcher = patch.object(main, name, repository)
            patcher.start()
            self.addCleanup(patcher.stop)

        self.client = TestClient(main.app)

    def seed_history(self) -> None:
        self.transactions.set_rate("EUR", Decimal("1.1"))
        self.transactions.add_transaction(
            7, "DEPOSIT", Decimal("100"), "USD", datetime(2024, 5, 1), transaction_id=1
        )
        self.transactions.add_transaction(
            7,
            "WITHDRAWAL",
            Decimal("30"),
            "USD",
            datetime(2024, 5, 2),
            source_transaction_id=1,
            transaction_id=2,
        )
        self.transactions.add_transaction(
            7,
            "WITHDRAWAL",
            Decimal("10"),
            "USD",
            datetime(2024, 5, 3),
            source_transaction_id=999,
            transaction_id=3,
        )
        self.transactions.add_transaction(
            7, "DEPOSIT", Decimal("50"), "EUR", datetime(2024, 5, 4), transaction_id=4
        )

    def test_health(self) -> None:
        response = self.client.get("/health")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"status": "ok"})

    def test_summary_uses_camel_case_fields(self) -> None:
        self.seed_history()

        response = self.client.get("/api/transactions/7", params={"primaryCurrency": "usd"})

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["userId"], 7)
        self.assertEqual(body["primaryCurrency"], "usd")
        self.assertEqual(Decimal(str(body["finalBalancePrimary"])), Decimal("115"))
        self.assertEqual([txn["id"] for txn in body["transactions"]], [1, 2, 3, 4])

        first, second, third, fourth = body["transactions"]
        self.assertIsNone(first["isFundSourceValid"])
        self.assertIs(second["isFundSourceValid"], True)
        self.assertIs(third["isFundSourceValid"], False)
        self.assertEqual(Decimal(str(third["balanceAfterCurrency"])), Decimal("60"))
        self.assertEqual(Decimal(str(fourth["amountInPrimary"])), Decimal("55"))
        self.assertEqual(Decimal(str(fourth["rateToPrimary"])), Decimal("1.1"))

        balances = {
            item["currency"]: Decimal(str(item["balanceInPrimary"]))
            for item in body["balancesByCurrency"]
        }
        self.assertEqual(balances, {"USD": Decimal("60"), "EUR": Decimal("55")})

    def test_summary_defaults_to_configured_primary_currency(self) -> None:
        self.seed_history()

        with patch.object(main, "settings", replace(main.settings, primary_currency="EUR")):
            response = self.client.get("/api/transactions/7")

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["primaryCurrency"], "EUR")
        # USD has no stored rate, so only the EUR deposit counts
        self.assertEqual(Decimal(str(body["finalBalancePrimary"])), Decimal("50"))

    def test_user_without_transactions_gets_empty_summary(self) -> None:
        response = self.client.get("/api/transactions/42")

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["transactions"], [])
        self.assertEqual(body["balancesByCurrency"], [])

    def test_non_numeric_user_id_is_rejected(self) -> None:
        response = self.client.get("/api/transactions/abc")

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {"detail": "Invalid userId. Must be a number."})

    def test_exponent_user_id_names_a_whole_number(self) -> None:
        response = self.client.get("/api/transactions/1e3")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["userId"], 1000)

    def test_fractional_and_non_finite_user_ids_are_rejected(self) -> None:
        for value in ("1.5", "NaN", "Infinity"):
            with self.subTest(value=value):
                response = self.client.get(f"/api/transactions/{value}")

                self.assertEqual(response.status_code, 400)
                self.assertEqual(
                    response.json(), {"detail": "Invalid userId. Must be a number."}
                )

    def test_primary_currency_is_not_restricted_to_iso_codes(self) -> None:
        self.transactions.add_transaction(
            7, "DEPOSIT", Decimal("2.5"), "USDT", datetime(2024, 5, 1), transaction_id=1
        )

        response = self.client.get("/api/transactions/7", params={"primaryCurrency": " USDT "})

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["primaryCurrency"], "USDT")
        self.assertEqual(Decimal(str(body["finalBalancePrimary"])), Decimal("2.5"))

    def test_blank_primary_currency_uses_configured_default(self) -> None:
        response = self.client.get("/api/transactions/7", params={"primaryCurrency": "  "})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["primaryCurrency"], main.settings.primary_currency)

    def test_database_failure_returns_generic_error(self) -> None:
        with patch.object(main, "transaction_repository", BrokenRepository()):
            with self.assertLogs("audit_trail.main", level="ERROR"):
                response = self.client.get("/api/transactions/7")

        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json(), {"detail": "Internal server error"})

    def test_audit_entries_for_user(self) -> None:
        self.audit.save_audit_entry(
            AuditEntry(
                id="1",
                action="CREATE",
                timestamp=datetime(2024, 5, 1, 10, 0, 0),
                user_id="user1",
            )
        )

        response = self.client.get("/api/audit/user1")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(
            response.json(),
            [
                {
                    "id": "1",
                    "action": "CREATE",
                    "timestamp": "2024-05-01T10:00:00",
                    "userId": "user1",
                }
            ],
        )

    def test_audit_failure_returns_generic_error(self) -> None:
        with patch.object(main, "audit_repository", BrokenRepository()):
            with self.assertLogs("audit_trail.main", level="ERROR"):
                response = self.client.get("/api/audit/user1")

        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json(), {"detail": "Internal server error"})


if __name__ == "__main__":
    unittest.main()
