"""Quotation repository for PostgreSQL."""

from collections.abc import Callable
from decimal import Decimal
from typing import Any

from psycopg2 import sql
from psycopg2.extras import Json, RealDictCursor

from src.database.postgres import PostgresClient
from src.domain.errors import QuotationNotFound
from src.domain.quotation import (
    REQUEST_FIELDS,
    PricingBreakdown,
    Quotation,
    QuotationRequest,
    QuotationStatus,
)
from src.logger.logger import get_logger
from src.logger.types import Category, param

# Computed figures that also get their own column for reporting
BREAKDOWN_COLUMNS = (
    "total_rent",
    "working_cost",
    "mob_demob_cost",
    "food_accom_cost",
    "usage_load_factor",
    "risk_adjustment",
    "gst_amount",
    "subtotal",
    "total_amount",
)

UPDATABLE_COLUMNS = frozenset(
    {
        *REQUEST_FIELDS,
        *BREAKDOWN_COLUMNS,
        "calculations",
        "equipment_id",
        "customer_id",
        "customer_name",
        "deal_id",
        "lead_id",
        "status",
    }
)

SELECT_COLUMNS = sql.SQL(", ").join(
    sql.Identifier(column)
    for column in (
        "id",
        *REQUEST_FIELDS,
        "calculations",
        "equipment_id",
        "customer_id",
        "customer_name",
        "deal_id",
        "lead_id",
        "created_by",
        "status",
        "version",
        "created_at",
        "updated_at",
    )
)


def pricing_columns(request: QuotationRequest, breakdown: PricingBreakdown) -> dict[str, Any]:
    """Column values for a request and its computed breakdown."""
    columns: dict[str, Any] = {attr: getattr(request, attr) for attr in REQUEST_FIELDS}
    for column in BREAKDOWN_COLUMNS:
        columns[column] = getattr(breakdown, column)
    columns["calculations"] = Json(breakdown.to_dict())
    return columns


def patch_pairs(patch: dict[str, Any]) -> list[tuple[str, Any]]:
    """
    Turn a patch object into (column, value) pairs.

    Only keys present in the patch are kept, so callers update exactly the
    fields they supplied.

    Raises:
        ValueError: a key is not an updatable column
    """
    unknown = sorted(set(patch) - UPDATABLE_COLUMNS)
    if unknown:
        raise ValueError(f"Not updatable: {', '.join(unknown)}")
    return sorted(patch.items())


def build_update_statement(pairs: list[tuple[str, Any]]) -> tuple[sql.Composed, list[Any]]:
    """
    Single parameterized UPDATE for the pairs, bumping version and updated_at.

    Returns:
        (statement, params); the quotation id is the last parameter
    """
    assignments = [
        sql.SQL("{} = %s").format(sql.Identifier(column)) for column, _ in pairs
    ]
    assignments.append(sql.SQL("version = version + 1"))
    assignments.append(sql.SQL("updated_at = NOW()"))
    statement = sql.SQL("UPDATE quotations SET {} WHERE id = %s RETURNING {}").format(
        sql.SQL(", ").join(assignments),
        SELECT_COLUMNS,
    )
    return statement, [_adapt(value) for _, value in pairs]


def _adapt(value: Any) -> Any:
    if isinstance(value, QuotationStatus):
        return value.value
    if isinstance(value, dict):
        return Json(value)
    return value


class QuotationRepository:
    """Repository for Quotation persistence with versioned updates."""

    def __init__(self, postgres_client: PostgresClient) -> None:
        """
        Initialize QuotationRepository.

        Args:
            postgres_client: PostgreSQL client instance
        """
        self.postgres = postgres_client
        self.logger = get_logger().with_category(Category.QUOTATION)

    def add(self, quotation: Quotation) -> Quotation:
        """
        Insert a new quotation.

        Args:
            quotation: Quotation at version 1

        Returns:
            Stored quotation with database timestamps
        """
        columns = pricing_columns(quotation.request, quotation.breakdown)
        columns.update(
            id=quotation.id,
            equipment_id=quotation.equipment_id,
            customer_id=quotation.customer_id,
            customer_name=quotation.customer_name,
            deal_id=quotation.deal_id,
            lead_id=quotation.lead_id,
            created_by=quotation.created_by,
            status=quotation.status.value,
            version=quotation.version,
        )
        statement = sql.SQL(
            "INSERT INTO quotations ({}, created_at, updated_at) "
            "VALUES ({}, NOW(), NOW()) RETURNING {}"
        ).format(
            sql.SQL(", ").join(sql.Identifier(c) for c in columns),
            sql.SQL(", ").join(sql.Placeholder() * len(columns)),
            SELECT_COLUMNS,
        )

        conn = self.postgres.get_connection()
        try:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(statement, list(columns.values()))
                row = cur.fetchone()
            conn.commit()

            self.logger.info(
                "Quotation created",
                param("quotation_id", quotation.id),
                param("total_amount", str(quotation.total_amount)),
            )
            return self._row_to_quotation(row)

        except Exception as e:
            conn.rollback()
            self.logger.error(
                "Failed to create quotation",
                e,
                param("quotation_id", quotation.id),
            )
            raise
        finally:
            self.postgres.put_connection(conn)

    def get(self, quotation_id: str) -> Quotation | None:
        conn = self.postgres.get_connection()
        try:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(
                    sql.SQL("SELECT {} FROM quotations WHERE id = %s").format(SELECT_COLUMNS),
                    (quotation_id,),
                )
                row = cur.fetchone()
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            self.postgres.put_connection(conn)

        return self._row_to_quotation(row) if row else None

    def list_recent(
        self, status: QuotationStatus | None = None, limit: int = 100
    ) -> list[Quotation]:
        """
        Get quotations, most recently updated first.

        Args:
            status: Optional status filter
            limit: Maximum quotations to return
        """
        query = sql.SQL("SELECT {} FROM quotations").format(SELECT_COLUMNS)
        params: list[Any] = []
        if status is not None:
            query += sql.SQL(" WHERE status = %s")
            params.append(status.value)
        query += sql.SQL(" ORDER BY updated_at DESC LIMIT %s")
        params.append(limit)

        conn = self.postgres.get_connection()
        try:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(query, params)
                rows = cur.fetchall()
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            self.postgres.put_connection(conn)

        return [self._row_to_quotation(row) for row in rows]

    def update(
        self,
        quotation_id: str,
        build_patch: Callable[[Quotation], dict[str, Any]],
    ) -> Quotation:
        """
        Apply a patch with read-increment-write in one transaction.

        The row is locked with FOR UPDATE, handed to build_patch, and the
        returned patch is written together with version + 1. Any exception
        from build_patch rolls the transaction back untouched.

        Args:
            quotation_id: Quotation ID
            build_patch: Receives the locked current quotation, returns
                {column: value} for the fields to change

        Returns:
            Quotation as stored after the update

        Raises:
            QuotationNotFound: no such quotation
        """
        conn = self.postgres.get_connection()
        try:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(
                    sql.SQL("SELECT {} FROM quotations WHERE id = %s FOR UPDATE").format(
                        SELECT_COLUMNS
                    ),
                    (quotation_id,),
                )
                row = cur.fetchone()
                if row is None:
                    raise QuotationNotFound(quotation_id)

                current = self._row_to_quotation(row)
                statement, params = build_update_statement(patch_pairs(build_patch(current)))
                cur.execute(statement, [*params, quotation_id])
                updated_row = cur.fetchone()
            conn.commit()

            updated = self._row_to_quotation(updated_row)
            self.logger.info(
                "Quotation updated",
                param("quotation_id", quotation_id),
                param("version", updated.version),
                param("status", updated.status.value),
            )
            return updated

        except Exception:
            conn.rollback()
            raise
        finally:
            self.postgres.put_connection(conn)

    @staticmethod
    def _row_to_quotation(row: dict[str, Any]) -> Quotation:
        """Convert database row to Quotation domain object."""
        request = QuotationRequest(**{attr: row[attr] for attr in REQUEST_FIELDS})
        calculations = row["calculations"] or {}
        breakdown = PricingBreakdown(
            **{key: Decimal(str(value)) for key, value in calculations.items()}
        )
        return Quotation(
            id=str(row["id"]),
            request=request,
            breakdown=breakdown,
            equipment_id=row["equipment_id"],
            customer_id=row["customer_id"],
            customer_name=row["customer_name"],
            deal_id=row["deal_id"],
            lead_id=row["lead_id"],
            created_by=row["created_by"],
            status=QuotationStatus(row["status"]),
            version=row["version"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )
