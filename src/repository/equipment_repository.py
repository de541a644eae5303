"""Read-only equipment rate lookup for PostgreSQL.

The equipment catalog itself is owned by the CRM; this service only reads the
per-order-type rates and the running cost used for mob/demob pricing.
"""

from dataclasses import dataclass
from decimal import Decimal

from psycopg2.extras import RealDictCursor

from src.database.postgres import PostgresClient
from src.domain.errors import EquipmentNotFound
from src.domain.quotation import BaseRates
from src.logger.logger import get_logger
from src.logger.types import Category, param


@dataclass
class EquipmentRates:
    equipment_id: str
    name: str
    base_rates: BaseRates
    running_cost_per_km: Decimal = Decimal("0")


class EquipmentRepository:
    """Repository for equipment rate lookups."""

    def __init__(self, postgres_client: PostgresClient) -> None:
        self.postgres = postgres_client
        self.logger = get_logger().with_category(Category.EQUIPMENT)

    def get_rates(self, equipment_id: str) -> EquipmentRates:
        """
        Get rates for one equipment item.

        Args:
            equipment_id: Equipment ID

        Returns:
            EquipmentRates

        Raises:
            EquipmentNotFound: no such equipment
        """
        conn = self.postgres.get_connection()
        try:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(
                    """
                    SELECT id, name,
                           base_rate_micro, base_rate_small,
                           base_rate_monthly, base_rate_yearly,
                           running_cost_per_km
                    FROM equipment
                    WHERE id = %s
                    """,
                    (equipment_id,),
                )
                row = cur.fetchone()
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            self.postgres.put_connection(conn)

        if row is None:
            self.logger.warn("Equipment not found", param("equipment_id", equipment_id))
            raise EquipmentNotFound(equipment_id)

        return EquipmentRates(
            equipment_id=str(row["id"]),
            name=row["name"],
            base_rates=BaseRates.from_dict(
                {
                    "micro": row["base_rate_micro"],
                    "small": row["base_rate_small"],
                    "monthly": row["base_rate_monthly"],
                    "yearly": row["base_rate_yearly"],
                }
            ),
            running_cost_per_km=Decimal(str(row["running_cost_per_km"] or 0)),
        )
