"""Tables owned by the quotation pricing service."""

from src.database.postgres import PostgresClient
from src.logger.logger import get_logger
from src.logger.types import Category, param

TABLES: dict[str, str] = {
    "config": """
        CREATE TABLE IF NOT EXISTS config (
            id SERIAL PRIMARY KEY,
            name VARCHAR(100) NOT NULL UNIQUE,
            value JSONB NOT NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """,
    "config_audit_log": """
        CREATE TABLE IF NOT EXISTS config_audit_log (
            id BIGSERIAL PRIMARY KEY,
            config_id INTEGER REFERENCES config (id),
            config_name VARCHAR(100) NOT NULL,
            action VARCHAR(10) NOT NULL CHECK (action IN ('CREATE', 'UPDATE')),
            old_value JSONB,
            new_value JSONB NOT NULL,
            changed_by VARCHAR(255) NOT NULL,
            changed_by_email VARCHAR(255),
            change_reason TEXT,
            ip_address VARCHAR(64),
            user_agent TEXT,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        );
        CREATE INDEX IF NOT EXISTS idx_config_audit_name_created
            ON config_audit_log (config_name, created_at DESC)
    """,
    "quotations": """
        CREATE TABLE IF NOT EXISTS quotations (
            id VARCHAR(64) PRIMARY KEY,
            equipment_id VARCHAR(64),
            customer_id VARCHAR(64),
            customer_name VARCHAR(255),
            deal_id VARCHAR(64),
            lead_id VARCHAR(64),
            order_type VARCHAR(20) NOT NULL,
            number_of_days INTEGER NOT NULL,
            working_hours NUMERIC(10, 2) NOT NULL DEFAULT 8,
            food_resources INTEGER NOT NULL DEFAULT 0,
            accom_resources INTEGER NOT NULL DEFAULT 0,
            site_distance NUMERIC(12, 2) NOT NULL DEFAULT 0,
            usage VARCHAR(20) NOT NULL,
            risk_factor VARCHAR(20) NOT NULL,
            shift VARCHAR(20) NOT NULL,
            day_night VARCHAR(20) NOT NULL,
            mob_demob NUMERIC(14, 2) NOT NULL DEFAULT 0,
            mob_relaxation NUMERIC(5, 2) NOT NULL DEFAULT 0,
            running_cost_per_km NUMERIC(12, 2) NOT NULL DEFAULT 0,
            extra_charge NUMERIC(14, 2) NOT NULL DEFAULT 0,
            incidental_charges TEXT[] NOT NULL DEFAULT '{}',
            other_factors TEXT[] NOT NULL DEFAULT '{}',
            other_factors_charge NUMERIC(14, 2) NOT NULL DEFAULT 0,
            include_gst BOOLEAN NOT NULL DEFAULT TRUE,
            sunday_working BOOLEAN NOT NULL DEFAULT FALSE,
            total_rent NUMERIC(14, 2) NOT NULL,
            working_cost NUMERIC(14, 2) NOT NULL,
            mob_demob_cost NUMERIC(14, 2) NOT NULL,
            food_accom_cost NUMERIC(14, 2) NOT NULL,
            usage_load_factor NUMERIC(14, 2) NOT NULL,
            risk_adjustment NUMERIC(14, 2) NOT NULL,
            gst_amount NUMERIC(14, 2) NOT NULL,
            subtotal NUMERIC(14, 2) NOT NULL,
            total_amount NUMERIC(14, 2) NOT NULL,
            calculations JSONB NOT NULL,
            status VARCHAR(20) NOT NULL DEFAULT 'draft'
                CHECK (status IN ('draft', 'sent', 'accepted', 'rejected')),
            version INTEGER NOT NULL DEFAULT 1 CHECK (version >= 1),
            created_by VARCHAR(255) NOT NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """,
    "logs": """
        CREATE TABLE IF NOT EXISTS logs (
            id BIGSERIAL PRIMARY KEY,
            timestamp TIMESTAMP NOT NULL,
            service_name VARCHAR(100) NOT NULL,
            instance_id VARCHAR(255) NOT NULL,
            environment VARCHAR(20) NOT NULL,
            level VARCHAR(10) NOT NULL,
            category VARCHAR(50),
            request_id VARCHAR(64),
            function_name VARCHAR(255),
            file_path VARCHAR(500),
            line_number INTEGER,
            message TEXT NOT NULL,
            error_message TEXT,
            stack_trace TEXT,
            context JSONB,
            duration_ms INTEGER,
            ingestion_time TIMESTAMP NOT NULL
        )
    """,
}


def ensure_schema(postgres: PostgresClient) -> None:
    """Create missing tables. Existing tables are left as they are."""
    logger = get_logger().with_category(Category.DATABASE)
    conn = postgres.get_connection()
    try:
        with conn.cursor() as cur:
            for table, ddl in TABLES.items():
                cur.execute(ddl)
                logger.debug("Table ensured", param("table", table))
        conn.commit()
    except Exception as e:
        conn.rollback()
        logger.error("Failed to ensure schema", e)
        raise
    finally:
        postgres.put_connection(conn)
