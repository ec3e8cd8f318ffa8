"""SQLite-backed fuel product catalog."""

import sqlite3
from dataclasses import dataclass

from fuel_tracker.adapters.sqlite_database import SqliteDatabase
from fuel_tracker.domain.fuel import FuelProduct
from fuel_tracker.errors import StorageError
from fuel_tracker.services.planning import ProductCatalog


@dataclass
class SqliteProductCatalog(ProductCatalog):
    """Product catalog stored in the local ``fuel_products`` table."""

    database: SqliteDatabase

    def list_products(self, user_id: int) -> list[FuelProduct]:
        """Return the user's products that have not been soft-deleted."""
        with self.database.connection() as conn:
            rows = conn.execute(
                """
                SELECT * FROM fuel_products
                WHERE user_id = ? AND deleted_at IS NULL
                ORDER BY id
                """,
                (user_id,),
            ).fetchall()
        return [_parse_product(row) for row in rows]

    def add_product(
        self,
        user_id: int,
        name: str,
        carbs_per_serving: float,
        product_type: str | None = None,
    ) -> FuelProduct:
        """Insert a product and return it."""
        with self.database.connection() as conn:
            cursor = conn.execute(
                """
                INSERT INTO fuel_products
                    (user_id, name, product_type, carbs_per_serving)
                VALUES (?, ?, ?, ?)
                """,
                (user_id, name, product_type, carbs_per_serving),
            )
            product_id = cursor.lastrowid
        if product_id is None:
            raise StorageError("Failed to create fuel product")
        return FuelProduct(
            id=product_id,
            name=name,
            carbs_per_serving=carbs_per_serving,
            product_type=product_type,
        )

    def delete_product(self, product_id: int) -> bool:
        """Soft-delete a product; saved plans keep their snapshots."""
        with self.database.connection() as conn:
            cursor = conn.execute(
                """
                UPDATE fuel_products SET deleted_at = datetime('now')
                WHERE id = ? AND deleted_at IS NULL
                """,
                (product_id,),
            )
            return cursor.rowcount == 1


def _parse_product(row: sqlite3.Row) -> FuelProduct:
    return FuelProduct(
        id=int(row["id"]),
        name=row["name"],
        carbs_per_serving=float(row["carbs_per_serving"]),
        product_type=row["product_type"],
    )
