"""Supabase implementation of the read-only fuel product catalog."""

from dataclasses import dataclass

import httpx
from postgrest.exceptions import APIError
from supabase import Client

from fuel_tracker.domain.fuel import FuelProduct
from fuel_tracker.errors import StorageError
from fuel_tracker.services.planning import ProductCatalog


@dataclass
class SupabaseProductCatalog(ProductCatalog):
    """Reads fuel products from a remote ``fuel_products`` table."""

    client: Client

    def list_products(self, user_id: int) -> list[FuelProduct]:
        """Return the user's products that have not been soft-deleted."""
        try:
            response = (
                self.client.table("fuel_products")
                .select("*")
                .eq("user_id", user_id)
                .is_("deleted_at", "null")
                .order("id", desc=False)
                .execute()
            )
        except (APIError, httpx.HTTPError) as exc:
            raise StorageError(f"Failed to list fuel products: {exc}") from exc
        return [_parse_product(row) for row in response.data or []]


def _parse_product(row: dict[str, object]) -> FuelProduct:
    product_type = row.get("product_type")
    return FuelProduct(
        id=int(row["id"]),
        name=str(row["name"]),
        carbs_per_serving=float(row["carbs_per_serving"]),
        product_type=str(product_type) if product_type is not None else None,
    )
