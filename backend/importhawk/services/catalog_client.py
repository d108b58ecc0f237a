"""Destination catalog client.

CatalogClient is the boundary the import executor talks to. The only
implementation, ShopifyCatalogClient, speaks the Shopify Admin GraphQL API.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence

import httpx
import structlog

from importhawk.config import settings
from importhawk.core.exceptions import RemoteCreateError, RemoteErrorKind, ShopNotConfiguredError
from importhawk.schemas.imports import ProductStatus
from importhawk.scrapers.base import ImageRef, NormalizedProduct, ProductOption, Variant
from importhawk.scrapers.utils.retry import catalog_retry
from importhawk.services.catalog_queries import QUERIES

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class CreatedProduct:
    id: str
    title: str
    handle: Optional[str] = None
    default_variant_id: Optional[str] = None
    default_inventory_item_id: Optional[str] = None


@dataclass(frozen=True)
class CreatedVariant:
    id: str
    title: str = ""
    inventory_item_id: Optional[str] = None


class CatalogClient(ABC):
    """Operations the importer needs from a destination catalog.

    Every method raises RemoteCreateError on rejection or failure.
    """

    @abstractmethod
    async def create_product(self, product: NormalizedProduct, status: ProductStatus) -> CreatedProduct: ...

    @abstractmethod
    async def create_options(self, product_id: str, options: Sequence[ProductOption]) -> None: ...

    @abstractmethod
    async def create_variants(
        self,
        product_id: str,
        variants: Sequence[Variant],
        options: Sequence[ProductOption],
    ) -> List[CreatedVariant]: ...

    @abstractmethod
    async def update_variant_price(
        self,
        product_id: str,
        variant_id: str,
        price: Decimal,
        compare_at_price: Optional[Decimal] = None,
    ) -> Optional[str]:
        """Update a variant's prices; returns its inventory item id when known."""

    @abstractmethod
    async def get_first_variant_id(self, product_id: str) -> Optional[str]: ...

    @abstractmethod
    async def attach_media(self, product_id: str, images: Sequence[ImageRef]) -> int:
        """Attach images by URL; returns the number of media created."""

    @abstractmethod
    async def add_to_collection(self, collection_id: str, product_id: str) -> None: ...

    @abstractmethod
    async def get_location_id(self) -> Optional[str]: ...

    @abstractmethod
    async def set_inventory(self, location_id: str, inventory_item_ids: Sequence[str], quantity: int) -> None: ...

    @abstractmethod
    async def get_shop_currency(self) -> Optional[str]: ...

    @abstractmethod
    async def publish(self, product_id: str) -> None: ...

    @abstractmethod
    async def list_collections(self) -> List[Dict[str, Any]]:
        """Up to 100 collections as ``{id, title, handle, products_count}``."""

    async def close(self) -> None:
        pass


def _money(value: Optional[Decimal]) -> Optional[str]:
    return None if value is None else f"{value:.2f}"


def option_values_for(variant: Variant, options: Sequence[ProductOption]) -> List[Dict[str, str]]:
    """``[{"optionName", "name"}]`` selectors for a variant."""
    values = []
    for option, value in zip(options, (variant.option1, variant.option2, variant.option3)):
        if value is not None:
            values.append({"optionName": option.name, "name": value})
    return values


class ShopifyCatalogClient(CatalogClient):
    """Shopify Admin GraphQL client for one shop."""

    def __init__(
        self,
        shop: str,
        access_token: str,
        api_version: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.shop = shop
        self.api_version = api_version or settings.SHOPIFY_API_VERSION
        self.endpoint = f"https://{shop}/admin/api/{self.api_version}/graphql.json"
        self._headers = {
            "Content-Type": "application/json",
            "X-Shopify-Access-Token": access_token,
        }
        self._http_client = http_client
        self._owns_client = http_client is None
        self.logger = logger.bind(shop=shop)

    @property
    def http_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=30.0)
        return self._http_client

    async def close(self) -> None:
        if self._owns_client and self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    @catalog_retry
    async def _execute(self, operation: str, query: str, variables: Optional[dict] = None) -> Dict[str, Any]:
        """POST a GraphQL document and return its ``data`` object.

        Raises:
            RemoteCreateError: RATE_LIMITED for HTTP 429 / THROTTLED, else UNKNOWN
        """
        payload: Dict[str, Any] = {"query": query}
        if variables:
            payload["variables"] = variables

        try:
            response = await self.http_client.post(self.endpoint, json=payload, headers=self._headers)
        except httpx.HTTPError as e:
            raise RemoteCreateError(operation, RemoteErrorKind.UNKNOWN, f"{operation} request failed: {e}") from e

        if response.status_code == 429:
            raise RemoteCreateError(operation, RemoteErrorKind.RATE_LIMITED, f"{operation} throttled (HTTP 429)")
        if response.status_code >= 400:
            raise RemoteCreateError(
                operation, RemoteErrorKind.UNKNOWN, f"{operation} failed with HTTP {response.status_code}"
            )

        try:
            body = response.json()
        except ValueError as e:
            raise RemoteCreateError(operation, RemoteErrorKind.UNKNOWN, f"{operation} returned invalid JSON") from e

        errors = body.get("errors")
        if errors:
            if isinstance(errors, list) and any(
                (err.get("extensions") or {}).get("code") == "THROTTLED" for err in errors if isinstance(err, dict)
            ):
                raise RemoteCreateError(operation, RemoteErrorKind.RATE_LIMITED, f"{operation} throttled")
            if isinstance(errors, list):
                message = "; ".join(str(err.get("message", err)) if isinstance(err, dict) else str(err) for err in errors)
            else:
                message = str(errors)
            raise RemoteCreateError(operation, RemoteErrorKind.UNKNOWN, message)

        return body.get("data") or {}

    @staticmethod
    def _result(operation: str, data: Dict[str, Any], key: str, errors_key: str = "userErrors") -> Dict[str, Any]:
        result = data.get(key)
        if result is None:
            raise RemoteCreateError(operation, RemoteErrorKind.UNKNOWN, f"{operation} returned no result")
        user_errors = result.get(errors_key) or []
        if user_errors:
            message = ", ".join(err.get("message", "") for err in user_errors)
            raise RemoteCreateError(operation, RemoteErrorKind.VALIDATION, message, user_errors=user_errors)
        return result

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def create_product(self, product: NormalizedProduct, status: ProductStatus) -> CreatedProduct:
        product_input = {
            "title": product.title,
            "descriptionHtml": product.description,
            "vendor": product.vendor,
            "productType": product.product_type,
            "tags": list(product.tags),
            "status": ProductStatus(status).value.upper(),
        }
        data = await self._execute("productCreate", QUERIES["product_create"], {"product": product_input})
        created = self._result("productCreate", data, "productCreate").get("product")
        if not created:
            raise RemoteCreateError("productCreate", RemoteErrorKind.UNKNOWN, "Product creation failed - no product returned")

        first_variant = ((created.get("variants") or {}).get("nodes") or [{}])[0]
        self.logger.info("catalog_product_created", product_id=created["id"], title=created.get("title"))
        return CreatedProduct(
            id=created["id"],
            title=created.get("title") or product.title,
            handle=created.get("handle"),
            default_variant_id=first_variant.get("id"),
            default_inventory_item_id=(first_variant.get("inventoryItem") or {}).get("id"),
        )

    async def create_options(self, product_id: str, options: Sequence[ProductOption]) -> None:
        options_input = [
            {"name": option.name, "values": [{"name": value} for value in option.values]}
            for option in options
        ]
        data = await self._execute(
            "productOptionsCreate",
            QUERIES["options_create"],
            {"productId": product_id, "options": options_input},
        )
        self._result("productOptionsCreate", data, "productOptionsCreate")

    async def create_variants(
        self,
        product_id: str,
        variants: Sequence[Variant],
        options: Sequence[ProductOption],
    ) -> List[CreatedVariant]:
        variants_input = []
        for variant in variants:
            variant_input: Dict[str, Any] = {
                "price": _money(variant.price),
                "optionValues": option_values_for(variant, options),
                "inventoryItem": {"tracked": True},
            }
            if variant.compare_at_price is not None:
                variant_input["compareAtPrice"] = _money(variant.compare_at_price)
            if variant.sku:
                variant_input["inventoryItem"]["sku"] = variant.sku
            variants_input.append(variant_input)

        data = await self._execute(
            "productVariantsBulkCreate",
            QUERIES["variants_bulk_create"],
            {"productId": product_id, "variants": variants_input},
        )
        result = self._result("productVariantsBulkCreate", data, "productVariantsBulkCreate")
        return [
            CreatedVariant(
                id=node["id"],
                title=node.get("title") or "",
                inventory_item_id=(node.get("inventoryItem") or {}).get("id"),
            )
            for node in result.get("productVariants") or []
        ]

    async def update_variant_price(
        self,
        product_id: str,
        variant_id: str,
        price: Decimal,
        compare_at_price: Optional[Decimal] = None,
    ) -> Optional[str]:
        data = await self._execute(
            "productVariantsBulkUpdate",
            QUERIES["variants_bulk_update"],
            {
                "productId": product_id,
                "variants": [{
                    "id": variant_id,
                    "price": _money(price),
                    "compareAtPrice": _money(compare_at_price),
                    "inventoryItem": {"tracked": True},
                }],
            },
        )
        result = self._result("productVariantsBulkUpdate", data, "productVariantsBulkUpdate")
        updated = (result.get("productVariants") or [{}])[0]
        return (updated.get("inventoryItem") or {}).get("id")

    async def get_first_variant_id(self, product_id: str) -> Optional[str]:
        data = await self._execute("firstVariant", QUERIES["first_variant"], {"id": product_id})
        nodes = ((data.get("product") or {}).get("variants") or {}).get("nodes") or []
        return nodes[0]["id"] if nodes else None

    async def attach_media(self, product_id: str, images: Sequence[ImageRef]) -> int:
        media = [
            {"originalSource": image.src, "alt": image.alt or "", "mediaContentType": "IMAGE"}
            for image in images
        ]
        data = await self._execute(
            "productCreateMedia",
            QUERIES["media_create"],
            {"productId": product_id, "media": media},
        )
        result = self._result("productCreateMedia", data, "productCreateMedia", errors_key="mediaUserErrors")
        return len(result.get("media") or [])

    async def add_to_collection(self, collection_id: str, product_id: str) -> None:
        data = await self._execute(
            "collectionAddProducts",
            QUERIES["collection_add_products"],
            {"id": collection_id, "productIds": [product_id]},
        )
        result = self._result("collectionAddProducts", data, "collectionAddProducts")
        self.logger.info(
            "catalog_added_to_collection",
            product_id=product_id,
            collection=(result.get("collection") or {}).get("title"),
        )

    async def get_location_id(self) -> Optional[str]:
        data = await self._execute("locations", QUERIES["primary_location"])
        edges = (data.get("locations") or {}).get("edges") or []
        return edges[0]["node"]["id"] if edges else None

    async def set_inventory(self, location_id: str, inventory_item_ids: Sequence[str], quantity: int) -> None:
        quantities = [
            {"inventoryItemId": item_id, "locationId": location_id, "quantity": quantity}
            for item_id in inventory_item_ids
        ]
        if not quantities:
            return
        data = await self._execute(
            "inventorySetQuantities",
            QUERIES["inventory_set_quantities"],
            {
                "input": {
                    "name": "available",
                    "reason": "correction",
                    "ignoreCompareQuantity": True,
                    "quantities": quantities,
                }
            },
        )
        self._result("inventorySetQuantities", data, "inventorySetQuantities")

    async def get_shop_currency(self) -> Optional[str]:
        data = await self._execute("shop", QUERIES["shop_currency"])
        return (data.get("shop") or {}).get("currencyCode")

    async def publish(self, product_id: str) -> None:
        data = await self._execute("publications", QUERIES["publications"])
        publications = (data.get("publications") or {}).get("nodes") or []
        if not publications:
            self.logger.info("catalog_no_publications", product_id=product_id)
            return
        data = await self._execute(
            "publishablePublish",
            QUERIES["publish"],
            {"id": product_id, "input": [{"publicationId": p["id"]} for p in publications]},
        )
        self._result("publishablePublish", data, "publishablePublish")

    async def list_collections(self) -> List[Dict[str, Any]]:
        data = await self._execute("collections", QUERIES["collections"])
        collections = []
        for edge in (data.get("collections") or {}).get("edges") or []:
            node = edge.get("node") or {}
            count = node.get("productsCount")
            if isinstance(count, dict):
                count = count.get("count")
            collections.append({
                "id": node["id"],
                "title": node.get("title") or "",
                "handle": node.get("handle") or "",
                "products_count": count or 0,
            })
        self.logger.info("catalog_collections_listed", count=len(collections))
        return collections


def build_catalog_client(shop: str) -> ShopifyCatalogClient:
    """Client for a shop using the token from SHOPIFY_ADMIN_TOKENS.

    Raises:
        ShopNotConfiguredError: if the shop has no token
    """
    token = settings.get_admin_token(shop)
    if not token:
        raise ShopNotConfiguredError(shop)
    return ShopifyCatalogClient(shop, token)
