"""Shopify catalog access. Admin GraphQL client and cursor-paginated readers."""

import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Callable, Iterator

from errors import TransportError, UnsupportedMutation, UpstreamRejection
from retry import RetryPolicy
from transport import make_session, send

logger = logging.getLogger(__name__)

GRAPHQL_TIMEOUT = 25

VARIANTS_QUERY = """
query Variants($cursor: String) {
  productVariants(first: 250, after: $cursor) {
    edges { cursor node { id sku price } }
    pageInfo { hasNextPage endCursor }
  }
}
"""

PRODUCTS_WITH_IMAGES_QUERY = """
query Products($cursor: String) {
  products(first: 50, after: $cursor) {
    edges {
      cursor
      node {
        id
        title
        images(first: 100) { edges { node { id url altText } } }
        variants(first: 100) { edges { node { id sku } } }
      }
    }
    pageInfo { hasNextPage endCursor }
  }
}
"""

PRODUCTS_WITH_TAGS_QUERY = """
query Products($cursor: String) {
  products(first: 100, after: $cursor) {
    edges {
      cursor
      node {
        id handle title tags
        variants(first: 100) { edges { node { id sku } } }
      }
    }
    pageInfo { hasNextPage endCursor }
  }
}
"""


def numeric_id(gid: str) -> str:
    """gid://shopify/ProductVariant/123 -> 123"""
    return str(gid).rstrip("/").split("/")[-1]


def normalize_url(url) -> str:
    url = str(url or "").strip()
    scheme, sep, rest = url.partition("://")
    if sep:
        return f"{scheme.lower()}://{rest}"
    return url


def _decimal(value) -> Decimal | None:
    if value in (None, ""):
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return None


@dataclass
class CatalogEntity:
    id: str
    sku: str = ""
    skus: tuple[str, ...] = ()
    tags: list[str] = field(default_factory=list)
    price: Decimal | None = None
    images: set[str] = field(default_factory=set)
    product_id: str | None = None
    handle: str = ""
    title: str = ""

    def carries(self, sku: str) -> bool:
        return sku == self.sku or sku in self.skus


@dataclass
class Page:
    entities: list[CatalogEntity]
    end_cursor: str | None = None
    has_next_page: bool = False


class ShopifyAdmin:
    """Thin Admin API client: GraphQL with transport retries, plus raw REST calls."""

    def __init__(self, domain: str, token: str, api_version: str = "2024-07", session=None, retry: RetryPolicy | None = None):
        self.domain = domain
        self.api_version = api_version
        self.session = session or make_session({"X-Shopify-Access-Token": token})
        self.retry = retry or RetryPolicy(attempts=3, base_delay=0.6)

    @property
    def base_url(self) -> str:
        return f"https://{self.domain}/admin/api/{self.api_version}"

    def graphql(self, query: str, variables: dict | None = None) -> dict:
        return self.retry.call(self._graphql_once, query, variables or {})

    def _graphql_once(self, query: str, variables: dict) -> dict:
        r = send(
            self.session, "POST", f"{self.base_url}/graphql.json",
            timeout=GRAPHQL_TIMEOUT, json={"query": query, "variables": variables},
        )
        try:
            payload = r.json()
        except ValueError as exc:
            raise TransportError(f"GraphQL returned non-JSON body (status {r.status_code})") from exc
        errors = (payload or {}).get("errors")
        if errors:
            if _is_throttled(errors):
                raise TransportError(f"GraphQL throttled: {errors}")
            if _is_undefined_field(errors):
                raise UnsupportedMutation(f"GraphQL errors: {errors}", status=r.status_code, body=errors)
            raise UpstreamRejection(f"GraphQL errors: {errors}", status=r.status_code, body=errors)
        data = (payload or {}).get("data")
        if data is None:
            raise UpstreamRejection("GraphQL response has no data", status=r.status_code, body=payload)
        return data

    def rest(self, method: str, path: str, *, timeout: float = 30, **kwargs):
        r = send(self.session, method, f"{self.base_url}/{path.lstrip('/')}", timeout=timeout, **kwargs)
        try:
            return r.json()
        except ValueError:
            return {}


def _error_messages(errors) -> list[str]:
    if isinstance(errors, list):
        return [str(e.get("message", e)) if isinstance(e, dict) else str(e) for e in errors]
    return [str(errors)]


def _is_throttled(errors) -> bool:
    if isinstance(errors, list):
        for e in errors:
            if isinstance(e, dict) and (e.get("extensions") or {}).get("code") == "THROTTLED":
                return True
    return any("throttled" in m.lower() for m in _error_messages(errors))


def _is_undefined_field(errors) -> bool:
    if isinstance(errors, list):
        for e in errors:
            if isinstance(e, dict) and (e.get("extensions") or {}).get("code") == "undefinedField":
                return True
    return any("doesn't exist on type" in m for m in _error_messages(errors))


class CatalogReader:
    """Walk one GraphQL connection page by page. Holds at most one page in memory."""

    def __init__(self, admin: ShopifyAdmin, query: str, connection: str, to_entities: Callable[[dict], list[CatalogEntity]]):
        self.admin = admin
        self.query = query
        self.connection = connection
        self.to_entities = to_entities

    def next_page(self, cursor: str | None = None) -> Page:
        data = self.admin.graphql(self.query, {"cursor": cursor})
        conn = (data or {}).get(self.connection)
        if not isinstance(conn, dict):
            raise UpstreamRejection(f"GraphQL response missing '{self.connection}'", body=data)
        page_info = conn.get("pageInfo") or {}
        entities: list[CatalogEntity] = []
        for edge in conn.get("edges") or []:
            node = edge.get("node") or {}
            entities.extend(self.to_entities(node))
        return Page(
            entities=entities,
            end_cursor=page_info.get("endCursor"),
            has_next_page=bool(page_info.get("hasNextPage")),
        )

    def iterate(self) -> Iterator[CatalogEntity]:
        cursor = None
        while True:
            page = self.next_page(cursor)
            yield from page.entities
            if not page.has_next_page:
                return
            if not page.end_cursor:
                raise UpstreamRejection(f"'{self.connection}' reports more pages but no endCursor")
            cursor = page.end_cursor


def _variant_skus(node: dict) -> tuple[str, ...]:
    edges = (node.get("variants") or {}).get("edges") or []
    return tuple(str(e["node"]["sku"]) for e in edges if (e.get("node") or {}).get("sku"))


def variant_entity(node: dict) -> list[CatalogEntity]:
    sku = str(node.get("sku") or "").strip()
    return [CatalogEntity(id=node["id"], sku=sku, skus=(sku,) if sku else (), price=_decimal(node.get("price")))]


def product_entity(node: dict) -> list[CatalogEntity]:
    skus = _variant_skus(node)
    return [CatalogEntity(
        id=node["id"],
        sku=skus[0] if skus else "",
        skus=skus,
        tags=[str(t) for t in node.get("tags") or []],
        handle=node.get("handle") or "",
        title=node.get("title") or "",
    )]


def product_variant_entities(node: dict) -> list[CatalogEntity]:
    """One entity per variant; siblings share the product's image set.

    Uploaded supplier images carry their source URL as alt text, so both the
    CDN url and a URL-shaped alt count as already present.
    """
    images: set[str] = set()
    for e in (node.get("images") or {}).get("edges") or []:
        img = e.get("node") or {}
        images.add(normalize_url(img.get("url") or img.get("src")))
        alt = normalize_url(img.get("altText"))
        if alt.startswith(("http://", "https://")):
            images.add(alt)
    images.discard("")
    out = []
    for e in (node.get("variants") or {}).get("edges") or []:
        v = e.get("node") or {}
        sku = str(v.get("sku") or "").strip()
        out.append(CatalogEntity(
            id=v["id"],
            sku=sku,
            skus=(sku,) if sku else (),
            images=images,
            product_id=node["id"],
            title=node.get("title") or "",
        ))
    return out


def variant_reader(admin: ShopifyAdmin) -> CatalogReader:
    return CatalogReader(admin, VARIANTS_QUERY, "productVariants", variant_entity)


def product_reader(admin: ShopifyAdmin) -> CatalogReader:
    return CatalogReader(admin, PRODUCTS_WITH_TAGS_QUERY, "products", product_entity)


def image_reader(admin: ShopifyAdmin) -> CatalogReader:
    return CatalogReader(admin, PRODUCTS_WITH_IMAGES_QUERY, "products", product_variant_entities)
