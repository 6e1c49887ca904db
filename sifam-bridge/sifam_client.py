"""SIFAM supplier API: reference rule, payload normalization, price/photo/category lookups."""

import json
import logging
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from pathlib import Path
from urllib.parse import quote, urlencode, urlsplit

from errors import TransportError
from retry import RetryPolicy
from shopify_catalog import normalize_url
from transport import make_session, send

logger = logging.getLogger(__name__)

PRICE_FIELDS = ("PRIX_PUBLIC", "PrixPublic", "prix_public", "PRIX")
PHOTO_LIST_FIELDS = ("photos", "PHOTOS", "Photos", "images")
PHOTO_URL_FIELDS = ("url", "URL", "Url", "photo", "PHOTO", "src", "lien", "LIEN")
IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".gif", ".webp")

STOCK_TIMEOUT = 15
PHOTOS_TIMEOUT = 20
UPSTREAM_TIMEOUT = 30


def to_ref(sku: str) -> str:
    """SIFAM reserves '/' in references; it is sent as '~'."""
    return str(sku).replace("/", "~")


def pick_field(record, aliases) -> object | None:
    """First alias present in record with a non-empty value."""
    if not isinstance(record, dict):
        return None
    for name in aliases:
        value = record.get(name)
        if value not in (None, ""):
            return value
    return None


def unwrap_record(body):
    if isinstance(body, list):
        return body[0] if body else None
    return body if isinstance(body, dict) else None


def parse_amount(raw) -> Decimal | None:
    """'12,50' or 12.5 -> Decimal. None when not numeric."""
    if raw is None or isinstance(raw, bool):
        return None
    try:
        value = Decimal(str(raw).strip().replace(",", "."))
    except InvalidOperation:
        return None
    return value if value.is_finite() else None


def gross_price(ht: Decimal, vat_rate: Decimal, decimals: int) -> Decimal:
    quantum = Decimal(1).scaleb(-decimals)
    return (ht * (Decimal(1) + Decimal(vat_rate))).quantize(quantum, rounding=ROUND_HALF_UP)


def _is_image_url(url: str) -> bool:
    path = (urlsplit(url).path or "").lower()
    return path.endswith(IMAGE_EXTENSIONS)


def extract_photo_urls(body) -> list[str]:
    """Accept list / wrapped object, str or dict items, pipe-packed strings. Ordered, unique."""
    if isinstance(body, dict):
        items = pick_field(body, PHOTO_LIST_FIELDS)
        if items is None:
            single = pick_field(body, PHOTO_URL_FIELDS)
            items = [single] if single else []
    elif isinstance(body, list):
        items = body
    elif isinstance(body, str):
        items = [body]
    else:
        items = []
    if not isinstance(items, list):
        items = [items]

    seen: set[str] = set()
    out: list[str] = []
    for item in items:
        raw = pick_field(item, PHOTO_URL_FIELDS) if isinstance(item, dict) else item
        if not isinstance(raw, str):
            continue
        for part in raw.split("|"):
            url = normalize_url(part)
            if not url or not _is_image_url(url) or url in seen:
                continue
            seen.add(url)
            out.append(url)
    return out


def load_category_map(path) -> dict:
    p = Path(path)
    if not p.exists():
        return {}
    with open(p, encoding="utf-8") as f:
        return json.load(f)


def classify_by_sku_prefix(skus, category_map: dict) -> tuple[str, str] | None:
    upper = [str(s or "").upper() for s in skus]
    for dept, cats in category_map.items():
        for cat, prefixes in (cats or {}).items():
            wanted = [str(p).upper() for p in prefixes or [] if p]
            if any(sku.startswith(p) for sku in upper for p in wanted):
                return dept, cat
    return None


@dataclass
class SupplierFact:
    price: Decimal | None = None
    photos: list[str] = field(default_factory=list)
    category: tuple[str, str] | None = None


class SifamApi:
    """Direct SIFAM API access. Injects the api key; used by the proxy and as lookup fallback."""

    def __init__(self, base: str, api_key: str, session=None, timeout: float = UPSTREAM_TIMEOUT):
        self.base = base.rstrip("/")
        self.api_key = api_key
        self.session = session or make_session()
        self.timeout = timeout

    def url(self, path: str, **params) -> str:
        params["api_key"] = self.api_key
        return f"{self.base}/api/{path.lstrip('/')}?{urlencode(params)}"

    def familles_url(self) -> str:
        return self.url("familles.json", langue=2)

    def catalogue_url(self, fam: str = "ALL") -> str:
        return self.url(f"articles/{quote(fam or 'ALL', safe='')}.json", images=1, dropshipping=1, langue=2, debut=-1)

    def stock_url(self, ref: str) -> str:
        return self.url(f"stock/{quote(to_ref(ref), safe='~')}.json")

    def photos_url(self, ref: str, generique: bool = False) -> str:
        params = {"generique": 1} if generique else {}
        return self.url(f"photos/{quote(to_ref(ref), safe='~')}.json", **params)

    def order_status_url(self, refcmd: str) -> str:
        return self.url(f"commande/{quote(refcmd, safe='')}.json")

    def get_json(self, url: str, timeout: float | None = None, allow_404: bool = False):
        r = send(self.session, "GET", url, timeout=timeout or self.timeout, allow_404=allow_404)
        if r is None:
            return None
        try:
            return r.json()
        except ValueError as exc:
            raise TransportError(f"SIFAM returned non-JSON body (status {r.status_code})") from exc

    def post_order(self, payload: dict):
        """Returns (status, body). Raises TransportError / UpstreamRejection."""
        r = send(self.session, "POST", self.url("commande.json"), timeout=self.timeout, json=payload)
        try:
            body = r.json()
        except ValueError:
            body = None
        return r.status_code, body if body is not None else {"ok": True}


class SupplierClient:
    """Resolve a SKU to supplier facts, through the proxy first and SIFAM directly second."""

    def __init__(
        self,
        proxy_base: str,
        direct: SifamApi | None = None,
        vat_rate: Decimal = Decimal("0"),
        decimals: int = 2,
        category_map: dict | None = None,
        retry: RetryPolicy | None = None,
        session=None,
    ):
        self.proxy_base = proxy_base.rstrip("/")
        self.direct = direct
        self.vat_rate = Decimal(vat_rate)
        self.decimals = decimals
        self.category_map = category_map or {}
        self.retry = retry or RetryPolicy()
        self.session = session or make_session()

    def _proxy_get(self, route: str, sku: str, timeout: float):
        url = f"{self.proxy_base}/{route}/{quote(to_ref(sku), safe='~')}"
        r = send(self.session, "GET", url, timeout=timeout, allow_404=True)
        if r is None:
            return None
        try:
            return r.json()
        except ValueError as exc:
            raise TransportError(f"proxy {route} returned non-JSON body") from exc

    def price_for_sku(self, sku: str) -> Decimal | None:
        if not sku:
            return None
        body = self.retry.call(self._proxy_get, "stock", sku, STOCK_TIMEOUT)
        raw = pick_field(unwrap_record(body), PRICE_FIELDS)
        ht = parse_amount(raw)
        if ht is None:
            return None
        return gross_price(ht, self.vat_rate, self.decimals)

    def photos_for_sku(self, sku: str) -> list[str]:
        if not sku:
            return []
        proxy_error = None
        try:
            photos = extract_photo_urls(self.retry.call(self._proxy_get, "photos", sku, PHOTOS_TIMEOUT))
            if photos:
                return photos
        except TransportError as exc:
            proxy_error = exc
            logger.warning("proxy photos failed for %s: %s", sku, exc)

        if self.direct is not None and self.direct.api_key:
            url = self.direct.photos_url(sku, generique=True)
            body = self.retry.call(self.direct.get_json, url, PHOTOS_TIMEOUT, True)
            return extract_photo_urls(body)
        if proxy_error is not None:
            raise proxy_error
        return []

    def category_for_skus(self, skus) -> tuple[str, str] | None:
        return classify_by_sku_prefix(skus, self.category_map)
