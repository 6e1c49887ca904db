"""Sync jobs: price, category and image policies for the reconciler, plus the uncategorized export."""

import csv
import json
import logging
import time
from pathlib import Path

from config import Settings, configure_logging, require_shopify
from errors import ConfigurationError
from reconcile import PHOTO, PRICE, TAG, Delta, Reconciler, RunCounters
from retry import RetryPolicy
from shopify_catalog import (
    CatalogEntity,
    ShopifyAdmin,
    image_reader,
    product_reader,
    variant_reader,
)
from shopify_writer import CatalogWriter
from sifam_client import SifamApi, SupplierClient, SupplierFact, load_category_map, to_ref

logger = logging.getLogger(__name__)


class PricePolicy:
    """Supplier PRIX_PUBLIC (plus VAT) -> variant price."""

    def __init__(self, supplier: SupplierClient, writer: CatalogWriter):
        self.supplier = supplier
        self.writer = writer

    def resolve(self, entity: CatalogEntity) -> SupplierFact | None:
        price = self.supplier.price_for_sku(entity.sku)
        return SupplierFact(price=price) if price is not None else None

    def desired_state(self, entity: CatalogEntity, fact: SupplierFact) -> Delta:
        return Delta(price=fact.price)

    def currently_has(self, entity: CatalogEntity, item) -> bool:
        kind, value = item
        return kind == PRICE and entity.price is not None and entity.price == value

    def apply(self, entity: CatalogEntity, delta: Delta) -> None:
        self.writer.set_price(entity.id, delta.price)
        entity.price = delta.price


class CategoryPolicy:
    """SKU prefix map -> dept:/cat: product tags."""

    def __init__(self, supplier: SupplierClient, writer: CatalogWriter):
        self.supplier = supplier
        self.writer = writer

    def resolve(self, entity: CatalogEntity) -> SupplierFact | None:
        found = self.supplier.category_for_skus(entity.skus or (entity.sku,))
        return SupplierFact(category=found) if found else None

    def desired_state(self, entity: CatalogEntity, fact: SupplierFact) -> Delta:
        dept, cat = fact.category
        return Delta(tags=[f"dept:{dept}", f"cat:{cat}"])

    def currently_has(self, entity: CatalogEntity, item) -> bool:
        kind, value = item
        return kind == TAG and value in entity.tags

    def apply(self, entity: CatalogEntity, delta: Delta) -> None:
        self.writer.add_tags(entity.id, delta.tags)
        entity.tags.extend(t for t in delta.tags if t not in entity.tags)


class ImagePolicy:
    """SIFAM photos -> product image attached to the variant. One supplier photo per variant."""

    def __init__(self, supplier: SupplierClient, writer: CatalogWriter):
        self.supplier = supplier
        self.writer = writer

    def resolve(self, entity: CatalogEntity) -> SupplierFact | None:
        photos = self.supplier.photos_for_sku(entity.sku)
        return SupplierFact(photos=photos) if photos else None

    def desired_state(self, entity: CatalogEntity, fact: SupplierFact) -> Delta:
        # A variant (or a sibling) already carrying any supplier photo is done.
        if any(url in entity.images for url in fact.photos):
            return Delta()
        return Delta(photos=list(fact.photos))

    def currently_has(self, entity: CatalogEntity, item) -> bool:
        kind, value = item
        return kind == PHOTO and value in entity.images

    def apply(self, entity: CatalogEntity, delta: Delta) -> None:
        url = self.writer.attach_first(entity.product_id, delta.photos, [entity.id], filename_stem=to_ref(entity.sku))
        entity.images.add(url)


def build_admin(cfg: Settings) -> ShopifyAdmin:
    require_shopify(cfg)
    return ShopifyAdmin(cfg.SHOPIFY_DOMAIN, cfg.SHOPIFY_TOKEN, cfg.SHOPIFY_API_VERSION)


def build_supplier(cfg: Settings, category_map: dict | None = None) -> SupplierClient:
    direct = SifamApi(cfg.SIFAM_API_BASE, cfg.SIFAM_API_KEY) if cfg.sifam_direct_ok else None
    return SupplierClient(
        cfg.PROXY_BASE,
        direct=direct,
        vat_rate=cfg.VAT_RATE,
        decimals=cfg.CURRENCY_DECIMALS,
        category_map=category_map,
        retry=RetryPolicy(attempts=3, base_delay=cfg.RETRY_BASE_DELAY),
    )


def _log_banner(cfg: Settings, job: str) -> None:
    logger.info("%s -> Shopify: %s API %s", job, cfg.SHOPIFY_DOMAIN, cfg.SHOPIFY_API_VERSION)
    logger.info("%s -> Proxy: %s", job, cfg.PROXY_BASE)
    if cfg.ONLY_SKU:
        logger.info("%s -> ONLY_SKU: %s", job, cfg.ONLY_SKU)
    if cfg.MAX_UPDATES:
        logger.info("%s -> MAX_UPDATES: %s", job, cfg.MAX_UPDATES)


def _reconciler(cfg: Settings, reader, policy, sleep) -> Reconciler:
    return Reconciler(
        reader,
        policy,
        throttle=cfg.THROTTLE_SECONDS,
        max_updates=cfg.MAX_UPDATES,
        only_key=cfg.ONLY_SKU,
        sleep=sleep,
    )


def run_price_sync(cfg: Settings, admin=None, supplier=None, writer=None, sleep=time.sleep) -> RunCounters:
    admin = admin or build_admin(cfg)
    _log_banner(cfg, "prices")
    supplier = supplier or build_supplier(cfg)
    writer = writer or CatalogWriter(admin, decimals=cfg.CURRENCY_DECIMALS)
    return _reconciler(cfg, variant_reader(admin), PricePolicy(supplier, writer), sleep).run()


def require_category_map(cfg: Settings) -> dict:
    """Fail before any loop starts when the SKU-prefix map is missing or empty."""
    try:
        category_map = load_category_map(cfg.CATEGORY_MAP_PATH)
    except ValueError as exc:
        raise ConfigurationError(f"category map {cfg.CATEGORY_MAP_PATH} is not valid JSON: {exc}") from exc
    if not category_map:
        raise ConfigurationError(f"category map {cfg.CATEGORY_MAP_PATH} missing or empty")
    return category_map


def run_category_sync(cfg: Settings, admin=None, supplier=None, writer=None, sleep=time.sleep) -> RunCounters:
    admin = admin or build_admin(cfg)
    _log_banner(cfg, "categories")
    if supplier is None:
        supplier = build_supplier(cfg, require_category_map(cfg))
    writer = writer or CatalogWriter(admin, decimals=cfg.CURRENCY_DECIMALS)
    return _reconciler(cfg, product_reader(admin), CategoryPolicy(supplier, writer), sleep).run()


def run_image_sync(cfg: Settings, admin=None, supplier=None, writer=None, sleep=time.sleep) -> RunCounters:
    admin = admin or build_admin(cfg)
    _log_banner(cfg, "images")
    supplier = supplier or build_supplier(cfg)
    writer = writer or CatalogWriter(admin, decimals=cfg.CURRENCY_DECIMALS, max_image_bytes=cfg.MAX_IMAGE_BYTES)
    return _reconciler(cfg, image_reader(admin), ImagePolicy(supplier, writer), sleep).run()


def is_categorized(tags) -> bool:
    tags = [str(t) for t in tags]
    return any(t.startswith("dept:") for t in tags) and any(t.startswith("cat:") for t in tags)


def export_uncategorized(cfg: Settings, admin=None, out_path: Path | None = None) -> dict:
    """Write products lacking dept:/cat: tags to CSV. Returns {"exported": n, "path": ...}."""
    admin = admin or build_admin(cfg)
    out_path = Path(out_path or cfg.UNCATEGORIZED_CSV)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    count = 0
    with open(out_path, "w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f, quoting=csv.QUOTE_ALL)
        writer.writerow(["handle", "title", "skus", "tags"])
        for entity in product_reader(admin).iterate():
            if is_categorized(entity.tags):
                continue
            writer.writerow([entity.handle, entity.title, " | ".join(entity.skus), " | ".join(entity.tags)])
            count += 1
    logger.info("Export -> %s (%d products)", out_path, count)
    return {"exported": count, "path": str(out_path)}


def run_cli(job, cfg: Settings) -> int:
    """Run one job: counters as a JSON line on stdout, exit status 0 or 1."""
    configure_logging(cfg.LOG_LEVEL)
    try:
        result = job(cfg)
    except Exception:
        logger.exception("%s failed", getattr(job, "__name__", "job"))
        return 1
    if isinstance(result, RunCounters):
        print(result.to_json())
    else:
        print(json.dumps(result))
    return 0
