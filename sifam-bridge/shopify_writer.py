"""Catalog writes: tags, variant prices, product images. One fallback per write kind."""

import base64
import logging
import mimetypes
from decimal import Decimal
from io import BytesIO

import requests
from PIL import Image, UnidentifiedImageError

from errors import TransportError, UnsupportedMutation, UpstreamRejection
from shopify_catalog import ShopifyAdmin, numeric_id
from transport import make_session, send

logger = logging.getLogger(__name__)

REST_TIMEOUT = 30
IMAGE_POST_TIMEOUT = 45
DOWNLOAD_TIMEOUT = 60
DEFAULT_MAX_IMAGE_BYTES = 20 * 1024 * 1024

TAGS_ADD = """
mutation AddTags($id: ID!, $tags: [String!]!) {
  tagsAdd(id: $id, tags: $tags) { userErrors { field message } }
}
"""

VARIANT_UPDATE = """
mutation UpdateVariant($input: ProductVariantInput!) {
  productVariantUpdate(input: $input) {
    productVariant { id price }
    userErrors { field message }
  }
}
"""

EXTENSIONS_BY_TYPE = {
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
}
EXTENSIONS_BY_FORMAT = {"JPEG": ".jpg", "PNG": ".png", "GIF": ".gif", "WEBP": ".webp"}


def _raise_user_errors(mutation: str, result: dict | None) -> None:
    errs = (result or {}).get("userErrors") or []
    if errs:
        raise UpstreamRejection(f"{mutation} userErrors: {errs}", body=errs)


def extension_for(content_type: str | None, data: bytes) -> str:
    """Extension from Content-Type, else sniffed from the bytes. Non-images are rejected."""
    ctype = (content_type or "").split(";", 1)[0].strip().lower()
    if ctype in EXTENSIONS_BY_TYPE:
        return EXTENSIONS_BY_TYPE[ctype]
    try:
        with Image.open(BytesIO(data)) as img:
            fmt = img.format
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError) as exc:
        raise UpstreamRejection(f"downloaded file is not an image ({ctype or 'no content-type'})") from exc
    ext = EXTENSIONS_BY_FORMAT.get(fmt or "")
    if ext is None:
        ext = mimetypes.guess_extension(Image.MIME.get(fmt, "")) or ".jpg"
    return ext


class CatalogWriter:
    def __init__(self, admin: ShopifyAdmin, decimals: int = 2, max_image_bytes: int = DEFAULT_MAX_IMAGE_BYTES, download_session=None):
        self.admin = admin
        self.decimals = decimals
        self.max_image_bytes = max_image_bytes
        self.download_session = download_session or make_session()

    # ---- tags ----

    def add_tags(self, resource_id: str, tags: list[str]) -> None:
        """Union add; existing tags are never touched."""
        if not tags:
            return
        data = self.admin.graphql(TAGS_ADD, {"id": resource_id, "tags": list(tags)})
        _raise_user_errors("tagsAdd", data.get("tagsAdd"))

    # ---- price ----

    def _price_text(self, price: Decimal) -> str:
        return f"{Decimal(price):.{self.decimals}f}"

    def set_price(self, variant_gid: str, price: Decimal) -> str:
        """Returns which path wrote the price: 'graphql' or 'rest'."""
        text = self._price_text(price)
        try:
            data = self.admin.graphql(VARIANT_UPDATE, {"input": {"id": variant_gid, "price": text}})
            _raise_user_errors("productVariantUpdate", data.get("productVariantUpdate"))
            return "graphql"
        except UnsupportedMutation as exc:
            logger.info("productVariantUpdate unavailable, using REST for %s (%s)", variant_gid, exc)

        vid = numeric_id(variant_gid)
        self.admin.rest(
            "PUT", f"variants/{vid}.json",
            timeout=REST_TIMEOUT,
            json={"variant": {"id": int(vid), "price": text}},
        )
        return "rest"

    # ---- images ----

    def _post_image(self, product_gid: str, image: dict, variant_ids: list[str]) -> dict:
        if variant_ids:
            image["variant_ids"] = [int(numeric_id(v)) for v in variant_ids]
        out = self.admin.rest(
            "POST", f"products/{numeric_id(product_gid)}/images.json",
            timeout=IMAGE_POST_TIMEOUT, json={"image": image},
        )
        return (out or {}).get("image") or {}

    def download(self, url: str) -> tuple[bytes, str | None]:
        r = send(self.download_session, "GET", url, timeout=DOWNLOAD_TIMEOUT, stream=True)
        try:
            declared = r.headers.get("Content-Length")
            if declared and declared.isdigit() and int(declared) > self.max_image_bytes:
                raise UpstreamRejection(f"image too large ({declared} bytes): {url}")
            buf = bytearray()
            try:
                for chunk in r.iter_content(chunk_size=65536):
                    buf.extend(chunk)
                    if len(buf) > self.max_image_bytes:
                        raise UpstreamRejection(f"image exceeds {self.max_image_bytes} bytes: {url}")
            except requests.RequestException as exc:
                raise TransportError(f"download interrupted: {url}: {exc}") from exc
            return bytes(buf), r.headers.get("Content-Type")
        finally:
            r.close()

    def attach_image(self, product_gid: str, src_url: str, variant_ids: list[str] | None = None, filename_stem: str = "image") -> dict:
        """Attach by URL; if Shopify cannot fetch it, upload the bytes ourselves."""
        variant_ids = list(variant_ids or [])
        try:
            return self._post_image(product_gid, {"src": src_url, "alt": src_url}, variant_ids)
        except UpstreamRejection as exc:
            if exc.status not in (400, 422):
                raise
            logger.info("URL import rejected for %s (%s), falling back to inline upload", src_url, exc.status)

        data, ctype = self.download(src_url)
        ext = extension_for(ctype, data)
        image = {
            "attachment": base64.b64encode(data).decode("ascii"),
            "filename": f"{filename_stem}{ext}",
            "alt": src_url,
        }
        return self._post_image(product_gid, image, variant_ids)

    def attach_first(self, product_gid: str, candidates: list[str], variant_ids: list[str] | None = None, filename_stem: str = "image") -> str:
        """Try candidates in order; stop at the first upload that succeeds. Returns its URL."""
        last_error = None
        for url in candidates:
            try:
                self.attach_image(product_gid, url, variant_ids, filename_stem)
                return url
            except (TransportError, UpstreamRejection) as exc:
                logger.warning("image candidate failed for %s: %s: %s", product_gid, url, exc)
                last_error = exc
        if last_error is None:
            raise UpstreamRejection(f"no image candidates for {product_gid}")
        raise last_error
