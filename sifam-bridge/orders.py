"""Shopify orders/paid webhook -> SIFAM dropshipping order."""

from datetime import datetime


def _full_name(addr: dict) -> str:
    return f"{addr.get('first_name') or ''} {addr.get('last_name') or ''}".strip()


def build_sifam_order(order: dict, now: datetime, client_code: str = "2", prefix: str = "XXX") -> dict:
    addr = order.get("shipping_address") or {}
    customer = order.get("customer") or {}
    name = _full_name(addr)
    return {
        "CodeClient": client_code,
        "DateCmd": now.strftime("%Y%m%d"),
        "HeureCmd": now.strftime("%H%M"),
        "ReferenceCommande": str(order.get("id")),
        "ChronoRelais": 1,
        "NomClient": name,
        "NomLivraison": name,
        "Adresse1": addr.get("address1") or "",
        "Adresse2": addr.get("address2") or "",
        "CodePostal": addr.get("zip") or "",
        "Ville": addr.get("city") or "",
        "CodePays": (addr.get("country_code") or "FR").upper(),
        "Telephone": addr.get("phone") or customer.get("phone") or "",
        "Email": order.get("email"),
        "Express": 2,
        "Prefix": prefix,
        "Articles": [
            {"ReferenceArticle": li.get("sku"), "Quantite": str(li.get("quantity"))}
            for li in order.get("line_items") or []
        ],
    }
