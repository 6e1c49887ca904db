from datetime import datetime

from orders import build_sifam_order

ORDER = {
    "id": 5512,
    "email": "jane@example.com",
    "shipping_address": {
        "first_name": "Jane", "last_name": "Doe", "address1": "1 rue X", "address2": None,
        "zip": "75001", "city": "Paris", "country_code": "be", "phone": None,
    },
    "customer": {"phone": "+33 1 23"},
    "line_items": [{"sku": "AB/1", "quantity": 2}, {"sku": "C3", "quantity": 1}],
}


def test_maps_shopify_order_to_sifam():
    out = build_sifam_order(ORDER, datetime(2024, 3, 7, 9, 5), client_code="2", prefix="XXX")

    assert out["DateCmd"] == "20240307"
    assert out["HeureCmd"] == "0905"
    assert out["ReferenceCommande"] == "5512"
    assert out["NomClient"] == out["NomLivraison"] == "Jane Doe"
    assert out["Adresse2"] == ""
    assert out["CodePays"] == "BE"
    assert out["Telephone"] == "+33 1 23"
    assert out["Email"] == "jane@example.com"
    assert out["Articles"] == [
        {"ReferenceArticle": "AB/1", "Quantite": "2"},
        {"ReferenceArticle": "C3", "Quantite": "1"},
    ]
    assert (out["CodeClient"], out["Prefix"], out["Express"], out["ChronoRelais"]) == ("2", "XXX", 2, 1)


def test_defaults_when_address_missing():
    out = build_sifam_order({"id": 1}, datetime(2024, 1, 1))
    assert out["CodePays"] == "FR"
    assert out["NomClient"] == ""
    assert out["Articles"] == []
