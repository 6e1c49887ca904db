from decimal import Decimal

import pytest

from conftest import FakeResponse, FakeSession, gql_page
from errors import TransportError, UnsupportedMutation, UpstreamRejection
from retry import RetryPolicy
from shopify_catalog import (
    ShopifyAdmin,
    image_reader,
    normalize_url,
    numeric_id,
    product_reader,
    variant_reader,
)


def admin_with(responses, sleeps):
    session = FakeSession(responses=responses)
    admin = ShopifyAdmin("shop.test", "tok", "2024-07", session=session, retry=RetryPolicy(attempts=3, base_delay=0.6, sleep=sleeps))
    return admin, session


def test_numeric_id_and_normalize_url():
    assert numeric_id("gid://shopify/ProductVariant/123") == "123"
    assert normalize_url(" HTTP://a.test/x.jpg ") == "http://a.test/x.jpg"
    assert normalize_url(None) == ""


def test_variant_reader_walks_all_pages_in_order(sleeps):
    responses = [
        FakeResponse(json_data=gql_page("productVariants", [{"id": "v1", "sku": "A", "price": "1.50"}], True, "c1")),
        FakeResponse(json_data=gql_page("productVariants", [{"id": "v2", "sku": None, "price": None}], False, None)),
    ]
    admin, session = admin_with(responses, sleeps)

    entities = list(variant_reader(admin).iterate())

    assert [e.id for e in entities] == ["v1", "v2"]
    assert entities[0].price == Decimal("1.50")
    assert entities[1].sku == ""
    assert session.calls[0]["json"]["variables"] == {"cursor": None}
    assert session.calls[1]["json"]["variables"] == {"cursor": "c1"}
    assert session.calls[0]["url"] == "https://shop.test/admin/api/2024-07/graphql.json"


def test_iterate_is_lazy(sleeps):
    responses = [
        FakeResponse(json_data=gql_page("productVariants", [{"id": "v1", "sku": "A"}], True, "c1")),
        FakeResponse(json_data=gql_page("productVariants", [{"id": "v2", "sku": "B"}])),
    ]
    admin, session = admin_with(responses, sleeps)

    it = variant_reader(admin).iterate()
    assert next(it).id == "v1"
    assert len(session.calls) == 1


def test_empty_terminal_page_is_not_an_error(sleeps):
    admin, _ = admin_with([FakeResponse(json_data=gql_page("productVariants", []))], sleeps)
    assert list(variant_reader(admin).iterate()) == []


def test_graphql_errors_surface_as_rejection(sleeps):
    admin, _ = admin_with([FakeResponse(json_data={"errors": [{"message": "Access denied"}]})], sleeps)
    with pytest.raises(UpstreamRejection):
        list(variant_reader(admin).iterate())


def test_missing_connection_is_a_rejection(sleeps):
    admin, _ = admin_with([FakeResponse(json_data={"data": {}})], sleeps)
    with pytest.raises(UpstreamRejection):
        variant_reader(admin).next_page()


def test_undefined_mutation_is_flagged(sleeps):
    body = {"errors": [{"message": "Field 'productVariantUpdate' doesn't exist on type 'Mutation'",
                        "extensions": {"code": "undefinedField"}}]}
    admin, _ = admin_with([FakeResponse(json_data=body)], sleeps)
    with pytest.raises(UnsupportedMutation):
        admin.graphql("mutation { productVariantUpdate }")


def test_transport_failures_are_retried_then_raised(sleeps, timeout_error):
    admin, session = admin_with([timeout_error, FakeResponse(status_code=502), FakeResponse(status_code=500)], sleeps)
    with pytest.raises(TransportError):
        variant_reader(admin).next_page()
    assert len(session.calls) == 3
    assert sleeps.calls == pytest.approx([0.6, 1.2])


def test_throttled_graphql_is_retried(sleeps):
    throttled = {"errors": [{"message": "Throttled", "extensions": {"code": "THROTTLED"}}]}
    responses = [
        FakeResponse(json_data=throttled),
        FakeResponse(json_data=gql_page("productVariants", [{"id": "v1", "sku": "A"}])),
    ]
    admin, _ = admin_with(responses, sleeps)
    assert [e.id for e in variant_reader(admin).iterate()] == ["v1"]


def test_product_reader_collects_skus_and_tags(sleeps):
    node = {
        "id": "p1", "handle": "h", "title": "T", "tags": ["a", "dept:X"],
        "variants": {"edges": [{"node": {"id": "v1", "sku": ""}}, {"node": {"id": "v2", "sku": "S2"}}]},
    }
    admin, _ = admin_with([FakeResponse(json_data=gql_page("products", [node]))], sleeps)
    [entity] = list(product_reader(admin).iterate())
    assert entity.sku == "S2"
    assert entity.skus == ("S2",)
    assert entity.tags == ["a", "dept:X"]


def test_image_reader_shares_image_set_between_siblings(sleeps):
    node = {
        "id": "gid://shopify/Product/9", "title": "T",
        "images": {"edges": [{"node": {"id": "i1", "url": "https://cdn.test/1.jpg", "altText": "http://sifam.test/a.jpg"}}]},
        "variants": {"edges": [{"node": {"id": "v1", "sku": "A"}}, {"node": {"id": "v2", "sku": "B"}}]},
    }
    admin, _ = admin_with([FakeResponse(json_data=gql_page("products", [node]))], sleeps)
    first, second = list(image_reader(admin).iterate())

    assert first.product_id == "gid://shopify/Product/9"
    assert first.images == {"https://cdn.test/1.jpg", "http://sifam.test/a.jpg"}
    first.images.add("https://new.test/x.jpg")
    assert "https://new.test/x.jpg" in second.images
