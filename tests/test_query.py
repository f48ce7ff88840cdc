"""Tests for product listing, sorting, pagination and search."""
import math


def test_list_products_pagination(client, create_product):
    """Test listing products with pagination."""
    for i in range(15):
        create_product(f"Product {i}", stock=i)

    response = client.get("/api/products?page=1&limit=10")

    assert response.status_code == 200
    data = response.json()
    assert len(data["products"]) == 10
    pagination = data["pagination"]
    assert pagination["totalItems"] == 15
    assert pagination["totalPages"] == 2
    assert pagination["currentPage"] == 1
    assert pagination["itemsPerPage"] == 10
    assert pagination["hasNextPage"] is True
    assert pagination["hasPrevPage"] is False

    second = client.get("/api/products?page=2&limit=10").json()
    assert len(second["products"]) == 5
    assert second["pagination"]["hasNextPage"] is False
    assert second["pagination"]["hasPrevPage"] is True


def test_list_products_defaults(client, create_product):
    """Default listing is newest first, ten per page."""
    for i in range(12):
        create_product(f"Item {i}")

    data = client.get("/api/products").json()

    ids = [p["id"] for p in data["products"]]
    assert len(ids) == 10
    assert ids == sorted(ids, reverse=True)
    assert data["pagination"]["itemsPerPage"] == 10


def test_total_pages_matches_filter(client, create_product):
    """Count and rows come from the same filter."""
    for i in range(7):
        create_product(f"Hammer {i}", category="Tools")
    for i in range(4):
        create_product(f"Apple {i}", category="Food")

    for limit in (1, 2, 3, 5, 10):
        data = client.get(f"/api/products?category=Tools&limit={limit}").json()
        pagination = data["pagination"]
        assert pagination["totalItems"] == 7
        assert pagination["totalPages"] == math.ceil(7 / limit)
        assert all(p["category"] == "Tools" for p in data["products"])


def test_filter_by_category_is_exact(client, create_product):
    """Category must match exactly."""
    create_product("Hammer", category="Tools")
    create_product("Drill", category="Power Tools")

    data = client.get("/api/products?category=Tools").json()

    assert [p["name"] for p in data["products"]] == ["Hammer"]


def test_filter_by_name_substring(client, create_product):
    """Name filter is a case-insensitive substring match."""
    create_product("Blue Widget")
    create_product("Red widget")
    create_product("Gadget")

    data = client.get("/api/products?name=WIDGET").json()

    assert data["pagination"]["totalItems"] == 2
    assert {p["name"] for p in data["products"]} == {"Blue Widget", "Red widget"}


def test_sort_ascending_by_stock(client, create_product):
    """Sorting by an allowed field in ascending order."""
    create_product("A", stock=5)
    create_product("B", stock=1)
    create_product("C", stock=3)

    data = client.get("/api/products?sort=stock&order=asc").json()

    assert [p["stock"] for p in data["products"]] == [1, 3, 5]


def test_sort_descending_by_name(client, create_product):
    create_product("alpha")
    create_product("charlie")
    create_product("bravo")

    data = client.get("/api/products?sort=NAME&order=DESC").json()

    assert [p["name"] for p in data["products"]] == ["charlie", "bravo", "alpha"]


def test_invalid_sort_falls_back_to_id(client, create_product):
    """Unknown sort field and order fall back to id descending."""
    first = create_product("First")["id"]
    second = create_product("Second")["id"]

    data = client.get(
        "/api/products",
        params={"sort": "image;DROP TABLE products", "order": "sideways"}
    ).json()

    assert [p["id"] for p in data["products"]] == [second, first]


def test_page_beyond_total(client, create_product):
    """A page past the end is empty and has no next page."""
    create_product("Only")

    data = client.get("/api/products?page=5&limit=10").json()

    assert data["products"] == []
    assert data["pagination"]["totalPages"] == 1
    assert data["pagination"]["hasNextPage"] is False


def test_empty_listing(client):
    data = client.get("/api/products").json()

    assert data["products"] == []
    assert data["pagination"]["totalItems"] == 0
    assert data["pagination"]["totalPages"] == 0
    assert data["pagination"]["hasNextPage"] is False


def test_invalid_page_rejected(client):
    response = client.get("/api/products?page=0")

    assert response.status_code == 400


def test_oversized_limit_rejected(client):
    """Limits above MAX_PAGE_SIZE are refused rather than clamped."""
    response = client.get("/api/products?limit=500")

    assert response.status_code == 400
    assert any("limit" in error["loc"] for error in response.json()["errors"])


def test_search_products(client, create_product):
    """Test searching products by name."""
    widget = create_product("Widget")["id"]
    create_product("Gadget")
    mini = create_product("Mini widget")["id"]

    response = client.get("/api/products/search?name=wid")

    assert response.status_code == 200
    data = response.json()
    assert [p["id"] for p in data] == [mini, widget]
    assert all("Gadget" != p["name"] for p in data)


def test_search_treats_wildcards_literally(client, create_product):
    create_product("100% Cotton")
    create_product("Cotton")

    data = client.get("/api/products/search", params={"name": "0%"}).json()

    assert [p["name"] for p in data] == ["100% Cotton"]


def test_search_requires_name(client):
    """Search without a name is a bad request."""
    response = client.get("/api/products/search")

    assert response.status_code == 400
    assert response.json()["detail"] == "Name query parameter is required"
