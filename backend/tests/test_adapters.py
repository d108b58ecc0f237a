"""Tests for the source adapters.

HTTP adapters run against httpx.MockTransport; browser-backed adapters get
a stub in place of the Playwright BrowserManager.
"""

import json

import httpx
import pytest

from importhawk.core.exceptions import CollectionScrapeError, ScrapeError, ScrapeErrorKind
from importhawk.scrapers.adapters.aliexpress import AliExpressAdapter, extract_item_id
from importhawk.scrapers.adapters.amazon import AmazonAdapter, extract_asin, full_size_image
from importhawk.scrapers.adapters.generic import GenericAdapter, pick_product_node
from importhawk.scrapers.adapters.shopify import ShopifyAdapter
from importhawk.scrapers.base import PlatformKind
from importhawk.scrapers.factory import AdapterFactory
from importhawk.scrapers.utils.pacing import PacingPolicy


def _http(routes, requests=None):
    """Client that answers from a ``{path_with_query: response}`` table; 404 otherwise."""

    def handler(request: httpx.Request) -> httpx.Response:
        if requests is not None:
            requests.append(request)
        key = request.url.raw_path.decode()
        if key in routes:
            return routes[key]
        if request.url.path in routes:
            return routes[request.url.path]
        return httpx.Response(404, text="not found")

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class StubBrowser:
    """Stands in for BrowserManager; returns canned HTML per URL."""

    def __init__(self, pages=None):
        self.pages = pages or {}
        self.rendered = []

    async def render(self, url, wait_selector=None, settle_seconds=0.0):
        self.rendered.append(url)
        return self.pages.get(url, "<html></html>")

    async def stop(self):
        pass


SHOPIFY_PRODUCT = {
    "id": 7001,
    "title": "Linen Shirt",
    "handle": "linen-shirt",
    "body_html": "<p>Breathable linen.</p>",
    "vendor": "Acme",
    "product_type": "Shirts",
    "tags": "summer, linen",
    "options": [{"name": "Size", "values": ["S", "M"]}],
    "variants": [
        {"title": "S", "price": "20.00", "compare_at_price": "25.00", "sku": "LS-S", "option1": "S"},
        {"title": "M", "price": "20.00", "compare_at_price": None, "sku": "LS-M", "option1": "M"},
    ],
    "images": [{"src": "https://cdn.shopify.com/s/files/shirt.jpg", "position": 1}],
}


# ============================================================================
# SHOPIFY
# ============================================================================

def test_shopify_url_helpers():
    assert (
        ShopifyAdapter.product_json_url("https://shop.test/collections/summer/products/linen-shirt/?variant=1")
        == "https://shop.test/products/linen-shirt.json"
    )
    assert ShopifyAdapter.collection_base_url("https://shop.test/collections/summer?page=2") == (
        "https://shop.test/collections/summer"
    )
    assert ShopifyAdapter.collection_base_url("https://shop.test/") == "https://shop.test"


async def test_shopify_scrapes_product_json():
    http = _http({"/products/linen-shirt.json": httpx.Response(200, json={"product": SHOPIFY_PRODUCT})})
    adapter = ShopifyAdapter(http_client=http, pacing=PacingPolicy.none())

    raw = await adapter.scrape_product("https://shop.test/products/linen-shirt")

    assert raw.title == "Linen Shirt"
    assert raw.price_text == "20.00"
    assert raw.vendor == "Acme"
    assert raw.source_id == "7001"
    assert raw.handle == "linen-shirt"
    assert [v["sku"] for v in raw.variants] == ["LS-S", "LS-M"]
    assert raw.variants[0]["compare_at_price"] == "25.00"
    assert raw.options == [{"name": "Size", "values": ["S", "M"]}]
    assert raw.images[0]["alt"] == "Linen Shirt"
    await http.aclose()


async def test_shopify_falls_back_to_embedded_theme_json():
    theme_product = {
        "title": "Wool Beanie",
        "options": ["Color"],
        "variants": [{"title": "Grey", "price": 2500, "option1": "Grey"}],
        "images": ["//cdn.shopify.com/s/files/beanie.jpg"],
    }
    html = (
        "<html><body><h1>Wool Beanie</h1>"
        f"<script type='application/json' id='ProductJson'>{json.dumps({'product': theme_product})}</script>"
        "</body></html>"
    )
    http = _http({"/products/wool-beanie": httpx.Response(200, text=html)})
    adapter = ShopifyAdapter(http_client=http, pacing=PacingPolicy.none())

    raw = await adapter.scrape_product("https://shop.test/products/wool-beanie")

    # Theme JSON carries integer cents
    assert raw.variants[0]["price"] == "25"
    assert raw.options == [{"name": "Color", "values": []}]
    assert raw.images[0]["src"] == "//cdn.shopify.com/s/files/beanie.jpg"
    await http.aclose()


def test_shopify_html_selectors_without_embedded_json():
    adapter = ShopifyAdapter(pacing=PacingPolicy.none())
    html = """
    <html><body>
      <h1>Canvas Tote</h1>
      <span class="price">$18.00</span>
      <div class="product-vendor">Carry Co</div>
      <div class="product-description"><p>Sturdy canvas.</p></div>
      <div class="product-media"><img src="/files/tote.jpg"><img src="/files/icon-cart.png"></div>
    </body></html>
    """

    raw = adapter.parse_product_html(html, "https://shop.test/products/canvas-tote")

    assert raw.title == "Canvas Tote"
    assert raw.price_text == "$18.00"
    assert raw.vendor == "Carry Co"
    assert "Sturdy canvas." in raw.description
    assert [i["src"] for i in raw.images] == ["https://shop.test/files/tote.jpg"]


def test_shopify_html_without_title_is_parse_failure():
    adapter = ShopifyAdapter(pacing=PacingPolicy.none())
    with pytest.raises(ScrapeError) as exc:
        adapter.parse_product_html("<html><body><p>Nothing</p></body></html>", "https://shop.test/products/x")
    assert exc.value.kind == ScrapeErrorKind.PARSE_FAILURE


async def test_shopify_collection_pages_until_empty():
    def product(n):
        return dict(SHOPIFY_PRODUCT, id=n, title=f"Shirt {n}", handle=f"shirt-{n}")

    requests = []
    http = _http(
        {
            "/collections/summer/products.json?page=1&limit=250": httpx.Response(
                200, json={"products": [product(1), product(2)]}
            ),
            "/collections/summer/products.json?page=2&limit=250": httpx.Response(200, json={"products": [product(3)]}),
            "/collections/summer/products.json?page=3&limit=250": httpx.Response(200, json={"products": []}),
        },
        requests,
    )
    adapter = ShopifyAdapter(http_client=http, pacing=PacingPolicy.none())

    extractions = await adapter.scrape_collection("https://shop.test/collections/summer", limit=10)

    assert [e.title for e in extractions] == ["Shirt 1", "Shirt 2", "Shirt 3"]
    assert extractions[2].metadata["source_url"] == "https://shop.test/products/shirt-3"
    assert len(requests) == 3
    await http.aclose()


async def test_shopify_collection_stops_at_limit():
    requests = []
    products = [dict(SHOPIFY_PRODUCT, id=n, handle=f"shirt-{n}") for n in range(5)]
    http = _http(
        {"/collections/summer/products.json?page=1&limit=250": httpx.Response(200, json={"products": products})},
        requests,
    )
    adapter = ShopifyAdapter(http_client=http, pacing=PacingPolicy.none())

    extractions = await adapter.scrape_collection("https://shop.test/collections/summer", limit=2)

    assert len(extractions) == 2
    assert len(requests) == 1
    await http.aclose()


async def test_shopify_collection_first_page_failure():
    http = _http({})
    adapter = ShopifyAdapter(http_client=http, pacing=PacingPolicy.none())

    with pytest.raises(CollectionScrapeError):
        await adapter.scrape_collection("https://shop.test/collections/missing", limit=5)
    await http.aclose()


# ============================================================================
# GENERIC
# ============================================================================

JSON_LD_PAGE = """
<html><head>
<script type="application/ld+json">
{"@context": "https://schema.org", "@graph": [
  {"@type": "WebPage", "name": "Trail Runner | Stride"},
  {"@type": "Product", "name": "Trail Runner", "description": "Light trail shoe",
   "sku": "TR-1", "brand": {"@type": "Brand", "name": "Stride"},
   "image": ["https://cdn.stride.test/a.jpg", {"url": "https://cdn.stride.test/b.jpg"}],
   "offers": {"@type": "Offer", "price": "89.00", "priceCurrency": "USD"}}
]}
</script>
</head><body><h1>Trail Runner</h1></body></html>
"""


def test_pick_product_node_shapes():
    product = {"@type": "Product", "name": "Mug"}
    assert pick_product_node(product) == product
    assert pick_product_node([{"@type": "Organization"}, product]) == product
    assert pick_product_node({"@graph": [{"@type": "WebSite"}, product]}) == product
    assert pick_product_node({"@type": ["Product", "Thing"], "name": "Mug"})["name"] == "Mug"
    assert pick_product_node({"@type": "Organization"}) is None


def test_generic_reads_json_ld():
    adapter = GenericAdapter(pacing=PacingPolicy.none())

    raw = adapter.parse_product_html(JSON_LD_PAGE, "https://www.stride.test/p/trail-runner")

    assert raw.title == "Trail Runner"
    assert raw.price_text == "89.00"
    assert raw.vendor == "Stride"
    assert raw.description == "Light trail shoe"
    assert raw.source_id == "TR-1"
    assert [i["src"] for i in raw.images] == ["https://cdn.stride.test/a.jpg", "https://cdn.stride.test/b.jpg"]
    assert raw.metadata == {"structured_data": True}


def test_generic_falls_back_to_selectors():
    adapter = GenericAdapter(pacing=PacingPolicy.none())
    html = """
    <html><body>
      <h1 class="product-title">Ceramic Mug</h1>
      <span class="price">$12.50</span>
      <div class="product-gallery"><img src="/img/mug.jpg"><img src="/img/logo.png"></div>
    </body></html>
    """

    raw = adapter.parse_product_html(html, "https://www.mugs.test/p/mug")

    assert raw.title == "Ceramic Mug"
    assert raw.price_text == "$12.50"
    assert [i["src"] for i in raw.images] == ["https://www.mugs.test/img/mug.jpg"]
    assert raw.vendor == "mugs.test"
    assert raw.tags == ["imported"]
    assert raw.metadata == {"structured_data": False}


def test_generic_without_title_is_parse_failure():
    adapter = GenericAdapter(pacing=PacingPolicy.none())
    with pytest.raises(ScrapeError) as exc:
        adapter.parse_product_html("<html><body><p>x</p></body></html>", "https://mugs.test/p/1")
    assert exc.value.kind == ScrapeErrorKind.PARSE_FAILURE


@pytest.mark.parametrize(
    "response,kind",
    [
        (httpx.Response(404), ScrapeErrorKind.NOT_FOUND),
        (httpx.Response(403), ScrapeErrorKind.BLOCKED),
        (httpx.Response(429), ScrapeErrorKind.BLOCKED),
        (
            httpx.Response(200, text="<title>Attention Required! | Cloudflare</title>"),
            ScrapeErrorKind.BLOCKED,
        ),
    ],
)
async def test_generic_fetch_failures(response, kind):
    http = _http({"/p/mug": response})
    adapter = GenericAdapter(http_client=http, pacing=PacingPolicy.none())

    with pytest.raises(ScrapeError) as exc:
        await adapter.scrape_product("https://mugs.test/p/mug")

    assert exc.value.kind == kind
    await http.aclose()


async def test_generic_timeout_maps_to_timeout_kind():
    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)

    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    adapter = GenericAdapter(http_client=http, pacing=PacingPolicy.none())

    with pytest.raises(ScrapeError) as exc:
        await adapter.scrape_product("https://mugs.test/p/mug")

    assert exc.value.kind == ScrapeErrorKind.TIMEOUT
    await http.aclose()


async def test_generic_collection_is_single_page():
    http = _http({"/p/runner": httpx.Response(200, text=JSON_LD_PAGE)})
    adapter = GenericAdapter(http_client=http, pacing=PacingPolicy.none())

    assert [r.title for r in await adapter.scrape_collection("https://stride.test/p/runner", limit=5)] == [
        "Trail Runner"
    ]
    assert await adapter.scrape_collection("https://stride.test/p/gone", limit=5) == []
    await http.aclose()


# ============================================================================
# AMAZON
# ============================================================================

AMAZON_PAGE = """
<html><body>
  <span id="productTitle"> Anker Portable Charger </span>
  <a id="bylineInfo">Visit the Anker Store</a>
  <div class="a-price"><span class="a-offscreen">$24.99</span></div>
  <div id="productDescription"><p>Pocket power bank.</p></div>
  <script>
    var data = {'colorImages': { 'initial': [
      {"hiRes": "https://m.media-amazon.com/images/I/81abc.jpg", "large": "https://m.media-amazon.com/images/I/81abc._AC_.jpg"},
      {"hiRes": null, "large": "https://m.media-amazon.com/images/I/71def.jpg"}
    ]}};
  </script>
</body></html>
"""


def test_amazon_asin_and_image_helpers():
    assert extract_asin("https://www.amazon.com/Anker-Charger/dp/B0TEST1234/ref=sr_1_1") == "B0TEST1234"
    assert extract_asin("https://www.amazon.com/gp/product/B0TEST1234?th=1") == "B0TEST1234"
    assert extract_asin("https://www.amazon.com/s?k=charger") is None
    assert (
        full_size_image("https://m.media-amazon.com/images/I/71def._AC_SX679_.jpg")
        == "https://m.media-amazon.com/images/I/71def.jpg"
    )


def test_amazon_parses_product_page():
    adapter = AmazonAdapter(pacing=PacingPolicy.none(), browser=StubBrowser())

    raw = adapter.parse_product_html(AMAZON_PAGE, "https://www.amazon.com/dp/B0TEST1234")

    assert raw.title == "Anker Portable Charger"
    assert raw.price_text == "$24.99"
    assert raw.vendor == "Anker"
    assert raw.source_id == "B0TEST1234"
    assert raw.tags == ["amazon", "imported"]
    assert [i["src"] for i in raw.images] == [
        "https://m.media-amazon.com/images/I/81abc.jpg",
        "https://m.media-amazon.com/images/I/71def.jpg",
    ]


def test_amazon_listing_links_are_canonical_and_unique():
    adapter = AmazonAdapter(pacing=PacingPolicy.none(), browser=StubBrowser())
    html = """
    <a href="/Anker-Charger/dp/B0AAAAAAA1/ref=sr_1_1">one</a>
    <a href="/dp/B0AAAAAAA1?th=1">one again</a>
    <a href="/gp/product/B0BBBBBBB2">two</a>
    <a href="/help">help</a>
    """

    assert adapter.parse_listing_html(html, "https://www.amazon.com/s?k=charger") == [
        "https://www.amazon.com/dp/B0AAAAAAA1",
        "https://www.amazon.com/dp/B0BBBBBBB2",
    ]


async def test_amazon_escalates_to_browser_on_captcha():
    url = "https://www.amazon.com/dp/B0TEST1234"
    captcha = "<html><body>Enter the characters you see below</body></html>"
    http = _http({"/dp/B0TEST1234": httpx.Response(200, text=captcha)})
    browser = StubBrowser({url: AMAZON_PAGE})
    adapter = AmazonAdapter(http_client=http, pacing=PacingPolicy.none(), browser=browser)

    raw = await adapter.scrape_product(url)

    assert raw.title == "Anker Portable Charger"
    assert browser.rendered == [url]
    await http.aclose()


async def test_amazon_captcha_in_browser_is_blocked():
    url = "https://www.amazon.com/dp/B0TEST1234"
    captcha = "<html><body>Sorry, we just need to make sure you're not a robot</body></html>"
    http = _http({"/dp/B0TEST1234": httpx.Response(200, text=captcha)})
    adapter = AmazonAdapter(http_client=http, pacing=PacingPolicy.none(), browser=StubBrowser({url: captcha}))

    with pytest.raises(ScrapeError) as exc:
        await adapter.scrape_product(url)

    assert exc.value.kind == ScrapeErrorKind.BLOCKED
    await http.aclose()


async def test_amazon_collection_keeps_good_items_when_others_fail(monkeypatch):
    listing = """
    <a href="/dp/B0AAAAAAA1">good</a>
    <a href="/dp/B0BBBBBBB2">gone</a>
    <a href="/dp/B0CCCCCCC3">odd layout</a>
    """
    http = _http({
        "/s?k=charger": httpx.Response(200, text=listing),
        "/dp/B0AAAAAAA1": httpx.Response(200, text=AMAZON_PAGE),
        "/dp/B0CCCCCCC3": httpx.Response(200, text=AMAZON_PAGE),
    })
    adapter = AmazonAdapter(http_client=http, pacing=PacingPolicy.none(), browser=StubBrowser())
    parse = adapter.parse_product_html

    def parse_or_break(html, url):
        if url.endswith("B0CCCCCCC3"):
            raise ValueError("unexpected page layout")
        return parse(html, url)

    monkeypatch.setattr(adapter, "parse_product_html", parse_or_break)

    extractions = await adapter.scrape_collection("https://www.amazon.com/s?k=charger", limit=10)

    assert [e.metadata["source_url"] for e in extractions] == ["https://www.amazon.com/dp/B0AAAAAAA1"]
    assert extractions[0].title == "Anker Portable Charger"
    await http.aclose()


# ============================================================================
# ALIEXPRESS
# ============================================================================

ALIEXPRESS_STATE = {
    "titleModule": {"subject": "Mini Desk Fan"},
    "priceModule": {"formatedActivityPrice": "US $7.49", "formatedPrice": "US $9.99"},
    "imageModule": {"imagePathList": [
        "https://ae01.alicdn.com/kf/fan1.jpg",
        "https://ae01.alicdn.com/kf/fan2.jpg",
    ]},
    "skuModule": {"productSKUPropertyList": [
        {"skuPropertyName": "Color", "skuPropertyValues": [
            {"propertyValueDisplayName": "White"},
            {"propertyValueName": "Pink"},
        ]},
    ]},
    "storeModule": {"storeName": "Breeze Store"},
}


def test_aliexpress_item_id():
    assert extract_item_id("https://www.aliexpress.com/item/1005001234567890.html?spm=a2g0o") == "1005001234567890"
    assert extract_item_id("https://www.aliexpress.com/category/100/fans.html") is None


def test_aliexpress_reads_run_params_state():
    adapter = AliExpressAdapter(pacing=PacingPolicy.none(), browser=StubBrowser())
    html = f"<html><script>window.runParams = {{ data: {json.dumps(ALIEXPRESS_STATE)} }};</script></html>"

    state = adapter.extract_page_state(html)
    raw = adapter.parse_product_html(html, "https://www.aliexpress.com/item/1005001234567890.html")

    assert state["titleModule"]["subject"] == "Mini Desk Fan"
    assert raw.title == "Mini Desk Fan"
    assert raw.price_text == "US $7.49"
    assert raw.vendor == "Breeze Store"
    assert raw.options == [{"name": "Color", "values": ["White", "Pink"]}]
    assert len(raw.images) == 2
    assert raw.source_id == "1005001234567890"
    assert raw.metadata["structured_data"] is True


def test_aliexpress_unwraps_nested_init_data():
    html = f"<script>window._init_data_ = {json.dumps({'data': {'data': ALIEXPRESS_STATE}})};</script>"

    state = AliExpressAdapter.extract_page_state(html)

    assert state["storeModule"]["storeName"] == "Breeze Store"


def test_aliexpress_selector_fallback():
    adapter = AliExpressAdapter(pacing=PacingPolicy.none(), browser=StubBrowser())
    html = """
    <html><body>
      <h1 data-pl="product-title">Mini Desk Fan</h1>
      <div class="price--current"><span>US $7.49</span></div>
      <img src="https://ae01.alicdn.com/kf/fan1.jpg">
    </body></html>
    """

    raw = adapter.parse_product_html(html, "https://www.aliexpress.com/item/42.html")

    assert raw.title == "Mini Desk Fan"
    assert raw.price_text == "US $7.49"
    assert raw.vendor == "AliExpress"
    assert raw.images == [{"src": "https://ae01.alicdn.com/kf/fan1.jpg", "alt": "Mini Desk Fan"}]


def test_aliexpress_listing_links():
    adapter = AliExpressAdapter(pacing=PacingPolicy.none(), browser=StubBrowser())
    html = """
    <a href="//www.aliexpress.com/item/111.html?spm=x">a</a>
    <a href="https://www.aliexpress.com/item/111.html">a again</a>
    <a href="/item/222.html">b</a>
    """

    assert adapter.parse_listing_html(html) == [
        "https://www.aliexpress.com/item/111.html",
        "https://www.aliexpress.com/item/222.html",
    ]


async def test_aliexpress_collection_skips_failed_items():
    listing_url = "https://www.aliexpress.com/store/1/search"
    good_url = "https://www.aliexpress.com/item/111.html"
    state_page = f"<script>window.runParams = {{ data: {json.dumps(ALIEXPRESS_STATE)} }};</script>"
    browser = StubBrowser({
        listing_url: '<a href="/item/111.html">a</a><a href="/item/222.html">b</a>',
        good_url: state_page,
    })
    adapter = AliExpressAdapter(pacing=PacingPolicy.none(), browser=browser)

    extractions = await adapter.scrape_collection(listing_url, limit=10)

    assert [e.metadata["source_url"] for e in extractions] == [good_url]


def test_aliexpress_state_with_malformed_sku_list_still_parses():
    adapter = AliExpressAdapter(pacing=PacingPolicy.none(), browser=StubBrowser())
    state = dict(ALIEXPRESS_STATE, skuModule={"productSKUPropertyList": {"0": {"skuPropertyName": "Color"}}})
    html = f"<script>window.runParams = {{ data: {json.dumps(state)} }};</script>"

    raw = adapter.parse_product_html(html, "https://www.aliexpress.com/item/1005001234567890.html")

    assert raw.title == "Mini Desk Fan"
    assert raw.options == []


async def test_aliexpress_collection_survives_unexpected_item_errors(monkeypatch):
    listing_url = "https://www.aliexpress.com/store/1/search"
    good_url = "https://www.aliexpress.com/item/111.html"
    state_page = f"<script>window.runParams = {{ data: {json.dumps(ALIEXPRESS_STATE)} }};</script>"
    browser = StubBrowser({
        listing_url: '<a href="/item/111.html">a</a><a href="/item/222.html">b</a>',
        good_url: state_page,
        "https://www.aliexpress.com/item/222.html": state_page,
    })
    adapter = AliExpressAdapter(pacing=PacingPolicy.none(), browser=browser)
    parse = adapter.parse_product_html

    def parse_or_break(html, url):
        if "222" in url:
            raise TypeError("unhashable type: 'slice'")
        return parse(html, url)

    monkeypatch.setattr(adapter, "parse_product_html", parse_or_break)

    extractions = await adapter.scrape_collection(listing_url, limit=10)

    assert [e.metadata["source_url"] for e in extractions] == [good_url]


# ============================================================================
# FACTORY
# ============================================================================

def test_factory_reuses_instances_and_falls_back_to_generic():
    factory = AdapterFactory(pacing=PacingPolicy.none())
    factory.register_adapter(PlatformKind.SHOPIFY, ShopifyAdapter)
    factory.register_adapter(PlatformKind.GENERIC, GenericAdapter)

    shopify = factory.get_adapter(PlatformKind.SHOPIFY)

    assert factory.get_adapter(PlatformKind.SHOPIFY) is shopify
    assert isinstance(factory.get_adapter(PlatformKind.AMAZON), GenericAdapter)
    with pytest.raises(ValueError):
        factory.register_adapter(PlatformKind.AMAZON, dict)
