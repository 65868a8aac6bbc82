"""Tests for the page classifier."""

import pytest

from hunt_alerts.classification import RULES, classify_listing_intent, classify_page, source_tier
from hunt_alerts.models import ListingKind, PageType

PICKLES_DETAIL = "https://www.pickles.com.au/used/details/cars/2022-toyota-landcruiser-gxl/12345678"


def test_pickles_detail_page_is_auction_listing():
    page = classify_page(PICKLES_DETAIL)
    assert page.page_type == PageType.LISTING
    assert page.is_listing
    assert page.listing_kind == ListingKind.AUCTION_LOT
    assert page.rule == "PICKLES_DETAIL"
    assert page.reject_reason is None


@pytest.mark.parametrize("url", [
    "https://www.gumtree.com.au/s-ad/penrith/cars-vans-utes/2020-toyota-landcruiser/1312345678",
    "https://www.autotrader.com.au/car/12345678/toyota/landcruiser",
    "https://www.carsales.com.au/cars/details/2021-toyota-landcruiser/SSE-AD-1234567/",
])
def test_marketplace_detail_pages_are_retail_listings(url):
    page = classify_page(url)
    assert page.is_listing
    assert page.listing_kind == ListingKind.RETAIL_LISTING


def test_denylisted_domain_is_blocked_regardless_of_path():
    page = classify_page("https://www.youtube.com/watch?v=lot-12345")
    assert page.page_type == PageType.OTHER
    assert page.reject_reason == "BLOCKED_DOMAIN"


def test_known_source_results_page_is_search():
    page = classify_page("https://www.carsales.com.au/cars/toyota/landcruiser/")
    assert page.page_type == PageType.SEARCH
    assert page.reject_reason == "SEARCH_PAGE"


def test_query_parameters_mark_search_page():
    page = classify_page("https://www.smithtoyota.com.au/used-cars?make=toyota&page=2")
    assert page.page_type == PageType.SEARCH


def test_login_is_distinguished_from_article():
    assert classify_page("https://www.pickles.com.au/login").page_type == PageType.LOGIN
    news = classify_page("https://www.drive.com.au/news/toyota-landcruiser-70-series-update/")
    assert news.page_type == PageType.ARTICLE
    assert news.reject_reason == "EDITORIAL_PATH"


def test_editorial_title_overrides_listing_url():
    page = classify_page(PICKLES_DETAIL, title="Review: 2022 Toyota LandCruiser GXL")
    assert page.page_type == PageType.ARTICLE
    assert page.reject_reason == "TITLE_EDITORIAL"
    assert not page.is_listing


def test_known_source_without_detail_shape_is_category():
    page = classify_page("https://www.manheim.com.au/passenger-vehicles")
    assert page.page_type == PageType.CATEGORY
    assert page.reject_reason == "NO_DETAIL_SHAPE"


def test_unknown_dealer_stock_page_is_listing():
    page = classify_page("https://www.smithtoyota.com.au/stock/used/2021-toyota-landcruiser/AB12345")
    assert page.is_listing
    assert page.listing_kind == ListingKind.DEALER_STOCK
    assert page.rule == "GENERIC_DETAIL"


def test_unknown_page_without_detail_shape_is_other():
    page = classify_page("https://www.smithtoyota.com.au/")
    assert page.page_type == PageType.OTHER
    assert page.rule == "NO_DETAIL_SHAPE"


def test_rules_run_in_fixed_order():
    names = [rule.name for rule in RULES]
    assert names[0] == "DOMAIN_DENYLIST"
    assert names[-1] == "NO_DETAIL_SHAPE"
    assert names.index("PICKLES_DETAIL") < names.index("LOGIN_PAGE") < names.index("EDITORIAL_PATH")
    assert names.index("EDITORIAL_PATH") < names.index("SEARCH_SHAPE") < names.index("GENERIC_DETAIL")


def test_source_tier():
    assert source_tier(PICKLES_DETAIL) == 1
    assert source_tier("https://www.gumtree.com.au/s-ad/x/1312345678") == 2
    assert source_tier("https://www.smithtoyota.com.au/stock/123456") == 3


def test_listing_intent():
    assert classify_listing_intent(PICKLES_DETAIL).intent == "listing"
    assert classify_listing_intent("https://www.drive.com.au/news/lc300-review/").intent == "non_listing"

    signals = classify_listing_intent(
        "https://www.someseller.com.au/post-77",
        "2019 Toyota LandCruiser for sale",
        "$65,000 - 120,000 km - Brisbane QLD",
    )
    assert signals.intent == "listing"
    assert signals.reason == "SIGNAL_MATCH"

    assert classify_listing_intent("https://www.someseller.com.au/post-77", "Hello").intent == "unknown"


def test_tracking_params_do_not_hide_detail_shape():
    page = classify_page(PICKLES_DETAIL + "?srsltid=AfmBOoq123")
    assert page.is_listing
    assert page.rule == "PICKLES_DETAIL"


def test_dealer_detail_with_filter_params_is_listing():
    page = classify_page("https://www.smithtoyota.com.au/stock/AB12345?year=2022")
    assert page.is_listing
    assert page.rule == "GENERIC_DETAIL"
