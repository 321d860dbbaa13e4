"""
Tests for the in-memory query engine: sorting, pagination, category,
attribute filtering, search relevance and new arrivals.
"""

from datetime import datetime, timezone

import pytest

from conftest import raw_product

from storefront.catalogue.transform import transform_products
from storefront.core.errors import InvalidArgument
from storefront.query import engine


@pytest.fixture
def items(sample_products):
    return transform_products(sample_products)


def ids(products):
    return [p.id for p in products]


# ── Sorting ──────────────────────────────────────────────────────────────

class TestSortProducts:
    def test_date_desc_default(self, items):
        # Oak Floor has an unparsable date and sorts as the epoch
        assert ids(engine.sort_products(items)) == [3, 1, 2, 4]

    def test_date_asc(self, items):
        assert ids(engine.sort_products(items, "date", "asc")) == [4, 2, 1, 3]

    def test_price_asc_missing_price_is_zero(self, items):
        assert ids(engine.sort_products(items, "price", "asc")) == [4, 3, 1, 2]

    def test_title_asc(self, items):
        assert ids(engine.sort_products(items, "title", "asc")) == [2, 1, 4, 3]

    def test_title_ignores_accents(self):
        products = transform_products([
            raw_product(1, "Zebra Mosaic"),
            raw_product(2, "Étagère"),
            raw_product(3, "etagere"),
        ])
        assert ids(engine.sort_products(products, "title", "asc")) == [3, 2, 1]


    def test_unknown_orderby_falls_back_to_date(self, items):
        assert ids(engine.sort_products(items, "rating", "desc")) == [3, 1, 2, 4]

    def test_any_other_order_is_descending(self, items):
        assert ids(engine.sort_products(items, "price", "sideways")) == [2, 1, 3, 4]

    def test_input_not_mutated(self, items):
        before = ids(items)
        engine.sort_products(items, "price", "asc")
        assert ids(items) == before

    def test_rejects_non_list(self):
        with pytest.raises(InvalidArgument):
            engine.sort_products("not a list")


# ── Pagination ───────────────────────────────────────────────────────────

class TestPaginate:
    def test_first_and_last_page(self, items):
        first = engine.paginate(items, 1, 3)
        last = engine.paginate(items, 2, 3)
        assert len(first.products) == 3
        assert len(last.products) == 1
        assert first.total_pages == last.total_pages == 2
        assert first.total_products == 4

    def test_pages_concatenate_to_full_list(self, items):
        ordered = engine.sort_products(items, "title", "asc")
        for per_page in (1, 2, 3, 4, 5):
            total_pages = engine.paginate(ordered, 1, per_page).total_pages
            joined = []
            for page in range(1, total_pages + 1):
                joined.extend(engine.paginate(ordered, page, per_page).products)
            assert ids(joined) == ids(ordered)

    def test_page_past_end_is_empty(self, items):
        result = engine.paginate(items, 9, 3)
        assert result.products == []
        assert result.total_products == 4

    def test_page_below_one_is_empty(self, items):
        assert engine.paginate(items, 0, 3).products == []

    def test_empty_input(self):
        result = engine.paginate([], 1, 12)
        assert result.total_pages == 0
        assert result.products == []

    def test_per_page_below_one_rejected(self, items):
        with pytest.raises(InvalidArgument):
            engine.paginate(items, 1, 0)

    def test_non_integer_arguments_rejected(self, items):
        with pytest.raises(InvalidArgument):
            engine.paginate(items, "1", 12)
        with pytest.raises(InvalidArgument):
            engine.paginate(items, 1, True)


class TestBuildMeta:
    def test_middle_page(self):
        meta = engine.build_meta(2, 12, 3, 30)
        assert meta == {
            "current_page": 2,
            "per_page": 12,
            "total_pages": 3,
            "total_products": 30,
            "has_next_page": True,
            "has_prev_page": True,
        }

    def test_single_page(self):
        meta = engine.build_meta(1, 12, 1, 5)
        assert meta["has_next_page"] is False
        assert meta["has_prev_page"] is False


# ── Category ─────────────────────────────────────────────────────────────

class TestCategory:
    def test_membership_in_any_category(self, items):
        assert set(ids(engine.filter_by_category(items, 5))) == {1, 2}
        assert ids(engine.filter_by_category(items, 12)) == [1]
        assert ids(engine.filter_by_category(items, 7)) == [3]
        assert 1 not in ids(engine.filter_by_category(items, 7))

    def test_unknown_category_empty(self, items):
        assert engine.filter_by_category(items, 999) == []

    def test_products_by_category_sorted_and_paged(self, items):
        result = engine.products_by_category(items, 5, page=1, per_page=1, orderby="price", order="asc")
        assert ids(result.products) == [1]
        assert result.total_products == 2
        assert result.total_pages == 2


# ── Attribute filtering ──────────────────────────────────────────────────

class TestParseFilterTokens:
    def test_comma_separated(self):
        assert engine.parse_filter_tokens("Black, White") == {"black", "white"}

    def test_empty_tokens_dropped(self):
        assert engine.parse_filter_tokens("white,, ,") == {"white"}

    def test_list_values_merged(self):
        assert engine.parse_filter_tokens(["grey", "white,black"]) == {"grey", "white", "black"}


class TestFilterByAttributes:
    def test_single_token(self, items):
        assert set(ids(engine.filter_by_attributes(items, {"pa_colour": "white"}))) == {1, 3}

    def test_hyphenated_token_matches_multiword_option(self, items):
        assert ids(engine.filter_by_attributes(items, {"pa_colour": "black-and-white"})) == [2]

    def test_or_within_attribute(self, items):
        result = engine.filter_by_attributes(items, {"pa_colour": "grey,black-and-white"})
        assert set(ids(result)) == {1, 2}

    def test_and_across_attributes(self, items):
        result = engine.filter_by_attributes(items, {"pa_colour": "white", "pa_finish": "polished"})
        assert ids(result) == [3]

    def test_unknown_keys_ignored(self, items):
        assert ids(engine.filter_by_attributes(items, {"pa_brand": "acme"})) == ids(items)

    def test_empty_value_ignored(self, items):
        assert ids(engine.filter_by_attributes(items, {"pa_colour": ""})) == ids(items)

    def test_adding_a_filter_never_grows_the_result(self, items):
        base = set(ids(engine.filter_by_attributes(items, {"pa_colour": "white"})))
        narrowed = set(ids(engine.filter_by_attributes(
            items, {"pa_colour": "white", "pa_material": "natural-stone"})))
        assert narrowed <= base
        assert narrowed == {1}

    def test_custom_allow_list(self, items):
        result = engine.filter_by_attributes(items, {"pa_colour": "white"}, allowed=["pa_finish"])
        assert ids(result) == ids(items)

    def test_rejects_non_mapping(self, items):
        with pytest.raises(InvalidArgument):
            engine.filter_by_attributes(items, [("pa_colour", "white")])

    def test_repeated_query_is_identical(self, items):
        filters = {"pa_colour": "white"}
        first = engine.filtered_products(items, filters, page=1, per_page=12)
        second = engine.filtered_products(items, filters, page=1, per_page=12)
        assert first == second


# ── Search ───────────────────────────────────────────────────────────────

class TestSearch:
    def test_relevance_order(self, items):
        # exact match, then prefix match, then any other containing match
        assert ids(engine.search(items, "marble")) == [2, 1, 3]

    def test_case_insensitive(self, items):
        assert ids(engine.search(items, "  MARBLE ")) == [2, 1, 3]

    def test_category_restriction(self, items):
        assert ids(engine.search(items, "marble", "tiles")) == [2, 1]

    def test_matches_slug(self, items):
        assert ids(engine.search(items, "oak-floor")) == [4]

    def test_blank_query_matches_nothing(self, items):
        assert engine.search(items, "   ") == []

    def test_no_match(self, items):
        assert engine.search(items, "granite") == []

    def test_rejects_non_string_query(self, items):
        with pytest.raises(InvalidArgument):
            engine.search(items, None)


# ── New arrivals ─────────────────────────────────────────────────────────

class TestSubtractMonths:
    def test_simple(self):
        assert engine.subtract_months(datetime(2024, 5, 15), 2) == datetime(2024, 3, 15)

    def test_across_year(self):
        assert engine.subtract_months(datetime(2024, 1, 10), 2) == datetime(2023, 11, 10)

    def test_day_clamped_to_month_length(self):
        assert engine.subtract_months(datetime(2024, 5, 31), 3) == datetime(2024, 2, 29)
        assert engine.subtract_months(datetime(2023, 5, 31), 3) == datetime(2023, 2, 28)


class TestNewArrivals:
    def test_window(self, items):
        now = datetime(2024, 5, 15, tzinfo=timezone.utc)
        assert ids(engine.new_arrivals(items, now, 2)) == [3]

    def test_cutoff_is_inclusive(self, items):
        now = datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)
        assert ids(engine.new_arrivals(items, now, 2)) == [3, 1]

    def test_naive_now_treated_as_utc(self, items):
        assert ids(engine.new_arrivals(items, datetime(2024, 5, 1, 9, 0), 2)) == [3, 1]

    def test_invalid_dates_sort_as_epoch(self, items):
        now = datetime(1970, 2, 1, tzinfo=timezone.utc)
        assert 4 in ids(engine.new_arrivals(items, now, 2))
        assert 4 not in ids(engine.new_arrivals(items, datetime(2024, 5, 1, tzinfo=timezone.utc), 2))


class TestParsing:
    def test_timestamp_with_z_suffix(self):
        parsed = engine.parse_timestamp("2024-01-01T00:00:00Z")
        assert parsed == datetime(2024, 1, 1, tzinfo=timezone.utc)

    def test_invalid_timestamp_is_epoch(self):
        assert engine.parse_timestamp("yesterday") == engine.EPOCH
        assert engine.parse_timestamp("") == engine.EPOCH

    def test_price_parsing(self, items):
        by_id = {item.id: item for item in items}
        assert engine.parse_price(by_id[3]) == 15.5
        assert engine.parse_price(by_id[4]) == 0.0

    def test_non_finite_price_is_zero(self, items):
        item = items[0].model_copy(update={"price": "inf"})
        assert engine.parse_price(item) == 0.0


class TestFindBySlug:
    def test_found(self, items):
        assert engine.find_by_slug(items, "white-marble").id == 3

    def test_missing(self, items):
        assert engine.find_by_slug(items, "nope") is None
