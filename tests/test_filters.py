import pytest

from fincore.domain import DateRange, FilterState, Transaction
from fincore.filters import DEFAULT_FILTERS, apply_filters, by_search, merge_filters


def make_sample():
    return (
        Transaction("t1", "income", 3000, "Salary", "September salary", "2026-09-01", "2026-09-01T09:00:00"),
        Transaction("t2", "expense", 1200, "Rent", "Apartment rent", "2026-09-02", "2026-09-02T10:00:00"),
        Transaction("t3", "expense", 84.5, "Groceries", "Weekly groceries", "2026-09-05", "2026-09-05T18:30:00"),
        Transaction("t4", "income", 400, "Freelance", "Logo design", "2026-09-19", "2026-09-19T16:00:00"),
        Transaction("t5", "expense", 132.2, "Groceries", "Groceries and household", "2026-10-09", "2026-10-09T19:05:00"),
    )


def ids(trans):
    return [t.id for t in trans]


def test_default_filters_keep_everything_in_order():
    trans = make_sample()
    assert apply_filters(trans, DEFAULT_FILTERS) == trans


def test_type_filter_keeps_input_order():
    trans = make_sample()
    assert ids(apply_filters(trans, FilterState(type="expense"))) == ["t2", "t3", "t5"]
    assert ids(apply_filters(trans, FilterState(type="income"))) == ["t1", "t4"]


def test_filtering_is_idempotent():
    trans = make_sample()
    f = FilterState(type="expense", search_term="groc")
    once = apply_filters(trans, f)
    assert apply_filters(once, f) == once


def test_date_range_is_inclusive():
    trans = make_sample()
    f = FilterState(date_range=DateRange("2026-09-02", "2026-09-19"))
    assert ids(apply_filters(trans, f)) == ["t2", "t3", "t4"]


def test_categories_filter():
    trans = make_sample()
    assert ids(apply_filters(trans, FilterState(categories=frozenset({"Groceries"})))) == ["t3", "t5"]


def test_search_matches_description_or_category_ignoring_case():
    trans = make_sample()
    assert ids(apply_filters(trans, FilterState(search_term="GROC"))) == ["t3", "t5"]
    assert ids(apply_filters(trans, FilterState(search_term="logo"))) == ["t4"]
    assert by_search("rent")(trans[1])


def test_filters_are_combined():
    trans = make_sample()
    f = FilterState(type="expense", search_term="rent")
    assert ids(apply_filters(trans, f)) == ["t2"]


def test_merge_filters_normalises_inputs():
    f = merge_filters(DEFAULT_FILTERS, categories=["Rent", "Rent"], date_range=("2026-09-01", "2026-09-30"))
    assert f.categories == frozenset({"Rent"})
    assert f.date_range == DateRange("2026-09-01", "2026-09-30")
    assert f.type == "all"

    f = merge_filters(f, search_term=None, date_range=None)
    assert f.search_term == ""
    assert f.date_range is None
    assert f.categories == frozenset({"Rent"})


def test_merge_filters_rejects_bad_input():
    with pytest.raises(ValueError):
        merge_filters(DEFAULT_FILTERS, colour="red")
    with pytest.raises(ValueError):
        merge_filters(DEFAULT_FILTERS, type="transfer")
