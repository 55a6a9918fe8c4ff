"""
Tests for filename pattern matching.
"""

import pytest

from dropsync.sync.filters import FilenameFilter


class TestFilenameFilter:
    def test_suffix_pattern(self):
        f = FilenameFilter("*_data.csv")
        assert f.matches("Order_data.csv")
        assert f.matches("File1_data.csv")
        assert not f.matches("ignore.txt")
        assert not f.matches("Order_data.csv.bak")

    def test_star_matches_empty_run(self):
        assert FilenameFilter("*_data.csv").matches("_data.csv")

    def test_case_sensitive(self):
        f = FilenameFilter("*_data.csv")
        assert not f.matches("ORDER_DATA.CSV")
        assert not f.matches("order_data.CSV")

    def test_question_mark_is_literal(self):
        f = FilenameFilter("report?.csv")
        assert f.matches("report?.csv")
        assert not f.matches("report1.csv")

    def test_brackets_and_dots_are_literal(self):
        f = FilenameFilter("[a].csv")
        assert f.matches("[a].csv")
        assert not f.matches("a.csv")
        assert not FilenameFilter("a.csv").matches("abcsv")

    def test_multiple_wildcards(self):
        f = FilenameFilter("in_*_*.csv")
        assert f.matches("in_2024_orders.csv")
        assert f.matches("in__.csv")
        assert not f.matches("out_2024_orders.csv")

    def test_exact_name(self):
        f = FilenameFilter("orders.csv")
        assert f.matches("orders.csv")
        assert not f.matches("xorders.csv")

    def test_accept_all(self):
        f = FilenameFilter.accept_all()
        assert f.matches("anything")
        assert f.matches("")

    def test_newline_in_name(self):
        assert FilenameFilter("*.csv").matches("weird\nname.csv")

    def test_empty_pattern_rejected(self):
        with pytest.raises(ValueError):
            FilenameFilter("")

    def test_callable(self):
        names = ["a_data.csv", "b.txt", "c_data.csv"]
        assert list(filter(FilenameFilter("*_data.csv"), names)) == ["a_data.csv", "c_data.csv"]
