"""
Unit tests for the wide-format parser and its header validation.
"""
import pytest

from conftest import VALUES_CSV, wide_csv
from marketdash.datasets.zillow_wide.parse import parse_single_region, parse_wide_csv, validate_wide_csv
from marketdash.errors import EmptyFile, HeaderShapeInvalid, NoValidRegions, ParseFailed
from marketdash.metrics.merge import summarize

SCENARIO_A = 'id,name,state,,,,,,2020-01,2020-02\n1,"Detroit, MI",MI,,,,,,300000,305000\n'


# =============================================================================
# Validation
# =============================================================================


class TestValidateWideCsv:
    def test_valid_header(self):
        result = validate_wide_csv(SCENARIO_A)
        assert result.valid
        assert result.reason == ""

    def test_empty_text(self):
        result = validate_wide_csv("   \n")
        assert not result.valid
        assert isinstance(result.error, EmptyFile)

    def test_too_few_columns(self):
        result = validate_wide_csv("id,name,state,2020-01\n1,x,MI,5\n")
        assert not result.valid
        assert isinstance(result.error, HeaderShapeInvalid)
        assert "metadata columns" in result.reason

    def test_no_date_columns(self):
        result = validate_wide_csv("a,b,c,d,e,f,g,h\n1,2,3,4,5,6,7,8\n")
        assert not result.valid
        assert isinstance(result.error, HeaderShapeInvalid)

    def test_non_date_label(self):
        result = validate_wide_csv("id,name,state,,,,,,2020-01,Notes\n")
        assert not result.valid
        assert "'Notes'" in result.reason

    def test_descending_dates_rejected(self):
        result = validate_wide_csv("id,name,state,,,,,,2020-02,2020-01\n")
        assert not result.valid
        assert "ascending" in result.reason

    def test_full_dates_accepted(self):
        assert validate_wide_csv(wide_csv(["2020-01-31", "2020-02-29"], [])).valid


# =============================================================================
# Parsing
# =============================================================================


class TestParseWideCsv:
    def test_scenario_a(self):
        series = parse_wide_csv(SCENARIO_A)
        assert len(series) == 1
        s = series[0]
        assert s.region_id == "1"
        assert s.city == "Detroit"
        assert s.state == "MI"
        assert s.zip_code is None
        assert s.points == [("2020-01", 300000.0), ("2020-02", 305000.0)]
        assert summarize(s).percent_change == pytest.approx(1.6667, rel=1e-3)

    def test_scenario_b_non_numeric_cell_skipped(self):
        text = SCENARIO_A.replace("305000", "N/A")
        series = parse_wide_csv(text)
        assert series[0].points == [("2020-01", 300000.0)]
        assert summarize(series[0]).percent_change == 0

    def test_non_numeric_never_becomes_zero(self):
        text = wide_csv(["2020-01", "2020-02", "2020-03"], [(1, "Detroit, MI", "MI", "abc", 10, "")])
        points = parse_wide_csv(text)[0].points
        assert points == [("2020-02", 10.0)]
        assert all(v != 0 for _, v in points)

    def test_row_without_values_dropped(self):
        text = wide_csv(
            ["2020-01", "2020-02"],
            [(1, "Detroit, MI", "MI", 1, 2), (2, "Empty, XX", "XX", "", "N/A")],
        )
        series = parse_wide_csv(text)
        assert [s.region_id for s in series] == ["1"]
        assert len(series) < len(text.strip().splitlines()) - 1

    def test_numeric_cells_round_trip_by_date(self):
        dates = ["2021-01", "2021-02", "2021-03"]
        rows = [(7, "Austin, TX", "TX", 1.5, 250000, 99.25), (8, "Reno, NV", "NV", 0, 12, 13)]
        series = {s.region_id: dict(s.points) for s in parse_wide_csv(wide_csv(dates, rows))}
        for region_id, _, _, *values in rows:
            for date, value in zip(dates, values):
                assert series[str(region_id)][date] == float(value)

    def test_zip_named_region(self):
        series = {s.region_id: s for s in parse_wide_csv(VALUES_CSV)}
        assert series["3"].zip_code == "90210"
        assert series["2"].points == [("2020-01", 500000.0), ("2020-02", 490000.0)]

    def test_invalid_header_aborts(self):
        with pytest.raises(HeaderShapeInvalid):
            parse_wide_csv("id,name,state\n1,a,b\n")

    def test_empty_file(self):
        with pytest.raises(EmptyFile):
            parse_wide_csv("")

    def test_header_only(self):
        with pytest.raises(NoValidRegions):
            parse_wide_csv(wide_csv(["2020-01"], []))

    def test_no_valid_regions(self):
        with pytest.raises(NoValidRegions):
            parse_wide_csv(wide_csv(["2020-01"], [(1, "Detroit, MI", "MI", "x")]))

    def test_ragged_row_is_parse_failure(self):
        text = SCENARIO_A + '2,"Austin, TX",TX,,,,,,1,2,3,4\n'
        with pytest.raises(ParseFailed):
            parse_wide_csv(text)


class TestParseSingleRegion:
    def test_single_row(self):
        series = parse_single_region(SCENARIO_A)
        assert series is not None
        assert series.city == "Detroit"

    def test_unusable_file_is_none(self):
        assert parse_single_region("<html>not found</html>") is None
        assert parse_single_region(wide_csv(["2020-01"], [(1, "Detroit, MI", "MI", "")])) is None
