from datetime import date

from conftest import blank_grid, flying_row, put_row

from whiteboard.errors import ErrorCode
from whiteboard.extractor import EventExtractor, NameMatcher, parse_checkbox
from whiteboard.layouts import LAYOUT_V1, LAYOUT_V2, select_layout
from whiteboard.models import (
    SECTION_FLYING,
    SECTION_NA,
    STATUS_EFFECTIVE,
    FlyingEvent,
    NAEvent,
    Person,
    SupervisionEvent,
)

CHANGEOVER = date(2024, 12, 9)
DACT_DAY = date(2025, 12, 15)

ROSTER = [
    Person("Adams", "Class 26A", "student"),
    Person("Baker", "Class 26A", "student"),
    Person("Carter", "Class 26A", "student"),
    Person("Ortiz", "Staff IP", "staff"),
]


def dact_grid():
    return put_row(
        blank_grid(),
        LAYOUT_V2.flying.start_row,
        flying_row(crew=("Adams", "Baker"), notes="2-ship", effective=True),
    )


class TestLayoutSelection:
    """Layout version follows the sheet date"""

    def test_dates_before_changeover_use_v1(self):
        assert select_layout(date(2024, 12, 8), CHANGEOVER) is LAYOUT_V1

    def test_changeover_day_uses_v2(self):
        assert select_layout(CHANGEOVER, CHANGEOVER) is LAYOUT_V2
        assert select_layout(DACT_DAY, CHANGEOVER) is LAYOUT_V2

    def test_row_outside_active_band_is_ignored(self):
        """Row 9 is flying in v1 but blank space in v2"""
        grid = put_row(blank_grid(), 9, flying_row(crew=("Adams",)))
        extractor = EventExtractor(CHANGEOVER)

        old = extractor.extract(grid, date(2024, 12, 2), ROSTER, "Mon 2 Dec")
        new = extractor.extract(grid, date(2024, 12, 16), ROSTER, "Mon 16 Dec")

        assert old.sheet.layout_version == 1
        assert len(old.by_person["Adams"]) == 1
        assert new.sheet.layout_version == 2
        assert new.by_person == {}


class TestFlyingEvents:
    """Flying band parsing"""

    def test_dact_row_is_shared_by_both_crew_members(self):
        result = EventExtractor(CHANGEOVER).extract(dact_grid(), DACT_DAY, ROSTER, "Mon 15 Dec")

        adams = result.by_person["Adams"]
        baker = result.by_person["Baker"]
        assert len(adams) == 1
        assert adams[0] is baker[0]
        assert "Carter" not in result.by_person

        event = adams[0]
        assert isinstance(event, FlyingEvent)
        assert event.date == DACT_DAY
        assert event.time == "0730"
        assert event.event == "DACT"
        assert event.crew == ("Adams", "Baker")
        assert event.status == STATUS_EFFECTIVE
        assert event.description == "T-38 | DACT | Adams | Baker"

    def test_three_ship_dact_times_and_crew(self):
        grid = put_row(
            blank_grid(),
            LAYOUT_V2.flying.start_row,
            flying_row(
                brief="0700", etd="0800", eta="0930", debrief="1030", crew=("Adams", "Baker", "Carter")
            ),
        )
        result = EventExtractor(CHANGEOVER).extract(grid, DACT_DAY, ROSTER, "Mon 15 Dec")

        assert len(result.events) == 1
        event = result.events[0]
        assert (event.brief_start, event.etd, event.eta, event.debrief_end) == ("0700", "0800", "0930", "1030")
        assert event.event == "DACT"
        assert list(event.crew) == ["Adams", "Baker", "Carter"]
        for name in ("Adams", "Baker", "Carter"):
            assert result.by_person[name] == [event]
        assert "Ortiz" not in result.by_person

    def test_serialised_event_shape(self):
        result = EventExtractor(CHANGEOVER).extract(dact_grid(), DACT_DAY, ROSTER, "Mon 15 Dec")
        payload = result.by_person["Adams"][0].to_dict()

        assert payload["date"] == "2025-12-15"
        assert payload["displayTime"] == "7:30 AM"
        assert payload["type"] == SECTION_FLYING
        assert payload["enhanced"]["notes"] == "2-ship"
        assert payload["enhanced"]["status"] == {
            "effective": True,
            "cancelled": False,
            "partiallyEffective": False,
        }

    def test_extraction_is_deterministic(self):
        extractor = EventExtractor(CHANGEOVER)
        first = extractor.extract(dact_grid(), DACT_DAY, ROSTER, "Mon 15 Dec")
        second = extractor.extract(dact_grid(), DACT_DAY, ROSTER, "Mon 15 Dec")

        assert [e.to_dict() for e in first.events] == [e.to_dict() for e in second.events]

    def test_conflicting_status_boxes_leave_status_unset(self):
        grid = put_row(
            blank_grid(),
            LAYOUT_V2.flying.start_row,
            flying_row(crew=("Adams",), effective=True, cancelled=True),
        )
        result = EventExtractor(CHANGEOVER).extract(grid, DACT_DAY, ROSTER, "Mon 15 Dec")

        event = result.by_person["Adams"][0]
        assert event.status is None
        assert not event.effective
        assert [e.code for e in result.errors] == [ErrorCode.MALFORMED_ROW.value]

    def test_malformed_time_is_recorded_and_row_kept(self):
        grid = put_row(
            blank_grid(),
            LAYOUT_V2.flying.start_row,
            flying_row(brief="7:30", crew=("Adams",)),
        )
        result = EventExtractor(CHANGEOVER).extract(grid, DACT_DAY, ROSTER, "Mon 15 Dec")

        event = result.by_person["Adams"][0]
        assert event.time is None
        assert event.brief_start is None
        assert result.errors[0].code == ErrorCode.MALFORMED_ROW.value
        assert result.errors[0].sheet == "Mon 15 Dec"
        assert result.errors[0].message == "Unparsable time '7:30' in Flying Events row 10"

    def test_names_match_whole_words_only(self):
        grid = put_row(
            blank_grid(),
            LAYOUT_V2.flying.start_row,
            flying_row(crew=("Adamson", "carter/ortiz")),
        )
        result = EventExtractor(CHANGEOVER).extract(grid, DACT_DAY, ROSTER, "Mon 15 Dec")

        assert "Adams" not in result.by_person
        assert set(result.by_person) == {"Carter", "Ortiz"}


class TestSupervisionAndNA:
    """Supervision shifts and NA ordering"""

    def test_each_shift_becomes_its_own_event(self):
        grid = put_row(blank_grid(), 2, ["SOF", "Adams", "0700", "1200", "Baker", "1200", "1700"])
        result = EventExtractor(CHANGEOVER).extract(grid, DACT_DAY, ROSTER, "Mon 15 Dec")

        adams = result.by_person["Adams"][0]
        baker = result.by_person["Baker"][0]
        assert isinstance(adams, SupervisionEvent)
        assert (adams.start, adams.end) == ("0700", "1200")
        assert (baker.start, baker.end) == ("1200", "1700")
        assert adams.description == "SOF | Adams | 0700-1200"

    def test_authorization_rows_have_no_times_and_sort_first(self):
        grid = blank_grid()
        put_row(grid, 1, ["SOF AUTH", "Ortiz", "0700", "1200"])
        put_row(grid, LAYOUT_V2.flying.start_row, flying_row(brief="0600", crew=("Ortiz",)))
        result = EventExtractor(CHANGEOVER).extract(grid, DACT_DAY, ROSTER, "Mon 15 Dec")

        first, second = result.by_person["Ortiz"]
        assert isinstance(first, SupervisionEvent)
        assert first.is_auth
        assert first.time is None and first.start is None
        assert first.description == "SOF AUTH | Ortiz"
        assert isinstance(second, FlyingEvent)

    def test_na_sorts_ahead_of_earlier_events(self):
        grid = blank_grid()
        put_row(grid, LAYOUT_V2.na.start_row, ["Dental", "1300", "1400", "Adams"])
        put_row(grid, LAYOUT_V2.flying.start_row, flying_row(brief="0730", crew=("Adams",)))
        result = EventExtractor(CHANGEOVER).extract(grid, DACT_DAY, ROSTER, "Mon 15 Dec")

        types = [e.to_dict()["type"] for e in result.by_person["Adams"]]
        assert types == [SECTION_NA, SECTION_FLYING]
        assert isinstance(result.by_person["Adams"][0], NAEvent)


class TestHelpers:
    def test_parse_checkbox(self):
        assert parse_checkbox("TRUE")
        assert parse_checkbox(" x ")
        assert parse_checkbox("✓")
        assert not parse_checkbox("FALSE")
        assert not parse_checkbox("")

    def test_name_matcher_is_case_insensitive(self):
        matcher = NameMatcher(ROSTER)
        found = matcher.find(["ADAMS and baker"])
        assert [p.name for p in found] == ["Adams", "Baker"]

    def test_empty_roster_matches_nothing(self):
        assert NameMatcher([]).find(["Adams"]) == []
