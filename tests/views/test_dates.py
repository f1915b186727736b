from datetime import timedelta, timezone

from teamchat.views.dates import DateHeader, MessageEntry, date_label, group_messages_by_date

from tests.factories import NOW, make_message

UTC = timezone.utc


def test_date_label_relative_days():
    assert date_label(NOW - timedelta(hours=1), NOW, UTC) == "Today"
    assert date_label(NOW - timedelta(days=1), NOW, UTC) == "Yesterday"
    # NOW is a Friday
    assert date_label(NOW - timedelta(days=3), NOW, UTC) == "Tuesday"
    assert date_label(NOW - timedelta(days=6), NOW, UTC) == "Saturday"


def test_date_label_older_than_a_week():
    assert date_label(NOW - timedelta(days=7), NOW, UTC) == "March 8, 2024"
    assert date_label(NOW - timedelta(days=400), NOW, UTC) == "February 9, 2023"


def test_date_label_uses_viewer_timezone():
    late_evening_utc = NOW.replace(hour=0) - timedelta(minutes=30)  # Mar 14, 23:30 UTC
    assert date_label(late_evening_utc, NOW, UTC) == "Yesterday"
    assert date_label(late_evening_utc, NOW, timezone(timedelta(hours=2))) == "Today"


def test_group_messages_one_header_per_day_in_order():
    messages = [
        make_message("m3", created_at=NOW),
        make_message("m1", created_at=NOW - timedelta(days=2, hours=1)),
        make_message("m2", created_at=NOW - timedelta(days=2)),
        make_message("m4", created_at=NOW + timedelta(minutes=5)),
        make_message("m0", created_at=NOW - timedelta(days=30)),
    ]

    timeline = group_messages_by_date(messages, now=NOW, tz=UTC)

    headers = [e.label for e in timeline if isinstance(e, DateHeader)]
    assert headers == ["February 14, 2024", "Wednesday", "Today"]
    ids = [e.message.id for e in timeline if isinstance(e, MessageEntry)]
    assert ids == ["m0", "m1", "m2", "m3", "m4"]
    assert isinstance(timeline[0], DateHeader)


def test_group_messages_empty():
    assert group_messages_by_date([], now=NOW, tz=UTC) == []
