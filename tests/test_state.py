"""Tests for continuation state shapes and the state codec."""

import json
import pytest
from datetime import datetime, timezone

from payments_sync.errors import StateDecodeError
from payments_sync.state import (
    CursorState,
    Timeline,
    StateCodec,
    cursor_codec,
    timeline_codec,
    ZERO_TIME_STRING,
)


class TestCursorStateCodec:
    """Tests for the forward-cursor state layout."""

    @pytest.mark.parametrize("blob", [None, b"", b"   ", b"null", b"{}"])
    def test_empty_input_is_start_of_stream(self, blob):
        """Test that empty, null and {} states all mean start of stream."""
        state = cursor_codec.decode(blob)
        assert state.watermark is None
        assert state.last_page == 0
        assert state.adapter is None

    def test_encode_uses_stable_field_names(self):
        """Test that encoded state uses lastSeenAt/lastPage."""
        state = CursorState(
            last_seen_at=datetime(2024, 3, 1, 10, 0, tzinfo=timezone.utc),
            last_page=2,
        )
        data = json.loads(cursor_codec.encode(state))
        assert data["lastSeenAt"] == "2024-03-01T10:00:00Z"
        assert data["lastPage"] == 2

    def test_zero_watermark_is_written_as_zero_time(self):
        """Test that an empty watermark is encoded as the zero time."""
        data = json.loads(cursor_codec.encode(CursorState()))
        assert data["lastSeenAt"] == ZERO_TIME_STRING

    def test_zero_time_decodes_to_no_watermark(self):
        """Test that the zero time is read back as an empty watermark."""
        state = cursor_codec.decode(b'{"lastSeenAt": "0001-01-01T00:00:00Z", "lastPage": 0}')
        assert state.watermark is None

    def test_decode_offset_timestamp_normalized_to_utc(self):
        """Test that RFC3339 timestamps with offsets are normalized to UTC."""
        state = cursor_codec.decode(b'{"lastSeenAt": "2024-03-01T12:00:00+02:00"}')
        assert state.watermark == datetime(2024, 3, 1, 10, 0, tzinfo=timezone.utc)

    def test_roundtrip_preserves_adapter_state(self):
        """Test that the adapter-owned sub-object is kept verbatim."""
        state = CursorState(adapter={"status": "completed", "cursor": "abc"})
        decoded = cursor_codec.decode(cursor_codec.encode(state))
        assert decoded.adapter == {"status": "completed", "cursor": "abc"}

    def test_unknown_fields_are_ignored(self):
        """Test that unknown fields do not break decoding."""
        state = cursor_codec.decode(b'{"lastPage": 3, "somethingElse": true}')
        assert state.last_page == 3


class TestMalformedState:
    """Tests for malformed continuation state."""

    @pytest.mark.parametrize("blob", [
        b"{not json",
        b"[1, 2, 3]",
        b'"a string"',
        b'{"lastSeenAt": "yesterday"}',
        b'{"lastPage": -1}',
        b"\xff\xfe",
    ])
    def test_malformed_cursor_state_raises(self, blob):
        """Test that undecodable cursor state raises StateDecodeError."""
        with pytest.raises(StateDecodeError):
            cursor_codec.decode(blob)

    def test_state_decode_error_is_value_error(self):
        """Test that StateDecodeError can be caught as ValueError."""
        with pytest.raises(ValueError):
            timeline_codec.decode(b"{oops")


class TestTimelineState:
    """Tests for the Timeline state layout."""

    def test_empty_timeline_is_not_caught_up(self):
        """Test that a fresh timeline still has to scan."""
        timeline = timeline_codec.decode(None)
        assert timeline.is_caught_up() is False
        assert timeline.has_backlog() is False

    def test_caught_up_iff_latest_id_set(self):
        """Test that IsCaughtUp is exactly LatestID != ''."""
        assert Timeline(latest_id="pi_1").is_caught_up() is True
        assert Timeline(backlog_cursor="pi_1").is_caught_up() is False

    def test_encode_uses_stable_field_names(self):
        """Test that the Timeline layout uses snake_case keys."""
        timeline = Timeline(latest_id="a", backlog_cursor="b", backlog_starting_point="c")
        data = json.loads(timeline_codec.encode(timeline))
        assert data["latest_id"] == "a"
        assert data["backlog_cursor"] == "b"
        assert data["backlog_starting_point"] == "c"

    def test_null_ids_decode_as_empty(self):
        """Test that null ids are treated as absent."""
        timeline = timeline_codec.decode(b'{"latest_id": null, "backlog_cursor": null}')
        assert timeline.latest_id == ""
        assert timeline.backlog_cursor == ""

    def test_legacy_last_id_created_is_migrated(self):
        """Test that the legacy lastIDCreated field becomes latest_id."""
        timeline = timeline_codec.decode(b'{"lastIDCreated": "txn_42"}')
        assert timeline.latest_id == "txn_42"
        assert timeline.is_caught_up() is True

    def test_legacy_field_does_not_override_latest_id(self):
        """Test that latest_id wins over the legacy field."""
        timeline = timeline_codec.decode(b'{"lastIDCreated": "old", "latest_id": "new"}')
        assert timeline.latest_id == "new"


class TestStateCodecGeneric:
    """Tests for StateCodec itself."""

    def test_codec_returns_model_instances(self):
        """Test that a codec decodes into its model type."""
        codec = StateCodec(Timeline)
        assert isinstance(codec.decode(b"{}"), Timeline)

    def test_encode_returns_bytes(self):
        """Test that encoded state is bytes."""
        assert isinstance(StateCodec(CursorState).encode(CursorState()), bytes)
