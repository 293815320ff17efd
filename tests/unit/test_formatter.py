from __future__ import annotations

import math

from domain.stats import escape_label_value, format_sample, format_value
from shared.contracts.v1.stats import Sample

URL = "https://meet.google.com/abc-defg-hij"


def _sample(values, state="connected", conn_id="pc-1") -> Sample:
    return Sample(url=URL, id=conn_id, state=state, values=values)


def _type_lines(block: str) -> list[str]:
    return [ln for ln in block.splitlines() if ln.startswith("# TYPE ")]


def test_peer_connection_entry_gets_state_label_and_gauge():
    block = format_sample(_sample([{"type": "peer-connection", "dataChannelsOpened": 2}]))
    assert block == (
        "# TYPE peer_connection_dataChannelsOpened gauge\n"
        'peer_connection_dataChannelsOpened{pageUrl="' + URL + '",state="connected"} 2\n'
    )


def test_non_peer_connection_entries_have_no_state_label():
    block = format_sample(_sample([{"type": "inbound-rtp", "packetsReceived": 10}]))
    assert 'state="' not in block
    assert block.endswith('inbound_rtp_packetsReceived{pageUrl="' + URL + '"} 10\n')


def test_label_order_page_agent_state_then_string_fields():
    block = format_sample(
        _sample([{"type": "peer-connection", "kind": "video", "n": 1}]), agent_id="agent-7"
    )
    line = block.splitlines()[1]
    assert line == (
        'peer_connection_n{pageUrl="' + URL + '",agent_id="agent-7",state="connected",kind="video"} 1'
    )


def test_type_line_once_per_metric_name_per_call():
    values = [
        {"type": "inbound-rtp", "kind": "audio", "packetsLost": 1},
        {"type": "inbound-rtp", "kind": "video", "packetsLost": 4},
    ]
    block = format_sample(_sample(values))
    assert _type_lines(block) == ["# TYPE inbound_rtp_packetsLost gauge"]
    assert len([ln for ln in block.splitlines() if ln.startswith("inbound_rtp_packetsLost{")]) == 2


def test_formatting_is_deterministic():
    values = [
        {"type": "outbound-rtp", "bytesSent": 100, "qualityLimitationReason": "cpu"},
        {"type": "peer-connection", "dataChannelsOpened": 0},
    ]
    s = _sample(values)
    assert format_sample(s) == format_sample(s)


def test_quality_limitation_reason_maps_to_number():
    block = format_sample(_sample([{"type": "outbound-rtp", "qualityLimitationReason": "cpu"}]))
    assert "outbound_rtp_qualityLimitationReason" in block
    assert block.rstrip().endswith(" 2")
    assert 'qualityLimitationReason="' not in block


def test_quality_limitation_reason_honours_custom_mapping_and_drops_unknown():
    entry = {"type": "outbound-rtp", "qualityLimitationReason": "thermal"}
    assert format_sample(_sample([entry])) == ""
    custom = format_sample(_sample([entry]), quality_limitation_reasons={"thermal": 9})
    assert custom.rstrip().endswith(" 9")


def test_nested_mappings_flatten_one_level_with_underscore():
    entry = {
        "type": "outbound-rtp",
        "qualityLimitationDurations": {"none": 1.5, "bandwidth": 0, "deep": {"x": 1}},
    }
    block = format_sample(_sample([entry]))
    assert 'outbound_rtp_qualityLimitationDurations_none{pageUrl="' + URL + '"} 1.5' in block
    assert "outbound_rtp_qualityLimitationDurations_bandwidth{" in block
    assert "deep" not in block


def test_lists_flatten_by_index():
    entry = {"type": "candidate-pair", "rtts": [0.02, "n/a", 0.05]}
    block = format_sample(_sample([entry]))
    assert 'candidate_pair_rtts_0{pageUrl="' + URL + '"} 0.02' in block
    assert 'candidate_pair_rtts_2{pageUrl="' + URL + '"} 0.05' in block
    assert "rtts_1" not in block


def test_timing_frame_info_never_exported():
    entry = {"type": "inbound-rtp", "googTimingFrameInfo": "1,2,3", "jitter": 0.01}
    block = format_sample(_sample([entry]))
    assert "googTimingFrameInfo" not in block
    assert "inbound_rtp_jitter" in block


def test_booleans_become_labels_not_values():
    block = format_sample(_sample([{"type": "outbound-rtp", "active": True, "ssrc": 7}]))
    assert 'active="true"' in block
    assert "outbound_rtp_active" not in block


def test_label_values_are_escaped():
    s = Sample(url='https://x.test/a"b\\c', id="pc", state="new", values=[{"type": "codec", "n": 1}])
    block = format_sample(s)
    assert 'pageUrl="https://x.test/a\\"b\\\\c"' in block
    assert escape_label_value("line\nbreak") == "line\\nbreak"


def test_empty_or_missing_values_yield_nothing():
    assert format_sample(_sample([])) == ""
    assert format_sample(Sample(url=URL, id="pc")) == ""
    assert format_sample(Sample.model_validate({"url": URL, "id": "pc", "values": "garbage"})) == ""


def test_malformed_entries_are_skipped():
    values = [None, 3, "x", {"no_type": 1}, {"type": 5, "n": 1}, {"type": "codec", "clockRate": 90000}]
    block = format_sample(_sample(values))
    assert block == (
        "# TYPE codec_clockRate gauge\n" 'codec_clockRate{pageUrl="' + URL + '"} 90000\n'
    )


def test_dash_in_field_names_becomes_underscore():
    block = format_sample(_sample([{"type": "remote-inbound-rtp", "round-trip": 3}]))
    assert "remote_inbound_rtp_round_trip{" in block


def test_format_value_cases():
    assert format_value(3) == "3"
    assert format_value(2.0) == "2"
    assert format_value(0.25) == "0.25"
    assert format_value(math.nan) == "NaN"
    assert format_value(math.inf) == "+Inf"
    assert format_value(-math.inf) == "-Inf"
