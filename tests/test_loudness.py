import subprocess
from unittest import mock

import pytest

from postkit.loudness import LoudnessError, measure_loudness, parse_loudnorm_output

SAMPLE = """Input #0, wav, from 'in.wav':
  Duration: 00:00:10.00
[Parsed_loudnorm_0 @ 0x1] 
{
\t"input_i" : "-23.40",
\t"input_tp" : "-1.20",
\t"input_lra" : "6.50",
\t"input_thresh" : "-33.71",
\t"target_offset" : "0.10"
}
"""


def test_parse_sample_output():
    result = parse_loudnorm_output(SAMPLE)
    assert result.integrated_lufs == pytest.approx(-23.40)
    assert result.true_peak_dbtp == pytest.approx(-1.20)
    assert result.range_lu == pytest.approx(6.50)
    assert result.short_term_max_lufs == 0.0


def test_parse_uses_last_block():
    text = '{"input_i": "-10.0"}\nnoise\n{"input_i": "-20.0"}'
    assert parse_loudnorm_output(text).integrated_lufs == pytest.approx(-20.0)


def test_non_string_and_missing_values_default_to_zero():
    result = parse_loudnorm_output('{"input_i": -5, "input_tp": "abc"}')
    assert result.integrated_lufs == 0.0
    assert result.true_peak_dbtp == 0.0
    assert result.range_lu == 0.0


def test_parse_without_json_raises():
    with pytest.raises(LoudnessError):
        parse_loudnorm_output("ffmpeg: no such filter")


def test_parse_malformed_json_raises():
    with pytest.raises(LoudnessError):
        parse_loudnorm_output("{ not json }")


def test_measure_loudness_runs_ffmpeg(tmp_path):
    source = tmp_path / "in.wav"
    completed = subprocess.CompletedProcess(args=[], returncode=0, stdout=b"", stderr=SAMPLE.encode())
    with mock.patch("postkit.loudness.subprocess.run", return_value=completed) as run:
        result = measure_loudness(source)
    argv = run.call_args.args[0]
    assert argv[0] == "ffmpeg"
    assert str(source) in argv
    assert "loudnorm=print_format=json" in argv
    assert result.integrated_lufs == pytest.approx(-23.40)


def test_measure_loudness_missing_ffmpeg(tmp_path):
    with mock.patch("postkit.loudness.subprocess.run", side_effect=FileNotFoundError("ffmpeg")):
        with pytest.raises(LoudnessError, match="Failed to run ffmpeg"):
            measure_loudness(tmp_path / "in.wav")


def test_measure_loudness_unparsable_output(tmp_path):
    completed = subprocess.CompletedProcess(args=[], returncode=1, stdout=b"", stderr=b"error")
    with mock.patch("postkit.loudness.subprocess.run", return_value=completed):
        with pytest.raises(LoudnessError, match="Failed to parse"):
            measure_loudness(tmp_path / "in.wav")