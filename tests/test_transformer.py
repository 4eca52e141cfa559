"""
Tests for rename templates.
"""

from datetime import datetime
from pathlib import Path

import pytest

from feedmover.core.transformer import FilenameTransformer, split_name, validate_template, validate_timestamp_format
from feedmover.core.types import StagedFile
from feedmover.exceptions import ConfigurationError, UnknownPlaceholder

RUN = datetime(2024, 1, 2, 3, 4, 5)


def staged(name):
    return StagedFile(local_path=Path("/staging") / name, original_name=name, size_bytes=1, discovered_at=RUN)


class TestSplitName:
    @pytest.mark.parametrize(
        "name,expected",
        [
            ("storm01.grb", ("storm01", "grb")),
            ("archive.tar.gz", ("archive.tar", "gz")),
            ("README", ("README", "")),
            (".hidden", (".hidden", "")),
            ("trailing.", ("trailing", "")),
        ],
    )
    def test_split(self, name, expected):
        assert split_name(name) == expected


class TestRender:
    def test_documented_example(self):
        t = FilenameTransformer(RUN)
        assert t.render("{base}_{timestamp}.grib", staged("storm01.grb")) == "storm01_20240102030405.grib"

    def test_ext_placeholder(self):
        t = FilenameTransformer(RUN)
        assert t.render("QPE_{base}.{ext}", staged("storm01.grb")) == "QPE_storm01.grb"

    def test_literal_template(self):
        t = FilenameTransformer(RUN)
        assert t.render("latest.xml", staged("anything.xml")) == "latest.xml"

    def test_custom_timestamp_format(self):
        t = FilenameTransformer(RUN)
        assert t.render("{base}_{timestamp}", staged("q.grb"), "%Y%m%d") == "q_20240102"

    def test_deterministic(self):
        t = FilenameTransformer(RUN)
        names = {t.render("{base}_{timestamp}.{ext}", staged("a.grb")) for _ in range(5)}
        assert names == {"a_20240102030405.grb"}

    def test_substituted_text_is_not_rescanned(self):
        t = FilenameTransformer(RUN)
        assert t.render("{base}.{ext}", staged("{timestamp}.grb")) == "{timestamp}.grb"

    def test_unknown_placeholder_raises(self):
        t = FilenameTransformer(RUN)
        with pytest.raises(UnknownPlaceholder) as exc_info:
            t.render("{base}_{date}", staged("a.grb"))
        assert exc_info.value.placeholder == "date"


class TestApply:
    def test_collision_gets_sequence_suffix(self):
        t = FilenameTransformer(RUN)
        first = t.apply("qpe_{timestamp}.grib", staged("a.grb"))
        second = t.apply("qpe_{timestamp}.grib", staged("b.grb"))
        third = t.apply("qpe_{timestamp}.grib", staged("c.grb"))
        assert first == "qpe_20240102030405.grib"
        assert second == "qpe_20240102030405_1.grib"
        assert third == "qpe_20240102030405_2.grib"

    def test_collision_without_extension(self):
        t = FilenameTransformer(RUN)
        t.apply("latest", staged("a"))
        assert t.apply("latest", staged("b")) == "latest_1"

    def test_distinct_names_untouched(self):
        t = FilenameTransformer(RUN)
        assert t.apply("{base}.{ext}", staged("a.grb")) == "a.grb"
        assert t.apply("{base}.{ext}", staged("b.grb")) == "b.grb"

    def test_new_transformer_starts_fresh(self):
        FilenameTransformer(RUN).apply("x.grb", staged("a.grb"))
        assert FilenameTransformer(RUN).apply("x.grb", staged("a.grb")) == "x.grb"

    def test_scopes_are_independent(self):
        t = FilenameTransformer(RUN)
        assert t.apply("latest.dat", staged("a.grb"), scope="QPE") == "latest.dat"
        assert t.apply("latest.dat", staged("g.csv"), scope="GAUGES") == "latest.dat"
        assert t.apply("latest.dat", staged("b.grb"), scope="QPE") == "latest_1.dat"
        assert t.apply("latest.dat", staged("h.csv"), scope="GAUGES") == "latest_1.dat"


class TestValidation:
    def test_valid_template(self):
        validate_template("{base}_{timestamp}.{ext}", feed_id="qpe")

    def test_unknown_placeholder(self):
        with pytest.raises(UnknownPlaceholder) as exc_info:
            validate_template("{base}_{stamp}.grib", feed_id="qpe")
        assert exc_info.value.feed_id == "qpe"
        assert "{stamp}" in str(exc_info.value)

    def test_unknown_placeholder_is_configuration_error(self):
        with pytest.raises(ConfigurationError):
            validate_template("{nope}", feed_id="qpe")

    def test_empty_template(self):
        with pytest.raises(ConfigurationError):
            validate_template("", feed_id="qpe")

    @pytest.mark.parametrize("fmt", ["%Y%m%d%H%M%S", "%Y-%m-%d", "%H%M"])
    def test_valid_timestamp_formats(self, fmt):
        validate_timestamp_format(fmt, feed_id="qpe")

    @pytest.mark.parametrize("fmt", ["%A", "%Y/%j", "static", "%c"])
    def test_invalid_timestamp_formats(self, fmt):
        with pytest.raises(ConfigurationError):
            validate_timestamp_format(fmt, feed_id="qpe")
