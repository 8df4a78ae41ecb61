"""Tests for TRL range extraction."""

import pytest

from fundingpipe.fields.trl import extract_trl_range, trl_stage, weighted_trl_points


class TestExtractTrlRange:
    def test_explicit_range(self):
        result = extract_trl_range("목표 기술수준: TRL 4~6 단계")
        assert (result.min_trl, result.max_trl) == (4, 6)
        assert result.confidence == "explicit"
        assert result.stage == "APPLIED_RESEARCH"

    def test_korean_label_range(self):
        result = extract_trl_range("기술성숙도 3-5단계 과제")
        assert (result.min_trl, result.max_trl) == (3, 5)

    def test_single_level(self):
        result = extract_trl_range("종료 시 TRL 6 달성")
        assert (result.min_trl, result.max_trl) == (6, 6)
        assert result.pattern_id == "trl-single"

    def test_reversed_range_is_ignored(self):
        result = extract_trl_range("TRL 7~3")
        assert result.min_trl is None
        assert result.confidence == "missing"

    def test_inferred_from_keywords(self):
        result = extract_trl_range("개발 기술의 상용화 및 실증 지원")
        assert (result.min_trl, result.max_trl) == (7, 9)
        assert result.confidence == "inferred"
        assert result.stage == "COMMERCIALIZATION"

    def test_missing(self):
        result = extract_trl_range("일반 공지")
        assert result.confidence == "missing"
        assert result.stage is None


class TestStageAndWeights:
    def test_stage_by_midpoint(self):
        assert trl_stage(1, 3) == "BASIC_RESEARCH"
        assert trl_stage(3, 4) == "BASIC_RESEARCH"
        assert trl_stage(6, 8) == "COMMERCIALIZATION"

    def test_confidence_weights(self):
        assert weighted_trl_points(10, "explicit") == 10
        assert weighted_trl_points(10, "inferred") == pytest.approx(8.5)
        assert weighted_trl_points(10, None) == pytest.approx(7)
