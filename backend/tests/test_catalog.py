"""
Tests for the Stage Catalog

Tests covering:
1. Weights sum to exactly 100
2. Stage numbers are contiguous and ordered
3. Unknown steps and fields are rejected with typed errors
"""
import pytest

from villa_onboarding.catalog import (
    STAGES, TOTAL_STEPS, get_field, get_stage, stage_numbers, total_fields, total_weight,
)
from villa_onboarding.errors import InvalidField, InvalidInput, InvalidStage


class TestCatalogShape:

    def test_weights_sum_to_100(self):
        assert total_weight() == 100
        assert sum(s.weight for s in STAGES) == 100

    def test_stage_numbers_contiguous(self):
        assert stage_numbers() == tuple(range(1, TOTAL_STEPS + 1))
        assert TOTAL_STEPS == 10

    def test_total_fields_matches_stage_fields(self):
        assert total_fields() == sum(len(s.fields) for s in STAGES)

    def test_required_stages(self):
        required = [s.number for s in STAGES if s.required]
        assert required == [1, 2, 3, 4, 6, 9, 10]

    def test_field_names_unique_within_stage(self):
        for stage in STAGES:
            assert len(set(stage.field_names)) == len(stage.field_names)

    def test_contractual_details_has_four_required_fields(self):
        stage = get_stage(3)
        assert stage.weight == 10
        assert len(stage.required_field_names) == 4


class TestCatalogLookup:

    @pytest.mark.parametrize("bad", [0, 11, -1, True, "3", None, 2.5])
    def test_invalid_stage_rejected(self, bad):
        with pytest.raises(InvalidStage):
            get_stage(bad)

    def test_invalid_stage_is_invalid_input(self):
        with pytest.raises(InvalidInput):
            get_stage(42)

    def test_unknown_field_rejected(self):
        with pytest.raises(InvalidField) as exc_info:
            get_field(1, "owner_email")
        assert exc_info.value.stage_number == 1
        assert exc_info.value.field_name == "owner_email"

    def test_known_field_lookup(self):
        field = get_field(2, "owner_email")
        assert field.required is True
        assert field.name == "owner_email"
